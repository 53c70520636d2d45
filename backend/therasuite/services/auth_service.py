import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from therasuite.config import SECRET_KEY, ALGORITHM, ACCESS_TOKEN_EXPIRE_MINUTES, REMEMBER_ME_EXPIRE_DAYS
from therasuite.db import get_db
from therasuite.models import User, AuthSession

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")

def verify_password(plain_password, password_hash):
    return pwd_context.verify(plain_password, password_hash)

def hash_password(password):

    if not isinstance(password, (str, bytes)):
        raise TypeError("Password must be a string or bytes.")

    return pwd_context.hash(password)

def normalize_email(email: str) -> str:
    return email.strip().lower()

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)
    return encoded_jwt, expire

async def get_user_by_email(db: AsyncSession, email: str):
    q = select(User).where(User.email == normalize_email(email))
    res = await db.execute(q)
    return res.scalar_one_or_none()

async def authenticate(db: AsyncSession, email: str, password: str) -> Optional[User]:
    user = await get_user_by_email(db, email)
    if not user or not verify_password(password, user.password_hash):
        return None
    return user

async def open_session(db: AsyncSession, user: User, remember_me: bool = False, device: Optional[str] = None) -> str:
    """로그인 세션을 저장하고 그 세션에 묶인 토큰을 발급한다."""
    # 만료된 세션 정리
    await db.execute(delete(AuthSession).where(AuthSession.expires_at < datetime.now(timezone.utc)))

    token_id = uuid.uuid4().hex
    expires_delta = timedelta(days=REMEMBER_ME_EXPIRE_DAYS) if remember_me else None
    token, expire = create_access_token(
        data={"sub": str(user.id), "jti": token_id, "role": user.role, "centre_id": user.centre_id},
        expires_delta=expires_delta,
    )
    db.add(AuthSession(
        user_id=user.id,
        token_id=token_id,
        device=(device or "")[:512] or None,
        expires_at=expire,
    ))
    await db.commit()
    logger.info("[auth] session opened for user_id=%s (remember_me=%s)", user.id, remember_me)
    return token

async def close_session(db: AsyncSession, token_id: str):
    await db.execute(delete(AuthSession).where(AuthSession.token_id == token_id))
    await db.commit()

def decode_token(token: str) -> dict:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise credentials_exception
    if payload.get("sub") is None or payload.get("jti") is None:
        raise credentials_exception
    return payload


async def get_current_user(token: str = Depends(oauth2_scheme), db: AsyncSession = Depends(get_db)):
    """
    API 요청 헤더의 토큰을 검증하고 DB에서 현재 사용자를 찾아 반환하는 의존성.
    서명/만료 외에 로그인 세션이 아직 살아 있는지도 확인한다 (로그아웃한 토큰 거부).
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    payload = decode_token(token)
    try:
        user_id = int(payload["sub"])
    except ValueError:
        raise credentials_exception

    res = await db.execute(select(AuthSession).where(AuthSession.token_id == payload["jti"]))
    auth_session = res.scalar_one_or_none()
    if auth_session is None or auth_session.user_id != user_id:
        raise credentials_exception

    # DB에서 사용자 조회
    user = await db.get(User, user_id)
    if user is None:
        raise credentials_exception
    return user

async def get_current_token_id(token: str = Depends(oauth2_scheme)) -> str:
    return decode_token(token)["jti"]

def require_roles(*roles: str):
    """지정한 역할만 통과시키는 의존성을 만든다."""
    async def checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in roles:
            logger.warning(
                "[auth] user_id=%s role=%s denied (needs %s)", current_user.id, current_user.role, roles
            )
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed for your role")
        return current_user
    return checker
