import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession

from therasuite.db import get_db
from therasuite.kafka import publish_change
from therasuite.models import Centre, User
from therasuite.services.auth_service import (
    authenticate, close_session, get_current_token_id, get_current_user, get_user_by_email,
    hash_password, normalize_email, open_session, verify_password,
)
from therasuite.schemas import AdminRegisterRequest, LoginRequest, Token, UserPasswordUpdate, UserPublic

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

INVALID_LOGIN = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Incorrect email or password",
    headers={"WWW-Authenticate": "Bearer"},
)


@router.post("/register-admin", response_model=Token, status_code=201)
async def register_admin(
    req: AdminRegisterRequest,
    db: AsyncSession = Depends(get_db),
    user_agent: Optional[str] = Header(None),
):
    """새 센터 + 첫 관리자 계정 생성 후 바로 로그인 토큰 발급"""
    if await get_user_by_email(db, req.email):
        raise HTTPException(status_code=400, detail="Email already registered.")
    if req.closing_time <= req.opening_time:
        raise HTTPException(status_code=400, detail="closing_time must be after opening_time")

    centre = Centre(name=req.centre_name, opening_time=req.opening_time, closing_time=req.closing_time)
    db.add(centre)
    await db.flush()

    user = User(
        centre_id=centre.id,
        name=req.name,
        email=normalize_email(req.email),
        phone=req.phone,
        role="admin",
        password_hash=hash_password(req.password),
    )
    db.add(user)
    await db.flush()
    logger.info("[auth] registered centre_id=%s with admin user_id=%s", centre.id, user.id)

    # open_session 이 커밋한다
    token = await open_session(db, user, device=user_agent)
    await publish_change("centres", "create", centre.id, centre.id)
    await publish_change("users", "create", user.id, centre.id)
    return Token(access_token=token)

@router.post("/token", response_model=Token)
async def login_for_access_token(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_db),
    user_agent: Optional[str] = Header(None),
):
    # OAuth2 폼 로그인 (username = 이메일)
    user = await authenticate(db, form_data.username, form_data.password)
    if not user:
        logger.warning("[auth] failed login for %s", form_data.username)
        raise INVALID_LOGIN
    token = await open_session(db, user, device=user_agent)
    return Token(access_token=token)

@router.post("/login", response_model=Token)
async def login(
    req: LoginRequest,
    db: AsyncSession = Depends(get_db),
    user_agent: Optional[str] = Header(None),
):
    user = await authenticate(db, req.email, req.password)
    if not user:
        logger.warning("[auth] failed login for %s", req.email)
        raise INVALID_LOGIN
    token = await open_session(db, user, remember_me=req.remember_me, device=user_agent)
    return Token(access_token=token)

@router.post("/logout", status_code=204)
async def logout(
    current_user: User = Depends(get_current_user),
    token_id: str = Depends(get_current_token_id),
    db: AsyncSession = Depends(get_db),
):
    await close_session(db, token_id)
    logger.info("[auth] user_id=%s logged out", current_user.id)

@router.get("/me", response_model=UserPublic)
async def get_my_info(current_user: User = Depends(get_current_user)):
    return current_user

@router.put("/me/password", status_code=204)
async def change_password(
    req: UserPasswordUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not verify_password(req.current_password, current_user.password_hash):
        raise HTTPException(status_code=400, detail="Current password is incorrect")
    current_user.password_hash = hash_password(req.new_password)
    await db.commit()
    logger.info("[auth] user_id=%s changed password", current_user.id)
