import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from therasuite.api.deps import get_in_centre
from therasuite.db import get_db
from therasuite.kafka import publish_change
from therasuite.models import Session, Therapist, User
from therasuite.schemas import UserCreate, UserPublic, UserUpdate
from therasuite.services.auth_service import get_user_by_email, hash_password, normalize_email, require_roles

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])

admin_only = require_roles("admin")


async def _remove_therapist(db: AsyncSession, therapist_id: int) -> None:
    """치료사 레코드 삭제. 진행됐거나 완료된 세션이 있으면 거부한다."""
    started = (await db.execute(
        select(func.count()).select_from(Session).where(
            Session.therapist_id == therapist_id,
            Session.status.in_(("checked-in", "completed")),
        )
    )).scalar_one()
    if started:
        raise HTTPException(status_code=409, detail="Therapist has checked-in or completed sessions")

    # 남은 예약/취소 세션 정리
    await db.execute(delete(Session).where(Session.therapist_id == therapist_id))
    therapist = await db.get(Therapist, therapist_id)
    if therapist is not None:
        await db.delete(therapist)


@router.get("", response_model=List[UserPublic])
async def list_users(current_user: User = Depends(admin_only), db: AsyncSession = Depends(get_db)):
    q = select(User).where(User.centre_id == current_user.centre_id).order_by(User.name, User.id)
    return (await db.execute(q)).scalars().all()

@router.post("", response_model=UserPublic, status_code=201)
async def create_user(
    req: UserCreate,
    current_user: User = Depends(admin_only),
    db: AsyncSession = Depends(get_db),
):
    """
    센터 직원 계정 생성.
    therapist 역할이면 기본 근무 시간의 Therapist 레코드도 함께 만들어 연결한다.
    """
    if await get_user_by_email(db, req.email):
        raise HTTPException(status_code=400, detail="Email already registered.")

    user = User(
        centre_id=current_user.centre_id,
        name=req.name,
        email=normalize_email(req.email),
        phone=req.phone,
        role=req.role,
        password_hash=hash_password(req.password),
    )
    if req.role == "therapist":
        therapist = Therapist(centre_id=current_user.centre_id, name=req.name)
        db.add(therapist)
        await db.flush()
        user.therapist_id = therapist.id
    db.add(user)
    await db.commit()
    await db.refresh(user)

    logger.info("[users] created user_id=%s role=%s in centre_id=%s", user.id, user.role, user.centre_id)
    await publish_change("users", "create", user.id, user.centre_id)
    if user.therapist_id:
        await publish_change("therapists", "create", user.therapist_id, user.centre_id)
    return user

@router.get("/{user_id}", response_model=UserPublic)
async def get_user(user_id: int, current_user: User = Depends(admin_only), db: AsyncSession = Depends(get_db)):
    return await get_in_centre(db, User, user_id, current_user.centre_id, "User")

@router.put("/{user_id}", response_model=UserPublic)
async def update_user(
    user_id: int,
    req: UserUpdate,
    current_user: User = Depends(admin_only),
    db: AsyncSession = Depends(get_db),
):
    user = await get_in_centre(db, User, user_id, current_user.centre_id, "User")
    data = req.model_dump(exclude_unset=True)

    if data.get("email"):
        email = normalize_email(data["email"])
        other = await get_user_by_email(db, email)
        if other is not None and other.id != user.id:
            raise HTTPException(status_code=400, detail="Email already registered.")
        user.email = email
    if data.get("password"):
        user.password_hash = hash_password(data["password"])
    if data.get("name"):
        user.name = data["name"]
    if "phone" in data:
        user.phone = data["phone"]

    new_role = data.get("role")
    if new_role and new_role != user.role:
        if user.id == current_user.id:
            raise HTTPException(status_code=400, detail="You cannot change your own role")
        if new_role == "therapist" and user.therapist_id is None:
            therapist = Therapist(centre_id=user.centre_id, name=user.name)
            db.add(therapist)
            await db.flush()
            user.therapist_id = therapist.id
        elif user.role == "therapist" and user.therapist_id is not None:
            await _remove_therapist(db, user.therapist_id)
            user.therapist_id = None
        user.role = new_role

    # 치료사 이름 동기화
    if user.therapist_id is not None:
        therapist = await db.get(Therapist, user.therapist_id)
        if therapist is not None and therapist.name != user.name:
            therapist.name = user.name

    await db.commit()
    await db.refresh(user)
    await publish_change("users", "update", user.id, user.centre_id)
    return user

@router.delete("/{user_id}", status_code=204)
async def delete_user(user_id: int, current_user: User = Depends(admin_only), db: AsyncSession = Depends(get_db)):
    user = await get_in_centre(db, User, user_id, current_user.centre_id, "User")
    if user.id == current_user.id:
        raise HTTPException(status_code=400, detail="You cannot delete your own account")

    therapist_id = user.therapist_id
    if therapist_id is not None:
        await _remove_therapist(db, therapist_id)
    await db.delete(user)
    await db.commit()

    logger.info("[users] deleted user_id=%s", user_id)
    await publish_change("users", "delete", user_id, current_user.centre_id)
    if therapist_id is not None:
        await publish_change("therapists", "delete", therapist_id, current_user.centre_id)
