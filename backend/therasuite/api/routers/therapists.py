import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from therasuite.api.deps import apply_updates, get_in_centre
from therasuite.db import get_db
from therasuite.kafka import publish_change
from therasuite.models import Therapist, User
from therasuite.schemas import TherapistPublic, TherapistUpdate
from therasuite.services.auth_service import get_current_user, require_roles

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/therapists", tags=["therapists"])


@router.get("", response_model=List[TherapistPublic])
async def list_therapists(current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    q = select(Therapist).where(Therapist.centre_id == current_user.centre_id).order_by(Therapist.id)
    return (await db.execute(q)).scalars().all()

@router.get("/{therapist_id}", response_model=TherapistPublic)
async def get_therapist(
    therapist_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await get_in_centre(db, Therapist, therapist_id, current_user.centre_id, "Therapist")

@router.put("/{therapist_id}", response_model=TherapistPublic)
async def update_therapist(
    therapist_id: int,
    req: TherapistUpdate,
    current_user: User = Depends(require_roles("admin")),
    db: AsyncSession = Depends(get_db),
):
    therapist = await get_in_centre(db, Therapist, therapist_id, current_user.centre_id, "Therapist")
    data = {
        k: v for k, v in req.model_dump(exclude_unset=True).items()
        if v is not None or k == "specialty"
    }
    if "working_days" in data:
        data["working_days"] = sorted(set(data["working_days"]))
    apply_updates(therapist, data)
    if therapist.end_hour <= therapist.start_hour:
        raise HTTPException(status_code=400, detail="end_hour must be after start_hour")

    await db.commit()
    await db.refresh(therapist)
    logger.info("[therapists] updated therapist_id=%s", therapist.id)
    await publish_change("therapists", "update", therapist.id, therapist.centre_id)
    return therapist
