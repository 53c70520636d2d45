from datetime import date
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from therasuite.db import get_db
from therasuite.models import User
from therasuite.schemas import (
    AdminStats, DashboardResponse, ReceptionStats, SessionPublic, TherapistStats,
)
from therasuite.services.auth_service import get_current_user
from therasuite.services import dashboard as stats

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("", response_model=DashboardResponse)
async def get_dashboard(current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    """로그인한 사용자의 역할에 맞는 통계"""
    today = date.today()
    resp = DashboardResponse(role=current_user.role)
    if current_user.role == "admin":
        resp.admin = AdminStats(**await stats.admin_stats(db, current_user.centre_id, today))
    elif current_user.role == "receptionist":
        resp.reception = ReceptionStats(**await stats.reception_stats(db, current_user, today))
    else:
        data = await stats.therapist_stats(db, current_user, today)
        data["upcoming"] = [SessionPublic.model_validate(s) for s in data["upcoming"]]
        resp.therapist = TherapistStats(**data)
    return resp

@router.get("/today", response_model=List[SessionPublic])
async def todays_schedule(current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await stats.todays_sessions(db, current_user, date.today(), include_completed=False)
