"""역할별 대시보드 집계 (읽기 전용)"""
from __future__ import annotations
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from therasuite.config import ACTIVE_PATIENT_WINDOW_DAYS
from therasuite.models import Bill, PackageSale, Patient, Session, User


async def todays_sessions(db: AsyncSession, user: User, today: date, include_completed: bool = True) -> List[Session]:
    q = select(Session).where(Session.centre_id == user.centre_id, Session.date == today)
    if user.role == "therapist":
        q = q.where(Session.therapist_id == user.therapist_id)
    if not include_completed:
        q = q.where(Session.status != "completed")
    q = q.order_by(Session.start_time, Session.id)
    return list((await db.execute(q)).scalars().all())

async def admin_stats(db: AsyncSession, centre_id: int, today: date) -> dict:
    total_patients = (await db.execute(
        select(func.count(Patient.id)).where(Patient.centre_id == centre_id)
    )).scalar_one()

    since = today - timedelta(days=ACTIVE_PATIENT_WINDOW_DAYS)
    active_patients = (await db.execute(
        select(func.count(func.distinct(Session.patient_id))).where(
            Session.centre_id == centre_id,
            Session.date > since,
        )
    )).scalar_one()

    package_sales = (await db.execute(
        select(func.count(PackageSale.id)).where(PackageSale.centre_id == centre_id)
    )).scalar_one()

    total_sessions = (await db.execute(
        select(func.count(Session.id)).where(Session.centre_id == centre_id)
    )).scalar_one()

    # Numeric 합계는 DB 마다 타입이 달라 파이썬에서 합산
    unpaid = (await db.execute(
        select(Bill.grand_total).where(Bill.centre_id == centre_id, Bill.status == "unpaid")
    )).scalars().all()
    unpaid_total = sum((Decimal(str(v)) for v in unpaid), Decimal("0.00"))

    return {
        "total_patients": total_patients,
        "active_patients": active_patients,
        "package_sales": package_sales,
        "total_sessions": total_sessions,
        "unpaid_total": unpaid_total,
    }

async def reception_stats(db: AsyncSession, user: User, today: date) -> dict:
    sessions = await todays_sessions(db, user, today)
    return {
        "todays_sessions": len(sessions),
        "scheduled_today": sum(1 for s in sessions if s.status == "scheduled"),
        "completed_today": sum(1 for s in sessions if s.status == "completed"),
    }

async def therapist_stats(db: AsyncSession, user: User, today: date, now: Optional[time] = None) -> dict:
    now = now or datetime.now().time()
    sessions = await todays_sessions(db, user, today)

    patient_count = (await db.execute(
        select(func.count(func.distinct(Session.patient_id))).where(
            Session.centre_id == user.centre_id,
            Session.therapist_id == user.therapist_id,
        )
    )).scalar_one()

    completed = sum(1 for s in sessions if s.status == "completed")
    upcoming = [s for s in sessions if s.start_time > now and s.status == "scheduled"]
    return {
        "todays_sessions": len(sessions),
        "completed_today": completed,
        "pending_today": len(sessions) - completed,
        "my_patients": patient_count,
        "upcoming": upcoming,
    }
