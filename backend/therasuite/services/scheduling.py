"""
패키지 판매 → 세션 자동 생성.

판매 시 패키지의 세션 수만큼 예약을 만들고, 센터 치료사들에게 순서대로
(round-robin) 배정한다. 날짜 간격은 패키지 frequency 로 정해진다.
"""
from __future__ import annotations
import logging
from datetime import date, time, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from fastapi import HTTPException, status
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from therasuite.config import DEFAULT_SESSION_START, DEFAULT_SESSION_MINUTES, EXPIRING_SOON_DAYS
from therasuite.models import PackageDef, PackageSale, Patient, Session, Therapist

logger = logging.getLogger(__name__)

FREQUENCY_INTERVAL = {"daily": 1, "alternate": 2, "custom": 1}

# 세션 상태 전이표
SESSION_TRANSITIONS = {
    "scheduled": {"checked-in", "cancelled", "no-show"},
    "checked-in": {"completed", "cancelled"},
}

# 치료사별 이미 잡힌 (날짜, 시작, 종료)
BusyMap = Dict[int, List[Tuple[date, time, time]]]


def js_weekday(d: date) -> int:
    """0 = 일요일 ... 6 = 토요일 (Therapist.working_days 기준)"""
    return (d.weekday() + 1) % 7

def roll_past_weekend(d: date) -> date:
    while d.weekday() >= 5:
        d += timedelta(days=1)
    return d

def generate_session_dates(start: date, count: int, interval_days: int = 1, skip_weekends: bool = True) -> List[date]:
    if count <= 0:
        raise ValueError("session count must be positive")
    if interval_days < 1:
        raise ValueError("interval must be at least one day")
    dates = []
    current = start
    for _ in range(count):
        if skip_weekends:
            current = roll_past_weekend(current)
        dates.append(current)
        current = current + timedelta(days=interval_days)
    return dates

def end_time_for(start: time, minutes: int) -> time:
    end = datetime.combine(date.min, start) + timedelta(minutes=minutes)
    if end.date() != date.min:
        raise ValueError("session would end after midnight")
    return end.time()

def overlaps(a_start: time, a_end: time, b_start: time, b_end: time) -> bool:
    return a_start < b_end and b_start < a_end

def is_free(busy: BusyMap, therapist_id: int, day: date, start: time, end: time) -> bool:
    return not any(
        d == day and overlaps(start, end, s, e)
        for d, s, e in busy.get(therapist_id, [])
    )

def assign_round_robin(
    dates: Sequence[date],
    start: time,
    end: time,
    therapists: Sequence[Therapist],
    busy: Optional[BusyMap] = None,
) -> List[Therapist]:
    """
    i 번째 세션은 therapists[i % n] 에게 배정한다.
    그 치료사가 해당 요일에 근무하지 않거나 같은 시간에 예약이 있으면
    순서상 다음 치료사를 찾고, 아무도 없으면 원래 순번을 그대로 쓴다.
    """
    if not therapists:
        raise ValueError("no therapists available")
    busy = busy if busy is not None else {}
    n = len(therapists)
    assigned = []
    for i, day in enumerate(dates):
        chosen = therapists[i % n]
        for k in range(n):
            candidate = therapists[(i + k) % n]
            works = js_weekday(day) in (candidate.working_days or [])
            if works and is_free(busy, candidate.id, day, start, end):
                chosen = candidate
                break
        busy.setdefault(chosen.id, []).append((day, start, end))
        assigned.append(chosen)
    return assigned

def refresh_sale_status(sale: PackageSale, today: Optional[date] = None) -> str:
    today = today or date.today()
    # 만료는 되돌리지 않음
    if sale.status == "expired":
        return sale.status
    if sale.expiry_date is not None and sale.expiry_date < today:
        sale.status = "expired"
    elif sale.sessions_used >= sale.sessions_total:
        sale.status = "completed"
    else:
        sale.status = "active"
    return sale.status

def sale_view(sale: PackageSale, today: Optional[date] = None) -> dict:
    """PackageSalePublic 응답용 dict (남은 세션 / 만료 임박 포함)"""
    today = today or date.today()
    expiring_soon = (
        sale.status == "active"
        and sale.expiry_date is not None
        and (sale.expiry_date - today).days <= EXPIRING_SOON_DAYS
    )
    return {
        "id": sale.id,
        "centre_id": sale.centre_id,
        "patient_id": sale.patient_id,
        "package_id": sale.package_id,
        "start_date": sale.start_date,
        "expiry_date": sale.expiry_date,
        "sessions_total": sale.sessions_total,
        "sessions_used": sale.sessions_used,
        "sessions_remaining": max(sale.sessions_total - sale.sessions_used, 0),
        "status": sale.status,
        "expiring_soon": expiring_soon,
    }

async def load_busy_map(db: AsyncSession, centre_id: int, dates: Iterable[date]) -> BusyMap:
    dates = sorted(set(dates))
    if not dates:
        return {}
    q = select(Session.therapist_id, Session.date, Session.start_time, Session.end_time).where(
        Session.centre_id == centre_id,
        Session.date >= dates[0],
        Session.date <= dates[-1],
        Session.status.notin_(("cancelled", "no-show")),
    )
    busy: BusyMap = {}
    for therapist_id, day, start, end in (await db.execute(q)).all():
        busy.setdefault(therapist_id, []).append((day, start, end))
    return busy

async def get_active_sale(db: AsyncSession, patient: Patient, today: Optional[date] = None) -> Optional[PackageSale]:
    """환자에게 연결된 판매를 상태 갱신 후 active 인 경우에만 반환"""
    if patient.package_sale_id is None:
        return None
    sale = await db.get(PackageSale, patient.package_sale_id)
    if sale is None or sale.centre_id != patient.centre_id:
        return None
    refresh_sale_status(sale, today)
    return sale if sale.status == "active" else None

async def sell_package(
    db: AsyncSession,
    package: PackageDef,
    patient: Patient,
    start_date: Optional[date] = None,
    start_time: Optional[time] = None,
    dates: Optional[List[date]] = None,
    notes: Optional[str] = None,
    today: Optional[date] = None,
) -> Tuple[PackageSale, List[Session]]:
    today = today or date.today()
    centre_id = patient.centre_id

    if await get_active_sale(db, patient, today) is not None:
        logger.warning("[scheduling] patient_id=%s already has an active package", patient.id)
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Patient already has an active package.")

    therapists = (await db.execute(
        select(Therapist).where(Therapist.centre_id == centre_id).order_by(Therapist.id)
    )).scalars().all()
    if not therapists:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="No therapists available to schedule sessions.")

    if dates:
        if len(dates) != package.sessions:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Please select exactly {package.sessions} dates for the sessions.",
            )
        session_dates = sorted(dates)
    else:
        first = start_date or (today + timedelta(days=1))
        session_dates = generate_session_dates(
            first, package.sessions, FREQUENCY_INTERVAL.get(package.frequency, 1)
        )

    start = start_time or time.fromisoformat(DEFAULT_SESSION_START)
    try:
        end = end_time_for(start, package.session_minutes or DEFAULT_SESSION_MINUTES)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    busy = await load_busy_map(db, centre_id, session_dates)
    assigned = assign_round_robin(session_dates, start, end, therapists, busy)

    sale = PackageSale(
        centre_id=centre_id,
        patient_id=patient.id,
        package_id=package.id,
        start_date=today,
        expiry_date=today + timedelta(days=package.duration_days),
        sessions_total=package.sessions,
        sessions_used=0,
        status="active",
    )
    db.add(sale)
    await db.flush()

    sessions = []
    for i, (day, therapist) in enumerate(zip(session_dates, assigned)):
        sessions.append(Session(
            centre_id=centre_id,
            patient_id=patient.id,
            therapist_id=therapist.id,
            date=day,
            start_time=start,
            end_time=end,
            status="scheduled",
            package_sale_id=sale.id,
            notes=f"Package sale notes: {notes}" if i == 0 and notes else None,
        ))
    db.add_all(sessions)
    patient.package_sale_id = sale.id
    await db.flush()

    logger.info(
        "[scheduling] sold package_id=%s to patient_id=%s: sale_id=%s, %d sessions",
        package.id, patient.id, sale.id, len(sessions),
    )
    return sale, sessions

async def record_session_use(db: AsyncSession, sale_id: int, today: Optional[date] = None) -> Optional[PackageSale]:
    """완료된 세션 1회를 판매에 반영"""
    sale = await db.get(PackageSale, sale_id)
    if sale is None:
        return None
    sale.sessions_used = min(sale.sessions_used + 1, sale.sessions_total)
    refresh_sale_status(sale, today)
    if sale.status == "completed":
        logger.info("[scheduling] sale_id=%s used all %d sessions", sale.id, sale.sessions_total)
    return sale

async def expire_sale(db: AsyncSession, sale: PackageSale, today: Optional[date] = None) -> int:
    """판매를 만료 처리하고 남은 예약을 취소한다. 취소된 세션 수를 반환."""
    today = today or date.today()
    sale.status = "expired"
    sale.expiry_date = min(sale.expiry_date or today, today)
    result = await db.execute(
        update(Session)
        .where(
            Session.package_sale_id == sale.id,
            Session.status == "scheduled",
            Session.date >= today,
        )
        .values(status="cancelled")
    )
    patient = await db.get(Patient, sale.patient_id)
    if patient is not None and patient.package_sale_id == sale.id:
        patient.package_sale_id = None
    return result.rowcount or 0

def check_transition(current: str, target: str):
    if target not in SESSION_TRANSITIONS.get(current, set()):
        raise ValueError(f"cannot change session status from '{current}' to '{target}'")

async def find_conflict(
    db: AsyncSession,
    centre_id: int,
    therapist_id: int,
    day: date,
    start: time,
    end: time,
    exclude_id: Optional[int] = None,
) -> Optional[Session]:
    """같은 치료사의 겹치는 (취소/노쇼 제외) 세션"""
    q = select(Session).where(
        Session.centre_id == centre_id,
        Session.therapist_id == therapist_id,
        Session.date == day,
        Session.start_time < end,
        Session.end_time > start,
        Session.status.notin_(("cancelled", "no-show")),
    )
    if exclude_id is not None:
        q = q.where(Session.id != exclude_id)
    return (await db.execute(q.limit(1))).scalars().first()
