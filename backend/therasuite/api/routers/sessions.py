import logging
from datetime import date
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from therasuite.api.deps import get_in_centre
from therasuite.db import get_db
from therasuite.kafka import publish_change
from therasuite.models import PackageSale, Patient, Questionnaire, Session, Therapist, TreatmentPlan, User
from therasuite.schemas import (
    CalendarDay, CalendarResponse, SessionComplete, SessionCreate, SessionPublic, SessionStatus,
    SessionStatusChange, SessionUpdate,
)
from therasuite.services.auth_service import get_current_user, require_roles
from therasuite.services.calendar import group_by_day, view_range
from therasuite.services.questionnaires import answers_to_notes, validate_answers
from therasuite.services.scheduling import check_transition, find_conflict, record_session_use

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["sessions"])

admin_only = require_roles("admin")
front_desk = require_roles("admin", "receptionist")

# 건강 기록은 관리자 / 치료사만 작성
HEALTH_NOTE_ROLES = ("admin", "therapist")


def _scoped(q, user: User):
    q = q.where(Session.centre_id == user.centre_id)
    if user.role == "therapist":
        q = q.where(Session.therapist_id == user.therapist_id)
    return q

async def _get_session(db: AsyncSession, session_id: int, user: User) -> Session:
    s = await get_in_centre(db, Session, session_id, user.centre_id, "Session")
    if user.role == "therapist" and s.therapist_id != user.therapist_id:
        raise HTTPException(status_code=404, detail="Session not found")
    return s

async def _check_refs(db: AsyncSession, centre_id: int, data: dict, patient_id: int, package_sale_id: Optional[int]):
    """요청에 담긴 외래 키가 모두 같은 센터 소속인지, 패키지가 해당 환자의 것인지 확인"""
    if data.get("patient_id") is not None:
        await get_in_centre(db, Patient, data["patient_id"], centre_id, "Patient")
    if data.get("therapist_id") is not None:
        await get_in_centre(db, Therapist, data["therapist_id"], centre_id, "Therapist")
    if package_sale_id is not None:
        sale = await get_in_centre(db, PackageSale, package_sale_id, centre_id, "Package sale")
        if sale.patient_id != patient_id:
            raise HTTPException(status_code=400, detail="Package sale belongs to another patient")
    if data.get("treatment_plan_id") is not None:
        await get_in_centre(db, TreatmentPlan, data["treatment_plan_id"], centre_id, "Treatment plan")

async def _ensure_free(db: AsyncSession, s: Session):
    conflict = await find_conflict(
        db, s.centre_id, s.therapist_id, s.date, s.start_time, s.end_time, exclude_id=s.id
    )
    if conflict is not None:
        logger.warning(
            "[sessions] therapist_id=%s double booking on %s %s (conflicts with session_id=%s)",
            s.therapist_id, s.date, s.start_time, conflict.id,
        )
        raise HTTPException(status_code=409, detail="Therapist already has a session at this time")

async def _complete(db: AsyncSession, s: Session, health_notes: Optional[str] = None):
    s.status = "completed"
    if health_notes is not None:
        s.health_notes = health_notes
    if s.package_sale_id is not None:
        sale = await record_session_use(db, s.package_sale_id)
        if sale is not None:
            await publish_change("package_sales", "update", sale.id, sale.centre_id, status=sale.status)


@router.get("", response_model=List[SessionPublic])
async def list_sessions(
    start: Optional[date] = None,
    end: Optional[date] = None,
    therapist_id: Optional[int] = None,
    patient_id: Optional[int] = None,
    status: Optional[SessionStatus] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    q = _scoped(select(Session), current_user)
    if start:
        q = q.where(Session.date >= start)
    if end:
        q = q.where(Session.date <= end)
    if therapist_id is not None:
        q = q.where(Session.therapist_id == therapist_id)
    if patient_id is not None:
        q = q.where(Session.patient_id == patient_id)
    if status:
        q = q.where(Session.status == status)
    q = q.order_by(Session.date, Session.start_time, Session.id)
    return (await db.execute(q)).scalars().all()

@router.get("/calendar", response_model=CalendarResponse)
async def calendar(
    view: Literal["month", "week", "day"] = "week",
    anchor: Optional[date] = None,
    therapist_id: Optional[int] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    start, end = view_range(view, anchor or date.today())
    q = _scoped(select(Session), current_user).where(Session.date >= start, Session.date <= end)
    if therapist_id is not None:
        q = q.where(Session.therapist_id == therapist_id)
    sessions = (await db.execute(q)).scalars().all()

    days = [
        CalendarDay(date=day, sessions=[SessionPublic.model_validate(s) for s in items])
        for day, items in group_by_day(sessions, start, end)
    ]
    return CalendarResponse(view=view, start=start, end=end, days=days)

@router.post("", response_model=SessionPublic, status_code=201)
async def create_session(
    req: SessionCreate,
    current_user: User = Depends(front_desk),
    db: AsyncSession = Depends(get_db),
):
    if req.health_notes and current_user.role not in HEALTH_NOTE_ROLES:
        raise HTTPException(status_code=403, detail="Only admins and therapists can write health notes")
    data = req.model_dump()
    await _check_refs(db, current_user.centre_id, data, req.patient_id, req.package_sale_id)

    s = Session(centre_id=current_user.centre_id, **data)
    await _ensure_free(db, s)
    db.add(s)
    await db.commit()
    await db.refresh(s)
    logger.info("[sessions] created session_id=%s therapist_id=%s on %s", s.id, s.therapist_id, s.date)
    await publish_change("sessions", "create", s.id, s.centre_id)
    return s

@router.get("/{session_id}", response_model=SessionPublic)
async def get_session(session_id: int, current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await _get_session(db, session_id, current_user)

@router.put("/{session_id}", response_model=SessionPublic)
async def update_session(
    session_id: int,
    req: SessionUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    세션 수정.
    - 관리자/접수: 일정, 담당 치료사, 메모 변경
    - 치료사: 자신의 세션의 메모/건강 기록만 변경
    완료된 세션은 수정할 수 없다.
    """
    s = await _get_session(db, session_id, current_user)
    if s.status == "completed":
        raise HTTPException(status_code=409, detail="Completed sessions cannot be edited")

    data = req.model_dump(exclude_unset=True)
    if current_user.role == "therapist" and set(data) - {"health_notes", "notes"}:
        raise HTTPException(status_code=403, detail="Therapists can only edit notes")
    if "health_notes" in data and current_user.role not in HEALTH_NOTE_ROLES:
        raise HTTPException(status_code=403, detail="Only admins and therapists can write health notes")

    for key in ("patient_id", "therapist_id", "date", "start_time", "end_time"):
        if data.get(key) is None:
            data.pop(key, None)
    await _check_refs(
        db, current_user.centre_id, data, data.get("patient_id", s.patient_id), s.package_sale_id
    )

    for key, value in data.items():
        setattr(s, key, value)
    if s.end_time <= s.start_time:
        raise HTTPException(status_code=400, detail="end_time must be after start_time")
    if s.status not in ("cancelled", "no-show"):
        await _ensure_free(db, s)

    await db.commit()
    await db.refresh(s)
    await publish_change("sessions", "update", s.id, s.centre_id)
    return s

@router.delete("/{session_id}", status_code=204)
async def delete_session(session_id: int, current_user: User = Depends(admin_only), db: AsyncSession = Depends(get_db)):
    s = await _get_session(db, session_id, current_user)
    if s.status == "completed":
        raise HTTPException(status_code=409, detail="Completed sessions cannot be deleted")
    await db.delete(s)
    await db.commit()
    logger.info("[sessions] deleted session_id=%s", session_id)
    await publish_change("sessions", "delete", session_id, current_user.centre_id)

@router.post("/{session_id}/status", response_model=SessionPublic)
async def change_status(
    session_id: int,
    req: SessionStatusChange,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    # 치료사는 _get_session 에서 자기 세션만 찾을 수 있다
    s = await _get_session(db, session_id, current_user)
    try:
        check_transition(s.status, req.status)
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))

    previous = s.status
    if req.status == "completed":
        await _complete(db, s)
    else:
        s.status = req.status
    if req.notes is not None:
        s.notes = req.notes

    await db.commit()
    await db.refresh(s)
    logger.info("[sessions] session_id=%s %s -> %s", s.id, previous, s.status)
    await publish_change("sessions", "update", s.id, s.centre_id, status=s.status)
    return s

@router.post("/{session_id}/complete", response_model=SessionPublic)
async def complete_session(
    session_id: int,
    req: SessionComplete,
    current_user: User = Depends(require_roles(*HEALTH_NOTE_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    """체크인된 세션을 완료하고 건강 기록(자유 텍스트 또는 설문 응답)을 남긴다."""
    s = await _get_session(db, session_id, current_user)
    try:
        check_transition(s.status, "completed")
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))

    notes = req.health_notes
    if req.questionnaire_id is not None:
        questionnaire = await get_in_centre(
            db, Questionnaire, req.questionnaire_id, current_user.centre_id, "Questionnaire"
        )
        try:
            answers = validate_answers(questionnaire.questions, req.answers or {})
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        notes = answers_to_notes(questionnaire.questions, answers)

    await _complete(db, s, notes)
    await db.commit()
    await db.refresh(s)
    logger.info("[sessions] session_id=%s completed", s.id)
    await publish_change("sessions", "update", s.id, s.centre_id, status="completed")
    return s
