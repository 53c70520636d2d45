import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy import select, or_, func
from sqlalchemy.ext.asyncio import AsyncSession

from therasuite.api.deps import apply_updates, get_in_centre
from therasuite.db import get_db
from therasuite.kafka import publish_change
from therasuite.models import Patient, Session, TreatmentPlan, User
from therasuite.schemas import (
    PackageSalePublic, PatientCreate, PatientDetail, PatientPublic, PatientUpdate, SessionPublic, TreatmentPlanPublic,
)
from therasuite.services.auth_service import get_current_user, require_roles
from therasuite.services.scheduling import get_active_sale, sale_view

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/patients", tags=["patients"])

front_desk = require_roles("admin", "receptionist")


@router.get("", response_model=List[PatientPublic])
async def list_patients(
    search: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    q = select(Patient).where(Patient.centre_id == current_user.centre_id)
    if search and search.strip():
        term = f"%{search.strip().lower()}%"
        q = q.where(or_(
            func.lower(Patient.name).like(term),
            func.lower(Patient.email).like(term),
            func.lower(Patient.phone).like(term),
        ))
    q = q.order_by(Patient.name, Patient.id)
    return (await db.execute(q)).scalars().all()

@router.post("", response_model=PatientPublic, status_code=201)
async def create_patient(
    req: PatientCreate,
    current_user: User = Depends(front_desk),
    db: AsyncSession = Depends(get_db),
):
    patient = Patient(centre_id=current_user.centre_id, **req.model_dump())
    db.add(patient)
    await db.commit()
    await db.refresh(patient)
    logger.info("[patients] created patient_id=%s in centre_id=%s", patient.id, patient.centre_id)
    await publish_change("patients", "create", patient.id, patient.centre_id)
    return patient

@router.get("/{patient_id}", response_model=PatientDetail)
async def get_patient(
    patient_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """환자 상세: 활성 패키지, 세션 목록(날짜/시간순), 치료 계획 포함"""
    patient = await get_in_centre(db, Patient, patient_id, current_user.centre_id, "Patient")

    sale = await get_active_sale(db, patient, date.today())
    sessions = (await db.execute(
        select(Session)
        .where(Session.patient_id == patient.id, Session.centre_id == patient.centre_id)
        .order_by(Session.date, Session.start_time, Session.id)
    )).scalars().all()
    plans = (await db.execute(
        select(TreatmentPlan)
        .where(TreatmentPlan.patient_id == patient.id)
        .order_by(TreatmentPlan.created_at.desc(), TreatmentPlan.id.desc())
    )).scalars().all()

    detail = PatientDetail.model_validate(patient)
    detail.active_package_sale = PackageSalePublic(**sale_view(sale)) if sale else None
    detail.sessions = [SessionPublic.model_validate(s) for s in sessions]
    detail.treatment_plans = [TreatmentPlanPublic.model_validate(p) for p in plans]
    return detail

@router.put("/{patient_id}", response_model=PatientPublic)
async def update_patient(
    patient_id: int,
    req: PatientUpdate,
    current_user: User = Depends(front_desk),
    db: AsyncSession = Depends(get_db),
):
    patient = await get_in_centre(db, Patient, patient_id, current_user.centre_id, "Patient")
    data = req.model_dump(exclude_unset=True)
    if data.get("name") is None:
        data.pop("name", None)
    apply_updates(patient, data)
    await db.commit()
    await db.refresh(patient)
    await publish_change("patients", "update", patient.id, patient.centre_id)
    return patient

@router.delete("/{patient_id}", status_code=204)
async def delete_patient(
    patient_id: int,
    current_user: User = Depends(front_desk),
    db: AsyncSession = Depends(get_db),
):
    patient = await get_in_centre(db, Patient, patient_id, current_user.centre_id, "Patient")
    await db.delete(patient)
    await db.commit()
    logger.info("[patients] deleted patient_id=%s", patient_id)
    await publish_change("patients", "delete", patient_id, current_user.centre_id)
