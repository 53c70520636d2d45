import logging
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from therasuite.api.deps import get_in_centre
from therasuite.db import get_db
from therasuite.kafka import publish_change
from therasuite.models import Patient, TreatmentPlan, User
from therasuite.schemas import TreatmentEntry, TreatmentPlanCreate, TreatmentPlanPublic, TreatmentPlanUpdate
from therasuite.services.auth_service import get_current_user, require_roles

logger = logging.getLogger(__name__)

router = APIRouter(tags=["treatment-plans"])

clinical = require_roles("admin", "therapist")


async def _deactivate_others(db: AsyncSession, plan: TreatmentPlan):
    # 환자당 활성 계획은 하나
    await db.execute(
        update(TreatmentPlan)
        .where(TreatmentPlan.patient_id == plan.patient_id, TreatmentPlan.id != plan.id)
        .values(is_active=False)
    )

@router.get("/patients/{patient_id}/treatment-plans", response_model=List[TreatmentPlanPublic])
async def list_plans(patient_id: int, current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    await get_in_centre(db, Patient, patient_id, current_user.centre_id, "Patient")
    q = (
        select(TreatmentPlan)
        .where(TreatmentPlan.patient_id == patient_id)
        .order_by(TreatmentPlan.created_at.desc(), TreatmentPlan.id.desc())
    )
    return (await db.execute(q)).scalars().all()

@router.post("/patients/{patient_id}/treatment-plans", response_model=TreatmentPlanPublic, status_code=201)
async def create_plan(
    patient_id: int,
    req: TreatmentPlanCreate,
    current_user: User = Depends(clinical),
    db: AsyncSession = Depends(get_db),
):
    patient = await get_in_centre(db, Patient, patient_id, current_user.centre_id, "Patient")
    plan = TreatmentPlan(centre_id=patient.centre_id, patient_id=patient.id, treatments=[], **req.model_dump())
    db.add(plan)
    await db.flush()
    if plan.is_active:
        await _deactivate_others(db, plan)
    await db.commit()
    await db.refresh(plan)
    logger.info("[plans] created plan_id=%s for patient_id=%s", plan.id, patient.id)
    await publish_change("treatment_plans", "create", plan.id, plan.centre_id)
    return plan

@router.put("/treatment-plans/{plan_id}", response_model=TreatmentPlanPublic)
async def update_plan(
    plan_id: int,
    req: TreatmentPlanUpdate,
    current_user: User = Depends(clinical),
    db: AsyncSession = Depends(get_db),
):
    plan = await get_in_centre(db, TreatmentPlan, plan_id, current_user.centre_id, "Treatment plan")
    data = req.model_dump(exclude_unset=True)
    if data.get("name"):
        plan.name = data["name"]
    for key in ("history", "examination"):
        if key in data:
            setattr(plan, key, data[key])
    await db.commit()
    await db.refresh(plan)
    await publish_change("treatment_plans", "update", plan.id, plan.centre_id)
    return plan

@router.post("/treatment-plans/{plan_id}/entries", response_model=TreatmentPlanPublic)
async def add_entry(
    plan_id: int,
    req: TreatmentEntry,
    current_user: User = Depends(clinical),
    db: AsyncSession = Depends(get_db),
):
    plan = await get_in_centre(db, TreatmentPlan, plan_id, current_user.centre_id, "Treatment plan")
    entry = {"date": req.date.isoformat(), "treatments": req.treatments, "charges": str(req.charges)}
    # JSON 컬럼은 새 리스트를 대입해야 변경이 감지된다
    plan.treatments = [*(plan.treatments or []), entry]
    await db.commit()
    await db.refresh(plan)
    await publish_change("treatment_plans", "update", plan.id, plan.centre_id)
    return plan

@router.post("/treatment-plans/{plan_id}/activate", response_model=TreatmentPlanPublic)
async def activate_plan(plan_id: int, current_user: User = Depends(clinical), db: AsyncSession = Depends(get_db)):
    plan = await get_in_centre(db, TreatmentPlan, plan_id, current_user.centre_id, "Treatment plan")
    plan.is_active = True
    await _deactivate_others(db, plan)
    await db.commit()
    await db.refresh(plan)
    await publish_change("treatment_plans", "update", plan.id, plan.centre_id)
    return plan
