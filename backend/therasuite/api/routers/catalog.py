from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from therasuite.api.deps import apply_updates, get_in_centre
from therasuite.db import get_db
from therasuite.kafka import publish_change
from therasuite.models import ExaminationDef, TreatmentDef, User
from therasuite.schemas import (
    ExaminationDefCreate, ExaminationDefPublic, ExaminationDefUpdate,
    TreatmentDefCreate, TreatmentDefPublic, TreatmentDefUpdate,
)
from therasuite.services.auth_service import get_current_user, require_roles
from therasuite.services.questionnaires import assign_question_ids

router = APIRouter(prefix="/catalog", tags=["catalog"])

admin_only = require_roles("admin")


# --- 치료 항목 ---
@router.get("/treatments", response_model=List[TreatmentDefPublic])
async def list_treatments(current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    q = select(TreatmentDef).where(TreatmentDef.centre_id == current_user.centre_id).order_by(TreatmentDef.name)
    return (await db.execute(q)).scalars().all()

@router.post("/treatments", response_model=TreatmentDefPublic, status_code=201)
async def create_treatment(
    req: TreatmentDefCreate,
    current_user: User = Depends(admin_only),
    db: AsyncSession = Depends(get_db),
):
    item = TreatmentDef(centre_id=current_user.centre_id, **req.model_dump())
    db.add(item)
    await db.commit()
    await db.refresh(item)
    await publish_change("treatment_defs", "create", item.id, item.centre_id)
    return item

@router.get("/treatments/{item_id}", response_model=TreatmentDefPublic)
async def get_treatment(item_id: int, current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await get_in_centre(db, TreatmentDef, item_id, current_user.centre_id, "Treatment")

@router.put("/treatments/{item_id}", response_model=TreatmentDefPublic)
async def update_treatment(
    item_id: int,
    req: TreatmentDefUpdate,
    current_user: User = Depends(admin_only),
    db: AsyncSession = Depends(get_db),
):
    item = await get_in_centre(db, TreatmentDef, item_id, current_user.centre_id, "Treatment")
    data = req.model_dump(exclude_unset=True)
    apply_updates(item, {k: v for k, v in data.items() if v is not None or k == "description"})
    await db.commit()
    await db.refresh(item)
    await publish_change("treatment_defs", "update", item.id, item.centre_id)
    return item

@router.delete("/treatments/{item_id}", status_code=204)
async def delete_treatment(item_id: int, current_user: User = Depends(admin_only), db: AsyncSession = Depends(get_db)):
    item = await get_in_centre(db, TreatmentDef, item_id, current_user.centre_id, "Treatment")
    await db.delete(item)
    await db.commit()
    await publish_change("treatment_defs", "delete", item_id, current_user.centre_id)


# --- 검사 항목 ---
@router.get("/examinations", response_model=List[ExaminationDefPublic])
async def list_examinations(current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    q = select(ExaminationDef).where(ExaminationDef.centre_id == current_user.centre_id).order_by(ExaminationDef.name)
    return (await db.execute(q)).scalars().all()

@router.post("/examinations", response_model=ExaminationDefPublic, status_code=201)
async def create_examination(
    req: ExaminationDefCreate,
    current_user: User = Depends(admin_only),
    db: AsyncSession = Depends(get_db),
):
    item = ExaminationDef(
        centre_id=current_user.centre_id,
        name=req.name,
        description=req.description,
        fields=assign_question_ids([f.model_dump() for f in req.fields]),
    )
    db.add(item)
    await db.commit()
    await db.refresh(item)
    await publish_change("examination_defs", "create", item.id, item.centre_id)
    return item

@router.get("/examinations/{item_id}", response_model=ExaminationDefPublic)
async def get_examination(item_id: int, current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await get_in_centre(db, ExaminationDef, item_id, current_user.centre_id, "Examination")

@router.put("/examinations/{item_id}", response_model=ExaminationDefPublic)
async def update_examination(
    item_id: int,
    req: ExaminationDefUpdate,
    current_user: User = Depends(admin_only),
    db: AsyncSession = Depends(get_db),
):
    item = await get_in_centre(db, ExaminationDef, item_id, current_user.centre_id, "Examination")
    data = req.model_dump(exclude_unset=True)
    if data.get("name"):
        item.name = data["name"]
    if "description" in data:
        item.description = data["description"]
    if req.fields is not None:
        item.fields = assign_question_ids([f.model_dump() for f in req.fields])
    await db.commit()
    await db.refresh(item)
    await publish_change("examination_defs", "update", item.id, item.centre_id)
    return item

@router.delete("/examinations/{item_id}", status_code=204)
async def delete_examination(item_id: int, current_user: User = Depends(admin_only), db: AsyncSession = Depends(get_db)):
    item = await get_in_centre(db, ExaminationDef, item_id, current_user.centre_id, "Examination")
    await db.delete(item)
    await db.commit()
    await publish_change("examination_defs", "delete", item_id, current_user.centre_id)
