import logging
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from therasuite.api.deps import get_in_centre
from therasuite.db import get_db
from therasuite.kafka import publish_change
from therasuite.models import Questionnaire, User
from therasuite.schemas import QuestionnaireCreate, QuestionnaireKind, QuestionnairePublic, QuestionnaireUpdate
from therasuite.services.auth_service import get_current_user, require_roles
from therasuite.services.questionnaires import assign_question_ids

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/questionnaires", tags=["questionnaires"])

admin_only = require_roles("admin")


@router.get("", response_model=List[QuestionnairePublic])
async def list_questionnaires(
    kind: Optional[QuestionnaireKind] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    q = select(Questionnaire).where(Questionnaire.centre_id == current_user.centre_id)
    if kind:
        q = q.where(Questionnaire.kind == kind)
    q = q.order_by(Questionnaire.name, Questionnaire.id)
    return (await db.execute(q)).scalars().all()

@router.post("", response_model=QuestionnairePublic, status_code=201)
async def create_questionnaire(
    req: QuestionnaireCreate,
    current_user: User = Depends(admin_only),
    db: AsyncSession = Depends(get_db),
):
    item = Questionnaire(
        centre_id=current_user.centre_id,
        name=req.name,
        kind=req.kind,
        questions=assign_question_ids([q.model_dump() for q in req.questions]),
    )
    db.add(item)
    await db.commit()
    await db.refresh(item)
    logger.info("[questionnaires] created questionnaire_id=%s (%d questions)", item.id, len(item.questions))
    await publish_change("questionnaires", "create", item.id, item.centre_id)
    return item

@router.get("/{questionnaire_id}", response_model=QuestionnairePublic)
async def get_questionnaire(
    questionnaire_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await get_in_centre(db, Questionnaire, questionnaire_id, current_user.centre_id, "Questionnaire")

@router.put("/{questionnaire_id}", response_model=QuestionnairePublic)
async def update_questionnaire(
    questionnaire_id: int,
    req: QuestionnaireUpdate,
    current_user: User = Depends(admin_only),
    db: AsyncSession = Depends(get_db),
):
    item = await get_in_centre(db, Questionnaire, questionnaire_id, current_user.centre_id, "Questionnaire")
    if req.name:
        item.name = req.name
    if req.kind:
        item.kind = req.kind
    if req.questions is not None:
        item.questions = assign_question_ids([q.model_dump() for q in req.questions])
    await db.commit()
    await db.refresh(item)
    await publish_change("questionnaires", "update", item.id, item.centre_id)
    return item

@router.delete("/{questionnaire_id}", status_code=204)
async def delete_questionnaire(
    questionnaire_id: int,
    current_user: User = Depends(admin_only),
    db: AsyncSession = Depends(get_db),
):
    item = await get_in_centre(db, Questionnaire, questionnaire_id, current_user.centre_id, "Questionnaire")
    await db.delete(item)
    await db.commit()
    await publish_change("questionnaires", "delete", questionnaire_id, current_user.centre_id)
