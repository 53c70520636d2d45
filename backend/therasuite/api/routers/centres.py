from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from therasuite.api.deps import apply_updates
from therasuite.db import get_db
from therasuite.kafka import publish_change
from therasuite.models import Centre, User
from therasuite.schemas import CentrePublic, CentreUpdate
from therasuite.services.auth_service import get_current_user, require_roles

router = APIRouter(prefix="/centre", tags=["centre"])


async def _my_centre(db: AsyncSession, user: User) -> Centre:
    centre = await db.get(Centre, user.centre_id)
    if centre is None:
        raise HTTPException(status_code=404, detail="Centre not found")
    return centre

@router.get("", response_model=CentrePublic)
async def get_centre(current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await _my_centre(db, current_user)

@router.put("", response_model=CentrePublic)
async def update_centre(
    req: CentreUpdate,
    current_user: User = Depends(require_roles("admin")),
    db: AsyncSession = Depends(get_db),
):
    centre = await _my_centre(db, current_user)
    apply_updates(centre, req.model_dump(exclude_unset=True, exclude_none=True))
    if centre.closing_time <= centre.opening_time:
        raise HTTPException(status_code=400, detail="closing_time must be after opening_time")
    await db.commit()
    await db.refresh(centre)
    await publish_change("centres", "update", centre.id, centre.id)
    return centre
