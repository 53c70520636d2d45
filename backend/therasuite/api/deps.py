from typing import Type, TypeVar

from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from therasuite.db import Base

M = TypeVar("M", bound=Base)


async def get_in_centre(db: AsyncSession, model: Type[M], record_id: int, centre_id: int, label: str) -> M:
    """
    id 로 레코드를 찾되 호출자 센터 소속이 아니면 없는 것으로 취급 (404).
    """
    obj = await db.get(model, record_id)
    if obj is None or obj.centre_id != centre_id:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return obj

def apply_updates(obj, data: dict):
    for key, value in data.items():
        setattr(obj, key, value)
    return obj
