import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from therasuite.api.deps import apply_updates, get_in_centre
from therasuite.db import get_db
from therasuite.kafka import publish_change
from therasuite.models import PackageDef, PackageSale, Patient, User
from therasuite.schemas import (
    PackageCreate, PackagePublic, PackageSalePublic, PackageSaleResult, PackageSellRequest,
    PackageUpdate, SessionPublic,
)
from therasuite.services.auth_service import get_current_user, require_roles
from therasuite.services.scheduling import expire_sale, refresh_sale_status, sale_view, sell_package

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/packages", tags=["packages"])

admin_only = require_roles("admin")
front_desk = require_roles("admin", "receptionist")


# --- 판매 ---
@router.get("/sales", response_model=List[PackageSalePublic])
async def list_sales(
    status: Optional[str] = None,
    patient_id: Optional[int] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """판매 목록. 조회 시점 기준으로 상태를 갱신해 저장한다."""
    q = select(PackageSale).where(PackageSale.centre_id == current_user.centre_id)
    if patient_id is not None:
        q = q.where(PackageSale.patient_id == patient_id)
    q = q.order_by(PackageSale.created_at.desc(), PackageSale.id.desc())
    sales = (await db.execute(q)).scalars().all()

    today = date.today()
    for sale in sales:
        refresh_sale_status(sale, today)
    await db.commit()

    return [sale_view(s, today) for s in sales if status is None or s.status == status]

@router.get("/sales/{sale_id}", response_model=PackageSalePublic)
async def get_sale(sale_id: int, current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    sale = await get_in_centre(db, PackageSale, sale_id, current_user.centre_id, "Package sale")
    refresh_sale_status(sale)
    await db.commit()
    return sale_view(sale)

@router.post("/sales/{sale_id}/expire", response_model=PackageSalePublic)
async def expire_package_sale(
    sale_id: int,
    current_user: User = Depends(front_desk),
    db: AsyncSession = Depends(get_db),
):
    sale = await get_in_centre(db, PackageSale, sale_id, current_user.centre_id, "Package sale")
    if sale.status != "active":
        raise HTTPException(status_code=409, detail=f"Package sale is already {sale.status}")
    cancelled = await expire_sale(db, sale)
    await db.commit()
    logger.info("[packages] expired sale_id=%s, cancelled %d sessions", sale.id, cancelled)
    await publish_change("package_sales", "update", sale.id, sale.centre_id, status="expired")
    return sale_view(sale)


# --- 패키지 정의 ---
@router.get("", response_model=List[PackagePublic])
async def list_packages(current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    q = select(PackageDef).where(PackageDef.centre_id == current_user.centre_id).order_by(PackageDef.sessions, PackageDef.id)
    return (await db.execute(q)).scalars().all()

@router.post("", response_model=PackagePublic, status_code=201)
async def create_package(
    req: PackageCreate,
    current_user: User = Depends(admin_only),
    db: AsyncSession = Depends(get_db),
):
    package = PackageDef(centre_id=current_user.centre_id, **req.model_dump())
    db.add(package)
    await db.commit()
    await db.refresh(package)
    await publish_change("packages", "create", package.id, package.centre_id)
    return package

@router.get("/{package_id}", response_model=PackagePublic)
async def get_package(package_id: int, current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await get_in_centre(db, PackageDef, package_id, current_user.centre_id, "Package")

@router.put("/{package_id}", response_model=PackagePublic)
async def update_package(
    package_id: int,
    req: PackageUpdate,
    current_user: User = Depends(admin_only),
    db: AsyncSession = Depends(get_db),
):
    package = await get_in_centre(db, PackageDef, package_id, current_user.centre_id, "Package")
    apply_updates(package, req.model_dump(exclude_unset=True, exclude_none=True))
    await db.commit()
    await db.refresh(package)
    await publish_change("packages", "update", package.id, package.centre_id)
    return package

@router.delete("/{package_id}", status_code=204)
async def delete_package(package_id: int, current_user: User = Depends(admin_only), db: AsyncSession = Depends(get_db)):
    package = await get_in_centre(db, PackageDef, package_id, current_user.centre_id, "Package")
    await db.delete(package)
    await db.commit()
    await publish_change("packages", "delete", package_id, current_user.centre_id)

@router.post("/{package_id}/sell", response_model=PackageSaleResult, status_code=201)
async def sell(
    package_id: int,
    req: PackageSellRequest,
    current_user: User = Depends(front_desk),
    db: AsyncSession = Depends(get_db),
):
    """
    환자에게 패키지를 판매하고 세션을 자동 배정한다.
    판매, 세션 생성, 환자 연결은 한 트랜잭션으로 커밋된다.
    """
    package = await get_in_centre(db, PackageDef, package_id, current_user.centre_id, "Package")
    patient = await get_in_centre(db, Patient, req.patient_id, current_user.centre_id, "Patient")

    sale, sessions = await sell_package(
        db, package, patient,
        start_date=req.start_date,
        start_time=req.start_time,
        dates=req.dates,
        notes=req.notes,
    )
    await db.commit()
    for s in sessions:
        await db.refresh(s)

    await publish_change("package_sales", "create", sale.id, sale.centre_id, patient_id=patient.id)
    for s in sessions:
        await publish_change("sessions", "create", s.id, s.centre_id)
    await publish_change("patients", "update", patient.id, patient.centre_id)

    return PackageSaleResult(
        sale=PackageSalePublic(**sale_view(sale)),
        sessions=[SessionPublic.model_validate(s) for s in sessions],
    )
