import logging
from datetime import date
from decimal import Decimal
from typing import List, Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from therasuite.api.deps import get_in_centre
from therasuite.db import get_db
from therasuite.kafka import publish_change
from therasuite.models import Bill, PackageDef, Patient, Session, TreatmentDef, User
from therasuite.schemas import BillCreate, BillItemIn, BillPublic, BillStatusChange, BillUpdate
from therasuite.services.auth_service import require_roles
from therasuite.services.billing import (
    LineItem, compute_bill, discount_payload, items_payload, next_bill_number, to_money,
)
from therasuite.services.scheduling import get_active_sale

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bills", tags=["bills"])

front_desk = require_roles("admin", "receptionist")

# 번호 충돌 시 재시도 횟수
BILL_NUMBER_RETRIES = 3


async def _line_items(db: AsyncSession, centre_id: int, items: List[BillItemIn]) -> List[LineItem]:
    out = []
    for item in items:
        tdef = await get_in_centre(db, TreatmentDef, item.treatment_def_id, centre_id, "Treatment")
        price = item.custom_price if item.custom_price is not None else tdef.price
        out.append(LineItem(treatment_def_id=tdef.id, name=tdef.name, price=to_money(price)))
    return out

async def _discount_source(
    db: AsyncSession,
    centre_id: int,
    patient: Patient,
    package_id: Optional[int],
    apply_package_discount: bool,
) -> Tuple[Optional[str], Decimal]:
    """할인 출처: 지정한 패키지, 또는 환자의 활성 패키지"""
    if package_id is not None:
        package = await get_in_centre(db, PackageDef, package_id, centre_id, "Package")
        return package.name, Decimal(str(package.discount_percentage))
    if apply_package_discount:
        sale = await get_active_sale(db, patient)
        if sale is None or sale.package_id is None:
            raise HTTPException(status_code=400, detail="Patient has no active package to discount from")
        package = await db.get(PackageDef, sale.package_id)
        if package is None:
            raise HTTPException(status_code=400, detail="Patient has no active package to discount from")
        return package.name, Decimal(str(package.discount_percentage))
    return None, Decimal("0")

def _price(bill: Bill, line_items: List[LineItem], number_of_sessions: int, package_name: Optional[str], pct: Decimal):
    try:
        totals = compute_bill(line_items, number_of_sessions, pct)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    bill.treatments = items_payload(line_items)
    bill.number_of_sessions = number_of_sessions
    bill.subtotal = totals.subtotal
    bill.discount = discount_payload(package_name, totals)
    bill.grand_total = totals.grand_total


@router.get("", response_model=List[BillPublic])
async def list_bills(
    status: Optional[str] = None,
    patient_id: Optional[int] = None,
    current_user: User = Depends(front_desk),
    db: AsyncSession = Depends(get_db),
):
    q = select(Bill).where(Bill.centre_id == current_user.centre_id)
    if status:
        q = q.where(Bill.status == status)
    if patient_id is not None:
        q = q.where(Bill.patient_id == patient_id)
    q = q.order_by(Bill.created_at.desc(), Bill.id.desc())
    return (await db.execute(q)).scalars().all()

@router.post("", response_model=BillPublic, status_code=201)
async def create_bill(
    req: BillCreate,
    current_user: User = Depends(front_desk),
    db: AsyncSession = Depends(get_db),
):
    """
    청구서 발행.
    금액은 서버에서 다시 계산하고 번호는 센터/연도별로 발급한다.
    같은 번호가 동시에 발급되면 다음 번호로 재시도.
    """
    centre_id = current_user.centre_id
    patient = await get_in_centre(db, Patient, req.patient_id, centre_id, "Patient")
    session_date = None
    if req.session_id is not None:
        s = await get_in_centre(db, Session, req.session_id, centre_id, "Session")
        if s.patient_id != patient.id:
            raise HTTPException(status_code=400, detail="Session belongs to another patient")
        session_date = s.date

    line_items = await _line_items(db, centre_id, req.items)

    year = date.today().year
    for attempt in range(BILL_NUMBER_RETRIES):
        bill = Bill(
            centre_id=centre_id,
            bill_number=await next_bill_number(db, centre_id, year),
            patient_id=patient.id,
            session_id=req.session_id,
            session_date=session_date,
            status=req.status,
        )
        package_name, pct = await _discount_source(
            db, centre_id, patient, req.package_id, req.apply_package_discount
        )
        _price(bill, line_items, req.number_of_sessions, package_name, pct)
        db.add(bill)
        try:
            await db.commit()
            break
        except IntegrityError:
            await db.rollback()
            logger.warning("[bills] bill number %s taken, retrying (%d)", bill.bill_number, attempt + 1)
            # rollback 후 만료된 객체 다시 로드
            patient = await get_in_centre(db, Patient, req.patient_id, centre_id, "Patient")
    else:
        raise HTTPException(status_code=409, detail="Could not allocate a bill number, please retry")

    await db.refresh(bill)
    logger.info("[bills] issued %s for patient_id=%s total=%s", bill.bill_number, bill.patient_id, bill.grand_total)
    await publish_change("bills", "create", bill.id, bill.centre_id)
    return bill

@router.get("/{bill_id}", response_model=BillPublic)
async def get_bill(bill_id: int, current_user: User = Depends(front_desk), db: AsyncSession = Depends(get_db)):
    return await get_in_centre(db, Bill, bill_id, current_user.centre_id, "Bill")

@router.put("/{bill_id}", response_model=BillPublic)
async def update_bill(
    bill_id: int,
    req: BillUpdate,
    current_user: User = Depends(front_desk),
    db: AsyncSession = Depends(get_db),
):
    bill = await get_in_centre(db, Bill, bill_id, current_user.centre_id, "Bill")
    patient = await get_in_centre(db, Patient, bill.patient_id, current_user.centre_id, "Patient")
    data = req.model_dump(exclude_unset=True)

    if "session_id" in data:
        if req.session_id is None:
            bill.session_id, bill.session_date = None, None
        else:
            s = await get_in_centre(db, Session, req.session_id, current_user.centre_id, "Session")
            if s.patient_id != patient.id:
                raise HTTPException(status_code=400, detail="Session belongs to another patient")
            bill.session_id, bill.session_date = s.id, s.date

    pricing_keys = {"items", "number_of_sessions", "package_id", "apply_package_discount"}
    if pricing_keys & set(data):
        if req.items is not None:
            line_items = await _line_items(db, current_user.centre_id, req.items)
        else:
            # 저장된 항목 그대로 재사용 (카탈로그에서 삭제됐어도 유지)
            line_items = [
                LineItem(treatment_def_id=t.get("treatment_def_id"), name=t["name"], price=Decimal(t["price"]))
                for t in bill.treatments
            ]
        if "package_id" in data or "apply_package_discount" in data:
            package_name, pct = await _discount_source(
                db, current_user.centre_id, patient, req.package_id, bool(req.apply_package_discount)
            )
        elif bill.discount:
            # 기존 할인 유지
            package_name, pct = bill.discount["package_name"], Decimal(bill.discount["percentage"])
        else:
            package_name, pct = None, Decimal("0")
        _price(bill, line_items, req.number_of_sessions or bill.number_of_sessions, package_name, pct)
    if req.status:
        bill.status = req.status

    await db.commit()
    await db.refresh(bill)
    await publish_change("bills", "update", bill.id, bill.centre_id)
    return bill

@router.post("/{bill_id}/status", response_model=BillPublic)
async def change_bill_status(
    bill_id: int,
    req: BillStatusChange,
    current_user: User = Depends(front_desk),
    db: AsyncSession = Depends(get_db),
):
    bill = await get_in_centre(db, Bill, bill_id, current_user.centre_id, "Bill")
    bill.status = req.status
    await db.commit()
    await db.refresh(bill)
    logger.info("[bills] %s marked %s", bill.bill_number, bill.status)
    await publish_change("bills", "update", bill.id, bill.centre_id, status=bill.status)
    return bill

@router.delete("/{bill_id}", status_code=204)
async def delete_bill(bill_id: int, current_user: User = Depends(front_desk), db: AsyncSession = Depends(get_db)):
    bill = await get_in_centre(db, Bill, bill_id, current_user.centre_id, "Bill")
    await db.delete(bill)
    await db.commit()
    await publish_change("bills", "delete", bill_id, current_user.centre_id)
