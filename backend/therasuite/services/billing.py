"""
청구서 금액 계산과 청구서 번호 발급.

per-session 소계 = 선택한 치료 단가 합
subtotal        = per-session 소계 x 세션 수
discount        = subtotal x 할인율 / 100 (센트 단위 반올림)
grand_total     = subtotal - discount
"""
from __future__ import annotations
import logging
import re
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from therasuite.models import Bill

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
BILL_NUMBER_RE = re.compile(r"^INV-(\d{4})-(\d+)$")


@dataclass
class LineItem:
    treatment_def_id: Optional[int]
    name: str
    price: Decimal

    def as_dict(self) -> dict:
        return {"treatment_def_id": self.treatment_def_id, "name": self.name, "price": str(self.price)}


@dataclass
class BillTotals:
    per_session: Decimal
    subtotal: Decimal
    discount_percentage: Decimal
    discount_amount: Decimal
    grand_total: Decimal


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)

def compute_bill(
    items: Sequence[LineItem],
    number_of_sessions: int = 1,
    discount_percentage: Optional[Decimal] = None,
) -> BillTotals:
    if not items:
        raise ValueError("at least one treatment is required")
    if number_of_sessions < 1:
        raise ValueError("number_of_sessions must be at least 1")
    pct = Decimal(str(discount_percentage or 0))
    if pct < 0 or pct > 100:
        raise ValueError("discount percentage must be between 0 and 100")
    for item in items:
        if item.price < 0:
            raise ValueError(f"price for '{item.name}' cannot be negative")

    per_session = to_money(sum((Decimal(str(i.price)) for i in items), Decimal("0")))
    subtotal = to_money(per_session * number_of_sessions)
    discount = to_money(subtotal * pct / 100)
    return BillTotals(
        per_session=per_session,
        subtotal=subtotal,
        discount_percentage=pct,
        discount_amount=discount,
        grand_total=subtotal - discount,
    )

def format_bill_number(year: int, seq: int) -> str:
    return f"INV-{year}-{seq:04d}"

def parse_bill_number(bill_number: str) -> Optional[tuple[int, int]]:
    m = BILL_NUMBER_RE.match(bill_number or "")
    if not m:
        return None
    return int(m.group(1)), int(m.group(2))

async def next_bill_number(db: AsyncSession, centre_id: int, year: int) -> str:
    """센터/연도별 최대 번호 + 1"""
    q = select(Bill.bill_number).where(
        Bill.centre_id == centre_id,
        Bill.bill_number.like(f"INV-{year}-%"),
    )
    numbers = (await db.execute(q)).scalars().all()
    seqs = [p[1] for p in (parse_bill_number(n) for n in numbers) if p and p[0] == year]
    return format_bill_number(year, max(seqs, default=0) + 1)

def discount_payload(package_name: Optional[str], totals: BillTotals) -> Optional[dict]:
    if not package_name or totals.discount_percentage == 0:
        return None
    return {
        "package_name": package_name,
        "percentage": str(totals.discount_percentage),
        "amount": str(totals.discount_amount),
    }

def items_payload(items: List[LineItem]) -> List[dict]:
    return [i.as_dict() for i in items]
