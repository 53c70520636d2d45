from decimal import Decimal

import pytest

from therasuite.services.billing import (
    BillTotals, LineItem, compute_bill, discount_payload, format_bill_number, parse_bill_number,
)


def items(*prices):
    return [LineItem(treatment_def_id=i, name=f"T{i}", price=Decimal(p)) for i, p in enumerate(prices, 1)]


def test_single_session_without_discount():
    totals = compute_bill(items("50.00", "70.00"))
    assert totals.per_session == Decimal("120.00")
    assert totals.subtotal == Decimal("120.00")
    assert totals.discount_amount == Decimal("0.00")
    assert totals.grand_total == Decimal("120.00")

def test_multiple_sessions_with_package_discount():
    totals = compute_bill(items("50", "70"), number_of_sessions=10, discount_percentage=Decimal("15"))
    assert totals.subtotal == Decimal("1200.00")
    assert totals.discount_amount == Decimal("180.00")
    assert totals.grand_total == Decimal("1020.00")

def test_discount_rounds_half_up_to_cents():
    # 33.33 * 12.5% = 4.16625 -> 4.17
    totals = compute_bill(items("33.33"), discount_percentage=Decimal("12.5"))
    assert totals.discount_amount == Decimal("4.17")
    assert totals.grand_total == Decimal("29.16")

def test_compute_bill_rejects_bad_input():
    with pytest.raises(ValueError):
        compute_bill([])
    with pytest.raises(ValueError):
        compute_bill(items("10"), number_of_sessions=0)
    with pytest.raises(ValueError):
        compute_bill(items("10"), discount_percentage=Decimal("101"))
    with pytest.raises(ValueError):
        compute_bill(items("-1"))

def test_bill_number_format():
    assert format_bill_number(2024, 1) == "INV-2024-0001"
    assert format_bill_number(2024, 12345) == "INV-2024-12345"
    assert parse_bill_number("INV-2024-0042") == (2024, 42)
    assert parse_bill_number("BILL-1") is None

def test_discount_payload():
    totals = BillTotals(
        per_session=Decimal("100.00"), subtotal=Decimal("500.00"),
        discount_percentage=Decimal("10"), discount_amount=Decimal("50.00"),
        grand_total=Decimal("450.00"),
    )
    assert discount_payload("5-Session Pack", totals) == {
        "package_name": "5-Session Pack", "percentage": "10", "amount": "50.00",
    }
    assert discount_payload(None, totals) is None
