from datetime import date
from decimal import Decimal

from conftest import create_patient, create_staff, login, register_admin
from test_packages import create_package, sell


def create_treatment(client, headers, name, price):
    resp = client.post("/catalog/treatments", headers=headers, json={"name": name, "price": price})
    assert resp.status_code == 201, resp.text
    return resp.json()

def issue(client, headers, patient_id, items, **kw):
    return client.post("/bills", headers=headers, json={"patient_id": patient_id, "items": items, **kw})


def test_bill_totals_and_numbering(client, admin):
    ultrasound = create_treatment(client, admin, "Ultrasound Therapy", "50.00")
    manual = create_treatment(client, admin, "Manual Therapy", "70.00")
    patient = create_patient(client, admin)

    resp = issue(client, admin, patient["id"], [
        {"treatment_def_id": ultrasound["id"]},
        {"treatment_def_id": manual["id"], "custom_price": "65.50"},
    ], number_of_sessions=2)
    assert resp.status_code == 201, resp.text
    bill = resp.json()
    year = date.today().year
    assert bill["bill_number"] == f"INV-{year}-0001"
    assert [t["name"] for t in bill["treatments"]] == ["Ultrasound Therapy", "Manual Therapy"]
    assert Decimal(bill["treatments"][1]["price"]) == Decimal("65.50")
    assert Decimal(bill["subtotal"]) == Decimal("231.00")
    assert bill["discount"] is None
    assert Decimal(bill["grand_total"]) == Decimal("231.00")
    assert bill["status"] == "unpaid"
    assert bill["currency"] == "INR"

    second = issue(client, admin, patient["id"], [{"treatment_def_id": ultrasound["id"]}]).json()
    assert second["bill_number"] == f"INV-{year}-0002"

def test_bill_numbers_are_per_centre(client, admin):
    t = create_treatment(client, admin, "Ultrasound Therapy", "50")
    issue(client, admin, create_patient(client, admin)["id"], [{"treatment_def_id": t["id"]}])

    other = register_admin(client, email="owner@physiohub.com", centre_name="Physio Hub")
    t2 = create_treatment(client, other, "Dry Needling", "40")
    bill = issue(client, other, create_patient(client, other)["id"], [{"treatment_def_id": t2["id"]}]).json()
    assert bill["bill_number"] == f"INV-{date.today().year}-0001"

def test_explicit_package_discount(client, admin):
    t = create_treatment(client, admin, "Manual Therapy", "70.00")
    package = create_package(client, admin, name="10-Session Pack", sessions=10, discount_percentage="15")
    patient = create_patient(client, admin)

    bill = issue(
        client, admin, patient["id"], [{"treatment_def_id": t["id"]}],
        number_of_sessions=10, package_id=package["id"],
    ).json()
    assert Decimal(bill["subtotal"]) == Decimal("700.00")
    assert bill["discount"]["package_name"] == "10-Session Pack"
    assert Decimal(bill["discount"]["percentage"]) == Decimal("15")
    assert Decimal(bill["discount"]["amount"]) == Decimal("105.00")
    assert Decimal(bill["grand_total"]) == Decimal("595.00")

def test_discount_from_active_package(client, admin, therapists):
    t = create_treatment(client, admin, "Manual Therapy", "70.00")
    package = create_package(client, admin)
    patient = create_patient(client, admin)

    resp = issue(client, admin, patient["id"], [{"treatment_def_id": t["id"]}], apply_package_discount=True)
    assert resp.status_code == 400

    sell(client, admin, package["id"], patient["id"])
    bill = issue(
        client, admin, patient["id"], [{"treatment_def_id": t["id"]}],
        number_of_sessions=5, apply_package_discount=True,
    ).json()
    assert Decimal(bill["discount"]["amount"]) == Decimal("35.00")
    assert Decimal(bill["grand_total"]) == Decimal("315.00")

def test_bill_validation(client, admin):
    t = create_treatment(client, admin, "Manual Therapy", "70")
    patient = create_patient(client, admin)
    assert issue(client, admin, patient["id"], []).status_code == 422
    assert issue(client, admin, patient["id"], [{"treatment_def_id": t["id"]}], number_of_sessions=0).status_code == 422
    assert issue(client, admin, patient["id"], [{"treatment_def_id": 999}]).status_code == 404

def test_update_recomputes_totals_and_keeps_discount(client, admin):
    t = create_treatment(client, admin, "Manual Therapy", "70.00")
    package = create_package(client, admin, discount_percentage="10")
    patient = create_patient(client, admin)
    bill = issue(client, admin, patient["id"], [{"treatment_def_id": t["id"]}], package_id=package["id"]).json()

    resp = client.put(f"/bills/{bill['id']}", headers=admin, json={"number_of_sessions": 3})
    assert resp.status_code == 200
    updated = resp.json()
    assert updated["bill_number"] == bill["bill_number"]
    assert Decimal(updated["subtotal"]) == Decimal("210.00")
    assert Decimal(updated["discount"]["amount"]) == Decimal("21.00")
    assert Decimal(updated["grand_total"]) == Decimal("189.00")

def test_mark_paid_and_filter(client, admin):
    t = create_treatment(client, admin, "Manual Therapy", "70")
    patient = create_patient(client, admin)
    first = issue(client, admin, patient["id"], [{"treatment_def_id": t["id"]}]).json()
    second = issue(client, admin, patient["id"], [{"treatment_def_id": t["id"]}]).json()

    resp = client.post(f"/bills/{first['id']}/status", headers=admin, json={"status": "paid"})
    assert resp.json()["status"] == "paid"

    unpaid = client.get("/bills", params={"status": "unpaid"}, headers=admin).json()
    assert [b["id"] for b in unpaid] == [second["id"]]
    # 최신순
    assert [b["id"] for b in client.get("/bills", headers=admin).json()] == [second["id"], first["id"]]

def test_bill_linked_to_session(client, admin, therapists):
    t = create_treatment(client, admin, "Manual Therapy", "70")
    package = create_package(client, admin, sessions=1)
    patient = create_patient(client, admin)
    session = sell(client, admin, package["id"], patient["id"]).json()["sessions"][0]

    bill = issue(client, admin, patient["id"], [{"treatment_def_id": t["id"]}], session_id=session["id"]).json()
    assert bill["session_id"] == session["id"]
    assert bill["session_date"] == session["date"]

    stranger = create_patient(client, admin, "Mary Jones")
    resp = issue(client, admin, stranger["id"], [{"treatment_def_id": t["id"]}], session_id=session["id"])
    assert resp.status_code == 400

def test_therapists_cannot_bill(client, admin):
    create_staff(client, admin, "therapist", "sarah@connectphysio.com")
    sarah = login(client, "sarah@connectphysio.com")
    assert client.get("/bills", headers=sarah).status_code == 403

def test_update_keeps_stored_items_after_treatment_removed(client, admin):
    t = create_treatment(client, admin, "Massage", "40.00")
    patient = create_patient(client, admin)
    bill = issue(client, admin, patient["id"], [{"treatment_def_id": t["id"]}]).json()

    client.put(f"/catalog/treatments/{t['id']}", headers=admin, json={"name": "Deep Tissue Massage"})
    assert client.delete(f"/catalog/treatments/{t['id']}", headers=admin).status_code == 204

    resp = client.put(f"/bills/{bill['id']}", headers=admin, json={"number_of_sessions": 2})
    assert resp.status_code == 200, resp.text
    updated = resp.json()
    assert [i["name"] for i in updated["treatments"]] == ["Massage"]
    assert Decimal(updated["subtotal"]) == Decimal("80.00")
