from datetime import date, timedelta
from decimal import Decimal

from conftest import create_patient, create_staff, login
from test_bills import create_treatment, issue


def book_today(client, headers, patient_id, therapist_id, start, end):
    resp = client.post("/sessions", headers=headers, json={
        "patient_id": patient_id, "therapist_id": therapist_id,
        "date": date.today().isoformat(), "start_time": start, "end_time": end,
    })
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_admin_dashboard(client, admin, therapists):
    john = create_patient(client, admin)
    create_patient(client, admin, "Mary Jones")
    t1 = therapists[0]["therapist_id"]
    book_today(client, admin, john["id"], t1, "09:00", "10:00")
    # 30일 이전 세션은 활성 환자 집계에서 제외
    client.post("/sessions", headers=admin, json={
        "patient_id": john["id"], "therapist_id": t1,
        "date": (date.today() - timedelta(days=45)).isoformat(), "start_time": "09:00", "end_time": "10:00",
    })
    treatment = create_treatment(client, admin, "Manual Therapy", "70.00")
    issue(client, admin, john["id"], [{"treatment_def_id": treatment["id"]}])
    paid = issue(client, admin, john["id"], [{"treatment_def_id": treatment["id"]}]).json()
    client.post(f"/bills/{paid['id']}/status", headers=admin, json={"status": "paid"})

    body = client.get("/dashboard", headers=admin).json()
    assert body["role"] == "admin"
    stats = body["admin"]
    assert stats["total_patients"] == 2
    assert stats["active_patients"] == 1
    assert stats["total_sessions"] == 2
    assert stats["package_sales"] == 0
    assert Decimal(stats["unpaid_total"]) == Decimal("70.00")
    assert body["reception"] is None

def test_reception_dashboard(client, admin, therapists):
    create_staff(client, admin, "receptionist", "emma@connectphysio.com")
    emma = login(client, "emma@connectphysio.com")
    patient = create_patient(client, admin)
    t1 = therapists[0]["therapist_id"]
    first = book_today(client, admin, patient["id"], t1, "09:00", "10:00")
    book_today(client, admin, patient["id"], t1, "10:00", "11:00")
    client.post(f"/sessions/{first['id']}/status", headers=admin, json={"status": "checked-in"})
    client.post(f"/sessions/{first['id']}/status", headers=admin, json={"status": "completed"})

    stats = client.get("/dashboard", headers=emma).json()["reception"]
    assert stats == {"todays_sessions": 2, "scheduled_today": 1, "completed_today": 1}

def test_therapist_dashboard_and_today_list(client, admin, therapists):
    patient = create_patient(client, admin)
    other = create_patient(client, admin, "Mary Jones")
    t1, t2 = therapists[0]["therapist_id"], therapists[1]["therapist_id"]
    late = book_today(client, admin, patient["id"], t1, "15:00", "16:00")
    early = book_today(client, admin, other["id"], t1, "08:00", "09:00")
    book_today(client, admin, patient["id"], t2, "12:00", "13:00")
    client.post(f"/sessions/{early['id']}/status", headers=admin, json={"status": "checked-in"})
    client.post(f"/sessions/{early['id']}/status", headers=admin, json={"status": "completed"})

    sarah = login(client, "sarah@connectphysio.com")
    stats = client.get("/dashboard", headers=sarah).json()["therapist"]
    assert stats["todays_sessions"] == 2
    assert stats["completed_today"] == 1
    assert stats["pending_today"] == 1
    assert stats["my_patients"] == 2

    today = client.get("/dashboard/today", headers=sarah).json()
    assert [s["id"] for s in today] == [late["id"]]

    all_today = client.get("/dashboard/today", headers=admin).json()
    assert [s["start_time"] for s in all_today] == ["12:00:00", "15:00:00"]
