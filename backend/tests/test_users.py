from conftest import create_patient, create_staff, register_admin
from test_packages import next_monday


def test_creating_therapist_user_creates_therapist(client, admin):
    user = create_staff(client, admin, "therapist", "sarah@connectphysio.com", "Sarah Jones")
    assert user["therapist_id"] is not None

    therapist = client.get(f"/therapists/{user['therapist_id']}", headers=admin).json()
    assert therapist["name"] == "Sarah Jones"
    assert therapist["working_days"] == [1, 2, 3, 4, 5]
    assert therapist["start_hour"] == "09:00:00"
    assert therapist["slot_minutes"] == 60

def test_renaming_therapist_user_renames_therapist(client, admin):
    user = create_staff(client, admin, "therapist", "sarah@connectphysio.com", "Sarah Jones")
    resp = client.put(f"/users/{user['id']}", headers=admin, json={"name": "Sarah Brown"})
    assert resp.status_code == 200
    assert client.get(f"/therapists/{user['therapist_id']}", headers=admin).json()["name"] == "Sarah Brown"

def test_deleting_therapist_user_deletes_therapist(client, admin):
    user = create_staff(client, admin, "therapist", "sarah@connectphysio.com")
    assert client.delete(f"/users/{user['id']}", headers=admin).status_code == 204
    assert client.get(f"/therapists/{user['therapist_id']}", headers=admin).status_code == 404
    assert client.get("/therapists", headers=admin).json() == []

def test_admin_cannot_delete_self(client, admin):
    me = client.get("/auth/me", headers=admin).json()
    assert client.delete(f"/users/{me['id']}", headers=admin).status_code == 400

def test_users_are_scoped_to_centre(client, admin):
    user = create_staff(client, admin, "receptionist", "emma@connectphysio.com")
    other = register_admin(client, email="owner@physiohub.com", centre_name="Physio Hub")
    assert client.get(f"/users/{user['id']}", headers=other).status_code == 404
    assert len(client.get("/users", headers=other).json()) == 1

def test_update_therapist_working_hours(client, admin):
    user = create_staff(client, admin, "therapist", "sarah@connectphysio.com")
    resp = client.put(f"/therapists/{user['therapist_id']}", headers=admin, json={
        "working_days": [6, 1, 1, 2], "start_hour": "08:00", "end_hour": "16:00",
    })
    assert resp.status_code == 200
    assert resp.json()["working_days"] == [1, 2, 6]

    bad = client.put(f"/therapists/{user['therapist_id']}", headers=admin, json={"working_days": [7]})
    assert bad.status_code == 422

def test_therapist_with_completed_sessions_cannot_be_removed(client, admin):
    user = create_staff(client, admin, "therapist", "sarah@connectphysio.com")
    patient = create_patient(client, admin)
    s = client.post("/sessions", headers=admin, json={
        "patient_id": patient["id"], "therapist_id": user["therapist_id"],
        "date": next_monday().isoformat(), "start_time": "10:00", "end_time": "11:00",
    }).json()
    client.post(f"/sessions/{s['id']}/status", headers=admin, json={"status": "checked-in"})
    client.post(f"/sessions/{s['id']}/status", headers=admin, json={"status": "completed"})

    assert client.delete(f"/users/{user['id']}", headers=admin).status_code == 409
    demote = client.put(f"/users/{user['id']}", headers=admin, json={"role": "receptionist"})
    assert demote.status_code == 409
    assert client.get(f"/sessions/{s['id']}", headers=admin).json()["status"] == "completed"
    assert client.get(f"/therapists/{user['therapist_id']}", headers=admin).status_code == 200

def test_removing_therapist_drops_their_open_sessions(client, admin):
    user = create_staff(client, admin, "therapist", "sarah@connectphysio.com")
    patient = create_patient(client, admin)
    s = client.post("/sessions", headers=admin, json={
        "patient_id": patient["id"], "therapist_id": user["therapist_id"],
        "date": next_monday().isoformat(), "start_time": "10:00", "end_time": "11:00",
    }).json()

    assert client.delete(f"/users/{user['id']}", headers=admin).status_code == 204
    assert client.get(f"/sessions/{s['id']}", headers=admin).status_code == 404
