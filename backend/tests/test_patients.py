from conftest import create_patient, create_staff, login, register_admin


def test_patient_crud(client, admin):
    patient = create_patient(client, admin, "John Smith", phone="07700 900123", age=42, gender="male")
    assert patient["package_sale_id"] is None

    resp = client.put(f"/patients/{patient['id']}", headers=admin, json={"notes": "Lower back pain"})
    assert resp.status_code == 200
    assert resp.json()["notes"] == "Lower back pain"
    assert resp.json()["name"] == "John Smith"

    assert client.delete(f"/patients/{patient['id']}", headers=admin).status_code == 204
    assert client.get(f"/patients/{patient['id']}", headers=admin).status_code == 404

def test_patient_search_is_case_insensitive(client, admin):
    create_patient(client, admin, "John Smith", email="john@mailbox.org")
    create_patient(client, admin, "Mary Jones", phone="07700 111222")

    names = [p["name"] for p in client.get("/patients", params={"search": "SMITH"}, headers=admin).json()]
    assert names == ["John Smith"]
    names = [p["name"] for p in client.get("/patients", params={"search": "111"}, headers=admin).json()]
    assert names == ["Mary Jones"]
    assert len(client.get("/patients", headers=admin).json()) == 2

def test_invalid_gender_rejected(client, admin):
    resp = client.post("/patients", headers=admin, json={"name": "X", "gender": "unknown"})
    assert resp.status_code == 422

def test_therapist_cannot_register_patients(client, admin):
    create_staff(client, admin, "therapist", "sarah@connectphysio.com")
    therapist = login(client, "sarah@connectphysio.com")
    assert client.post("/patients", headers=therapist, json={"name": "X"}).status_code == 403
    assert client.get("/patients", headers=therapist).status_code == 200

def test_patients_are_scoped_to_centre(client, admin):
    patient = create_patient(client, admin)
    other = register_admin(client, email="owner@physiohub.com", centre_name="Physio Hub")
    assert client.get(f"/patients/{patient['id']}", headers=other).status_code == 404
    assert client.get("/patients", headers=other).json() == []

def test_patient_detail_without_package(client, admin):
    patient = create_patient(client, admin)
    detail = client.get(f"/patients/{patient['id']}", headers=admin).json()
    assert detail["active_package_sale"] is None
    assert detail["sessions"] == []
    assert detail["treatment_plans"] == []
