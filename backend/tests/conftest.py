import asyncio
import os
import tempfile

# 앱 import 전에 테스트용 설정 주입
_db_dir = tempfile.mkdtemp(prefix="therasuite-test-")
os.environ["ASYNC_DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_db_dir, 'test.db')}"
os.environ["KAFKA_ENABLED"] = "false"
os.environ["AUTO_CREATE_TABLES"] = "false"

import pytest
from fastapi.testclient import TestClient

from therasuite.db import create_all, drop_all
from therasuite.main import app

PASSWORD = "password123"


@pytest.fixture(autouse=True)
def fresh_db():
    asyncio.run(drop_all())
    asyncio.run(create_all())
    yield

@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


def auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}

def register_admin(client, email="admin@connectphysio.com", centre_name="ConnectPhysio London"):
    resp = client.post("/auth/register-admin", json={
        "name": "Admin User",
        "email": email,
        "password": PASSWORD,
        "centre_name": centre_name,
    })
    assert resp.status_code == 201, resp.text
    return auth_headers(resp.json()["access_token"])

def login(client, email, password=PASSWORD):
    resp = client.post("/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.text
    return auth_headers(resp.json()["access_token"])

def create_staff(client, admin, role, email, name=None):
    resp = client.post("/users", headers=admin, json={
        "name": name or email.split("@")[0].title(),
        "email": email,
        "role": role,
        "password": PASSWORD,
    })
    assert resp.status_code == 201, resp.text
    return resp.json()

def create_patient(client, headers, name="John Smith", **extra):
    resp = client.post("/patients", headers=headers, json={"name": name, **extra})
    assert resp.status_code == 201, resp.text
    return resp.json()

@pytest.fixture
def admin(client):
    return register_admin(client)

@pytest.fixture
def therapists(client, admin):
    """관리자 헤더로 치료사 두 명 생성 (id 순서 = 생성 순서)"""
    return [
        create_staff(client, admin, "therapist", "sarah@connectphysio.com", "Sarah Jones"),
        create_staff(client, admin, "therapist", "david@connectphysio.com", "David Lee"),
    ]
