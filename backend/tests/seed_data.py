import asyncio
from datetime import date, time, timedelta
from decimal import Decimal

from sqlalchemy import insert, select

from therasuite.db import SessionLocal, create_all
from therasuite.models import (
    Centre, PackageDef, Patient, Questionnaire, Session, Therapist, TreatmentDef, User,
)
from therasuite.services.auth_service import hash_password
from therasuite.services.questionnaires import assign_question_ids

DEMO_PASSWORD = "password123"


async def seed_data():
    """데모 센터 데이터. 이미 시드된 경우 아무것도 하지 않는다."""
    await create_all()
    async with SessionLocal() as session:
        exists = await session.execute(select(User).where(User.email == "admin@connectphysio.com"))
        if exists.scalar_one_or_none():
            return False

        # 1) 센터
        centre_id = (await session.execute(
            insert(Centre).values(name="ConnectPhysio London", opening_time=time(9), closing_time=time(18))
            .returning(Centre.id)
        )).scalar_one()

        # 2) 치료사 + 직원 계정
        sarah_id = (await session.execute(
            insert(Therapist).values(
                centre_id=centre_id, name="Dr. Sarah Johnson", specialty="Sports Rehabilitation",
                working_days=[1, 2, 3, 4, 5], start_hour=time(9), end_hour=time(17), slot_minutes=60,
            ).returning(Therapist.id)
        )).scalar_one()
        password_hash = hash_password(DEMO_PASSWORD)
        await session.execute(insert(User).values([
            {"centre_id": centre_id, "name": "Admin User", "email": "admin@connectphysio.com",
             "role": "admin", "password_hash": password_hash, "therapist_id": None},
            {"centre_id": centre_id, "name": "Emma Reception", "email": "reception@connectphysio.com",
             "role": "receptionist", "password_hash": password_hash, "therapist_id": None},
            {"centre_id": centre_id, "name": "Dr. Sarah Johnson", "email": "sarah@connectphysio.com",
             "role": "therapist", "password_hash": password_hash, "therapist_id": sarah_id},
        ]))

        # 3) 패키지 / 치료 항목
        await session.execute(insert(PackageDef).values([
            {"centre_id": centre_id, "name": "5-Session Pack", "sessions": 5, "duration_days": 30,
             "session_minutes": 60, "price": Decimal("300.00"), "discount_percentage": Decimal("10"),
             "frequency": "daily"},
            {"centre_id": centre_id, "name": "10-Session Pack", "sessions": 10, "duration_days": 60,
             "session_minutes": 60, "price": Decimal("550.00"), "discount_percentage": Decimal("15"),
             "frequency": "alternate"},
        ]))
        await session.execute(insert(TreatmentDef).values([
            {"centre_id": centre_id, "name": "Ultrasound Therapy", "price": Decimal("50.00")},
            {"centre_id": centre_id, "name": "Manual Therapy", "price": Decimal("70.00")},
        ]))

        # 4) 설문
        await session.execute(insert(Questionnaire).values([
            {"centre_id": centre_id, "name": "Initial Consultation", "kind": "consultation",
             "questions": assign_question_ids([
                 {"label": "What brings you in today?", "type": "text"},
                 {"label": "Pain level", "type": "slider", "min": 0, "max": 10, "step": 1},
             ])},
            {"centre_id": centre_id, "name": "Session Feedback", "kind": "session",
             "questions": assign_question_ids([
                 {"label": "Pain after session", "type": "slider", "min": 0, "max": 10, "step": 1},
                 {"label": "Notes", "type": "text"},
             ])},
        ]))

        # 5) 환자 + 오늘 예약
        patient_id = (await session.execute(
            insert(Patient).values(
                centre_id=centre_id, name="John Smith", phone="07700 900123",
                age=42, gender="male", past_medical_history="Lower back pain",
            ).returning(Patient.id)
        )).scalar_one()
        today = date.today()
        await session.execute(insert(Session).values([
            {"centre_id": centre_id, "patient_id": patient_id, "therapist_id": sarah_id,
             "date": today, "start_time": time(10), "end_time": time(11), "status": "scheduled"},
            {"centre_id": centre_id, "patient_id": patient_id, "therapist_id": sarah_id,
             "date": today + timedelta(days=1), "start_time": time(10), "end_time": time(11),
             "status": "scheduled"},
        ]))

        await session.commit()
    return True

if __name__ == "__main__":
    asyncio.run(seed_data())
