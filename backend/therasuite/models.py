from __future__ import annotations
from typing import Optional
import datetime as dt
from datetime import datetime, date, time
from decimal import Decimal

from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import (
    BigInteger, Integer, String, Text, Date, Time, DateTime, Numeric, Boolean,
    CheckConstraint, ForeignKey, Index, UniqueConstraint, JSON
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func

from therasuite.db import Base

# SQLite는 INTEGER PRIMARY KEY 만 자동 증가
BigIntPK = BigInteger().with_variant(Integer(), "sqlite")
JSONType = JSON().with_variant(JSONB(), "postgresql")
Money = Numeric(12, 2)


class Centre(Base):
    __tablename__ = "centres"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    opening_time: Mapped[time] = mapped_column(Time, nullable=False)
    closing_time: Mapped[time] = mapped_column(Time, nullable=False)
    created_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(
            "role in ('admin','receptionist','therapist')",
            name="ck_users_role",
        ),
        Index("idx_users_centre", "centre_id"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    centre_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("centres.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    # 로그인 비교는 항상 소문자로 저장된 값과 비교
    email: Mapped[str] = mapped_column(String(320), unique=True, index=True, nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    role: Mapped[str] = mapped_column(String(16), nullable=False)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    therapist_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("therapists.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class AuthSession(Base):
    """로그인 세션. 토큰의 jti 와 1:1, 로그아웃 시 삭제된다."""
    __tablename__ = "auth_sessions"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    token_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    device: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class Therapist(Base):
    __tablename__ = "therapists"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    centre_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("centres.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    specialty: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    # 0 = 일요일 ... 6 = 토요일
    working_days: Mapped[list[int]] = mapped_column(JSONType, nullable=False, default=lambda: [1, 2, 3, 4, 5])
    start_hour: Mapped[time] = mapped_column(Time, nullable=False, default=time(9, 0))
    end_hour: Mapped[time] = mapped_column(Time, nullable=False, default=time(17, 0))
    slot_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=60)


class Patient(Base):
    __tablename__ = "patients"
    __table_args__ = (
        CheckConstraint(
            "gender in ('male','female','other') or gender is null",
            name="ck_patients_gender",
        ),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    centre_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("centres.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)
    age: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    gender: Mapped[Optional[str]] = mapped_column(String(8), nullable=True)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    past_medical_history: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # 현재 활성 패키지 판매 (없으면 NULL)
    package_sale_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    created_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class PackageDef(Base):
    __tablename__ = "packages"
    __table_args__ = (
        CheckConstraint("sessions > 0", name="ck_packages_sessions"),
        CheckConstraint(
            "discount_percentage >= 0 and discount_percentage <= 100",
            name="ck_packages_discount",
        ),
        CheckConstraint(
            "frequency in ('daily','alternate','custom')",
            name="ck_packages_frequency",
        ),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    centre_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("centres.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    sessions: Mapped[int] = mapped_column(Integer, nullable=False)
    duration_days: Mapped[int] = mapped_column(Integer, nullable=False)
    session_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=60)
    price: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    discount_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal("0"))
    frequency: Mapped[str] = mapped_column(String(16), nullable=False, default="daily")


class PackageSale(Base):
    __tablename__ = "package_sales"
    __table_args__ = (
        CheckConstraint(
            "status in ('active','expired','completed')",
            name="ck_package_sales_status",
        ),
        Index("idx_package_sales_patient", "patient_id"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    centre_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("centres.id", ondelete="CASCADE"), nullable=False, index=True
    )
    patient_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False
    )
    package_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("packages.id", ondelete="SET NULL"), nullable=True
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    expiry_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    sessions_total: Mapped[int] = mapped_column(Integer, nullable=False)
    sessions_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="active")
    created_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class TreatmentPlan(Base):
    __tablename__ = "treatment_plans"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    centre_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("centres.id", ondelete="CASCADE"), nullable=False
    )
    patient_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    history: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    examination: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    # [{"date": ISO, "treatments": [...], "charges": number}]
    treatments: Mapped[list[dict]] = mapped_column(JSONType, nullable=False, default=list)
    created_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class Session(Base):
    __tablename__ = "sessions"
    __table_args__ = (
        CheckConstraint(
            "status in ('scheduled','checked-in','completed','cancelled','no-show')",
            name="ck_sessions_status",
        ),
        Index("idx_sessions_centre_date", "centre_id", "date"),
        Index("idx_sessions_therapist_date", "therapist_id", "date"),
        Index("idx_sessions_patient", "patient_id"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    centre_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("centres.id", ondelete="CASCADE"), nullable=False
    )
    patient_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False
    )
    therapist_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("therapists.id", ondelete="RESTRICT"), nullable=False
    )
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="scheduled")
    package_sale_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("package_sales.id", ondelete="SET NULL"), nullable=True
    )
    treatment_plan_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("treatment_plans.id", ondelete="SET NULL"), nullable=True
    )
    # 자유 텍스트 또는 설문 응답(JSON 문자열)
    health_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class TreatmentDef(Base):
    __tablename__ = "treatment_defs"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    centre_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("centres.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    price: Mapped[Decimal] = mapped_column(Money, nullable=False)


class ExaminationDef(Base):
    __tablename__ = "examination_defs"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    centre_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("centres.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    fields: Mapped[list[dict]] = mapped_column(JSONType, nullable=False, default=list)


class Questionnaire(Base):
    __tablename__ = "questionnaires"
    __table_args__ = (
        CheckConstraint(
            "kind in ('consultation','session','treatment')",
            name="ck_questionnaires_kind",
        ),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    centre_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("centres.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    kind: Mapped[str] = mapped_column(String(16), nullable=False, default="session")
    questions: Mapped[list[dict]] = mapped_column(JSONType, nullable=False, default=list)
    created_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class Bill(Base):
    __tablename__ = "bills"
    __table_args__ = (
        CheckConstraint("status in ('unpaid','paid')", name="ck_bills_status"),
        UniqueConstraint("centre_id", "bill_number", name="uq_bills_centre_number"),
        Index("idx_bills_centre_created", "centre_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    centre_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("centres.id", ondelete="CASCADE"), nullable=False
    )
    bill_number: Mapped[str] = mapped_column(String(32), nullable=False)
    patient_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False, index=True
    )
    session_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("sessions.id", ondelete="SET NULL"), nullable=True
    )
    session_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    # [{"treatment_def_id", "name", "price"}]
    treatments: Mapped[list[dict]] = mapped_column(JSONType, nullable=False)
    number_of_sessions: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    subtotal: Mapped[Decimal] = mapped_column(Money, nullable=False)
    # {"package_name", "percentage", "amount"} 또는 NULL
    discount: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    grand_total: Mapped[Decimal] = mapped_column(Money, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="unpaid")
    created_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
