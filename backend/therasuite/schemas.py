from __future__ import annotations
from typing import Optional, List, Dict, Literal, Union
from pydantic import BaseModel, Field, EmailStr, model_validator
import datetime as dt
from datetime import datetime, date, time
from decimal import Decimal

from therasuite.config import CURRENCY

Role = Literal["admin", "receptionist", "therapist"]
SessionStatus = Literal["scheduled", "checked-in", "completed", "cancelled", "no-show"]
Frequency = Literal["daily", "alternate", "custom"]
QuestionnaireKind = Literal["consultation", "session", "treatment"]

# --- 인증 ---
class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"

class LoginRequest(BaseModel):
    email: EmailStr
    password: str
    remember_me: bool = False

class AdminRegisterRequest(BaseModel):
    """
    /auth/register-admin 요청 스키마.
    새 센터와 그 센터의 첫 관리자 계정을 함께 만든다.
    """
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=8)
    phone: Optional[str] = None
    centre_name: str = Field(..., min_length=1)
    opening_time: time = time(9, 0)
    closing_time: time = time(18, 0)

class UserPasswordUpdate(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=8)

# --- 센터 ---
class CentrePublic(BaseModel):
    id: int
    name: str
    opening_time: time
    closing_time: time

    class Config:
        from_attributes = True

class CentreUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    opening_time: Optional[time] = None
    closing_time: Optional[time] = None

# --- 사용자 ---
class UserPublic(BaseModel):
    """
    API 응답에서 비밀번호 해시를 제외한 사용자 정보.
    """
    id: int
    centre_id: int
    name: str
    email: EmailStr
    phone: Optional[str] = None
    role: str
    therapist_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class UserCreate(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    phone: Optional[str] = None
    role: Role
    password: str = Field(..., min_length=8)

class UserUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    role: Optional[Role] = None
    password: Optional[str] = Field(None, min_length=8)

# --- 치료사 ---
class TherapistPublic(BaseModel):
    id: int
    centre_id: int
    name: str
    specialty: Optional[str] = None
    working_days: List[int]
    start_hour: time
    end_hour: time
    slot_minutes: int

    class Config:
        from_attributes = True

class TherapistUpdate(BaseModel):
    specialty: Optional[str] = None
    working_days: Optional[List[int]] = None
    start_hour: Optional[time] = None
    end_hour: Optional[time] = None
    slot_minutes: Optional[int] = Field(None, gt=0, le=480)

    @model_validator(mode="after")
    def check_days(self):
        if self.working_days is not None and any(d < 0 or d > 6 for d in self.working_days):
            raise ValueError("working_days must be between 0 (Sunday) and 6 (Saturday)")
        return self

# --- 환자 ---
class PatientBase(BaseModel):
    name: str = Field(..., min_length=1)
    phone: Optional[str] = None
    email: Optional[EmailStr] = None
    age: Optional[int] = Field(None, ge=0, lt=150)
    gender: Optional[Literal["male", "female", "other"]] = None
    address: Optional[str] = None
    past_medical_history: Optional[str] = None
    notes: Optional[str] = None

class PatientCreate(PatientBase):
    pass

class PatientUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    phone: Optional[str] = None
    email: Optional[EmailStr] = None
    age: Optional[int] = Field(None, ge=0, lt=150)
    gender: Optional[Literal["male", "female", "other"]] = None
    address: Optional[str] = None
    past_medical_history: Optional[str] = None
    notes: Optional[str] = None

class PatientPublic(PatientBase):
    id: int
    centre_id: int
    package_sale_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

# --- 패키지 ---
class PackageCreate(BaseModel):
    name: str = Field(..., min_length=1)
    sessions: int = Field(..., gt=0, le=365)
    duration_days: int = Field(..., gt=0)
    session_minutes: int = Field(60, gt=0, le=480)
    price: Decimal = Field(Decimal("0"), ge=0)
    discount_percentage: Decimal = Field(Decimal("0"), ge=0, le=100)
    frequency: Frequency = "daily"

class PackageUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    sessions: Optional[int] = Field(None, gt=0, le=365)
    duration_days: Optional[int] = Field(None, gt=0)
    session_minutes: Optional[int] = Field(None, gt=0, le=480)
    price: Optional[Decimal] = Field(None, ge=0)
    discount_percentage: Optional[Decimal] = Field(None, ge=0, le=100)
    frequency: Optional[Frequency] = None

class PackagePublic(BaseModel):
    id: int
    centre_id: int
    name: str
    sessions: int
    duration_days: int
    session_minutes: int
    price: Decimal
    discount_percentage: Decimal
    frequency: str

    class Config:
        from_attributes = True

class PackageSellRequest(BaseModel):
    patient_id: int
    start_date: Optional[date] = None
    start_time: Optional[time] = None
    # 직접 고른 날짜 (없으면 자동 생성)
    dates: Optional[List[date]] = None
    notes: Optional[str] = None

class PackageSalePublic(BaseModel):
    id: int
    centre_id: int
    patient_id: int
    package_id: Optional[int] = None
    start_date: date
    expiry_date: Optional[date] = None
    sessions_total: int
    sessions_used: int
    sessions_remaining: int = 0
    status: str
    expiring_soon: bool = False

    class Config:
        from_attributes = True

# --- 세션(예약) ---
class SessionPublic(BaseModel):
    id: int
    centre_id: int
    patient_id: int
    therapist_id: int
    date: dt.date
    start_time: time
    end_time: time
    status: str
    package_sale_id: Optional[int] = None
    treatment_plan_id: Optional[int] = None
    health_notes: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class PackageSaleResult(BaseModel):
    sale: PackageSalePublic
    sessions: List[SessionPublic]

class SessionCreate(BaseModel):
    patient_id: int
    therapist_id: int
    date: dt.date
    start_time: time
    end_time: time
    package_sale_id: Optional[int] = None
    treatment_plan_id: Optional[int] = None
    health_notes: Optional[str] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def check_times(self):
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self

class SessionUpdate(BaseModel):
    patient_id: Optional[int] = None
    therapist_id: Optional[int] = None
    date: Optional[dt.date] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    treatment_plan_id: Optional[int] = None
    health_notes: Optional[str] = None
    notes: Optional[str] = None

class SessionStatusChange(BaseModel):
    status: SessionStatus
    notes: Optional[str] = None

class SessionComplete(BaseModel):
    health_notes: Optional[str] = None
    # 설문 기반 기록
    questionnaire_id: Optional[int] = None
    answers: Optional[Dict[str, Union[float, str]]] = None

    @model_validator(mode="after")
    def check_answers(self):
        if self.answers is not None and self.questionnaire_id is None:
            raise ValueError("questionnaire_id is required when answers are given")
        return self

class CalendarDay(BaseModel):
    date: dt.date
    sessions: List[SessionPublic] = []

class CalendarResponse(BaseModel):
    view: Literal["month", "week", "day"]
    start: date
    end: date
    days: List[CalendarDay]

# --- 카탈로그 ---
class TreatmentDefCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    price: Decimal = Field(..., ge=0)

class TreatmentDefUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(None, ge=0)

class TreatmentDefPublic(BaseModel):
    id: int
    centre_id: int
    name: str
    description: Optional[str] = None
    price: Decimal

    class Config:
        from_attributes = True

# --- 설문 ---
class Question(BaseModel):
    id: Optional[str] = None
    label: str = Field(..., min_length=1)
    type: Literal["text", "slider"] = "text"
    placeholder: Optional[str] = None
    min: Optional[float] = None
    max: Optional[float] = None
    step: Optional[float] = None

    @model_validator(mode="after")
    def check_slider(self):
        if self.type == "slider":
            if self.min is None or self.max is None:
                raise ValueError(f"slider question '{self.label}' needs min and max")
            if self.min >= self.max:
                raise ValueError(f"slider question '{self.label}': min must be less than max")
        return self

class ExaminationDefCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    fields: List[Question] = []

class ExaminationDefUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    fields: Optional[List[Question]] = None

class ExaminationDefPublic(BaseModel):
    id: int
    centre_id: int
    name: str
    description: Optional[str] = None
    fields: List[Question] = []

    class Config:
        from_attributes = True

class QuestionnaireCreate(BaseModel):
    name: str = Field(..., min_length=1)
    kind: QuestionnaireKind = "session"
    questions: List[Question] = []

class QuestionnaireUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    kind: Optional[QuestionnaireKind] = None
    questions: Optional[List[Question]] = None

class QuestionnairePublic(BaseModel):
    id: int
    centre_id: int
    name: str
    kind: str
    questions: List[Question]
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

# --- 치료 계획 ---
class TreatmentEntry(BaseModel):
    date: datetime
    treatments: List[str] = []
    charges: Decimal = Field(Decimal("0"), ge=0)

class TreatmentPlanCreate(BaseModel):
    name: str = Field(..., min_length=1)
    history: Optional[str] = None
    examination: Optional[str] = None
    is_active: bool = True

class TreatmentPlanUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    history: Optional[str] = None
    examination: Optional[str] = None

class TreatmentPlanPublic(BaseModel):
    id: int
    patient_id: int
    name: str
    history: Optional[str] = None
    examination: Optional[str] = None
    is_active: bool
    treatments: List[TreatmentEntry] = []
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class PatientDetail(PatientPublic):
    active_package_sale: Optional[PackageSalePublic] = None
    sessions: List[SessionPublic] = []
    treatment_plans: List[TreatmentPlanPublic] = []

# --- 청구서 ---
class BillItemIn(BaseModel):
    treatment_def_id: int
    # 지정하면 기본 단가 대신 사용
    custom_price: Optional[Decimal] = Field(None, ge=0)

class BillItem(BaseModel):
    treatment_def_id: Optional[int] = None
    name: str
    price: Decimal

class BillDiscount(BaseModel):
    package_name: str
    percentage: Decimal
    amount: Decimal

class BillCreate(BaseModel):
    patient_id: int
    session_id: Optional[int] = None
    items: List[BillItemIn] = Field(..., min_length=1)
    number_of_sessions: int = Field(1, ge=1)
    package_id: Optional[int] = None
    apply_package_discount: bool = False
    status: Literal["unpaid", "paid"] = "unpaid"

class BillUpdate(BaseModel):
    session_id: Optional[int] = None
    items: Optional[List[BillItemIn]] = Field(None, min_length=1)
    number_of_sessions: Optional[int] = Field(None, ge=1)
    package_id: Optional[int] = None
    apply_package_discount: Optional[bool] = None
    status: Optional[Literal["unpaid", "paid"]] = None

class BillStatusChange(BaseModel):
    status: Literal["unpaid", "paid"]

class BillPublic(BaseModel):
    id: int
    centre_id: int
    bill_number: str
    patient_id: int
    session_id: Optional[int] = None
    session_date: Optional[date] = None
    treatments: List[BillItem]
    number_of_sessions: int
    subtotal: Decimal
    discount: Optional[BillDiscount] = None
    grand_total: Decimal
    currency: str = CURRENCY
    status: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

# --- 대시보드 ---
class AdminStats(BaseModel):
    total_patients: int
    active_patients: int
    package_sales: int
    total_sessions: int
    unpaid_total: Decimal

class ReceptionStats(BaseModel):
    todays_sessions: int
    scheduled_today: int
    completed_today: int

class TherapistStats(BaseModel):
    todays_sessions: int
    completed_today: int
    pending_today: int
    my_patients: int
    upcoming: List[SessionPublic] = []

class DashboardResponse(BaseModel):
    role: str
    admin: Optional[AdminStats] = None
    reception: Optional[ReceptionStats] = None
    therapist: Optional[TherapistStats] = None
