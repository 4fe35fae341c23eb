"""Pydantic schemas for API serialisation."""

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from tennisclub.models.member import UserRole
from tennisclub.models.payment import PaymentMethod, PaymentStatus
from tennisclub.models.reservation import (
    ReservationPaymentStatus,
    ReservationStatus,
    ReservationType,
)

# --- Auth ---


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str
    first_name: str
    last_name: str
    phone: str | None = None


class RefreshRequest(BaseModel):
    refresh_token: str


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    first_name: str
    last_name: str
    full_name: str
    role: UserRole
    is_approved: bool
    coin_balance: float


# --- Reservation ---


class ReservationCreate(BaseModel):
    date: date
    time_slot: int = Field(ge=0, le=23)
    duration: int = 1
    players: list[str] = Field(min_length=1, max_length=4)
    total_fee: float | None = Field(default=None, ge=0)
    reservation_type: ReservationType = ReservationType.REGULAR


class ReservationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    date: date
    time_slot: int
    duration: int
    end_time_slot: int
    players: list[str]
    status: ReservationStatus
    payment_status: ReservationPaymentStatus
    reservation_type: ReservationType
    total_fee: float
    created_at: datetime


# --- Payment ---


class PaymentCreate(BaseModel):
    reservation_id: str | None = None
    poll_id: str | None = None
    payment_method: PaymentMethod
    amount: float | None = Field(default=None, gt=0)
    custom_amount: float | None = Field(default=None, gt=0)
    is_manual_payment: bool = False
    player_names: list[str] | None = None
    court_usage_date: date | None = None
    status: PaymentStatus | None = None
    currency: str | None = Field(default=None, pattern="^(PHP|USD)$")
    transaction_id: str | None = None
    reference_number: str | None = None
    description: str | None = Field(default=None, max_length=200)
    notes: str | None = Field(default=None, max_length=500)


class PaymentUpdate(BaseModel):
    payment_method: PaymentMethod | None = None
    transaction_id: str | None = None
    reference_number: str | None = None
    custom_amount: float | None = Field(default=None, gt=0)
    notes: str | None = Field(default=None, max_length=500)


class PaymentNotesRequest(BaseModel):
    notes: str | None = Field(default=None, max_length=500)


class ProcessPaymentRequest(PaymentNotesRequest):
    transaction_id: str | None = None
    reference_number: str | None = None


class CancelPaymentRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=200)


class PaymentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    reservation_id: str | None
    poll_id: str | None
    amount: float
    currency: str
    payment_method: PaymentMethod
    status: PaymentStatus
    status_display: str
    transaction_id: str | None
    reference_number: str | None
    payment_date: datetime | None
    due_date: datetime
    description: str | None
    notes: str | None
    approved_by: int | None
    approved_at: datetime | None
    recorded_by: int | None
    recorded_at: datetime | None
    is_overdue: bool
    metadata: dict = Field(default_factory=dict, validation_alias="meta")
    created_at: datetime


class PaymentPage(BaseModel):
    items: list[PaymentOut]
    total: int
    page: int
    limit: int


# --- Manual court usage ---


class ManualPlayerIn(BaseModel):
    player_name: str
    amount: float


class ManualCourtUsageCreate(BaseModel):
    date: date
    start_time: int
    end_time: int
    players: list[ManualPlayerIn]
    description: str | None = Field(default=None, max_length=200)


class ManualCourtUsageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    session_id: str
    usage_date: date
    start_time: int
    end_time: int
    total_amount: float
    payments: list[dict]


# --- Reports / maintenance ---


class CourtUsageReportOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    member_name: str
    year: int
    monthly_amounts: dict[str, float]
    total_amount: float


class FinancialSummaryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    recorded_total: float
    court_receipts: float
    app_service_fee: float
    court_revenue: float
    total_receipts: float
    total_disbursements: float
    net_income: float
    fund_balance: float


class CleanupReportOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    examined: int
    cleaned: int
    skipped: int
    items: list[dict]
    errors: list[str]
