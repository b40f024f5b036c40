from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from hotel_reservations.schemas.promotion import PromotionRejection


def check_stay_dates(check_in_date: date, check_out_date: date) -> str | None:
    """Return a problem description, or None when the stay is well formed."""
    if check_out_date <= check_in_date:
        return "Check-out date must be after check-in date"
    return None


class BookingCreate(BaseModel):
    room_id: str
    check_in_date: date
    check_out_date: date
    promotion_code: str | None = Field(default=None, max_length=20)
    phone: str | None = Field(default=None, max_length=32)
    card_number: str | None = Field(default=None, max_length=32)

    @model_validator(mode="after")
    def _check_dates(self) -> "BookingCreate":
        problem = check_stay_dates(self.check_in_date, self.check_out_date)
        if problem:
            raise ValueError(problem)
        return self


class BookingCreateError(str, Enum):
    INVALID_DATES = "INVALID_DATES"
    ROOM_NOT_FOUND = "ROOM_NOT_FOUND"
    ROOM_UNAVAILABLE = "ROOM_UNAVAILABLE"
    PROMOTION_REJECTED = "PROMOTION_REJECTED"


class BookingCreateResult(BaseModel):
    booking_id: str | None = None
    public_id: str | None = None
    error: BookingCreateError | None = None
    message: str = ""
    rejection: PromotionRejection | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class TransitionAction(str, Enum):
    PAY = "PAY"
    CANCEL = "CANCEL"
    CHECK_IN = "CHECK_IN"
    CHECK_OUT = "CHECK_OUT"
    NO_SHOW = "NO_SHOW"
    AUTO_CHECK_IN = "AUTO_CHECK_IN"
    AUTO_CHECK_OUT = "AUTO_CHECK_OUT"
    EXPIRE = "EXPIRE"


class TransitionError(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    CONCURRENCY_CONFLICT = "CONCURRENCY_CONFLICT"
    INVALID_TOKEN = "INVALID_TOKEN"
    PAYMENT_MISMATCH = "PAYMENT_MISMATCH"


class TransitionResult(BaseModel):
    booking_id: str
    action: TransitionAction
    status: str | None = None
    changed: bool = False
    error: TransitionError | None = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None


class PaymentOutcome(BaseModel):
    method: str = Field(pattern="^(CREDIT_CARD|PAYPAL|BANK_TRANSFER)$")
    amount: Decimal = Field(ge=0)
    transaction_id: str | None = Field(default=None, max_length=255)


class CancelRequest(BaseModel):
    reason: str = Field(default="", max_length=500)


class CheckInRequest(BaseModel):
    token: str = Field(min_length=1, max_length=64)
    room_id: str | None = None


class BookingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    public_id: str
    user_id: str
    room_id: str
    check_in_date: date
    check_out_date: date
    booked_at: datetime
    subtotal_price: Decimal
    discount_amount: Decimal
    total_price: Decimal
    status: str
    payment_method: str | None
    payment_amount: Decimal | None
    payment_status: str
    transaction_id: str | None
    payment_at: datetime | None
    cancelled_at: datetime | None
    cancel_reason: str
    refund_amount: Decimal | None
    promotion_id: str | None
    check_in_time: datetime | None
    check_out_time: datetime | None


class SweepReport(BaseModel):
    checked_out: int = 0
    checked_in: int = 0
    no_show: int = 0
    expired: int = 0
    failed: int = 0
    promotions_changed: int = 0

    @property
    def total_updated(self) -> int:
        return self.checked_out + self.checked_in + self.no_show + self.expired
