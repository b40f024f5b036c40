from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class UsageFingerprint(BaseModel):
    """Correlated identifiers of a booking attempt. Missing components are never matched."""

    phone_hash: str | None = None
    card_identifier: str | None = None
    device_fingerprint: str | None = None
    ip_address: str | None = None


class BookingCandidate(BaseModel):
    nights: int
    subtotal: Decimal
    user_id: str | None = None


class RejectionReason(str, Enum):
    INVALID_CANDIDATE = "INVALID_CANDIDATE"
    NOT_FOUND = "NOT_FOUND"
    INACTIVE = "INACTIVE"
    EXPIRED = "EXPIRED"
    MINIMUM_NIGHTS_NOT_MET = "MINIMUM_NIGHTS_NOT_MET"
    MINIMUM_AMOUNT_NOT_MET = "MINIMUM_AMOUNT_NOT_MET"
    GLOBAL_LIMIT_REACHED = "GLOBAL_LIMIT_REACHED"
    PHONE_LIMIT_REACHED = "PHONE_LIMIT_REACHED"
    CARD_LIMIT_REACHED = "CARD_LIMIT_REACHED"
    DEVICE_LIMIT_REACHED = "DEVICE_LIMIT_REACHED"
    ACCOUNT_LIMIT_REACHED = "ACCOUNT_LIMIT_REACHED"


class DiscountOutcome(BaseModel):
    promotion_id: str
    code: str
    discount_amount: Decimal
    final_price: Decimal


class PromotionRejection(BaseModel):
    reason: RejectionReason
    message: str


class PromotionCheck(BaseModel):
    outcome: DiscountOutcome | None = None
    rejection: PromotionRejection | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is not None


class PromotionValidateRequest(BaseModel):
    code: str = Field(min_length=1, max_length=20)
    room_id: str
    check_in_date: date
    check_out_date: date
    phone: str | None = Field(default=None, max_length=32)
    card_number: str | None = Field(default=None, max_length=32)


class PromotionValidateResponse(BaseModel):
    valid: bool
    reason: RejectionReason | None = None
    message: str = ""
    promotion_id: str | None = None
    subtotal: Decimal | None = None
    discount_amount: Decimal | None = None
    final_price: Decimal | None = None


class PromotionBase(BaseModel):
    description: str = Field(default="", max_length=255)
    start_at: datetime | None = None
    end_at: datetime | None = None
    minimum_nights: int | None = Field(default=None, ge=0, le=30)
    minimum_amount: Decimal | None = Field(default=None, ge=0)
    max_total_uses: int | None = Field(default=None, ge=0)
    limit_per_phone: bool = True
    limit_per_card: bool = True
    limit_per_device: bool = False
    limit_per_account: bool = False
    max_uses_per_limit: int = Field(default=1, ge=1, le=1000)
    active: bool = True


class PromotionCreate(PromotionBase):
    code: str = Field(min_length=1, max_length=20)
    discount_type: str = Field(pattern="^(PERCENTAGE|FIXED_AMOUNT)$")
    value: Decimal = Field(gt=0)

    @model_validator(mode="after")
    def _check_rules(self) -> "PromotionCreate":
        if self.discount_type == "PERCENTAGE" and self.value > 100:
            raise ValueError("Percentage discount cannot exceed 100")
        if self.start_at and self.end_at and self.end_at < self.start_at:
            raise ValueError("end_at must not be before start_at")
        return self


class PromotionUpdate(BaseModel):
    description: str | None = Field(default=None, max_length=255)
    discount_type: str | None = Field(default=None, pattern="^(PERCENTAGE|FIXED_AMOUNT)$")
    value: Decimal | None = Field(default=None, gt=0)
    start_at: datetime | None = None
    end_at: datetime | None = None
    minimum_nights: int | None = Field(default=None, ge=0, le=30)
    minimum_amount: Decimal | None = Field(default=None, ge=0)
    max_total_uses: int | None = Field(default=None, ge=0)
    limit_per_phone: bool | None = None
    limit_per_card: bool | None = None
    limit_per_device: bool | None = None
    limit_per_account: bool | None = None
    max_uses_per_limit: int | None = Field(default=None, ge=1, le=1000)
    active: bool | None = None


class PromotionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    code: str
    description: str
    discount_type: str
    value: Decimal
    start_at: datetime | None
    end_at: datetime | None
    active: bool
    deactivated_reason: str
    minimum_nights: int | None
    minimum_amount: Decimal | None
    max_total_uses: int | None
    limit_per_phone: bool
    limit_per_card: bool
    limit_per_device: bool
    limit_per_account: bool
    max_uses_per_limit: int
