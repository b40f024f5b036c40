from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from hotel_reservations.db.base import Base
from hotel_reservations.models._mixins import SoftDeleteMixin, TimestampMixin


class DiscountType:
    PERCENTAGE = "PERCENTAGE"
    FIXED_AMOUNT = "FIXED_AMOUNT"

    ALL = (PERCENTAGE, FIXED_AMOUNT)


class DeactivationReason:
    MANUAL = ""
    EXPIRED = "EXPIRED"
    USAGE_LIMIT = "USAGE_LIMIT"

    # set by refresh_promotion_states and undone by it once the cause is gone
    AUTOMATIC = (EXPIRED, USAGE_LIMIT)


class Promotion(Base, TimestampMixin, SoftDeleteMixin):
    """Discount code configuration.

    The usage count is never stored: it is the number of non-cancelled bookings
    carrying this promotion's usage stamp.
    """

    __tablename__ = "promotions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # stored upper-cased, matched case-insensitively
    code: Mapped[str] = mapped_column(String(20), nullable=False, unique=True, index=True)
    description: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    discount_type: Mapped[str] = mapped_column(String(16), nullable=False)  # PERCENTAGE/FIXED_AMOUNT
    value: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    start_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    end_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    deactivated_reason: Mapped[str] = mapped_column(String(16), nullable=False, default=DeactivationReason.MANUAL)

    # Minimum requirements
    minimum_nights: Mapped[int | None] = mapped_column(Integer, nullable=True)
    minimum_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    max_total_uses: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Abuse prevention; every enabled component shares max_uses_per_limit
    limit_per_phone: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    limit_per_card: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    limit_per_device: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    limit_per_account: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    max_uses_per_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
