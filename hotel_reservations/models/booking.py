from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, Date, DateTime, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hotel_reservations.db.base import Base
from hotel_reservations.models._mixins import SoftDeleteMixin, TimestampMixin
from hotel_reservations.models.hotel import Room
from hotel_reservations.models.promotion import Promotion
from hotel_reservations.models.user import User


class BookingStatus:
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CHECKED_IN = "CHECKED_IN"
    CHECKED_OUT = "CHECKED_OUT"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"

    TERMINAL = frozenset({CHECKED_OUT, CANCELLED, NO_SHOW})
    ACTIVE = frozenset({PENDING, CONFIRMED, CHECKED_IN})


class PaymentMethod:
    CREDIT_CARD = "CREDIT_CARD"
    PAYPAL = "PAYPAL"
    BANK_TRANSFER = "BANK_TRANSFER"

    ALL = (CREDIT_CARD, PAYPAL, BANK_TRANSFER)


class PaymentStatus:
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class Booking(Base, TimestampMixin, SoftDeleteMixin):
    """A room booking with payment, cancellation and promotion-usage data on one row."""

    __tablename__ = "bookings"
    __table_args__ = (CheckConstraint("check_out_date > check_in_date", name="ck_bookings_stay_dates"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    public_id: Mapped[str] = mapped_column(String(32), nullable=False, unique=True, index=True)

    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    room_id: Mapped[str] = mapped_column(String(36), ForeignKey("rooms.id"), nullable=False, index=True)

    check_in_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    check_out_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    booked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    subtotal_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    total_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default=BookingStatus.PENDING, index=True)

    # Payment
    payment_method: Mapped[str | None] = mapped_column(String(16), nullable=True)
    payment_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    payment_status: Mapped[str] = mapped_column(String(16), nullable=False, default=PaymentStatus.PENDING)
    transaction_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    payment_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Cancellation
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancel_reason: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    refund_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    # Promotion usage snapshot, written once at creation
    promotion_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("promotions.id"), nullable=True, index=True)
    promotion_phone_hash: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    promotion_card_identifier: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    promotion_device_fingerprint: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    promotion_ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    promotion_used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Check-in credential, issued on confirmation
    qr_token: Mapped[str | None] = mapped_column(String(64), nullable=True, unique=True)
    check_in_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    check_out_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    user: Mapped[User] = relationship("User")
    room: Mapped[Room] = relationship("Room")
    promotion: Mapped[Promotion | None] = relationship("Promotion")

    @property
    def nights(self) -> int:
        return (self.check_out_date - self.check_in_date).days
