from __future__ import annotations

from datetime import time

from sqlalchemy import Boolean, Integer, String, Time
from sqlalchemy.orm import Mapped, mapped_column

from hotel_reservations.db.base import Base


class AppSettings(Base):
    """Single-row booking lifecycle policy, editable by admins."""

    __tablename__ = "app_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=1)

    # Hotel local check-in time; refund windows count back from it
    check_in_time: Mapped[time] = mapped_column(Time, nullable=False, default=time(14, 0))

    # Confirmed bookings become NO_SHOW this many hours after the start of the check-in day
    no_show_grace_hours: Mapped[int] = mapped_column(Integer, nullable=False, default=24)

    # When enabled, confirmed bookings are checked in automatically at check-in time
    auto_check_in_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Hours after the end of the check-out day before an open stay is closed
    auto_check_out_grace_hours: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    allow_same_day_checkout: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Refunds
    full_refund_hours: Mapped[int] = mapped_column(Integer, nullable=False, default=24)
    late_refund_percent: Mapped[int] = mapped_column(Integer, nullable=False, default=80)

    # Auto expire unpaid bookings (optional)
    auto_expire_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    auto_expire_hours: Mapped[int] = mapped_column(Integer, nullable=False, default=24)

    cancel_policy_version: Mapped[str] = mapped_column(String(64), nullable=False, default="v1")
