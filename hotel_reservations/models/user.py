from __future__ import annotations

import uuid

from sqlalchemy import Boolean, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from hotel_reservations.db.base import Base
from hotel_reservations.models._mixins import SoftDeleteMixin, TimestampMixin


class UserRoleName:
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    STAFF = "STAFF"
    CUSTOMER = "CUSTOMER"

    ALL = (ADMIN, MANAGER, STAFF, CUSTOMER)
    HOTEL_SCOPED = (MANAGER, STAFF)


class User(Base, TimestampMixin, SoftDeleteMixin):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str] = mapped_column(String(32), nullable=False, default="")

    role: Mapped[str] = mapped_column(String(16), nullable=False, default=UserRoleName.CUSTOMER)

    # Manager/Staff only see data for this hotel
    hotel_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("hotels.id"), nullable=True, index=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
