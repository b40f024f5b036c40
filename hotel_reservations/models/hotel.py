from __future__ import annotations

import uuid
from decimal import Decimal

from sqlalchemy import Boolean, ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hotel_reservations.db.base import Base
from hotel_reservations.models._mixins import SoftDeleteMixin, TimestampMixin


class Hotel(Base, TimestampMixin, SoftDeleteMixin):
    __tablename__ = "hotels"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    rooms: Mapped[list["Room"]] = relationship("Room", back_populates="hotel")


class Room(Base, TimestampMixin, SoftDeleteMixin):
    __tablename__ = "rooms"
    __table_args__ = (UniqueConstraint("hotel_id", "number", name="uq_rooms_hotel_number"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    hotel_id: Mapped[str] = mapped_column(String(36), ForeignKey("hotels.id"), nullable=False, index=True)
    number: Mapped[str] = mapped_column(String(16), nullable=False)

    nightly_rate: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    hotel: Mapped[Hotel] = relationship("Hotel", back_populates="rooms")
