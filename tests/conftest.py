from __future__ import annotations

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret")

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import hotel_reservations.models  # noqa: F401
from hotel_reservations.core.clock import local_today
from hotel_reservations.db.base import Base
from hotel_reservations.models.booking import Booking
from hotel_reservations.models.hotel import Hotel, Room
from hotel_reservations.models.promotion import DiscountType, Promotion
from hotel_reservations.models.user import User, UserRoleName
from hotel_reservations.schemas.booking import PaymentOutcome
from hotel_reservations.schemas.promotion import UsageFingerprint
from hotel_reservations.services import booking_service, notification_service

# 10:00 on 2026-03-01 in Asia/Kuala_Lumpur (UTC+8)
FIXED_NOW = datetime(2026, 3, 1, 2, 0, tzinfo=timezone.utc)


@pytest.fixture
def engine():
    eng = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def sent_emails(monkeypatch):
    sent: list[tuple[str, str, str]] = []

    def _record(to_email: str, subject: str, body: str) -> None:
        sent.append((to_email, subject, body))

    monkeypatch.setattr(notification_service, "send_email", _record)
    return sent


@pytest.fixture
def now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def today(now) -> date:
    return local_today(now)


@pytest.fixture
def hotel(db) -> Hotel:
    h = Hotel(name="Harbour Budget Inn")
    db.add(h)
    db.commit()
    return h


@pytest.fixture
def room(db, hotel) -> Room:
    r = Room(hotel_id=hotel.id, number="101", nightly_rate=Decimal("100.00"))
    db.add(r)
    db.commit()
    return r


@pytest.fixture
def make_room(db, hotel):
    counter = {"n": 200}

    def _make(rate: str = "100.00", hotel_id: str | None = None) -> Room:
        counter["n"] += 1
        r = Room(hotel_id=hotel_id or hotel.id, number=str(counter["n"]), nightly_rate=Decimal(rate))
        db.add(r)
        db.commit()
        return r

    return _make


@pytest.fixture
def make_user(db):
    def _make(role: str = UserRoleName.CUSTOMER, *, email: str | None = None, hotel_id: str | None = None, phone: str = "") -> User:
        u = User(email=email or f"{role.lower()}-{os.urandom(4).hex()}@example.com", name=role.title(), role=role, hotel_id=hotel_id, phone=phone)
        db.add(u)
        db.commit()
        return u

    return _make


@pytest.fixture
def customer(make_user) -> User:
    return make_user(UserRoleName.CUSTOMER, email="guest@example.com", phone="+60 12-345 6789")


@pytest.fixture
def make_promotion(db):
    def _make(code: str = "SAVE10", discount_type: str = DiscountType.PERCENTAGE, value: str = "10", **kwargs) -> Promotion:
        p = Promotion(code=code, discount_type=discount_type, value=Decimal(value), **kwargs)
        db.add(p)
        db.commit()
        return p

    return _make


@pytest.fixture
def book(db, customer, room, now, today):
    """Create a booking through the service; stays default to tomorrow for `nights` nights."""

    def _book(
        *,
        days_ahead: int = 1,
        nights: int = 2,
        code: str | None = None,
        fingerprint: UsageFingerprint | None = None,
        user: User | None = None,
        target_room: Room | None = None,
        at: datetime | None = None,
    ):
        check_in = today + timedelta(days=days_ahead)
        return booking_service.create_booking(
            db,
            user_id=(user or customer).id,
            room_id=(target_room or room).id,
            check_in_date=check_in,
            check_out_date=check_in + timedelta(days=nights),
            promotion_code=code,
            fingerprint=fingerprint,
            now=at or now,
        )

    return _book


@pytest.fixture
def pay(db, now):
    def _pay(booking_id: str, *, at: datetime | None = None, method: str = "CREDIT_CARD"):
        booking = db.get(Booking, booking_id)
        outcome = PaymentOutcome(method=method, amount=booking.total_price)
        return booking_service.confirm_payment(db, booking_id, payment=outcome, now=at or now)

    return _pay
