from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from hotel_reservations.core.clock import local_today, utcnow
from hotel_reservations.core.deps import get_db
from hotel_reservations.core.security import create_access_token
from hotel_reservations.main import app
from hotel_reservations.models.booking import Booking, BookingStatus
from hotel_reservations.models.hotel import Hotel, Room
from hotel_reservations.models.user import UserRoleName


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def auth(user) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id, role=user.role)}"}


@pytest.fixture
def stay():
    start = local_today(utcnow()) + timedelta(days=10)
    return {"check_in_date": start.isoformat(), "check_out_date": (start + timedelta(days=2)).isoformat()}


@pytest.fixture
def other_hotel_room(db):
    h = Hotel(name="Hillside Lodge")
    db.add(h)
    db.flush()
    r = Room(hotel_id=h.id, number="1", nightly_rate=Decimal("80.00"))
    db.add(r)
    db.commit()
    return r


def _create(client, user, room, stay, **extra):
    return client.post("/api/bookings", json={"room_id": room.id, **stay, **extra}, headers=auth(user))


def test_anonymous_promotion_check(client, room, stay, make_promotion):
    make_promotion("SAVE10")
    res = client.post("/api/promotions/validate", json={"code": "save10", "room_id": room.id, **stay})
    assert res.status_code == 200
    body = res.json()
    assert body["valid"] is True
    assert body["subtotal"] == "200.00"
    assert body["discount_amount"] == "20.00"
    assert body["final_price"] == "180.00"


def test_promotion_check_reports_reason(client, room, stay):
    res = client.post("/api/promotions/validate", json={"code": "NOPE", "room_id": room.id, **stay})
    assert res.json()["valid"] is False
    assert res.json()["reason"] == "NOT_FOUND"


def test_booking_requires_login(client, room, stay):
    res = client.post("/api/bookings", json={"room_id": room.id, **stay})
    assert res.status_code == 401


def test_garbage_token_is_rejected(client):
    res = client.get("/api/bookings", headers={"Authorization": "Bearer not-a-jwt"})
    assert res.status_code == 401


def test_guest_books_pays_and_cancels(client, customer, room, stay, sent_emails):
    res = _create(client, customer, room, stay)
    assert res.status_code == 201
    booking = res.json()
    assert booking["status"] == BookingStatus.PENDING
    assert booking["total_price"] == "200.00"

    listed = client.get("/api/bookings", headers=auth(customer)).json()
    assert [b["id"] for b in listed] == [booking["id"]]

    paid = client.post(
        f"/api/bookings/{booking['id']}/pay",
        json={"method": "CREDIT_CARD", "amount": booking["total_price"]},
        headers=auth(customer),
    )
    assert paid.status_code == 200
    assert paid.json()["status"] == BookingStatus.CONFIRMED

    cancelled = client.post(f"/api/bookings/{booking['id']}/cancel", json={"reason": "plans changed"}, headers=auth(customer))
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == BookingStatus.CANCELLED
    assert len(sent_emails) == 3


def test_reversed_dates_fail_validation(client, customer, room, stay):
    res = _create(client, customer, room, {"check_in_date": stay["check_out_date"], "check_out_date": stay["check_in_date"]})
    assert res.status_code == 422


def test_rejected_promotion_returns_reason(client, customer, room, stay):
    res = _create(client, customer, room, stay, promotion_code="NOPE")
    assert res.status_code == 400
    assert res.json()["detail"]["reason"] == "NOT_FOUND"


def test_double_booking_conflicts(client, customer, room, stay):
    assert _create(client, customer, room, stay).status_code == 201
    res = _create(client, customer, room, stay)
    assert res.status_code == 409
    assert res.json()["detail"]["error"] == "ROOM_UNAVAILABLE"


def test_wrong_payment_amount(client, customer, room, stay):
    booking = _create(client, customer, room, stay).json()
    res = client.post(f"/api/bookings/{booking['id']}/pay", json={"method": "PAYPAL", "amount": "1.00"}, headers=auth(customer))
    assert res.status_code == 400
    assert res.json()["detail"]["error"] == "PAYMENT_MISMATCH"


def test_guests_cannot_touch_other_bookings(client, customer, make_user, room, stay):
    booking = _create(client, customer, room, stay).json()
    stranger = make_user()
    res = client.post(f"/api/bookings/{booking['id']}/cancel", json={}, headers=auth(stranger))
    assert res.status_code == 404


def test_customer_has_no_admin_access(client, customer):
    assert client.get("/api/admin/bookings", headers=auth(customer)).status_code == 403


def test_staff_see_only_their_hotel(client, db, customer, hotel, room, other_hotel_room, stay, make_user):
    mine = _create(client, customer, room, stay).json()
    theirs = _create(client, customer, other_hotel_room, stay).json()
    staff = make_user(UserRoleName.STAFF, hotel_id=hotel.id)

    listed = client.get("/api/admin/bookings", headers=auth(staff)).json()
    assert [b["id"] for b in listed] == [mine["id"]]
    assert client.get(f"/api/admin/bookings/{mine['id']}", headers=auth(staff)).status_code == 200
    assert client.get(f"/api/admin/bookings/{theirs['id']}", headers=auth(staff)).status_code == 404

    admin = make_user(UserRoleName.ADMIN)
    assert len(client.get("/api/admin/bookings", headers=auth(admin)).json()) == 2


def test_staff_cannot_cancel_but_manager_can(client, customer, hotel, room, stay, make_user):
    booking = _create(client, customer, room, stay).json()
    staff = make_user(UserRoleName.STAFF, hotel_id=hotel.id)
    manager = make_user(UserRoleName.MANAGER, hotel_id=hotel.id)

    assert client.post(f"/api/admin/bookings/{booking['id']}/cancel", json={}, headers=auth(staff)).status_code == 403
    res = client.post(f"/api/admin/bookings/{booking['id']}/cancel", json={"reason": "overbooked"}, headers=auth(manager))
    assert res.status_code == 200
    assert res.json()["status"] == BookingStatus.CANCELLED


def test_qr_check_in_and_check_out(client, db, customer, hotel, room, make_user):
    today = local_today(utcnow())
    stay = {"check_in_date": today.isoformat(), "check_out_date": (today + timedelta(days=1)).isoformat()}
    booking = _create(client, customer, room, stay).json()
    client.post(f"/api/bookings/{booking['id']}/pay", json={"method": "CREDIT_CARD", "amount": booking["total_price"]}, headers=auth(customer))
    token = db.get(Booking, booking["id"]).qr_token
    staff = make_user(UserRoleName.STAFF, hotel_id=hotel.id)

    bad = client.post("/api/admin/bookings/check-in", json={"token": "nope"}, headers=auth(staff))
    assert bad.status_code == 400

    res = client.post("/api/admin/bookings/check-in", json={"token": token, "room_id": room.id}, headers=auth(staff))
    assert res.status_code == 200
    assert res.json()["status"] == BookingStatus.CHECKED_IN

    # Same-day check-out is off by default.
    res = client.post(f"/api/admin/bookings/{booking['id']}/check-out", headers=auth(staff))
    assert res.status_code == 409


def test_manual_sweep_is_admin_only(client, make_user):
    manager = make_user(UserRoleName.MANAGER)
    assert client.post("/api/admin/sweep", headers=auth(manager)).status_code == 403

    admin = make_user(UserRoleName.ADMIN)
    res = client.post("/api/admin/sweep", headers=auth(admin))
    assert res.status_code == 200
    assert res.json()["total_updated"] == 0


def test_manager_manages_promotions(client, make_user):
    manager = make_user(UserRoleName.MANAGER)
    payload = {"code": "summer", "discount_type": "PERCENTAGE", "value": "15", "max_total_uses": 100}

    created = client.post("/api/admin/promotions", json=payload, headers=auth(manager))
    assert created.status_code == 201
    promo = created.json()
    assert promo["code"] == "SUMMER"

    assert client.post("/api/admin/promotions", json=payload, headers=auth(manager)).status_code == 409

    patched = client.patch(f"/api/admin/promotions/{promo['id']}", json={"active": False}, headers=auth(manager))
    assert patched.json()["active"] is False

    assert client.delete(f"/api/admin/promotions/{promo['id']}", headers=auth(manager)).status_code == 200
    assert client.get(f"/api/admin/promotions/{promo['id']}", headers=auth(manager)).status_code == 404


def test_invalid_promotion_configuration(client, make_user):
    admin = make_user(UserRoleName.ADMIN)
    res = client.post("/api/admin/promotions", json={"code": "X", "discount_type": "PERCENTAGE", "value": "120"}, headers=auth(admin))
    assert res.status_code == 422


def test_policy_settings(client, make_user):
    admin = make_user(UserRoleName.ADMIN)
    res = client.patch("/api/admin/settings", json={"no_show_grace_hours": 18}, headers=auth(admin))
    assert res.status_code == 200
    assert res.json()["no_show_grace_hours"] == 18
    assert client.get("/api/admin/settings", headers=auth(make_user(UserRoleName.MANAGER))).status_code == 403
