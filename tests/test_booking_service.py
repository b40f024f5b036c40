from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy import update

from hotel_reservations.models.booking import Booking, BookingStatus, PaymentStatus
from hotel_reservations.schemas.booking import (
    BookingCreateError,
    PaymentOutcome,
    TransitionAction,
    TransitionError,
)
from hotel_reservations.schemas.promotion import RejectionReason, UsageFingerprint
from hotel_reservations.services import booking_service
from hotel_reservations.services.settings_service import update_settings


def _local(y, m, d, hh, mm=0) -> datetime:
    # Asia/Kuala_Lumpur is UTC+8 all year
    return datetime(y, m, d, hh, mm, tzinfo=timezone.utc) - timedelta(hours=8)


def _status(db, booking_id) -> str:
    db.expire_all()
    return db.get(Booking, booking_id).status


def test_create_booking_without_promotion(db, book):
    result = book(nights=3)
    assert result.ok
    assert result.public_id.startswith("B-20260301-")

    b = db.get(Booking, result.booking_id)
    assert b.status == BookingStatus.PENDING
    assert b.payment_status == PaymentStatus.PENDING
    assert b.subtotal_price == Decimal("300.00")
    assert b.discount_amount == Decimal("0.00")
    assert b.total_price == Decimal("300.00")
    assert b.promotion_id is None and b.promotion_used_at is None
    assert b.qr_token is None


def test_create_booking_with_promotion_stamps_usage_snapshot(db, book, make_promotion, now):
    promo = make_promotion("SAVE10")
    fp = UsageFingerprint(phone_hash="ph", card_identifier="4242-abcdabcd", device_fingerprint="dev", ip_address="203.0.113.9")
    result = book(nights=3, code="save10", fingerprint=fp)

    b = db.get(Booking, result.booking_id)
    assert b.discount_amount == Decimal("30.00")
    assert b.total_price == Decimal("270.00")
    assert b.discount_amount + b.total_price == b.subtotal_price
    assert b.promotion_id == promo.id
    assert b.promotion_phone_hash == "ph"
    assert b.promotion_card_identifier == "4242-abcdabcd"
    assert b.promotion_device_fingerprint == "dev"
    assert b.promotion_ip_address == "203.0.113.9"
    assert b.promotion_used_at is not None


def test_rejected_promotion_creates_nothing(db, book):
    result = book(code="MISSING")
    assert result.error == BookingCreateError.PROMOTION_REJECTED
    assert result.rejection.reason == RejectionReason.NOT_FOUND
    assert db.query(Booking).count() == 0


def test_create_booking_rejects_past_dates(book):
    result = book(days_ahead=-1)
    assert result.error == BookingCreateError.INVALID_DATES


def test_create_booking_rejects_reversed_dates(db, customer, room, today, now):
    result = booking_service.create_booking(
        db, user_id=customer.id, room_id=room.id, check_in_date=today + timedelta(days=3), check_out_date=today + timedelta(days=3), now=now
    )
    assert result.error == BookingCreateError.INVALID_DATES


def test_unknown_room(db, customer, today, now):
    result = booking_service.create_booking(
        db, user_id=customer.id, room_id="nope", check_in_date=today, check_out_date=today + timedelta(days=1), now=now
    )
    assert result.error == BookingCreateError.ROOM_NOT_FOUND


def test_overlapping_stays_are_refused_until_cancelled(db, book, now):
    first = book(days_ahead=1, nights=3)
    assert book(days_ahead=2, nights=1).error == BookingCreateError.ROOM_UNAVAILABLE
    # Back-to-back stays share no night.
    assert book(days_ahead=4, nights=1).ok

    booking_service.cancel_booking(db, first.booking_id, now=now)
    assert book(days_ahead=2, nights=1).ok


def test_payment_confirms_and_issues_qr(db, book, pay):
    result = book()
    res = pay(result.booking_id)
    assert res.ok and res.changed
    assert res.status == BookingStatus.CONFIRMED

    b = db.get(Booking, result.booking_id)
    assert b.payment_status == PaymentStatus.COMPLETED
    assert b.payment_amount == b.total_price
    assert b.transaction_id.startswith("CC-20260301-")
    assert len(b.qr_token) == 32


def test_payment_is_idempotent(db, book, pay):
    result = book()
    pay(result.booking_id)
    token = db.get(Booking, result.booking_id).qr_token

    again = pay(result.booking_id)
    assert again.ok and not again.changed
    assert again.status == BookingStatus.CONFIRMED
    assert db.get(Booking, result.booking_id).qr_token == token


def test_payment_amount_must_match(db, book, now):
    result = book()
    res = booking_service.confirm_payment(db, result.booking_id, payment=PaymentOutcome(method="PAYPAL", amount=Decimal("1.00")), now=now)
    assert res.error == TransitionError.PAYMENT_MISMATCH
    assert _status(db, result.booking_id) == BookingStatus.PENDING


def test_unknown_booking(db, now):
    res = booking_service.cancel_booking(db, "missing", now=now)
    assert res.error == TransitionError.NOT_FOUND


def test_cancel_unpaid_booking_refunds_nothing(db, book, now):
    result = book()
    res = booking_service.cancel_booking(db, result.booking_id, reason="changed plans", now=now)
    assert res.changed

    b = db.get(Booking, result.booking_id)
    assert b.status == BookingStatus.CANCELLED
    assert b.refund_amount == Decimal("0.00")
    assert b.payment_status == PaymentStatus.PENDING
    assert b.cancel_reason == "changed plans"


def test_early_cancellation_gets_full_refund(db, book, pay, now):
    # Check-in at 14:00 on 2026-03-03, cancelled two days ahead.
    result = book(days_ahead=2)
    pay(result.booking_id)
    booking_service.cancel_booking(db, result.booking_id, now=now)

    b = db.get(Booking, result.booking_id)
    assert b.refund_amount == Decimal("200.00")
    assert b.payment_status == PaymentStatus.REFUNDED


def test_late_cancellation_gets_partial_refund(db, book, pay, now):
    result = book(days_ahead=1)
    pay(result.booking_id)
    # 23 hours before the 14:00 check-in on 2026-03-02
    booking_service.cancel_booking(db, result.booking_id, now=_local(2026, 3, 1, 15))

    b = db.get(Booking, result.booking_id)
    assert b.refund_amount == Decimal("160.00")
    assert b.payment_status == PaymentStatus.REFUNDED


def test_refund_policy_is_configurable(db, book, pay, now):
    update_settings(db, {"full_refund_hours": 72, "late_refund_percent": 50})
    result = book(days_ahead=2)
    pay(result.booking_id)
    booking_service.cancel_booking(db, result.booking_id, now=now)
    assert db.get(Booking, result.booking_id).refund_amount == Decimal("100.00")


def test_cancel_is_idempotent(db, book, now):
    result = book()
    booking_service.cancel_booking(db, result.booking_id, now=now)
    again = booking_service.cancel_booking(db, result.booking_id, now=now)
    assert again.ok and not again.changed


def test_cannot_cancel_after_check_in_date(db, book, pay, now):
    result = book(days_ahead=1, nights=3)
    pay(result.booking_id)
    res = booking_service.cancel_booking(db, result.booking_id, now=now + timedelta(days=2))
    assert res.error == TransitionError.INVALID_TRANSITION
    assert _status(db, result.booking_id) == BookingStatus.CONFIRMED


def test_check_in_requires_valid_token_and_stay_date(db, book, pay, now):
    result = book(days_ahead=1, nights=2)
    pay(result.booking_id)
    b = db.get(Booking, result.booking_id)
    token = b.qr_token

    assert booking_service.check_in(db, b.id, token="wrong", now=now).error == TransitionError.INVALID_TOKEN
    assert booking_service.check_in(db, b.id, token=token, room_id="other-room", now=now).error == TransitionError.INVALID_TOKEN
    # Still the day before arrival
    assert booking_service.check_in(db, b.id, token=token, now=now).error == TransitionError.INVALID_TRANSITION

    res = booking_service.check_in(db, b.id, token=token, room_id=b.room_id, now=_local(2026, 3, 2, 15))
    assert res.changed and res.status == BookingStatus.CHECKED_IN
    assert db.get(Booking, b.id).check_in_time is not None


def test_check_in_needs_a_confirmed_booking(db, book):
    result = book()
    res = booking_service.check_in(db, result.booking_id, token="anything")
    assert res.error == TransitionError.INVALID_TRANSITION
    assert _status(db, result.booking_id) == BookingStatus.PENDING


def test_check_in_of_cancelled_booking_is_invalid_transition(db, book, pay, now):
    result = book(days_ahead=1)
    pay(result.booking_id)
    token = db.get(Booking, result.booking_id).qr_token
    booking_service.cancel_booking(db, result.booking_id, now=now)

    res = booking_service.check_in(db, result.booking_id, token=token, now=_local(2026, 3, 2, 15))
    assert res.error == TransitionError.INVALID_TRANSITION
    assert _status(db, result.booking_id) == BookingStatus.CANCELLED


def test_repeated_check_in_is_a_no_op(db, book, pay):
    result = book(days_ahead=1)
    pay(result.booking_id)
    token = db.get(Booking, result.booking_id).qr_token
    booking_service.check_in(db, result.booking_id, token=token, now=_local(2026, 3, 2, 15))

    again = booking_service.check_in(db, result.booking_id, token=token, now=_local(2026, 3, 2, 16))
    assert again.ok and not again.changed
    assert again.status == BookingStatus.CHECKED_IN


def test_same_day_check_out_is_refused_by_default(db, book, pay):
    result = book(days_ahead=1, nights=2)
    pay(result.booking_id)
    token = db.get(Booking, result.booking_id).qr_token
    booking_service.check_in(db, result.booking_id, token=token, now=_local(2026, 3, 2, 15))

    res = booking_service.check_out(db, result.booking_id, now=_local(2026, 3, 2, 20))
    assert res.error == TransitionError.INVALID_TRANSITION

    res = booking_service.check_out(db, result.booking_id, now=_local(2026, 3, 4, 10))
    assert res.changed and res.status == BookingStatus.CHECKED_OUT


def test_same_day_check_out_when_allowed(db, book, pay):
    update_settings(db, {"allow_same_day_checkout": True})
    result = book(days_ahead=1, nights=2)
    pay(result.booking_id)
    token = db.get(Booking, result.booking_id).qr_token
    booking_service.check_in(db, result.booking_id, token=token, now=_local(2026, 3, 2, 15))
    assert booking_service.check_out(db, result.booking_id, now=_local(2026, 3, 2, 20)).changed


@pytest.mark.parametrize("action", [TransitionAction.CANCEL, TransitionAction.NO_SHOW, TransitionAction.AUTO_CHECK_OUT])
def test_terminal_states_accept_no_transition(db, book, action, now):
    result = book()
    booking_service.cancel_booking(db, result.booking_id, now=now)
    if action == TransitionAction.CANCEL:
        # CANCELLED is the target: idempotent no-op
        res = booking_service.transition_booking(db, result.booking_id, action, now=now)
        assert res.ok and not res.changed
    else:
        res = booking_service.transition_booking(db, result.booking_id, action, now=now + timedelta(days=10))
        assert res.error == TransitionError.INVALID_TRANSITION
    assert _status(db, result.booking_id) == BookingStatus.CANCELLED


def test_transition_dispatch_by_name(db, book, now):
    result = book()
    booking = db.get(Booking, result.booking_id)
    res = booking_service.transition_booking(
        db, result.booking_id, "PAY", payment=PaymentOutcome(method="BANK_TRANSFER", amount=booking.total_price), now=now
    )
    assert res.status == BookingStatus.CONFIRMED
    assert db.get(Booking, result.booking_id).transaction_id.startswith("BT-")


def test_concurrent_change_is_reported_as_conflict(db, book):
    result = book()
    db.execute(update(Booking).where(Booking.id == result.booking_id).values(status=BookingStatus.CANCELLED))
    db.commit()

    stale = SimpleNamespace(id=result.booking_id, status=BookingStatus.PENDING)
    res = booking_service._apply(db, stale, action=TransitionAction.PAY, target=BookingStatus.CONFIRMED, values={})
    assert res.error == TransitionError.CONCURRENCY_CONFLICT
    assert res.status == BookingStatus.CANCELLED


def test_concurrent_identical_transition_is_a_no_op(db, book):
    result = book()
    db.execute(update(Booking).where(Booking.id == result.booking_id).values(status=BookingStatus.CONFIRMED))
    db.commit()

    stale = SimpleNamespace(id=result.booking_id, status=BookingStatus.PENDING)
    res = booking_service._apply(db, stale, action=TransitionAction.PAY, target=BookingStatus.CONFIRMED, values={})
    assert res.ok and not res.changed


def test_promotion_snapshot_cannot_be_rewritten(db, book):
    result = book()
    booking = db.get(Booking, result.booking_id)
    with pytest.raises(ValueError):
        booking_service._apply(
            db, booking, action=TransitionAction.PAY, target=BookingStatus.CONFIRMED, values={"promotion_phone_hash": "x"}
        )


def test_snapshot_survives_cancellation(db, book, make_promotion, now):
    make_promotion("SAVE10")
    result = book(code="SAVE10", fingerprint=UsageFingerprint(phone_hash="ph"))
    booking_service.cancel_booking(db, result.booking_id, now=now)

    b = db.get(Booking, result.booking_id)
    assert b.promotion_phone_hash == "ph"
    assert b.promotion_used_at is not None


def test_every_status_change_notifies_the_guest(db, book, pay, sent_emails):
    result = book()
    pay(result.booking_id)
    subjects = [s for _, s, _ in sent_emails]
    assert len(subjects) == 2
    assert "We received your booking" in subjects[0]
    assert "Your booking is confirmed" in subjects[1]
    assert "/qr" in sent_emails[1][2]


def test_notification_failure_does_not_undo_transition(db, book, monkeypatch):
    import smtplib

    from hotel_reservations.services import notification_service

    def _boom(*args, **kwargs):
        raise smtplib.SMTPException("down")

    monkeypatch.setattr(notification_service, "send_email", _boom)
    result = book()
    assert result.ok
    assert _status(db, result.booking_id) == BookingStatus.PENDING
