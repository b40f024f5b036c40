from __future__ import annotations

import logging
import secrets
import string
import uuid
from datetime import date, datetime, timedelta
from typing import Any, Callable

from fastapi import Request
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from hotel_reservations.core.clock import ensure_utc, local_day_end, local_start_of, local_today, utcnow
from hotel_reservations.core.errors import storage_guard
from hotel_reservations.models.booking import Booking, BookingStatus, PaymentStatus
from hotel_reservations.models.hotel import Room
from hotel_reservations.models.settings import AppSettings
from hotel_reservations.schemas.booking import (
    BookingCreateError,
    BookingCreateResult,
    PaymentOutcome,
    TransitionAction,
    TransitionError,
    TransitionResult,
    check_stay_dates,
)
from hotel_reservations.schemas.promotion import BookingCandidate, UsageFingerprint
from hotel_reservations.services.audit_service import write_audit_log
from hotel_reservations.services.notification_service import notify_status_change
from hotel_reservations.services.promotion_service import money, refresh_promotion_states, validate_promotion
from hotel_reservations.services.refund_policy import compute_refund
from hotel_reservations.services.settings_service import get_or_create_settings

logger = logging.getLogger(__name__)

# Written once when the booking is created, never by a transition.
PROMOTION_SNAPSHOT_FIELDS = frozenset(
    {
        "promotion_id",
        "promotion_phone_hash",
        "promotion_card_identifier",
        "promotion_device_fingerprint",
        "promotion_ip_address",
        "promotion_used_at",
    }
)

_TXN_PREFIX = {"CREDIT_CARD": "CC", "PAYPAL": "PP", "BANK_TRANSFER": "BT"}


def generate_public_id(now: datetime) -> str:
    # Example: B-20261017-8F3K2
    rand = "".join(secrets.choice(string.ascii_uppercase + string.digits) for _ in range(5))
    return f"B-{now.strftime('%Y%m%d')}-{rand}"


def generate_transaction_id(method: str, now: datetime) -> str:
    digits = "".join(secrets.choice(string.digits) for _ in range(8))
    return f"{_TXN_PREFIX.get(method, 'TXN')}-{now.strftime('%Y%m%d')}-{digits}"


def issue_qr_token() -> str:
    return uuid.uuid4().hex


# --- policy timing ------------------------------------------------------------


def check_in_opens_at(booking: Booking, policy: AppSettings) -> datetime:
    return local_start_of(booking.check_in_date, policy.check_in_time)


def no_show_cutoff(booking: Booking, policy: AppSettings) -> datetime:
    return local_start_of(booking.check_in_date) + timedelta(hours=policy.no_show_grace_hours)


def auto_check_out_due_at(booking: Booking, policy: AppSettings) -> datetime:
    return local_day_end(booking.check_out_date) + timedelta(hours=policy.auto_check_out_grace_hours)


def pending_expires_at(booking: Booking, policy: AppSettings) -> datetime:
    return ensure_utc(booking.booked_at) + timedelta(hours=policy.auto_expire_hours)


# --- creation -----------------------------------------------------------------


def _room_is_taken(db: Session, room_id: str, check_in_date: date, check_out_date: date) -> bool:
    q = (
        select(Booking.id)
        .where(Booking.room_id == room_id)
        .where(Booking.status.in_(sorted(BookingStatus.ACTIVE)))
        .where(Booking.is_deleted == False)  # noqa: E712
        .where(Booking.check_in_date < check_out_date)
        .where(Booking.check_out_date > check_in_date)
        .limit(1)
    )
    return db.execute(q).first() is not None


def _unique_public_id(db: Session, now: datetime) -> str:
    public_id = generate_public_id(now)
    # Avoid collisions
    for _ in range(5):
        if db.execute(select(Booking.id).where(Booking.public_id == public_id)).first() is None:
            break
        public_id = generate_public_id(now)
    return public_id


def create_booking(
    db: Session,
    *,
    user_id: str,
    room_id: str,
    check_in_date: date,
    check_out_date: date,
    promotion_code: str | None = None,
    fingerprint: UsageFingerprint | None = None,
    now: datetime | None = None,
    request: Request | None = None,
) -> BookingCreateResult:
    """Validate a stay, apply an optional promotion and persist a PENDING booking.

    The promotion-usage snapshot is stamped in the same commit as the booking,
    so a promotion only counts as used once the booking exists.
    """
    now = ensure_utc(now) if now else utcnow()
    fingerprint = fingerprint or UsageFingerprint()

    problem = check_stay_dates(check_in_date, check_out_date)
    if problem is None and check_in_date < local_today(now):
        problem = "Check-in date is in the past"
    if problem:
        return BookingCreateResult(error=BookingCreateError.INVALID_DATES, message=problem)

    with storage_guard(db, "create booking"):
        room = db.get(Room, room_id)
        if room is None or room.is_deleted or not room.active or not room.hotel.active:
            return BookingCreateResult(error=BookingCreateError.ROOM_NOT_FOUND, message="Room not found")

        if _room_is_taken(db, room.id, check_in_date, check_out_date):
            return BookingCreateResult(error=BookingCreateError.ROOM_UNAVAILABLE, message="Room is not available for these dates")

        nights = (check_out_date - check_in_date).days
        subtotal = money(room.nightly_rate * nights)
        discount = money(0)
        total = subtotal
        outcome = None

        if promotion_code and promotion_code.strip():
            check = validate_promotion(
                db,
                code=promotion_code,
                candidate=BookingCandidate(nights=nights, subtotal=subtotal, user_id=user_id),
                fingerprint=fingerprint,
                now=now,
                lock=True,
            )
            if check.rejection is not None:
                db.rollback()
                return BookingCreateResult(
                    error=BookingCreateError.PROMOTION_REJECTED, message=check.rejection.message, rejection=check.rejection
                )
            outcome = check.outcome
            discount = outcome.discount_amount
            total = outcome.final_price

        booking = Booking(
            public_id=_unique_public_id(db, now),
            user_id=user_id,
            room_id=room.id,
            check_in_date=check_in_date,
            check_out_date=check_out_date,
            booked_at=now,
            subtotal_price=subtotal,
            discount_amount=discount,
            total_price=total,
            status=BookingStatus.PENDING,
            payment_status=PaymentStatus.PENDING,
        )
        if outcome is not None:
            booking.promotion_id = outcome.promotion_id
            booking.promotion_phone_hash = fingerprint.phone_hash
            booking.promotion_card_identifier = fingerprint.card_identifier
            booking.promotion_device_fingerprint = fingerprint.device_fingerprint
            booking.promotion_ip_address = fingerprint.ip_address
            booking.promotion_used_at = now

        db.add(booking)
        db.commit()
        db.refresh(booking)

        if outcome is not None:
            refresh_promotion_states(db, now=now, promotion_id=outcome.promotion_id)

    logger.info(
        "Booking created: %s user=%s room=%s nights=%s total=%s promotion=%s",
        booking.public_id, user_id, room.id, nights, total, outcome.code if outcome else "-",
    )
    write_audit_log(
        db,
        actor_user_id=user_id,
        action_type="BOOKING_CREATE",
        target_type="booking",
        target_id=booking.public_id,
        summary="Booking created",
        diff_json={"room_id": room.id, "nights": nights, "total": str(total), "promotion": outcome.code if outcome else None},
        request=request,
    )
    notify_status_change(booking)
    return BookingCreateResult(booking_id=booking.id, public_id=booking.public_id, message="Booking created")


# --- transitions --------------------------------------------------------------


def _load_booking(db: Session, booking_id: str) -> Booking | None:
    q = select(Booking).where(Booking.id == booking_id, Booking.is_deleted == False)  # noqa: E712
    return db.execute(q).scalar_one_or_none()


def _result(booking_id: str, action: TransitionAction, status: str | None, *, changed: bool = False,
            error: TransitionError | None = None, message: str = "") -> TransitionResult:
    if error is not None:
        logger.info("Booking %s %s refused: %s (%s)", booking_id, action.value, error.value, message)
    return TransitionResult(booking_id=booking_id, action=action, status=status, changed=changed, error=error, message=message)


def _precheck(
    db: Session, booking_id: str, action: TransitionAction, sources: frozenset[str], target: str
) -> tuple[Booking | None, TransitionResult | None]:
    booking = _load_booking(db, booking_id)
    if booking is None:
        return None, _result(booking_id, action, None, error=TransitionError.NOT_FOUND, message="Booking not found")
    if booking.status == target:
        return booking, _result(booking_id, action, booking.status, message="Already in target state")
    if booking.status not in sources:
        return booking, _result(
            booking_id, action, booking.status, error=TransitionError.INVALID_TRANSITION,
            message=f"Cannot apply {action.value} to a {booking.status} booking",
        )
    return booking, None


def _apply(
    db: Session,
    booking: Booking,
    *,
    action: TransitionAction,
    target: str,
    values: dict[str, Any],
    actor_user_id: str | None = None,
    request: Request | None = None,
) -> TransitionResult:
    """Conditional single-row update: only succeeds if the status is still what we read."""
    if PROMOTION_SNAPSHOT_FIELDS & values.keys():
        raise ValueError("promotion usage snapshot is immutable")

    expected = booking.status
    booking_id = booking.id
    with storage_guard(db, f"{action.value} booking"):
        res = db.execute(
            update(Booking)
            .where(Booking.id == booking_id, Booking.status == expected, Booking.is_deleted == False)  # noqa: E712
            .values(status=target, **values)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            db.rollback()
            current = _load_booking(db, booking_id)
            status = current.status if current else None
            if status == target:
                return _result(booking_id, action, status, message="Already in target state")
            return _result(
                booking_id, action, status, error=TransitionError.CONCURRENCY_CONFLICT,
                message=f"Booking changed from {expected} to {status} concurrently",
            )
        db.commit()
    db.refresh(booking)

    logger.info("Booking %s %s: %s -> %s", booking.public_id, action.value, expected, target)
    write_audit_log(
        db,
        actor_user_id=actor_user_id,
        action_type=f"BOOKING_{action.value}",
        target_type="booking",
        target_id=booking.public_id,
        summary=f"{expected} -> {target}",
        diff_json={"from": expected, "to": target},
        request=request,
    )
    notify_status_change(booking)
    return _result(booking_id, action, target, changed=True)


def confirm_payment(
    db: Session,
    booking_id: str,
    *,
    payment: PaymentOutcome,
    now: datetime | None = None,
    actor_user_id: str | None = None,
    request: Request | None = None,
) -> TransitionResult:
    """PENDING -> CONFIRMED once the payment processor reports success."""
    now = ensure_utc(now) if now else utcnow()
    action = TransitionAction.PAY
    booking, early = _precheck(db, booking_id, action, frozenset({BookingStatus.PENDING}), BookingStatus.CONFIRMED)
    if early is not None:
        return early

    if money(payment.amount) != money(booking.total_price):
        return _result(
            booking_id, action, booking.status, error=TransitionError.PAYMENT_MISMATCH,
            message=f"Payment of {money(payment.amount)} does not match booking total {money(booking.total_price)}",
        )

    values = {
        "payment_method": payment.method,
        "payment_amount": money(payment.amount),
        "payment_status": PaymentStatus.COMPLETED,
        "transaction_id": payment.transaction_id or generate_transaction_id(payment.method, now),
        "payment_at": now,
        "qr_token": booking.qr_token or issue_qr_token(),
    }
    return _apply(db, booking, action=action, target=BookingStatus.CONFIRMED, values=values, actor_user_id=actor_user_id, request=request)


def cancel_booking(
    db: Session,
    booking_id: str,
    *,
    reason: str = "",
    now: datetime | None = None,
    actor_user_id: str | None = None,
    request: Request | None = None,
) -> TransitionResult:
    """PENDING/CONFIRMED -> CANCELLED before the stay starts, with the refund recorded."""
    now = ensure_utc(now) if now else utcnow()
    action = TransitionAction.CANCEL
    sources = frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED})
    booking, early = _precheck(db, booking_id, action, sources, BookingStatus.CANCELLED)
    if early is not None:
        return early

    if booking.check_in_date < local_today(now):
        return _result(
            booking_id, action, booking.status, error=TransitionError.INVALID_TRANSITION,
            message="Cannot cancel a booking whose check-in date has passed",
        )

    policy = get_or_create_settings(db)
    refund = compute_refund(booking, policy, now)
    values: dict[str, Any] = {
        "cancelled_at": now,
        "cancel_reason": (reason or "Cancelled")[:500],
        "refund_amount": refund,
    }
    if refund > 0:
        values["payment_status"] = PaymentStatus.REFUNDED

    result = _apply(db, booking, action=action, target=BookingStatus.CANCELLED, values=values, actor_user_id=actor_user_id, request=request)
    if result.changed and booking.promotion_id:
        # A cancelled booking gives its promotion use back.
        refresh_promotion_states(db, now=now, promotion_id=booking.promotion_id)
    return result


def check_in(
    db: Session,
    booking_id: str,
    *,
    token: str,
    room_id: str | None = None,
    now: datetime | None = None,
    actor_user_id: str | None = None,
    request: Request | None = None,
) -> TransitionResult:
    """CONFIRMED -> CHECKED_IN when the guest presents the booking's QR token on a stay date."""
    now = ensure_utc(now) if now else utcnow()
    action = TransitionAction.CHECK_IN

    booking, early = _precheck(db, booking_id, action, frozenset({BookingStatus.CONFIRMED}), BookingStatus.CHECKED_IN)
    if early is not None:
        return early

    if not booking.qr_token or not secrets.compare_digest(booking.qr_token, token or ""):
        return _result(booking_id, action, booking.status, error=TransitionError.INVALID_TOKEN, message="Invalid or expired QR code")
    if room_id is not None and room_id != booking.room_id:
        return _result(booking_id, action, booking.status, error=TransitionError.INVALID_TOKEN, message="QR code belongs to another room")

    today = local_today(now)
    if not (booking.check_in_date <= today < booking.check_out_date):
        return _result(
            booking_id, action, booking.status, error=TransitionError.INVALID_TRANSITION,
            message=f"Check-in is only possible between {booking.check_in_date} and {booking.check_out_date}",
        )

    return _apply(
        db, booking, action=action, target=BookingStatus.CHECKED_IN, values={"check_in_time": now},
        actor_user_id=actor_user_id, request=request,
    )


def check_out(
    db: Session,
    booking_id: str,
    *,
    now: datetime | None = None,
    actor_user_id: str | None = None,
    request: Request | None = None,
) -> TransitionResult:
    now = ensure_utc(now) if now else utcnow()
    action = TransitionAction.CHECK_OUT
    booking, early = _precheck(db, booking_id, action, frozenset({BookingStatus.CHECKED_IN}), BookingStatus.CHECKED_OUT)
    if early is not None:
        return early

    policy = get_or_create_settings(db)
    if not policy.allow_same_day_checkout and booking.check_in_time is not None:
        if local_today(booking.check_in_time) == local_today(now):
            return _result(
                booking_id, action, booking.status, error=TransitionError.INVALID_TRANSITION,
                message="Cannot check out on the same day as check-in",
            )

    return _apply(
        db, booking, action=action, target=BookingStatus.CHECKED_OUT, values={"check_out_time": now},
        actor_user_id=actor_user_id, request=request,
    )


def mark_no_show(
    db: Session,
    booking_id: str,
    *,
    now: datetime | None = None,
    policy: AppSettings | None = None,
    actor_user_id: str | None = None,
    request: Request | None = None,
) -> TransitionResult:
    now = ensure_utc(now) if now else utcnow()
    action = TransitionAction.NO_SHOW
    booking, early = _precheck(db, booking_id, action, frozenset({BookingStatus.CONFIRMED}), BookingStatus.NO_SHOW)
    if early is not None:
        return early

    policy = policy or get_or_create_settings(db)
    if now < no_show_cutoff(booking, policy):
        return _result(booking_id, action, booking.status, error=TransitionError.INVALID_TRANSITION, message="Grace window has not elapsed")

    return _apply(db, booking, action=action, target=BookingStatus.NO_SHOW, values={}, actor_user_id=actor_user_id, request=request)


def auto_check_in(db: Session, booking_id: str, *, now: datetime | None = None, policy: AppSettings | None = None) -> TransitionResult:
    now = ensure_utc(now) if now else utcnow()
    action = TransitionAction.AUTO_CHECK_IN
    booking, early = _precheck(db, booking_id, action, frozenset({BookingStatus.CONFIRMED}), BookingStatus.CHECKED_IN)
    if early is not None:
        return early

    policy = policy or get_or_create_settings(db)
    if not policy.auto_check_in_enabled:
        return _result(booking_id, action, booking.status, error=TransitionError.INVALID_TRANSITION, message="Automatic check-in is disabled")
    if now < check_in_opens_at(booking, policy) or local_today(now) >= booking.check_out_date:
        return _result(booking_id, action, booking.status, error=TransitionError.INVALID_TRANSITION, message="Outside the check-in window")

    return _apply(db, booking, action=action, target=BookingStatus.CHECKED_IN, values={"check_in_time": now})


def auto_check_out(db: Session, booking_id: str, *, now: datetime | None = None, policy: AppSettings | None = None) -> TransitionResult:
    now = ensure_utc(now) if now else utcnow()
    action = TransitionAction.AUTO_CHECK_OUT
    booking, early = _precheck(db, booking_id, action, frozenset({BookingStatus.CHECKED_IN}), BookingStatus.CHECKED_OUT)
    if early is not None:
        return early

    policy = policy or get_or_create_settings(db)
    if now < auto_check_out_due_at(booking, policy):
        return _result(booking_id, action, booking.status, error=TransitionError.INVALID_TRANSITION, message="Check-out date has not elapsed")

    return _apply(db, booking, action=action, target=BookingStatus.CHECKED_OUT, values={"check_out_time": now})


def expire_pending(db: Session, booking_id: str, *, now: datetime | None = None, policy: AppSettings | None = None) -> TransitionResult:
    """Cancel an unpaid booking that sat in PENDING longer than the configured window."""
    now = ensure_utc(now) if now else utcnow()
    action = TransitionAction.EXPIRE
    booking, early = _precheck(db, booking_id, action, frozenset({BookingStatus.PENDING}), BookingStatus.CANCELLED)
    if early is not None:
        return early

    policy = policy or get_or_create_settings(db)
    if not policy.auto_expire_enabled or now < pending_expires_at(booking, policy):
        return _result(booking_id, action, booking.status, error=TransitionError.INVALID_TRANSITION, message="Not expired")

    values = {"cancelled_at": now, "cancel_reason": "AUTO_EXPIRE", "refund_amount": money(0)}
    result = _apply(db, booking, action=action, target=BookingStatus.CANCELLED, values=values)
    if result.changed and booking.promotion_id:
        refresh_promotion_states(db, now=now, promotion_id=booking.promotion_id)
    return result


_HANDLERS: dict[TransitionAction, Callable[..., TransitionResult]] = {
    TransitionAction.PAY: confirm_payment,
    TransitionAction.CANCEL: cancel_booking,
    TransitionAction.CHECK_IN: check_in,
    TransitionAction.CHECK_OUT: check_out,
    TransitionAction.NO_SHOW: mark_no_show,
    TransitionAction.AUTO_CHECK_IN: auto_check_in,
    TransitionAction.AUTO_CHECK_OUT: auto_check_out,
    TransitionAction.EXPIRE: expire_pending,
}


def transition_booking(db: Session, booking_id: str, action: TransitionAction | str, **params: Any) -> TransitionResult:
    """Single entry point for every lifecycle action; keyword params go to the action's handler."""
    return _HANDLERS[TransitionAction(action)](db, booking_id, **params)
