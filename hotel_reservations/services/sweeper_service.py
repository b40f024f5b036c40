from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy import select
from sqlalchemy.orm import Session

from hotel_reservations.core.clock import ensure_utc, local_start_of, local_today, utcnow
from hotel_reservations.models.booking import Booking, BookingStatus
from hotel_reservations.models.settings import AppSettings
from hotel_reservations.schemas.booking import SweepReport, TransitionAction, TransitionError, TransitionResult
from hotel_reservations.services import booking_service
from hotel_reservations.services.promotion_service import refresh_promotion_states
from hotel_reservations.services.settings_service import get_or_create_settings

logger = logging.getLogger(__name__)


_REPORT_FIELDS = {
    TransitionAction.AUTO_CHECK_OUT: "checked_out",
    TransitionAction.AUTO_CHECK_IN: "checked_in",
    TransitionAction.NO_SHOW: "no_show",
    TransitionAction.EXPIRE: "expired",
}


def _candidate_ids(db: Session, status: str, *conditions) -> list[str]:
    q = select(Booking.id).where(Booking.status == status, Booking.is_deleted == False)  # noqa: E712
    for cond in conditions:
        q = q.where(cond)
    return list(db.execute(q.order_by(Booking.check_in_date, Booking.id)).scalars().all())


def _advance_confirmed(db: Session, booking_id: str, *, now: datetime, policy: AppSettings) -> TransitionResult | None:
    """Auto check-in or no-show for a confirmed booking, whichever is due."""
    booking = db.get(Booking, booking_id)
    if booking is None:
        return None
    if policy.auto_check_in_enabled and local_today(now) < booking.check_out_date:
        if now >= local_start_of(booking.check_in_date, policy.check_in_time):
            return booking_service.auto_check_in(db, booking_id, now=now, policy=policy)
        return None
    if now >= booking_service.no_show_cutoff(booking, policy):
        return booking_service.mark_no_show(db, booking_id, now=now, policy=policy)
    return None


def _run_one(db: Session, booking_id: str, step: Callable[..., TransitionResult | None], report: SweepReport, **kwargs) -> None:
    try:
        result = step(db, booking_id, **kwargs)
    except Exception:
        # One bad row must not stop the sweep.
        db.rollback()
        logger.exception("Sweep step %s failed for booking %s", step.__name__, booking_id)
        report.failed += 1
        return
    if result is None:
        return
    if result.changed:
        field = _REPORT_FIELDS[result.action]
        setattr(report, field, getattr(report, field) + 1)
    elif result.error == TransitionError.CONCURRENCY_CONFLICT:
        logger.info("Sweep skipped booking %s: changed concurrently", booking_id)


def run_sweep(db: Session, now: datetime | None = None, policy: AppSettings | None = None) -> SweepReport:
    """Advance bookings whose time-based transitions are due.

    Order: promotion states, overdue check-outs, confirmed bookings whose
    check-in day has started (auto check-in or no-show), then unpaid
    pending bookings when auto-expire is on. Each booking is handled in its
    own transaction; a failure is counted and the sweep moves on.
    """
    now = ensure_utc(now) if now else utcnow()
    policy = policy or get_or_create_settings(db)
    report = SweepReport()

    try:
        report.promotions_changed = refresh_promotion_states(db, now=now)
    except Exception:
        db.rollback()
        logger.exception("Promotion state refresh failed")
        report.failed += 1

    today = local_today(now)

    # Open stays whose check-out day (plus grace) has passed.
    for booking_id in _candidate_ids(db, BookingStatus.CHECKED_IN, Booking.check_out_date <= today):
        _run_one(db, booking_id, booking_service.auto_check_out, report, now=now, policy=policy)

    # Confirmed bookings whose check-in day has begun.
    for booking_id in _candidate_ids(db, BookingStatus.CONFIRMED, Booking.check_in_date <= today):
        _run_one(db, booking_id, _advance_confirmed, report, now=now, policy=policy)

    if policy.auto_expire_enabled:
        cutoff = now - timedelta(hours=policy.auto_expire_hours)
        for booking_id in _candidate_ids(db, BookingStatus.PENDING, Booking.booked_at <= cutoff):
            _run_one(db, booking_id, booking_service.expire_pending, report, now=now, policy=policy)

    logger.info(
        "Sweep done: checked_out=%s checked_in=%s no_show=%s expired=%s failed=%s promotions_changed=%s",
        report.checked_out, report.checked_in, report.no_show, report.expired, report.failed, report.promotions_changed,
    )
    return report
