from __future__ import annotations

from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal

from hotel_reservations.core.clock import ensure_utc, local_start_of
from hotel_reservations.models.booking import Booking, PaymentStatus
from hotel_reservations.models.settings import AppSettings


def compute_refund(booking: Booking, policy: AppSettings, now: datetime) -> Decimal:
    """Refund owed when `booking` is cancelled at `now`.

    Nothing was paid: nothing to refund. Cancelled at least `full_refund_hours`
    before the local check-in time: full payment back. Later: `late_refund_percent`.
    """
    if booking.payment_status != PaymentStatus.COMPLETED or not booking.payment_amount:
        return Decimal("0.00")

    paid = Decimal(booking.payment_amount)
    check_in_at = local_start_of(booking.check_in_date, policy.check_in_time)
    if check_in_at - ensure_utc(now) >= timedelta(hours=policy.full_refund_hours):
        return paid.quantize(Decimal("0.01"))
    partial = paid * Decimal(policy.late_refund_percent) / Decimal(100)
    return partial.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
