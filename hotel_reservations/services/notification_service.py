from __future__ import annotations

import logging
import smtplib
from contextlib import contextmanager
from email.message import EmailMessage
from typing import Iterator

from hotel_reservations.core.config import get_settings
from hotel_reservations.models.booking import Booking, BookingStatus

logger = logging.getLogger(__name__)

SUBJECTS = {
    BookingStatus.PENDING: "We received your booking",
    BookingStatus.CONFIRMED: "Your booking is confirmed",
    BookingStatus.CANCELLED: "Your booking has been cancelled",
    BookingStatus.CHECKED_IN: "Welcome, you are checked in",
    BookingStatus.CHECKED_OUT: "Thank you for staying with us",
    BookingStatus.NO_SHOW: "We missed you at check-in",
}


@contextmanager
def _smtp() -> Iterator[smtplib.SMTP]:
    # MailHog on localhost:1025 works for development.
    s = get_settings()
    smtp_cls = smtplib.SMTP_SSL if s.smtp_use_tls else smtplib.SMTP
    server = smtp_cls(s.smtp_host, s.smtp_port, timeout=10)
    try:
        if s.smtp_username:
            server.login(s.smtp_username, s.smtp_password)
        yield server
    finally:
        try:
            server.quit()
        except smtplib.SMTPException:
            logger.debug("SMTP quit failed", exc_info=True)


def send_email(to_email: str, subject: str, body: str) -> None:
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = get_settings().email_from
    msg["To"] = to_email
    msg.set_content(body)
    with _smtp() as server:
        server.send_message(msg)
    logger.debug("Sent mail %r to %s", subject, to_email)


def _render(booking: Booking) -> tuple[str, str]:
    settings = get_settings()
    subject = f"[{booking.public_id}] {SUBJECTS.get(booking.status, 'Booking update')}"
    lines = [
        f"Booking: {booking.public_id}",
        f"Stay: {booking.check_in_date.isoformat()} - {booking.check_out_date.isoformat()} ({booking.nights} night(s))",
        f"Total: {settings.currency} {booking.total_price}",
        f"Status: {booking.status}",
    ]
    if booking.status == BookingStatus.CONFIRMED:
        lines.append(f"Check-in QR code: {settings.public_base_url.rstrip('/')}/bookings/{booking.public_id}/qr")
    if booking.status == BookingStatus.CANCELLED and booking.refund_amount:
        lines.append(f"Refund: {settings.currency} {booking.refund_amount}")
    return subject, "\n".join(lines) + "\n"


def notify_status_change(booking: Booking) -> bool:
    """Tell the guest about the booking's current status.

    Fire-and-forget: delivery problems are logged and reported as False, the
    caller's committed transition stands either way.
    """
    settings = get_settings()
    if not settings.notifications_enabled:
        return False

    user = booking.user
    if user is None or not user.email:
        return False

    subject, body = _render(booking)
    try:
        send_email(user.email, subject, body)
    except (smtplib.SMTPException, OSError):
        logger.warning("Notification for booking %s (%s) failed", booking.public_id, booking.status, exc_info=True)
        return False
    return True
