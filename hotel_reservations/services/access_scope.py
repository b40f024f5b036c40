from __future__ import annotations

from sqlalchemy import Select, select

from hotel_reservations.models.booking import Booking
from hotel_reservations.models.hotel import Room
from hotel_reservations.models.user import User, UserRoleName

BOOKING_VIEW = "BOOKING_VIEW"
BOOKING_CANCEL = "BOOKING_CANCEL"
BOOKING_CHECK_IN_OUT = "BOOKING_CHECK_IN_OUT"
PROMOTION_MANAGE = "PROMOTION_MANAGE"
SETTINGS_MANAGE = "SETTINGS_MANAGE"
SWEEP_RUN = "SWEEP_RUN"

ALL_PERMISSIONS = frozenset({BOOKING_VIEW, BOOKING_CANCEL, BOOKING_CHECK_IN_OUT, PROMOTION_MANAGE, SETTINGS_MANAGE, SWEEP_RUN})

ROLE_PERMISSIONS: dict[str, frozenset[str]] = {
    UserRoleName.ADMIN: ALL_PERMISSIONS,
    UserRoleName.MANAGER: frozenset({BOOKING_VIEW, BOOKING_CANCEL, BOOKING_CHECK_IN_OUT, PROMOTION_MANAGE}),
    UserRoleName.STAFF: frozenset({BOOKING_VIEW, BOOKING_CHECK_IN_OUT}),
    UserRoleName.CUSTOMER: frozenset(),
}


def get_user_permissions(user: User) -> frozenset[str]:
    return ROLE_PERMISSIONS.get(user.role, frozenset())


def scoped_bookings(user: User) -> Select:
    """Bookings the user may see: all for admins, their hotel for managers/staff, their own otherwise."""
    q = select(Booking).where(Booking.is_deleted == False)  # noqa: E712
    if user.role == UserRoleName.ADMIN:
        return q
    if user.role in UserRoleName.HOTEL_SCOPED:
        return q.join(Room, Room.id == Booking.room_id).where(Room.hotel_id == user.hotel_id)
    return q.where(Booking.user_id == user.id)


def can_access_booking(user: User, booking: Booking) -> bool:
    if user.role == UserRoleName.ADMIN:
        return True
    if user.role in UserRoleName.HOTEL_SCOPED:
        return user.hotel_id is not None and booking.room.hotel_id == user.hotel_id
    return booking.user_id == user.id
