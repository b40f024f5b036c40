# Import all models so that SQLAlchemy registers them for metadata.create_all
from hotel_reservations.models.hotel import Hotel, Room
from hotel_reservations.models.user import User, UserRoleName
from hotel_reservations.models.promotion import Promotion, DiscountType, DeactivationReason
from hotel_reservations.models.booking import Booking, BookingStatus, PaymentMethod, PaymentStatus
from hotel_reservations.models.audit_log import AuditLog
from hotel_reservations.models.settings import AppSettings

__all__ = [
    "Hotel",
    "Room",
    "User",
    "UserRoleName",
    "Promotion",
    "DiscountType",
    "DeactivationReason",
    "Booking",
    "BookingStatus",
    "PaymentMethod",
    "PaymentStatus",
    "AuditLog",
    "AppSettings",
]
