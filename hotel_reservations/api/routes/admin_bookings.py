from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from hotel_reservations.api.responses import raise_for_transition
from hotel_reservations.core.deps import get_db, require_permissions
from hotel_reservations.models.booking import Booking
from hotel_reservations.models.hotel import Room
from hotel_reservations.models.user import User
from hotel_reservations.schemas.booking import BookingOut, CancelRequest, CheckInRequest, TransitionResult
from hotel_reservations.services import booking_service
from hotel_reservations.services.access_scope import (
    BOOKING_CANCEL,
    BOOKING_CHECK_IN_OUT,
    BOOKING_VIEW,
    can_access_booking,
    scoped_bookings,
)

router = APIRouter()


def _scoped_booking(db: Session, booking_id: str, user: User) -> Booking:
    b = db.get(Booking, booking_id)
    # Out-of-scope bookings look missing rather than forbidden.
    if b is None or b.is_deleted or not can_access_booking(user, b):
        raise HTTPException(status_code=404, detail="Not found")
    return b


@router.get("", response_model=list[BookingOut])
def list_bookings(
    from_date: date | None = Query(default=None),
    to_date: date | None = Query(default=None),
    hotel_id: str | None = None,
    status: str | None = None,
    db: Session = Depends(get_db),
    user: User = Depends(require_permissions([BOOKING_VIEW])),
):
    q = scoped_bookings(user)
    if from_date:
        q = q.where(Booking.check_in_date >= from_date)
    if to_date:
        q = q.where(Booking.check_in_date <= to_date)
    if hotel_id:
        q = q.where(Booking.room_id.in_(select(Room.id).where(Room.hotel_id == hotel_id)))
    if status:
        q = q.where(Booking.status == status)

    q = q.order_by(Booking.check_in_date.asc(), Booking.booked_at.asc())
    return db.execute(q.limit(1000)).scalars().all()


@router.post("/check-in", response_model=TransitionResult)
def check_in_by_qr(payload: CheckInRequest, request: Request, db: Session = Depends(get_db), user: User = Depends(require_permissions([BOOKING_CHECK_IN_OUT]))):
    b = db.execute(scoped_bookings(user).where(Booking.qr_token == payload.token)).scalar_one_or_none()
    if b is None:
        raise HTTPException(status_code=400, detail={"error": "INVALID_TOKEN", "message": "Invalid or expired QR code"})
    return raise_for_transition(
        booking_service.check_in(db, b.id, token=payload.token, room_id=payload.room_id, actor_user_id=user.id, request=request)
    )


@router.get("/{booking_id}", response_model=BookingOut)
def get_booking(booking_id: str, db: Session = Depends(get_db), user: User = Depends(require_permissions([BOOKING_VIEW]))):
    return _scoped_booking(db, booking_id, user)


@router.post("/{booking_id}/cancel", response_model=TransitionResult)
def cancel_booking(booking_id: str, payload: CancelRequest, request: Request, db: Session = Depends(get_db), user: User = Depends(require_permissions([BOOKING_CANCEL]))):
    _scoped_booking(db, booking_id, user)
    return raise_for_transition(
        booking_service.cancel_booking(db, booking_id, reason=payload.reason or "Cancelled by hotel", actor_user_id=user.id, request=request)
    )


@router.post("/{booking_id}/check-out", response_model=TransitionResult)
def check_out(booking_id: str, request: Request, db: Session = Depends(get_db), user: User = Depends(require_permissions([BOOKING_CHECK_IN_OUT]))):
    _scoped_booking(db, booking_id, user)
    return raise_for_transition(booking_service.check_out(db, booking_id, actor_user_id=user.id, request=request))
