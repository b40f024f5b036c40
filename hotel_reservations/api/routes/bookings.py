from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from hotel_reservations.api.responses import raise_for_create, raise_for_transition
from hotel_reservations.core.deps import get_current_user, get_db
from hotel_reservations.models.booking import Booking
from hotel_reservations.models.user import User
from hotel_reservations.schemas.booking import BookingCreate, BookingOut, CancelRequest, PaymentOutcome, TransitionResult
from hotel_reservations.services import booking_service
from hotel_reservations.services.fingerprint_service import fingerprint_from_request

router = APIRouter()


def _own_booking(db: Session, booking_id: str, user: User) -> Booking:
    b = db.get(Booking, booking_id)
    if b is None or b.is_deleted or b.user_id != user.id:
        raise HTTPException(status_code=404, detail="Not found")
    return b


@router.post("", response_model=BookingOut, status_code=201)
def create_booking(payload: BookingCreate, request: Request, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    fingerprint = None
    if payload.promotion_code:
        # Fall back to the account phone so the per-phone limit still applies.
        fingerprint = fingerprint_from_request(request, phone=payload.phone or user.phone, card_number=payload.card_number)

    result = raise_for_create(
        booking_service.create_booking(
            db,
            user_id=user.id,
            room_id=payload.room_id,
            check_in_date=payload.check_in_date,
            check_out_date=payload.check_out_date,
            promotion_code=payload.promotion_code,
            fingerprint=fingerprint,
            request=request,
        )
    )
    return db.get(Booking, result.booking_id)


@router.get("", response_model=list[BookingOut])
def list_my_bookings(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    q = select(Booking).where(Booking.user_id == user.id, Booking.is_deleted == False)  # noqa: E712
    return db.execute(q.order_by(Booking.check_in_date.desc()).limit(200)).scalars().all()


@router.post("/{booking_id}/pay", response_model=TransitionResult)
def pay_booking(booking_id: str, payload: PaymentOutcome, request: Request, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    _own_booking(db, booking_id, user)
    return raise_for_transition(
        booking_service.confirm_payment(db, booking_id, payment=payload, actor_user_id=user.id, request=request)
    )


@router.post("/{booking_id}/cancel", response_model=TransitionResult)
def cancel_my_booking(booking_id: str, payload: CancelRequest, request: Request, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    _own_booking(db, booking_id, user)
    return raise_for_transition(
        booking_service.cancel_booking(db, booking_id, reason=payload.reason or "Cancelled by guest", actor_user_id=user.id, request=request)
    )
