from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from hotel_reservations.core.deps import get_db, get_optional_user
from hotel_reservations.models.hotel import Room
from hotel_reservations.schemas.booking import check_stay_dates
from hotel_reservations.schemas.promotion import BookingCandidate, PromotionValidateRequest, PromotionValidateResponse
from hotel_reservations.services.fingerprint_service import fingerprint_from_request
from hotel_reservations.services.promotion_service import money, validate_promotion

router = APIRouter()


@router.post("/validate", response_model=PromotionValidateResponse)
def validate_code(payload: PromotionValidateRequest, request: Request, db: Session = Depends(get_db), user=Depends(get_optional_user)):
    problem = check_stay_dates(payload.check_in_date, payload.check_out_date)
    if problem:
        raise HTTPException(status_code=400, detail=problem)

    room = db.get(Room, payload.room_id)
    if room is None or room.is_deleted or not room.active:
        raise HTTPException(status_code=404, detail="Room not found")

    nights = (payload.check_out_date - payload.check_in_date).days
    subtotal = money(room.nightly_rate * nights)
    check = validate_promotion(
        db,
        code=payload.code,
        candidate=BookingCandidate(nights=nights, subtotal=subtotal, user_id=user.id if user else None),
        fingerprint=fingerprint_from_request(request, phone=payload.phone, card_number=payload.card_number),
    )
    if check.rejection is not None:
        return PromotionValidateResponse(valid=False, reason=check.rejection.reason, message=check.rejection.message, subtotal=subtotal)
    return PromotionValidateResponse(
        valid=True,
        message="Promotion applied",
        promotion_id=check.outcome.promotion_id,
        subtotal=subtotal,
        discount_amount=check.outcome.discount_amount,
        final_price=check.outcome.final_price,
    )
