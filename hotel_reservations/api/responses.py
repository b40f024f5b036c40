from __future__ import annotations

from fastapi import HTTPException, status

from hotel_reservations.schemas.booking import BookingCreateError, BookingCreateResult, TransitionError, TransitionResult

TRANSITION_STATUS = {
    TransitionError.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    TransitionError.INVALID_TRANSITION: status.HTTP_409_CONFLICT,
    TransitionError.CONCURRENCY_CONFLICT: status.HTTP_409_CONFLICT,
    TransitionError.INVALID_TOKEN: status.HTTP_400_BAD_REQUEST,
    TransitionError.PAYMENT_MISMATCH: status.HTTP_400_BAD_REQUEST,
}

CREATE_STATUS = {
    BookingCreateError.INVALID_DATES: status.HTTP_400_BAD_REQUEST,
    BookingCreateError.ROOM_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    BookingCreateError.ROOM_UNAVAILABLE: status.HTTP_409_CONFLICT,
    BookingCreateError.PROMOTION_REJECTED: status.HTTP_400_BAD_REQUEST,
}


def raise_for_transition(result: TransitionResult) -> TransitionResult:
    if result.error is not None:
        raise HTTPException(
            status_code=TRANSITION_STATUS[result.error],
            detail={"error": result.error.value, "message": result.message, "status": result.status},
        )
    return result


def raise_for_create(result: BookingCreateResult) -> BookingCreateResult:
    if result.error is not None:
        detail = {"error": result.error.value, "message": result.message}
        if result.rejection is not None:
            detail["reason"] = result.rejection.reason.value
        raise HTTPException(status_code=CREATE_STATUS[result.error], detail=detail)
    return result
