from __future__ import annotations

import logging
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Mapping

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from hotel_reservations.core.clock import ensure_utc, utcnow
from hotel_reservations.core.config import get_settings
from hotel_reservations.models.booking import Booking, BookingStatus
from hotel_reservations.models.promotion import DeactivationReason, DiscountType, Promotion
from hotel_reservations.schemas.promotion import (
    BookingCandidate,
    DiscountOutcome,
    PromotionCheck,
    PromotionRejection,
    RejectionReason,
    UsageFingerprint,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def money(value: Decimal | int | str) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def normalize_code(code: str | None) -> str:
    return (code or "").strip().upper()


def get_promotion_by_code(db: Session, code: str, *, for_update: bool = False) -> Promotion | None:
    q = select(Promotion).where(func.upper(Promotion.code) == normalize_code(code), Promotion.is_deleted == False)  # noqa: E712
    if for_update:
        # Serializes validate+commit per code where the store supports row locks.
        q = q.with_for_update()
    return db.execute(q).scalar_one_or_none()


def count_promotion_uses(db: Session, promotion_id: str, *conditions: Any) -> int:
    """Committed, non-cancelled bookings that consumed this promotion."""
    q = (
        select(func.count(Booking.id))
        .where(Booking.promotion_id == promotion_id)
        .where(Booking.promotion_used_at.is_not(None))
        .where(Booking.status != BookingStatus.CANCELLED)
        .where(Booking.is_deleted == False)  # noqa: E712
    )
    for cond in conditions:
        q = q.where(cond)
    return int(db.execute(q).scalar_one())


def compute_discount(promotion: Promotion, subtotal: Decimal) -> tuple[Decimal, Decimal]:
    """Return (discount, final_price); discount never exceeds the subtotal."""
    subtotal = money(subtotal)
    if promotion.discount_type == DiscountType.PERCENTAGE:
        raw = subtotal * Decimal(promotion.value) / Decimal(100)
    else:
        raw = Decimal(promotion.value)
    discount = money(min(raw, subtotal))
    return discount, subtotal - discount


def _reject(reason: RejectionReason, message: str, code: str) -> PromotionCheck:
    logger.info("Promotion %s rejected: %s", code or "<empty>", reason.value)
    return PromotionCheck(rejection=PromotionRejection(reason=reason, message=message))


def validate_promotion(
    db: Session,
    *,
    code: str,
    candidate: BookingCandidate,
    fingerprint: UsageFingerprint,
    now: datetime | None = None,
    lock: bool = False,
) -> PromotionCheck:
    """Decide whether `code` may be applied to the candidate booking.

    Read-only: usage is only recorded when the booking carrying the promotion
    is committed. Checks run in a fixed order and stop at the first failure.
    """
    now = ensure_utc(now) if now else utcnow()
    code_n = normalize_code(code)

    if not code_n:
        return _reject(RejectionReason.INVALID_CANDIDATE, "Promotion code is required.", code_n)
    if candidate.nights < 1:
        return _reject(RejectionReason.INVALID_CANDIDATE, "A stay must be at least one night.", code_n)
    if candidate.subtotal < 0:
        return _reject(RejectionReason.INVALID_CANDIDATE, "Invalid booking amount.", code_n)

    promo = get_promotion_by_code(db, code_n, for_update=lock)
    if promo is None:
        return _reject(RejectionReason.NOT_FOUND, "Invalid promotion code.", code_n)

    # Automatic deactivation only caches the window and usage checks below, which
    # are re-run live so an edited end date or limit takes effect immediately.
    if not promo.active and promo.deactivated_reason not in DeactivationReason.AUTOMATIC:
        return _reject(RejectionReason.INACTIVE, "This promotion is not active.", code_n)
    if promo.end_at is not None and now > ensure_utc(promo.end_at):
        return _reject(RejectionReason.EXPIRED, "This promotion has expired.", code_n)
    if promo.start_at is not None and now < ensure_utc(promo.start_at):
        return _reject(RejectionReason.INACTIVE, "This promotion is not valid yet.", code_n)

    if promo.minimum_nights is not None and candidate.nights < promo.minimum_nights:
        return _reject(
            RejectionReason.MINIMUM_NIGHTS_NOT_MET,
            f"This promotion requires a minimum stay of {promo.minimum_nights} night(s).",
            code_n,
        )
    if promo.minimum_amount is not None and candidate.subtotal < promo.minimum_amount:
        currency = get_settings().currency
        return _reject(
            RejectionReason.MINIMUM_AMOUNT_NOT_MET,
            f"This promotion requires a minimum amount of {currency} {money(promo.minimum_amount)}.",
            code_n,
        )

    if promo.max_total_uses is not None and count_promotion_uses(db, promo.id) >= promo.max_total_uses:
        return _reject(RejectionReason.GLOBAL_LIMIT_REACHED, "This promotion has reached its maximum usage limit.", code_n)

    limit = promo.max_uses_per_limit
    if promo.limit_per_phone and fingerprint.phone_hash:
        if count_promotion_uses(db, promo.id, Booking.promotion_phone_hash == fingerprint.phone_hash) >= limit:
            return _reject(RejectionReason.PHONE_LIMIT_REACHED, "This promotion has already been used with this phone number.", code_n)

    if promo.limit_per_card and fingerprint.card_identifier:
        if count_promotion_uses(db, promo.id, Booking.promotion_card_identifier == fingerprint.card_identifier) >= limit:
            return _reject(RejectionReason.CARD_LIMIT_REACHED, "This promotion has already been used with this payment card.", code_n)

    if promo.limit_per_device and (fingerprint.device_fingerprint or fingerprint.ip_address):
        matches = []
        if fingerprint.device_fingerprint:
            matches.append(Booking.promotion_device_fingerprint == fingerprint.device_fingerprint)
        if fingerprint.ip_address:
            matches.append(Booking.promotion_ip_address == fingerprint.ip_address)
        if count_promotion_uses(db, promo.id, or_(*matches)) >= limit:
            return _reject(
                RejectionReason.DEVICE_LIMIT_REACHED, "This promotion has already been used from this device or location.", code_n
            )

    if promo.limit_per_account and candidate.user_id:
        if count_promotion_uses(db, promo.id, Booking.user_id == candidate.user_id) >= limit:
            return _reject(RejectionReason.ACCOUNT_LIMIT_REACHED, "This promotion has already been used with your account.", code_n)

    discount, final_price = compute_discount(promo, candidate.subtotal)
    logger.info("Promotion %s accepted: discount=%s final=%s", promo.code, discount, final_price)
    return PromotionCheck(
        outcome=DiscountOutcome(promotion_id=promo.id, code=promo.code, discount_amount=discount, final_price=final_price)
    )


def refresh_promotion_states(db: Session, *, now: datetime | None = None, promotion_id: str | None = None) -> int:
    """Deactivate expired or exhausted promotions; revive auto-deactivated ones whose cause is gone.

    A promotion comes back once cancellations free up usage or an admin extends
    its end date or limit. Manually deactivated promotions are left alone.
    Returns the number of rows changed.
    """
    now = ensure_utc(now) if now else utcnow()
    q = select(Promotion).where(
        Promotion.is_deleted == False,  # noqa: E712
        or_(Promotion.active == True, Promotion.deactivated_reason.in_(DeactivationReason.AUTOMATIC)),  # noqa: E712
    )
    if promotion_id:
        q = q.where(Promotion.id == promotion_id)
    changed = 0
    for promo in db.execute(q).scalars().all():
        expired = promo.end_at is not None and ensure_utc(promo.end_at) < now
        exhausted = promo.max_total_uses is not None and count_promotion_uses(db, promo.id) >= promo.max_total_uses

        if expired:
            if promo.active or promo.deactivated_reason != DeactivationReason.EXPIRED:
                promo.active = False
                promo.deactivated_reason = DeactivationReason.EXPIRED
                changed += 1
                logger.info("Promotion %s deactivated: expired", promo.code)
        elif exhausted:
            if promo.active or promo.deactivated_reason != DeactivationReason.USAGE_LIMIT:
                promo.active = False
                promo.deactivated_reason = DeactivationReason.USAGE_LIMIT
                changed += 1
                logger.info("Promotion %s deactivated: maximum usage reached", promo.code)
        elif not promo.active:
            logger.info("Promotion %s reactivated (was %s)", promo.code, promo.deactivated_reason)
            promo.active = True
            promo.deactivated_reason = DeactivationReason.MANUAL
            changed += 1

    if changed:
        db.commit()
    return changed


# --- administration ---------------------------------------------------------


def promotion_config_problems(values: Mapping[str, Any]) -> list[str]:
    problems: list[str] = []
    value = values.get("value")
    if value is None or Decimal(value) <= 0:
        problems.append("Discount value must be greater than zero")
    elif values.get("discount_type") == DiscountType.PERCENTAGE and Decimal(value) > 100:
        problems.append("Percentage discount cannot exceed 100")
    if values.get("discount_type") not in DiscountType.ALL:
        problems.append("Unknown discount type")
    start_at, end_at = values.get("start_at"), values.get("end_at")
    if start_at is not None and end_at is not None and ensure_utc(end_at) < ensure_utc(start_at):
        problems.append("End date must not be before start date")
    per_limit = values.get("max_uses_per_limit")
    if per_limit is not None and not 1 <= per_limit <= 1000:
        problems.append("Maximum uses per limit must be between 1 and 1000")
    min_nights = values.get("minimum_nights")
    if min_nights is not None and not 0 <= min_nights <= 30:
        problems.append("Minimum nights must be between 0 and 30")
    min_amount = values.get("minimum_amount")
    if min_amount is not None and Decimal(min_amount) < 0:
        problems.append("Minimum amount cannot be negative")
    total = values.get("max_total_uses")
    if total is not None and total < 0:
        problems.append("Maximum total uses cannot be negative")
    return problems


def code_taken(db: Session, code: str, *, exclude_id: str | None = None) -> bool:
    # Soft-deleted codes still occupy the unique index.
    q = select(Promotion.id).where(func.upper(Promotion.code) == normalize_code(code))
    if exclude_id:
        q = q.where(Promotion.id != exclude_id)
    return db.execute(q.limit(1)).first() is not None


def create_promotion(db: Session, data: Mapping[str, Any]) -> Promotion:
    values = dict(data)
    values["code"] = normalize_code(values["code"])
    problems = promotion_config_problems(values)
    if problems:
        raise ValueError("; ".join(problems))
    promo = Promotion(**values)
    if not promo.active:
        promo.deactivated_reason = DeactivationReason.MANUAL
    db.add(promo)
    db.commit()
    db.refresh(promo)
    return promo


_NULLABLE_FIELDS = {"start_at", "end_at", "minimum_nights", "minimum_amount", "max_total_uses"}


_CHECKED_FIELDS = ("discount_type", "value", "max_uses_per_limit") + tuple(sorted(_NULLABLE_FIELDS))


def update_promotion(
    db: Session, promo: Promotion, changes: Mapping[str, Any], *, now: datetime | None = None
) -> Promotion:
    changes = {k: v for k, v in changes.items() if v is not None or k in _NULLABLE_FIELDS}
    merged = {c: getattr(promo, c) for c in _CHECKED_FIELDS}
    merged.update({k: v for k, v in changes.items() if k in merged})
    problems = promotion_config_problems(merged)
    if problems:
        raise ValueError("; ".join(problems))

    for k, v in changes.items():
        setattr(promo, k, v)
    if "active" in changes:
        # An explicit toggle is a manual decision.
        promo.deactivated_reason = DeactivationReason.MANUAL
    db.commit()
    # Edited dates or limits may lift or cause an automatic deactivation.
    if refresh_promotion_states(db, now=now, promotion_id=promo.id):
        logger.info("Promotion %s state re-evaluated after update", promo.code)
    db.refresh(promo)
    return promo


def soft_delete_promotion(db: Session, promo: Promotion, *, now: datetime | None = None) -> None:
    if promo.is_deleted:
        return
    promo.is_deleted = True
    promo.deleted_at = now or utcnow()
    promo.active = False
    db.commit()


def list_promotions(db: Session, *, include_inactive: bool = True) -> list[Promotion]:
    q = select(Promotion).where(Promotion.is_deleted == False)  # noqa: E712
    if not include_inactive:
        q = q.where(Promotion.active == True)  # noqa: E712
    return list(db.execute(q.order_by(Promotion.created_at.desc(), Promotion.code)).scalars().all())
