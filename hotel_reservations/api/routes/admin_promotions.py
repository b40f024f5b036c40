from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from hotel_reservations.core.deps import get_db, require_permissions
from hotel_reservations.models.promotion import Promotion
from hotel_reservations.schemas.promotion import PromotionCreate, PromotionOut, PromotionUpdate
from hotel_reservations.services.access_scope import PROMOTION_MANAGE
from hotel_reservations.services.audit_service import write_audit_log
from hotel_reservations.services.promotion_service import (
    code_taken,
    create_promotion,
    list_promotions,
    normalize_code,
    soft_delete_promotion,
    update_promotion,
)

router = APIRouter()


def _get_promotion(db: Session, promotion_id: str) -> Promotion:
    p = db.get(Promotion, promotion_id)
    if not p or p.is_deleted:
        raise HTTPException(status_code=404, detail="Not found")
    return p


@router.get("", response_model=list[PromotionOut])
def list_all(include_inactive: bool = True, db: Session = Depends(get_db), user=Depends(require_permissions([PROMOTION_MANAGE]))):
    return list_promotions(db, include_inactive=include_inactive)


@router.get("/{promotion_id}", response_model=PromotionOut)
def get_one(promotion_id: str, db: Session = Depends(get_db), user=Depends(require_permissions([PROMOTION_MANAGE]))):
    return _get_promotion(db, promotion_id)


@router.post("", response_model=PromotionOut, status_code=201)
def create(payload: PromotionCreate, request: Request, db: Session = Depends(get_db), user=Depends(require_permissions([PROMOTION_MANAGE]))):
    if code_taken(db, payload.code):
        raise HTTPException(status_code=409, detail=f"Promotion code {normalize_code(payload.code)} already exists")
    try:
        p = create_promotion(db, payload.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    write_audit_log(db, actor_user_id=user.id, action_type="PROMOTION_CREATE", target_type="promotion", target_id=p.code, summary="Created promotion", request=request)
    return p


@router.patch("/{promotion_id}", response_model=PromotionOut)
def update(promotion_id: str, payload: PromotionUpdate, request: Request, db: Session = Depends(get_db), user=Depends(require_permissions([PROMOTION_MANAGE]))):
    p = _get_promotion(db, promotion_id)
    data = payload.model_dump(exclude_unset=True)
    try:
        p = update_promotion(db, p, data)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    write_audit_log(db, actor_user_id=user.id, action_type="PROMOTION_UPDATE", target_type="promotion", target_id=p.code, summary="Updated promotion", diff_json={"keys": sorted(data.keys())}, request=request)
    return p


@router.delete("/{promotion_id}")
def delete(promotion_id: str, request: Request, db: Session = Depends(get_db), user=Depends(require_permissions([PROMOTION_MANAGE]))):
    p = _get_promotion(db, promotion_id)
    soft_delete_promotion(db, p)

    write_audit_log(db, actor_user_id=user.id, action_type="PROMOTION_DELETE", target_type="promotion", target_id=p.code, summary="Deleted promotion", request=request)
    return {"ok": True}
