from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from hotel_reservations.core.deps import get_db, require_permissions
from hotel_reservations.services.access_scope import SWEEP_RUN
from hotel_reservations.services.audit_service import write_audit_log
from hotel_reservations.services.sweeper_service import run_sweep

router = APIRouter()


@router.post("")
def trigger_sweep(request: Request, db: Session = Depends(get_db), user=Depends(require_permissions([SWEEP_RUN]))):
    report = run_sweep(db)
    write_audit_log(
        db,
        actor_user_id=user.id,
        action_type="STATUS_SWEEP",
        target_type="booking",
        summary=f"Manual sweep updated {report.total_updated} booking(s)",
        diff_json=report.model_dump(),
        request=request,
    )
    return {**report.model_dump(), "total_updated": report.total_updated}
