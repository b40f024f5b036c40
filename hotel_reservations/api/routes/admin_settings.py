from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from hotel_reservations.core.deps import get_db, require_permissions
from hotel_reservations.schemas.settings import SettingsOut, SettingsUpdate
from hotel_reservations.services.access_scope import SETTINGS_MANAGE
from hotel_reservations.services.audit_service import write_audit_log
from hotel_reservations.services.settings_service import get_or_create_settings, update_settings

router = APIRouter()


@router.get("", response_model=SettingsOut)
def get_settings(db: Session = Depends(get_db), user=Depends(require_permissions([SETTINGS_MANAGE]))):
    return get_or_create_settings(db)


@router.patch("", response_model=SettingsOut)
def patch_settings(payload: SettingsUpdate, request: Request, db: Session = Depends(get_db), user=Depends(require_permissions([SETTINGS_MANAGE]))):
    data = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
    s = update_settings(db, data)

    write_audit_log(
        db,
        actor_user_id=user.id,
        action_type="SETTINGS_UPDATE",
        target_type="settings",
        target_id="1",
        summary="Updated settings",
        diff_json={"keys": sorted(data.keys())},
        request=request,
    )
    return s
