from __future__ import annotations

from typing import Any, Mapping

from fastapi import Request
from sqlalchemy.orm import Session

from hotel_reservations.models.audit_log import AuditLog
from hotel_reservations.services.fingerprint_service import client_ip

# Raw identifiers never reach the audit trail, hashed ones neither.
SENSITIVE_KEYS = {
    "phone",
    "phone_hash",
    "card_number",
    "card_identifier",
    "device_fingerprint",
    "qr_token",
    "token",
    "email",
}


def _sanitize(obj: Any) -> Any:
    if obj is None:
        return None
    if isinstance(obj, dict):
        return {k: ("<redacted>" if k in SENSITIVE_KEYS else _sanitize(v)) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_sanitize(v) for v in obj]
    return obj


def write_audit_log(
    db: Session,
    *,
    actor_user_id: str | None,
    action_type: str,
    target_type: str = "",
    target_id: str = "",
    summary: str = "",
    diff_json: Mapping[str, Any] | None = None,
    request: Request | None = None,
) -> AuditLog:
    ip = ""
    ua = ""
    if request is not None:
        ip = client_ip(request.headers, request.client.host if request.client else None) or ""
        ua = request.headers.get("user-agent", "")[:255]

    log = AuditLog(
        actor_user_id=actor_user_id,
        action_type=action_type,
        target_type=target_type,
        target_id=str(target_id),
        summary=summary[:255],
        diff_json=_sanitize(dict(diff_json)) if diff_json is not None else None,
        ip_address=ip,
        user_agent=ua,
    )
    db.add(log)
    db.commit()
    return log
