from __future__ import annotations

from typing import Any, Mapping

from sqlalchemy.orm import Session

from hotel_reservations.models.settings import AppSettings


def get_or_create_settings(db: Session) -> AppSettings:
    s = db.get(AppSettings, 1)
    if s is None:
        s = AppSettings(id=1)
        db.add(s)
        db.commit()
        db.refresh(s)
    return s


def update_settings(db: Session, changes: Mapping[str, Any]) -> AppSettings:
    s = get_or_create_settings(db)
    for k, v in changes.items():
        if not hasattr(AppSettings, k) or k == "id":
            raise ValueError(f"Unknown setting: {k}")
        setattr(s, k, v)
    db.commit()
    db.refresh(s)
    return s
