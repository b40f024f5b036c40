from __future__ import annotations

from datetime import time

from pydantic import BaseModel, ConfigDict, Field


class SettingsOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    check_in_time: time
    no_show_grace_hours: int
    auto_check_in_enabled: bool
    auto_check_out_grace_hours: int
    allow_same_day_checkout: bool

    full_refund_hours: int
    late_refund_percent: int

    auto_expire_enabled: bool
    auto_expire_hours: int

    cancel_policy_version: str


class SettingsUpdate(BaseModel):
    check_in_time: time | None = None
    no_show_grace_hours: int | None = Field(default=None, ge=0, le=168)
    auto_check_in_enabled: bool | None = None
    auto_check_out_grace_hours: int | None = Field(default=None, ge=0, le=72)
    allow_same_day_checkout: bool | None = None

    full_refund_hours: int | None = Field(default=None, ge=0, le=720)
    late_refund_percent: int | None = Field(default=None, ge=0, le=100)

    auto_expire_enabled: bool | None = None
    auto_expire_hours: int | None = Field(default=None, ge=1, le=720)

    cancel_policy_version: str | None = Field(default=None, max_length=64)
