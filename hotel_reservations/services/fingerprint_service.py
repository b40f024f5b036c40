from __future__ import annotations

import hashlib
from typing import Mapping

from fastapi import Request

from hotel_reservations.core.config import get_settings
from hotel_reservations.schemas.promotion import UsageFingerprint


def normalize_phone(phone: str) -> str:
    # Keep digits only
    return "".join(ch for ch in phone if ch.isdigit())


def hash_pii(value: str) -> str:
    settings = get_settings()
    salted = (settings.secret_key + "|" + value).encode("utf-8")
    return hashlib.sha256(salted).hexdigest()


def hash_phone(phone: str | None) -> str | None:
    digits = normalize_phone(phone or "")
    return hash_pii(digits) if digits else None


def card_identifier(card_number: str | None) -> str | None:
    """Stable identifier for a payment card without keeping the number.

    4+ digits: "<last4>-<hash8>" so staff can recognise the card on receipts.
    Shorter input: hash prefix only, no plaintext digits at all.
    """
    cleaned = (card_number or "").replace(" ", "").replace("-", "")
    if not cleaned:
        return None
    h = hash_pii(cleaned)
    if len(cleaned) >= 4:
        return f"{cleaned[-4:]}-{h[:8]}"
    return h[:16]


def device_fingerprint(user_agent: str = "", accept_language: str = "", accept_encoding: str = "") -> str | None:
    if not (user_agent or accept_language or accept_encoding):
        return None
    return hash_pii(f"{user_agent}|{accept_language}|{accept_encoding}")


def client_ip(headers: Mapping[str, str], remote_host: str | None) -> str | None:
    forwarded = headers.get("x-forwarded-for", "")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = headers.get("x-real-ip", "").strip()
    if real_ip:
        return real_ip
    return remote_host or None


def extract_fingerprint(
    *,
    phone: str | None = None,
    card_number: str | None = None,
    headers: Mapping[str, str] | None = None,
    remote_host: str | None = None,
) -> UsageFingerprint:
    headers = headers or {}
    return UsageFingerprint(
        phone_hash=hash_phone(phone),
        card_identifier=card_identifier(card_number),
        device_fingerprint=device_fingerprint(
            headers.get("user-agent", ""),
            headers.get("accept-language", ""),
            headers.get("accept-encoding", ""),
        ),
        ip_address=client_ip(headers, remote_host),
    )


def fingerprint_from_request(request: Request, *, phone: str | None = None, card_number: str | None = None) -> UsageFingerprint:
    return extract_fingerprint(
        phone=phone,
        card_number=card_number,
        headers=request.headers,
        remote_host=request.client.host if request.client else None,
    )
