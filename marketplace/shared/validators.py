"""Shared validation utilities"""

import re
from datetime import datetime, timezone
from typing import Optional

NUBAN_LENGTH = 10


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (the ledger stores naive UTC)"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp into a naive UTC datetime.

    Accepts a trailing "Z" and explicit offsets. Returns None when the value
    is empty or cannot be parsed.
    """
    if not value:
        return None

    try:
        parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    except ValueError:
        return None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def is_numeric_code(code: Optional[str]) -> bool:
    """Bank codes are digit strings only (e.g. "044", "50211")"""
    return bool(code) and re.fullmatch(r"\d+", code) is not None


def sanitize_account_number(account_number: Optional[str]) -> Optional[str]:
    """
    Strip everything but digits and validate a 10-digit NUBAN.

    Returns:
        The 10-digit account number, or None if it is not a valid NUBAN
    """
    if not account_number:
        return None

    digits = re.sub(r"\D", "", str(account_number))[:NUBAN_LENGTH]
    if len(digits) != NUBAN_LENGTH:
        return None
    return digits


def normalize_account_name(name: Optional[str]) -> str:
    """Collapse whitespace and lowercase so bank-resolved names compare loosely"""
    return re.sub(r"\s+", " ", name or "").strip().lower()
