"""Small reusable field checks shared by the academy services."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable, Optional, Type, TypeVar
import re

from sqlalchemy.orm import Session

from backend.db.session import Base

from .errors import NotFound, ValidationFailed


EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

M = TypeVar("M", bound=Base)


def require_length(value: Optional[str], field: str, minimum: int, maximum: int) -> str:
    text = (value or "").strip()
    if len(text) < minimum:
        raise ValidationFailed(
            f"{field.replace('_', ' ').capitalize()} must be at least {minimum} characters long",
            f"{field.upper()}_TOO_SHORT",
            {"field": field, "length": len(text)},
        )
    if len(text) > maximum:
        raise ValidationFailed(
            f"{field.replace('_', ' ').capitalize()} cannot exceed {maximum} characters",
            f"{field.upper()}_TOO_LONG",
            {"field": field, "length": len(text)},
        )
    return text


def require_email(value: Optional[str]) -> str:
    email = (value or "").strip().lower()
    if not EMAIL_RE.match(email):
        raise ValidationFailed("Please provide a valid email address", "INVALID_EMAIL", {"field": "email"})
    if len(email) > 255:
        raise ValidationFailed("Email cannot exceed 255 characters", "EMAIL_TOO_LONG", {"field": "email"})
    return email


def optional_phone(value: Optional[str]) -> Optional[str]:
    phone = (value or "").strip()
    if not phone:
        return None
    digits = re.sub(r"\D", "", phone)
    if len(digits) < 10 or len(phone) > 20:
        raise ValidationFailed("Phone number must be at least 10 digits", "INVALID_PHONE", {"field": "phone"})
    return phone


def require_choice(value: Optional[str], field: str, choices: Iterable[str]) -> str:
    allowed = tuple(choices)
    if value not in allowed:
        raise ValidationFailed(
            f"Invalid {field.replace('_', ' ')}",
            f"INVALID_{field.upper()}",
            {"field": field, "allowed": list(allowed)},
        )
    return str(value)


def parse_datetime(value: Any, field: str) -> datetime:
    """Accept datetimes or ISO-8601 strings; naive values are treated as UTC."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value.strip():
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(raw)
        except ValueError:
            raise ValidationFailed(f"Invalid {field.replace('_', ' ')}", f"INVALID_{field.upper()}", {"field": field})
    else:
        raise ValidationFailed(f"{field.replace('_', ' ').capitalize()} is required", f"{field.upper()}_REQUIRED", {"field": field})
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def get_or_404(session: Session, model: Type[M], entity_id: Optional[str], label: str) -> M:
    obj = session.get(model, entity_id) if entity_id else None
    if obj is None:
        raise NotFound(label, entity_id)
    return obj
