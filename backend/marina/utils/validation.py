from __future__ import annotations
"""Reusable input validation helpers.

Each helper returns the cleaned value (to enable inline usage) or raises ValidationError.
"""
from datetime import datetime
from typing import Any, Iterable, Optional
from marina.errors import ValidationError
from marina.utils.clock import parse_iso_datetime


def validate_status(new_status: str, allowed: Iterable[str], field_name: str = 'status') -> str:
    if new_status not in allowed:
        raise ValidationError(f"{field_name} invalid")
    return new_status


def require_fields(data: dict, *names: str) -> None:
    missing = [n for n in names if data.get(n) in (None, '', {}, [])]
    if missing:
        raise ValidationError(f"{', '.join(missing)} required")


def validate_amount(raw: Any, field_name: str, allow_none: bool = False) -> Optional[int]:
    """Whole currency units: non-negative int. Booleans and fractional values are rejected."""
    if raw is None:
        if allow_none:
            return None
        raise ValidationError(f"{field_name} required")
    if isinstance(raw, bool):
        raise ValidationError(f"{field_name} must be int")
    if isinstance(raw, float):
        if not raw.is_integer():
            raise ValidationError(f"{field_name} must be a whole amount")
        raw = int(raw)
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be int")
    if value < 0:
        raise ValidationError(f"{field_name} must not be negative")
    return value


def validate_text(raw: Any, field_name: str, allow_none: bool = True) -> Optional[str]:
    """Free-text field: a string, or None when allowed."""
    if raw is None:
        if allow_none:
            return None
        raise ValidationError(f"{field_name} required")
    if not isinstance(raw, str):
        raise ValidationError(f"{field_name} must be a string")
    return raw


def validate_number(raw: Any, field_name: str) -> Optional[float]:
    if raw is None:
        return None
    if isinstance(raw, bool):
        raise ValidationError(f"{field_name} must be a number")
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be a number")
    if value < 0:
        raise ValidationError(f"{field_name} must not be negative")
    return value


def validate_datetime(raw: Any, field_name: str) -> Optional[datetime]:
    if raw in (None, ''):
        return None
    try:
        return parse_iso_datetime(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be an ISO 8601 datetime")


def validate_mapping(raw: Any, field_name: str) -> dict:
    if not isinstance(raw, dict):
        raise ValidationError(f"{field_name} must be an object")
    return raw


def validate_list(raw: Any, field_name: str) -> list:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError(f"{field_name} must be a list")
    return raw


def merge_nested(current: Optional[dict], patch: dict) -> dict:
    """Field-by-field merge of patch into a copy of current. Keys absent from patch are kept."""
    merged = dict(current or {})
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_nested(merged[key], value)
        else:
            merged[key] = value
    return merged

__all__ = [
    'validate_status', 'require_fields', 'validate_amount', 'validate_text', 'validate_number', 'validate_datetime',
    'validate_mapping', 'validate_list', 'merge_nested'
]
