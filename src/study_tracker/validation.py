from __future__ import annotations

import math

from study_tracker.errors import ValidationError

MAX_BREAK_TAG_LENGTH = 64
MAX_NAME_LENGTH = 80
MAX_SECONDS = 10 * 365 * 86400


def coerce_seconds(raw: object, field_name: str = "duration", clamp: bool = False) -> int:
    """Whole seconds from a client-supplied number.

    Negatives fail unless clamped to zero; values above MAX_SECONDS always fail.
    """
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise ValidationError(f"{field_name} is required and must be a number")
    if isinstance(raw, float) and not math.isfinite(raw):
        raise ValidationError(f"{field_name} must be a finite number")
    seconds = int(raw)
    if seconds > MAX_SECONDS:
        raise ValidationError(f"{field_name} must be at most {MAX_SECONDS} seconds")
    if seconds < 0:
        if clamp:
            return 0
        raise ValidationError(f"{field_name} must be a non-negative number")
    return seconds


def normalize_break_tag(raw: object) -> str:
    if not isinstance(raw, str) or not raw.strip():
        raise ValidationError("Break tag is required and must be a string")
    tag = raw.strip()
    if len(tag) > MAX_BREAK_TAG_LENGTH:
        raise ValidationError(f"Break tag must be at most {MAX_BREAK_TAG_LENGTH} characters")
    return tag


def require_name(raw: object, field_name: str = "name") -> str:
    if not isinstance(raw, str) or not raw.strip():
        raise ValidationError(f"{field_name} is required")
    value = raw.strip()
    if len(value) > MAX_NAME_LENGTH:
        raise ValidationError(f"{field_name} must be at most {MAX_NAME_LENGTH} characters")
    return value
