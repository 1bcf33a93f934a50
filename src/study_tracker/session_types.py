from __future__ import annotations

from enum import Enum

from study_tracker.errors import ValidationError


class SessionType(str, Enum):
    STUDY = "study"
    BREAK = "break"
    SLEEP = "sleep"

    @property
    def stats_column(self) -> str:
        """DailyStats column that collects time of this type."""
        return f"{self.value}_time"

    @classmethod
    def parse(cls, raw: str | SessionType | None, default: SessionType | None = None) -> SessionType:
        if isinstance(raw, SessionType):
            return raw
        if raw is None or raw == "":
            if default is None:
                raise ValidationError("Session type is required")
            return default
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            allowed = ", ".join(t.value for t in cls)
            raise ValidationError(f"Session type must be one of: {allowed}") from None
