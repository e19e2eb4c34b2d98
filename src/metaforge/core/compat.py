"""Shims for differences between supported Python versions."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum

try:  # Python 3.11+
    from datetime import UTC  # type: ignore[attr-defined]
except ImportError:  # Python 3.10
    UTC = timezone(timedelta(0))

try:  # Python 3.11+
    from enum import StrEnum  # type: ignore[attr-defined]
except ImportError:  # Python 3.10

    class StrEnum(str, Enum):
        """String enum that renders as its value."""

        def __str__(self) -> str:
            return str(self.value)


def utcnow() -> datetime:
    """Current UTC time truncated to whole seconds.

    Audit columns are compared and rendered at second precision, so the
    microseconds are dropped before the value ever reaches a field.
    """
    return datetime.now(UTC).replace(microsecond=0)
