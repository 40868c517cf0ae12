from __future__ import annotations

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Timezone-aware current time; injectable wherever a clock is taken."""
    return datetime.now(timezone.utc)


__all__ = ["utc_now"]
