"""Injectable clock so run timestamps and deadlines are testable."""

from __future__ import annotations

import time
from datetime import datetime, timezone


class SystemClock:
    """Wall-clock time for timestamps, monotonic time for deadlines."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def monotonic(self) -> float:
        return time.monotonic()
