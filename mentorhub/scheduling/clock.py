from datetime import datetime
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Wall clock in server-local naive time."""

    def now(self) -> datetime:
        return datetime.now().replace(microsecond=0)

