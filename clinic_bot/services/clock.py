"""Time source shared by the services; injectable for tests."""

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utc_clock() -> datetime:
    """Current aware UTC time."""
    return datetime.now(timezone.utc)
