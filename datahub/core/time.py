"""Clock helpers.

Cache entries and rate windows keep epoch milliseconds so that snapshot files
stay plain JSON numbers. Components take a ``clock`` callable returning epoch
seconds, which tests replace with a controllable fake.
"""

import time
from collections.abc import Callable
from datetime import UTC, datetime

Clock = Callable[[], float]


def now_ms(clock: Clock = time.time) -> int:
    """Return the current time from ``clock`` as integer epoch milliseconds."""
    return int(clock() * 1000)


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime."""
    return datetime.now(UTC).replace(tzinfo=None)


def ms_to_iso(value: int | None) -> str | None:
    """Render epoch milliseconds as an ISO-8601 UTC string."""
    if value is None:
        return None
    return datetime.fromtimestamp(value / 1000, tz=UTC).isoformat()
