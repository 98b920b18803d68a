import uuid
from datetime import datetime, timedelta, UTC
from typing import Optional


def make_id() -> str:
    """Generate a random unique identifier."""
    return str(uuid.uuid4())


def time_now(after: Optional[str] = None) -> str:
    """Return the current UTC time in ISO format with microseconds.

    When ``after`` is given the result is strictly later than it, so a
    sequence of writes always produces increasing timestamps.
    """
    now = datetime.now(UTC)
    if after is not None:
        floor = datetime.fromisoformat(after) + timedelta(microseconds=1)
        if now < floor:
            now = floor
    return now.isoformat(timespec="microseconds")
