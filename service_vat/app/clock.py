"""
Wall-clock helpers shared by the cache, meter and audit log.

All instants are handled as integer epoch milliseconds and rendered as
ISO-8601 UTC with millisecond precision (``2025-08-11T15:05:17.000Z``).
"""

import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

Clock = Callable[[], float]

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MS = timedelta(milliseconds=1)
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def now_ms(clock: Clock = time.time) -> int:
    """Current time from ``clock`` (epoch seconds) in whole milliseconds."""
    return int(round(clock() * 1000))


def to_datetime(ms: int) -> datetime:
    return EPOCH + timedelta(milliseconds=ms)


def to_ms(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return (moment - EPOCH) // _MS


def iso_from_ms(ms: int) -> str:
    moment = to_datetime(ms)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def day_from_ms(ms: int) -> str:
    return to_datetime(ms).strftime("%Y-%m-%d")


def key_stamp(ms: int) -> str:
    """ISO timestamp with ``:`` replaced, usable inside an object key."""
    return iso_from_ms(ms).replace(":", "-")


def parse_iso(value: str) -> Optional[datetime]:
    """Parse an ISO-8601 instant; naive values are taken as UTC."""
    candidate = value.strip()
    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))
