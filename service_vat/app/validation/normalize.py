"""
Input and timestamp normalization for VAT lookups.
"""

import re
from datetime import datetime, timedelta, timezone
from typing import Any

from ..clock import iso_from_ms, parse_iso, to_ms

_WHITESPACE = re.compile(r"\s+")
# VIES answers with a bare date plus offset, e.g. "2025-08-11+02:00"
_DATE_WITH_OFFSET = re.compile(r"^(\d{4})-(\d{2})-(\d{2})(Z|[+-]\d{2}:?\d{2})?$")


def normalize_country_code(country_code: Any) -> str:
    return str(country_code or "").strip().upper()


def normalize_vat_number(vat_number: Any) -> str:
    return _WHITESPACE.sub("", str(vat_number or ""))


def cache_key(country_code: Any, vat_number: Any) -> str:
    """Object key of the cache entry for a (country code, VAT number) pair."""
    return f"cache/{normalize_country_code(country_code)}_{normalize_vat_number(vat_number)}.json"


def _parse_offset(token: str) -> timezone:
    if token == "Z":
        return timezone.utc
    sign = -1 if token[0] == "-" else 1
    digits = token[1:].replace(":", "")
    return timezone(sign * timedelta(hours=int(digits[:2]), minutes=int(digits[2:])))


def _parse_vies_date(value: str):
    match = _DATE_WITH_OFFSET.match(value)
    if match:
        year, month, day, offset = match.groups()
        try:
            return datetime(int(year), int(month), int(day),
                            tzinfo=_parse_offset(offset) if offset else timezone.utc)
        except ValueError:
            return None
    return parse_iso(value)


def normalize_request_date(value: Any, now: int) -> str:
    """Render VIES' request date as an ISO-8601 UTC instant.

    ``now`` (epoch ms) is used whenever ``value`` cannot be parsed.
    """
    moment = None
    if isinstance(value, datetime):
        moment = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    elif isinstance(value, str) and value.strip():
        moment = _parse_vies_date(value.strip())

    if moment is None:
        return iso_from_ms(now)

    try:
        return iso_from_ms(to_ms(moment))
    except (OverflowError, ValueError):
        return iso_from_ms(now)
