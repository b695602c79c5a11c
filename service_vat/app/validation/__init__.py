"""
VAT validation package.

Wraps the VIES call in a read-through-on-failure, write-through-on-success
cache kept in the object store, and defines the result returned to callers.
"""

from .models import ValidationResult, ResultSource
from .normalize import cache_key, normalize_country_code, normalize_vat_number, normalize_request_date
from .fallback import ValidationFallbackEngine

__all__ = [
    "ValidationResult",
    "ResultSource",
    "ValidationFallbackEngine",
    "cache_key",
    "normalize_country_code",
    "normalize_vat_number",
    "normalize_request_date",
]
