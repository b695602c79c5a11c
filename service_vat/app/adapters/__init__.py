"""
Adapters package for the VAT lookup service.

Contains HTTP client wrappers for external dependencies (VIES, billing).
These adapters encapsulate:

- Base URLs and request shapes
- Timeouts and connection reuse
- Error handling that maps to shared errors

Keep adapters thin and side-effect free outside of explicit calls.
"""

from .vies_client import ViesClient, ViesResponse
from .billing_client import BillingClient

__all__ = [
    "ViesClient",
    "ViesResponse",
    "BillingClient",
]
