"""
Lookup sequencing: meter first, then the validation engine.

Callers run the entitlement gate before ``lookup``; the meter and the
engine never call each other.
"""

from dataclasses import dataclass
from typing import Optional

from .metering.window_meter import MeterDecision, WindowedUsageMeter
from .validation.fallback import ValidationFallbackEngine
from .validation.models import ValidationResult


@dataclass(frozen=True)
class LookupOutcome:
    """Meter decision plus the validation result when the request was admitted."""
    decision: MeterDecision
    result: Optional[ValidationResult] = None


class LookupService:
    """Entry point for an entitled VAT lookup."""

    def __init__(self, meter: WindowedUsageMeter, engine: ValidationFallbackEngine):
        self.meter = meter
        self.engine = engine

    async def lookup(self, country_code: str, vat_number: str,
                     api_key: Optional[str], email: Optional[str]) -> LookupOutcome:
        decision = await self.meter.meter_and_check(api_key, email, country_code, vat_number)
        if not decision.allowed:
            return LookupOutcome(decision=decision)

        result = await self.engine.check_vat(country_code, vat_number, email)
        return LookupOutcome(decision=decision, result=result)
