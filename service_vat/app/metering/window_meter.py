"""
Fixed-window usage meter for the VAT lookup service.

Counters live in the object store at
``meter/{day}/{api_key}/{window_start_ms}.json``. The store has no atomic
increment, so the update is a plain read-modify-write: two concurrent
requests in the same window can read the same count and both write
``count + 1``. The meter under-counts in that case; it stops bursts, it is
not an exact quota.

Windows are aligned (``floor(now / W) * W``), not sliding, so a burst that
straddles a boundary can be admitted up to twice the limit.
"""

import time
from dataclasses import dataclass
from typing import Any, Optional, TYPE_CHECKING

from shared.logging import get_logger
from ..clock import Clock, day_from_ms, now_ms
from ..storage.blob_store import BlobStore
from ..storage.json_store import AuditLog, read_json, write_json

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"


@dataclass(frozen=True)
class MeterDecision:
    """Admission decision; ``remaining`` is ``None`` when the meter is off."""

    allowed: bool
    reason: Optional[str] = None
    remaining: Optional[int] = None


class WindowedUsageMeter:
    """Per-key request quota over fixed time windows."""

    def __init__(
        self,
        store: Optional[BlobStore],
        *,
        window_ms: int = 60_000,
        limit: int = 120,
        clock: Clock = time.time,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.store = store
        self.window_ms = window_ms
        self.limit = limit
        self.clock = clock
        self.metrics = metrics
        self.audit_log = AuditLog(store, clock=clock, metrics=metrics)
        self.logger = get_logger("vat.meter")

        if store is None:
            self.logger.warning("No object store configured, rate limiting disabled")

    def window_start(self, moment_ms: int) -> int:
        return (moment_ms // self.window_ms) * self.window_ms

    def _make_key(self, api_key: str, window: int) -> str:
        return f"meter/{day_from_ms(window)}/{api_key}/{window}.json"

    async def meter_and_check(
        self,
        api_key: Optional[str],
        email: Optional[str] = None,
        country_code: Optional[str] = None,
        vat_number: Optional[str] = None,
    ) -> MeterDecision:
        """Count this request against the key's current window and decide."""
        if self.store is None or not api_key:
            return self._decide(MeterDecision(allowed=True))

        try:
            window = self.window_start(now_ms(self.clock))
            key = self._make_key(api_key, window)

            doc = await read_json(self.store, key, self.metrics)
            if not isinstance(doc, dict):
                doc = {"count": 0, "window": window, "apiKey": api_key, "limit": self.limit}

            doc["count"] = self._as_count(doc.get("count")) + 1
            await write_json(self.store, key, doc, self.metrics)

            if doc["count"] > self.limit:
                self.logger.warning(
                    "Rate limit exceeded",
                    window=window,
                    count=doc["count"],
                    limit=self.limit,
                )
                return self._decide(MeterDecision(allowed=False, reason=RATE_LIMIT_EXCEEDED, remaining=0))

            await self.audit_log.append(
                {
                    "apiKey": api_key,
                    "email": email,
                    "countryCode": country_code,
                    "vatNumber": vat_number,
                },
                vat_number,
                daily=True,
            )
            return self._decide(MeterDecision(allowed=True, remaining=max(0, self.limit - doc["count"])))

        except Exception as exc:
            self.logger.error("Meter failure, allowing request", error=str(exc))
            return self._decide(MeterDecision(allowed=True))

    @staticmethod
    def _as_count(value: Any) -> int:
        if isinstance(value, bool):
            return 0
        try:
            return max(0, int(value))
        except (TypeError, ValueError, OverflowError):
            return 0

    def _decide(self, decision: MeterDecision) -> MeterDecision:
        if self.metrics:
            self.metrics.increment_counter(
                "meter_decisions_total",
                decision="allowed" if decision.allowed else "denied",
            )
        return decision
