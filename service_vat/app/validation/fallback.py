"""
Validation fallback engine.

Read-through-on-failure, write-through-on-success cache around VIES:

1. audit the request (best effort)
2. call VIES once, bounded by a timeout
3. on success, cache the canonical answer and return it
4. on failure, return a fresh cached answer if there is one, otherwise a
   soft failure with ``valid = false``

``check_vat`` never raises.
"""

import asyncio
import time
from typing import Any, Dict, Optional, TYPE_CHECKING

from pydantic import ValidationError as PydanticValidationError

from shared.logging import get_logger
from ..adapters.vies_client import ViesClient, ViesResponse
from ..clock import Clock, base36, iso_from_ms, now_ms, parse_iso, to_ms
from ..storage.blob_store import BlobStore
from ..storage.json_store import AuditLog, read_json, write_json
from .models import ResultSource, ValidationResult
from .normalize import cache_key, normalize_country_code, normalize_request_date, normalize_vat_number

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


class ValidationFallbackEngine:
    """Produces a ``ValidationResult`` for every request, whatever VIES does."""

    def __init__(
        self,
        vies_client: ViesClient,
        store: Optional[BlobStore],
        *,
        cache_ttl_ms: int,
        upstream_timeout_seconds: float = 2.5,
        clock: Clock = time.time,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.vies_client = vies_client
        self.store = store
        self.cache_ttl_ms = cache_ttl_ms
        self.upstream_timeout_seconds = upstream_timeout_seconds
        self.clock = clock
        self.metrics = metrics
        self.audit_log = AuditLog(store, clock=clock, metrics=metrics)
        self.logger = get_logger("vat.validation")

    def make_lookup_id(self, country_code: str, vat_number: str) -> str:
        return f"{country_code}-{vat_number}-{base36(now_ms(self.clock))}"

    async def check_vat(self, country_code: Any, vat_number: Any, email: Optional[str] = None) -> ValidationResult:
        cc = normalize_country_code(country_code)
        vn = normalize_vat_number(vat_number)
        lookup_id = self.make_lookup_id(cc, vn)

        await self.audit_log.append(
            {"countryCode": cc, "vatNumber": vn, "email": email},
            vn,
        )

        try:
            answer = await self._call_upstream(cc, vn)
        except Exception as exc:
            reason = self._failure_reason(exc)
            self.logger.warning("VIES unavailable, trying cache", country_code=cc, reason=reason)
            return await self._fallback(cc, vn, lookup_id, reason)

        result = ValidationResult(
            country_code=answer.country_code or cc,
            vat_number=answer.vat_number or vn,
            valid=bool(answer.valid),
            name=answer.name or None,
            address=answer.address or None,
            request_date=normalize_request_date(answer.request_date, now_ms(self.clock)),
            lookup_id=lookup_id,
            source=ResultSource.VIES,
            cache_ttl_ms=self.cache_ttl_ms,
        )
        await self.store_cached(cc, vn, result)
        self._record_source(ResultSource.VIES)
        return result

    async def _call_upstream(self, cc: str, vn: str) -> ViesResponse:
        start = time.perf_counter()
        outcome = "error"
        try:
            answer = await asyncio.wait_for(
                self.vies_client.check_vat(cc, vn),
                timeout=self.upstream_timeout_seconds,
            )
            outcome = "ok"
            return answer
        finally:
            if self.metrics:
                self.metrics.increment_counter("vies_calls_total", outcome=outcome)
                self.metrics.observe_histogram(
                    "vies_call_duration_seconds", time.perf_counter() - start, outcome=outcome
                )

    @staticmethod
    def _failure_reason(exc: Exception) -> str:
        if isinstance(exc, asyncio.TimeoutError):
            return "timeout"
        message = getattr(exc, "message", None)
        if not isinstance(message, str) or not message.strip():
            message = str(exc)
        return message.strip() or "unavailable"

    async def _fallback(self, cc: str, vn: str, lookup_id: str, reason: str) -> ValidationResult:
        cached = await self.load_cached(cc, vn)
        now = now_ms(self.clock)

        if cached is not None:
            try:
                result = ValidationResult.model_validate({
                    **cached,
                    "requestDate": iso_from_ms(now),
                    "lookupId": lookup_id,
                    "source": ResultSource.CACHE.value,
                    "cacheTtlMs": self.cache_ttl_ms,
                    "cached": True,
                })
            except PydanticValidationError as exc:
                self.logger.warning("Discarding malformed cache entry", key=cache_key(cc, vn), error=str(exc))
            else:
                self._record_source(ResultSource.CACHE)
                return result

        self._record_source(ResultSource.ERROR)
        return ValidationResult(
            country_code=cc,
            vat_number=vn,
            valid=False,
            name=None,
            address=None,
            request_date=iso_from_ms(now),
            lookup_id=lookup_id,
            source=ResultSource.ERROR,
            cache_ttl_ms=self.cache_ttl_ms,
            error=f"fallback:{reason}",
        )

    async def load_cached(self, country_code: Any, vat_number: Any) -> Optional[Dict[str, Any]]:
        """Return the cached payload for the pair if it is still fresh."""
        entry = await read_json(self.store, cache_key(country_code, vat_number), self.metrics)
        if not isinstance(entry, dict) or not isinstance(entry.get("payload"), dict):
            return None

        cached_at = entry.get("cachedAt")
        written = parse_iso(cached_at) if isinstance(cached_at, str) else None
        if written is None:
            return None

        if now_ms(self.clock) - to_ms(written) < self.cache_ttl_ms:
            return entry["payload"]
        return None

    async def store_cached(self, country_code: Any, vat_number: Any, result: ValidationResult) -> bool:
        entry = {
            "cachedAt": iso_from_ms(now_ms(self.clock)),
            "payload": result.to_payload(),
        }
        stored = await write_json(self.store, cache_key(country_code, vat_number), entry, self.metrics)
        if not stored and self.store is not None:
            self.logger.warning("Cache write failed", country_code=normalize_country_code(country_code))
        return stored

    def _record_source(self, source: ResultSource) -> None:
        if self.metrics:
            self.metrics.increment_counter("vat_lookups_total", source=source.value)
