"""
Best-effort JSON access on top of a blob store.

Nothing here raises: a failed read is a miss, a failed write is logged and
reported as ``False``.
"""

import json
import time
from typing import Any, Dict, Optional, TYPE_CHECKING

from shared.logging import get_logger
from ..clock import Clock, day_from_ms, key_stamp, now_ms
from .blob_store import BlobStore

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


logger = get_logger("vat.json_store")


def _record_failure(metrics: Optional["MetricsCollector"], operation: str) -> None:
    if metrics:
        metrics.increment_counter("blob_store_errors_total", operation=operation)


async def read_json(store: Optional[BlobStore], key: str,
                    metrics: Optional["MetricsCollector"] = None) -> Optional[Any]:
    """Read and decode a JSON object; ``None`` on absence or any failure."""
    if store is None:
        return None

    try:
        raw = await store.get(key)
    except Exception as exc:
        logger.warning("Blob read failed", key=key, error=str(exc))
        _record_failure(metrics, "get")
        return None

    if raw is None:
        return None

    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.warning("Blob is not valid JSON", key=key, error=str(exc))
        _record_failure(metrics, "decode")
        return None


async def write_json(store: Optional[BlobStore], key: str, data: Any,
                     metrics: Optional["MetricsCollector"] = None) -> bool:
    """Encode and overwrite a JSON object; ``False`` if it was not stored."""
    if store is None:
        return False

    try:
        body = json.dumps(data, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
        await store.put(key, body, content_type="application/json")
        return True
    except Exception as exc:
        logger.warning("Blob write failed", key=key, error=str(exc))
        _record_failure(metrics, "put")
        return False


class AuditLog:
    """Write-only request log under ``logs/``.

    Records are keyed by timestamp and VAT number; two records in the same
    millisecond for the same number overwrite each other.
    """

    def __init__(self, store: Optional[BlobStore], *, clock: Clock = time.time,
                 metrics: Optional["MetricsCollector"] = None):
        self.store = store
        self.clock = clock
        self.metrics = metrics

    def _key(self, stamp: str, vat_number: Optional[str], day: Optional[str]) -> str:
        prefix = f"logs/{day}/" if day else "logs/"
        return f"{prefix}{stamp}_{vat_number or 'unknown'}.json"

    async def append(self, record: Dict[str, Any], vat_number: Optional[str], *,
                     daily: bool = False) -> bool:
        ms = now_ms(self.clock)
        stamp = key_stamp(ms)
        entry = {"t": stamp, **record}
        key = self._key(stamp, vat_number, day_from_ms(ms) if daily else None)
        return await write_json(self.store, key, entry, self.metrics)
