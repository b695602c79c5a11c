"""
Entitlement gate for the VAT lookup service.

Denials are reported as one of a closed set of kinds instead of raised
errors, so the HTTP layer maps them to status codes exhaustively.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, TYPE_CHECKING

from shared.logging import get_logger
from ..adapters.billing_client import BillingClient
from ..storage.blob_store import BlobStore
from ..storage.json_store import read_json

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


class EntitlementKind(str, Enum):
    """Why access was refused."""
    INVALID_KEY = "invalid_key"
    KEY_REVOKED = "key_revoked"
    NO_ACTIVE_SUBSCRIPTION = "no_active_subscription"
    PRICE_NOT_ALLOWED = "price_not_allowed"
    ACCESS_DENIED = "access_denied"


@dataclass(frozen=True)
class EntitlementResult:
    """Outcome of an entitlement check."""
    granted: bool
    kind: Optional[EntitlementKind] = None
    customer_id: Optional[str] = None
    email: Optional[str] = None
    key: Optional[str] = None
    source: Optional[str] = None

    @classmethod
    def deny(cls, kind: EntitlementKind) -> "EntitlementResult":
        return cls(granted=False, kind=kind)


class EntitlementGate:
    """Checks API keys against the key registry and billing subscriptions.

    With ``enforce=False`` (local development) any non-empty key is
    accepted without touching the store or the billing provider.
    """

    def __init__(
        self,
        store: Optional[BlobStore],
        billing_client: Optional[BillingClient],
        *,
        enforce: bool = True,
        allowed_price_ids: FrozenSet[str] = frozenset(),
        allowed_statuses: FrozenSet[str] = frozenset({"active", "trialing"}),
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.store = store
        self.billing_client = billing_client
        self.enforce = enforce
        self.allowed_price_ids = allowed_price_ids
        self.allowed_statuses = allowed_statuses
        self.metrics = metrics
        self.logger = get_logger("vat.entitlements")

    def _make_key(self, api_key: str) -> str:
        return f"keys/by-key/{api_key}.json"

    async def check(self, api_key: Optional[str], email: Optional[str] = None) -> EntitlementResult:
        result = await self._evaluate(api_key, email)
        if self.metrics:
            self.metrics.increment_counter(
                "entitlement_checks_total",
                decision="granted" if result.granted else result.kind.value,
            )
        if not result.granted:
            self.logger.info("Entitlement denied", kind=result.kind.value)
        return result

    async def _evaluate(self, api_key: Optional[str], email: Optional[str]) -> EntitlementResult:
        if not self.enforce:
            if not api_key:
                return EntitlementResult.deny(EntitlementKind.INVALID_KEY)
            return EntitlementResult(granted=True, email=email, key=api_key, source="no_enforce")

        if self.store is None or self.billing_client is None:
            self.logger.error("Entitlement enforcement enabled without store or billing client")
            return EntitlementResult.deny(EntitlementKind.ACCESS_DENIED)

        try:
            return await self._evaluate_enforced(api_key, email)
        except Exception as exc:
            self.logger.error("Entitlement check failed", error=str(exc))
            return EntitlementResult.deny(EntitlementKind.ACCESS_DENIED)

    async def _evaluate_enforced(self, api_key: Optional[str], email: Optional[str]) -> EntitlementResult:
        record: Optional[Dict[str, Any]] = None
        if api_key:
            record = await read_json(self.store, self._make_key(api_key), self.metrics)
            if not isinstance(record, dict):
                return EntitlementResult.deny(EntitlementKind.INVALID_KEY)
            if record.get("active") is False:
                return EntitlementResult.deny(EntitlementKind.KEY_REVOKED)

        customer_id = (record or {}).get("customerId")
        email = email or (record or {}).get("email")

        if not customer_id and email:
            customer_id = await self.billing_client.find_customer_id(email)
        if not customer_id:
            return EntitlementResult.deny(EntitlementKind.ACCESS_DENIED)

        if not email:
            try:
                email = await self.billing_client.get_customer_email(customer_id)
            except Exception as exc:
                self.logger.debug("Could not resolve customer email", error=str(exc))

        subscriptions = await self.billing_client.list_subscriptions(customer_id)
        eligible = [
            sub for sub in subscriptions
            if str(sub.get("status", "")).lower() in self.allowed_statuses
        ]
        if not eligible:
            return EntitlementResult.deny(EntitlementKind.NO_ACTIVE_SUBSCRIPTION)

        if self.allowed_price_ids and not any(
            self._price_id(item) in self.allowed_price_ids
            for sub in eligible
            for item in ((sub.get("items") or {}).get("data") or [])
        ):
            return EntitlementResult.deny(EntitlementKind.PRICE_NOT_ALLOWED)

        return EntitlementResult(
            granted=True,
            customer_id=customer_id,
            email=email,
            key=(record or {}).get("key"),
            source="stripe",
        )

    @staticmethod
    def _price_id(item: Dict[str, Any]) -> Optional[str]:
        price = item.get("price")
        if isinstance(price, dict):
            return price.get("id")
        return price
