"""
Billing provider client (Stripe REST API).
"""

from typing import Any, Dict, List, Optional

import httpx

from shared.logging import get_logger
from shared.errors import EntitlementError


class BillingClient:
    """Read-only client for customers and subscriptions."""

    def __init__(self, secret_key: str, *, api_base: str = "https://api.stripe.com",
                 timeout_seconds: float = 10.0,
                 http_client: Optional[httpx.AsyncClient] = None):
        self.api_base = api_base.rstrip('/')
        self.timeout_seconds = timeout_seconds
        self.logger = get_logger("vat.billing_client")
        self._secret_key = secret_key
        self._client = http_client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.api_base,
                timeout=self.timeout_seconds,
                headers={"Authorization": f"Bearer {self._secret_key}"},
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _get(self, path: str, params: Optional[List] = None) -> Dict[str, Any]:
        try:
            response = await self._get_client().get(path, params=params)
        except httpx.HTTPError as e:
            self.logger.error("Billing provider HTTP error", path=path, error=str(e))
            raise EntitlementError(
                "Billing provider unavailable",
                details={"http_error": str(e)}
            ) from e

        if response.status_code != 200:
            self.logger.error("Billing provider error", path=path, status_code=response.status_code)
            raise EntitlementError(
                f"Billing provider error: {response.status_code}",
                details={"status_code": response.status_code}
            )

        try:
            return response.json()
        except ValueError as e:
            raise EntitlementError("Billing provider returned invalid JSON") from e

    async def find_customer_id(self, email: str) -> Optional[str]:
        """Return the first customer id registered under ``email``."""
        body = await self._get("/v1/customers", params=[("email", email), ("limit", "1")])
        customers = body.get("data") or []
        if not customers:
            return None
        return customers[0].get("id")

    async def get_customer_email(self, customer_id: str) -> Optional[str]:
        body = await self._get(f"/v1/customers/{customer_id}")
        if body.get("deleted"):
            return None
        return body.get("email")

    async def list_subscriptions(self, customer_id: str) -> List[Dict[str, Any]]:
        """List the customer's subscriptions with item prices expanded."""
        body = await self._get(
            "/v1/subscriptions",
            params=[
                ("customer", customer_id),
                ("limit", "100"),
                ("expand[]", "data.items.data.price"),
            ],
        )
        return list(body.get("data") or [])
