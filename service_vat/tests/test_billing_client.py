"""
Unit tests for the billing provider client.
"""

import pytest
import httpx
import respx

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_vat.app.adapters.billing_client import BillingClient
from shared.errors import EntitlementError
from shared.test_helpers import TestDataFactory


API_BASE = "http://billing.test"


class TestBillingClient:
    """Test cases for BillingClient."""

    @pytest.fixture
    def billing_client(self):
        """Create BillingClient instance."""
        return BillingClient("sk_test_123", api_base=API_BASE)

    @pytest.mark.asyncio
    async def test_find_customer_id(self, billing_client):
        """Customers are looked up by email with the secret key as bearer."""
        with respx.mock(assert_all_called=True) as router:
            route = router.get(f"{API_BASE}/v1/customers").respond(
                200, json={"data": [{"id": "cus_123", "email": "buyer@example.com"}]}
            )

            customer_id = await billing_client.find_customer_id("buyer@example.com")

        assert customer_id == "cus_123"
        request = route.calls[0].request
        assert request.headers["Authorization"] == "Bearer sk_test_123"
        assert request.url.params["email"] == "buyer@example.com"
        assert request.url.params["limit"] == "1"

    @pytest.mark.asyncio
    async def test_find_customer_id_none(self, billing_client):
        with respx.mock(assert_all_called=True) as router:
            router.get(f"{API_BASE}/v1/customers").respond(200, json={"data": []})

            assert await billing_client.find_customer_id("nobody@example.com") is None

    @pytest.mark.asyncio
    async def test_get_customer_email_deleted(self, billing_client):
        """Deleted customers have no email."""
        with respx.mock(assert_all_called=True) as router:
            router.get(f"{API_BASE}/v1/customers/cus_123").respond(
                200, json={"id": "cus_123", "deleted": True}
            )

            assert await billing_client.get_customer_email("cus_123") is None

    @pytest.mark.asyncio
    async def test_list_subscriptions_expands_prices(self, billing_client):
        """Subscriptions are listed with item prices expanded."""
        subscription = TestDataFactory.subscription()

        with respx.mock(assert_all_called=True) as router:
            route = router.get(f"{API_BASE}/v1/subscriptions").respond(200, json={"data": [subscription]})

            subscriptions = await billing_client.list_subscriptions("cus_123")

        assert subscriptions == [subscription]
        params = route.calls[0].request.url.params
        assert params["customer"] == "cus_123"
        assert params["expand[]"] == "data.items.data.price"

    @pytest.mark.asyncio
    async def test_error_status_raises(self, billing_client):
        """Non-200 answers raise EntitlementError."""
        with respx.mock(assert_all_called=True) as router:
            router.get(f"{API_BASE}/v1/subscriptions").respond(401, json={"error": {"type": "auth"}})

            with pytest.raises(EntitlementError):
                await billing_client.list_subscriptions("cus_123")

    @pytest.mark.asyncio
    async def test_transport_error_raises(self, billing_client):
        with respx.mock(assert_all_called=True) as router:
            router.get(f"{API_BASE}/v1/customers").mock(side_effect=httpx.ConnectError("refused"))

            with pytest.raises(EntitlementError):
                await billing_client.find_customer_id("buyer@example.com")

        await billing_client.close()
