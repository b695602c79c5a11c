"""
Unit tests for the entitlement gate.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_vat.app.entitlements.gate import EntitlementGate, EntitlementKind
from service_vat.app.storage.blob_store import InMemoryBlobStore
from shared.errors import EntitlementError
from shared.test_helpers import TestDataFactory, json_bytes


class TestEntitlementGate:
    """Test cases for EntitlementGate."""

    @pytest.fixture
    def store(self):
        """Key registry with one active key."""
        store = InMemoryBlobStore()
        store.objects["keys/by-key/key-123.json"] = json_bytes(TestDataFactory.key_record())
        return store

    @pytest.fixture
    def billing_client(self):
        """Mock billing client with one active subscription."""
        client = MagicMock()
        client.find_customer_id = AsyncMock(return_value="cus_123")
        client.get_customer_email = AsyncMock(return_value="buyer@example.com")
        client.list_subscriptions = AsyncMock(return_value=[TestDataFactory.subscription()])
        return client

    @pytest.fixture
    def gate(self, store, billing_client):
        return EntitlementGate(store, billing_client, allowed_price_ids=frozenset({"price_plus"}))

    @pytest.mark.asyncio
    async def test_granted(self, gate, billing_client):
        """An active key with an allowed plan is granted."""
        result = await gate.check("key-123", "buyer@example.com")

        assert result.granted is True
        assert result.kind is None
        assert result.customer_id == "cus_123"
        assert result.source == "stripe"
        billing_client.list_subscriptions.assert_awaited_once_with("cus_123")

    @pytest.mark.asyncio
    async def test_unknown_key(self, gate):
        result = await gate.check("nope", "buyer@example.com")

        assert result.granted is False
        assert result.kind is EntitlementKind.INVALID_KEY

    @pytest.mark.asyncio
    async def test_revoked_key(self, gate, store):
        """Keys marked inactive are revoked."""
        store.objects["keys/by-key/key-123.json"] = json_bytes(TestDataFactory.key_record(active=False))

        result = await gate.check("key-123", "buyer@example.com")

        assert result.kind is EntitlementKind.KEY_REVOKED

    @pytest.mark.asyncio
    async def test_customer_resolved_by_email(self, gate, store, billing_client):
        """A record without customer id falls back to an email lookup."""
        record = TestDataFactory.key_record()
        del record["customerId"]
        store.objects["keys/by-key/key-123.json"] = json_bytes(record)

        result = await gate.check("key-123", "buyer@example.com")

        assert result.granted is True
        billing_client.find_customer_id.assert_awaited_once_with("buyer@example.com")

    @pytest.mark.asyncio
    async def test_no_customer(self, gate, store, billing_client):
        store.objects["keys/by-key/key-123.json"] = json_bytes({"key": "key-123", "active": True})
        billing_client.find_customer_id.return_value = None

        result = await gate.check("key-123", "buyer@example.com")

        assert result.kind is EntitlementKind.ACCESS_DENIED

    @pytest.mark.asyncio
    async def test_no_active_subscription(self, gate, billing_client):
        """Only allowed subscription statuses count."""
        billing_client.list_subscriptions.return_value = [TestDataFactory.subscription(status="canceled")]

        result = await gate.check("key-123", "buyer@example.com")

        assert result.kind is EntitlementKind.NO_ACTIVE_SUBSCRIPTION

    @pytest.mark.asyncio
    async def test_trialing_is_active(self, gate, billing_client):
        billing_client.list_subscriptions.return_value = [TestDataFactory.subscription(status="trialing")]

        result = await gate.check("key-123", "buyer@example.com")

        assert result.granted is True

    @pytest.mark.asyncio
    async def test_price_not_allowed(self, gate, billing_client):
        billing_client.list_subscriptions.return_value = [TestDataFactory.subscription(price_id="price_basic")]

        result = await gate.check("key-123", "buyer@example.com")

        assert result.kind is EntitlementKind.PRICE_NOT_ALLOWED

    @pytest.mark.asyncio
    async def test_any_price_when_unrestricted(self, store, billing_client):
        """With no price allow-list any active plan is accepted."""
        gate = EntitlementGate(store, billing_client)
        billing_client.list_subscriptions.return_value = [TestDataFactory.subscription(price_id="price_basic")]

        result = await gate.check("key-123", "buyer@example.com")

        assert result.granted is True

    @pytest.mark.asyncio
    async def test_billing_failure_denies(self, gate, billing_client):
        """Provider errors deny access instead of raising."""
        billing_client.list_subscriptions.side_effect = EntitlementError("Billing provider unavailable")

        result = await gate.check("key-123", "buyer@example.com")

        assert result.kind is EntitlementKind.ACCESS_DENIED

    @pytest.mark.asyncio
    async def test_enforced_without_billing_client(self, store):
        gate = EntitlementGate(store, None)

        result = await gate.check("key-123", "buyer@example.com")

        assert result.kind is EntitlementKind.ACCESS_DENIED

    @pytest.mark.asyncio
    async def test_dev_mode_accepts_any_key(self):
        """Without enforcement any non-empty key passes, nothing is consulted."""
        gate = EntitlementGate(None, None, enforce=False)

        granted = await gate.check("anything", "dev@example.com")
        denied = await gate.check("", "dev@example.com")

        assert granted.granted is True
        assert granted.source == "no_enforce"
        assert denied.kind is EntitlementKind.INVALID_KEY

    @pytest.mark.asyncio
    async def test_records_metrics(self, store, billing_client):
        metrics = MagicMock()
        gate = EntitlementGate(store, billing_client, metrics=metrics)

        await gate.check("nope", "buyer@example.com")

        metrics.increment_counter.assert_called_with("entitlement_checks_total", decision="invalid_key")
