"""
Test helper functions and factory methods for the VAT lookup gateway.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from shared.errors import UpstreamUnavailableError


def epoch_seconds(iso: str) -> float:
    """Epoch seconds for an ISO-8601 instant such as ``2025-08-11T15:05:17Z``."""
    moment = datetime.fromisoformat(iso.replace("Z", "+00:00"))
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.timestamp()


class FakeClock:
    """Manually advanced clock returning epoch seconds."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance_ms(self, ms: int) -> None:
        self.now += ms / 1000.0

    @classmethod
    def at(cls, iso: str) -> "FakeClock":
        return cls(epoch_seconds(iso))


@dataclass
class StubViesClient:
    """Stand-in for ``ViesClient`` answering from a queue of results.

    Each queued item is either a ``ViesResponse`` or an exception to raise.
    When the queue is empty the client raises ``UpstreamUnavailableError``.
    """

    responses: List[Any] = field(default_factory=list)
    calls: List[tuple] = field(default_factory=list)

    async def check_vat(self, country_code: str, vat_number: str):
        self.calls.append((country_code, vat_number))
        if not self.responses:
            raise UpstreamUnavailableError("unavailable")
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self) -> None:
        return None


def soap_check_vat_response(
    country_code: str = "DE",
    vat_number: str = "123456789",
    valid: str = "true",
    name: Optional[str] = "ACME GmbH",
    address: Optional[str] = "Musterstr. 1\n10115 Berlin",
    request_date: str = "2025-08-11+02:00",
) -> bytes:
    """Build a VIES ``checkVatResponse`` SOAP envelope."""
    fields = [
        f"<ns2:countryCode>{country_code}</ns2:countryCode>",
        f"<ns2:vatNumber>{vat_number}</ns2:vatNumber>",
        f"<ns2:requestDate>{request_date}</ns2:requestDate>",
        f"<ns2:valid>{valid}</ns2:valid>",
    ]
    if name is not None:
        fields.append(f"<ns2:name>{name}</ns2:name>")
    if address is not None:
        fields.append(f"<ns2:address>{address}</ns2:address>")
    return (
        '<env:Envelope xmlns:env="http://schemas.xmlsoap.org/soap/envelope/">'
        "<env:Header/><env:Body>"
        '<ns2:checkVatResponse xmlns:ns2="urn:ec.europa.eu:taxud:vies:services:checkVat:types">'
        + "".join(fields)
        + "</ns2:checkVatResponse></env:Body></env:Envelope>"
    ).encode("utf-8")


def soap_fault(faultstring: str = "MS_UNAVAILABLE") -> bytes:
    """Build a SOAP fault envelope as VIES returns it."""
    return (
        '<env:Envelope xmlns:env="http://schemas.xmlsoap.org/soap/envelope/">'
        "<env:Body><env:Fault>"
        "<faultcode>env:Server</faultcode>"
        f"<faultstring>{faultstring}</faultstring>"
        "</env:Fault></env:Body></env:Envelope>"
    ).encode("utf-8")


class TestDataFactory:
    """Factory for creating test data."""

    __test__ = False

    @staticmethod
    def key_record(api_key: str = "key-123", customer_id: str = "cus_123",
                   email: str = "buyer@example.com", active: bool = True) -> Dict[str, Any]:
        """Key registry record as stored under ``keys/by-key/``."""
        return {
            "key": api_key,
            "customerId": customer_id,
            "email": email,
            "active": active,
        }

    @staticmethod
    def subscription(status: str = "active", price_id: str = "price_plus") -> Dict[str, Any]:
        """Billing subscription with one expanded item price."""
        return {
            "id": "sub_123",
            "status": status,
            "items": {"data": [{"id": "si_1", "price": {"id": price_id}}]},
        }

    @staticmethod
    def cache_entry(cached_at: str, **payload: Any) -> Dict[str, Any]:
        body = {
            "countryCode": "DE",
            "vatNumber": "123456789",
            "valid": True,
            "name": "ACME GmbH",
            "address": "Musterstr. 1",
            "requestDate": cached_at,
            "lookupId": "DE-123456789-old",
            "source": "vies",
            "cacheTtlMs": 43200000,
        }
        body.update(payload)
        return {"cachedAt": cached_at, "payload": body}


def json_bytes(data: Any) -> bytes:
    return json.dumps(data).encode("utf-8")
