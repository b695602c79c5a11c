"""
VIES client for the VAT lookup service.

Speaks SOAP 1.1 to the European Commission's ``checkVatService`` over a
single keep-alive connection pool. Every failure, whatever its cause, is
raised as ``UpstreamUnavailableError`` with a short reason tag.
"""

from dataclasses import dataclass
from typing import Optional
from xml.etree import ElementTree
from xml.sax.saxutils import escape

import httpx

from shared.logging import get_logger
from shared.errors import UpstreamUnavailableError


SOAP_ENV_NS = "http://schemas.xmlsoap.org/soap/envelope/"
VIES_TYPES_NS = "urn:ec.europa.eu:taxud:vies:services:checkVat:types"

_NS = {"soap": SOAP_ENV_NS, "vies": VIES_TYPES_NS}

_ENVELOPE = (
    '<?xml version="1.0" encoding="UTF-8"?>'
    '<soap:Envelope xmlns:soap="{env}" xmlns:tns="{types}">'
    "<soap:Body>"
    "<tns:checkVat>"
    "<tns:countryCode>{country_code}</tns:countryCode>"
    "<tns:vatNumber>{vat_number}</tns:vatNumber>"
    "</tns:checkVat>"
    "</soap:Body>"
    "</soap:Envelope>"
)


@dataclass(frozen=True)
class ViesResponse:
    """Decoded ``checkVatResponse``; ``request_date`` is VIES' raw string."""

    country_code: Optional[str]
    vat_number: Optional[str]
    valid: bool
    name: Optional[str]
    address: Optional[str]
    request_date: Optional[str]


class ViesClient:
    """Client for the VIES ``checkVat`` operation."""

    def __init__(self, endpoint: str, *, timeout_seconds: float = 2.5,
                 user_agent: str = "VATFix-Plus/1.0",
                 http_client: Optional[httpx.AsyncClient] = None):
        self.endpoint = endpoint
        self.timeout_seconds = timeout_seconds
        self.user_agent = user_agent
        self.logger = get_logger("vat.vies_client")
        self._client = http_client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout_seconds),
                limits=httpx.Limits(max_keepalive_connections=10, keepalive_expiry=30.0),
                headers={"User-Agent": self.user_agent},
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @staticmethod
    def build_envelope(country_code: str, vat_number: str) -> str:
        return _ENVELOPE.format(
            env=SOAP_ENV_NS,
            types=VIES_TYPES_NS,
            country_code=escape(country_code),
            vat_number=escape(vat_number),
        )

    async def check_vat(self, country_code: str, vat_number: str) -> ViesResponse:
        """Call ``checkVat`` once; raises ``UpstreamUnavailableError`` on any failure."""
        body = self.build_envelope(country_code, vat_number)

        try:
            response = await self._get_client().post(
                self.endpoint,
                content=body.encode("utf-8"),
                headers={"Content-Type": "text/xml; charset=utf-8", "SOAPAction": ""},
            )
        except httpx.TimeoutException as exc:
            raise UpstreamUnavailableError("timeout", details={"error": str(exc)}) from exc
        except httpx.ConnectError as exc:
            raise UpstreamUnavailableError("connect_error", details={"error": str(exc)}) from exc
        except httpx.HTTPError as exc:
            raise UpstreamUnavailableError("http_error", details={"error": str(exc)}) from exc

        try:
            return self.parse_response(response.status_code, response.content)
        except UpstreamUnavailableError as exc:
            self.logger.warning(
                "VIES returned no usable answer",
                country_code=country_code,
                status_code=response.status_code,
                reason=exc.message,
            )
            raise

    @classmethod
    def parse_response(cls, status_code: int, content: bytes) -> ViesResponse:
        try:
            document = ElementTree.fromstring(content)
        except ElementTree.ParseError as exc:
            if status_code >= 400:
                raise UpstreamUnavailableError(f"http_{status_code}") from exc
            raise UpstreamUnavailableError("malformed_response") from exc

        fault = document.find(".//soap:Fault", _NS)
        if fault is not None:
            reason = (fault.findtext("faultstring") or "").strip() or "soap_fault"
            raise UpstreamUnavailableError(reason, details={"status_code": status_code})

        if status_code >= 400:
            raise UpstreamUnavailableError(f"http_{status_code}")

        answer = document.find(".//vies:checkVatResponse", _NS)
        if answer is None:
            raise UpstreamUnavailableError("malformed_response")

        valid = (answer.findtext("vies:valid", default="", namespaces=_NS) or "").strip().lower()
        if valid not in ("true", "false"):
            raise UpstreamUnavailableError("malformed_response")

        return ViesResponse(
            country_code=cls._text(answer, "countryCode"),
            vat_number=cls._text(answer, "vatNumber"),
            valid=valid == "true",
            name=cls._text(answer, "name"),
            address=cls._text(answer, "address"),
            request_date=cls._text(answer, "requestDate"),
        )

    @staticmethod
    def _text(element: ElementTree.Element, tag: str) -> Optional[str]:
        value = element.findtext(f"vies:{tag}", default=None, namespaces=_NS)
        if value is None:
            return None
        value = value.strip()
        return value or None
