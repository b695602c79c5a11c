"""
VAT lookup service: metered, entitlement-gated proxy in front of VIES.
"""

import os
import time
from typing import Any, Dict, Optional, Tuple

from fastapi import Header, Request
from fastapi.responses import JSONResponse

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config
from shared.logging import set_api_key_context
from .adapters.billing_client import BillingClient
from .adapters.vies_client import ViesClient
from .clock import Clock
from .entitlements.gate import EntitlementGate, EntitlementKind
from .lookup import LookupService
from .metering.window_meter import RATE_LIMIT_EXCEEDED, WindowedUsageMeter
from .storage.blob_store import BlobStore, S3BlobStore, S3Config
from .validation.fallback import ValidationFallbackEngine


DEFAULT_PORT = 3000

ENTITLEMENT_ERRORS: Dict[EntitlementKind, Tuple[int, str]] = {
    EntitlementKind.INVALID_KEY: (401, "invalid_api_key"),
    EntitlementKind.KEY_REVOKED: (403, "key_revoked"),
    EntitlementKind.NO_ACTIVE_SUBSCRIPTION: (403, "access_denied"),
    EntitlementKind.PRICE_NOT_ALLOWED: (403, "plan_not_allowed"),
    EntitlementKind.ACCESS_DENIED: (403, "access_denied"),
}

SECURITY_HEADERS = {
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains; preload",
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "no-referrer",
    "Cache-Control": "no-cache",
}


class VatService(BaseService):
    """VAT lookup service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        *,
        blob_store: Optional[BlobStore] = None,
        vies_client: Optional[ViesClient] = None,
        billing_client: Optional[BillingClient] = None,
        clock: Clock = time.time,
    ):
        port = int(os.getenv("PORT", str(DEFAULT_PORT)))
        super().__init__("vat", port, config or get_config("vat", port))

        self.blob_store = blob_store if blob_store is not None else self._build_blob_store()
        self.vies_client = vies_client or ViesClient(
            self.config.vies_endpoint,
            timeout_seconds=self.config.vies_timeout_seconds,
            user_agent=self.config.vies_user_agent,
        )
        self.billing_client = billing_client or self._build_billing_client()

        self.entitlement_gate = EntitlementGate(
            self.blob_store,
            self.billing_client,
            enforce=self.config.enforce_billing,
            allowed_price_ids=self.config.allowed_price_ids,
            allowed_statuses=self.config.allowed_statuses,
            metrics=self.metrics,
        )
        self.meter = WindowedUsageMeter(
            self.blob_store,
            window_ms=self.config.window_ms,
            limit=self.config.rps_limit,
            clock=clock,
            metrics=self.metrics,
        )
        self.engine = ValidationFallbackEngine(
            self.vies_client,
            self.blob_store,
            cache_ttl_ms=self.config.cache_ttl_ms,
            upstream_timeout_seconds=self.config.vies_timeout_seconds,
            clock=clock,
            metrics=self.metrics,
        )
        self.lookup_service = LookupService(self.meter, self.engine)

        @self.app.on_event("shutdown")
        async def _shutdown():
            await self.vies_client.close()
            if self.billing_client:
                await self.billing_client.close()

        self._setup_security_headers()
        self._setup_vat_routes()

        self.logger.info(
            "VAT service configured",
            object_store="on" if self.blob_store is not None else "off",
            billing="on" if self.config.enforce_billing else "off",
            window_ms=self.config.window_ms,
            limit=self.config.rps_limit,
            cache_ttl_ms=self.config.cache_ttl_ms,
        )

        self.app.state.vat_service = self

    def _build_blob_store(self) -> Optional[BlobStore]:
        if not self.config.s3_bucket:
            self.logger.warning("S3_BUCKET not set, cache and rate limiting disabled")
            return None
        return S3BlobStore(
            S3Config(
                bucket=self.config.s3_bucket,
                region=self.config.aws_region,
                endpoint_url=self.config.s3_endpoint_url,
                timeout_seconds=self.config.s3_timeout_seconds,
            )
        )

    def _build_billing_client(self) -> Optional[BillingClient]:
        if not self.config.enforce_billing:
            return None
        if not self.config.stripe_secret_key:
            self.logger.error("STRIPE_SECRET_KEY missing while billing enforcement is on")
            return None
        return BillingClient(self.config.stripe_secret_key, api_base=self.config.stripe_api_base)

    async def _check_dependencies(self) -> Dict[str, str]:
        return {
            "object_store": "configured" if self.blob_store is not None else "disabled",
            "billing": "enforced" if self.config.enforce_billing else "disabled",
        }

    def _setup_security_headers(self):
        """Attach transport security headers to every response."""

        @self.app.middleware("http")
        async def add_security_headers(request: Request, call_next):
            response = await call_next(request)
            for name, value in SECURITY_HEADERS.items():
                response.headers.setdefault(name, value)
            return response

    def _setup_vat_routes(self):
        """Set up lookup routes."""

        @self.app.get("/")
        async def root():
            return {"service": "vat", "message": "VATFix Plus"}

        @self.app.get("/status")
        async def status():
            return {
                "status": "ok",
                "region": self.config.aws_region,
                "host": "fly" if self.config.host_label else "local",
            }

        async def vat_lookup(
            request: Request,
            x_api_key: Optional[str] = Header(default=None),
            x_customer_email: Optional[str] = Header(default=None),
        ):
            return await self._handle_lookup(request, x_api_key, x_customer_email)

        self.app.add_api_route("/vat/lookup", vat_lookup, methods=["POST"])
        self.app.add_api_route("/vat/validate", vat_lookup, methods=["POST"])

    async def _read_body(self, request: Request) -> Dict[str, Any]:
        try:
            body = await request.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    async def _handle_lookup(self, request: Request, api_key: Optional[str],
                             email: Optional[str]) -> JSONResponse:
        try:
            set_api_key_context(api_key)
            body = await self._read_body(request)
            country_code = body.get("countryCode")
            vat_number = body.get("vatNumber")

            if not api_key:
                return JSONResponse(status_code=401, content={"error": "missing_api_key"})
            if not email:
                return JSONResponse(status_code=401, content={"error": "missing_customer_email"})
            if not country_code or not vat_number:
                return JSONResponse(status_code=400, content={"error": "missing_vat_data"})

            entitlement = await self.entitlement_gate.check(api_key, email)
            if not entitlement.granted:
                status_code, error = ENTITLEMENT_ERRORS[entitlement.kind]
                return JSONResponse(status_code=status_code, content={"error": error})

            outcome = await self.lookup_service.lookup(country_code, vat_number, api_key, email)

            headers = {}
            if outcome.decision.remaining is not None:
                headers["X-Rate-Remaining"] = str(outcome.decision.remaining)

            if not outcome.decision.allowed:
                return JSONResponse(
                    status_code=429,
                    content={"error": outcome.decision.reason or RATE_LIMIT_EXCEEDED},
                    headers=headers,
                )

            return JSONResponse(status_code=200, content=outcome.result.to_payload(), headers=headers)

        except Exception as e:
            self.logger.error("Lookup handler failed", error=str(e), exc_info=True)
            self.metrics.record_error("server_error")
            return JSONResponse(status_code=500, content={"error": "server_error"})


def create_app(config: Optional[ServiceConfig] = None, **components):
    """Create FastAPI application."""
    service = VatService(config, **components)
    return service.app


if __name__ == "__main__":
    service = VatService()
    service.run()
