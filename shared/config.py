"""
Shared configuration management for the VAT lookup gateway.

Settings are read once from the process environment (and an optional
``.env`` file) at start-up and then passed by value into every component.
The settings object is frozen; nothing inside the lookup path reads the
environment directly.
"""

from typing import Any, FrozenSet, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_CACHE_TTL_MS = 12 * 3600 * 1000
DEFAULT_WINDOW_MS = 60 * 1000
DEFAULT_RPS_LIMIT = 120
DEFAULT_TIMEOUT_SECONDS = 2.5
VIES_ENDPOINT = "https://ec.europa.eu/taxation_customs/vies/services/checkVatService"


def _env(*names: str) -> AliasChoices:
    return AliasChoices(*names)


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
        frozen=True,
    )

    # Environment
    env: str = Field(default="local", validation_alias=_env("VATFIX_ENV", "env"))
    log_level: str = Field(default="info", validation_alias=_env("VATFIX_LOG_LEVEL", "log_level"))
    host_label: Optional[str] = Field(default=None, validation_alias=_env("FLY_MACHINE_ID", "host_label"))

    # Object store
    s3_bucket: Optional[str] = Field(default=None, validation_alias=_env("S3_BUCKET", "s3_bucket"))
    aws_region: str = Field(default="eu-north-1", validation_alias=_env("AWS_REGION", "aws_region"))
    s3_endpoint_url: Optional[str] = Field(default=None, validation_alias=_env("S3_ENDPOINT_URL", "s3_endpoint_url"))
    s3_timeout_seconds: float = Field(
        default=DEFAULT_TIMEOUT_SECONDS, validation_alias=_env("S3_TIMEOUT_SECONDS", "s3_timeout_seconds")
    )

    # Validation cache and usage meter
    cache_ttl_ms: int = Field(default=DEFAULT_CACHE_TTL_MS, validation_alias=_env("VATFIX_CACHE_TTL_MS", "cache_ttl_ms"))
    window_ms: int = Field(default=DEFAULT_WINDOW_MS, validation_alias=_env("VATFIX_WINDOW_MS", "window_ms"))
    rps_limit: int = Field(default=DEFAULT_RPS_LIMIT, validation_alias=_env("VATFIX_RPS_LIMIT", "rps_limit"))

    # Upstream VIES service
    vies_endpoint: str = Field(default=VIES_ENDPOINT, validation_alias=_env("VIES_ENDPOINT", "vies_endpoint"))
    vies_timeout_seconds: float = Field(
        default=DEFAULT_TIMEOUT_SECONDS, validation_alias=_env("VIES_TIMEOUT_SECONDS", "vies_timeout_seconds")
    )
    vies_user_agent: str = Field(default="VATFix-Plus/1.0", validation_alias=_env("VIES_USER_AGENT", "vies_user_agent"))

    # Billing / entitlements
    enforce_stripe: str = Field(default="1", validation_alias=_env("ENFORCE_STRIPE", "enforce_stripe"))
    stripe_secret_key: Optional[str] = Field(
        default=None, validation_alias=_env("STRIPE_SECRET_KEY", "stripe_secret_key")
    )
    stripe_api_base: str = Field(
        default="https://api.stripe.com", validation_alias=_env("STRIPE_API_BASE", "stripe_api_base")
    )
    price_ids: str = Field(default="", validation_alias=_env("VATFIX_PRICE_IDS", "price_ids"))
    allowed_sub_statuses: str = Field(
        default="active,trialing", validation_alias=_env("VATFIX_ALLOWED_SUB_STATUSES", "allowed_sub_statuses")
    )

    @field_validator("s3_bucket", "s3_endpoint_url", "stripe_secret_key", "host_label", mode="before")
    @classmethod
    def _blank_is_unset(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("cache_ttl_ms", "window_ms", "rps_limit", mode="before")
    @classmethod
    def _positive_int_or_default(cls, value: Any, info) -> int:
        default = cls.model_fields[info.field_name].default
        try:
            parsed = int(float(value))
        except (TypeError, ValueError, OverflowError):
            return default
        return parsed if parsed > 0 else default

    @field_validator("s3_timeout_seconds", "vies_timeout_seconds", mode="before")
    @classmethod
    def _positive_float_or_default(cls, value: Any, info) -> float:
        default = cls.model_fields[info.field_name].default
        try:
            parsed = float(value)
        except (TypeError, ValueError):
            return default
        return parsed if 0 < parsed < float("inf") else default

    @property
    def enforce_billing(self) -> bool:
        return self.enforce_stripe == "1"

    @property
    def allowed_price_ids(self) -> FrozenSet[str]:
        return frozenset(p.strip() for p in self.price_ids.split(",") if p.strip())

    @property
    def allowed_statuses(self) -> FrozenSet[str]:
        return frozenset(s.strip().lower() for s in self.allowed_sub_statuses.split(",") if s.strip())


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides: Any) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
