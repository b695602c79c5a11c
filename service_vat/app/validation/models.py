"""
Result model returned by the validation engine.
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class ResultSource(str, Enum):
    """Where an answer came from."""
    VIES = "vies"
    CACHE = "cache"
    ERROR = "error"


class ValidationResult(BaseModel):
    """Answer for one VAT lookup.

    Serialized with camelCase keys. ``name`` and ``address`` are always
    present (``null`` when unknown); ``cached`` and ``error`` only appear
    on cache answers and soft failures respectively.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True, use_enum_values=True)

    country_code: str = Field(..., alias="countryCode")
    vat_number: str = Field(..., alias="vatNumber")
    valid: bool
    name: Optional[str] = None
    address: Optional[str] = None
    request_date: str = Field(..., alias="requestDate")
    lookup_id: str = Field(..., alias="lookupId")
    source: ResultSource
    cache_ttl_ms: int = Field(..., alias="cacheTtlMs")
    cached: Optional[bool] = None
    error: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        payload = self.model_dump(by_alias=True, mode="json")
        for optional in ("cached", "error"):
            if payload.get(optional) is None:
                payload.pop(optional, None)
        return payload
