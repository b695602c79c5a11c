"""
Unit tests for settings and log helpers.
"""

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.config import DEFAULT_CACHE_TTL_MS, DEFAULT_RPS_LIMIT, get_config
from shared.logging import mask_api_key


class TestServiceConfig:
    """Test cases for environment-driven configuration."""

    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch):
        for name in ("S3_BUCKET", "VATFIX_RPS_LIMIT", "VATFIX_WINDOW_MS", "VATFIX_CACHE_TTL_MS",
                     "ENFORCE_STRIPE", "VATFIX_PRICE_IDS", "VATFIX_ALLOWED_SUB_STATUSES",
                     "FLY_MACHINE_ID", "VIES_TIMEOUT_SECONDS"):
            monkeypatch.delenv(name, raising=False)

    def test_defaults(self):
        config = get_config("vat", 3000)

        assert config.cache_ttl_ms == 43_200_000
        assert config.window_ms == 60_000
        assert config.rps_limit == 120
        assert config.aws_region == "eu-north-1"
        assert config.vies_timeout_seconds == 2.5
        assert config.enforce_billing is True
        assert config.allowed_statuses == frozenset({"active", "trialing"})
        assert config.allowed_price_ids == frozenset()

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("S3_BUCKET", "vat-bucket")
        monkeypatch.setenv("VATFIX_RPS_LIMIT", "30")
        monkeypatch.setenv("ENFORCE_STRIPE", "0")
        monkeypatch.setenv("VATFIX_PRICE_IDS", "price_a, price_b,")

        config = get_config("vat", 3000)

        assert config.s3_bucket == "vat-bucket"
        assert config.rps_limit == 30
        assert config.enforce_billing is False
        assert config.allowed_price_ids == frozenset({"price_a", "price_b"})

    @pytest.mark.parametrize("raw", ["0", "-5", "lots", "inf", "nan"])
    def test_bad_numbers_fall_back(self, monkeypatch, raw):
        """Non-positive or unreadable numbers keep the defaults."""
        monkeypatch.setenv("VATFIX_RPS_LIMIT", raw)
        monkeypatch.setenv("VATFIX_CACHE_TTL_MS", raw)
        monkeypatch.setenv("VIES_TIMEOUT_SECONDS", raw)

        config = get_config("vat", 3000)

        assert config.rps_limit == DEFAULT_RPS_LIMIT
        assert config.cache_ttl_ms == DEFAULT_CACHE_TTL_MS
        assert config.vies_timeout_seconds == 2.5

    def test_blank_bucket_is_unset(self, monkeypatch):
        monkeypatch.setenv("S3_BUCKET", "  ")

        assert get_config("vat", 3000).s3_bucket is None

    def test_frozen(self):
        config = get_config("vat", 3000)

        with pytest.raises(Exception):
            config.rps_limit = 1


class TestMaskApiKey:
    """Test cases for API key masking in logs."""

    def test_keeps_last_four(self):
        assert mask_api_key("sk_live_abcdef1234") == "****1234"

    def test_short_keys_fully_masked(self):
        assert mask_api_key("abc") == "****"
