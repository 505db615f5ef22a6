"""Unit tests for Courier configuration."""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from courier.config import Settings


class TestSettings:
    """Tests for Settings model."""

    def test_default_settings(self):
        """Default settings should be reasonable."""
        # Use _env_file=None to prevent reading from .env file
        settings = Settings(_env_file=None)
        assert settings.qdrant_url == "http://localhost:6333"
        assert settings.collection_prefix == "courier"
        assert settings.webhook_max_retries == 5
        assert settings.webhook_retry_backoff_ms == 1000
        assert settings.webhook_worker_tick_interval_ms == 5000
        assert settings.webhook_batch_size == 10
        assert settings.webhook_send_timeout_seconds == 30.0
        assert settings.webhook_lease_seconds == 60
        assert settings.webhook_incoming_auth == "hmac"

    def test_derived_seconds(self):
        settings = Settings(
            _env_file=None, webhook_retry_backoff_ms=250, webhook_worker_tick_interval_ms=1500
        )
        assert settings.retry_backoff_seconds == 0.25
        assert settings.worker_tick_interval_seconds == 1.5

    def test_env_override(self):
        """Settings should be overridable via environment."""
        env = {
            "COURIER_QDRANT_URL": "http://qdrant:6333",
            "COURIER_WEBHOOK_MAX_RETRIES": "8",
            "COURIER_WEBHOOK_DEFAULT_TARGET_URL": "https://hooks.example.com/in",
            "COURIER_WEBHOOK_WORKER_ENABLED": "false",
        }
        with patch.dict(os.environ, env):
            settings = Settings(_env_file=None)
            assert settings.qdrant_url == "http://qdrant:6333"
            assert settings.webhook_max_retries == 8
            assert settings.webhook_default_target_url == "https://hooks.example.com/in"
            assert settings.webhook_worker_enabled is False

    def test_max_retries_bounds(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, webhook_max_retries=0)
        with pytest.raises(ValidationError):
            Settings(_env_file=None, webhook_max_retries=51)

    def test_incoming_auth_values(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, webhook_incoming_auth="none")


class TestLeaseValidation:
    """The worker's claim must outlive a single send."""

    def test_lease_must_exceed_timeout(self):
        with pytest.raises(ValidationError, match="webhook_lease_seconds"):
            Settings(_env_file=None, webhook_lease_seconds=30, webhook_send_timeout_seconds=30.0)

    def test_lease_longer_than_timeout(self):
        settings = Settings(
            _env_file=None, webhook_lease_seconds=11, webhook_send_timeout_seconds=10.0
        )
        assert settings.webhook_lease_seconds == 11


class TestProductionSecurity:
    """Tests for production secret requirements."""

    def test_production_requires_secrets(self):
        with pytest.raises(ValidationError, match="COURIER_WEBHOOK_OUTGOING_SECRET"):
            Settings(_env_file=None, env="production", webhook_incoming_secret="in")
        with pytest.raises(ValidationError, match="COURIER_WEBHOOK_INCOMING_SECRET"):
            Settings(_env_file=None, env="production", webhook_outgoing_secret="out")

    def test_production_with_secrets(self):
        settings = Settings(
            _env_file=None,
            env="production",
            webhook_outgoing_secret="out",
            webhook_incoming_secret="in",
        )
        assert settings.env == "production"

    def test_production_body_secret_warns(self):
        with pytest.warns(UserWarning, match="shared secret"):
            Settings(
                _env_file=None,
                env="production",
                webhook_outgoing_secret="out",
                webhook_incoming_secret="in",
                webhook_incoming_auth="hmac_or_body_secret",
            )

    def test_development_allows_missing_secrets(self):
        settings = Settings(_env_file=None, env="development")
        assert settings.webhook_outgoing_secret is None
