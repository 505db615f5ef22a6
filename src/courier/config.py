"""Configuration management for Courier."""

import logging
import warnings
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Courier configuration loaded from environment variables.

    All settings can be overridden via environment variables with
    the COURIER_ prefix. For example:
        COURIER_QDRANT_URL=http://localhost:6333
        COURIER_WEBHOOK_OUTGOING_SECRET=...
        COURIER_WEBHOOK_MAX_RETRIES=8

    Security Notes:
        - In production (COURIER_ENV=production), both webhook secrets are required
        - Accepting the body-secret scheme in production logs a warning
    """

    # Environment
    env: Literal["development", "production", "test"] = Field(
        default="development",
        description="Environment: development, production, or test",
    )

    # Storage
    qdrant_url: str = Field(
        default="http://localhost:6333",
        description="Qdrant connection URL",
    )
    qdrant_api_key: str | None = Field(
        default=None,
        description="Qdrant API key (for cloud)",
    )
    collection_prefix: str = Field(
        default="courier",
        description="Prefix for Qdrant collection names",
    )
    storage_max_scroll_limit: int = Field(
        default=10000,
        ge=100,
        le=100000,
        description=(
            "Maximum records to fetch in a single scroll operation. "
            "Bounds the candidate set the worker orders before slicing a batch."
        ),
    )

    # Webhook secrets
    webhook_outgoing_secret: str | None = Field(
        default=None,
        description="HMAC-SHA256 key used to sign outbound webhook bodies",
    )
    webhook_incoming_secret: str | None = Field(
        default=None,
        description="HMAC-SHA256 key (or shared body secret) for inbound webhooks",
    )
    webhook_incoming_auth: Literal["hmac", "body_secret", "hmac_or_body_secret"] = Field(
        default="hmac",
        description=(
            "How inbound webhooks are authenticated: 'hmac' (X-Signature header), "
            "'body_secret' (WEBHOOK_SECRET field in the JSON body) or either"
        ),
    )

    # Outbound delivery
    webhook_default_target_url: str | None = Field(
        default=None,
        description="Fallback destination when enqueue is called without a target URL",
    )
    webhook_max_retries: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Delivery attempts before a dispatch is dead-lettered",
    )
    webhook_retry_backoff_ms: int = Field(
        default=1000,
        ge=1,
        description="Backoff base in milliseconds (doubles each failed attempt)",
    )
    webhook_worker_tick_interval_ms: int = Field(
        default=5000,
        ge=10,
        description="Interval between retry worker ticks",
    )
    webhook_batch_size: int = Field(
        default=10,
        ge=1,
        le=1000,
        description="Maximum dispatches attempted per worker tick",
    )
    webhook_send_timeout_seconds: float = Field(
        default=30.0,
        gt=0.0,
        le=300.0,
        description="Upper bound on a single outbound POST",
    )
    webhook_lease_seconds: int = Field(
        default=60,
        ge=1,
        description=(
            "How long a worker's claim on a dispatch lasts. Must exceed the send "
            "timeout so a live claim never expires mid-delivery."
        ),
    )
    webhook_worker_enabled: bool = Field(
        default=True,
        description="Run the retry worker inside the API process",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_format: Literal["json", "text"] = Field(
        default="json",
        description="Log output format",
    )

    # CORS Configuration
    cors_enabled: bool = Field(
        default=True,
        description="Enable CORS middleware",
    )
    cors_allow_origins: list[str] = Field(
        default_factory=lambda: ["*"],
        description=(
            "List of allowed CORS origins. Use ['*'] for permissive mode (dev only). "
            "In production, specify exact origins like ['https://app.example.com']."
        ),
    )
    cors_allow_methods: list[str] = Field(
        default_factory=lambda: ["GET", "POST", "OPTIONS"],
        description="Allowed HTTP methods for CORS requests",
    )
    cors_allow_headers: list[str] = Field(
        default_factory=lambda: ["*"],
        description="Allowed headers for CORS requests",
    )
    cors_max_age: int = Field(
        default=600,
        ge=0,
        le=86400,
        description="Max age (seconds) for CORS preflight cache",
    )

    model_config = {
        "env_prefix": "COURIER_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_nested_delimiter": "__",
    }

    @model_validator(mode="after")
    def validate_lease_covers_timeout(self) -> "Settings":
        """A lease shorter than the send timeout lets a second worker steal a live delivery."""
        if self.webhook_lease_seconds <= self.webhook_send_timeout_seconds:
            raise ValueError(
                f"webhook_lease_seconds ({self.webhook_lease_seconds}) must be greater than "
                f"webhook_send_timeout_seconds ({self.webhook_send_timeout_seconds})."
            )
        return self

    @model_validator(mode="after")
    def validate_security_settings(self) -> "Settings":
        """Validate webhook secrets based on environment.

        - In production, both secrets MUST be explicitly provided
        - In dev/test, missing secrets only surface when they are used
        """
        if self.env != "production":
            return self

        missing = [
            name
            for name, value in (
                ("COURIER_WEBHOOK_OUTGOING_SECRET", self.webhook_outgoing_secret),
                ("COURIER_WEBHOOK_INCOMING_SECRET", self.webhook_incoming_secret),
            )
            if not value
        ]
        if missing:
            raise ValueError(
                f"{', '.join(missing)} must be set in production. "
                'Generate one with: python -c "import secrets; print(secrets.token_hex(32))"'
            )

        if self.webhook_incoming_auth != "hmac":
            warnings.warn(
                "Inbound webhooks accept a shared secret in the request body. "
                "Prefer COURIER_WEBHOOK_INCOMING_AUTH=hmac where senders support it.",
                UserWarning,
                stacklevel=2,
            )
            logger.warning("Body-secret webhook authentication enabled in production")

        return self

    @property
    def retry_backoff_seconds(self) -> float:
        """Backoff base in seconds."""
        return self.webhook_retry_backoff_ms / 1000

    @property
    def worker_tick_interval_seconds(self) -> float:
        """Worker tick interval in seconds."""
        return self.webhook_worker_tick_interval_ms / 1000


# Global settings instance
settings = Settings()
