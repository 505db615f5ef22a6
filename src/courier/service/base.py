"""Core Courier service layer.

This module provides the CourierService that wires storage, signing,
the dispatcher, the retry worker and the inbound receiver together.

Example:
    ```python
    from courier.service import CourierService

    async with CourierService.create() as courier:
        record = await courier.dispatcher.enqueue("order.paid", {"orderId": "O1"})
        courier.start_worker()
    ```
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from courier.config import Settings
from courier.storage import CourierStorage
from courier.webhooks import (
    Dispatcher,
    InboundReceiver,
    RetryWorker,
    Signer,
    WebhookSender,
    build_verifier,
)
from courier.webhooks.worker import DeadLetterCallback

from .credits import CreditsService


@dataclass
class CourierService:
    """High-level Courier service.

    Uses dependency injection for storage and settings; the webhook
    components are built from them in ``__post_init__``.

    Attributes:
        storage: Storage backend (Qdrant).
        settings: Configuration settings.
        signer: Outbound signer and inbound verifier.
        dispatcher: Enqueue API for outbound events.
        worker: Background retry worker.
        credits: Credit ledger collaborator.
        receiver: Inbound webhook receiver.
    """

    storage: CourierStorage
    settings: Settings
    on_dead_letter: DeadLetterCallback | None = None

    signer: Signer = field(init=False)
    dispatcher: Dispatcher = field(init=False)
    worker: RetryWorker = field(init=False)
    credits: CreditsService = field(init=False)
    receiver: InboundReceiver = field(init=False)

    def __post_init__(self) -> None:
        """Build the webhook components from settings."""
        self.signer = Signer.from_settings(self.settings)
        self.dispatcher = Dispatcher(
            self.storage,
            self.signer,
            default_target_url=self.settings.webhook_default_target_url,
        )
        self.worker = RetryWorker.from_settings(
            self.storage,
            WebhookSender(timeout_seconds=self.settings.webhook_send_timeout_seconds),
            self.signer,
            self.settings,
            on_dead_letter=self.on_dead_letter,
        )
        self.credits = CreditsService(self.storage)
        self.receiver = InboundReceiver(
            build_verifier(self.settings, self.signer),
            self.storage,
            self.credits,
            self.dispatcher,
        )

    @classmethod
    def create(
        cls,
        settings: Settings | None = None,
        on_dead_letter: DeadLetterCallback | None = None,
    ) -> CourierService:
        """Create a CourierService with default dependencies.

        Args:
            settings: Optional settings. Uses defaults if None.
            on_dead_letter: Optional alerting hook for dead-lettered dispatches.

        Returns:
            Configured CourierService instance.
        """
        if settings is None:
            settings = Settings()

        return cls(
            storage=CourierStorage(
                url=settings.qdrant_url,
                api_key=settings.qdrant_api_key,
                prefix=settings.collection_prefix,
                max_scroll_limit=settings.storage_max_scroll_limit,
            ),
            settings=settings,
            on_dead_letter=on_dead_letter,
        )

    async def initialize(self) -> None:
        """Initialize the service (storage collections, etc.)."""
        await self.storage.initialize()

    async def close(self) -> None:
        """Stop the worker and release storage."""
        await self.stop_worker()
        await self.storage.close()

    async def __aenter__(self) -> CourierService:
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    def start_worker(self) -> None:
        """Start the retry worker loop in the running event loop."""
        self.worker.start()

    async def stop_worker(self) -> None:
        """Stop the retry worker loop if it is running."""
        await self.worker.stop()


__all__ = ["CourierService"]
