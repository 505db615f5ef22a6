"""Integration tests for CourierService wiring.

Storage is in-memory Qdrant; outbound HTTP is patched at httpx.AsyncClient.
"""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from courier.config import Settings
from courier.models import Account, Order
from courier.service import CourierService
from courier.storage import CourierStorage
from courier.webhooks import AnyOfVerifier, HmacHeaderVerifier
from courier.webhooks.signing import compute_signature, verify_signature

OUTGOING_SECRET = "out_secret_for_tests"
INCOMING_SECRET = "in_secret_for_tests"
TARGET = "https://hooks.example.com/in"


def mock_http(status_code: int) -> AsyncMock:
    response = MagicMock()
    response.status_code = status_code
    response.text = ""
    client = AsyncMock()
    client.post = AsyncMock(return_value=response)
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=None)
    return client


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        env="test",
        webhook_outgoing_secret=OUTGOING_SECRET,
        webhook_incoming_secret=INCOMING_SECRET,
        webhook_default_target_url=TARGET,
        webhook_max_retries=3,
    )


@pytest.fixture
def service(storage: CourierStorage, settings: Settings) -> CourierService:
    return CourierService(storage=storage, settings=settings)


class TestWiring:
    def test_components_share_storage(self, service: CourierService, storage: CourierStorage):
        assert service.dispatcher._storage is storage
        assert service.worker._storage is storage
        assert service.credits._storage is storage
        assert service.receiver._dispatcher is service.dispatcher

    def test_worker_uses_settings(self, service: CourierService):
        assert service.worker.max_retries == 3
        assert service.worker.is_running is False

    def test_verifier_follows_auth_mode(self, storage: CourierStorage, settings: Settings):
        assert isinstance(
            CourierService(storage=storage, settings=settings).receiver._verifier,
            HmacHeaderVerifier,
        )
        either = settings.model_copy(update={"webhook_incoming_auth": "hmac_or_body_secret"})
        assert isinstance(
            CourierService(storage=storage, settings=either).receiver._verifier, AnyOfVerifier
        )

    def test_create_builds_storage_from_settings(self, settings: Settings):
        service = CourierService.create(settings.model_copy(update={"collection_prefix": "acme"}))
        assert service.storage._prefix == "acme"


class TestEndToEnd:
    """Enqueue through delivery against in-memory storage."""

    async def test_enqueue_then_deliver(self, service: CourierService):
        record = await service.dispatcher.enqueue("order.paid", {"orderId": "O1"})
        assert record.target_url == TARGET

        with patch("httpx.AsyncClient") as mock_client_class:
            client = mock_http(200)
            mock_client_class.return_value = client
            result = await service.worker.tick()

        assert result.sent == 1
        stored = await service.storage.get_dispatch(record.id)
        assert stored.status == "sent"
        assert stored.attempts == 1

        kwargs = client.post.call_args.kwargs
        assert kwargs["content"] == record.body.encode("utf-8")
        assert verify_signature(kwargs["content"], OUTGOING_SECRET, kwargs["headers"]["X-Signature"])

    async def test_inbound_payment_propagates_outbound(
        self, service: CourierService, storage: CourierStorage
    ):
        account = Account(email="ana@example.com")
        order = Order(user_id=account.id, plan_code="START", price=49.0, credits=15)
        await storage.store_account(account)
        await storage.store_order(order)
        raw = json.dumps({"event": "payment.paid", "data": {"orderId": order.id}}).encode()

        await service.receiver.handle(raw, {"X-Signature": compute_signature(raw, INCOMING_SECRET)})

        assert await service.credits.get_balance(account.id) == 15
        queued = await storage.list_dispatches(event_type="order.completed")
        assert len(queued) == 1
        assert queued[0].status == "queued"
        assert queued[0].payload["orderId"] == order.id

    async def test_stop_worker(self, service: CourierService):
        service.start_worker()
        assert service.worker.is_running

        await service.stop_worker()

        assert service.worker.is_running is False
