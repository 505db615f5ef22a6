"""Unit tests for the Dispatcher enqueue API."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from courier.exceptions import (
    ConfigurationError,
    NotFoundError,
    SerializationError,
    ValidationError,
)
from courier.models import DispatchRecord
from courier.webhooks import Dispatcher, Signer, dispatch_webhook_event
from courier.webhooks.dispatcher import is_valid_target_url
from courier.webhooks.signing import compute_signature

DEFAULT_TARGET = "https://hooks.example.com/courier"


@pytest.fixture
def mock_storage() -> AsyncMock:
    """Create a mock storage instance."""
    storage = AsyncMock()
    storage.insert_dispatch = AsyncMock(side_effect=lambda record: record.id)
    storage.get_dispatch = AsyncMock(return_value=None)
    return storage


@pytest.fixture
def dispatcher(mock_storage: AsyncMock, signer: Signer) -> Dispatcher:
    return Dispatcher(mock_storage, signer, default_target_url=DEFAULT_TARGET)


class TestIsValidTargetUrl:
    @pytest.mark.parametrize(
        "url",
        ["https://example.com/hook", "http://localhost:8080/in", "https://a.b/c?d=e"],
    )
    def test_valid(self, url: str) -> None:
        assert is_valid_target_url(url)

    @pytest.mark.parametrize("url", ["not a url", "/relative/path", "ftp://example.com/x", ""])
    def test_invalid(self, url: str) -> None:
        assert not is_valid_target_url(url)


class TestEnqueue:
    """Tests for Dispatcher.enqueue."""

    async def test_uses_default_target(
        self, dispatcher: Dispatcher, mock_storage: AsyncMock
    ) -> None:
        """An event with no target is queued for the configured default."""
        record = await dispatcher.enqueue("order.paid", {"orderId": "O1"})

        assert record.target_url == DEFAULT_TARGET
        assert record.status == "queued"
        assert record.attempts == 0
        assert record.event_type == "order.paid"
        assert record.payload == {"orderId": "O1"}
        mock_storage.insert_dispatch.assert_awaited_once_with(record)

    async def test_signature_covers_stored_body(self, dispatcher: Dispatcher) -> None:
        record = await dispatcher.enqueue("order.paid", {"orderId": "O1", "credits": 30})

        assert record.body == '{"orderId":"O1","credits":30}'
        assert record.signature == compute_signature(record.body, "out_secret_for_tests")

    async def test_explicit_target(self, dispatcher: Dispatcher) -> None:
        record = await dispatcher.enqueue(
            "video.completed", {"videoId": "v1"}, "https://other.example.com/hook"
        )
        assert record.target_url == "https://other.example.com/hook"

    async def test_malformed_target_falls_back_to_default(self, dispatcher: Dispatcher) -> None:
        record = await dispatcher.enqueue("order.paid", {}, "not a url")
        assert record.target_url == DEFAULT_TARGET

    async def test_malformed_target_without_default(
        self, mock_storage: AsyncMock, signer: Signer
    ) -> None:
        dispatcher = Dispatcher(mock_storage, signer, default_target_url=None)
        with pytest.raises(ValidationError):
            await dispatcher.enqueue("order.paid", {}, "not a url")
        mock_storage.insert_dispatch.assert_not_called()

    async def test_no_target_and_no_default(self, mock_storage: AsyncMock, signer: Signer) -> None:
        dispatcher = Dispatcher(mock_storage, signer, default_target_url=None)
        with pytest.raises(ConfigurationError):
            await dispatcher.enqueue("order.paid", {"orderId": "O1"})
        mock_storage.insert_dispatch.assert_not_called()

    async def test_malformed_default_is_configuration_error(
        self, mock_storage: AsyncMock, signer: Signer
    ) -> None:
        dispatcher = Dispatcher(mock_storage, signer, default_target_url="nowhere")
        with pytest.raises(ConfigurationError):
            await dispatcher.enqueue("order.paid", {})

    @pytest.mark.parametrize("event_type", ["", "   "])
    async def test_empty_event_type(
        self, dispatcher: Dispatcher, mock_storage: AsyncMock, event_type: str
    ) -> None:
        with pytest.raises(ValidationError):
            await dispatcher.enqueue(event_type, {"a": 1})
        mock_storage.insert_dispatch.assert_not_called()

    async def test_circular_payload_rejected(
        self, dispatcher: Dispatcher, mock_storage: AsyncMock
    ) -> None:
        """A circular payload fails synchronously and nothing is stored."""
        payload: dict = {"orderId": "O1"}
        payload["self"] = payload

        with pytest.raises(ValidationError) as exc_info:
            await dispatcher.enqueue("order.paid", payload)

        assert isinstance(exc_info.value, SerializationError)
        mock_storage.insert_dispatch.assert_not_called()

    async def test_non_string_key_rejected(
        self, dispatcher: Dispatcher, mock_storage: AsyncMock
    ) -> None:
        with pytest.raises(SerializationError) as exc_info:
            await dispatcher.enqueue("order.paid", {1: "a"})

        assert exc_info.value.field == "payload"
        mock_storage.insert_dispatch.assert_not_called()

    async def test_missing_outgoing_secret(self, mock_storage: AsyncMock) -> None:
        dispatcher = Dispatcher(mock_storage, Signer(outgoing_secret=None), DEFAULT_TARGET)
        with pytest.raises(ConfigurationError):
            await dispatcher.enqueue("order.paid", {})
        mock_storage.insert_dispatch.assert_not_called()

    async def test_no_deduplication(self, dispatcher: Dispatcher) -> None:
        first = await dispatcher.enqueue("order.paid", {"orderId": "O1"})
        second = await dispatcher.enqueue("order.paid", {"orderId": "O1"})
        assert first.id != second.id

    async def test_convenience_function(
        self, dispatcher: Dispatcher, mock_storage: AsyncMock
    ) -> None:
        record = await dispatch_webhook_event(dispatcher, "video.completed", videoId="v1")
        assert record.payload == {"videoId": "v1"}
        assert record.target_url == DEFAULT_TARGET
        mock_storage.insert_dispatch.assert_awaited_once()


class TestReplay:
    """Tests for Dispatcher.replay."""

    async def test_replay_dead_record(
        self, dispatcher: Dispatcher, mock_storage: AsyncMock
    ) -> None:
        dead = DispatchRecord(
            event_type="order.paid",
            payload={"orderId": "O1"},
            body='{"orderId":"O1"}',
            target_url="https://other.example.com/hook",
            signature="00",
            status="dead",
            attempts=5,
            last_error="HTTP 500",
        )
        mock_storage.get_dispatch.return_value = dead

        replayed = await dispatcher.replay(dead.id)

        assert replayed.id != dead.id
        assert replayed.replay_of == dead.id
        assert replayed.status == "queued"
        assert replayed.attempts == 0
        assert replayed.target_url == dead.target_url
        assert replayed.body == dead.body
        assert dead.status == "dead"

    async def test_replay_unknown(self, dispatcher: Dispatcher) -> None:
        with pytest.raises(NotFoundError):
            await dispatcher.replay("dsp_missing")

    async def test_replay_non_dead(self, dispatcher: Dispatcher, mock_storage: AsyncMock) -> None:
        mock_storage.get_dispatch.return_value = DispatchRecord(
            event_type="order.paid",
            body="{}",
            target_url=DEFAULT_TARGET,
            signature="00",
            status="failed",
        )
        with pytest.raises(ValidationError):
            await dispatcher.replay("dsp_x")
        mock_storage.insert_dispatch.assert_not_called()
