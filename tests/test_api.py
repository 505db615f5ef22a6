"""Tests for Courier REST API."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from courier.api.app import create_app, error_status
from courier.api.router import router, set_service
from courier.config import Settings
from courier.exceptions import (
    ConfigurationError,
    NotFoundError,
    SerializationError,
    SignatureError,
    StorageError,
    ValidationError,
)
from courier.models import DispatchRecord
from courier.service import CourierService
from courier.webhooks import InboundResult


def make_record(**overrides) -> DispatchRecord:
    data = {
        "id": "dsp_abc123",
        "event_type": "order.paid",
        "payload": {"orderId": "O1"},
        "body": '{"orderId":"O1"}',
        "target_url": "https://hooks.example.com/in",
        "signature": "deadbeef",
    }
    data.update(overrides)
    return DispatchRecord(**data)


@pytest.fixture
def mock_service():
    """Create a mock CourierService."""
    service = MagicMock(spec=CourierService)
    service.dispatcher = MagicMock()
    service.dispatcher.enqueue = AsyncMock()
    service.dispatcher.replay = AsyncMock()
    service.storage = MagicMock()
    service.storage.get_dispatch = AsyncMock()
    service.storage.list_dispatches = AsyncMock(return_value=[])
    service.storage.count_dispatches_by_status = AsyncMock()
    service.storage.is_connected = True
    service.receiver = MagicMock()
    service.receiver.handle = AsyncMock()
    service.worker = MagicMock()
    service.worker.is_running = True
    service.settings = Settings(webhook_worker_enabled=True)
    return service


@pytest.fixture
def test_app(mock_service):
    """Create a test app with mocked service.

    The lifespan is not run, so no storage or worker is started.
    """
    app = create_app(Settings(cors_enabled=False))
    set_service(mock_service)
    yield app
    set_service(None)


@pytest.fixture
def client(test_app):
    """Create a test client."""
    return TestClient(test_app)


class TestHealthEndpoint:
    """Tests for /health endpoint."""

    def test_healthy(self, client, mock_service):
        response = client.get("/api/v1/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["storage_connected"] is True
        assert data["worker_running"] is True

    def test_degraded_when_worker_stopped(self, client, mock_service):
        """An enabled worker that is not running degrades health."""
        mock_service.worker.is_running = False

        data = client.get("/api/v1/health").json()

        assert data["status"] == "degraded"
        assert data["worker_running"] is False

    def test_unhealthy_when_storage_disconnected(self, client, mock_service):
        mock_service.storage.is_connected = False

        data = client.get("/api/v1/health").json()

        assert data["status"] == "unhealthy"
        assert data["storage_connected"] is False

    def test_worker_disabled_is_healthy(self, client, mock_service):
        mock_service.worker.is_running = False
        mock_service.settings = Settings(webhook_worker_enabled=False)

        assert client.get("/api/v1/health").json()["status"] == "healthy"

    def test_unhealthy_without_service(self):
        app = FastAPI()
        app.include_router(router, prefix="/api/v1")
        set_service(None)

        data = TestClient(app).get("/api/v1/health").json()

        assert data["status"] == "unhealthy"
        assert data["storage_connected"] is False


class TestDispatchEndpoint:
    """Tests for POST /webhooks/dispatch."""

    def test_enqueue_accepted(self, client, mock_service):
        mock_service.dispatcher.enqueue.return_value = make_record()

        response = client.post(
            "/api/v1/webhooks/dispatch",
            json={
                "event_type": "order.paid",
                "payload": {"orderId": "O1"},
                "target_url": "https://hooks.example.com/in",
            },
        )

        assert response.status_code == 202
        data = response.json()
        assert data["id"] == "dsp_abc123"
        assert data["status"] == "queued"
        assert data["attempts"] == 0
        assert "body" not in data
        assert "signature" not in data
        mock_service.dispatcher.enqueue.assert_awaited_once_with(
            "order.paid", {"orderId": "O1"}, "https://hooks.example.com/in"
        )

    def test_enqueue_without_target(self, client, mock_service):
        mock_service.dispatcher.enqueue.return_value = make_record()

        response = client.post("/api/v1/webhooks/dispatch", json={"event_type": "order.paid"})

        assert response.status_code == 202
        mock_service.dispatcher.enqueue.assert_awaited_once_with("order.paid", {}, None)

    def test_validation_error_is_400(self, client, mock_service):
        mock_service.dispatcher.enqueue.side_effect = ValidationError(
            "target_url", "not a valid URL"
        )

        response = client.post(
            "/api/v1/webhooks/dispatch",
            json={"event_type": "order.paid", "target_url": "nope"},
        )

        assert response.status_code == 400
        data = response.json()
        assert data["error"]["code"] == "validation_error"
        assert data["error"]["field"] == "target_url"

    def test_missing_default_target_is_500(self, client, mock_service):
        mock_service.dispatcher.enqueue.side_effect = ConfigurationError(
            "no target URL and no default configured"
        )

        response = client.post("/api/v1/webhooks/dispatch", json={"event_type": "order.paid"})

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "configuration_error"

    def test_request_schema_enforced(self, client, mock_service):
        response = client.post("/api/v1/webhooks/dispatch", json={"payload": {}})

        assert response.status_code == 422
        mock_service.dispatcher.enqueue.assert_not_called()


class TestDispatchQueries:
    """Tests for dispatch listing, lookup and replay."""

    def test_list(self, client, mock_service):
        mock_service.storage.list_dispatches.return_value = [
            make_record(status="dead", attempts=5, last_error="HTTP 500")
        ]

        response = client.get("/api/v1/webhooks/dispatches?status=dead&limit=10")

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 1
        assert data["dispatches"][0]["last_error"] == "HTTP 500"
        mock_service.storage.list_dispatches.assert_awaited_once_with(
            status="dead", event_type=None, limit=10
        )

    def test_list_rejects_unknown_status(self, client, mock_service):
        response = client.get("/api/v1/webhooks/dispatches?status=lost")
        assert response.status_code == 422

    def test_list_limit_bounds(self, client, mock_service):
        assert client.get("/api/v1/webhooks/dispatches?limit=0").status_code == 422
        assert client.get("/api/v1/webhooks/dispatches?limit=1001").status_code == 422

    def test_stats(self, client, mock_service):
        mock_service.storage.count_dispatches_by_status.return_value = {
            "queued": 2,
            "sent": 5,
            "failed": 1,
            "dead": 0,
        }

        data = client.get("/api/v1/webhooks/dispatches/stats").json()

        assert data["total"] == 8
        assert data["counts"]["sent"] == 5
        assert data["worker_running"] is True

    def test_get(self, client, mock_service):
        mock_service.storage.get_dispatch.return_value = make_record()

        response = client.get("/api/v1/webhooks/dispatches/dsp_abc123")

        assert response.status_code == 200
        assert response.json()["event_type"] == "order.paid"

    def test_get_missing_is_404(self, client, mock_service):
        mock_service.storage.get_dispatch.return_value = None

        response = client.get("/api/v1/webhooks/dispatches/dsp_missing")

        assert response.status_code == 404
        assert response.json()["error"]["resource_id"] == "dsp_missing"

    def test_replay(self, client, mock_service):
        mock_service.dispatcher.replay.return_value = make_record(
            id="dsp_new", replay_of="dsp_abc123"
        )

        response = client.post("/api/v1/webhooks/dispatches/dsp_abc123/replay")

        assert response.status_code == 202
        data = response.json()
        assert data["id"] == "dsp_new"
        assert data["replay_of"] == "dsp_abc123"

    def test_replay_not_dead_is_400(self, client, mock_service):
        mock_service.dispatcher.replay.side_effect = ValidationError(
            "dispatch_id", "only dead dispatches can be replayed"
        )

        response = client.post("/api/v1/webhooks/dispatches/dsp_abc123/replay")

        assert response.status_code == 400

    def test_replay_missing_is_404(self, client, mock_service):
        mock_service.dispatcher.replay.side_effect = NotFoundError("dispatch", "dsp_x")

        response = client.post("/api/v1/webhooks/dispatches/dsp_x/replay")

        assert response.status_code == 404


class TestIncomingEndpoint:
    """Tests for inbound webhook endpoints."""

    @pytest.mark.parametrize("path", ["/api/v1/webhooks/incoming", "/api/v1/webhooks/incoming/n8n"])
    def test_accepts_verified_webhook(self, client, mock_service, path):
        mock_service.receiver.handle.return_value = InboundResult(
            success=True, event="video.ready"
        )
        raw = b'{"event":"video.ready","data":{"videoId":"vid_1"}}'

        response = client.post(path, content=raw, headers={"X-Signature": "abc"})

        assert response.status_code == 200
        assert response.json() == {"success": True, "event": "video.ready"}
        body, headers = mock_service.receiver.handle.call_args.args
        assert body == raw
        assert headers["x-signature"] == "abc"

    def test_bad_signature_is_400(self, client, mock_service):
        mock_service.receiver.handle.side_effect = SignatureError("invalid webhook signature")

        response = client.post(
            "/api/v1/webhooks/incoming", content=b"{}", headers={"X-Signature": "0"}
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "invalid_signature"

    def test_malformed_body_is_400(self, client, mock_service):
        mock_service.receiver.handle.side_effect = ValidationError("body", "malformed JSON")

        response = client.post("/api/v1/webhooks/incoming", content=b"not json")

        assert response.status_code == 400

    def test_service_not_initialized(self, test_app):
        set_service(None)

        response = TestClient(test_app).post("/api/v1/webhooks/incoming", content=b"{}")

        assert response.status_code == 503


class TestErrorStatus:
    @pytest.mark.parametrize(
        ("exc", "status_code"),
        [
            (ValidationError("f", "bad"), 400),
            (SerializationError("payload", "NaN"), 400),
            (SignatureError("bad"), 400),
            (NotFoundError("dispatch", "dsp_1"), 404),
            (ConfigurationError("missing"), 500),
            (StorageError("down"), 500),
        ],
    )
    def test_mapping(self, exc, status_code):
        assert error_status(exc) == status_code

    def test_storage_error_is_500(self, client, mock_service):
        mock_service.storage.count_dispatches_by_status.side_effect = StorageError(
            "Qdrant count failed"
        )

        response = client.get("/api/v1/webhooks/dispatches/stats")

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "storage_error"
