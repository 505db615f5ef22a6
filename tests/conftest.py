"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest
from qdrant_client import AsyncQdrantClient

from courier.models import utc_now
from courier.storage import CourierStorage
from courier.webhooks import Signer

OUTGOING_SECRET = "out_secret_for_tests"
INCOMING_SECRET = "in_secret_for_tests"


class FakeClock:
    """Manually advanced clock for worker and backoff tests."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or utc_now().replace(microsecond=0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
async def storage():
    """Create an in-memory storage instance for testing.

    Uses qdrant-client's local mode with in-memory storage.
    """
    store = CourierStorage(prefix="test")
    # Override with in-memory client
    store._client = AsyncQdrantClient(location=":memory:")
    await store._ensure_collections()
    store._collections_initialized = True

    yield store

    await store.close()


@pytest.fixture
def signer() -> Signer:
    """Signer with both secrets configured."""
    return Signer(outgoing_secret=OUTGOING_SECRET, incoming_secret=INCOMING_SECRET)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
