"""Pydantic schemas for API request/response models."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from courier.models import DispatchRecord, DispatchStatus


class DispatchRequest(BaseModel):
    """Request body for enqueueing an outbound webhook.

    Attributes:
        event_type: Event tag such as ``order.paid``.
        payload: JSON object sent as the webhook body.
        target_url: Optional destination; the configured default otherwise.
    """

    model_config = ConfigDict(extra="forbid")

    event_type: str = Field(min_length=1, description="Event type tag")
    payload: dict[str, Any] = Field(default_factory=dict, description="Event payload")
    target_url: str | None = Field(default=None, description="Destination URL")


class DispatchResponse(BaseModel):
    """A dispatch record as returned by the API.

    The signed body is omitted; ``payload`` carries the same data.
    """

    model_config = ConfigDict(extra="forbid")

    id: str
    event_type: str
    payload: dict[str, Any]
    target_url: str
    status: DispatchStatus
    attempts: int
    last_error: str | None = None
    last_response_code: int | None = None
    next_retry_at: datetime | None = None
    sent_at: datetime | None = None
    replay_of: str | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, record: DispatchRecord) -> DispatchResponse:
        return cls(
            id=record.id,
            event_type=record.event_type,
            payload=record.payload,
            target_url=record.target_url,
            status=record.status,
            attempts=record.attempts,
            last_error=record.last_error,
            last_response_code=record.last_response_code,
            next_retry_at=record.next_retry_at,
            sent_at=record.sent_at,
            replay_of=record.replay_of,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


class DispatchListResponse(BaseModel):
    """Response for listing dispatches."""

    model_config = ConfigDict(extra="forbid")

    dispatches: list[DispatchResponse]
    count: int


class DispatchStatsResponse(BaseModel):
    """Dispatch counts per status.

    Attributes:
        counts: Records in each status.
        total: Sum of all counts.
        worker_running: Whether this process runs the retry worker.
    """

    model_config = ConfigDict(extra="forbid")

    counts: dict[str, int]
    total: int
    worker_running: bool


class InboundWebhookResponse(BaseModel):
    """Acknowledgement of an inbound webhook."""

    model_config = ConfigDict(extra="forbid")

    success: bool
    event: str


class HealthResponse(BaseModel):
    """Response for health check endpoint.

    Attributes:
        status: Service status (healthy, degraded, unhealthy).
        version: API version.
        storage_connected: Whether storage is connected.
        worker_running: Whether the retry worker loop is active.
    """

    model_config = ConfigDict(extra="forbid")

    status: Literal["healthy", "degraded", "unhealthy"]
    version: str
    storage_connected: bool
    worker_running: bool = False


__all__ = [
    "DispatchListResponse",
    "DispatchRequest",
    "DispatchResponse",
    "DispatchStatsResponse",
    "HealthResponse",
    "InboundWebhookResponse",
]
