"""FastAPI router for Courier API endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from courier import __version__
from courier.exceptions import NotFoundError
from courier.logging import get_logger
from courier.models import DispatchStatus
from courier.service import CourierService

from .schemas import (
    DispatchListResponse,
    DispatchRequest,
    DispatchResponse,
    DispatchStatsResponse,
    HealthResponse,
    InboundWebhookResponse,
)

logger = get_logger(__name__)

router = APIRouter()

# Service instance (set by app lifespan)
_service: CourierService | None = None


def set_service(service: CourierService | None) -> None:
    """Set the global service instance."""
    global _service
    _service = service


async def get_service() -> CourierService:
    """Dependency to get the CourierService instance."""
    if _service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service not initialized",
        )
    return _service


ServiceDep = Annotated[CourierService, Depends(get_service)]


@router.get("/health", response_model=HealthResponse, tags=["system"])
async def health_check() -> HealthResponse:
    """Check service health."""
    if _service is None:
        return HealthResponse(status="unhealthy", version=__version__, storage_connected=False)

    storage_connected = _service.storage.is_connected
    worker_running = _service.worker.is_running
    if not storage_connected:
        health = "unhealthy"
    elif _service.settings.webhook_worker_enabled and not worker_running:
        health = "degraded"
    else:
        health = "healthy"
    return HealthResponse(
        status=health,
        version=__version__,
        storage_connected=storage_connected,
        worker_running=worker_running,
    )


@router.post(
    "/webhooks/incoming",
    response_model=InboundWebhookResponse,
    tags=["webhooks"],
)
@router.post(
    "/webhooks/incoming/n8n",
    response_model=InboundWebhookResponse,
    tags=["webhooks"],
)
async def receive_webhook(request: Request, service: ServiceDep) -> InboundWebhookResponse:
    """Receive an inbound webhook.

    Authenticated by the ``X-Signature`` header (HMAC of the raw body) or,
    when configured, a ``WEBHOOK_SECRET`` body field. Invalid signatures and
    malformed bodies get a 400 and change nothing.
    """
    raw_body = await request.body()
    result = await service.receiver.handle(raw_body, request.headers)
    return InboundWebhookResponse(success=result.success, event=result.event)


@router.post(
    "/webhooks/dispatch",
    response_model=DispatchResponse,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["webhooks"],
)
async def enqueue_dispatch(request: DispatchRequest, service: ServiceDep) -> DispatchResponse:
    """Enqueue an outbound webhook.

    Returns as soon as the record is stored; delivery happens in the worker.
    """
    record = await service.dispatcher.enqueue(
        request.event_type,
        request.payload,
        request.target_url,
    )
    logger.info("Dispatch enqueued via API", dispatch_id=record.id, event_type=record.event_type)
    return DispatchResponse.from_record(record)


@router.get(
    "/webhooks/dispatches",
    response_model=DispatchListResponse,
    tags=["webhooks"],
)
async def list_dispatches(
    service: ServiceDep,
    status_filter: Annotated[DispatchStatus | None, Query(alias="status")] = None,
    event_type: Annotated[str | None, Query()] = None,
    limit: Annotated[int, Query(ge=1, le=1000)] = 100,
) -> DispatchListResponse:
    """List dispatch records, newest first.

    ``status=dead`` gives the dead-letter view.
    """
    records = await service.storage.list_dispatches(
        status=status_filter, event_type=event_type, limit=limit
    )
    return DispatchListResponse(
        dispatches=[DispatchResponse.from_record(r) for r in records],
        count=len(records),
    )


@router.get(
    "/webhooks/dispatches/stats",
    response_model=DispatchStatsResponse,
    tags=["webhooks"],
)
async def dispatch_stats(service: ServiceDep) -> DispatchStatsResponse:
    """Count dispatch records by status."""
    counts = await service.storage.count_dispatches_by_status()
    return DispatchStatsResponse(
        counts=counts,
        total=sum(counts.values()),
        worker_running=service.worker.is_running,
    )


@router.get(
    "/webhooks/dispatches/{dispatch_id}",
    response_model=DispatchResponse,
    tags=["webhooks"],
)
async def get_dispatch(dispatch_id: str, service: ServiceDep) -> DispatchResponse:
    """Get one dispatch record."""
    record = await service.storage.get_dispatch(dispatch_id)
    if record is None:
        raise NotFoundError("dispatch", dispatch_id)
    return DispatchResponse.from_record(record)


@router.post(
    "/webhooks/dispatches/{dispatch_id}/replay",
    response_model=DispatchResponse,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["webhooks"],
)
async def replay_dispatch(dispatch_id: str, service: ServiceDep) -> DispatchResponse:
    """Re-enqueue a dead dispatch as a new record."""
    record = await service.dispatcher.replay(dispatch_id)
    return DispatchResponse.from_record(record)
