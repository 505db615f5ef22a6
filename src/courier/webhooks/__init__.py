"""Outbound webhook dispatch and inbound webhook handling for Courier.

Provides HMAC-signed, durable, at-least-once webhook delivery with
exponential backoff and dead-lettering, plus the inbound receiver.

Example:
    ```python
    from courier.webhooks import Dispatcher, dispatch_webhook_event

    # Using dispatcher directly
    record = await dispatcher.enqueue("order.paid", {"orderId": "O1"})

    # Using convenience function
    await dispatch_webhook_event(dispatcher, "video.completed", videoId="vid_1")
    ```
"""

from .delivery import WebhookSender
from .dispatcher import Dispatcher, dispatch_webhook_event
from .receiver import InboundReceiver, InboundResult, plan_for_amount
from .signing import (
    AnyOfVerifier,
    BodySecretVerifier,
    HmacHeaderVerifier,
    Signer,
    Verifier,
    build_verifier,
    compute_signature,
    serialize_payload,
    verify_signature,
)
from .worker import RetryWorker, TickResult, compute_backoff

__all__ = [
    "AnyOfVerifier",
    "BodySecretVerifier",
    "Dispatcher",
    "HmacHeaderVerifier",
    "InboundReceiver",
    "InboundResult",
    "RetryWorker",
    "Signer",
    "TickResult",
    "Verifier",
    "WebhookSender",
    "build_verifier",
    "compute_backoff",
    "compute_signature",
    "dispatch_webhook_event",
    "plan_for_amount",
    "serialize_payload",
    "verify_signature",
]
