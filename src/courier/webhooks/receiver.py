"""Inbound webhook receiver.

Authenticates incoming webhooks and maps their events onto domain records.
Two body shapes are accepted:

- envelope: ``{"event": "video.ready", "data": {...}}``
- flat schemas from less capable senders (n8n), recognized by their fields:
  ``{"promptId", "result"}`` is a prompt result and
  ``{"transactionId", "status", "amount", "email"}`` is a payment.

Handlers may enqueue a downstream confirmation event through the Dispatcher.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from courier.exceptions import CourierError, NotFoundError, SignatureError, ValidationError
from courier.models import Order, utc_now

from .signing import BODY_SECRET_FIELD

if TYPE_CHECKING:
    from courier.service.credits import CreditsService
    from courier.storage import CourierStorage

    from .dispatcher import Dispatcher
    from .signing import Verifier

logger = logging.getLogger(__name__)

# Flat payment statuses that mean the money arrived
PAID_STATUSES = frozenset({"paid", "approved"})


@dataclass(frozen=True)
class Plan:
    code: str
    credits: int


def plan_for_amount(amount: float) -> Plan:
    """Plan bought for a paid amount, used when a payment has no order yet."""
    if amount >= 400:
        return Plan("INFINITY", 100)
    if amount >= 150:
        return Plan("PRO", 30)
    return Plan("START", 15)


@dataclass
class InboundResult:
    """What the receiver did with an inbound webhook."""

    success: bool
    event: str
    handled: bool = True


# Event data schemas


class _EventData(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class PaymentPaidData(_EventData):
    order_id: str = Field(alias="orderId", min_length=1)
    provider_ref: str | None = Field(default=None, alias="providerRef")


class FlatPaymentData(_EventData):
    transaction_id: str = Field(alias="transactionId", min_length=1)
    email: str = Field(min_length=3)
    amount: float = Field(ge=0.0)
    status: str
    name: str = ""
    credits: int | None = Field(default=None, ge=0)


class PromptGeneratedData(_EventData):
    prompt_id: str = Field(alias="promptId", min_length=1)
    result_text: str | None = Field(default=None, alias="resultText")
    result: str | None = None
    tags: list[str] | None = None
    status: Literal["success", "failed"] | None = None


class VideoReadyData(_EventData):
    video_id: str = Field(alias="videoId", min_length=1)
    assets: dict[str, str] = Field(default_factory=dict)


class VideoFailedData(_EventData):
    video_id: str = Field(alias="videoId", min_length=1)
    error: str | None = None


class VideoProgressData(_EventData):
    video_id: str = Field(alias="videoId", min_length=1)
    status: Literal["queued", "processing", "ready", "failed"] | None = None
    assets: dict[str, str] | None = None


class RefundCreatedData(_EventData):
    order_id: str | None = Field(default=None, alias="orderId")
    user_id: str = Field(alias="userId", min_length=1)
    credits: int = Field(gt=0)
    reason: str = "Refund"


_EventDataT = TypeVar("_EventDataT", bound=_EventData)


def _parse(model: type[_EventDataT], data: Mapping[str, Any]) -> _EventDataT:
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(p) for p in first.get("loc", ())) or "data"
        raise ValidationError(field, first.get("msg", "invalid value")) from e


def parse_body(raw_body: str | bytes) -> dict[str, Any]:
    """Decode a raw webhook body into a JSON object.

    Raises:
        ValidationError: If the body is not a JSON object.
    """
    try:
        body = json.loads(raw_body)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValidationError("body", f"malformed JSON: {e}") from e
    if not isinstance(body, dict):
        raise ValidationError("body", "must be a JSON object")
    return body


def normalize_event(body: Mapping[str, Any]) -> tuple[str, dict[str, Any]]:
    """Map an inbound body to ``(event, data)``.

    Raises:
        ValidationError: If the body matches no known shape.
    """
    event = body.get("event")
    if isinstance(event, str) and event:
        data = body.get("data", {})
        if not isinstance(data, dict):
            raise ValidationError("data", "must be a JSON object")
        return event, data

    flat = {k: v for k, v in body.items() if k != BODY_SECRET_FIELD}
    if "promptId" in flat and "result" in flat:
        return "prompt.generated", flat
    if "transactionId" in flat:
        status = str(flat.get("status", "")).lower()
        if status in PAID_STATUSES:
            return "payment.paid", flat
        return f"payment.{status or 'unknown'}", flat

    raise ValidationError("event", "missing event name and no known flat schema matched")


class InboundReceiver:
    """Verifies inbound webhooks and applies their events.

    Example:
        ```python
        receiver = InboundReceiver(verifier, storage, credits, dispatcher)
        result = await receiver.handle(raw_body, headers)
        ```
    """

    def __init__(
        self,
        verifier: Verifier,
        storage: CourierStorage,
        credits: CreditsService,
        dispatcher: Dispatcher | None = None,
    ) -> None:
        """Initialize the receiver.

        Args:
            verifier: Authentication strategy for inbound requests.
            storage: Storage holding orders, prompts and videos.
            credits: Credit ledger collaborator.
            dispatcher: Used to propagate confirmation events. Optional.
        """
        self._verifier = verifier
        self._storage = storage
        self._credits = credits
        self._dispatcher = dispatcher
        self._handlers: dict[str, Callable[[dict[str, Any]], Awaitable[None]]] = {
            "payment.paid": self._on_payment_paid,
            "prompt.generated": self._on_prompt_generated,
            "video.ready": self._on_video_ready,
            "video.failed": self._on_video_failed,
            "video.progress": self._on_video_progress,
            "refund.created": self._on_refund_created,
        }

    @property
    def supported_events(self) -> list[str]:
        return sorted(self._handlers)

    async def handle(self, raw_body: str | bytes, headers: Mapping[str, str]) -> InboundResult:
        """Authenticate and apply one inbound webhook.

        Raises:
            ValidationError: Malformed body or event data.
            SignatureError: Authentication failed; nothing was changed.
            NotFoundError: A referenced record does not exist.
        """
        body = parse_body(raw_body)

        if not self._verifier.verify(raw_body, headers, body):
            logger.warning("Inbound webhook rejected: invalid signature")
            raise SignatureError("invalid webhook signature")

        event, data = normalize_event(body)
        handler = self._handlers.get(event)
        if handler is None:
            logger.warning("Unknown inbound webhook event: %s", event)
            return InboundResult(success=True, event=event, handled=False)

        logger.info("Inbound webhook received: %s", event)
        await handler(data)
        return InboundResult(success=True, event=event)

    async def _propagate(self, event_type: str, payload: dict[str, Any]) -> None:
        """Enqueue a downstream event; the inbound event stands even if this fails."""
        if self._dispatcher is None:
            return
        try:
            await self._dispatcher.enqueue(event_type, payload)
        except CourierError as e:
            logger.error("Could not enqueue %s: %s", event_type, e.message)

    # Handlers

    async def _on_payment_paid(self, data: dict[str, Any]) -> None:
        if "transactionId" in data and "orderId" not in data:
            await self._on_flat_payment(_parse(FlatPaymentData, data))
            return

        parsed = _parse(PaymentPaidData, data)
        order = await self._storage.get_order(parsed.order_id)
        if order is None:
            raise NotFoundError("order", parsed.order_id)
        if order.status == "paid":
            logger.info("Order %s already paid, skipping", order.id)
            return

        now = utc_now()
        order.status = "paid"
        if parsed.provider_ref:
            order.provider_ref = parsed.provider_ref
        order.paid_at = now
        order.touch(now)
        await self._storage.store_order(order)
        await self._grant_order_credits(order)

        await self._propagate(
            "order.completed",
            {
                "orderId": order.id,
                "userId": order.user_id,
                "planCode": order.plan_code,
                "credits": order.credits,
                "paidAt": now.isoformat(),
            },
        )

    async def _on_flat_payment(self, parsed: FlatPaymentData) -> None:
        account = await self._storage.get_account_by_email(parsed.email)
        if account is None:
            raise NotFoundError("account", parsed.email)

        now = utc_now()
        order = await self._storage.get_order_by_provider_ref(parsed.transaction_id)
        if order is None:
            plan = plan_for_amount(parsed.amount)
            order = Order(
                user_id=account.id,
                plan_code=plan.code,
                price=parsed.amount,
                credits=parsed.credits or plan.credits,
                status="paid",
                provider_ref=parsed.transaction_id,
                paid_at=now,
            )
        elif order.status == "paid":
            logger.info("Order %s already paid, skipping", order.id)
            return
        else:
            order.status = "paid"
            order.paid_at = now
            order.touch(now)

        await self._storage.store_order(order)
        await self._grant_order_credits(order)

        await self._propagate(
            "order.paid",
            {
                "orderId": order.id,
                "userId": account.id,
                "email": account.email,
                "planCode": order.plan_code,
                "credits": order.credits,
                "paidAt": now.isoformat(),
            },
        )

    async def _grant_order_credits(self, order: Order) -> None:
        if order.credits <= 0:
            return
        await self._credits.add_credits(
            order.user_id,
            order.credits,
            f"Plan purchase {order.plan_code}",
            ref_id=order.id,
        )

    async def _on_prompt_generated(self, data: dict[str, Any]) -> None:
        parsed = _parse(PromptGeneratedData, data)
        prompt = await self._storage.get_prompt(parsed.prompt_id)
        if prompt is None:
            raise NotFoundError("prompt", parsed.prompt_id)

        prompt.result_text = parsed.result_text if parsed.result_text is not None else parsed.result
        if parsed.tags is not None:
            prompt.tags = parsed.tags
        prompt.status = "failed" if parsed.status == "failed" else "completed"
        prompt.touch()
        await self._storage.store_prompt(prompt)
        logger.info("Prompt %s %s", prompt.id, prompt.status)

    async def _on_video_ready(self, data: dict[str, Any]) -> None:
        parsed = _parse(VideoReadyData, data)
        video = await self._storage.get_video(parsed.video_id)
        if video is None:
            raise NotFoundError("video", parsed.video_id)

        video.status = "ready"
        video.assets = {**video.assets, **parsed.assets}
        video.touch()
        await self._storage.store_video(video)
        logger.info("Video ready: %s", video.id)

        await self._propagate(
            "video.completed",
            {
                "videoId": video.id,
                "userId": video.user_id,
                "status": "ready",
                "assets": video.assets,
            },
        )

    async def _on_video_failed(self, data: dict[str, Any]) -> None:
        parsed = _parse(VideoFailedData, data)
        video = await self._storage.get_video(parsed.video_id)
        if video is None:
            raise NotFoundError("video", parsed.video_id)

        video.status = "failed"
        video.touch()
        await self._storage.store_video(video)
        logger.error("Video failed: %s: %s", video.id, parsed.error or "no error given")

    async def _on_video_progress(self, data: dict[str, Any]) -> None:
        parsed = _parse(VideoProgressData, data)
        video = await self._storage.get_video(parsed.video_id)
        if video is None:
            logger.debug("Progress for unknown video %s ignored", parsed.video_id)
            return

        if parsed.status is not None:
            video.status = parsed.status
        if parsed.assets:
            video.assets = {**video.assets, **parsed.assets}
        video.touch()
        await self._storage.store_video(video)

    async def _on_refund_created(self, data: dict[str, Any]) -> None:
        parsed = _parse(RefundCreatedData, data)
        await self._credits.refund_credits(
            parsed.user_id,
            parsed.credits,
            parsed.reason,
            ref_id=parsed.order_id,
        )
        logger.info("Refund processed: %s (%d credits)", parsed.order_id, parsed.credits)


__all__ = [
    "InboundReceiver",
    "InboundResult",
    "PAID_STATUSES",
    "Plan",
    "normalize_event",
    "parse_body",
    "plan_for_amount",
]
