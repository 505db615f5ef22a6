"""Public write path for outbound webhook events.

Callers enqueue an event; the dispatcher serializes and signs the payload
and persists a queued record. Delivery happens later in the retry worker,
so enqueue never fails because a destination is down.

Example:
    ```python
    dispatcher = Dispatcher(storage, signer, default_target_url="https://hooks.example.com")
    record = await dispatcher.enqueue("order.paid", {"orderId": "O1"})
    ```
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from pydantic import HttpUrl, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from courier.exceptions import ConfigurationError, NotFoundError, ValidationError

from .signing import serialize_payload

if TYPE_CHECKING:
    from courier.models import DispatchRecord
    from courier.storage import CourierStorage

    from .signing import Signer

logger = logging.getLogger(__name__)

_url_adapter: TypeAdapter[HttpUrl] = TypeAdapter(HttpUrl)


def is_valid_target_url(url: str) -> bool:
    """Whether ``url`` is an absolute http(s) URL with a host."""
    try:
        parsed = _url_adapter.validate_python(url)
    except PydanticValidationError:
        return False
    return bool(parsed.host)


class Dispatcher:
    """Enqueues outbound webhook events as durable dispatch records.

    The dispatcher does not deduplicate: enqueueing the same business event
    twice produces two records. Callers correlate on the returned record ID.
    """

    def __init__(
        self,
        storage: CourierStorage,
        signer: Signer,
        default_target_url: str | None = None,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            storage: Storage holding dispatch records.
            signer: Signer holding the outgoing secret.
            default_target_url: Destination used when enqueue gets no usable URL.
        """
        self._storage = storage
        self._signer = signer
        self._default_target_url = default_target_url or None

    def resolve_target_url(self, target_url: str | None) -> str:
        """Pick the destination for an event.

        Raises:
            ValidationError: A malformed URL was given and there is no default.
            ConfigurationError: No URL was given and there is no usable default.
        """
        if target_url and is_valid_target_url(target_url):
            return target_url

        default = self._default_target_url
        if default is not None and not is_valid_target_url(default):
            raise ConfigurationError(f"default webhook target URL is malformed: {default!r}")

        if target_url:
            if default is None:
                raise ValidationError("target_url", f"not an absolute http(s) URL: {target_url!r}")
            logger.warning(
                "Malformed webhook target %r, falling back to default %s", target_url, default
            )
            return default

        if default is None:
            raise ConfigurationError(
                "no target URL given and no default webhook target URL configured"
            )
        return default

    async def enqueue(
        self,
        event_type: str,
        payload: Mapping[str, Any],
        target_url: str | None = None,
        *,
        replay_of: str | None = None,
    ) -> DispatchRecord:
        """Persist a queued dispatch for an event.

        Args:
            event_type: Event tag such as ``order.paid``.
            payload: JSON-serializable event data.
            target_url: Optional destination; falls back to the default.
            replay_of: ID of the dead record being replayed, if any.

        Returns:
            The persisted record, including its assigned ID.

        Raises:
            ValidationError: Empty event type or malformed URL with no default.
            SerializationError: Payload is not JSON-serializable.
            ConfigurationError: No target available or no outgoing secret.
        """
        from courier.models import DispatchRecord

        if not isinstance(event_type, str) or not event_type.strip():
            raise ValidationError("event_type", "must be a non-empty string")

        body = serialize_payload(payload)
        url = self.resolve_target_url(target_url)
        signature = self._signer.sign_outgoing(body)

        record = DispatchRecord(
            event_type=event_type.strip(),
            payload=dict(payload),
            body=body,
            target_url=url,
            signature=signature,
            replay_of=replay_of,
        )
        await self._storage.insert_dispatch(record)

        logger.info("Webhook queued: %s to %s [%s]", record.event_type, url, record.id)
        return record

    async def replay(self, dispatch_id: str) -> DispatchRecord:
        """Re-enqueue a dead dispatch as a fresh record.

        The dead record stays untouched as the audit trail.

        Raises:
            NotFoundError: Unknown dispatch ID.
            ValidationError: The dispatch is not dead.
        """
        original = await self._storage.get_dispatch(dispatch_id)
        if original is None:
            raise NotFoundError("dispatch", dispatch_id)
        if original.status != "dead":
            raise ValidationError(
                "dispatch_id", f"only dead dispatches can be replayed (status is {original.status})"
            )

        record = await self.enqueue(
            original.event_type,
            original.payload,
            original.target_url,
            replay_of=original.id,
        )
        logger.info("Webhook replayed: %s -> %s", original.id, record.id)
        return record


async def dispatch_webhook_event(
    dispatcher: Dispatcher,
    event_type: str,
    target_url: str | None = None,
    **data: object,
) -> DispatchRecord:
    """Convenience function to enqueue an event from keyword data.

    Args:
        dispatcher: Dispatcher to enqueue with.
        event_type: Event tag.
        target_url: Optional destination.
        **data: Event payload fields.

    Returns:
        The persisted record.
    """
    return await dispatcher.enqueue(event_type, dict(data), target_url)
