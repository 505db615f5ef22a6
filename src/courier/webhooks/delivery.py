"""Single-attempt HTTP delivery of a dispatch record.

One POST of the stored body, bounded end to end by the send timeout.
Success is strictly a 2xx response; anything else raises DeliveryError.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

import httpx

from courier.exceptions import DeliveryError

from .signing import DISPATCH_ID_HEADER, EVENT_TYPE_HEADER, SIGNATURE_HEADER

if TYPE_CHECKING:
    from courier.models import DispatchRecord

logger = logging.getLogger(__name__)

# Response text kept in error descriptions
_ERROR_BODY_PREVIEW = 200


def build_headers(record: DispatchRecord, signature: str) -> dict[str, str]:
    """Headers sent with every delivery attempt."""
    return {
        "Content-Type": "application/json",
        SIGNATURE_HEADER: signature,
        EVENT_TYPE_HEADER: record.event_type,
        DISPATCH_ID_HEADER: record.id,
    }


def is_success(status_code: int) -> bool:
    """Only 2xx counts as delivered; redirects are not followed."""
    return 200 <= status_code < 300


class WebhookSender:
    """Posts dispatch records to their target URLs.

    Example:
        ```python
        sender = WebhookSender(timeout_seconds=30.0)
        status_code = await sender.send(record, signature)
        ```
    """

    def __init__(self, timeout_seconds: float = 30.0) -> None:
        """Initialize the sender.

        Args:
            timeout_seconds: Upper bound on one whole request, connect to last byte.
        """
        self._timeout = timeout_seconds

    async def send(self, record: DispatchRecord, signature: str) -> int:
        """POST the record's body to its target.

        Args:
            record: Dispatch to deliver.
            signature: HMAC of ``record.body``.

        Returns:
            The 2xx status code.

        Raises:
            DeliveryError: On a non-2xx response, network error or timeout.
        """
        headers = build_headers(record, signature)

        try:
            async with httpx.AsyncClient(timeout=self._timeout, follow_redirects=False) as client:
                response = await asyncio.wait_for(
                    client.post(
                        record.target_url,
                        content=record.body.encode("utf-8"),
                        headers=headers,
                    ),
                    timeout=self._timeout,
                )
        except (TimeoutError, httpx.TimeoutException) as e:
            raise DeliveryError(f"Request timeout after {self._timeout:g}s") from e
        except httpx.RequestError as e:
            raise DeliveryError(f"{type(e).__name__}: {e}") from e

        if not is_success(response.status_code):
            preview = response.text[:_ERROR_BODY_PREVIEW] if response.text else ""
            raise DeliveryError(
                f"HTTP {response.status_code}: {preview}".rstrip(": "),
                status_code=response.status_code,
            )

        logger.debug(
            "Webhook delivered: %s to %s (status %d)",
            record.event_type,
            record.target_url,
            response.status_code,
        )
        return response.status_code
