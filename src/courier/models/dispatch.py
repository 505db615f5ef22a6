"""Outbound webhook dispatch records.

A DispatchRecord is the durable state of one outbound event: what to send,
where, how many times it has been tried and what happens next. Records are
created by the dispatcher and mutated only by the retry worker.

State machine::

    queued --2xx--> sent
    queued --fail--> failed --fail--> failed ... --fail--> dead
    failed --2xx--> sent

``sent`` and ``dead`` are terminal.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Literal

from pydantic import Field

from .base import RecordBase, generate_id

DispatchStatus = Literal["queued", "sent", "failed", "dead"]

# Statuses the worker may still pick up
RETRYABLE_STATUSES: tuple[DispatchStatus, ...] = ("queued", "failed")

TERMINAL_STATUSES: tuple[DispatchStatus, ...] = ("sent", "dead")

ALL_STATUSES: tuple[DispatchStatus, ...] = ("queued", "sent", "failed", "dead")

# Longest error text kept on a record
MAX_ERROR_LENGTH = 1000


class DispatchRecord(RecordBase):
    """One outbound webhook and its delivery attempt-set.

    Attributes:
        id: Unique identifier (``dsp_`` prefix), immutable.
        event_type: Free-form event tag such as ``order.paid``.
        payload: JSON-compatible event data, opaque to the dispatcher.
        body: Exact serialization of ``payload`` that is signed and sent.
        target_url: Absolute destination URL.
        signature: HMAC-SHA256 hex digest of ``body``.
        status: queued, sent, failed or dead.
        attempts: Delivery attempts made so far (never decreases).
        last_error: Failure description of the latest attempt.
        last_response_code: HTTP status of the latest attempt, if any.
        next_retry_at: Earliest time of the next attempt; None means now.
        sent_at: When delivery succeeded.
        lease_owner: Worker currently delivering this record.
        lease_expires_at: When that worker's claim lapses.
        replay_of: ID of the dead record this one replays.
    """

    id: str = Field(default_factory=lambda: generate_id("dsp"))
    event_type: str = Field(min_length=1, description="Event type tag")
    payload: dict[str, Any] = Field(default_factory=dict, description="Event payload")
    body: str = Field(description="Serialized payload as transmitted")
    target_url: str = Field(description="Destination URL")
    signature: str = Field(description="HMAC-SHA256 hex digest of body")
    status: DispatchStatus = Field(default="queued", description="Delivery status")
    attempts: int = Field(default=0, ge=0, description="Delivery attempts made")
    last_error: str | None = Field(default=None, description="Latest failure description")
    last_response_code: int | None = Field(default=None, description="Latest HTTP status")
    next_retry_at: datetime | None = Field(default=None, description="Next eligible attempt")
    sent_at: datetime | None = Field(default=None, description="When delivery succeeded")
    lease_owner: str | None = Field(default=None, description="Worker holding the claim")
    lease_expires_at: datetime | None = Field(default=None, description="When the claim lapses")
    replay_of: str | None = Field(default=None, description="Dead record this replays")

    @property
    def is_terminal(self) -> bool:
        """Whether the record will never be attempted again."""
        return self.status in TERMINAL_STATUSES

    def is_due(self, now: datetime, max_retries: int) -> bool:
        """Whether the worker should attempt this record at ``now``."""
        if self.status not in RETRYABLE_STATUSES or self.attempts >= max_retries:
            return False
        return self.next_retry_at is None or self.next_retry_at <= now

    def lease_held(self, now: datetime) -> bool:
        """Whether some worker holds an unexpired claim."""
        return (
            self.lease_owner is not None
            and self.lease_expires_at is not None
            and self.lease_expires_at > now
        )

    def begin_attempt(self, at: datetime) -> int:
        """Count a new delivery attempt and return its number."""
        if self.is_terminal:
            raise ValueError(f"dispatch {self.id} is {self.status}; it cannot be attempted")
        self.attempts += 1
        self.updated_at = at
        return self.attempts

    def mark_sent(self, at: datetime, response_code: int | None = None) -> DispatchRecord:
        """Mark delivery as successful."""
        self.status = "sent"
        self.last_error = None
        self.next_retry_at = None
        self.last_response_code = response_code
        self.sent_at = at
        self.updated_at = at
        return self

    def mark_failed(
        self,
        error: str,
        at: datetime,
        retry_delay: timedelta,
        response_code: int | None = None,
    ) -> DispatchRecord:
        """Mark the attempt as failed and schedule the next one after ``retry_delay``."""
        if retry_delay <= timedelta(0):
            raise ValueError("retry_delay must be positive")
        self.status = "failed"
        self.last_error = error[:MAX_ERROR_LENGTH]
        self.last_response_code = response_code
        self.updated_at = at
        self.next_retry_at = at + retry_delay
        return self

    def mark_dead(
        self,
        error: str,
        at: datetime,
        response_code: int | None = None,
    ) -> DispatchRecord:
        """Mark the record as dead-lettered (no more retries)."""
        self.status = "dead"
        self.last_error = error[:MAX_ERROR_LENGTH]
        self.last_response_code = response_code
        self.next_retry_at = None
        self.updated_at = at
        return self

    def release_lease(self) -> None:
        """Drop any worker claim."""
        self.lease_owner = None
        self.lease_expires_at = None


__all__ = [
    "ALL_STATUSES",
    "DispatchRecord",
    "DispatchStatus",
    "MAX_ERROR_LENGTH",
    "RETRYABLE_STATUSES",
    "TERMINAL_STATUSES",
]
