"""Retry worker: the periodic loop that delivers queued dispatches.

Each tick selects due records oldest first, claims them with a lease,
attempts delivery once and persists the outcome before moving on:

- 2xx: ``sent``
- failure with attempts left: ``failed`` with exponential backoff
- failure on the last attempt: ``dead`` (logged at error level)

Ticks are single-flight: a tick never starts while another is running.

Example:
    ```python
    worker = RetryWorker(storage, sender, signer, max_retries=5, backoff_base_ms=1000)
    worker.start()
    ...
    await worker.stop()
    ```
"""

from __future__ import annotations

import asyncio
import logging
import socket
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING
from uuid import uuid4

from courier.exceptions import DeadLetterError, DeliveryError
from courier.models import utc_now

if TYPE_CHECKING:
    from courier.config import Settings
    from courier.models import DispatchRecord
    from courier.storage import CourierStorage

    from .delivery import WebhookSender
    from .signing import Signer

logger = logging.getLogger(__name__)

DeadLetterCallback = Callable[[DeadLetterError], Awaitable[None]]


def compute_backoff(attempts: int, base_ms: int) -> timedelta:
    """Delay before the next attempt after ``attempts`` failures.

    Attempt 1 waits ``base_ms``, attempt 2 twice that, attempt 3 four times.
    """
    if attempts < 1:
        raise ValueError("attempts must be at least 1")
    if base_ms <= 0:
        raise ValueError("base_ms must be positive")
    return timedelta(milliseconds=base_ms * 2 ** (attempts - 1))


def default_worker_id() -> str:
    """Identity used as lease owner: host plus a per-process suffix."""
    return f"{socket.gethostname()}-{uuid4().hex[:8]}"


@dataclass
class TickResult:
    """Outcome counts of one tick."""

    selected: int = 0
    sent: int = 0
    failed: int = 0
    dead: int = 0
    claimed_elsewhere: int = 0
    skipped: bool = False
    dispatch_ids: list[str] = field(default_factory=list)


class RetryWorker:
    """Polls the dispatch store and delivers due records."""

    def __init__(
        self,
        storage: CourierStorage,
        sender: WebhookSender,
        signer: Signer,
        max_retries: int = 5,
        backoff_base_ms: int = 1000,
        batch_size: int = 10,
        tick_interval_seconds: float = 5.0,
        lease_seconds: int = 60,
        worker_id: str | None = None,
        clock: Callable[[], datetime] = utc_now,
        on_dead_letter: DeadLetterCallback | None = None,
    ) -> None:
        """Initialize the worker.

        Args:
            storage: Storage holding dispatch records.
            sender: Performs one HTTP delivery.
            signer: Re-signs bodies before each send.
            max_retries: Attempts before a record is dead-lettered.
            backoff_base_ms: Delay after the first failure.
            batch_size: Records selected per tick.
            tick_interval_seconds: Pause between ticks.
            lease_seconds: How long a claim protects a record from other workers.
            worker_id: Lease owner identity. Defaults to host plus random suffix.
            clock: Source of the current time.
            on_dead_letter: Awaited with a DeadLetterError when a record dies.
        """
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        self._storage = storage
        self._sender = sender
        self._signer = signer
        self.max_retries = max_retries
        self.backoff_base_ms = backoff_base_ms
        self.batch_size = batch_size
        self.tick_interval_seconds = tick_interval_seconds
        self.lease_seconds = lease_seconds
        self.worker_id = worker_id or default_worker_id()
        self._clock = clock
        self._on_dead_letter = on_dead_letter

        self._tick_running = False
        self._task: asyncio.Task[None] | None = None
        self._stopping: asyncio.Event | None = None

    @classmethod
    def from_settings(
        cls,
        storage: CourierStorage,
        sender: WebhookSender,
        signer: Signer,
        settings: Settings,
        **kwargs: object,
    ) -> RetryWorker:
        """Build a worker from the webhook settings."""
        return cls(
            storage,
            sender,
            signer,
            max_retries=settings.webhook_max_retries,
            backoff_base_ms=settings.webhook_retry_backoff_ms,
            batch_size=settings.webhook_batch_size,
            tick_interval_seconds=settings.worker_tick_interval_seconds,
            lease_seconds=settings.webhook_lease_seconds,
            **kwargs,  # type: ignore[arg-type]
        )

    @property
    def is_running(self) -> bool:
        """Whether the background loop is active."""
        return self._task is not None and not self._task.done()

    @property
    def tick_in_progress(self) -> bool:
        return self._tick_running

    async def tick(self) -> TickResult:
        """Run one polling pass.

        Returns immediately with ``skipped=True`` if a tick is already running.
        """
        if self._tick_running:
            logger.debug("Tick already in progress, skipping")
            return TickResult(skipped=True)

        self._tick_running = True
        try:
            return await self._run_tick()
        finally:
            self._tick_running = False

    async def _run_tick(self) -> TickResult:
        result = TickResult()
        due = await self._storage.get_due_dispatches(
            now=self._clock(),
            max_retries=self.max_retries,
            limit=self.batch_size,
        )
        result.selected = len(due)

        for candidate in due:
            now = self._clock()
            record = await self._storage.claim_dispatch(
                candidate.id,
                owner=self.worker_id,
                now=now,
                lease_until=now + timedelta(seconds=self.lease_seconds),
            )
            if record is None:
                result.claimed_elsewhere += 1
                continue

            await self._process(record)
            result.dispatch_ids.append(record.id)
            if record.status == "sent":
                result.sent += 1
            elif record.status == "dead":
                result.dead += 1
            else:
                result.failed += 1

        if result.selected:
            logger.info(
                "Tick done: %d selected, %d sent, %d failed, %d dead",
                result.selected,
                result.sent,
                result.failed,
                result.dead,
            )
        return result

    async def _process(self, record: DispatchRecord) -> None:
        """Attempt one delivery and persist the outcome."""
        attempt = record.begin_attempt(self._clock())

        try:
            signature = self._signer.sign_outgoing(record.body)
            status_code = await self._sender.send(record, signature)
        except DeliveryError as e:
            self._record_failure(record, attempt, str(e), e.status_code)
        except Exception as e:
            # Anything else (e.g. a missing outgoing secret) still counts as an attempt
            logger.exception("Unexpected error delivering %s", record.id)
            self._record_failure(record, attempt, f"{type(e).__name__}: {e}", None)
        else:
            record.mark_sent(self._clock(), response_code=status_code)
            logger.info(
                "Webhook sent: %s [%s] on attempt %d", record.event_type, record.id, attempt
            )

        record.release_lease()
        await self._storage.update_dispatch(record)

        if record.status == "dead":
            await self._dead_letter(record)

    def _record_failure(
        self,
        record: DispatchRecord,
        attempt: int,
        error: str,
        response_code: int | None,
    ) -> None:
        now = self._clock()
        if attempt >= self.max_retries:
            record.mark_dead(error, now, response_code=response_code)
            return

        delay = compute_backoff(attempt, self.backoff_base_ms)
        record.mark_failed(error, now, delay, response_code=response_code)
        logger.warning(
            "Webhook attempt %d/%d failed for %s: %s (retry in %.1fs)",
            attempt,
            self.max_retries,
            record.id,
            error,
            delay.total_seconds(),
        )

    async def _dead_letter(self, record: DispatchRecord) -> None:
        error = DeadLetterError(record.id, record.attempts, record.last_error)
        logger.error(
            "Webhook dead-lettered: %s to %s after %d attempts: %s",
            record.id,
            record.target_url,
            record.attempts,
            record.last_error,
        )
        if self._on_dead_letter is None:
            return
        try:
            await self._on_dead_letter(error)
        except Exception:
            logger.exception("Dead-letter callback failed for %s", record.id)

    def start(self) -> None:
        """Start the background loop in the running event loop."""
        if self.is_running:
            return
        self._stopping = asyncio.Event()
        self._task = asyncio.create_task(self._loop(), name=f"courier-worker-{self.worker_id}")
        logger.info(
            "Retry worker %s started (interval %.1fs, batch %d, max retries %d)",
            self.worker_id,
            self.tick_interval_seconds,
            self.batch_size,
            self.max_retries,
        )

    async def stop(self) -> None:
        """Stop the loop, letting an in-flight tick finish."""
        if self._task is None:
            return
        if self._stopping is not None:
            self._stopping.set()
        try:
            await self._task
        finally:
            self._task = None
            self._stopping = None
        logger.info("Retry worker %s stopped", self.worker_id)

    async def run_forever(self) -> None:
        """Start the loop and wait until it is stopped."""
        self.start()
        if self._task is not None:
            await self._task

    async def _loop(self) -> None:
        stopping = self._stopping
        assert stopping is not None
        while not stopping.is_set():
            try:
                await self.tick()
            except Exception:
                logger.exception("Retry worker tick failed")
            try:
                await asyncio.wait_for(stopping.wait(), timeout=self.tick_interval_seconds)
            except TimeoutError:
                pass


__all__ = [
    "DeadLetterCallback",
    "RetryWorker",
    "TickResult",
    "compute_backoff",
    "default_worker_id",
]
