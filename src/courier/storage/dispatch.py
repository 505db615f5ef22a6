"""Dispatch storage operations for Courier.

The dispatch collection is the single source of truth for outbound webhook
state. Every mutation is a single-record write; nothing spans records.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from qdrant_client import models

from courier.models import ALL_STATUSES, RETRYABLE_STATUSES, TERMINAL_STATUSES

from .base import to_timestamp
from .retry import qdrant_retry

if TYPE_CHECKING:
    from courier.models import DispatchRecord, DispatchStatus


class DispatchMixin:
    """Mixin providing dispatch operations for CourierStorage.

    This mixin expects the following attributes/methods from the base class:
    - _collection_name(kind) -> str
    - _key_to_point_id(key) -> str
    - _upsert_record / _retrieve_record / _scroll_records
    - client: AsyncQdrantClient
    """

    _collection_name: Any
    _key_to_point_id: Any
    _upsert_record: Any
    _retrieve_record: Any
    _scroll_records: Any
    client: Any

    async def insert_dispatch(self, record: DispatchRecord) -> str:
        """Persist a newly enqueued dispatch.

        Returns:
            The dispatch ID.
        """
        result: str = await self._upsert_record("dispatches", record)
        return result

    async def update_dispatch(self, record: DispatchRecord) -> str:
        """Persist the state of a dispatch after an attempt."""
        result: str = await self._upsert_record("dispatches", record)
        return result

    async def get_dispatch(self, dispatch_id: str) -> DispatchRecord | None:
        """Get a dispatch by ID."""
        from courier.models import DispatchRecord

        record: DispatchRecord | None = await self._retrieve_record(
            "dispatches", dispatch_id, DispatchRecord
        )
        return record

    async def get_due_dispatches(
        self,
        now: datetime,
        max_retries: int,
        limit: int = 10,
    ) -> list[DispatchRecord]:
        """Get dispatches eligible for an attempt at ``now``.

        Eligible means queued or failed, fewer than ``max_retries`` attempts,
        and no ``next_retry_at`` in the future.

        Args:
            now: Reference time.
            max_retries: Attempt ceiling.
            limit: Maximum records to return.

        Returns:
            Up to ``limit`` records, oldest ``created_at`` first.
        """
        from courier.models import DispatchRecord

        due_filter = models.Filter(
            must=[
                models.FieldCondition(
                    key="status",
                    match=models.MatchAny(any=list(RETRYABLE_STATUSES)),
                ),
                models.FieldCondition(
                    key="attempts",
                    range=models.Range(lt=max_retries),
                ),
                models.FieldCondition(
                    key="next_retry_ts",
                    range=models.Range(lte=to_timestamp(now)),
                ),
            ]
        )

        records: list[DispatchRecord] = await self._scroll_records(
            "dispatches",
            DispatchRecord,
            due_filter,
            limit=limit,
            order_by=models.OrderBy(key="created_ts", direction=models.Direction.ASC),
        )
        return records

    @qdrant_retry
    async def claim_dispatch(
        self,
        dispatch_id: str,
        owner: str,
        now: datetime,
        lease_until: datetime,
    ) -> DispatchRecord | None:
        """Atomically claim a dispatch for delivery.

        The lease is written with a conditional update that only matches when
        the record is still retryable and nobody holds an unexpired lease.
        The record is read back to learn whether this owner won.

        Args:
            dispatch_id: Record to claim.
            owner: Worker identity.
            now: Reference time for lease expiry.
            lease_until: When the new lease lapses.

        Returns:
            The claimed record, or None if another worker holds it or it is
            no longer retryable.
        """
        collection = self._collection_name("dispatches")
        point_id = self._key_to_point_id(dispatch_id)

        await self.client.set_payload(
            collection_name=collection,
            payload={
                "lease_owner": owner,
                "lease_expires_at": lease_until.isoformat(),
                "lease_expires_ts": to_timestamp(lease_until),
            },
            points=models.Filter(
                must=[
                    models.HasIdCondition(has_id=[point_id]),
                    models.FieldCondition(
                        key="status",
                        match=models.MatchAny(any=list(RETRYABLE_STATUSES)),
                    ),
                    models.FieldCondition(
                        key="lease_expires_ts",
                        range=models.Range(lte=to_timestamp(now)),
                    ),
                ]
            ),
        )

        record = await self.get_dispatch(dispatch_id)
        if record is None or record.lease_owner != owner:
            return None
        return record

    async def list_dispatches(
        self,
        status: DispatchStatus | None = None,
        event_type: str | None = None,
        limit: int = 100,
    ) -> list[DispatchRecord]:
        """List dispatches, newest first.

        Args:
            status: Optional status filter (e.g. "dead" for the dead-letter view).
            event_type: Optional event type filter.
            limit: Maximum records to return.
        """
        from courier.models import DispatchRecord

        conditions: list[models.Condition] = []
        if status is not None:
            conditions.append(
                models.FieldCondition(key="status", match=models.MatchValue(value=status))
            )
        if event_type is not None:
            conditions.append(
                models.FieldCondition(key="event_type", match=models.MatchValue(value=event_type))
            )

        records: list[DispatchRecord] = await self._scroll_records(
            "dispatches",
            DispatchRecord,
            models.Filter(must=conditions) if conditions else None,
            limit=limit,
            order_by=models.OrderBy(key="created_ts", direction=models.Direction.DESC),
        )
        return records

    @qdrant_retry
    async def count_dispatches_by_status(self) -> dict[str, int]:
        """Count dispatches in each status."""
        collection = self._collection_name("dispatches")
        counts: dict[str, int] = {}
        for status in ALL_STATUSES:
            result = await self.client.count(
                collection_name=collection,
                count_filter=models.Filter(
                    must=[
                        models.FieldCondition(key="status", match=models.MatchValue(value=status))
                    ]
                ),
                exact=True,
            )
            counts[status] = int(result.count)
        return counts

    @qdrant_retry
    async def prune_dispatches(self, before: datetime) -> int:
        """Delete terminal dispatches last updated before ``before``.

        Queued and failed records are never pruned.

        Returns:
            Number of records deleted.
        """
        collection = self._collection_name("dispatches")
        prune_filter = models.Filter(
            must=[
                models.FieldCondition(
                    key="status",
                    match=models.MatchAny(any=list(TERMINAL_STATUSES)),
                ),
                models.FieldCondition(
                    key="updated_ts",
                    range=models.Range(lt=to_timestamp(before)),
                ),
            ]
        )

        result = await self.client.count(
            collection_name=collection, count_filter=prune_filter, exact=True
        )
        if result.count == 0:
            return 0

        await self.client.delete(
            collection_name=collection,
            points_selector=models.FilterSelector(filter=prune_filter),
        )
        return int(result.count)
