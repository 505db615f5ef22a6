"""Base storage class and helpers.

Contains client lifecycle, collection management and the record/payload
conversion shared by every mixin.
"""

from __future__ import annotations

import hashlib
from datetime import datetime
from typing import Any, TypeVar

from qdrant_client import AsyncQdrantClient, models

from courier.config import settings
from courier.models import RecordBase

from .retry import qdrant_retry

RecordT = TypeVar("RecordT", bound=RecordBase)

# Collection names by record kind
COLLECTION_NAMES = {
    "dispatches": "dispatches",
    "accounts": "accounts",
    "credit_transactions": "credit_transactions",
    "orders": "orders",
    "prompts": "prompts",
    "videos": "videos",
}

# Keyword/numeric payload fields indexed per collection
PAYLOAD_INDEXES: dict[str, dict[str, models.PayloadSchemaType]] = {
    "dispatches": {
        "status": models.PayloadSchemaType.KEYWORD,
        "event_type": models.PayloadSchemaType.KEYWORD,
        "attempts": models.PayloadSchemaType.INTEGER,
        "created_ts": models.PayloadSchemaType.FLOAT,
        "updated_ts": models.PayloadSchemaType.FLOAT,
        "next_retry_ts": models.PayloadSchemaType.FLOAT,
        "lease_expires_ts": models.PayloadSchemaType.FLOAT,
    },
    "accounts": {"email": models.PayloadSchemaType.KEYWORD},
    "credit_transactions": {
        "user_id": models.PayloadSchemaType.KEYWORD,
        "created_ts": models.PayloadSchemaType.FLOAT,
    },
    "orders": {
        "user_id": models.PayloadSchemaType.KEYWORD,
        "provider_ref": models.PayloadSchemaType.KEYWORD,
    },
    "prompts": {"user_id": models.PayloadSchemaType.KEYWORD},
    "videos": {"user_id": models.PayloadSchemaType.KEYWORD},
}

# Records are looked up by filters only; every point carries this vector
PLACEHOLDER_VECTOR = [1.0]

# Epoch-second mirrors of datetime fields, used for range filters.
# A missing datetime is stored as 0.0 so "<= now" also matches it.
TIMESTAMP_MIRRORS = {
    "created_at": "created_ts",
    "updated_at": "updated_ts",
    "next_retry_at": "next_retry_ts",
    "lease_expires_at": "lease_expires_ts",
}


def to_timestamp(value: datetime | None) -> float:
    """Epoch seconds for range filters (0.0 for None)."""
    return value.timestamp() if value is not None else 0.0


class StorageBase:
    """Base class for Courier storage with initialization and helpers.

    Provides:
    - Client initialization and lifecycle management
    - Collection creation and indexing
    - Point ID derivation
    - Payload serialization/deserialization
    """

    def __init__(
        self,
        url: str | None = None,
        api_key: str | None = None,
        prefix: str | None = None,
        max_scroll_limit: int | None = None,
    ) -> None:
        """Initialize storage client.

        Args:
            url: Qdrant server URL, or ":memory:" for an in-process store.
                Defaults to settings.qdrant_url.
            api_key: Qdrant API key. Defaults to settings.qdrant_api_key.
            prefix: Collection name prefix. Defaults to settings.collection_prefix.
            max_scroll_limit: Cap on records fetched by one scroll.
                Defaults to settings.storage_max_scroll_limit.
        """
        self._url = url or settings.qdrant_url
        self._api_key = api_key or settings.qdrant_api_key
        self._prefix = prefix or settings.collection_prefix
        self._max_scroll_limit = max_scroll_limit or settings.storage_max_scroll_limit
        self._client: AsyncQdrantClient | None = None
        self._collections_initialized = False

    @property
    def client(self) -> AsyncQdrantClient:
        """Get the Qdrant client, raising if not initialized."""
        if self._client is None:
            raise RuntimeError("Storage not initialized. Call initialize() first.")
        return self._client

    @property
    def is_connected(self) -> bool:
        """Whether a client is open and the collections are ensured."""
        return self._client is not None and self._collections_initialized

    async def initialize(self) -> None:
        """Initialize the storage client and ensure collections exist."""
        if self._url == ":memory:":
            self._client = AsyncQdrantClient(location=":memory:")
        else:
            self._client = AsyncQdrantClient(url=self._url, api_key=self._api_key)
        await self._ensure_collections()
        self._collections_initialized = True

    async def close(self) -> None:
        """Close the storage client connection."""
        if self._client is not None:
            await self._client.close()
            self._client = None
            self._collections_initialized = False

    def _collection_name(self, kind: str) -> str:
        """Get full collection name with prefix."""
        suffix = COLLECTION_NAMES.get(kind, kind)
        return f"{self._prefix}_{suffix}"

    @staticmethod
    def _key_to_point_id(key: str) -> str:
        """Convert a record ID to a valid Qdrant point ID.

        Qdrant requires point IDs to be UUIDs or unsigned integers.
        We hash the key to create a deterministic UUID-format string.
        """
        h = hashlib.sha256(key.encode()).hexdigest()[:32]
        return f"{h[:8]}-{h[8:12]}-{h[12:16]}-{h[16:20]}-{h[20:32]}"

    async def _ensure_collections(self) -> None:
        """Ensure all required collections exist."""
        collections = await self.client.get_collections()
        existing = {c.name for c in collections.collections}

        for kind in COLLECTION_NAMES:
            collection_name = self._collection_name(kind)
            if collection_name in existing:
                continue
            await self.client.create_collection(
                collection_name=collection_name,
                vectors_config=models.VectorParams(
                    size=len(PLACEHOLDER_VECTOR),
                    distance=models.Distance.DOT,
                ),
            )
            for field_name, schema in PAYLOAD_INDEXES.get(kind, {}).items():
                await self.client.create_payload_index(
                    collection_name=collection_name,
                    field_name=field_name,
                    field_schema=schema,
                )

    @staticmethod
    def _record_to_payload(record: RecordBase) -> dict[str, Any]:
        """Convert a record to a Qdrant payload with timestamp mirrors."""
        data = record.model_dump(mode="json")
        for field_name, mirror in TIMESTAMP_MIRRORS.items():
            if field_name in type(record).model_fields:
                data[mirror] = to_timestamp(getattr(record, field_name))
        return data

    @staticmethod
    def _payload_to_record(payload: dict[str, Any], record_class: type[RecordT]) -> RecordT:
        """Convert a Qdrant payload back to a record."""
        data = {k: v for k, v in payload.items() if k not in TIMESTAMP_MIRRORS.values()}
        return record_class.model_validate(data)

    @qdrant_retry
    async def _upsert_record(self, kind: str, record: RecordBase) -> str:
        """Insert or replace a record in the collection for ``kind``."""
        await self.client.upsert(
            collection_name=self._collection_name(kind),
            points=[
                models.PointStruct(
                    id=self._key_to_point_id(record.id),
                    vector=PLACEHOLDER_VECTOR,
                    payload=self._record_to_payload(record),
                )
            ],
        )
        return record.id

    @qdrant_retry
    async def _retrieve_record(
        self, kind: str, record_id: str, record_class: type[RecordT]
    ) -> RecordT | None:
        """Fetch one record by ID, or None."""
        results = await self.client.retrieve(
            collection_name=self._collection_name(kind),
            ids=[self._key_to_point_id(record_id)],
            with_payload=True,
        )
        if not results or results[0].payload is None:
            return None
        return self._payload_to_record(results[0].payload, record_class)

    @qdrant_retry
    async def _scroll_records(
        self,
        kind: str,
        record_class: type[RecordT],
        scroll_filter: models.Filter | None = None,
        limit: int | None = None,
        order_by: models.OrderBy | None = None,
    ) -> list[RecordT]:
        """Fetch records matching a filter.

        Without ``order_by`` points come back in point-id order, which is
        unrelated to record age. Ordering needs a range index on the key.
        """
        results, _ = await self.client.scroll(
            collection_name=self._collection_name(kind),
            scroll_filter=scroll_filter,
            limit=min(limit or self._max_scroll_limit, self._max_scroll_limit),
            order_by=order_by,
            with_payload=True,
        )
        return [
            self._payload_to_record(r.payload, record_class)
            for r in results
            if r.payload is not None
        ]
