"""Qdrant storage client for Courier.

This module provides the main CourierStorage class that combines
all storage operations through mixins.

Example:
    ```python
    from courier.storage import CourierStorage

    async with CourierStorage() as storage:
        await storage.insert_dispatch(record)
        due = await storage.get_due_dispatches(now, max_retries=5, limit=10)
    ```
"""

from __future__ import annotations

from typing import Any

from .base import COLLECTION_NAMES, StorageBase
from .dispatch import DispatchMixin
from .domain import DomainMixin


class CourierStorage(DispatchMixin, DomainMixin, StorageBase):
    """Async Qdrant storage client for Courier records.

    This class combines functionality from multiple mixins:
    - DispatchMixin: insert_dispatch, get_due_dispatches, claim_dispatch, etc.
    - DomainMixin: accounts, credit ledger, orders, prompts, videos

    Attributes:
        client: Async Qdrant client instance.
    """

    async def __aenter__(self) -> CourierStorage:
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()


__all__ = [
    "COLLECTION_NAMES",
    "CourierStorage",
]
