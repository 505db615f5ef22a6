"""Storage backends for Courier.

Persists dispatch records and domain records to Qdrant collections.

Example:
    ```python
    from courier.storage import CourierStorage

    async with CourierStorage() as storage:
        await storage.insert_dispatch(record)
    ```
"""

from .base import COLLECTION_NAMES, PLACEHOLDER_VECTOR
from .client import CourierStorage

__all__ = [
    "COLLECTION_NAMES",
    "CourierStorage",
    "PLACEHOLDER_VECTOR",
]
