"""Courier service layer.

Provides the high-level CourierService and the credit ledger collaborator.

Example:
    ```python
    from courier.service import CourierService

    async with CourierService.create() as courier:
        await courier.dispatcher.enqueue("order.paid", {"orderId": "O1"})
    ```
"""

from .base import CourierService
from .credits import CreditsService

__all__ = [
    "CourierService",
    "CreditsService",
]
