"""Record models for Courier.

Webhook Core:
    - DispatchRecord: One outbound webhook and its delivery attempts

Domain Collaborators:
    - Account, CreditTransaction: Credit balances and ledger
    - Order: Plan purchases
    - Prompt, Video: Generation jobs updated by inbound webhooks
"""

from .base import RecordBase, generate_id, utc_now
from .dispatch import (
    ALL_STATUSES,
    RETRYABLE_STATUSES,
    TERMINAL_STATUSES,
    DispatchRecord,
    DispatchStatus,
)
from .domain import (
    Account,
    CreditTransaction,
    Order,
    OrderStatus,
    Prompt,
    PromptStatus,
    TransactionType,
    Video,
    VideoStatus,
)

__all__ = [
    # Base
    "RecordBase",
    "generate_id",
    "utc_now",
    # Dispatch
    "ALL_STATUSES",
    "DispatchRecord",
    "DispatchStatus",
    "RETRYABLE_STATUSES",
    "TERMINAL_STATUSES",
    # Domain
    "Account",
    "CreditTransaction",
    "Order",
    "OrderStatus",
    "Prompt",
    "PromptStatus",
    "TransactionType",
    "Video",
    "VideoStatus",
]
