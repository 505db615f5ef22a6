"""Courier: durable, signed, at-least-once outgoing webhooks.

Events are enqueued as dispatch records, signed with HMAC-SHA256 and
delivered by a background retry worker with exponential backoff.
Records that exhaust their attempts are dead-lettered for manual replay.

Quick Start:
    from courier.service import CourierService

    async with CourierService.create() as courier:
        # Queue an outbound event
        record = await courier.dispatcher.enqueue("order.paid", {"orderId": "O1"})

        # Deliver due records in the background
        courier.start_worker()

Record Types:
    - DispatchRecord: One outbound webhook and its delivery attempts
    - Account, CreditTransaction: Credit balances and ledger
    - Order, Prompt, Video: Domain records updated by inbound webhooks
"""

__version__ = "0.1.0"

# Configuration
from .config import Settings, settings

# Exceptions
from .exceptions import (
    ConfigurationError,
    CourierError,
    DeadLetterError,
    DeliveryError,
    NotFoundError,
    SerializationError,
    SignatureError,
    StorageError,
    ValidationError,
)

# Logging
from .logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
)

# Models
from .models import (
    Account,
    CreditTransaction,
    DispatchRecord,
    Order,
    Prompt,
    Video,
)

__all__ = [
    # Version
    "__version__",
    # Configuration
    "Settings",
    "settings",
    # Exceptions
    "CourierError",
    "ValidationError",
    "SerializationError",
    "NotFoundError",
    "StorageError",
    "ConfigurationError",
    "SignatureError",
    "DeliveryError",
    "DeadLetterError",
    # Logging
    "configure_logging",
    "get_logger",
    "bind_context",
    "clear_context",
    # Models
    "DispatchRecord",
    "Account",
    "CreditTransaction",
    "Order",
    "Prompt",
    "Video",
]
