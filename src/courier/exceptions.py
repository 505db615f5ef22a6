"""Courier exception hierarchy.

Provides structured exceptions for error handling throughout the codebase.
All exceptions inherit from CourierError for easy catching.
"""

from __future__ import annotations


class CourierError(Exception):
    """Base exception for all Courier errors.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code for API responses.
    """

    code: str = "courier_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
            }
        }


class ValidationError(CourierError):
    """Invalid input provided.

    Raised synchronously to the caller and never persisted.

    Attributes:
        field: The field that failed validation.
        message: Description of the validation failure.
    """

    code: str = "validation_error"

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(f"{field}: {message}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "field": self.field,
                "message": self.message,
            }
        }


class SerializationError(ValidationError):
    """Payload cannot be serialized to JSON.

    Circular references, NaN/Infinity, non-string keys and values json cannot
    encode (datetimes, sets, arbitrary objects) all end up here.
    """

    code: str = "serialization_error"


class NotFoundError(CourierError):
    """Resource not found.

    Attributes:
        resource_type: Type of resource (e.g., "dispatch", "order").
        resource_id: ID of the missing resource.
    """

    code: str = "not_found"

    def __init__(self, resource_type: str, resource_id: str) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{resource_type} not found: {resource_id}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "resource_type": self.resource_type,
                "resource_id": self.resource_id,
                "message": self.message,
            }
        }


class StorageError(CourierError):
    """Storage operation failed."""

    code: str = "storage_error"


class ConfigurationError(CourierError):
    """Configuration error.

    Raised when a required secret or the default target URL is missing.
    """

    code: str = "configuration_error"


class SignatureError(CourierError):
    """Inbound webhook signature did not verify.

    The event is rejected and never processed or retried.
    """

    code: str = "invalid_signature"


class DeliveryError(CourierError):
    """A single delivery attempt failed (non-2xx, network error or timeout).

    Transient: recorded on the dispatch record and drives backoff. Never
    surfaced to the caller that enqueued the event.

    Attributes:
        status_code: HTTP status of the response, if one was received.
    """

    code: str = "delivery_error"

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class DeadLetterError(CourierError):
    """A dispatch exhausted its attempts and was dead-lettered.

    Handed to dead-letter callbacks for alerting. Requires manual replay.

    Attributes:
        dispatch_id: ID of the dead record.
        attempts: Attempts made before giving up.
        last_error: Failure description of the final attempt.
    """

    code: str = "dead_letter"

    def __init__(self, dispatch_id: str, attempts: int, last_error: str | None) -> None:
        self.dispatch_id = dispatch_id
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"dispatch {dispatch_id} dead after {attempts} attempts: {last_error or 'unknown error'}"
        )

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "dispatch_id": self.dispatch_id,
                "attempts": self.attempts,
                "message": self.message,
            }
        }
