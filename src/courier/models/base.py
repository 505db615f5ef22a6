"""Base models and shared helpers for Courier records."""

from __future__ import annotations

from datetime import UTC, datetime
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def generate_id(prefix: str) -> str:
    """Generate a unique ID with the given prefix.

    Examples:
        generate_id("dsp") -> "dsp_a1b2c3d4e5f6"
        generate_id("ord") -> "ord_a1b2c3d4e5f6"
    """
    return f"{prefix}_{uuid4().hex[:12]}"


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


class RecordBase(BaseModel):
    """Base class for persisted records.

    Subclasses set their own ``id`` default with a type-specific prefix.
    """

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    id: str = Field(description="Unique identifier")
    created_at: datetime = Field(default_factory=utc_now, description="When the record was created")
    updated_at: datetime = Field(
        default_factory=utc_now, description="When the record was last modified"
    )

    def touch(self, at: datetime | None = None) -> None:
        """Bump ``updated_at``."""
        self.updated_at = at or utc_now()
