"""Domain records the inbound receiver mutates.

These are collaborators of the webhook core: accounts and their credit
ledger, plan orders, prompt generations and video renders.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import Field, field_validator

from .base import RecordBase, generate_id

OrderStatus = Literal["pending", "paid", "failed"]
PromptStatus = Literal["processing", "completed", "failed"]
VideoStatus = Literal["queued", "processing", "ready", "failed"]
TransactionType = Literal["credit", "debit"]


class Account(RecordBase):
    """A customer account holding a credit balance."""

    id: str = Field(default_factory=lambda: generate_id("usr"))
    email: str = Field(min_length=3, description="Login email, stored lowercase")
    name: str = Field(default="", description="Display name")
    credits: int = Field(default=0, ge=0, description="Current credit balance")

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        return value.strip().lower()


class CreditTransaction(RecordBase):
    """Append-only ledger entry for a balance change."""

    id: str = Field(default_factory=lambda: generate_id("txn"))
    user_id: str = Field(description="Account whose balance changed")
    type: TransactionType = Field(description="credit or debit")
    amount: int = Field(ge=0, description="Credits moved")
    reason: str = Field(description="Human-readable reason")
    ref_id: str | None = Field(default=None, description="Related order/prompt/video")


class Order(RecordBase):
    """A plan purchase."""

    id: str = Field(default_factory=lambda: generate_id("ord"))
    user_id: str = Field(description="Purchasing account")
    plan_code: str = Field(description="Plan code, e.g. START, PRO, INFINITY")
    price: float = Field(ge=0.0, description="Price paid")
    credits: int = Field(ge=0, description="Credits granted when paid")
    status: OrderStatus = Field(default="pending")
    provider: str = Field(default="n8n", description="Payment provider")
    provider_ref: str | None = Field(default=None, description="Provider transaction id")
    paid_at: datetime | None = Field(default=None)


class Prompt(RecordBase):
    """An AI prompt generation request and its result."""

    id: str = Field(default_factory=lambda: generate_id("prm"))
    user_id: str
    input_brief: dict[str, Any] = Field(default_factory=dict)
    result_text: str | None = None
    tags: list[str] = Field(default_factory=list)
    status: PromptStatus = Field(default="processing")


class Video(RecordBase):
    """A video render and the URLs of its produced assets."""

    id: str = Field(default_factory=lambda: generate_id("vid"))
    user_id: str
    prompt_id: str | None = None
    status: VideoStatus = Field(default="queued")
    assets: dict[str, str] = Field(
        default_factory=dict,
        description="Asset URLs keyed by kind (script_url, audio_url, captions_url, video_url)",
    )


__all__ = [
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
