"""Domain record storage for Courier.

Accounts, the credit ledger, orders, prompts and videos. These back the
collaborators that inbound webhooks update.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from qdrant_client import models

if TYPE_CHECKING:
    from courier.models import Account, CreditTransaction, Order, Prompt, Video


class DomainMixin:
    """Mixin providing domain record operations for CourierStorage."""

    _upsert_record: Any
    _retrieve_record: Any
    _scroll_records: Any

    # Accounts

    async def store_account(self, account: Account) -> str:
        """Insert or replace an account."""
        result: str = await self._upsert_record("accounts", account)
        return result

    async def get_account(self, user_id: str) -> Account | None:
        """Get an account by ID."""
        from courier.models import Account

        account: Account | None = await self._retrieve_record("accounts", user_id, Account)
        return account

    async def get_account_by_email(self, email: str) -> Account | None:
        """Get an account by (case-insensitive) email."""
        from courier.models import Account

        matches: list[Account] = await self._scroll_records(
            "accounts",
            Account,
            models.Filter(
                must=[
                    models.FieldCondition(
                        key="email", match=models.MatchValue(value=email.strip().lower())
                    )
                ]
            ),
            limit=1,
        )
        return matches[0] if matches else None

    # Credit ledger

    async def log_credit_transaction(self, transaction: CreditTransaction) -> str:
        """Append a ledger entry."""
        result: str = await self._upsert_record("credit_transactions", transaction)
        return result

    async def get_credit_transactions(
        self, user_id: str, limit: int = 50
    ) -> list[CreditTransaction]:
        """Get ledger entries for an account, newest first."""
        from courier.models import CreditTransaction

        entries: list[CreditTransaction] = await self._scroll_records(
            "credit_transactions",
            CreditTransaction,
            models.Filter(
                must=[models.FieldCondition(key="user_id", match=models.MatchValue(value=user_id))]
            ),
            limit=limit,
            order_by=models.OrderBy(key="created_ts", direction=models.Direction.DESC),
        )
        return entries

    # Orders

    async def store_order(self, order: Order) -> str:
        """Insert or replace an order."""
        result: str = await self._upsert_record("orders", order)
        return result

    async def get_order(self, order_id: str) -> Order | None:
        """Get an order by ID."""
        from courier.models import Order

        order: Order | None = await self._retrieve_record("orders", order_id, Order)
        return order

    async def get_order_by_provider_ref(self, provider_ref: str) -> Order | None:
        """Get an order by the payment provider's transaction reference."""
        from courier.models import Order

        matches: list[Order] = await self._scroll_records(
            "orders",
            Order,
            models.Filter(
                must=[
                    models.FieldCondition(
                        key="provider_ref", match=models.MatchValue(value=provider_ref)
                    )
                ]
            ),
            limit=1,
        )
        return matches[0] if matches else None

    # Prompts

    async def store_prompt(self, prompt: Prompt) -> str:
        """Insert or replace a prompt."""
        result: str = await self._upsert_record("prompts", prompt)
        return result

    async def get_prompt(self, prompt_id: str) -> Prompt | None:
        """Get a prompt by ID."""
        from courier.models import Prompt

        prompt: Prompt | None = await self._retrieve_record("prompts", prompt_id, Prompt)
        return prompt

    # Videos

    async def store_video(self, video: Video) -> str:
        """Insert or replace a video."""
        result: str = await self._upsert_record("videos", video)
        return result

    async def get_video(self, video_id: str) -> Video | None:
        """Get a video by ID."""
        from courier.models import Video

        video: Video | None = await self._retrieve_record("videos", video_id, Video)
        return video
