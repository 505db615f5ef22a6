"""Credit balances and their ledger.

Every balance change writes one CreditTransaction next to the updated
Account. Inbound payment and refund webhooks go through here.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from courier.exceptions import NotFoundError, ValidationError
from courier.models import Account, CreditTransaction

if TYPE_CHECKING:
    from courier.storage import CourierStorage

logger = logging.getLogger(__name__)


class CreditsService:
    """Grants, consumes and refunds account credits."""

    def __init__(self, storage: CourierStorage) -> None:
        self._storage = storage

    async def _require_account(self, user_id: str) -> Account:
        account = await self._storage.get_account(user_id)
        if account is None:
            raise NotFoundError("account", user_id)
        return account

    async def get_balance(self, user_id: str) -> int:
        """Current credit balance of an account."""
        account = await self._require_account(user_id)
        return account.credits

    async def add_credits(
        self,
        user_id: str,
        amount: int,
        reason: str,
        ref_id: str | None = None,
    ) -> Account:
        """Grant credits to an account.

        Raises:
            ValidationError: If amount is not positive.
            NotFoundError: If the account does not exist.
        """
        if amount <= 0:
            raise ValidationError("amount", "must be positive")
        account = await self._require_account(user_id)
        account.credits += amount
        account.touch()
        await self._storage.store_account(account)
        await self._storage.log_credit_transaction(
            CreditTransaction(
                user_id=user_id, type="credit", amount=amount, reason=reason, ref_id=ref_id
            )
        )
        logger.info("Credited %d to %s (%s)", amount, user_id, reason)
        return account

    async def consume_credits(
        self,
        user_id: str,
        amount: int,
        reason: str,
        ref_id: str | None = None,
    ) -> Account:
        """Spend credits from an account.

        Raises:
            ValidationError: If amount is not positive or the balance is too low.
            NotFoundError: If the account does not exist.
        """
        if amount <= 0:
            raise ValidationError("amount", "must be positive")
        account = await self._require_account(user_id)
        if account.credits < amount:
            raise ValidationError(
                "amount", f"insufficient credits: balance {account.credits}, needed {amount}"
            )
        return await self._debit(account, amount, reason, ref_id)

    async def refund_credits(
        self,
        user_id: str,
        amount: int,
        reason: str,
        ref_id: str | None = None,
    ) -> Account:
        """Take back credits granted for a refunded order.

        Debits at most the current balance; credits already spent stay spent.
        """
        if amount <= 0:
            raise ValidationError("amount", "must be positive")
        account = await self._require_account(user_id)
        debit = min(amount, account.credits)
        if debit < amount:
            logger.warning(
                "Refund for %s exceeds balance: debiting %d of %d", user_id, debit, amount
            )
        if debit == 0:
            return account
        return await self._debit(account, debit, reason, ref_id)

    async def _debit(
        self, account: Account, amount: int, reason: str, ref_id: str | None
    ) -> Account:
        account.credits -= amount
        account.touch()
        await self._storage.store_account(account)
        await self._storage.log_credit_transaction(
            CreditTransaction(
                user_id=account.id, type="debit", amount=amount, reason=reason, ref_id=ref_id
            )
        )
        logger.info("Debited %d from %s (%s)", amount, account.id, reason)
        return account

    async def get_history(self, user_id: str, limit: int = 50) -> list[CreditTransaction]:
        """Ledger entries of an account, newest first."""
        return await self._storage.get_credit_transactions(user_id, limit=limit)


__all__ = ["CreditsService"]
