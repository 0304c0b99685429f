"""
Credit Ledger — the authoritative per-user credit balance.

Debits are a single conditional UPDATE (credits >= 1) so the balance can never go
negative, and they never commit: the dispatcher commits the debit together with the
project row and the template usage bump, or rolls all of them back.
"""

import logging
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from database.models import User
from synthesis.errors import InsufficientCreditsError, LedgerError

log = logging.getLogger(__name__)

CREDITS_PER_FULFILLMENT = 1


class CreditLedger:
    """Credit balance access bound to one session."""

    def __init__(self, db: Session):
        self.db = db

    def balance(self, user_id: str) -> Optional[int]:
        """Current balance, or None for an unknown user."""
        return self.db.execute(
            select(User.credits).where(User.id == user_id)
        ).scalar_one_or_none()

    def can_afford(self, user_id: str, amount: int = CREDITS_PER_FULFILLMENT) -> bool:
        balance = self.balance(user_id)
        return balance is not None and balance >= amount

    def debit(self, user_id: str, amount: int = CREDITS_PER_FULFILLMENT) -> None:
        """
        Atomically take `amount` credits from the user.

        Raises:
            InsufficientCreditsError: unknown user or balance below `amount`
        """
        if amount <= 0:
            raise LedgerError(f"Debit amount must be positive, got {amount}")
        result = self.db.execute(
            update(User)
            .where(User.id == user_id, User.credits >= amount)
            .values(credits=User.credits - amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InsufficientCreditsError(f"User '{user_id}' has fewer than {amount} credit(s)")
        log.info(f"[LEDGER] Debited {amount} credit(s) from user={user_id}")

    def credit(self, user_id: str, amount: int) -> None:
        """Top up a balance (purchases happen elsewhere; used for seeding and refunds)."""
        if amount <= 0:
            raise LedgerError(f"Credit amount must be positive, got {amount}")
        result = self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values(credits=User.credits + amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise LedgerError(f"User '{user_id}' not found")
