"""
Hearts Ledger.

Session-scoped view of the learner's hearts. Debits are applied optimistically so the
UI can react immediately, then reconciled with the value confirmed by the progress
store. A failed debit restores the previous balance and surfaces a TransientError.

Premium learners have unlimited hearts: debits are no-ops and no interrupt is ever
raised for them.
"""
from __future__ import annotations

import asyncio
from collections.abc import Hashable

from loguru import logger

from skilltree.collaborators import ProgressStore
from skilltree.errors import SkillTreeError, TransientError
from skilltree.models import HeartsBalance


class HeartsLedger:
    """Optimistic, reconciled hearts balance for one learner."""

    def __init__(self, user_id: Hashable, store: ProgressStore, initial: HeartsBalance | None = None):
        self.user_id = user_id
        self._store = store
        initial = initial or HeartsBalance(balance=0)
        self._balance = initial.balance
        self._unlimited = initial.unlimited
        self._pending = 0
        self._lock = asyncio.Lock()
        self.depletions = 0

    @classmethod
    async def load(cls, user_id: Hashable, store: ProgressStore) -> HeartsLedger:
        """Create a ledger seeded from the store."""
        return cls(user_id, store, await store.get_hearts(user_id))

    @property
    def balance(self) -> int:
        return self._balance

    @property
    def unlimited(self) -> bool:
        return self._unlimited

    @property
    def pending(self) -> bool:
        """True while a debit is awaiting confirmation."""
        return self._pending > 0

    @property
    def depleted(self) -> bool:
        return not self._unlimited and self._balance == 0

    def can_start_attempt(self) -> bool:
        return self._unlimited or self._balance > 0

    def would_deplete(self, amount: int = 1) -> bool:
        """Whether debiting ``amount`` would take the balance to 0."""
        return not self._unlimited and self._balance - amount <= 0

    def can_answer_incorrectly(self) -> bool:
        """False when one more wrong answer would empty the balance."""
        return not self.would_deplete(1)

    async def reconcile(self) -> HeartsBalance:
        """Replace the local balance with the store's value."""
        confirmed = await self._store.get_hearts(self.user_id)
        async with self._lock:
            self._balance = confirmed.balance
            self._unlimited = confirmed.unlimited
        return confirmed

    async def debit(self, amount: int = 1) -> int:
        """
        Debit hearts for a wrong answer.

        Args:
            amount: Hearts to take, must be positive

        Returns:
            The confirmed balance

        Raises:
            TransientError: The store could not confirm the debit. The local balance
                is restored.
        """
        if amount <= 0:
            raise ValueError("debit amount must be positive")
        if self._unlimited:
            return self._balance

        async with self._lock:
            previous = self._balance
            self._balance = max(0, previous - amount)
            self._pending += 1
            try:
                confirmed = await self._store.debit_hearts(self.user_id, amount)
            except SkillTreeError:
                self._balance = previous
                logger.warning("Hearts debit failed for user {}; balance restored to {}", self.user_id, previous)
                raise
            except Exception as e:
                self._balance = previous
                raise TransientError(f"Hearts debit failed: {e}", operation="debit_hearts") from e
            finally:
                self._pending -= 1

            self._balance = max(0, confirmed)
            if previous > 0 and self._balance == 0:
                self.depletions += 1
                logger.info("User {} ran out of hearts", self.user_id)
            return self._balance

    async def purchase(self) -> int:
        """
        Buy one heart with zaps and return the confirmed balance.

        Raises:
            CollaboratorError: The store refused (full balance, not enough zaps)
        """
        confirmed = await self._store.purchase_heart(self.user_id)
        async with self._lock:
            self._balance = max(0, confirmed)
        return self._balance

    async def credit(self, amount: int = 1) -> int:
        """Credit granted hearts and return the confirmed balance."""
        if amount <= 0:
            raise ValueError("credit amount must be positive")
        confirmed = await self._store.credit_hearts(self.user_id, amount)
        async with self._lock:
            self._balance = max(0, confirmed)
        return self._balance

    def snapshot(self) -> HeartsBalance:
        return HeartsBalance(balance=self._balance, unlimited=self._unlimited)

    def __repr__(self) -> str:
        if self._unlimited:
            return f"HeartsLedger(user={self.user_id!r}, unlimited)"
        return f"HeartsLedger(user={self.user_id!r}, balance={self._balance})"
