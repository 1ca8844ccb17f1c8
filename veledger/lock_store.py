"""
lock_store.py - Current lock record per account

The LockStore holds exactly one Lock per account and the running total of
collateral held by the escrow. It performs no validation of its own: the
coordinator validates before writing.
"""

from __future__ import annotations
from decimal import Decimal
from typing import Dict, List

from .core import Lock, ZERO


class LockStore:
    """
    Account -> Lock table with a tracked collateral total.

    Accounts without a lock read as the empty Lock(0, 0).
    """

    def __init__(self):
        self._locks: Dict[str, Lock] = {}
        self._total_locked: Decimal = ZERO

    def get(self, account: str) -> Lock:
        return self._locks.get(account, Lock())

    def put(self, account: str, lock: Lock) -> None:
        """Replace an account's lock, keeping the collateral total in step."""
        previous = self.get(account)
        self._total_locked += lock.amount - previous.amount
        if lock.amount > 0:
            self._locks[account] = lock
        else:
            self._locks.pop(account, None)

    def clear(self, account: str) -> Lock:
        """Zero an account's lock and return the lock that was removed."""
        previous = self.get(account)
        self.put(account, Lock())
        return previous

    @property
    def total_locked(self) -> Decimal:
        """Collateral held for all accounts, including expired locks."""
        return self._total_locked

    def accounts(self) -> List[str]:
        """Accounts currently holding collateral, sorted for determinism."""
        return sorted(self._locks.keys())

    def __contains__(self, account: str) -> bool:
        return account in self._locks

    def __len__(self) -> int:
        return len(self._locks)
