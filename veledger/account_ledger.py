"""
account_ledger.py - Per-account decay checkpoints

Every lock mutation appends one Point to the owning account's checkpoint list.
The Point restarts the account's curve at the mutation time:

    slope = amount / max_lock_duration      (if end > now, else 0)
    bias  = slope * (end - now)             (if end > now, else 0)

Account ledgers never consult the slope schedule; expiry is implicit in the
bias reaching zero at end.
"""

from __future__ import annotations
from typing import Dict, List, Tuple

from .checkpoints import DecayCheckpointList
from .core import (
    DEFAULT_CONFIG, ZERO,
    EscrowConfig, Lock, Point,
    compute_bias, compute_slope,
)


class AccountLedger:
    """Lazily created DecayCheckpointList per account."""

    def __init__(self, config: EscrowConfig = DEFAULT_CONFIG):
        self.config = config
        self._histories: Dict[str, DecayCheckpointList] = {}

    def point_for(self, lock: Lock, now: int, block: int) -> Point:
        """
        Compute (without recording) the Point describing a lock at now.

        Example:
            ledger = AccountLedger()
            p = ledger.point_for(Lock(Decimal("1000"), 604800), now=0, block=1)
            # p.bias ~= 1000 * 604800 / 126144000 ~= 4.79
        """
        if lock.end > now and lock.amount > 0:
            slope = compute_slope(lock.amount, self.config)
            bias = compute_bias(slope, lock.end, now)
        else:
            slope = bias = ZERO
        return Point(bias=bias, slope=slope, ts=now, blk=block)

    def record(self, account: str, point: Point) -> int:
        """Append a Point for account and return its new epoch."""
        return self.checkpoints(account).append(point)

    def checkpoints(self, account: str) -> DecayCheckpointList:
        history = self._histories.get(account)
        if history is None:
            history = DecayCheckpointList(account, self.config.max_search_steps)
            self._histories[account] = history
        return history

    def epoch(self, account: str) -> int:
        history = self._histories.get(account)
        return history.epoch if history else 0

    def last_point(self, account: str) -> Point:
        history = self._histories.get(account)
        return history.last if history else Point()

    def point(self, account: str, epoch: int) -> Point:
        history = self._histories.get(account)
        if history is None:
            if epoch == 0:
                return Point()
            raise IndexError(f"{account}: no checkpoints recorded")
        return history.point(epoch)

    def points(self, account: str) -> Tuple[Point, ...]:
        history = self._histories.get(account)
        return history.points() if history else ()

    def accounts(self) -> List[str]:
        return sorted(self._histories.keys())
