"""
history.py - Read-only balance and supply queries

HistoricalQueryEngine answers "how much voting power" questions against the
recorded curves without ever writing to them:

1. By timestamp: locate the latest Point at or before t and decay forward.
   Global supply walks forward through the slope schedule because the
   global ledger may not have been advanced recently.
2. By block height: locate the latest Point at or before the block, then map
   the block to a timestamp by interpolating between that global Point and
   the next one (or the live clock when it is the last), and evaluate there.

Block heights beyond the current one are rejected with OutOfRange; anything
before the first recorded Point reads as zero.
"""

from __future__ import annotations
from decimal import Decimal
from typing import Optional, Tuple

from .account_ledger import AccountLedger
from .core import (
    DEFAULT_CONFIG, ZERO,
    ChainClock, EscrowConfig, Lock, LockState, OutOfRange, Point,
)
from .global_ledger import GlobalLedger
from .lock_store import LockStore
from .slope_schedule import SlopeSchedule


class HistoricalQueryEngine:
    """
    Query facade over the lock store, both ledgers and the slope schedule.

    Holds references, not copies: results always reflect the latest
    committed state. Nothing here mutates any of the referenced objects.
    """

    def __init__(
        self,
        clock: ChainClock,
        locks: LockStore,
        global_ledger: GlobalLedger,
        account_ledger: AccountLedger,
        schedule: SlopeSchedule,
        config: EscrowConfig = DEFAULT_CONFIG,
    ):
        self.clock = clock
        self.locks = locks
        self.global_ledger = global_ledger
        self.account_ledger = account_ledger
        self.schedule = schedule
        self.config = config

    # ========================================================================
    # QUERIES BY TIMESTAMP
    # ========================================================================

    def balance_of(self, account: str, t: Optional[int] = None) -> Decimal:
        """
        Voting power of an account at time t (default: now).

        Uses the latest account Point recorded at or before t. Times after
        the last Point are projections along its segment.
        """
        if t is None:
            t = self.clock.timestamp()
        if self.account_ledger.epoch(account) == 0:
            return ZERO
        history = self.account_ledger.checkpoints(account)
        epoch = history.find_epoch_by_time(t)
        if epoch == 0:
            return ZERO
        return history.point(epoch).value_at(t)

    def total_supply(self, t: Optional[int] = None) -> Decimal:
        """
        Aggregate voting power at time t (default: now).

        Walks forward from the latest global Point at or before t, applying
        scheduled slope reductions, without recording anything.
        """
        if t is None:
            t = self.clock.timestamp()
        history = self.global_ledger.history
        epoch = history.find_epoch_by_time(t)
        if epoch == 0:
            return ZERO
        return self.global_ledger.supply_at(history.point(epoch), t, self.schedule)

    # ========================================================================
    # QUERIES BY BLOCK HEIGHT
    # ========================================================================

    def balance_of_at(self, account: str, block: int) -> Decimal:
        """
        Voting power of an account as of a past (or the current) block.

        Args:
            account: Account to query
            block: Block height, at most the current one

        Returns:
            Decayed balance at the timestamp interpolated for block

        Raises:
            OutOfRange: If block is beyond the current block height
        """
        self._check_block(block)
        if self.account_ledger.epoch(account) == 0:
            return ZERO
        user_epoch = self.account_ledger.checkpoints(account).find_epoch_by_block(block)
        if user_epoch == 0:
            return ZERO
        user_point = self.account_ledger.point(account, user_epoch)

        # The account's own Point already carries the real time of its block.
        if user_point.blk == block:
            return user_point.bias

        global_epoch = self.global_ledger.history.find_epoch_by_block(block)
        if global_epoch == 0:
            return ZERO
        block_time = self._block_time(global_epoch, block)
        return user_point.value_at(max(block_time, user_point.ts))

    def total_supply_at(self, block: int) -> Decimal:
        """
        Aggregate voting power as of a past (or the current) block.

        Raises:
            OutOfRange: If block is beyond the current block height
        """
        self._check_block(block)
        epoch = self.global_ledger.history.find_epoch_by_block(block)
        if epoch == 0:
            return ZERO
        point = self.global_ledger.point(epoch)
        return self.global_ledger.supply_at(point, self._block_time(epoch, block), self.schedule)

    def _check_block(self, block: int) -> None:
        current = self.clock.block_height()
        if block > current:
            raise OutOfRange(f"Block {block} is beyond the current block {current}")
        if block < 0:
            raise OutOfRange(f"Block height cannot be negative, got {block}")

    def _block_time(self, epoch: int, block: int) -> int:
        """Interpolate the timestamp of block from the global Point at epoch onward."""
        point0 = self.global_ledger.point(epoch)
        if epoch < self.global_ledger.epoch:
            point1 = self.global_ledger.point(epoch + 1)
            d_block = point1.blk - point0.blk
            d_t = point1.ts - point0.ts
        else:
            d_block = self.clock.block_height() - point0.blk
            d_t = self.clock.timestamp() - point0.ts
        if d_block == 0:
            return point0.ts
        return point0.ts + d_t * (block - point0.blk) // d_block

    # ========================================================================
    # LOCK AND CHECKPOINT ACCESSORS
    # ========================================================================

    def locked(self, account: str) -> Lock:
        return self.locks.get(account)

    def locked_end(self, account: str) -> int:
        return self.locks.get(account).end

    def lock_state(self, account: str) -> LockState:
        return self.locks.get(account).state(self.clock.timestamp())

    def user_point_epoch(self, account: str) -> int:
        return self.account_ledger.epoch(account)

    def user_point_history(self, account: str) -> Tuple[Point, ...]:
        return self.account_ledger.points(account)

    def last_user_slope(self, account: str) -> Decimal:
        """Slope of the account's most recent Point (zero if none)."""
        return self.account_ledger.last_point(account).slope

    def user_point_timestamp(self, account: str, epoch: int) -> int:
        """
        Timestamp of an account Point.

        Raises:
            IndexError: If epoch is outside 0..epoch(account)
        """
        return self.account_ledger.point(account, epoch).ts

    def __repr__(self) -> str:
        return f"HistoricalQueryEngine(global_epoch={self.global_ledger.epoch})"
