"""
slope_schedule.py - Time-bucketed expiry schedules

Locks that expire in the same period share one bucket keyed by the period's
aligned start. When the global ledger advances across a bucket boundary it
reads the bucket once and removes its total from the running curve, so
expiries never require a scan of individual locks.

Core concepts:
1. SlopeSchedule: decay-rate reductions (sum of slopes ending at a boundary)
2. CollateralSchedule: locked amounts ending at a boundary, used to keep the
   active collateral supply current in O(1) per boundary
3. Buckets are never deleted; they take effect once per crossing
"""

from __future__ import annotations
from decimal import Decimal
from typing import Dict, Iterator, Mapping, Tuple

from .core import WEEK, ZERO, non_negative


class _PeriodBuckets:
    """Aligned timestamp -> non-negative Decimal total."""

    def __init__(self, period: int = WEEK):
        if period <= 0:
            raise ValueError(f"period must be positive, got {period}")
        self.period = period
        self._buckets: Dict[int, Decimal] = {}

    def _check_aligned(self, ts: int) -> None:
        if ts % self.period != 0:
            raise ValueError(f"Timestamp {ts} is not aligned to period {self.period}")

    def get(self, ts: int) -> Decimal:
        """Total scheduled at ts (zero when nothing is scheduled)."""
        return self._buckets.get(ts, ZERO)

    def add(self, ts: int, value: Decimal) -> None:
        self._check_aligned(ts)
        self._buckets[ts] = self.get(ts) + value

    def subtract(self, ts: int, value: Decimal) -> None:
        """Remove value from a bucket, saturating at zero."""
        self._check_aligned(ts)
        self._buckets[ts] = non_negative(self.get(ts) - value)

    def apply(self, deltas: Mapping[int, Decimal]) -> None:
        """Apply signed per-bucket deltas (as produced by a checkpoint plan)."""
        for ts in sorted(deltas):
            delta = deltas[ts]
            if delta >= 0:
                self.add(ts, delta)
            else:
                self.subtract(ts, -delta)

    def items(self) -> Iterator[Tuple[int, Decimal]]:
        """Non-empty buckets in time order."""
        for ts in sorted(self._buckets):
            if self._buckets[ts] != 0:
                yield ts, self._buckets[ts]

    def __len__(self) -> int:
        return sum(1 for _ in self.items())

    def __repr__(self) -> str:
        return f"{type(self).__name__}({len(self)} buckets, period={self.period})"


class SlopeSchedule(_PeriodBuckets):
    """
    Aggregate slope reductions keyed by aligned expiry time.

    A lock contributes its slope to the bucket of its end. Modifying the lock
    moves the contribution; when old and new end share a bucket only the net
    difference remains.
    """

    def schedule_change(
        self,
        old_slope: Decimal,
        old_end: int,
        new_slope: Decimal,
        new_end: int,
        now: int,
    ) -> Dict[int, Decimal]:
        """
        Compute the bucket deltas for replacing one lock contribution by another.

        Only ends strictly in the future are touched. Pure: nothing is written.

        Returns:
            Dict mapping aligned timestamp -> signed delta
        """
        return _replacement_deltas(old_slope, old_end, new_slope, new_end, now)


class CollateralSchedule(_PeriodBuckets):
    """
    Locked collateral keyed by aligned expiry time.

    Mirrors SlopeSchedule for amounts instead of slopes. Reading the bucket at
    each crossed boundary keeps the active (unexpired) collateral total exact
    without revisiting locks.
    """

    def schedule_change(
        self,
        old_amount: Decimal,
        old_end: int,
        new_amount: Decimal,
        new_end: int,
        now: int,
    ) -> Dict[int, Decimal]:
        """Bucket deltas for replacing one lock's amount by another (pure)."""
        return _replacement_deltas(old_amount, old_end, new_amount, new_end, now)


def _replacement_deltas(
    old_value: Decimal,
    old_end: int,
    new_value: Decimal,
    new_end: int,
    now: int,
) -> Dict[int, Decimal]:
    deltas: Dict[int, Decimal] = {}
    if old_end > now and old_value > 0:
        deltas[old_end] = deltas.get(old_end, ZERO) - old_value
    if new_end > now and new_value > 0:
        deltas[new_end] = deltas.get(new_end, ZERO) + new_value
    return {ts: d for ts, d in deltas.items() if d != 0}
