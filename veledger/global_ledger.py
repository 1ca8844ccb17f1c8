"""
global_ledger.py - Aggregate decay curve with bounded, resumable advancement

The global ledger approximates total voting power as a function of time. It is
advanced lazily: nothing happens while no one interacts with the escrow, and
the next interaction walks the curve forward one period boundary at a time,
removing the scheduled slope of every bucket it crosses.

Execution order of one advance():
1. Start from the last recorded Point (or an identity Point at genesis)
2. Step to the next period boundary (or to now, whichever comes first)
3. Decay bias over the elapsed time, then remove the boundary's slope bucket
4. Estimate the block height at the boundary and record a Point
5. Repeat until now is reached or the step budget is spent

advance() is pure and returns an AdvanceResult; commit() appends it. A result
that ran out of budget is still a valid, partially advanced state that the
next call continues from.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Optional, Tuple

from .checkpoints import DecayCheckpointList
from .core import (
    DEFAULT_CONFIG, GLOBAL_OWNER, ZERO,
    EscrowConfig, Point,
    align_down, non_negative, saturating_sub,
)
from .slope_schedule import CollateralSchedule, SlopeSchedule


@dataclass(frozen=True, slots=True)
class AdvanceResult:
    """
    Planned advancement of the global curve.

    Attributes:
        points: Points to append, oldest first
        caught_up: True if the last point sits at the requested time
        expired_collateral: Collateral whose bucket boundaries were crossed
    """
    points: Tuple[Point, ...]
    caught_up: bool
    expired_collateral: Decimal = ZERO

    @property
    def steps(self) -> int:
        return len(self.points)

    @property
    def last(self) -> Optional[Point]:
        return self.points[-1] if self.points else None

    def adjusted(self, bias_delta: Decimal, slope_delta: Decimal) -> AdvanceResult:
        """
        Return a copy whose final Point carries an account's change in bias and slope.

        Raises:
            ValueError: If the advancement did not reach the present
        """
        if not self.caught_up or not self.points:
            raise ValueError("Cannot adjust a partially advanced curve")
        last = self.points[-1]
        new_last = replace(
            last,
            bias=non_negative(last.bias + bias_delta),
            slope=non_negative(last.slope + slope_delta),
        )
        return replace(self, points=self.points[:-1] + (new_last,))

    def __repr__(self) -> str:
        state = "caught up" if self.caught_up else "behind"
        return f"AdvanceResult({self.steps} points, {state})"


class GlobalLedger:
    """
    The escrow-wide Point history.

    Not thread-safe: advancement must be single-writer. Reads of already
    recorded Points are safe at any time since Points never change.
    """

    def __init__(self, config: EscrowConfig = DEFAULT_CONFIG):
        self.config = config
        self.history = DecayCheckpointList(GLOBAL_OWNER, config.max_search_steps)

    @property
    def epoch(self) -> int:
        return self.history.epoch

    @property
    def last_point(self) -> Point:
        return self.history.last

    def point(self, epoch: int) -> Point:
        return self.history.point(epoch)

    def advance(
        self,
        schedule: SlopeSchedule,
        now: int,
        block: int,
        collateral: Optional[CollateralSchedule] = None,
        max_steps: Optional[int] = None,
    ) -> AdvanceResult:
        """
        Plan the walk of the global curve from its last Point to now.

        Args:
            schedule: Slope reductions per aligned boundary
            now: Current timestamp
            block: Current block height
            collateral: Optional expiring-collateral buckets to total while crossing
            max_steps: Step budget (defaults to config.max_advance_steps)

        Returns:
            AdvanceResult with the Points to append

        Raises:
            ValueError: If now or block precede the last recorded Point
        """
        period = self.config.period
        budget = self.config.max_advance_steps if max_steps is None else max_steps

        if self.history.epoch == 0:
            start = Point(bias=ZERO, slope=ZERO, ts=now, blk=block)
        else:
            start = self.history.last

        if now < start.ts:
            raise ValueError(f"Cannot move time backwards: {now} < {start.ts}")
        if block < start.blk:
            raise ValueError(f"Cannot move block height backwards: {block} < {start.blk}")

        bias, slope = start.bias, start.slope
        last_ts = start.ts
        t_i = align_down(start.ts, period)
        expired = ZERO
        points = []

        for _ in range(budget):
            t_i += period
            d_slope = ZERO
            if t_i > now:
                t_i = now
            else:
                d_slope = schedule.get(t_i)
                if collateral is not None:
                    expired += collateral.get(t_i)

            bias = saturating_sub(bias, slope * (t_i - last_ts))
            slope = saturating_sub(slope, d_slope)
            last_ts = t_i

            if t_i == now:
                points.append(Point(bias=bias, slope=slope, ts=now, blk=block))
                return AdvanceResult(tuple(points), True, expired)
            points.append(Point(
                bias=bias,
                slope=slope,
                ts=t_i,
                blk=_estimate_block(start, t_i, now, block),
            ))

        return AdvanceResult(tuple(points), False, expired)

    def commit(self, result: AdvanceResult) -> int:
        """Append a planned advancement. Returns the new epoch."""
        return self.history.extend(result.points)

    def supply_at(
        self,
        point: Point,
        t: int,
        schedule: SlopeSchedule,
        max_steps: Optional[int] = None,
    ) -> Decimal:
        """
        Read-only walk of the curve from point to t.

        Applies the same bounded stepping as advance() without recording
        anything. t must not precede point.ts.
        """
        if t < point.ts:
            raise ValueError(f"Cannot walk backwards from {point.ts} to {t}")
        period = self.config.period
        budget = self.config.max_advance_steps if max_steps is None else max_steps

        bias, slope = point.bias, point.slope
        last_ts = point.ts
        t_i = align_down(point.ts, period)
        for _ in range(budget):
            t_i += period
            d_slope = ZERO
            if t_i > t:
                t_i = t
            else:
                d_slope = schedule.get(t_i)
            bias = saturating_sub(bias, slope * (t_i - last_ts))
            if t_i == t:
                break
            slope = saturating_sub(slope, d_slope)
            last_ts = t_i
        return bias

    def __repr__(self) -> str:
        return f"GlobalLedger(epoch={self.epoch}, last={self.last_point})"


def _estimate_block(start: Point, ts: int, now: int, block: int) -> int:
    """
    Linear block estimate at ts between start and (now, block).

    Once any block has passed the estimate stays above start.blk, so a
    boundary Point never shares a block with a recorded operation.
    """
    if now <= start.ts or block <= start.blk:
        return start.blk
    estimate = start.blk + (ts - start.ts) * (block - start.blk) // (now - start.ts)
    return max(estimate, start.blk + 1)
