"""
checkpoints.py - Append-only decay checkpoint lists

One DecayCheckpointList holds the Point history of one curve owner: either the
reserved GLOBAL_OWNER (aggregate voting power) or an account. Points are
immutable and only ever appended, so any past segment can be read back by
epoch or located by block height / timestamp with a bounded binary search.

Epoch numbering:
    epoch 0         -> EMPTY_POINT (nothing recorded yet)
    epoch 1..epoch  -> recorded Points, oldest first
"""

from __future__ import annotations
from typing import Iterable, Iterator, List, Optional, Tuple

from .core import EMPTY_POINT, MAX_SEARCH_STEPS, Point


class DecayCheckpointList:
    """
    Growing, indexed sequence of Points for a single owner.

    Both timestamps and block heights are non-decreasing along the list;
    append() rejects points that would break this.
    """

    def __init__(self, owner: str, max_search_steps: int = MAX_SEARCH_STEPS):
        self.owner = owner
        self.max_search_steps = max_search_steps
        self._points: List[Point] = []

    @property
    def epoch(self) -> int:
        """Index of the most recent Point (0 when empty)."""
        return len(self._points)

    @property
    def last(self) -> Point:
        return self.point(self.epoch)

    def point(self, epoch: int) -> Point:
        """
        Return the Point recorded at an epoch.

        Raises:
            IndexError: If epoch is negative or beyond the current epoch
        """
        if epoch == 0:
            return EMPTY_POINT
        if epoch < 0 or epoch > len(self._points):
            raise IndexError(f"{self.owner}: epoch {epoch} out of range 0..{len(self._points)}")
        return self._points[epoch - 1]

    def append(self, point: Point) -> int:
        """
        Append a Point and return its epoch.

        Raises:
            ValueError: If the point is older (in time or blocks) than the last one
        """
        if self._points:
            last = self._points[-1]
            if point.ts < last.ts:
                raise ValueError(f"{self.owner}: point ts {point.ts} precedes last ts {last.ts}")
            if point.blk < last.blk:
                raise ValueError(f"{self.owner}: point block {point.blk} precedes last block {last.blk}")
        self._points.append(point)
        return len(self._points)

    def extend(self, points: Iterable[Point]) -> int:
        for point in points:
            self.append(point)
        return self.epoch

    # ========================================================================
    # BOUNDED SEARCH
    # ========================================================================

    def find_epoch_by_block(self, block: int, max_epoch: Optional[int] = None) -> int:
        """Latest epoch whose Point has blk <= block (0 if none)."""
        return self._search('blk', block, max_epoch)

    def find_epoch_by_time(self, ts, max_epoch: Optional[int] = None) -> int:
        """Latest epoch whose Point has ts <= ts (0 if none)."""
        return self._search('ts', ts, max_epoch)

    def _search(self, key: str, target, max_epoch: Optional[int]) -> int:
        # Ties resolve to the most recently appended Point.
        lo = 0
        hi = self.epoch if max_epoch is None else min(max_epoch, self.epoch)
        for _ in range(self.max_search_steps):
            if lo >= hi:
                break
            mid = (lo + hi + 1) // 2
            if getattr(self._points[mid - 1], key) <= target:
                lo = mid
            else:
                hi = mid - 1
        return lo

    # ========================================================================
    # ACCESSORS
    # ========================================================================

    def points(self) -> Tuple[Point, ...]:
        return tuple(self._points)

    def __len__(self) -> int:
        return len(self._points)

    def __iter__(self) -> Iterator[Point]:
        return iter(self._points)

    def __repr__(self) -> str:
        return f"DecayCheckpointList({self.owner}, epoch={self.epoch})"
