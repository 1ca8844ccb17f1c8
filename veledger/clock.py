"""
clock.py - Externally driven time and block height

ManualClock is the ChainClock used by tests, demos and any host that feeds
the escrow its own notion of time. Time and block height only move forward.
"""

from __future__ import annotations
from datetime import datetime, timezone
from typing import Optional


class ManualClock:
    """
    Clock advanced explicitly by the caller.

    If seconds_per_block is set, advancing time without an explicit block
    count derives the block height from elapsed seconds (floor).
    """

    def __init__(self, timestamp: int = 0, block_height: int = 0,
                 seconds_per_block: Optional[int] = None):
        if seconds_per_block is not None and seconds_per_block <= 0:
            raise ValueError(f"seconds_per_block must be positive, got {seconds_per_block}")
        self._timestamp = timestamp
        self._block_height = block_height
        self.seconds_per_block = seconds_per_block

    @classmethod
    def at(cls, when: datetime, block_height: int = 0,
           seconds_per_block: Optional[int] = None) -> ManualClock:
        """Start the clock at a datetime (naive datetimes are taken as UTC)."""
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        return cls(int(when.timestamp()), block_height, seconds_per_block)

    def timestamp(self) -> int:
        return self._timestamp

    def block_height(self) -> int:
        return self._block_height

    def advance(self, seconds: int = 0, blocks: Optional[int] = None) -> None:
        """
        Move time forward by seconds and the block height by blocks.

        When blocks is None it defaults to seconds // seconds_per_block, or 1
        if no block rate is configured.

        Raises:
            ValueError: If seconds or blocks is negative
        """
        if blocks is None:
            blocks = seconds // self.seconds_per_block if self.seconds_per_block else 1
        if seconds < 0 or blocks < 0:
            raise ValueError(f"Cannot move clock backwards: seconds={seconds}, blocks={blocks}")
        self._timestamp += seconds
        self._block_height += blocks

    def set(self, timestamp: int, block_height: int) -> None:
        """
        Jump to an absolute time and block height.

        Raises:
            ValueError: If either would move backwards
        """
        if timestamp < self._timestamp:
            raise ValueError(f"Cannot move time backwards: {timestamp} < {self._timestamp}")
        if block_height < self._block_height:
            raise ValueError(
                f"Cannot move block height backwards: {block_height} < {self._block_height}"
            )
        self._timestamp = timestamp
        self._block_height = block_height

    def __repr__(self) -> str:
        return f"ManualClock(ts={self._timestamp}, block={self._block_height})"
