"""
notifications.py - Escrow event records and sinks

The escrow reports what it did through a NotificationSink. Events are plain
frozen records; the escrow never reads them back.

Events:
- Deposit: collateral entered (or a lock was extended or relocked)
- Withdraw: collateral left the escrow
- Supply: total collateral held changed (prev -> new)
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, List, Type, Union


class DepositType(Enum):
    """Which operation produced a Deposit event."""
    DEPOSIT_FOR = "deposit_for"
    CREATE_LOCK = "create_lock"
    INCREASE_LOCK_AMOUNT = "increase_lock_amount"
    INCREASE_UNLOCK_TIME = "increase_unlock_time"
    RELOCK = "relock"


@dataclass(frozen=True, slots=True)
class Deposit:
    provider: str
    account: str
    value: Decimal
    locktime: int
    deposit_type: DepositType
    ts: int
    blk: int


@dataclass(frozen=True, slots=True)
class Withdraw:
    provider: str
    value: Decimal
    ts: int
    blk: int


@dataclass(frozen=True, slots=True)
class Supply:
    prev_supply: Decimal
    supply: Decimal


Event = Union[Deposit, Withdraw, Supply]


class RecordingSink:
    """Keeps every emitted event in order. Useful for tests and demos."""

    def __init__(self):
        self.events: List[Any] = []

    def emit(self, event: Any) -> None:
        self.events.append(event)

    def of_type(self, event_type: Type) -> List[Any]:
        return [e for e in self.events if isinstance(e, event_type)]

    def clear(self) -> None:
        self.events.clear()

    def __len__(self) -> int:
        return len(self.events)

    def __repr__(self) -> str:
        return f"RecordingSink({len(self.events)} events)"


class NullSink:
    """Discards every event."""

    def emit(self, event: Any) -> None:
        pass
