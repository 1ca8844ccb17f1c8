"""
Core types and pure functions for the vote-escrow ledger.

This module provides the foundational data structures and protocols:
1. Protocols: EscrowView for read-only access, plus the external collaborators
   (CollateralAsset, ChainClock, NotificationSink)
2. Immutable data structures: Lock, Point, EscrowConfig
3. Exceptions: EscrowError and operation-specific error types
4. Decay arithmetic: slope/bias computation and saturating helpers

All functions in this module are pure. Nothing here mutates escrow state.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_EVEN, ROUND_DOWN, getcontext
from enum import Enum
from typing import Any, Optional, Protocol, Tuple, runtime_checkable


# ============================================================================
# DECIMAL CONTEXT CONFIGURATION
# ============================================================================
#
# Decay arithmetic must be exactly reproducible. Slopes are quantised to a
# fixed number of places, so slope * seconds is exact under this precision.
#
# PRECONDITION: No other code should modify the global Decimal context.
#
_ESCROW_DECIMAL_CONTEXT = getcontext()
_ESCROW_DECIMAL_CONTEXT.prec = 50
_ESCROW_DECIMAL_CONTEXT.rounding = ROUND_HALF_EVEN


# ============================================================================
# CONSTANTS
# ============================================================================

DAY = 86400
WEEK = 7 * DAY
YEAR = 365 * DAY

# Longest commitment a lock can carry (4 years = 126144000 seconds).
MAX_LOCK_DURATION = 4 * YEAR

# Upper bound on period boundaries crossed by one advancement call.
MAX_ADVANCE_STEPS = 255

# Upper bound on binary search iterations (covers 2**128 checkpoints).
MAX_SEARCH_STEPS = 128

SLOPE_DECIMAL_PLACES = 18

ZERO = Decimal("0")

# Reserved owner key for the global checkpoint list.
GLOBAL_OWNER = "__global__"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class EscrowError(Exception):
    """Base exception for all escrow-related errors."""
    pass


class InvalidAmount(EscrowError):
    """Raised when a deposit amount is zero, negative or not finite."""
    pass


class InvalidUnlockTime(EscrowError):
    """Raised when an unlock time is in the past or beyond the maximum lock duration."""
    pass


class LockExists(EscrowError):
    """Raised when creating a lock for an account that still holds collateral."""
    pass


class NoLock(EscrowError):
    """Raised when an operation needs a lock and the account has none."""
    pass


class LockExpired(EscrowError):
    """Raised when an operation needs an active lock and the lock has expired."""
    pass


class LockNotExpired(EscrowError):
    """Raised when withdrawing before the lock end."""
    pass


class InvalidExtension(EscrowError):
    """Raised when a new unlock time is not strictly beyond the current lock end."""
    pass


class RelockUnderflow(EscrowError):
    """Raised when a relock would mint less voting power than the account already holds."""
    pass


class OutOfRange(EscrowError):
    """Raised when a historical query targets a block height beyond the current one."""
    pass


class CheckpointBacklog(EscrowError):
    """Raised when the global ledger cannot reach the present within one step budget."""
    pass


class TransferFailed(EscrowError):
    """Raised when the collateral asset refuses a transfer."""
    pass


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass(frozen=True, slots=True)
class EscrowConfig:
    """
    Immutable parameters of an escrow instance.

    Attributes:
        period: Bucket width for expiries, in seconds (default one week)
        max_lock_duration: Longest allowed commitment, in seconds
        max_advance_steps: Period boundaries the global ledger may cross per call
        max_search_steps: Iteration cap for binary searches over checkpoints
        slope_decimal_places: Fixed-point places kept for slopes
    """
    period: int = WEEK
    max_lock_duration: int = MAX_LOCK_DURATION
    max_advance_steps: int = MAX_ADVANCE_STEPS
    max_search_steps: int = MAX_SEARCH_STEPS
    slope_decimal_places: int = SLOPE_DECIMAL_PLACES

    def __post_init__(self):
        if self.period <= 0:
            raise ValueError(f"period must be positive, got {self.period}")
        if self.max_lock_duration < self.period:
            raise ValueError(
                f"max_lock_duration ({self.max_lock_duration}) must cover at least one period ({self.period})"
            )
        if self.max_advance_steps <= 0:
            raise ValueError(f"max_advance_steps must be positive, got {self.max_advance_steps}")
        if self.max_search_steps <= 0:
            raise ValueError(f"max_search_steps must be positive, got {self.max_search_steps}")
        if self.slope_decimal_places < 0:
            raise ValueError(f"slope_decimal_places must be non-negative, got {self.slope_decimal_places}")

    @property
    def slope_quantum(self) -> Decimal:
        return Decimal(1).scaleb(-self.slope_decimal_places)


DEFAULT_CONFIG = EscrowConfig()


# ============================================================================
# ENUMS
# ============================================================================

class LockState(Enum):
    """
    Derived condition of an account's lock at a given time.

    NONE: No collateral is locked.
    ACTIVE: Collateral is locked and the end is in the future.
    EXPIRED: Collateral is still held but the end has passed (withdrawable).
    """
    NONE = "none"
    ACTIVE = "active"
    EXPIRED = "expired"


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Lock:
    """
    Collateral committed by one account.

    Attributes:
        amount: Collateral held in escrow (zero when no lock exists)
        end: Aligned unlock timestamp in seconds (0 when no lock exists)
    """
    amount: Decimal = ZERO
    end: int = 0

    def __post_init__(self):
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, 'amount', Decimal(str(self.amount)))
        if self.amount < 0:
            raise ValueError(f"Lock amount cannot be negative, got {self.amount}")

    def state(self, now: int) -> LockState:
        if self.amount <= 0:
            return LockState.NONE
        if self.end > now:
            return LockState.ACTIVE
        return LockState.EXPIRED

    def __repr__(self) -> str:
        return f"Lock({self.amount} until {self.end})"


@dataclass(frozen=True, slots=True)
class Point:
    """
    One immutable segment start of a decay curve.

    The curve value at time t >= ts is max(0, bias - slope * (t - ts)).

    Attributes:
        bias: Voting power at ts
        slope: Voting power lost per second
        ts: Timestamp in seconds
        blk: Block height observed (or estimated) at ts
    """
    bias: Decimal = ZERO
    slope: Decimal = ZERO
    ts: int = 0
    blk: int = 0

    def value_at(self, t: int) -> Decimal:
        """Decayed value at t, clamped at zero."""
        return saturating_sub(self.bias, self.slope * (t - self.ts))

    def is_zero(self) -> bool:
        return self.bias == 0 and self.slope == 0


EMPTY_POINT = Point()


# ============================================================================
# DECAY ARITHMETIC
# ============================================================================

def non_negative(value: Decimal) -> Decimal:
    """Clamp a value at zero."""
    return value if value > 0 else ZERO


def saturating_sub(a: Decimal, b: Decimal) -> Decimal:
    """a - b, floored at zero instead of going negative."""
    return non_negative(a - b)


def align_down(ts: int, period: int = WEEK) -> int:
    """Round a timestamp down to a period boundary."""
    return (ts // period) * period


def compute_slope(amount: Decimal, config: EscrowConfig = DEFAULT_CONFIG) -> Decimal:
    """
    Decay rate of a lock: amount / max_lock_duration, truncated to the
    configured fixed-point precision.
    """
    if amount <= 0:
        return ZERO
    slope = amount / Decimal(config.max_lock_duration)
    return slope.quantize(config.slope_quantum, rounding=ROUND_DOWN)


def compute_bias(slope: Decimal, end: int, now: int) -> Decimal:
    """Voting power of a lock with the given slope at time now."""
    if end <= now:
        return ZERO
    return slope * (end - now)


def to_decimal(value: Any) -> Decimal:
    """Convert ints, strings and floats (via str) to Decimal."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class ChainClock(Protocol):
    """Source of the current wall-clock time and block height."""

    def timestamp(self) -> int:
        """Current time in seconds."""
        ...

    def block_height(self) -> int:
        """Current block height (monotonically non-decreasing)."""
        ...


@runtime_checkable
class CollateralAsset(Protocol):
    """
    Fungible asset locked in the escrow.

    Transfers return False (or raise) on failure. The escrow treats either as
    a reason to abort the whole operation.
    """

    def transfer_from(self, source: str, dest: str, amount: Decimal) -> bool:
        """Move amount from source to dest using an allowance granted to dest."""
        ...

    def transfer(self, source: str, dest: str, amount: Decimal) -> bool:
        """Move amount from source to dest."""
        ...

    def balance_of(self, holder: str) -> Decimal:
        ...


@runtime_checkable
class NotificationSink(Protocol):
    """Fire-and-forget receiver of escrow events."""

    def emit(self, event: Any) -> None:
        ...


@runtime_checkable
class EscrowView(Protocol):
    """
    Read-only interface to escrow state.

    Functions accepting an EscrowView declare that they never mutate the
    escrow. VotingEscrow implements this protocol.
    """

    @property
    def config(self) -> EscrowConfig:
        ...

    @property
    def current_time(self) -> int:
        ...

    @property
    def current_block(self) -> int:
        ...

    def get_lock(self, account: str) -> Lock:
        ...

    def get_checkpoints(self, account: str) -> Tuple[Point, ...]:
        """All recorded Points of an account, oldest first."""
        ...

    def balance_of(self, account: str, t: Optional[int] = None) -> Decimal:
        ...

    def total_supply(self, t: Optional[int] = None) -> Decimal:
        ...
