"""
veledger - Vote-escrow checkpoint ledger

Lock collateral for a bounded duration and receive voting power that decays
linearly to zero at the unlock time. Balances and total supply can be
reconstructed for any past timestamp or block height.

Usage:
    from veledger import VotingEscrow, Token, ManualClock, WEEK

    token = Token("GOV")
    clock = ManualClock(timestamp=0, block_height=1)
    escrow = VotingEscrow(token, clock)

    token.mint("alice", 1000)
    token.approve("alice", escrow.address, 1000)
    escrow.create_lock("alice", 1000, 2 * WEEK)

    clock.advance(WEEK, blocks=100)
    escrow.balance_of("alice")          # half of the initial power
    escrow.balance_of_at("alice", 1)    # power at the creation block

    clock.advance(WEEK, blocks=100)
    escrow.withdraw("alice")            # returns the 1000
"""

# Core types
from .core import (
    EscrowView,
    ChainClock,
    CollateralAsset,
    NotificationSink,
    EscrowConfig,
    DEFAULT_CONFIG,
    Lock,
    LockState,
    Point,
    EMPTY_POINT,
    EscrowError,
    InvalidAmount,
    InvalidUnlockTime,
    LockExists,
    NoLock,
    LockExpired,
    LockNotExpired,
    InvalidExtension,
    RelockUnderflow,
    OutOfRange,
    CheckpointBacklog,
    TransferFailed,
    DAY,
    WEEK,
    YEAR,
    MAX_LOCK_DURATION,
    MAX_ADVANCE_STEPS,
    MAX_SEARCH_STEPS,
    GLOBAL_OWNER,
    align_down,
    compute_slope,
    compute_bias,
)

# Ledger components
from .lock_store import LockStore
from .slope_schedule import SlopeSchedule, CollateralSchedule
from .checkpoints import DecayCheckpointList
from .global_ledger import GlobalLedger, AdvanceResult
from .account_ledger import AccountLedger
from .history import HistoricalQueryEngine

# Coordinator
from .escrow import VotingEscrow, CheckpointPlan

# Collaborators
from .collateral import Token
from .clock import ManualClock
from .notifications import (
    Deposit,
    Withdraw,
    Supply,
    DepositType,
    RecordingSink,
    NullSink,
)

# Analytics
from .analytics import (
    decay_curve,
    sample_balances,
    sample_supply,
    voting_shares,
    average_power,
)


__all__ = [
    # Core
    'EscrowView', 'ChainClock', 'CollateralAsset', 'NotificationSink',
    'EscrowConfig', 'DEFAULT_CONFIG', 'Lock', 'LockState', 'Point', 'EMPTY_POINT',
    'DAY', 'WEEK', 'YEAR', 'MAX_LOCK_DURATION', 'MAX_ADVANCE_STEPS',
    'MAX_SEARCH_STEPS', 'GLOBAL_OWNER',
    'align_down', 'compute_slope', 'compute_bias',
    # Exceptions
    'EscrowError', 'InvalidAmount', 'InvalidUnlockTime', 'LockExists', 'NoLock',
    'LockExpired', 'LockNotExpired', 'InvalidExtension', 'RelockUnderflow',
    'OutOfRange', 'CheckpointBacklog', 'TransferFailed',
    # Components
    'LockStore', 'SlopeSchedule', 'CollateralSchedule', 'DecayCheckpointList',
    'GlobalLedger', 'AdvanceResult', 'AccountLedger', 'HistoricalQueryEngine',
    # Coordinator
    'VotingEscrow', 'CheckpointPlan',
    # Collaborators
    'Token', 'ManualClock',
    'Deposit', 'Withdraw', 'Supply', 'DepositType', 'RecordingSink', 'NullSink',
    # Analytics
    'decay_curve', 'sample_balances', 'sample_supply', 'voting_shares', 'average_power',
]

__version__ = '1.0.0'
