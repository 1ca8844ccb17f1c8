"""
escrow.py - VotingEscrow: the lock operation coordinator

VotingEscrow is the only entry point that mutates escrow state. Every
operation follows the same five phases:

1. Validate: check the request against the current lock and clock
2. Plan: compute, without writing anything, the global advancement, the new
   account Point and the schedule deltas (a frozen CheckpointPlan)
3. Transfer: move collateral through the external CollateralAsset
4. Commit: append Points, apply schedule deltas, store the lock
5. Notify: emit Deposit / Withdraw / Supply events

A rejection in phases 1-3 leaves locks, account Points, schedules and
collateral untouched. If the global ledger is too far behind to reach the
present within one step budget, the bounded catch-up is kept (as checkpoint()
would keep it) and the operation fails with CheckpointBacklog before any
collateral moves; retry, or call checkpoint() until it reports caught_up.

Read-only queries are delegated to a HistoricalQueryEngine.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Tuple

from .account_ledger import AccountLedger
from .core import (
    DEFAULT_CONFIG, ZERO,
    ChainClock, CollateralAsset, EscrowConfig, Lock, LockState,
    NotificationSink, Point,
    CheckpointBacklog, EscrowError, InvalidAmount, InvalidExtension,
    InvalidUnlockTime, LockExists, LockExpired, LockNotExpired, NoLock,
    RelockUnderflow, TransferFailed,
    align_down, to_decimal,
)
from .global_ledger import AdvanceResult, GlobalLedger
from .history import HistoricalQueryEngine
from .lock_store import LockStore
from .notifications import Deposit, DepositType, NullSink, Supply, Withdraw
from .slope_schedule import CollateralSchedule, SlopeSchedule


@dataclass(frozen=True, slots=True)
class CheckpointPlan:
    """
    Everything one lock mutation will write, computed up front.

    Attributes:
        account: Account whose lock changes
        old_lock: Lock before the operation
        new_lock: Lock after the operation
        account_point: Point to append for the account (None to append nothing)
        advance: Global advancement, already adjusted by the account's change
        slope_deltas: Signed SlopeSchedule bucket changes
        collateral_deltas: Signed CollateralSchedule bucket changes
    """
    account: str
    old_lock: Lock
    new_lock: Lock
    account_point: Optional[Point]
    advance: AdvanceResult
    slope_deltas: Dict[int, Decimal] = field(default_factory=dict)
    collateral_deltas: Dict[int, Decimal] = field(default_factory=dict)


class VotingEscrow:
    """
    Vote-escrow ledger over a collateral asset.

    Implements the EscrowView protocol for read access. Not thread-safe:
    use one instance per thread or serialise all calls.

    Example:
        token = Token("GOV")
        clock = ManualClock(timestamp=0, block_height=1)
        escrow = VotingEscrow(token, clock, verbose=False)

        token.mint("alice", 1000)
        token.approve("alice", escrow.address, 1000)
        escrow.create_lock("alice", 1000, WEEK)
        escrow.balance_of("alice")       # ~4.79
    """

    def __init__(
        self,
        collateral: CollateralAsset,
        clock: ChainClock,
        config: EscrowConfig = DEFAULT_CONFIG,
        address: str = "escrow",
        sink: Optional[NotificationSink] = None,
        verbose: bool = True,
    ):
        """
        Create an empty escrow.

        Args:
            collateral: Asset that is locked (pulled with transfer_from, returned with transfer)
            clock: Source of the current timestamp and block height
            config: Escrow parameters (period, maximum lock duration, step budgets)
            address: Holder name of the escrow on the collateral asset
            sink: Receiver of Deposit / Withdraw / Supply events
            verbose: Print one line per applied or rejected operation (default: True)
        """
        self.collateral = collateral
        self.clock = clock
        self._config = config
        self.address = address
        self.sink = sink if sink is not None else NullSink()
        self.verbose = verbose

        self.locks = LockStore()
        self.slope_schedule = SlopeSchedule(config.period)
        self.collateral_schedule = CollateralSchedule(config.period)
        self.global_ledger = GlobalLedger(config)
        self.account_ledger = AccountLedger(config)
        self.history = HistoricalQueryEngine(
            clock, self.locks, self.global_ledger, self.account_ledger,
            self.slope_schedule, config,
        )
        self._active_supply: Decimal = ZERO

    # ========================================================================
    # READ-ONLY INTERFACE (EscrowView protocol)
    # ========================================================================

    @property
    def config(self) -> EscrowConfig:
        return self._config

    @property
    def current_time(self) -> int:
        return self.clock.timestamp()

    @property
    def current_block(self) -> int:
        return self.clock.block_height()

    def get_lock(self, account: str) -> Lock:
        return self.locks.get(account)

    def get_checkpoints(self, account: str) -> Tuple[Point, ...]:
        return self.account_ledger.points(account)

    def balance_of(self, account: str, t: Optional[int] = None) -> Decimal:
        return self.history.balance_of(account, t)

    def total_supply(self, t: Optional[int] = None) -> Decimal:
        return self.history.total_supply(t)

    def balance_of_at(self, account: str, block: int) -> Decimal:
        return self.history.balance_of_at(account, block)

    def total_supply_at(self, block: int) -> Decimal:
        return self.history.total_supply_at(block)

    def lock_state(self, account: str) -> LockState:
        return self.history.lock_state(account)

    @property
    def epoch(self) -> int:
        """Epoch of the global ledger."""
        return self.global_ledger.epoch

    def point_history(self, epoch: int) -> Point:
        return self.global_ledger.point(epoch)

    @property
    def total_locked(self) -> Decimal:
        """Collateral held for all accounts, expired locks included."""
        return self.locks.total_locked

    @property
    def active_supply(self) -> Decimal:
        """Collateral under locks that had not expired as of the last global Point."""
        return self._active_supply

    # ========================================================================
    # LOCK OPERATIONS (Mutating)
    # ========================================================================

    def create_lock(self, account: str, amount, unlock_time: int) -> Lock:
        """
        Lock collateral for account until unlock_time (rounded down to the period).

        Raises:
            InvalidAmount: If amount is not a positive finite number
            LockExists: If the account still holds collateral
            InvalidUnlockTime: If the aligned unlock time is not in (now, now + max]
            CheckpointBacklog: If the global ledger cannot reach now in one call
            TransferFailed: If the collateral could not be pulled
        """
        op = "create_lock"
        now, block = self._now()
        amount = self._check_amount(op, amount)
        old = self.locks.get(account)
        if old.amount > 0:
            raise self._reject(op, LockExists(f"{account} already holds a lock: {old}"))
        end = self._check_unlock_time(op, unlock_time, now)

        new = Lock(amount, end)
        plan = self._plan(op, account, new, now, block)
        self._pull(op, account, amount)
        self._commit(plan)
        self._notify_deposit(account, account, amount, new, DepositType.CREATE_LOCK, now, block)
        self._log(op, f"{account} locked {amount} until {end}")
        return new

    def increase_amount(self, account: str, amount) -> Lock:
        """Add collateral from account to its own active lock, keeping the end."""
        return self._deposit("increase_amount", account, account, amount,
                             DepositType.INCREASE_LOCK_AMOUNT)

    def deposit_for(self, funder: str, account: str, amount) -> Lock:
        """
        Add collateral from funder to another account's active lock.

        The funder needs an allowance to the escrow address; the voting power
        accrues to account.
        """
        return self._deposit("deposit_for", funder, account, amount, DepositType.DEPOSIT_FOR)

    def _deposit(self, op: str, funder: str, account: str, amount,
                 deposit_type: DepositType) -> Lock:
        now, block = self._now()
        amount = self._check_amount(op, amount)
        old = self._require_active(op, account, now)

        new = Lock(old.amount + amount, old.end)
        plan = self._plan(op, account, new, now, block)
        self._pull(op, funder, amount)
        self._commit(plan)
        self._notify_deposit(funder, account, amount, new, deposit_type, now, block)
        self._log(op, f"{funder} added {amount} to {account} (now {new.amount} until {new.end})")
        return new

    def increase_unlock_time(self, account: str, unlock_time: int) -> Lock:
        """
        Push the end of an active lock further out.

        Raises:
            NoLock / LockExpired: If the account has no active lock
            InvalidExtension: If the aligned time does not exceed the current end
            InvalidUnlockTime: If the aligned time exceeds now + max lock duration
        """
        op = "increase_unlock_time"
        now, block = self._now()
        old = self._require_active(op, account, now)
        end = align_down(unlock_time, self._config.period)
        if end <= old.end:
            raise self._reject(op, InvalidExtension(
                f"New unlock time {end} must be after current end {old.end}"
            ))
        end = self._check_unlock_time(op, end, now)

        new = Lock(old.amount, end)
        plan = self._plan(op, account, new, now, block)
        self._commit(plan)
        self._notify_deposit(account, account, ZERO, new, DepositType.INCREASE_UNLOCK_TIME, now, block)
        self._log(op, f"{account} extended to {end}")
        return new

    def relock(self, account: str, unlock_time: int) -> Lock:
        """
        Start a fresh commitment for collateral already held, expired or not.

        Slope and bias are recomputed for the new duration. The new voting
        power must not be below the account's current balance: shortening an
        active lock is rejected rather than clamped.

        Raises:
            NoLock: If the account holds no collateral
            InvalidUnlockTime: If the aligned time is not in (now, now + max]
            RelockUnderflow: If the new voting power is below the current balance
        """
        op = "relock"
        now, block = self._now()
        old = self.locks.get(account)
        if old.amount <= 0:
            raise self._reject(op, NoLock(f"{account} has no collateral to relock"))
        end = self._check_unlock_time(op, unlock_time, now)

        new = Lock(old.amount, end)
        new_bias = self.account_ledger.point_for(new, now, block).bias
        current = self.account_ledger.last_point(account).value_at(now)
        if new_bias < current:
            raise self._reject(op, RelockUnderflow(
                f"Relock of {account} to {end} gives {new_bias}, below current balance {current}"
            ))

        plan = self._plan(op, account, new, now, block)
        self._commit(plan)
        self._notify_deposit(account, account, ZERO, new, DepositType.RELOCK, now, block)
        self._log(op, f"{account} relocked {new.amount} until {end}")
        return new

    def withdraw(self, account: str) -> Decimal:
        """
        Return all collateral of an expired lock to its owner.

        Returns:
            The amount returned

        Raises:
            NoLock: If the account holds no collateral
            LockNotExpired: If the lock end is still in the future
        """
        op = "withdraw"
        now, block = self._now()
        old = self.locks.get(account)
        if old.amount <= 0:
            raise self._reject(op, NoLock(f"{account} has nothing to withdraw"))
        if now < old.end:
            raise self._reject(op, LockNotExpired(
                f"{account} lock ends at {old.end}, now is {now}"
            ))

        plan = self._plan(op, account, Lock(), now, block)
        self._push(op, account, old.amount)
        prev_supply = self.locks.total_locked
        self._commit(plan)
        self.sink.emit(Withdraw(provider=account, value=old.amount, ts=now, blk=block))
        self.sink.emit(Supply(prev_supply=prev_supply, supply=self.locks.total_locked))
        self._log(op, f"{account} withdrew {old.amount}")
        return old.amount

    def checkpoint(self) -> AdvanceResult:
        """
        Advance the global ledger toward now by at most one step budget.

        Safe to call repeatedly: balances and supply are unchanged, only
        global Points are appended. Returns the committed AdvanceResult;
        keep calling while caught_up is False.
        """
        now, block = self._now()
        result = self.global_ledger.advance(
            self.slope_schedule, now, block, self.collateral_schedule
        )
        self._commit_advance(result)
        self._log("checkpoint", f"{result.steps} points, "
                  f"{'caught up' if result.caught_up else 'behind'} at epoch {self.epoch}")
        return result

    # ========================================================================
    # PLAN / COMMIT
    # ========================================================================

    def _plan(self, op: str, account: str, new_lock: Lock, now: int, block: int) -> CheckpointPlan:
        """
        Compute every write of a lock mutation.

        Pure, except when the global ledger is too far behind: the bounded
        catch-up is then committed, as checkpoint() would, before the
        operation is rejected.
        """
        advance = self.global_ledger.advance(
            self.slope_schedule, now, block, self.collateral_schedule
        )
        if not advance.caught_up:
            self._commit_advance(advance)
            raise self._reject(op, CheckpointBacklog(
                f"Global ledger advanced to {self.global_ledger.last_point.ts} but is still "
                f"behind {now}; retry or call checkpoint()"
            ))

        old_lock = self.locks.get(account)
        old_point = self.account_ledger.last_point(account)
        old_balance = old_point.value_at(now)
        old_slope = old_point.slope if old_lock.end > now else ZERO

        new_point = self.account_ledger.point_for(new_lock, now, block)
        advance = advance.adjusted(new_point.bias - old_balance, new_point.slope - old_slope)

        account_point: Optional[Point] = new_point
        if new_point.is_zero() and old_point.is_zero():
            account_point = None

        return CheckpointPlan(
            account=account,
            old_lock=old_lock,
            new_lock=new_lock,
            account_point=account_point,
            advance=advance,
            slope_deltas=self.slope_schedule.schedule_change(
                old_slope, old_lock.end, new_point.slope, new_lock.end, now
            ),
            collateral_deltas=self.collateral_schedule.schedule_change(
                old_lock.amount, old_lock.end, new_lock.amount, new_lock.end, now
            ),
        )

    def _commit(self, plan: CheckpointPlan) -> None:
        now = plan.advance.last.ts
        self._commit_advance(plan.advance)
        self.slope_schedule.apply(plan.slope_deltas)
        self.collateral_schedule.apply(plan.collateral_deltas)
        self.locks.put(plan.account, plan.new_lock)
        if plan.account_point is not None:
            self.account_ledger.record(plan.account, plan.account_point)
        self._active_supply += _active_amount(plan.new_lock, now) - _active_amount(plan.old_lock, now)

    def _commit_advance(self, result: AdvanceResult) -> None:
        self.global_ledger.commit(result)
        self._active_supply -= result.expired_collateral

    # ========================================================================
    # VALIDATION AND TRANSFER HELPERS
    # ========================================================================

    def _now(self) -> Tuple[int, int]:
        return self.clock.timestamp(), self.clock.block_height()

    def _check_amount(self, op: str, amount) -> Decimal:
        try:
            value = to_decimal(amount)
        except (InvalidOperation, ValueError, TypeError):
            raise self._reject(op, InvalidAmount(f"Not a number: {amount!r}"))
        if not value.is_finite() or value <= 0:
            raise self._reject(op, InvalidAmount(f"Amount must be positive, got {amount}"))
        return value

    def _check_unlock_time(self, op: str, unlock_time: int, now: int) -> int:
        end = align_down(unlock_time, self._config.period)
        if end <= now:
            raise self._reject(op, InvalidUnlockTime(
                f"Unlock time {end} (aligned from {unlock_time}) must be in the future (now {now})"
            ))
        if end > now + self._config.max_lock_duration:
            raise self._reject(op, InvalidUnlockTime(
                f"Unlock time {end} exceeds maximum lock duration from {now}"
            ))
        return end

    def _require_active(self, op: str, account: str, now: int) -> Lock:
        lock = self.locks.get(account)
        if lock.amount <= 0:
            raise self._reject(op, NoLock(f"{account} has no lock"))
        if lock.end <= now:
            raise self._reject(op, LockExpired(f"{account} lock expired at {lock.end}"))
        return lock

    def _pull(self, op: str, source: str, amount: Decimal) -> None:
        try:
            ok = self.collateral.transfer_from(source, self.address, amount)
        except EscrowError:
            raise
        except Exception as exc:
            raise self._reject(op, TransferFailed(f"transfer_from {source} raised: {exc}")) from exc
        if not ok:
            raise self._reject(op, TransferFailed(f"transfer_from {source} of {amount} refused"))

    def _push(self, op: str, dest: str, amount: Decimal) -> None:
        try:
            ok = self.collateral.transfer(self.address, dest, amount)
        except EscrowError:
            raise
        except Exception as exc:
            raise self._reject(op, TransferFailed(f"transfer to {dest} raised: {exc}")) from exc
        if not ok:
            raise self._reject(op, TransferFailed(f"transfer of {amount} to {dest} refused"))

    # ========================================================================
    # NOTIFICATIONS AND DIAGNOSTICS
    # ========================================================================

    def _notify_deposit(self, provider: str, account: str, value: Decimal, lock: Lock,
                        deposit_type: DepositType, now: int, block: int) -> None:
        prev_supply = self.locks.total_locked - value
        self.sink.emit(Deposit(
            provider=provider,
            account=account,
            value=value,
            locktime=lock.end,
            deposit_type=deposit_type,
            ts=now,
            blk=block,
        ))
        self.sink.emit(Supply(prev_supply=prev_supply, supply=self.locks.total_locked))

    def _reject(self, op: str, error: EscrowError) -> EscrowError:
        if self.verbose:
            print(f"✗ REJECTED {op}: {error}")
        return error

    def _log(self, op: str, message: str) -> None:
        if self.verbose:
            print(f"✓ {op.upper()}: {message}")

    def verify_conservation(self) -> Dict[str, Any]:
        """
        Check that recorded voting power and collateral agree with the locks.

        Checks:
        - total_locked equals the sum of all lock amounts
        - the escrow's collateral balance covers total_locked
        - total_supply() equals the sum of every account's balance_of()
        - active_supply equals the collateral of locks ending after the last global Point

        Returns:
            Dict with keys:
            - 'valid': bool - True if every check passes
            - 'total_locked', 'collateral_held', 'supply', 'sum_of_balances': Decimal
            - 'discrepancies': List[Dict] with check, expected, actual, difference

        Example:
            result = escrow.verify_conservation()
            assert result['valid'], f"Conservation violated: {result['discrepancies']}"
        """
        discrepancies: List[Dict[str, Any]] = []

        def check(name: str, expected: Decimal, actual: Decimal) -> None:
            if expected != actual:
                discrepancies.append({
                    'check': name,
                    'expected': expected,
                    'actual': actual,
                    'difference': actual - expected,
                })

        accounts = self.locks.accounts()
        lock_sum = sum((self.locks.get(a).amount for a in accounts), ZERO)
        check('total_locked', lock_sum, self.locks.total_locked)

        held = self.collateral.balance_of(self.address)
        if held < self.locks.total_locked:
            discrepancies.append({
                'check': 'collateral_held',
                'expected': self.locks.total_locked,
                'actual': held,
                'difference': held - self.locks.total_locked,
            })

        supply = self.total_supply()
        sum_of_balances = sum(
            (self.balance_of(a) for a in self.account_ledger.accounts()), ZERO
        )
        check('supply', sum_of_balances, supply)

        horizon = self.global_ledger.last_point.ts
        expected_active = sum(
            (_active_amount(self.locks.get(a), horizon) for a in accounts), ZERO
        )
        check('active_supply', expected_active, self._active_supply)

        return {
            'valid': len(discrepancies) == 0,
            'total_locked': self.locks.total_locked,
            'collateral_held': held,
            'supply': supply,
            'sum_of_balances': sum_of_balances,
            'discrepancies': discrepancies,
        }

    def __repr__(self) -> str:
        return (f"VotingEscrow(locks={len(self.locks)}, locked={self.locks.total_locked}, "
                f"epoch={self.epoch})")


def _active_amount(lock: Lock, ts: int) -> Decimal:
    return lock.amount if lock.end > ts else ZERO
