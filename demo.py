#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Learn the Vote Escrow Step by Step

A pedagogical walkthrough of the vote-escrow ledger. Each step builds on the
previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:  Locking       - The empty escrow, the first lock, linear decay
  4-5:  Changing      - Top-ups, extensions, rejections
  6-7:  History       - Queries by timestamp and by block height
  8-9:  Expiry        - Withdraw, relock, idle periods and checkpoint()
  10:   Analytics     - Sampled curves and voting shares

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
import sys

import numpy as np

from veledger import (
    VotingEscrow, Token, ManualClock, RecordingSink,
    EscrowError, CheckpointBacklog, LockState, WEEK,
    MAX_LOCK_DURATION, align_down,
    sample_balances, sample_supply, voting_shares, average_power,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    start_time: datetime = datetime(2025, 1, 2, 0, 0, 0)
    start_block: int = 1_000
    seconds_per_block: int = 12

    alice_funds: Decimal = Decimal("10000")
    bob_funds: Decimal = Decimal("10000")
    alice_lock: Decimal = Decimal("1000")
    bob_lock: Decimal = Decimal("4000")


CONFIG = DemoConfig()

QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    """Print a step header with learning objective."""
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    """Print a section header within a step."""
    print(f"\n--- {text} ---\n")


def weeks(n) -> int:
    return int(n * WEEK)


# ============================================================================
# PHASE 1: LOCKING (Steps 1-3)
# ============================================================================

def step_01_empty_escrow():
    step_header(1, "The Empty Escrow",
        "An escrow starts with no locks, no supply and a single clock.")

    print("""
    The escrow holds three things:

    1. LOCKS       - How much each account locked, and until when
    2. CHECKPOINTS - Points (bias, slope, ts, blk) describing decaying power
    3. A CLOCK     - Timestamp and block height, moving only forward
    """)

    clock = ManualClock.at(CONFIG.start_time, CONFIG.start_block, CONFIG.seconds_per_block)
    token = Token("GOV")
    sink = RecordingSink()
    escrow = VotingEscrow(token, clock, sink=sink, verbose=True)

    token.mint("alice", CONFIG.alice_funds)
    token.mint("bob", CONFIG.bob_funds)
    token.approve("alice", escrow.address, CONFIG.alice_funds)
    token.approve("bob", escrow.address, CONFIG.bob_funds)

    section_header("Initial State")
    print(f"Current time:   {clock.timestamp()}")
    print(f"Current block:  {clock.block_height()}")
    print(f"Total locked:   {escrow.total_locked}")
    print(f"Total supply:   {escrow.total_supply()}")
    print(f"Global epoch:   {escrow.epoch}")
    return escrow


def step_02_first_lock(escrow: VotingEscrow):
    step_header(2, "The First Lock",
        "Locking collateral mints voting power proportional to amount x duration.")

    unlock = escrow.current_time + weeks(52)
    print(f">>> escrow.create_lock('alice', {CONFIG.alice_lock}, now + 52 weeks)")
    lock = escrow.create_lock("alice", CONFIG.alice_lock, unlock)

    section_header("Key Insight")
    print(f"""
    The unlock time is rounded DOWN to a week boundary: {lock.end}
    (requested {unlock}, aligned {align_down(unlock, WEEK)}).

    slope = amount / MAX_LOCK_DURATION = {CONFIG.alice_lock} / {MAX_LOCK_DURATION}
    bias  = slope x (end - now)

    balance_of('alice') = {escrow.balance_of('alice'):.6f}
    total_supply()      = {escrow.total_supply():.6f}
    """)
    return escrow


def step_03_decay(escrow: VotingEscrow):
    step_header(3, "Linear Decay",
        "Voting power falls linearly; no transaction is needed for it to change.")

    for _ in range(3):
        before = escrow.balance_of("alice")
        escrow.clock.advance(weeks(4))
        after = escrow.balance_of("alice")
        print(f"  +4 weeks: {before:.4f} -> {after:.4f}")
    return escrow


# ============================================================================
# PHASE 2: CHANGING A LOCK (Steps 4-5)
# ============================================================================

def step_04_top_up_and_extend(escrow: VotingEscrow):
    step_header(4, "Top-ups and Extensions",
        "Adding collateral or pushing out the end both raise power immediately.")

    print(">>> escrow.create_lock('bob', ...)")
    escrow.create_lock("bob", CONFIG.bob_lock, escrow.current_time + weeks(26))
    print(">>> escrow.deposit_for('alice', 'bob', 500)")
    escrow.deposit_for("alice", "bob", Decimal("500"))
    print(">>> escrow.increase_unlock_time('alice', now + 104 weeks)")
    escrow.increase_unlock_time("alice", escrow.current_time + weeks(104))

    section_header("Balances")
    for account in ("alice", "bob"):
        lock = escrow.get_lock(account)
        print(f"  {account:6} amount={lock.amount:>8} end={lock.end} "
              f"power={escrow.balance_of(account):.4f}")
    print(f"  supply = {escrow.total_supply():.4f}")
    return escrow


def step_05_rejections(escrow: VotingEscrow):
    step_header(5, "Rejected Operations",
        "Invalid requests raise and leave the escrow untouched.")

    attempts = [
        ("second lock", lambda: escrow.create_lock("alice", 1, escrow.current_time + WEEK)),
        ("shorten lock", lambda: escrow.increase_unlock_time("bob", escrow.current_time + WEEK)),
        ("zero amount", lambda: escrow.increase_amount("bob", 0)),
        ("early withdraw", lambda: escrow.withdraw("bob")),
    ]
    epoch = escrow.epoch
    for label, attempt in attempts:
        try:
            attempt()
        except EscrowError as exc:
            print(f"    -> {label}: {type(exc).__name__}")
    print(f"\n  Global epoch unchanged: {escrow.epoch == epoch}")
    return escrow


# ============================================================================
# PHASE 3: HISTORY (Steps 6-7)
# ============================================================================

def step_06_by_timestamp(escrow: VotingEscrow):
    step_header(6, "Queries by Timestamp",
        "Any past or future timestamp can be evaluated from the checkpoints.")

    now = escrow.current_time
    for offset in (-8, -4, 0, 4, 26):
        t = now + weeks(offset)
        print(f"  t = now {offset:+3}w  alice={escrow.balance_of('alice', t):10.4f}  "
              f"supply={escrow.total_supply(t):10.4f}")
    return escrow


def step_07_by_block(escrow: VotingEscrow):
    step_header(7, "Queries by Block Height",
        "Blocks are mapped to timestamps by interpolating between checkpoints.")

    current = escrow.current_block
    for block in (CONFIG.start_block, CONFIG.start_block + 100_000, current):
        print(f"  block {block:>8}  alice={escrow.balance_of_at('alice', block):10.4f}  "
              f"supply={escrow.total_supply_at(block):10.4f}")

    section_header("Future Blocks")
    try:
        escrow.total_supply_at(current + 1)
    except EscrowError as exc:
        print(f"    -> {type(exc).__name__}: {exc}")
    return escrow


# ============================================================================
# PHASE 4: EXPIRY (Steps 8-9)
# ============================================================================

def step_08_withdraw_and_relock(escrow: VotingEscrow):
    step_header(8, "Expiry, Withdraw and Relock",
        "An expired lock holds no power; it can be withdrawn or locked again.")

    escrow.clock.advance(weeks(26))
    print(f"  bob state: {escrow.lock_state('bob').value}")
    print(">>> escrow.relock('bob', now + 8 weeks)")
    escrow.relock("bob", escrow.current_time + weeks(8))
    print(f"  bob state: {escrow.lock_state('bob').value}, "
          f"power={escrow.balance_of('bob'):.4f}")

    escrow.clock.advance(weeks(8))
    print(">>> escrow.withdraw('bob')")
    returned = escrow.withdraw("bob")
    print(f"  returned {returned}, state: {escrow.lock_state('bob').value}")
    assert escrow.lock_state("bob") == LockState.NONE
    return escrow


def step_09_idle_catch_up(escrow: VotingEscrow):
    step_header(9, "Long Idle Periods",
        "Each call walks at most a bounded number of weeks; checkpoint() catches up.")

    escrow.clock.advance(weeks(300))
    escrow.verbose = False
    try:
        escrow.withdraw("alice")
    except CheckpointBacklog as exc:
        print(f"    -> withdraw refused: {exc}")

    calls = 0
    while True:
        calls += 1
        if escrow.checkpoint().caught_up:
            break
    escrow.verbose = True
    print(f"  caught up after {calls} checkpoint() calls")
    escrow.withdraw("alice")
    return escrow


# ============================================================================
# PHASE 5: ANALYTICS (Step 10)
# ============================================================================

def step_10_analytics(escrow: VotingEscrow):
    step_header(10, "Analytics",
        "Sample the piecewise-linear curves onto numpy grids.")

    escrow.verbose = False
    escrow.create_lock("alice", Decimal("2000"), escrow.current_time + weeks(10))
    escrow.create_lock("bob", Decimal("1000"), escrow.current_time + weeks(20))
    now = escrow.current_time

    grid = now + np.arange(0, 21, 4) * WEEK
    print(f"  alice:  {np.round(sample_balances(escrow, 'alice', grid), 2)}")
    print(f"  bob:    {np.round(sample_balances(escrow, 'bob', grid), 2)}")
    print(f"  supply: {np.round(sample_supply(escrow, grid), 2)}")

    shares = voting_shares(escrow, ["alice", "bob"])
    print(f"\n  shares now: {{'alice': {shares['alice']:.3f}, 'bob': {shares['bob']:.3f}}}")
    print(f"  alice average power over 10 weeks: "
          f"{average_power(escrow, 'alice', now, now + weeks(10)):.4f}")

    section_header("Conservation")
    report = escrow.verify_conservation()
    print(f"  valid={report['valid']} locked={report['total_locked']} "
          f"held={report['collateral_held']}")
    return escrow


def main():
    """Run the complete tutorial."""
    print("=" * 70)
    print("       VOTE ESCROW - INTERACTIVE TUTORIAL")
    print("=" * 70)

    if QUICK_MODE:
        print("Running in QUICK mode (no pauses)")
    else:
        print("Running in INTERACTIVE mode (press Enter to advance)")

    wait_for_enter()

    steps = [
        step_02_first_lock,
        step_03_decay,
        step_04_top_up_and_extend,
        step_05_rejections,
        step_06_by_timestamp,
        step_07_by_block,
        step_08_withdraw_and_relock,
        step_09_idle_catch_up,
        step_10_analytics,
    ]
    escrow = step_01_empty_escrow()
    for step in steps:
        wait_for_enter()
        escrow = step(escrow)

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)
    print(f"""
    Events recorded: {len(escrow.sink)}

    Next steps:
      - See veledger/escrow.py for the operation flow
      - Run tests: pytest tests/
    """)


if __name__ == "__main__":
    main()
