"""
test_lifecycle_scenarios.py - End-to-end lock lifecycle scenario tests

Tests complete lock lifecycles:
- Round trip: create, decay, expire, withdraw
- Relock of an expired lock and the NONE -> ACTIVE -> EXPIRED state machine
- Third-party deposits
- Multi-account decay (Alice / Bob)
"""

import pytest
from decimal import Decimal

from veledger import (
    LockState, Lock, WEEK, MAX_LOCK_DURATION, compute_slope,
)

from tests.fakes import (
    START, START_BLOCK, INITIAL_FUNDS, BLOCKS_PER_WEEK, make_escrow, advance_weeks,
)


class TestRoundTrip:
    """1000 locked for one week."""

    def test_one_week_round_trip(self):
        escrow = make_escrow()
        token = escrow.collateral
        supply_before = escrow.total_supply()

        escrow.create_lock("alice", Decimal("1000"), START + WEEK)
        power = escrow.balance_of("alice")
        assert abs(power - Decimal(1000 * WEEK) / MAX_LOCK_DURATION) < Decimal("1e-9")
        assert power.quantize(Decimal("0.01")) == Decimal("4.79")
        assert escrow.total_supply() == power

        advance_weeks(escrow, 1)
        assert escrow.balance_of("alice") == 0
        assert escrow.total_supply() == 0

        returned = escrow.withdraw("alice")
        assert returned == Decimal("1000")
        assert token.balance_of("alice") == INITIAL_FUNDS
        assert token.balance_of(escrow.address) == 0
        assert escrow.balance_of("alice") == 0
        assert escrow.total_supply() == supply_before
        assert escrow.total_locked == 0
        assert escrow.verify_conservation()['valid']

    def test_history_survives_withdraw(self):
        escrow = make_escrow()
        escrow.create_lock("alice", Decimal("1000"), START + WEEK)
        power = escrow.balance_of("alice")
        advance_weeks(escrow, 2)
        escrow.withdraw("alice")
        assert escrow.balance_of_at("alice", START_BLOCK) == power
        assert escrow.balance_of("alice", START) == power


class TestStateMachine:
    """NONE -> ACTIVE -> EXPIRED -> ACTIVE (relock) -> EXPIRED -> NONE."""

    def test_full_cycle(self):
        escrow = make_escrow()
        amount = Decimal("500")
        slope = compute_slope(amount)
        assert escrow.lock_state("alice") == LockState.NONE

        escrow.create_lock("alice", amount, START + 2 * WEEK)
        assert escrow.lock_state("alice") == LockState.ACTIVE

        advance_weeks(escrow, 3)
        assert escrow.lock_state("alice") == LockState.EXPIRED
        assert escrow.balance_of("alice") == 0

        escrow.relock("alice", START + 7 * WEEK)
        assert escrow.lock_state("alice") == LockState.ACTIVE
        assert escrow.balance_of("alice") == slope * 4 * WEEK
        assert escrow.total_supply() == slope * 4 * WEEK

        advance_weeks(escrow, 4)
        assert escrow.lock_state("alice") == LockState.EXPIRED
        escrow.withdraw("alice")
        assert escrow.lock_state("alice") == LockState.NONE
        assert escrow.get_lock("alice") == Lock()
        assert escrow.active_supply == 0
        assert escrow.verify_conservation()['valid']

    def test_extend_then_top_up(self):
        escrow = make_escrow()
        escrow.create_lock("alice", Decimal("100"), START + WEEK)
        advance_weeks(escrow, 0.5)
        escrow.increase_unlock_time("alice", START + 10 * WEEK)
        escrow.deposit_for("bob", "alice", Decimal("300"))
        now = escrow.current_time
        expected = compute_slope(Decimal("400")) * (START + 10 * WEEK - now)
        assert escrow.balance_of("alice") == expected
        assert escrow.total_supply() == expected
        assert escrow.get_lock("bob") == Lock()


class TestMultiAccount:
    """Alice locks for two periods, Bob for one, at the same moment."""

    def test_alice_and_bob(self):
        escrow = make_escrow()
        amount = Decimal("1000")
        escrow.create_lock("alice", amount, START + 2 * WEEK)
        escrow.create_lock("bob", amount, START + WEEK)
        assert escrow.balance_of("alice") == 2 * escrow.balance_of("bob")

        advance_weeks(escrow, 1)
        assert escrow.balance_of("bob") == 0
        assert escrow.balance_of("alice") > 0
        assert escrow.total_supply() == escrow.balance_of("alice")

        escrow.checkpoint()
        assert escrow.total_supply() == escrow.balance_of("alice")

        at_block = START_BLOCK + BLOCKS_PER_WEEK
        assert escrow.total_supply_at(at_block) == escrow.balance_of_at("alice", at_block)
        assert escrow.balance_of_at("bob", at_block) == 0

    def test_staggered_entries(self):
        escrow = make_escrow()
        escrow.create_lock("alice", Decimal("1000"), START + 8 * WEEK)
        advance_weeks(escrow, 1.25)
        escrow.create_lock("bob", Decimal("2000"), START + 4 * WEEK)
        advance_weeks(escrow, 1.5)
        escrow.create_lock("carol", Decimal("300"), START + 20 * WEEK)

        for weeks in (0.5, 1, 2, 3, 10, 20):
            advance_weeks(escrow, weeks)
            total = sum(escrow.balance_of(a) for a in ("alice", "bob", "carol"))
            assert escrow.total_supply() == total
        assert escrow.total_supply() == 0
        assert escrow.verify_conservation()['valid']
