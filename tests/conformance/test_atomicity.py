"""
Atomicity Conformance Tests

INVARIANT: Operations are all-or-nothing.

    ∀ operation O:
        O succeeds ⟹ lock, schedules, checkpoints and collateral all move together
        O fails    ⟹ none of them change

A failed collateral transfer or a validation error leaves the escrow exactly
as it was. A catch-up backlog keeps only the global Points that checkpoint()
would have appended.
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st
from decimal import Decimal

from veledger import (
    EscrowConfig, CheckpointBacklog, TransferFailed, EscrowError, WEEK,
)

from tests.fakes import (
    FailingCollateral, RaisingCollateral, START, make_escrow, snapshot, advance_weeks,
)
from tests.conformance.strategies import amounts, apply_all, operation_sequences


class TestAtomicityProperties:
    """Property-based atomicity tests."""

    @given(operation_sequences(), st.sampled_from(["alice", "bob", "carol"]), amounts(),
           st.integers(min_value=1, max_value=30))
    @settings(max_examples=100, deadline=None)
    def test_refused_pull_changes_nothing(self, ops, account, amount, weeks):
        """
        PROPERTY: When the asset refuses transfer_from, create_lock,
        increase_amount and deposit_for leave the escrow untouched.
        """
        token = FailingCollateral()
        escrow = make_escrow(collateral=token)
        apply_all(escrow, ops)
        before = snapshot(escrow)

        token.fail_pulls = True
        unlock = escrow.current_time + weeks * WEEK
        for call in (
            lambda: escrow.create_lock(account, amount, unlock),
            lambda: escrow.increase_amount(account, amount),
            lambda: escrow.deposit_for("carol", account, amount),
        ):
            with pytest.raises(EscrowError):
                call()
            assert snapshot(escrow) == before

    @given(operation_sequences(), st.sampled_from(["alice", "bob", "carol"]))
    @settings(max_examples=100, deadline=None)
    def test_refused_push_changes_nothing(self, ops, account):
        """
        PROPERTY: When the asset refuses to return collateral, withdraw
        leaves the escrow untouched.
        """
        token = FailingCollateral()
        escrow = make_escrow(collateral=token)
        apply_all(escrow, ops)
        escrow.clock.advance(61 * WEEK, blocks=1000)
        before = snapshot(escrow)

        token.fail_pushes = True
        with pytest.raises(EscrowError):
            escrow.withdraw(account)
        assert snapshot(escrow) == before


class TestAtomicityExamples:
    """Example-based atomicity tests."""

    def test_failed_create_lock(self):
        token = FailingCollateral()
        escrow = make_escrow(collateral=token)
        token.fail_pulls = True
        before = snapshot(escrow)
        with pytest.raises(TransferFailed):
            escrow.create_lock("alice", Decimal("10"), START + WEEK)
        assert snapshot(escrow) == before
        assert escrow.epoch == 0

    def test_raising_asset_is_wrapped(self):
        token = RaisingCollateral()
        escrow = make_escrow(collateral=token)
        escrow.create_lock("alice", Decimal("10"), START + WEEK)
        advance_weeks(escrow, 1)
        token.armed = True
        before = snapshot(escrow)
        with pytest.raises(TransferFailed) as info:
            escrow.withdraw("alice")
        assert isinstance(info.value.__cause__, RuntimeError)
        assert snapshot(escrow) == before

    def test_backlog_keeps_only_the_catch_up(self):
        escrow = make_escrow(config=EscrowConfig(max_advance_steps=3))
        escrow.create_lock("alice", Decimal("10"), START + 20 * WEEK)
        advance_weeks(escrow, 10)
        before = snapshot(escrow)
        balance = escrow.balance_of("alice")

        with pytest.raises(CheckpointBacklog):
            escrow.create_lock("bob", Decimal("10"), escrow.current_time + WEEK)

        after = snapshot(escrow)
        advanced = after.pop('global_points')
        recorded = before.pop('global_points')
        assert after == before
        assert advanced[:len(recorded)] == recorded
        assert len(advanced) == len(recorded) + 3
        assert escrow.balance_of("alice") == balance

    def test_retried_operation_finishes_the_catch_up(self):
        escrow = make_escrow(config=EscrowConfig(max_advance_steps=3))
        escrow.create_lock("alice", Decimal("10"), START + 20 * WEEK)
        advance_weeks(escrow, 10)

        attempts = 0
        while escrow.get_lock("bob").amount == 0:
            attempts += 1
            try:
                escrow.create_lock("bob", Decimal("10"), escrow.current_time + WEEK)
            except CheckpointBacklog:
                continue
        assert attempts == 4
        assert escrow.verify_conservation()['valid']

    def test_relock_underflow_changes_nothing(self):
        escrow = make_escrow()
        escrow.create_lock("alice", Decimal("10"), START + 10 * WEEK)
        advance_weeks(escrow, 1)
        before = snapshot(escrow)
        with pytest.raises(EscrowError):
            escrow.relock("alice", START + 3 * WEEK)
        assert snapshot(escrow) == before
