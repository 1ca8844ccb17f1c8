"""
test_history.py - Unit tests for HistoricalQueryEngine

Tests cover:
1. Queries by timestamp (current, past, projected)
2. Queries by block height with interpolation
3. Range boundaries (block 0, future blocks)
4. Tie-break on Points sharing a block
5. Lock and checkpoint accessors
"""

import pytest
from decimal import Decimal

from veledger import OutOfRange, LockState, WEEK, compute_slope

from tests.fakes import START, START_BLOCK, BLOCKS_PER_WEEK, advance_weeks


AMOUNT = Decimal("1000")
SLOPE = compute_slope(AMOUNT)


@pytest.fixture
def locked(escrow):
    """alice locks 1000 for 4 weeks at START."""
    escrow.create_lock("alice", AMOUNT, START + 4 * WEEK)
    return escrow


class TestByTimestamp:
    """balance_of / total_supply with explicit or implicit t."""

    def test_unknown_account_is_zero(self, escrow):
        assert escrow.history.balance_of("nobody") == 0

    def test_empty_supply_is_zero(self, escrow):
        assert escrow.history.total_supply() == 0

    def test_current_balance(self, locked):
        assert locked.history.balance_of("alice") == SLOPE * 4 * WEEK
        assert locked.history.total_supply() == SLOPE * 4 * WEEK

    def test_projection(self, locked):
        t = START + WEEK + 5
        expected = SLOPE * (3 * WEEK - 5)
        assert locked.history.balance_of("alice", t) == expected
        assert locked.history.total_supply(t) == expected

    def test_after_expiry_is_zero(self, locked):
        t = START + 10 * WEEK
        assert locked.history.balance_of("alice", t) == 0
        assert locked.history.total_supply(t) == 0

    def test_before_first_point_is_zero(self, locked):
        assert locked.history.balance_of("alice", START - 1) == 0
        assert locked.history.total_supply(START - 1) == 0

    def test_past_time_uses_point_in_force(self, locked):
        advance_weeks(locked, 1)
        locked.increase_amount("alice", AMOUNT)
        t = START + WEEK // 2
        assert locked.history.balance_of("alice", t) == SLOPE * (4 * WEEK - WEEK // 2)
        assert locked.history.total_supply(t) == SLOPE * (4 * WEEK - WEEK // 2)


class TestByBlock:
    """balance_of_at / total_supply_at."""

    def test_creation_block_matches_creation_balance(self, locked):
        at_creation = locked.history.balance_of("alice")
        advance_weeks(locked, 2)
        assert locked.history.balance_of_at("alice", START_BLOCK) == at_creation
        assert locked.history.total_supply_at(START_BLOCK) == at_creation

    def test_interpolates_against_live_clock(self, locked):
        advance_weeks(locked, 2)
        block = START_BLOCK + BLOCKS_PER_WEEK // 2
        expected = SLOPE * (4 * WEEK - WEEK // 2)
        assert locked.history.balance_of_at("alice", block) == expected
        assert locked.history.total_supply_at(block) == expected

    def test_interpolates_between_points(self, locked):
        advance_weeks(locked, 1)
        locked.create_lock("bob", AMOUNT, START + 2 * WEEK)
        advance_weeks(locked, 3)
        block = START_BLOCK + BLOCKS_PER_WEEK // 2
        expected = SLOPE * (4 * WEEK - WEEK // 2)
        assert locked.history.balance_of_at("alice", block) == expected
        assert locked.history.balance_of_at("bob", block) == 0
        assert locked.history.total_supply_at(block) == expected

    def test_current_block(self, locked):
        advance_weeks(locked, 1)
        current = locked.current_block
        assert locked.history.balance_of_at("alice", current) == locked.history.balance_of("alice")
        assert locked.history.total_supply_at(current) == locked.history.total_supply()

    def test_same_timestamp_points(self, locked):
        """Blocks advance without time: interpolation collapses to the Point's ts."""
        locked.clock.advance(0, blocks=5)
        assert locked.history.balance_of_at("alice", START_BLOCK + 3) == SLOPE * 4 * WEEK

    def test_slow_block_rate_keeps_creation_balance(self, locked):
        """A period boundary crossed within one block does not shift the creation block."""
        at_creation = locked.history.balance_of("alice")
        locked.clock.advance(WEEK + 10, blocks=1)
        locked.create_lock("bob", AMOUNT, START + 4 * WEEK)
        bob_at_creation = locked.history.balance_of("bob")

        assert locked.history.balance_of_at("alice", START_BLOCK) == at_creation
        assert locked.history.total_supply_at(START_BLOCK) == at_creation
        assert locked.history.balance_of_at("bob", START_BLOCK + 1) == bob_at_creation

    def test_point_at_queried_block_answers_with_its_bias(self, locked):
        """Time passing without a new block leaves the block's balance at its recorded value."""
        locked.clock.advance(WEEK // 2, blocks=0)
        assert locked.history.balance_of_at("alice", START_BLOCK) == SLOPE * 4 * WEEK
        assert locked.history.total_supply_at(START_BLOCK) == SLOPE * 4 * WEEK

    def test_block_zero_is_zero(self, locked):
        assert locked.history.balance_of_at("alice", 0) == 0
        assert locked.history.total_supply_at(0) == 0

    def test_future_block_out_of_range(self, locked):
        with pytest.raises(OutOfRange):
            locked.history.balance_of_at("alice", START_BLOCK + 1)
        with pytest.raises(OutOfRange):
            locked.history.total_supply_at(START_BLOCK + 1)

    def test_negative_block_out_of_range(self, locked):
        with pytest.raises(OutOfRange):
            locked.history.total_supply_at(-1)

    def test_ties_resolve_to_latest_point(self, locked):
        """Two operations in one block: the later one is visible at that block."""
        locked.increase_amount("alice", AMOUNT)
        doubled = compute_slope(2 * AMOUNT) * 4 * WEEK
        assert locked.history.balance_of_at("alice", START_BLOCK) == doubled
        assert locked.history.total_supply_at(START_BLOCK) == doubled


class TestAccessors:
    """Lock and checkpoint accessors."""

    def test_lock_accessors(self, locked):
        h = locked.history
        assert h.locked("alice").amount == AMOUNT
        assert h.locked_end("alice") == START + 4 * WEEK
        assert h.lock_state("alice") == LockState.ACTIVE
        assert h.lock_state("bob") == LockState.NONE

    def test_expired_state(self, locked):
        advance_weeks(locked, 4)
        assert locked.history.lock_state("alice") == LockState.EXPIRED

    def test_checkpoint_accessors(self, locked):
        h = locked.history
        assert h.user_point_epoch("alice") == 1
        assert h.last_user_slope("alice") == SLOPE
        assert h.user_point_timestamp("alice", 1) == START
        assert h.user_point_timestamp("alice", 0) == 0
        assert len(h.user_point_history("alice")) == 1

    def test_user_point_timestamp_out_of_range(self, locked):
        with pytest.raises(IndexError):
            locked.history.user_point_timestamp("alice", 2)

    def test_queries_do_not_mutate(self, locked):
        advance_weeks(locked, 3)
        epoch = locked.epoch
        locked.history.total_supply()
        locked.history.total_supply_at(START_BLOCK)
        locked.history.balance_of_at("alice", START_BLOCK)
        assert locked.epoch == epoch
