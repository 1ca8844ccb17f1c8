"""
conftest.py - Shared pytest fixtures for escrow tests

Provides common fixtures used across unit, conformance and functional tests:
- A manual clock starting on a period boundary
- A collateral token
- A quiet VotingEscrow wired to a RecordingSink, with funded accounts
"""

import pytest

from veledger import ManualClock, RecordingSink, Token

from tests.fakes import START, START_BLOCK, make_escrow


@pytest.fixture
def clock():
    return ManualClock(START, START_BLOCK)


@pytest.fixture
def token():
    return Token("GOV")


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def escrow(token, clock, sink):
    """Empty escrow at START with alice, bob and carol funded."""
    return make_escrow(collateral=token, clock=clock, sink=sink)
