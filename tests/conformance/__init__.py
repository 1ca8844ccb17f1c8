"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the escrow ledger.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. conservation.py - Total supply equals the sum of balances; collateral is accounted for
2. atomicity.py - Rejected operations leave no trace
3. idempotency.py - Repeated catch-up never changes balances or supply
4. determinism.py - Identical operation sequences produce identical ledgers
5. temporal.py - Linear decay, monotonicity and live/historical agreement

These tests use hypothesis for property-based testing.
"""
