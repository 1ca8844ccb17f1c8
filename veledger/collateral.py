"""
collateral.py - In-memory fungible token

Token is a minimal CollateralAsset: balances, allowances and supply kept in
Decimal. Transfers that cannot be honoured return False and change nothing,
which is the failure signal the escrow aborts on.
"""

from __future__ import annotations
from decimal import Decimal
from typing import Dict, Tuple

from .core import ZERO, to_decimal


class Token:
    """
    Fungible asset with owner -> spender allowances.

    transfer_from(source, dest, amount) spends the allowance that source
    granted to dest, so an escrow pulling collateral needs
    token.approve(owner, escrow_address, amount) first.
    """

    def __init__(self, symbol: str = "TKN", decimals: int = 18):
        self.symbol = symbol
        self.decimals = decimals
        self._balances: Dict[str, Decimal] = {}
        self._allowances: Dict[Tuple[str, str], Decimal] = {}
        self._total_supply: Decimal = ZERO

    def mint(self, holder: str, amount) -> None:
        """
        Create new tokens for holder.

        Raises:
            ValueError: If amount is negative
        """
        amount = to_decimal(amount)
        if amount < 0:
            raise ValueError(f"Cannot mint a negative amount: {amount}")
        self._balances[holder] = self.balance_of(holder) + amount
        self._total_supply += amount

    def approve(self, owner: str, spender: str, amount) -> bool:
        amount = to_decimal(amount)
        if amount < 0:
            raise ValueError(f"Allowance cannot be negative: {amount}")
        self._allowances[(owner, spender)] = amount
        return True

    def allowance(self, owner: str, spender: str) -> Decimal:
        return self._allowances.get((owner, spender), ZERO)

    def balance_of(self, holder: str) -> Decimal:
        return self._balances.get(holder, ZERO)

    @property
    def total_supply(self) -> Decimal:
        return self._total_supply

    def transfer(self, source: str, dest: str, amount) -> bool:
        amount = to_decimal(amount)
        if amount < 0 or self.balance_of(source) < amount:
            return False
        self._move(source, dest, amount)
        return True

    def transfer_from(self, source: str, dest: str, amount) -> bool:
        amount = to_decimal(amount)
        allowed = self.allowance(source, dest)
        if amount < 0 or allowed < amount or self.balance_of(source) < amount:
            return False
        self._allowances[(source, dest)] = allowed - amount
        self._move(source, dest, amount)
        return True

    def _move(self, source: str, dest: str, amount: Decimal) -> None:
        self._balances[source] = self.balance_of(source) - amount
        self._balances[dest] = self.balance_of(dest) + amount

    def __repr__(self) -> str:
        return f"Token({self.symbol}, supply={self._total_supply})"
