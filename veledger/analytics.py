"""
analytics.py - Vectorised sampling of decay curves

Reporting helpers that evaluate voting power over whole time grids at once.
They read through the EscrowView protocol only and return float arrays, so
results are for charts and summaries, not for accounting (use the Decimal
queries on the escrow for that).

Provides:
- decay_curve: one linear segment evaluated on a grid
- sample_balances: an account's balance at every grid time
- sample_supply: total supply at every grid time
- voting_shares: each account's fraction of total voting power at t
- average_power: time-weighted mean of an account's power over a window
"""

import numpy as np
from typing import Dict, Iterable, Optional, Sequence, Union
from scipy.integrate import trapezoid

from .core import EscrowView


# Type alias for grid inputs
Times = Union[Sequence[int], np.ndarray]


def decay_curve(bias, slope, ts: int, times: Times) -> np.ndarray:
    """
    max(0, bias - slope * (t - ts)) for every t in times.

    Times before ts are evaluated along the same line (no clamp from above).
    """
    t = np.asarray(times, dtype=float)
    values = float(bias) - float(slope) * (t - float(ts))
    return np.maximum(values, 0.0)


def sample_balances(view: EscrowView, account: str, times: Times) -> np.ndarray:
    """
    Balance of account at each time, using the latest Point at or before it.

    Times before the first Point read as 0.
    """
    t = np.asarray(times, dtype=float)
    points = view.get_checkpoints(account)
    if not points:
        return np.zeros_like(t)

    ts = np.array([p.ts for p in points], dtype=float)
    bias = np.array([float(p.bias) for p in points])
    slope = np.array([float(p.slope) for p in points])

    # side='right' picks the most recent of several Points sharing a timestamp
    idx = np.searchsorted(ts, t, side='right') - 1
    valid = idx >= 0
    idx = np.clip(idx, 0, None)
    values = np.maximum(bias[idx] - slope[idx] * (t - ts[idx]), 0.0)
    return np.where(valid, values, 0.0)


def sample_supply(view: EscrowView, times: Times) -> np.ndarray:
    """Total supply at each time (one bounded walk per grid point)."""
    return np.array([float(view.total_supply(int(t))) for t in np.asarray(times)], dtype=float)


def voting_shares(view: EscrowView, accounts: Iterable[str], t: Optional[int] = None) -> Dict[str, float]:
    """
    Fraction of total voting power held by each account at t (default: now).

    All shares are 0 when total supply is 0.
    """
    supply = view.total_supply(t)
    shares = {}
    for account in accounts:
        balance = view.balance_of(account, t)
        shares[account] = float(balance / supply) if supply > 0 else 0.0
    return shares


def average_power(view: EscrowView, account: str, start: int, end: int,
                  samples: int = 257) -> float:
    """
    Time-weighted mean voting power of account over [start, end].

    The curve is piecewise linear, so trapezoidal integration is exact
    whenever every Point and expiry falls on a grid time.

    Raises:
        ValueError: If end <= start or samples < 2
    """
    if end <= start:
        raise ValueError(f"end ({end}) must be after start ({start})")
    if samples < 2:
        raise ValueError(f"samples must be at least 2, got {samples}")
    grid = np.linspace(start, end, samples)
    values = sample_balances(view, account, grid)
    return float(trapezoid(values, grid) / (end - start))

