"""Deterministic response strategies for one steering party.

A deterministic strategy assigns one outcome ``a`` to every input ``x``.
Strategies are numbered ``lam = 0, ..., oa**ma - 1`` by reading ``lam`` as a
base-``oa`` number whose digit ``x`` (least significant first) is the outcome
returned for input ``x``.
"""

from __future__ import annotations

from typing import Dict, Sequence, Tuple

import numpy as np


def _check_counts(oa: int, ma: int) -> None:
    if int(oa) <= 0 or int(ma) <= 0:
        raise ValueError(f"oa and ma must be positive, got oa={oa}, ma={ma}.")


def num_strategies(oa: int, ma: int) -> int:
    """Number of deterministic strategies, ``oa**ma``."""
    _check_counts(oa, ma)
    return int(oa) ** int(ma)


def strategy_digits(lam: int, oa: int, ma: int) -> np.ndarray:
    """Return the outcome assigned to each input by strategy ``lam``."""
    n_det = num_strategies(oa, ma)
    lam = int(lam)
    if not 0 <= lam < n_det:
        raise ValueError(f"strategy index must lie in [0, {n_det}), got {lam}.")
    digits = np.zeros(int(ma), dtype=int)
    for x in range(int(ma)):
        digits[x] = lam % int(oa)
        lam //= int(oa)
    return digits


def strategy_index(digits: Sequence[int], oa: int) -> int:
    """Inverse of :func:`strategy_digits`."""
    digits = [int(d) for d in digits]
    _check_counts(oa, len(digits))
    lam = 0
    for x in reversed(range(len(digits))):
        if not 0 <= digits[x] < int(oa):
            raise ValueError(f"digit {digits[x]} for input {x} is outside [0, {oa}).")
        lam = lam * int(oa) + digits[x]
    return lam


def deterministic_strategies(oa: int, ma: int) -> np.ndarray:
    """Return ``D[a, x, lam]`` with ``D = 1`` iff strategy ``lam`` outputs ``a`` on input ``x``."""
    n_det = num_strategies(oa, ma)
    D = np.zeros((int(oa), int(ma), n_det), dtype=int)
    for lam in range(n_det):
        digits = strategy_digits(lam, oa, ma)
        D[digits, np.arange(int(ma)), lam] = 1
    return D


def strategy_groups(D: np.ndarray) -> Dict[Tuple[int, int], Tuple[int, ...]]:
    """Map each ``(a, x)`` to the strategies that answer ``a`` on input ``x``.

    For a fixed ``x`` the groups over ``a`` partition ``range(Ndet)``.
    """
    D = np.asarray(D)
    if D.ndim != 3:
        raise ValueError(f"D must have shape (oa, ma, Ndet), got {D.shape}.")
    oa, ma, _ = D.shape
    return {
        (a, x): tuple(int(lam) for lam in np.flatnonzero(D[a, x, :]))
        for a in range(oa)
        for x in range(ma)
    }
