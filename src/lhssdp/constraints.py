"""cvxpy constraint structure linking hidden states to an assemblage.

``build_lhs_constraints`` is usable on its own inside a larger cvxpy model:
the assemblage blocks may be constants or affine cvxpy expressions, and no
validation or solving happens here.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .backends import require_cvxpy
from .strategies import deterministic_strategies, strategy_groups

logger = logging.getLogger(__name__)

Blocks = Sequence[Sequence[Any]]


@dataclass
class LHSConstraints:
    """Variables and constraints of the LHS membership problem."""

    siglam: List[Any]
    equalities: Dict[Tuple[int, int], Any]
    strategies: np.ndarray
    psd: List[Any] = field(default_factory=list)
    normalization: Optional[Any] = None

    @property
    def constraints(self) -> List[Any]:
        out = list(self.psd)
        out.extend(self.equalities[key] for key in sorted(self.equalities))
        if self.normalization is not None:
            out.append(self.normalization)
        return out

    def model_value(self) -> Optional[np.ndarray]:
        """Stack solved ``siglam`` values into a ``(dB, dB, Ndet)`` array."""
        values = [var.value for var in self.siglam]
        if any(v is None for v in values):
            return None
        model = np.stack([np.asarray(v, dtype=complex) for v in values], axis=2)
        return 0.5 * (model + np.conj(np.swapaxes(model, 0, 1)))


def split_blocks(sigma: np.ndarray) -> List[List[np.ndarray]]:
    """Turn a ``(dB, dB, oa, ma)`` array into nested ``[a][x]`` blocks."""
    sigma = np.asarray(sigma)
    if sigma.ndim != 4:
        raise ValueError(f"sigma must have shape (dB, dB, oa, ma), got {sigma.shape}.")
    return [[sigma[:, :, a, x] for x in range(sigma.shape[3])] for a in range(sigma.shape[2])]


def _block_shape(blocks: Blocks) -> Tuple[int, int, int]:
    oa = len(blocks)
    if oa == 0:
        raise ValueError("assemblage must have at least one outcome.")
    ma = len(blocks[0])
    if ma == 0 or any(len(row) != ma for row in blocks):
        raise ValueError("every outcome must carry the same non-zero number of inputs.")
    shape = tuple(int(s) for s in getattr(blocks[0][0], "shape", np.shape(blocks[0][0])))
    if len(shape) != 2 or shape[0] != shape[1]:
        raise ValueError(f"assemblage blocks must be square matrices, got shape {shape}.")
    return shape[0], oa, ma


def build_lhs_constraints(
    blocks: Blocks | np.ndarray,
    normalized: bool = False,
    strategies: Optional[np.ndarray] = None,
) -> LHSConstraints:
    """Declare ``Ndet`` Hermitian PSD hidden states and tie them to ``blocks``.

    One equality per ``(a, x)``::

        blocks[a][x] == sum(siglam[lam] for lam with D[a, x, lam] == 1)

    plus ``tr(sum_lam siglam[lam]) == 1`` when ``normalized``.
    """
    cp = require_cvxpy()
    if isinstance(blocks, np.ndarray):
        blocks = split_blocks(blocks)
    dB, oa, ma = _block_shape(blocks)
    D = deterministic_strategies(oa, ma) if strategies is None else np.asarray(strategies)
    if D.shape[:2] != (oa, ma):
        raise ValueError(f"strategies shape {D.shape} does not match (oa, ma) = ({oa}, {ma}).")
    n_det = D.shape[2]
    logger.debug("building LHS constraints: dB=%d oa=%d ma=%d Ndet=%d", dB, oa, ma, n_det)

    siglam = [cp.Variable((dB, dB), hermitian=True, name=f"siglam_{lam}") for lam in range(n_det)]
    psd = [var >> 0 for var in siglam]

    equalities: Dict[Tuple[int, int], Any] = {}
    for (a, x), members in strategy_groups(D).items():
        rhs = sum(siglam[lam] for lam in members) if members else cp.Constant(np.zeros((dB, dB)))
        # cvxpy expression on the left so numpy blocks do not broadcast ``==``.
        equalities[(a, x)] = rhs == blocks[a][x]

    normalization = None
    if normalized:
        normalization = cp.real(cp.trace(sum(siglam))) == 1
    return LHSConstraints(
        siglam=siglam,
        equalities=equalities,
        strategies=D,
        psd=psd,
        normalization=normalization,
    )
