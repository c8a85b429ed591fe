"""Standalone LHS decision entry point."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import time
from typing import Optional

import numpy as np

from .assemblage import Assemblage, validate_assemblage
from .certificate import normalize_certificate, normalize_cone_certificate, witness_value
from .solver import LHSFeasibilitySolver, SolverConfig
from .strategies import deterministic_strategies

logger = logging.getLogger(__name__)


@dataclass
class LHSResult:
    feasible: bool
    model: Optional[np.ndarray]
    witness: Optional[np.ndarray]
    status: str
    solver: str
    solve_time: float
    strategies: np.ndarray
    witness_margin: Optional[float] = None

    def __iter__(self):
        # Unpacks as ``feasible, model, witness``.
        return iter((self.feasible, self.model, self.witness))


def decide_lhs(
    sigma: np.ndarray | Assemblage,
    normalized: bool = False,
    config: Optional[SolverConfig] = None,
    validate: bool = True,
) -> LHSResult:
    """Decide whether ``sigma`` admits a local hidden state model.

    Returns the hidden states ``model[:, :, lam]`` when it does, otherwise a
    canonical steering functional ``witness[:, :, a, x]`` separating
    ``sigma`` from the LHS set.

    A feasible verdict costs one solve. An infeasible verdict costs a second
    one: cvxpy discards variable values of an infeasible problem, so the
    witness comes from solving the alternative program explicitly.
    ``witness_margin`` is how far the witness value exceeds 1.

    Raises ``InvalidAssemblage`` before any solve when validation fails,
    ``SolverStatusError`` when the backend gives no feasibility verdict and
    ``DegenerateCertificate`` when the certificate cannot be normalized.
    """
    cfg = config if config is not None else SolverConfig()
    if validate:
        assemblage = validate_assemblage(sigma, normalized=normalized, psd_tol=cfg.psd_tol, norm_tol=cfg.norm_tol)
    else:
        assemblage = sigma if isinstance(sigma, Assemblage) else Assemblage(sigma=sigma)
    D = deterministic_strategies(assemblage.num_outcomes, assemblage.num_inputs)
    logger.debug(
        "deciding LHS: dB=%d oa=%d ma=%d Ndet=%d normalized=%s",
        assemblage.dim,
        assemblage.num_outcomes,
        assemblage.num_inputs,
        D.shape[2],
        normalized,
    )

    solver = LHSFeasibilitySolver(cfg)
    start = time.perf_counter()
    outcome = solver.decide(assemblage, normalized=normalized)
    if outcome.feasible:
        logger.info("assemblage admits an LHS model (%s, %s)", outcome.solver, outcome.status)
        return LHSResult(
            feasible=True,
            model=outcome.model,
            witness=None,
            status=outcome.status,
            solver=outcome.solver,
            solve_time=time.perf_counter() - start,
            strategies=D,
        )

    raw = solver.certificate(assemblage, normalized=normalized)
    if normalized:
        witness = normalize_certificate(raw.F_raw, mu=raw.mu, degenerate_tol=cfg.degenerate_tol)
    else:
        witness = normalize_cone_certificate(raw.F_raw, assemblage.sigma, degenerate_tol=cfg.degenerate_tol)
    margin = witness_value(witness, assemblage.sigma) - 1.0
    logger.info("assemblage is steerable (%s, %s); witness margin %.6g", outcome.solver, outcome.status, margin)
    return LHSResult(
        feasible=False,
        model=None,
        witness=witness,
        status=outcome.status,
        solver=outcome.solver,
        solve_time=time.perf_counter() - start,
        strategies=D,
        witness_margin=margin,
    )
