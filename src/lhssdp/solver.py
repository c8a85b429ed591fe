"""SDP formulation and solve of the LHS membership problem."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import time
from typing import Any, Literal, Optional

import numpy as np

from .assemblage import Assemblage, as_assemblage
from .backends import quiet_cvxpy, require_cvxpy, resolve_backend, solver_kwargs
from .constraints import LHSConstraints, build_lhs_constraints
from .errors import SolverStatusError
from .strategies import deterministic_strategies

logger = logging.getLogger(__name__)

_BACKENDS = {"auto", "clarabel", "scs", "mosek", "cvxopt"}


@dataclass
class SolverConfig:
    backend: Literal["auto", "clarabel", "scs", "mosek", "cvxopt"] | None = "auto"
    solver_tol: float = 1e-8
    max_iters: int = 20000
    accept_inaccurate: bool = True
    verbose: bool = False
    psd_tol: float = 1e-8
    norm_tol: float = 1e-6
    degenerate_tol: float = 1e-9
    margin_tol: float = 1e-7

    def __post_init__(self) -> None:
        backend = "auto" if self.backend is None else str(self.backend).lower()
        if backend not in _BACKENDS:
            raise ValueError(f"backend must be one of {sorted(_BACKENDS)} or None.")
        self.backend = backend
        if self.solver_tol <= 0.0:
            raise ValueError("solver_tol must be positive.")
        if self.max_iters <= 0:
            raise ValueError("max_iters must be positive.")
        if self.psd_tol < 0.0 or self.norm_tol < 0.0:
            raise ValueError("psd_tol and norm_tol must be nonnegative.")
        if self.degenerate_tol < 0.0:
            raise ValueError("degenerate_tol must be nonnegative.")
        if self.margin_tol < 0.0:
            raise ValueError("margin_tol must be nonnegative.")


@dataclass
class FeasibilityOutcome:
    feasible: bool
    status: str
    solver: str
    solve_time: float
    model: Optional[np.ndarray] = None


@dataclass
class RawCertificate:
    F_raw: np.ndarray
    mu: float
    rhs: float
    margin: float
    status: str
    solve_time: float


class LHSFeasibilitySolver:
    """Decide LHS membership with one cvxpy solve; extract a Farkas certificate on demand."""

    def __init__(self, config: Optional[SolverConfig] = None) -> None:
        self.config = config if config is not None else SolverConfig()
        self._solver_name: Optional[str] = None

    @property
    def solver_name(self) -> str:
        if self._solver_name is None:
            self._solver_name = resolve_backend(self.config.backend)
            logger.debug("using SDP backend %s", self._solver_name)
        return self._solver_name

    def _statuses(self, cp: Any) -> tuple[set[str], set[str]]:
        feasible = {cp.OPTIMAL}
        infeasible = {cp.INFEASIBLE}
        if self.config.accept_inaccurate:
            feasible.add(cp.OPTIMAL_INACCURATE)
            infeasible.add(cp.INFEASIBLE_INACCURATE)
        return feasible, infeasible

    def _solve(self, prob: Any, stage: str) -> tuple[str, float]:
        cp = require_cvxpy()
        solver = self.solver_name
        kwargs = solver_kwargs(solver, solver_tol=self.config.solver_tol, max_iters=self.config.max_iters)
        start = time.perf_counter()
        try:
            with quiet_cvxpy():
                prob.solve(solver=solver, verbose=self.config.verbose, **kwargs)
        except cp.error.SolverError as exc:
            raise SolverStatusError(
                f"{solver} failed during {stage} solve: {exc}", status="solver_error", solver=solver, stage=stage
            ) from exc
        elapsed = time.perf_counter() - start
        status = str(prob.status)
        if status.endswith("inaccurate"):
            logger.warning("%s returned %s during %s solve", solver, status, stage)
        return status, elapsed

    def build(self, assemblage: Assemblage, normalized: bool = False) -> tuple[Any, LHSConstraints]:
        """Feasibility problem ``minimize 0`` over the LHS constraints."""
        cp = require_cvxpy()
        lhs = build_lhs_constraints(assemblage.blocks(), normalized=normalized)
        prob = cp.Problem(cp.Minimize(0), lhs.constraints)
        return prob, lhs

    def decide(self, sigma: Assemblage | np.ndarray, normalized: bool = False) -> FeasibilityOutcome:
        cp = require_cvxpy()
        assemblage = as_assemblage(sigma)
        prob, lhs = self.build(assemblage, normalized=normalized)
        status, elapsed = self._solve(prob, stage="decision")

        feasible_statuses, infeasible_statuses = self._statuses(cp)
        if status in feasible_statuses:
            model = lhs.model_value()
            if model is None:
                raise SolverStatusError(
                    f"{self.solver_name} reported {status} without a primal solution.",
                    status=status,
                    solver=self.solver_name,
                )
            return FeasibilityOutcome(True, status, self.solver_name, elapsed, model=model)
        if status in infeasible_statuses:
            return FeasibilityOutcome(False, status, self.solver_name, elapsed)
        raise SolverStatusError(
            f"{self.solver_name} returned status '{status}' for the LHS feasibility problem.",
            status=status,
            solver=self.solver_name,
        )

    def certificate(self, sigma: Assemblage | np.ndarray, normalized: bool = False) -> RawCertificate:
        """Solve the alternative system of the decision problem.

        maximize    sum_{a,x} Re tr[G_a|x sigma_a|x] - mu
        subject to  mu I - sum_{a,x} D[a, x, lam] G_a|x >= 0   for every lam
                    -I <= G_a|x <= I

        for the normalized problem. Without the trace constraint the LHS set
        is a cone and ``mu`` is pinned to zero, so ``G`` is a cone separator.
        A positive optimum certifies infeasibility. Runs a second solve with
        the configured backend, independent of :meth:`decide`.
        """
        cp = require_cvxpy()
        assemblage = as_assemblage(sigma)
        dB, oa, ma = assemblage.dim, assemblage.num_outcomes, assemblage.num_inputs
        D = deterministic_strategies(oa, ma)
        eye = np.eye(dB)

        G = [[cp.Variable((dB, dB), hermitian=True, name=f"F_{a}_{x}") for x in range(ma)] for a in range(oa)]
        mu = cp.Variable(name="mu") if normalized else None
        constraints = []
        for a in range(oa):
            for x in range(ma):
                constraints += [-G[a][x] + eye >> 0, G[a][x] + eye >> 0]
        for lam in range(D.shape[2]):
            slack = cp.Variable((dB, dB), hermitian=True, name=f"slack_{lam}")
            response = sum(G[a][x] for a in range(oa) for x in range(ma) if D[a, x, lam])
            bound = mu * eye - response if mu is not None else -response
            constraints += [slack >> 0, slack == bound]

        value = sum(cp.real(cp.trace(G[a][x] @ assemblage.block(a, x))) for a in range(oa) for x in range(ma))
        objective = value - mu if mu is not None else value
        prob = cp.Problem(cp.Maximize(objective), constraints)
        status, elapsed = self._solve(prob, stage="certificate")

        feasible_statuses, _ = self._statuses(cp)
        if status not in feasible_statuses or prob.value is None or (mu is not None and mu.value is None):
            raise SolverStatusError(
                f"{self.solver_name} returned status '{status}' for the certificate problem.",
                status=status,
                solver=self.solver_name,
                stage="certificate",
            )
        F_raw = np.zeros((dB, dB, oa, ma), dtype=complex)
        for a in range(oa):
            for x in range(ma):
                F_raw[:, :, a, x] = np.asarray(G[a][x].value, dtype=complex)
        margin = float(prob.value)
        # The cone optimum scales with sigma; the normalized one compares against tr = 1.
        threshold = self.config.margin_tol * (1.0 if normalized else assemblage.mean_trace())
        if margin <= threshold:
            raise SolverStatusError(
                f"decision reported infeasible but the best separating margin is {margin:.3e}.",
                status=status,
                solver=self.solver_name,
                stage="certificate",
            )
        return RawCertificate(
            F_raw=F_raw,
            mu=float(mu.value) if mu is not None else 0.0,
            rhs=1.0 if normalized else 0.0,
            margin=margin,
            status=status,
            solve_time=elapsed,
        )
