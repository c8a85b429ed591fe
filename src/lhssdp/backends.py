"""cvxpy access and SDP backend selection.

cvxpy is imported lazily so that strategy enumeration, validation and the
certificate arithmetic work without it. Every solver the LHS problems can
use must accept complex Hermitian PSD cones.
"""

from __future__ import annotations

from contextlib import contextmanager, redirect_stderr
from functools import lru_cache
import io
import logging
from typing import Any, Iterable, Iterator, Optional

logger = logging.getLogger(__name__)

# Backends able to handle complex Hermitian PSD cones, in order of preference.
SDP_BACKENDS: tuple[str, ...] = ("MOSEK", "CLARABEL", "SCS", "CVXOPT")

_CVXPY_LOGGERS = ("cvxpy", "__cvxpy__")


class _OptionalSolverImportFilter(logging.Filter):
    """Drop cvxpy's report of optional solvers that fail to import.

    cvxpy logs one such record per broken optional backend (GLPK through a
    partial cvxopt install is the usual one). None of them can solve an
    LHS problem, so the records are noise here.
    """

    prefix = "Encountered unexpected exception importing solver"

    def filter(self, record: logging.LogRecord) -> bool:
        return not str(record.getMessage()).startswith(self.prefix)


@contextmanager
def quiet_cvxpy(level: Optional[int] = None) -> Iterator[None]:
    """Filter optional-solver import noise from cvxpy's loggers.

    With ``level`` set, the loggers are also raised to that level for the
    duration of the block.
    """
    loggers = [logging.getLogger(name) for name in _CVXPY_LOGGERS]
    filt = _OptionalSolverImportFilter()
    saved = [lg.level for lg in loggers]
    for lg in loggers:
        lg.addFilter(filt)
        if level is not None:
            lg.setLevel(level)
    try:
        yield
    finally:
        for lg, lvl in zip(loggers, saved):
            lg.removeFilter(filt)
            lg.setLevel(lvl)


@lru_cache(maxsize=1)
def _import_cvxpy() -> Any | None:
    # Solver discovery at import time prints to stderr for broken backends.
    try:
        with quiet_cvxpy(logging.ERROR), redirect_stderr(io.StringIO()):
            import cvxpy
    except ImportError:
        logger.debug("cvxpy is not importable; SDP solves are unavailable")
        return None
    return cvxpy


def require_cvxpy() -> Any:
    cp = _import_cvxpy()
    if cp is None:
        raise ModuleNotFoundError("cvxpy is required for SDP solves. Install with: pip install cvxpy")
    return cp


def installed_solvers() -> frozenset[str]:
    """Upper-case names of every solver cvxpy can load."""
    cp = require_cvxpy()
    with quiet_cvxpy():
        return frozenset(str(name).upper() for name in cp.installed_solvers())


def first_sdp_backend(installed: Iterable[str]) -> str | None:
    """Most preferred entry of :data:`SDP_BACKENDS` found in ``installed``."""
    available = {str(name).upper() for name in installed}
    return next((name for name in SDP_BACKENDS if name in available), None)


def resolve_backend(backend: str | None) -> str:
    """Map a configured backend (``auto`` or a solver name) to an installed cvxpy solver."""
    installed = installed_solvers()
    name = "AUTO" if backend is None else str(backend).upper()
    if name == "AUTO":
        chosen = first_sdp_backend(installed)
        if chosen is None:
            raise ModuleNotFoundError(
                f"No SDP-capable cvxpy solver installed (looked for {', '.join(SDP_BACKENDS)})."
            )
        return chosen
    if name not in installed:
        raise ModuleNotFoundError(f"Requested solver {name} is not installed. Installed: {sorted(installed)}")
    return name


def has_sdp_backend() -> bool:
    if _import_cvxpy() is None:
        return False
    return first_sdp_backend(installed_solvers()) is not None


def solver_kwargs(solver_name: str, solver_tol: float, max_iters: int) -> dict[str, Any]:
    """Return solver-specific keyword arguments with aligned tolerances."""
    sname = str(solver_name).upper()
    tol = float(solver_tol)
    if sname == "SCS":
        return {"eps": tol, "max_iters": int(max_iters)}
    if sname == "CLARABEL":
        return {
            "tol_gap_abs": tol,
            "tol_gap_rel": tol,
            "tol_feas": tol,
            "tol_infeas_abs": tol,
            "tol_infeas_rel": tol,
            "max_iter": int(max_iters),
        }
    if sname == "CVXOPT":
        return {"abstol": tol, "reltol": tol, "feastol": tol, "max_iters": int(max_iters)}
    if sname == "MOSEK":
        return {
            "mosek_params": {
                "MSK_DPAR_INTPNT_CO_TOL_PFEAS": tol,
                "MSK_DPAR_INTPNT_CO_TOL_DFEAS": tol,
                "MSK_DPAR_INTPNT_CO_TOL_REL_GAP": tol,
            }
        }
    return {}
