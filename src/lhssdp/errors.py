"""Exception types raised by the LHS decision procedure."""

from __future__ import annotations

from typing import Optional


class InvalidAssemblage(ValueError):
    """The assemblage fails a precondition (shape, Hermiticity, PSD, normalization)."""


class SolverStatusError(RuntimeError):
    """The SDP backend returned something other than a feasible/infeasible verdict."""

    def __init__(self, message: str, status: Optional[str] = None, solver: Optional[str] = None, stage: str = "decision") -> None:
        super().__init__(message)
        self.status = status
        self.solver = solver
        self.stage = stage


class DegenerateCertificate(ArithmeticError):
    """The dual certificate cannot be normalized (zero or negligible divisor)."""

    def __init__(self, message: str, divisor: float = 0.0) -> None:
        super().__init__(message)
        self.divisor = float(divisor)
