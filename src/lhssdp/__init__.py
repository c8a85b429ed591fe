"""Local hidden state (LHS) models for quantum assemblages.

The stable top-level API is the standalone decision function ``decide_lhs``
plus the embeddable constraint builder ``build_lhs_constraints`` for use
inside a larger cvxpy model. Assemblage helpers, strategy enumeration and
steering-functional utilities are re-exported for convenience.
"""

from .assemblage import (
    Assemblage,
    assemblage_from_state,
    check_lhs_model,
    lhs_residual,
    noisy_maximally_entangled,
    pauli_measurements,
    random_lhs_assemblage,
    reconstruct_assemblage,
    validate_assemblage,
)
from .certificate import (
    normalize_certificate,
    normalize_cone_certificate,
    witness_lhs_bound,
    witness_strategy_sum,
    witness_value,
)
from .constraints import LHSConstraints, build_lhs_constraints
from .errors import DegenerateCertificate, InvalidAssemblage, SolverStatusError
from .lhs import LHSResult, decide_lhs
from .solver import LHSFeasibilitySolver, SolverConfig
from .strategies import deterministic_strategies, num_strategies, strategy_digits, strategy_index

__all__ = [
    "Assemblage",
    "assemblage_from_state",
    "check_lhs_model",
    "lhs_residual",
    "noisy_maximally_entangled",
    "pauli_measurements",
    "random_lhs_assemblage",
    "reconstruct_assemblage",
    "validate_assemblage",
    "normalize_certificate",
    "normalize_cone_certificate",
    "witness_lhs_bound",
    "witness_strategy_sum",
    "witness_value",
    "LHSConstraints",
    "build_lhs_constraints",
    "DegenerateCertificate",
    "InvalidAssemblage",
    "SolverStatusError",
    "LHSResult",
    "decide_lhs",
    "LHSFeasibilitySolver",
    "SolverConfig",
    "deterministic_strategies",
    "num_strategies",
    "strategy_digits",
    "strategy_index",
]
