"""Scan the visibility of |Phi+> and report where the X/Z assemblage becomes steerable."""

from __future__ import annotations

import numpy as np

from lhssdp import (
    assemblage_from_state,
    decide_lhs,
    noisy_maximally_entangled,
    pauli_measurements,
    witness_value,
)


def _xz_assemblage(eta: float) -> np.ndarray:
    return assemblage_from_state(noisy_maximally_entangled(eta), pauli_measurements(("X", "Z")))


if __name__ == "__main__":
    for eta in np.linspace(0.5, 1.0, 11):
        sigma = _xz_assemblage(float(eta))
        result = decide_lhs(sigma, normalized=True)
        if result.feasible:
            print(f"eta={eta:.2f}  LHS        ({result.solver}, {result.solve_time:.3f}s)")
        else:
            print(f"eta={eta:.2f}  steerable  witness={witness_value(result.witness, sigma):.6f}")
    print(f"critical visibility for two mutually unbiased qubit measurements: {1.0 / np.sqrt(2.0):.6f}")
