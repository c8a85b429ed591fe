"""Assemblage data structures, validation and reconstruction helpers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .errors import InvalidAssemblage
from .strategies import deterministic_strategies, num_strategies

ArrayLike = np.ndarray

_PAULI = {
    "X": np.array([[0.0, 1.0], [1.0, 0.0]], dtype=complex),
    "Y": np.array([[0.0, -1.0j], [1.0j, 0.0]], dtype=complex),
    "Z": np.array([[1.0, 0.0], [0.0, -1.0]], dtype=complex),
}


def _hermitize(arr: np.ndarray) -> np.ndarray:
    """Hermitian part of every ``(:, :, ...)`` block."""
    return 0.5 * (arr + np.conj(np.swapaxes(arr, 0, 1)))


def _as_assemblage_array(sigma: ArrayLike) -> np.ndarray:
    arr = np.asarray(sigma, dtype=complex)
    if arr.ndim != 4:
        raise InvalidAssemblage(f"assemblage must have shape (dB, dB, oa, ma), got {arr.shape}.")
    if arr.shape[0] != arr.shape[1]:
        raise InvalidAssemblage(f"assemblage blocks must be square, got {arr.shape[:2]}.")
    if min(arr.shape) == 0:
        raise InvalidAssemblage(f"assemblage has an empty dimension: {arr.shape}.")
    if not np.all(np.isfinite(arr)):
        raise InvalidAssemblage("assemblage contains NaN/Inf entries.")
    return arr


@dataclass(frozen=True)
class Assemblage:
    """Family of sub-normalized states ``sigma[:, :, a, x]`` on the steered party.

    The array is stored as ``complex128`` with every block replaced by its
    Hermitian part. ``hermitian_error`` keeps the largest deviation of the
    input from that Hermitian part, so :func:`validate_assemblage` can still
    reject non-Hermitian data after wrapping.
    """

    sigma: ArrayLike
    name: str = "unnamed"
    hermitian_error: float = field(init=False, default=0.0, repr=False)

    def __post_init__(self) -> None:
        arr = _as_assemblage_array(self.sigma)
        herm = _hermitize(arr)
        object.__setattr__(self, "sigma", herm)
        object.__setattr__(self, "hermitian_error", float(np.max(np.abs(arr - herm))))

    @property
    def dim(self) -> int:
        return int(self.sigma.shape[0])

    @property
    def num_outcomes(self) -> int:
        return int(self.sigma.shape[2])

    @property
    def num_inputs(self) -> int:
        return int(self.sigma.shape[3])

    @property
    def num_strategies(self) -> int:
        return num_strategies(self.num_outcomes, self.num_inputs)

    @property
    def shape(self) -> Tuple[int, int, int, int]:
        return tuple(int(s) for s in self.sigma.shape)  # type: ignore[return-value]

    def block(self, a: int, x: int) -> np.ndarray:
        return self.sigma[:, :, a, x]

    def blocks(self) -> List[List[np.ndarray]]:
        """Nested ``[a][x]`` list of blocks, the layout the constraint builder consumes."""
        return [[self.block(a, x) for x in range(self.num_inputs)] for a in range(self.num_outcomes)]

    def reduced_states(self) -> np.ndarray:
        """``sum_a sigma[:, :, a, x]`` for each input, shape ``(dB, dB, ma)``."""
        return self.sigma.sum(axis=2)

    def traces(self) -> np.ndarray:
        """Real traces ``tr sigma[:, :, a, x]``, shape ``(oa, ma)``."""
        return np.real(np.einsum("iiax->ax", self.sigma))

    def mean_trace(self) -> float:
        """Average over inputs of ``sum_a tr sigma[:, :, a, x]``."""
        return float(self.traces().sum() / self.num_inputs)


def as_assemblage(sigma: ArrayLike | Assemblage) -> Assemblage:
    if isinstance(sigma, Assemblage):
        return sigma
    return Assemblage(sigma=sigma)


def validate_assemblage(
    sigma: ArrayLike | Assemblage,
    normalized: bool = False,
    psd_tol: float = 1e-8,
    norm_tol: float = 1e-6,
) -> Assemblage:
    """Check the preconditions of the LHS decision and return the wrapped assemblage.

    Every block must be Hermitian and PSD (up to ``psd_tol``), the total trace
    ``sum_a tr sigma[:, :, a, x]`` must agree across inputs and, when
    ``normalized`` is set, equal one.
    """
    assemblage = as_assemblage(sigma)
    scale = max(1.0, float(np.max(np.abs(assemblage.sigma))))
    # Distance to the Hermitian part is half the distance to the adjoint.
    herm_err = 2.0 * assemblage.hermitian_error
    if herm_err > psd_tol * scale:
        raise InvalidAssemblage(f"assemblage blocks are not Hermitian (max deviation {herm_err:.3e}).")

    oa, ma = assemblage.num_outcomes, assemblage.num_inputs
    for a in range(oa):
        for x in range(ma):
            min_eig = float(np.min(np.linalg.eigvalsh(assemblage.block(a, x))))
            if min_eig < -psd_tol * scale:
                raise InvalidAssemblage(
                    f"block (a={a}, x={x}) is not positive semidefinite (min eigenvalue {min_eig:.3e})."
                )

    totals = assemblage.traces().sum(axis=0)
    if float(np.ptp(totals)) > norm_tol * max(1.0, float(np.max(np.abs(totals)))):
        raise InvalidAssemblage(f"total trace differs across inputs: {np.round(totals, 10).tolist()}.")
    if normalized and float(np.max(np.abs(totals - 1.0))) > norm_tol:
        raise InvalidAssemblage(
            f"normalized assemblage must satisfy sum_a tr sigma_a|x = 1, got {np.round(totals, 10).tolist()}."
        )
    return assemblage


def reconstruct_assemblage(model: ArrayLike, D: ArrayLike) -> np.ndarray:
    """Evaluate ``sigma[:, :, a, x] = sum_lam D[a, x, lam] * model[:, :, lam]``."""
    model = np.asarray(model, dtype=complex)
    D = np.asarray(D)
    if model.ndim != 3 or model.shape[2] != D.shape[2]:
        raise ValueError(f"model shape {model.shape} does not match strategies {D.shape}.")
    return np.einsum("axl,ijl->ijax", D, model)


def lhs_residual(sigma: ArrayLike | Assemblage, model: ArrayLike, D: Optional[ArrayLike] = None) -> float:
    """Largest entrywise deviation between ``sigma`` and the model's reconstruction."""
    assemblage = as_assemblage(sigma)
    if D is None:
        D = deterministic_strategies(assemblage.num_outcomes, assemblage.num_inputs)
    return float(np.max(np.abs(reconstruct_assemblage(model, D) - assemblage.sigma)))


def check_lhs_model(
    sigma: ArrayLike | Assemblage,
    model: ArrayLike,
    tol: float = 1e-5,
    normalized: bool = False,
    D: Optional[ArrayLike] = None,
) -> bool:
    """Verify a candidate LHS model numerically: PSD hidden states that reproduce ``sigma``."""
    model = _hermitize(np.asarray(model, dtype=complex))
    min_eig = min(float(np.min(np.linalg.eigvalsh(model[:, :, lam]))) for lam in range(model.shape[2]))
    if min_eig < -float(tol):
        return False
    if lhs_residual(sigma, model, D) > float(tol):
        return False
    if normalized and abs(float(np.real(np.trace(model.sum(axis=2)))) - 1.0) > float(tol):
        return False
    return True


def pauli_measurements(labels: Sequence[str] = ("X", "Z")) -> np.ndarray:
    """Projective qubit measurements ``M[:, :, a, x]`` along the given Pauli axes."""
    labels = [str(lab).upper() for lab in labels]
    unknown = [lab for lab in labels if lab not in _PAULI]
    if unknown:
        raise ValueError(f"unknown Pauli labels {unknown}; expected a subset of X, Y, Z.")
    M = np.zeros((2, 2, 2, len(labels)), dtype=complex)
    for x, lab in enumerate(labels):
        M[:, :, 0, x] = 0.5 * (np.eye(2) + _PAULI[lab])
        M[:, :, 1, x] = 0.5 * (np.eye(2) - _PAULI[lab])
    return M


def noisy_maximally_entangled(eta: float, d: int = 2) -> np.ndarray:
    """``eta |Phi+><Phi+| + (1 - eta) I / d**2``."""
    if not 0.0 <= float(eta) <= 1.0:
        raise ValueError(f"eta must lie in [0, 1], got {eta}.")
    phi = np.zeros(d * d, dtype=complex)
    phi[[i * d + i for i in range(d)]] = 1.0 / np.sqrt(d)
    return float(eta) * np.outer(phi, phi.conj()) + (1.0 - float(eta)) * np.eye(d * d) / (d * d)


def assemblage_from_state(rho: ArrayLike, measurements: ArrayLike, dims: Tuple[int, int] | None = None) -> np.ndarray:
    """``sigma[:, :, a, x] = tr_A[(M[:, :, a, x] (x) I) rho]`` for a bipartite ``rho``."""
    rho = np.asarray(rho, dtype=complex)
    M = np.asarray(measurements, dtype=complex)
    dA = M.shape[0]
    if dims is None:
        if rho.shape[0] % dA != 0:
            raise ValueError(f"state dimension {rho.shape[0]} is not a multiple of dA={dA}.")
        dims = (dA, rho.shape[0] // dA)
    dA, dB = int(dims[0]), int(dims[1])
    if rho.shape != (dA * dB, dA * dB):
        raise ValueError(f"rho must be {dA * dB}x{dA * dB}, got {rho.shape}.")
    rho4 = rho.reshape(dA, dB, dA, dB)
    # sigma_{b b'} = sum_{i j} M_{j i} rho_{(i b), (j b')}
    return np.einsum("jiax,ibjc->bcax", M, rho4)


def random_lhs_assemblage(
    dB: int,
    oa: int,
    ma: int,
    rng: np.random.Generator | None = None,
    normalized: bool = True,
) -> Tuple[np.ndarray, np.ndarray]:
    """Random genuine LHS assemblage and the hidden states that generate it."""
    rng = rng if rng is not None else np.random.default_rng()
    n_det = num_strategies(oa, ma)
    model = np.zeros((dB, dB, n_det), dtype=complex)
    for lam in range(n_det):
        G = rng.standard_normal((dB, dB)) + 1j * rng.standard_normal((dB, dB))
        model[:, :, lam] = G @ G.conj().T
    if normalized:
        model /= float(np.real(np.trace(model.sum(axis=2))))
    sigma = reconstruct_assemblage(model, deterministic_strategies(oa, ma))
    return sigma, model
