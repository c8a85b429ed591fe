"""Steering functionals: normalization and evaluation.

A steering functional ``F[:, :, a, x]`` is a family of Hermitian operators.
Its canonical form satisfies

    sum_{a,x,lam} tr F[:, :, a, x] * D[a, x, lam] = 1,
    sum_{a,x} D[a, x, lam] F[:, :, a, x] <= I       for every strategy lam,

so ``witness_value(F, sigma_lhs) <= 1`` for every trace-one LHS assemblage,
while the assemblage the functional was extracted from scores above 1.
Unnormalized problems yield a cone separator instead, see
:func:`normalize_cone_certificate`.
"""

from __future__ import annotations

import logging

import numpy as np

from .errors import DegenerateCertificate
from .strategies import num_strategies

logger = logging.getLogger(__name__)


def strategy_operators(F: np.ndarray, D: np.ndarray) -> np.ndarray:
    """``sum_{a,x} D[a, x, lam] F[:, :, a, x]`` for each strategy, shape ``(dB, dB, Ndet)``."""
    return np.einsum("ijax,axl->ijl", np.asarray(F, dtype=complex), np.asarray(D))


def witness_value(F: np.ndarray, sigma: np.ndarray) -> float:
    """``sum_{a,x} Re tr[F[:, :, a, x] sigma[:, :, a, x]]``."""
    return float(np.real(np.einsum("ijax,jiax->", np.asarray(F, dtype=complex), np.asarray(sigma, dtype=complex))))


def witness_strategy_sum(F: np.ndarray, D: np.ndarray) -> float:
    """``sum_{a,x,lam} tr[F[:, :, a, x]] D[a, x, lam]``."""
    return float(np.real(np.einsum("iiax,axl->", np.asarray(F, dtype=complex), np.asarray(D))))


def witness_lhs_bound(F: np.ndarray, D: np.ndarray) -> float:
    """Largest value ``F`` attains on a trace-one LHS assemblage."""
    ops = strategy_operators(F, D)
    ops = 0.5 * (ops + np.conj(np.swapaxes(ops, 0, 1)))
    return max(float(np.max(np.linalg.eigvalsh(ops[:, :, lam]))) for lam in range(ops.shape[2]))


def _hermitian_raw(F_raw: np.ndarray) -> np.ndarray:
    F_raw = np.asarray(F_raw, dtype=complex)
    if F_raw.ndim != 4 or F_raw.shape[0] != F_raw.shape[1]:
        raise ValueError(f"F_raw must have shape (dB, dB, oa, ma), got {F_raw.shape}.")
    if not np.all(np.isfinite(F_raw)):
        raise DegenerateCertificate("raw certificate contains NaN/Inf entries.", divisor=float("nan"))
    return 0.5 * (F_raw + np.conj(np.swapaxes(F_raw, 0, 1)))


def _shift(F: np.ndarray, c: float) -> np.ndarray:
    """``F + c J`` with ``J[:, :, a, x] = I / ma``."""
    dB, _, oa, ma = F.shape
    out = F.copy()
    eye = np.eye(dB, dtype=complex)
    for a in range(oa):
        for x in range(ma):
            out[:, :, a, x] += (c / ma) * eye
    return out


def normalize_certificate(F_raw: np.ndarray, mu: float = 0.0, degenerate_tol: float = 1e-9) -> np.ndarray:
    """Rescale a raw dual certificate ``(F_raw, mu)`` into canonical form.

    ``(F_raw, mu)`` must satisfy ``sum_{a,x} D[a, x, lam] F_raw[:, :, a, x] <= mu I``
    for every strategy. With ``S = sum_{a,x} tr F_raw[:, :, a, x]`` and
    ``T = (Ndet / oa) S`` the functional is shifted by ``c I / ma`` per block,
    ``c = (mu - T) / (Ndet dB - 1)``, and divided by ``mu + c``.
    """
    F_raw = _hermitian_raw(F_raw)
    if not np.isfinite(mu):
        raise DegenerateCertificate("raw certificate contains NaN/Inf entries.", divisor=float("nan"))
    dB, _, oa, ma = F_raw.shape
    n_det = num_strategies(oa, ma)

    if n_det * dB == 1:
        raise DegenerateCertificate("a single scalar strategy admits no normalized steering functional.")

    S = float(np.real(np.einsum("iiax->", F_raw)))
    T = (n_det / oa) * S
    c = (float(mu) - T) / (n_det * dB - 1)
    divisor = float(mu) + c
    scale = max(1.0, abs(float(mu)), float(np.max(np.abs(F_raw))))
    logger.debug("certificate normalization: S=%.6g T=%.6g mu=%.6g divisor=%.6g", S, T, float(mu), divisor)
    if divisor <= float(degenerate_tol) * scale:
        raise DegenerateCertificate(
            f"certificate normalization divisor {divisor:.3e} is zero or negligible.",
            divisor=divisor,
        )
    return _shift(F_raw, c) / divisor


def normalize_cone_certificate(F_raw: np.ndarray, sigma: np.ndarray, degenerate_tol: float = 1e-9) -> np.ndarray:
    """Turn a cone separator ``G`` of ``sigma`` into a canonical functional.

    ``G`` must satisfy ``sum_{a,x} D[a, x, lam] G[:, :, a, x] <= 0`` for every
    strategy and ``<G, sigma> > 0``. The result ``F = k G + c J`` has
    ``sum_{a,x,lam} tr[F D] = 1`` and ``<F, sigma> = 1 + tau / (Ndet dB)``,
    where ``tau`` is the mean trace of ``sigma``. Every LHS assemblage of mean
    trace ``t`` scores at most ``c t`` on it.
    """
    G = _hermitian_raw(F_raw)
    sigma = np.asarray(sigma, dtype=complex)
    if sigma.shape != G.shape:
        raise ValueError(f"sigma shape {sigma.shape} does not match certificate shape {G.shape}.")
    dB, _, oa, ma = G.shape
    n_det = num_strategies(oa, ma)
    n = n_det * dB

    T = (n_det / oa) * float(np.real(np.einsum("iiax->", G)))
    tau = float(np.real(np.einsum("iiax->", sigma))) / ma
    value = witness_value(G, sigma)
    # Separation of sigma measured along the constraint sum(tr[F D]) = 1.
    gap = value - tau * T / n
    scale = max(abs(value), abs(tau * T) / n, float(np.finfo(float).tiny))
    logger.debug("cone certificate normalization: <G,sigma>=%.6g T=%.6g tau=%.6g gap=%.6g", value, T, tau, gap)
    if gap <= float(degenerate_tol) * scale:
        raise DegenerateCertificate(f"cone certificate separation {gap:.3e} is zero or negligible.", divisor=gap)

    k = 1.0 / gap
    c = (1.0 - k * T) / n
    return _shift(k * G, c)
