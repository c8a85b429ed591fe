import warnings

import numpy as np
import pytest

from lhssdp.assemblage import (
    assemblage_from_state,
    check_lhs_model,
    noisy_maximally_entangled,
    pauli_measurements,
    random_lhs_assemblage,
    reconstruct_assemblage,
)
from lhssdp.backends import has_sdp_backend
from lhssdp.certificate import witness_lhs_bound, witness_strategy_sum, witness_value
from lhssdp.errors import DegenerateCertificate, InvalidAssemblage, SolverStatusError
from lhssdp.lhs import decide_lhs
from lhssdp.solver import FeasibilityOutcome, LHSFeasibilitySolver, RawCertificate, SolverConfig

requires_sdp = pytest.mark.skipif(not has_sdp_backend(), reason="no SDP-capable cvxpy solver installed")


def xz_assemblage(eta: float) -> np.ndarray:
    return assemblage_from_state(noisy_maximally_entangled(eta), pauli_measurements(("X", "Z")))


def test_solver_config_validation():
    with pytest.raises(ValueError):
        SolverConfig(backend="gurobi")
    with pytest.raises(ValueError):
        SolverConfig(solver_tol=0.0)
    with pytest.raises(ValueError):
        SolverConfig(max_iters=0)
    with pytest.raises(ValueError):
        SolverConfig(psd_tol=-1.0)
    with pytest.raises(ValueError):
        SolverConfig(degenerate_tol=-1.0)
    assert SolverConfig(backend="SCS").backend == "scs"
    assert SolverConfig(backend=None).backend == "auto"


def test_invalid_assemblage_fails_before_solving(monkeypatch):
    def _never(*args, **kwargs):
        raise AssertionError("solver must not run on an invalid assemblage")

    monkeypatch.setattr(LHSFeasibilitySolver, "decide", _never)
    sigma = xz_assemblage(1.0)
    sigma[:, :, 0, 0] = np.diag([0.5, -0.1])
    with pytest.raises(InvalidAssemblage):
        decide_lhs(sigma)
    with pytest.raises(InvalidAssemblage):
        decide_lhs(2.0 * xz_assemblage(0.5), normalized=True)


def test_unexpected_status_is_surfaced(monkeypatch):
    pytest.importorskip("cvxpy")
    monkeypatch.setattr(LHSFeasibilitySolver, "_solve", lambda self, prob, stage: ("unbounded", 0.0))
    monkeypatch.setattr(LHSFeasibilitySolver, "solver_name", "FAKE")
    with pytest.raises(SolverStatusError) as excinfo:
        decide_lhs(xz_assemblage(0.5))
    assert excinfo.value.status == "unbounded"
    assert excinfo.value.stage == "decision"


def test_inaccurate_status_rejected_when_configured(monkeypatch):
    pytest.importorskip("cvxpy")
    monkeypatch.setattr(LHSFeasibilitySolver, "_solve", lambda self, prob, stage: ("infeasible_inaccurate", 0.0))
    monkeypatch.setattr(LHSFeasibilitySolver, "solver_name", "FAKE")
    with pytest.raises(SolverStatusError):
        decide_lhs(xz_assemblage(1.0), config=SolverConfig(accept_inaccurate=False))


def constant_certificate(value: float, mu: float) -> RawCertificate:
    F_raw = np.zeros((2, 2, 2, 2), dtype=complex)
    for a in range(2):
        for x in range(2):
            F_raw[:, :, a, x] = value * np.eye(2)
    return RawCertificate(F_raw=F_raw, mu=mu, rhs=1.0, margin=0.1, status="optimal", solve_time=0.0)


@pytest.mark.parametrize(
    "normalized, certificate",
    [(False, constant_certificate(-0.5, 0.0)), (True, constant_certificate(0.5, 1.0))],
)
def test_degenerate_certificate_is_distinct_error(monkeypatch, normalized, certificate):
    def _infeasible(self, sigma, normalized=False):
        return FeasibilityOutcome(False, "infeasible", "FAKE", 0.0)

    monkeypatch.setattr(LHSFeasibilitySolver, "decide", _infeasible)
    monkeypatch.setattr(LHSFeasibilitySolver, "certificate", lambda self, sigma, normalized=False: certificate)
    with pytest.raises(DegenerateCertificate):
        decide_lhs(xz_assemblage(1.0), normalized=normalized)


@requires_sdp
def test_maximally_entangled_assemblage_is_steerable():
    sigma = xz_assemblage(1.0)
    result = decide_lhs(sigma, normalized=True)
    feasible, model, witness = result

    assert not feasible
    assert model is None
    assert witness.shape == (2, 2, 2, 2)
    assert witness_strategy_sum(witness, result.strategies) == pytest.approx(1.0, abs=1e-8)
    assert witness_value(witness, sigma) > 1.0
    assert witness_lhs_bound(witness, result.strategies) <= 1.0 + 1e-5
    assert result.witness_margin > 0.0


@requires_sdp
def test_noisy_assemblage_below_threshold_is_lhs():
    sigma = xz_assemblage(0.5)
    result = decide_lhs(sigma, normalized=True)

    assert result.feasible
    assert result.witness is None
    assert result.model.shape == (2, 2, 4)
    assert check_lhs_model(sigma, result.model, tol=1e-5, normalized=True)


@requires_sdp
def test_genuine_lhs_assemblage_round_trips():
    rng = np.random.default_rng(11)
    sigma, _ = random_lhs_assemblage(2, 2, 3, rng=rng)
    result = decide_lhs(sigma, normalized=True)

    assert result.feasible
    rebuilt = reconstruct_assemblage(result.model, result.strategies)
    assert np.allclose(rebuilt, sigma, atol=1e-5)
    assert abs(np.trace(result.model.sum(axis=2)).real - 1.0) < 1e-5


@requires_sdp
def test_unnormalized_lhs_assemblage_with_three_outcomes():
    rng = np.random.default_rng(5)
    sigma, _ = random_lhs_assemblage(2, 3, 2, rng=rng, normalized=False)
    result = decide_lhs(sigma, normalized=False)
    assert result.feasible
    assert check_lhs_model(sigma, result.model, tol=1e-4 * max(1.0, float(np.max(np.abs(sigma)))))


@requires_sdp
def test_single_outcome_is_always_lhs():
    rho = np.array([[0.7, 0.2j], [-0.2j, 0.3]])
    sigma = np.repeat(rho[:, :, np.newaxis, np.newaxis], 3, axis=3)
    result = decide_lhs(sigma, normalized=True)
    assert result.feasible
    assert np.allclose(result.model[:, :, 0], rho, atol=1e-5)


@requires_sdp
def test_single_input_is_always_lhs():
    sigma = xz_assemblage(1.0)[:, :, :, :1]
    result = decide_lhs(sigma, normalized=True)
    assert result.feasible
    assert check_lhs_model(sigma, result.model, tol=1e-5)


@requires_sdp
def test_scaling_preserves_feasibility_without_normalization():
    lhs_sigma = xz_assemblage(0.5)
    steer_sigma = xz_assemblage(1.0)
    assert decide_lhs(3.0 * lhs_sigma, normalized=False).feasible
    assert decide_lhs(0.25 * lhs_sigma, normalized=False).feasible

    for scale in (0.25, 3.0):
        scaled = decide_lhs(scale * steer_sigma, normalized=False)
        assert not scaled.feasible
        assert witness_value(scaled.witness, scale * steer_sigma) > 1.0
        assert witness_strategy_sum(scaled.witness, scaled.strategies) == pytest.approx(1.0, abs=1e-8)
        assert scaled.witness_margin > 0.0


@requires_sdp
def test_subnormalized_steerable_assemblage_witness_exceeds_one():
    sigma = 0.25 * xz_assemblage(1.0)
    result = decide_lhs(sigma, normalized=False)
    assert not result.feasible
    assert witness_value(result.witness, sigma) > 1.0
    assert witness_strategy_sum(result.witness, result.strategies) == pytest.approx(1.0, abs=1e-8)
    assert result.witness_margin == pytest.approx(witness_value(result.witness, sigma) - 1.0)

    # Every LHS assemblage scores less per unit trace than sigma does.
    rng = np.random.default_rng(2)
    ratio = witness_value(result.witness, sigma) / 0.25
    for _ in range(3):
        lhs_sigma, _ = random_lhs_assemblage(2, 2, 2, rng=rng, normalized=False)
        lhs_trace = float(np.real(np.einsum("iiax->", lhs_sigma))) / 2
        assert witness_value(result.witness, lhs_sigma) / lhs_trace < ratio


@requires_sdp
def test_infeasible_verdict_costs_one_extra_solve(monkeypatch):
    stages = []
    solve = LHSFeasibilitySolver._solve

    def _recording_solve(self, prob, stage):
        stages.append(stage)
        return solve(self, prob, stage)

    monkeypatch.setattr(LHSFeasibilitySolver, "_solve", _recording_solve)
    decide_lhs(xz_assemblage(0.5), normalized=True)
    assert stages == ["decision"]
    stages.clear()
    decide_lhs(xz_assemblage(1.0), normalized=True)
    assert stages == ["decision", "certificate"]


@requires_sdp
def test_three_input_certificate_builds_without_constant_warnings():
    sigma = assemblage_from_state(noisy_maximally_entangled(1.0), pauli_measurements(("X", "Y", "Z")))
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        for normalized in (True, False):
            result = decide_lhs(sigma, normalized=normalized)
            assert not result.feasible
            assert witness_value(result.witness, sigma) > 1.0
    assert not [w for w in caught if "nested list" in str(w.message)]


@requires_sdp
def test_wrong_scale_is_infeasible_under_normalization():
    solver = LHSFeasibilitySolver()
    sigma = xz_assemblage(0.5)
    assert solver.decide(sigma, normalized=True).feasible
    assert not solver.decide(3.0 * sigma, normalized=True).feasible
    assert solver.decide(3.0 * sigma, normalized=False).feasible


@requires_sdp
def test_scs_backend_agrees_on_verdict():
    from lhssdp.backends import installed_solvers

    if "SCS" not in installed_solvers():
        pytest.skip("SCS not installed")
    cfg = SolverConfig(backend="scs", solver_tol=1e-7, max_iters=50000)
    assert decide_lhs(xz_assemblage(0.4), normalized=True, config=cfg).feasible
    assert not decide_lhs(xz_assemblage(1.0), normalized=True, config=cfg).feasible
