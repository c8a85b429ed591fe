import numpy as np
import pytest
from scipy.io import savemat

from lhssdp.assemblage import assemblage_from_state, noisy_maximally_entangled, pauli_measurements
from lhssdp.backends import has_sdp_backend
from lhssdp.cli import _build_parser, load_assemblage, main

requires_sdp = pytest.mark.skipif(not has_sdp_backend(), reason="no SDP-capable cvxpy solver installed")


def xz_assemblage(eta: float) -> np.ndarray:
    return assemblage_from_state(noisy_maximally_entangled(eta), pauli_measurements(("X", "Z")))


def test_parser_requires_command():
    with pytest.raises(SystemExit):
        _build_parser().parse_args([])


def test_load_assemblage_formats(tmp_path):
    sigma = xz_assemblage(0.7)
    np.save(tmp_path / "sigma.npy", sigma)
    np.savez(tmp_path / "bundle.npz", assemblage=sigma)
    savemat(str(tmp_path / "bundle.mat"), {"data": {"sigma": sigma}})

    assert np.allclose(load_assemblage(tmp_path / "sigma.npy"), sigma)
    assert np.allclose(load_assemblage(tmp_path / "bundle.npz", key="assemblage"), sigma)
    assert np.allclose(load_assemblage(tmp_path / "bundle.mat", key="data.sigma"), sigma)
    with pytest.raises(KeyError):
        load_assemblage(tmp_path / "bundle.npz", key="missing")


def test_mat_drops_trailing_singletons(tmp_path):
    sigma = xz_assemblage(0.7)[:, :, :, :1]
    savemat(str(tmp_path / "single.mat"), {"sigma": sigma})
    loaded = load_assemblage(tmp_path / "single.mat")
    assert loaded.shape == (2, 2, 2, 1)


def test_invalid_assemblage_exit_code(tmp_path, capsys):
    sigma = xz_assemblage(1.0)
    sigma[:, :, 0, 0] = -sigma[:, :, 0, 0]
    np.save(tmp_path / "bad.npy", sigma)
    assert main(["decide", "--input", str(tmp_path / "bad.npy")]) == 2
    assert "invalid assemblage" in capsys.readouterr().out


@requires_sdp
def test_list_solvers(capsys):
    assert main(["list-solvers"]) == 0
    out = capsys.readouterr().out
    assert "auto backend:" in out


@requires_sdp
def test_decide_writes_outputs(tmp_path, capsys):
    np.save(tmp_path / "steer.npy", xz_assemblage(1.0))
    np.save(tmp_path / "local.npy", xz_assemblage(0.3))

    code = main(["decide", "--input", str(tmp_path / "steer.npy"), "--normalized", "--output", str(tmp_path / "steer.npz")])
    assert code == 1
    assert "feasible: 0" in capsys.readouterr().out
    with np.load(tmp_path / "steer.npz") as data:
        assert int(data["feasible"]) == 0
        assert data["witness"].shape == (2, 2, 2, 2)

    code = main(["decide", "--input", str(tmp_path / "local.npy"), "--output", str(tmp_path / "local.npz")])
    assert code == 0
    with np.load(tmp_path / "local.npz") as data:
        assert data["model"].shape == (2, 2, 4)


@requires_sdp
def test_demo_command(capsys):
    assert main(["demo", "--eta", "0.5"]) == 0
    assert main(["demo", "--eta", "0.95"]) == 1
    assert "witness value" in capsys.readouterr().out
