"""User-facing CLI for the LHS decision procedure."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Any, Dict, Sequence

import numpy as np
from scipy.io import loadmat, savemat

from .assemblage import assemblage_from_state, noisy_maximally_entangled, pauli_measurements
from .backends import SDP_BACKENDS, first_sdp_backend, installed_solvers
from .certificate import witness_value
from .errors import DegenerateCertificate, InvalidAssemblage, SolverStatusError
from .lhs import LHSResult, decide_lhs
from .solver import SolverConfig


def _loadmat_compat(path: str | Path) -> Dict[str, Any]:
    # No squeezing: a dB = 1 assemblage would otherwise lose its leading axes.
    raw = loadmat(str(path), squeeze_me=False, struct_as_record=False)
    return {k: v for k, v in raw.items() if not str(k).startswith("__")}


def _extract_key(data: Dict[str, Any], key: str) -> Any:
    parts = str(key).split(".")
    cur: Any = data
    walked = []
    for part in parts:
        walked.append(part)
        if isinstance(cur, np.ndarray) and cur.dtype == object and cur.size == 1:
            cur = cur.item()
        if isinstance(cur, dict):
            if part not in cur:
                raise KeyError(f"Missing key '{'.'.join(walked)}' in input data.")
            cur = cur[part]
            continue
        if hasattr(cur, part):
            cur = getattr(cur, part)
            continue
        raise KeyError(f"Cannot resolve '{part}' in key path '{key}'.")
    return cur


def _as_assemblage_array(value: Any, label: str) -> np.ndarray:
    arr = np.asarray(value, dtype=complex)
    # MAT files drop trailing singleton dimensions (ma = 1, or oa = ma = 1).
    while arr.ndim < 4:
        arr = arr[..., np.newaxis]
    if arr.ndim != 4:
        raise ValueError(f"{label} must be a (dB, dB, oa, ma) array. Got shape {arr.shape}.")
    return arr


def load_assemblage(path: str | Path, key: str = "sigma") -> np.ndarray:
    """Load an assemblage from ``.npy``, ``.npz`` or MAT files."""
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix == ".npy":
        return _as_assemblage_array(np.load(path), str(path))
    if suffix == ".npz":
        with np.load(path) as data:
            return _as_assemblage_array(_extract_key(dict(data), key), key)
    return _as_assemblage_array(_extract_key(_loadmat_compat(path), key), key)


def save_result(path: str | Path, result: LHSResult) -> None:
    path = Path(path)
    payload: Dict[str, Any] = {
        "feasible": np.array(int(result.feasible)),
        "strategies": result.strategies,
    }
    if result.model is not None:
        payload["model"] = result.model
    if result.witness is not None:
        payload["witness"] = result.witness
    if path.suffix.lower() == ".mat":
        savemat(str(path), payload)
    else:
        np.savez(path, **payload)


def _print_result(result: LHSResult, sigma: np.ndarray) -> None:
    print(f"feasible: {int(result.feasible)}")
    print(f"status:   {result.status} ({result.solver}, {result.solve_time:.3f}s)")
    if result.witness is not None:
        print(f"witness value: {witness_value(result.witness, sigma):.8f}")
        print(f"witness margin: {result.witness_margin:.8f}")


def _config_from_args(args: argparse.Namespace) -> SolverConfig:
    return SolverConfig(
        backend=str(args.backend),
        solver_tol=float(args.tol),
        max_iters=int(args.max_iters),
        verbose=bool(args.verbose),
    )


def _add_solver_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--backend", choices=["auto", "clarabel", "scs", "mosek", "cvxopt"], default="auto")
    p.add_argument("--tol", type=float, default=1e-8, help="Solver feasibility/gap tolerance.")
    p.add_argument("--max-iters", type=int, default=20000)
    p.add_argument("--verbose", action="store_true", default=False, help="Print solver output.")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="python -m lhssdp.cli", description="LHS model decision via SDP.")
    parser.add_argument("--log-level", default="WARNING", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    sub = parser.add_subparsers(dest="command", required=True)

    p_list = sub.add_parser("list-solvers", help="List installed cvxpy solvers usable for the SDP.")
    p_list.set_defaults(func=_cmd_list_solvers)

    p_decide = sub.add_parser("decide", help="Decide whether an assemblage admits an LHS model.")
    p_decide.add_argument("--input", required=True, type=str, help="Path to .npy, .npz or MAT file.")
    p_decide.add_argument("--key", default="sigma", type=str, help="Key/path of the assemblage in .npz/MAT input.")
    p_decide.add_argument("--normalized", action="store_true", default=False)
    p_decide.add_argument("--no-validate", action="store_true", default=False)
    p_decide.add_argument("--output", default=None, type=str, help="Write model/witness to .npz or .mat.")
    _add_solver_args(p_decide)
    p_decide.set_defaults(func=_cmd_decide)

    p_demo = sub.add_parser("demo", help="Decide the noisy two-qubit maximally entangled assemblage.")
    p_demo.add_argument("--eta", type=float, default=1.0, help="Visibility of |Phi+>.")
    p_demo.add_argument("--measurements", default="XZ", type=str, help="Pauli axes measured by the steering party.")
    _add_solver_args(p_demo)
    p_demo.set_defaults(func=_cmd_demo)
    return parser


def _cmd_list_solvers(args: argparse.Namespace) -> int:
    _ = args
    installed = installed_solvers()
    print("Installed cvxpy solvers:")
    for name in sorted(installed):
        marker = " (SDP)" if name in SDP_BACKENDS else ""
        print(f"  - {name}{marker}")
    print(f"auto backend: {first_sdp_backend(installed)}")
    return 0


def _run(sigma: np.ndarray, normalized: bool, config: SolverConfig, validate: bool = True) -> LHSResult | None:
    try:
        return decide_lhs(sigma, normalized=normalized, config=config, validate=validate)
    except InvalidAssemblage as exc:
        print(f"[error] invalid assemblage: {exc}")
    except SolverStatusError as exc:
        print(f"[error] solver {exc.solver} ({exc.stage}): {exc}")
    except DegenerateCertificate as exc:
        print(f"[error] degenerate certificate: {exc}")
    return None


def _cmd_decide(args: argparse.Namespace) -> int:
    sigma = load_assemblage(args.input, key=args.key)
    result = _run(sigma, bool(args.normalized), _config_from_args(args), validate=not args.no_validate)
    if result is None:
        return 2
    _print_result(result, sigma)
    if args.output:
        save_result(args.output, result)
    return 0 if result.feasible else 1


def _cmd_demo(args: argparse.Namespace) -> int:
    rho = noisy_maximally_entangled(float(args.eta))
    sigma = assemblage_from_state(rho, pauli_measurements(tuple(str(args.measurements))))
    result = _run(sigma, True, _config_from_args(args))
    if result is None:
        return 2
    _print_result(result, sigma)
    return 0 if result.feasible else 1


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    logging.basicConfig(level=getattr(logging, str(args.log_level)), format="%(levelname)s %(name)s: %(message)s")
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
