"""
Driver to evaluate data-driven and flamelet fluid models from a case file.

Responsibilities:
- Load FluidCaseConfig from YAML.
- Build the configured fluid model(s) (manifold files are loaded once).
- Run the listed point evaluations (forward or inverse).
- Log one summary line per evaluation; optionally write a CSV of derived states.
"""

from __future__ import annotations

import argparse
import csv
import logging
import traceback
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from core.config import load_case_config
from core.logging_utils import get_log_level_from_env, is_root_rank, setup_logging
from core.types import FluidCaseConfig, ThermoState
from properties.datadriven_fluid import DataDrivenFluid
from properties.flamelet_fluid import FluidFlamelet
from solvers.nonlinear_types import InversionDiagnostics

logger = logging.getLogger(__name__)

# kind -> (method name on DataDrivenFluid, argument keys in call order)
_DATADRIVEN_KINDS: Dict[str, Tuple[str, Tuple[str, ...]]] = {
    "rhoe": ("set_state_rhoe", ("rho", "e")),
    "PT": ("set_state_PT", ("P", "T")),
    "Prho": ("set_state_Prho", ("P", "rho")),
    "rhoT": ("set_state_rhoT", ("rho", "T")),
    "hs": ("set_state_hs", ("h", "s")),
    "Ps": ("set_state_Ps", ("P", "s")),
}
_KIND_ALIAS = {k.lower(): k for k in _DATADRIVEN_KINDS}
_KIND_ALIAS["flamelet"] = "flamelet"

CSV_COLUMNS = (
    "index",
    "kind",
    "converged",
    "n_iter",
    "extrapolated",
    "density",
    "energy",
    "enthalpy",
    "entropy",
    "temperature",
    "pressure",
    "sound_speed2",
    "cp",
    "cv",
    "gamma",
    "viscosity",
    "conductivity",
)


def _normalize_kind(kind: Any) -> str:
    val = str(kind).strip().lower()
    if val not in _KIND_ALIAS:
        raise ValueError(f"Unknown evaluation kind {kind!r}; expected one of {sorted(_KIND_ALIAS.values())}")
    return _KIND_ALIAS[val]


def _thermo_row(state: ThermoState) -> Dict[str, Any]:
    return {
        "extrapolated": bool(state.extrapolated),
        "density": state.density,
        "energy": state.energy,
        "enthalpy": state.enthalpy,
        "entropy": state.entropy,
        "temperature": state.temperature,
        "pressure": state.pressure,
        "sound_speed2": state.sound_speed2,
        "cp": state.cp,
        "cv": state.cv,
        "gamma": state.gamma,
    }


def _run_datadriven(fluid: DataDrivenFluid, kind: str, ev: Mapping[str, Any]) -> Dict[str, Any]:
    method_name, keys = _DATADRIVEN_KINDS[kind]
    missing = [k for k in keys if k not in ev]
    if missing:
        raise ValueError(f"Evaluation '{kind}' is missing inputs {missing}: {dict(ev)!r}")
    args = [float(ev[k]) for k in keys]
    method: Callable[..., Optional[InversionDiagnostics]] = getattr(fluid, method_name)
    diag = method(*args)

    row = _thermo_row(fluid.state)
    if diag is None:
        row.update(converged=True, n_iter=0)
        logger.info(
            "[%s] rho=%.6g e=%.6g -> T=%.6g P=%.6g c2=%.6g extrap=%s",
            kind,
            args[0],
            args[1],
            fluid.state.temperature,
            fluid.state.pressure,
            fluid.state.sound_speed2,
            fluid.state.extrapolated,
        )
    else:
        row.update(converged=diag.converged, n_iter=diag.n_iter)
        log = logger.info if diag.converged else logger.warning
        log(
            "[%s] targets=%s converged=%s iters=%d rho=%.6g e=%.6g T=%.6g P=%.6g",
            kind,
            tuple(args),
            diag.converged,
            diag.n_iter,
            fluid.state.density,
            fluid.state.energy,
            fluid.state.temperature,
            fluid.state.pressure,
        )
    return row


def _run_flamelet(fluid: FluidFlamelet, ev: Mapping[str, Any]) -> Dict[str, Any]:
    if "scalars" not in ev:
        raise ValueError(f"Evaluation 'flamelet' needs a 'scalars' list: {dict(ev)!r}")
    scalars = [float(v) for v in ev["scalars"]]
    fluid.set_state_T(None, scalars)
    state = fluid.state
    if fluid.config.lookups:
        lookups = fluid.evaluate_lookups(scalars)
        logger.info("[flamelet] lookups: %s", lookups)
    logger.info(
        "[flamelet] scalars=%s -> T=%.6g rho=%.6g cp=%.6g mu=%.6g extrap=%s",
        scalars,
        state.temperature,
        state.density,
        state.cp,
        state.viscosity,
        fluid.extrapolation,
    )
    return {
        "converged": True,
        "n_iter": 0,
        "extrapolated": bool(fluid.extrapolation),
        "density": state.density,
        "temperature": state.temperature,
        "pressure": state.pressure,
        "cp": state.cp,
        "cv": state.cv,
        "gamma": state.cp / state.cv,
        "viscosity": state.viscosity,
        "conductivity": state.conductivity,
    }


def build_models(cfg: FluidCaseConfig) -> Tuple[Optional[DataDrivenFluid], Optional[FluidFlamelet]]:
    dd = DataDrivenFluid(cfg.datadriven) if cfg.datadriven is not None else None
    fl = FluidFlamelet(cfg.flamelet) if cfg.flamelet is not None else None
    return dd, fl


def run_evaluations(
    cfg: FluidCaseConfig,
    datadriven: Optional[DataDrivenFluid],
    flamelet: Optional[FluidFlamelet],
) -> List[Dict[str, Any]]:
    rows: List[Dict[str, Any]] = []
    for i, ev in enumerate(cfg.evaluations):
        kind = _normalize_kind(ev["kind"])
        if kind == "flamelet":
            if flamelet is None:
                raise ValueError(f"evaluations[{i}] needs a 'flamelet' block in the case file.")
            row = _run_flamelet(flamelet, ev)
        else:
            if datadriven is None:
                raise ValueError(f"evaluations[{i}] ({kind}) needs a 'datadriven' block in the case file.")
            row = _run_datadriven(datadriven, kind, ev)
        row.update(index=i, kind=kind)
        rows.append(row)
    return rows


def write_csv(path: Path, rows: Sequence[Mapping[str, Any]]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", newline="", encoding="utf-8") as fh:
        writer = csv.DictWriter(fh, fieldnames=list(CSV_COLUMNS), restval="", extrasaction="ignore")
        writer.writeheader()
        for row in rows:
            writer.writerow(row)


def run_case(cfg_path: str | Path, *, dry_run: bool = False, log_level: int | str = logging.INFO) -> int:
    """Run one fluid case. Return 0 on success, non-zero on failure."""
    cfg_path = str(cfg_path)
    try:
        level = get_log_level_from_env(default=log_level)
        setup_logging(0 if is_root_rank() else 1, level=level, quiet_nonroot=True)

        cfg = load_case_config(cfg_path)
        logger.info("Case '%s' loaded from %s", cfg.case.id, cfg_path)

        datadriven, flamelet = build_models(cfg)

        if dry_run:
            logger.info("Dry run requested: config and models built; skipping evaluations.")
            return 0

        rows = run_evaluations(cfg, datadriven, flamelet)

        n_failed = sum(1 for r in rows if not r.get("converged", True))
        if cfg.output.csv_file is not None:
            write_csv(cfg.output.csv_file, rows)
            logger.info("Wrote %d rows to %s", len(rows), cfg.output.csv_file)
        logger.info("Completed %d evaluations (%d not converged).", len(rows), n_failed)
        return 0 if n_failed == 0 else 2
    except Exception:
        tb = traceback.format_exc()
        logger.error("Unhandled exception:\n%s", tb)
        return 99


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Evaluate data-driven / flamelet fluid models for a case.")
    parser.add_argument("case_yaml", help="Path to case YAML file.")
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (overridden by FLUID_LOG_LEVEL / FLUID_DEBUG).",
    )
    parser.add_argument(
        "--dry_run",
        action="store_true",
        help="Load config and build models only; skip evaluations.",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parse_args(argv)
    return run_case(args.case_yaml, dry_run=args.dry_run, log_level=args.log_level)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
