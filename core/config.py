"""
Case configuration loading (YAML -> nested dataclasses).

Relative file paths are resolved against the directory of the YAML file.
Unknown keys are rejected so that typos fail at load time instead of being
silently ignored.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from core.types import (
    CaseMeta,
    CaseOutput,
    DataDrivenConfig,
    FlameletConfig,
    FluidCaseConfig,
    InversionTolerances,
)

_DATADRIVEN_KEYS = {
    "method",
    "filename",
    "relaxation",
    "density_init",
    "energy_init",
    "strict_convergence",
    "output_names",
    "tolerances",
}
_TOLERANCE_KEYS = {"pressure", "temperature", "enthalpy", "entropy", "max_iter"}
_FLAMELET_KEYS = {
    "method",
    "filename",
    "n_control_vars",
    "user_scalars",
    "user_sources",
    "lookups",
    "operating_pressure",
}
_TOP_KEYS = {"case", "datadriven", "flamelet", "evaluations", "output"}


def _resolve_path(base: Path, value: str | Path) -> Path:
    """Resolve a possibly relative path against base."""
    path = Path(value).expanduser()
    return path if path.is_absolute() else (base / path).resolve()


def _read_yaml_text(cfg_file: Path) -> str:
    try:
        return cfg_file.read_text(encoding="utf-8-sig")
    except UnicodeDecodeError:
        return cfg_file.read_text()


def _check_keys(block: str, raw: Mapping[str, Any], allowed: set) -> None:
    unknown = set(raw) - allowed
    if unknown:
        raise ValueError(f"Unsupported keys in '{block}': {sorted(unknown)}. Allowed: {sorted(allowed)}")


def _require(block: str, raw: Mapping[str, Any], key: str) -> Any:
    if key not in raw:
        raise ValueError(f"Missing required key '{block}.{key}'.")
    return raw[key]


def build_tolerances(raw: Optional[Mapping[str, Any]]) -> InversionTolerances:
    raw = dict(raw or {})
    _check_keys("datadriven.tolerances", raw, _TOLERANCE_KEYS)
    return InversionTolerances(**raw)


def build_datadriven_config(raw: Mapping[str, Any], base: Path) -> DataDrivenConfig:
    _check_keys("datadriven", raw, _DATADRIVEN_KEYS)
    output_names = raw.get("output_names") or {}
    if not isinstance(output_names, dict):
        raise ValueError(f"datadriven.output_names must be a mapping, got {type(output_names).__name__}")
    return DataDrivenConfig(
        method=str(_require("datadriven", raw, "method")),
        filename=_resolve_path(base, _require("datadriven", raw, "filename")),
        relaxation=float(raw.get("relaxation", 0.05)),
        density_init=float(raw.get("density_init", 1.2)),
        energy_init=float(raw.get("energy_init", 2.5e5)),
        strict_convergence=bool(raw.get("strict_convergence", False)),
        output_names={str(k): str(v) for k, v in output_names.items()},
        tolerances=build_tolerances(raw.get("tolerances")),
    )


def build_flamelet_config(raw: Mapping[str, Any], base: Path) -> FlameletConfig:
    _check_keys("flamelet", raw, _FLAMELET_KEYS)
    return FlameletConfig(
        filename=_resolve_path(base, _require("flamelet", raw, "filename")),
        method=str(raw.get("method", "lut")),
        n_control_vars=int(raw.get("n_control_vars", 2)),
        user_scalars=[str(s) for s in raw.get("user_scalars", []) or []],
        user_sources=[str(s) for s in raw.get("user_sources", []) or []],
        lookups=[str(s) for s in raw.get("lookups", []) or []],
        operating_pressure=float(raw.get("operating_pressure", 101325.0)),
    )


def load_case_config(cfg_path: str | Path) -> FluidCaseConfig:
    """Load YAML file into FluidCaseConfig with nested dataclasses."""
    cfg_file = Path(cfg_path).expanduser().resolve()
    if not cfg_file.exists():
        raise FileNotFoundError(f"Case file not found: {cfg_file}")
    raw = yaml.safe_load(_read_yaml_text(cfg_file)) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"Invalid case file {cfg_file}: expected a mapping at top level")
    _check_keys("<top>", raw, _TOP_KEYS)
    base = cfg_file.parent

    case_raw: Dict[str, Any] = dict(raw.get("case") or {"id": cfg_file.stem})
    case_cfg = CaseMeta(**case_raw)

    dd_cfg = build_datadriven_config(raw["datadriven"], base) if raw.get("datadriven") else None
    fl_cfg = build_flamelet_config(raw["flamelet"], base) if raw.get("flamelet") else None

    evaluations = list(raw.get("evaluations") or [])
    for i, ev in enumerate(evaluations):
        if not isinstance(ev, dict) or "kind" not in ev:
            raise ValueError(f"evaluations[{i}] must be a mapping with a 'kind' key, got {ev!r}")

    out_raw = dict(raw.get("output") or {})
    _check_keys("output", out_raw, {"csv_file"})
    csv_file = out_raw.get("csv_file")
    output_cfg = CaseOutput(csv_file=_resolve_path(base, csv_file) if csv_file else None)

    return FluidCaseConfig(
        case=case_cfg,
        datadriven=dd_cfg,
        flamelet=fl_cfg,
        evaluations=evaluations,
        output=output_cfg,
    )
