"""
Strongly typed containers for case configuration and derived fluid states.

Global unit and naming conventions (law of the land):
- SI units throughout: rho [kg/m^3], e/h [J/kg], s [J/kg/K], P [Pa], T [K]
- Data-driven control variables are (Density, Energy); flamelet control
  variables are (ProgressVariable, EnthalpyTot[, MixtureFraction])
- Derivative names follow d<num>d<den>_<held constant>, e.g. dsde_rho = (ds/de)_rho
- Derived-state fields are float64 scalars; non-finite values are allowed
  and signal a manifold domain problem, not a bug
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import numpy as np

# Newton inversion defaults: absolute residual tolerances and iteration cap.
INVERSION_MAX_ITER = 1000
TOL_PRESSURE = 10.0  # Pa
TOL_TEMPERATURE = 1.0  # K
TOL_ENTHALPY = 10.0  # J/kg
TOL_ENTROPY = 1.0  # J/kg/K


@dataclass(slots=True)
class CaseMeta:
    """Metadata for the case block."""

    id: str
    title: str = ""
    notes: Optional[str] = None


@dataclass(slots=True)
class InversionTolerances:
    """Absolute residual tolerances and iteration cap for the Newton inversions."""

    pressure: float = TOL_PRESSURE
    temperature: float = TOL_TEMPERATURE
    enthalpy: float = TOL_ENTHALPY
    entropy: float = TOL_ENTROPY
    max_iter: int = INVERSION_MAX_ITER

    def __post_init__(self) -> None:
        for name in ("pressure", "temperature", "enthalpy", "entropy"):
            v = float(getattr(self, name))
            if not np.isfinite(v) or v <= 0.0:
                raise ValueError(f"tolerance {name} must be finite and > 0, got {v}")
            setattr(self, name, v)
        if int(self.max_iter) < 1:
            raise ValueError(f"max_iter must be >= 1, got {self.max_iter}")
        self.max_iter = int(self.max_iter)


@dataclass(slots=True)
class DataDrivenConfig:
    """Data-driven (entropy-manifold) fluid model options.

    Attributes
    ----------
    method : str
        Manifold backend: "mlp" or "lut".
    filename : Path
        Network parameter file or lookup table.
    relaxation : float
        Newton under-relaxation factor, applied on every inversion iteration.
    density_init, energy_init : float
        Fixed initial guesses for every inversion call.
    strict_convergence : bool
        Raise InversionConvergenceError when the iteration cap is hit.
    output_names : Mapping[str, str]
        Optional native-name overrides for the entropy outputs.
    """

    method: str
    filename: Path
    relaxation: float = 0.05
    density_init: float = 1.2
    energy_init: float = 2.5e5
    strict_convergence: bool = False
    output_names: Mapping[str, str] = field(default_factory=dict)
    tolerances: InversionTolerances = field(default_factory=InversionTolerances)

    def __post_init__(self) -> None:
        if not isinstance(self.filename, Path):
            raise TypeError("filename must be pathlib.Path (loader must convert str -> Path).")
        if not isinstance(self.tolerances, InversionTolerances):
            raise TypeError("tolerances must be InversionTolerances (loader must build dataclass).")
        # relaxation is conventionally in (0, 1]; not range-checked
        self.relaxation = float(self.relaxation)
        self.density_init = float(self.density_init)
        self.energy_init = float(self.energy_init)


@dataclass(slots=True)
class FlameletConfig:
    """Flamelet manifold options (progress variable / enthalpy [/ mixture fraction])."""

    filename: Path
    method: str = "lut"
    n_control_vars: int = 2
    user_scalars: List[str] = field(default_factory=list)
    user_sources: List[str] = field(default_factory=list)
    lookups: List[str] = field(default_factory=list)
    operating_pressure: float = 101325.0

    def __post_init__(self) -> None:
        if not isinstance(self.filename, Path):
            raise TypeError("filename must be pathlib.Path (loader must convert str -> Path).")
        if self.n_control_vars not in (2, 3):
            raise ValueError(f"n_control_vars must be 2 or 3, got {self.n_control_vars}")
        if len(self.user_sources) != 2 * len(self.user_scalars):
            raise ValueError(
                f"user_sources must list a production and a consumption term per user scalar: "
                f"{len(self.user_scalars)} scalars need {2 * len(self.user_scalars)} names, "
                f"got {len(self.user_sources)}"
            )
        if len(set(self.lookups)) != len(self.lookups):
            raise ValueError(f"Duplicate names in lookups: {self.lookups}")

    @property
    def n_user_scalars(self) -> int:
        return len(self.user_scalars)

    @property
    def n_scalars(self) -> int:
        return self.n_control_vars + len(self.user_scalars)


@dataclass(slots=True)
class CaseOutput:
    csv_file: Optional[Path] = None


@dataclass(slots=True)
class FluidCaseConfig:
    """Top-level case configuration container."""

    case: CaseMeta
    datadriven: Optional[DataDrivenConfig] = None
    flamelet: Optional[FlameletConfig] = None
    evaluations: List[Dict[str, Any]] = field(default_factory=list)
    output: CaseOutput = field(default_factory=CaseOutput)

    def __post_init__(self) -> None:
        if self.datadriven is None and self.flamelet is None:
            raise ValueError("Case must configure at least one of 'datadriven' or 'flamelet'.")
        if self.datadriven is not None and not isinstance(self.datadriven, DataDrivenConfig):
            raise TypeError("datadriven must be DataDrivenConfig (loader must build dataclass).")
        if self.flamelet is not None and not isinstance(self.flamelet, FlameletConfig):
            raise TypeError("flamelet must be FlameletConfig (loader must build dataclass).")


@dataclass(slots=True)
class ThermoState:
    """Derived thermodynamic state at one (density, energy) point.

    Raw manifold outputs: entropy and its first/second partial derivatives.
    Derived: temperature, pressure, speed of sound squared, heat capacities,
    gamma, gas constant and first derivatives of T and P.

    dTdrho_e is identically zero: this entropy-manifold scheme keeps only the
    leading-order energy dependence of temperature. It is a property of the
    scheme, not a thermodynamic law.
    """

    density: float
    energy: float
    entropy: float
    dsde_rho: float
    dsdrho_e: float
    d2sde2: float
    d2sdedrho: float
    d2sdrho2: float
    temperature: float
    pressure: float
    sound_speed2: float
    cp: float
    cv: float
    gamma: float
    gamma_minus_one: float
    gas_constant: float
    dTde_rho: float
    dTdrho_e: float
    dPde_rho: float
    dPdrho_e: float
    extrapolated: bool = False

    @property
    def enthalpy(self) -> float:
        return self.energy + self.pressure / self.density

    @property
    def sound_speed(self) -> float:
        return float(np.sqrt(self.sound_speed2)) if self.sound_speed2 >= 0.0 else float("nan")

    def is_finite(self) -> bool:
        """True if every derived quantity is finite."""
        return bool(
            np.all(
                np.isfinite(
                    [
                        self.temperature,
                        self.pressure,
                        self.sound_speed2,
                        self.cp,
                        self.cv,
                        self.gamma,
                        self.gas_constant,
                    ]
                )
            )
        )


@dataclass(slots=True)
class FlameletState:
    """Thermo/transport state from one flamelet manifold lookup."""

    temperature: float
    cp: float
    cv: float
    viscosity: float
    conductivity: float
    mass_diffusivity: float
    molar_weight: float
    density: float
    pressure: float
    extrapolated: bool = False
