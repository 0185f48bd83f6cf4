"""
Flamelet fluid model: forward lookups on a progress-variable/enthalpy manifold.

Scalar vector layout (solver order):
    [ProgressVariable, EnthalpyTot, (MixtureFraction), user scalars...]

Three lookup groups, each with its own output map built once at construction:
- TD: temperature, heat capacity, viscosity, conductivity, diffusivity, molar weight
- SOURCES: net progress-variable source, then (production, consumption) per user scalar
- LOOKUP: passive quantities named in the configuration

Density follows from the ideal-gas closure at the operating pressure. The
extrapolation flag is OR-ed over every group evaluated since the last
``set_state_T`` call.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Dict, Optional, Sequence

import numpy as np

from core.logging_utils import log_on_root
from core.types import FlameletConfig, FlameletState
from manifold.adapter import ManifoldAdapter
from manifold.errors import ManifoldConfigError
from manifold.factory import load_manifold as open_manifold
from manifold.output_map import OutputMap

logger = logging.getLogger(__name__)

UNIVERSAL_GAS_CONSTANT = 8.3144598  # J/(mol K)

I_PROGVAR = 0
I_ENTH = 1
I_MIXFRAC = 2

NAME_PROGVAR = "ProgressVariable"
NAME_ENTH = "EnthalpyTot"
NAME_MIXFRAC = "MixtureFraction"

TD_OUTPUTS = (
    ("temperature", "Temperature"),
    ("heat_capacity", "Cp"),
    ("viscosity", "ViscosityDyn"),
    ("conductivity", "Conductivity"),
    ("diffusion_coefficient", "DiffusionCoefficient"),
    ("molar_weight", "MolarWeightMix"),
)
SOURCE_PROGVAR = "ProdRateTot_PV"


class LookupGroup(str, Enum):
    TD = "td"
    SOURCES = "sources"
    LOOKUP = "lookup"


class FluidFlamelet:
    """Forward-only flamelet manifold evaluator."""

    def __init__(
        self,
        config: FlameletConfig,
        operating_pressure: Optional[float] = None,
        manifold: Optional[ManifoldAdapter] = None,
        load_manifold: bool = True,
    ):
        self.config = config
        self.n_control_vars = int(config.n_control_vars)
        self.n_user_scalars = config.n_user_scalars
        self.n_scalars = config.n_scalars
        self.include_mixture_fraction = self.n_control_vars == 3
        self.pressure = float(config.operating_pressure if operating_pressure is None else operating_pressure)

        self.scalar_names = [NAME_PROGVAR, NAME_ENTH]
        if self.include_mixture_fraction:
            self.scalar_names.append(NAME_MIXFRAC)
        self.scalar_names.extend(config.user_scalars)
        self.control_names = tuple(self.scalar_names[: self.n_control_vars])

        log_on_root(
            logger,
            "Flamelet model: scalars=%d user scalars=%d control variables=%d",
            self.n_scalars,
            self.n_user_scalars,
            self.n_control_vars,
        )

        if manifold is None and load_manifold:
            log_on_root(logger, "Initializing flamelet manifold from %s", config.filename)
            manifold = open_manifold(config.method, config.filename, self.control_names)
        self.manifold = manifold

        self._preprocess_lookup()

        self.scalars = np.zeros(self.n_scalars, dtype=np.float64)
        self.state: Optional[FlameletState] = None
        self.extrapolation = False

    def _preprocess_lookup(self) -> None:
        self.output_maps: Dict[LookupGroup, OutputMap] = {
            LookupGroup.TD: OutputMap.from_pairs(TD_OUTPUTS),
        }

        # S_tot = S_prod + S_cons * Y for every user scalar; ordering S_prod_1, S_cons_1, ...
        source_names = [SOURCE_PROGVAR] + list(self.config.user_sources)
        self.output_maps[LookupGroup.SOURCES] = OutputMap.from_names(source_names)
        self.output_maps[LookupGroup.LOOKUP] = OutputMap.from_names(self.config.lookups)

        self.values: Dict[LookupGroup, np.ndarray] = {g: m.allocate() for g, m in self.output_maps.items()}

        if self.manifold is not None:
            self.manifold.require(self.output_maps[LookupGroup.TD].native_names, consumer="flamelet TD lookup")

    def _control_vector(self, scalars: Sequence[float]) -> np.ndarray:
        x = np.empty(self.n_control_vars, dtype=np.float64)
        x[I_PROGVAR] = scalars[I_PROGVAR]
        x[I_ENTH] = scalars[I_ENTH]
        if self.include_mixture_fraction:
            x[I_MIXFRAC] = scalars[I_MIXFRAC]
        return x

    def evaluate_dataset(
        self,
        scalars: Sequence[float],
        lookup_type: LookupGroup | str,
        output_refs: np.ndarray,
    ) -> bool:
        """
        Look up one output group at the control point given by ``scalars``.

        Returns the extrapolation flag of this lookup; it is also OR-ed into
        ``self.extrapolation`` for the current evaluation pass.
        """
        try:
            group = LookupGroup(lookup_type)
        except ValueError:
            raise ManifoldConfigError(f"Unknown flamelet lookup type: {lookup_type!r}") from None
        if self.manifold is None:
            raise ManifoldConfigError("Flamelet model was built without a manifold; lookups are unavailable.")

        varnames = self.output_maps[group].native_names
        if len(output_refs) != len(varnames):
            raise ManifoldConfigError("Output vector size incompatible with manifold lookup operation.")
        if len(varnames) == 0:
            return False

        extrapolated = self.manifold.evaluate_into(self._control_vector(scalars), varnames, output_refs)
        self.extrapolation = self.extrapolation or extrapolated
        return extrapolated

    def set_state_T(self, val_temperature: Optional[float], val_scalars: Sequence[float]) -> None:
        """Forward TD lookup; ``val_temperature`` is not used (no inversion)."""
        if len(val_scalars) < self.n_scalars:
            raise ValueError(f"Expected {self.n_scalars} scalars, got {len(val_scalars)}")
        self.scalars[:] = np.asarray(val_scalars[: self.n_scalars], dtype=np.float64)
        self.extrapolation = False

        td = self.values[LookupGroup.TD]
        extrapolated = self.evaluate_dataset(self.scalars, LookupGroup.TD, td)
        vals = self.output_maps[LookupGroup.TD].unpack(td)

        temperature = vals["temperature"]
        cp = vals["heat_capacity"]
        molar_weight = vals["molar_weight"]
        with np.errstate(divide="ignore", invalid="ignore"):
            density = self.pressure / (molar_weight * UNIVERSAL_GAS_CONSTANT * temperature)
            cv = cp - UNIVERSAL_GAS_CONSTANT / molar_weight

        self.state = FlameletState(
            temperature=temperature,
            cp=cp,
            cv=cv,
            viscosity=vals["viscosity"],
            conductivity=vals["conductivity"],
            mass_diffusivity=vals["diffusion_coefficient"],
            molar_weight=molar_weight,
            density=density,
            pressure=self.pressure,
            extrapolated=extrapolated,
        )

    evaluate_T = set_state_T

    def evaluate_sources(self, val_scalars: Sequence[float]) -> np.ndarray:
        """Raw source-term group: [S_PV, S_prod_1, S_cons_1, S_prod_2, S_cons_2, ...]."""
        out = self.values[LookupGroup.SOURCES]
        self.evaluate_dataset(val_scalars, LookupGroup.SOURCES, out)
        return out.copy()

    def scalar_source_terms(self, val_scalars: Sequence[float]) -> np.ndarray:
        """Net sources [S_PV, S_1, ..., S_n] with S_i = S_prod_i + S_cons_i * Y_i."""
        raw = self.evaluate_sources(val_scalars)
        net = np.empty(1 + self.n_user_scalars, dtype=np.float64)
        net[0] = raw[0]
        for i_aux in range(self.n_user_scalars):
            y = float(val_scalars[self.n_control_vars + i_aux])
            net[1 + i_aux] = raw[1 + 2 * i_aux] + raw[1 + 2 * i_aux + 1] * y
        return net

    def evaluate_lookups(self, val_scalars: Sequence[float]) -> Dict[str, float]:
        """Passive look-up quantities by name."""
        out = self.values[LookupGroup.LOOKUP]
        self.evaluate_dataset(val_scalars, LookupGroup.LOOKUP, out)
        return {name: float(out[i]) for i, name in enumerate(self.output_maps[LookupGroup.LOOKUP].native_names)}
