"""
Data-driven fluid model on an entropy manifold s(rho, e).

Responsibilities:
- Own the manifold (lookup table or MLP) for the lifetime of the instance.
- Forward evaluation (rho, e) -> ThermoState through the closed-form relations.
- State inversions for (P, T), (P, rho), (rho, T), (h, s), (P, s) by
  under-relaxed Newton iteration starting from the configured initial guess.

Each forward evaluation builds a fresh ThermoState and swaps it in with one
assignment, so ``self.state`` always reflects a single complete evaluation.
Instances are not thread-safe: give each execution context its own instance.
"""

from __future__ import annotations

import logging
from typing import Optional, Tuple

from core.logging_utils import log_on_root
from core.types import DataDrivenConfig, ThermoState
from manifold.adapter import ManifoldAdapter
from manifold.factory import load_manifold
from manifold.output_map import ENTROPY_OUTPUTS, OutputMap
from properties.thermo_state import compute_thermo_state
from solvers.newton_inversion import (
    INVERSION_PROBLEMS,
    PROBLEM_HS,
    PROBLEM_PRHO,
    PROBLEM_PS,
    PROBLEM_PT,
    PROBLEM_RHOT,
    newton_energy_1d,
    newton_rhoe_2x2,
)
from solvers.nonlinear_types import InversionDiagnostics

logger = logging.getLogger(__name__)

INPUT_NAMES_RHOE = ("Density", "Energy")


class DataDrivenFluid:
    """Fluid model whose equation of state is a black-box entropy manifold."""

    def __init__(self, config: DataDrivenConfig, manifold: Optional[ManifoldAdapter] = None):
        self.config = config
        self.relaxation = float(config.relaxation)
        self.rho_start = float(config.density_init)
        self.e_start = float(config.energy_init)
        self.tolerances = config.tolerances
        self.strict = bool(config.strict_convergence)

        if manifold is None:
            manifold = load_manifold(config.method, config.filename, INPUT_NAMES_RHOE)
        self.manifold = manifold

        self.output_map = OutputMap.from_pairs(ENTROPY_OUTPUTS, overrides=config.output_names)
        self._outputs = self.output_map.allocate()
        self._check_capabilities()

        self.state: Optional[ThermoState] = None
        self.last_inversion: Optional[InversionDiagnostics] = None

        log_on_root(
            logger,
            "Data-driven fluid: method=%s file=%s relaxation=%g rho_init=%g e_init=%g",
            config.method,
            config.filename,
            self.relaxation,
            self.rho_start,
            self.e_start,
        )

    def _check_capabilities(self) -> None:
        """Fail at construction if the manifold lacks any output the evaluator or a solver needs."""
        self.manifold.require(self.output_map.native_names, consumer="thermodynamic state evaluator")
        for problem in INVERSION_PROBLEMS.values():
            natives = [self.output_map.native_names[self.output_map.slot(n)] for n in problem.required_outputs]
            self.manifold.require(natives, consumer=f"{problem.name} inversion")

    # ------------------------------------------------------------------
    # Forward evaluation
    # ------------------------------------------------------------------
    def _evaluate(self, rho: float, e: float) -> ThermoState:
        extrapolated = self.manifold.evaluate_map((rho, e), self.output_map, self._outputs)
        state = compute_thermo_state(rho, e, self.output_map.unpack(self._outputs), extrapolated=extrapolated)
        self.state = state
        return state

    def evaluate_rhoe(self, rho: float, e: float) -> None:
        """Populate the derived thermodynamic state at (density, static energy)."""
        self._evaluate(rho, e)

    set_state_rhoe = evaluate_rhoe

    # ------------------------------------------------------------------
    # Inversions
    # ------------------------------------------------------------------
    def _record(self, diag: InversionDiagnostics) -> InversionDiagnostics:
        self.last_inversion = diag
        return diag

    def set_state_PT(self, P: float, T: float) -> InversionDiagnostics:
        _, diag = newton_rhoe_2x2(
            self._evaluate,
            PROBLEM_PT,
            (P, T),
            rho0=self.rho_start,
            e0=self.e_start,
            relaxation=self.relaxation,
            tolerances=self.tolerances,
            strict=self.strict,
        )
        return self._record(diag)

    def set_energy_Prho(self, P: float, rho: float) -> Tuple[float, InversionDiagnostics]:
        """Solve for the static energy matching pressure P at fixed density."""
        _, diag = newton_energy_1d(
            self._evaluate,
            PROBLEM_PRHO,
            P,
            rho=rho,
            e0=self.e_start,
            relaxation=self.relaxation,
            tolerances=self.tolerances,
            strict=self.strict,
        )
        return diag.energy, self._record(diag)

    def set_state_Prho(self, P: float, rho: float) -> InversionDiagnostics:
        e, diag = self.set_energy_Prho(P, rho)
        self.set_state_rhoe(rho, e)
        return diag

    def set_state_rhoT(self, rho: float, T: float) -> InversionDiagnostics:
        _, diag = newton_energy_1d(
            self._evaluate,
            PROBLEM_RHOT,
            T,
            rho=rho,
            e0=self.e_start,
            relaxation=self.relaxation,
            tolerances=self.tolerances,
            strict=self.strict,
        )
        return self._record(diag)

    def set_state_hs(self, h: float, s: float) -> InversionDiagnostics:
        _, diag = newton_rhoe_2x2(
            self._evaluate,
            PROBLEM_HS,
            (h, s),
            rho0=self.rho_start,
            e0=self.e_start,
            relaxation=self.relaxation,
            tolerances=self.tolerances,
            strict=self.strict,
        )
        return self._record(diag)

    def set_state_Ps(self, P: float, s: float) -> InversionDiagnostics:
        _, diag = newton_rhoe_2x2(
            self._evaluate,
            PROBLEM_PS,
            (P, s),
            rho0=self.rho_start,
            e0=self.e_start,
            relaxation=self.relaxation,
            tolerances=self.tolerances,
            strict=self.strict,
        )
        return self._record(diag)
