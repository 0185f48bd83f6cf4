"""
Under-relaxed Newton inversions of an entropy manifold.

Each inversion fixes a pair (or a single) target quantity and iterates over
(density, energy), or over energy alone at fixed density. Residuals and
Jacobians come from the forward thermodynamic state; the 2x2 system is solved
by Cramer's rule with an explicit, unguarded determinant, so a singular
Jacobian propagates inf/nan instead of raising.

Convergence is declared when every |residual| is strictly below its absolute
tolerance. Hitting the iteration cap is not an error unless strict mode is
requested; the state at the last guess is kept either way.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Sequence, Tuple

import numpy as np

from core.types import (
    INVERSION_MAX_ITER,
    TOL_ENTHALPY,
    TOL_ENTROPY,
    TOL_PRESSURE,
    TOL_TEMPERATURE,
    InversionTolerances,
    ThermoState,
)
from solvers.nonlinear_types import InversionConvergenceError, InversionDiagnostics

logger = logging.getLogger(__name__)

__all__ = [
    "INVERSION_MAX_ITER",
    "TOL_ENTHALPY",
    "TOL_ENTROPY",
    "TOL_PRESSURE",
    "TOL_TEMPERATURE",
    "INVERSION_PROBLEMS",
    "InversionProblem",
    "newton_energy_1d",
    "newton_rhoe_2x2",
    "residuals_converged",
]

EvaluateFn = Callable[[float, float], ThermoState]


@dataclass(frozen=True, slots=True)
class InversionProblem:
    """Targets, residuals and Jacobian of one inversion variant.

    ``jacobian`` returns (a11, a12, a21, a22) for unknowns (rho, e) in the
    two-target case, or the single derivative w.r.t. e in the energy-only case.
    """

    name: str
    targets: Tuple[str, ...]
    required_outputs: Tuple[str, ...]
    residuals: Callable[[ThermoState, Sequence[float]], Tuple[float, ...]]
    jacobian: Callable[[ThermoState], Tuple[float, ...]]

    @property
    def n_targets(self) -> int:
        return len(self.targets)

    def tolerances(self, tol: InversionTolerances) -> Tuple[float, ...]:
        return tuple(float(getattr(tol, t)) for t in self.targets)


def _enthalpy(state: ThermoState) -> float:
    return state.energy + state.pressure / state.density


def _jacobian_hs(state: ThermoState) -> Tuple[float, ...]:
    rho = state.density
    dh_de = 1 + state.dPde_rho / rho
    dh_drho = -state.pressure * rho**-2 + state.dPdrho_e / rho
    return dh_drho, dh_de, state.dsdrho_e, state.dsde_rho


PROBLEM_PT = InversionProblem(
    name="PT",
    targets=("pressure", "temperature"),
    required_outputs=("dsde_rho", "dsdrho_e", "d2sde2", "d2sdrho2"),
    residuals=lambda st, tg: (st.pressure - tg[0], st.temperature - tg[1]),
    jacobian=lambda st: (st.dPdrho_e, st.dPde_rho, st.dTdrho_e, st.dTde_rho),
)

PROBLEM_PRHO = InversionProblem(
    name="Prho",
    targets=("pressure",),
    required_outputs=("dsde_rho", "dsdrho_e", "d2sde2"),
    residuals=lambda st, tg: (st.pressure - tg[0],),
    jacobian=lambda st: (st.dPde_rho,),
)

PROBLEM_RHOT = InversionProblem(
    name="rhoT",
    targets=("temperature",),
    required_outputs=("dsde_rho", "d2sde2"),
    residuals=lambda st, tg: (st.temperature - tg[0],),
    jacobian=lambda st: (st.dTde_rho,),
)

PROBLEM_HS = InversionProblem(
    name="hs",
    targets=("enthalpy", "entropy"),
    required_outputs=("entropy", "dsde_rho", "dsdrho_e", "d2sde2", "d2sdrho2"),
    residuals=lambda st, tg: (_enthalpy(st) - tg[0], st.entropy - tg[1]),
    jacobian=_jacobian_hs,
)

PROBLEM_PS = InversionProblem(
    name="Ps",
    targets=("pressure", "entropy"),
    required_outputs=("entropy", "dsde_rho", "dsdrho_e", "d2sde2", "d2sdrho2"),
    residuals=lambda st, tg: (st.pressure - tg[0], st.entropy - tg[1]),
    jacobian=lambda st: (st.dPdrho_e, st.dPde_rho, st.dsdrho_e, st.dsde_rho),
)

INVERSION_PROBLEMS: Dict[str, InversionProblem] = {
    p.name: p for p in (PROBLEM_PT, PROBLEM_PRHO, PROBLEM_RHOT, PROBLEM_HS, PROBLEM_PS)
}


def residuals_converged(residuals: Sequence[float], tolerances: Sequence[float]) -> bool:
    """True only if every residual is strictly inside its absolute tolerance."""
    return all(abs(r) < tol for r, tol in zip(residuals, tolerances))


def _finish(
    evaluate: EvaluateFn,
    problem: InversionProblem,
    targets: Sequence[float],
    tols: Tuple[float, ...],
    rho: float,
    e: float,
    converged: bool,
    n_iter: int,
    strict: bool,
) -> Tuple[ThermoState, InversionDiagnostics]:
    state = evaluate(rho, e)
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        res = tuple(float(r) for r in problem.residuals(state, targets))
    diag = InversionDiagnostics(
        converged=converged,
        method=problem.name,
        n_iter=n_iter,
        density=float(rho),
        energy=float(e),
        residuals=res,
        tolerances=tols,
        extra={"targets": tuple(float(t) for t in targets)},
    )
    if not converged:
        diag.message = (
            f"{problem.name} inversion reached the iteration cap ({n_iter}) "
            f"with residuals {res} (tolerances {tols})"
        )
        if strict:
            raise InversionConvergenceError(diag)
        logger.debug("%s", diag.message)
    return state, diag


def newton_rhoe_2x2(
    evaluate: EvaluateFn,
    problem: InversionProblem,
    targets: Sequence[float],
    *,
    rho0: float,
    e0: float,
    relaxation: float,
    tolerances: InversionTolerances,
    strict: bool = False,
) -> Tuple[ThermoState, InversionDiagnostics]:
    """
    Two-target Newton iteration over (density, energy).

    Args:
        evaluate: Forward evaluator (rho, e) -> ThermoState; also updates the caller's state
        problem: Two-target inversion definition
        targets: Target values in problem.targets order
        rho0, e0: Initial guess
        relaxation: Step scaling, guess -= relaxation * step
        tolerances: Absolute tolerances and iteration cap
        strict: Raise InversionConvergenceError on hitting the cap

    Returns:
        (state at the accepted guess, diagnostics)
    """
    if problem.n_targets != 2:
        raise ValueError(f"newton_rhoe_2x2 needs a two-target problem, got {problem.name}")
    tols = problem.tolerances(tolerances)
    max_iter = int(tolerances.max_iter)
    trace = logger.isEnabledFor(logging.DEBUG)

    rho = np.float64(rho0)
    e = np.float64(e0)
    relax = np.float64(relaxation)
    converged = False
    n_iter = 0

    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        while not converged and n_iter < max_iter:
            state = evaluate(rho, e)
            delta_1, delta_2 = problem.residuals(state, targets)

            if residuals_converged((delta_1, delta_2), tols):
                converged = True
            else:
                a11, a12, a21, a22 = problem.jacobian(state)
                determinant = a11 * a22 - a12 * a21

                delta_rho = (a22 * delta_1 - a12 * delta_2) / determinant
                delta_e = (-a21 * delta_1 + a11 * delta_2) / determinant

                rho -= relax * delta_rho
                e -= relax * delta_e
            if trace:
                logger.debug(
                    "%s iter=%d res=(%.3e, %.3e) rho=%.6e e=%.6e",
                    problem.name,
                    n_iter,
                    delta_1,
                    delta_2,
                    rho,
                    e,
                )
            n_iter += 1

    return _finish(evaluate, problem, targets, tols, rho, e, converged, n_iter, strict)


def newton_energy_1d(
    evaluate: EvaluateFn,
    problem: InversionProblem,
    target: float,
    *,
    rho: float,
    e0: float,
    relaxation: float,
    tolerances: InversionTolerances,
    strict: bool = False,
) -> Tuple[ThermoState, InversionDiagnostics]:
    """Single-target Newton iteration over energy at fixed density."""
    if problem.n_targets != 1:
        raise ValueError(f"newton_energy_1d needs a single-target problem, got {problem.name}")
    tols = problem.tolerances(tolerances)
    max_iter = int(tolerances.max_iter)
    trace = logger.isEnabledFor(logging.DEBUG)
    targets = (target,)

    rho = np.float64(rho)
    e = np.float64(e0)
    relax = np.float64(relaxation)
    converged = False
    n_iter = 0

    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        while not converged and n_iter < max_iter:
            state = evaluate(rho, e)
            (delta,) = problem.residuals(state, targets)

            if residuals_converged((delta,), tols):
                converged = True
            else:
                (slope,) = problem.jacobian(state)
                e -= relax * (delta / slope)
            if trace:
                logger.debug("%s iter=%d res=%.3e e=%.6e", problem.name, n_iter, delta, e)
            n_iter += 1

    return _finish(evaluate, problem, targets, tols, rho, e, converged, n_iter, strict)
