"""
Newton inversion kernels on analytic entropy manifolds.

Tests:
1. Convergence test is strict: a residual equal to its tolerance is not converged
2. Iteration counter includes the converging pass
3. Energy-only inversions on an ideal gas converge in two passes with full step
4. Singular Jacobian exhausts the cap silently; strict mode raises
5. Stopping requires every residual inside tolerance, not just one
"""

from __future__ import annotations

import logging

import numpy as np
import pytest

from core.types import InversionTolerances
from manifold.adapter import ManifoldAdapter
from manifold.output_map import ENTROPY_OUTPUTS, OutputMap
from properties.thermo_state import compute_thermo_state
from solvers.newton_inversion import (
    INVERSION_MAX_ITER,
    INVERSION_PROBLEMS,
    PROBLEM_PRHO,
    PROBLEM_PT,
    PROBLEM_RHOT,
    newton_energy_1d,
    newton_rhoe_2x2,
    residuals_converged,
)
from solvers.nonlinear_types import InversionConvergenceError

from fluid_stubs import CV_AIR, R_AIR, ConstantEntropy, IdealGasEntropy


def _make_evaluator(backend):
    adapter = ManifoldAdapter(backend)
    omap = OutputMap.from_pairs(ENTROPY_OUTPUTS)
    buf = omap.allocate()

    def evaluate(rho, e):
        flag = adapter.evaluate_map((rho, e), omap, buf)
        return compute_thermo_state(rho, e, omap.unpack(buf), extrapolated=flag)

    return evaluate


# ============================================================================
# Convergence predicate
# ============================================================================


def test_residual_at_tolerance_is_not_converged():
    assert not residuals_converged((10.0, 0.0), (10.0, 1.0))
    assert not residuals_converged((0.0, -1.0), (10.0, 1.0))
    assert residuals_converged((9.999, -0.999), (10.0, 1.0))


def test_nan_residual_is_not_converged():
    assert not residuals_converged((float("nan"), 0.0), (10.0, 1.0))


def test_problem_registry_names():
    assert set(INVERSION_PROBLEMS) == {"PT", "Prho", "rhoT", "hs", "Ps"}
    tol = InversionTolerances()
    assert PROBLEM_PT.tolerances(tol) == (10.0, 1.0)
    assert INVERSION_PROBLEMS["hs"].tolerances(tol) == (10.0, 1.0)
    assert INVERSION_PROBLEMS["Ps"].tolerances(tol) == (10.0, 1.0)


# ============================================================================
# Iteration counting
# ============================================================================


def test_exact_initial_guess_counts_one_iteration():
    """The converging pass itself is counted."""
    evaluate = _make_evaluator(IdealGasEntropy())
    rho0, e0 = 1.2, 2.5e5
    T = e0 / CV_AIR
    P = rho0 * R_AIR * T

    state, diag = newton_rhoe_2x2(
        evaluate, PROBLEM_PT, (P, T), rho0=rho0, e0=e0, relaxation=1.0, tolerances=InversionTolerances()
    )
    assert diag.converged
    assert diag.n_iter == 1
    assert diag.density == pytest.approx(rho0)
    assert diag.energy == pytest.approx(e0)
    assert state.pressure == pytest.approx(P)


@pytest.mark.parametrize("problem", [PROBLEM_PRHO, PROBLEM_RHOT])
def test_linear_in_energy_converges_in_two_passes(problem):
    """P and T are linear in e at fixed rho, so a full Newton step is exact."""
    evaluate = _make_evaluator(IdealGasEntropy())
    rho = 1.1
    e_target = 2.0e5
    T = e_target / CV_AIR
    target = rho * R_AIR * T if problem is PROBLEM_PRHO else T

    state, diag = newton_energy_1d(
        evaluate, problem, target, rho=rho, e0=2.6e5, relaxation=1.0, tolerances=InversionTolerances()
    )
    assert diag.converged
    assert diag.n_iter == 2
    assert diag.energy == pytest.approx(e_target, rel=1e-9)
    assert state.density == pytest.approx(rho)


def test_under_relaxation_takes_more_iterations():
    evaluate = _make_evaluator(IdealGasEntropy())
    rho, e_target = 1.1, 2.0e5
    P = rho * R_AIR * e_target / CV_AIR

    _, full = newton_energy_1d(
        evaluate, PROBLEM_PRHO, P, rho=rho, e0=2.6e5, relaxation=1.0, tolerances=InversionTolerances()
    )
    _, damped = newton_energy_1d(
        evaluate, PROBLEM_PRHO, P, rho=rho, e0=2.6e5, relaxation=0.5, tolerances=InversionTolerances()
    )
    assert damped.converged
    assert damped.n_iter > full.n_iter
    assert abs(damped.residuals[0]) < 10.0


# ============================================================================
# Non-convergence
# ============================================================================


def test_singular_jacobian_hits_cap_without_raising():
    evaluate = _make_evaluator(ConstantEntropy())
    state, diag = newton_rhoe_2x2(
        evaluate,
        PROBLEM_PT,
        (101325.0, 300.0),
        rho0=1.2,
        e0=2.0e5,
        relaxation=0.05,
        tolerances=InversionTolerances(),
    )
    assert not diag.converged
    assert diag.n_iter == INVERSION_MAX_ITER == 1000
    assert diag.message is not None
    assert state is not None


def test_singular_jacobian_strict_raises():
    evaluate = _make_evaluator(ConstantEntropy())
    with pytest.raises(InversionConvergenceError, match="iteration cap") as excinfo:
        newton_rhoe_2x2(
            evaluate,
            PROBLEM_PT,
            (101325.0, 300.0),
            rho0=1.2,
            e0=2.0e5,
            relaxation=0.05,
            tolerances=InversionTolerances(max_iter=25),
            strict=True,
        )
    assert excinfo.value.diag.n_iter == 25
    assert not excinfo.value.diag.converged


def test_one_residual_inside_tolerance_keeps_iterating():
    """Temperature already matches; pressure does not, so the loop must continue."""
    evaluate = _make_evaluator(IdealGasEntropy())
    rho0, e0 = 1.2, 2.5e5
    T = e0 / CV_AIR
    P = 1.5 * rho0 * R_AIR * T

    _, diag = newton_rhoe_2x2(
        evaluate, PROBLEM_PT, (P, T), rho0=rho0, e0=e0, relaxation=1.0, tolerances=InversionTolerances()
    )
    assert diag.converged
    assert diag.n_iter > 1
    assert diag.density == pytest.approx(1.5 * rho0, rel=1e-3)


def test_cap_is_configurable_and_logged(caplog):
    evaluate = _make_evaluator(ConstantEntropy())
    with caplog.at_level(logging.DEBUG, logger="solvers.newton_inversion"):
        _, diag = newton_energy_1d(
            evaluate,
            PROBLEM_RHOT,
            300.0,
            rho=1.2,
            e0=2.0e5,
            relaxation=1.0,
            tolerances=InversionTolerances(max_iter=3),
        )
    assert diag.n_iter == 3
    assert not diag.converged
    assert any("iteration cap" in r.getMessage() for r in caplog.records)


def test_wrong_problem_arity_raises():
    evaluate = _make_evaluator(IdealGasEntropy())
    with pytest.raises(ValueError, match="two-target"):
        newton_rhoe_2x2(
            evaluate, PROBLEM_PRHO, (1.0, 2.0), rho0=1.0, e0=1.0, relaxation=1.0, tolerances=InversionTolerances()
        )
    with pytest.raises(ValueError, match="single-target"):
        newton_energy_1d(
            evaluate, PROBLEM_PT, 1.0, rho=1.0, e0=1.0, relaxation=1.0, tolerances=InversionTolerances()
        )


def test_nan_propagates_without_exception():
    evaluate = _make_evaluator(ConstantEntropy())
    _, diag = newton_rhoe_2x2(
        evaluate,
        PROBLEM_PT,
        (101325.0, 300.0),
        rho0=1.2,
        e0=2.0e5,
        relaxation=1.0,
        tolerances=InversionTolerances(max_iter=5),
    )
    assert not (np.isfinite(diag.density) and np.isfinite(diag.energy))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
