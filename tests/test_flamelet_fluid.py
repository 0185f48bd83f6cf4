"""
FluidFlamelet: forward lookups, ideal-gas closure, sources and passive lookups.

Tests:
1. TD lookup + closure rho = P/(M*R_u*T), Cv = Cp - R_u/M
2. Source terms: raw group and net S_i = S_prod_i + S_cons_i * Y_i
3. Extrapolation flag aggregated over one evaluation pass, reset by set_state_T
4. Mixture fraction is passed to the manifold only with three control variables
5. Size mismatch and missing manifold are configuration errors
"""

from __future__ import annotations

import csv
from pathlib import Path

import numpy as np
import pytest

from core.types import FlameletConfig
from manifold.adapter import ManifoldAdapter
from manifold.errors import ManifoldCapabilityError, ManifoldConfigError
from properties.flamelet_fluid import UNIVERSAL_GAS_CONSTANT, FluidFlamelet, LookupGroup

from fluid_stubs import FlameletTable

EXTRA = ("ProdRate_NOx", "ConsRate_NOx", "Y_CO")


def _config(n_control_vars: int = 2, **overrides) -> FlameletConfig:
    kwargs = dict(
        filename=Path("unused.csv"),
        method="lut",
        n_control_vars=n_control_vars,
        user_scalars=["Y_NOx"],
        user_sources=["ProdRate_NOx", "ConsRate_NOx"],
        lookups=["Y_CO"],
        operating_pressure=101325.0,
    )
    kwargs.update(overrides)
    return FlameletConfig(**kwargs)


def _control_names(n: int):
    return ("ProgressVariable", "EnthalpyTot", "MixtureFraction")[:n]


@pytest.fixture
def table():
    return FlameletTable(_control_names(2), EXTRA)


@pytest.fixture
def flamelet(table):
    return FluidFlamelet(_config(), manifold=ManifoldAdapter(table))


# ============================================================================
# TD lookup and closure
# ============================================================================


def test_scalar_layout(flamelet):
    assert flamelet.n_scalars == 3
    assert flamelet.n_user_scalars == 1
    assert flamelet.scalar_names == ["ProgressVariable", "EnthalpyTot", "Y_NOx"]
    assert flamelet.control_names == ("ProgressVariable", "EnthalpyTot")


def test_ideal_gas_closure(flamelet):
    flamelet.set_state_T(None, [0.5, 1000.0, 0.01])
    st = flamelet.state
    T = 300.0 + 750.0 + 1.0
    M = 0.028
    assert st.temperature == pytest.approx(T)
    assert st.cp == pytest.approx(1250.0)
    assert st.molar_weight == pytest.approx(M)
    assert st.density == pytest.approx(101325.0 / (M * UNIVERSAL_GAS_CONSTANT * T))
    assert st.cv == pytest.approx(1250.0 - UNIVERSAL_GAS_CONSTANT / M)
    assert st.viscosity == pytest.approx(2.8e-5)
    assert st.conductivity == pytest.approx(0.05)
    assert st.mass_diffusivity == pytest.approx(2.0e-5)
    assert st.pressure == 101325.0
    assert st.extrapolated is False
    assert flamelet.extrapolation is False


def test_temperature_argument_is_ignored(flamelet):
    flamelet.set_state_T(1.0e4, [0.2, 0.0, 0.0])
    assert flamelet.state.temperature == pytest.approx(600.0)


def test_evaluate_T_alias(flamelet):
    flamelet.evaluate_T(None, [0.2, 0.0, 0.0])
    assert flamelet.state.temperature == pytest.approx(600.0)


def test_operating_pressure_override(table):
    fl = FluidFlamelet(_config(), operating_pressure=2.0e5, manifold=ManifoldAdapter(table))
    fl.set_state_T(None, [0.0, 0.0, 0.0])
    assert fl.state.pressure == 2.0e5
    assert fl.state.density == pytest.approx(2.0e5 / (0.028 * UNIVERSAL_GAS_CONSTANT * 300.0))


def test_too_few_scalars(flamelet):
    with pytest.raises(ValueError, match="Expected 3 scalars"):
        flamelet.set_state_T(None, [0.5, 0.0])


# ============================================================================
# Sources and lookups
# ============================================================================


def test_raw_sources(flamelet, table):
    scalars = [0.5, 0.0, 0.02]
    raw = flamelet.evaluate_sources(scalars)
    x = np.array(scalars[:2])
    assert raw.shape == (3,)
    assert raw[0] == pytest.approx(12.5)
    assert raw[1] == pytest.approx(table._value("ProdRate_NOx", x))
    assert raw[2] == pytest.approx(table._value("ConsRate_NOx", x))


def test_net_scalar_sources(flamelet, table):
    scalars = [0.5, 0.0, 0.02]
    x = np.array(scalars[:2])
    net = flamelet.scalar_source_terms(scalars)
    expected = table._value("ProdRate_NOx", x) + table._value("ConsRate_NOx", x) * 0.02
    assert net.shape == (2,)
    assert net[0] == pytest.approx(12.5)
    assert net[1] == pytest.approx(expected)


def test_lookups(flamelet, table):
    out = flamelet.evaluate_lookups([0.3, 0.0, 0.0])
    assert list(out) == ["Y_CO"]
    assert out["Y_CO"] == pytest.approx(table._value("Y_CO", np.array([0.3, 0.0])))


def test_empty_lookup_group(table):
    fl = FluidFlamelet(_config(lookups=[]), manifold=ManifoldAdapter(table))
    assert fl.evaluate_dataset([0.5, 0.0, 0.0], LookupGroup.LOOKUP, np.zeros(0)) is False
    assert fl.evaluate_lookups([0.5, 0.0, 0.0]) == {}


# ============================================================================
# Extrapolation aggregation
# ============================================================================


def test_extrapolation_aggregates_over_pass(flamelet):
    flamelet.set_state_T(None, [0.5, 0.0, 0.0])
    assert flamelet.extrapolation is False

    assert flamelet.evaluate_dataset([1.5, 0.0, 0.0], LookupGroup.SOURCES, np.zeros(3)) is True
    assert flamelet.extrapolation is True

    # an in-range lookup later in the same pass does not clear the flag
    assert flamelet.evaluate_dataset([0.5, 0.0, 0.0], "lookup", np.zeros(1)) is False
    assert flamelet.extrapolation is True

    flamelet.set_state_T(None, [0.5, 0.0, 0.0])
    assert flamelet.extrapolation is False


def test_td_extrapolation_sets_state_flag(flamelet):
    flamelet.set_state_T(None, [-0.1, 0.0, 0.0])
    assert flamelet.state.extrapolated is True
    assert flamelet.extrapolation is True


# ============================================================================
# Control variables
# ============================================================================


def test_two_control_vars_ignore_user_scalars(flamelet, table):
    flamelet.set_state_T(None, [0.4, 10.0, 0.9])
    assert table.last_inputs.shape == (2,)
    assert np.allclose(table.last_inputs, [0.4, 10.0])


def test_mixture_fraction_passed_with_three_control_vars():
    table = FlameletTable(_control_names(3), EXTRA)
    fl = FluidFlamelet(_config(n_control_vars=3), manifold=ManifoldAdapter(table))
    assert fl.scalar_names == ["ProgressVariable", "EnthalpyTot", "MixtureFraction", "Y_NOx"]

    fl.set_state_T(None, [0.4, 10.0, 0.5, 0.01])
    assert np.allclose(table.last_inputs, [0.4, 10.0, 0.5])
    assert fl.state.molar_weight == pytest.approx(0.029)

    net = fl.scalar_source_terms([0.4, 10.0, 0.5, 0.01])
    x = np.array([0.4, 10.0, 0.5])
    expected = table._value("ProdRate_NOx", x) + table._value("ConsRate_NOx", x) * 0.01
    assert net[1] == pytest.approx(expected)


# ============================================================================
# Configuration errors
# ============================================================================


def test_output_size_mismatch(flamelet):
    with pytest.raises(ManifoldConfigError, match="Output vector size incompatible with manifold lookup operation"):
        flamelet.evaluate_dataset([0.5, 0.0, 0.0], LookupGroup.TD, np.zeros(5))


def test_unknown_lookup_type(flamelet):
    with pytest.raises(ManifoldConfigError, match="Unknown flamelet lookup type"):
        flamelet.evaluate_dataset([0.5, 0.0, 0.0], "transport", np.zeros(6))


def test_without_manifold_lookups_raise():
    fl = FluidFlamelet(_config(), load_manifold=False)
    assert fl.manifold is None
    with pytest.raises(ManifoldConfigError, match="without a manifold"):
        fl.set_state_T(None, [0.5, 0.0, 0.0])


def test_missing_td_output_fails_at_construction(table):
    table.output_names = tuple(n for n in table.output_names if n != "MolarWeightMix")
    with pytest.raises(ManifoldCapabilityError, match="MolarWeightMix"):
        FluidFlamelet(_config(), manifold=ManifoldAdapter(table))


# ============================================================================
# File-backed manifold
# ============================================================================


def _write_flamelet_csv(path: Path) -> Path:
    src = FlameletTable(_control_names(2))
    names = ["Temperature", "Cp", "ViscosityDyn", "Conductivity", "DiffusionCoefficient", "MolarWeightMix", "ProdRateTot_PV"]
    with open(path, "w", newline="", encoding="utf-8") as f:
        w = csv.writer(f)
        w.writerow(["ProgressVariable", "EnthalpyTot"] + names)
        for pv in (0.0, 0.5, 1.0):
            for h in (-1.0e4, 0.0, 1.0e4):
                x = np.array([pv, h])
                w.writerow([pv, h] + [src._value(n, x) for n in names])
    return path


def test_load_lut_from_config(tmp_path):
    path = _write_flamelet_csv(tmp_path / "flamelet.csv")
    cfg = _config(filename=path, user_scalars=[], user_sources=[], lookups=[])
    fl = FluidFlamelet(cfg)
    fl.set_state_T(None, [0.5, 0.0])
    assert fl.state.temperature == pytest.approx(1050.0)
    assert fl.state.extrapolated is False
    assert fl.scalar_source_terms([0.5, 0.0]).shape == (1,)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
