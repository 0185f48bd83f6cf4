"""
Closed-form thermodynamic state from an entropy manifold s(rho, e).

Given s and its first/second partial derivatives with respect to internal
energy and density, compute temperature, pressure, speed of sound, heat
capacities, gamma, gas constant and the first derivatives of T and P.

Conventions:
- All arithmetic is float64 under np.errstate(ignore); zero or sign-flipped
  derivatives produce inf/nan which callers detect through sanity bounds.
- The speed-of-sound grouping below must stay exactly as written: the terms
  nearly cancel and reference cases depend on this evaluation order.
"""

from __future__ import annotations

from typing import Mapping

import numpy as np

from core.types import ThermoState

# Raw manifold outputs consumed here (symbolic names of the entropy output map).
RAW_ENTROPY_OUTPUTS = ("entropy", "dsde_rho", "dsdrho_e", "d2sde2", "d2sdedrho", "d2sdrho2")


def compute_thermo_state(
    rho: float,
    e: float,
    raw: Mapping[str, float],
    *,
    extrapolated: bool = False,
) -> ThermoState:
    """
    Build a ThermoState from raw entropy-manifold outputs.

    Args:
        rho: Density [kg/m^3]
        e: Static internal energy [J/kg]
        raw: Mapping with keys RAW_ENTROPY_OUTPUTS
        extrapolated: Manifold extrapolation flag for this query

    Returns:
        New ThermoState (the caller's previous state is never modified)
    """
    rho = np.float64(rho)
    e = np.float64(e)
    s = np.float64(raw["entropy"])
    dsde_rho = np.float64(raw["dsde_rho"])
    dsdrho_e = np.float64(raw["dsdrho_e"])
    d2sde2 = np.float64(raw["d2sde2"])
    d2sdedrho = np.float64(raw["d2sdedrho"])
    d2sdrho2 = np.float64(raw["d2sdrho2"])

    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        blue_term = dsdrho_e * (2 - rho * dsde_rho**-1 * d2sdedrho) + rho * d2sdrho2
        green_term = -(dsde_rho**-1) * d2sde2 * dsdrho_e + d2sdedrho
        sound_speed2 = -rho * dsde_rho**-1 * (blue_term - rho * green_term * (dsdrho_e / dsde_rho))

        temperature = 1.0 / dsde_rho
        pressure = -(rho**2) * temperature * dsdrho_e

        dTde_rho = -(dsde_rho**-2) * d2sde2
        dTdrho_e = np.float64(0.0)

        dPde_rho = -(rho**2) * dTde_rho * dsdrho_e
        dPdrho_e = -2 * rho * temperature * dsdrho_e - rho**2 * temperature * d2sdrho2

        cp = (1 / dTde_rho) * (1 + (1 / rho) * dPde_rho)
        cv = 1 / dTde_rho
        gamma = cp / cv
        gas_constant = cp - cv

    return ThermoState(
        density=rho,
        energy=e,
        entropy=s,
        dsde_rho=dsde_rho,
        dsdrho_e=dsdrho_e,
        d2sde2=d2sde2,
        d2sdedrho=d2sdedrho,
        d2sdrho2=d2sdrho2,
        temperature=temperature,
        pressure=pressure,
        sound_speed2=sound_speed2,
        cp=cp,
        cv=cv,
        gamma=gamma,
        gamma_minus_one=gamma - 1,
        gas_constant=gas_constant,
        dTde_rho=dTde_rho,
        dTdrho_e=dTdrho_e,
        dPde_rho=dPde_rho,
        dPdrho_e=dPdrho_e,
        extrapolated=bool(extrapolated),
    )
