"""
Heat Solver: explicit per-pore energy balance.

Advection carries the upstream (donor) pore's enthalpy along each throat;
conduction follows Fourier's law through the throat cross-section. Boundary
pores are held at the inlet/outlet temperatures. Timesteps beyond the
explicit stability limit are split into equal sub-steps.
"""

import logging

import numpy as np

from core.network import PoreNetwork
from core.schemas import SimulationOptions
from core.state_container import SimulationState
from utils.pore_geometry import (
    UM3_TO_M3,
    explicit_substeps,
    find_boundary_pores,
    outgoing_exchange,
    throat_cross_sections_m2,
)

logger = logging.getLogger(__name__)

# Pore temperatures are clamped to liquid-water range (K)
MIN_TEMPERATURE_K = 273.15
MAX_TEMPERATURE_K = 573.15


def solve_heat(
    network: PoreNetwork,
    state: SimulationState,
    options: SimulationOptions,
) -> int:
    """
    Advance pore temperatures by one timestep.

    For each interior pore and sub-step of length dt_sub:
        ΔH = Σ advective enthalpy (q ρ c_p T_upstream dt_sub)
           + Σ conduction k A (T_neighbor - T) / L dt_sub
        T_new = clamp(T + ΔH / (m c_p), 273.15, 573.15),  m = V ρ

    Pores with zero fluid mass keep their temperature. Throat heat fluxes are
    recorded as the conductive flux k A (T1 - T2) / L (W), positive from pore 1
    to pore 2, averaged over the sub-steps. A pore lying in both boundary bands
    takes the inlet temperature.

    Returns:
        Number of sub-steps used
    """
    n_pores = network.num_pores
    if n_pores == 0:
        return 0

    rho = options.fluid_density_kg_m3
    cp = options.specific_heat_J_kgK

    inlet, outlet = find_boundary_pores(network, options.flow_axis.index)
    valid = network.throat_valid
    i = network.throat_conns[:, 0]
    j = network.throat_conns[:, 1]

    flow_rates = state.throat_flow_rates
    advective = valid & (flow_rates != 0)
    forward = flow_rates > 0

    lengths = network.throat_lengths_m()
    areas = throat_cross_sections_m2(state.throat_radii, network.voxel_size_m)
    conducting = valid & (areas > 0)
    conductance = np.zeros(network.num_throats)
    conductance[conducting] = (
        options.thermal_conductivity_W_mK * areas[conducting] / lengths[conducting]
    )

    heat_capacity = state.pore_volumes * UM3_TO_M3 * rho * cp
    updated = (heat_capacity > 0) & ~(inlet | outlet)

    exchange = outgoing_exchange(n_pores, network.throat_conns, conductance, flow_rates * rho * cp, valid)
    n_sub = explicit_substeps(heat_capacity, exchange, options.time_step_s, updated)
    dt = options.time_step_s / n_sub
    if n_sub > 1:
        logger.debug(f"Heat step split into {n_sub} sub-steps of {dt:.3e} s")

    temperatures = state.pore_temperatures.copy()
    flux_sum = np.zeros(network.num_throats)
    for _ in range(n_sub):
        heat_change = np.zeros(n_pores)

        # Advection: the flux leaves the donor pore and enters the receiver
        upstream_T = np.where(forward, temperatures[i], temperatures[j])
        enthalpy = flow_rates * rho * cp * upstream_T * dt
        np.add.at(heat_change, i[advective], -enthalpy[advective])
        np.add.at(heat_change, j[advective], enthalpy[advective])

        # Conduction
        heat_flux = conductance * (temperatures[i] - temperatures[j])
        np.add.at(heat_change, i[conducting], -heat_flux[conducting] * dt)
        np.add.at(heat_change, j[conducting], heat_flux[conducting] * dt)
        flux_sum += heat_flux

        new_temperatures = temperatures.copy()
        new_temperatures[updated] = np.clip(
            temperatures[updated] + heat_change[updated] / heat_capacity[updated],
            MIN_TEMPERATURE_K,
            MAX_TEMPERATURE_K,
        )
        new_temperatures[outlet] = options.outlet_temperature_K
        new_temperatures[inlet] = options.inlet_temperature_K
        temperatures = new_temperatures

    state.pore_temperatures[:] = temperatures
    state.throat_heat_fluxes[:] = flux_sum / n_sub
    return n_sub
