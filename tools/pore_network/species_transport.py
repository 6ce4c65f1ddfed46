"""
Transport Solver: explicit advection-diffusion of dissolved species.

Every species present in the state or in the inlet composition is moved by
upwind advection along throat flow plus Fickian diffusion through throat
cross-sections. Inlet pores are held at the inlet concentration; outlet pores
are free (outflow) boundaries.

A timestep longer than the explicit stability limit of the smallest pore is
split into equal sub-steps, so concentrations stay between their neighbours'
values.
"""

import logging
from typing import List

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


def transported_species(state: SimulationState, options: SimulationOptions) -> List[str]:
    """Species tracked in the state plus species supplied at the inlet, in first-seen order"""
    species = list(state.concentrations.keys())
    for name in options.inlet_concentrations:
        if name not in state.concentrations:
            species.append(name)
    return species


def solve_transport(
    network: PoreNetwork,
    state: SimulationState,
    options: SimulationOptions,
) -> int:
    """
    Advance every species concentration (mol/L) by one timestep.

    For each non-inlet pore and sub-step of length dt_sub:
        Δm = Σ advective q C_upstream dt_sub + Σ D A (C_neighbor - C) / L dt_sub
        C_new = max(0, C + Δm / V)

    Pores with zero volume keep their concentration.

    Returns:
        Number of sub-steps used
    """
    n_pores = network.num_pores
    if n_pores == 0:
        return 0

    inlet, _ = find_boundary_pores(network, options.flow_axis.index)
    valid = network.throat_valid
    i = network.throat_conns[:, 0]
    j = network.throat_conns[:, 1]

    flow_rates = state.throat_flow_rates
    advective = valid & (flow_rates != 0)
    forward = flow_rates > 0

    lengths = network.throat_lengths_m()
    areas = throat_cross_sections_m2(state.throat_radii, network.voxel_size_m)
    diffusive = valid & (areas > 0)
    diffusion_coeff = np.zeros(network.num_throats)
    diffusion_coeff[diffusive] = (
        options.molecular_diffusivity_m2_s * areas[diffusive] / lengths[diffusive]
    )

    volumes_m3 = state.pore_volumes * UM3_TO_M3
    updated = (volumes_m3 > 0) & ~inlet

    exchange = outgoing_exchange(n_pores, network.throat_conns, diffusion_coeff, flow_rates, valid)
    n_sub = explicit_substeps(volumes_m3, exchange, options.time_step_s, updated)
    dt = options.time_step_s / n_sub
    if n_sub > 1:
        logger.debug(f"Transport step split into {n_sub} sub-steps of {dt:.3e} s")

    for species in transported_species(state, options):
        concentrations = state.species_field(species)
        inlet_value = options.inlet_concentrations.get(species, 0.0)
        current = concentrations.copy()

        for _ in range(n_sub):
            mass_change = np.zeros(n_pores)

            upstream_C = np.where(forward, current[i], current[j])
            advected = flow_rates * upstream_C * dt
            np.add.at(mass_change, i[advective], -advected[advective])
            np.add.at(mass_change, j[advective], advected[advective])

            diffused = diffusion_coeff * (current[i] - current[j]) * dt
            np.add.at(mass_change, i[diffusive], -diffused[diffusive])
            np.add.at(mass_change, j[diffusive], diffused[diffusive])

            new_concentrations = current.copy()
            new_concentrations[updated] = np.maximum(
                0.0, current[updated] + mass_change[updated] / volumes_m3[updated]
            )
            new_concentrations[inlet] = inlet_value
            current = new_concentrations

        concentrations[:] = current

    return n_sub
