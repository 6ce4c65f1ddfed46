"""
Geometry Updater: mineral volume feedback on pore and throat size.

Accumulated mineral volume is taken out of each pore's original volume and
the pore radius is recomputed for an equivalent sphere. Throats shrink with
the more constricted of their two pores.
"""

import logging

import numpy as np

from core.network import PoreNetwork
from core.schemas import SimulationOptions
from core.state_container import SimulationState
from utils.pore_geometry import MIN_VOLUME_FRACTION, sphere_radius_um

logger = logging.getLogger(__name__)


def update_geometry(
    network: PoreNetwork,
    state: SimulationState,
    options: SimulationOptions,
) -> None:
    """
    Recompute pore volumes/radii and throat radii from mineral volumes.

        V = max(V0 - Σ minerals, 0.01 V0)
        r = max((3V / 4π)^(1/3) / voxel_size, min_pore_radius)
        r_t = max(r_t0 × min(rA / rA0, rB / rB0), min_throat_radius)

    A pore whose original radius is <= 0 contributes a scale of 1. Throats
    with unknown endpoints keep their current radius.
    """
    if network.num_pores == 0:
        return

    original_volumes = network.pore_volumes
    volumes = np.maximum(
        original_volumes - state.total_mineral_volumes(),
        MIN_VOLUME_FRACTION * original_volumes,
    )
    radii = np.maximum(sphere_radius_um(volumes) / network.voxel_size_um, options.min_pore_radius)

    state.pore_volumes[:] = volumes
    state.pore_radii[:] = radii

    if network.num_throats == 0:
        return

    original_radii = network.pore_radii
    scale = np.ones(network.num_pores)
    positive = original_radii > 0
    scale[positive] = radii[positive] / original_radii[positive]

    valid = network.throat_valid
    conns = network.throat_conns[valid]
    throat_scale = np.minimum(scale[conns[:, 0]], scale[conns[:, 1]])
    state.throat_radii[valid] = np.maximum(
        network.throat_radii[valid] * throat_scale, options.min_throat_radius
    )
