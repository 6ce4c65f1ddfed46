"""
Permeability Estimator: Kozeny-Carman from current pore geometry.

    k = φ³ / (C Sv² (1 - φ)²),  C = 5 (Kozeny constant)

Porosity φ is the total current pore volume over the bounding box of the pore
centres padded by the largest pore radius; Sv is the pore surface area per
bulk volume.

Reference:
    Carman, P.C. (1937). Fluid flow through granular beds.
    Trans. Inst. Chem. Eng. 15, 150-166.
"""

import logging
from dataclasses import dataclass

import numpy as np

from core.network import PoreNetwork
from core.state_container import SimulationState
from utils.pore_geometry import M2_PER_MILLIDARCY, UM3_TO_M3, pore_surface_areas_m2

logger = logging.getLogger(__name__)

KOZENY_CONSTANT = 5.0
MIN_POROSITY = 0.001
MAX_POROSITY = 0.99


@dataclass
class KozenyCarmanEstimate:
    """Permeability with the quantities it was derived from"""
    permeability_mD: float
    porosity: float
    specific_surface_per_m: float
    bulk_volume_m3: float


def bounding_box_volume_m3(network: PoreNetwork) -> float:
    """Volume (m³) of the pore-centre bounding box padded by the max pore radius"""
    if network.num_pores == 0:
        return 0.0
    margin = network.max_pore_radius
    extent = network.pore_coords.max(axis=0) - network.pore_coords.min(axis=0) + 2.0 * margin
    return float(np.prod(extent * network.voxel_size_m))


def kozeny_carman_estimate(network: PoreNetwork, state: SimulationState) -> KozenyCarmanEstimate:
    """
    Kozeny-Carman estimate using current pore volumes and radii.

    Returns a zero permeability when the network is empty or when the box
    volume, total pore volume or total surface area is not positive.
    """
    bulk_volume = bounding_box_volume_m3(network)
    pore_volume = float(np.sum(state.pore_volumes)) * UM3_TO_M3
    surface_area = float(np.sum(pore_surface_areas_m2(network, state.pore_radii)))

    if network.num_pores == 0 or bulk_volume <= 0 or pore_volume <= 0 or surface_area <= 0:
        return KozenyCarmanEstimate(0.0, 0.0, 0.0, bulk_volume)

    porosity = min(max(pore_volume / bulk_volume, MIN_POROSITY), MAX_POROSITY)
    specific_surface = surface_area / bulk_volume
    k_m2 = porosity ** 3 / (KOZENY_CONSTANT * specific_surface ** 2 * (1.0 - porosity) ** 2)
    return KozenyCarmanEstimate(
        permeability_mD=k_m2 / M2_PER_MILLIDARCY,
        porosity=porosity,
        specific_surface_per_m=specific_surface,
        bulk_volume_m3=bulk_volume,
    )


def calculate_permeability(network: PoreNetwork, state: SimulationState) -> float:
    """Kozeny-Carman permeability (mD) of the network in its current state"""
    return kozeny_carman_estimate(network, state).permeability_mD
