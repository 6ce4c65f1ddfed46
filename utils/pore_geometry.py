"""
Pore geometry helpers shared by the pore-network solvers.

Covers boundary-pore detection along the flow axis, throat cross-sections,
sphere-equivalent radii, sub-step sizing for the explicit solvers and the
unit conversions between network units (voxels, µm³) and SI.
"""

import math
from typing import Tuple

import numpy as np

from core.network import PoreNetwork

# ============================================================================
# Unit Conversions
# ============================================================================

UM3_TO_M3 = 1e-18
UM3_TO_L = 1e-15
PA_PER_BAR = 1e5
WATER_MOLES_PER_L = 55.508

# Pore volume never drops below this fraction of its original volume
MIN_VOLUME_FRACTION = 0.01

# Permeability unit (m² per millidarcy)
M2_PER_MILLIDARCY = 9.869233e-16


# ============================================================================
# Boundary Pores
# ============================================================================

def boundary_tolerance(extent: float) -> float:
    """Inlet/outlet band width (voxels): max(2, 5 % of the axis extent)"""
    return max(2.0, 0.05 * extent)


def find_boundary_pores(network: PoreNetwork, axis: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Inlet and outlet pore masks along a coordinate axis.

    A pore is an inlet if its coordinate is within the tolerance band of the
    minimum, an outlet if within the band of the maximum. In thin networks a
    pore can be both.

    Args:
        network: Pore network
        axis: 0, 1 or 2 for X, Y, Z

    Returns:
        (inlet_mask, outlet_mask) boolean arrays over pores
    """
    if network.num_pores == 0:
        empty = np.zeros(0, dtype=bool)
        return empty, empty.copy()

    coords = network.pore_coords[:, axis]
    lo = float(coords.min())
    hi = float(coords.max())
    tol = boundary_tolerance(hi - lo)
    return coords <= lo + tol, coords >= hi - tol


# ============================================================================
# Geometry
# ============================================================================

def throat_cross_sections_m2(throat_radii_vox: np.ndarray, voxel_size_m: float) -> np.ndarray:
    """Circular cross-section area π r² of throats (m²)"""
    r_m = throat_radii_vox * voxel_size_m
    return math.pi * r_m ** 2


def sphere_radius_um(volume_um3: np.ndarray) -> np.ndarray:
    """Radius (µm) of a sphere with the given volume: (3V / 4π)^(1/3)"""
    return np.cbrt(3.0 * np.asarray(volume_um3) / (4.0 * math.pi))


def pore_surface_areas_m2(network: PoreNetwork, pore_radii_vox: np.ndarray) -> np.ndarray:
    """
    Pore surface areas (m²).

    Explicit areas from the network (voxel²) are used when positive; other
    pores use the sphere area 4π r² of their current radius.
    """
    voxel_m = network.voxel_size_m
    sphere = 4.0 * math.pi * (pore_radii_vox * voxel_m) ** 2
    explicit = network.pore_areas * voxel_m ** 2
    return np.where(network.pore_areas > 0, explicit, sphere)


# ============================================================================
# Explicit Time Integration
# ============================================================================

def explicit_substeps(
    capacity: np.ndarray,
    exchange: np.ndarray,
    dt: float,
    updated: np.ndarray,
) -> int:
    """
    Number of equal sub-steps that keep an explicit pore update stable.

    Each updated pore must satisfy ``dt_sub * exchange <= capacity``, where
    ``exchange`` is the pore's total outgoing coefficient (diffusive or
    conductive conductance plus advective outflow) and ``capacity`` what the
    pore holds per unit of the transported quantity (volume, m c_p).

    Returns:
        ceil(dt / min(capacity / exchange)), at least 1
    """
    active = updated & (exchange > 0) & (capacity > 0)
    if not np.any(active):
        return 1
    stable_dt = float(np.min(capacity[active] / exchange[active]))
    return max(1, int(math.ceil(dt / stable_dt)))


def outgoing_exchange(
    n_pores: int,
    throat_conns: np.ndarray,
    conductance: np.ndarray,
    flow_rates: np.ndarray,
    valid: np.ndarray,
) -> np.ndarray:
    """Per-pore sum of throat conductances plus advective outflow"""
    i = throat_conns[:, 0]
    j = throat_conns[:, 1]
    exchange = np.zeros(n_pores)
    np.add.at(exchange, i[valid], conductance[valid])
    np.add.at(exchange, j[valid], conductance[valid])
    leaving_i = valid & (flow_rates > 0)
    leaving_j = valid & (flow_rates < 0)
    np.add.at(exchange, i[leaving_i], flow_rates[leaving_i])
    np.add.at(exchange, j[leaving_j], -flow_rates[leaving_j])
    return exchange
