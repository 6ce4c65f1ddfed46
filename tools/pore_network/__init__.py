"""
Pore Network Tools - coupled flow, heat, transport and reaction on pore networks.

Solver stages (called in this order by the driver each timestep):
- flow_solver: Hagen-Poiseuille pressure field (sparse CG)
- heat_solver: advection + conduction temperature update
- species_transport: advection + diffusion of dissolved species
- reaction_solver: per-pore kinetics through a ChemistryEngine
- geometry_update / permeability: mineral feedback on geometry, Kozeny-Carman
"""

from .reactive_transport import solve
from .run_simulation import estimate_permeability, run_reactive_transport

__all__ = [
    "solve",
    "run_reactive_transport",
    "estimate_permeability",
]
