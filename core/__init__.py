"""
Core data model and chemistry plugin architecture for pore network simulations.

This module provides:
- Pore network topology (dense, index-addressed arrays)
- Simulation state and results containers
- Simulation options and response schemas (pydantic)
- Chemistry engine contract and its built-in / PHREEQC implementations
"""

from .interfaces import ChemistryEngine
from .network import Pore, PoreNetwork, Throat
from .schemas import (
    FlowAxis,
    PermeabilityResult,
    ProvenanceMetadata,
    ReactiveTransportSummary,
    SimulationOptions,
)
from .state_container import SimulationResults, SimulationState
from .thermo_state import CompoundPhase, CompoundRecord, KineticReaction, ThermodynamicState
from .chemistry_backend import KineticChemistryEngine
from .phreeqc_adapter import PhreeqcChemistryEngine

__all__ = [
    "ChemistryEngine",
    "Pore",
    "PoreNetwork",
    "Throat",
    "FlowAxis",
    "PermeabilityResult",
    "ProvenanceMetadata",
    "ReactiveTransportSummary",
    "SimulationOptions",
    "SimulationResults",
    "SimulationState",
    "CompoundPhase",
    "CompoundRecord",
    "KineticReaction",
    "ThermodynamicState",
    "KineticChemistryEngine",
    "PhreeqcChemistryEngine",
]
