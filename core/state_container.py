"""
State container for the time-varying fields of a reactive-transport run.

SimulationState is owned by exactly one run. Every solver stage reads and
mutates it in place; the driver deep-copies it into the snapshot list at
output boundaries.

Layout:
    - per-pore fields are dense numpy arrays indexed like PoreNetwork.pores
    - per-throat fields are dense arrays indexed like PoreNetwork.throats
    - concentrations and minerals are ``name -> per-pore array`` mappings

Units:
    - pressure: Pa, temperature: K
    - pore radius/throat radius: voxels, pore volume: µm³
    - concentration: mol/L, mineral volume: µm³ per pore
    - flow rate: m³/s, heat flux: W, reaction rate: mol/s
    - permeability: mD
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np

from core.network import PoreNetwork


class SimulationState:
    """
    All time-varying per-pore and per-throat fields of one run.

    Usage:
        state = SimulationState.initial(network, options)
        state.pore_pressures[network.pore_index[pore_id]]
        state.concentrations_of(pore_id)   # {"Ca+2": 0.01, ...}
    """

    def __init__(self, network: PoreNetwork):
        """Allocate zeroed fields sized to the network"""
        n_pores = network.num_pores
        n_throats = network.num_throats

        self.pore_index: Dict[int, int] = network.pore_index
        self.throat_index: Dict[int, int] = network.throat_index
        self.current_time: float = 0.0
        self.current_permeability: float = 0.0

        self.pore_pressures = np.zeros(n_pores)
        self.pore_temperatures = np.zeros(n_pores)
        self.pore_radii = network.pore_radii.copy()
        self.pore_volumes = network.pore_volumes.copy()
        self.reaction_rates = np.zeros(n_pores)

        self.throat_flow_rates = np.zeros(n_throats)
        self.throat_radii = network.throat_radii.copy()
        self.throat_heat_fluxes = np.zeros(n_throats)

        self.concentrations: Dict[str, np.ndarray] = {}
        self.minerals: Dict[str, np.ndarray] = {}

    @classmethod
    def initial(cls, network: PoreNetwork, options) -> "SimulationState":
        """
        State at t = 0.

        Pressure is the mean of the boundary pressures, temperature the inlet
        temperature, geometry the network's original geometry, and every pore
        receives the configured initial concentrations and mineral volumes.
        """
        state = cls(network)
        state.pore_pressures[:] = 0.5 * (options.inlet_pressure_Pa + options.outlet_pressure_Pa)
        state.pore_temperatures[:] = options.inlet_temperature_K
        for species, value in options.initial_concentrations.items():
            state.concentrations[species] = np.full(network.num_pores, float(value))
        for mineral, value in options.initial_minerals.items():
            state.minerals[mineral] = np.full(network.num_pores, float(value))
        return state

    @property
    def num_pores(self) -> int:
        return self.pore_pressures.shape[0]

    def clone(self) -> "SimulationState":
        """Deep copy for snapshots"""
        return copy.deepcopy(self)

    # ========================================================================
    # Per-species / per-mineral fields
    # ========================================================================

    def species_field(self, species: str) -> np.ndarray:
        """Concentration array for a species, created as zeros if missing"""
        values = self.concentrations.get(species)
        if values is None:
            values = np.zeros(self.num_pores)
            self.concentrations[species] = values
        return values

    def mineral_field(self, mineral: str) -> np.ndarray:
        """Mineral volume array, created as zeros if missing"""
        values = self.minerals.get(mineral)
        if values is None:
            values = np.zeros(self.num_pores)
            self.minerals[mineral] = values
        return values

    def total_mineral_volumes(self) -> np.ndarray:
        """Sum of all mineral volumes per pore (µm³)"""
        total = np.zeros(self.num_pores)
        for values in self.minerals.values():
            total += values
        return total

    # ========================================================================
    # Accessors by external id
    # ========================================================================

    def pore_field(self, name: str, pore_id: int) -> float:
        """Scalar value of a per-pore array (e.g. 'pore_pressures') for a pore id"""
        return float(getattr(self, name)[self.pore_index[pore_id]])

    def throat_field(self, name: str, throat_id: int) -> float:
        """Scalar value of a per-throat array (e.g. 'throat_flow_rates') for a throat id"""
        return float(getattr(self, name)[self.throat_index[throat_id]])

    def concentrations_of(self, pore_id: int) -> Dict[str, float]:
        idx = self.pore_index[pore_id]
        return {species: float(values[idx]) for species, values in self.concentrations.items()}

    def minerals_of(self, pore_id: int) -> Dict[str, float]:
        idx = self.pore_index[pore_id]
        return {mineral: float(values[idx]) for mineral, values in self.minerals.items()}


@dataclass
class SimulationResults:
    """
    Outcome of a reactive-transport run.

    ``time_steps`` holds the snapshots in time order; the first is t = 0.
    ``permeability_change`` is relative: (final - initial) / initial.
    """
    time_steps: List[SimulationState] = field(default_factory=list)
    total_steps: int = 0
    converged: bool = False
    cancelled: bool = False
    failure_reason: Optional[str] = None
    computation_time_s: float = 0.0
    initial_permeability: float = 0.0
    final_permeability: float = 0.0
    permeability_change: float = 0.0
    final_mineral_volumes: Dict[str, float] = field(default_factory=dict)

    @property
    def final_state(self) -> Optional[SimulationState]:
        return self.time_steps[-1] if self.time_steps else None

    @property
    def snapshot_times(self) -> List[float]:
        return [s.current_time for s in self.time_steps]
