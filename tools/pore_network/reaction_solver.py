"""
Reaction Solver: per-pore kinetic chemistry through a ChemistryEngine.

For every pore with fluid the solver assembles a closed ThermodynamicState
(dissolved species, bulk water, reactive minerals), asks the engine for the
applicable reactions, integrates them over one timestep and writes the
resulting concentrations and mineral volumes back into the simulation state.

Name resolution is cached for the lifetime of the solver (one run), so an
unknown species or mineral is reported once rather than once per pore and
step.
"""

import logging
from typing import Dict, Optional, Set

from core.chemistry_backend import KineticChemistryEngine
from core.interfaces import ChemistryEngine
from core.network import PoreNetwork
from core.schemas import SimulationOptions
from core.state_container import SimulationState
from core.thermo_state import CompoundRecord, ThermodynamicState, resolve_molar_volume_m3
from utils.pore_geometry import PA_PER_BAR, UM3_TO_L, UM3_TO_M3, WATER_MOLES_PER_L

logger = logging.getLogger(__name__)

M3_TO_UM3 = 1e18


class ReactionSolver:
    """
    Chemistry stage of the reactive-transport loop.

    Usage:
        solver = ReactionSolver(KineticChemistryEngine(), options)
        for step in ...:
            solver.step(network, state)
    """

    def __init__(self, engine: ChemistryEngine, options: SimulationOptions):
        self.engine = engine
        self.options = options
        self._compounds: Dict[str, Optional[CompoundRecord]] = {}
        self._compositions: Dict[str, Dict[str, float]] = {}
        self._reported_missing_volume: Set[str] = set()
        self._water: Optional[CompoundRecord] = (
            engine.find_compound("H2O") or engine.find_compound("Water")
        )

        # Allow-list entries may be names, formulas or synonyms; compare canonical names
        self._allowed: Set[str] = set()
        for name in options.reaction_minerals:
            record = self.resolve(name)
            self._allowed.add((record.name if record is not None else name).lower())

    # ========================================================================
    # Name resolution (cached per run)
    # ========================================================================

    def resolve(self, name: str) -> Optional[CompoundRecord]:
        if name not in self._compounds:
            record = self.engine.find_compound(name)
            if record is None:
                logger.warning(f"Unknown compound '{name}'; skipped in reaction step")
            self._compounds[name] = record
        return self._compounds[name]

    def _molar_volume_m3(self, record: CompoundRecord) -> Optional[float]:
        molar_volume = resolve_molar_volume_m3(record)
        if molar_volume is None and record.name not in self._reported_missing_volume:
            logger.error(f"Missing molar volume for mineral '{record.name}'; excluded from reactions")
            self._reported_missing_volume.add(record.name)
        return molar_volume

    def _is_allowed(self, record: CompoundRecord) -> bool:
        if not self._allowed:
            return True
        return record.name.lower() in self._allowed

    def _add_compound(self, thermo: ThermodynamicState, record: CompoundRecord, moles: float) -> None:
        if moles <= 0:
            return
        thermo.species_moles[record.name] = thermo.species_moles.get(record.name, 0.0) + moles
        composition = self._compositions.get(record.name)
        if composition is None:
            composition = self.engine.parse_formula(record.formula)
            self._compositions[record.name] = composition
        for element, count in composition.items():
            thermo.elemental_composition[element] = (
                thermo.elemental_composition.get(element, 0.0) + moles * count
            )

    def _existing_key(self, record: CompoundRecord, fields: Dict[str, object]) -> Optional[str]:
        """Key of an existing state field that resolves to ``record``"""
        for key in fields:
            if self.resolve(key) is record:
                return key
        return None

    def _solid_moles(self, thermo: ThermodynamicState) -> float:
        total = 0.0
        for name, moles in thermo.species_moles.items():
            record = self.resolve(name)
            if record is None or not record.is_solid:
                continue
            if self._is_allowed(record):
                total += moles
        return total

    # ========================================================================
    # Step
    # ========================================================================

    def step(self, network: PoreNetwork, state: SimulationState) -> None:
        """Advance chemistry in every pore by one timestep"""
        for idx in range(network.num_pores):
            rate = self.react_pore(idx, state)
            if rate is not None:
                state.reaction_rates[idx] = rate

    def react_pore(self, idx: int, state: SimulationState) -> Optional[float]:
        """
        React one pore (by contiguous index).

        Returns:
            Net change of solid moles per second (positive = precipitation),
            or None when the pore holds no fluid and was skipped
        """
        dt = self.options.time_step_s
        volume_L = float(state.pore_volumes[idx]) * UM3_TO_L
        if volume_L <= 0:
            return None

        thermo = ThermodynamicState(
            temperature_K=float(state.pore_temperatures[idx]),
            pressure_bar=float(state.pore_pressures[idx]) / PA_PER_BAR,
            volume_L=volume_L,
        )

        species_keys: Dict[str, str] = {}
        for key, values in state.concentrations.items():
            concentration = float(values[idx])
            if concentration <= 0:
                continue
            record = self.resolve(key)
            if record is None:
                continue
            self._add_compound(thermo, record, concentration * volume_L)
            species_keys[record.name] = key

        if self._water is not None and self._water.name not in thermo.species_moles:
            self._add_compound(thermo, self._water, WATER_MOLES_PER_L * volume_L)

        mineral_keys: Dict[str, str] = {}
        for key, values in state.minerals.items():
            volume_um3 = float(values[idx])
            if volume_um3 <= 0:
                continue
            record = self.resolve(key)
            if record is None or not self._is_allowed(record):
                continue
            molar_volume = self._molar_volume_m3(record)
            if molar_volume is None:
                continue
            self._add_compound(thermo, record, volume_um3 * UM3_TO_M3 / molar_volume)
            mineral_keys[record.name] = key

        reactions = self.engine.generate_reactions(
            thermo, mineral_filter=self.options.reaction_minerals or None
        )
        if not reactions:
            return 0.0

        initial_solids = self._solid_moles(thermo)
        final = self.engine.solve_kinetics(thermo, dt, reactions)
        self._write_back(idx, final, species_keys, mineral_keys, state)
        return (self._solid_moles(final) - initial_solids) / dt

    def _write_back(
        self,
        idx: int,
        final: ThermodynamicState,
        species_keys: Dict[str, str],
        mineral_keys: Dict[str, str],
        state: SimulationState,
    ) -> None:
        volume_L = final.volume_L
        if volume_L <= 0:
            return

        written_minerals: Set[str] = set()
        for name, moles in final.species_moles.items():
            record = self.resolve(name)
            if record is None:
                continue
            if record.is_aqueous:
                key = (
                    species_keys.get(name)
                    or self._existing_key(record, state.concentrations)
                    or record.formula
                )
                state.species_field(key)[idx] = max(0.0, moles / volume_L)
            elif record.is_solid:
                molar_volume = self._molar_volume_m3(record)
                if molar_volume is None:
                    continue
                volume_um3 = max(0.0, moles * molar_volume * M3_TO_UM3)
                key = mineral_keys.get(name)
                if key is not None:
                    state.minerals[key][idx] = volume_um3
                else:
                    # Mineral did not enter this pore's state: the result is new growth
                    key = self._existing_key(record, state.minerals) or record.name
                    state.mineral_field(key)[idx] += volume_um3
                written_minerals.add(key)

        # Minerals that entered the reaction but are gone afterwards
        for key in mineral_keys.values():
            if key not in written_minerals:
                state.minerals[key][idx] = 0.0


def solve_reactions(
    network: PoreNetwork,
    state: SimulationState,
    options: SimulationOptions,
    engine: Optional[ChemistryEngine] = None,
) -> None:
    """One-off reaction step with a fresh solver (built-in engine by default)"""
    if engine is None:
        engine = KineticChemistryEngine()
    ReactionSolver(engine, options).step(network, state)
