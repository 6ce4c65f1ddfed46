"""
Built-in kinetic chemistry engine for pore-scale reactive transport.

Implements the ChemistryEngine contract on top of the YAML compound library
with transition-state-theory (TST) mineral kinetics:

    rate = k(T) · A · (1 - Ω)        [mol/s, positive = dissolution]

    k(T) = k25 · exp(-Ea/R · (1/T - 1/298.15))             (Arrhenius)
    log K(T) = log K25 - ΔH/(R ln 10) · (1/T - 1/298.15)    (van't Hoff)
    Ω = IAP / K, ideal activities (molality ≈ mol/L); water activity 1
    A = max(n_mineral · a_specific, seed_area · V_fluid)

Integration is explicit with a fixed number of substeps. Each substep's
reaction extents are scaled down uniformly if they would drive any species
negative, so mass is conserved and amounts stay non-negative.

Design:
    - Stateless with respect to the pore states it receives (inputs are
      cloned, never mutated)
    - Saturation ratios are computed in one overridable method so
      PhreeqcChemistryEngine can swap in PHREEQC saturation indices

Usage:
    >>> engine = KineticChemistryEngine()
    >>> reactions = engine.generate_reactions(state, mineral_filter=["Calcite"])
    >>> final = engine.solve_kinetics(state, duration_s=1.0, reactions=reactions)
"""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from typing import Dict, List, Optional

from core.interfaces import ChemistryEngine
from core.thermo_state import (
    CompoundPhase,
    CompoundRecord,
    KineticReaction,
    ThermodynamicState,
)
from utils.compound_library import CompoundLibrary, get_compound_library, parse_chemical_formula

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Gas constant (J/mol·K)
R_GAS = 8.314462618

# Reference temperature for tabulated constants (K)
T_REF = 298.15

# Saturation ratios are capped at 10^MAX_LOG_OMEGA
MAX_LOG_OMEGA = 10.0


class KineticChemistryEngine(ChemistryEngine):
    """
    Transition-state-theory kinetics over the compound library.

    Reactions are generated for every library mineral with kinetic data whose
    elements are all present in the state, so a mineral can precipitate in a
    pore where it is not yet present (nucleating on the seed area).
    """

    def __init__(
        self,
        library: Optional[CompoundLibrary] = None,
        substeps: int = 10,
        seed_surface_area_m2_per_L: float = 1.0,
    ):
        """
        Initialize kinetic engine.

        Args:
            library: Compound library (shared default library if None)
            substeps: Explicit integration substeps per call
            seed_surface_area_m2_per_L: Reactive area per liter of fluid used
                when a mineral is absent or below its own surface area
        """
        if substeps < 1:
            raise ValueError(f"substeps must be >= 1, got {substeps}")
        self.library = library or get_compound_library()
        self.substeps = substeps
        self.seed_surface_area_m2_per_L = seed_surface_area_m2_per_L
        self._formula_cache: Dict[str, Dict[str, float]] = {}

    def get_backend_name(self) -> str:
        return "builtin-kinetics"

    # ========================================================================
    # Compound lookup
    # ========================================================================

    def parse_formula(self, formula: str) -> Dict[str, float]:
        return self.library.parse_formula(formula)

    def find_compound(self, name: str) -> Optional[CompoundRecord]:
        return self.library.find_flexible(name)

    def _composition(self, record: CompoundRecord) -> Dict[str, float]:
        composition = self._formula_cache.get(record.name)
        if composition is None:
            composition = parse_chemical_formula(record.formula)
            self._formula_cache[record.name] = composition
        return composition

    # ========================================================================
    # Reaction generation
    # ========================================================================

    def generate_reactions(
        self,
        state: ThermodynamicState,
        mineral_filter: Optional[List[str]] = None,
    ) -> List[KineticReaction]:
        allowed = None
        if mineral_filter:
            allowed = set()
            for name in mineral_filter:
                record = self.find_compound(name)
                allowed.add(record.name if record is not None else name)
            allowed = {name.lower() for name in allowed}

        present = {el for el, amount in state.elemental_composition.items() if amount > 0}

        reactions: List[KineticReaction] = []
        for mineral in self.library.minerals():
            if not mineral.has_kinetics:
                continue
            if allowed is not None and mineral.name.lower() not in allowed:
                continue
            if not set(self._composition(mineral)) <= present:
                continue
            reactions.append(
                KineticReaction(
                    mineral=mineral.name,
                    products=dict(mineral.dissolution_products),
                    log_k_25C=float(mineral.log_k_25C),
                    rate_constant_mol_m2_s=float(mineral.rate_constant_mol_m2_s),
                    activation_energy_kJ_mol=mineral.activation_energy_kJ_mol,
                    delta_h_kJ_mol=mineral.delta_h_kJ_mol,
                    specific_surface_area_m2_mol=mineral.specific_surface_area_m2_mol,
                    phreeqc_phase=mineral.phreeqc_phase,
                )
            )
        return reactions

    # ========================================================================
    # Rate laws
    # ========================================================================

    @staticmethod
    def rate_constant(reaction: KineticReaction, temperature_K: float) -> float:
        """Arrhenius-corrected rate constant (mol/m²/s)"""
        Ea = reaction.activation_energy_kJ_mol * 1000.0
        return reaction.rate_constant_mol_m2_s * math.exp(-Ea / R_GAS * (1.0 / temperature_K - 1.0 / T_REF))

    @staticmethod
    def log_k(reaction: KineticReaction, temperature_K: float) -> float:
        """van't Hoff-corrected log10 equilibrium constant"""
        dH = reaction.delta_h_kJ_mol * 1000.0
        return reaction.log_k_25C - dH / (R_GAS * math.log(10.0)) * (1.0 / temperature_K - 1.0 / T_REF)

    def _is_unit_activity(self, species: str) -> bool:
        record = self.find_compound(species)
        return record is not None and record.phase in (CompoundPhase.LIQUID, CompoundPhase.SOLID)

    def _species_key(self, species: str) -> str:
        record = self.find_compound(species)
        return record.name if record is not None else species

    def ideal_saturation_ratio(self, reaction: KineticReaction, state: ThermodynamicState) -> float:
        """Ω = IAP / K with ideal molar activities"""
        if state.volume_L <= 0:
            return 0.0
        log_iap = 0.0
        for product, coefficient in reaction.products.items():
            if self._is_unit_activity(product):
                continue
            moles = state.species_moles.get(self._species_key(product), 0.0)
            if moles <= 0:
                if coefficient > 0:
                    return 0.0
                log_iap = math.inf
                break
            log_iap += coefficient * math.log10(moles / state.volume_L)
        log_omega = min(log_iap - self.log_k(reaction, state.temperature_K), MAX_LOG_OMEGA)
        return 10.0 ** log_omega

    def saturation_ratios(
        self,
        reactions: List[KineticReaction],
        state: ThermodynamicState,
    ) -> List[float]:
        """Saturation ratio Ω of every reaction for the given state"""
        return [self.ideal_saturation_ratio(r, state) for r in reactions]

    def reactive_surface_area(self, reaction: KineticReaction, state: ThermodynamicState) -> float:
        """Reactive mineral surface (m²)"""
        moles = state.species_moles.get(reaction.mineral, 0.0)
        return max(
            moles * reaction.specific_surface_area_m2_mol,
            self.seed_surface_area_m2_per_L * state.volume_L,
        )

    def reaction_rates(
        self,
        reactions: List[KineticReaction],
        state: ThermodynamicState,
    ) -> List[float]:
        """TST rates (mol/s, positive = dissolution) of every reaction"""
        omegas = self.saturation_ratios(reactions, state)
        return [
            self.rate_constant(r, state.temperature_K) * self.reactive_surface_area(r, state) * (1.0 - omega)
            for r, omega in zip(reactions, omegas)
        ]

    # ========================================================================
    # Integration
    # ========================================================================

    def solve_kinetics(
        self,
        state: ThermodynamicState,
        duration_s: float,
        reactions: List[KineticReaction],
    ) -> ThermodynamicState:
        result = state.clone()
        if duration_s <= 0 or not reactions:
            return result

        h = duration_s / self.substeps
        moles = result.species_moles
        for _ in range(self.substeps):
            rates = self.reaction_rates(reactions, result)

            deltas: Dict[str, float] = defaultdict(float)
            for reaction, rate in zip(reactions, rates):
                extent = rate * h
                if extent == 0:
                    continue
                # An absent mineral can only precipitate
                if extent > 0 and moles.get(reaction.mineral, 0.0) <= 0:
                    continue
                deltas[reaction.mineral] -= extent
                for product, coefficient in reaction.products.items():
                    deltas[self._species_key(product)] += coefficient * extent

            scale = 1.0
            for species, delta in deltas.items():
                available = moles.get(species, 0.0)
                if delta < 0 and available + delta < 0:
                    scale = min(scale, available / -delta)
            if scale <= 0:
                break

            for species, delta in deltas.items():
                moles[species] = max(0.0, moles.get(species, 0.0) + delta * scale)

        self._refresh_composition(result)
        return result

    def _refresh_composition(self, state: ThermodynamicState) -> None:
        composition: Dict[str, float] = defaultdict(float)
        for species, amount in state.species_moles.items():
            record = self.find_compound(species)
            if record is None:
                continue
            for element, count in self._composition(record).items():
                composition[element] += amount * count
        state.elemental_composition = dict(composition)
