"""
Thermodynamic state and compound records exchanged with chemistry engines.

A ThermodynamicState is the per-pore snapshot handed to a chemistry engine:
temperature, pressure, fluid volume and the moles of every tracked species.
Engines never mutate the state they receive; they return a new one.

Units:
    - temperature_K: Kelvin
    - pressure_bar: bar
    - volume_L: liters of pore fluid
    - species_moles: mol
    - molar volumes: cm³/mol (records) or m³/mol (resolve_molar_volume_m3)
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


# ============================================================================
# Compound Records
# ============================================================================

class CompoundPhase(str, Enum):
    """Physical phase of a compound"""
    AQUEOUS = "aqueous"
    SOLID = "solid"
    LIQUID = "liquid"
    GAS = "gas"


@dataclass
class CompoundRecord:
    """
    A compound as known to the chemistry engine.

    Solids may carry kinetic dissolution data. ``dissolution_products`` maps
    product species name to stoichiometric coefficient for the reaction
    ``1 mineral -> sum(coefficient * product)``.
    """
    name: str
    formula: str
    phase: CompoundPhase
    molar_volume_cm3_mol: Optional[float] = None
    density_g_cm3: Optional[float] = None
    molecular_weight_g_mol: Optional[float] = None
    synonyms: List[str] = field(default_factory=list)
    phreeqc_phase: Optional[str] = None

    # Kinetic data (solids only)
    dissolution_products: Dict[str, float] = field(default_factory=dict)
    log_k_25C: Optional[float] = None
    delta_h_kJ_mol: float = 0.0
    rate_constant_mol_m2_s: Optional[float] = None
    activation_energy_kJ_mol: float = 0.0
    specific_surface_area_m2_mol: float = 0.0

    @property
    def is_solid(self) -> bool:
        return self.phase == CompoundPhase.SOLID

    @property
    def is_aqueous(self) -> bool:
        return self.phase == CompoundPhase.AQUEOUS

    @property
    def has_kinetics(self) -> bool:
        return (
            self.is_solid
            and bool(self.dissolution_products)
            and self.log_k_25C is not None
            and self.rate_constant_mol_m2_s is not None
        )


def resolve_molar_volume_m3(record: CompoundRecord) -> Optional[float]:
    """
    Molar volume of a compound in m³/mol.

    Uses the explicit molar volume when positive, otherwise derives it from
    molecular weight and density. Returns None when neither is available.

    Example:
        >>> calcite = CompoundRecord("Calcite", "CaCO3", CompoundPhase.SOLID,
        ...                          molar_volume_cm3_mol=36.934)
        >>> resolve_molar_volume_m3(calcite)
        3.6934e-05
    """
    if record.molar_volume_cm3_mol is not None and record.molar_volume_cm3_mol > 0:
        return record.molar_volume_cm3_mol * 1e-6
    if (
        record.molecular_weight_g_mol is not None
        and record.density_g_cm3 is not None
        and record.molecular_weight_g_mol > 0
        and record.density_g_cm3 > 0
    ):
        return record.molecular_weight_g_mol / record.density_g_cm3 * 1e-6
    return None


# ============================================================================
# Thermodynamic State
# ============================================================================

@dataclass
class ThermodynamicState:
    """Closed chemical system for one pore over one timestep"""
    temperature_K: float
    pressure_bar: float
    volume_L: float
    species_moles: Dict[str, float] = field(default_factory=dict)
    elemental_composition: Dict[str, float] = field(default_factory=dict)

    def clone(self) -> "ThermodynamicState":
        return copy.deepcopy(self)


@dataclass
class KineticReaction:
    """
    Mineral dissolution/precipitation reaction.

    Positive rates dissolve the mineral into its products; negative rates
    precipitate it.
    """
    mineral: str
    products: Dict[str, float]
    log_k_25C: float
    rate_constant_mol_m2_s: float
    activation_energy_kJ_mol: float = 0.0
    delta_h_kJ_mol: float = 0.0
    specific_surface_area_m2_mol: float = 0.0
    phreeqc_phase: Optional[str] = None
