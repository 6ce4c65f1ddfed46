"""
Abstract base class defining the chemistry engine plugin contract.

The reaction stage of the reactive-transport loop talks to chemistry only
through this interface, so engines can be swapped without touching the
transport code:

- KineticChemistryEngine: built-in transition-state-theory kinetics over the
  YAML compound library (default)
- PhreeqcChemistryEngine: same rate laws, saturation indices from PHREEQC
  via phreeqpython
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from core.thermo_state import CompoundRecord, KineticReaction, ThermodynamicState


# ============================================================================
# Chemistry Engine Interface
# ============================================================================

class ChemistryEngine(ABC):
    """
    Abstract base for per-pore chemistry engines.

    Implementations must be side-effect free with respect to the states they
    receive: ``solve_kinetics`` returns a new state and leaves its input
    untouched.
    """

    @abstractmethod
    def parse_formula(self, formula: str) -> Dict[str, float]:
        """
        Parse a chemical formula into element counts.

        Args:
            formula: Formula or compound name (e.g., "CaCO3", "Ca+2", "Gypsum")

        Returns:
            Mapping of element symbol to count
        """
        pass

    @abstractmethod
    def find_compound(self, name: str) -> Optional[CompoundRecord]:
        """
        Resolve a compound by name, formula, synonym or alternate notation.

        Args:
            name: User-supplied identifier

        Returns:
            CompoundRecord, or None if the compound is unknown
        """
        pass

    @abstractmethod
    def generate_reactions(
        self,
        state: ThermodynamicState,
        mineral_filter: Optional[List[str]] = None,
    ) -> List[KineticReaction]:
        """
        Build the kinetic reactions applicable to a chemical state.

        Args:
            state: Current thermodynamic state
            mineral_filter: Optional allow-list of mineral names (case-insensitive)

        Returns:
            List of reactions (possibly empty)
        """
        pass

    @abstractmethod
    def solve_kinetics(
        self,
        state: ThermodynamicState,
        duration_s: float,
        reactions: List[KineticReaction],
    ) -> ThermodynamicState:
        """
        Advance a chemical state by ``duration_s`` seconds.

        Args:
            state: Initial state (not modified)
            duration_s: Integration time in seconds
            reactions: Reactions from ``generate_reactions``

        Returns:
            New ThermodynamicState after integration
        """
        pass

    @abstractmethod
    def get_backend_name(self) -> str:
        """Return backend identifier (e.g., 'builtin-kinetics')"""
        pass
