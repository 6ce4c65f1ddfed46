"""
PHREEQC-backed variant of the kinetic chemistry engine.

Rate laws and integration are those of KineticChemistryEngine; only the
saturation ratio changes. Each substep builds a phreeqpython solution from
the dissolved element totals of the pore (charge balanced on pH) and takes
Ω = 10^SI for every reaction whose mineral has a PHREEQC phase. Minerals
without a PHREEQC phase fall back to the ideal ion activity product.

Thread Safety:
    Each thread gets its own PhreeqPython instance (threading.local) to
    isolate the C++ PHREEQC backend.
"""

import logging
import threading
from typing import Dict, List, Optional

from phreeqpython import PhreeqPython

from core.chemistry_backend import MAX_LOG_OMEGA, KineticChemistryEngine
from core.thermo_state import KineticReaction, ThermodynamicState
from utils.compound_library import CompoundLibrary

logger = logging.getLogger(__name__)

# Element symbol -> PHREEQC master species keyword (mol/kgw input)
ELEMENT_TO_PHREEQC: Dict[str, str] = {
    "Ca": "Ca",
    "Mg": "Mg",
    "Na": "Na",
    "K": "K",
    "Cl": "Cl",
    "Ba": "Ba",
    "Fe": "Fe(2)",
    "Si": "Si",
    "C": "C(4)",
    "S": "S(6)",
}

# SI returned by PHREEQC for phases whose elements are absent
NO_PHASE_SI = -999.0


class PhreeqcChemistryEngine(KineticChemistryEngine):
    """
    Kinetic engine with PHREEQC saturation indices.

    Usage:
        engine = PhreeqcChemistryEngine(database="phreeqc.dat")
        results = solve(network, options, chemistry_engine=engine)
    """

    _thread_local = threading.local()

    def __init__(
        self,
        library: Optional[CompoundLibrary] = None,
        database: str = "phreeqc.dat",
        substeps: int = 10,
        seed_surface_area_m2_per_L: float = 1.0,
    ):
        """
        Initialize PHREEQC engine.

        Args:
            library: Compound library (shared default library if None)
            database: PHREEQC database file ("phreeqc.dat", "llnl.dat", ...)
            substeps: Explicit integration substeps per call
            seed_surface_area_m2_per_L: Nucleation surface per liter of fluid
        """
        super().__init__(
            library=library,
            substeps=substeps,
            seed_surface_area_m2_per_L=seed_surface_area_m2_per_L,
        )
        self.database = database

    def get_backend_name(self) -> str:
        return "phreeqpython"

    def _get_phreeqc(self) -> PhreeqPython:
        """Thread-local PhreeqPython instance (one per database)"""
        instances = getattr(self._thread_local, "instances", None)
        if instances is None:
            instances = {}
            self._thread_local.instances = instances
        pp = instances.get(self.database)
        if pp is None:
            logger.debug(f"Creating PHREEQC instance for thread {threading.current_thread().name}")
            pp = PhreeqPython(database=self.database)
            instances[self.database] = pp
        return pp

    def dissolved_element_totals(self, state: ThermodynamicState) -> Dict[str, float]:
        """Element moles carried by aqueous species only"""
        totals: Dict[str, float] = {}
        for species, amount in state.species_moles.items():
            record = self.find_compound(species)
            if record is None or not record.is_aqueous or amount <= 0:
                continue
            for element, count in self._composition(record).items():
                totals[element] = totals.get(element, 0.0) + amount * count
        return totals

    def build_solution(self, state: ThermodynamicState) -> Dict[str, object]:
        """
        phreeqpython solution definition for a pore state.

        Concentrations are molalities (1 L of pore fluid ≈ 1 kg water); H and
        O come from the solvent and are not specified.
        """
        solution: Dict[str, object] = {
            "units": "mol/kgw",
            "temp": state.temperature_K - 273.15,
            "pH": "7 charge",
        }
        if state.volume_L <= 0:
            return solution
        for element, total in self.dissolved_element_totals(state).items():
            keyword = ELEMENT_TO_PHREEQC.get(element)
            if keyword is None:
                continue
            solution[keyword] = total / state.volume_L
        return solution

    def saturation_ratios(
        self,
        reactions: List[KineticReaction],
        state: ThermodynamicState,
    ) -> List[float]:
        if not any(r.phreeqc_phase for r in reactions):
            return super().saturation_ratios(reactions, state)

        pp = self._get_phreeqc()
        try:
            sol = pp.add_solution(self.build_solution(state))
        except Exception as e:
            logger.error(f"PHREEQC error: {e}")
            raise RuntimeError(f"PHREEQC saturation calculation failed: {e}") from e

        try:
            omegas = []
            for reaction in reactions:
                if not reaction.phreeqc_phase:
                    omegas.append(self.ideal_saturation_ratio(reaction, state))
                    continue
                si = float(sol.si(reaction.phreeqc_phase))
                omegas.append(0.0 if si <= NO_PHASE_SI else 10.0 ** min(si, MAX_LOG_OMEGA))
            return omegas
        finally:
            sol.forget()
