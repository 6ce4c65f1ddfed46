"""
Unit tests for the PHREEQC-backed chemistry engine.

PhreeqPython is mocked so the tests exercise solution construction,
SI -> saturation ratio conversion, fallbacks and error handling without the
PHREEQC shared library.
"""

from pathlib import Path
import sys
import threading
from unittest.mock import MagicMock, patch

import pytest

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.phreeqc_adapter import PhreeqcChemistryEngine
from core.thermo_state import ThermodynamicState


@pytest.fixture
def engine(monkeypatch):
    """Engine with a fresh thread-local instance cache"""
    monkeypatch.setattr(PhreeqcChemistryEngine, "_thread_local", threading.local())
    return PhreeqcChemistryEngine()


def _state(engine, species, volume_L=1.0):
    state = ThermodynamicState(temperature_K=298.15, pressure_bar=1.0, volume_L=volume_L)
    for name, moles in species.items():
        state.species_moles[name] = moles
        for element, count in engine.parse_formula(name).items():
            state.elemental_composition[element] = (
                state.elemental_composition.get(element, 0.0) + moles * count
            )
    return state


def _mock_phreeqpython(si_values):
    solution = MagicMock()
    solution.si.side_effect = lambda phase: si_values[phase]
    instance = MagicMock()
    instance.add_solution.return_value = solution
    return MagicMock(return_value=instance), instance, solution


class TestBuildSolution:
    """Test phreeqpython solution definitions"""

    def test_dissolved_elements_only(self, engine):
        """Solvent and minerals are excluded; totals are molalities"""
        state = _state(engine, {"Ca+2": 0.01, "CO3-2": 0.02, "H2O": 55.5, "Calcite": 1.0}, volume_L=2.0)

        solution = engine.build_solution(state)

        assert solution["units"] == "mol/kgw"
        assert solution["pH"] == "7 charge"
        assert solution["temp"] == pytest.approx(25.0)
        assert solution["Ca"] == pytest.approx(0.005)
        assert solution["C(4)"] == pytest.approx(0.01)
        assert "O" not in solution
        assert "H" not in solution

    def test_redox_keywords(self, engine):
        state = _state(engine, {"Fe+2": 0.001, "SO4-2": 0.002})
        solution = engine.build_solution(state)
        assert solution["Fe(2)"] == pytest.approx(0.001)
        assert solution["S(6)"] == pytest.approx(0.002)

    def test_zero_volume(self, engine):
        state = _state(engine, {"Ca+2": 0.01}, volume_L=0.0)
        assert "Ca" not in engine.build_solution(state)


class TestSaturationRatios:
    """Test Ω from PHREEQC saturation indices"""

    def test_si_converted(self, engine):
        """Ω = 10^SI; -999 (phase elements absent) gives 0"""
        state = _state(engine, {"Ca+2": 0.01, "CO3-2": 0.01, "SO4-2": 0.01, "H2O": 55.5})
        reactions = engine.generate_reactions(state, mineral_filter=["Calcite", "Gypsum"])
        factory, instance, solution = _mock_phreeqpython({"Calcite": 0.5, "Gypsum": -999.0})

        with patch("core.phreeqc_adapter.PhreeqPython", factory):
            omegas = engine.saturation_ratios(reactions, state)

        by_mineral = dict(zip([r.mineral for r in reactions], omegas))
        assert by_mineral["Calcite"] == pytest.approx(10.0 ** 0.5)
        assert by_mineral["Gypsum"] == 0.0
        factory.assert_called_once_with(database="phreeqc.dat")
        solution.forget.assert_called_once()

    def test_instance_reused_per_thread(self, engine):
        state = _state(engine, {"Ca+2": 0.01, "CO3-2": 0.01})
        reactions = engine.generate_reactions(state, mineral_filter=["Calcite"])
        factory, _, _ = _mock_phreeqpython({"Calcite": 0.0})

        with patch("core.phreeqc_adapter.PhreeqPython", factory):
            engine.saturation_ratios(reactions, state)
            engine.saturation_ratios(reactions, state)

        assert factory.call_count == 1

    def test_phase_without_phreeqc_name_uses_ideal(self, engine):
        """Brucite has no PHREEQC phase; no PHREEQC call is made"""
        state = _state(engine, {"Mg+2": 0.01, "OH-": 0.001})
        reactions = engine.generate_reactions(state, mineral_filter=["Brucite"])
        factory, _, _ = _mock_phreeqpython({})

        with patch("core.phreeqc_adapter.PhreeqPython", factory):
            omegas = engine.saturation_ratios(reactions, state)

        factory.assert_not_called()
        assert omegas[0] == pytest.approx(engine.ideal_saturation_ratio(reactions[0], state))

    def test_phreeqc_failure_raises_runtime_error(self, engine):
        state = _state(engine, {"Ca+2": 0.01, "CO3-2": 0.01})
        reactions = engine.generate_reactions(state, mineral_filter=["Calcite"])
        factory, instance, _ = _mock_phreeqpython({})
        instance.add_solution.side_effect = Exception("bad input")

        with patch("core.phreeqc_adapter.PhreeqPython", factory):
            with pytest.raises(RuntimeError, match="PHREEQC saturation calculation failed"):
                engine.saturation_ratios(reactions, state)

    def test_solution_forgotten_on_error(self, engine):
        """The PHREEQC solution is released even if an SI lookup fails"""
        state = _state(engine, {"Ca+2": 0.01, "CO3-2": 0.01})
        reactions = engine.generate_reactions(state, mineral_filter=["Calcite"])
        factory, _, solution = _mock_phreeqpython({})

        with patch("core.phreeqc_adapter.PhreeqPython", factory):
            with pytest.raises(KeyError):
                engine.saturation_ratios(reactions, state)

        solution.forget.assert_called_once()

    def test_kinetics_use_phreeqc_omega(self, engine):
        """Supersaturation reported by PHREEQC drives precipitation"""
        state = _state(engine, {"Ca+2": 0.01, "CO3-2": 0.01})
        reactions = engine.generate_reactions(state, mineral_filter=["Calcite"])
        factory, _, _ = _mock_phreeqpython({"Calcite": 1.0})

        with patch("core.phreeqc_adapter.PhreeqPython", factory):
            final = engine.solve_kinetics(state, 1.0, reactions)

        assert final.species_moles["Calcite"] > 0

    def test_backend_name(self, engine):
        assert engine.get_backend_name() == "phreeqpython"
