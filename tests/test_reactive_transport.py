"""
Integration tests for the reactive-transport time-stepping driver.

Covers timestep validation, snapshot scheduling, failure and cancellation
handling, permeability bookkeeping and the geometry feedback loop.
"""

import math
from pathlib import Path
import sys
import threading
from typing import Dict, List, Optional
from unittest.mock import patch

import numpy as np
import pytest

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.interfaces import ChemistryEngine
from core.network import Pore, PoreNetwork, Throat
from core.schemas import SimulationOptions
from core.thermo_state import CompoundRecord, KineticReaction, ThermodynamicState
from tools.pore_network.reactive_transport import solve
from utils.compound_library import get_compound_library

# Sphere of radius 2 µm
V0 = 4.0 / 3.0 * math.pi * 8.0

# Sphere of radius 1 µm
V1 = 4.0 / 3.0 * math.pi


def _chain():
    pores = [Pore(i, (0.0, 0.0, 10.0 * i), 2.0, V0) for i in range(3)]
    throats = [Throat(0, 0, 1, 1.0), Throat(1, 1, 2, 1.0)]
    return PoreNetwork(pores, throats, voxel_size_um=1.0)


def _options(**overrides):
    params = dict(
        total_time_s=10.0,
        time_step_s=1.0,
        output_interval_s=5.0,
        enable_reactions=False,
        update_geometry=False,
    )
    params.update(overrides)
    return SimulationOptions(**params)


class PrecipitatingEngine(ChemistryEngine):
    """Adds a fixed amount of calcite to every pore on every call"""

    def __init__(self, moles_per_call: float):
        self.library = get_compound_library()
        self.moles_per_call = moles_per_call

    def parse_formula(self, formula: str) -> Dict[str, float]:
        return self.library.parse_formula(formula)

    def find_compound(self, name: str) -> Optional[CompoundRecord]:
        return self.library.find_flexible(name)

    def generate_reactions(self, state, mineral_filter=None) -> List[KineticReaction]:
        return [KineticReaction("Calcite", {"Ca+2": 1, "CO3-2": 1}, -8.48, 1e-6)]

    def solve_kinetics(self, state, duration_s, reactions) -> ThermodynamicState:
        final = state.clone()
        final.species_moles["Calcite"] = final.species_moles.get("Calcite", 0.0) + self.moles_per_call
        return final

    def get_backend_name(self) -> str:
        return "precipitating"


# ==============================================================================
# Time Stepping and Snapshots
# ==============================================================================

class TestTimeStepping:
    """Test step counts and snapshot schedule"""

    @pytest.mark.parametrize("dt", [0.0, -1.0])
    def test_non_positive_timestep_rejected(self, dt):
        with pytest.raises(ValueError, match="time_step_s"):
            solve(_chain(), _options(time_step_s=dt))

    def test_snapshot_schedule(self):
        """Snapshots at t = 0, 5, 10 for a 5 s interval"""
        results = solve(_chain(), _options())

        assert results.converged
        assert results.total_steps == 10
        assert results.snapshot_times == pytest.approx([0.0, 5.0, 10.0])

    def test_final_state_appended(self):
        """The end of a run is snapshotted even off the interval grid"""
        results = solve(_chain(), _options(output_interval_s=3.0))
        assert results.snapshot_times == pytest.approx([0.0, 3.0, 6.0, 9.0, 10.0])

    def test_zero_interval_snapshots_every_step(self):
        results = solve(_chain(), _options(output_interval_s=0.0))
        assert len(results.time_steps) == 11
        assert results.snapshot_times[-1] == pytest.approx(10.0)

    def test_fractional_timestep(self):
        """0.1 s steps reach 1 s in ten steps without an extra step"""
        results = solve(_chain(), _options(total_time_s=1.0, time_step_s=0.1, output_interval_s=0.5))
        assert results.total_steps == 10
        assert results.snapshot_times == pytest.approx([0.0, 0.5, 1.0])

    def test_zero_total_time(self):
        results = solve(_chain(), _options(total_time_s=0.0))
        assert results.converged
        assert results.total_steps == 0
        assert len(results.time_steps) == 1

    def test_snapshots_are_independent(self):
        """Snapshots are copies, not views of the live state"""
        results = solve(_chain(), _options(inlet_pressure_Pa=10.0))
        first, last = results.time_steps[0], results.time_steps[-1]
        assert first is not last
        assert first.pore_pressures is not last.pore_pressures
        assert np.all(first.throat_flow_rates == 0.0)
        assert np.all(last.throat_flow_rates > 0.0)

    def test_progress_called_each_step(self):
        calls = []
        solve(_chain(), _options(), progress=lambda fraction, message: calls.append(fraction))
        assert len(calls) == 10
        assert calls[-1] == pytest.approx(1.0)

    def test_network_not_modified(self):
        net = _chain()
        solve(net, _options(update_geometry=True, initial_minerals={"Calcite": V0 / 2.0}))
        assert net.pore_volumes == pytest.approx([V0, V0, V0])
        assert net.throat_radii.tolist() == [1.0, 1.0]


# ==============================================================================
# Failure and Cancellation
# ==============================================================================

class TestStopping:
    """Test early termination"""

    def test_stage_failure_stops_run(self):
        """An exception in a stage gives converged = False and keeps earlier snapshots"""
        with patch("tools.pore_network.reactive_transport.solve_heat", side_effect=RuntimeError("boom")):
            results = solve(_chain(), _options())

        assert not results.converged
        assert not results.cancelled
        assert "boom" in results.failure_reason
        assert results.total_steps == 1
        assert results.snapshot_times == [0.0]

    def test_cancel_before_start(self):
        event = threading.Event()
        event.set()

        results = solve(_chain(), _options(), cancel_event=event)

        assert results.cancelled
        assert not results.converged
        assert results.total_steps == 0
        assert len(results.time_steps) == 1

    def test_cancel_during_run(self):
        """Cancelling from the progress callback stops after the current step"""
        event = threading.Event()
        steps = []

        def progress(fraction, message):
            steps.append(fraction)
            if len(steps) == 3:
                event.set()

        results = solve(_chain(), _options(), progress=progress, cancel_event=event)

        assert results.cancelled
        assert results.total_steps == 3
        assert results.snapshot_times == [0.0]


# ==============================================================================
# Permeability and Geometry Feedback
# ==============================================================================

class TestPermeability:
    """Test permeability tracking"""

    def test_static_geometry_keeps_permeability(self):
        """Without reactions or geometry updates k never changes"""
        results = solve(_chain(), _options())

        assert results.initial_permeability > 0
        assert results.final_permeability == results.initial_permeability
        assert results.permeability_change == 0.0

    def test_initial_minerals_reduce_permeability(self):
        """Pre-existing mineral volume shrinks pores on the first update"""
        results = solve(_chain(), _options(update_geometry=True, initial_minerals={"Calcite": V0 / 2.0}))

        assert results.final_permeability < results.initial_permeability
        assert results.permeability_change < 0
        assert results.final_mineral_volumes == pytest.approx({"Calcite": 1.5 * V0})

    def test_precipitation_clogs_monotonically(self):
        """Continuous precipitation never raises k; pores keep 1 % of their volume"""
        options = _options(
            enable_reactions=True,
            update_geometry=True,
            output_interval_s=0.0,
        )
        results = solve(_chain(), options, chemistry_engine=PrecipitatingEngine(2e-13))

        assert results.converged
        history = [s.current_permeability for s in results.time_steps]
        for before, after in zip(history, history[1:]):
            assert after <= before * (1.0 + 1e-12)
        assert history[-1] < history[0]

        final = results.final_state
        assert np.all(final.pore_volumes >= 0.01 * V0 * (1.0 - 1e-12))
        assert final.pore_volumes == pytest.approx([0.01 * V0] * 3)

        expected_total = 3 * 10 * 2e-13 * 36.934e-6 * 1e18
        assert results.final_mineral_volumes["Calcite"] == pytest.approx(expected_total)

    def test_builtin_engine_precipitates_supersaturated_brine(self):
        """Default engine precipitates calcite from a supersaturated fluid"""
        options = _options(
            total_time_s=3.0,
            enable_reactions=True,
            update_geometry=True,
            initial_concentrations={"Ca+2": 0.01, "CO3-2": 0.01},
            inlet_concentrations={"Ca+2": 0.01, "CO3-2": 0.01},
        )
        results = solve(_chain(), options)

        assert results.converged
        assert results.final_mineral_volumes["Calcite"] > 0
        assert results.final_permeability <= results.initial_permeability


# ==============================================================================
# Run-level Scenarios
# ==============================================================================

class TestScenarios:
    """Test whole runs against closed-form expectations"""

    def test_equal_pressures_keep_boundary_fields(self):
        """No pressure drop: zero flow and unchanged fields at every snapshot"""
        options = _options(
            inlet_pressure_Pa=5.0,
            outlet_pressure_Pa=5.0,
            output_interval_s=0.0,
            initial_concentrations={"Na": 0.2},
            inlet_concentrations={"Na": 0.2},
        )
        results = solve(_chain(), options)

        assert results.converged
        assert len(results.time_steps) == 11
        for snapshot in results.time_steps:
            assert np.all(snapshot.throat_flow_rates == 0.0)
            assert np.all(snapshot.pore_temperatures == options.inlet_temperature_K)
            assert np.all(snapshot.concentrations["Na"] == 0.2)

    def test_two_pore_constant_flow(self):
        """Two pores, 1 Pa drop: the same nonzero flow every step and unchanged k"""
        pores = [Pore(0, (0.0, 0.0, 0.0), 1.0, V1), Pore(1, (0.0, 0.0, 10.0), 1.0, V1)]
        net = PoreNetwork(pores, [Throat(0, 0, 1, 1.0)], voxel_size_um=1.0)
        options = _options(inlet_pressure_Pa=1.0, outlet_pressure_Pa=0.0, output_interval_s=0.0)

        results = solve(net, options)

        assert results.converged
        flows = [s.throat_flow_rates[0] for s in results.time_steps[1:]]
        assert len(flows) == 10
        assert flows[0] > 0.0
        assert flows == [flows[0]] * 10
        expected = math.pi * (1e-6) ** 4 * 1.0 / (8.0 * 1e-3 * 10e-6)
        assert flows[0] == pytest.approx(expected, rel=1e-9)
        assert results.final_permeability == results.initial_permeability

    def test_pure_diffusion_rises_monotonically(self):
        """Inlet 'Na' = 1 diffuses in without overshoot at the default timestep"""
        options = _options(
            total_time_s=30.0,
            inlet_pressure_Pa=0.0,
            outlet_pressure_Pa=0.0,
            output_interval_s=0.0,
            inlet_concentrations={"Na": 1.0},
        )
        results = solve(_chain(), options)

        assert results.converged
        history = [s.concentrations["Na"] for s in results.time_steps[1:]]
        for before, after in zip(history, history[1:]):
            assert np.all(after >= before - 1e-12)
        for values in history:
            assert np.all(values >= 0.0)
            assert np.all(values <= 1.0 + 1e-12)
        assert history[-1][2] > 0.5
