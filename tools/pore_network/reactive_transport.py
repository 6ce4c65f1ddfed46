"""
Time-Stepping Driver for pore-network reactive transport.

Each timestep runs, in fixed order:

1. Flow: pressure field and throat flow rates
2. Heat: advection + conduction temperature update
3. Transport: advection + diffusion of dissolved species
4. Reaction: per-pore kinetics (if enabled)
5. Geometry: pore/throat radii from mineral volume, then permeability (if enabled)

State is snapshotted at t = 0, whenever the simulated time reaches the next
multiple of the output interval, and at the end of a completed run. A failure
in any stage stops the run with ``converged = False`` and keeps the snapshots
taken so far.
"""

import logging
import math
import threading
import time
from typing import Callable, Optional

import numpy as np

from core.chemistry_backend import KineticChemistryEngine
from core.interfaces import ChemistryEngine
from core.network import PoreNetwork
from core.schemas import SimulationOptions
from core.state_container import SimulationResults, SimulationState
from tools.pore_network.flow_solver import solve_flow
from tools.pore_network.geometry_update import update_geometry
from tools.pore_network.heat_solver import solve_heat
from tools.pore_network.permeability import calculate_permeability
from tools.pore_network.reaction_solver import ReactionSolver
from tools.pore_network.species_transport import solve_transport

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float, str], None]


def _next_output_time(t: float, interval: float) -> float:
    """Smallest multiple of ``interval`` strictly after ``t``"""
    return interval * (math.floor(t / interval + 1e-9) + 1)


def solve(
    network: PoreNetwork,
    options: Optional[SimulationOptions] = None,
    progress: Optional[ProgressCallback] = None,
    chemistry_engine: Optional[ChemistryEngine] = None,
    cancel_event: Optional[threading.Event] = None,
) -> SimulationResults:
    """
    Run a coupled flow/heat/transport/reaction simulation.

    Args:
        network: Pore network (not modified)
        options: Simulation options (defaults if None)
        progress: Optional callback ``(fraction, message)`` invoked once per step
        chemistry_engine: Engine for the reaction stage (built-in kinetics if None)
        cancel_event: Optional event checked once per step; when set, the run
            stops with ``converged = False`` and ``cancelled = True``

    Returns:
        SimulationResults with snapshots, step count and permeability history

    Raises:
        ValueError: If ``time_step_s`` is not positive

    Example:
        >>> options = SimulationOptions(total_time_s=10, time_step_s=1,
        ...                             enable_reactions=False)
        >>> results = solve(network, options)
        >>> results.total_steps, results.converged
        (10, True)
    """
    options = options or SimulationOptions()
    dt = options.time_step_s
    if dt <= 0:
        raise ValueError(f"time_step_s must be positive, got {dt}")

    started = time.perf_counter()
    logger.info(
        f"Starting reactive transport: {network.num_pores} pores, {network.num_throats} throats, "
        f"total {options.total_time_s} s, dt {dt} s"
    )

    results = SimulationResults()
    state = SimulationState.initial(network, options)

    initial_permeability = calculate_permeability(network, state)
    state.current_permeability = initial_permeability
    results.initial_permeability = initial_permeability
    results.time_steps.append(state.clone())
    logger.info(f"Initial permeability: {initial_permeability:.3e} mD")

    reaction_solver: Optional[ReactionSolver] = None
    if options.enable_reactions:
        engine = chemistry_engine or KineticChemistryEngine()
        reaction_solver = ReactionSolver(engine, options)
        logger.info(f"Chemistry backend: {engine.get_backend_name()}")

    interval = options.output_interval_s
    next_output = _next_output_time(0.0, interval) if interval > 0 else 0.0
    total_time = options.total_time_s

    step = 0
    t = 0.0
    completed = True
    while t < total_time - 1e-9 * dt:
        if cancel_event is not None and cancel_event.is_set():
            logger.warning(f"Simulation cancelled at t={t:.1f} s after {step} steps")
            results.cancelled = True
            results.failure_reason = "cancelled"
            completed = False
            break

        step += 1
        t = step * dt
        state.current_time = t

        if progress is not None:
            progress(min(t / total_time, 1.0), f"Step {step}: t = {t:.1f} s")

        try:
            solve_flow(network, state, options)
            solve_heat(network, state, options)
            solve_transport(network, state, options)

            if reaction_solver is not None:
                reaction_solver.step(network, state)

            if options.update_geometry:
                update_geometry(network, state, options)
                state.current_permeability = calculate_permeability(network, state)
        except Exception as e:
            logger.error(f"Simulation failed at t={t:.1f} s (step {step}): {e}")
            results.failure_reason = f"{type(e).__name__}: {e}"
            completed = False
            break

        if interval <= 0:
            results.time_steps.append(state.clone())
        elif t + 1e-9 * interval >= next_output:
            results.time_steps.append(state.clone())
            next_output = _next_output_time(t, interval)
            logger.info(f"t={t:.1f} s: k={state.current_permeability:.3e} mD")

    results.total_steps = step
    results.converged = completed
    if completed and results.time_steps[-1].current_time != state.current_time:
        results.time_steps.append(state.clone())

    results.final_permeability = state.current_permeability
    if initial_permeability > 0:
        results.permeability_change = (
            results.final_permeability - initial_permeability
        ) / initial_permeability
    else:
        results.permeability_change = 0.0

    results.final_mineral_volumes = {
        mineral: float(np.sum(values)) for mineral, values in state.minerals.items()
    }
    results.computation_time_s = time.perf_counter() - started

    logger.info(
        f"Simulation {'complete' if completed else 'stopped'} after {step} steps "
        f"in {results.computation_time_s:.1f} s; permeability change {results.permeability_change:.2%}"
    )
    return results
