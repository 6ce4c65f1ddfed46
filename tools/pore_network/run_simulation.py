"""
Pore Network Tools: JSON entry points for reactive transport and permeability.

Thin wrappers that parse JSON payloads, run the solvers and condense the
results into plain dictionaries for the MCP server and other callers.

Performance: proportional to steps × (pores + throats); chemistry dominates
when reactions are enabled
"""

from typing import Any, Dict, Optional
import json
import logging
import threading

import numpy as np
from pydantic import ValidationError

from core.interfaces import ChemistryEngine
from core.network import PoreNetwork
from core.schemas import (
    PermeabilityResult,
    ProvenanceMetadata,
    ReactiveTransportSummary,
    SimulationOptions,
)
from core.state_container import SimulationResults, SimulationState
from tools.pore_network.permeability import kozeny_carman_estimate
from tools.pore_network.reactive_transport import ProgressCallback, solve

logger = logging.getLogger(__name__)

MODEL_VERSION = "1.0"

KOZENY_CARMAN_SOURCE = "Carman, P.C. (1937). Fluid flow through granular beds. Trans. Inst. Chem. Eng. 15, 150-166"
TST_SOURCE = "Palandri & Kharaka (2004). USGS Open File Report 2004-1068"


def _load_json_object(payload: str, label: str) -> Dict[str, Any]:
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON for {label}: {e}") from e
    if not isinstance(data, dict):
        raise ValueError(f"{label} must be a JSON object (dictionary)")
    return data


def parse_network(network_json: str) -> PoreNetwork:
    """Build a PoreNetwork from its JSON description"""
    return PoreNetwork.from_dict(_load_json_object(network_json, "network_json"))


def parse_options(options_json: Optional[str]) -> SimulationOptions:
    """Build SimulationOptions from JSON (defaults for an empty payload)"""
    if not options_json:
        return SimulationOptions()
    data = _load_json_object(options_json, "options_json")
    try:
        return SimulationOptions(**data)
    except ValidationError as e:
        raise ValueError(f"Invalid simulation options: {e}") from e


def summarize_results(
    results: SimulationResults,
    backend_name: Optional[str] = None,
) -> ReactiveTransportSummary:
    """Condense SimulationResults into a JSON-friendly summary"""
    final_state: Optional[SimulationState] = results.final_state
    mean_concentrations: Dict[str, float] = {}
    mean_temperature = None
    if final_state is not None and final_state.num_pores > 0:
        mean_concentrations = {
            species: float(np.mean(values)) for species, values in final_state.concentrations.items()
        }
        mean_temperature = float(np.mean(final_state.pore_temperatures))

    warnings = []
    if results.cancelled:
        warnings.append("Run was cancelled before reaching the requested total time")
    elif not results.converged:
        warnings.append(f"Run stopped early: {results.failure_reason}")

    return ReactiveTransportSummary(
        total_steps=results.total_steps,
        converged=results.converged,
        cancelled=results.cancelled,
        failure_reason=results.failure_reason,
        computation_time_s=results.computation_time_s,
        chemistry_backend=backend_name,
        initial_permeability_mD=results.initial_permeability,
        final_permeability_mD=results.final_permeability,
        permeability_change=results.permeability_change,
        snapshot_times_s=results.snapshot_times,
        permeability_history_mD=[s.current_permeability for s in results.time_steps],
        final_mineral_volumes_um3=results.final_mineral_volumes,
        mean_final_concentrations_mol_L=mean_concentrations,
        mean_final_temperature_K=mean_temperature,
        provenance=ProvenanceMetadata(
            model="pnm.reactive_transport",
            version=MODEL_VERSION,
            sources=[KOZENY_CARMAN_SOURCE, TST_SOURCE],
            assumptions=[
                "Hagen-Poiseuille throats, steady incompressible flow per step",
                "Explicit upwind advection and Fickian diffusion",
                "Spherical pores for geometry update",
                "Kozeny-Carman permeability (C = 5)",
            ],
            warnings=warnings,
        ),
    )


def run_reactive_transport(
    network_json: str,
    options_json: Optional[str] = None,
    chemistry_engine: Optional[ChemistryEngine] = None,
    progress: Optional[ProgressCallback] = None,
    cancel_event: Optional[threading.Event] = None,
) -> Dict[str, Any]:
    """
    Run a reactive-transport simulation from JSON inputs.

    Args:
        network_json: Pore network JSON
                      Example: '{"voxel_size_um": 2.0, "pores": [...], "throats": [...]}'
        options_json: SimulationOptions JSON (field names as in SimulationOptions)
                      Example: '{"total_time_s": 600, "inlet_concentrations": {"Ca+2": 0.01}}'
        chemistry_engine: Optional engine (built-in kinetics if None)
        progress: Optional progress callback
        cancel_event: Optional cancellation event

    Returns:
        ReactiveTransportSummary as a dictionary

    Raises:
        ValueError: If either payload is malformed or fails validation
    """
    network = parse_network(network_json)
    options = parse_options(options_json)

    results = solve(
        network,
        options,
        progress=progress,
        chemistry_engine=chemistry_engine,
        cancel_event=cancel_event,
    )

    backend_name = None
    if options.enable_reactions:
        backend_name = chemistry_engine.get_backend_name() if chemistry_engine else "builtin-kinetics"
    return summarize_results(results, backend_name).model_dump()


def estimate_permeability(network_json: str) -> Dict[str, Any]:
    """
    Kozeny-Carman permeability of a pore network in its original geometry.

    Args:
        network_json: Pore network JSON

    Returns:
        PermeabilityResult as a dictionary

    Example:
        >>> result = estimate_permeability(network_json)
        >>> result["permeability_mD"] > 0
        True
    """
    network = parse_network(network_json)
    state = SimulationState(network)
    estimate = kozeny_carman_estimate(network, state)
    logger.info(f"Kozeny-Carman estimate: {estimate.permeability_mD:.3e} mD (porosity {estimate.porosity:.3f})")

    return PermeabilityResult(
        permeability_mD=estimate.permeability_mD,
        porosity=estimate.porosity,
        specific_surface_per_m=estimate.specific_surface_per_m,
        bulk_volume_m3=estimate.bulk_volume_m3,
        pore_count=network.num_pores,
        throat_count=network.num_throats,
        provenance=ProvenanceMetadata(
            model="pnm.kozeny_carman",
            version=MODEL_VERSION,
            sources=[KOZENY_CARMAN_SOURCE],
            assumptions=["Bounding box padded by the largest pore radius", "Kozeny constant C = 5"],
        ),
    ).model_dump()
