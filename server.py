"""
Pore Network Reactive Transport MCP Server

FastMCP server exposing coupled flow / heat / solute transport / mineral
reaction simulations on pore network models to AI agents.

Tools:
- pnm_run_reactive_transport: full time-stepping simulation (1 s - minutes)
- pnm_estimate_permeability: Kozeny-Carman permeability of a network (<0.1 s)
- pnm_get_server_info: server information and tool registry

Usage:
    python server.py
"""

from fastmcp import FastMCP
from mcp.types import ToolAnnotations
import anyio
import json
import logging
from typing import Any, Dict, List

from core.phreeqc_adapter import PhreeqcChemistryEngine
from core.schemas import SimulationOptions
from tools.pore_network.run_simulation import estimate_permeability, run_reactive_transport

# Pydantic imports for input validation
from pydantic import BaseModel, Field, ConfigDict, field_validator

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


# ============================================================================
# Constants
# ============================================================================

SERVER_NAME = "Pore Network Reactive Transport"
SERVER_VERSION = "1.0.0"
SUPPORTED_BACKENDS = ["builtin", "phreeqc"]


# ============================================================================
# Pydantic Input Models
# ============================================================================

class PoreInput(BaseModel):
    """A pore of the input network."""
    id: int = Field(..., description="Unique pore id")
    position: List[float] = Field(..., description="Centre [x, y, z] in voxels", min_length=3, max_length=3)
    radius: float = Field(..., ge=0.0, description="Radius in voxels")
    volume: float = Field(..., ge=0.0, description="Physical volume in µm³")
    area: float = Field(0.0, ge=0.0, description="Surface area in voxel² (0 = use sphere area)")


class ThroatInput(BaseModel):
    """A throat of the input network."""
    id: int = Field(..., description="Unique throat id")
    pore1: int = Field(..., description="First endpoint pore id")
    pore2: int = Field(..., description="Second endpoint pore id")
    radius: float = Field(..., ge=0.0, description="Radius in voxels")


class NetworkInput(BaseModel):
    """Pore network description."""
    model_config = ConfigDict(validate_assignment=True)

    voxel_size_um: float = Field(..., gt=0.0, description="Voxel edge length in µm")
    pores: List[PoreInput] = Field(..., min_length=1, description="Pores")
    throats: List[ThroatInput] = Field(default_factory=list, description="Throats")


class RunReactiveTransportInput(BaseModel):
    """Input for a reactive transport run."""
    model_config = ConfigDict(str_strip_whitespace=True, validate_assignment=True)

    network: NetworkInput = Field(..., description="Pore network")
    options: SimulationOptions = Field(default_factory=SimulationOptions, description="Simulation options")
    chemistry_backend: str = Field(
        "builtin",
        description="Chemistry engine: 'builtin' (TST kinetics) or 'phreeqc' (PHREEQC saturation indices)",
    )

    @field_validator('chemistry_backend')
    @classmethod
    def validate_backend(cls, v: str) -> str:
        v = v.lower()
        if v not in SUPPORTED_BACKENDS:
            raise ValueError(f"chemistry_backend must be one of {SUPPORTED_BACKENDS}, got '{v}'")
        return v


class EstimatePermeabilityInput(BaseModel):
    """Input for a permeability estimate."""
    network: NetworkInput = Field(..., description="Pore network")


# ============================================================================
# Server
# ============================================================================

mcp = FastMCP(SERVER_NAME)


def _make_engine(backend: str):
    if backend == "phreeqc":
        return PhreeqcChemistryEngine()
    return None


@mcp.tool(
    name="pnm_run_reactive_transport",
    annotations=ToolAnnotations(
        readOnlyHint=True,
        openWorldHint=False,  # Local computation only
    )
)
async def pnm_run_reactive_transport(params: RunReactiveTransportInput) -> Dict[str, Any]:
    """
    Run a coupled flow / heat / transport / reaction simulation on a pore network.

    Each timestep solves the Hagen-Poiseuille pressure field, updates pore
    temperatures and species concentrations explicitly, reacts minerals in
    every pore, and feeds mineral volume back into pore/throat radii and the
    Kozeny-Carman permeability.

    Args:
        params (RunReactiveTransportInput): Validated input parameters containing:
            - network: voxel_size_um, pores [{id, position, radius, volume, area}],
              throats [{id, pore1, pore2, radius}]
            - options (SimulationOptions): time stepping, boundary conditions,
              fluid properties, initial/inlet chemistry, reaction allow-list
            - chemistry_backend (str): "builtin" or "phreeqc"

    Returns:
        ReactiveTransportSummary as a dictionary:
        {
            "total_steps": int,
            "converged": bool,
            "initial_permeability_mD": float,
            "final_permeability_mD": float,
            "permeability_change": float,     # relative
            "snapshot_times_s": List[float],
            "permeability_history_mD": List[float],
            "final_mineral_volumes_um3": Dict[str, float],
            "mean_final_concentrations_mol_L": Dict[str, float],
            "provenance": {...}
        }

    Example:
        Calcite-saturated brine through a 3-pore chain for 10 minutes:
        params = {
            "network": {"voxel_size_um": 2.0, "pores": [...], "throats": [...]},
            "options": {"total_time_s": 600, "inlet_concentrations": {"Ca+2": 0.01, "CO3-2": 0.01}},
        }
    """
    network_json = params.network.model_dump_json()
    options_json = params.options.model_dump_json()
    engine = _make_engine(params.chemistry_backend)

    logger.info(
        f"Reactive transport request: {len(params.network.pores)} pores, "
        f"{params.options.total_time_s} s, backend={params.chemistry_backend}"
    )
    return await anyio.to_thread.run_sync(
        lambda: run_reactive_transport(network_json, options_json, chemistry_engine=engine)
    )


@mcp.tool(
    name="pnm_estimate_permeability",
    annotations=ToolAnnotations(
        readOnlyHint=True,
        openWorldHint=False,
    )
)
async def pnm_estimate_permeability(params: EstimatePermeabilityInput) -> Dict[str, Any]:
    """
    Estimate the Kozeny-Carman permeability of a pore network.

    Args:
        params (EstimatePermeabilityInput): network with voxel_size_um, pores, throats

    Returns:
        PermeabilityResult as a dictionary with permeability_mD, porosity,
        specific_surface_per_m, bulk_volume_m3, pore_count, throat_count
    """
    network_json = params.network.model_dump_json()
    return await anyio.to_thread.run_sync(lambda: estimate_permeability(network_json))


@mcp.tool(
    name="pnm_get_server_info",
    annotations=ToolAnnotations(
        readOnlyHint=True,
        openWorldHint=False,  # Returns static server info
    )
)
async def get_server_info() -> dict:
    """
    Get pore network reactive transport server information.

    Returns:
        Dictionary with server version, chemistry backends, default options
        and tool registry
    """
    tool_registry = [
        {
            "name": "pnm_run_reactive_transport",
            "description": "Coupled flow/heat/transport/reaction simulation",
            "typical_latency_sec": 5.0,
        },
        {
            "name": "pnm_estimate_permeability",
            "description": "Kozeny-Carman permeability estimate",
            "typical_latency_sec": 0.1,
        },
        {
            "name": "pnm_get_server_info",
            "description": "Server information and tool registry",
            "typical_latency_sec": 0.01,
        },
    ]
    return {
        "server_name": SERVER_NAME,
        "version": SERVER_VERSION,
        "chemistry_backends": SUPPORTED_BACKENDS,
        "default_options": json.loads(SimulationOptions().model_dump_json()),
        "tool_count": len(tool_registry),
        "tool_registry": tool_registry,
    }


if __name__ == "__main__":
    logger.info("=" * 70)
    logger.info(f"{SERVER_NAME} MCP Server v{SERVER_VERSION}")
    logger.info("=" * 70)
    logger.info("Implemented Tools:")
    logger.info("  pnm_run_reactive_transport - Flow/heat/transport/reaction time stepping")
    logger.info("  pnm_estimate_permeability  - Kozeny-Carman permeability")
    logger.info("  pnm_get_server_info        - Server information")
    logger.info("=" * 70)

    mcp.run()
