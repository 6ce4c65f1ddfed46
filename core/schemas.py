"""
Pydantic models for simulation configuration and tool responses.

SimulationOptions carries every tunable of a reactive-transport run, each
independently defaulted, with units in the field names. The response models
are the JSON shapes returned by the tool layer and the MCP server.
"""

from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator


# ============================================================================
# Flow Axis
# ============================================================================

class FlowAxis(str, Enum):
    """Macroscopic flow direction (inlet at the minimum coordinate)"""
    X = "X"
    Y = "Y"
    Z = "Z"

    @property
    def index(self) -> int:
        return "XYZ".index(self.value)


# ============================================================================
# Simulation Options
# ============================================================================

class SimulationOptions(BaseModel):
    """
    Configuration of one reactive-transport run.

    Lengths on the network (positions, radii, radius floors) are in voxel
    units; everything else is SI unless the field name says otherwise.

    Example:
        >>> options = SimulationOptions(total_time_s=600, flow_axis="x",
        ...                             inlet_concentrations={"Ca+2": 0.01})
        >>> options.flow_axis
        <FlowAxis.X: 'X'>
    """
    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    # Time stepping
    total_time_s: float = Field(3600.0, ge=0.0, description="Simulated duration (s)")
    time_step_s: float = Field(1.0, description="Timestep (s); must be > 0 when a run starts")
    output_interval_s: float = Field(60.0, description="Snapshot interval (s); <= 0 snapshots every step")

    # Linear solver
    convergence_tolerance: float = Field(1e-6, gt=0.0, description="Relative residual tolerance for the pressure solve")
    max_iterations: int = Field(5000, ge=1, description="Conjugate gradient iteration cap")

    # Flow
    flow_axis: FlowAxis = Field(FlowAxis.Z, description="Flow direction: X, Y or Z")
    inlet_pressure_Pa: float = Field(1.0, description="Inlet boundary pressure (Pa)")
    outlet_pressure_Pa: float = Field(0.0, description="Outlet boundary pressure (Pa)")
    fluid_viscosity_cP: float = Field(1.0, gt=0.0, description="Dynamic viscosity (cP)")
    fluid_density_kg_m3: float = Field(1000.0, gt=0.0, description="Fluid density (kg/m³)")

    # Heat
    inlet_temperature_K: float = Field(298.15, gt=0.0, description="Inlet temperature (K)")
    outlet_temperature_K: float = Field(298.15, gt=0.0, description="Outlet temperature (K)")
    thermal_conductivity_W_mK: float = Field(0.6, ge=0.0, description="Fluid thermal conductivity (W/m·K)")
    specific_heat_J_kgK: float = Field(4184.0, gt=0.0, description="Fluid specific heat (J/kg·K)")

    # Transport
    molecular_diffusivity_m2_s: float = Field(2.299e-9, ge=0.0, description="Molecular diffusivity (m²/s)")
    dispersivity_m: float = Field(0.1, ge=0.0, description="Longitudinal dispersivity (m); accepted but not applied")

    # Initial and boundary chemistry
    initial_concentrations: Dict[str, float] = Field(default_factory=dict, description="Species -> mol/L in every pore at t=0")
    inlet_concentrations: Dict[str, float] = Field(default_factory=dict, description="Species -> mol/L held at inlet pores")
    initial_minerals: Dict[str, float] = Field(default_factory=dict, description="Mineral -> volume (µm³) in every pore at t=0")

    # Reactions
    enable_reactions: bool = Field(True, description="Run the chemistry stage")
    reaction_minerals: List[str] = Field(default_factory=list, description="Mineral allow-list (empty = all)")

    # Geometry
    update_geometry: bool = Field(True, description="Update pore/throat geometry and permeability each step")
    min_pore_radius: float = Field(0.1, ge=0.0, description="Pore radius floor (voxels)")
    min_throat_radius: float = Field(0.05, ge=0.0, description="Throat radius floor (voxels)")

    @field_validator("flow_axis", mode="before")
    @classmethod
    def normalize_axis(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @field_validator("initial_concentrations", "inlet_concentrations", "initial_minerals")
    @classmethod
    def non_negative_amounts(cls, v: Dict[str, float]) -> Dict[str, float]:
        for name, amount in v.items():
            if amount < 0:
                raise ValueError(f"Amount for '{name}' must be non-negative, got {amount}")
        return v

    @property
    def fluid_viscosity_Pa_s(self) -> float:
        return self.fluid_viscosity_cP * 1e-3

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "SimulationOptions":
        """
        Load options from a YAML file.

        Args:
            path: YAML file whose top-level mapping uses the field names above

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If the content is not a mapping or fails validation
        """
        yaml_file = Path(path)
        if not yaml_file.exists():
            raise FileNotFoundError(f"Options file not found: {path}")
        with open(yaml_file, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Options file must contain a mapping, got {type(data).__name__}")
        return cls(**data)


# ============================================================================
# Provenance Metadata
# ============================================================================

class ProvenanceMetadata(BaseModel):
    """Provenance tracking for tool results"""
    model: str = Field(..., description="Model or tool identifier (e.g., 'pnm.reactive_transport')")
    version: Optional[str] = Field(None, description="Model version")
    sources: List[str] = Field(default_factory=list, description="Literature citations")
    assumptions: List[str] = Field(default_factory=list, description="Key modeling assumptions")
    warnings: List[str] = Field(default_factory=list, description="Warnings raised during the run")


# ============================================================================
# Tool Results
# ============================================================================

class PermeabilityResult(BaseModel):
    """Kozeny-Carman permeability estimate of a pore network"""
    permeability_mD: float = Field(..., description="Bulk permeability (mD)")
    porosity: float = Field(..., description="Porosity used in the estimate (clamped to [0.001, 0.99])")
    specific_surface_per_m: float = Field(..., description="Pore surface area per bulk volume (1/m)")
    bulk_volume_m3: float = Field(..., description="Bounding box volume (m³)")
    pore_count: int
    throat_count: int
    provenance: ProvenanceMetadata


class ReactiveTransportSummary(BaseModel):
    """Condensed outcome of a reactive-transport run"""
    total_steps: int
    converged: bool
    cancelled: bool = False
    failure_reason: Optional[str] = None
    computation_time_s: float
    chemistry_backend: Optional[str] = None

    initial_permeability_mD: float
    final_permeability_mD: float
    permeability_change: float = Field(..., description="(final - initial) / initial; 0 when initial <= 0")

    snapshot_times_s: List[float] = Field(default_factory=list)
    permeability_history_mD: List[float] = Field(default_factory=list)
    final_mineral_volumes_um3: Dict[str, float] = Field(default_factory=dict)
    mean_final_concentrations_mol_L: Dict[str, float] = Field(default_factory=dict)
    mean_final_temperature_K: Optional[float] = None

    provenance: ProvenanceMetadata
