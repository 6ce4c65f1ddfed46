"""
Tests for the MCP server input models and static server information.

Tool functions are exercised through the JSON entry points in
test_run_simulation.py; here only the request validation layer is checked.
"""

from pathlib import Path
import sys

import pytest
from pydantic import ValidationError

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.phreeqc_adapter import PhreeqcChemistryEngine
from server import (
    SUPPORTED_BACKENDS,
    EstimatePermeabilityInput,
    NetworkInput,
    PoreInput,
    RunReactiveTransportInput,
    _make_engine,
)
from tools.pore_network.run_simulation import parse_network


def _network():
    return {
        "voxel_size_um": 1.0,
        "pores": [
            {"id": 0, "position": [0, 0, 0], "radius": 2.0, "volume": 33.5},
            {"id": 1, "position": [0, 0, 10], "radius": 2.0, "volume": 33.5},
        ],
        "throats": [{"id": 0, "pore1": 0, "pore2": 1, "radius": 1.0}],
    }


class TestInputModels:
    """Test request validation"""

    def test_defaults(self):
        params = RunReactiveTransportInput(network=_network())
        assert params.chemistry_backend == "builtin"
        assert params.options.total_time_s == 3600.0

    def test_backend_normalized(self):
        params = RunReactiveTransportInput(network=_network(), chemistry_backend=" PHREEQC ")
        assert params.chemistry_backend == "phreeqc"

    def test_unknown_backend(self):
        with pytest.raises(ValidationError, match="chemistry_backend"):
            RunReactiveTransportInput(network=_network(), chemistry_backend="reaktoro")

    def test_options_validated(self):
        with pytest.raises(ValidationError):
            RunReactiveTransportInput(network=_network(), options={"flow_axis": "W"})

    def test_network_requires_pores(self):
        with pytest.raises(ValidationError):
            NetworkInput(voxel_size_um=1.0, pores=[])

    def test_pore_position_length(self):
        with pytest.raises(ValidationError):
            PoreInput(id=0, position=[0, 0], radius=1.0, volume=1.0)

    def test_negative_radius_rejected(self):
        with pytest.raises(ValidationError):
            PoreInput(id=0, position=[0, 0, 0], radius=-1.0, volume=1.0)

    def test_network_json_parses(self):
        """The serialized input network is accepted by the tool layer"""
        params = EstimatePermeabilityInput(network=_network())
        net = parse_network(params.network.model_dump_json())
        assert net.num_pores == 2
        assert net.num_throats == 1


class TestEngines:
    """Test backend selection"""

    def test_builtin_uses_default_engine(self):
        assert _make_engine("builtin") is None

    def test_phreeqc_engine(self):
        assert isinstance(_make_engine("phreeqc"), PhreeqcChemistryEngine)

    def test_supported_backends(self):
        assert SUPPORTED_BACKENDS == ["builtin", "phreeqc"]
