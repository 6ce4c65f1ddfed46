"""
Pore network topology: pores (nodes) and throats (edges).

The network is the immutable input of a simulation. Geometry stored here is
the *original* geometry; the time-varying radii and volumes live in
SimulationState.

Units:
    - positions, radii: voxels (network length units)
    - voxel_size_um: µm per voxel
    - pore volume: µm³ (physical)
    - pore area: voxel² (0 = not supplied)

Internally the network keeps a ``pore id -> contiguous index`` table and dense
numpy arrays (``pore_coords``, ``throat_conns`` ...), the layout used by
OpenPNM-style codes, so the solvers can work vectorized.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence

import numpy as np

logger = logging.getLogger(__name__)

UM_TO_M = 1e-6


@dataclass(frozen=True)
class Pore:
    """A pore body"""
    id: int
    position: tuple
    radius: float
    volume: float
    area: float = 0.0


@dataclass(frozen=True)
class Throat:
    """A throat connecting two pores by id"""
    id: int
    pore1: int
    pore2: int
    radius: float


class PoreNetwork:
    """
    Pore network with dense, index-addressed arrays.

    Throats whose endpoint ids are not in the network are kept (so throat
    indices stay aligned with the input) but flagged in ``throat_valid``;
    every solver ignores them.

    Example:
        >>> net = PoreNetwork.from_dict({
        ...     "voxel_size_um": 1.0,
        ...     "pores": [{"id": 0, "position": [0, 0, 0], "radius": 1, "volume": 4.19},
        ...               {"id": 1, "position": [0, 0, 10], "radius": 1, "volume": 4.19}],
        ...     "throats": [{"id": 0, "pore1": 0, "pore2": 1, "radius": 1}],
        ... })
        >>> net.num_pores, net.num_throats
        (2, 1)
    """

    def __init__(
        self,
        pores: Sequence[Pore],
        throats: Sequence[Throat],
        voxel_size_um: float = 1.0,
    ):
        self._build(pores, throats, voxel_size_um)

    def _build(self, pores: Sequence[Pore], throats: Sequence[Throat], voxel_size_um: float) -> None:
        """Set topology and rebuild the id index and dense arrays"""
        if voxel_size_um <= 0:
            raise ValueError(f"voxel_size_um must be positive, got {voxel_size_um}")

        self.pores: List[Pore] = list(pores)
        self.throats: List[Throat] = list(throats)
        self.voxel_size_um = float(voxel_size_um)

        self.pore_index: Dict[int, int] = {}
        for i, pore in enumerate(self.pores):
            if pore.id in self.pore_index:
                raise ValueError(f"Duplicate pore id {pore.id}")
            self.pore_index[pore.id] = i
        self.throat_index: Dict[int, int] = {t.id: i for i, t in enumerate(self.throats)}

        n_pores = len(self.pores)
        n_throats = len(self.throats)

        self.pore_coords = np.zeros((n_pores, 3))
        self.pore_radii = np.zeros(n_pores)
        self.pore_volumes = np.zeros(n_pores)
        self.pore_areas = np.zeros(n_pores)
        for i, pore in enumerate(self.pores):
            self.pore_coords[i] = pore.position
            self.pore_radii[i] = pore.radius
            self.pore_volumes[i] = pore.volume
            self.pore_areas[i] = pore.area

        self.throat_conns = np.zeros((n_throats, 2), dtype=np.int64)
        self.throat_radii = np.zeros(n_throats)
        self.throat_valid = np.zeros(n_throats, dtype=bool)
        for i, throat in enumerate(self.throats):
            self.throat_radii[i] = throat.radius
            i1 = self.pore_index.get(throat.pore1)
            i2 = self.pore_index.get(throat.pore2)
            if i1 is None or i2 is None:
                logger.warning(
                    f"Throat {throat.id} references unknown pore(s) "
                    f"{throat.pore1}, {throat.pore2}; treated as disconnected"
                )
                continue
            self.throat_conns[i] = (i1, i2)
            self.throat_valid[i] = True

    # ------------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------------

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PoreNetwork":
        """
        Build a network from a plain mapping (e.g. parsed JSON).

        Args:
            data: {"voxel_size_um": float,
                   "pores": [{"id", "position": [x, y, z], "radius", "volume", "area"?}],
                   "throats": [{"id", "pore1", "pore2", "radius"}]}

        Raises:
            ValueError: If a required key is missing or a value is malformed
        """
        try:
            pores = [
                Pore(
                    id=int(p["id"]),
                    position=tuple(float(c) for c in p["position"]),
                    radius=float(p["radius"]),
                    volume=float(p["volume"]),
                    area=float(p.get("area", 0.0) or 0.0),
                )
                for p in data.get("pores", [])
            ]
            throats = [
                Throat(
                    id=int(t["id"]),
                    pore1=int(t["pore1"]),
                    pore2=int(t["pore2"]),
                    radius=float(t["radius"]),
                )
                for t in data.get("throats", [])
            ]
        except (KeyError, TypeError) as e:
            raise ValueError(f"Malformed pore network data: {e}") from e

        for pore in pores:
            if len(pore.position) != 3:
                raise ValueError(f"Pore {pore.id} position must have 3 coordinates")

        return cls(pores, throats, voxel_size_um=float(data.get("voxel_size_um", 1.0)))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "voxel_size_um": self.voxel_size_um,
            "pores": [
                {"id": p.id, "position": list(p.position), "radius": p.radius,
                 "volume": p.volume, "area": p.area}
                for p in self.pores
            ],
            "throats": [
                {"id": t.id, "pore1": t.pore1, "pore2": t.pore2, "radius": t.radius}
                for t in self.throats
            ],
        }

    def clone_topology(self) -> "PoreNetwork":
        """Independent copy of pores, throats and voxel size"""
        return PoreNetwork(list(self.pores), list(self.throats), self.voxel_size_um)

    def import_topology(self, other: "PoreNetwork") -> None:
        """Replace this network's topology with a copy of ``other``'s"""
        self._build(other.pores, other.throats, other.voxel_size_um)

    # ------------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------------

    @property
    def num_pores(self) -> int:
        return len(self.pores)

    @property
    def num_throats(self) -> int:
        return len(self.throats)

    @property
    def voxel_size_m(self) -> float:
        return self.voxel_size_um * UM_TO_M

    @property
    def max_pore_radius(self) -> float:
        """Largest original pore radius (voxels), 0 for an empty network"""
        if self.num_pores == 0:
            return 0.0
        return float(self.pore_radii.max())

    def throat_lengths_m(self) -> np.ndarray:
        """
        Centre-to-centre throat lengths in metres.

        Lengths below 1e-12 m (coincident endpoints) are floored at one voxel.
        Disconnected throats get one voxel as well; they carry no flux.
        """
        p1 = self.pore_coords[self.throat_conns[:, 0]]
        p2 = self.pore_coords[self.throat_conns[:, 1]]
        lengths = np.linalg.norm(p2 - p1, axis=1) * self.voxel_size_m
        floor = self.voxel_size_m
        lengths = np.where(lengths < 1e-12, floor, lengths)
        lengths[~self.throat_valid] = floor
        return lengths
