"""Mesh data structures for geometry storage."""

from dataclasses import dataclass
from typing import Optional

import numpy as np
from numpy.typing import NDArray

from rigshift.core.scene_graph import NodeKind, SceneNode


@dataclass
class BufferGeometry:
    """Stores vertex attribute arrays for a mesh.

    positions: Nx3 flat float32 array (x,y,z per vertex), raw bind-pose data
    normals: optional Nx3 flat float32 array
    indices: optional triangle index array (uint32)
    skin_indices: optional Nx4 bone indices (uint16) into the bound skeleton
    skin_weights: optional Nx4 float32 weights, rows summing to 1
    """
    positions: NDArray[np.float32]
    normals: Optional[NDArray[np.float32]] = None
    indices: Optional[NDArray[np.uint32]] = None
    skin_indices: Optional[NDArray[np.uint16]] = None
    skin_weights: Optional[NDArray[np.float32]] = None
    vertex_count: int = 0
    needs_update: bool = True

    def __post_init__(self):
        self.positions = np.asarray(self.positions, dtype=np.float32).ravel()
        if self.vertex_count == 0:
            self.vertex_count = len(self.positions) // 3
        if self.skin_indices is not None:
            self.skin_indices = np.asarray(self.skin_indices, dtype=np.uint16).reshape(-1, 4)
        if self.skin_weights is not None:
            self.skin_weights = np.asarray(self.skin_weights, dtype=np.float32).reshape(-1, 4)

    @property
    def has_skin(self) -> bool:
        return self.skin_indices is not None and self.skin_weights is not None

    def get_position(self, index: int) -> NDArray[np.float32]:
        return self.positions[index * 3:index * 3 + 3].copy()

    def set_position(self, index: int, x: float, y: float, z: float) -> None:
        self.positions[index * 3:index * 3 + 3] = (x, y, z)
        self.needs_update = True

    def positions_3d(self) -> NDArray[np.float32]:
        """Nx3 view onto the flat position buffer."""
        return self.positions.reshape(-1, 3)

    def clone(self) -> "BufferGeometry":
        """Create a deep copy."""
        return BufferGeometry(
            positions=self.positions.copy(),
            normals=self.normals.copy() if self.normals is not None else None,
            indices=self.indices.copy() if self.indices is not None else None,
            skin_indices=self.skin_indices.copy() if self.skin_indices is not None else None,
            skin_weights=self.skin_weights.copy() if self.skin_weights is not None else None,
            vertex_count=self.vertex_count,
        )


class Mesh(SceneNode):
    """An unskinned mesh node."""

    kind = NodeKind.MESH
    is_skinned = False

    def __init__(self, name: str = "", geometry: Optional[BufferGeometry] = None):
        super().__init__(name=name)
        self.geometry = geometry
