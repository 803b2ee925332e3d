"""Skeletons and skinned meshes.

A ``Skeleton`` references bones owned by the scene graph and keeps one
inverse bind matrix per bone, index-aligned with ``bones``.  A
``SkinnedMesh`` binds a geometry buffer to exactly one skeleton; several
meshes may share the same skeleton object.
"""

from typing import Iterable, Optional, Sequence

import numpy as np
from numpy.typing import NDArray

from rigshift.core.math_utils import Mat4, mat4_identity, mat4_inverse
from rigshift.core.mesh import BufferGeometry, Mesh
from rigshift.core.scene_graph import Bone, update_world_matrices


class Skeleton:
    """Ordered bone references plus their inverse bind matrices."""

    def __init__(
        self,
        bones: Iterable[Bone],
        bone_inverses: Optional[Sequence[Mat4]] = None,
    ):
        self.bones: list[Bone] = list(bones)
        if bone_inverses is None:
            self.bone_inverses: list[Mat4] = []
            self.calculate_inverses()
        else:
            if len(bone_inverses) != len(self.bones):
                raise ValueError(
                    f"Skeleton has {len(self.bones)} bones but "
                    f"{len(bone_inverses)} inverse bind matrices"
                )
            self.bone_inverses = [np.array(m, dtype=np.float64) for m in bone_inverses]

    def __len__(self) -> int:
        return len(self.bones)

    def __repr__(self) -> str:
        return f"Skeleton({len(self.bones)} bones)"

    def calculate_inverses(self) -> None:
        """Set every inverse bind matrix from the bone's current world matrix."""
        self.bone_inverses = [mat4_inverse(bone.world_matrix) for bone in self.bones]

    def bone_matrices(self) -> NDArray[np.float64]:
        """(N, 4, 4) skinning matrices: bone world @ inverse bind."""
        if not self.bones:
            return np.zeros((0, 4, 4), dtype=np.float64)
        return np.stack([
            bone.world_matrix @ inv
            for bone, inv in zip(self.bones, self.bone_inverses)
        ])

    def get_bone_by_name(self, name: str) -> Optional[Bone]:
        for bone in self.bones:
            if bone.name == name:
                return bone
        return None

    def index_of(self, bone: Bone) -> int:
        for i, b in enumerate(self.bones):
            if b is bone:
                return i
        return -1

    def parent_indices(self) -> list[int]:
        """Arena view of the hierarchy: parent index per bone, -1 for roots."""
        lookup = {id(bone): i for i, bone in enumerate(self.bones)}
        return [
            lookup.get(id(bone.parent), -1) if bone.parent is not None else -1
            for bone in self.bones
        ]


class SkinnedMesh(Mesh):
    """A mesh whose vertices are deformed by a skeleton."""

    is_skinned = True

    def __init__(self, name: str = "", geometry: Optional[BufferGeometry] = None):
        super().__init__(name=name, geometry=geometry)
        self.skeleton: Optional[Skeleton] = None
        self.bind_matrix: Mat4 = mat4_identity()
        self.bind_matrix_inverse: Mat4 = mat4_identity()

    def bind(self, skeleton: Skeleton, bind_matrix: Optional[Mat4] = None) -> None:
        """Attach ``skeleton``; the bind matrix defaults to the mesh's world matrix."""
        self.skeleton = skeleton
        if bind_matrix is None:
            update_world_matrices([self])
            skeleton.calculate_inverses()
            bind_matrix = self.world_matrix
        self.bind_matrix = np.array(bind_matrix, dtype=np.float64)
        self.bind_matrix_inverse = mat4_inverse(self.bind_matrix)

    def compute_skinned_positions(self) -> NDArray[np.float64]:
        """Linear-blend skin the raw vertex buffer with the current pose.

        Returns (N, 3) positions in the mesh's bind space.
        """
        geom = self.geometry
        pos = geom.positions_3d().astype(np.float64)
        if self.skeleton is None or not geom.has_skin:
            return pos

        n = len(pos)
        homo = np.ones((n, 4), dtype=np.float64)
        homo[:, :3] = pos
        bound = homo @ self.bind_matrix.T

        mats = self.skeleton.bone_matrices()
        weights = geom.skin_weights.astype(np.float64)
        indices = geom.skin_indices.astype(np.intp)

        skinned = np.zeros((n, 4), dtype=np.float64)
        for k in range(4):
            w = weights[:, k]
            active = w > 0.0
            if not active.any():
                continue
            m = mats[indices[active, k]]
            skinned[active] += w[active, None] * np.einsum("nij,nj->ni", m, bound[active])

        result = skinned @ self.bind_matrix_inverse.T
        return result[:, :3]
