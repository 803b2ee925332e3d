"""Scene graph with hierarchical transforms, mirroring Three.js group structure.

Node kinds are a closed set (bone, mesh, generic) fixed when a node is
constructed, so hierarchy code branches on ``node.kind`` instead of
re-checking types while it walks the tree.
"""

from enum import Enum
from typing import Callable, Iterable, Iterator, Optional

import numpy as np

from rigshift.core.math_utils import (
    Mat4, Vec3, Quat,
    mat4_identity, mat4_compose, mat4_decompose, quat_identity, vec3,
)


class NodeKind(Enum):
    GENERIC = "generic"
    BONE = "bone"
    MESH = "mesh"


class SceneNode:
    """A node in the scene graph hierarchy.

    Mirrors Three.js Object3D: position, quaternion, scale → local matrix.
    World matrix = parent.world_matrix @ local_matrix.
    """

    kind: NodeKind = NodeKind.GENERIC

    def __init__(self, name: str = ""):
        self.name = name
        self.parent: Optional["SceneNode"] = None
        self.children: list["SceneNode"] = []

        # Transform
        self.position: Vec3 = vec3()
        self.quaternion: Quat = quat_identity()
        self.scale: Vec3 = vec3(1, 1, 1)

        # Matrices
        self.local_matrix: Mat4 = mat4_identity()
        self.world_matrix: Mat4 = mat4_identity()

        # Dirty flag for matrix updates
        self._matrix_dirty: bool = True

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"

    @property
    def is_bone(self) -> bool:
        return self.kind is NodeKind.BONE

    @property
    def is_mesh(self) -> bool:
        return self.kind is NodeKind.MESH

    def add(self, child: "SceneNode") -> "SceneNode":
        """Add a child node. Removes from previous parent if any."""
        if child.parent is not None:
            child.parent.remove(child)
        child.parent = self
        self.children.append(child)
        child._matrix_dirty = True
        return self

    def remove(self, child: "SceneNode") -> "SceneNode":
        """Remove a child node."""
        if child in self.children:
            self.children.remove(child)
            child.parent = None
        return self

    def set_position(self, x: float, y: float, z: float) -> "SceneNode":
        self.position = vec3(x, y, z)
        self._matrix_dirty = True
        return self

    def set_quaternion(self, q: Quat) -> "SceneNode":
        self.quaternion = np.asarray(q, dtype=np.float64).copy()
        self._matrix_dirty = True
        return self

    def set_scale(self, x: float, y: float, z: float) -> "SceneNode":
        self.scale = vec3(x, y, z)
        self._matrix_dirty = True
        return self

    def update_local_matrix(self) -> None:
        """Recompute local matrix from position, quaternion, scale."""
        self.local_matrix = mat4_compose(self.position, self.quaternion, self.scale)
        self._matrix_dirty = False

    def apply_local_matrix(self, m: Mat4) -> None:
        """Set position, quaternion and scale from a TRS matrix."""
        position, quaternion, scale = mat4_decompose(m)
        self.position = position
        self.quaternion = quaternion
        self.scale = scale
        self.update_local_matrix()

    def parent_world_matrix(self) -> Mat4:
        if self.parent is None:
            return mat4_identity()
        return self.parent.world_matrix

    def update_world_matrix(self, force: bool = False) -> None:
        """Recursively update world matrices for this node and all descendants."""
        if self._matrix_dirty or force:
            self.update_local_matrix()

        if self.parent is not None:
            self.world_matrix = self.parent.world_matrix @ self.local_matrix
        else:
            self.world_matrix = self.local_matrix.copy()

        for child in self.children:
            child.update_world_matrix(force=force)

    def update_parent_chain(self) -> None:
        """Refresh ancestors top-down, then this node's subtree."""
        chain = []
        node = self.parent
        while node is not None:
            chain.append(node)
            node = node.parent
        for ancestor in reversed(chain):
            ancestor.update_local_matrix()
            ancestor.world_matrix = ancestor.parent_world_matrix() @ ancestor.local_matrix
        self.update_world_matrix(force=True)

    def traverse(self, callback: Callable[["SceneNode"], None]) -> None:
        """Visit this node and all descendants depth-first (pre-order)."""
        for node in self.iter_preorder():
            callback(node)

    def iter_preorder(self) -> Iterator["SceneNode"]:
        """Yield this node and its descendants in pre-order without recursion."""
        stack: list[SceneNode] = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def find(self, name: str) -> Optional["SceneNode"]:
        """Find first descendant with given name."""
        for node in self.iter_preorder():
            if node.name == name:
                return node
        return None

    def find_all(self, name: str) -> list["SceneNode"]:
        """Find all descendants with given name."""
        return [node for node in self.iter_preorder() if node.name == name]

    def find_by_kind(self, kind: NodeKind) -> list["SceneNode"]:
        return [node for node in self.iter_preorder() if node.kind is kind]

    def get_world_position(self) -> Vec3:
        """Extract world position from world matrix."""
        return self.world_matrix[:3, 3].copy()

    def local_to_world(self, p: Vec3) -> Vec3:
        v = np.array([p[0], p[1], p[2], 1.0], dtype=np.float64)
        return (self.world_matrix @ v)[:3]

    def mark_dirty(self) -> None:
        """Mark this node and all descendants as needing matrix update."""
        for node in self.iter_preorder():
            node._matrix_dirty = True


class Bone(SceneNode):
    """A skeleton joint. Owned by its parent; referenced by skeletons."""

    kind = NodeKind.BONE


class Scene(SceneNode):
    """Root scene node."""

    def __init__(self, name: str = "scene"):
        super().__init__(name=name)

    def update(self) -> None:
        """Update all world matrices in the scene."""
        self.update_world_matrix(force=False)


def update_world_matrices(nodes: Iterable[SceneNode]) -> None:
    """Recompute world matrices from the top of every tree holding ``nodes``."""
    tops: dict[int, SceneNode] = {}
    for node in nodes:
        while node.parent is not None:
            node = node.parent
        tops.setdefault(id(node), node)
    for top in tops.values():
        top.update_world_matrix(force=True)
