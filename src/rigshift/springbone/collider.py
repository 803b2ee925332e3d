"""Spring-bone collider shapes.

Shapes live in the local space of the collider node they are attached to;
``collider_matrix`` is that node's world matrix.  ``calculate_collision``
returns the signed distance between the shape surface and a sphere of
``object_radius`` around ``object_position`` (negative when they overlap)
and writes the push-out direction into ``target``.
"""

from dataclasses import dataclass, field
from typing import Iterable, Optional

import numpy as np

from rigshift.core.math_utils import Mat4, Vec3, normalize, transform_point, vec3
from rigshift.core.scene_graph import SceneNode


def _as_vec3(v) -> Vec3:
    return np.array(v, dtype=np.float64).reshape(3)


class ColliderShapeSphere:
    type = "sphere"

    def __init__(self, offset=(0.0, 0.0, 0.0), radius: float = 0.0, inside: bool = False):
        self.offset: Vec3 = _as_vec3(offset)
        self.radius = float(radius)
        self.inside = inside

    def __repr__(self) -> str:
        return f"ColliderShapeSphere(offset={self.offset.tolist()}, radius={self.radius})"

    def calculate_collision(
        self,
        collider_matrix: Mat4,
        object_position: Vec3,
        object_radius: float,
        target: Vec3,
    ) -> float:
        center = transform_point(collider_matrix, self.offset)
        delta = object_position - center
        length = float(np.linalg.norm(delta))
        if self.inside:
            distance = self.radius - object_radius - length
            if distance < 0:
                target[:] = -normalize(delta)
            else:
                target[:] = 0.0
            return distance
        target[:] = normalize(delta)
        return length - (object_radius + self.radius)


class ColliderShapeCapsule:
    type = "capsule"

    def __init__(self, offset=(0.0, 0.0, 0.0), tail=(0.0, 0.0, 0.0),
                 radius: float = 0.0, inside: bool = False):
        self.offset: Vec3 = _as_vec3(offset)
        self.tail: Vec3 = _as_vec3(tail)
        self.radius = float(radius)
        self.inside = inside

    def __repr__(self) -> str:
        return (f"ColliderShapeCapsule(offset={self.offset.tolist()}, "
                f"tail={self.tail.tolist()}, radius={self.radius})")

    def closest_point(self, collider_matrix: Mat4, object_position: Vec3) -> Vec3:
        """Closest point on the capsule's core segment, in world space."""
        head = transform_point(collider_matrix, self.offset)
        tail = transform_point(collider_matrix, self.tail)
        segment = tail - head
        length_sq = float(np.dot(segment, segment))
        dot = float(np.dot(segment, object_position - head))
        if dot <= 0.0 or length_sq < 1e-12:
            return head
        if dot >= length_sq:
            return tail
        return head + segment * (dot / length_sq)

    def calculate_collision(
        self,
        collider_matrix: Mat4,
        object_position: Vec3,
        object_radius: float,
        target: Vec3,
    ) -> float:
        delta = object_position - self.closest_point(collider_matrix, object_position)
        length = float(np.linalg.norm(delta))
        if self.inside:
            distance = self.radius - object_radius - length
            if distance < 0:
                target[:] = -normalize(delta)
            else:
                target[:] = 0.0
            return distance
        target[:] = normalize(delta)
        return length - (object_radius + self.radius)


class SpringBoneCollider(SceneNode):
    """A collider node; attach it under the bone it should follow."""

    def __init__(self, shape, name: str = ""):
        super().__init__(name=name)
        self.shape = shape

    @property
    def collider_matrix(self) -> Mat4:
        return self.world_matrix

    def attached_bone(self) -> Optional[SceneNode]:
        """Nearest bone ancestor, or None when detached from any skeleton."""
        node = self.parent
        while node is not None:
            if node.is_bone:
                return node
            node = node.parent
        return None


@dataclass
class SpringBoneColliderGroup:
    colliders: list[SpringBoneCollider] = field(default_factory=list)
    name: str = ""

    def __iter__(self):
        return iter(self.colliders)


def collide_tail(
    tail: Vec3,
    hit_radius: float,
    collider_groups: Iterable[SpringBoneColliderGroup],
    bone_position: Vec3,
    bone_length: float,
) -> Vec3:
    """Push ``tail`` out of every collider, keeping it ``bone_length`` from the bone."""
    push = vec3()
    for group in collider_groups:
        for collider in group:
            distance = collider.shape.calculate_collision(
                collider.collider_matrix, tail, hit_radius, push)
            if distance < 0.0:
                tail = tail + push * -distance
                tail = bone_position + normalize(tail - bone_position) * bone_length
    return tail
