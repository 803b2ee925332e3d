"""Spring-bone joint: secondary motion for one bone and its tail.

Each joint keeps the bone's rest pose (``set_init_state``), restores it
(``reset``) and advances a Verlet simulation of the tail (``update``):

    next = tail + (tail - prev) * (1 - drag)
               + bone_axis * stiffness * dt
               + gravity_dir * gravity_power * dt

The tail is then held at bone length, pushed out of colliders, and the
bone is rotated so its rest axis points at the new tail.
"""

from dataclasses import dataclass, field
from typing import Iterable, Optional

import numpy as np

from rigshift.constants import (
    DEFAULT_DRAG_FORCE, DEFAULT_GRAVITY_DIR, DEFAULT_STIFFNESS, VIRTUAL_TAIL_LENGTH,
)
from rigshift.core.math_utils import (
    Mat4, Quat, Vec3,
    mat4_inverse, normalize, quat_from_unit_vectors, quat_multiply,
    transform_direction, transform_point, vec3,
)
from rigshift.core.scene_graph import Bone, SceneNode
from rigshift.springbone.collider import SpringBoneColliderGroup, collide_tail


class SpringBoneStateError(RuntimeError):
    """Simulation state used out of order (e.g. restore before reset)."""


def _default_gravity_dir() -> Vec3:
    return vec3(*DEFAULT_GRAVITY_DIR)


@dataclass
class SpringBoneJointSettings:
    stiffness: float = DEFAULT_STIFFNESS
    gravity_power: float = 0.0
    gravity_dir: Vec3 = field(default_factory=_default_gravity_dir)  # unit vector
    drag_force: float = DEFAULT_DRAG_FORCE
    hit_radius: float = 0.0

    def __post_init__(self):
        self.gravity_dir = normalize(np.array(self.gravity_dir, dtype=np.float64).reshape(3))


def implicit_tail_position(bone: SceneNode, length: float = VIRTUAL_TAIL_LENGTH) -> Vec3:
    """Tail in bone space for a joint without a child: continue along bone.position."""
    direction = normalize(np.asarray(bone.position, dtype=np.float64))
    if not direction.any():
        return vec3(0.0, length, 0.0)
    return direction * length


class SpringBoneJoint:
    """Simulates one bone of a spring-bone chain."""

    def __init__(
        self,
        bone: Bone,
        child: Optional[SceneNode] = None,
        settings: Optional[SpringBoneJointSettings] = None,
        collider_groups: Iterable[SpringBoneColliderGroup] = (),
    ):
        self.bone = bone
        self.child = child
        self.settings = settings or SpringBoneJointSettings()
        self.collider_groups: list[SpringBoneColliderGroup] = list(collider_groups)

        self.initial_local_matrix: Optional[Mat4] = None
        self.initial_local_rotation: Optional[Quat] = None
        self.initial_local_child_position: Optional[Vec3] = None
        self.bone_axis: Optional[Vec3] = None
        self.current_tail: Optional[Vec3] = None
        self.prev_tail: Optional[Vec3] = None
        self.world_space_bone_length: float = 0.0

        self.reset_count = 0
        self._awaiting_reset = False

    def __repr__(self) -> str:
        child = self.child.name if self.child is not None else None
        return f"SpringBoneJoint({self.bone.name!r} -> {child!r})"

    @property
    def is_initialized(self) -> bool:
        return self.initial_local_matrix is not None

    @property
    def awaiting_reset(self) -> bool:
        """True between ``set_init_state`` and the following ``reset``."""
        return self._awaiting_reset

    @property
    def parent_world_matrix(self) -> Mat4:
        return self.bone.parent_world_matrix()

    def set_init_state(self) -> None:
        """Capture the bone's current local transform as the rest pose."""
        bone = self.bone
        bone.update_local_matrix()
        self.initial_local_matrix = bone.local_matrix.copy()
        self.initial_local_rotation = bone.quaternion.copy()
        if self.child is not None:
            self.initial_local_child_position = np.array(self.child.position, dtype=np.float64)
        else:
            self.initial_local_child_position = implicit_tail_position(bone)

        bone.world_matrix = self.parent_world_matrix @ bone.local_matrix
        self.current_tail = bone.local_to_world(self.initial_local_child_position)
        self.prev_tail = self.current_tail.copy()
        self.bone_axis = normalize(self.initial_local_child_position)
        self._calc_world_space_bone_length()
        self._awaiting_reset = True

    def reset(self) -> None:
        """Return the bone to its captured rest pose and clear velocity."""
        if not self.is_initialized:
            return
        bone = self.bone
        bone.set_quaternion(self.initial_local_rotation)
        bone.update_local_matrix()
        bone.update_world_matrix(force=True)

        self.current_tail = bone.local_to_world(self.initial_local_child_position)
        self.prev_tail = self.current_tail.copy()
        self.reset_count += 1
        self._awaiting_reset = False

    def world_bone_axis(self) -> Vec3:
        """Rest bone axis in world space (through initial local and parent world)."""
        if not self.is_initialized:
            raise SpringBoneStateError(f"Joint {self.bone.name!r} has no initial state")
        local = transform_direction(self.initial_local_matrix, self.bone_axis)
        return normalize(transform_direction(self.parent_world_matrix, local))

    def _calc_world_space_bone_length(self) -> None:
        head = self.bone.get_world_position()
        if self.child is not None and self.child.parent is self.bone:
            tail = self.bone.local_to_world(self.child.position)
        elif self.child is not None:
            tail = self.child.get_world_position()
        else:
            tail = self.bone.local_to_world(self.initial_local_child_position)
        self.world_space_bone_length = float(np.linalg.norm(tail - head))

    def update(self, delta: float) -> None:
        """Advance the simulation by ``delta`` seconds."""
        if delta <= 0 or not self.is_initialized:
            return
        bone = self.bone
        parent_world = self.parent_world_matrix
        bone.world_matrix = parent_world @ bone.local_matrix

        self._calc_world_space_bone_length()
        bone_position = bone.get_world_position()
        world_axis = self.world_bone_axis()
        gravity = self.settings.gravity_dir * self.settings.gravity_power

        s = self.settings
        next_tail = (
            self.current_tail
            + (self.current_tail - self.prev_tail) * (1.0 - s.drag_force)
            + world_axis * s.stiffness * delta
            + gravity * delta
        )
        next_tail = bone_position + normalize(next_tail - bone_position) * self.world_space_bone_length
        next_tail = collide_tail(
            next_tail, s.hit_radius, self.collider_groups,
            bone_position, self.world_space_bone_length,
        )

        self.prev_tail = self.current_tail
        self.current_tail = next_tail
        self.apply_tail_rotation()

    def apply_tail_rotation(self) -> None:
        """Rotate the bone so its rest axis points at ``current_tail``."""
        bone = self.bone
        parent_world = self.parent_world_matrix
        initial_world_inv = mat4_inverse(parent_world @ self.initial_local_matrix)
        local_tail_dir = normalize(transform_point(initial_world_inv, self.current_tail))
        if not local_tail_dir.any():
            return
        swing = quat_from_unit_vectors(self.bone_axis, local_tail_dir)
        bone.set_quaternion(quat_multiply(self.initial_local_rotation, swing))
        bone.update_world_matrix(force=True)
