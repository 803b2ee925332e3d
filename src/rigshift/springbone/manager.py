"""Owns the spring-bone joints and colliders of one avatar."""

import logging
from typing import Iterable

from rigshift.constants import MAX_DELTA_TIME
from rigshift.core.scene_graph import SceneNode, update_world_matrices
from rigshift.springbone.collider import SpringBoneCollider, SpringBoneColliderGroup
from rigshift.springbone.joint import SpringBoneJoint

logger = logging.getLogger(__name__)


def _depth(node: SceneNode) -> int:
    depth = 0
    while node.parent is not None:
        node = node.parent
        depth += 1
    return depth


class SpringBoneManager:
    """Runs every joint's lifecycle; parents are always processed before children."""

    def __init__(
        self,
        joints: Iterable[SpringBoneJoint] = (),
        colliders: Iterable[SpringBoneCollider] = (),
    ):
        self.joints: list[SpringBoneJoint] = []
        self.colliders: list[SpringBoneCollider] = []
        for joint in joints:
            self.add_joint(joint)
        for collider in colliders:
            self.add_collider(collider)

    def __repr__(self) -> str:
        return f"SpringBoneManager({len(self.joints)} joints, {len(self.colliders)} colliders)"

    def add_joint(self, joint: SpringBoneJoint) -> None:
        self.joints.append(joint)
        for group in joint.collider_groups:
            for collider in group:
                if collider not in self.colliders:
                    self.colliders.append(collider)

    def add_collider(self, collider: SpringBoneCollider) -> None:
        if collider not in self.colliders:
            self.colliders.append(collider)

    @property
    def collider_groups(self) -> list[SpringBoneColliderGroup]:
        groups: list[SpringBoneColliderGroup] = []
        for joint in self.joints:
            for group in joint.collider_groups:
                if not any(group is g for g in groups):
                    groups.append(group)
        return groups

    def joints_of_bone(self, bone: SceneNode) -> list[SpringBoneJoint]:
        return [joint for joint in self.joints if joint.bone is bone]

    def ordered_joints(self) -> list[SpringBoneJoint]:
        # Stable: joints at equal depth keep insertion order
        return sorted(self.joints, key=lambda j: _depth(j.bone))

    def _refresh(self) -> None:
        update_world_matrices(
            [joint.bone for joint in self.joints] + list(self.colliders))

    def set_init_state(self) -> None:
        """Capture the current pose of every joint as its rest pose."""
        self._refresh()
        for joint in self.ordered_joints():
            joint.set_init_state()
        logger.debug("Captured initial state for %d joints", len(self.joints))

    def reset(self) -> None:
        """Return every joint to its captured rest pose."""
        self._refresh()
        for joint in self.ordered_joints():
            joint.reset()

    def update(self, delta: float) -> None:
        """Advance the simulation; ``delta`` is clamped to MAX_DELTA_TIME."""
        delta = min(delta, MAX_DELTA_TIME)
        self._refresh()
        for joint in self.ordered_joints():
            joint.update(delta)
