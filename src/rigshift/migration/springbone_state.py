"""Carry running spring-bone simulation state across a rest-pose change.

A new rest pose forces ``set_init_state()`` + ``reset()`` on every joint,
which throws away accumulated bend.  The dynamic state is the pair of
world-space tail positions; recording them before and writing their
turned images back after the reset keeps the simulation continuous.
The bone's simulated rotation is then re-derived against the new rest
axis.
"""

from dataclasses import dataclass, field
from typing import Callable, Iterator, Optional

import numpy as np

from rigshift.core.math_utils import Vec3
from rigshift.migration.coordinate import rotate_y180
from rigshift.springbone.joint import SpringBoneJoint, SpringBoneStateError
from rigshift.springbone.manager import SpringBoneManager


@dataclass
class JointState:
    """Dynamic state of one joint at record time."""
    bone_name: str
    current_tail: Vec3
    prev_tail: Vec3
    reset_count: int


@dataclass
class SpringBoneState:
    """Recorded joint states, keyed by joint identity."""
    joints: dict[int, tuple[SpringBoneJoint, JointState]] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.joints)

    def __contains__(self, joint: SpringBoneJoint) -> bool:
        return id(joint) in self.joints

    def __iter__(self) -> Iterator[tuple[SpringBoneJoint, JointState]]:
        return iter(self.joints.values())

    def get(self, joint: SpringBoneJoint) -> Optional[JointState]:
        entry = self.joints.get(id(joint))
        return entry[1] if entry is not None else None


def record_spring_bone_state(manager: Optional[SpringBoneManager]) -> SpringBoneState:
    """Snapshot the tails of every initialized joint."""
    state = SpringBoneState()
    if manager is None:
        return state
    for joint in manager.joints:
        if not joint.is_initialized or joint.current_tail is None:
            continue
        state.joints[id(joint)] = (joint, JointState(
            bone_name=joint.bone.name,
            current_tail=np.array(joint.current_tail, dtype=np.float64),
            prev_tail=np.array(joint.prev_tail, dtype=np.float64),
            reset_count=joint.reset_count,
        ))
    return state


def restore_spring_bone_state(
    manager: SpringBoneManager,
    state: SpringBoneState,
    transform: Callable[[Vec3], Vec3] = rotate_y180,
) -> int:
    """Write recorded dynamic state back after the manager's reset.

    ``transform`` maps recorded world positions into the migrated space.
    Raises SpringBoneStateError when a joint has not been reset since the
    state was recorded (restoring then would apply the bend twice).
    Returns the number of joints restored.
    """
    restored = 0
    for joint in manager.ordered_joints():
        recorded = state.get(joint)
        if recorded is None:
            continue
        if joint.reset_count <= recorded.reset_count or joint.awaiting_reset:
            raise SpringBoneStateError(
                f"Joint {joint.bone.name!r} must be reset before its state is restored")
        joint.prev_tail = transform(recorded.prev_tail)
        joint.current_tail = transform(recorded.current_tail)
        joint.apply_tail_rotation()
        restored += 1
    return restored
