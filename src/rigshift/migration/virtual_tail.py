"""Virtual tail bones for spring-bone chains that end without a child.

The source convention lets a leaf joint's tail stay implicit: the joint
continues along its own ``bone.position`` inside the bone's rotated frame.
Migration resets every bone rotation, which would swing that implicit
direction, so the direction is recorded in world space beforehand and a
real tail bone is placed along its turned equivalent afterwards.
"""

import logging
from typing import Optional

import numpy as np

from rigshift.constants import VIRTUAL_TAIL_LENGTH, VIRTUAL_TAIL_SUFFIX
from rigshift.core.math_utils import Vec3, normalize, transform_direction, vec3
from rigshift.core.scene_graph import Bone
from rigshift.migration.coordinate import rotate_y180
from rigshift.springbone.joint import SpringBoneJoint, implicit_tail_position
from rigshift.springbone.manager import SpringBoneManager

logger = logging.getLogger(__name__)


def _is_leaf_joint(joint: SpringBoneJoint) -> bool:
    if joint.child is not None:
        return False
    return not any(child.is_bone for child in joint.bone.children)


def record_spring_bone_directions(manager: Optional[SpringBoneManager]) -> dict[Bone, Vec3]:
    """World-space unit direction of each leaf joint's implicit tail.

    Call on the rest pose, before the skeleton is migrated.
    """
    directions: dict[Bone, Vec3] = {}
    if manager is None or not manager.joints:
        return directions

    for joint in manager.joints:
        bone = joint.bone
        if bone is None:
            logger.warning("Skipping spring-bone joint without a bone")
            continue
        if not _is_leaf_joint(joint):
            continue
        bone.update_parent_chain()
        local_tail = implicit_tail_position(bone, 1.0)
        world_dir = normalize(transform_direction(bone.world_matrix, local_tail))
        if not world_dir.any():
            world_dir = vec3(0.0, 1.0, 0.0)
        directions[bone] = world_dir
    return directions


def create_virtual_tail_nodes(
    manager: Optional[SpringBoneManager],
    directions: Optional[dict[Bone, Vec3]] = None,
    length: float = VIRTUAL_TAIL_LENGTH,
) -> list[Bone]:
    """Give every leaf joint an explicit tail bone; returns the new bones.

    With a recorded pre-migration direction the tail is placed along its
    Y-180 image, expressed in the bone's migrated frame.  Otherwise it
    continues along ``bone.position``.  Each tail becomes its joint's child.
    """
    created: list[Bone] = []
    if manager is None or not manager.joints:
        return created

    for joint in manager.joints:
        bone = joint.bone
        if bone is None or not _is_leaf_joint(joint):
            continue

        if directions is not None and bone in directions:
            bone.update_parent_chain()
            world_dir = rotate_y180(directions[bone])
            local_dir = normalize(np.linalg.solve(bone.world_matrix[:3, :3], world_dir))
            offset = local_dir * length
        else:
            offset = implicit_tail_position(bone, length)

        tail = Bone(name=f"{bone.name}{VIRTUAL_TAIL_SUFFIX}")
        tail.set_position(*offset)
        bone.add(tail)
        tail.update_parent_chain()
        joint.child = tail
        created.append(tail)

    if created:
        logger.info("Created %d virtual tail nodes", len(created))
    return created


def cleanup_virtual_tail_nodes(
    tail_nodes: list[Bone],
    manager: Optional[SpringBoneManager] = None,
) -> None:
    """Detach synthesized tails and unbind them from their joints."""
    tails = {id(t) for t in tail_nodes}
    if manager is not None:
        for joint in manager.joints:
            if joint.child is not None and id(joint.child) in tails:
                joint.child = None
    for tail in tail_nodes:
        if tail.parent is not None:
            tail.parent.remove(tail)
