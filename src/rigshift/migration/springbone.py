"""Co-rotate spring-bone physics configuration with a migrated skeleton.

Gravity directions and collider shapes are expressed in spaces that turn
with the avatar, so they go through the same Y-180 law as the bones.
Both mutators are independent of the vertex and inverse-bind steps and
must run after the skeleton migration.
"""

import logging
from typing import Iterable, Union

from rigshift.migration.coordinate import rotate_y180_inplace
from rigshift.springbone.collider import SpringBoneCollider
from rigshift.springbone.joint import SpringBoneJoint
from rigshift.springbone.manager import SpringBoneManager

logger = logging.getLogger(__name__)


def rotate_gravity_directions(
    joints: Union[SpringBoneManager, Iterable[SpringBoneJoint]],
) -> int:
    """Turn every joint's ``gravity_dir`` 180° about +Y, in place.

    Accepts a manager or any iterable of joints. Returns the number of
    joints touched.
    """
    if isinstance(joints, SpringBoneManager):
        joints = joints.joints
    count = 0
    for joint in joints:
        rotate_y180_inplace(joint.settings.gravity_dir)
        count += 1
    logger.debug("Rotated gravity direction of %d joints", count)
    return count


def rotate_collider_offsets(
    colliders: Union[SpringBoneManager, Iterable[SpringBoneCollider]],
) -> int:
    """Turn each collider shape's ``offset`` (and capsule ``tail``) 180° about +Y."""
    if isinstance(colliders, SpringBoneManager):
        colliders = colliders.colliders
    count = 0
    for collider in colliders:
        shape = collider.shape
        rotate_y180_inplace(shape.offset)
        if shape.type == "capsule":
            rotate_y180_inplace(shape.tail)
        count += 1
    logger.debug("Rotated offsets of %d colliders", count)
    return count


def find_detached_colliders(
    colliders: Union[SpringBoneManager, Iterable[SpringBoneCollider]],
) -> list[SpringBoneCollider]:
    """Colliders with no bone ancestor; their offsets cannot follow a migration."""
    if isinstance(colliders, SpringBoneManager):
        colliders = colliders.colliders
    return [c for c in colliders if c.attached_bone() is None]
