"""Spring-bone (jiggle) physics runtime: joints, colliders and their manager."""

from rigshift.springbone.collider import (
    ColliderShapeCapsule,
    ColliderShapeSphere,
    SpringBoneCollider,
    SpringBoneColliderGroup,
)
from rigshift.springbone.joint import (
    SpringBoneJoint,
    SpringBoneJointSettings,
    SpringBoneStateError,
)
from rigshift.springbone.manager import SpringBoneManager

__all__ = [
    "ColliderShapeCapsule",
    "ColliderShapeSphere",
    "SpringBoneCollider",
    "SpringBoneColliderGroup",
    "SpringBoneJoint",
    "SpringBoneJointSettings",
    "SpringBoneManager",
    "SpringBoneStateError",
]
