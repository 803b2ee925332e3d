"""Spring-bone diagnostics: snapshot bone/joint/collider state and diff it.

Usage:
    before = capture_spring_bone_snapshot(scene, manager, "before")
    migrate_avatar(scene, manager)
    after = capture_spring_bone_snapshot(scene, manager, "after")
    for line in compare_snapshots(before, after):
        print(line)
"""

import time
from dataclasses import asdict, dataclass, field
from typing import Any, Optional

import numpy as np

from rigshift.core.scene_graph import SceneNode
from rigshift.springbone.manager import SpringBoneManager


@dataclass
class BoneSnapshot:
    name: str
    position: tuple[float, float, float]
    rotation: tuple[float, float, float, float]  # [x, y, z, w]
    scale: tuple[float, float, float]


@dataclass
class JointSnapshot:
    bone_name: str
    child_name: Optional[str]
    stiffness: float
    gravity_power: float
    gravity_dir: tuple[float, float, float]
    drag_force: float
    hit_radius: float
    current_rotation: tuple[float, float, float, float]
    initial_local_rotation: Optional[tuple[float, float, float, float]] = None


@dataclass
class ColliderSnapshot:
    node_name: str
    shape_type: str
    offset: tuple[float, float, float]
    radius: float
    tail: Optional[tuple[float, float, float]] = None


@dataclass
class SpringBoneSnapshot:
    label: str
    timestamp: float
    bones: list[BoneSnapshot] = field(default_factory=list)
    joints: list[JointSnapshot] = field(default_factory=list)
    colliders: list[ColliderSnapshot] = field(default_factory=list)


def _t(v) -> tuple:
    return tuple(float(x) for x in v)


def capture_spring_bone_snapshot(
    root: SceneNode,
    manager: Optional[SpringBoneManager],
    label: str,
) -> SpringBoneSnapshot:
    """Record bone transforms under ``root`` and the manager's physics setup."""
    snap = SpringBoneSnapshot(label=label, timestamp=time.time())

    for node in root.iter_preorder():
        if node.is_bone:
            snap.bones.append(BoneSnapshot(
                name=node.name,
                position=_t(node.position),
                rotation=_t(node.quaternion),
                scale=_t(node.scale),
            ))

    if manager is None:
        return snap

    for joint in manager.joints:
        s = joint.settings
        snap.joints.append(JointSnapshot(
            bone_name=joint.bone.name,
            child_name=joint.child.name if joint.child is not None else None,
            stiffness=s.stiffness,
            gravity_power=s.gravity_power,
            gravity_dir=_t(s.gravity_dir),
            drag_force=s.drag_force,
            hit_radius=s.hit_radius,
            current_rotation=_t(joint.bone.quaternion),
            initial_local_rotation=(
                _t(joint.initial_local_rotation)
                if joint.initial_local_rotation is not None else None
            ),
        ))

    for collider in manager.colliders:
        shape = collider.shape
        snap.colliders.append(ColliderSnapshot(
            node_name=collider.name,
            shape_type=shape.type,
            offset=_t(shape.offset),
            radius=shape.radius,
            tail=_t(shape.tail) if shape.type == "capsule" else None,
        ))
    return snap


def _differs(a, b, tolerance: float) -> bool:
    if a is None or b is None:
        return a is not b
    return not np.allclose(a, b, atol=tolerance)


def _fmt(v) -> str:
    if v is None:
        return "None"
    return "[" + ", ".join(f"{x:.4f}" for x in v) + "]"


def compare_snapshots(
    before: SpringBoneSnapshot,
    after: SpringBoneSnapshot,
    tolerance: float = 1e-4,
) -> list[str]:
    """Human-readable lines for every value that changed between snapshots."""
    lines: list[str] = []

    after_bones = {b.name: b for b in after.bones}
    for bone in before.bones:
        other = after_bones.get(bone.name)
        if other is None:
            lines.append(f"bone {bone.name}: missing in '{after.label}'")
            continue
        for attr in ("position", "rotation", "scale"):
            a, b = getattr(bone, attr), getattr(other, attr)
            if _differs(a, b, tolerance):
                lines.append(f"bone {bone.name}: {attr} {_fmt(a)} → {_fmt(b)}")
    before_names = {b.name for b in before.bones}
    for bone in after.bones:
        if bone.name not in before_names:
            lines.append(f"bone {bone.name}: added in '{after.label}'")

    after_joints = {j.bone_name: j for j in after.joints}
    for joint in before.joints:
        other = after_joints.get(joint.bone_name)
        if other is None:
            lines.append(f"joint {joint.bone_name}: missing in '{after.label}'")
            continue
        if joint.child_name != other.child_name:
            lines.append(f"joint {joint.bone_name}: child {joint.child_name} → {other.child_name}")
        for attr in ("gravity_dir", "current_rotation", "initial_local_rotation"):
            a, b = getattr(joint, attr), getattr(other, attr)
            if _differs(a, b, tolerance):
                lines.append(f"joint {joint.bone_name}: {attr} {_fmt(a)} → {_fmt(b)}")
        for attr in ("stiffness", "gravity_power", "drag_force", "hit_radius"):
            a, b = getattr(joint, attr), getattr(other, attr)
            if abs(a - b) > tolerance:
                lines.append(f"joint {joint.bone_name}: {attr} {a:.4f} → {b:.4f}")

    for i, (a, b) in enumerate(zip(before.colliders, after.colliders)):
        name = a.node_name or f"#{i}"
        if _differs(a.offset, b.offset, tolerance):
            lines.append(f"collider {name}: offset {_fmt(a.offset)} → {_fmt(b.offset)}")
        if _differs(a.tail, b.tail, tolerance):
            lines.append(f"collider {name}: tail {_fmt(a.tail)} → {_fmt(b.tail)}")
    if len(before.colliders) != len(after.colliders):
        lines.append(f"collider count {len(before.colliders)} → {len(after.colliders)}")

    return lines


def snapshot_to_dict(snapshot: SpringBoneSnapshot) -> dict[str, Any]:
    return asdict(snapshot)


def format_snapshot(snapshot: SpringBoneSnapshot) -> str:
    """Multi-line summary of a snapshot."""
    out = [f"=== {snapshot.label}: {len(snapshot.bones)} bones, "
           f"{len(snapshot.joints)} joints, {len(snapshot.colliders)} colliders ==="]
    for joint in snapshot.joints:
        out.append(
            f"  joint {joint.bone_name} -> {joint.child_name}: "
            f"gravity {_fmt(joint.gravity_dir)} x {joint.gravity_power:.3f}, "
            f"rotation {_fmt(joint.current_rotation)}"
        )
    for collider in snapshot.colliders:
        line = f"  collider {collider.node_name} ({collider.shape_type}): offset {_fmt(collider.offset)}"
        if collider.tail is not None:
            line += f" tail {_fmt(collider.tail)}"
        out.append(line + f" r={collider.radius:.3f}")
    return "\n".join(out)
