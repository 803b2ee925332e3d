"""Quantitative migration diagnostic: builds a small avatar, simulates its
spring bones, migrates it and checks that everything turned 180° about +Y.

Usage::

    from tools.migration_diagnostic import build_demo_avatar, verify_migration

    avatar = build_demo_avatar()
    report = verify_migration(avatar.root, avatar.manager, steps=30)
    print(format_migration_report(report))

Or from the command line::

    python tools/migration_diagnostic.py --steps 30
"""

from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import numpy as np
from numpy.typing import NDArray

from rigshift.constants import AXIS_TOLERANCE, POSITION_TOLERANCE
from rigshift.core.config_loader import MigrationConfig, load_migration_config
from rigshift.core.math_utils import mat4_identity, quat_from_euler, quat_identity
from rigshift.core.mesh import BufferGeometry
from rigshift.core.scene_graph import Bone, SceneNode
from rigshift.core.skeleton import Skeleton, SkinnedMesh
from rigshift.migration.coordinate import rotate_y180
from rigshift.migration.pipeline import migrate_avatar
from rigshift.migration.skeleton import find_skinned_meshes
from rigshift.springbone.collider import (
    ColliderShapeCapsule, ColliderShapeSphere, SpringBoneCollider, SpringBoneColliderGroup,
)
from rigshift.springbone.diagnostics import (
    capture_spring_bone_snapshot, compare_snapshots, format_snapshot,
)
from rigshift.springbone.joint import SpringBoneJoint, SpringBoneJointSettings
from rigshift.springbone.manager import SpringBoneManager

logger = logging.getLogger(__name__)

FRAME_DELTA = 1.0 / 60.0


# ── Demo avatar ───────────────────────────────────────────────────────

@dataclass
class DemoAvatar:
    root: SceneNode
    mesh: SkinnedMesh
    skeleton: Skeleton
    manager: SpringBoneManager


def _bone(name: str, position, parent: Optional[SceneNode] = None, rotation=None) -> Bone:
    bone = Bone(name=name)
    bone.set_position(*position)
    if rotation is not None:
        bone.set_quaternion(rotation)
    if parent is not None:
        parent.add(bone)
    return bone


def build_demo_avatar() -> DemoAvatar:
    """Hips/spine/head with a three-bone hair chain ending in a leaf joint.

    The head and the hair chain carry rest rotations and the face collider
    node sits off its bone, so the rebuild has to carry collider frames
    along with the bones.
    """
    root = SceneNode(name="avatar")
    hips = _bone("hips", (0.0, 1.0, 0.0), root)
    spine = _bone("spine", (0.0, 0.2, 0.0), hips)
    head = _bone("head", (0.0, 0.4, 0.0), spine, rotation=quat_from_euler(0.05, 0.3, 0.0))
    hair_root = _bone("hair_root", (0.0, 0.1, -0.08), head,
                      rotation=quat_from_euler(0.4, 0.0, 0.0))
    hair_1 = _bone("hair_1", (0.0, -0.08, 0.0), hair_root,
                   rotation=quat_from_euler(0.2, 0.3, 0.0))
    hair_2 = _bone("hair_2", (0.0, -0.08, 0.01), hair_1,
                   rotation=quat_from_euler(-0.1, 0.0, 0.2))
    bones = [hips, spine, head, hair_root, hair_1, hair_2]

    # One vertex cluster around each bone's world position
    root.update_world_matrix(force=True)
    positions, skin_indices, skin_weights = [], [], []
    for i, bone in enumerate(bones):
        center = bone.get_world_position()
        for offset in ((0.03, 0.0, 0.0), (0.0, 0.0, 0.03), (-0.02, 0.01, -0.02)):
            positions.extend(center + np.array(offset))
            parent_index = max(i - 1, 0)
            skin_indices.append((i, parent_index, 0, 0))
            skin_weights.append((0.75, 0.25, 0.0, 0.0))
    geometry = BufferGeometry(
        positions=np.array(positions, dtype=np.float32),
        skin_indices=np.array(skin_indices, dtype=np.uint16),
        skin_weights=np.array(skin_weights, dtype=np.float32),
    )
    mesh = SkinnedMesh(name="body", geometry=geometry)
    root.add(mesh)
    skeleton = Skeleton(bones)
    mesh.bind(skeleton, mat4_identity())
    root.update_world_matrix(force=True)
    skeleton.calculate_inverses()

    face = SpringBoneCollider(ColliderShapeSphere(offset=(0.0, 0.05, 0.1), radius=0.08), name="face")
    face.set_position(0.0, 0.02, 0.03)
    head.add(face)
    back = SpringBoneCollider(
        ColliderShapeCapsule(offset=(0.0, 0.0, -0.05), tail=(0.0, 0.3, -0.05), radius=0.05),
        name="back",
    )
    spine.add(back)
    group = SpringBoneColliderGroup([face, back], name="head_and_back")

    settings = dict(stiffness=0.8, gravity_power=0.5, gravity_dir=(0.0, -1.0, 0.3),
                    drag_force=0.4, hit_radius=0.02)
    manager = SpringBoneManager()
    manager.add_joint(SpringBoneJoint(hair_root, hair_1, SpringBoneJointSettings(**settings), [group]))
    manager.add_joint(SpringBoneJoint(hair_1, hair_2, SpringBoneJointSettings(**settings), [group]))
    manager.add_joint(SpringBoneJoint(hair_2, None, SpringBoneJointSettings(**settings), [group]))
    manager.set_init_state()
    manager.reset()
    return DemoAvatar(root=root, mesh=mesh, skeleton=skeleton, manager=manager)


def simulate(manager: SpringBoneManager, steps: int, delta: float = FRAME_DELTA) -> None:
    for _ in range(steps):
        manager.update(delta)


# ── Verification ──────────────────────────────────────────────────────

@dataclass
class MigrationReport:
    """Worst-case errors of a migrated avatar against the Y-180 law."""
    ok: bool
    error: Optional[str] = None
    max_position_error: float = 0.0     # bone world positions
    max_axis_error: float = 0.0         # spring-bone rest axes
    max_skinned_error: float = 0.0      # CPU-skinned rest-pose vertices
    max_inverse_bind_error: float = 0.0  # |world @ inverse_bind - I|
    max_tail_error: float = 0.0         # restored simulation tails
    max_collider_error: float = 0.0     # collider centres and capsule tails
    rotations_reset: bool = False
    virtual_tails: list[str] = field(default_factory=list)
    differences: list[str] = field(default_factory=list)

    def passed(
        self,
        tolerance: float = POSITION_TOLERANCE,
        axis_tolerance: float = AXIS_TOLERANCE,
    ) -> bool:
        return (
            self.ok
            and self.rotations_reset
            and self.max_position_error < tolerance
            and self.max_skinned_error < tolerance
            and self.max_inverse_bind_error < tolerance
            and self.max_tail_error < tolerance
            and self.max_collider_error < tolerance
            and self.max_axis_error < axis_tolerance
        )


def _skeletons(root: SceneNode) -> list[Skeleton]:
    found: dict[int, Skeleton] = {}
    for mesh in find_skinned_meshes(root):
        if mesh.skeleton is not None:
            found.setdefault(id(mesh.skeleton), mesh.skeleton)
    return list(found.values())


def _bone_positions(skeletons: list[Skeleton]) -> dict[str, NDArray[np.float64]]:
    return {
        bone.name: bone.get_world_position()
        for skeleton in skeletons for bone in skeleton.bones
    }


def _skinned_positions(root: SceneNode) -> dict[str, NDArray[np.float64]]:
    return {mesh.name: mesh.compute_skinned_positions() for mesh in find_skinned_meshes(root)}


def _collider_points(manager: SpringBoneManager) -> list[NDArray[np.float64]]:
    points = []
    for collider in manager.colliders:
        points.append(collider.local_to_world(collider.shape.offset))
        if collider.shape.type == "capsule":
            points.append(collider.local_to_world(collider.shape.tail))
    return points


def verify_migration(
    root: SceneNode,
    manager: SpringBoneManager,
    config: Optional[MigrationConfig] = None,
    steps: int = 0,
) -> MigrationReport:
    """Simulate ``steps`` frames, migrate, and measure the result.

    Rest-pose quantities are measured with the joints reset before and
    after; simulation tails are measured right after the migration.
    """
    config = config or MigrationConfig()
    if not all(joint.is_initialized for joint in manager.joints):
        manager.set_init_state()
    manager.reset()
    root.update_world_matrix(force=True)

    skeletons = _skeletons(root)
    positions_before = _bone_positions(skeletons)
    skinned_before = _skinned_positions(root)
    axes_before = {id(j): j.world_bone_axis() for j in manager.joints}
    colliders_before = _collider_points(manager)

    simulate(manager, steps)
    tails_before = {id(j): j.current_tail.copy() for j in manager.joints}
    snap_before = capture_spring_bone_snapshot(root, manager, "before")

    existing = {id(node) for node in root.iter_preorder()}
    result = migrate_avatar(root, manager, config)
    if result.is_err():
        return MigrationReport(ok=False, error=result.unwrap_err().message)

    report = MigrationReport(ok=True)
    report.virtual_tails = [
        node.name for node in root.iter_preorder()
        if node.is_bone and id(node) not in existing
    ]
    if config.restore_dynamic_state and steps > 0:
        report.max_tail_error = max(
            (float(np.linalg.norm(j.current_tail - rotate_y180(tails_before[id(j)])))
             for j in manager.joints if id(j) in tails_before),
            default=0.0,
        )
    report.differences = compare_snapshots(
        snap_before, capture_spring_bone_snapshot(root, manager, "after"))

    manager.reset()
    root.update_world_matrix(force=True)

    positions_after = _bone_positions(skeletons)
    report.max_position_error = max(
        (float(np.linalg.norm(positions_after[name] - rotate_y180(pos)))
         for name, pos in positions_before.items()),
        default=0.0,
    )
    report.rotations_reset = all(
        np.allclose(bone.quaternion, quat_identity(), atol=1e-6)
        for skeleton in skeletons for bone in skeleton.bones
    )
    report.max_axis_error = max(
        (float(np.linalg.norm(j.world_bone_axis() - rotate_y180(axes_before[id(j)])))
         for j in manager.joints),
        default=0.0,
    )
    report.max_collider_error = max(
        (float(np.linalg.norm(after - rotate_y180(before)))
         for after, before in zip(_collider_points(manager), colliders_before)),
        default=0.0,
    )
    skinned_after = _skinned_positions(root)
    errors = [
        float(np.abs(skinned_after[name] - np.array([rotate_y180(p) for p in before])).max())
        for name, before in skinned_before.items() if len(before)
    ]
    report.max_skinned_error = max(errors, default=0.0)
    report.max_inverse_bind_error = max(
        (float(np.abs(bone.world_matrix @ inv - np.eye(4)).max())
         for skeleton in skeletons
         for bone, inv in zip(skeleton.bones, skeleton.bone_inverses)),
        default=0.0,
    )
    return report


def format_migration_report(report: MigrationReport) -> str:
    """Format a migration report as a human-readable summary."""
    lines = ["=" * 60, "MIGRATION DIAGNOSTIC REPORT", "=" * 60, ""]
    if not report.ok:
        lines.append(f"  migration failed: {report.error}")
        return "\n".join(lines)

    def row(label: str, value: float, limit: float) -> str:
        status = "PASS" if value < limit else "FAIL"
        return f"  {label:28s} {value:.6f}  [{status}]"

    lines.append(row("bone position error", report.max_position_error, POSITION_TOLERANCE))
    lines.append(row("skinned vertex error", report.max_skinned_error, POSITION_TOLERANCE))
    lines.append(row("inverse bind error", report.max_inverse_bind_error, POSITION_TOLERANCE))
    lines.append(row("restored tail error", report.max_tail_error, POSITION_TOLERANCE))
    lines.append(row("collider error", report.max_collider_error, POSITION_TOLERANCE))
    lines.append(row("spring-bone axis error", report.max_axis_error, AXIS_TOLERANCE))
    lines.append(f"  {'rotations reset':28s} {report.rotations_reset}")
    lines.append(f"  {'virtual tails':28s} {', '.join(report.virtual_tails) or '-'}")
    lines.append("")
    lines.append(f"CHANGES ({len(report.differences)})")
    lines.append("-" * 50)
    lines.extend(f"  {line}" for line in report.differences)
    return "\n".join(lines)


def main():
    parser = argparse.ArgumentParser(description="Migrate a demo avatar and verify the result")
    parser.add_argument("--steps", type=int, default=30, help="Simulation frames before migrating")
    parser.add_argument("--config", type=str, help="Migration config JSON")
    parser.add_argument("--no-restore", action="store_true", help="Drop simulation state")
    parser.add_argument("--drop-tails", action="store_true", help="Remove virtual tails afterwards")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(name)s: %(message)s")

    config = load_migration_config(Path(args.config) if args.config else None)
    if args.no_restore:
        config.restore_dynamic_state = False
    if args.drop_tails:
        config.keep_virtual_tails = False

    avatar = build_demo_avatar()
    print(format_snapshot(capture_spring_bone_snapshot(avatar.root, avatar.manager, "rest")))
    report = verify_migration(avatar.root, avatar.manager, config, steps=args.steps)
    print(format_snapshot(capture_spring_bone_snapshot(avatar.root, avatar.manager, "migrated")))
    print(format_migration_report(report))
    if not report.passed():
        logger.warning("Migration check failed")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
