"""Tests for the full avatar migration (skeleton plus spring-bone physics)."""

import numpy as np
import pytest

from rigshift.constants import AXIS_TOLERANCE, POSITION_TOLERANCE, VIRTUAL_TAIL_SUFFIX
from rigshift.core.config_loader import MigrationConfig
from rigshift.core.math_utils import quat_from_euler, quat_identity
from rigshift.core.mesh import BufferGeometry
from rigshift.core.result import ErrorKind
from rigshift.core.scene_graph import Bone, SceneNode
from rigshift.core.skeleton import Skeleton, SkinnedMesh
from rigshift.migration.coordinate import rotate_y180
from rigshift.migration.pipeline import migrate_avatar
from rigshift.springbone.collider import (
    ColliderShapeCapsule, ColliderShapeSphere, SpringBoneCollider, SpringBoneColliderGroup,
)
from rigshift.springbone.joint import SpringBoneJoint, SpringBoneJointSettings
from rigshift.springbone.manager import SpringBoneManager


def _build_avatar(with_mesh=True, head_rotation=None, face_position=None):
    scene = SceneNode(name="avatar")
    hips = Bone(name="hips")
    head = Bone(name="head")
    hair_a = Bone(name="hair_a")
    hair_b = Bone(name="hair_b")
    scene.add(hips)
    hips.add(head)
    head.add(hair_a)
    hair_a.add(hair_b)
    hips.set_position(0, 1, 0)
    head.set_position(0, 0.5, 0.02)
    if head_rotation is not None:
        head.set_quaternion(head_rotation)
    hair_a.set_position(0.02, 0.1, -0.1)
    hair_a.set_quaternion(quat_from_euler(0.5, 0.1, 0.0))
    hair_b.set_position(0, -0.1, 0.01)
    hair_b.set_quaternion(quat_from_euler(0.2, -0.3, 0.1))
    bones = [hips, head, hair_a, hair_b]

    if with_mesh:
        mesh = SkinnedMesh(name="body", geometry=BufferGeometry(
            positions=np.array([0.1, 1.0, 0.0, 0.0, 1.5, 0.1, 0.05, 1.55, -0.1], dtype=np.float32),
            skin_indices=np.array([[0, 0, 0, 0], [1, 0, 0, 0], [2, 1, 0, 0]]),
            skin_weights=np.array([[1, 0, 0, 0], [1, 0, 0, 0], [0.5, 0.5, 0, 0]]),
        ))
        scene.add(mesh)
        mesh.bind(Skeleton(bones))

    sphere = SpringBoneCollider(ColliderShapeSphere(offset=(0, 0, 0.1), radius=0.08), name="face")
    if face_position is not None:
        sphere.set_position(*face_position)
    capsule = SpringBoneCollider(
        ColliderShapeCapsule(offset=(0, 0, -0.05), tail=(0, 0.2, -0.05), radius=0.04), name="back")
    head.add(sphere)
    hips.add(capsule)
    group = SpringBoneColliderGroup([sphere, capsule])
    settings = dict(stiffness=0.6, gravity_power=0.8, gravity_dir=(0.2, -1.0, 0.1), hit_radius=0.01)
    manager = SpringBoneManager([
        SpringBoneJoint(hair_a, hair_b, SpringBoneJointSettings(**settings), [group]),
        SpringBoneJoint(hair_b, None, SpringBoneJointSettings(**settings), [group]),
    ])
    manager.set_init_state()
    manager.reset()
    return scene, bones, manager


def _simulate(manager, steps=20):
    for _ in range(steps):
        manager.update(1 / 60)


def _world_positions(bones):
    return {b.name: b.get_world_position() for b in bones}


def test_migrate_avatar_bone_positions_and_rotations():
    scene, bones, manager = _build_avatar()
    scene.update_world_matrix(force=True)
    before = _world_positions(bones)

    assert migrate_avatar(scene, manager).is_ok()
    manager.reset()

    for bone in bones:
        np.testing.assert_allclose(
            bone.get_world_position(), rotate_y180(before[bone.name]), atol=POSITION_TOLERANCE)
        np.testing.assert_allclose(bone.quaternion, quat_identity(), atol=1e-9)


def test_spring_bone_axes_turn_with_avatar():
    scene, _, manager = _build_avatar()
    axes_before = [j.world_bone_axis() for j in manager.joints]
    _simulate(manager)

    assert migrate_avatar(scene, manager).is_ok()
    manager.reset()

    for joint, before in zip(manager.joints, axes_before):
        after = joint.world_bone_axis()
        assert np.linalg.norm(after - rotate_y180(before)) < AXIS_TOLERANCE


def test_virtual_tail_created_for_leaf_joint():
    scene, bones, manager = _build_avatar()
    assert migrate_avatar(scene, manager).is_ok()
    tail = manager.joints[1].child
    assert tail is not None
    assert tail.name == "hair_b" + VIRTUAL_TAIL_SUFFIX
    assert tail.parent is bones[3]
    # Explicit children are left alone
    assert manager.joints[0].child is bones[3]


def test_virtual_tails_dropped_when_configured():
    scene, bones, manager = _build_avatar()
    config = MigrationConfig(keep_virtual_tails=False)
    assert migrate_avatar(scene, manager, config).is_ok()
    assert manager.joints[1].child is None
    assert scene.find("hair_b" + VIRTUAL_TAIL_SUFFIX) is None


def test_gravity_and_colliders_rotated():
    scene, _, manager = _build_avatar()
    gravity = [j.settings.gravity_dir.copy() for j in manager.joints]
    assert migrate_avatar(scene, manager).is_ok()
    for joint, before in zip(manager.joints, gravity):
        np.testing.assert_allclose(joint.settings.gravity_dir, rotate_y180(before))
    face, back = manager.colliders
    np.testing.assert_allclose(face.shape.offset, [0, 0, -0.1])
    np.testing.assert_allclose(back.shape.offset, [0, 0, 0.05])
    np.testing.assert_allclose(back.shape.tail, [0, 0.2, 0.05])


def test_collider_world_centers_follow_law():
    scene, _, manager = _build_avatar()
    face = manager.colliders[0]
    scene.update_world_matrix(force=True)
    center = face.local_to_world(face.shape.offset)
    assert migrate_avatar(scene, manager).is_ok()
    manager.reset()
    np.testing.assert_allclose(
        face.local_to_world(face.shape.offset), rotate_y180(center), atol=POSITION_TOLERANCE)


def _collider_points(collider):
    points = [collider.local_to_world(collider.shape.offset)]
    if collider.shape.type == "capsule":
        points.append(collider.local_to_world(collider.shape.tail))
    return points


@pytest.mark.parametrize("head_rotation,face_position", [
    (None, (0, 0, 0.2)),
    (quat_from_euler(0.0, 0.7, 0.0), None),
    (quat_from_euler(0.3, -0.9, 0.2), (0.01, 0.05, 0.2)),
])
def test_collider_geometry_turns_with_owning_bone(head_rotation, face_position):
    scene, _, manager = _build_avatar(head_rotation=head_rotation, face_position=face_position)
    scene.update_world_matrix(force=True)
    before = [_collider_points(c) for c in manager.colliders]

    assert migrate_avatar(scene, manager).is_ok()

    for collider, points in zip(manager.colliders, before):
        for after, point in zip(_collider_points(collider), points):
            np.testing.assert_allclose(after, rotate_y180(point), atol=POSITION_TOLERANCE)


def test_collider_node_offset_lands_behind_head():
    scene, _, manager = _build_avatar(face_position=(0, 0, 0.2))
    face = manager.colliders[0]
    assert migrate_avatar(scene, manager).is_ok()
    np.testing.assert_allclose(
        face.local_to_world(face.shape.offset), [0, 1.5, -0.32], atol=POSITION_TOLERANCE)
    np.testing.assert_allclose(face.quaternion, quat_identity(), atol=1e-9)


def test_collider_under_rotated_head_keeps_world_centre():
    scene, bones, manager = _build_avatar(head_rotation=quat_from_euler(0.0, 0.7, 0.0))
    face = manager.colliders[0]
    assert migrate_avatar(scene, manager).is_ok()
    # Old centre: head at (0, 1.5, 0.02) plus (0, 0, 0.1) turned 0.7 rad about +Y
    expected = [-0.1 * np.sin(0.7), 1.5, -0.02 - 0.1 * np.cos(0.7)]
    np.testing.assert_allclose(face.local_to_world(face.shape.offset), expected, atol=POSITION_TOLERANCE)
    np.testing.assert_allclose(bones[1].quaternion, quat_identity(), atol=1e-9)



def test_simulation_state_restored():
    scene, _, manager = _build_avatar()
    _simulate(manager)
    tails = [j.current_tail.copy() for j in manager.joints]
    prevs = [j.prev_tail.copy() for j in manager.joints]

    assert migrate_avatar(scene, manager).is_ok()

    for joint, tail, prev in zip(manager.joints, tails, prevs):
        np.testing.assert_allclose(joint.current_tail, rotate_y180(tail), atol=1e-12)
        np.testing.assert_allclose(joint.prev_tail, rotate_y180(prev), atol=1e-12)


def test_simulation_state_dropped_when_configured():
    scene, _, manager = _build_avatar()
    _simulate(manager)
    config = MigrationConfig(restore_dynamic_state=False)
    assert migrate_avatar(scene, manager, config).is_ok()
    for joint in manager.joints:
        np.testing.assert_allclose(joint.current_tail, joint.prev_tail)


def test_no_skinned_mesh_leaves_simulation_untouched():
    scene, bones, manager = _build_avatar(with_mesh=False)
    _simulate(manager)
    tails = [j.current_tail.copy() for j in manager.joints]

    result = migrate_avatar(scene, manager)

    assert result.is_err()
    assert result.unwrap_err().kind is ErrorKind.ASSET_ERROR
    assert "SkinnedMesh" in result.unwrap_err().message
    for joint, tail in zip(manager.joints, tails):
        np.testing.assert_allclose(joint.current_tail, tail, atol=1e-12)
    assert manager.joints[1].child is None


@pytest.mark.parametrize("restore", [True, False])
def test_failed_precheck_leaves_simulation_untouched(restore):
    scene, _, manager = _build_avatar(with_mesh=False)
    _simulate(manager)
    tails = [j.current_tail.copy() for j in manager.joints]
    prevs = [j.prev_tail.copy() for j in manager.joints]
    resets = [j.reset_count for j in manager.joints]

    result = migrate_avatar(scene, manager, MigrationConfig(restore_dynamic_state=restore))

    assert result.is_err()
    for joint, tail, prev, count in zip(manager.joints, tails, prevs, resets):
        np.testing.assert_array_equal(joint.current_tail, tail)
        np.testing.assert_array_equal(joint.prev_tail, prev)
        assert joint.reset_count == count



def test_detached_collider_rejected_before_mutation():
    scene, bones, manager = _build_avatar()
    loose = SpringBoneCollider(ColliderShapeSphere(offset=(0, 0, 0.3), radius=0.1), name="loose")
    scene.add(loose)
    manager.add_collider(loose)
    scene.update_world_matrix(force=True)
    before = _world_positions(bones)

    result = migrate_avatar(scene, manager)

    assert result.is_err()
    assert "'loose'" in result.unwrap_err().message
    np.testing.assert_allclose(loose.shape.offset, [0, 0, 0.3])
    for bone in bones:
        np.testing.assert_array_equal(bone.get_world_position(), before[bone.name])


def test_without_manager():
    scene, bones, _ = _build_avatar()
    scene.update_world_matrix(force=True)
    before = _world_positions(bones)
    assert migrate_avatar(scene).is_ok()
    for bone in bones:
        np.testing.assert_allclose(
            bone.get_world_position(), rotate_y180(before[bone.name]), atol=POSITION_TOLERANCE)


@pytest.mark.parametrize("steps", [0, 1, 45])
def test_axis_property_across_simulation_lengths(steps):
    scene, _, manager = _build_avatar()
    axes_before = [j.world_bone_axis() for j in manager.joints]
    _simulate(manager, steps)
    assert migrate_avatar(scene, manager).is_ok()
    manager.reset()
    for joint, before in zip(manager.joints, axes_before):
        assert np.linalg.norm(joint.world_bone_axis() - rotate_y180(before)) < AXIS_TOLERANCE
