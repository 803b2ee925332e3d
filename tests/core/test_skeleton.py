"""Tests for skeletons, skinned meshes and buffer geometry."""

import numpy as np
import pytest

from rigshift.core.math_utils import mat4_identity, quat_from_axis_angle, vec3
from rigshift.core.mesh import BufferGeometry
from rigshift.core.scene_graph import Bone, SceneNode
from rigshift.core.skeleton import Skeleton, SkinnedMesh


def _make_arm():
    root = SceneNode(name="root")
    shoulder = Bone(name="shoulder")
    elbow = Bone(name="elbow")
    root.add(shoulder)
    shoulder.add(elbow)
    shoulder.set_position(0, 1, 0)
    elbow.set_position(1, 0, 0)
    root.update_world_matrix(force=True)
    return root, shoulder, elbow


def _make_skinned(root, bones):
    geom = BufferGeometry(
        positions=np.array([0, 1, 0, 1, 1, 0, 2, 1, 0], dtype=np.float32),
        skin_indices=np.array([[0, 0, 0, 0], [0, 1, 0, 0], [1, 0, 0, 0]]),
        skin_weights=np.array([[1, 0, 0, 0], [0.5, 0.5, 0, 0], [1, 0, 0, 0]]),
    )
    mesh = SkinnedMesh(name="arm_mesh", geometry=geom)
    root.add(mesh)
    mesh.bind(Skeleton(bones))
    return mesh


def test_geometry_layout():
    geom = BufferGeometry(positions=[[0, 0, 0], [1, 2, 3]], skin_indices=[0, 1, 0, 0, 1, 0, 0, 0])
    assert geom.vertex_count == 2
    assert geom.positions.dtype == np.float32
    assert geom.skin_indices.shape == (2, 4)
    assert not geom.has_skin
    np.testing.assert_array_equal(geom.get_position(1), [1, 2, 3])


def test_geometry_clone_is_deep():
    geom = BufferGeometry(positions=np.zeros(6, dtype=np.float32))
    copy = geom.clone()
    copy.set_position(0, 1, 1, 1)
    np.testing.assert_array_equal(geom.get_position(0), [0, 0, 0])


def test_skeleton_inverses_match_world():
    _, shoulder, elbow = _make_arm()
    skeleton = Skeleton([shoulder, elbow])
    assert len(skeleton) == 2
    for bone, inv in zip(skeleton.bones, skeleton.bone_inverses):
        np.testing.assert_array_almost_equal(bone.world_matrix @ inv, np.eye(4))


def test_skeleton_rejects_mismatched_inverses():
    _, shoulder, elbow = _make_arm()
    with pytest.raises(ValueError, match="inverse bind"):
        Skeleton([shoulder, elbow], [mat4_identity()])


def test_skeleton_lookup():
    _, shoulder, elbow = _make_arm()
    skeleton = Skeleton([shoulder, elbow])
    assert skeleton.get_bone_by_name("elbow") is elbow
    assert skeleton.get_bone_by_name("wrist") is None
    assert skeleton.index_of(elbow) == 1
    assert skeleton.index_of(Bone(name="elbow")) == -1
    assert skeleton.parent_indices() == [-1, 0]


def test_bone_matrices_identity_at_bind():
    _, shoulder, elbow = _make_arm()
    mats = Skeleton([shoulder, elbow]).bone_matrices()
    assert mats.shape == (2, 4, 4)
    np.testing.assert_array_almost_equal(mats, np.stack([np.eye(4)] * 2))


def test_skinned_mesh_rest_pose_matches_raw_buffer():
    root, shoulder, elbow = _make_arm()
    mesh = _make_skinned(root, [shoulder, elbow])
    assert mesh.is_skinned
    np.testing.assert_array_almost_equal(
        mesh.compute_skinned_positions(), mesh.geometry.positions_3d())


def test_skinned_mesh_follows_bone():
    root, shoulder, elbow = _make_arm()
    mesh = _make_skinned(root, [shoulder, elbow])
    shoulder.set_quaternion(quat_from_axis_angle(vec3(0, 0, 1), np.pi / 2))
    root.update_world_matrix()
    skinned = mesh.compute_skinned_positions()
    # Vertex fully weighted to the elbow swings from (2,1,0) to (0,3,0)
    np.testing.assert_array_almost_equal(skinned[2], [0, 3, 0])
