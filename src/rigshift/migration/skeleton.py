"""Migrate a skinned skeleton between the two avatar coordinate conventions.

The source convention faces -Z, the target faces +Z, so the whole rig is
turned 180° about +Y.  The target convention also requires rest-pose
bones to carry no rotation, so the turn is baked into bone positions and
every local rotation is reset to identity.

Steps, per distinct skeleton:
1. Record each bone's world position
2. Rotate the recorded positions with the Y-180 law
3. Find the hierarchy root
4. Walk the tree pre-order, deriving local positions from the parent's
   finalized world matrix (rotation reset, scale kept)
5. Recompute the inverse bind matrices against the new rest pose

Raw vertex buffers are rotated once per mesh, even when meshes share a
skeleton.
"""

import logging
from typing import Iterable, Optional, Union

import numpy as np

from rigshift.core.config_loader import MigrationDebugOptions
from rigshift.core.math_utils import Vec3, mat4_inverse, quat_identity, transform_point
from rigshift.core.result import Err, MigrationResult, Ok, asset_error
from rigshift.core.scene_graph import Bone, SceneNode, update_world_matrices
from rigshift.core.skeleton import Skeleton, SkinnedMesh
from rigshift.migration.coordinate import Y180_MATRIX, rotate_y180, rotate_y180_buffer

logger = logging.getLogger(__name__)


def find_skinned_meshes(root_node: SceneNode) -> list[SkinnedMesh]:
    """Collect skinned meshes under ``root_node`` in pre-order."""
    return [
        node for node in root_node.iter_preorder()
        if node.is_mesh and getattr(node, "is_skinned", False)
    ]


def rotate_vertex_positions(mesh: SkinnedMesh) -> None:
    """Rotate the raw (pre-skin) vertex positions of ``mesh`` in place.

    Normals are left as they are.
    """
    geom = mesh.geometry
    if geom is None or geom.positions is None or len(geom.positions) == 0:
        return
    rotate_y180_buffer(geom.positions)
    geom.needs_update = True


def record_bone_world_positions(skeleton: Skeleton) -> dict[Bone, Vec3]:
    """Snapshot every bone's world position.

    The returned vectors are copies, so rebuilding the bones afterwards does
    not alter the snapshot.
    """
    update_world_matrices(skeleton.bones)

    positions: dict[Bone, Vec3] = {}
    for bone in skeleton.bones:
        positions[bone] = bone.get_world_position()
    return positions


def rotate_bone_positions(positions: dict[Bone, Vec3]) -> dict[Bone, Vec3]:
    """Apply the Y-180 law to each recorded position (new mapping)."""
    return {bone: rotate_y180(pos) for bone, pos in positions.items()}


def find_root_bone(bones: Union[Skeleton, Iterable[Bone]]) -> Optional[Bone]:
    """Return the first bone whose parent is missing or is not a bone.

    A disjoint or malformed hierarchy may have several such bones; the first
    one in list order wins.  Falls back to the first bone when every bone has
    a bone parent, and to None for an empty list.
    """
    if isinstance(bones, Skeleton):
        bones = bones.bones
    bones = list(bones)
    for bone in bones:
        if bone.parent is None or not bone.parent.is_bone:
            return bone
    return bones[0] if bones else None


def _turn_attachment(node: SceneNode, parent_world: np.ndarray) -> None:
    """Carry a non-bone child of a rebuilt bone through the Y-180 turn.

    The node's new world matrix is ``Y180 · W · Y180`` (``W`` its world
    matrix before the rebuild), so its own rotation absorbs whatever the
    bone's old rest rotation contributed.  Non-bone descendants get the same
    conjugation on their local matrices; bones below are left to their own
    walk.  Meshes are skipped because their buffers are not turned here.
    """
    node.apply_local_matrix(
        mat4_inverse(parent_world) @ Y180_MATRIX @ node.world_matrix @ Y180_MATRIX)
    stack = [child for child in node.children if not child.is_bone and not child.is_mesh]
    while stack:
        child = stack.pop()
        child.apply_local_matrix(Y180_MATRIX @ child.local_matrix @ Y180_MATRIX)
        stack.extend(c for c in child.children if not c.is_bone and not c.is_mesh)


def rebuild_bone_transforms(root_bone: Bone, target_positions: dict[Bone, Vec3]) -> None:
    """Rewrite local transforms so world positions match ``target_positions``.

    Strict pre-order: each bone's world matrix is finalized before its
    children derive ``local = inverse(parent_world) · target`` from it.
    Local rotation becomes identity, local scale is kept.  Bones missing from
    ``target_positions`` keep their local transform.

    Non-bone children such as colliders keep their world geometry under the
    Y-180 law: their local transform is rewritten against the bone's new
    world matrix.
    """
    # Fresh world matrices for the whole subtree; attachments read theirs below
    root_bone.update_parent_chain()

    stack: list[tuple[Bone, np.ndarray]] = [(root_bone, root_bone.parent_world_matrix().copy())]
    while stack:
        bone, parent_world = stack.pop()

        target = target_positions.get(bone)
        if target is not None:
            local_pos = transform_point(mat4_inverse(parent_world), target)
            bone.set_position(*local_pos)
            bone.set_quaternion(quat_identity())

        bone.update_local_matrix()
        bone.world_matrix = parent_world @ bone.local_matrix

        if target is not None:
            for child in bone.children:
                if not child.is_bone and not child.is_mesh:
                    _turn_attachment(child, bone.world_matrix)

        bone_children = [child for child in bone.children if child.is_bone]
        for child in reversed(bone_children):
            stack.append((child, bone.world_matrix))

    root_bone.update_world_matrix(force=True)


def recalculate_bone_inverses(skeleton: Skeleton) -> None:
    """Overwrite each inverse bind matrix with inverse(bone world matrix)."""
    update_world_matrices(skeleton.bones)
    skeleton.calculate_inverses()


def collect_skeletons(root_node: SceneNode) -> Union[Ok[list[Skeleton]], Err]:
    """Distinct skeletons bound by skinned meshes under ``root_node``.

    Read-only.  Returns ``Err`` (ASSET_ERROR) when there is no skinned mesh,
    a mesh has no skeleton, or a skeleton has no root bone.
    """
    skinned_meshes = find_skinned_meshes(root_node)
    if not skinned_meshes:
        return asset_error(f"No SkinnedMesh found under '{root_node.name}'")

    # Group by skeleton identity so shared bones are turned exactly once
    skeletons: list[Skeleton] = []
    seen: set[int] = set()
    for mesh in skinned_meshes:
        skeleton = mesh.skeleton
        if skeleton is None:
            return asset_error(f"SkinnedMesh '{mesh.name}' has no skeleton")
        if id(skeleton) in seen:
            continue
        if find_root_bone(skeleton) is None:
            return asset_error(f"No root bone found in skeleton of '{mesh.name}'")
        seen.add(id(skeleton))
        skeletons.append(skeleton)
    return Ok(skeletons)


def migrate_skeleton(
    root_node: SceneNode,
    debug: Optional[MigrationDebugOptions] = None,
) -> MigrationResult:
    """Turn every skinned skeleton under ``root_node`` 180° about +Y.

    Returns ``Err`` (ASSET_ERROR) when no skinned mesh exists or a skeleton
    has no root bone; otherwise mutates bones, inverse bind matrices and
    vertex buffers in place and returns ``Ok(None)``.
    """
    debug = debug or MigrationDebugOptions()

    skinned_meshes = find_skinned_meshes(root_node)
    other_meshes = [
        node.name for node in root_node.iter_preorder()
        if node.is_mesh and not getattr(node, "is_skinned", False)
    ]
    logger.debug("Skinned meshes: %s", [m.name for m in skinned_meshes])
    logger.debug("Other meshes (not skinned): %s", other_meshes)

    collected = collect_skeletons(root_node)
    if collected.is_err():
        return collected
    skeletons = collected.unwrap()

    if debug.skip_vertex_rotation:
        logger.warning("Skipping vertex rotation (debug)")
    else:
        for mesh in skinned_meshes:
            rotate_vertex_positions(mesh)

    if debug.skip_bone_transform:
        logger.warning("Skipping bone transform rebuild (debug)")
    else:
        for skeleton in skeletons:
            original = record_bone_world_positions(skeleton)
            rotated = rotate_bone_positions(original)
            root_bone = find_root_bone(skeleton)
            rebuild_bone_transforms(root_bone, rotated)
            # Disjoint bone sets under the same skeleton get their own walk
            for bone in skeleton.bones:
                if bone is not root_bone and (bone.parent is None or not bone.parent.is_bone):
                    rebuild_bone_transforms(bone, rotated)
            logger.info("Migrated skeleton rooted at '%s' (%d bones)",
                        root_bone.name, len(skeleton.bones))

    if debug.skip_bind_matrix:
        logger.warning("Skipping inverse bind matrix recalculation (debug)")
    else:
        for skeleton in skeletons:
            recalculate_bone_inverses(skeleton)

    logger.info("Skeleton migration complete: %d meshes, %d skeletons",
                len(skinned_meshes), len(skeletons))
    return Ok(None)
