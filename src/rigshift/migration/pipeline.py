"""Full avatar migration: skeleton plus spring-bone physics.

Order matters:
1. Reject colliders that are not attached under a bone, and scenes without
   a migratable skinned skeleton, before anything is touched
2. Record running simulation state, then reset joints to the rest pose
3. Record the implicit tail direction of each leaf joint
4. Migrate every skinned skeleton (bones, vertices, inverse binds)
5. Synthesize tail bones for leaf joints
6. Rotate gravity directions and collider shapes
7. ``set_init_state()`` and ``reset()`` against the new rest pose
8. Restore the recorded simulation state (never before step 7)
"""

import logging
from typing import Optional

from rigshift.core.config_loader import MigrationConfig
from rigshift.core.result import MigrationResult, Ok, asset_error
from rigshift.core.scene_graph import SceneNode
from rigshift.migration.skeleton import collect_skeletons, migrate_skeleton
from rigshift.migration.springbone import (
    find_detached_colliders, rotate_collider_offsets, rotate_gravity_directions,
)
from rigshift.migration.springbone_state import (
    SpringBoneState, record_spring_bone_state, restore_spring_bone_state,
)
from rigshift.migration.virtual_tail import (
    cleanup_virtual_tail_nodes, create_virtual_tail_nodes, record_spring_bone_directions,
)
from rigshift.springbone.manager import SpringBoneManager

logger = logging.getLogger(__name__)


def migrate_avatar(
    root_node: SceneNode,
    manager: Optional[SpringBoneManager] = None,
    config: Optional[MigrationConfig] = None,
) -> MigrationResult:
    """Migrate the skeleton under ``root_node`` and co-migrate its physics.

    Returns an ASSET_ERROR when a collider is detached from the hierarchy
    or the scene holds no migratable skinned skeleton.  Both are checked
    before the simulation or the skeleton is touched.
    """
    config = config or MigrationConfig()

    if manager is not None:
        detached = find_detached_colliders(manager)
        if detached:
            names = ", ".join(repr(c.name) for c in detached)
            return asset_error(f"Colliders not attached under a bone: {names}")

    precheck = collect_skeletons(root_node)
    if precheck.is_err():
        return precheck

    state = SpringBoneState()
    directions = {}
    if manager is not None:
        if config.restore_dynamic_state:
            state = record_spring_bone_state(manager)
        # Migrate the rest pose, not a simulated one
        manager.reset()
        directions = record_spring_bone_directions(manager)

    result = migrate_skeleton(root_node, debug=config.debug)
    if result.is_err():
        return result

    if manager is None:
        return Ok(None)

    tails = create_virtual_tail_nodes(
        manager, directions, length=config.virtual_tail_length)
    rotate_gravity_directions(manager)
    rotate_collider_offsets(manager)

    manager.set_init_state()
    manager.reset()

    if len(state):
        restored = restore_spring_bone_state(manager, state)
        logger.info("Restored simulation state of %d joints", restored)

    if not config.keep_virtual_tails:
        cleanup_virtual_tail_nodes(tails, manager)

    logger.info("Avatar migration complete (%d joints, %d colliders)",
                len(manager.joints), len(manager.colliders))
    return Ok(None)
