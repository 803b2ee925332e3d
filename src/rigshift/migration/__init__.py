"""Coordinate-convention migration of skinned skeletons and their spring-bone physics."""

from rigshift.migration.coordinate import rotate_y180
from rigshift.migration.pipeline import migrate_avatar
from rigshift.migration.skeleton import (
    collect_skeletons,
    find_root_bone,
    migrate_skeleton,
    rebuild_bone_transforms,
    recalculate_bone_inverses,
    record_bone_world_positions,
    rotate_bone_positions,
    rotate_vertex_positions,
)
from rigshift.migration.springbone import rotate_collider_offsets, rotate_gravity_directions
from rigshift.migration.springbone_state import (
    record_spring_bone_state,
    restore_spring_bone_state,
)
from rigshift.migration.virtual_tail import (
    cleanup_virtual_tail_nodes,
    create_virtual_tail_nodes,
    record_spring_bone_directions,
)

__all__ = [
    "cleanup_virtual_tail_nodes",
    "collect_skeletons",
    "create_virtual_tail_nodes",
    "find_root_bone",
    "migrate_avatar",
    "migrate_skeleton",
    "rebuild_bone_transforms",
    "recalculate_bone_inverses",
    "record_bone_world_positions",
    "record_spring_bone_directions",
    "record_spring_bone_state",
    "restore_spring_bone_state",
    "rotate_bone_positions",
    "rotate_collider_offsets",
    "rotate_gravity_directions",
    "rotate_vertex_positions",
    "rotate_y180",
]
