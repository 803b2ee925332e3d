"""JSON config file loading utilities."""

import json
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Optional

from rigshift.constants import CONFIG_DIR, MIGRATION_CONFIG_FILE, VIRTUAL_TAIL_LENGTH


@dataclass
class MigrationDebugOptions:
    """Switches that skip individual migration stages (debugging only)."""
    skip_vertex_rotation: bool = False
    skip_bone_transform: bool = False
    skip_bind_matrix: bool = False


@dataclass
class MigrationConfig:
    """Tunables for a full avatar migration."""
    virtual_tail_length: float = VIRTUAL_TAIL_LENGTH
    # Keep synthesized tail bones in the hierarchy (exporters need them)
    keep_virtual_tails: bool = True
    # Carry mid-simulation spring-bone state across the forced reset
    restore_dynamic_state: bool = True
    debug: MigrationDebugOptions = field(default_factory=MigrationDebugOptions)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MigrationConfig":
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown migration config keys: {sorted(unknown)}")

        values = dict(data)
        debug = values.pop("debug", None) or {}
        debug_known = {f.name for f in fields(MigrationDebugOptions)}
        bad_debug = set(debug) - debug_known
        if bad_debug:
            raise ValueError(f"Unknown migration debug keys: {sorted(bad_debug)}")
        return cls(debug=MigrationDebugOptions(**debug), **values)


def load_json(path: Path) -> Any:
    """Load and return parsed JSON from a file."""
    with open(path) as f:
        return json.load(f)


def load_config(name: str) -> Any:
    """Load a config file from assets/config/."""
    return load_json(CONFIG_DIR / name)


def load_migration_config(path: Optional[Path] = None) -> MigrationConfig:
    """Load migration settings from ``path`` or assets/config/migration.json.

    Falls back to built-in defaults when the bundled file is not present
    (e.g. a wheel install without the assets directory).
    """
    if path is None:
        path = CONFIG_DIR / MIGRATION_CONFIG_FILE
        if not path.is_file():
            return MigrationConfig()
    return MigrationConfig.from_dict(load_json(Path(path)))
