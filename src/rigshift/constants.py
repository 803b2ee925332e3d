"""Shared constants and paths for rigshift."""

from pathlib import Path

# Project paths
PROJECT_ROOT = Path(__file__).parent.parent.parent
ASSETS_DIR = PROJECT_ROOT / "assets"
CONFIG_DIR = ASSETS_DIR / "config"
MIGRATION_CONFIG_FILE = "migration.json"

# Implicit spring-bone tail length (metres) when a joint has no child bone
VIRTUAL_TAIL_LENGTH = 0.07
VIRTUAL_TAIL_SUFFIX = "_tail"

# Verification tolerances
POSITION_TOLERANCE = 1e-4
AXIS_TOLERANCE = 0.01

# Spring-bone defaults
DEFAULT_GRAVITY_DIR = (0.0, -1.0, 0.0)
DEFAULT_STIFFNESS = 1.0
DEFAULT_DRAG_FORCE = 0.4
MAX_DELTA_TIME = 0.1  # Clamp dt to avoid large jumps
