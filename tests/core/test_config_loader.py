"""Tests for migration config loading."""

import json

import pytest

from rigshift.constants import CONFIG_DIR, MIGRATION_CONFIG_FILE, VIRTUAL_TAIL_LENGTH
from rigshift.core.config_loader import (
    MigrationConfig, MigrationDebugOptions, load_config, load_migration_config,
)


def test_defaults():
    config = MigrationConfig()
    assert config.virtual_tail_length == VIRTUAL_TAIL_LENGTH
    assert config.keep_virtual_tails
    assert config.restore_dynamic_state
    assert config.debug == MigrationDebugOptions()


def test_from_dict():
    config = MigrationConfig.from_dict({
        "virtual_tail_length": 0.1,
        "restore_dynamic_state": False,
        "debug": {"skip_bind_matrix": True},
    })
    assert config.virtual_tail_length == 0.1
    assert not config.restore_dynamic_state
    assert config.debug.skip_bind_matrix
    assert not config.debug.skip_vertex_rotation


def test_from_dict_rejects_unknown_keys():
    with pytest.raises(ValueError, match="tail_lenght"):
        MigrationConfig.from_dict({"tail_lenght": 0.1})
    with pytest.raises(ValueError, match="debug"):
        MigrationConfig.from_dict({"debug": {"skip_everything": True}})


def test_load_migration_config_from_path(tmp_path):
    path = tmp_path / "custom.json"
    path.write_text(json.dumps({"keep_virtual_tails": False}))
    config = load_migration_config(path)
    assert not config.keep_virtual_tails


@pytest.mark.skipif(not (CONFIG_DIR / MIGRATION_CONFIG_FILE).is_file(),
                    reason="bundled config not available")
def test_bundled_config_matches_defaults():
    assert load_migration_config() == MigrationConfig()
    assert "debug" in load_config(MIGRATION_CONFIG_FILE)
