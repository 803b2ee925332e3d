"""Tests for Ok/Err migration results."""

import pytest

from rigshift.core.result import (
    Err, ErrorKind, MigrationError, Ok, ResultError, asset_error,
)


def test_ok():
    result = Ok(None)
    assert result.is_ok()
    assert not result.is_err()
    assert result.unwrap() is None
    with pytest.raises(ResultError):
        result.unwrap_err()


def test_err():
    result = asset_error("No SkinnedMesh found under 'scene'")
    assert isinstance(result, Err)
    assert result.is_err()
    assert not result.is_ok()
    assert result.error.kind is ErrorKind.ASSET_ERROR
    assert result.unwrap_err().message == "No SkinnedMesh found under 'scene'"
    with pytest.raises(ResultError, match="ASSET_ERROR"):
        result.unwrap()


def test_error_str():
    error = MigrationError(ErrorKind.ASSET_ERROR, "missing bone")
    assert str(error) == "ASSET_ERROR: missing bone"


def test_results_are_immutable():
    result = Ok(1)
    with pytest.raises(AttributeError):
        result.value = 2
