"""Typed success/failure results for migration steps.

Callers branch on ``result.is_ok()`` instead of catching exceptions::

    result = migrate_skeleton(scene)
    if result.is_err():
        logger.error(result.error.message)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar, Union

T = TypeVar("T")


class ErrorKind(Enum):
    ASSET_ERROR = "ASSET_ERROR"  # Required structural element missing from the scene graph


class ResultError(RuntimeError):
    """Raised when unwrapping the wrong side of a result."""


@dataclass(frozen=True)
class MigrationError:
    kind: ErrorKind
    message: str

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T = None

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value

    def unwrap_err(self) -> MigrationError:
        raise ResultError("Called unwrap_err() on an Ok result")


@dataclass(frozen=True)
class Err:
    error: MigrationError

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> Any:
        raise ResultError(f"Called unwrap() on an Err result ({self.error})")

    def unwrap_err(self) -> MigrationError:
        return self.error


MigrationResult = Union[Ok[None], Err]


def asset_error(message: str) -> Err:
    """Build an ``Err`` for a missing or malformed structural element."""
    return Err(MigrationError(ErrorKind.ASSET_ERROR, message))
