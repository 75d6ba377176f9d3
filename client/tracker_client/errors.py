"""Outcome types shared by the sync client and the store."""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"  # record absent or owned by someone else
    VALIDATION = "validation"  # request rejected before any write
    TRANSPORT = "transport"  # network down, timeout, or server error
    AUTHORIZATION = "authorization"  # missing or invalid credential


@dataclass(frozen=True)
class SyncResult(Generic[T]):
    """Either a value from the server or the kind of failure."""

    value: Optional[T] = None
    error: Optional[ErrorKind] = None
    status_code: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T, status_code: Optional[int] = None) -> "SyncResult[T]":
        return cls(value=value, status_code=status_code)

    @classmethod
    def failure(cls, error: ErrorKind, status_code: Optional[int] = None) -> "SyncResult[T]":
        return cls(error=error, status_code=status_code)


@dataclass(frozen=True)
class MutationResult:
    """What happened to a store operation.

    applied   -- the in-memory list changed (False only for no-ops)
    confirmed -- the server accepted the change
    warning   -- why the server did not confirm it
    """

    applied: bool
    confirmed: bool
    warning: Optional[ErrorKind] = None

    @classmethod
    def noop(cls) -> "MutationResult":
        return cls(applied=False, confirmed=False)

    @classmethod
    def from_sync(cls, result: SyncResult) -> "MutationResult":
        return cls(applied=True, confirmed=result.ok, warning=result.error)
