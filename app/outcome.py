"""Explicit success/failure values returned by catalog adapters."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar, Union

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Reasons a catalog call can fail to produce a value."""

    NETWORK_FAILURE = "network_failure"
    BAD_STATUS = "bad_status"
    NOT_FOUND = "not_found"
    PARSE_FAILURE = "parse_failure"
    NO_MATCH = "no_match"
    STALE_DATA_RETAINED = "stale_data_retained"


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    value: T

    @property
    def is_ok(self) -> bool:
        return True

    def unwrap_or(self, default: T) -> T:
        return self.value


@dataclass(frozen=True, slots=True)
class Err:
    kind: ErrorKind
    detail: str = ""

    @property
    def is_ok(self) -> bool:
        return False

    def unwrap_or(self, default: T) -> T:
        return default


Outcome = Union[Ok[T], Err]
