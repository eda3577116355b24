"""Closed error set and the tagged result returned by public operations."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Generic, Optional, Type, TypeVar

__all__ = [
    "ErrorKind",
    "NaturalTimeError",
    "RangeError",
    "TimeDomainError",
    "InternalError",
    "EphemerisError",
    "Result",
]

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Enumeration of failure kinds a public operation can report."""

    range = "range"
    time = "time"
    internal = "internal"


class NaturalTimeError(Exception):
    """Base error for natural time computations."""

    kind: ErrorKind = ErrorKind.internal


class RangeError(NaturalTimeError):
    """Raised when a longitude, latitude or output length is out of its domain."""

    kind = ErrorKind.range


class TimeDomainError(NaturalTimeError):
    """Raised for non-positive timestamps."""

    kind = ErrorKind.time


class InternalError(NaturalTimeError):
    """Raised when an ephemeris query fails or an input struct is invalid."""

    kind = ErrorKind.internal


class EphemerisError(RuntimeError):
    """Raised when ephemeris loading or computation fails."""


_ERRORS: Dict[ErrorKind, Type[NaturalTimeError]] = {
    ErrorKind.range: RangeError,
    ErrorKind.time: TimeDomainError,
    ErrorKind.internal: InternalError,
}


@dataclass(frozen=True)
class Result(Generic[T]):
    """Either a value or an :class:`ErrorKind` with a message, never both."""

    value: Optional[T] = None
    error: Optional[ErrorKind] = None
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, exc: NaturalTimeError) -> "Result[T]":
        return cls(error=exc.kind, message=str(exc) or exc.kind.value)

    def unwrap(self) -> T:
        """Return the value, raising the matching :class:`NaturalTimeError` on failure."""

        if self.error is not None:
            raise _ERRORS[self.error](self.message or self.error.value)
        return self.value  # type: ignore[return-value]
