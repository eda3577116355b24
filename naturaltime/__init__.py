"""Natural time: a solstice-anchored solar/lunar calendar with a 360° day."""

from .caches import BoundedCache, QueryCaches
from .calendar import NaturalDate
from .context import NaturalTime
from .errors import EphemerisError, ErrorKind, InternalError, NaturalTimeError, RangeError, Result, TimeDomainError
from .events import MoonEvents, MoonPosition, Mustaches, SunEvents, SunPosition

__all__ = [
    "NaturalTime",
    "NaturalDate",
    "SunEvents",
    "SunPosition",
    "MoonPosition",
    "MoonEvents",
    "Mustaches",
    "BoundedCache",
    "QueryCaches",
    "Result",
    "ErrorKind",
    "NaturalTimeError",
    "RangeError",
    "TimeDomainError",
    "InternalError",
    "EphemerisError",
]
