"""Caller-owned session exposing the public natural time operations.

Every method validates its inputs, runs the computation and returns a
:class:`~naturaltime.errors.Result`; nothing raises across this boundary.
A session is not thread-safe: give each thread its own, or serialize calls.
"""

from __future__ import annotations

import functools
import json
import logging
from typing import Callable, Optional, TypeVar

from . import calendar, events, formatting
from .caches import QueryCaches
from .calendar import NaturalDate
from .errors import EphemerisError, InternalError, NaturalTimeError, Result
from .events import MoonEvents, MoonPosition, Mustaches, SunEvents, SunPosition
from .interfaces import Ephemeris

__all__ = ["NaturalTime"]

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


def _as_result(method: Callable[..., T]) -> Callable[..., Result[T]]:
    @functools.wraps(method)
    def wrapper(*args, **kwargs) -> Result[T]:
        try:
            return Result.success(method(*args, **kwargs))
        except NaturalTimeError as exc:
            return Result.failure(exc)
        except EphemerisError as exc:
            LOGGER.error(json.dumps({"event": "ephemeris_failed", "operation": method.__name__, "error": str(exc)}))
            return Result.failure(InternalError(str(exc)))

    return wrapper


class NaturalTime:
    """One ephemeris engine plus the query caches in front of it."""

    def __init__(self, ephemeris: Ephemeris, caches: Optional[QueryCaches] = None):
        self.ephemeris = ephemeris
        self.caches = caches if caches is not None else QueryCaches()

    @_as_result
    def natural_date(self, unix_ms_utc: int, longitude: float) -> NaturalDate:
        return calendar.make_natural_date(unix_ms_utc, longitude, self.ephemeris, self.caches)

    @_as_result
    def time_of_event(self, nd: NaturalDate, event_ms_utc: int) -> float:
        return calendar.time_of_event(nd, event_ms_utc)

    @_as_result
    def sun_events(self, nd: NaturalDate, latitude: float) -> SunEvents:
        return events.sun_events(nd, latitude, self.ephemeris, self.caches)

    @_as_result
    def sun_position(self, nd: NaturalDate, latitude: float) -> SunPosition:
        return events.sun_position(nd, latitude, self.ephemeris)

    @_as_result
    def moon_position(self, nd: NaturalDate, latitude: float) -> MoonPosition:
        return events.moon_position(nd, latitude, self.ephemeris)

    @_as_result
    def moon_events(self, nd: NaturalDate, latitude: float) -> MoonEvents:
        return events.moon_events(nd, latitude, self.ephemeris)

    @_as_result
    def mustaches(self, nd: NaturalDate, latitude: float) -> Mustaches:
        return events.mustaches(nd, latitude, self.ephemeris, self.caches)

    @_as_result
    def format_string(
        self,
        nd: NaturalDate,
        time_decimals: int = 2,
        time_rounding: float = 0.01,
        max_length: Optional[int] = None,
    ) -> str:
        return formatting.full_string(nd, time_decimals, time_rounding, max_length=max_length)

    @_as_result
    def format_date_string(
        self, nd: NaturalDate, separator: str = formatting.DEFAULT_SEPARATOR, max_length: Optional[int] = None
    ) -> str:
        return formatting.date_string(nd, separator, max_length)

    @_as_result
    def format_time_string(
        self, nd: NaturalDate, decimals: int = 2, rounding: float = 0.01, max_length: Optional[int] = None
    ) -> str:
        return formatting.time_string(nd, decimals, rounding, max_length)

    @_as_result
    def format_longitude_string(
        self, nd: NaturalDate, decimals: int = 1, max_length: Optional[int] = None
    ) -> str:
        if not isinstance(nd, NaturalDate):
            raise InternalError("natural date is required")
        return formatting.longitude_string(nd.longitude, decimals, max_length)

    def reset_caches(self) -> None:
        """Invalidate every cache and the engine's own memoized state."""

        self.ephemeris.reset()
        self.caches.clear()
        LOGGER.info(json.dumps({"event": "caches_reset"}))
