"""Solstice-anchored natural calendar: epoch resolution, dates and day degrees."""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Tuple

from .caches import QueryCaches
from .errors import InternalError, RangeError, TimeDomainError
from .interfaces import Ephemeris, Seasons

__all__ = [
    "MS_PER_DAY",
    "END_OF_ARTIFICIAL_TIME",
    "NaturalDate",
    "make_natural_date",
    "time_of_event",
    "year_start",
    "utc_year",
]

LOGGER = logging.getLogger(__name__)

MS_PER_DAY = 86_400_000
HALF_DAY_MS = MS_PER_DAY // 2
END_OF_ARTIFICIAL_TIME = 1_356_091_200_000  # 2012-12-21T12:00:00Z
DAYS_PER_MOON = 28
DAYS_PER_WEEK = 7
REGULAR_DAYS = 13 * DAYS_PER_MOON

_UNIX_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


@dataclass(frozen=True)
class NaturalDate:
    """A fully resolved natural date for one instant and longitude."""

    year: int
    moon: int
    week: int
    week_of_moon: int
    unix_time: int
    longitude: float
    day: int
    day_of_year: int
    day_of_moon: int
    day_of_week: int
    is_rainbow_day: bool
    time_deg: float
    year_start: int
    year_duration: int
    nadir: int


def utc_datetime(unix_ms: int) -> datetime:
    try:
        return _UNIX_EPOCH + timedelta(milliseconds=unix_ms)
    except OverflowError as exc:
        raise TimeDomainError(f"timestamp {unix_ms} is outside the UTC calendar range") from exc


def utc_year(unix_ms: int) -> int:
    return utc_datetime(unix_ms).year


def longitude_shift_ms(longitude: float) -> float:
    """Offset of the local natural day: zero at 180°, half a day at 0°."""

    return (-longitude + 180.0) * MS_PER_DAY / 360.0


def check_longitude(longitude: float) -> None:
    if not (-180.0 <= longitude <= 180.0):
        raise RangeError(f"longitude must be within [-180, 180], got {longitude}")


def check_latitude(latitude: float) -> None:
    if not (-90.0 <= latitude <= 90.0):
        raise RangeError(f"latitude must be within [-90, 90], got {latitude}")


def solstices(year: int, ephemeris: Ephemeris, caches: QueryCaches) -> Seasons:
    def compute() -> Seasons:
        LOGGER.debug(json.dumps({"event": "solstice_cache_miss", "year": year}))
        return ephemeris.seasons(year)

    return caches.solstices.get_or_compute(year, compute)


def _new_year_instant(solstice_ms: int) -> int:
    """12:00 UTC on the solstice date, or on the next date when the solstice is after noon."""

    ms_of_day = solstice_ms % MS_PER_DAY
    noon = solstice_ms - ms_of_day + HALF_DAY_MS
    if ms_of_day >= HALF_DAY_MS:
        noon += MS_PER_DAY
    return noon


def year_start(
    year: int, longitude: float, ephemeris: Ephemeris, caches: QueryCaches
) -> Tuple[int, int]:
    """Return ``(start_ms, duration_days)`` of the natural year opening in December of *year*."""

    start = _new_year_instant(solstices(year, ephemeris, caches).dec_solstice)
    end = _new_year_instant(solstices(year + 1, ephemeris, caches).dec_solstice)
    duration = (end - start) // MS_PER_DAY
    return int(math.floor(start + longitude_shift_ms(longitude) + 0.5)), duration


def make_natural_date(
    unix_ms: int, longitude: float, ephemeris: Ephemeris, caches: QueryCaches
) -> NaturalDate:
    """Build the :class:`NaturalDate` containing *unix_ms* at *longitude*.

    Raises
    ------
    RangeError
        If the longitude lies outside [-180, 180].
    TimeDomainError
        If the timestamp is not strictly positive or falls after year 9999.
    """

    check_longitude(longitude)
    if unix_ms <= 0:
        raise TimeDomainError(f"timestamp must be positive, got {unix_ms}")

    gregorian_year = utc_year(unix_ms)
    start, duration = year_start(gregorian_year - 1, longitude, ephemeris, caches)
    if unix_ms - start >= duration * MS_PER_DAY:
        start, duration = year_start(gregorian_year, longitude, ephemeris, caches)

    days = (unix_ms - start) / MS_PER_DAY
    whole_days = math.floor(days)
    whole_weeks = math.floor(days / DAYS_PER_WEEK)
    nadir = start + whole_days * MS_PER_DAY

    time_deg = (unix_ms - nadir) * 360.0 / MS_PER_DAY
    if time_deg >= 360.0:
        time_deg = 0.0

    reference_local = END_OF_ARTIFICIAL_TIME + int(longitude_shift_ms(longitude))
    day_of_year = whole_days + 1

    return NaturalDate(
        year=utc_year(start) - utc_year(END_OF_ARTIFICIAL_TIME) + 1,
        moon=math.floor(days / DAYS_PER_MOON) + 1,
        week=whole_weeks + 1,
        week_of_moon=whole_weeks % 4 + 1,
        unix_time=unix_ms,
        longitude=longitude,
        day=math.floor((unix_ms - reference_local) / MS_PER_DAY),
        day_of_year=day_of_year,
        day_of_moon=whole_days % DAYS_PER_MOON + 1,
        day_of_week=whole_days % DAYS_PER_WEEK + 1,
        is_rainbow_day=day_of_year > REGULAR_DAYS,
        time_deg=time_deg,
        year_start=start,
        year_duration=duration,
        nadir=nadir,
    )


def time_of_event(nd: NaturalDate, event_ms: int) -> float:
    """Project *event_ms* onto the 0-360° scale of *nd*'s day; 0 outside that day."""

    if not isinstance(nd, NaturalDate):
        raise InternalError("natural date is required")
    if event_ms < nd.nadir or event_ms > nd.nadir + MS_PER_DAY:
        return 0.0
    degrees = (event_ms - nd.nadir) * 360.0 / MS_PER_DAY
    if degrees >= 360.0:
        degrees = 0.0
    return degrees
