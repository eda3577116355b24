"""Sun and moon events projected onto the natural day."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Optional

from .caches import QueryCaches
from .calendar import (
    NaturalDate,
    check_latitude,
    make_natural_date,
    solstices,
    time_of_event,
    utc_year,
)
from .errors import InternalError
from .interfaces import Body, Direction, Ephemeris, Observer

__all__ = [
    "SunEvents",
    "SunPosition",
    "MoonPosition",
    "MoonEvents",
    "Mustaches",
    "sun_events",
    "sun_position",
    "moon_position",
    "moon_events",
    "mustaches",
]

LOGGER = logging.getLogger(__name__)

SUMMER_START_DAY = 91
SUMMER_END_DAY = 273
NIGHT_ALTITUDE = -12.0
GOLDEN_HOUR_ALTITUDE = 6.0
RISE_SET_LIMIT_DAYS = 1.0
ALTITUDE_LIMIT_DAYS = 2.0


@dataclass(frozen=True)
class SunEvents:
    sunrise_deg: float
    sunset_deg: float
    night_start_deg: float
    night_end_deg: float
    morning_golden_deg: float
    evening_golden_deg: float


@dataclass(frozen=True)
class SunPosition:
    altitude: float
    highest_altitude: float


@dataclass(frozen=True)
class MoonPosition:
    altitude: float
    phase_deg: float


@dataclass(frozen=True)
class MoonEvents:
    moonrise_deg: float
    moonset_deg: float
    highest_altitude: float


@dataclass(frozen=True)
class Mustaches:
    winter_sunrise_deg: float
    winter_sunset_deg: float
    summer_sunrise_deg: float
    summer_sunset_deg: float
    average_angle_deg: float


def is_summer(day_of_year: int, latitude: float) -> bool:
    if latitude >= 0.0:
        return SUMMER_START_DAY <= day_of_year <= SUMMER_END_DAY
    return day_of_year <= SUMMER_START_DAY or day_of_year >= SUMMER_END_DAY


def _require(nd: Optional[NaturalDate], latitude: float) -> Observer:
    if not isinstance(nd, NaturalDate):
        raise InternalError("natural date is required")
    check_latitude(latitude)
    return Observer(latitude=latitude, longitude=nd.longitude)


def _sun_event_degree(
    nd: NaturalDate, name: str, found: Optional[int], summer: bool, late_in_day: bool
) -> float:
    """Degree of a sun event, or its seasonal stand-in when the sun never crosses."""

    if found is not None:
        return time_of_event(nd, found)
    fallback = (360.0 if late_in_day else 0.0) if summer else 180.0
    LOGGER.debug(
        json.dumps(
            {"event": "sun_event_fallback", "name": name, "nadir": nd.nadir, "degrees": fallback}
        )
    )
    return fallback


def sun_events(
    nd: NaturalDate, latitude: float, ephemeris: Ephemeris, caches: QueryCaches
) -> SunEvents:
    observer = _require(nd, latitude)

    def compute() -> SunEvents:
        summer = is_summer(nd.day_of_year, latitude)
        start = nd.nadir
        rise = ephemeris.search_rise_set(Body.sun, observer, Direction.rise, start, RISE_SET_LIMIT_DAYS)
        set_ = ephemeris.search_rise_set(Body.sun, observer, Direction.set, start, RISE_SET_LIMIT_DAYS)
        night_start = ephemeris.search_altitude(
            Body.sun, observer, Direction.set, start, ALTITUDE_LIMIT_DAYS, NIGHT_ALTITUDE
        )
        night_end = ephemeris.search_altitude(
            Body.sun, observer, Direction.rise, start, ALTITUDE_LIMIT_DAYS, NIGHT_ALTITUDE
        )
        morning_golden = ephemeris.search_altitude(
            Body.sun, observer, Direction.rise, start, ALTITUDE_LIMIT_DAYS, GOLDEN_HOUR_ALTITUDE
        )
        evening_golden = ephemeris.search_altitude(
            Body.sun, observer, Direction.set, start, ALTITUDE_LIMIT_DAYS, GOLDEN_HOUR_ALTITUDE
        )
        return SunEvents(
            sunrise_deg=_sun_event_degree(nd, "sunrise", rise, summer, False),
            sunset_deg=_sun_event_degree(nd, "sunset", set_, summer, True),
            night_start_deg=_sun_event_degree(nd, "night_start", night_start, summer, True),
            night_end_deg=_sun_event_degree(nd, "night_end", night_end, summer, False),
            morning_golden_deg=_sun_event_degree(nd, "morning_golden", morning_golden, summer, False),
            evening_golden_deg=_sun_event_degree(nd, "evening_golden", evening_golden, summer, True),
        )

    return caches.sun_events.get_or_compute((nd.nadir, latitude, nd.longitude), compute)


def sun_position(nd: NaturalDate, latitude: float, ephemeris: Ephemeris) -> SunPosition:
    observer = _require(nd, latitude)
    equatorial = ephemeris.equatorial(Body.sun, nd.unix_time, observer)
    horizon = ephemeris.horizon(nd.unix_time, observer, equatorial.ra, equatorial.dec)
    transit = ephemeris.search_hour_angle(Body.sun, observer, 0.0, nd.nadir, 1)
    return SunPosition(
        altitude=max(horizon.altitude, 0.0),
        highest_altitude=transit.altitude if transit is not None else 0.0,
    )


def moon_position(nd: NaturalDate, latitude: float, ephemeris: Ephemeris) -> MoonPosition:
    observer = _require(nd, latitude)
    equatorial = ephemeris.equatorial(Body.moon, nd.unix_time, observer)
    horizon = ephemeris.horizon(nd.unix_time, observer, equatorial.ra, equatorial.dec)
    return MoonPosition(
        altitude=max(horizon.altitude, 0.0),
        phase_deg=ephemeris.moon_phase(nd.unix_time),
    )


def moon_events(nd: NaturalDate, latitude: float, ephemeris: Ephemeris) -> MoonEvents:
    """Moonrise and moonset degrees (0 when absent) and the moon's transit altitude."""

    observer = _require(nd, latitude)
    rise = ephemeris.search_rise_set(Body.moon, observer, Direction.rise, nd.nadir, RISE_SET_LIMIT_DAYS)
    set_ = ephemeris.search_rise_set(Body.moon, observer, Direction.set, nd.nadir, RISE_SET_LIMIT_DAYS)
    transit = ephemeris.search_hour_angle(Body.moon, observer, 0.0, nd.nadir, 1)
    return MoonEvents(
        moonrise_deg=time_of_event(nd, rise) if rise is not None else 0.0,
        moonset_deg=time_of_event(nd, set_) if set_ is not None else 0.0,
        highest_altitude=transit.altitude if transit is not None else 0.0,
    )


def mustaches(
    nd: NaturalDate, latitude: float, ephemeris: Ephemeris, caches: QueryCaches
) -> Mustaches:
    """Sunrise/sunset spread between the solstices of *nd*'s UTC year.

    Both solstice dates are built at longitude 0; the average opening angle is
    oriented by hemisphere and clamped to [0, 90].
    """

    _require(nd, latitude)
    year = utc_year(nd.unix_time)

    def compute() -> Mustaches:
        seasons = solstices(year, ephemeris, caches)
        winter = sun_events(
            make_natural_date(seasons.dec_solstice, 0.0, ephemeris, caches), latitude, ephemeris, caches
        )
        summer = sun_events(
            make_natural_date(seasons.jun_solstice, 0.0, ephemeris, caches), latitude, ephemeris, caches
        )
        if latitude >= 0.0:
            average = (
                (winter.sunrise_deg - summer.sunrise_deg) + (summer.sunset_deg - winter.sunset_deg)
            ) / 4.0
        else:
            average = (
                (summer.sunrise_deg - winter.sunrise_deg) + (winter.sunset_deg - summer.sunset_deg)
            ) / 4.0
        return Mustaches(
            winter_sunrise_deg=winter.sunrise_deg,
            winter_sunset_deg=winter.sunset_deg,
            summer_sunrise_deg=summer.sunrise_deg,
            summer_sunset_deg=summer.sunset_deg,
            average_angle_deg=min(max(average, 0.0), 90.0),
        )

    return caches.mustaches.get_or_compute((year, latitude), compute)
