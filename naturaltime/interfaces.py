"""
naturaltime.interfaces
----------------------
Capability boundary between the calendar core and an ephemeris engine.

All instants crossing this boundary are integer milliseconds since the Unix
epoch (UTC). Angles are degrees. A search that finds no crossing returns
``None``; engine failures raise :class:`naturaltime.errors.EphemerisError`.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Optional, Protocol


class Body(str, Enum):
    """Bodies the core asks the ephemeris about."""

    sun = "SUN"
    moon = "MOON"


class Direction(IntEnum):
    """Sense of an altitude crossing."""

    rise = 1
    set = -1


@dataclass(frozen=True)
class Observer:
    latitude: float
    longitude: float
    elevation_m: float = 0.0


@dataclass(frozen=True)
class Seasons:
    jun_solstice: int
    dec_solstice: int


@dataclass(frozen=True)
class Equatorial:
    ra: float        # right ascension of date, degrees [0, 360)
    dec: float       # declination of date, degrees
    dist_km: float


@dataclass(frozen=True)
class Horizon:
    altitude: float
    azimuth: float


@dataclass(frozen=True)
class HourAngleEvent:
    time: int
    altitude: float


class Ephemeris(Protocol):
    """Astronomy engine operations consumed by the event adapters."""

    def seasons(self, year: int) -> Seasons:
        """June and December solstice instants of the Gregorian *year*."""
        ...

    def search_rise_set(
        self,
        body: Body,
        observer: Observer,
        direction: Direction,
        start: int,
        limit_days: float,
    ) -> Optional[int]:
        """First horizon crossing of *body* after *start*, within *limit_days*."""
        ...

    def search_altitude(
        self,
        body: Body,
        observer: Observer,
        direction: Direction,
        start: int,
        limit_days: float,
        altitude: float,
    ) -> Optional[int]:
        """First crossing of the *altitude* threshold after *start*."""
        ...

    def search_hour_angle(
        self,
        body: Body,
        observer: Observer,
        hour_angle: float,
        start: int,
        direction: int = 1,
    ) -> Optional[HourAngleEvent]:
        """Next instant the local hour angle of *body* equals *hour_angle* (hours)."""
        ...

    def equatorial(self, body: Body, time: int, observer: Observer) -> Equatorial:
        ...

    def horizon(
        self,
        time: int,
        observer: Observer,
        ra: float,
        dec: float,
        refraction: bool = True,
    ) -> Horizon:
        ...

    def moon_phase(self, time: int) -> float:
        """Moon phase angle in degrees, 0 = new, 180 = full."""
        ...

    def reset(self) -> None:
        """Drop any state memoized inside the engine."""
        ...
