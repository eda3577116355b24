from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple

import sys

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import erfa
import numpy as np
import pytest
import spiceypy as spice

import naturaltime.astro as astro
from naturaltime import NaturalTime, QueryCaches
from naturaltime.astro import SpiceEphemeris
from naturaltime.errors import EphemerisError
from naturaltime.interfaces import Body, Direction, Equatorial, Horizon, HourAngleEvent, Observer, Seasons

DAY_MS = 86_400_000
SCAN_STEP_MS = 5 * 60 * 1000
TROPICAL_YEAR_MS = 365.2422 * DAY_MS
SYNODIC_MONTH_MS = 29.530589 * DAY_MS
SIDEREAL_MONTH_MS = 27.321661 * DAY_MS
OBLIQUITY_DEG = 23.44
RISE_SET_ALTITUDE = -0.8333
REFERENCE_SOLSTICE = 1_356_088_320_000  # 2012-12-21 11:12 UTC
REFERENCE_NEW_MOON = 1_355_388_120_000  # 2012-12-13 08:42 UTC

# (june, december) solstice instants in ms UTC, to the minute.
SOLSTICES: Dict[int, Tuple[int, int]] = {
    2010: (1_277_119_680_000, 1_292_974_680_000),
    2011: (1_308_676_560_000, 1_324_531_800_000),
    2012: (1_340_233_740_000, 1_356_088_320_000),
    2013: (1_371_791_040_000, 1_387_645_860_000),
    2014: (1_403_347_860_000, 1_419_202_980_000),
    2015: (1_434_904_680_000, 1_450_759_680_000),
    2016: (1_466_462_040_000, 1_482_317_040_000),
    2017: (1_498_019_040_000, 1_513_873_680_000),
    2018: (1_529_575_620_000, 1_545_430_980_000),
    2019: (1_561_132_440_000, 1_576_988_340_000),
    2020: (1_592_689_380_000, 1_608_544_920_000),
    2021: (1_624_246_320_000, 1_640_102_340_000),
    2022: (1_655_802_780_000, 1_671_659_280_000),
    2023: (1_687_359_420_000, 1_703_215_620_000),
    2024: (1_718_916_660_000, 1_734_772_800_000),
    2025: (1_750_473_720_000, 1_766_329_380_000),
    2026: (1_782_030_240_000, 1_797_886_200_000),
}


def _wrap180(deg: float) -> float:
    return (deg + 180.0) % 360.0 - 180.0


def _first_crossing(func: Callable[[int], float], start: int, span_ms: int) -> Optional[int]:
    """First upward zero crossing of *func* in ``[start, start + span_ms]``."""

    end = start + span_ms
    t0, v0 = start, func(start)
    while t0 < end:
        t1 = min(t0 + SCAN_STEP_MS, end)
        v1 = func(t1)
        if v0 < 0 <= v1:
            low, high = t0, t1
            while high - low > 1:
                mid = (low + high) // 2
                if func(mid) < 0:
                    low = mid
                else:
                    high = mid
            return high
        t0, v0 = t1, v1
    return None


class FakeEphemeris:
    """Deterministic stand-in for the SPK engine.

    The sun moves uniformly along a circular ecliptic and crosses the local
    meridian at 12:00 UTC minus ``longitude / 15`` hours. The moon keeps a
    uniform synodic phase and a sinusoidal declination. Solstices come from a
    fixed table and a missing year raises :class:`EphemerisError`.
    """

    def __init__(self, solstices: Optional[Dict[int, Tuple[int, int]]] = None):
        self.solstices = dict(SOLSTICES if solstices is None else solstices)
        self.seasons_calls: List[int] = []
        self.resets = 0

    def seasons(self, year: int) -> Seasons:
        self.seasons_calls.append(year)
        if year not in self.solstices:
            raise EphemerisError(f"No solstice data for {year}")
        june, december = self.solstices[year]
        return Seasons(jun_solstice=june, dec_solstice=december)

    def _sun_longitude(self, time: int) -> float:
        return (270.0 + 360.0 * (time - REFERENCE_SOLSTICE) / TROPICAL_YEAR_MS) % 360.0

    def equatorial(self, body: Body, time: int, observer: Observer) -> Equatorial:
        sun_longitude = self._sun_longitude(time)
        if body is Body.sun:
            return Equatorial(
                ra=sun_longitude,
                dec=OBLIQUITY_DEG * math.sin(math.radians(sun_longitude)),
                dist_km=149_597_870.7,
            )
        phase = 2.0 * math.pi * (time - REFERENCE_NEW_MOON) / SIDEREAL_MONTH_MS
        return Equatorial(
            ra=(sun_longitude + self.moon_phase(time)) % 360.0,
            dec=20.0 * math.sin(phase),
            dist_km=384_400.0,
        )

    def _local_hour_angle(self, time: int, observer: Observer, ra: float) -> float:
        day_fraction = (time % DAY_MS) / DAY_MS
        return _wrap180(360.0 * day_fraction - 180.0 + observer.longitude + self._sun_longitude(time) - ra)

    def horizon(
        self, time: int, observer: Observer, ra: float, dec: float, refraction: bool = True
    ) -> Horizon:
        hour_angle = math.radians(self._local_hour_angle(time, observer, ra))
        phi, delta = math.radians(observer.latitude), math.radians(dec)
        sin_alt = math.sin(phi) * math.sin(delta) + math.cos(phi) * math.cos(delta) * math.cos(hour_angle)
        altitude = math.degrees(math.asin(max(-1.0, min(1.0, sin_alt))))
        azimuth = math.degrees(
            math.atan2(
                math.sin(hour_angle),
                math.cos(hour_angle) * math.sin(phi) - math.tan(delta) * math.cos(phi),
            )
        )
        return Horizon(altitude=altitude, azimuth=(azimuth + 180.0) % 360.0)

    def _altitude(self, body: Body, time: int, observer: Observer) -> float:
        equatorial = self.equatorial(body, time, observer)
        return self.horizon(time, observer, equatorial.ra, equatorial.dec).altitude

    def search_rise_set(
        self, body: Body, observer: Observer, direction: Direction, start: int, limit_days: float
    ) -> Optional[int]:
        return self.search_altitude(body, observer, direction, start, limit_days, RISE_SET_ALTITUDE)

    def search_altitude(
        self,
        body: Body,
        observer: Observer,
        direction: Direction,
        start: int,
        limit_days: float,
        altitude: float,
    ) -> Optional[int]:
        return _first_crossing(
            lambda t: direction * (self._altitude(body, t, observer) - altitude),
            start,
            int(limit_days * DAY_MS),
        )

    def search_hour_angle(
        self, body: Body, observer: Observer, hour_angle: float, start: int, direction: int = 1
    ) -> Optional[HourAngleEvent]:
        def past_target(t: int) -> float:
            ra = self.equatorial(body, t, observer).ra
            return _wrap180(self._local_hour_angle(t, observer, ra) - hour_angle * 15.0)

        found = _first_crossing(past_target, start, int(1.1 * DAY_MS))
        if found is None:
            return None
        return HourAngleEvent(time=found, altitude=self._altitude(body, found, observer))

    def moon_phase(self, time: int) -> float:
        return (360.0 * (time - REFERENCE_NEW_MOON) / SYNODIC_MONTH_MS) % 360.0

    def reset(self) -> None:
        self.resets += 1


@pytest.fixture
def fake_ephemeris() -> FakeEphemeris:
    return FakeEphemeris()


@pytest.fixture
def caches() -> QueryCaches:
    return QueryCaches()


@pytest.fixture
def session(fake_ephemeris: FakeEphemeris) -> NaturalTime:
    return NaturalTime(fake_ephemeris)


# Synthetic SPK kernel: geocentric Sun and barycentric Earth from erfa.epv00,
# geocentric Moon from erfa.moon98, covering June 2024 to mid January 2026.

AU_KM = 149597870.700
SUN_STEP_HOURS = 6
MOON_STEP_HOURS = 1
KERNEL_START = datetime(2024, 6, 1, tzinfo=timezone.utc)
KERNEL_END = datetime(2026, 1, 15, tzinfo=timezone.utc)


def _datetime_to_tt(dt: datetime) -> tuple[float, float]:
    utc1, utc2 = erfa.dtf2d(
        "UTC",
        dt.year,
        dt.month,
        dt.day,
        dt.hour,
        dt.minute,
        dt.second + dt.microsecond / 1_000_000,
    )
    tai1, tai2 = erfa.utctai(utc1, utc2)
    return erfa.taitt(tai1, tai2)


def _datetime_to_et(dt: datetime) -> float:
    tt1, tt2 = _datetime_to_tt(dt)
    return (tt1 - erfa.DJ00) * erfa.DAYSEC + tt2 * erfa.DAYSEC


def _pv_to_state(pv: np.ndarray) -> np.ndarray:
    return np.concatenate([np.array(pv[0]) * AU_KM, np.array(pv[1]) * (AU_KM / erfa.DAYSEC)])


def _sun_and_earth_states(dt: datetime) -> tuple[np.ndarray, np.ndarray]:
    pvh, pvb = erfa.epv00(*_datetime_to_tt(dt))
    return -_pv_to_state(pvh), _pv_to_state(pvb)


def _moon_state(dt: datetime) -> np.ndarray:
    return _pv_to_state(erfa.moon98(*_datetime_to_tt(dt)))


def _sample(step_hours: int, sampler: Callable[[datetime], object]) -> tuple[list[float], list]:
    ets: list[float] = []
    states: list = []
    current = KERNEL_START
    while current <= KERNEL_END:
        ets.append(_datetime_to_et(current))
        states.append(sampler(current))
        current += timedelta(hours=step_hours)
    return ets, states


def _write_segment(handle: int, body: int, center: int, segid: str, ets: list[float], states) -> None:
    spice.spkw08(
        handle,
        body,
        center,
        "J2000",
        ets[0],
        ets[-1],
        segid,
        7,
        len(ets),
        np.array(states, dtype=float),
        ets[0],
        ets[1] - ets[0],
    )


def _generate_test_kernel(output: Path) -> None:
    if output.exists():
        return
    sun_ets, pairs = _sample(SUN_STEP_HOURS, _sun_and_earth_states)
    moon_ets, moon_states = _sample(MOON_STEP_HOURS, _moon_state)
    handle = spice.spkopn(str(output), "NTTEST", 0)
    try:
        _write_segment(handle, 10, 399, "SUNTEST", sun_ets, [sun for sun, _ in pairs])
        _write_segment(handle, 399, 0, "EARTHTEST", sun_ets, [earth for _, earth in pairs])
        _write_segment(handle, 301, 399, "MOONTEST", moon_ets, moon_states)
    finally:
        spice.spkcls(handle)


@pytest.fixture(scope="session")
def kernel_dir(tmp_path_factory: pytest.TempPathFactory) -> Path:
    directory = tmp_path_factory.mktemp("kernels")
    _generate_test_kernel(directory / "naturaltime_2025.bsp")
    return directory


@pytest.fixture(scope="session")
def configure_ephemeris(kernel_dir: Path) -> Iterable[None]:
    spice.kclear()
    astro._LOADED_FILES = None  # type: ignore[attr-defined]
    astro.load_ephemeris(str(kernel_dir))
    yield
    spice.kclear()
    astro._LOADED_FILES = None  # type: ignore[attr-defined]


@pytest.fixture(scope="session")
def spice_ephemeris(configure_ephemeris: None) -> SpiceEphemeris:
    return SpiceEphemeris()
