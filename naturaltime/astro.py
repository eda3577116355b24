"""Ephemeris engine for the natural time core, backed by SPK kernels and ERFA."""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from threading import Lock
from typing import Callable, Dict, List, Optional, Tuple

import erfa
import numpy as np
import spiceypy as spice
from spiceypy.utils.exceptions import SpiceyError

from .calendar import MS_PER_DAY, utc_datetime
from .errors import EphemerisError
from .interfaces import Body, Direction, Equatorial, Horizon, HourAngleEvent, Observer, Seasons

__all__ = ["load_ephemeris", "SpiceEphemeris", "EphemerisError"]

LOGGER = logging.getLogger(__name__)

EARTH_EQUATORIAL_RADIUS_KM = 6378.137  # WGS84 equatorial radius in kilometers.
EARTH_FLATTENING = 1.0 / 298.257223563  # WGS84 flattening.

BODY_RADIUS_KM: Dict[Body, float] = {
    Body.sun: 695_700.0,
    Body.moon: 1_737.4,
}
HORIZON_REFRACTION_DEG = 34.0 / 60.0
STANDARD_PRESSURE_HPA = 1013.25
STANDARD_TEMPERATURE_C = 10.0

SEARCH_STEP_MS = 10 * 60 * 1000
HOUR_ANGLE_STEP_MS = 20 * 60 * 1000
HOUR_ANGLE_WINDOW_DAYS = 1.1
MAX_FRAMES = 8192

_LOADED_FILES: Optional[List[str]] = None
_LOAD_LOCK = Lock()


@dataclass(frozen=True)
class _TimeScales:
    """Container for time-scale representations of a UTC instant."""

    utc: Tuple[float, float]
    ut1: Tuple[float, float]
    tt: Tuple[float, float]
    et: float


@dataclass(frozen=True)
class _Frame:
    """Earth orientation at one instant."""

    times: _TimeScales
    npb: np.ndarray     # GCRS -> true equator and equinox of date
    c2t: np.ndarray     # GCRS -> ITRS
    ecliptic: np.ndarray  # ICRS -> ecliptic of date
    gast: float         # Greenwich apparent sidereal time, radians


def load_ephemeris(bsp_path: str) -> List[str]:
    """Load SPK kernels from *bsp_path* using :mod:`spiceypy`.

    Parameters
    ----------
    bsp_path:
        A ``.bsp`` file, or a directory containing one or more ``.bsp`` files.

    Returns
    -------
    list[str]
        Sorted list of loaded kernel file names.

    Raises
    ------
    EphemerisError
        If the path is missing or holds no ``.bsp`` files.
    """

    global _LOADED_FILES

    if _LOADED_FILES is not None:
        return _LOADED_FILES

    path = Path(bsp_path).expanduser()
    if not path.exists():
        raise EphemerisError(f"Ephemeris path not found: {path}")

    with _LOAD_LOCK:
        if _LOADED_FILES is not None:
            return _LOADED_FILES

        if path.is_file():
            bsp_files = [path] if path.suffix.lower() == ".bsp" else []
        else:
            bsp_files = sorted(
                file for file in path.iterdir() if file.is_file() and file.suffix.lower() == ".bsp"
            )
        if not bsp_files:
            raise EphemerisError(f"No .bsp ephemeris files found at: {path}")

        loaded: List[str] = []
        for bsp_file in bsp_files:
            try:
                spice.furnsh(str(bsp_file))
            except SpiceyError as exc:
                spice.kclear()
                raise EphemerisError(f"Failed to load ephemeris file '{bsp_file}': {exc}") from exc
            loaded.append(bsp_file.name)

        _LOADED_FILES = loaded
        LOGGER.info(json.dumps({"event": "ephemeris_loaded", "files": loaded}))
        return loaded


def _unix_ms(dt: datetime) -> int:
    return int(round(dt.timestamp() * 1000))


def _timescales(unix_ms: int) -> _TimeScales:
    """Convert a millisecond UTC timestamp into multiple time scales."""

    dt = utc_datetime(unix_ms)
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
    tt1, tt2 = erfa.taitt(tai1, tai2)
    ut11, ut12 = erfa.utcut1(utc1, utc2, 0.0)
    et = (tt1 - erfa.DJ00) * erfa.DAYSEC + tt2 * erfa.DAYSEC
    return _TimeScales(utc=(utc1, utc2), ut1=(ut11, ut12), tt=(tt1, tt2), et=et)


def _site_vector(observer: Observer) -> np.ndarray:
    """Return the geocentric position vector for the observer in ITRF (km)."""

    return np.array(
        spice.georec(
            math.radians(observer.longitude),
            math.radians(observer.latitude),
            observer.elevation_m / 1000.0,
            EARTH_EQUATORIAL_RADIUS_KM,
            EARTH_FLATTENING,
        ),
        dtype=float,
    )


def _refraction_degrees(altitude: float) -> float:
    """Saemundsson refraction for a true *altitude* in degrees."""

    if altitude < -1.0:
        altitude = -1.0
    r_arcmin = (
        1.02
        / math.tan(math.radians(altitude + 10.3 / (altitude + 5.11)))
        * (STANDARD_PRESSURE_HPA / 1010.0)
        * (283.0 / (273.0 + STANDARD_TEMPERATURE_C))
    )
    return r_arcmin / 60.0


def _wrap180(deg: float) -> float:
    return (deg + 180.0) % 360.0 - 180.0


def _refine_crossing(
    func: Callable[[int], float],
    low: int,
    low_val: float,
    high: int,
    high_val: float,
    max_iterations: int = 40,
) -> int:
    """Refine the sign change of *func* between *low* and *high* via binary search."""

    if low_val == 0:
        return low
    if high_val == 0:
        return high
    for _ in range(max_iterations):
        if high - low <= 1:
            break
        mid = (low + high) // 2
        mid_val = func(mid)
        if mid_val == 0:
            return mid
        if low_val * mid_val < 0:
            high, high_val = mid, mid_val
        else:
            low, low_val = mid, mid_val
    return (low + high) // 2


def _scan_upward(
    func: Callable[[int], float], start: int, span_ms: int, step_ms: int
) -> Optional[int]:
    """First instant where *func* crosses zero upward, walking *span_ms* from *start*.

    A negative *span_ms* walks backwards in time and returns the latest crossing
    before *start*.
    """

    forward = span_ms >= 0
    step = step_ms if forward else -step_ms
    end = start + span_ms
    t0, v0 = start, func(start)
    while (t0 < end) if forward else (t0 > end):
        t1 = min(t0 + step, end) if forward else max(t0 + step, end)
        v1 = func(t1)
        early, early_val, late, late_val = (t0, v0, t1, v1) if forward else (t1, v1, t0, v0)
        if early_val < 0 <= late_val:
            return _refine_crossing(func, early, early_val, late, late_val)
        t0, v0 = t1, v1
    return None


class SpiceEphemeris:
    """:class:`naturaltime.interfaces.Ephemeris` over loaded SPK kernels.

    Earth orientation is memoized per instant; :meth:`reset` drops that memo.
    """

    def __init__(self, bsp_path: Optional[str] = None):
        if bsp_path is not None:
            self.files = load_ephemeris(bsp_path)
        elif _LOADED_FILES is None:
            raise EphemerisError("Ephemeris kernels have not been loaded")
        else:
            self.files = _LOADED_FILES
        self._frames: Dict[int, _Frame] = {}

    def reset(self) -> None:
        self._frames.clear()

    def _frame(self, time: int) -> _Frame:
        frame = self._frames.get(time)
        if frame is not None:
            return frame
        if len(self._frames) >= MAX_FRAMES:
            self._frames.clear()
        times = _timescales(time)
        npb = np.array(erfa.pnm06a(*times.tt), dtype=float)
        gast = float(erfa.gst06(*times.ut1, *times.tt, npb))
        rpom = erfa.pom00(0.0, 0.0, erfa.sp00(*times.tt))
        frame = _Frame(
            times=times,
            npb=npb,
            c2t=np.array(erfa.c2teqx(npb, gast, rpom), dtype=float),
            ecliptic=np.array(erfa.ecm06(*times.tt), dtype=float),
            gast=gast,
        )
        self._frames[time] = frame
        return frame

    def _geocentric(self, body: Body, frame: _Frame) -> np.ndarray:
        try:
            vector, _ = spice.spkpos(body.value, frame.times.et, "J2000", "LT+S", "EARTH")
        except SpiceyError as exc:
            raise EphemerisError(f"No ephemeris data for {body.value}: {exc}") from exc
        return np.array(vector, dtype=float)

    def _ecliptic_longitude(self, body: Body, time: int) -> float:
        frame = self._frame(time)
        x, y, _ = frame.ecliptic @ self._geocentric(body, frame)
        return math.degrees(math.atan2(y, x)) % 360.0

    def _geometric_altitude(self, body: Body, time: int, observer: Observer) -> Tuple[float, float]:
        equatorial = self.equatorial(body, time, observer)
        horizon = self.horizon(time, observer, equatorial.ra, equatorial.dec, refraction=False)
        return horizon.altitude, equatorial.dist_km

    def equatorial(self, body: Body, time: int, observer: Observer) -> Equatorial:
        frame = self._frame(time)
        site = frame.c2t.T @ _site_vector(observer)
        topocentric = frame.npb @ (self._geocentric(body, frame) - site)
        norm = float(np.linalg.norm(topocentric))
        if norm == 0:
            raise EphemerisError("Degenerate topocentric vector encountered")
        ra, dec = erfa.c2s(topocentric)
        return Equatorial(
            ra=math.degrees(float(erfa.anp(ra))),
            dec=math.degrees(float(dec)),
            dist_km=norm,
        )

    def horizon(
        self,
        time: int,
        observer: Observer,
        ra: float,
        dec: float,
        refraction: bool = True,
    ) -> Horizon:
        frame = self._frame(time)
        hour_angle = frame.gast + math.radians(observer.longitude) - math.radians(ra)
        azimuth, elevation = erfa.hd2ae(hour_angle, math.radians(dec), math.radians(observer.latitude))
        altitude = math.degrees(float(elevation))
        if refraction:
            altitude += _refraction_degrees(altitude)
        return Horizon(altitude=altitude, azimuth=math.degrees(float(azimuth)))

    def seasons(self, year: int) -> Seasons:
        return Seasons(
            jun_solstice=self._solar_longitude_time(year, 6, 90.0),
            dec_solstice=self._solar_longitude_time(year, 12, 270.0),
        )

    def _solar_longitude_time(self, year: int, month: int, target: float) -> int:
        def offset(t: int) -> float:
            return _wrap180(self._ecliptic_longitude(Body.sun, t) - target)

        low = _unix_ms(datetime(year, month, 18, tzinfo=UTC))
        high = _unix_ms(datetime(year, month, 24, tzinfo=UTC))
        low_val, high_val = offset(low), offset(high)
        if not low_val < 0 <= high_val:
            raise EphemerisError(f"Solar longitude {target} not bracketed in {year}-{month:02d}")
        return _refine_crossing(offset, low, low_val, high, high_val, max_iterations=64)

    def search_rise_set(
        self,
        body: Body,
        observer: Observer,
        direction: Direction,
        start: int,
        limit_days: float,
    ) -> Optional[int]:
        radius = BODY_RADIUS_KM[body]

        def above_horizon(t: int) -> float:
            altitude, dist_km = self._geometric_altitude(body, t, observer)
            semidiameter = math.degrees(math.asin(radius / dist_km))
            return direction * (altitude + HORIZON_REFRACTION_DEG + semidiameter)

        return _scan_upward(above_horizon, start, int(limit_days * MS_PER_DAY), SEARCH_STEP_MS)

    def search_altitude(
        self,
        body: Body,
        observer: Observer,
        direction: Direction,
        start: int,
        limit_days: float,
        altitude: float,
    ) -> Optional[int]:
        def above_threshold(t: int) -> float:
            return direction * (self._geometric_altitude(body, t, observer)[0] - altitude)

        return _scan_upward(above_threshold, start, int(limit_days * MS_PER_DAY), SEARCH_STEP_MS)

    def search_hour_angle(
        self,
        body: Body,
        observer: Observer,
        hour_angle: float,
        start: int,
        direction: int = 1,
    ) -> Optional[HourAngleEvent]:
        def past_target(t: int) -> float:
            frame = self._frame(t)
            ra = self.equatorial(body, t, observer).ra
            local = math.degrees(frame.gast) + observer.longitude - ra
            return _wrap180(local - hour_angle * 15.0)

        span = int(HOUR_ANGLE_WINDOW_DAYS * MS_PER_DAY)
        found = _scan_upward(past_target, start, span if direction >= 0 else -span, HOUR_ANGLE_STEP_MS)
        if found is None:
            return None
        equatorial = self.equatorial(body, found, observer)
        horizon = self.horizon(found, observer, equatorial.ra, equatorial.dec)
        return HourAngleEvent(time=found, altitude=horizon.altitude)

    def moon_phase(self, time: int) -> float:
        return (self._ecliptic_longitude(Body.moon, time) - self._ecliptic_longitude(Body.sun, time)) % 360.0
