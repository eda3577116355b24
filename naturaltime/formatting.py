"""Fixed-width rendering of natural dates.

The time-of-day is split in the integer domain: the angle is scaled by
``10**decimals`` and rounded once, so the integer part and the fraction always
agree (99.9996° renders as ``100°00``, never as ``99°100``).
"""

from __future__ import annotations

import math
from typing import Optional, Tuple

from .calendar import REGULAR_DAYS, NaturalDate
from .errors import InternalError, RangeError

__all__ = [
    "year_string",
    "moon_string",
    "day_of_moon_string",
    "split_time",
    "date_string",
    "time_string",
    "longitude_string",
    "full_string",
]

DEGREE_SIGN = "°"
RAINBOW = "RAINBOW"
DEFAULT_SEPARATOR = ")"
ZERO_LONGITUDE_BAND = 0.5


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _fit(text: str, max_length: Optional[int]) -> str:
    if max_length is not None and len(text) > max_length:
        raise RangeError(f"formatted value needs {len(text)} characters, limit is {max_length}")
    return text


def _require(nd: Optional[NaturalDate]) -> NaturalDate:
    if not isinstance(nd, NaturalDate):
        raise InternalError("natural date is required")
    return nd


def year_string(year: int, max_length: Optional[int] = None) -> str:
    sign = "-" if year < 0 else ""
    return _fit(f"{sign}{abs(year):03d}", max_length)


def moon_string(moon: int, max_length: Optional[int] = None) -> str:
    return _fit(f"{moon:02d}", max_length)


def day_of_moon_string(day_of_moon: int, max_length: Optional[int] = None) -> str:
    return _fit(f"{day_of_moon:02d}", max_length)


def split_time(time_deg: float, decimals: int = 2, rounding: float = 0.01) -> Tuple[int, int, int]:
    """Split *time_deg* into ``(integer, fraction, scale)`` with ``scale = 10**decimals``.

    A positive *rounding* first snaps the angle to the nearest multiple of that
    increment; the result is re-wrapped into [0, 360) before scaling.
    """

    if decimals < 0:
        raise RangeError(f"decimals must be non-negative, got {decimals}")
    value = time_deg
    if rounding > 0.0:
        value = _round_half_up(value / rounding) * rounding
    value = value % 360.0

    scale = 10 ** decimals
    scaled = _round_half_up(value * scale)
    if scaled >= 360 * scale:
        scaled -= 360 * scale
    return scaled // scale, scaled % scale, scale


def date_string(
    nd: NaturalDate, separator: str = DEFAULT_SEPARATOR, max_length: Optional[int] = None
) -> str:
    nd = _require(nd)
    year = year_string(nd.year)
    if nd.is_rainbow_day:
        label = RAINBOW + "+" if nd.day_of_year > REGULAR_DAYS + 1 else RAINBOW
        return _fit(f"{year}{separator}{label}", max_length)
    return _fit(
        f"{year}{separator}{moon_string(nd.moon)}{separator}{day_of_moon_string(nd.day_of_moon)}",
        max_length,
    )


def time_string(
    nd: NaturalDate, decimals: int = 2, rounding: float = 0.01, max_length: Optional[int] = None
) -> str:
    nd = _require(nd)
    integer, fraction, _ = split_time(nd.time_deg, decimals, rounding)
    if decimals == 0:
        return _fit(f"{integer}{DEGREE_SIGN}", max_length)
    return _fit(f"{integer}{DEGREE_SIGN}{fraction:0{decimals}d}", max_length)


def longitude_string(longitude: float, decimals: int = 1, max_length: Optional[int] = None) -> str:
    """``NTZ`` near the zero meridian, otherwise ``NT`` + signed longitude."""

    if decimals < 0:
        raise RangeError(f"decimals must be non-negative, got {decimals}")
    if abs(longitude) < ZERO_LONGITUDE_BAND:
        return _fit("NTZ", max_length)
    sign = "+" if longitude >= 0.0 else "-"
    scale = 10 ** decimals
    integer, fraction = divmod(_round_half_up(abs(longitude) * scale), scale)
    text = f"NT{sign}{integer}"
    if decimals > 0:
        text += f".{fraction:0{decimals}d}"
    return _fit(text, max_length)


def full_string(
    nd: NaturalDate,
    time_decimals: int = 2,
    time_rounding: float = 0.01,
    separator: str = DEFAULT_SEPARATOR,
    max_length: Optional[int] = None,
) -> str:
    nd = _require(nd)
    text = " ".join(
        (
            date_string(nd, separator),
            time_string(nd, time_decimals, time_rounding),
            longitude_string(nd.longitude),
        )
    )
    return _fit(text, max_length)
