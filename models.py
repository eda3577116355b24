"""Pydantic models for API requests and responses."""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field


class DateQueryParams(BaseModel):
    """Validated query parameters shared by every natural date endpoint."""

    timestamp: int = Field(..., description="Instant in milliseconds since the Unix epoch (UTC)")
    lon: float = Field(..., ge=-180.0, le=180.0, description="Longitude in degrees")


class LocationQueryParams(DateQueryParams):
    """Date parameters plus the observer latitude."""

    lat: float = Field(..., ge=-90.0, le=90.0, description="Latitude in degrees")


class NaturalDateResponse(BaseModel):
    """A resolved natural date with its rendered strings."""

    ok: bool = True
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
    text: str = Field(..., description="Full natural date string")


class SunEventsResponse(BaseModel):
    ok: bool = True
    sunrise_deg: float
    sunset_deg: float
    night_start_deg: float
    night_end_deg: float
    morning_golden_deg: float
    evening_golden_deg: float


class SunPositionResponse(BaseModel):
    ok: bool = True
    altitude: float
    highest_altitude: float


class MoonPositionResponse(BaseModel):
    ok: bool = True
    altitude: float
    phase_deg: float


class MoonEventsResponse(BaseModel):
    ok: bool = True
    moonrise_deg: float
    moonset_deg: float
    highest_altitude: float


class MustachesResponse(BaseModel):
    ok: bool = True
    winter_sunrise_deg: float
    winter_sunset_deg: float
    summer_sunrise_deg: float
    summer_sunset_deg: float
    average_angle_deg: float


class HealthResponse(BaseModel):
    """Health-check response."""

    ok: bool = True
    ephemeris_loaded: bool
    files: List[str]


class ErrorResponse(BaseModel):
    """Error payload."""

    ok: bool = False
    code: str
    error: str
