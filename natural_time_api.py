"""FastAPI application exposing natural dates and their sun/moon events."""

from __future__ import annotations

import json
import logging
import os
import time
from contextlib import asynccontextmanager
from dataclasses import asdict
from threading import Lock
from typing import Dict, List, Optional, TypeVar

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from models import (
    DateQueryParams,
    ErrorResponse,
    HealthResponse,
    LocationQueryParams,
    MoonEventsResponse,
    MoonPositionResponse,
    MustachesResponse,
    NaturalDateResponse,
    SunEventsResponse,
    SunPositionResponse,
)
from naturaltime import EphemerisError, ErrorKind, NaturalDate, NaturalTime, Result
from naturaltime.ephemeris import EphemerisAcquisitionError, open_ephemeris

logging.basicConfig(level=logging.INFO, format="%(message)s")
LOGGER = logging.getLogger("natural-time-api")

APP_DESCRIPTION = (
    "Solstice-anchored natural calendar dates with sun and moon events in 360° day time"
)

T = TypeVar("T")

SESSION: Optional[NaturalTime] = None
EPHEMERIS_FILES: List[str] = []
# NaturalTime sessions are single-threaded; sync endpoints run in a thread pool.
_SESSION_LOCK = Lock()

_STATUS_BY_KIND: Dict[ErrorKind, int] = {
    ErrorKind.range: 400,
    ErrorKind.time: 400,
    ErrorKind.internal: 500,
}


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover - exercised in integration tests
    global SESSION, EPHEMERIS_FILES
    try:
        ephemeris = open_ephemeris()
    except EphemerisAcquisitionError as exc:
        LOGGER.error(json.dumps({"event": "ephemeris_acquire_failed", "error": str(exc)}))
        raise
    except EphemerisError as exc:
        LOGGER.error(json.dumps({"event": "ephemeris_load_failed", "error": str(exc)}))
        raise
    EPHEMERIS_FILES = list(ephemeris.files)
    LOGGER.info(json.dumps({"event": "startup", "ephemeris_files": EPHEMERIS_FILES}))
    SESSION = NaturalTime(ephemeris)
    yield
    SESSION = None


app = FastAPI(
    title="Natural Time API",
    description=APP_DESCRIPTION,
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin for origin in os.environ.get("CORS_ORIGINS", "").split(",") if origin],
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


def _error_response(status_code: int, code: str, message: str) -> JSONResponse:
    payload = ErrorResponse(code=code, error=message)
    LOGGER.error(json.dumps({"event": "error", "code": code, "message": message}))
    return JSONResponse(status_code=status_code, content=payload.model_dump())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    messages = ", ".join(error["msg"] for error in exc.errors())
    return _error_response(422, "validation_error", messages)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    detail = exc.detail
    code = f"http_{exc.status_code}"
    if isinstance(detail, dict):
        code = detail.get("code", code)
        message = detail.get("error") or detail.get("message") or str(detail)
    elif isinstance(detail, list):
        message = ", ".join(str(item) for item in detail)
    else:
        message = str(detail)
    return _error_response(exc.status_code, code, message)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    LOGGER.exception("Unhandled exception", exc_info=exc)
    return _error_response(500, "internal_error", "Unhandled server error")


def _session() -> NaturalTime:
    if SESSION is None:
        raise HTTPException(
            status_code=500,
            detail={"code": "internal_error", "error": "Ephemeris kernels have not been loaded"},
        )
    return SESSION


def _unwrap(result: Result[T]) -> T:
    if not result.ok:
        raise HTTPException(
            status_code=_STATUS_BY_KIND[result.error],
            detail={"code": f"{result.error.value}_error", "error": result.message},
        )
    return result.value


def _natural_date(session: NaturalTime, params: DateQueryParams) -> NaturalDate:
    return _unwrap(session.natural_date(params.timestamp, params.lon))


def _log_request(event: str, params: DateQueryParams, start_time: float) -> None:
    duration_ms = (time.perf_counter() - start_time) * 1000.0
    record = {"event": event, "timestamp": params.timestamp, "lon": params.lon}
    if isinstance(params, LocationQueryParams):
        record["lat"] = params.lat
    record["duration_ms"] = round(duration_ms, 3)
    LOGGER.info(json.dumps(record))


@app.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    return HealthResponse(
        ok=True,
        ephemeris_loaded=SESSION is not None,
        files=EPHEMERIS_FILES,
    )


_ERRORS = {
    400: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


@app.get("/natural-date", response_model=NaturalDateResponse, responses=_ERRORS)
def natural_date_endpoint(params: DateQueryParams = Depends()) -> NaturalDateResponse:
    start_time = time.perf_counter()
    with _SESSION_LOCK:
        session = _session()
        nd = _natural_date(session, params)
        text = _unwrap(session.format_string(nd))
    _log_request("natural_date", params, start_time)
    return NaturalDateResponse(**asdict(nd), text=text)


@app.get("/sun-events", response_model=SunEventsResponse, responses=_ERRORS)
def sun_events_endpoint(params: LocationQueryParams = Depends()) -> SunEventsResponse:
    start_time = time.perf_counter()
    with _SESSION_LOCK:
        session = _session()
        events = _unwrap(session.sun_events(_natural_date(session, params), params.lat))
    _log_request("sun_events", params, start_time)
    return SunEventsResponse(**asdict(events))


@app.get("/sun-position", response_model=SunPositionResponse, responses=_ERRORS)
def sun_position_endpoint(params: LocationQueryParams = Depends()) -> SunPositionResponse:
    start_time = time.perf_counter()
    with _SESSION_LOCK:
        session = _session()
        position = _unwrap(session.sun_position(_natural_date(session, params), params.lat))
    _log_request("sun_position", params, start_time)
    return SunPositionResponse(**asdict(position))


@app.get("/moon-position", response_model=MoonPositionResponse, responses=_ERRORS)
def moon_position_endpoint(params: LocationQueryParams = Depends()) -> MoonPositionResponse:
    start_time = time.perf_counter()
    with _SESSION_LOCK:
        session = _session()
        position = _unwrap(session.moon_position(_natural_date(session, params), params.lat))
    _log_request("moon_position", params, start_time)
    return MoonPositionResponse(**asdict(position))


@app.get("/moon-events", response_model=MoonEventsResponse, responses=_ERRORS)
def moon_events_endpoint(params: LocationQueryParams = Depends()) -> MoonEventsResponse:
    start_time = time.perf_counter()
    with _SESSION_LOCK:
        session = _session()
        events = _unwrap(session.moon_events(_natural_date(session, params), params.lat))
    _log_request("moon_events", params, start_time)
    return MoonEventsResponse(**asdict(events))


@app.get("/mustaches", response_model=MustachesResponse, responses=_ERRORS)
def mustaches_endpoint(params: LocationQueryParams = Depends()) -> MustachesResponse:
    start_time = time.perf_counter()
    with _SESSION_LOCK:
        session = _session()
        mustaches = _unwrap(session.mustaches(_natural_date(session, params), params.lat))
    _log_request("mustaches", params, start_time)
    return MustachesResponse(**asdict(mustaches))


@app.post("/caches/reset", response_model=HealthResponse)
def reset_caches_endpoint() -> HealthResponse:
    with _SESSION_LOCK:
        _session().reset_caches()
    return health()
