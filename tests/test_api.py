from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable

import pytest
from fastapi.testclient import TestClient

JAN_1_2025 = 1_735_689_600_000
BEIJING_MORNING = 1_761_026_400_000
FULL_MOON = 1_762_348_740_000
YEAR_2030 = 1_906_502_400_000


@pytest.fixture(scope="session")
def api_client(kernel_dir: Path, configure_ephemeris: None) -> Iterable[TestClient]:
    previous = os.environ.get("DE_BSP")
    os.environ["DE_BSP"] = str(kernel_dir)
    from natural_time_api import app

    with TestClient(app) as client:
        yield client
    if previous is None:
        os.environ.pop("DE_BSP", None)
    else:
        os.environ["DE_BSP"] = previous


def test_health_endpoint(api_client: TestClient) -> None:
    response = api_client.get("/health")
    assert response.status_code == 200
    payload = response.json()
    assert payload["ok"] is True
    assert payload["ephemeris_loaded"] is True
    assert payload["files"] == ["naturaltime_2025.bsp"]


def test_natural_date(api_client: TestClient, caplog) -> None:
    caplog.set_level(logging.INFO, logger="natural-time-api")
    response = api_client.get("/natural-date", params={"timestamp": JAN_1_2025, "lon": 0})
    assert response.status_code == 200
    payload = response.json()
    assert payload["ok"] is True
    assert payload["year"] == 13
    assert payload["day_of_year"] == 11
    assert payload["year_duration"] == 366
    assert payload["nadir"] == JAN_1_2025
    assert payload["text"] == "013)01)11 0°00 NTZ"
    assert "duration_ms" in caplog.text


def test_validation_error(api_client: TestClient) -> None:
    response = api_client.get(
        "/sun-events",
        params={
            "lat": 95,  # invalid latitude
            "lon": 0,
            "timestamp": JAN_1_2025,
        },
    )
    assert response.status_code == 422
    payload = response.json()
    assert payload["code"] == "validation_error"
    assert payload["ok"] is False

    response = api_client.get("/natural-date", params={"lon": 0})
    assert response.status_code == 422


def test_non_positive_timestamp(api_client: TestClient) -> None:
    response = api_client.get("/natural-date", params={"timestamp": 0, "lon": 0})
    assert response.status_code == 400
    payload = response.json()
    assert payload["code"] == "time_error"
    assert payload["ok"] is False


def test_timestamp_outside_kernel(api_client: TestClient) -> None:
    response = api_client.get(
        "/sun-events", params={"timestamp": YEAR_2030, "lon": 0, "lat": 10}
    )
    assert response.status_code == 500
    assert response.json()["code"] == "internal_error"


def test_sun_events_endpoint(api_client: TestClient) -> None:
    response = api_client.get(
        "/sun-events",
        params={"timestamp": BEIJING_MORNING, "lon": 116.4074, "lat": 39.9042},
    )
    assert response.status_code == 200
    payload = response.json()
    assert 80.0 < payload["sunrise_deg"] < 115.0
    assert 245.0 < payload["sunset_deg"] < 275.0


def test_sun_position_endpoint(api_client: TestClient) -> None:
    response = api_client.get(
        "/sun-position",
        params={"timestamp": BEIJING_MORNING, "lon": 116.4074, "lat": 39.9042},
    )
    assert response.status_code == 200
    payload = response.json()
    # 14:00 local time in Beijing, late October.
    assert 20.0 < payload["altitude"] < 40.0
    assert payload["highest_altitude"] >= payload["altitude"]


def test_moon_endpoints(api_client: TestClient) -> None:
    params = {"timestamp": FULL_MOON, "lon": 0, "lat": 51.4779}
    position = api_client.get("/moon-position", params=params)
    assert position.status_code == 200
    assert position.json()["phase_deg"] == pytest.approx(180.0, abs=1.0)

    events = api_client.get("/moon-events", params=params)
    assert events.status_code == 200
    payload = events.json()
    assert 0.0 <= payload["moonrise_deg"] < 360.0
    assert 0.0 <= payload["moonset_deg"] < 360.0


def test_mustaches_endpoint(api_client: TestClient) -> None:
    response = api_client.get(
        "/mustaches", params={"timestamp": JAN_1_2025, "lon": 0, "lat": 51.4779}
    )
    assert response.status_code == 200
    payload = response.json()
    assert payload["winter_sunrise_deg"] > payload["summer_sunrise_deg"]
    assert payload["summer_sunset_deg"] > payload["winter_sunset_deg"]
    assert 25.0 < payload["average_angle_deg"] < 40.0


def test_reset_caches_endpoint(api_client: TestClient) -> None:
    response = api_client.post("/caches/reset")
    assert response.status_code == 200
    assert response.json()["ephemeris_loaded"] is True
