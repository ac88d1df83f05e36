"""Tests for the HTTP routes"""

import asyncio

import pytest
from fastapi.testclient import TestClient

from checkin.config import get_settings
from checkin.database import Database
from checkin.main import create_app
from checkin.services.duplicate_guard import DuplicateGuard, Reserved

from .conftest import KINGS_CROSS, USER_ID, point_north_of, seed


@pytest.fixture
def client(tmp_path, monkeypatch):
    """App wired to a seeded SQLite file, with roundel verification off"""
    url = f"sqlite+aiosqlite:///{tmp_path}/routes.db"
    monkeypatch.setenv("DATABASE_URL", url)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    get_settings.cache_clear()

    async def prepare():
        database = Database(url)
        await database.init_db()
        await seed(database)
        await database.close()

    asyncio.run(prepare())

    with TestClient(create_app()) as test_client:
        yield test_client

    get_settings.cache_clear()


def visit_body(**overrides):
    body = {
        "activity_id": "A1",
        "station_id": KINGS_CROSS["station_id"],
        "user_id": USER_ID,
        "visit_lat": KINGS_CROSS["latitude"],
        "visit_lon": KINGS_CROSS["longitude"],
    }
    body.update(overrides)
    return body


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["ai_verification_enabled"] is False


def test_record_visit(client):
    response = client.post("/record-visit", json=visit_body())

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["seq_actual"] == 1
    assert data["status"] == "verified"
    assert data["pending_reason"] is None
    assert data["verification_method"] == "gps"
    assert data["visit_id"]


def test_record_visit_accepts_tfl_id_alias(client):
    body = visit_body()
    body["station_tfl_id"] = body.pop("station_id")

    response = client.post("/record-visit", json=body)
    assert response.status_code == 200


def test_duplicate_visit_response(client):
    first = client.post("/record-visit", json=visit_body()).json()
    response = client.post("/record-visit", json=visit_body())

    assert response.status_code == 409
    data = response.json()
    assert data["data"] is None
    error = data["error"]
    assert error["code"] == "duplicate_visit"
    assert error["message"] == "Already checked in to King's Cross St. Pancras for this activity."
    assert error["duplicate"]["existing_visit_id"] == first["visit_id"]
    assert error["duplicate"]["station_name"] == "King's Cross St. Pancras"
    assert error["duplicate"]["visited_at"]
    for body in (data, error, error["duplicate"]):
        assert "visit_id" not in body
        assert "seq_actual" not in body


def test_duplicate_caught_at_insert(client, monkeypatch):
    """A duplicate that slips past the early check is refused by the store"""
    first = client.post("/record-visit", json=visit_body()).json()

    async def always_free(self, activity_id, station_id):
        return Reserved(activity_id, station_id)

    monkeypatch.setattr(DuplicateGuard, "try_reserve", always_free)
    response = client.post("/record-visit", json=visit_body())

    assert response.status_code == 409
    data = response.json()
    assert data["data"] is None
    assert "visit_id" not in data
    assert "seq_actual" not in data
    error = data["error"]
    assert error["code"] == "duplicate_visit_race"
    assert error["duplicate"]["existing_visit_id"] == first["visit_id"]
    assert error["duplicate"]["station_name"] == "King's Cross St. Pancras"

    visits = client.get("/activities/A1/visits").json()["visits"]
    assert len(visits) == 1


def test_missing_fields_response(client):
    response = client.post("/record-visit", json={"station_id": KINGS_CROSS["station_id"]})

    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "missing_fields"
    assert "activity_id" in error["message"]
    assert "user_id" in error["message"]


def test_record_visit_unknown_station(client):
    response = client.post("/record-visit", json=visit_body(station_id="940GZZLUXXX"))
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "station_not_found"


def test_record_visit_forbidden(client):
    response = client.post("/record-visit", json=visit_body(user_id="intruder"))
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "forbidden"


def test_activity_visits(client):
    client.post("/record-visit", json=visit_body())

    response = client.get("/activities/A1/visits")
    assert response.status_code == 200
    visits = response.json()["visits"]
    assert len(visits) == 1
    assert visits[0]["sequence_number"] == 1
    assert visits[0]["station_id"] == KINGS_CROSS["station_id"]


def test_validate_geofence_catches_lying_client(client):
    lat, lng = point_north_of(KINGS_CROSS, 1100)
    response = client.post(
        "/validate-geofence",
        json={
            "userLat": lat,
            "userLng": lng,
            "stationLat": KINGS_CROSS["latitude"],
            "stationLng": KINGS_CROSS["longitude"],
            "stationId": KINGS_CROSS["station_id"],
            "gpsSource": "device",
            "clientDistance": 50,
        },
    )

    assert response.status_code == 200
    data = response.json()
    assert data["valid"] is False
    assert abs(data["distance"] - 1100) <= 1
    assert data["radiusUsed"] == 750
    assert data["serverCalculation"] is True
    assert data["clientServerMatch"] is False
    assert data["gpsSource"] == "device"


def test_validate_geofence_ignores_sent_radius(client):
    """A caller cannot widen the fence by sending its own radius"""
    lat, lng = point_north_of(KINGS_CROSS, 1100)
    response = client.post(
        "/validate-geofence",
        json={
            "userLat": lat,
            "userLng": lng,
            "stationLat": KINGS_CROSS["latitude"],
            "stationLng": KINGS_CROSS["longitude"],
            "stationTflId": KINGS_CROSS["station_id"],
            "clientDistance": 50,
            "radius": 5000,
        },
    )

    assert response.status_code == 200
    data = response.json()
    assert data["valid"] is False
    assert data["radiusUsed"] == 750
    assert abs(data["distance"] - 1100) <= 1
    assert data["clientServerMatch"] is False


def test_validate_geofence_missing_coordinates(client):
    response = client.post(
        "/validate-geofence",
        json={"userLat": 51.5, "stationId": KINGS_CROSS["station_id"]},
    )
    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "invalid_coordinates"
    assert error["message"] == "Missing required coordinates or station ID"


def test_validate_geofence_out_of_range(client):
    response = client.post(
        "/validate-geofence",
        json={
            "userLat": 95.0,
            "userLng": 0.0,
            "stationLat": KINGS_CROSS["latitude"],
            "stationLng": KINGS_CROSS["longitude"],
            "stationId": KINGS_CROSS["station_id"],
        },
    )
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "invalid_coordinates"


def test_validate_geofence_non_numeric(client):
    response = client.post(
        "/validate-geofence",
        json={
            "userLat": "north-ish",
            "userLng": 0.0,
            "stationLat": KINGS_CROSS["latitude"],
            "stationLng": KINGS_CROSS["longitude"],
            "stationId": KINGS_CROSS["station_id"],
        },
    )
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "invalid_coordinates"


def test_verify_roundel_disabled_is_pending(client):
    response = client.post("/verify-roundel", json={"imageData": "data:image/jpeg;base64,AAAA"})

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is False
    assert data["pending"] is True
    assert "pending" in data["message"]


def test_verify_roundel_requires_image(client):
    response = client.post("/verify-roundel", json={})
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "invalid_request"
