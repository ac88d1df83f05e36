"""Shared fixtures: a seeded SQLite database and request helpers"""

import math

import pytest

from checkin.config import Settings
from checkin.database import Database
from checkin.schemas import RecordVisitRequest

USER_ID = "user-1"

KINGS_CROSS = {
    "station_id": "940GZZLUKSX",
    "name": "King's Cross St. Pancras",
    "latitude": 51.5308,
    "longitude": -0.1238,
}
BANK = {
    "station_id": "940GZZLUBNK",
    "name": "Bank",
    "latitude": 51.5133,
    "longitude": -0.0886,
}
EUSTON = {
    "station_id": "940GZZLUEUS",
    "name": "Euston",
    "latitude": 51.5282,
    "longitude": -0.1337,
}
STATIONS = [KINGS_CROSS, BANK, EUSTON]


def point_north_of(station, meters):
    """(lat, lng) a given distance due north of a station"""
    dlat = math.degrees(meters / 6371000.0)
    return station["latitude"] + dlat, station["longitude"]


def make_request(**overrides) -> RecordVisitRequest:
    """A clean, on-site, online check-in at King's Cross for activity A1"""
    fields = {
        "activity_id": "A1",
        "station_id": KINGS_CROSS["station_id"],
        "user_id": USER_ID,
        "simulation_mode": False,
        "ai_enabled": True,
        "has_connectivity": True,
        "visit_lat": KINGS_CROSS["latitude"],
        "visit_lon": KINGS_CROSS["longitude"],
    }
    fields.update(overrides)
    return RecordVisitRequest(**fields)


async def seed(database: Database):
    for station in STATIONS:
        await database.add_station(**station)
    await database.create_activity(user_id=USER_ID, activity_id="A1")
    await database.create_activity(user_id=USER_ID, activity_id="A2")


@pytest.fixture
def settings():
    """Settings with the vision model switched off"""
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        openai_api_key=None,
        geofence_radius_meters=750,
        client_distance_tolerance_m=5.0,
        ocr_timeout_seconds=2.0,
    )


@pytest.fixture
async def db(tmp_path):
    """File-backed test database so concurrent sessions use real connections"""
    database = Database(f"sqlite+aiosqlite:///{tmp_path}/checkin.db")
    await database.init_db()
    await seed(database)
    yield database
    await database.close()
