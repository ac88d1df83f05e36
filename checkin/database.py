"""Database module using SQLAlchemy ORM"""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from .exceptions import NotFoundError
from .models import Activity, Base, Station, StationVisit


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; everything stored here is UTC"""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def visit_to_dict(visit: StationVisit) -> dict[str, Any]:
    visited_at = as_utc(visit.visited_at)
    created_at = as_utc(visit.created_at)
    return {
        "id": visit.id,
        "activity_id": visit.activity_id,
        "station_id": visit.station_id,
        "user_id": visit.user_id,
        "status": visit.status,
        "pending_reason": visit.pending_reason,
        "verification_method": visit.verification_method,
        "sequence_number": visit.sequence_number,
        "latitude": visit.latitude,
        "longitude": visit.longitude,
        "visit_lat": visit.visit_lat,
        "visit_lon": visit.visit_lon,
        "gps_source": visit.gps_source,
        "geofence_distance_m": visit.geofence_distance_m,
        "client_distance_m": visit.client_distance_m,
        "client_server_match": visit.client_server_match,
        "exif_time_present": visit.exif_time_present,
        "exif_gps_present": visit.exif_gps_present,
        "is_simulation": visit.is_simulation,
        "ai_station_text": visit.ai_station_text,
        "ai_confidence": visit.ai_confidence,
        "cumulative_duration_seconds": visit.cumulative_duration_seconds,
        "visited_at": visited_at.isoformat() if visited_at else None,
        "created_at": created_at.isoformat() if created_at else None,
    }


class Database:
    """Database handler using SQLAlchemy ORM - supports SQLite and PostgreSQL"""

    def __init__(self, database_url: str, lock_timeout: float = 5.0):
        self.database_url = database_url

        # Bound lock waits so contended check-ins fail instead of hanging
        connect_args: dict[str, Any] = {}
        if database_url.startswith("sqlite"):
            connect_args = {"check_same_thread": False, "timeout": lock_timeout}
        elif "asyncpg" in database_url:
            connect_args = {"server_settings": {"lock_timeout": str(int(lock_timeout * 1000))}}

        self.engine = create_async_engine(
            database_url,
            echo=False,
            connect_args=connect_args,
        )
        self.async_session = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )

    async def init_db(self):
        """Initialize database schema"""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def add_station(
        self,
        station_id: str,
        name: str,
        latitude: float,
        longitude: float,
        geofence_radius_m: float | None = None,
    ) -> None:
        """Insert or replace a catalogue station"""
        async with self.async_session() as session:
            await session.merge(
                Station(
                    id=station_id,
                    name=name,
                    latitude=latitude,
                    longitude=longitude,
                    geofence_radius_m=geofence_radius_m,
                )
            )
            await session.commit()

    async def get_station(self, station_id: str) -> dict[str, Any] | None:
        async with self.async_session() as session:
            station = await session.get(Station, station_id)
            if not station:
                return None
            return {
                "id": station.id,
                "name": station.name,
                "latitude": station.latitude,
                "longitude": station.longitude,
                "geofence_radius_m": station.geofence_radius_m,
            }

    async def list_stations(self) -> list[dict[str, Any]]:
        """Station ids and names, for roundel matching"""
        async with self.async_session() as session:
            result = await session.execute(select(Station.id, Station.name).order_by(Station.name))
            return [{"id": row.id, "name": row.name} for row in result]

    async def create_activity(
        self,
        user_id: str,
        activity_id: str | None = None,
        started_at: datetime | None = None,
    ) -> str:
        """Create an activity and return its id"""
        async with self.async_session() as session:
            fields: dict[str, Any] = {"user_id": user_id}
            if activity_id:
                fields["id"] = activity_id
            if started_at:
                fields["started_at"] = started_at
            activity = Activity(**fields)
            session.add(activity)
            await session.commit()
            return activity.id

    async def get_activity(self, activity_id: str) -> dict[str, Any] | None:
        async with self.async_session() as session:
            activity = await session.get(Activity, activity_id)
            if not activity:
                return None
            return {
                "id": activity.id,
                "user_id": activity.user_id,
                "started_at": as_utc(activity.started_at),
                "gate_start_at": as_utc(activity.gate_start_at),
                "last_sequence": activity.last_sequence,
            }

    async def find_visit(self, activity_id: str, station_id: str) -> dict[str, Any] | None:
        """Get the visit recorded for a station within an activity, if any"""
        async with self.async_session() as session:
            stmt = select(StationVisit).where(
                StationVisit.activity_id == activity_id,
                StationVisit.station_id == station_id,
            )
            result = await session.execute(stmt)
            visit = result.scalar_one_or_none()
            return visit_to_dict(visit) if visit else None

    async def get_activity_visits(self, activity_id: str) -> list[dict[str, Any]]:
        """Get all visits for an activity in arrival order"""
        async with self.async_session() as session:
            stmt = (
                select(StationVisit)
                .where(StationVisit.activity_id == activity_id)
                .order_by(StationVisit.sequence_number.asc())
            )
            result = await session.execute(stmt)
            return [visit_to_dict(visit) for visit in result.scalars().all()]

    async def insert_visit(self, values: dict[str, Any]) -> dict[str, Any] | None:
        """Allocate the next sequence number and insert a visit in one transaction.

        The activity counter is bumped with a single UPDATE, which takes the
        row (or database) write lock and serializes concurrent check-ins for
        the same activity. If the insert violates the (activity, station)
        unique constraint the whole transaction, counter included, is rolled
        back and None is returned.
        """
        activity_id = values["activity_id"]
        visited_at = values["visited_at"]

        async with self.async_session() as session:
            try:
                async with session.begin():
                    stmt = (
                        update(Activity)
                        .where(Activity.id == activity_id)
                        .values(last_sequence=Activity.last_sequence + 1)
                        .returning(
                            Activity.last_sequence,
                            Activity.started_at,
                            Activity.gate_start_at,
                        )
                        .execution_options(synchronize_session=False)
                    )
                    row = (await session.execute(stmt)).one_or_none()
                    if row is None:
                        raise NotFoundError("activity_not_found", "This activity no longer exists.")

                    sequence_number = row.last_sequence
                    gate_start_at = as_utc(row.gate_start_at)
                    if sequence_number == 1 and gate_start_at is None:
                        gate_start_at = visited_at
                        await session.execute(
                            update(Activity)
                            .where(Activity.id == activity_id)
                            .values(gate_start_at=visited_at)
                            .execution_options(synchronize_session=False)
                        )

                    start = gate_start_at or as_utc(row.started_at)
                    cumulative = None
                    if start is not None:
                        cumulative = max(0, round((visited_at - start).total_seconds()))

                    visit = StationVisit(
                        **values,
                        sequence_number=sequence_number,
                        cumulative_duration_seconds=cumulative,
                        created_at=datetime.now(UTC),
                    )
                    session.add(visit)
            except IntegrityError:
                existing = await self.find_visit(activity_id, values["station_id"])
                if existing is None:
                    raise
                return None

            return visit_to_dict(visit)

    async def close(self):
        """Close database connection"""
        await self.engine.dispose()
