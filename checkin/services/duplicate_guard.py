"""At most one visit per station per activity"""

import logging
from dataclasses import dataclass
from typing import Any

from ..database import Database
from ..exceptions import DuplicateVisitError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Reserved:
    activity_id: str
    station_id: str


@dataclass(frozen=True)
class AlreadyExists:
    existing_visit: dict[str, Any]
    station_name: str
    race: bool = False

    def to_error(self) -> DuplicateVisitError:
        return DuplicateVisitError(
            existing_visit_id=self.existing_visit["id"],
            station_name=self.station_name,
            visited_at=self.existing_visit.get("visited_at"),
            race=self.race,
        )


class DuplicateGuard:
    """Enforces the (activity_id, station_id) uniqueness of visits.

    try_reserve() is the cheap early check done before any evaluation work.
    commit() is the authoritative one: the insert runs in a single transaction
    against the store's unique constraint, so two concurrent check-ins for
    the same station can never both be written.
    """

    def __init__(self, db: Database):
        self.db = db

    async def resolve_station_name(self, station_id: str) -> str:
        """Human-readable station name, or the raw id if the lookup fails"""
        try:
            station = await self.db.get_station(station_id)
        except Exception as e:
            logger.warning(f"Station name lookup failed for {station_id}: {e}")
            return station_id
        if not station or not station.get("name"):
            return station_id
        return station["name"]

    async def _conflict(self, existing: dict[str, Any], race: bool) -> AlreadyExists:
        station_name = await self.resolve_station_name(existing["station_id"])
        logger.info(
            f"🚫 Duplicate visit detected{' (race)' if race else ''}: "
            f"activity={existing['activity_id']} station={existing['station_id']} "
            f"existing_visit={existing['id']}"
        )
        return AlreadyExists(existing_visit=existing, station_name=station_name, race=race)

    async def try_reserve(self, activity_id: str, station_id: str) -> Reserved | AlreadyExists:
        existing = await self.db.find_visit(activity_id, station_id)
        if existing:
            return await self._conflict(existing, race=False)
        return Reserved(activity_id=activity_id, station_id=station_id)

    async def commit(self, reservation: Reserved, values: dict[str, Any]) -> dict[str, Any] | AlreadyExists:
        """Persist the visit for a reservation, or report the visit that won"""
        values = {
            **values,
            "activity_id": reservation.activity_id,
            "station_id": reservation.station_id,
        }
        visit = await self.db.insert_visit(values)
        if visit is not None:
            return visit

        existing = await self.db.find_visit(reservation.activity_id, reservation.station_id)
        return await self._conflict(existing, race=True)
