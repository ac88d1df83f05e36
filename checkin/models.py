"""SQLAlchemy ORM models"""

import uuid

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _new_id() -> str:
    return str(uuid.uuid4())


class Station(Base):
    """Station catalogue entry"""

    __tablename__ = "stations"

    id = Column(String, primary_key=True)  # TfL identifier, e.g. 940GZZLUKSX
    name = Column(String, nullable=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    geofence_radius_m = Column(Float)


class Activity(Base):
    """Timed activity that visits are recorded against"""

    __tablename__ = "activities"

    id = Column(String, primary_key=True, default=_new_id)
    user_id = Column(String, nullable=False)
    started_at = Column(DateTime(timezone=True), server_default=func.now())
    gate_start_at = Column(DateTime(timezone=True))
    # Per-activity sequence counter, incremented atomically on each insert
    last_sequence = Column(Integer, nullable=False, default=0, server_default="0")


class StationVisit(Base):
    """One check-in at a station within an activity"""

    __tablename__ = "station_visits"

    id = Column(String, primary_key=True, default=_new_id)
    activity_id = Column(String, ForeignKey("activities.id"), nullable=False)
    station_id = Column(String, nullable=False)
    user_id = Column(String, nullable=False)

    status = Column(String, nullable=False)
    pending_reason = Column(String)
    verification_method = Column(String, nullable=False)
    sequence_number = Column(Integer, nullable=False)

    latitude = Column(Float)
    longitude = Column(Float)
    visit_lat = Column(Float)
    visit_lon = Column(Float)
    gps_source = Column(String, nullable=False, default="none")
    geofence_distance_m = Column(Float)
    client_distance_m = Column(Float)
    client_server_match = Column(Boolean)

    exif_time_present = Column(Boolean, nullable=False, default=False)
    exif_gps_present = Column(Boolean, nullable=False, default=False)
    is_simulation = Column(Boolean, nullable=False, default=False)

    ai_station_text = Column(Text)
    ai_confidence = Column(Float)
    cumulative_duration_seconds = Column(Integer)

    visited_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("activity_id", "station_id", name="uq_visit_activity_station"),
        Index("idx_visit_activity_seq", "activity_id", "sequence_number", unique=True),
    )
