"""Services package"""

from .geofence import evaluate_geofence, haversine_distance
from .roundel import RoundelVerifier
from .station_matcher import CatalogueStation, CatalogueStationMatcher
from .status_decision import decide
from .visit_recorder import VisitRecorder

__all__ = [
    "CatalogueStation",
    "CatalogueStationMatcher",
    "RoundelVerifier",
    "VisitRecorder",
    "decide",
    "evaluate_geofence",
    "haversine_distance",
]
