"""Routes package"""

from .geofence import router as geofence_router
from .roundel import router as roundel_router
from .visits import router as visits_router

__all__ = ["visits_router", "geofence_router", "roundel_router"]
