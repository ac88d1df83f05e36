"""Main FastAPI application"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .config import get_settings
from .database import Database
from .exceptions import AppException, DuplicateVisitError, InvalidCoordinates, InvalidRequestError
from .routes import geofence_router, roundel_router, visits_router
from .services import RoundelVerifier

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize application on startup"""
    settings = get_settings()

    # Create data directory for SQLite if needed
    if settings.is_sqlite:
        # Extract path from sqlite URL (e.g., sqlite+aiosqlite:///./data/db.db)
        db_path = settings.database_url.split("///")[-1]
        db_dir = os.path.dirname(db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

    # Initialize database
    db = Database(settings.database_url, lock_timeout=settings.lock_timeout_seconds)
    await db.init_db()
    app.state.db = db
    logger.info(f"Database initialized: {settings.database_url}")

    app.state.verifier = RoundelVerifier(
        settings.openai_api_key,
        model=settings.openai_model,
        api_base=settings.openai_api_base,
        timeout=settings.ocr_timeout_seconds,
    )
    logger.info(
        f"🧠 Roundel verification {'ON' if settings.ai_verification_configured else 'OFF'}"
    )

    yield

    # Cleanup
    await db.close()
    logger.info("Database connection closed")


async def app_exception_handler(request: Request, exc: AppException):
    """Render application errors as {"error": {...}}"""
    if exc.retryable:
        logger.error(f"Request failed: {exc.code} - {exc.details}")
    else:
        logger.info(f"Request rejected: {exc.code} - {exc.message}")

    content = {"error": exc.to_error()}
    if isinstance(exc, DuplicateVisitError):
        content = {"data": None, **content}
    return JSONResponse(status_code=exc.status_code, content=content)


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies are input errors, reported like any other rejection"""
    logger.info(f"Invalid request body on {request.url.path}: {exc.errors()}")
    if request.url.path == "/validate-geofence":
        error: AppException = InvalidCoordinates("Coordinates must be numbers")
    else:
        error = InvalidRequestError("Some details in your request were invalid. Please try again.")
    return JSONResponse(status_code=error.status_code, content={"error": error.to_error()})


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )

    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    # Include routers
    app.include_router(visits_router)
    app.include_router(geofence_router)
    app.include_router(roundel_router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": settings.app_name,
            "version": settings.app_version,
            "ai_verification_enabled": settings.ai_verification_configured,
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
