"""
FastAPI Application Entry Point

This module creates and configures the FastAPI application for the
Face Registration & Recognition API.

The application provides:
- Face detection, training and recognition endpoints
- REST endpoints for registered face management
- Timed training session endpoints
- Health check endpoint

Registered faces are kept in memory only; restarting the server forgets
everyone.

Usage:
    # From project root:
    uvicorn api.app:app --host 0.0.0.0 --port 3001 --reload

    # Or run directly:
    python -m api.app
"""

import logging
import threading
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.dependencies import get_face_service
from api.routes import management_router, recognition_router, training_router
from api.schemas import HealthResponse
from core.config import (
    ApiConfig,
    get_api_config,
    get_detector_config,
    get_matching_config,
    get_training_config,
)
from core.errors import FaceServiceError, InternalError, InvalidInput
from core.face_analyzer import FaceAnalyzer, create_face_analyzer
from core.face_service import FaceService
from core.training_session import TrainingSession


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

API_TITLE = "Face Registration & Recognition API"
API_VERSION = "0.1.0"


def _load_in_background(analyzer: FaceAnalyzer) -> threading.Thread:
    """Load models on a worker thread so the server can answer health checks."""

    def _run():
        try:
            analyzer.load_model()
        except Exception:
            logger.exception("Failed to load face models")

    thread = threading.Thread(target=_run, name="model-loader", daemon=True)
    thread.start()
    return thread


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Runs on startup:
    - Create the face analyzer (and load its models, unless preload is off)
    - Create the in-memory registry service and training session

    Anything already placed on app.state (e.g. by tests) is kept.

    Runs on shutdown:
    - Cancel a pending training countdown
    """
    logger.info("=" * 60)
    logger.info(f"Starting {API_TITLE}")
    logger.info("=" * 60)

    if getattr(app.state, "face_service", None) is None:
        detector_config = get_detector_config()
        logger.info(f"Initializing face analyzer (variant={detector_config.variant})...")
        analyzer = create_face_analyzer(detector_config)

        if detector_config.preload:
            logger.info("Loading face models...")
            analyzer.load_model()
        else:
            logger.info("Loading face models in the background")
            _load_in_background(analyzer)

        app.state.face_service = FaceService(analyzer, get_matching_config())

    if getattr(app.state, "training_session", None) is None:
        app.state.training_session = TrainingSession(
            app.state.face_service,
            duration_sec=get_training_config().duration_sec,
        )

    logger.info("Registry is in-memory only: registered faces are lost on restart")
    logger.info("API startup complete!")
    logger.info("=" * 60)

    yield

    # Cleanup on shutdown
    logger.info("Shutting down API...")
    app.state.training_session.close()
    logger.info("Shutdown complete")


def register_exception_handlers(app: FastAPI) -> None:
    """Translate errors into {error, details} JSON bodies."""

    @app.exception_handler(FaceServiceError)
    async def face_service_error_handler(request: Request, exc: FaceServiceError):
        logger.debug(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        error = InvalidInput("Request validation failed", details=jsonable_encoder(exc.errors()))
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": str(exc.detail), "details": f"{request.method} {request.url.path}"},
        )

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error in {request.method} {request.url.path}")
        error = InternalError("Unexpected server error", details=f"{type(exc).__name__}: {exc}")
        return JSONResponse(status_code=error.status_code, content=error.to_dict())


def create_app(
    face_service: Optional[FaceService] = None,
    training_session: Optional[TrainingSession] = None,
    api_config: Optional[ApiConfig] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        face_service: Service to use instead of building one from config.
        training_session: Session to use instead of building one from config.
        api_config: API settings (CORS, upload limit). Read from config if omitted.

    Returns:
        Configured FastAPI app.
    """
    api_config = api_config or get_api_config()

    app = FastAPI(
        title=API_TITLE,
        description="""
API for registering faces under names and recognizing them in new images.

## Features
- **Detection**: Find faces in an uploaded image
- **Training**: Register a face under a name (repeat to add samples)
- **Recognition**: Identify every face in an image
- **Management**: List, inspect and delete registered faces
- **Training sessions**: Register webcam frames for a few seconds

Registered faces are stored in memory only.
        """,
        version=API_VERSION,
        lifespan=lifespan,
    )

    app.state.api_config = api_config
    app.state.face_service = face_service
    app.state.training_session = training_session
    if face_service is not None and training_session is None:
        app.state.training_session = TrainingSession(
            face_service,
            duration_sec=get_training_config().duration_sec,
        )

    # Configure CORS for browser clients
    app.add_middleware(
        CORSMiddleware,
        allow_origins=api_config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    # Include routers
    app.include_router(recognition_router)
    app.include_router(management_router)
    app.include_router(training_router)

    @app.get("/api/health", response_model=HealthResponse, tags=["system"])
    def health_check(service: FaceService = Depends(get_face_service)):
        """
        Check the health of the API and its models.

        Returns status of:
        - Face models (loaded/not loaded)
        - Detector variant
        - Number of registered people and samples
        """
        stats = service.stats()
        model_loaded = service.analyzer.is_loaded

        return HealthResponse(
            status="healthy" if model_loaded else "degraded",
            message=f"{API_TITLE} is running",
            model_loaded=model_loaded,
            detector=service.analyzer.info(),
            registered_people=stats["total_people"],
            registered_descriptors=stats["total_samples"],
        )

    @app.get("/", tags=["system"])
    async def root():
        """Root endpoint with API information."""
        return {
            "name": API_TITLE,
            "version": API_VERSION,
            "docs": "/docs",
            "health": "/api/health",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    api_config = get_api_config()

    logger.info(f"Starting server on {api_config.host}:{api_config.port}")
    uvicorn.run(
        "api.app:app",
        host=api_config.host,
        port=api_config.port,
        reload=False,
        log_level="info",
    )
