"""
Route dependencies.

The FaceService and TrainingSession live on app.state; routes receive them
through these FastAPI dependencies instead of reaching for globals.
"""

import logging

from fastapi import Request, UploadFile

from core.config import ApiConfig
from core.errors import InvalidInput, ModelNotReady
from core.face_service import FaceService
from core.training_session import TrainingSession

logger = logging.getLogger(__name__)


def get_face_service(request: Request) -> FaceService:
    service = getattr(request.app.state, "face_service", None)
    if service is None:
        raise ModelNotReady("Face service is not initialized")
    return service


def get_training_session(request: Request) -> TrainingSession:
    session = getattr(request.app.state, "training_session", None)
    if session is None:
        raise ModelNotReady("Training session is not initialized")
    return session


def get_api_settings(request: Request) -> ApiConfig:
    return getattr(request.app.state, "api_config", None) or ApiConfig()


def read_image(upload: UploadFile, settings: ApiConfig) -> bytes:
    """
    Read an uploaded image, enforcing the size limit.

    Raises:
        InvalidInput: If the upload is empty or larger than max_upload_mb.
    """
    max_bytes = settings.max_upload_bytes
    data = upload.file.read(max_bytes + 1)

    if not data:
        raise InvalidInput("No image file provided")
    if len(data) > max_bytes:
        logger.warning(f"Rejected upload '{upload.filename}' larger than {settings.max_upload_mb} MB")
        raise InvalidInput(
            "Image too large",
            details=f"Maximum upload size is {settings.max_upload_mb} MB",
        )
    return data
