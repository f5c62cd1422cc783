"""
Timed Training Session API Routes

This module exposes the interactive training mode:
- POST /api/training/start: Start a countdown for a name
- POST /api/training/frame: Submit a frame; every face in it is registered
- POST /api/training/stop: Stop early (no-op if already stopped)
- GET /api/training: Current session state

The session stops by itself when the countdown runs out. A client (e.g. a
webcam page) keeps posting frames until the state returns to 'idle'.
"""

import logging

from fastapi import APIRouter, Depends, File, UploadFile

from api.dependencies import (
    get_api_settings,
    get_face_service,
    get_training_session,
    read_image,
)
from api.schemas import (
    TrainingFrameResponse,
    TrainingStartRequest,
    TrainingStatusResponse,
)
from core.config import ApiConfig
from core.face_service import FaceService
from core.training_session import TrainingSession, TrainingState

logger = logging.getLogger(__name__)

# Create router
router = APIRouter(prefix="/api/training", tags=["training"])


def _status_response(session: TrainingSession, message: str) -> TrainingStatusResponse:
    return TrainingStatusResponse(message=message, **session.status())


@router.get("", response_model=TrainingStatusResponse)
def training_status(session: TrainingSession = Depends(get_training_session)):
    """Report whether a training session is running and for whom."""
    return _status_response(session, "Training status")


@router.post("/start", response_model=TrainingStatusResponse)
def start_training(
    request: TrainingStartRequest,
    session: TrainingSession = Depends(get_training_session),
):
    """
    Start registering frames under a name for a fixed duration.

    Starting again while a session runs restarts the countdown for the
    new name.

    Raises:
        400: If the name is blank.
    """
    session.start(request.name)
    return _status_response(
        session,
        f"Training mode: look at the camera to register \"{session.label}\"",
    )


@router.post("/frame", response_model=TrainingFrameResponse)
def submit_training_frame(
    image: UploadFile = File(...),
    session: TrainingSession = Depends(get_training_session),
    service: FaceService = Depends(get_face_service),
    settings: ApiConfig = Depends(get_api_settings),
):
    """
    Register every face in a frame under the current training name.

    Frames received while no session is running are ignored.
    """
    data = read_image(image, settings)

    if session.state is TrainingState.IDLE:
        return TrainingFrameResponse(message="Training is not active", state=session.state.value)

    _, faces = service.detect(data)
    added = session.submit(face.descriptor for face in faces)

    return TrainingFrameResponse(
        message=f"Added {added} sample(s)" if added else "No samples added",
        state=session.state.value,
        faces_detected=len(faces),
        samples_added=added,
    )


@router.post("/stop", response_model=TrainingStatusResponse)
def stop_training(session: TrainingSession = Depends(get_training_session)):
    """Stop the running session. Stopping an idle session is a no-op."""
    stopped = session.stop()
    message = "Training stopped. Recognition mode active." if stopped else "Training was not active"
    return _status_response(session, message)
