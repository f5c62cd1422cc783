"""
Detection, Training and Recognition API Routes

This module provides the image endpoints:
- POST /api/detect: Find faces in an image
- POST /api/train: Register the face in an image under a name
- POST /api/recognize: Identify every face in an image

Images are uploaded as multipart form data in the `image` field. Handlers
are plain functions so FastAPI runs them in its threadpool; face detection
is CPU/GPU-bound and must not block the event loop.
"""

import logging

from fastapi import APIRouter, Depends, File, Form, UploadFile

from api.dependencies import get_api_settings, get_face_service, read_image
from api.schemas import (
    Box,
    DetectedFace,
    DetectResponse,
    ImageInfo,
    Recognition,
    RecognizedFace,
    RecognizeResponse,
    TrainResponse,
)
from core.config import ApiConfig
from core.face_service import FaceService

# Setup logging
logger = logging.getLogger(__name__)

# Create router
router = APIRouter(prefix="/api", tags=["recognition"])


@router.post("/detect", response_model=DetectResponse)
def detect_faces(
    image: UploadFile = File(...),
    service: FaceService = Depends(get_face_service),
    settings: ApiConfig = Depends(get_api_settings),
):
    """
    Detect faces in an uploaded image.

    Returns the bounding box and detection confidence of every face,
    most confident first.
    """
    data = read_image(image, settings)
    info, faces = service.detect(data)

    return DetectResponse(
        message=f"Detected {len(faces)} face(s)",
        image_info=ImageInfo(width=info.width, height=info.height, format=image.content_type),
        faces_detected=len(faces),
        faces=[
            DetectedFace(face_id=i, confidence=face.confidence, box=Box(**face.box.to_dict()))
            for i, face in enumerate(faces)
        ],
    )


@router.post("/train", response_model=TrainResponse)
def train_face(
    name: str = Form(...),
    image: UploadFile = File(...),
    service: FaceService = Depends(get_face_service),
    settings: ApiConfig = Depends(get_api_settings),
):
    """
    Register a face under a name.

    The most confident face in the image is added as another sample for the
    name; a new person is created if the name is not registered yet.

    Raises:
        400: Blank name, unreadable image, or no face in the image.
    """
    data = read_image(image, settings)
    result = service.train(name, data)

    return TrainResponse(
        message=f"Face registered for {result.label}",
        name=result.label,
        total_descriptors=result.sample_count,
        total_people=result.total_people,
        confidence=result.face.confidence,
        box=Box(**result.face.box.to_dict()),
    )


@router.post("/recognize", response_model=RecognizeResponse)
def recognize_faces(
    image: UploadFile = File(...),
    service: FaceService = Depends(get_face_service),
    settings: ApiConfig = Depends(get_api_settings),
):
    """
    Identify every face in an uploaded image.

    Each face is matched against all registered samples; faces farther than
    the matching threshold from everyone are reported as 'unknown'.

    Raises:
        400: Nobody has been trained yet, or the image is unreadable.
    """
    data = read_image(image, settings)
    _, results = service.recognize(data)

    return RecognizeResponse(
        message=f"Recognized {sum(1 for r in results if r.match.is_match)} of {len(results)} face(s)",
        faces_detected=len(results),
        faces=[
            RecognizedFace(
                face_id=i,
                box=Box(**r.face.box.to_dict()),
                detection_confidence=r.face.confidence,
                recognition=Recognition(
                    name=r.match.label,
                    confidence=r.match.confidence_percent,
                    distance=r.match.distance,
                    is_match=r.match.is_match,
                ),
            )
            for i, r in enumerate(results)
        ],
    )
