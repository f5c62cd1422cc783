"""
Pydantic Schemas for API Request/Response Models

This module defines the data models used for API communication between
clients and the face registration service.

These schemas provide:
- Type validation
- Automatic documentation in OpenAPI/Swagger
- Clear interface contracts

Every successful response carries `success` and `message`; every failure
is an ErrorResponse.
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Body of every 4xx/5xx response."""
    error: str = Field(..., description="Short error category")
    details: Any = Field(None, description="What exactly went wrong")


# ============================================================
# Detection Schemas
# ============================================================

class Box(BaseModel):
    """Face bounding box in image pixels."""
    x: int = Field(..., description="Left edge")
    y: int = Field(..., description="Top edge")
    width: int = Field(..., description="Box width")
    height: int = Field(..., description="Box height")


class ImageInfo(BaseModel):
    """Decoded upload metadata."""
    width: int
    height: int
    format: Optional[str] = Field(None, description="Upload content type, e.g. image/jpeg")


class DetectedFace(BaseModel):
    """One face found by the detector."""
    face_id: int = Field(..., description="Index of the face within the image")
    confidence: float = Field(..., description="Detection confidence (0-1)")
    box: Box


class DetectResponse(BaseModel):
    success: bool = True
    message: str
    image_info: ImageInfo
    faces_detected: int
    faces: List[DetectedFace] = Field(default_factory=list)


# ============================================================
# Training Schemas
# ============================================================

class TrainResponse(BaseModel):
    """Response after registering one training image."""
    success: bool = True
    message: str
    name: str = Field(..., description="Label the face was registered under")
    total_descriptors: int = Field(..., description="Samples now stored for this label")
    total_people: int = Field(..., description="Registered labels after this request")
    confidence: float = Field(..., description="Detection confidence of the registered face")
    box: Box


# ============================================================
# Recognition Schemas
# ============================================================

class Recognition(BaseModel):
    """Best match for one face."""
    name: str = Field(..., description="Matched label, or 'unknown'")
    confidence: int = Field(..., description="Match confidence percentage (0-100)")
    distance: float = Field(..., description="Distance to the closest registered sample")
    is_match: bool


class RecognizedFace(BaseModel):
    face_id: int
    box: Box
    detection_confidence: float
    recognition: Recognition


class RecognizeResponse(BaseModel):
    success: bool = True
    message: str
    faces_detected: int
    faces: List[RecognizedFace] = Field(default_factory=list)


# ============================================================
# Registry Management Schemas
# ============================================================

class FaceSummary(BaseModel):
    """One registered label."""
    name: str
    descriptors: int = Field(..., description="Number of stored samples")


class FaceListResponse(BaseModel):
    success: bool = True
    message: str = "Registered faces"
    total_people: int = 0
    total_descriptors: int = 0
    faces: List[FaceSummary] = Field(default_factory=list)


class FaceDetail(FaceSummary):
    record_id: int
    descriptor_dim: int
    created_at: str
    updated_at: str


class FaceDetailResponse(BaseModel):
    success: bool = True
    message: str
    face: FaceDetail


class DeleteFaceResponse(BaseModel):
    success: bool = True
    message: str
    remaining_people: int


class ClearFacesResponse(BaseModel):
    success: bool = True
    message: str
    cleared_people: int


# ============================================================
# Training Session Schemas
# ============================================================

class TrainingStartRequest(BaseModel):
    """Start a timed training session."""
    name: str = Field(..., description="Label to register frames under")


class TrainingStatusResponse(BaseModel):
    success: bool = True
    message: str
    state: str = Field(..., description="'idle' or 'training'")
    label: Optional[str] = None
    remaining_sec: float = 0.0
    samples_added: int = 0
    duration_sec: float


class TrainingFrameResponse(BaseModel):
    success: bool = True
    message: str
    state: str
    faces_detected: int = 0
    samples_added: int = Field(0, description="Samples added from this frame")


# ============================================================
# Health Check Schemas
# ============================================================

class HealthResponse(BaseModel):
    """System health check response."""
    model_config = {"protected_namespaces": ()}  # Allow 'model_' prefix in field names

    status: str = Field(..., description="Overall status: 'healthy' or 'degraded'")
    message: str
    model_loaded: bool = Field(..., description="Whether the face models are loaded")
    detector: Dict[str, Any] = Field(default_factory=dict, description="Detector variant details")
    registered_people: int
    registered_descriptors: int
