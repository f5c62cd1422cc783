"""
Core Module for the Face Registration & Recognition Service

This package contains the labeled-descriptor registry, the nearest-label
matcher, and the adapters around them.

Main components:
    - config: Configuration loading and typed settings
    - errors: Error taxonomy shared by core and API
    - registry: In-memory labeled descriptor store
    - matching: Snapshot matcher and distance/confidence policies
    - face_analyzer: Face detection + descriptor extraction
    - face_service: Registry + matcher + analyzer with rebuild-on-write
    - training_session: Timed interactive training mode

Usage:
    from core import FaceService, create_face_analyzer, get_detector_config
    service = FaceService(create_face_analyzer(get_detector_config()))
"""

from core.config import (
    ApiConfig,
    DetectorConfig,
    MatchingConfig,
    TrainingConfig,
    get_config,
    get_section,
    get_api_config,
    get_detector_config,
    get_matching_config,
    get_training_config,
)

from core.errors import (
    FaceServiceError,
    InvalidInput,
    NotFound,
    EmptyRegistry,
    DimensionMismatch,
    DecodeError,
    ModelNotReady,
    NoFaceDetected,
    InternalError,
)

from core.registry import (
    Registry,
    PersonRecord,
    LabelSummary,
    LabelListing,
    RegistrySnapshot,
    as_descriptor,
)

from core.matching import FaceMatcher, MatchResult, UNKNOWN_LABEL

from core.face_analyzer import (
    FaceAnalyzer,
    ModelFaceAnalyzer,
    SimulatedFaceAnalyzer,
    FaceDetection,
    Rect,
    create_face_analyzer,
    decode_image,
)

from core.face_service import FaceService, RecognizedFace, TrainResult, ImageInfo

from core.training_session import TrainingSession, TrainingState

__all__ = [
    # Configuration
    "ApiConfig",
    "DetectorConfig",
    "MatchingConfig",
    "TrainingConfig",
    "get_config",
    "get_section",
    "get_api_config",
    "get_detector_config",
    "get_matching_config",
    "get_training_config",
    # Errors
    "FaceServiceError",
    "InvalidInput",
    "NotFound",
    "EmptyRegistry",
    "DimensionMismatch",
    "DecodeError",
    "ModelNotReady",
    "NoFaceDetected",
    "InternalError",
    # Registry
    "Registry",
    "PersonRecord",
    "LabelSummary",
    "LabelListing",
    "RegistrySnapshot",
    "as_descriptor",
    # Matching
    "FaceMatcher",
    "MatchResult",
    "UNKNOWN_LABEL",
    # Face Analysis
    "FaceAnalyzer",
    "ModelFaceAnalyzer",
    "SimulatedFaceAnalyzer",
    "FaceDetection",
    "Rect",
    "create_face_analyzer",
    "decode_image",
    # Service
    "FaceService",
    "RecognizedFace",
    "TrainResult",
    "ImageInfo",
    # Training
    "TrainingSession",
    "TrainingState",
]
