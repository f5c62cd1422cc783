"""
Error Types for the Face Registry

Every failure the core can report is a subclass of FaceServiceError. Each
class carries the HTTP status the API layer answers with, so routes never
need to map exceptions by hand.

Taxonomy:
    - InvalidInput: empty/malformed label, descriptor or upload
    - NotFound: unknown label on get/delete
    - EmptyRegistry: recognition attempted with nobody registered
    - DimensionMismatch: descriptor size differs from the stored ones
    - DecodeError: uploaded bytes are not a readable image
    - ModelNotReady: detector used before its models were loaded
    - NoFaceDetected: training image contains no detectable face
    - InternalError: unexpected collaborator failure
"""

from typing import Any, Optional


class FaceServiceError(Exception):
    """Base class for all recoverable face registry errors."""

    status_code = 500
    error = "Face service error"

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        """Return the JSON error envelope for this error."""
        return {
            "error": self.error,
            "details": self.details if self.details is not None else self.message,
        }


class InvalidInput(FaceServiceError):
    status_code = 400
    error = "Invalid input"


class NotFound(FaceServiceError):
    status_code = 404
    error = "Not found"


class EmptyRegistry(FaceServiceError):
    status_code = 400
    error = "No faces have been trained yet"


class DimensionMismatch(FaceServiceError):
    status_code = 422
    error = "Descriptor dimension mismatch"


class DecodeError(FaceServiceError):
    status_code = 400
    error = "Could not decode image"


class ModelNotReady(FaceServiceError):
    status_code = 503
    error = "Face models are not loaded"


class NoFaceDetected(FaceServiceError):
    status_code = 400
    error = "No face detected in image"


class InternalError(FaceServiceError):
    status_code = 500
    error = "Internal error"
