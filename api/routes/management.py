"""
Registered Face Management API Routes

This module provides REST endpoints for managing registered people:
- GET /api/faces: List all registered labels
- GET /api/faces/{label}: Get one label's details
- DELETE /api/faces/{label}: Remove a label and all its samples
- DELETE /api/faces: Remove everyone

Registered faces live in memory only and are lost on restart.
"""

import logging

from fastapi import APIRouter, Depends

from api.dependencies import get_face_service
from api.schemas import (
    ClearFacesResponse,
    DeleteFaceResponse,
    FaceDetail,
    FaceDetailResponse,
    FaceListResponse,
    FaceSummary,
)
from core.face_service import FaceService

logger = logging.getLogger(__name__)

# Create router
router = APIRouter(prefix="/api", tags=["faces"])


@router.get("/faces", response_model=FaceListResponse)
def list_faces(service: FaceService = Depends(get_face_service)):
    """
    List all registered people in registration order.

    Returns each label with the number of samples stored for it.
    """
    faces = [
        FaceSummary(name=s.label, descriptors=s.sample_count)
        for s in service.list_labels()
    ]

    return FaceListResponse(
        total_people=len(faces),
        total_descriptors=sum(f.descriptors for f in faces),
        faces=faces,
    )


@router.get("/faces/{label}", response_model=FaceDetailResponse)
def get_face(label: str, service: FaceService = Depends(get_face_service)):
    """
    Get details for one registered person.

    Raises:
        404: If the label is not registered.
    """
    record = service.get(label)

    return FaceDetailResponse(
        message=f"Found {record.label}",
        face=FaceDetail(
            name=record.label,
            descriptors=record.sample_count,
            record_id=record.record_id,
            descriptor_dim=record.descriptor_dim,
            created_at=record.created_at,
            updated_at=record.updated_at,
        ),
    )


@router.delete("/faces/{label}", response_model=DeleteFaceResponse)
def delete_face(label: str, service: FaceService = Depends(get_face_service)):
    """
    Remove a registered person and all of their samples.

    Raises:
        404: If the label is not registered.
    """
    service.remove_label(label)

    return DeleteFaceResponse(
        message=f"{label} removed from face recognition",
        remaining_people=len(service.registry),
    )


@router.delete("/faces", response_model=ClearFacesResponse)
def clear_faces(service: FaceService = Depends(get_face_service)):
    """Remove every registered person. Succeeds on an empty registry too."""
    cleared = service.clear()

    return ClearFacesResponse(
        message=f"All {cleared} registered people cleared",
        cleared_people=cleared,
    )
