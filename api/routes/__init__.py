"""
API Routes Package

This package contains route handlers organized by feature:
- recognition.py: Detection, training and recognition endpoints
- management.py: REST endpoints for registered faces
- training.py: Timed training session endpoints
"""

from api.routes.recognition import router as recognition_router
from api.routes.management import router as management_router
from api.routes.training import router as training_router

__all__ = [
    "recognition_router",
    "management_router",
    "training_router",
]
