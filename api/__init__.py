"""
API Layer for the Face Registration & Recognition Service

This package provides the FastAPI-based API layer that exposes:
- Image endpoints for detection, training and recognition
- REST endpoints for managing registered faces
- Timed training session endpoints
- Health check endpoint
"""
