"""
Test helpers.

ScriptedAnalyzer stands in for a real face model: each detect() call pops
the next scripted list of descriptors, so tests decide exactly which faces
an image "contains".
"""

from collections import deque

import cv2
import numpy as np

from core.config import DetectorConfig
from core.face_analyzer import FaceAnalyzer, FaceDetection, Rect
from core.registry import as_descriptor


DIM = 128


class ScriptedAnalyzer(FaceAnalyzer):
    """Analyzer whose detections are queued up by the test."""

    variant = "scripted"

    def __init__(self, dim: int = DIM):
        super().__init__(DetectorConfig(variant="simulated", embedding_dim=dim))
        self._scripts = deque()
        self.calls = 0
        self.error = None

    def push(self, *descriptors):
        """Queue one detect() result containing the given descriptors."""
        faces = [
            FaceDetection(
                box=Rect(x=10 * i, y=10, width=50, height=60),
                descriptor=as_descriptor(d),
                confidence=0.99 - 0.01 * i,
            )
            for i, d in enumerate(descriptors)
        ]
        self._scripts.append(faces)

    def _load(self):
        pass

    def _detect(self, image):
        self.calls += 1
        if self.error is not None:
            raise self.error
        if self._scripts:
            return list(self._scripts.popleft())
        return []


def unit_vector(index: int, dim: int = DIM, scale: float = 1.0) -> np.ndarray:
    """Descriptor with `scale` at position `index` and zeros elsewhere."""
    v = np.zeros(dim)
    v[index] = scale
    return v


def encode_png(image: np.ndarray) -> bytes:
    ok, buf = cv2.imencode(".png", image)
    assert ok
    return buf.tobytes()
