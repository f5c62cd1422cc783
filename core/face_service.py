"""
Face Service Module

FaceService ties the pieces together: it owns one Registry, the matcher
built from it, and the face analyzer that turns images into descriptors.
The API holds a single FaceService on app.state and hands it to every route.

Write policy is rebuild-on-write: every add/remove/clear mutates the
registry and rebuilds the matcher under one lock, so recognition never sees
a matcher older than the last completed write. Face detection runs before
the lock is taken; only in-memory work happens while it is held.

Usage:
    from core.face_service import FaceService
    from core.face_analyzer import SimulatedFaceAnalyzer

    service = FaceService(SimulatedFaceAnalyzer())
    service.analyzer.load_model()

    service.train("Alice", jpeg_bytes)
    result = service.recognize(jpeg_bytes)
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from core.config import MatchingConfig
from core.errors import EmptyRegistry, NoFaceDetected
from core.face_analyzer import FaceAnalyzer, FaceDetection, decode_image
from core.matching import FaceMatcher, MatchResult
from core.registry import LabelListing, PersonRecord, Registry, normalize_label

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImageInfo:
    """Size of a decoded upload."""

    width: int
    height: int

    @classmethod
    def of(cls, image: np.ndarray) -> "ImageInfo":
        return cls(width=int(image.shape[1]), height=int(image.shape[0]))


@dataclass(frozen=True)
class TrainResult:
    """Outcome of registering one training image."""

    label: str
    sample_count: int
    total_people: int
    face: FaceDetection
    image: ImageInfo


@dataclass(frozen=True)
class RecognizedFace:
    """A detected face and its best match."""

    face: FaceDetection
    match: MatchResult


class FaceService:
    """
    Registry + matcher + analyzer, with serialized writes.

    Args:
        analyzer: FaceAnalyzer used to turn images into descriptors.
        matching_config: Threshold, metric and confidence policy for the matcher.
        registry: Registry to use. A new empty one is created if omitted.
    """

    def __init__(
        self,
        analyzer: FaceAnalyzer,
        matching_config: Optional[MatchingConfig] = None,
        registry: Optional[Registry] = None,
    ):
        self.analyzer = analyzer
        self.matching_config = matching_config or MatchingConfig()
        self.registry = registry if registry is not None else Registry()
        self._write_lock = threading.Lock()
        self._matcher: Optional[FaceMatcher] = None

        with self._write_lock:
            self._rebuild_locked()

    # ------------------------------------------------------------------
    # Matcher lifecycle
    # ------------------------------------------------------------------

    def _rebuild_locked(self) -> Optional[FaceMatcher]:
        """Rebuild the matcher from the registry. Caller holds _write_lock."""
        snapshot = self.registry.snapshot()
        if snapshot.total_samples == 0:
            self._matcher = None
        else:
            self._matcher = FaceMatcher.build(
                snapshot.records,
                threshold=self.matching_config.threshold,
                metric=self.matching_config.metric,
                confidence=self.matching_config.confidence,
                generation=snapshot.generation,
            )
        return self._matcher

    def rebuild_matcher(self) -> Optional[FaceMatcher]:
        """Rebuild the matcher now. Returns None when nobody is registered."""
        with self._write_lock:
            return self._rebuild_locked()

    @property
    def matcher(self) -> Optional[FaceMatcher]:
        """Current matcher, or None while the registry is empty."""
        return self._matcher

    # ------------------------------------------------------------------
    # Descriptor-level operations
    # ------------------------------------------------------------------

    def add_sample(self, label: str, descriptor: Any) -> int:
        """Add a descriptor under a label and rebuild the matcher."""
        with self._write_lock:
            count = self.registry.add_sample(label, descriptor)
            self._rebuild_locked()
        return count

    def remove_label(self, label: str) -> None:
        """Remove a label and rebuild the matcher."""
        with self._write_lock:
            self.registry.remove_label(label)
            self._rebuild_locked()

    def clear(self) -> int:
        """Remove everyone. Returns how many people were cleared."""
        with self._write_lock:
            n_people = len(self.registry)
            self.registry.clear()
            self._rebuild_locked()
        return n_people

    def match(self, descriptor: Any) -> MatchResult:
        """
        Match one descriptor against the current matcher.

        Raises:
            EmptyRegistry: If nobody is registered.
            DimensionMismatch: If the descriptor has the wrong size.
        """
        matcher = self._matcher
        if matcher is None:
            raise EmptyRegistry("No faces have been trained yet")
        return matcher.find_best_match(descriptor)

    def get(self, label: str) -> PersonRecord:
        return self.registry.get(label)

    def list_labels(self) -> LabelListing:
        return self.registry.list_labels()

    # ------------------------------------------------------------------
    # Image-level operations
    # ------------------------------------------------------------------

    def detect(self, image_bytes: bytes) -> Tuple[ImageInfo, List[FaceDetection]]:
        """Decode an upload and detect every face in it."""
        image = decode_image(image_bytes)
        faces = self.analyzer.detect(image)
        return ImageInfo.of(image), faces

    def train(self, label: str, image_bytes: bytes) -> TrainResult:
        """
        Register the most confident face of an image under a label.

        Raises:
            InvalidInput: If the label is blank or no image was given.
            DecodeError: If the image cannot be decoded.
            NoFaceDetected: If the image contains no face.
        """
        label = normalize_label(label)
        image = decode_image(image_bytes)

        face = self.analyzer.detect_single(image)
        if face is None:
            logger.warning(f"Training image for '{label}' contains no face")
            raise NoFaceDetected("No face detected in image")

        count = self.add_sample(label, face.descriptor)
        return TrainResult(
            label=label,
            sample_count=count,
            total_people=len(self.registry),
            face=face,
            image=ImageInfo.of(image),
        )

    def recognize(self, image_bytes: bytes) -> Tuple[ImageInfo, List[RecognizedFace]]:
        """
        Detect every face in an image and match each one.

        The matcher is captured once up front, so all faces of one image are
        matched against the same registry contents.

        Raises:
            EmptyRegistry: If nobody is registered.
            DecodeError: If the image cannot be decoded.
        """
        matcher = self._matcher
        if matcher is None:
            raise EmptyRegistry("No faces have been trained yet")

        image = decode_image(image_bytes)
        faces = self.analyzer.detect(image)

        results = [
            RecognizedFace(face=face, match=matcher.find_best_match(face.descriptor))
            for face in faces
        ]
        n_matched = sum(1 for r in results if r.match.is_match)
        logger.info(f"Recognized {n_matched}/{len(results)} face(s)")
        return ImageInfo.of(image), results

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def stats(self) -> Dict[str, Any]:
        """Return registry counts for health reporting."""
        snapshot = self.registry.snapshot()
        return {
            "total_people": len(snapshot.records),
            "total_samples": snapshot.total_samples,
            "generation": snapshot.generation,
        }
