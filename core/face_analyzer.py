"""
Face Analyzer: detection + descriptor extraction

Turns a decoded image into zero or more detected faces, each with a bounding
box, a descriptor and a detection confidence. The registry and matcher only
ever see the descriptors.

Supports three variants:
  - insightface (preferred): buffalo_l model bundle with SCRFD + ArcFace
  - facenet (fallback): MTCNN detection + InceptionResnetV1 descriptors
  - simulated: random boxes and descriptors, for demos and tests without
    model weights

Usage:
    from core.face_analyzer import create_face_analyzer, decode_image

    analyzer = create_face_analyzer(detector_config)
    analyzer.load_model()

    image = decode_image(upload_bytes)
    faces = analyzer.detect(image)         # List[FaceDetection]
    face = analyzer.detect_single(image)   # best face or None
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import cv2
import numpy as np

from core.config import DetectorConfig
from core.errors import DecodeError, InvalidInput, ModelNotReady
from core.registry import as_descriptor

logger = logging.getLogger(__name__)

# Backend availability flags
_INSIGHTFACE_AVAILABLE = False
_FACENET_AVAILABLE = False

try:
    from insightface.app import FaceAnalysis
    _INSIGHTFACE_AVAILABLE = True
except ImportError:
    pass

try:
    from facenet_pytorch import MTCNN, InceptionResnetV1
    from PIL import Image
    import torch
    _FACENET_AVAILABLE = True
except ImportError:
    pass

# Pretrained weight sets shipped with facenet-pytorch
FACENET_PRETRAINED = ("vggface2", "casia-webface")


@dataclass(frozen=True)
class Rect:
    """Bounding box in pixels, top-left corner plus size."""

    x: int
    y: int
    width: int
    height: int

    @classmethod
    def from_corners(cls, x1: float, y1: float, x2: float, y2: float) -> "Rect":
        x1, y1 = max(0.0, float(x1)), max(0.0, float(y1))
        return cls(
            x=int(round(x1)),
            y=int(round(y1)),
            width=max(0, int(round(float(x2) - x1))),
            height=max(0, int(round(float(y2) - y1))),
        )

    def to_dict(self) -> Dict[str, int]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


@dataclass(frozen=True, eq=False)
class FaceDetection:
    """
    One detected face.

    Attributes:
        box: Face bounding box in image pixels.
        descriptor: Read-only (D,) float64 face descriptor.
        confidence: Detection confidence score (0.0 to 1.0).
    """

    box: Rect
    descriptor: np.ndarray
    confidence: float


def decode_image(data: bytes) -> np.ndarray:
    """
    Decode uploaded image bytes to a BGR numpy array.

    Args:
        data: Encoded image (JPEG, PNG, WebP, ...).

    Returns:
        BGR uint8 array of shape (H, W, 3).

    Raises:
        InvalidInput: If no bytes were given.
        DecodeError: If OpenCV cannot decode the bytes.
    """
    if not data:
        raise InvalidInput("No image file provided")

    np_arr = np.frombuffer(data, np.uint8)
    image = cv2.imdecode(np_arr, cv2.IMREAD_COLOR)

    if image is None:
        raise DecodeError("Unreadable image", details=f"{len(data)} bytes could not be decoded")
    return image


class FaceAnalyzer(ABC):
    """
    Base class for face detectors that also compute descriptors.

    Subclasses implement _load() and _detect(); this class handles the
    loaded-state check, confidence sorting and single-face selection.

    Args:
        config: DetectorConfig with the variant's settings.
    """

    variant = "base"

    def __init__(self, config: Optional[DetectorConfig] = None):
        self.config = config or DetectorConfig()
        self.score_threshold = float(self.config.score_threshold)
        self.embedding_dim = int(self.config.embedding_dim)
        self.is_loaded = False
        self._load_lock = threading.Lock()

    def load_model(self) -> None:
        """Load the detector models. Safe to call more than once."""
        with self._load_lock:
            if self.is_loaded:
                return
            self._load()
            self.is_loaded = True
        logger.info(f"{type(self).__name__} loaded (variant={self.variant})")

    @abstractmethod
    def _load(self) -> None:
        """Load backend models."""

    @abstractmethod
    def _detect(self, image: np.ndarray) -> List[FaceDetection]:
        """Detect faces in a BGR image. Called only once models are loaded."""

    def detect(self, image: np.ndarray) -> List[FaceDetection]:
        """
        Detect every face in an image.

        Args:
            image: BGR image (H, W, 3), as returned by decode_image().

        Returns:
            Detected faces sorted by descending confidence (may be empty).

        Raises:
            ModelNotReady: If load_model() has not completed.
            InvalidInput: If the image is not an (H, W, 3) array.
        """
        if not self.is_loaded:
            raise ModelNotReady(f"{self.variant} models are not loaded yet")
        if image is None or image.ndim != 3 or image.shape[2] != 3:
            raise InvalidInput("Image must be an (H, W, 3) array")

        faces = self._detect(image)
        faces.sort(key=lambda f: f.confidence, reverse=True)
        logger.debug(f"Detected {len(faces)} face(s) in {image.shape[1]}x{image.shape[0]} image")
        return faces

    def detect_single(self, image: np.ndarray) -> Optional[FaceDetection]:
        """Return the highest-confidence face in the image, or None."""
        faces = self.detect(image)
        return faces[0] if faces else None

    def info(self) -> Dict[str, Any]:
        """Describe this analyzer for health reporting."""
        return {
            "variant": self.variant,
            "loaded": self.is_loaded,
            "embedding_dim": self.embedding_dim,
        }


class ModelFaceAnalyzer(FaceAnalyzer):
    """
    Face analyzer backed by a pre-trained recognition model.

    Args:
        config: DetectorConfig. config.variant selects "insightface",
                "facenet", or "auto" (first installed backend).

    Raises:
        ImportError: If the requested backend (or, for "auto", any backend)
                     is not installed.
    """

    def __init__(self, config: Optional[DetectorConfig] = None):
        super().__init__(config)
        self.model_name = self.config.model
        self.device = self.config.device
        self.input_size = int(self.config.input_size)

        # Auto-detect backend
        requested_backend = self.config.variant
        if requested_backend == "auto":
            if _INSIGHTFACE_AVAILABLE:
                self.variant = "insightface"
            elif _FACENET_AVAILABLE:
                self.variant = "facenet"
            else:
                raise ImportError(
                    "No face model backend available. "
                    "Install insightface: pip install insightface onnxruntime\n"
                    "Or facenet-pytorch: pip install facenet-pytorch\n"
                    "Or set detector.variant to 'simulated'"
                )
        elif requested_backend in ("insightface", "facenet"):
            self.variant = requested_backend
        else:
            raise ValueError(f"Unknown model backend: {requested_backend}")

        self._model = None
        self._detector = None  # For facenet backend

    def _load(self) -> None:
        if self.variant == "insightface":
            self._load_insightface()
        else:
            self._load_facenet()

    def _load_insightface(self) -> None:
        """Load insightface model bundle."""
        if not _INSIGHTFACE_AVAILABLE:
            raise ImportError("insightface not installed. Run: pip install insightface onnxruntime")

        # Determine providers based on device
        if self.device == "cuda":
            providers = ["CUDAExecutionProvider", "CPUExecutionProvider"]
        else:
            providers = ["CPUExecutionProvider"]

        self._model = FaceAnalysis(
            name=self.model_name,
            providers=providers,
        )
        self._model.prepare(
            ctx_id=0 if self.device == "cuda" else -1,
            det_thresh=self.score_threshold,
            det_size=(self.input_size, self.input_size),
        )

    def _load_facenet(self) -> None:
        """Load facenet-pytorch models."""
        if not _FACENET_AVAILABLE:
            raise ImportError("facenet-pytorch not installed. Run: pip install facenet-pytorch")

        device = torch.device(self.device if torch.cuda.is_available() else "cpu")
        pretrained = self.model_name if self.model_name in FACENET_PRETRAINED else "vggface2"

        self._detector = MTCNN(
            image_size=160,
            margin=20,
            keep_all=True,
            device=device,
        )
        self._model = InceptionResnetV1(pretrained=pretrained).eval().to(device)

    def _detect(self, image: np.ndarray) -> List[FaceDetection]:
        if self.variant == "insightface":
            return self._detect_insightface(image)
        return self._detect_facenet(image)

    def _detect_insightface(self, image: np.ndarray) -> List[FaceDetection]:
        """Detect faces and descriptors using insightface."""
        # insightface expects BGR input (same as OpenCV)
        faces = self._model.get(image)

        detections = []
        for face in faces:
            score = float(face.det_score)
            if score < self.score_threshold:
                continue
            x1, y1, x2, y2 = face.bbox[:4]
            detections.append(FaceDetection(
                box=Rect.from_corners(x1, y1, x2, y2),
                descriptor=as_descriptor(face.normed_embedding),  # Already L2-normalized
                confidence=score,
            ))
        return detections

    def _resize_for_detection(self, image: np.ndarray) -> Tuple[np.ndarray, float]:
        """Shrink the image so its longest side is at most input_size."""
        h, w = image.shape[:2]
        scale = min(1.0, self.input_size / float(max(h, w)))
        if scale >= 1.0:
            return image, 1.0
        resized = cv2.resize(
            image, (int(round(w * scale)), int(round(h * scale))),
            interpolation=cv2.INTER_AREA,
        )
        return resized, scale

    def _detect_facenet(self, image: np.ndarray) -> List[FaceDetection]:
        """Detect faces and descriptors using facenet-pytorch."""
        small, scale = self._resize_for_detection(image)

        # facenet-pytorch expects RGB PIL-style input
        rgb = Image.fromarray(cv2.cvtColor(small, cv2.COLOR_BGR2RGB))

        boxes, probs = self._detector.detect(rgb)
        if boxes is None:
            return []

        keep = np.asarray(probs) >= self.score_threshold
        if not np.any(keep):
            return []
        boxes = np.asarray(boxes)[keep]
        probs = np.asarray(probs)[keep]

        # Aligned 160x160 crops, one per kept box
        face_tensor = self._detector.extract(rgb, boxes, None)
        if face_tensor.dim() == 3:
            face_tensor = face_tensor.unsqueeze(0)

        device = next(self._model.parameters()).device
        with torch.no_grad():
            embeddings = self._model(face_tensor.to(device)).cpu().numpy()

        detections = []
        for box, prob, embedding in zip(boxes, probs, embeddings):
            # L2 normalize
            norm = np.linalg.norm(embedding)
            if norm > 1e-8:
                embedding = embedding / norm
            x1, y1, x2, y2 = np.asarray(box, dtype=np.float64) / scale
            detections.append(FaceDetection(
                box=Rect.from_corners(x1, y1, x2, y2),
                descriptor=as_descriptor(embedding),
                confidence=float(prob),
            ))
        return detections

    def info(self) -> Dict[str, Any]:
        info = super().info()
        info["model"] = self.model_name
        info["device"] = self.device
        return info


class SimulatedFaceAnalyzer(FaceAnalyzer):
    """
    Demo analyzer that invents faces instead of running a model.

    Every call reports 1-3 faces at random positions with confidence in
    [0.85, 0.99) and a random descriptor in [-1, 1)^D. Descriptors are
    unrelated to the image content, so pair it with matching threshold 1.0
    and the "linear" confidence policy.
    """

    variant = "simulated"

    def __init__(self, config: Optional[DetectorConfig] = None):
        super().__init__(config)
        self._rng = np.random.default_rng(self.config.seed)
        self._rng_lock = threading.Lock()

    def _load(self) -> None:
        pass

    def random_descriptor(self) -> np.ndarray:
        """Return one random descriptor of the configured dimension."""
        with self._rng_lock:
            values = self._rng.uniform(-1.0, 1.0, self.embedding_dim)
        return as_descriptor(values)

    def _detect(self, image: np.ndarray) -> List[FaceDetection]:
        with self._rng_lock:
            n_faces = int(self._rng.integers(1, 4))
            boxes = [
                Rect(
                    x=int(self._rng.integers(0, 200)),
                    y=int(self._rng.integers(0, 200)),
                    width=100 + int(self._rng.integers(0, 100)),
                    height=120 + int(self._rng.integers(0, 100)),
                )
                for _ in range(n_faces)
            ]
            scores = [0.85 + float(self._rng.random()) * 0.14 for _ in range(n_faces)]

        return [
            FaceDetection(box=box, descriptor=self.random_descriptor(), confidence=score)
            for box, score in zip(boxes, scores)
        ]


def create_face_analyzer(config: Optional[DetectorConfig] = None) -> FaceAnalyzer:
    """
    Create the analyzer selected by config.variant.

    Models are not loaded here; call load_model() (the API does this at
    startup when config.preload is set).
    """
    config = config or DetectorConfig()
    if config.variant == "simulated":
        return SimulatedFaceAnalyzer(config)
    return ModelFaceAnalyzer(config)
