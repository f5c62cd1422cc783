"""
Tests for API Endpoints

This test suite verifies:
- Health check and root endpoints
- Detection, training and recognition endpoints
- Registered face management endpoints (list, get, delete, clear)
- Timed training session endpoints
- Error envelopes and status codes

Run with: pytest tests/test_api_endpoints.py -v

Note: The face models are replaced by a scripted analyzer, so these tests
focus on the API layer and never load model weights.
"""

import pytest
from fastapi.testclient import TestClient

from api.app import create_app
from core.config import ApiConfig, MatchingConfig
from core.face_service import FaceService
from core.training_session import TrainingSession
from tests.helpers import ScriptedAnalyzer, unit_vector


# ============================================================
# Test Fixtures
# ============================================================

@pytest.fixture
def service(analyzer):
    return FaceService(analyzer, MatchingConfig(threshold=0.6))


@pytest.fixture
def session(service):
    s = TrainingSession(service, duration_sec=60.0)
    yield s
    s.close()


@pytest.fixture
def app(service, session):
    return create_app(
        face_service=service,
        training_session=session,
        api_config=ApiConfig(max_upload_mb=0.01),
    )


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


def upload(data, filename="face.png", content_type="image/png"):
    return {"image": (filename, data, content_type)}


# ============================================================
# System Endpoints
# ============================================================

class TestHealthEndpoint:
    """Tests for the health check endpoint."""

    def test_health_check(self, client):
        """Test that health check returns status and registry counts."""
        response = client.get("/api/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["model_loaded"] is True
        assert data["detector"]["variant"] == "scripted"
        assert data["registered_people"] == 0
        assert data["registered_descriptors"] == 0

    def test_health_degraded_while_loading(self):
        """Test that health reports degraded until the models are loaded."""
        service = FaceService(ScriptedAnalyzer())
        with TestClient(create_app(face_service=service)) as client:
            data = client.get("/api/health").json()

        assert data["status"] == "degraded"
        assert data["model_loaded"] is False

    def test_startup_from_shipped_config(self, monkeypatch):
        """Test that the app starts from config.yaml with no model backend installed."""
        monkeypatch.setattr("core.face_analyzer._INSIGHTFACE_AVAILABLE", False)
        monkeypatch.setattr("core.face_analyzer._FACENET_AVAILABLE", False)
        monkeypatch.setattr("core.config._config_instance", None)
        monkeypatch.delenv("FACEREG_CONFIG", raising=False)

        with TestClient(create_app()) as client:
            data = client.get("/api/health").json()

        assert data["status"] == "healthy"
        assert data["detector"]["variant"] == "simulated"

    def test_root_endpoint(self, client):
        response = client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert "name" in data
        assert data["health"] == "/api/health"


# ============================================================
# Detection / Training / Recognition
# ============================================================

class TestDetectEndpoint:
    """Tests for POST /api/detect."""

    def test_detect_faces(self, client, analyzer, png_bytes):
        analyzer.push(unit_vector(0), unit_vector(1))

        response = client.post("/api/detect", files=upload(png_bytes))

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["faces_detected"] == 2
        assert data["image_info"] == {"width": 48, "height": 64, "format": "image/png"}
        assert set(data["faces"][0]["box"]) == {"x", "y", "width", "height"}

    def test_detect_no_faces(self, client, png_bytes):
        response = client.post("/api/detect", files=upload(png_bytes))

        assert response.status_code == 200
        assert response.json()["faces_detected"] == 0

    def test_detect_missing_image(self, client):
        """Test that a request without an image is a 400 validation error."""
        response = client.post("/api/detect")

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid input"

    def test_detect_undecodable_image(self, client):
        response = client.post("/api/detect", files=upload(b"not an image at all"))

        assert response.status_code == 400
        assert response.json()["error"] == "Could not decode image"

    def test_detect_image_too_large(self, client):
        """Test that uploads over max_upload_mb are rejected."""
        response = client.post("/api/detect", files=upload(b"x" * 20000))

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid input"

    def test_detect_models_not_loaded(self, png_bytes):
        """Test that detection before models load answers 503."""
        service = FaceService(ScriptedAnalyzer())
        with TestClient(create_app(face_service=service)) as client:
            response = client.post("/api/detect", files=upload(png_bytes))

        assert response.status_code == 503
        assert response.json()["error"] == "Face models are not loaded"


class TestTrainEndpoint:
    """Tests for POST /api/train."""

    def test_train_face(self, client, analyzer, png_bytes):
        """Test registering a face under a name."""
        analyzer.push(unit_vector(0))

        response = client.post("/api/train", data={"name": "Alice"}, files=upload(png_bytes))

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["name"] == "Alice"
        assert data["total_descriptors"] == 1
        assert data["total_people"] == 1

    def test_train_same_name_twice(self, client, analyzer, png_bytes):
        analyzer.push(unit_vector(0))
        analyzer.push(unit_vector(1))

        client.post("/api/train", data={"name": "Alice"}, files=upload(png_bytes))
        response = client.post("/api/train", data={"name": "Alice"}, files=upload(png_bytes))

        assert response.json()["total_descriptors"] == 2
        assert response.json()["total_people"] == 1

    def test_train_missing_name(self, client, png_bytes):
        response = client.post("/api/train", files=upload(png_bytes))

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid input"

    def test_train_blank_name(self, client, analyzer, png_bytes):
        """Test that a whitespace-only name is rejected before detection."""
        response = client.post("/api/train", data={"name": "   "}, files=upload(png_bytes))

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid input", "details": "Label is required"}
        assert analyzer.calls == 0

    def test_train_no_face(self, client, png_bytes):
        response = client.post("/api/train", data={"name": "Alice"}, files=upload(png_bytes))

        assert response.status_code == 400
        assert response.json()["error"] == "No face detected in image"

    def test_train_unexpected_failure(self, app, analyzer, png_bytes):
        """Test that an unexpected detector crash becomes a 500 envelope."""
        analyzer.error = RuntimeError("GPU on fire")

        with TestClient(app, raise_server_exceptions=False) as client:
            response = client.post("/api/train", data={"name": "Alice"}, files=upload(png_bytes))

        assert response.status_code == 500
        data = response.json()
        assert data["error"] == "Internal error"
        assert "GPU on fire" in data["details"]


class TestRecognizeEndpoint:
    """Tests for POST /api/recognize."""

    def test_recognize_before_training(self, client, png_bytes):
        """Test that recognition with an empty registry is a 400."""
        response = client.post("/api/recognize", files=upload(png_bytes))

        assert response.status_code == 400
        assert response.json()["error"] == "No faces have been trained yet"

    def test_recognize_faces(self, client, service, analyzer, png_bytes):
        """Test that each face is matched or reported as unknown."""
        service.add_sample("Alice", unit_vector(0))
        analyzer.push(unit_vector(0), unit_vector(1))

        response = client.post("/api/recognize", files=upload(png_bytes))

        assert response.status_code == 200
        data = response.json()
        assert data["faces_detected"] == 2

        alice, stranger = data["faces"]
        assert alice["recognition"] == {
            "name": "Alice", "confidence": 100, "distance": 0.0, "is_match": True,
        }
        assert stranger["recognition"]["name"] == "unknown"
        assert stranger["recognition"]["confidence"] == 0
        assert stranger["recognition"]["is_match"] is False

    def test_train_then_recognize(self, client, analyzer, png_bytes):
        analyzer.push(unit_vector(3))
        client.post("/api/train", data={"name": "Bob"}, files=upload(png_bytes))

        analyzer.push(unit_vector(3))
        response = client.post("/api/recognize", files=upload(png_bytes))

        assert response.json()["faces"][0]["recognition"]["name"] == "Bob"


# ============================================================
# Face Management
# ============================================================

class TestFaceManagement:
    """Tests for the registered face endpoints."""

    @pytest.fixture
    def populated(self, service):
        service.add_sample("Alice", unit_vector(0))
        service.add_sample("Bob", unit_vector(1))
        service.add_sample("Bob", unit_vector(2))
        return service

    def test_list_faces_empty(self, client):
        response = client.get("/api/faces")

        assert response.status_code == 200
        data = response.json()
        assert data["total_people"] == 0
        assert data["faces"] == []

    def test_list_faces(self, client, populated):
        data = client.get("/api/faces").json()

        assert data["total_people"] == 2
        assert data["total_descriptors"] == 3
        assert data["faces"] == [
            {"name": "Alice", "descriptors": 1},
            {"name": "Bob", "descriptors": 2},
        ]

    def test_get_face(self, client, populated):
        response = client.get("/api/faces/Bob")

        assert response.status_code == 200
        face = response.json()["face"]
        assert face["name"] == "Bob"
        assert face["descriptors"] == 2
        assert face["record_id"] == 2
        assert face["descriptor_dim"] == 128

    def test_get_unknown_face(self, client):
        response = client.get("/api/faces/nobody")

        assert response.status_code == 404
        assert response.json()["error"] == "Not found"

    def test_delete_face(self, client, populated, analyzer, png_bytes):
        """Test that a deleted person is no longer listed or recognized."""
        response = client.delete("/api/faces/Bob")

        assert response.status_code == 200
        assert response.json()["remaining_people"] == 1
        assert [f["name"] for f in client.get("/api/faces").json()["faces"]] == ["Alice"]

        analyzer.push(unit_vector(1))
        recognized = client.post("/api/recognize", files=upload(png_bytes)).json()
        assert recognized["faces"][0]["recognition"]["name"] == "unknown"

    def test_delete_unknown_face(self, client):
        response = client.delete("/api/faces/nobody")

        assert response.status_code == 404

    def test_clear_faces(self, client, populated, png_bytes):
        response = client.delete("/api/faces")

        assert response.status_code == 200
        assert response.json()["cleared_people"] == 2
        assert client.get("/api/faces").json()["total_people"] == 0
        assert client.post("/api/recognize", files=upload(png_bytes)).status_code == 400

    def test_clear_empty_registry(self, client):
        response = client.delete("/api/faces")

        assert response.status_code == 200
        assert response.json()["cleared_people"] == 0


# ============================================================
# Training Sessions
# ============================================================

class TestTrainingEndpoints:
    """Tests for the timed training session endpoints."""

    def test_status_idle(self, client):
        data = client.get("/api/training").json()

        assert data["state"] == "idle"
        assert data["label"] is None
        assert data["duration_sec"] == 60.0

    def test_start_submit_stop(self, client, service, analyzer, png_bytes):
        """Test a full training session over HTTP."""
        start = client.post("/api/training/start", json={"name": "Alice"})
        assert start.status_code == 200
        assert start.json()["state"] == "training"
        assert start.json()["label"] == "Alice"

        analyzer.push(unit_vector(0), unit_vector(1))
        frame = client.post("/api/training/frame", files=upload(png_bytes))
        assert frame.status_code == 200
        assert frame.json()["faces_detected"] == 2
        assert frame.json()["samples_added"] == 2

        stop = client.post("/api/training/stop")
        assert stop.json()["state"] == "idle"
        assert stop.json()["message"] == "Training stopped. Recognition mode active."

        assert service.get("Alice").sample_count == 2

    def test_stop_when_idle(self, client):
        response = client.post("/api/training/stop")

        assert response.status_code == 200
        assert response.json()["message"] == "Training was not active"

    def test_frame_when_idle(self, client, analyzer, png_bytes):
        """Test that frames outside a session are ignored without detection."""
        response = client.post("/api/training/frame", files=upload(png_bytes))

        assert response.status_code == 200
        assert response.json()["message"] == "Training is not active"
        assert response.json()["samples_added"] == 0
        assert analyzer.calls == 0

    def test_start_blank_name(self, client):
        response = client.post("/api/training/start", json={"name": " "})

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid input"

    def test_start_missing_body(self, client):
        response = client.post("/api/training/start")

        assert response.status_code == 400


# ============================================================
# Error Handling
# ============================================================

class TestErrorHandling:
    """Tests for error envelopes outside specific routes."""

    def test_unknown_route(self, client):
        response = client.get("/api/does-not-exist")

        assert response.status_code == 404
        assert set(response.json()) == {"error", "details"}

    def test_service_not_initialized(self):
        """Test that routes answer 503 before startup has built the service."""
        client = TestClient(create_app())

        response = client.get("/api/faces")

        assert response.status_code == 503
        assert response.json()["error"] == "Face models are not loaded"
