"""
Tests for the Matching Module

These tests verify that:
1. FaceMatcher picks the closest registered label and applies the threshold
2. Per-label minimum distance and first-seen tie-breaking behave as documented
3. Distance metrics and confidence policies compute the expected values
4. Edge cases are handled gracefully (empty registry, mismatched dimensions, etc.)

Run with: pytest tests/test_matching.py -v
"""

import math

import numpy as np
import pytest

from core.errors import DimensionMismatch, EmptyRegistry
from core.matching import (
    UNKNOWN_LABEL,
    FaceMatcher,
    MatchResult,
    cosine_distance,
    euclidean_distance,
    linear_confidence,
    normalized_confidence,
    resolve_confidence,
    resolve_metric,
    round_half_up,
)
from core.registry import PersonRecord, Registry, as_descriptor
from tests.helpers import DIM, unit_vector


# ============================================================
# Test Fixtures
# ============================================================

@pytest.fixture
def registry():
    return Registry()


def build(registry, threshold=0.6, **kwargs):
    snapshot = registry.snapshot()
    return FaceMatcher.build(
        snapshot.records, threshold=threshold, generation=snapshot.generation, **kwargs
    )


# ============================================================
# FaceMatcher Tests
# ============================================================

class TestFaceMatcher:
    """Tests for nearest-label matching."""

    def test_exact_match(self, registry):
        """Test that a query equal to a stored sample matches with full confidence."""
        registry.add_sample("Alice", unit_vector(0))
        matcher = build(registry)

        result = matcher.find_best_match(unit_vector(0))

        assert result.label == "Alice"
        assert result.is_match
        assert result.distance == 0.0
        assert result.confidence_percent == 100

    def test_far_query_is_unknown(self, registry):
        """Test that a query beyond the threshold is reported as unknown."""
        registry.add_sample("Alice", unit_vector(0))
        matcher = build(registry)

        result = matcher.find_best_match(unit_vector(1))

        assert result.label == UNKNOWN_LABEL
        assert not result.is_match
        assert result.confidence_percent == 0
        assert result.distance == pytest.approx(math.sqrt(2), abs=1e-5)

    @pytest.mark.parametrize("threshold", [0.5, 0.5999, 0.6, 0.7])
    def test_distance_equal_to_threshold_is_not_a_match(self, registry, threshold):
        """Test that a distance exactly at the threshold is unknown, even for 0.7."""
        registry.add_sample("Alice", np.zeros(DIM))
        matcher = build(registry, threshold=threshold)

        at_threshold = matcher.find_best_match(unit_vector(0, scale=threshold))
        below_threshold = matcher.find_best_match(unit_vector(0, scale=threshold * 0.99))

        assert at_threshold.distance == threshold
        assert not at_threshold.is_match
        assert at_threshold.label == UNKNOWN_LABEL
        assert below_threshold.is_match
        assert below_threshold.label == "Alice"

    def test_custom_metric_at_threshold(self, registry):
        """Test the strict comparison with a metric returning exactly the threshold."""
        registry.add_sample("Alice", unit_vector(0))

        def constant(query, stored):
            return np.full(stored.shape[0], 0.6)

        matcher = build(registry, threshold=0.6, metric=constant)
        result = matcher.find_best_match(unit_vector(5))

        assert result.distance == 0.6
        assert not result.is_match

    def test_closest_label_wins(self, registry):
        """Test that the label with the smallest distance is chosen."""
        registry.add_sample("Alice", unit_vector(0))
        registry.add_sample("Bob", unit_vector(1))
        matcher = build(registry, threshold=1.0)

        query = unit_vector(1) * 0.9
        result = matcher.find_best_match(query)

        assert result.label == "Bob"
        assert result.distance == pytest.approx(0.1, abs=1e-6)
        assert result.confidence_percent == 90

    def test_every_sample_is_searched(self, registry):
        """Test that a label matches through any of its samples, not only the first."""
        registry.add_sample("Alice", unit_vector(0))
        registry.add_sample("Alice", unit_vector(1))
        registry.add_sample("Bob", unit_vector(1) * 0.5)
        matcher = build(registry)

        distances = matcher.label_distances(unit_vector(1))
        result = matcher.find_best_match(unit_vector(1))

        assert distances["Alice"] == 0.0
        assert distances["Bob"] == pytest.approx(0.5)
        assert result.label == "Alice"
        assert matcher.size == 3

    def test_tie_goes_to_first_registered_label(self, registry):
        """Test that equal distances resolve to the label seen first."""
        registry.add_sample("Alice", unit_vector(0))
        registry.add_sample("Bob", unit_vector(0))

        assert build(registry).find_best_match(unit_vector(0)).label == "Alice"

        reversed_registry = Registry()
        reversed_registry.add_sample("Bob", unit_vector(0))
        reversed_registry.add_sample("Alice", unit_vector(0))

        assert build(reversed_registry).find_best_match(unit_vector(0)).label == "Bob"

    def test_matching_is_deterministic(self, registry):
        """Test that repeating a query gives the same result."""
        rng = np.random.default_rng(0)
        for i in range(5):
            registry.add_sample(f"Person {i}", rng.uniform(-1, 1, DIM))
        matcher = build(registry, threshold=10.0)
        query = rng.uniform(-1, 1, DIM)

        assert matcher.find_best_match(query) == matcher.find_best_match(query)

    def test_matcher_is_a_snapshot(self, registry):
        """Test that later registry changes do not affect a built matcher."""
        registry.add_sample("Alice", unit_vector(0))
        matcher = build(registry)

        registry.add_sample("Bob", unit_vector(1))
        registry.remove_label("Alice")

        assert matcher.labels == ["Alice"]
        assert matcher.generation == 1
        assert matcher.find_best_match(unit_vector(0)).label == "Alice"

    def test_labels_in_first_seen_order(self, registry):
        """Test that labels keep registration order."""
        for label in ["Carol", "Alice", "Bob"]:
            registry.add_sample(label, unit_vector(0))

        assert build(registry).labels == ["Carol", "Alice", "Bob"]

    def test_empty_query_rejected(self, registry):
        """Test that an empty query is a dimension error."""
        registry.add_sample("Alice", unit_vector(0))
        with pytest.raises(DimensionMismatch):
            build(registry).find_best_match([])

    def test_wrong_size_query_rejected(self, registry):
        """Test that a query of a different dimension is rejected."""
        registry.add_sample("Alice", unit_vector(0))
        with pytest.raises(DimensionMismatch):
            build(registry).find_best_match(np.ones(DIM + 1))

    def test_build_from_empty_registry(self, registry):
        """Test that a matcher cannot be built without samples."""
        with pytest.raises(EmptyRegistry):
            build(registry)

    def test_constructor_rejects_no_labels(self):
        with pytest.raises(EmptyRegistry):
            FaceMatcher([], np.empty((0, DIM), dtype=np.float32), threshold=0.6)

    def test_build_rejects_mixed_dimensions(self):
        """Test that records with different descriptor sizes cannot be combined."""
        records = [
            PersonRecord(label="Alice", descriptors=(as_descriptor(np.ones(4)),), record_id=1),
            PersonRecord(label="Bob", descriptors=(as_descriptor(np.ones(8)),), record_id=2),
        ]
        with pytest.raises(DimensionMismatch):
            FaceMatcher.build(records, threshold=0.6)

    def test_unknown_metric_name(self, registry):
        registry.add_sample("Alice", unit_vector(0))
        with pytest.raises(ValueError):
            build(registry, metric="manhattan")

    def test_cosine_metric(self, registry):
        """Test matching by direction rather than magnitude."""
        registry.add_sample("Alice", unit_vector(0))
        registry.add_sample("Bob", unit_vector(1))
        matcher = build(registry, threshold=0.5, metric="cosine")

        result = matcher.find_best_match(unit_vector(0, scale=3.0))

        assert result.label == "Alice"
        assert result.distance == pytest.approx(0.0, abs=1e-9)
        assert result.confidence_percent == 100

    def test_linear_confidence_policy(self, registry):
        """Test that the configured confidence policy is applied to matches."""
        registry.add_sample("Alice", np.zeros(DIM, dtype=np.float32))
        matcher = build(registry, threshold=1.0, confidence="linear")

        result = matcher.find_best_match(unit_vector(0, scale=0.5))

        assert result.is_match
        assert result.confidence_percent == 75

    def test_match_result_to_dict(self):
        result = MatchResult(label="Alice", distance=0.1, is_match=True, confidence_percent=90)
        assert result.to_dict() == {
            "label": "Alice",
            "distance": 0.1,
            "is_match": True,
            "confidence_percent": 90,
        }


# ============================================================
# Metric and Confidence Tests
# ============================================================

class TestMetrics:
    """Tests for the distance metrics."""

    def test_euclidean_distance(self):
        stored = np.array([[0.0, 0.0], [3.0, 4.0]], dtype=np.float32)
        query = np.array([0.0, 0.0], dtype=np.float32)

        np.testing.assert_allclose(euclidean_distance(query, stored), [0.0, 5.0])

    def test_cosine_distance(self):
        stored = np.array([[1.0, 0.0], [0.0, 1.0], [-1.0, 0.0]], dtype=np.float32)
        query = np.array([2.0, 0.0], dtype=np.float32)

        np.testing.assert_allclose(cosine_distance(query, stored), [0.0, 1.0, 2.0], atol=1e-9)

    def test_cosine_distance_zero_vector(self):
        """Test that a zero vector is treated as orthogonal to everything."""
        stored = np.array([[1.0, 0.0], [0.0, 0.0]], dtype=np.float32)

        np.testing.assert_allclose(cosine_distance(np.zeros(2), stored), [1.0, 1.0])
        np.testing.assert_allclose(cosine_distance(np.array([1.0, 0.0]), stored), [0.0, 1.0])

    def test_resolve_metric_by_name(self):
        assert resolve_metric("euclidean") is euclidean_distance
        assert resolve_metric("cosine") is cosine_distance

    def test_resolve_metric_passes_callables(self):
        custom = lambda q, s: np.zeros(len(s))  # noqa: E731
        assert resolve_metric(custom) is custom

    def test_resolve_unknown_names(self):
        with pytest.raises(ValueError):
            resolve_metric("hamming")
        with pytest.raises(ValueError):
            resolve_confidence("sigmoid")


class TestConfidence:
    """Tests for confidence policies and rounding."""

    @pytest.mark.parametrize("value,expected", [
        (2.5, 3),
        (3.5, 4),
        (2.4, 2),
        (0.0, 0),
        (99.5, 100),
    ])
    def test_round_half_up(self, value, expected):
        assert round_half_up(value) == expected

    def test_normalized_confidence(self):
        assert normalized_confidence(0.0) == 100
        assert normalized_confidence(0.25) == 75
        assert normalized_confidence(0.125) == 88

    def test_normalized_confidence_clamped_at_zero(self):
        assert normalized_confidence(1.5) == 0

    def test_linear_confidence(self):
        assert linear_confidence(0.0) == 100
        assert linear_confidence(0.5) == 75
        assert linear_confidence(3.0) == 0
