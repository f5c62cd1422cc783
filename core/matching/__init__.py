"""
Matching Module for Face Recognition

This package contains the nearest-label matcher and its pluggable policies.

Components:
    - interfaces: MatchResult and the metric/confidence callable types
    - metrics: Built-in distance metrics and confidence policies
    - face_matcher: Snapshot matcher over all registered descriptors

Usage:
    from core.matching import FaceMatcher

    matcher = FaceMatcher.build(registry.snapshot().records, threshold=0.6)
    result = matcher.find_best_match(descriptor)
"""

from core.matching.interfaces import (
    UNKNOWN_LABEL,
    ConfidencePolicy,
    DistanceMetric,
    MatchResult,
)
from core.matching.metrics import (
    CONFIDENCE_POLICIES,
    DISTANCE_METRICS,
    cosine_distance,
    euclidean_distance,
    linear_confidence,
    normalized_confidence,
    resolve_confidence,
    resolve_metric,
    round_half_up,
)
from core.matching.face_matcher import FaceMatcher

__all__ = [
    # Data classes
    "MatchResult",
    "UNKNOWN_LABEL",
    # Callable types
    "DistanceMetric",
    "ConfidencePolicy",
    # Built-in policies
    "euclidean_distance",
    "cosine_distance",
    "normalized_confidence",
    "linear_confidence",
    "DISTANCE_METRICS",
    "CONFIDENCE_POLICIES",
    "resolve_metric",
    "resolve_confidence",
    "round_half_up",
    # Matcher
    "FaceMatcher",
]
