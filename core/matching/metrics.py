"""
Distance metrics and confidence policies for face matching.

Metrics are vectorized: they compare one query against a whole matrix of
stored descriptors in a single call.
"""

import math
from typing import Dict, Union

import numpy as np

from core.matching.interfaces import ConfidencePolicy, DistanceMetric


def euclidean_distance(query: np.ndarray, stored: np.ndarray) -> np.ndarray:
    """
    Euclidean (L2) distance: sqrt(sum((q_i - d_i)^2)).

    Args:
        query: (D,) descriptor.
        stored: (N, D) descriptors.

    Returns:
        (N,) float64 distances.
    """
    diff = stored.astype(np.float64) - query.astype(np.float64)
    return np.sqrt(np.sum(diff * diff, axis=1))


def cosine_distance(query: np.ndarray, stored: np.ndarray) -> np.ndarray:
    """
    Cosine distance: 1 - cosine similarity, in [0, 2].

    Zero-norm vectors have no direction; their distance is reported as 1.0
    (orthogonal) instead of dividing by zero.
    """
    query = query.astype(np.float64)
    stored = stored.astype(np.float64)

    query_norm = np.linalg.norm(query)
    stored_norms = np.linalg.norm(stored, axis=1)
    denom = stored_norms * query_norm

    similarity = np.zeros(stored.shape[0], dtype=np.float64)
    valid = denom > 1e-12
    similarity[valid] = (stored[valid] @ query) / denom[valid]

    # Clamp to [-1, 1] for numerical stability
    similarity = np.clip(similarity, -1.0, 1.0)
    return 1.0 - similarity


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values (2.5 -> 3, not 2)."""
    return int(math.floor(value + 0.5))


def normalized_confidence(distance: float) -> int:
    """Confidence for distances normalized to [0, 1]: 100 * (1 - d)."""
    return round_half_up(max(0.0, 100.0 * (1.0 - distance)))


def linear_confidence(distance: float) -> int:
    """Confidence used with the simulated detector: 100 - d * 50."""
    return round_half_up(max(0.0, 100.0 - distance * 50.0))


DISTANCE_METRICS: Dict[str, DistanceMetric] = {
    "euclidean": euclidean_distance,
    "cosine": cosine_distance,
}

CONFIDENCE_POLICIES: Dict[str, ConfidencePolicy] = {
    "normalized": normalized_confidence,
    "linear": linear_confidence,
}


def resolve_metric(metric: Union[str, DistanceMetric]) -> DistanceMetric:
    """
    Look up a distance metric by name, or pass a callable through.

    Raises:
        ValueError: If the name is not a known metric.
    """
    if callable(metric):
        return metric
    try:
        return DISTANCE_METRICS[metric]
    except KeyError:
        raise ValueError(
            f"Unknown distance metric '{metric}'. "
            f"Available: {list(DISTANCE_METRICS.keys())}"
        )


def resolve_confidence(policy: Union[str, ConfidencePolicy]) -> ConfidencePolicy:
    """
    Look up a confidence policy by name, or pass a callable through.

    Raises:
        ValueError: If the name is not a known policy.
    """
    if callable(policy):
        return policy
    try:
        return CONFIDENCE_POLICIES[policy]
    except KeyError:
        raise ValueError(
            f"Unknown confidence policy '{policy}'. "
            f"Available: {list(CONFIDENCE_POLICIES.keys())}"
        )
