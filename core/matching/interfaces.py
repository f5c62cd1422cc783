"""
Matching Interfaces Module

This module defines the types shared by the matcher and its pluggable
policies.

The matching pipeline has three pieces:
1. DistanceMetric - distance between a query and every stored descriptor
2. ConfidencePolicy - turns the winning distance into a 0-100 percentage
3. FaceMatcher - picks the closest label and applies the threshold

Any callable with the right signature can be used as a metric or a
confidence policy; the built-in ones live in core/matching/metrics.py.

Usage:
    from core.matching.interfaces import MatchResult, UNKNOWN_LABEL

    result = matcher.find_best_match(query)
    if result.is_match:
        print(f"{result.label} ({result.confidence_percent}%)")
"""

import numpy as np
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict


# Label reported when no stored descriptor is close enough
UNKNOWN_LABEL = "unknown"

# (query (D,), stored (N, D)) -> distances (N,)
DistanceMetric = Callable[[np.ndarray, np.ndarray], np.ndarray]

# distance -> confidence percentage in [0, 100]
ConfidencePolicy = Callable[[float], int]


@dataclass(frozen=True)
class MatchResult:
    """
    Result of matching one query descriptor.

    Attributes:
        label: Winning person label, or "unknown" when the closest stored
               descriptor is not within the threshold.
        distance: Smallest distance between the query and any stored
                  descriptor (regardless of whether it is a match).
        is_match: True if distance < threshold.
        confidence_percent: Integer in [0, 100]. Always 0 for non-matches.
    """

    label: str
    distance: float
    is_match: bool
    confidence_percent: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
