"""
Face Matcher: nearest-label search over every registered descriptor.

The matcher is an immutable snapshot. It copies every descriptor of every
PersonRecord into one (N, D) matrix at build time, so later registry
mutations never change its answers. Callers rebuild it after each write.

Matching compares the query against all stored samples independently:
the per-label minimum distance decides each label's score, and the label
with the smallest of those wins. Ties go to the label that was registered
first.

Rebuilding costs O(total descriptors) per registry write. That is fine at
the scale of an interactive demo; a larger deployment would want an
incremental index instead.
"""

import logging
from typing import Dict, Iterable, List, Optional, Tuple, Union

import numpy as np

from core.errors import DimensionMismatch, EmptyRegistry
from core.matching.interfaces import (
    UNKNOWN_LABEL,
    ConfidencePolicy,
    DistanceMetric,
    MatchResult,
)
from core.matching.metrics import resolve_confidence, resolve_metric
from core.registry import PersonRecord, as_descriptor

logger = logging.getLogger(__name__)


class FaceMatcher:
    """
    Find the registered person closest to a query descriptor.

    Use FaceMatcher.build() rather than the constructor; it refuses to build
    a matcher over an empty registry.

    Args:
        labels: Per-row label of the stored matrix, (N,).
        descriptors: Stored descriptors, (N, D) float64.
        threshold: Distances strictly below this are matches.
        metric: Distance metric name or callable.
        confidence: Confidence policy name or callable.
        generation: Registry generation the snapshot was taken at.
    """

    def __init__(
        self,
        labels: List[str],
        descriptors: np.ndarray,
        threshold: float,
        metric: Union[str, DistanceMetric] = "euclidean",
        confidence: Union[str, ConfidencePolicy] = "normalized",
        generation: Optional[int] = None,
    ):
        if len(labels) == 0:
            raise EmptyRegistry("Cannot build a matcher without registered faces")
        assert descriptors.ndim == 2 and descriptors.shape[0] == len(labels), \
            f"descriptors must be (N, D) with N={len(labels)}, got {descriptors.shape}"

        self.threshold = float(threshold)
        self.generation = generation
        self._metric = resolve_metric(metric)
        self._confidence = resolve_confidence(confidence)

        # Label order is first-seen order; row_label_index maps rows to it
        self._labels: List[str] = []
        index_of: Dict[str, int] = {}
        row_index = np.empty(len(labels), dtype=np.int64)
        for row, label in enumerate(labels):
            if label not in index_of:
                index_of[label] = len(self._labels)
                self._labels.append(label)
            row_index[row] = index_of[label]

        self._row_label_index = row_index
        self._descriptors = np.array(descriptors, dtype=np.float64)
        self._descriptors.flags.writeable = False

    @classmethod
    def build(
        cls,
        records: Iterable[PersonRecord],
        threshold: float,
        metric: Union[str, DistanceMetric] = "euclidean",
        confidence: Union[str, ConfidencePolicy] = "normalized",
        generation: Optional[int] = None,
    ) -> "FaceMatcher":
        """
        Build a matcher from registry records.

        Every descriptor of every record becomes one searchable row, in
        record order and then sample order.

        Args:
            records: PersonRecords, usually Registry.snapshot().records.
            threshold: Maximum distance (exclusive) for a match.
            metric: "euclidean", "cosine", or a callable.
            confidence: "normalized", "linear", or a callable.
            generation: Registry generation of the records, for staleness checks.

        Returns:
            A new FaceMatcher.

        Raises:
            EmptyRegistry: If there are no records or no descriptors.
            DimensionMismatch: If stored descriptors differ in size.
        """
        pairs: List[Tuple[str, np.ndarray]] = [
            (record.label, descriptor)
            for record in records
            for descriptor in record.descriptors
        ]
        if not pairs:
            raise EmptyRegistry("Cannot build a matcher without registered faces")

        dims = {d.shape[0] for _, d in pairs}
        if len(dims) != 1:
            raise DimensionMismatch(
                f"Stored descriptors have mixed dimensions: {sorted(dims)}"
            )

        labels = [label for label, _ in pairs]
        matrix = np.stack([d for _, d in pairs]).astype(np.float64)

        matcher = cls(
            labels,
            matrix,
            threshold=threshold,
            metric=metric,
            confidence=confidence,
            generation=generation,
        )
        logger.debug(
            f"Built matcher: {len(matcher.labels)} labels, {matcher.size} descriptors, "
            f"threshold={matcher.threshold}, generation={generation}"
        )
        return matcher

    @property
    def labels(self) -> List[str]:
        """Registered labels in first-seen order."""
        return list(self._labels)

    @property
    def size(self) -> int:
        """Number of stored descriptors."""
        return int(self._descriptors.shape[0])

    @property
    def dimension(self) -> int:
        return int(self._descriptors.shape[1])

    def _distances(self, query) -> np.ndarray:
        """Validate the query and return its distance to every stored row."""
        query = as_descriptor(query)
        if query.shape[0] != self.dimension:
            raise DimensionMismatch(
                f"Query descriptor has {query.shape[0]} dimensions, "
                f"stored descriptors have {self.dimension}"
            )
        return np.asarray(self._metric(query, self._descriptors), dtype=np.float64)

    def _per_label_minimum(self, distances: np.ndarray) -> np.ndarray:
        """Reduce row distances to the minimum distance per label."""
        per_label = np.full(len(self._labels), np.inf, dtype=np.float64)
        np.minimum.at(per_label, self._row_label_index, distances)
        return per_label

    def label_distances(self, query) -> Dict[str, float]:
        """
        Return the minimum distance from the query to each label.

        Raises:
            DimensionMismatch: If the query is empty or of the wrong size.
        """
        per_label = self._per_label_minimum(self._distances(query))
        return {label: float(d) for label, d in zip(self._labels, per_label)}

    def find_best_match(self, query) -> MatchResult:
        """
        Find the label closest to a query descriptor.

        Args:
            query: (D,) descriptor.

        Returns:
            MatchResult for the winning label, or "unknown" when the smallest
            distance is not strictly below the threshold.

        Raises:
            DimensionMismatch: If the query is empty or of the wrong size.
        """
        per_label = self._per_label_minimum(self._distances(query))

        # argmin returns the first occurrence, i.e. the first-seen label on ties
        best = int(np.argmin(per_label))
        min_distance = float(per_label[best])

        if min_distance < self.threshold:
            return MatchResult(
                label=self._labels[best],
                distance=min_distance,
                is_match=True,
                confidence_percent=int(self._confidence(min_distance)),
            )

        return MatchResult(
            label=UNKNOWN_LABEL,
            distance=min_distance,
            is_match=False,
            confidence_percent=0,
        )

    def __repr__(self) -> str:
        return (
            f"FaceMatcher(labels={len(self._labels)}, descriptors={self.size}, "
            f"threshold={self.threshold}, generation={self.generation})"
        )
