"""
Face Registry Module

This module keeps the labeled face descriptors that recognition runs against.
Everything lives in process memory: the registry starts empty, is mutated by
training and deletion requests, and is discarded when the process exits.
Restarting the server loses every registered face.

Descriptors are stored per label:
- A label ("Alice") owns one PersonRecord
- Each training sample appends another descriptor to that record
- More samples of the same person make matching more robust

The Registry class provides:
- add_sample: Append a descriptor to a label (creating the record if needed)
- remove_label: Delete a label and all of its descriptors
- clear: Remove everything
- list_labels: Iterate label summaries
- get: Fetch one PersonRecord
- snapshot: Consistent frozen view used to build matchers

Usage:
    from core.registry import Registry

    registry = Registry()
    registry.add_sample("Alice", descriptor)   # -> 1
    registry.add_sample("Alice", descriptor2)  # -> 2

    for summary in registry.list_labels():
        print(f"{summary.label}: {summary.sample_count} samples")
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterator, Optional, Sequence, Tuple

import numpy as np

from core.errors import DimensionMismatch, InvalidInput, NotFound

# Setup logging
logger = logging.getLogger(__name__)


def as_descriptor(values: Any, dim: Optional[int] = None) -> np.ndarray:
    """
    Convert a sequence of numbers into an immutable face descriptor.

    The values are copied into a new 1-D float64 array which is then marked
    read-only, so later changes to the caller's buffer never leak into the
    registry.

    Args:
        values: Sequence or array of numbers (any shape that flattens to 1-D).
        dim: Expected dimensionality. None accepts any non-zero length.

    Returns:
        Read-only float64 ndarray of shape (D,).

    Raises:
        InvalidInput: If the values are not numeric or contain NaN/inf.
        DimensionMismatch: If the vector is empty or its length != dim.
    """
    try:
        descriptor = np.array(values, dtype=np.float64).ravel()
    except (TypeError, ValueError) as e:
        raise InvalidInput("Descriptor must be a sequence of numbers", details=str(e))

    if descriptor.size == 0:
        raise DimensionMismatch("Descriptor is empty")
    if dim is not None and descriptor.shape[0] != dim:
        raise DimensionMismatch(
            f"Expected a {dim}-dimensional descriptor, got {descriptor.shape[0]}"
        )
    if not np.all(np.isfinite(descriptor)):
        raise InvalidInput("Descriptor contains NaN or infinite values")

    descriptor.flags.writeable = False
    return descriptor


def normalize_label(label: Any) -> str:
    """
    Trim a label and reject empty ones.

    Labels are compared by exact string equality after trimming, so
    "Alice" and "alice" are two different people.

    Raises:
        InvalidInput: If the label is not a string or is blank.
    """
    if not isinstance(label, str):
        raise InvalidInput("Label must be a string")
    label = label.strip()
    if not label:
        raise InvalidInput("Label is required")
    return label


@dataclass(frozen=True, eq=False)
class PersonRecord:
    """
    All descriptors registered under one label.

    Records are immutable values: the registry replaces a record with a new
    one when a sample is appended, so a record handed to a caller never
    changes underneath it.

    Attributes:
        label: Trimmed, non-empty person name. Unique within a registry.
        descriptors: Samples in the order they were added (at least one).
        record_id: Sequential id assigned when the label was first seen.
                   Restarts at 1 after Registry.clear().
        created_at: ISO timestamp of the first sample.
        updated_at: ISO timestamp of the latest sample.
    """

    label: str
    descriptors: Tuple[np.ndarray, ...]
    record_id: int = 0
    created_at: str = field(default_factory=lambda: datetime.now().isoformat())
    updated_at: str = ""

    def __post_init__(self):
        """Validate record data after initialization."""
        assert self.label, "label must be non-empty"
        assert len(self.descriptors) > 0, "a record holds at least one descriptor"
        if not self.updated_at:
            object.__setattr__(self, "updated_at", self.created_at)

    @property
    def sample_count(self) -> int:
        """Return the number of descriptors stored for this label."""
        return len(self.descriptors)

    @property
    def descriptor_dim(self) -> int:
        """Return the dimension of the stored descriptors."""
        return int(self.descriptors[0].shape[0])

    def with_sample(self, descriptor: np.ndarray) -> "PersonRecord":
        """Return a copy of this record with one more descriptor appended."""
        return PersonRecord(
            label=self.label,
            descriptors=self.descriptors + (descriptor,),
            record_id=self.record_id,
            created_at=self.created_at,
            updated_at=datetime.now().isoformat(),
        )


@dataclass(frozen=True)
class LabelSummary:
    """One entry of Registry.list_labels()."""

    label: str
    sample_count: int


class LabelListing:
    """
    Restartable view over label summaries.

    The listing is taken over a frozen tuple of records, so iterating it
    twice yields the same items even if the registry changes in between.
    Summaries are produced lazily during iteration.
    """

    def __init__(self, records: Sequence[PersonRecord]):
        self._records = tuple(records)

    def __iter__(self) -> Iterator[LabelSummary]:
        for record in self._records:
            yield LabelSummary(label=record.label, sample_count=record.sample_count)

    def __len__(self) -> int:
        return len(self._records)

    def __bool__(self) -> bool:
        return bool(self._records)


@dataclass(frozen=True, eq=False)
class RegistrySnapshot:
    """Frozen registry contents together with the generation they belong to."""

    records: Tuple[PersonRecord, ...]
    generation: int

    @property
    def total_samples(self) -> int:
        return sum(r.sample_count for r in self.records)


class Registry:
    """
    In-memory store of labeled face descriptors.

    All mutations are serialized by an internal lock, and every read returns
    immutable values taken under the same lock. A generation counter is
    bumped on every mutation so holders of a matcher can tell that it was
    built from older contents.

    Attributes:
        generation: Monotonic counter incremented on every mutation.
        dimension: Descriptor dimensionality, fixed by configuration or by
                   the first sample. None while empty and unconfigured.
    """

    def __init__(self, embedding_dim: Optional[int] = None):
        """
        Initialize an empty registry.

        Args:
            embedding_dim: Required descriptor size. If None, the size of the
                           first sample is adopted until the next clear().
        """
        self._configured_dim = embedding_dim
        self._dim = embedding_dim
        self._records: Dict[str, PersonRecord] = {}
        self._next_record_id = 1
        self._generation = 0
        self._lock = threading.Lock()

        logger.info(f"Registry initialized (embedding_dim={embedding_dim})")

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_sample(self, label: str, descriptor: Any) -> int:
        """
        Add one descriptor under a label.

        If the label already exists the descriptor is appended to its record
        (duplicates allowed); otherwise a new record is created.

        Args:
            label: Person name. Trimmed before use.
            descriptor: Face descriptor (sequence of floats).

        Returns:
            Number of samples now stored for the label.

        Raises:
            InvalidInput: If the label is blank or the descriptor malformed.
            DimensionMismatch: If the descriptor size differs from the
                               registry's dimension.
        """
        label = normalize_label(label)

        with self._lock:
            descriptor = as_descriptor(descriptor, dim=self._dim)

            existing = self._records.get(label)
            if existing is not None:
                record = existing.with_sample(descriptor)
            else:
                record = PersonRecord(
                    label=label,
                    descriptors=(descriptor,),
                    record_id=self._next_record_id,
                )
                self._next_record_id += 1

            self._records[label] = record
            if self._dim is None:
                self._dim = int(descriptor.shape[0])
            self._generation += 1

        logger.info(f"Added sample for '{label}' (samples={record.sample_count})")
        return record.sample_count

    def remove_label(self, label: str) -> None:
        """
        Delete a label and all of its descriptors.

        Raises:
            NotFound: If no record exists for the label.
        """
        key = label.strip() if isinstance(label, str) else label

        with self._lock:
            if key not in self._records:
                raise NotFound(f"Person '{label}' not found")
            del self._records[key]
            self._generation += 1

        logger.info(f"Removed '{key}' from registry")

    def clear(self) -> None:
        """Remove every record and reset the record id counter."""
        with self._lock:
            n_cleared = len(self._records)
            self._records = {}
            self._next_record_id = 1
            self._dim = self._configured_dim
            self._generation += 1

        logger.info(f"Registry cleared ({n_cleared} people removed)")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, label: str) -> PersonRecord:
        """
        Fetch the record for a label.

        Raises:
            NotFound: If no record exists for the label.
        """
        key = label.strip() if isinstance(label, str) else label

        with self._lock:
            record = self._records.get(key)

        if record is None:
            raise NotFound(f"Person '{label}' not found")
        return record

    def list_labels(self) -> LabelListing:
        """Return label summaries in insertion order."""
        with self._lock:
            records = tuple(self._records.values())
        return LabelListing(records)

    def snapshot(self) -> RegistrySnapshot:
        """Return all records and the current generation as one consistent view."""
        with self._lock:
            return RegistrySnapshot(
                records=tuple(self._records.values()),
                generation=self._generation,
            )

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    @property
    def dimension(self) -> Optional[int]:
        with self._lock:
            return self._dim

    @property
    def total_samples(self) -> int:
        """Return the number of descriptors across all labels."""
        with self._lock:
            return sum(r.sample_count for r in self._records.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, label: object) -> bool:
        if not isinstance(label, str):
            return False
        with self._lock:
            return label.strip() in self._records
