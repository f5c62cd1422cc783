"""
Timed Training Session

Interactive registration: the user starts a session for a name, looks at the
camera, and every face frame submitted during the next few seconds is added
as another sample for that name. The session stops by itself when the
countdown runs out, or earlier on an explicit stop.

States:
    IDLE -> TRAINING(label, deadline) -> IDLE

Stopping is idempotent. A manual stop after the countdown fired, or two
stops in a row, do nothing and return False.

Usage:
    session = TrainingSession(service, duration_sec=3.0)
    session.start("Alice")
    session.submit([face.descriptor for face in faces])
    session.stop()
"""

import logging
import threading
import time
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Optional

from core.face_service import FaceService
from core.registry import as_descriptor, normalize_label

logger = logging.getLogger(__name__)


class TrainingState(str, Enum):
    IDLE = "idle"
    TRAINING = "training"


class TrainingSession:
    """
    Fixed-duration training mode for one FaceService.

    Args:
        service: FaceService whose registry receives the samples.
        duration_sec: Countdown length; the session auto-stops afterwards.
        clock: Monotonic time source (seconds).
        on_stop: Optional callback invoked with the session after every
                 transition back to IDLE.
    """

    def __init__(
        self,
        service: FaceService,
        duration_sec: float = 3.0,
        clock: Callable[[], float] = time.monotonic,
        on_stop: Optional[Callable[["TrainingSession"], None]] = None,
    ):
        if duration_sec <= 0:
            raise ValueError(f"duration_sec must be positive, got {duration_sec}")

        self.service = service
        self.duration_sec = float(duration_sec)
        self._clock = clock
        self._on_stop = on_stop
        self._lock = threading.Lock()

        self._state = TrainingState.IDLE
        self._label: Optional[str] = None
        self._deadline: Optional[float] = None
        self._timer: Optional[threading.Timer] = None
        self._samples_added = 0
        # Bumped on every start so a stale timer cannot stop a newer session
        self._session_id = 0

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def start(self, label: str) -> float:
        """
        Enter TRAINING for a label and start the countdown.

        Starting while already training restarts the countdown for the
        new label.

        Returns:
            The deadline, in clock() seconds.

        Raises:
            InvalidInput: If the label is blank.
        """
        label = normalize_label(label)

        with self._lock:
            if self._timer is not None:
                self._timer.cancel()

            self._session_id += 1
            session_id = self._session_id
            self._state = TrainingState.TRAINING
            self._label = label
            self._samples_added = 0
            self._deadline = self._clock() + self.duration_sec

            self._timer = threading.Timer(self.duration_sec, self._expire, args=(session_id,))
            self._timer.daemon = True
            self._timer.start()
            deadline = self._deadline

        logger.info(f"Training started for '{label}' ({self.duration_sec:.1f}s)")
        return deadline

    def stop(self) -> bool:
        """
        Return to IDLE and rebuild the matcher.

        Returns:
            True if a session was stopped, False if already IDLE.
        """
        with self._lock:
            stopped = self._stop_locked()
        if stopped:
            self._after_stop()
        return stopped

    def _expire(self, session_id: int) -> None:
        """Timer callback. Ignored if the session was stopped or restarted."""
        with self._lock:
            if session_id != self._session_id:
                return
            stopped = self._stop_locked()
        if stopped:
            logger.info("Training countdown expired")
            self._after_stop()

    def _stop_locked(self) -> bool:
        if self._state is TrainingState.IDLE:
            return False

        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

        logger.info(f"Training stopped for '{self._label}' ({self._samples_added} samples)")
        self._state = TrainingState.IDLE
        self._label = None
        self._deadline = None
        return True

    def _after_stop(self) -> None:
        self.service.rebuild_matcher()
        if self._on_stop is not None:
            self._on_stop(self)

    # ------------------------------------------------------------------
    # Frames
    # ------------------------------------------------------------------

    def submit(self, descriptors: Iterable[Any]) -> int:
        """
        Add each descriptor as a sample for the current label.

        The whole frame is validated first, so a malformed descriptor adds
        nothing.

        Returns:
            Number of samples added; 0 while IDLE. A frame that arrives after
            the deadline (before the timer fired) stops the session instead.

        Raises:
            InvalidInput: If a descriptor is malformed.
            DimensionMismatch: If descriptor sizes differ from each other or
                               from the registry.
        """
        expired = False
        with self._lock:
            if self._state is TrainingState.IDLE:
                return 0
            if self._clock() >= self._deadline:
                expired = self._stop_locked()
                label = None
            else:
                label = self._label

        if expired:
            self._after_stop()
            return 0

        dim = self.service.registry.dimension
        batch = []
        for descriptor in descriptors:
            descriptor = as_descriptor(descriptor, dim=dim)
            dim = descriptor.shape[0]
            batch.append(descriptor)

        added = 0
        try:
            for descriptor in batch:
                self.service.add_sample(label, descriptor)
                added += 1
        finally:
            with self._lock:
                if self._label == label:
                    self._samples_added += added
        return added

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> TrainingState:
        return self._state

    @property
    def label(self) -> Optional[str]:
        return self._label

    @property
    def deadline(self) -> Optional[float]:
        return self._deadline

    @property
    def samples_added(self) -> int:
        return self._samples_added

    def remaining(self) -> float:
        """Seconds left in the countdown (0.0 while IDLE)."""
        with self._lock:
            if self._deadline is None:
                return 0.0
            return max(0.0, self._deadline - self._clock())

    def status(self) -> Dict[str, Any]:
        with self._lock:
            remaining = 0.0 if self._deadline is None else max(0.0, self._deadline - self._clock())
            return {
                "state": self._state.value,
                "label": self._label,
                "remaining_sec": round(remaining, 3),
                "samples_added": self._samples_added,
                "duration_sec": self.duration_sec,
            }

    def close(self) -> None:
        """Cancel any pending countdown without rebuilding."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
