"""
Per-Object Tracking Module for TrackAI.

Keeps one visual tracker per detected person between detections.

Lifecycle:
- UNINITIALIZED: no trackers exist. The first non-empty box list creates
  one tracker per box, in list order, and moves the manager to TRACKING.
- TRACKING: every call advances each tracker on the new frame. New
  detections are not re-associated with existing trackers, so people
  entering or leaving the scene after initialization are not modeled.
  ``reset()`` returns to UNINITIALIZED for a new sequence.

Trackers are plugged in through the AppearanceTracker capability:
- OpenCVAppearanceTracker: OpenCV MIL / KCF / CSRT trackers
- KalmanBoxTracker: appearance-free constant-velocity prediction
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import cv2
import numpy as np

logger = logging.getLogger(__name__)

Box = Tuple[int, int, int, int]  # left, top, width, height


def clip_box(box: Box, frame_shape: Tuple[int, ...]) -> Box:
    """
    Clip a box to the frame, keeping at least one pixel in each dimension.

    Decoded boxes can start left of or above the frame, run past its right
    or bottom edge, or truncate to zero width.

    Args:
        box: (left, top, width, height) in pixels
        frame_shape: Frame shape (rows, cols, ...)

    Returns:
        Box fully inside the frame
    """
    rows, cols = frame_shape[:2]
    left, top, width, height = (int(v) for v in box)

    clipped_left = min(max(left, 0), cols - 1)
    clipped_top = min(max(top, 0), rows - 1)
    right = min(left + width, cols)
    bottom = min(top + height, rows)

    return (
        clipped_left,
        clipped_top,
        max(right - clipped_left, 1),
        max(bottom - clipped_top, 1),
    )


class TrackerState(Enum):
    """Track manager lifecycle states."""
    UNINITIALIZED = 0   # No trackers created yet
    TRACKING = 1        # Trackers live, updated every frame


class AppearanceTracker(ABC):
    """Abstract single-object tracker capability."""

    def __init__(self):
        self.last_update_ok = True

    @abstractmethod
    def initialize(self, frame: np.ndarray, box: Box) -> None:
        """Seed the tracker with a frame and the target's box."""
        pass

    @abstractmethod
    def update(self, frame: np.ndarray) -> Box:
        """Advance to a new frame and return the refreshed box."""
        pass


class OpenCVAppearanceTracker(AppearanceTracker):
    """
    Wrapper around OpenCV's single-object trackers.

    MIL ships with every OpenCV build. KCF and CSRT need the contrib
    modules and are looked up in both the main and ``cv2.legacy``
    namespaces.
    """

    FACTORIES = {
        "mil": "TrackerMIL_create",
        "kcf": "TrackerKCF_create",
        "csrt": "TrackerCSRT_create",
    }

    def __init__(self, algorithm: str = "mil"):
        """
        Args:
            algorithm: OpenCV tracker name (mil, kcf, csrt)

        Raises:
            ValueError: If the algorithm is unknown or not in this OpenCV build
        """
        super().__init__()
        self.algorithm = algorithm.lower()
        self._factory = self._resolve_factory(self.algorithm)
        self._tracker = None
        self._box: Optional[Box] = None

    @classmethod
    def _resolve_factory(cls, algorithm: str) -> Callable[[], Any]:
        if algorithm not in cls.FACTORIES:
            raise ValueError(f"Unknown OpenCV tracker: {algorithm}")

        name = cls.FACTORIES[algorithm]
        for namespace in (cv2, getattr(cv2, "legacy", None)):
            factory = getattr(namespace, name, None) if namespace is not None else None
            if factory is not None:
                return factory

        raise ValueError(
            f"OpenCV tracker '{algorithm}' is not available in this OpenCV build "
            f"(install opencv-contrib-python)"
        )

    @classmethod
    def is_available(cls, algorithm: str) -> bool:
        try:
            cls._resolve_factory(algorithm.lower())
        except ValueError:
            return False
        return True

    def initialize(self, frame: np.ndarray, box: Box) -> None:
        """
        Seed the OpenCV tracker with the box clipped to the frame.

        If OpenCV rejects the box the target is kept at that box and
        reported as lost on every update.
        """
        self._box = clip_box(box, frame.shape)
        self._tracker = self._factory()

        try:
            self._tracker.init(frame, self._box)
        except cv2.error as e:
            logger.warning(f"{self.algorithm} tracker init failed for box {self._box}: {e}")
            self._tracker = None
            self.last_update_ok = False
            return

        self.last_update_ok = True

    def update(self, frame: np.ndarray) -> Box:
        """
        Update on a new frame.

        A failed update keeps the previous box and clears ``last_update_ok``;
        lost targets are not reported as errors.
        """
        if self._box is None:
            raise RuntimeError("Tracker not initialized")

        if self._tracker is None:
            self.last_update_ok = False
            return self._box

        try:
            ok, box = self._tracker.update(frame)
        except cv2.error as e:
            logger.warning(f"{self.algorithm} tracker update raised: {e}")
            ok, box = False, None
        self.last_update_ok = bool(ok)

        if ok:
            self._box = tuple(int(round(v)) for v in box)
        else:
            logger.debug(f"{self.algorithm} tracker update failed, keeping last box")

        return self._box


class KalmanFilter:
    """
    Kalman Filter for bounding box tracking.

    State vector: [x, y, s, r, vx, vy, vs]
    - (x, y): Bounding box center
    - s: Scale (area)
    - r: Aspect ratio (constant)
    - (vx, vy, vs): Velocities
    """

    def __init__(self, box: Box):
        """Initialize filter with an initial (left, top, width, height) box."""
        cx, cy, s, r = self._box_to_measurement(box)

        self.x = np.array([cx, cy, s, r, 0, 0, 0], dtype=np.float32)

        # State transition matrix
        self.F = np.array([
            [1, 0, 0, 0, 1, 0, 0],
            [0, 1, 0, 0, 0, 1, 0],
            [0, 0, 1, 0, 0, 0, 1],
            [0, 0, 0, 1, 0, 0, 0],
            [0, 0, 0, 0, 1, 0, 0],
            [0, 0, 0, 0, 0, 1, 0],
            [0, 0, 0, 0, 0, 0, 1]
        ], dtype=np.float32)

        # Covariance matrices
        self.P = np.eye(7, dtype=np.float32) * 10.0  # State covariance
        self.Q = np.eye(7, dtype=np.float32) * 0.01  # Process noise

        # Unobserved velocities start uncertain
        self.P[4:, 4:] *= 1000.0

    def predict(self) -> Box:
        """Predict next state and return predicted box."""
        self.x = self.F @ self.x
        self.P = self.F @ self.P @ self.F.T + self.Q
        return self._state_to_box()

    @staticmethod
    def _box_to_measurement(box: Box) -> Tuple[float, float, float, float]:
        left, top, w, h = box
        cx, cy = left + w / 2, top + h / 2
        s = w * h
        r = w / h if h > 0 else 1.0
        return cx, cy, s, r

    def _state_to_box(self) -> Box:
        cx, cy, s, r = self.x[:4]

        # Ensure positive values
        s = max(s, 1.0)
        r = max(r, 0.1)

        w = np.sqrt(s * r)
        h = s / w if w > 0 else np.sqrt(s)

        return (int(cx - w / 2), int(cy - h / 2), int(round(w)), int(round(h)))


class KalmanBoxTracker(AppearanceTracker):
    """
    Motion-only tracker: predicts each box with a constant-velocity model.

    Ignores frame content, so it is deterministic and works on any
    OpenCV build. Detections are never fed back after initialization,
    so predictions hold the initial box.
    """

    def __init__(self):
        super().__init__()
        self._filter: Optional[KalmanFilter] = None

    def initialize(self, frame: np.ndarray, box: Box) -> None:
        self._filter = KalmanFilter(box)
        self.last_update_ok = True

    def update(self, frame: np.ndarray) -> Box:
        if self._filter is None:
            raise RuntimeError("Tracker not initialized")
        return self._filter.predict()


TRACKER_ALGORITHMS = ("mil", "kcf", "csrt", "kalman")


def create_appearance_tracker(algorithm: str = "mil") -> AppearanceTracker:
    """
    Factory function to create a single-object tracker.

    Args:
        algorithm: Tracker algorithm (mil, kcf, csrt, kalman)

    Returns:
        Uninitialized AppearanceTracker
    """
    algorithm = algorithm.lower()

    if algorithm == "kalman":
        return KalmanBoxTracker()
    elif algorithm in OpenCVAppearanceTracker.FACTORIES:
        return OpenCVAppearanceTracker(algorithm)
    else:
        raise ValueError(f"Unknown tracker algorithm: {algorithm}")


@dataclass
class TrackerConfig:
    """Configuration for the track manager."""

    algorithm: str = "mil"

    def __post_init__(self):
        self.algorithm = self.algorithm.lower()
        if self.algorithm not in TRACKER_ALGORITHMS:
            raise ValueError(f"Unknown tracker algorithm: {self.algorithm}")

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "TrackerConfig":
        data = data or {}
        return cls(algorithm=data.get("algorithm", "mil"))

    def to_dict(self) -> Dict[str, Any]:
        return {"algorithm": self.algorithm}

    def factory(self) -> Callable[[], AppearanceTracker]:
        algorithm = self.algorithm
        return lambda: create_appearance_tracker(algorithm)


@dataclass
class TrackedObject:
    """A person followed by one appearance tracker."""

    track_id: int
    tracker: AppearanceTracker = field(repr=False)
    box: Box
    age: int = 0          # Updates since initialization
    hits: int = 0         # Successful updates

    @property
    def center(self) -> Tuple[float, float]:
        left, top, width, height = self.box
        return (left + width / 2.0, top + height / 2.0)

    @property
    def last_update_ok(self) -> bool:
        return self.tracker.last_update_ok

    def to_dict(self) -> Dict[str, Any]:
        return {
            "track_id": self.track_id,
            "box": self.box,
            "center": self.center,
            "age": self.age,
            "hits": self.hits,
            "last_update_ok": self.last_update_ok,
        }


class TrackManager:
    """
    Owns the tracked objects of one run.

    Example:
        >>> manager = TrackManager(TrackerConfig("kalman").factory())
        >>> manager.track(frame0, [(10, 10, 20, 20), (30, 30, 40, 40)])
        []
        >>> [obj.track_id for obj in manager.track(frame1, [])]
        [1, 2]
    """

    def __init__(
        self,
        tracker_factory: Optional[Callable[[], AppearanceTracker]] = None,
    ):
        """
        Args:
            tracker_factory: Builds one AppearanceTracker per object
                (defaults to OpenCV MIL)
        """
        self.tracker_factory = tracker_factory or TrackerConfig().factory()

        self._state = TrackerState.UNINITIALIZED
        self._objects: List[TrackedObject] = []
        self._frame_count = 0

    @property
    def state(self) -> TrackerState:
        return self._state

    @property
    def is_initialized(self) -> bool:
        return self._state == TrackerState.TRACKING

    @property
    def num_trackers(self) -> int:
        return len(self._objects)

    @property
    def tracked_objects(self) -> List[TrackedObject]:
        return list(self._objects)

    def track(
        self,
        frame: np.ndarray,
        boxes: Sequence[Box],
    ) -> List[TrackedObject]:
        """
        Initialize trackers on the first non-empty box list, update them after.

        Args:
            frame: Current BGR frame
            boxes: Detected boxes; only used for initialization

        Returns:
            Updated tracked objects in identity order; empty on the
            initialization call and while no boxes have been seen
        """
        self._frame_count += 1

        if self._state == TrackerState.UNINITIALIZED:
            if boxes:
                self._initialize(frame, boxes)
            return []

        for obj in self._objects:
            obj.box = tuple(int(v) for v in obj.tracker.update(frame))
            obj.age += 1
            if obj.tracker.last_update_ok:
                obj.hits += 1

        return self.tracked_objects

    def _initialize(self, frame: np.ndarray, boxes: Sequence[Box]) -> None:
        objects = []
        for track_id, box in enumerate(boxes, start=1):
            box = tuple(int(v) for v in box)
            tracker = self.tracker_factory()
            tracker.initialize(frame, box)
            objects.append(TrackedObject(track_id=track_id, tracker=tracker, box=box))

        self._objects = objects
        self._state = TrackerState.TRACKING
        logger.info(f"Tracker initialized with {len(objects)} objects")

    def reset(self) -> None:
        """Drop all trackers and return to UNINITIALIZED."""
        self._objects = []
        self._state = TrackerState.UNINITIALIZED
        self._frame_count = 0
        logger.info("Tracker reset")

    def get_statistics(self) -> Dict[str, Any]:
        """Get tracking statistics."""
        return {
            "state": self._state.name,
            "live_trackers": self.num_trackers,
            "lost_trackers": sum(1 for o in self._objects if not o.last_update_ok),
            "frames_processed": self._frame_count,
        }
