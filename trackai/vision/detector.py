"""
YOLO Detection Decoding for TrackAI.

Turns the raw output tensor of a YOLOv8 network into labeled candidate
boxes in source-image pixel coordinates, then reduces them with
non-maximum suppression.

Tensor layout:
- The network emits (1, dimensions, rows): channel-major, one column per
  candidate.
- Decoding works on the transposed (rows, dimensions) view: axis 0 spans
  candidates, axis 1 spans per-candidate values
  [cx, cy, w, h, score_0, score_1, ...].

Features:
- Bounds-checked strided tensor view
- Independent x/y rescaling from network input to source resolution
- Score filtering and greedy NMS
- Optional square padding of non-square frames
"""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import cv2
import numpy as np

from .inference import InferenceProvider, create_inference_provider
from .suppression import non_max_suppression

logger = logging.getLogger(__name__)

Box = Tuple[int, int, int, int]  # left, top, width, height

NUM_GEOMETRY_VALUES = 4
DEFAULT_CLASS_LIST = ["person"]


class TensorView:
    """
    Row-major view over a decoded network output.

    Wraps a (rows, dimensions) array and exposes (row, column) access with
    explicit bounds checks instead of walking a flat buffer.
    """

    def __init__(self, data: np.ndarray):
        if data.ndim != 2:
            raise ValueError(f"TensorView expects a 2D array, got shape {data.shape}")
        self._data = data

    @classmethod
    def from_raw(cls, tensor: np.ndarray) -> "TensorView":
        """
        Build a row-major view from a channel-major network output.

        Args:
            tensor: Array shaped (1, dimensions, rows) or (dimensions, rows)

        Raises:
            ValueError: If the shape cannot hold geometry plus one class score
        """
        raw = np.asarray(tensor, dtype=np.float32)

        if raw.ndim == 3:
            if raw.shape[0] != 1:
                raise ValueError(f"Expected batch size 1, got shape {raw.shape}")
            raw = raw[0]
        elif raw.ndim != 2:
            raise ValueError(f"Unsupported tensor shape: {raw.shape}")

        dimensions, rows = raw.shape
        if dimensions <= NUM_GEOMETRY_VALUES:
            raise ValueError(
                f"Tensor needs more than {NUM_GEOMETRY_VALUES} values per "
                f"candidate, got {dimensions}"
            )

        return cls(np.ascontiguousarray(raw.T))

    @property
    def rows(self) -> int:
        return self._data.shape[0]

    @property
    def dimensions(self) -> int:
        return self._data.shape[1]

    @property
    def num_score_columns(self) -> int:
        return self.dimensions - NUM_GEOMETRY_VALUES

    def _check_row(self, row: int) -> None:
        if not 0 <= row < self.rows:
            raise IndexError(f"Row {row} out of range [0, {self.rows})")

    def _check_column(self, column: int) -> None:
        if not 0 <= column < self.dimensions:
            raise IndexError(f"Column {column} out of range [0, {self.dimensions})")

    def value(self, row: int, column: int) -> float:
        """Single value at (row, column)."""
        self._check_row(row)
        self._check_column(column)
        return float(self._data[row, column])

    def geometry(self, row: int) -> Tuple[float, float, float, float]:
        """(cx, cy, w, h) of one candidate in network input pixels."""
        self._check_row(row)
        cx, cy, w, h = self._data[row, :NUM_GEOMETRY_VALUES]
        return float(cx), float(cy), float(w), float(h)

    def class_scores(self, num_classes: Optional[int] = None) -> np.ndarray:
        """(rows, num_classes) block of class scores, first columns only."""
        available = self.num_score_columns
        if num_classes is None:
            num_classes = available
        if not 0 < num_classes <= available:
            raise IndexError(
                f"Requested {num_classes} score columns, tensor has {available}"
            )
        start = NUM_GEOMETRY_VALUES
        return self._data[:, start:start + num_classes]


@dataclass
class Candidate:
    """Single decoded detection before suppression."""

    box: Box
    class_id: int
    score: float
    class_name: str = ""

    @property
    def center(self) -> Tuple[float, float]:
        """Get bounding box center point."""
        left, top, width, height = self.box
        return (left + width / 2.0, top + height / 2.0)

    @property
    def area(self) -> int:
        """Get bounding box area in pixels."""
        _, _, width, height = self.box
        return max(width, 0) * max(height, 0)

    def to_dict(self) -> Dict[str, Any]:
        """Convert candidate to dictionary."""
        return {
            "class_id": self.class_id,
            "class_name": self.class_name,
            "score": round(self.score, 4),
            "box": self.box,
            "center": self.center,
            "area": self.area,
        }


@dataclass
class DetectionResult:
    """Decoded and suppressed detections for one frame."""

    frame_id: int
    candidates: List[Candidate]
    indices: List[int]
    inference_time_ms: float = 0.0
    frame_shape: Tuple[int, ...] = ()

    @property
    def num_detections(self) -> int:
        """Number of detections that survived suppression."""
        return len(self.indices)

    @property
    def detections(self) -> List[Candidate]:
        """Surviving candidates in survival order."""
        return [self.candidates[i] for i in self.indices]

    @property
    def boxes(self) -> List[Box]:
        return [self.candidates[i].box for i in self.indices]

    def to_dict(self) -> Dict[str, Any]:
        """Convert result to dictionary."""
        return {
            "frame_id": self.frame_id,
            "num_candidates": len(self.candidates),
            "num_detections": self.num_detections,
            "indices": list(self.indices),
            "inference_time_ms": round(self.inference_time_ms, 2),
            "frame_shape": self.frame_shape,
            "detections": [d.to_dict() for d in self.detections],
        }


def decode_detections(
    tensor: Union[np.ndarray, TensorView],
    source_shape: Sequence[int],
    class_list: Sequence[str],
    score_threshold: float = 0.45,
    input_size: Tuple[int, int] = (640, 640),
) -> List[Candidate]:
    """
    Decode a raw network output into candidates above the score threshold.

    Only the first ``len(class_list)`` score columns are considered. Box
    coordinates are scaled independently in x and y from the network input
    size to the source size and truncated toward zero.

    Args:
        tensor: Raw output (1, dimensions, rows) or a prepared TensorView
        source_shape: Source image shape (height, width[, channels])
        class_list: Known class names
        score_threshold: Exclusive minimum class score
        input_size: Network input resolution (width, height)

    Returns:
        Candidates in tensor row order
    """
    if not class_list:
        raise ValueError("class_list must contain at least one class")

    view = tensor if isinstance(tensor, TensorView) else TensorView.from_raw(tensor)

    if view.rows == 0:
        return []

    source_height, source_width = int(source_shape[0]), int(source_shape[1])
    input_width, input_height = input_size
    x_factor = source_width / float(input_width)
    y_factor = source_height / float(input_height)

    num_classes = min(len(class_list), view.num_score_columns)
    scores = view.class_scores(num_classes)

    # First maximum wins on ties
    class_ids = np.argmax(scores, axis=1)
    max_scores = scores[np.arange(view.rows), class_ids]

    candidates = []
    for row in np.flatnonzero(max_scores > score_threshold):
        cx, cy, w, h = view.geometry(int(row))
        class_id = int(class_ids[row])

        left = int((cx - 0.5 * w) * x_factor)
        top = int((cy - 0.5 * h) * y_factor)
        width = int(w * x_factor)
        height = int(h * y_factor)

        candidates.append(Candidate(
            box=(left, top, width, height),
            class_id=class_id,
            score=float(max_scores[row]),
            class_name=class_list[class_id],
        ))

    return candidates


def to_square(image: np.ndarray) -> np.ndarray:
    """
    Pad an image on the bottom and right to a square.

    The top-left origin is preserved, so boxes decoded against the padded
    size stay in the original image's pixel coordinates.
    """
    height, width = image.shape[:2]
    size = max(height, width)
    if height == width:
        return image
    return cv2.copyMakeBorder(
        image, 0, size - height, 0, size - width,
        cv2.BORDER_CONSTANT, value=(0, 0, 0),
    )


@dataclass
class DetectorConfig:
    """Configuration for the person detector."""

    model_path: str = "Data/Model/yolov8s.onnx"
    backend: str = "opencv"

    # Network input is fixed by the exported model
    input_width: int = 640
    input_height: int = 640

    score_threshold: float = 0.45
    nms_threshold: float = 0.50
    class_list: List[str] = field(default_factory=lambda: list(DEFAULT_CLASS_LIST))
    class_agnostic: bool = True
    square_input: bool = False

    def __post_init__(self):
        for name in ("score_threshold", "nms_threshold"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be in [0, 1], got {value}")
        if not self.class_list:
            raise ValueError("class_list must contain at least one class")
        if self.input_width <= 0 or self.input_height <= 0:
            raise ValueError("input size must be positive")

    @property
    def input_size(self) -> Tuple[int, int]:
        return (self.input_width, self.input_height)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "DetectorConfig":
        data = dict(data or {})
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        unknown = set(data) - set(known)
        if unknown:
            logger.warning(f"Ignoring unknown detector settings: {sorted(unknown)}")
        if "class_list" in known:
            known["class_list"] = list(known["class_list"])
        return cls(**known)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "model_path": self.model_path,
            "backend": self.backend,
            "input_width": self.input_width,
            "input_height": self.input_height,
            "score_threshold": self.score_threshold,
            "nms_threshold": self.nms_threshold,
            "class_list": list(self.class_list),
            "class_agnostic": self.class_agnostic,
            "square_input": self.square_input,
        }


class HumanDetector:
    """
    YOLO-based person detector.

    Runs the network through an InferenceProvider, decodes the raw output
    and suppresses overlapping boxes.

    Example:
        >>> detector = HumanDetector(DetectorConfig(model_path="yolov8s.onnx"))
        >>> detector.load()
        >>> result = detector.detect(frame)
        >>> print(f"Found {result.num_detections} people")
    """

    def __init__(
        self,
        config: Optional[DetectorConfig] = None,
        inference: Optional[InferenceProvider] = None,
    ):
        """
        Initialize the detector.

        Args:
            config: Detector configuration (defaults to DetectorConfig())
            inference: Inference provider; built from the config when omitted
        """
        self.config = config or DetectorConfig()
        self.inference = inference or create_inference_provider(
            self.config.model_path,
            backend=self.config.backend,
            input_size=self.config.input_size,
        )

        self._frame_count = 0
        self._total_inference_time = 0.0

    @property
    def class_list(self) -> List[str]:
        return self.config.class_list

    def load(self, model_path: Optional[Union[str, Path]] = None) -> InferenceProvider:
        """
        Load the detection model.

        Args:
            model_path: Optional override of the configured model path

        Returns:
            The loaded inference provider

        Raises:
            ModelLoadError: If the model cannot be loaded
        """
        if model_path is not None:
            self.config.model_path = str(model_path)
            self.inference = create_inference_provider(
                self.config.model_path,
                backend=self.config.backend,
                input_size=self.config.input_size,
            )

        self.inference.load()
        return self.inference

    def prepare(self, image: np.ndarray) -> np.ndarray:
        """Apply optional square padding before inference."""
        return to_square(image) if self.config.square_input else image

    def prepared_shape(self, shape: Tuple[int, ...]) -> Tuple[int, ...]:
        """Shape of ``prepare(image)`` for an image of the given shape."""
        if not self.config.square_input:
            return tuple(shape)
        size = max(shape[0], shape[1])
        return (size, size) + tuple(shape[2:])

    def preprocess(self, image: np.ndarray) -> np.ndarray:
        """Run the network on a frame and return its raw output tensor."""
        if image is None or image.size == 0:
            raise ValueError("Invalid input frame")
        return self.inference.forward(self.prepare(image))

    def postprocess(
        self,
        image: np.ndarray,
        outputs: np.ndarray,
        frame_id: int = 0,
    ) -> DetectionResult:
        """
        Decode and suppress a raw network output.

        Args:
            image: Frame the output was computed from
            outputs: Raw network output tensor
            frame_id: Frame identifier

        Returns:
            DetectionResult with all candidates and surviving indices
        """
        prepared_shape = self.prepared_shape(image.shape)

        candidates = decode_detections(
            outputs,
            prepared_shape,
            self.class_list,
            score_threshold=self.config.score_threshold,
            input_size=self.config.input_size,
        )

        indices = non_max_suppression(
            [c.box for c in candidates],
            [c.score for c in candidates],
            self.config.score_threshold,
            self.config.nms_threshold,
            class_ids=[c.class_id for c in candidates],
            class_agnostic=self.config.class_agnostic,
        )

        return DetectionResult(
            frame_id=frame_id,
            candidates=candidates,
            indices=indices,
            frame_shape=tuple(image.shape),
        )

    def detect(self, image: np.ndarray, frame_id: int = 0) -> DetectionResult:
        """Run inference, decoding and suppression on a single frame."""
        start_time = time.perf_counter()

        outputs = self.preprocess(image)
        result = self.postprocess(image, outputs, frame_id=frame_id)

        result.inference_time_ms = (time.perf_counter() - start_time) * 1000
        self._frame_count += 1
        self._total_inference_time += result.inference_time_ms

        return result

    def get_statistics(self) -> Dict[str, Any]:
        """Get detection statistics."""
        avg_time = (
            self._total_inference_time / self._frame_count
            if self._frame_count > 0 else 0.0
        )

        return {
            "frames_processed": self._frame_count,
            "total_inference_time_ms": round(self._total_inference_time, 2),
            "average_inference_time_ms": round(avg_time, 2),
            "average_fps": round(1000 / avg_time, 2) if avg_time > 0 else 0.0,
            "model_path": self.config.model_path,
            "input_size": self.config.input_size,
            "score_threshold": self.config.score_threshold,
            "nms_threshold": self.config.nms_threshold,
        }

    def reset_statistics(self) -> None:
        """Reset detection statistics."""
        self._frame_count = 0
        self._total_inference_time = 0.0
