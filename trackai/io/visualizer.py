"""
Visualization and recording for TrackAI.

- Visualizer: labels surviving detections, draws boxes and tracker
  positions, shows frames in an OpenCV window
- VideoRecorder: append-only frame buffer written as one video on finalize()
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import cv2
import numpy as np

logger = logging.getLogger(__name__)

Box = Tuple[int, int, int, int]  # left, top, width, height

ESC_KEY = 27

DETECTION_COLOR = (0, 255, 0)     # Green
TRACK_COLOR = (255, 0, 0)         # Blue
LABEL_TEXT_COLOR = (0, 0, 0)


@dataclass
class LabeledBox:
    """A surviving detection with its on-screen identity."""

    display_id: int
    index: int
    box: Box
    class_name: str
    score: float

    @property
    def label(self) -> str:
        return f"{self.class_name} {self.display_id}: {self.score:.2f}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "display_id": self.display_id,
            "index": self.index,
            "box": self.box,
            "class_name": self.class_name,
            "score": round(self.score, 4),
            "label": self.label,
        }


@dataclass
class OutputConfig:
    """Configuration for on-screen display and video recording."""

    display: bool = True
    window_name: str = "TrackAI"
    record: bool = True
    result_dir: str = "results"
    video_filename: str = "output.avi"
    fps: float = 10.0
    codec: str = "MJPG"
    camera_wait_ms: int = 25
    image_wait_ms: int = 0

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "OutputConfig":
        data = data or {}
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


class Visualizer:
    """Labels and draws detections and tracker boxes."""

    def __init__(
        self,
        display: bool = True,
        window_name: str = "TrackAI",
        line_thickness: int = 2,
        font_scale: float = 0.6,
    ):
        self.display_enabled = display
        self.window_name = window_name
        self.line_thickness = line_thickness
        self.font_scale = font_scale
        self._window_open = False

    def create_bounding_boxes(
        self,
        indices: Sequence[int],
        candidates: Sequence[Any],
        class_list: Sequence[str],
    ) -> List[LabeledBox]:
        """
        Assign display ids 1, 2, ... to surviving detections.

        Ids follow the iteration order of ``indices``, not the candidate
        index values.

        Args:
            indices: Surviving candidate indices from NMS
            candidates: Decoded candidates (box, class_id, score)
            class_list: Known class names
        """
        labeled = []
        for display_id, idx in enumerate(indices, start=1):
            candidate = candidates[idx]
            class_id = candidate.class_id
            class_name = (
                class_list[class_id] if 0 <= class_id < len(class_list)
                else f"class_{class_id}"
            )
            labeled.append(LabeledBox(
                display_id=display_id,
                index=int(idx),
                box=tuple(candidate.box),
                class_name=class_name,
                score=float(candidate.score),
            ))
        return labeled

    def _draw_label(
        self,
        image: np.ndarray,
        text: str,
        origin: Tuple[int, int],
        color: Tuple[int, int, int],
    ) -> None:
        x, y = origin
        (label_w, label_h), baseline = cv2.getTextSize(
            text, cv2.FONT_HERSHEY_SIMPLEX, self.font_scale, 1
        )
        # Keep the label inside the frame when the box touches the top edge
        y = max(y, label_h + baseline)

        cv2.rectangle(
            image,
            (x, y - label_h - baseline),
            (x + label_w, y),
            color,
            -1,
        )
        cv2.putText(
            image,
            text,
            (x, y - baseline),
            cv2.FONT_HERSHEY_SIMPLEX,
            self.font_scale,
            LABEL_TEXT_COLOR,
            1,
            cv2.LINE_AA,
        )

    def draw(
        self,
        frame: np.ndarray,
        detections: Sequence[LabeledBox],
        tracked: Sequence[Any] = (),
    ) -> np.ndarray:
        """
        Draw detections and tracked objects on a copy of the frame.

        Args:
            frame: Input frame (left unmodified)
            detections: Labeled detections for this frame
            tracked: Tracked objects with ``track_id`` and ``box``

        Returns:
            Annotated frame
        """
        output = frame.copy()

        for det in detections:
            x, y, w, h = det.box
            cv2.rectangle(output, (x, y), (x + w, y + h), DETECTION_COLOR, self.line_thickness)
            self._draw_label(output, det.label, (x, y), DETECTION_COLOR)

        for obj in tracked:
            x, y, w, h = obj.box
            cv2.rectangle(output, (x, y), (x + w, y + h), TRACK_COLOR, 1)
            self._draw_label(output, f"ID:{obj.track_id}", (x, y + h), TRACK_COLOR)

        return output

    def display(self, frame: np.ndarray) -> None:
        """Show a frame when display is enabled."""
        if not self.display_enabled:
            return
        cv2.imshow(self.window_name, frame)
        self._window_open = True

    def wait_key(self, delay_ms: int) -> int:
        """Pump the GUI event loop; returns the pressed key or -1."""
        if not self.display_enabled:
            return -1
        return cv2.waitKey(delay_ms) & 0xFF if delay_ms >= 0 else -1

    def close(self) -> None:
        if self._window_open:
            cv2.destroyAllWindows()
            self._window_open = False


class VideoRecorder:
    """
    Append-only buffer of annotated frames, written as one video.

    Frames are kept in memory until ``finalize()``. A sink that cannot be
    opened is logged and the run continues without a video.
    """

    def __init__(
        self,
        output_dir: Union[str, Path] = "results",
        filename: str = "output.avi",
        fps: float = 10.0,
        codec: str = "MJPG",
    ):
        if len(codec) != 4:
            raise ValueError(f"Codec must be a FourCC code, got '{codec}'")

        self.output_dir = Path(output_dir)
        self.filename = filename
        self.fps = fps
        self.codec = codec
        self._frames: List[np.ndarray] = []
        self._finalized = False

    @property
    def output_path(self) -> Path:
        return self.output_dir / self.filename

    @property
    def num_frames(self) -> int:
        return len(self._frames)

    def append(self, frame: np.ndarray) -> None:
        if self._finalized:
            raise RuntimeError("Recorder already finalized")
        self._frames.append(frame)

    def _open_writer(self, size: Tuple[int, int]) -> Optional[cv2.VideoWriter]:
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Could not create result directory {self.output_dir}: {e}")
            return None

        fourcc = cv2.VideoWriter_fourcc(*self.codec)
        writer = cv2.VideoWriter(str(self.output_path), fourcc, self.fps, size)
        if not writer.isOpened():
            logger.error(f"Could not open video writer for {self.output_path}")
            writer.release()
            return None
        return writer

    def finalize(self) -> Optional[Path]:
        """
        Write all buffered frames to the output video.

        Returns:
            Path of the written video, or None if nothing was written
        """
        if self._finalized:
            return None
        self._finalized = True

        if not self._frames:
            logger.warning("No frames recorded; skipping video output")
            return None

        height, width = self._frames[0].shape[:2]
        writer = self._open_writer((width, height))
        if writer is None:
            self._frames.clear()
            return None

        try:
            for frame in self._frames:
                if frame.shape[:2] != (height, width):
                    frame = cv2.resize(frame, (width, height))
                writer.write(frame)
        finally:
            writer.release()

        logger.info(f"Saved {len(self._frames)} frames to {self.output_path}")
        self._frames.clear()
        return self.output_path
