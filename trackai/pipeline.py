"""
Frame Pipeline and Robot Runner for TrackAI.

Per frame, in order:

    inference -> decode -> suppress -> label -> track -> project -> render

Only the track manager carries state across frames; the recorder's frame
buffer is owned by the pipeline and flushed by ``finalize()``.

Example:
    >>> robot = Robot(RobotConfig.from_app_config(load_config("config/trackai.yaml")))
    >>> robot.run(is_camera=False)
"""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np

from .geometry import CameraCalibration, RobotFrameCoordinate, project_boxes
from .io.frame_sources import (
    DEFAULT_IMAGE_FILES,
    DEFAULT_IMAGE_FOLDER,
    FrameSource,
    create_frame_source,
)
from .io.visualizer import (
    ESC_KEY,
    LabeledBox,
    OutputConfig,
    VideoRecorder,
    Visualizer,
)
from .utils import AppConfig, MetricsCollector
from .vision.detector import Candidate, DetectorConfig, HumanDetector
from .vision.tracker import TrackedObject, TrackerConfig, TrackManager

logger = logging.getLogger(__name__)


@dataclass
class FrameResult:
    """Everything the pipeline produced for one frame."""

    frame_id: int
    candidates: List[Candidate]
    indices: List[int]
    labeled: List[LabeledBox]
    tracked: List[TrackedObject]
    coordinates: List[RobotFrameCoordinate]
    timings_ms: Dict[str, float] = field(default_factory=dict)
    annotated: Optional[np.ndarray] = field(default=None, repr=False)

    @property
    def num_detections(self) -> int:
        return len(self.indices)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "frame_id": self.frame_id,
            "num_candidates": len(self.candidates),
            "num_detections": self.num_detections,
            "detections": [box.to_dict() for box in self.labeled],
            "tracked": [obj.to_dict() for obj in self.tracked],
            "coordinates": [c.to_dict() for c in self.coordinates],
            "timings_ms": {k: round(v, 3) for k, v in self.timings_ms.items()},
        }


class FramePipeline:
    """Runs one frame through detection, tracking, projection and output."""

    def __init__(
        self,
        detector: HumanDetector,
        track_manager: Optional[TrackManager] = None,
        calibration: Optional[CameraCalibration] = None,
        visualizer: Optional[Visualizer] = None,
        recorder: Optional[VideoRecorder] = None,
    ):
        """
        Args:
            detector: Person detector with a loaded inference provider
            track_manager: Per-object tracker lifecycle (MIL by default)
            calibration: Camera calibration (CameraCalibration.default())
            visualizer: Rendering and display; a headless one when omitted
            recorder: Optional sink for annotated frames
        """
        self.detector = detector
        self.track_manager = track_manager or TrackManager()
        self.calibration = calibration or CameraCalibration.default()
        self.visualizer = visualizer or Visualizer(display=False)
        self.recorder = recorder

        self.metrics = MetricsCollector()
        self._frame_id = 0

    @property
    def frames_processed(self) -> int:
        return self._frame_id

    def process_frame(self, frame: np.ndarray) -> FrameResult:
        """
        Process a single frame.

        Args:
            frame: BGR frame from the frame source

        Returns:
            FrameResult for this frame
        """
        frame_id = self._frame_id
        self._frame_id += 1
        timings = {}

        detection = self.detector.detect(frame, frame_id=frame_id)
        timings["detection"] = detection.inference_time_ms

        logger.info(f"Number of detections: {detection.num_detections}")

        labeled = self.visualizer.create_bounding_boxes(
            detection.indices, detection.candidates, self.detector.class_list
        )
        boxes = [box.box for box in labeled]

        start = time.perf_counter()
        tracked = self.track_manager.track(frame, boxes)
        timings["tracking"] = (time.perf_counter() - start) * 1000

        start = time.perf_counter()
        coordinates = project_boxes(boxes, self.calibration)
        timings["projection"] = (time.perf_counter() - start) * 1000

        start = time.perf_counter()
        annotated = self.visualizer.draw(frame, labeled, tracked)
        if self.recorder is not None:
            self.recorder.append(annotated)
        self.visualizer.display(annotated)
        timings["render"] = (time.perf_counter() - start) * 1000

        for stage, value in timings.items():
            self.metrics.record(stage, value)
        self.metrics.increment("frames")
        self.metrics.increment("detections", detection.num_detections)

        return FrameResult(
            frame_id=frame_id,
            candidates=detection.candidates,
            indices=detection.indices,
            labeled=labeled,
            tracked=tracked,
            coordinates=coordinates,
            timings_ms=timings,
            annotated=annotated,
        )

    def finalize(self) -> Optional[Path]:
        """Flush the recorder; returns the written video path, if any."""
        if self.recorder is None:
            return None
        return self.recorder.finalize()

    def reset(self) -> None:
        """Start a new sequence: trackers and frame ids start over."""
        self.track_manager.reset()
        self._frame_id = 0

    def get_statistics(self) -> Dict[str, Any]:
        """Get pipeline statistics."""
        return {
            "frames_processed": self.metrics.get_counter("frames"),
            "total_detections": self.metrics.get_counter("detections"),
            "stages": {name: self.metrics.get_stats(name) for name in self.metrics.names},
            "detector": self.detector.get_statistics(),
            "tracker": self.track_manager.get_statistics(),
        }


@dataclass
class SourceConfig:
    """Frame source settings."""

    camera_index: int = 0
    image_folder: str = DEFAULT_IMAGE_FOLDER
    image_files: List[str] = field(default_factory=lambda: list(DEFAULT_IMAGE_FILES))
    max_frames: Optional[int] = None

    def __post_init__(self):
        if self.max_frames is not None and self.max_frames < 0:
            raise ValueError(f"max_frames must be non-negative, got {self.max_frames}")

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "SourceConfig":
        data = data or {}
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        if "image_files" in known:
            known["image_files"] = list(known["image_files"])
        return cls(**known)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "camera_index": self.camera_index,
            "image_folder": self.image_folder,
            "image_files": list(self.image_files),
            "max_frames": self.max_frames,
        }


@dataclass
class RobotConfig:
    """Complete configuration for one robot run."""

    detector: DetectorConfig = field(default_factory=DetectorConfig)
    tracker: TrackerConfig = field(default_factory=TrackerConfig)
    calibration: CameraCalibration = field(default_factory=CameraCalibration.default)
    source: SourceConfig = field(default_factory=SourceConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "RobotConfig":
        data = data or {}
        return cls(
            detector=DetectorConfig.from_dict(data.get("detector")),
            tracker=TrackerConfig.from_dict(data.get("tracker")),
            calibration=CameraCalibration.from_dict(data.get("camera")),
            source=SourceConfig.from_dict(data.get("source")),
            output=OutputConfig.from_dict(data.get("output")),
        )

    @classmethod
    def from_app_config(cls, app_config: AppConfig) -> "RobotConfig":
        return cls.from_dict(app_config.to_dict())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "detector": self.detector.to_dict(),
            "tracker": self.tracker.to_dict(),
            "camera": self.calibration.to_dict(),
            "source": self.source.to_dict(),
            "output": self.output.to_dict(),
        }


class Robot:
    """
    Runs the frame pipeline over a camera or an image sequence.

    The model is loaded and the source opened before the first frame; either
    failing aborts the run. The recorder is always finalized and windows are
    always closed, however the loop ends.
    """

    def __init__(
        self,
        config: Optional[RobotConfig] = None,
        detector: Optional[HumanDetector] = None,
    ):
        self.config = config or RobotConfig()
        self.detector = detector or HumanDetector(self.config.detector)

        output = self.config.output
        self.visualizer = Visualizer(display=output.display, window_name=output.window_name)
        self.recorder = (
            VideoRecorder(
                output_dir=output.result_dir,
                filename=output.video_filename,
                fps=output.fps,
                codec=output.codec,
            )
            if output.record else None
        )

        self.pipeline = FramePipeline(
            detector=self.detector,
            track_manager=TrackManager(self.config.tracker.factory()),
            calibration=self.config.calibration,
            visualizer=self.visualizer,
            recorder=self.recorder,
        )

    def create_source(self, is_camera: bool) -> FrameSource:
        return create_frame_source(is_camera, self.config.source.to_dict())

    def run(self, is_camera: bool = True) -> Dict[str, Any]:
        """
        Run until ESC, end of sequence or the frame limit.

        Args:
            is_camera: Read from the camera instead of the image list

        Returns:
            Pipeline statistics plus the output video path

        Raises:
            ModelLoadError: If the model cannot be loaded
            CameraUnavailableError: If the camera cannot be opened
            FrameAcquisitionError: If the camera stops delivering frames
        """
        self.detector.load()

        source = self.create_source(is_camera)
        output = self.config.output
        wait_ms = output.camera_wait_ms if is_camera else output.image_wait_ms
        max_frames = self.config.source.max_frames

        mode = "camera" if is_camera else "image sequence"
        logger.info(f"Starting robot in {mode} mode")

        video_path = None
        try:
            with source:
                for frame in source:
                    if max_frames is not None and self.pipeline.frames_processed >= max_frames:
                        logger.info(f"Reached frame limit ({max_frames})")
                        break

                    self.pipeline.process_frame(frame)

                    key = self.visualizer.wait_key(wait_ms)
                    if key == ESC_KEY:
                        logger.info("ESC pressed, stopping")
                        break
        except KeyboardInterrupt:
            logger.info("Interrupted, stopping")
        finally:
            video_path = self.pipeline.finalize()
            self.visualizer.close()

        stats = self.pipeline.get_statistics()
        stats["video_path"] = str(video_path) if video_path is not None else None
        logger.info(f"Processed {stats['frames_processed']} frames")
        return stats
