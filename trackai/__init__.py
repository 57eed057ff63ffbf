"""
TrackAI - Person Detection, Tracking and Robot-Frame Localization.

Detect once per frame, track between detections, localize relative to
the robot.

Features:
- YOLOv8 ONNX inference through OpenCV DNN
- Bounds-checked decoding of the raw output tensor
- Greedy non-maximum suppression
- Per-object OpenCV / Kalman trackers
- Pixel-to-robot-frame projection from camera calibration
- Annotated video recording

Modules:
- vision: Decoding, suppression, inference and tracking
- io: Frame sources, visualization and recording
- geometry: Camera calibration and projection
- pipeline: Frame pipeline and robot runner
- utils: Configuration, logging and metrics

Example:
    >>> from trackai import Robot, RobotConfig
    >>> from trackai.utils import load_config
    >>>
    >>> config = RobotConfig.from_app_config(load_config("config/trackai.yaml"))
    >>> Robot(config).run(is_camera=False)

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"

from . import vision
from . import io
from . import geometry
from .geometry import CameraCalibration, RobotFrameCoordinate
from .pipeline import FramePipeline, FrameResult, Robot, RobotConfig, SourceConfig

__all__ = [
    "vision",
    "io",
    "geometry",
    "CameraCalibration",
    "RobotFrameCoordinate",
    "FramePipeline",
    "FrameResult",
    "Robot",
    "RobotConfig",
    "SourceConfig",
    "__version__",
]
