"""
TrackAI - Vision Module.

Detection and tracking components.

Components:
- inference: ONNX model execution through OpenCV DNN
- detector: YOLOv8 output decoding and the person detector
- suppression: IoU and greedy non-maximum suppression
- tracker: Per-object trackers and their lifecycle
"""

from .inference import (
    InferenceProvider,
    OpenCVInference,
    ModelLoadError,
    create_inference_provider,
)

from .detector import (
    HumanDetector,
    DetectorConfig,
    Candidate,
    DetectionResult,
    TensorView,
    decode_detections,
    to_square,
)

from .suppression import (
    compute_iou,
    non_max_suppression,
)

from .tracker import (
    TrackManager,
    TrackerConfig,
    TrackerState,
    TrackedObject,
    AppearanceTracker,
    OpenCVAppearanceTracker,
    KalmanBoxTracker,
    create_appearance_tracker,
)

__all__ = [
    # Inference
    "InferenceProvider",
    "OpenCVInference",
    "ModelLoadError",
    "create_inference_provider",
    # Detector
    "HumanDetector",
    "DetectorConfig",
    "Candidate",
    "DetectionResult",
    "TensorView",
    "decode_detections",
    "to_square",
    # Suppression
    "compute_iou",
    "non_max_suppression",
    # Tracker
    "TrackManager",
    "TrackerConfig",
    "TrackerState",
    "TrackedObject",
    "AppearanceTracker",
    "OpenCVAppearanceTracker",
    "KalmanBoxTracker",
    "create_appearance_tracker",
]
