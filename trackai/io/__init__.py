"""
TrackAI - I/O Module.

Components:
- frame_sources: Camera and image-sequence frame sources
- visualizer: Labeling, drawing, display and video recording
"""

from .frame_sources import (
    FrameSource,
    CameraFrameSource,
    ImageSequenceFrameSource,
    CameraUnavailableError,
    FrameAcquisitionError,
    create_frame_source,
)

from .visualizer import (
    Visualizer,
    VideoRecorder,
    LabeledBox,
    OutputConfig,
)

__all__ = [
    "FrameSource",
    "CameraFrameSource",
    "ImageSequenceFrameSource",
    "CameraUnavailableError",
    "FrameAcquisitionError",
    "create_frame_source",
    "Visualizer",
    "VideoRecorder",
    "LabeledBox",
    "OutputConfig",
]
