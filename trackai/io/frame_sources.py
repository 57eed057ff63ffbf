"""
Frame sources for TrackAI.

Sources hand out one frame at a time; the pipeline blocks on
``next_frame()`` and never buffers ahead.

- CameraFrameSource: live camera through cv2.VideoCapture
- ImageSequenceFrameSource: fixed, ordered list of image files
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Union

import cv2
import numpy as np

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_FOLDER = "Data/Images/"
DEFAULT_IMAGE_FILES = [f"img{i}.jpg" for i in range(10)]


class CameraUnavailableError(RuntimeError):
    """Raised when the camera device cannot be opened."""


class FrameAcquisitionError(RuntimeError):
    """Raised when an opened camera returns an empty frame."""


class FrameSource(ABC):
    """Abstract frame source. Iterating yields frames until end of stream."""

    @abstractmethod
    def open(self) -> None:
        pass

    @abstractmethod
    def next_frame(self) -> Optional[np.ndarray]:
        """Return the next BGR frame, or None at end of stream."""
        pass

    @abstractmethod
    def close(self) -> None:
        pass

    @property
    def is_live(self) -> bool:
        return False

    def __iter__(self) -> Iterator[np.ndarray]:
        while True:
            frame = self.next_frame()
            if frame is None:
                return
            yield frame

    def __enter__(self) -> "FrameSource":
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class CameraFrameSource(FrameSource):
    """Live camera source. Each read blocks until the device has a frame."""

    def __init__(self, device_index: int = 0):
        self.device_index = device_index
        self._capture: Optional[cv2.VideoCapture] = None
        self._frames_read = 0

    @property
    def is_live(self) -> bool:
        return True

    def open(self) -> None:
        """
        Open the camera device.

        Raises:
            CameraUnavailableError: If the device cannot be opened
        """
        capture = cv2.VideoCapture(self.device_index)
        if not capture.isOpened():
            capture.release()
            raise CameraUnavailableError(
                f"Could not access the camera (device {self.device_index})"
            )
        self._capture = capture
        logger.info(f"Camera {self.device_index} opened")

    def next_frame(self) -> np.ndarray:
        """
        Read the next frame.

        Raises:
            FrameAcquisitionError: If the camera returns no frame
        """
        if self._capture is None:
            raise CameraUnavailableError("Camera not opened; call open() first")

        ok, frame = self._capture.read()
        if not ok or frame is None or frame.size == 0:
            raise FrameAcquisitionError(
                f"Empty frame from camera {self.device_index} "
                f"after {self._frames_read} frames"
            )

        self._frames_read += 1
        return frame

    def close(self) -> None:
        if self._capture is not None:
            self._capture.release()
            self._capture = None
            logger.info(f"Camera {self.device_index} released")


class ImageSequenceFrameSource(FrameSource):
    """Reads a fixed list of image files in order."""

    def __init__(
        self,
        folder: Union[str, Path] = DEFAULT_IMAGE_FOLDER,
        filenames: Optional[Sequence[str]] = None,
    ):
        self.folder = Path(folder)
        self.filenames: List[str] = list(
            filenames if filenames is not None else DEFAULT_IMAGE_FILES
        )
        self._position = 0
        self._skipped: List[str] = []

    def open(self) -> None:
        self._position = 0
        self._skipped = []
        logger.info(f"Image sequence: {len(self.filenames)} files in {self.folder}")

    def next_frame(self) -> Optional[np.ndarray]:
        """Return the next readable image; unreadable files are skipped."""
        while self._position < len(self.filenames):
            path = self.folder / self.filenames[self._position]
            self._position += 1

            frame = cv2.imread(str(path))
            if frame is None or frame.size == 0:
                logger.warning(f"Skipping unreadable image: {path}")
                self._skipped.append(str(path))
                continue

            return frame

        return None

    @property
    def skipped(self) -> List[str]:
        return list(self._skipped)

    def close(self) -> None:
        self._position = len(self.filenames)


def create_frame_source(
    is_camera: bool,
    config: Optional[Dict[str, Any]] = None,
) -> FrameSource:
    """
    Factory function to create a frame source.

    Args:
        is_camera: Use the live camera instead of the image list
        config: Source settings (camera_index, image_folder, image_files)
    """
    config = config or {}

    if is_camera:
        return CameraFrameSource(device_index=int(config.get("camera_index", 0)))

    return ImageSequenceFrameSource(
        folder=config.get("image_folder", DEFAULT_IMAGE_FOLDER),
        filenames=config.get("image_files"),
    )
