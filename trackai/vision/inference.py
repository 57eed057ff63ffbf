"""
Inference backends for TrackAI.

Wraps the detection network behind a small capability interface so the
decoder only depends on the raw output tensor layout:

    forward(image) -> (1, 4 + num_classes, rows) float32 tensor

The default backend runs a YOLOv8 ONNX export with OpenCV's DNN module on
the CPU.
"""

import logging
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Tuple, Union

import cv2
import numpy as np

logger = logging.getLogger(__name__)


class ModelLoadError(RuntimeError):
    """Raised when the detection model cannot be loaded."""


class InferenceProvider(ABC):
    """Abstract inference capability used by the detector."""

    @abstractmethod
    def load(self) -> None:
        """Load the model. Raises ModelLoadError on failure."""
        pass

    @abstractmethod
    def forward(self, image: np.ndarray) -> np.ndarray:
        """Run the network on a BGR image and return the raw output tensor."""
        pass

    @property
    def is_loaded(self) -> bool:
        return True


class OpenCVInference(InferenceProvider):
    """
    ONNX model executed through ``cv2.dnn``.

    Example:
        >>> provider = OpenCVInference("Data/Model/yolov8s.onnx")
        >>> provider.load()
        >>> tensor = provider.forward(frame)
        >>> tensor.shape
        (1, 84, 8400)
    """

    def __init__(
        self,
        model_path: Union[str, Path],
        input_size: Tuple[int, int] = (640, 640),
        scale_factor: float = 1.0 / 255.0,
        swap_rb: bool = True,
    ):
        """
        Args:
            model_path: Path to the ONNX model file
            input_size: Network input resolution (width, height)
            scale_factor: Pixel scale applied when building the blob
            swap_rb: Convert BGR frames to RGB for the network
        """
        self.model_path = Path(model_path)
        self.input_size = input_size
        self.scale_factor = scale_factor
        self.swap_rb = swap_rb

        self._net = None
        self._forward_count = 0
        self._total_forward_time = 0.0

    def load(self) -> None:
        """
        Load the ONNX model and pin it to the OpenCV CPU backend.

        Raises:
            ModelLoadError: If the file is missing or cannot be parsed
        """
        if not self.model_path.exists():
            raise ModelLoadError(f"Failed to load model: {self.model_path} not found")

        logger.info(f"Loading model from {self.model_path}")

        try:
            net = cv2.dnn.readNetFromONNX(str(self.model_path))
        except cv2.error as e:
            raise ModelLoadError(f"Failed to load model: {self.model_path}") from e

        if net.empty():
            raise ModelLoadError(f"Failed to load model: {self.model_path}")

        net.setPreferableBackend(cv2.dnn.DNN_BACKEND_OPENCV)
        net.setPreferableTarget(cv2.dnn.DNN_TARGET_CPU)
        self._net = net

        logger.info("Model loaded successfully on OpenCV/CPU backend")

    @property
    def is_loaded(self) -> bool:
        return self._net is not None

    def make_blob(self, image: np.ndarray) -> np.ndarray:
        """Resize and normalize an image into an NCHW blob."""
        return cv2.dnn.blobFromImage(
            image,
            self.scale_factor,
            self.input_size,
            (0, 0, 0),
            self.swap_rb,
            False,
        )

    def forward(self, image: np.ndarray) -> np.ndarray:
        """
        Run a forward pass.

        Args:
            image: BGR frame (HWC, uint8)

        Returns:
            First network output, typically shaped (1, 4 + num_classes, rows)
        """
        if self._net is None:
            raise ModelLoadError("Model not loaded; call load() first")

        if image is None or image.size == 0:
            raise ValueError("Invalid input frame")

        start_time = time.perf_counter()

        self._net.setInput(self.make_blob(image))
        outputs = self._net.forward(self._net.getUnconnectedOutLayersNames())

        self._forward_count += 1
        self._total_forward_time += (time.perf_counter() - start_time) * 1000

        if isinstance(outputs, (list, tuple)):
            return np.asarray(outputs[0])
        return np.asarray(outputs)

    def get_statistics(self) -> Dict[str, Any]:
        """Get forward-pass statistics."""
        avg_time = (
            self._total_forward_time / self._forward_count
            if self._forward_count > 0 else 0.0
        )
        return {
            "forward_passes": self._forward_count,
            "average_forward_time_ms": round(avg_time, 2),
            "model_path": str(self.model_path),
            "input_size": self.input_size,
        }


def create_inference_provider(
    model_path: Union[str, Path],
    backend: str = "opencv",
    input_size: Tuple[int, int] = (640, 640),
    **kwargs: Any,
) -> InferenceProvider:
    """
    Factory function to create an inference provider.

    Args:
        model_path: Path to the model file
        backend: Inference backend name (only "opencv" is supported)
        input_size: Network input resolution (width, height)

    Returns:
        Unloaded InferenceProvider
    """
    backend = backend.lower()

    if backend == "opencv":
        return OpenCVInference(model_path, input_size=input_size, **kwargs)
    else:
        raise ValueError(f"Unknown inference backend: {backend}")
