"""
Camera Geometry and Robot-Frame Projection for TrackAI.

Maps pixel-space detections to coordinates relative to the robot body
using a fixed camera calibration (intrinsics K, rotation R, translation T).

The projection applies the extrinsics directly to the homogeneous pixel
centroid::

    p = [cx, cy, 1]^T
    camera_point = R @ p + T

K is carried with the calibration but is not used to back-project through
the focal length, so the resulting coordinates mix pixel and metric units.
This mirrors the deployed robot and is kept for compatibility.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

logger = logging.getLogger(__name__)

Box = Tuple[int, int, int, int]  # left, top, width, height

DEFAULT_FOCAL_LENGTH = 600.0
DEFAULT_PRINCIPAL_POINT = (320.0, 240.0)
DEFAULT_DEPTH_OFFSET = 2.0


def _as_matrix(value: Any, shape: Tuple[int, int], name: str) -> np.ndarray:
    """Validate and freeze a calibration matrix."""
    matrix = np.array(value, dtype=np.float64)

    # Accept flat translation vectors
    if shape == (3, 1) and matrix.shape == (3,):
        matrix = matrix.reshape(3, 1)

    if matrix.shape != shape:
        raise ValueError(
            f"Calibration matrix {name} must have shape {shape}, got {matrix.shape}"
        )
    if not np.all(np.isfinite(matrix)):
        raise ValueError(f"Calibration matrix {name} contains non-finite values")

    matrix.setflags(write=False)
    return matrix


@dataclass(frozen=True)
class RobotFrameCoordinate:
    """3D point in the robot frame, computed for one detection."""

    x: float
    y: float
    z: float

    def as_array(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z], dtype=np.float64)

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "z": self.z}


class CameraCalibration:
    """
    Immutable camera calibration triple (K, R, T).

    Matrices are copied on construction and marked read-only so a single
    calibration can be shared by every projection call of a run.

    Example:
        >>> calibration = CameraCalibration.default()
        >>> calibration.T.ravel().tolist()
        [0.0, 0.0, 2.0]
    """

    __slots__ = ("_K", "_R", "_T")

    def __init__(self, K: Any, R: Any, T: Any):
        """
        Args:
            K: 3x3 intrinsic matrix
            R: 3x3 rotation matrix
            T: 3x1 (or length-3) translation vector

        Raises:
            ValueError: If any matrix has the wrong shape or non-finite values
        """
        self._K = _as_matrix(K, (3, 3), "K")
        self._R = _as_matrix(R, (3, 3), "R")
        self._T = _as_matrix(T, (3, 1), "T")

    @property
    def K(self) -> np.ndarray:
        return self._K

    @property
    def R(self) -> np.ndarray:
        return self._R

    @property
    def T(self) -> np.ndarray:
        return self._T

    @classmethod
    def default(cls) -> "CameraCalibration":
        """Default calibration: focal 600, principal point (320, 240), no
        rotation, 2 units along the depth axis."""
        fx = fy = DEFAULT_FOCAL_LENGTH
        cx, cy = DEFAULT_PRINCIPAL_POINT
        K = [[fx, 0.0, cx], [0.0, fy, cy], [0.0, 0.0, 1.0]]
        return cls(K, np.eye(3), [0.0, 0.0, DEFAULT_DEPTH_OFFSET])

    @classmethod
    def identity(cls) -> "CameraCalibration":
        """Identity intrinsics and rotation with zero translation."""
        return cls(np.eye(3), np.eye(3), np.zeros(3))

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "CameraCalibration":
        """Build from a config mapping; missing entries fall back to defaults."""
        default = cls.default()
        data = data or {}
        return cls(
            data.get("K", default.K),
            data.get("R", default.R),
            data.get("T", default.T),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "K": self._K.tolist(),
            "R": self._R.tolist(),
            "T": self._T.ravel().tolist(),
        }

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CameraCalibration):
            return NotImplemented
        return (
            np.array_equal(self._K, other._K)
            and np.array_equal(self._R, other._R)
            and np.array_equal(self._T, other._T)
        )

    def __repr__(self) -> str:
        return f"CameraCalibration(T={self._T.ravel().tolist()})"


def box_center(box: Sequence[float]) -> Tuple[float, float]:
    """Centroid of a (left, top, width, height) rectangle."""
    left, top, width, height = box
    return (left + width / 2.0, top + height / 2.0)


def project_to_robot_frame(
    box: Sequence[float],
    calibration: CameraCalibration,
) -> RobotFrameCoordinate:
    """
    Project a pixel rectangle's centroid into the robot frame.

    Args:
        box: Rectangle as (left, top, width, height) in source pixels
        calibration: Camera calibration; only R and T are applied

    Returns:
        RobotFrameCoordinate of R @ [cx, cy, 1] + T
    """
    cx, cy = box_center(box)
    point = np.array([[cx], [cy], [1.0]], dtype=np.float64)

    camera_point = calibration.R @ point + calibration.T

    return RobotFrameCoordinate(
        x=float(camera_point[0, 0]),
        y=float(camera_point[1, 0]),
        z=float(camera_point[2, 0]),
    )


def project_boxes(
    boxes: Iterable[Sequence[float]],
    calibration: CameraCalibration,
) -> List[RobotFrameCoordinate]:
    """Project every box; an empty input gives an empty list."""
    coordinates = []
    for box in boxes:
        coord = project_to_robot_frame(box, calibration)
        logger.info(
            f"Object coordinates in robot frame: "
            f"X={coord.x:.3f}, Y={coord.y:.3f}, Z={coord.z:.3f}"
        )
        coordinates.append(coord)
    return coordinates
