"""
Unit Tests for Camera Calibration and Robot-Frame Projection.
"""

import logging

import numpy as np
import pytest

from trackai.geometry import (
    CameraCalibration,
    RobotFrameCoordinate,
    box_center,
    project_boxes,
    project_to_robot_frame,
)


class TestCameraCalibration:

    def test_default_values(self, default_calibration):
        np.testing.assert_array_equal(
            default_calibration.K, [[600, 0, 320], [0, 600, 240], [0, 0, 1]]
        )
        np.testing.assert_array_equal(default_calibration.R, np.eye(3))
        np.testing.assert_array_equal(default_calibration.T, [[0], [0], [2]])

    def test_matrices_are_read_only(self, default_calibration):
        with pytest.raises(ValueError):
            default_calibration.T[2, 0] = 5.0

    def test_input_is_copied(self):
        T = np.zeros(3)
        calibration = CameraCalibration(np.eye(3), np.eye(3), T)
        T[0] = 99.0
        assert calibration.T[0, 0] == 0.0

    def test_flat_translation_accepted(self):
        calibration = CameraCalibration(np.eye(3), np.eye(3), [1, 2, 3])
        assert calibration.T.shape == (3, 1)

    @pytest.mark.parametrize("K, R, T", [
        (np.eye(2), np.eye(3), np.zeros(3)),
        (np.eye(3), np.eye(4), np.zeros(3)),
        (np.eye(3), np.eye(3), np.zeros(4)),
        (np.eye(3), np.full((3, 3), np.nan), np.zeros(3)),
    ])
    def test_invalid_matrices_rejected(self, K, R, T):
        with pytest.raises(ValueError):
            CameraCalibration(K, R, T)

    def test_from_dict_falls_back_to_defaults(self):
        calibration = CameraCalibration.from_dict({"T": [0.0, 0.0, 5.0]})
        assert calibration.T[2, 0] == 5.0
        np.testing.assert_array_equal(calibration.K, CameraCalibration.default().K)

    def test_dict_round_trip(self, default_calibration):
        assert CameraCalibration.from_dict(default_calibration.to_dict()) == default_calibration


class TestProjection:

    def test_box_center(self):
        assert box_center((10, 20, 30, 40)) == (25.0, 40.0)
        assert box_center((0, 0, 5, 5)) == (2.5, 2.5)

    def test_identity_calibration_keeps_centroid(self, identity_calibration):
        coord = project_to_robot_frame((100, 50, 40, 80), identity_calibration)

        assert coord.x == pytest.approx(120.0)
        assert coord.y == pytest.approx(90.0)
        # homogeneous 1 plus zero depth offset
        assert coord.z == pytest.approx(1.0)

    def test_default_calibration_adds_translation(self, default_calibration):
        coord = project_to_robot_frame((100, 50, 40, 80), default_calibration)
        assert coord.as_array() == pytest.approx([120.0, 90.0, 3.0])

    def test_intrinsics_are_not_applied(self):
        scaled_k = CameraCalibration(np.diag([1000.0, 1000.0, 1.0]), np.eye(3), np.zeros(3))
        coord = project_to_robot_frame((0, 0, 10, 10), scaled_k)
        assert (coord.x, coord.y) == (5.0, 5.0)

    def test_rotation_applied(self):
        # 90 degrees about z: (x, y) -> (-y, x)
        R = [[0, -1, 0], [1, 0, 0], [0, 0, 1]]
        calibration = CameraCalibration(np.eye(3), R, np.zeros(3))

        coord = project_to_robot_frame((0, 0, 20, 40), calibration)

        assert (coord.x, coord.y, coord.z) == pytest.approx((-20.0, 10.0, 1.0))

    def test_project_boxes_empty(self, default_calibration):
        assert project_boxes([], default_calibration) == []

    def test_project_boxes_logs_each_coordinate(self, default_calibration, caplog):
        with caplog.at_level(logging.INFO, logger="trackai.geometry"):
            coords = project_boxes([(0, 0, 10, 10), (10, 10, 10, 10)], default_calibration)

        assert len(coords) == 2
        messages = [r.getMessage() for r in caplog.records]
        assert messages[0] == "Object coordinates in robot frame: X=5.000, Y=5.000, Z=3.000"
        assert len(messages) == 2

    def test_coordinate_to_dict(self):
        coord = RobotFrameCoordinate(1.0, 2.0, 3.0)
        assert coord.to_dict() == {"x": 1.0, "y": 2.0, "z": 3.0}
