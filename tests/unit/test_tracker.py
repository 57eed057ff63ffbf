"""
Unit Tests for Per-Object Tracking.

Tests cover:
- TrackManager lifecycle (initialize once, update after, reset)
- Kalman box tracker prediction
- OpenCV tracker wrapper and factory
"""

import cv2
import numpy as np
import pytest
from unittest.mock import MagicMock, patch

from trackai.vision.tracker import (
    KalmanBoxTracker,
    KalmanFilter,
    OpenCVAppearanceTracker,
    TrackerConfig,
    TrackerState,
    TrackManager,
    clip_box,
    create_appearance_tracker,
)
from trackai.vision.suppression import compute_iou


# ============================================================================
# TrackManager Tests
# ============================================================================

class TestTrackManager:
    """Tests for the track manager state machine."""

    def test_starts_uninitialized(self, fake_tracker_factory):
        manager = TrackManager(fake_tracker_factory)
        assert manager.state == TrackerState.UNINITIALIZED
        assert not manager.is_initialized
        assert manager.num_trackers == 0

    def test_empty_boxes_keep_uninitialized(self, fake_tracker_factory, square_frame):
        manager = TrackManager(fake_tracker_factory)

        assert manager.track(square_frame, []) == []
        assert manager.track(square_frame, []) == []

        assert manager.state == TrackerState.UNINITIALIZED
        assert fake_tracker_factory.created == []

    def test_first_boxes_initialize_and_return_nothing(self, fake_tracker_factory, square_frame):
        manager = TrackManager(fake_tracker_factory)
        boxes = [(10, 10, 20, 20), (30, 30, 40, 40)]

        result = manager.track(square_frame, boxes)

        assert result == []
        assert manager.state == TrackerState.TRACKING
        assert manager.num_trackers == 2
        assert [t.box for t in fake_tracker_factory.created] == boxes
        assert [o.track_id for o in manager.tracked_objects] == [1, 2]

    def test_second_call_updates_in_identity_order(self, fake_tracker_factory, square_frame):
        manager = TrackManager(fake_tracker_factory)
        manager.track(square_frame, [(10, 10, 20, 20), (30, 30, 40, 40)])

        tracked = manager.track(square_frame, [(10, 10, 20, 20), (30, 30, 40, 40)])

        assert [o.track_id for o in tracked] == [1, 2]
        assert [o.box for o in tracked] == [(11, 10, 20, 20), (31, 30, 40, 40)]
        assert all(o.age == 1 and o.hits == 1 for o in tracked)

    def test_tracker_count_never_changes(self, fake_tracker_factory, square_frame):
        manager = TrackManager(fake_tracker_factory)
        manager.track(square_frame, [(0, 0, 10, 10)])

        for boxes in ([], [(0, 0, 10, 10)] * 3, [(50, 50, 5, 5)]):
            tracked = manager.track(square_frame, boxes)
            assert len(tracked) == 1

        assert len(fake_tracker_factory.created) == 1
        assert fake_tracker_factory.created[0].updates == 3

    def test_empty_boxes_still_update_after_init(self, fake_tracker_factory, square_frame):
        manager = TrackManager(fake_tracker_factory)
        manager.track(square_frame, [(0, 0, 10, 10)])

        tracked = manager.track(square_frame, [])

        assert tracked[0].box == (1, 0, 10, 10)

    def test_failed_update_counts_age_not_hits(self, fake_tracker_factory, square_frame):
        manager = TrackManager(fake_tracker_factory)
        manager.track(square_frame, [(0, 0, 10, 10)])
        fake_tracker_factory.created[0].last_update_ok = False

        tracked = manager.track(square_frame, [])

        assert tracked[0].age == 1
        assert tracked[0].hits == 0
        assert manager.get_statistics()["lost_trackers"] == 1

    def test_reset(self, fake_tracker_factory, square_frame):
        manager = TrackManager(fake_tracker_factory)
        manager.track(square_frame, [(0, 0, 10, 10)])

        manager.reset()

        assert manager.state == TrackerState.UNINITIALIZED
        assert manager.num_trackers == 0

        manager.track(square_frame, [(5, 5, 10, 10), (50, 50, 10, 10)])
        assert manager.num_trackers == 2
        assert [o.track_id for o in manager.tracked_objects] == [1, 2]

    def test_statistics(self, fake_tracker_factory, square_frame):
        manager = TrackManager(fake_tracker_factory)
        manager.track(square_frame, [(0, 0, 10, 10)])
        manager.track(square_frame, [])

        stats = manager.get_statistics()
        assert stats["state"] == "TRACKING"
        assert stats["live_trackers"] == 1
        assert stats["frames_processed"] == 2

    def test_tracked_object_to_dict(self, fake_tracker_factory, square_frame):
        manager = TrackManager(fake_tracker_factory)
        manager.track(square_frame, [(0, 0, 10, 20)])

        data = manager.tracked_objects[0].to_dict()

        assert data["track_id"] == 1
        assert data["center"] == (5.0, 10.0)


# ============================================================================
# Kalman Tracker Tests
# ============================================================================

class TestKalmanFilter:

    def test_initial_box_round_trip(self):
        kf = KalmanFilter((100, 50, 40, 80))
        assert kf._state_to_box() == (100, 50, 40, 80)

    def test_prediction_without_velocity_is_stationary(self):
        kf = KalmanFilter((100, 50, 40, 80))
        assert kf.predict() == (100, 50, 40, 80)

    def test_velocity_moves_prediction(self):
        kf = KalmanFilter((100, 100, 20, 40))
        kf.x[4] = 5.0

        assert kf.predict() == (105, 100, 20, 40)
        assert kf.predict() == (110, 100, 20, 40)


class TestKalmanBoxTracker:

    def test_update_before_initialize(self, square_frame):
        with pytest.raises(RuntimeError):
            KalmanBoxTracker().update(square_frame)

    def test_initialize_and_update(self, square_frame):
        tracker = KalmanBoxTracker()
        tracker.initialize(square_frame, (10, 10, 20, 20))

        assert tracker.update(square_frame) == (10, 10, 20, 20)
        assert tracker.last_update_ok

    def test_with_track_manager(self, square_frame):
        manager = TrackManager(TrackerConfig("kalman").factory())
        manager.track(square_frame, [(10, 10, 20, 20), (30, 30, 40, 40)])

        tracked = manager.track(square_frame, [])

        assert [o.box for o in tracked] == [(10, 10, 20, 20), (30, 30, 40, 40)]


# ============================================================================
# OpenCV Tracker Tests
# ============================================================================

class TestOpenCVAppearanceTracker:

    def test_unknown_algorithm(self):
        with pytest.raises(ValueError):
            OpenCVAppearanceTracker("boosting-xl")

    def test_missing_factory_reported(self):
        with patch.dict(OpenCVAppearanceTracker.FACTORIES, {"fake": "TrackerDoesNotExist_create"}):
            assert not OpenCVAppearanceTracker.is_available("fake")
            with pytest.raises(ValueError, match="not available"):
                OpenCVAppearanceTracker("fake")

    def test_failed_update_keeps_last_box(self, square_frame):
        backend = MagicMock()
        backend.update.side_effect = [(True, (12.4, 10.6, 20.0, 20.0)), (False, (0, 0, 0, 0))]

        tracker = OpenCVAppearanceTracker("mil")
        tracker._factory = lambda: backend
        tracker.initialize(square_frame, (10, 10, 20, 20))

        backend.init.assert_called_once_with(square_frame, (10, 10, 20, 20))
        assert tracker.update(square_frame) == (12, 11, 20, 20)
        assert tracker.last_update_ok

        assert tracker.update(square_frame) == (12, 11, 20, 20)
        assert not tracker.last_update_ok

    def test_update_before_initialize(self, square_frame):
        tracker = OpenCVAppearanceTracker("mil")
        with pytest.raises(RuntimeError):
            tracker.update(square_frame)

    def test_initialize_clips_box_to_frame(self):
        frame = np.zeros((480, 640, 3), dtype=np.uint8)
        backend = MagicMock()

        tracker = OpenCVAppearanceTracker("mil")
        tracker._factory = lambda: backend
        tracker.initialize(frame, (-20, 100, 80, 200))

        backend.init.assert_called_once_with(frame, (0, 100, 60, 200))

    def test_rejected_init_reports_lost(self, square_frame):
        backend = MagicMock()
        backend.init.side_effect = cv2.error("posSamples.empty()")

        tracker = OpenCVAppearanceTracker("mil")
        tracker._factory = lambda: backend
        tracker.initialize(square_frame, (10, 10, 20, 20))

        assert not tracker.last_update_ok
        assert tracker.update(square_frame) == (10, 10, 20, 20)
        assert not tracker.last_update_ok
        backend.update.assert_not_called()

    def test_raising_update_keeps_last_box(self, square_frame):
        backend = MagicMock()
        backend.update.side_effect = cv2.error("update")

        tracker = OpenCVAppearanceTracker("mil")
        tracker._factory = lambda: backend
        tracker.initialize(square_frame, (10, 10, 20, 20))

        assert tracker.update(square_frame) == (10, 10, 20, 20)
        assert not tracker.last_update_ok

    @pytest.mark.parametrize("box", [
        (-20, 100, 80, 200),    # past the left edge
        (600, 400, 80, 120),    # past the bottom-right corner
        (100, 100, 0, 50),      # zero width
    ])
    def test_mil_survives_edge_boxes(self, box):
        frame = np.random.default_rng(1).integers(0, 255, (480, 640, 3), dtype=np.uint8)
        manager = TrackManager(TrackerConfig("mil").factory())

        assert manager.track(frame, [box]) == []
        tracked = manager.track(frame, [])

        assert manager.num_trackers == 1
        assert [o.track_id for o in tracked] == [1]

    @pytest.mark.slow
    def test_mil_follows_static_target(self):
        frame = np.full((240, 320, 3), 128, dtype=np.uint8)
        rng = np.random.default_rng(0)
        frame[80:160, 100:150] = rng.integers(0, 255, (80, 50, 3), dtype=np.uint8)

        tracker = OpenCVAppearanceTracker("mil")
        tracker.initialize(frame, (100, 80, 50, 80))
        box = tracker.update(frame)

        assert compute_iou(box, (100, 80, 50, 80)) > 0.5


class TestClipBox:

    def test_inside_box_unchanged(self):
        assert clip_box((10, 20, 30, 40), (480, 640)) == (10, 20, 30, 40)

    def test_past_left_and_top(self):
        assert clip_box((-20, -5, 80, 200), (480, 640, 3)) == (0, 0, 60, 195)

    def test_past_bottom_right(self):
        assert clip_box((600, 400, 80, 120), (480, 640, 3)) == (600, 400, 40, 80)

    def test_zero_width_gets_one_pixel(self):
        assert clip_box((100, 100, 0, 50), (480, 640, 3)) == (100, 100, 1, 50)

    def test_outside_frame_collapses_to_edge(self):
        assert clip_box((700, 10, 20, 20), (480, 640, 3)) == (639, 10, 1, 20)


# ============================================================================
# Factory & Config Tests
# ============================================================================

class TestFactory:

    def test_kalman(self):
        assert isinstance(create_appearance_tracker("kalman"), KalmanBoxTracker)

    def test_case_insensitive(self):
        assert isinstance(create_appearance_tracker("MIL"), OpenCVAppearanceTracker)

    def test_unknown(self):
        with pytest.raises(ValueError):
            create_appearance_tracker("sort")


class TestTrackerConfig:

    def test_default_is_mil(self):
        assert TrackerConfig().algorithm == "mil"

    def test_unknown_algorithm_rejected(self):
        with pytest.raises(ValueError):
            TrackerConfig("bytetrack")

    def test_from_dict(self):
        assert TrackerConfig.from_dict({"algorithm": "Kalman"}).algorithm == "kalman"
        assert TrackerConfig.from_dict(None).algorithm == "mil"

    def test_factory_builds_fresh_trackers(self):
        factory = TrackerConfig("kalman").factory()
        assert factory() is not factory()
