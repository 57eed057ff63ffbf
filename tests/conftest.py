"""
Pytest Configuration and Shared Fixtures.

This file provides shared fixtures and configuration for all tests.
"""

import sys
from pathlib import Path
from typing import List, Sequence

import numpy as np
import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from trackai.geometry import CameraCalibration
from trackai.vision.inference import InferenceProvider
from trackai.vision.tracker import AppearanceTracker


# =============================================================================
# Configuration
# =============================================================================

def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks integration tests"
    )


# =============================================================================
# Test Doubles
# =============================================================================

class FakeAppearanceTracker(AppearanceTracker):
    """Moves its box by a fixed offset on every update."""

    def __init__(self, step=(1, 0)):
        super().__init__()
        self.step = step
        self.box = None
        self.init_frames = 0
        self.updates = 0

    def initialize(self, frame, box):
        self.box = tuple(box)
        self.init_frames += 1

    def update(self, frame):
        left, top, w, h = self.box
        self.box = (left + self.step[0], top + self.step[1], w, h)
        self.updates += 1
        return self.box


class FakeInference(InferenceProvider):
    """Replays a queue of prepared output tensors, one per forward call."""

    def __init__(self, outputs: Sequence[np.ndarray]):
        self.outputs = list(outputs)
        self.loaded = False
        self.calls = 0

    def load(self):
        self.loaded = True

    @property
    def is_loaded(self):
        return self.loaded

    def forward(self, image):
        tensor = self.outputs[min(self.calls, len(self.outputs) - 1)]
        self.calls += 1
        return tensor


def build_tensor(rows: List[Sequence[float]], num_classes: int = 1) -> np.ndarray:
    """
    Build a channel-major (1, 4 + num_classes, len(rows)) network output.

    Each row is [cx, cy, w, h, score_0, ...] in network input pixels.
    """
    dims = 4 + num_classes
    data = np.zeros((len(rows), dims), dtype=np.float32)
    for i, row in enumerate(rows):
        data[i, :len(row)] = row
    return data.T[np.newaxis, ...].copy()


# =============================================================================
# Frame Fixtures
# =============================================================================

@pytest.fixture
def square_frame():
    """640x640 frame: network scale factors are exactly 1."""
    return np.zeros((640, 640, 3), dtype=np.uint8)


@pytest.fixture
def vga_frame():
    """640x480 camera frame."""
    rng = np.random.default_rng(0)
    return rng.integers(0, 255, (480, 640, 3), dtype=np.uint8)


# =============================================================================
# Tensor Fixtures
# =============================================================================

@pytest.fixture
def tensor_builder():
    """Expose build_tensor to tests."""
    return build_tensor


@pytest.fixture
def empty_tensor():
    """Network output with zero candidate rows."""
    return np.zeros((1, 5, 0), dtype=np.float32)


@pytest.fixture
def two_people_tensor():
    """Two well separated people above threshold plus one weak row."""
    return build_tensor([
        [100, 100, 40, 80, 0.90],
        [400, 300, 60, 120, 0.80],
        [250, 250, 20, 20, 0.10],
    ])


# =============================================================================
# Calibration & Tracker Fixtures
# =============================================================================

@pytest.fixture
def identity_calibration():
    return CameraCalibration.identity()


@pytest.fixture
def default_calibration():
    return CameraCalibration.default()


@pytest.fixture
def fake_tracker_factory():
    """Factory producing FakeAppearanceTracker; created trackers are recorded."""
    created = []

    def factory():
        tracker = FakeAppearanceTracker()
        created.append(tracker)
        return tracker

    factory.created = created
    return factory


# =============================================================================
# Temporary Directory Fixtures
# =============================================================================

@pytest.fixture
def results_dir(tmp_path):
    """Directory for recorder output."""
    path = tmp_path / "results"
    path.mkdir()
    return path
