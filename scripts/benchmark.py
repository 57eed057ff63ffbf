#!/usr/bin/env python3
"""
TrackAI - Performance Benchmark Suite.

Measures latency of the CPU-side stages on synthetic data: tensor decoding,
non-maximum suppression, tracking and projection. Optionally benchmarks
the ONNX model when one is available.

Usage:
    python scripts/benchmark.py --mode decode --rows 8400
    python scripts/benchmark.py --mode tracking --objects 5
    python scripts/benchmark.py --mode full --output results/benchmark.json
"""

import argparse
import json
import platform
import statistics
import sys
import time
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from trackai.geometry import CameraCalibration, project_boxes
from trackai.vision.detector import decode_detections
from trackai.vision.inference import OpenCVInference
from trackai.vision.suppression import non_max_suppression
from trackai.vision.tracker import TrackManager, TrackerConfig


@dataclass
class BenchmarkResult:
    """Container for benchmark results."""

    name: str
    iterations: int
    total_time_ms: float
    mean_latency_ms: float
    std_latency_ms: float
    min_latency_ms: float
    max_latency_ms: float
    p50_latency_ms: float
    p95_latency_ms: float
    p99_latency_ms: float
    throughput_fps: float


class PerformanceTimer:
    """High-precision timer for benchmarking."""

    def __init__(self):
        self.latencies: List[float] = []
        self._start_time: Optional[float] = None

    def start(self):
        """Start timing."""
        self._start_time = time.perf_counter()

    def stop(self) -> float:
        """Stop timing and record latency."""
        if self._start_time is None:
            raise RuntimeError("Timer not started")

        latency = (time.perf_counter() - self._start_time) * 1000  # ms
        self.latencies.append(latency)
        self._start_time = None
        return latency

    def to_result(self, name: str) -> BenchmarkResult:
        """Summarize recorded latencies."""
        if not self.latencies:
            raise RuntimeError(f"No samples recorded for {name}")

        ordered = sorted(self.latencies)
        n = len(ordered)
        total = sum(ordered)
        mean = statistics.mean(ordered)

        return BenchmarkResult(
            name=name,
            iterations=n,
            total_time_ms=total,
            mean_latency_ms=mean,
            std_latency_ms=statistics.stdev(ordered) if n > 1 else 0.0,
            min_latency_ms=ordered[0],
            max_latency_ms=ordered[-1],
            p50_latency_ms=ordered[int(n * 0.50)],
            p95_latency_ms=ordered[min(int(n * 0.95), n - 1)],
            p99_latency_ms=ordered[min(int(n * 0.99), n - 1)],
            throughput_fps=1000.0 / mean if mean > 0 else 0.0,
        )


def make_synthetic_tensor(
    rows: int = 8400,
    num_classes: int = 80,
    num_objects: int = 10,
    seed: int = 0,
) -> np.ndarray:
    """
    Build a YOLOv8-shaped output (1, 4 + num_classes, rows).

    ``num_objects`` clusters of overlapping rows score above threshold for
    class 0; everything else stays below it.
    """
    rng = np.random.default_rng(seed)
    tensor = np.zeros((1, 4 + num_classes, rows), dtype=np.float32)

    tensor[0, 0] = rng.uniform(0, 640, rows)
    tensor[0, 1] = rng.uniform(0, 640, rows)
    tensor[0, 2] = rng.uniform(10, 120, rows)
    tensor[0, 3] = rng.uniform(20, 240, rows)
    tensor[0, 4:] = rng.uniform(0.0, 0.3, (num_classes, rows))

    cluster_size = 8
    for obj in range(num_objects):
        cx, cy = rng.uniform(100, 540, 2)
        start = obj * cluster_size
        for row in range(start, min(start + cluster_size, rows)):
            tensor[0, 0, row] = cx + rng.normal(0, 2)
            tensor[0, 1, row] = cy + rng.normal(0, 2)
            tensor[0, 2, row] = 60
            tensor[0, 3, row] = 150
            tensor[0, 4, row] = rng.uniform(0.5, 0.95)

    return tensor


def benchmark_decode(rows: int, iterations: int, warmup: int = 10) -> BenchmarkResult:
    """Benchmark decoding + NMS of one network output."""
    print(f"\n{'='*60}")
    print("Decode + NMS Benchmark")
    print(f"{'='*60}")
    print(f"Rows: {rows}")

    tensor = make_synthetic_tensor(rows=rows)
    source_shape = (480, 640, 3)
    class_list = ["person"]

    def run_once():
        candidates = decode_detections(tensor, source_shape, class_list)
        non_max_suppression(
            [c.box for c in candidates], [c.score for c in candidates], 0.45, 0.5
        )

    for _ in range(warmup):
        run_once()

    timer = PerformanceTimer()
    for _ in range(iterations):
        timer.start()
        run_once()
        timer.stop()

    return timer.to_result("decode_nms")


def benchmark_tracking(num_objects: int, iterations: int, algorithm: str) -> BenchmarkResult:
    """Benchmark TrackManager updates on a moving synthetic scene."""
    print(f"\n{'='*60}")
    print(f"Tracking Benchmark ({algorithm})")
    print(f"{'='*60}")
    print(f"Objects: {num_objects}")

    height, width = 480, 640
    frame = np.zeros((height, width, 3), dtype=np.uint8)
    boxes = [(40 + 100 * i % 500, 100, 50, 120) for i in range(num_objects)]
    for left, top, w, h in boxes:
        frame[top:top + h, left:left + w] = (0, 180, 255)

    manager = TrackManager(TrackerConfig(algorithm).factory())
    manager.track(frame, boxes)

    timer = PerformanceTimer()
    for i in range(iterations):
        shifted = np.roll(frame, i % 5, axis=1)
        timer.start()
        manager.track(shifted, [])
        timer.stop()

    return timer.to_result(f"tracking_{algorithm}")


def benchmark_projection(num_boxes: int, iterations: int) -> BenchmarkResult:
    """Benchmark robot-frame projection."""
    print(f"\n{'='*60}")
    print("Projection Benchmark")
    print(f"{'='*60}")

    calibration = CameraCalibration.default()
    boxes = [(10 * i, 5 * i, 40, 80) for i in range(num_boxes)]

    timer = PerformanceTimer()
    for _ in range(iterations):
        timer.start()
        project_boxes(boxes, calibration)
        timer.stop()

    return timer.to_result("projection")


def benchmark_inference(model_path: str, iterations: int, warmup: int = 5) -> BenchmarkResult:
    """Benchmark OpenCV DNN forward passes."""
    print(f"\n{'='*60}")
    print(f"Inference Benchmark: {Path(model_path).name}")
    print(f"{'='*60}")

    provider = OpenCVInference(model_path)
    provider.load()
    frame = np.random.randint(0, 255, (480, 640, 3), dtype=np.uint8)

    for _ in range(warmup):
        provider.forward(frame)

    timer = PerformanceTimer()
    for _ in range(iterations):
        timer.start()
        provider.forward(frame)
        timer.stop()

    return timer.to_result("inference")


def _print_benchmark_result(result: BenchmarkResult):
    """Print formatted benchmark result."""
    print(f"\n{'─'*40}")
    print(f"Results: {result.name}")
    print(f"{'─'*40}")
    print(f"  Iterations:     {result.iterations:,}")
    print(f"  Throughput:     {result.throughput_fps:.2f} FPS")
    print(f"  Latency (mean): {result.mean_latency_ms:.3f} ms")
    print(f"  Latency (std):  {result.std_latency_ms:.3f} ms")
    print(f"  Latency (p50):  {result.p50_latency_ms:.3f} ms")
    print(f"  Latency (p95):  {result.p95_latency_ms:.3f} ms")
    print(f"  Latency (p99):  {result.p99_latency_ms:.3f} ms")


def main():
    parser = argparse.ArgumentParser(
        description="TrackAI Performance Benchmark",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--mode",
        choices=["decode", "tracking", "projection", "inference", "full"],
        default="full",
        help="Benchmark mode",
    )
    parser.add_argument("--rows", type=int, default=8400, help="Candidate rows per tensor")
    parser.add_argument("--objects", type=int, default=5, help="Tracked objects")
    parser.add_argument("--tracker", type=str, default="kalman", help="Tracker algorithm")
    parser.add_argument("--iterations", type=int, default=200, help="Benchmark iterations")
    parser.add_argument("--model", type=str, default="Data/Model/yolov8s.onnx", help="ONNX model")
    parser.add_argument("--output", type=str, help="Output path for results JSON")

    args = parser.parse_args()

    results = []
    if args.mode in ("decode", "full"):
        results.append(benchmark_decode(args.rows, args.iterations))
    if args.mode in ("tracking", "full"):
        results.append(benchmark_tracking(args.objects, args.iterations, args.tracker))
    if args.mode in ("projection", "full"):
        results.append(benchmark_projection(args.objects, args.iterations))
    if args.mode == "inference" or (args.mode == "full" and Path(args.model).exists()):
        results.append(benchmark_inference(args.model, args.iterations))

    for result in results:
        _print_benchmark_result(result)

    if args.output:
        report = {
            "timestamp": datetime.now().isoformat(),
            "platform": platform.platform(),
            "python_version": platform.python_version(),
            "results": [asdict(r) for r in results],
        }
        output_path = Path(args.output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, "w") as f:
            json.dump(report, f, indent=2)
        print(f"\nResults saved to {output_path}")


if __name__ == "__main__":
    main()
