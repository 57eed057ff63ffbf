#!/usr/bin/env python3
"""
TrackAI - Robot Runner.

Runs person detection, tracking and robot-frame localization on the live
camera or on the bundled image sequence.

Usage:
    python scripts/run_robot.py --camera
    python scripts/run_robot.py --images --config config/trackai.yaml
    python scripts/run_robot.py --images --no-display --max-frames 5
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

import yaml

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from trackai.io.frame_sources import CameraUnavailableError, FrameAcquisitionError
from trackai.pipeline import Robot, RobotConfig
from trackai.utils import AppConfig, load_config, setup_logging
from trackai.vision.inference import ModelLoadError
from trackai.vision.tracker import TRACKER_ALGORITHMS

DEFAULT_CONFIG = Path(__file__).parent.parent / "config" / "trackai.yaml"

logger = logging.getLogger("trackai.run_robot")


def read_app_config(path: Optional[str]) -> AppConfig:
    """Load the given config, the bundled default, or empty settings."""
    if path:
        return load_config(path)
    if DEFAULT_CONFIG.exists():
        return load_config(str(DEFAULT_CONFIG))
    return AppConfig()


def build_config(args: argparse.Namespace, app_config: AppConfig) -> RobotConfig:
    """Apply command-line overrides to the loaded configuration."""
    data = app_config.to_dict()

    if args.model:
        data["detector"]["model_path"] = args.model
    if args.score_threshold is not None:
        data["detector"]["score_threshold"] = args.score_threshold
    if args.nms_threshold is not None:
        data["detector"]["nms_threshold"] = args.nms_threshold
    if args.tracker:
        data["tracker"]["algorithm"] = args.tracker
    if args.camera_index is not None:
        data["source"]["camera_index"] = args.camera_index
    if args.image_folder:
        data["source"]["image_folder"] = args.image_folder
    if args.max_frames is not None:
        data["source"]["max_frames"] = args.max_frames
    if args.no_display:
        data["output"]["display"] = False
    if args.no_record:
        data["output"]["record"] = False
    if args.output_dir:
        data["output"]["result_dir"] = args.output_dir

    return RobotConfig.from_dict(data)


def main() -> int:
    parser = argparse.ArgumentParser(
        description="TrackAI person detection and tracking",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Live camera
  python run_robot.py --camera

  # Image sequence without a window
  python run_robot.py --images --no-display
        """,
    )

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--camera",
        dest="is_camera",
        action="store_true",
        default=True,
        help="Read frames from the camera (default)",
    )
    mode.add_argument(
        "--images",
        dest="is_camera",
        action="store_false",
        help="Read frames from the image sequence",
    )

    parser.add_argument("--config", type=str, help="Path to YAML configuration")
    parser.add_argument("--model", type=str, help="Path to ONNX model")
    parser.add_argument("--score-threshold", type=float, help="Minimum class score")
    parser.add_argument("--nms-threshold", type=float, help="NMS IoU threshold")
    parser.add_argument("--tracker", choices=TRACKER_ALGORITHMS, help="Tracker algorithm")
    parser.add_argument("--camera-index", type=int, help="Camera device index")
    parser.add_argument("--image-folder", type=str, help="Folder with img0.jpg ... img9.jpg")
    parser.add_argument("--max-frames", type=int, help="Stop after this many frames")
    parser.add_argument("--no-display", action="store_true", help="Do not open a window")
    parser.add_argument("--no-record", action="store_true", help="Do not write a video")
    parser.add_argument("--output-dir", type=str, help="Directory for the result video")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (overrides config)",
    )
    parser.add_argument("--stats", type=str, help="Write run statistics to this JSON file")

    args = parser.parse_args()

    try:
        app_config = read_app_config(args.config)
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        setup_logging(args.log_level or "INFO")
        logger.error(f"Could not load configuration: {e}")
        return 2

    setup_logging(
        level=args.log_level or app_config.logging.get("level", "INFO"),
        log_file=app_config.logging.get("file"),
    )

    try:
        robot = Robot(build_config(args, app_config))
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    try:
        stats = robot.run(is_camera=args.is_camera)
    except ModelLoadError as e:
        logger.error(str(e))
        return 1
    except CameraUnavailableError as e:
        logger.error(str(e))
        return 1
    except FrameAcquisitionError as e:
        logger.error(f"Blank frame grabbed: {e}")
        return 1

    if args.stats:
        stats_path = Path(args.stats)
        stats_path.parent.mkdir(parents=True, exist_ok=True)
        with open(stats_path, "w") as f:
            json.dump(stats, f, indent=2, default=str)
        logger.info(f"Statistics saved to {stats_path}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
