"""
TrackAI - Utilities Module.

Common utilities and helper functions.

Components:
- config: YAML configuration loading with environment substitution
- logging: Logging setup for the robot runner and scripts
- metrics: Per-stage latency collection
"""

import os
import numpy as np
import yaml
import logging
from pathlib import Path
from collections import defaultdict, deque
from typing import Deque, Dict, Any, List, Optional
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass
class AppConfig:
    """Application configuration container."""

    app: Dict[str, Any] = field(default_factory=dict)
    detector: Dict[str, Any] = field(default_factory=dict)
    tracker: Dict[str, Any] = field(default_factory=dict)
    camera: Dict[str, Any] = field(default_factory=dict)
    source: Dict[str, Any] = field(default_factory=dict)
    output: Dict[str, Any] = field(default_factory=dict)
    logging: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "AppConfig":
        """Create config from dictionary."""
        data = data or {}
        return cls(
            app=data.get("app") or {},
            detector=data.get("detector") or {},
            tracker=data.get("tracker") or {},
            camera=data.get("camera") or {},
            source=data.get("source") or {},
            output=data.get("output") or {},
            logging=data.get("logging") or {},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "app": self.app,
            "detector": self.detector,
            "tracker": self.tracker,
            "camera": self.camera,
            "source": self.source,
            "output": self.output,
            "logging": self.logging,
        }


def load_config(config_path: str) -> AppConfig:
    """
    Load application configuration from YAML file.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        AppConfig instance

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If config file is invalid
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r') as f:
        data = yaml.safe_load(f)

    if data is not None and not isinstance(data, dict):
        raise ValueError(f"Configuration root must be a mapping: {config_path}")

    # Substitute environment variables
    data = _substitute_env_vars(data)

    logger.info(f"Loaded configuration from {config_path}")
    return AppConfig.from_dict(data)


def _substitute_env_vars(obj: Any) -> Any:
    """Recursively substitute ${VAR} patterns with environment variables."""
    if isinstance(obj, dict):
        return {k: _substitute_env_vars(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_substitute_env_vars(item) for item in obj]
    elif isinstance(obj, str):
        if obj.startswith("${") and obj.endswith("}"):
            var_name = obj[2:-1]
            return os.environ.get(var_name, obj)
        return obj
    return obj


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    format_string: Optional[str] = None,
):
    """
    Configure application logging.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional file path for log output
        format_string: Optional custom format string
    """
    if format_string is None:
        format_string = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    handlers = [logging.StreamHandler()]

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format=format_string,
        handlers=handlers,
        force=True,
    )

    logger.info(f"Logging configured: level={level}")


class MetricsCollector:
    """
    Per-stage latency samples and run counters.

    Each stage keeps a sliding window of its latest ``max_samples`` values
    in milliseconds; counters accumulate over the whole run.
    """

    def __init__(self, max_samples: int = 1000):
        self.max_samples = max_samples
        self._samples: Dict[str, Deque[float]] = defaultdict(
            lambda: deque(maxlen=self.max_samples)
        )
        self._counters: Dict[str, int] = defaultdict(int)

    def record(self, stage: str, latency_ms: float):
        """Record one latency sample for a stage."""
        self._samples[stage].append(float(latency_ms))

    def increment(self, counter: str, amount: int = 1):
        self._counters[counter] += amount

    def get_stats(self, stage: str) -> Dict[str, float]:
        """Summarize the current window of a stage (zeros when empty)."""
        window = np.asarray(self._samples.get(stage, ()), dtype=np.float64)
        if window.size == 0:
            return {"count": 0, "mean": 0.0, "min": 0.0, "max": 0.0, "p95": 0.0}

        return {
            "count": int(window.size),
            "mean": float(window.mean()),
            "min": float(window.min()),
            "max": float(window.max()),
            "p95": float(np.percentile(window, 95)),
        }

    def get_counter(self, counter: str) -> int:
        return self._counters.get(counter, 0)

    @property
    def names(self) -> List[str]:
        """Stages with at least one sample, sorted."""
        return sorted(self._samples)

    def reset(self):
        self._samples.clear()
        self._counters.clear()


__all__ = [
    "AppConfig",
    "load_config",
    "setup_logging",
    "MetricsCollector",
]
