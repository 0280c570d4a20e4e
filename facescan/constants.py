"""Centralized constants and configuration loader.

This module provides access to configuration values and sensible defaults
for every tunable used by the guidance and verification pipeline. Values
are loaded from config/config.yaml when available, otherwise defaults are
used. The defaults below form part of the observable behaviour of the
pipeline and should only be changed deliberately.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

logger = logging.getLogger(__name__)

# Path to the default configuration file
DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config" / "config.yaml"

# Contract constants (milliseconds / ratios)
AUTO_CAPTURE_DELAY_MS = 1500
DETECTION_INTERVAL_MS = 150
FACE_CENTER_THRESHOLD_X = 0.45
FACE_CENTER_THRESHOLD_Y = 0.4
FACE_SIZE_MIN_THRESHOLD = 0.4
FACE_SIZE_MAX_THRESHOLD = 0.6
MAX_DISTANCE = 1.0
MATCH_THRESHOLD = 0.4
CROP_TOLERANCE = 0.01
TARGET_ASPECT_RATIO = 3 / 4


def load_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """Load configuration from YAML file.

    Args:
        config_path: Path to config file. Uses default if None.

    Returns:
        Configuration dictionary.
    """
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

    try:
        if path.exists():
            with open(path, "r") as f:
                return yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Failed to load config from {path}: {e}")

    return {}


def _get_nested(config: Dict, *keys: str, default: Any = None) -> Any:
    """Get nested config value with default fallback."""
    value = config
    for key in keys:
        if isinstance(value, dict):
            value = value.get(key)
        else:
            return default
        if value is None:
            return default
    return value


# ============================================================
# Guidance Constants
# ============================================================

@dataclass
class GuidanceConfig:
    """Geometric thresholds and messages for live face guidance."""
    # Face center must lie strictly inside [W*x, W*(1-x)] / [H*y, H*(1-y)]
    center_threshold_x: float = FACE_CENTER_THRESHOLD_X
    center_threshold_y: float = FACE_CENTER_THRESHOLD_Y
    # Face height as a fraction of frame height
    size_min_threshold: float = FACE_SIZE_MIN_THRESHOLD
    size_max_threshold: float = FACE_SIZE_MAX_THRESHOLD

    no_face_message: str = "No face detected. Please position your face in the frame."
    multiple_faces_message: str = "Multiple faces detected. Please ensure only one face is visible."
    too_far_message: str = "Please move closer to the camera"
    too_close_message: str = "Please move away from the camera"
    center_message: str = "Please center your face"
    register_valid_message: str = "Capturing..."
    verify_valid_message: str = "Hold still..."

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "GuidanceConfig":
        """Create from config dictionary."""
        g = _get_nested(config, "guidance") or {}
        messages = g.get("messages", {})
        defaults = cls()

        return cls(
            center_threshold_x=g.get("center_threshold_x", FACE_CENTER_THRESHOLD_X),
            center_threshold_y=g.get("center_threshold_y", FACE_CENTER_THRESHOLD_Y),
            size_min_threshold=g.get("size_min_threshold", FACE_SIZE_MIN_THRESHOLD),
            size_max_threshold=g.get("size_max_threshold", FACE_SIZE_MAX_THRESHOLD),
            no_face_message=messages.get("no_face", defaults.no_face_message),
            multiple_faces_message=messages.get("multiple_faces", defaults.multiple_faces_message),
            too_far_message=messages.get("too_far", defaults.too_far_message),
            too_close_message=messages.get("too_close", defaults.too_close_message),
            center_message=messages.get("center", defaults.center_message),
            register_valid_message=messages.get("register_valid", defaults.register_valid_message),
            verify_valid_message=messages.get("verify_valid", defaults.verify_valid_message),
        )


# ============================================================
# Capture Constants
# ============================================================

@dataclass
class CaptureConfig:
    """Timing and post-processing constants for the capture session."""
    # Continuous valid time required before auto-capture
    auto_capture_delay_ms: float = AUTO_CAPTURE_DELAY_MS
    # Polling period of the detection loop
    detection_interval_ms: float = DETECTION_INTERVAL_MS
    # Registration images are cropped to this width/height ratio
    target_aspect_ratio: float = TARGET_ASPECT_RATIO
    crop_tolerance: float = CROP_TOLERANCE
    jpeg_quality: int = 100
    # How long the success state is shown before the session closes
    register_close_delay_ms: float = 1500
    verify_close_delay_ms: float = 2000

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "CaptureConfig":
        """Create from config dictionary."""
        c = _get_nested(config, "capture") or {}

        return cls(
            auto_capture_delay_ms=c.get("auto_capture_delay_ms", AUTO_CAPTURE_DELAY_MS),
            detection_interval_ms=c.get("detection_interval_ms", DETECTION_INTERVAL_MS),
            target_aspect_ratio=c.get("target_aspect_ratio", TARGET_ASPECT_RATIO),
            crop_tolerance=c.get("crop_tolerance", CROP_TOLERANCE),
            jpeg_quality=c.get("jpeg_quality", 100),
            register_close_delay_ms=c.get("register_close_delay_ms", 1500),
            verify_close_delay_ms=c.get("verify_close_delay_ms", 2000),
        )


# ============================================================
# Detector Constants
# ============================================================

@dataclass
class DetectorConfig:
    """Lightweight per-frame detector constants."""
    backend: str = "insightface"
    # Square input resolution fed to the detector
    input_size: int = 416
    min_confidence: float = 0.5
    model_name: str = "buffalo_sc"

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "DetectorConfig":
        """Create from config dictionary."""
        d = _get_nested(config, "detector") or {}

        return cls(
            backend=d.get("backend", "insightface"),
            input_size=d.get("input_size", 416),
            min_confidence=d.get("min_confidence", 0.5),
            model_name=d.get("model_name", "buffalo_sc"),
        )


# ============================================================
# Recognition Constants
# ============================================================

@dataclass
class RecognitionConfig:
    """Descriptor extraction and matching constants."""
    model_name: str = "buffalo_l"
    det_size: Tuple[int, int] = (640, 640)
    min_confidence: float = 0.5
    # Euclidean distance at or below which two descriptors match
    match_threshold: float = MATCH_THRESHOLD
    # Distance that maps to a score of zero
    max_distance: float = MAX_DISTANCE

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "RecognitionConfig":
        """Create from config dictionary."""
        r = _get_nested(config, "recognition") or {}
        det_size = r.get("det_size", [640, 640])

        return cls(
            model_name=r.get("model_name", "buffalo_l"),
            det_size=tuple(det_size),
            min_confidence=r.get("min_confidence", 0.5),
            match_threshold=r.get("match_threshold", MATCH_THRESHOLD),
            max_distance=r.get("max_distance", MAX_DISTANCE),
        )


# ============================================================
# API Constants
# ============================================================

@dataclass
class ApiConfig:
    """HTTP verification service settings."""
    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    request_timeout: float = 30.0

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "ApiConfig":
        """Create from config dictionary."""
        a = _get_nested(config, "api") or {}

        return cls(
            host=a.get("host", "0.0.0.0"),
            port=a.get("port", 8000),
            cors_origins=list(a.get("cors_origins", ["*"])),
            request_timeout=a.get("request_timeout", 30.0),
        )


# ============================================================
# Global Config Instance (lazy loaded)
# ============================================================

class Config:
    """Global configuration singleton."""

    _instance: Optional["Config"] = None
    _config: Dict[str, Any] = {}

    def __new__(cls) -> "Config":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._load()
        return cls._instance

    def _load(self, config_path: Optional[Path] = None) -> None:
        """Load configuration from file."""
        self._config = load_config(config_path)
        self._guidance: Optional[GuidanceConfig] = None
        self._capture: Optional[CaptureConfig] = None
        self._detector: Optional[DetectorConfig] = None
        self._recognition: Optional[RecognitionConfig] = None
        self._api: Optional[ApiConfig] = None

    def reload(self, config_path: Optional[Path] = None) -> None:
        """Reload configuration from file and drop cached sections."""
        self._load(config_path)

    @property
    def guidance(self) -> GuidanceConfig:
        if self._guidance is None:
            self._guidance = GuidanceConfig.from_config(self._config)
        return self._guidance

    @property
    def capture(self) -> CaptureConfig:
        if self._capture is None:
            self._capture = CaptureConfig.from_config(self._config)
        return self._capture

    @property
    def detector(self) -> DetectorConfig:
        if self._detector is None:
            self._detector = DetectorConfig.from_config(self._config)
        return self._detector

    @property
    def recognition(self) -> RecognitionConfig:
        if self._recognition is None:
            self._recognition = RecognitionConfig.from_config(self._config)
        return self._recognition

    @property
    def api(self) -> ApiConfig:
        if self._api is None:
            self._api = ApiConfig.from_config(self._config)
        return self._api

    def get(self, *keys: str, default: Any = None) -> Any:
        """Get a config value by key path."""
        return _get_nested(self._config, *keys, default=default)


def get_config() -> Config:
    """Get the global configuration instance."""
    return Config()


# Convenience accessors
def get_guidance_config() -> GuidanceConfig:
    return get_config().guidance


def get_capture_config() -> CaptureConfig:
    return get_config().capture


def get_detector_config() -> DetectorConfig:
    return get_config().detector


def get_recognition_config() -> RecognitionConfig:
    return get_config().recognition


def get_api_config() -> ApiConfig:
    return get_config().api
