"""Post-processing of captured images: aspect-ratio crop and JPEG codec."""

import logging
import math
from dataclasses import dataclass
from typing import Optional

import cv2
import numpy as np

from .constants import CROP_TOLERANCE, TARGET_ASPECT_RATIO
from .errors import CropDimensionError, InvalidImageError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CropWindow:
    """Integer source rectangle to keep; output has the same size."""
    x: int
    y: int
    width: int
    height: int


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def compute_crop_window(
    source_width: int,
    source_height: int,
    target_ratio: float = TARGET_ASPECT_RATIO,
    tolerance: float = CROP_TOLERANCE,
) -> Optional[CropWindow]:
    """Compute the centered crop that gives ``target_ratio`` (w / h).

    Returns:
        None when the source is already within ``tolerance`` of the
        target ratio, otherwise the crop window

    Raises:
        CropDimensionError: If any computed dimension is not positive
    """
    if source_width <= 0 or source_height <= 0 or target_ratio <= 0:
        raise CropDimensionError(
            (0, 0, source_width, source_height), "Invalid crop dimensions calculated"
        )

    source_ratio = source_width / source_height
    if abs(source_ratio - target_ratio) <= tolerance:
        return None

    if source_ratio > target_ratio:
        # Wider than target: crop the sides
        crop_width = source_height * target_ratio
        crop_height = float(source_height)
        offset_x = (source_width - crop_width) / 2
        offset_y = 0.0
    else:
        # Taller than target: crop top and bottom
        crop_width = float(source_width)
        crop_height = source_width / target_ratio
        offset_x = 0.0
        offset_y = (source_height - crop_height) / 2

    width = _round_half_up(crop_width)
    height = _round_half_up(crop_height)
    x = _round_half_up(offset_x)
    y = _round_half_up(offset_y)

    if width <= 0 or height <= 0:
        logger.error(f"Invalid crop dimensions calculated: x={x} y={y} {width}x{height}")
        raise CropDimensionError((x, y, width, height), "Invalid crop dimensions calculated")

    x = min(x, source_width - width)
    y = min(y, source_height - height)
    return CropWindow(x=x, y=y, width=width, height=height)


def crop_to_aspect_ratio(
    image: np.ndarray,
    target_ratio: float = TARGET_ASPECT_RATIO,
    tolerance: float = CROP_TOLERANCE,
) -> np.ndarray:
    """Crop an image to ``target_ratio`` without resampling.

    An image already within tolerance is returned as the very same
    object.
    """
    source_height, source_width = image.shape[:2]
    window = compute_crop_window(source_width, source_height, target_ratio, tolerance)

    if window is None:
        logger.debug(
            f"Image already has target aspect ratio "
            f"({source_width / source_height:.3f} ~ {target_ratio:.3f}), returning as-is"
        )
        return image

    logger.debug(
        f"Cropping [{source_width}x{source_height}] to "
        f"({window.x},{window.y} {window.width}x{window.height})"
    )
    return image[window.y:window.y + window.height, window.x:window.x + window.width].copy()


# ============================================================
# Image codec
# ============================================================

def decode_image(data: bytes) -> np.ndarray:
    """Decode encoded image bytes into a BGR array.

    Raises:
        InvalidImageError: If the bytes are not a decodable image
    """
    if not data:
        raise InvalidImageError()
    buffer = np.frombuffer(data, np.uint8)
    image = cv2.imdecode(buffer, cv2.IMREAD_COLOR)
    if image is None:
        raise InvalidImageError()
    return image


def encode_jpeg(image: np.ndarray, quality: int = 100) -> bytes:
    """Encode a BGR array as JPEG bytes."""
    ok, buffer = cv2.imencode(".jpg", image, [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)])
    if not ok:
        raise InvalidImageError("Failed to encode image")
    return buffer.tobytes()


def crop_image_bytes(
    data: bytes,
    target_ratio: float = TARGET_ASPECT_RATIO,
    tolerance: float = CROP_TOLERANCE,
    quality: int = 100,
) -> bytes:
    """Crop encoded image bytes; compliant input bytes come back untouched."""
    image = decode_image(data)
    cropped = crop_to_aspect_ratio(image, target_ratio, tolerance)
    if cropped is image:
        return data
    return encode_jpeg(cropped, quality)
