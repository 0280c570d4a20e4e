"""Face descriptor and match result types."""

import json
import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

import numpy as np

from ..errors import DescriptorError

# A descriptor is a flat float32 vector whose length is fixed by the model.
FaceDescriptor = np.ndarray


@dataclass(frozen=True)
class MatchResult:
    """Result of comparing a candidate descriptor with a reference."""

    distance: float
    score: float
    is_match: bool

    @property
    def score_percent(self) -> str:
        """Score as shown to users, e.g. ``"75.00"``."""
        return format_score_percent(self.score)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "distance": self.distance,
            "score": self.score,
            "is_match": self.is_match,
        }


def format_score_percent(score: float) -> str:
    """Format a [0, 1] score as a percentage with two decimals."""
    return f"{score * 100:.2f}"


def as_descriptor(
    values: Iterable[float],
    expected_length: Optional[int] = None,
    dtype=np.float32,
) -> FaceDescriptor:
    """Convert any numeric sequence into a validated descriptor.

    Raises:
        DescriptorError: If the values are not a non-empty, finite, flat
            numeric vector of the expected length
    """
    try:
        descriptor = np.asarray(values, dtype=dtype)
    except (TypeError, ValueError) as e:
        raise DescriptorError() from e

    if descriptor.ndim != 1 or descriptor.size == 0:
        raise DescriptorError()
    if not np.all(np.isfinite(descriptor)):
        raise DescriptorError("Face descriptor contains non-finite values")
    if expected_length is not None and descriptor.size != expected_length:
        raise DescriptorError(
            f"Face descriptor has length {descriptor.size}, expected {expected_length}"
        )
    return descriptor


def descriptor_to_list(descriptor: FaceDescriptor) -> List[float]:
    """Plain float list suitable for JSON storage."""
    return [float(v) for v in np.asarray(descriptor, dtype=np.float32).ravel()]


def descriptor_from_list(values: List[float], expected_length: Optional[int] = None) -> FaceDescriptor:
    """Rebuild a descriptor from its stored float list."""
    if not isinstance(values, (list, tuple)):
        raise DescriptorError()
    if any(isinstance(v, bool) or not isinstance(v, (int, float)) for v in values):
        raise DescriptorError()
    if any(not math.isfinite(v) for v in values):
        raise DescriptorError("Face descriptor contains non-finite values")
    return as_descriptor(values, expected_length)


def parse_descriptor_json(text: str, expected_length: Optional[int] = None) -> FaceDescriptor:
    """Parse a JSON array string into a descriptor."""
    try:
        values = json.loads(text)
    except (TypeError, ValueError) as e:
        raise DescriptorError() from e
    return descriptor_from_list(values, expected_length)
