"""Face recognition: descriptor extraction, matching and verification."""

from .types import (
    FaceDescriptor,
    MatchResult,
    as_descriptor,
    descriptor_from_list,
    descriptor_to_list,
    format_score_percent,
    parse_descriptor_json,
)
from .matcher import DescriptorMatcher, euclidean_distance, match_descriptors
from .extractor import DescriptorExtractor
from .verifier import FaceVerifier

__all__ = [
    "FaceDescriptor",
    "MatchResult",
    "as_descriptor",
    "descriptor_from_list",
    "descriptor_to_list",
    "format_score_percent",
    "parse_descriptor_json",
    "DescriptorMatcher",
    "euclidean_distance",
    "match_descriptors",
    "DescriptorExtractor",
    "FaceVerifier",
]
