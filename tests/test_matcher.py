"""Tests for descriptor matching and descriptor helpers."""

import json

import numpy as np
import pytest

from facescan.constants import RecognitionConfig
from facescan.errors import DescriptorError
from facescan.recognition import (
    DescriptorMatcher,
    MatchResult,
    descriptor_from_list,
    descriptor_to_list,
    euclidean_distance,
    format_score_percent,
    match_descriptors,
    parse_descriptor_json,
)


@pytest.fixture
def matcher():
    return DescriptorMatcher(config=RecognitionConfig())


def at_distance(d):
    """Pair of 2-d descriptors exactly ``d`` apart."""
    return [0.0, 0.0], [d, 0.0]


class TestDescriptorMatcher:
    def test_close_faces_match(self, matcher):
        result = matcher.match(*at_distance(0.25))
        assert result.distance == pytest.approx(0.25)
        assert result.score == pytest.approx(0.75)
        assert result.is_match is True

    def test_distant_faces_do_not_match(self, matcher):
        result = matcher.match(*at_distance(0.55))
        assert result.score == pytest.approx(0.45)
        assert result.is_match is False

    def test_threshold_is_inclusive(self, matcher):
        result = matcher.match(*at_distance(0.4))
        assert result.is_match is True

    def test_identical_descriptors(self, matcher):
        vector = np.random.rand(512).astype(np.float32)
        result = matcher.match(vector, vector.copy())
        assert result.distance == 0.0
        assert result.score == 1.0

    def test_score_clamped_at_zero(self, matcher):
        result = matcher.match(*at_distance(1.7))
        assert result.score == 0.0
        assert result.is_match is False

    def test_symmetry(self, matcher):
        rng = np.random.default_rng(7)
        for _ in range(20):
            a = rng.normal(size=128).astype(np.float32)
            b = rng.normal(size=128).astype(np.float32)
            assert matcher.match(a, b).distance == matcher.match(b, a).distance

    def test_score_monotonic_in_distance(self, matcher):
        scores = [matcher.match(*at_distance(d)).score for d in np.linspace(0, 2, 41)]
        assert all(earlier >= later for earlier, later in zip(scores, scores[1:]))

    def test_stricter_threshold(self):
        strict = DescriptorMatcher(threshold=0.2, config=RecognitionConfig())
        assert strict.match(*at_distance(0.25)).is_match is False

    def test_length_mismatch(self, matcher):
        with pytest.raises(DescriptorError):
            matcher.match([0.0, 0.0], [0.0, 0.0, 0.0])

    def test_invalid_max_distance(self):
        with pytest.raises(ValueError):
            DescriptorMatcher(max_distance=0, config=RecognitionConfig())

    def test_match_descriptors_helper(self):
        result = match_descriptors(*at_distance(0.3), threshold=0.4, max_distance=1.0)
        assert isinstance(result, MatchResult)
        assert result.is_match

    def test_euclidean_distance(self):
        assert euclidean_distance([0.0, 0.0], [3.0, 4.0]) == pytest.approx(5.0)


class TestScoreFormatting:
    @pytest.mark.parametrize("score,expected", [(0.75, "75.00"), (0.45, "45.00"), (1.0, "100.00"), (0.0, "0.00")])
    def test_format(self, score, expected):
        assert format_score_percent(score) == expected

    def test_match_result_percent(self):
        result = MatchResult(distance=0.2534, score=0.7466, is_match=True)
        assert result.score_percent == "74.66"
        assert result.to_dict() == {"distance": 0.2534, "score": 0.7466, "is_match": True}


class TestDescriptorHelpers:
    def test_list_roundtrip(self):
        descriptor = np.random.rand(128).astype(np.float32)
        restored = descriptor_from_list(descriptor_to_list(descriptor))
        np.testing.assert_array_equal(restored, descriptor)
        assert restored.dtype == np.float32

    def test_parse_json(self):
        descriptor = parse_descriptor_json(json.dumps([0.1, 0.2, 0.3]))
        assert descriptor.shape == (3,)

    def test_expected_length(self):
        with pytest.raises(DescriptorError):
            parse_descriptor_json("[0.1, 0.2]", expected_length=128)

    @pytest.mark.parametrize("text", [
        "not json",
        '{"a": 1}',
        "[]",
        "[true, false]",
        '["0.1", "0.2"]',
        "[[0.1], [0.2]]",
        "[NaN, 0.1]",
        "null",
    ])
    def test_invalid_json(self, text):
        with pytest.raises(DescriptorError):
            parse_descriptor_json(text)

    def test_descriptor_error_is_value_error(self):
        with pytest.raises(ValueError):
            parse_descriptor_json("nope")
