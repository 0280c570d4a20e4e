"""Tests for descriptor extraction and one-shot verification."""

import numpy as np
import pytest

from facescan.constants import RecognitionConfig
from facescan.errors import (
    InvalidImageError,
    ModelLoadError,
    MultipleFacesDetected,
    NoFaceDetected,
)
from facescan.recognition import DescriptorExtractor, DescriptorMatcher, FaceVerifier

from conftest import FakeAnalyzer, FakeFace


def extractor_for(faces):
    return DescriptorExtractor(config=RecognitionConfig(), analyzer=FakeAnalyzer(faces))


class TestDescriptorExtractor:
    def test_single_face(self, sample_image, unit_embedding):
        extractor = extractor_for([FakeFace(normed_embedding=unit_embedding)])
        descriptor = extractor.extract(sample_image)

        assert descriptor.dtype == np.float32
        np.testing.assert_array_equal(descriptor, unit_embedding)
        assert extractor.embedding_dim == 4

    def test_no_face(self, sample_image):
        with pytest.raises(NoFaceDetected) as excinfo:
            extractor_for([]).extract(sample_image)
        assert excinfo.value.message == "No face detected in image"

    def test_multiple_faces_rejected(self, sample_image, unit_embedding):
        """Several faces are rejected instead of picking the best one."""
        faces = [FakeFace(normed_embedding=unit_embedding), FakeFace(normed_embedding=unit_embedding)]
        with pytest.raises(MultipleFacesDetected) as excinfo:
            extractor_for(faces).extract(sample_image)
        assert excinfo.value.count == 2

    def test_low_confidence_faces_ignored(self, sample_image, unit_embedding):
        faces = [
            FakeFace(normed_embedding=unit_embedding, det_score=0.95),
            FakeFace(normed_embedding=unit_embedding * 0, det_score=0.2),
        ]
        descriptor = extractor_for(faces).extract(sample_image)
        np.testing.assert_array_equal(descriptor, unit_embedding)

    def test_accepts_encoded_bytes(self, sample_jpeg, fake_analyzer):
        extractor = DescriptorExtractor(config=RecognitionConfig(), analyzer=fake_analyzer)
        assert extractor.extract(sample_jpeg).shape == (4,)
        assert fake_analyzer.calls == 1

    def test_invalid_bytes(self, fake_analyzer):
        extractor = DescriptorExtractor(config=RecognitionConfig(), analyzer=fake_analyzer)
        with pytest.raises(InvalidImageError):
            extractor.extract(b"garbage")
        assert fake_analyzer.calls == 0

    def test_injected_analyzer_counts_as_loaded(self, fake_analyzer):
        extractor = DescriptorExtractor(config=RecognitionConfig(), analyzer=fake_analyzer)
        assert extractor.is_loaded
        assert extractor.load() is None

    def test_model_load_failure(self, sample_image, monkeypatch):
        def broken(*args, **kwargs):
            raise OSError("model pack not found")

        monkeypatch.setattr("facescan.recognition.extractor.load_face_analysis", broken)
        extractor = DescriptorExtractor(config=RecognitionConfig())

        with pytest.raises(ModelLoadError):
            extractor.extract(sample_image)
        assert not extractor.is_loaded

    def test_extractors_share_model_load(self, monkeypatch, fake_analyzer):
        calls = []

        def loader(*args, **kwargs):
            calls.append(args)
            return fake_analyzer

        monkeypatch.setattr("facescan.recognition.extractor.load_face_analysis", loader)
        first = DescriptorExtractor(config=RecognitionConfig())
        second = DescriptorExtractor(config=RecognitionConfig())

        assert first.load() is second.load()
        first.load().result(timeout=5)
        assert len(calls) == 1


class TestFaceVerifier:
    def test_matching_face(self, sample_image, unit_embedding, fake_analyzer):
        verifier = FaceVerifier(
            DescriptorExtractor(config=RecognitionConfig(), analyzer=fake_analyzer),
            DescriptorMatcher(config=RecognitionConfig()),
        )
        result = verifier.verify(sample_image, unit_embedding)

        assert result.is_match
        assert result.score == pytest.approx(1.0)

    def test_non_matching_face(self, sample_image, fake_analyzer):
        verifier = FaceVerifier(
            DescriptorExtractor(config=RecognitionConfig(), analyzer=fake_analyzer),
            DescriptorMatcher(config=RecognitionConfig()),
        )
        result = verifier.verify(sample_image, [0.0, 1.0, 0.0, 0.0])

        assert not result.is_match
        assert result.distance == pytest.approx(np.sqrt(2))
        assert result.score == 0.0
