"""Tests for aspect-ratio cropping and the image codec."""

import numpy as np
import pytest

from facescan.errors import CropDimensionError, InvalidImageError
from facescan.postprocess import (
    CropWindow,
    compute_crop_window,
    crop_image_bytes,
    crop_to_aspect_ratio,
    decode_image,
    encode_jpeg,
)


def gradient_image(width, height):
    """Image whose pixels encode their own column, for checking offsets."""
    columns = np.tile(np.arange(width, dtype=np.uint16) % 256, (height, 1)).astype(np.uint8)
    return np.dstack([columns, columns, columns])


class TestComputeCropWindow:
    def test_wide_source_crops_sides(self):
        """1200x800 to 3:4 keeps a centered 600x800 window."""
        window = compute_crop_window(1200, 800, 0.75)
        assert window == CropWindow(x=300, y=0, width=600, height=800)

    def test_tall_source_crops_top_and_bottom(self):
        window = compute_crop_window(600, 1000, 0.75)
        assert window == CropWindow(x=0, y=100, width=600, height=800)

    def test_compliant_source_needs_no_crop(self):
        assert compute_crop_window(600, 800, 0.75) is None

    def test_within_tolerance_needs_no_crop(self):
        # 0.757 is within 0.01 of 0.75
        assert compute_crop_window(757, 1000, 0.75) is None

    def test_just_outside_tolerance_is_cropped(self):
        assert compute_crop_window(770, 1000, 0.75) is not None

    def test_offsets_are_rounded(self):
        window = compute_crop_window(1001, 1000, 0.75)
        assert window.width == 750
        assert window.x == 126

    def test_non_positive_crop_dimension(self):
        with pytest.raises(CropDimensionError):
            compute_crop_window(100, 1, target_ratio=0.1)

    @pytest.mark.parametrize("width,height", [(0, 100), (100, 0), (-5, 10)])
    def test_invalid_source_dimensions(self, width, height):
        with pytest.raises(CropDimensionError):
            compute_crop_window(width, height)


class TestCropToAspectRatio:
    def test_crop_example(self):
        image = gradient_image(1200, 800)
        cropped = crop_to_aspect_ratio(image, 0.75)

        assert cropped.shape == (800, 600, 3)
        np.testing.assert_array_equal(cropped, image[:, 300:900])

    def test_compliant_image_returned_unchanged(self):
        """No resampling: the very same array comes back."""
        image = gradient_image(600, 800)
        assert crop_to_aspect_ratio(image, 0.75) is image

    def test_camera_frame_to_portrait(self, sample_image):
        cropped = crop_to_aspect_ratio(sample_image)
        assert cropped.shape[:2] == (480, 360)

    def test_crop_is_a_copy(self):
        image = gradient_image(1200, 800)
        cropped = crop_to_aspect_ratio(image, 0.75)
        cropped[:] = 0
        assert image.any()


class TestImageCodec:
    def test_decode_roundtrip_shape(self, sample_image):
        decoded = decode_image(encode_jpeg(sample_image))
        assert decoded.shape == sample_image.shape

    @pytest.mark.parametrize("data", [b"", b"not an image"])
    def test_decode_invalid(self, data):
        with pytest.raises(InvalidImageError):
            decode_image(data)

    def test_crop_bytes_leaves_compliant_bytes_alone(self):
        data = encode_jpeg(gradient_image(600, 800))
        assert crop_image_bytes(data) is data

    def test_crop_bytes_reencodes(self, sample_jpeg):
        cropped = decode_image(crop_image_bytes(sample_jpeg))
        assert cropped.shape[:2] == (480, 360)
