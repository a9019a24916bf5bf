"""Tests for image normalization and tensor encoding."""

from __future__ import annotations

import io
from typing import TYPE_CHECKING

import numpy as np
import pytest
from conftest import make_image_bytes
from PIL import Image

from ricedoctor.errors import EncodingError, ImageDecodeError
from ricedoctor.ml.preprocessing import ImageNormalizer, NormalizedImage, TensorEncoder

if TYPE_CHECKING:
    from pathlib import Path

TENSOR_LENGTH = 224 * 224 * 3


def _png(img: Image.Image) -> bytes:
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


# ---------------------------------------------------------------------------
# ImageNormalizer
# ---------------------------------------------------------------------------


class TestImageNormalizer:
    @pytest.mark.parametrize("size", [(640, 480), (100, 300), (224, 224), (1, 1)])
    def test_output_is_always_224_square(self, size: tuple[int, int]) -> None:
        normalized = ImageNormalizer().normalize(make_image_bytes(size=size))

        assert (normalized.width, normalized.height) == (224, 224)
        with Image.open(io.BytesIO(normalized.data)) as img:
            assert img.format == "JPEG"
            assert img.size == (224, 224)

    def test_reads_from_path(self, tmp_path: Path, leaf_jpeg: bytes) -> None:
        source = tmp_path / "leaf.jpg"
        source.write_bytes(leaf_jpeg)

        normalized = ImageNormalizer().normalize(source)

        assert (normalized.width, normalized.height) == (224, 224)

    def test_accepts_non_rgb_sources(self) -> None:
        rgba = Image.new("RGBA", (50, 80), (10, 200, 30, 100))
        gray = Image.new("L", (90, 40), 128)

        for data in (_png(rgba), _png(gray)):
            normalized = ImageNormalizer().normalize(data)
            assert (normalized.width, normalized.height) == (224, 224)

    def test_resize_stretches_instead_of_cropping(self) -> None:
        # Left half red, right half blue on a wide image: after a direct resize
        # both colours must still reach the edges of the square output.
        img = Image.new("RGB", (400, 100), (255, 0, 0))
        for x in range(200, 400):
            for y in range(100):
                img.putpixel((x, y), (0, 0, 255))

        normalized = ImageNormalizer().normalize(_png(img))

        with Image.open(io.BytesIO(normalized.data)) as out:
            left = out.getpixel((5, 112))
            right = out.getpixel((218, 112))
        assert left[0] > 200 and left[2] < 60
        assert right[2] > 200 and right[0] < 60

    def test_garbage_bytes_raise_decode_error(self) -> None:
        with pytest.raises(ImageDecodeError):
            ImageNormalizer().normalize(b"definitely not an image")

    def test_missing_file_raises_decode_error(self, tmp_path: Path) -> None:
        with pytest.raises(ImageDecodeError):
            ImageNormalizer().normalize(tmp_path / "missing.jpg")

    def test_pixel_limit_enforced(self) -> None:
        normalizer = ImageNormalizer(max_image_pixels=100)
        with pytest.raises(ImageDecodeError, match="limit"):
            normalizer.normalize(make_image_bytes(size=(20, 20)))

    def test_normalization_is_deterministic(self, leaf_jpeg: bytes) -> None:
        normalizer = ImageNormalizer()
        assert normalizer.normalize(leaf_jpeg) == normalizer.normalize(leaf_jpeg)


# ---------------------------------------------------------------------------
# TensorEncoder
# ---------------------------------------------------------------------------


class TestTensorEncoder:
    def test_tensor_length_and_dtype(self, leaf_jpeg: bytes) -> None:
        tensor = TensorEncoder().encode(ImageNormalizer().normalize(leaf_jpeg))

        assert tensor.shape == (TENSOR_LENGTH,)
        assert tensor.dtype == np.float32

    def test_two_by_two_grid_interleaves_rgb_and_drops_alpha(self) -> None:
        pixels = np.array(
            [
                [10, 20, 30, 255],
                [40, 50, 60, 128],
                [70, 80, 90, 0],
                [100, 110, 120, 7],
            ],
            dtype=np.uint8,
        )

        tensor = TensorEncoder(width=2, height=2).pack_rgb(pixels.reshape(-1))

        assert tensor.tolist() == [10, 20, 30, 40, 50, 60, 70, 80, 90, 100, 110, 120]
        for alpha in (255, 128, 7):
            assert alpha not in tensor.tolist()

    def test_values_stay_in_raw_byte_range(self) -> None:
        image = NormalizedImage(data=_png(Image.new("RGB", (224, 224), (200, 100, 50))), width=224, height=224)

        tensor = TensorEncoder().encode(image)

        assert tensor[:6].tolist() == [200.0, 100.0, 50.0, 200.0, 100.0, 50.0]
        assert tensor.max() == 200.0

    def test_row_major_scan_order(self) -> None:
        img = Image.new("RGB", (224, 224), (0, 0, 0))
        img.putpixel((0, 0), (255, 0, 0))
        img.putpixel((1, 0), (0, 255, 0))
        img.putpixel((0, 1), (0, 0, 255))
        image = NormalizedImage(data=_png(img), width=224, height=224)

        tensor = TensorEncoder().encode(image)

        assert tensor[0:3].tolist() == [255.0, 0.0, 0.0]
        assert tensor[3:6].tolist() == [0.0, 255.0, 0.0]
        second_row = 224 * 3
        assert tensor[second_row : second_row + 3].tolist() == [0.0, 0.0, 255.0]

    def test_short_pixel_buffer_is_rejected(self) -> None:
        pixels = np.zeros(224 * 224 * 4 - 4, dtype=np.uint8)
        with pytest.raises(EncodingError, match="expected"):
            TensorEncoder().pack_rgb(pixels)

    def test_long_pixel_buffer_is_rejected(self) -> None:
        pixels = np.zeros(224 * 224 * 4 + 4, dtype=np.uint8)
        with pytest.raises(EncodingError):
            TensorEncoder().pack_rgb(pixels)

    def test_mislabelled_dimensions_are_rejected(self) -> None:
        # Claims 224x224 but the payload decodes to 100x100.
        image = NormalizedImage(data=_png(Image.new("RGB", (100, 100))), width=224, height=224)
        with pytest.raises(EncodingError):
            TensorEncoder().encode(image)

    def test_wrong_declared_size_is_rejected(self) -> None:
        image = NormalizedImage(data=_png(Image.new("RGB", (100, 100))), width=100, height=100)
        with pytest.raises(EncodingError, match="100x100"):
            TensorEncoder().encode(image)

    def test_undecodable_payload_raises_decode_error(self) -> None:
        image = NormalizedImage(data=b"\xff\xd8broken", width=224, height=224)
        with pytest.raises(ImageDecodeError):
            TensorEncoder().encode(image)
