"""Image preprocessing pipeline.

Two stages turn a user photo into model input:

1. ``ImageNormalizer`` decodes any raster image, applies EXIF orientation,
   stretches it to the model's input size (no cropping) and re-encodes it as
   an in-memory JPEG.
2. ``TensorEncoder`` decodes that JPEG into interleaved RGBA bytes and packs
   the R, G and B channels into a flat float32 tensor.

The tensor keeps raw 0-255 intensities. The classifier was trained on
unscaled pixels, so no normalization is applied here.
"""

from __future__ import annotations

import io
import logging
import os
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np
from PIL import Image, ImageOps

from ricedoctor.errors import EncodingError, ImageDecodeError

if TYPE_CHECKING:
    from numpy.typing import ArrayLike, NDArray

logger = logging.getLogger(__name__)

SourceImage = str | os.PathLike[str] | bytes

INPUT_SIZE: int = 224
RGB_CHANNELS: int = 3
RGBA_CHANNELS: int = 4


@dataclass(frozen=True)
class NormalizedImage:
    """A JPEG-encoded image resized to the model input dimensions."""

    data: bytes
    width: int
    height: int


class ImageNormalizer:
    """Resizes arbitrary source images to a fixed JPEG of the model input size."""

    def __init__(
        self,
        width: int = INPUT_SIZE,
        height: int = INPUT_SIZE,
        jpeg_quality: int = 95,
        max_image_pixels: int | None = None,
    ) -> None:
        self._size = (width, height)
        self._jpeg_quality = jpeg_quality
        self._max_image_pixels = max_image_pixels

    def normalize(self, source: SourceImage) -> NormalizedImage:
        """Decode ``source`` and return it stretched to the target size as JPEG.

        Args:
            source: Filesystem path or raw encoded image bytes.

        Raises:
            ImageDecodeError: If the source cannot be read or decoded, or
                exceeds the pixel limit.
        """
        fp = io.BytesIO(source) if isinstance(source, bytes) else source
        try:
            with Image.open(fp) as img:
                self._check_pixel_limit(img)
                rgb = ImageOps.exif_transpose(img).convert("RGB")
        except (OSError, ValueError, Image.DecompressionBombError) as exc:
            raise ImageDecodeError(f"Could not decode source image: {exc}") from exc

        resized = rgb.resize(self._size, resample=Image.Resampling.BILINEAR)

        buffer = io.BytesIO()
        resized.save(buffer, format="JPEG", quality=self._jpeg_quality)
        logger.debug("Normalized %sx%s image to %sx%s", rgb.width, rgb.height, *self._size)
        return NormalizedImage(data=buffer.getvalue(), width=resized.width, height=resized.height)

    def _check_pixel_limit(self, img: Image.Image) -> None:
        if self._max_image_pixels is None:
            return
        pixels = img.width * img.height
        if pixels > self._max_image_pixels:
            raise ImageDecodeError(f"Image has {pixels} pixels, limit is {self._max_image_pixels}")


class TensorEncoder:
    """Packs a normalized image into the flat RGB float32 tensor the model expects."""

    def __init__(self, width: int = INPUT_SIZE, height: int = INPUT_SIZE) -> None:
        self.width = width
        self.height = height

    @property
    def tensor_length(self) -> int:
        return self.width * self.height * RGB_CHANNELS

    def decode(self, image: NormalizedImage) -> NDArray[np.uint8]:
        """Decode JPEG bytes into a flat row-major RGBA pixel buffer."""
        try:
            with Image.open(io.BytesIO(image.data)) as img:
                rgba = img.convert("RGBA")
        except (OSError, ValueError) as exc:
            raise ImageDecodeError(f"Could not decode normalized image: {exc}") from exc
        return np.asarray(rgba, dtype=np.uint8).reshape(-1)

    def pack_rgb(self, pixels: ArrayLike) -> NDArray[np.float32]:
        """Drop the alpha channel and widen R, G, B bytes to float32.

        Raises:
            EncodingError: If the buffer is not exactly width * height * 4 bytes.
        """
        buffer = np.asarray(pixels, dtype=np.uint8).reshape(-1)
        expected = self.width * self.height * RGBA_CHANNELS
        if buffer.size != expected:
            raise EncodingError(f"Pixel buffer has {buffer.size} bytes, expected {expected}")

        tensor = buffer.reshape(-1, RGBA_CHANNELS)[:, :RGB_CHANNELS].astype(np.float32).reshape(-1)
        if tensor.size != self.tensor_length:
            raise EncodingError(f"Tensor has {tensor.size} values, expected {self.tensor_length}")
        return tensor

    def encode(self, image: NormalizedImage) -> NDArray[np.float32]:
        """Decode and pack ``image`` into an input tensor."""
        if (image.width, image.height) != (self.width, self.height):
            raise EncodingError(
                f"Normalized image is {image.width}x{image.height}, expected {self.width}x{self.height}"
            )
        return self.pack_rgb(self.decode(image))
