"""Shared fixtures: synthetic images and a fake ONNX session."""

from __future__ import annotations

import io
from types import SimpleNamespace
from typing import TYPE_CHECKING
from unittest.mock import MagicMock

import numpy as np
import pytest
from PIL import Image

if TYPE_CHECKING:
    from collections.abc import Sequence

SAMPLE_SCORES: list[float] = [0.1, 0.05, 0.6, 0.1, 0.05, 0.05, 0.05]


def make_image_bytes(
    size: tuple[int, int] = (320, 240),
    color: tuple[int, int, int] = (60, 140, 40),
    fmt: str = "JPEG",
) -> bytes:
    """Encode a solid-colour image with a lighter band so it is not uniform."""
    img = Image.new("RGB", size, color)
    for x in range(size[0] // 3):
        for y in range(size[1]):
            img.putpixel((x, y), (min(color[0] + 80, 255), color[1], color[2]))
    buffer = io.BytesIO()
    img.save(buffer, format=fmt)
    return buffer.getvalue()


def make_fake_session(
    scores: Sequence[float] = SAMPLE_SCORES,
    input_shape: Sequence[int | str | None] = (None, 224, 224, 3),
    output_shape: Sequence[int | str | None] = (None, 7),
    metadata: dict[str, str] | None = None,
) -> MagicMock:
    """Build a stand-in for onnxruntime.InferenceSession."""
    session = MagicMock()
    session.get_inputs.return_value = [SimpleNamespace(name="input_1", shape=list(input_shape))]
    session.get_outputs.return_value = [SimpleNamespace(name="predictions", shape=list(output_shape))]
    session.get_modelmeta.return_value = SimpleNamespace(custom_metadata_map=metadata or {})
    session.run.return_value = [np.array([scores], dtype=np.float32)]
    return session


@pytest.fixture()
def leaf_jpeg() -> bytes:
    """A non-square JPEG standing in for a rice leaf photo."""
    return make_image_bytes()
