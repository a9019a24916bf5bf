"""Label vocabulary of the rice disease classifier.

The position of each name is the class index the model was trained with.
Reordering this tuple silently mislabels every prediction.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from ricedoctor.errors import ModelLoadError

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger(__name__)

LabelSet = tuple[str, ...]

LABELS: LabelSet = (
    "Bacterial Leaf Blight",
    "Brown Spot",
    "Healthy Rice Leaf",
    "Leaf Blast",
    "Leaf Scald",
    "NOT_A_RICE_LEAF",
    "Sheath Blight",
)

LABELS_METADATA_KEY = "labels"


def check_model_labels(metadata: Mapping[str, str], labels: LabelSet = LABELS) -> None:
    """Compare the label order embedded in the model metadata with ``labels``.

    Models without a ``labels`` property are accepted as-is.

    Raises:
        ModelLoadError: If the embedded labels are unparsable or differ from ``labels``.
    """
    raw = metadata.get(LABELS_METADATA_KEY)
    if raw is None:
        logger.debug("Model carries no label metadata; using built-in vocabulary")
        return

    try:
        embedded = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ModelLoadError(f"Model label metadata is not valid JSON: {exc}") from exc

    if not isinstance(embedded, list) or tuple(embedded) != labels:
        raise ModelLoadError(f"Model label order {embedded!r} does not match the configured vocabulary {list(labels)!r}")
