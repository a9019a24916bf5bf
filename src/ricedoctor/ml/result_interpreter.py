"""Turn raw classifier scores into a labelled diagnosis."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np

from ricedoctor.errors import EmptyScoreVectorError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from numpy.typing import ArrayLike

    from ricedoctor.ml.labels import LabelSet


@dataclass(frozen=True)
class ScoreVector:
    """Per-class scores in model class-index order.

    Scores are relative values for argmax selection and are not guaranteed to
    sum to 1.
    """

    values: tuple[float, ...]

    @classmethod
    def from_array(cls, scores: ArrayLike) -> ScoreVector:
        return cls(tuple(float(v) for v in np.asarray(scores, dtype=np.float64).reshape(-1)))

    def __len__(self) -> int:
        return len(self.values)


@dataclass(frozen=True)
class ClassificationResult:
    """A single ranked class prediction."""

    label: str
    confidence: float


@dataclass(frozen=True)
class Diagnosis:
    """Best class for one inference request."""

    label: str
    confidence: str
    class_index: int
    score: float
    ranking: tuple[ClassificationResult, ...] = field(default=())


def format_confidence(score: float) -> str:
    """Format a score as a percentage with two decimals, e.g. ``0.6 -> "60.00%"``."""
    return f"{score * 100:.2f}%"


def _validate(scores: ScoreVector | Iterable[float], labels: LabelSet) -> ScoreVector:
    vector = scores if isinstance(scores, ScoreVector) else ScoreVector.from_array(list(scores))
    if len(vector) == 0:
        raise EmptyScoreVectorError("Classifier returned an empty score vector")
    if len(vector) != len(labels):
        raise EmptyScoreVectorError(
            f"Classifier returned {len(vector)} scores for {len(labels)} labels; model and label set disagree"
        )
    return vector


def rank(
    scores: ScoreVector | Iterable[float],
    labels: LabelSet,
    top_k: int | None = None,
) -> list[ClassificationResult]:
    """Return classes sorted by descending score, ties broken by lowest index."""
    vector = _validate(scores, labels)
    order = sorted(range(len(vector)), key=lambda i: (-vector.values[i], i))
    if top_k is not None:
        order = order[:top_k]
    return [ClassificationResult(label=labels[i], confidence=vector.values[i]) for i in order]


def interpret(scores: ScoreVector | Iterable[float], labels: LabelSet) -> Diagnosis:
    """Pick the highest scoring label.

    Ties resolve to the lowest class index.

    Raises:
        EmptyScoreVectorError: If ``scores`` is empty or its length differs
            from ``labels``.
    """
    vector = _validate(scores, labels)
    index = int(np.argmax(vector.values))
    best = vector.values[index]
    return Diagnosis(
        label=labels[index],
        confidence=format_confidence(best),
        class_index=index,
        score=best,
        ranking=tuple(rank(vector, labels)),
    )
