"""Tests for score interpretation."""

from __future__ import annotations

import numpy as np
import pytest

from ricedoctor.errors import EmptyScoreVectorError
from ricedoctor.ml.labels import LABELS
from ricedoctor.ml.result_interpreter import ScoreVector, format_confidence, interpret, rank


class TestInterpret:
    def test_picks_maximum_score(self) -> None:
        diagnosis = interpret([0.1, 0.05, 0.6, 0.1, 0.05, 0.05, 0.05], LABELS)

        assert diagnosis.class_index == 2
        assert diagnosis.label == "Healthy Rice Leaf"
        assert diagnosis.confidence == "60.00%"

    def test_tie_resolves_to_lowest_index(self) -> None:
        diagnosis = interpret([0.5, 0.5, 0, 0, 0, 0, 0], LABELS)

        assert diagnosis.class_index == 0
        assert diagnosis.label == "Bacterial Leaf Blight"
        assert diagnosis.confidence == "50.00%"

    def test_length_mismatch_raises(self) -> None:
        with pytest.raises(EmptyScoreVectorError, match="5 scores for 7 labels"):
            interpret([0.2, 0.2, 0.2, 0.2, 0.2], LABELS)

    def test_empty_vector_raises(self) -> None:
        with pytest.raises(EmptyScoreVectorError, match="empty"):
            interpret([], LABELS)

    def test_accepts_numpy_and_score_vector(self) -> None:
        scores = np.array([0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.9], dtype=np.float32)

        from_array = interpret(scores, LABELS)
        from_vector = interpret(ScoreVector.from_array(scores), LABELS)

        assert from_array == from_vector
        assert from_array.label == "Sheath Blight"

    def test_unnormalized_scores_are_not_rescaled(self) -> None:
        diagnosis = interpret([1.0, 2.5, 0.0, 0.0, 0.0, 0.0, 0.0], LABELS)
        assert diagnosis.confidence == "250.00%"

    def test_ranking_is_attached(self) -> None:
        diagnosis = interpret([0.1, 0.05, 0.6, 0.1, 0.05, 0.05, 0.05], LABELS)

        assert len(diagnosis.ranking) == len(LABELS)
        assert diagnosis.ranking[0].label == diagnosis.label


class TestRank:
    def test_sorted_descending_with_index_tie_break(self) -> None:
        ranked = rank([0.1, 0.05, 0.6, 0.1, 0.05, 0.05, 0.05], LABELS)

        assert [r.label for r in ranked[:3]] == ["Healthy Rice Leaf", "Bacterial Leaf Blight", "Leaf Blast"]
        assert ranked[0].confidence == pytest.approx(0.6)

    def test_top_k(self) -> None:
        assert len(rank([0.1, 0.05, 0.6, 0.1, 0.05, 0.05, 0.05], LABELS, top_k=2)) == 2

    def test_length_mismatch_raises(self) -> None:
        with pytest.raises(EmptyScoreVectorError):
            rank([1.0], LABELS)


class TestFormatConfidence:
    @pytest.mark.parametrize(
        ("score", "expected"),
        [(0.6, "60.00%"), (1.0, "100.00%"), (0.0, "0.00%"), (0.12344, "12.34%")],
    )
    def test_two_decimal_percentage(self, score: float, expected: str) -> None:
        assert format_confidence(score) == expected
