"""End-to-end diagnosis: photo in, labelled diagnosis and advice out."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ricedoctor.ml.advice import lookup_advice
from ricedoctor.ml.labels import LABELS
from ricedoctor.ml.preprocessing import ImageNormalizer, TensorEncoder
from ricedoctor.ml.result_interpreter import Diagnosis, interpret

if TYPE_CHECKING:
    from ricedoctor.config import Settings
    from ricedoctor.ml.labels import LabelSet
    from ricedoctor.ml.model_manager import ModelState, OnnxModelRuntime
    from ricedoctor.ml.preprocessing import SourceImage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DiagnosisReport:
    """A diagnosis together with its treatment advice."""

    diagnosis: Diagnosis
    advice: str


class DiagnosisPipeline:
    """Runs normalize -> encode -> classify -> interpret -> advise for one image.

    Each call is stateless; the only shared state is the read-only model handle.
    """

    def __init__(
        self,
        state: ModelState,
        runtime: OnnxModelRuntime,
        normalizer: ImageNormalizer | None = None,
        encoder: TensorEncoder | None = None,
        labels: LabelSet = LABELS,
    ) -> None:
        self._state = state
        self._runtime = runtime
        self._normalizer = normalizer or ImageNormalizer()
        self._encoder = encoder or TensorEncoder()
        self._labels = labels

    @classmethod
    def from_settings(cls, settings: Settings, state: ModelState, runtime: OnnxModelRuntime) -> DiagnosisPipeline:
        size = settings.image_size
        return cls(
            state,
            runtime,
            normalizer=ImageNormalizer(
                width=size,
                height=size,
                jpeg_quality=settings.jpeg_quality,
                max_image_pixels=settings.max_image_pixels,
            ),
            encoder=TensorEncoder(width=size, height=size),
        )

    def diagnose(self, source: SourceImage) -> DiagnosisReport:
        """Classify ``source`` and attach advice.

        Raises:
            InferenceError: If the model is not ready or execution fails.
            ImageDecodeError: If the source image cannot be decoded.
            EncodingError: If the decoded pixels have an unexpected size.
            EmptyScoreVectorError: If the model output does not match the labels.
        """
        handle = self._state.handle

        normalized = self._normalizer.normalize(source)
        tensor = self._encoder.encode(normalized)
        scores = self._runtime.run(handle, tensor)
        diagnosis = interpret(scores, self._labels)

        logger.debug("Diagnosed %s (%s)", diagnosis.label, diagnosis.confidence)
        return DiagnosisReport(diagnosis=diagnosis, advice=lookup_advice(diagnosis.label))
