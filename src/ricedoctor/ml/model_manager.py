"""Model runtime: resolve, load and execute the ONNX rice disease classifier.

The classifier is loaded once per process. ``ModelState`` tracks that single
load explicitly::

    uninitialized -> loading -> ready
                             -> failed (terminal)

``OnnxModelRuntime`` resolves the artifact (local file or HuggingFace Hub),
validates it against the label vocabulary and the input tensor size, and runs
one forward pass at a time.
"""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np
from huggingface_hub import hf_hub_download
from onnxruntime import InferenceSession, SessionOptions
from onnxruntime.capi.onnxruntime_pybind11_state import ExecutionMode

from ricedoctor.errors import InferenceError, ModelLoadError
from ricedoctor.ml.labels import LABELS, check_model_labels
from ricedoctor.ml.preprocessing import RGB_CHANNELS
from ricedoctor.ml.result_interpreter import ScoreVector

if TYPE_CHECKING:
    from numpy.typing import ArrayLike, NDArray

    from ricedoctor.config import Settings
    from ricedoctor.ml.labels import LabelSet

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Loading state
# ---------------------------------------------------------------------------


class ModelStatus(StrEnum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


_TRANSITIONS: dict[ModelStatus, set[ModelStatus]] = {
    ModelStatus.UNINITIALIZED: {ModelStatus.LOADING},
    ModelStatus.LOADING: {ModelStatus.READY, ModelStatus.FAILED},
    ModelStatus.READY: set(),
    ModelStatus.FAILED: set(),
}


@dataclass(frozen=True)
class ModelHandle:
    """A loaded, validated classifier session. Read-only once created."""

    session: InferenceSession
    artifact: Path
    input_name: str
    input_shape: tuple[int, ...]
    output_name: str
    labels: LabelSet
    channels_first: bool = False

    @property
    def input_length(self) -> int:
        return math.prod(self.input_shape)

    def to_model_input(self, flat: NDArray[np.float32]) -> NDArray[np.float32]:
        """Shape an interleaved RGB tensor for the model's declared layout.

        NCHW models get the pixel-interleaved data transposed into channel planes.
        """
        if not self.channels_first:
            return flat.reshape(self.input_shape)
        batch, channels, height, width = self.input_shape
        nhwc = flat.reshape(batch, height, width, channels)
        return np.ascontiguousarray(nhwc.transpose(0, 3, 1, 2))


class ModelState:
    """Process-wide lifecycle of the single classifier load."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._status = ModelStatus.UNINITIALIZED
        self._handle: ModelHandle | None = None
        self._error: Exception | None = None

    @property
    def status(self) -> ModelStatus:
        with self._lock:
            return self._status

    @property
    def error(self) -> Exception | None:
        with self._lock:
            return self._error

    @property
    def is_ready(self) -> bool:
        return self.status is ModelStatus.READY

    @property
    def handle(self) -> ModelHandle:
        """Return the loaded handle.

        Raises:
            InferenceError: If the model is not ready.
        """
        with self._lock:
            if self._status is not ModelStatus.READY or self._handle is None:
                raise InferenceError(f"Model is not ready (state={self._status})")
            return self._handle

    def mark_loading(self) -> None:
        self._transition(ModelStatus.LOADING)

    def mark_ready(self, handle: ModelHandle) -> None:
        with self._lock:
            self._check_transition(ModelStatus.READY)
            self._handle = handle
            self._status = ModelStatus.READY
        logger.info("Model ready (%s)", handle.artifact)

    def mark_failed(self, error: Exception) -> None:
        with self._lock:
            self._check_transition(ModelStatus.FAILED)
            self._error = error
            self._status = ModelStatus.FAILED
        logger.error("Model load failed, inference disabled until restart: %s", error)

    def _transition(self, target: ModelStatus) -> None:
        with self._lock:
            self._check_transition(target)
            self._status = target

    def _check_transition(self, target: ModelStatus) -> None:
        if target not in _TRANSITIONS[self._status]:
            raise RuntimeError(f"Invalid model state transition: {self._status} -> {target}")


# ---------------------------------------------------------------------------
# ONNX runtime adapter
# ---------------------------------------------------------------------------


class OnnxModelRuntime:
    """Loads the classifier artifact and runs forward passes on it."""

    def __init__(self, settings: Settings, labels: LabelSet = LABELS) -> None:
        self._settings = settings
        self._labels = labels
        self._expected_input_length = settings.image_size * settings.image_size * RGB_CHANNELS
        self._run_lock = threading.Lock()

        self._providers = self._build_providers()
        self._session_options = self._build_session_options()

    # -- Public API ---------------------------------------------------------

    def resolve_artifact(self) -> Path:
        """Return a local path to the model, downloading it from the Hub if configured.

        Raises:
            ModelLoadError: If no local file exists and no Hub repo is configured,
                or the download fails.
        """
        local = Path(self._settings.model_path)
        if local.is_file():
            return local

        repo_id = self._settings.model_repo_id
        if repo_id is None:
            raise ModelLoadError(f"Model artifact not found at {local} and RICEDOCTOR_MODEL_REPO_ID is not set")

        try:
            downloaded = Path(
                hf_hub_download(
                    repo_id=repo_id,
                    filename=self._settings.model_filename,
                    local_dir=self._settings.models_dir,
                )
            )
        except Exception as exc:
            raise ModelLoadError(f"Could not download {self._settings.model_filename} from {repo_id}: {exc}") from exc
        logger.info("Downloaded %s to %s", self._settings.model_filename, downloaded)
        return downloaded

    def load(self, location: str | Path) -> ModelHandle:
        """Create an inference session for ``location`` and validate its signature.

        Raises:
            ModelLoadError: If the artifact is missing, malformed, or its input,
                output or label metadata disagree with this runtime.
        """
        artifact = Path(location)
        if not artifact.is_file():
            raise ModelLoadError(f"Model artifact not found: {artifact}")

        try:
            session = InferenceSession(
                str(artifact),
                sess_options=self._session_options,
                providers=self._providers,
            )
        except Exception as exc:
            raise ModelLoadError(f"Could not load model {artifact}: {exc}") from exc

        try:
            model_input = session.get_inputs()[0]
            model_output = session.get_outputs()[0]
            metadata = session.get_modelmeta().custom_metadata_map
        except Exception as exc:
            raise ModelLoadError(f"Could not read the signature of {artifact}: {exc}") from exc

        input_shape = tuple(dim if isinstance(dim, int) else 1 for dim in model_input.shape)

        if math.prod(input_shape) != self._expected_input_length:
            raise ModelLoadError(
                f"Model input {model_input.name} has shape {model_input.shape}, "
                f"expected {self._expected_input_length} elements"
            )
        channels_first = self._is_channels_first(input_shape)

        num_classes = model_output.shape[-1] if model_output.shape else None
        if isinstance(num_classes, int) and num_classes != len(self._labels):
            raise ModelLoadError(f"Model predicts {num_classes} classes but the label set has {len(self._labels)}")

        check_model_labels(metadata, self._labels)

        logger.info(
            "Loaded %s (input=%s %s %s, output=%s %s)",
            artifact,
            model_input.name,
            model_input.shape,
            "NCHW" if channels_first else "NHWC",
            model_output.name,
            model_output.shape,
        )
        return ModelHandle(
            session=session,
            artifact=artifact,
            input_name=model_input.name,
            input_shape=input_shape,
            output_name=model_output.name,
            labels=self._labels,
            channels_first=channels_first,
        )

    def run(self, handle: ModelHandle | None, tensor: ArrayLike) -> ScoreVector:
        """Execute one forward pass and return the per-class scores.

        Calls are serialized; only one inference runs at a time per runtime.

        Raises:
            InferenceError: If the handle is missing, the tensor has the wrong
                length, or execution fails.
        """
        if handle is None:
            raise InferenceError("Model is not loaded")

        flat = np.asarray(tensor, dtype=np.float32).reshape(-1)
        if flat.size != handle.input_length:
            raise InferenceError(f"Input tensor has {flat.size} values, model expects {handle.input_length}")

        feed = {handle.input_name: handle.to_model_input(flat)}
        with self._run_lock:
            try:
                outputs = handle.session.run([handle.output_name], feed)
            except Exception as exc:
                raise InferenceError(f"Model execution failed: {exc}") from exc

        scores = np.asarray(outputs[0], dtype=np.float32).reshape(-1)
        if not np.all(np.isfinite(scores)):
            raise InferenceError("Model returned non-finite scores")
        return ScoreVector.from_array(scores)

    # -- Internal -----------------------------------------------------------

    def _is_channels_first(self, input_shape: tuple[int, ...]) -> bool:
        size = self._settings.image_size
        if input_shape[1:] == (size, size, RGB_CHANNELS):
            return False
        if input_shape[1:] == (RGB_CHANNELS, size, size):
            return True
        raise ModelLoadError(
            f"Model input shape {input_shape} is neither [N, {size}, {size}, 3] nor [N, 3, {size}, {size}]"
        )

    def _build_providers(self) -> list[str | tuple[str, dict[str, object]]]:
        device = self._settings.device
        if device == "cuda":
            return [
                (
                    "CUDAExecutionProvider",
                    {
                        "device_id": 0,
                        "gpu_mem_limit": self._settings.gpu_mem_limit,
                        "arena_extend_strategy": "kSameAsRequested",
                    },
                ),
                "CPUExecutionProvider",
            ]
        if device == "openvino":
            return [
                ("OpenVINOExecutionProvider", {"device_type": "CPU"}),
                "CPUExecutionProvider",
            ]
        return ["CPUExecutionProvider"]

    def _build_session_options(self) -> SessionOptions:
        opts = SessionOptions()
        opts.intra_op_num_threads = self._settings.intra_op_threads
        opts.inter_op_num_threads = self._settings.inter_op_threads
        opts.execution_mode = ExecutionMode.ORT_SEQUENTIAL
        opts.enable_mem_pattern = True
        opts.enable_mem_reuse = True

        if self._settings.device == "openvino":
            # OpenVINO does its own graph optimization
            from onnxruntime import GraphOptimizationLevel

            opts.graph_optimization_level = GraphOptimizationLevel.ORT_DISABLE_ALL
        return opts
