"""Diagnosis queue and startup model loading.

Diagnoses run off the event loop, one after another by default::

    POST /diagnose -> asyncio.Semaphore(max_concurrent) -> worker thread -> DiagnosisPipeline

A request that cannot get a slot within ``queue_timeout`` seconds is turned
away with 503 rather than piling up behind a slow inference. A client that
disconnects mid-diagnosis simply has its result discarded.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, TypeVar

from ricedoctor.errors import ModelLoadError

if TYPE_CHECKING:
    from collections.abc import Callable

    from ricedoctor.config import Settings
    from ricedoctor.ml.model_manager import ModelHandle, ModelState, OnnxModelRuntime

logger = logging.getLogger(__name__)

T = TypeVar("T")


class InferencePool:
    """Serializes diagnoses onto a small worker pool (one worker unless configured)."""

    def __init__(self, settings: Settings) -> None:
        self._timeout = settings.queue_timeout
        self._slots = asyncio.Semaphore(settings.max_concurrent)
        self._executor = ThreadPoolExecutor(
            max_workers=settings.max_concurrent,
            thread_name_prefix="ricedoctor-diagnosis",
        )
        self._active_count: int = 0
        self._queue_depth: int = 0
        self._counter_lock = threading.Lock()

    async def run(self, func: Callable[..., T], *args: object) -> T:
        """Wait for a free slot, then run ``func(*args)`` on a worker thread.

        Raises:
            TimeoutError: If no slot frees up within the queue timeout.
        """
        with self._counter_lock:
            self._queue_depth += 1
        try:
            await asyncio.wait_for(self._slots.acquire(), timeout=self._timeout)
        except TimeoutError:
            logger.warning("Diagnosis queue full for %.1fs; rejecting request", self._timeout)
            raise
        finally:
            with self._counter_lock:
                self._queue_depth -= 1

        with self._counter_lock:
            self._active_count += 1
        try:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(self._executor, func, *args)
        finally:
            self._slots.release()
            with self._counter_lock:
                self._active_count -= 1

    @property
    def active_count(self) -> int:
        """Diagnoses currently running."""
        with self._counter_lock:
            return self._active_count

    @property
    def queue_depth(self) -> int:
        """Requests waiting for a slot."""
        with self._counter_lock:
            return self._queue_depth

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)


async def initialize_model(state: ModelState, runtime: OnnxModelRuntime) -> None:
    """Resolve and load the classifier once, recording the outcome on ``state``.

    Every load failure is terminal: the state becomes ``failed`` and is never retried.
    """
    state.mark_loading()

    def _resolve_and_load() -> ModelHandle:
        return runtime.load(runtime.resolve_artifact())

    try:
        handle = await asyncio.to_thread(_resolve_and_load)
    except ModelLoadError as exc:
        state.mark_failed(exc)
        return
    except Exception as exc:
        logger.exception("Unexpected error while loading the model")
        error = ModelLoadError(f"Unexpected error while loading the model: {exc}")
        error.__cause__ = exc
        state.mark_failed(error)
        return
    state.mark_ready(handle)
