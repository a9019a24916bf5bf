"""API route definitions."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, Request, UploadFile, status
from fastapi.responses import JSONResponse

from ricedoctor.api.middleware import verify_api_key
from ricedoctor.api.schemas import (
    DiagnosisResponse,
    ErrorResponse,
    HealthResponse,
    HistoryItem,
    HistoryResponse,
    LabelsResponse,
    RankedLabel,
)
from ricedoctor.errors import (
    EmptyScoreVectorError,
    EncodingError,
    ImageDecodeError,
    InferenceError,
    RiceDoctorError,
)
from ricedoctor.ml.labels import LABELS
from ricedoctor.ml.model_manager import ModelStatus

if TYPE_CHECKING:
    from ricedoctor.config import Settings
    from ricedoctor.history import DiagnosisHistory
    from ricedoctor.ml.inference import InferencePool
    from ricedoctor.ml.model_manager import ModelState
    from ricedoctor.ml.pipeline import DiagnosisPipeline

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", dependencies=[Depends(verify_api_key)])

ANALYSIS_FAILED_DETAIL = "Could not analyze image."


def _get_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def _get_inference_pool(request: Request) -> InferencePool:
    pool: InferencePool = request.app.state.inference_pool
    return pool


def _get_model_state(request: Request) -> ModelState:
    state: ModelState = request.app.state.model_state
    return state


def _get_pipeline(request: Request) -> DiagnosisPipeline:
    pipeline: DiagnosisPipeline = request.app.state.pipeline
    return pipeline


def _get_history(request: Request) -> DiagnosisHistory:
    history: DiagnosisHistory = request.app.state.history
    return history


def _error(status_code: int, detail: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail})


def _not_ready_response(state: ModelState) -> JSONResponse | None:
    model_status = state.status
    if model_status is ModelStatus.READY:
        return None
    if model_status is ModelStatus.FAILED:
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, "Model failed to load; restart required")
    return _error(status.HTTP_503_SERVICE_UNAVAILABLE, "Model is still loading")


def _pipeline_error_response(exc: RiceDoctorError) -> JSONResponse:
    if isinstance(exc, ImageDecodeError):
        logger.info("Rejected undecodable image: %s", exc)
        return _error(status.HTTP_422_UNPROCESSABLE_ENTITY, ANALYSIS_FAILED_DETAIL)
    if isinstance(exc, (EncodingError, EmptyScoreVectorError)):
        logger.error("Diagnosis failed on an internal invariant", exc_info=exc)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, ANALYSIS_FAILED_DETAIL)
    if isinstance(exc, InferenceError):
        logger.warning("Inference failed: %s", exc)
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, ANALYSIS_FAILED_DETAIL)
    logger.error("Diagnosis failed", exc_info=exc)
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, ANALYSIS_FAILED_DETAIL)


@router.post(
    "/diagnose",
    response_model=DiagnosisResponse,
    responses={
        status.HTTP_413_REQUEST_ENTITY_TOO_LARGE: {"model": ErrorResponse},
        status.HTTP_422_UNPROCESSABLE_ENTITY: {"model": ErrorResponse},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
    },
    summary="Diagnose a rice leaf photo",
)
async def diagnose(request: Request, file: UploadFile) -> DiagnosisResponse | JSONResponse:
    """Classify an uploaded rice leaf image and return the diagnosis with advice."""
    not_ready = _not_ready_response(_get_model_state(request))
    if not_ready is not None:
        return not_ready

    settings = _get_settings(request)
    too_large = _error(
        status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
        f"File exceeds the {settings.max_file_size} byte limit",
    )
    if file.size is not None and file.size > settings.max_file_size:
        return too_large
    data = await file.read(settings.max_file_size + 1)
    if len(data) > settings.max_file_size:
        return too_large

    pool = _get_inference_pool(request)
    pipeline = _get_pipeline(request)
    try:
        report = await pool.run(pipeline.diagnose, data)
    except TimeoutError:
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, "Another diagnosis is in progress, try again")
    except RiceDoctorError as exc:
        return _pipeline_error_response(exc)

    _get_history(request).record(report, image_ref=file.filename or "upload")

    diagnosis = report.diagnosis
    return DiagnosisResponse(
        label=diagnosis.label,
        confidence=diagnosis.confidence,
        advice=report.advice,
        class_index=diagnosis.class_index,
        score=diagnosis.score,
        ranking=[RankedLabel(label=r.label, score=r.confidence) for r in diagnosis.ranking],
    )


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(request: Request) -> HealthResponse:
    """Return service health and model loading state."""
    settings = _get_settings(request)
    pool = _get_inference_pool(request)
    return HealthResponse(
        status="ok",
        model_state=_get_model_state(request).status.value,
        gpu=settings.device == "cuda",
        concurrent_requests=pool.active_count,
        queue_depth=pool.queue_depth,
    )


@router.get(
    "/labels",
    response_model=LabelsResponse,
    summary="List classifier labels",
)
async def list_labels() -> LabelsResponse:
    """Return the label vocabulary in class-index order."""
    return LabelsResponse(labels=list(LABELS))


@router.get(
    "/history",
    response_model=HistoryResponse,
    summary="Recent diagnoses",
)
async def list_history(request: Request) -> HistoryResponse:
    """Return recent diagnoses, newest first."""
    entries = _get_history(request).entries()
    return HistoryResponse(
        entries=[
            HistoryItem(
                id=e.id,
                label=e.label,
                confidence=e.confidence,
                image_ref=e.image_ref,
                created_at=e.created_at,
                advice=e.advice,
            )
            for e in entries
        ]
    )


@router.delete(
    "/history",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Clear diagnosis history",
)
async def clear_history(request: Request) -> None:
    """Remove all history entries."""
    _get_history(request).clear()
