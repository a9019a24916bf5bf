"""Pydantic request/response schemas for the RiceDoctor API."""

from __future__ import annotations

from datetime import datetime  # noqa: TC003

from pydantic import BaseModel, ConfigDict, Field


class RankedLabel(BaseModel):
    """A single class with its raw model score."""

    label: str
    score: float


class DiagnosisResponse(BaseModel):
    """Response for the diagnosis endpoint."""

    label: str
    confidence: str = Field(description="Winning score as a percentage, e.g. '87.45%'")
    advice: str
    class_index: int = Field(ge=0)
    score: float = Field(description="Raw score of the winning class")
    ranking: list[RankedLabel] = Field(description="All classes sorted by descending score")


class HealthResponse(BaseModel):
    """Health check response."""

    model_config = ConfigDict(protected_namespaces=())

    status: str = "ok"
    model_state: str = Field(description="One of 'uninitialized', 'loading', 'ready', 'failed'")
    gpu: bool
    concurrent_requests: int
    queue_depth: int


class LabelsResponse(BaseModel):
    """The classifier's label vocabulary in class-index order."""

    labels: list[str]


class HistoryItem(BaseModel):
    """A single past diagnosis."""

    id: str
    label: str
    confidence: str
    image_ref: str
    created_at: datetime
    advice: str


class HistoryResponse(BaseModel):
    """Recent diagnoses, newest first."""

    entries: list[HistoryItem]


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
