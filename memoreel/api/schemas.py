"""Pydantic schemas for API request/response models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class JobOptionsIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    target_duration: float | None = Field(default=None, alias="targetDurationSeconds")


class SubmitRequest(BaseModel):
    """Media descriptors as produced by the upload/analysis service."""
    media: list[dict[str, Any]]
    style: str | None = None
    options: JobOptionsIn = JobOptionsIn()


class SubmitResponse(BaseModel):
    jobId: str
    status: str


class JobStatusResponse(BaseModel):
    jobId: str
    status: str
    progress: int
    style: str
    targetDuration: float
    filesCount: int
    selectedCount: int = 0
    outputFilename: str | None = None
    error: str | None = None
    renderer: str | None = None
    degraded: bool = False
    createdAt: str | None = None
    startedAt: str | None = None
    completedAt: str | None = None


class TemplateInfo(BaseModel):
    id: str
    displayName: str
    description: str


class TemplatesResponse(BaseModel):
    templates: list[TemplateInfo]


class HealthResponse(BaseModel):
    status: str
    version: str
    ffmpeg: bool
    backend: str
    degraded: bool
