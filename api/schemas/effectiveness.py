"""Effectiveness request and response schemas."""

import uuid
from datetime import datetime
from typing import Any

from pydantic import Field

from api.schemas.responses import CamelModel


class ClientRead(CamelModel):
    id: uuid.UUID
    name: str
    website_url: str
    industry_vertical: str | None = None
    business_size: str | None = None
    last_effectiveness_run: datetime | None = None


class CriterionScoreRead(CamelModel):
    """One persisted criterion score with its evidence."""

    id: uuid.UUID
    run_id: uuid.UUID
    criterion: str
    score: float
    evidence: dict[str, Any]
    passes: dict[str, Any]
    created_at: datetime


class RunRead(CamelModel):
    """Schema for reading a run."""

    id: uuid.UUID
    client_id: uuid.UUID
    competitor_id: uuid.UUID | None = None
    parent_run_id: uuid.UUID | None = None
    status: str
    progress: str | None = None
    progress_detail: dict[str, Any] | None = None
    overall_score: float | None = None
    score_summary: dict[str, Any] | None = None
    screenshot_url: str | None = None
    full_page_screenshot_url: str | None = None
    screenshot_method: str | None = None
    screenshot_error: str | None = None
    full_page_screenshot_error: str | None = None
    web_vitals: dict[str, Any] | None = None
    ai_insights: dict[str, Any] | None = None
    insights_generated_at: datetime | None = None
    error_message: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class RunWithScores(RunRead):
    criterion_scores: list[CriterionScoreRead] = Field(default_factory=list)


class LatestResponse(CamelModel):
    client: ClientRead
    run: RunWithScores | None = None
    has_data: bool
    competitor_runs: list[RunWithScores] = Field(default_factory=list)


class RefreshRequest(CamelModel):
    force: bool = False


class RefreshResponse(CamelModel):
    message: str
    run_id: uuid.UUID
    status: str


class ScreenshotSummary(CamelModel):
    has_screenshot: bool
    screenshot_method: str | None = None
    screenshot_error: str | None = None
    has_full_page_screenshot: bool
    full_page_screenshot_error: str | None = None


class EvidenceSummary(CamelModel):
    overall_score: float | None = None
    criteria_count: int
    completed_at: datetime | None = None
    status: str
    screenshot: ScreenshotSummary


class EvidenceResponse(CamelModel):
    run: RunRead
    criterion_scores: list[CriterionScoreRead]
    summary: EvidenceSummary


class InsightsRequest(CamelModel):
    force: bool = False


class InsightsResponse(CamelModel):
    success: bool = True
    insights: dict[str, Any]
    client_name: str
    overall_score: float | None = None
    run_id: uuid.UUID
    cached: bool


class ResetResponse(CamelModel):
    success: bool = True
    message: str
    client_id: uuid.UUID
    cleared_runs: int


class ProgressResponse(CamelModel):
    run_id: uuid.UUID
    status: str
    progress: str | None = None
    progress_detail: dict[str, Any] | None = None


class ConfigUpdate(CamelModel):
    """Missing key or value is reported as INVALID_REQUEST, not a schema error."""

    key: str | None = None
    value: Any = None
    description: str | None = None


class ConfigUpdateResponse(CamelModel):
    message: str
    key: str
    description: str | None = None


class ConfigResponse(CamelModel):
    config: dict[str, Any]
    overrides: dict[str, Any]
