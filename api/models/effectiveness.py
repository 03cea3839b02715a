"""Effectiveness run, criterion score and scoring config models."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from api.database import Base, JSONType

if TYPE_CHECKING:
    from api.models.client import Client


def _utcnow() -> datetime:
    return datetime.now(UTC)


class RunStatus(StrEnum):
    """Run lifecycle states, in pipeline order."""

    PENDING = "pending"
    INITIALIZING = "initializing"
    SCRAPING = "scraping"
    ANALYZING = "analyzing"
    GENERATING_INSIGHTS = "generating_insights"
    COMPLETED = "completed"
    FAILED = "failed"


RUN_STATUS_ORDER: tuple[RunStatus, ...] = (
    RunStatus.PENDING,
    RunStatus.INITIALIZING,
    RunStatus.SCRAPING,
    RunStatus.ANALYZING,
    RunStatus.GENERATING_INSIGHTS,
    RunStatus.COMPLETED,
)

TERMINAL_STATUSES = frozenset({RunStatus.COMPLETED, RunStatus.FAILED})
ACTIVE_STATUSES = frozenset(s for s in RunStatus if s not in TERMINAL_STATUSES)


def can_transition(current: str, target: str) -> bool:
    """Whether a run may move from ``current`` to ``target``.

    Runs only move forward. ``failed`` is reachable from any non-terminal
    state and terminal states accept nothing.
    """
    current_status = RunStatus(current)
    target_status = RunStatus(target)
    if current_status in TERMINAL_STATUSES:
        return False
    if target_status == RunStatus.FAILED:
        return True
    return RUN_STATUS_ORDER.index(target_status) > RUN_STATUS_ORDER.index(current_status)


class EffectivenessRun(Base):
    """One scoring attempt for a client site or one of its competitors."""

    __tablename__ = "effectiveness_runs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    client_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # Null for the client's own run
    competitor_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("competitors.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    # Competitor runs point at the client run that spawned them
    parent_run_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("effectiveness_runs.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )

    status: Mapped[str] = mapped_column(
        String(50),
        default=RunStatus.PENDING.value,
        nullable=False,
        index=True,
    )
    progress: Mapped[str | None] = mapped_column(Text, nullable=True)
    progress_detail: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)

    overall_score: Mapped[float | None] = mapped_column(
        Numeric(4, 2, asdecimal=False), nullable=True
    )
    score_summary: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)

    # Acquisition artifacts
    screenshot_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    full_page_screenshot_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    screenshot_method: Mapped[str | None] = mapped_column(String(100), nullable=True)
    screenshot_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    full_page_screenshot_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    web_vitals: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)

    # Insights
    ai_insights: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    insights_generated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Job tracking
    job_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Timing
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Optimistic locking version
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=func.now(),
        nullable=False,
        index=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=func.now(),
        onupdate=_utcnow,
        nullable=False,
    )

    client: Mapped[Client] = relationship("Client", back_populates="runs")
    criterion_scores: Mapped[list[CriterionScore]] = relationship(
        "CriterionScore",
        back_populates="run",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="CriterionScore.created_at",
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_competitor_run(self) -> bool:
        return self.competitor_id is not None


class CriterionScore(Base):
    """Score and evidence for one criterion of one run. Immutable once written."""

    __tablename__ = "criterion_scores"
    __table_args__ = (UniqueConstraint("run_id", "criterion", name="uq_criterion_scores_run"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    run_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("effectiveness_runs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    criterion: Mapped[str] = mapped_column(String(50), nullable=False)
    score: Mapped[float] = mapped_column(Numeric(4, 2, asdecimal=False), nullable=False)
    evidence: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)
    passes: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=func.now(),
        nullable=False,
    )

    run: Mapped[EffectivenessRun] = relationship(
        "EffectivenessRun", back_populates="criterion_scores"
    )


class EffectivenessConfigEntry(Base):
    """Admin override for one top-level scoring config key."""

    __tablename__ = "effectiveness_config"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value: Mapped[Any] = mapped_column(JSONType, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=func.now(),
        onupdate=_utcnow,
        nullable=False,
    )
