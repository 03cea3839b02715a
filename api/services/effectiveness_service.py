"""Effectiveness service: run lookup, refresh policy, insights and reset."""

import asyncio
import math
import uuid
from datetime import UTC, datetime, timedelta
from functools import lru_cache
from typing import Any

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from api.auth import Principal
from api.config import Settings, get_settings
from api.exceptions import (
    ConflictError,
    CooldownActiveError,
    ExternalServiceError,
    NotFoundError,
)
from api.locks import RefreshLock, get_refresh_lock
from api.metrics import record_refresh_rejected
from api.models import (
    ACTIVE_STATUSES,
    Client,
    CriterionScore,
    EffectivenessRun,
    RunStatus,
)
from api.services.job_service import JobService, get_job_service
from worker.classification.engine import build_engine as build_classification_engine
from worker.insights import InsightsGenerator, InsightsRequest
from worker.tasks.effectiveness import result_from_row

logger = structlog.get_logger(__name__)

SUPERSEDED_MESSAGE = "Superseded by a newer refresh"

_ACTIVE = [s.value for s in ACTIVE_STATUSES]


def as_utc(value: datetime | None) -> datetime | None:
    """sqlite hands back naive datetimes; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def cooldown_remaining_hours(
    last_run: datetime | None,
    cooldown_hours: float,
    now: datetime | None = None,
) -> int | None:
    """Whole hours left in the cooldown window, or None when it has elapsed."""
    last_run = as_utc(last_run)
    if last_run is None or cooldown_hours <= 0:
        return None
    now = now or datetime.now(UTC)
    remaining = timedelta(hours=cooldown_hours) - (now - last_run)
    if remaining <= timedelta(0):
        return None
    return math.ceil(remaining / timedelta(hours=1))


def build_evidence_summary(
    run: EffectivenessRun, scores: list[CriterionScore]
) -> dict[str, Any]:
    completed_at = run.completed_at or run.created_at
    return {
        "overallScore": run.overall_score,
        "criteriaCount": len(scores),
        "completedAt": completed_at.isoformat() if completed_at else None,
        "status": run.status,
        "screenshot": {
            "hasScreenshot": bool(run.screenshot_url),
            "screenshotMethod": run.screenshot_method,
            "screenshotError": run.screenshot_error,
            "hasFullPageScreenshot": bool(run.full_page_screenshot_url),
            "fullPageScreenshotError": run.full_page_screenshot_error,
        },
    }


class EffectivenessService:
    """Service for effectiveness run operations."""

    def __init__(
        self,
        job_service: JobService | None = None,
        refresh_lock: RefreshLock | None = None,
        insights: InsightsGenerator | None = None,
        settings: Settings | None = None,
    ):
        self._job_service = job_service
        self._refresh_lock = refresh_lock
        self._insights = insights
        self._settings = settings

    @property
    def settings(self) -> Settings:
        if self._settings is None:
            self._settings = get_settings()
        return self._settings

    @property
    def job_service(self) -> JobService:
        if self._job_service is None:
            self._job_service = get_job_service()
        return self._job_service

    @property
    def refresh_lock(self) -> RefreshLock:
        if self._refresh_lock is None:
            self._refresh_lock = get_refresh_lock()
        return self._refresh_lock

    @property
    def insights(self) -> InsightsGenerator:
        if self._insights is None:
            engine = build_classification_engine(self.settings)
            self._insights = InsightsGenerator.from_settings(engine, self.settings)
        return self._insights

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get_client(self, db: AsyncSession, client_id: uuid.UUID) -> Client:
        client = await db.get(Client, client_id)
        if client is None:
            raise NotFoundError("Client", str(client_id), code="CLIENT_NOT_FOUND")
        return client

    async def get_run(
        self, db: AsyncSession, client_id: uuid.UUID, run_id: uuid.UUID
    ) -> EffectivenessRun:
        """Get a run by ID, ensuring it belongs to the client."""
        run = await db.get(EffectivenessRun, run_id)
        if run is None or run.client_id != client_id:
            raise NotFoundError("Run", str(run_id), code="RUN_NOT_FOUND")
        return run

    async def get_latest_run(
        self, db: AsyncSession, client_id: uuid.UUID
    ) -> EffectivenessRun | None:
        """Most recent run of the client's own site."""
        result = await db.execute(
            select(EffectivenessRun)
            .where(
                EffectivenessRun.client_id == client_id,
                EffectivenessRun.competitor_id.is_(None),
            )
            .order_by(EffectivenessRun.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_competitor_runs(
        self, db: AsyncSession, run: EffectivenessRun
    ) -> list[EffectivenessRun]:
        result = await db.execute(
            select(EffectivenessRun)
            .where(EffectivenessRun.parent_run_id == run.id)
            .order_by(EffectivenessRun.created_at)
        )
        return list(result.scalars().all())

    async def get_criterion_scores(
        self, db: AsyncSession, run_id: uuid.UUID
    ) -> list[CriterionScore]:
        result = await db.execute(
            select(CriterionScore)
            .where(CriterionScore.run_id == run_id)
            .order_by(CriterionScore.created_at, CriterionScore.criterion)
        )
        return list(result.scalars().all())

    async def get_active_run(
        self, db: AsyncSession, client_id: uuid.UUID
    ) -> EffectivenessRun | None:
        """Get the newest non-terminal client run, if any."""
        result = await db.execute(
            select(EffectivenessRun)
            .where(
                EffectivenessRun.client_id == client_id,
                EffectivenessRun.competitor_id.is_(None),
                EffectivenessRun.status.in_(_ACTIVE),
            )
            .order_by(EffectivenessRun.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_last_completed_at(self, db: AsyncSession, client: Client) -> datetime | None:
        if client.last_effectiveness_run is not None:
            return as_utc(client.last_effectiveness_run)
        result = await db.execute(
            select(EffectivenessRun.completed_at)
            .where(
                EffectivenessRun.client_id == client.id,
                EffectivenessRun.competitor_id.is_(None),
                EffectivenessRun.status == RunStatus.COMPLETED.value,
            )
            .order_by(EffectivenessRun.completed_at.desc())
            .limit(1)
        )
        return as_utc(result.scalar_one_or_none())

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    async def request_refresh(
        self,
        db: AsyncSession,
        client: Client,
        principal: Principal,
        force: bool = False,
    ) -> tuple[EffectivenessRun, bool]:
        """
        Start (or join) a scoring run for the client.

        Returns:
            Tuple of (run, created). ``created`` is False when an active
            run was joined instead.
        """
        log = logger.bind(client_id=str(client.id), user_id=principal.user_id, force=force)

        async with self.refresh_lock.hold(client.id):
            if not force and not principal.is_admin:
                last_run = await self.get_last_completed_at(db, client)
                remaining = cooldown_remaining_hours(last_run, self.settings.cooldown_hours)
                if remaining is not None:
                    log.info("refresh_rejected_cooldown", remaining_hours=remaining)
                    record_refresh_rejected("cooldown")
                    raise CooldownActiveError(remaining)

            active = await self.get_active_run(db, client.id)
            if active is not None and not force:
                log.info("refresh_joined_active_run", run_id=str(active.id), status=active.status)
                return active, False

            if active is not None:
                superseded = await self._supersede_active_runs(db, client.id)
                log.info("refresh_superseded_active_runs", count=superseded)

            run = EffectivenessRun(
                client_id=client.id,
                status=RunStatus.PENDING.value,
                progress="Queued",
            )
            db.add(run)
            await db.flush()

            run.job_id = self.job_service.get_effectiveness_job_id(run.id)
            # Visible to the worker and to the next lock holder
            await db.commit()

            try:
                self.job_service.enqueue_effectiveness_run(run)
            except Exception as e:
                log.error("refresh_enqueue_failed", run_id=str(run.id), error=str(e))
                run.status = RunStatus.FAILED.value
                run.progress = f"Analysis failed: {e}"
                run.error_message = str(e)
                run.completed_at = datetime.now(UTC)
                await db.commit()
                raise ExternalServiceError("Job queue", "Failed to enqueue scoring job") from e

        log.info("refresh_started", run_id=str(run.id))
        return run, True

    async def _supersede_active_runs(self, db: AsyncSession, client_id: uuid.UUID) -> int:
        # Bumping the version makes a worker holding the old row hit StaleDataError and reload
        result = await db.execute(
            update(EffectivenessRun)
            .where(
                EffectivenessRun.client_id == client_id,
                EffectivenessRun.status.in_(_ACTIVE),
            )
            .values(
                status=RunStatus.FAILED.value,
                progress=f"Analysis failed: {SUPERSEDED_MESSAGE}",
                error_message=SUPERSEDED_MESSAGE,
                completed_at=datetime.now(UTC),
                version=EffectivenessRun.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    # ------------------------------------------------------------------
    # Reset
    # ------------------------------------------------------------------

    async def reset(self, db: AsyncSession, client_id: uuid.UUID) -> int:
        """Delete the client's non-terminal runs. In-flight jobs abandon them."""
        stuck = select(EffectivenessRun.id).where(
            EffectivenessRun.client_id == client_id,
            EffectivenessRun.status.in_(_ACTIVE),
        )
        await db.execute(
            delete(CriterionScore)
            .where(CriterionScore.run_id.in_(stuck))
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(
            delete(EffectivenessRun)
            .where(
                EffectivenessRun.client_id == client_id,
                EffectivenessRun.status.in_(_ACTIVE),
            )
            .execution_options(synchronize_session=False)
        )
        cleared = result.rowcount or 0
        await db.flush()
        logger.info("effectiveness_reset", client_id=str(client_id), cleared_runs=cleared)
        return cleared

    # ------------------------------------------------------------------
    # Insights
    # ------------------------------------------------------------------

    def _insights_are_fresh(self, run: EffectivenessRun) -> bool:
        generated_at = as_utc(run.insights_generated_at)
        if not run.ai_insights or generated_at is None:
            return False
        age = datetime.now(UTC) - generated_at
        return age < timedelta(minutes=self.settings.insights_cache_minutes)

    async def get_insights(
        self,
        db: AsyncSession,
        client: Client,
        run: EffectivenessRun,
        force: bool = False,
    ) -> tuple[dict[str, Any], bool]:
        """
        Return the run's insights, regenerating when stale or forced.

        Returns:
            Tuple of (insights, cached)
        """
        if run.status != RunStatus.COMPLETED.value:
            raise ConflictError(
                f"Run is {run.status}; insights need a completed run", code="RUN_CONFLICT"
            )

        if not force and self._insights_are_fresh(run):
            return run.ai_insights, True  # type: ignore[return-value]

        scores = await self.get_criterion_scores(db, run.id)
        request = InsightsRequest(
            client_name=client.name,
            website_url=client.website_url,
            overall_score=run.overall_score,
            results=[result_from_row(row) for row in scores],
            industry=client.industry_vertical,
            business_size=client.business_size,
        )
        ceiling = self.settings.insights_timeout_seconds
        try:
            insights = await asyncio.wait_for(self.insights.generate(request), timeout=ceiling)
        except TimeoutError:
            logger.warning("insights_timeout", run_id=str(run.id), timeout_seconds=ceiling)
            insights = None

        if insights is None:
            raise ExternalServiceError(
                "Insights", "Failed to generate insights", code="INSIGHTS_FAILED"
            )

        run.ai_insights = insights
        run.insights_generated_at = datetime.now(UTC)
        await db.flush()
        logger.info("insights_refreshed", run_id=str(run.id), forced=force)
        return insights, False


@lru_cache
def get_effectiveness_service() -> EffectivenessService:
    return EffectivenessService()
