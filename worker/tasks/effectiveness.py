"""Effectiveness run background task.

One rq job scores a client run group: the client site plus one child run
per competitor. Each entity is scored in its own asyncio task; the client
run only moves on to insights once every entity has finished.
"""

import asyncio
import functools
import time
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import structlog
from rq import get_current_job
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from api.config import Settings, get_settings
from api.database import get_session_maker
from api.exceptions import InvalidStateTransitionError
from api.logging import bind_run_context
from api.metrics import record_job_duration, record_run_completed, record_run_started
from api.models import (
    TERMINAL_STATUSES,
    Client,
    Competitor,
    CriterionScore,
    EffectivenessRun,
    RunStatus,
    can_transition,
)
from api.sentry import capture_exception
from api.services.config_service import default_scoring_config, get_scoring_config
from worker.acquisition import ContentAcquirer
from worker.classification.engine import build_engine as build_classification_engine
from worker.insights import InsightsGenerator, InsightsRequest
from worker.progress import CLIENT, ProgressTracker, competitor_entity
from worker.scoring.aggregator import aggregate
from worker.scoring.config import ScoringConfig
from worker.scoring.criteria import CriterionScorer, build_scorers
from worker.scoring.timeout import with_timeout
from worker.scoring.types import CriterionResult, Evidence, Passes, ScoringContext

logger = structlog.get_logger(__name__)

PROGRESS_INITIALIZING = "Preparing website analysis..."
PROGRESS_SCRAPING = "Loading website and capturing screenshot..."
PROGRESS_ANALYZING = "Scoring website effectiveness criteria..."
PROGRESS_INSIGHTS = "Generating AI-powered insights..."
PROGRESS_COMPLETED = "Analysis completed successfully"


class RunAbandoned(Exception):
    """The run row disappeared (reset) while the job was working on it."""


@dataclass
class EntityTarget:
    run_id: uuid.UUID
    entity: str  # "client" or "competitor_<i>", 0-based
    url: str
    label: str

    @property
    def is_competitor(self) -> bool:
        return self.entity != CLIENT


@dataclass
class EntityOutcome:
    run_id: uuid.UUID
    entity: str
    success: bool
    overall_score: float | None = None
    results: list[CriterionResult] = field(default_factory=list)
    error: str | None = None


def _utcnow() -> datetime:
    return datetime.now(UTC)


def result_from_row(row: CriterionScore) -> CriterionResult:
    evidence = row.evidence or {}
    passes = row.passes or {}
    return CriterionResult(
        criterion=row.criterion,
        score=float(row.score),
        evidence=Evidence(
            description=evidence.get("description", ""),
            details=evidence.get("details") or {},
            reasoning=evidence.get("reasoning", ""),
        ),
        passes=Passes(passed=list(passes.get("passed", [])), failed=list(passes.get("failed", []))),
    )


class EffectivenessPipeline:
    """Scores one run group. Collaborators are injectable for tests."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        acquirer: ContentAcquirer | None = None,
        scorers: Sequence[CriterionScorer] | None = None,
        insights: InsightsGenerator | None = None,
        settings: Settings | None = None,
    ):
        self.settings = settings or get_settings()
        self.session_factory = session_factory or get_session_maker()
        engine = None
        if scorers is None or insights is None:
            engine = build_classification_engine(self.settings)
        self.acquirer = acquirer or ContentAcquirer.from_settings(self.settings)
        self.scorers = list(scorers) if scorers is not None else build_scorers(engine, self.settings)
        self.insights = insights or InsightsGenerator.from_settings(engine, self.settings)

    def base_config(self) -> ScoringConfig:
        return default_scoring_config(self.settings)

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------

    async def update_run(
        self,
        run_id: uuid.UUID,
        apply: Callable[[EffectivenessRun], None],
        max_retries: int = 5,
    ) -> None:
        """
        Load, mutate and commit a run with optimistic locking.

        Uses SQLAlchemy's version_id_col for conflict detection.
        Retries on StaleDataError (concurrent update detected).
        """
        for attempt in range(max_retries):
            try:
                async with self.session_factory() as db:
                    run = await db.get(EffectivenessRun, run_id)
                    if run is None:
                        raise RunAbandoned(str(run_id))
                    apply(run)
                    await db.commit()
                    return

            except StaleDataError:
                if attempt < max_retries - 1:
                    logger.warning(
                        "run_update_conflict",
                        run_id=str(run_id),
                        attempt=attempt + 1,
                    )
                    await asyncio.sleep(0.1 * (attempt + 1))
                else:
                    logger.error(
                        "run_update_failed",
                        run_id=str(run_id),
                        reason="max_retries_exceeded",
                    )
                    raise

    async def transition(
        self,
        run_id: uuid.UUID,
        target: RunStatus,
        progress: str | None = None,
        **fields: Any,
    ) -> None:
        """Move a run forward, persisting status and progress before work starts."""

        def apply(run: EffectivenessRun) -> None:
            if run.status != target:
                if not can_transition(run.status, target):
                    raise InvalidStateTransitionError(run.status, target)
                run.status = target.value
            if progress is not None:
                run.progress = progress
            if target == RunStatus.INITIALIZING and run.started_at is None:
                run.started_at = _utcnow()
            if target in TERMINAL_STATUSES and run.completed_at is None:
                run.completed_at = _utcnow()
            for name, value in fields.items():
                setattr(run, name, value)

        await self.update_run(run_id, apply)
        logger.info("run_status_updated", run_id=str(run_id), status=target.value)

    async def fail_run(self, run_id: uuid.UUID, error: BaseException | str) -> None:
        message = f"Analysis failed: {error}"
        try:
            await self.transition(
                run_id,
                RunStatus.FAILED,
                message,
                error_message=str(error),
            )
        except (RunAbandoned, InvalidStateTransitionError) as e:
            logger.warning("run_fail_skipped", run_id=str(run_id), reason=str(e))

    async def persist_progress(self, run_id: uuid.UUID, tracker: ProgressTracker) -> None:
        """
        Write the tracker snapshot onto the client run.

        Every entity task reports here, so this is a plain column UPDATE that
        leaves the version counter alone. Status transitions on the same row
        never conflict with it. Terminal runs are left untouched.
        """
        snapshot = tracker.snapshot()
        async with self.session_factory() as db:
            runs = EffectivenessRun.__table__
            result = await db.execute(
                update(runs)
                .where(
                    runs.c.id == run_id,
                    runs.c.status.not_in([s.value for s in TERMINAL_STATUSES]),
                )
                .values(progress=snapshot["message"], progress_detail=snapshot)
            )
            await db.commit()
            if result.rowcount == 0 and await db.get(EffectivenessRun, run_id) is None:
                raise RunAbandoned(str(run_id))

    async def persist_score(self, run_id: uuid.UUID, result: CriterionResult) -> None:
        async with self.session_factory() as db:
            db.add(
                CriterionScore(
                    run_id=run_id,
                    criterion=result.criterion,
                    score=result.score,
                    evidence=result.evidence.to_dict(),
                    passes=result.passes.to_dict(),
                )
            )
            try:
                await db.commit()
            except IntegrityError:
                await db.rollback()
                if await db.get(EffectivenessRun, run_id) is None:
                    raise RunAbandoned(str(run_id)) from None
                # First write wins
                logger.warning(
                    "criterion_score_duplicate",
                    run_id=str(run_id),
                    criterion=result.criterion,
                )

    async def load_results(self, run_id: uuid.UUID) -> list[CriterionResult]:
        async with self.session_factory() as db:
            rows = await db.execute(
                select(CriterionScore)
                .where(CriterionScore.run_id == run_id)
                .order_by(CriterionScore.created_at)
            )
            return [result_from_row(row) for row in rows.scalars().all()]

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def acquire(self, url: str, config: ScoringConfig) -> ScoringContext:
        ceiling = self.settings.acquisition_timeout_seconds
        try:
            return await asyncio.wait_for(self.acquirer.acquire(url, config), timeout=ceiling)
        except TimeoutError:
            logger.warning("acquisition_timeout", url=url, timeout_seconds=ceiling)
            error = f"acquisition_timeout after {ceiling:g}s"
            return ScoringContext(
                website_url=url,
                html_error=error,
                screenshot_error=error,
                full_page_screenshot_error=error,
            )

    async def run_scorers(
        self,
        target: EntityTarget,
        context: ScoringContext,
        config: ScoringConfig,
        tracker: ProgressTracker,
        progress_run_id: uuid.UUID,
    ) -> None:
        """Run every scorer concurrently, persisting each result as it lands."""
        tasks = [
            asyncio.ensure_future(
                with_timeout(
                    functools.partial(scorer.score, context, config),
                    config.timeouts.for_tier(scorer.tier),
                    criterion=scorer.criterion,
                    fallback_score=scorer.timeout_fallback_score,
                )
            )
            for scorer in self.scorers
        ]
        try:
            for next_done in asyncio.as_completed(tasks):
                result = await next_done
                await self.persist_score(target.run_id, result)
                logger.info(
                    "criterion_scored",
                    run_id=str(target.run_id),
                    entity=target.entity,
                    criterion=result.criterion,
                    score=result.score,
                    fallback=result.fallback_reason,
                )
                if result.criterion in tracker.steps:
                    tracker.mark(target.entity, result.criterion)
                await self.persist_progress(progress_run_id, tracker)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()

    async def score_entity(
        self,
        target: EntityTarget,
        config: ScoringConfig,
        tracker: ProgressTracker,
        progress_run_id: uuid.UUID,
    ) -> EntityOutcome:
        """Acquire, score and aggregate one site. Failures stay within this entity."""
        log = logger.bind(run_id=str(target.run_id), entity=target.entity, url=target.url)
        try:
            if target.is_competitor:
                await self.transition(target.run_id, RunStatus.INITIALIZING, PROGRESS_INITIALIZING)
            await self.transition(target.run_id, RunStatus.SCRAPING, PROGRESS_SCRAPING)

            context = await self.acquire(target.url, config)
            await self.transition(
                target.run_id,
                RunStatus.SCRAPING,
                screenshot_url=context.screenshot_url,
                full_page_screenshot_url=context.full_page_screenshot_url,
                screenshot_method=context.acquisition_method,
                screenshot_error=context.screenshot_error,
                full_page_screenshot_error=context.full_page_screenshot_error,
                web_vitals=context.web_vitals.to_dict() if context.web_vitals else None,
            )
            tracker.mark(target.entity, "scraping")
            await self.persist_progress(progress_run_id, tracker)

            await self.transition(target.run_id, RunStatus.ANALYZING, PROGRESS_ANALYZING)
            await self.run_scorers(target, context, config, tracker, progress_run_id)

            results = await self.load_results(target.run_id)
            summary = aggregate(results, expected=[s.criterion for s in self.scorers])
            if summary.missing:
                raise RuntimeError(f"Missing criterion scores: {', '.join(summary.missing)}")

            await self.transition(
                target.run_id,
                RunStatus.ANALYZING,
                overall_score=summary.overall_score,
                score_summary=summary.to_summary(),
            )
            tracker.mark(target.entity, "aggregating")
            await self.persist_progress(progress_run_id, tracker)

            if target.is_competitor:
                await self.transition(target.run_id, RunStatus.COMPLETED, PROGRESS_COMPLETED)

            log.info(
                "entity_scored",
                overall_score=summary.overall_score,
                fallback_criteria=summary.fallback_criteria,
            )
            return EntityOutcome(
                run_id=target.run_id,
                entity=target.entity,
                success=True,
                overall_score=summary.overall_score,
                results=summary.evidence_bundle,
            )

        except RunAbandoned:
            raise
        except Exception as e:
            log.error("entity_scoring_failed", error=str(e), exc_info=True)
            capture_exception(e)
            await self.fail_run(target.run_id, e)
            return EntityOutcome(
                run_id=target.run_id,
                entity=target.entity,
                success=False,
                error=str(e),
            )

    async def create_competitor_runs(
        self, run: EffectivenessRun, competitors: Sequence[Competitor]
    ) -> list[EntityTarget]:
        targets: list[EntityTarget] = []
        async with self.session_factory() as db:
            for index, competitor in enumerate(competitors):
                child = EffectivenessRun(
                    client_id=run.client_id,
                    competitor_id=competitor.id,
                    parent_run_id=run.id,
                    status=RunStatus.PENDING.value,
                    progress="Queued",
                )
                db.add(child)
                await db.flush()
                targets.append(
                    EntityTarget(
                        run_id=child.id,
                        entity=competitor_entity(index),
                        url=competitor.website_url,
                        label=competitor.display_name,
                    )
                )
            await db.commit()
        return targets

    async def generate_insights(
        self, client: Client, outcome: EntityOutcome
    ) -> dict[str, Any] | None:
        request = InsightsRequest(
            client_name=client.name,
            website_url=client.website_url,
            overall_score=outcome.overall_score,
            results=outcome.results,
            industry=client.industry_vertical,
            business_size=client.business_size,
        )
        ceiling = self.settings.insights_timeout_seconds
        try:
            return await asyncio.wait_for(self.insights.generate(request), timeout=ceiling)
        except TimeoutError:
            logger.warning("insights_timeout", client_id=str(client.id), timeout_seconds=ceiling)
        except Exception as e:
            logger.warning("insights_failed", client_id=str(client.id), error=str(e), exc_info=True)
        return None

    async def run_group(self, run_id: uuid.UUID) -> dict[str, Any]:
        """Score a client run and its competitors end to end."""
        log = logger.bind(run_id=str(run_id))
        started = False

        try:
            async with self.session_factory() as db:
                run = await db.get(EffectivenessRun, run_id)
                if run is None:
                    log.warning("effectiveness_run_missing")
                    return {"run_id": str(run_id), "status": "missing"}
                if run.is_terminal:
                    log.info("effectiveness_run_already_finished", status=run.status)
                    return {"run_id": str(run_id), "status": run.status}

                client = await db.get(Client, run.client_id)
                if client is None:
                    raise RuntimeError(f"Client {run.client_id} not found")
                competitors = list(
                    (
                        await db.execute(
                            select(Competitor)
                            .where(Competitor.client_id == client.id)
                            .order_by(Competitor.created_at)
                        )
                    )
                    .scalars()
                    .all()
                )
                config = await get_scoring_config(db, base=self.base_config())

            bind_run_context(str(run_id), str(client.id))
            log.info(
                "effectiveness_run_started",
                client_id=str(client.id),
                competitors=len(competitors),
            )
            record_run_started()
            started = True

            await self.transition(run_id, RunStatus.INITIALIZING, PROGRESS_INITIALIZING)
            targets = [
                EntityTarget(run_id=run_id, entity=CLIENT, url=client.website_url, label=client.name)
            ]
            targets += await self.create_competitor_runs(run, competitors)

            tracker = ProgressTracker(
                [c.display_name for c in competitors],
                steps=("scraping", *(s.criterion for s in self.scorers), "aggregating"),
            )

            tasks = [
                asyncio.create_task(self.score_entity(target, config, tracker, run_id))
                for target in targets
            ]
            outcomes = await asyncio.gather(*tasks, return_exceptions=True)

            client_outcome = outcomes[0]
            if isinstance(client_outcome, BaseException):
                raise client_outcome
            for target, outcome in zip(targets[1:], outcomes[1:], strict=True):
                if isinstance(outcome, BaseException):
                    log.warning("competitor_task_error", entity=target.entity, error=str(outcome))
                elif not outcome.success:
                    log.warning("competitor_scoring_failed", entity=target.entity, error=outcome.error)

            if not client_outcome.success:
                record_run_completed(False)
                return {"run_id": str(run_id), "status": RunStatus.FAILED.value}

            await self.transition(run_id, RunStatus.GENERATING_INSIGHTS, PROGRESS_INSIGHTS)
            insights = await self.generate_insights(client, client_outcome)
            if insights is None:
                log.warning("insights_unavailable")

            completed_at = _utcnow()
            await self.transition(
                run_id,
                RunStatus.COMPLETED,
                PROGRESS_COMPLETED,
                ai_insights=insights,
                insights_generated_at=completed_at if insights else None,
                completed_at=completed_at,
            )
            async with self.session_factory() as db:
                stored_client = await db.get(Client, client.id)
                if stored_client is not None:
                    stored_client.last_effectiveness_run = completed_at
                    await db.commit()

            record_run_completed(True)
            log.info("effectiveness_run_completed", overall_score=client_outcome.overall_score)
            return {
                "run_id": str(run_id),
                "status": RunStatus.COMPLETED.value,
                "overall_score": client_outcome.overall_score,
                "competitor_runs": [str(t.run_id) for t in targets[1:]],
            }

        except RunAbandoned:
            log.info("effectiveness_run_abandoned")
            if started:
                record_run_completed(False)
            return {"run_id": str(run_id), "status": "abandoned"}

        except Exception as e:
            log.error("effectiveness_run_failed", error=str(e), exc_info=True)
            capture_exception(e)
            await self.fail_run(run_id, e)
            if started:
                record_run_completed(False)
            return {"run_id": str(run_id), "status": RunStatus.FAILED.value, "error": str(e)}


def run_effectiveness_sync(run_id: str) -> dict:
    """
    Synchronous wrapper for the effectiveness task.

    This is the entry point for RQ which requires sync functions.
    """
    from api.database import reset_engine

    # Fresh connections for the new event loop
    reset_engine()

    return asyncio.run(run_effectiveness(uuid.UUID(run_id)))


async def run_effectiveness(run_id: uuid.UUID) -> dict:
    job = get_current_job()
    if job:
        job.meta["run_id"] = str(run_id)
        job.save_meta()

    started = time.perf_counter()
    try:
        return await EffectivenessPipeline().run_group(run_id)
    finally:
        record_job_duration("effectiveness", time.perf_counter() - started)
