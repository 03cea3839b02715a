"""Integration tests for the effectiveness run pipeline against a real database."""

import asyncio
import uuid

import pytest
from sqlalchemy import delete, select

from api.config import get_settings
from api.exceptions import InvalidStateTransitionError
from api.models import Client, CriterionScore, EffectivenessRun, RunStatus
from api.services.config_service import upsert_override
from worker.insights import InsightsGenerator
from worker.progress import CLIENT, ProgressTracker
from worker.scoring.criteria import CriterionScorer
from worker.scoring.types import ALL_CRITERIA, CriterionResult, Evidence, ScoringContext, WebVitals
from worker.tasks.effectiveness import (
    PROGRESS_COMPLETED,
    EffectivenessPipeline,
    RunAbandoned,
)

pytestmark = pytest.mark.integration

SCORES = dict(zip(ALL_CRITERIA, [8.0, 6.0, 7.0, 9.0, 5.0, 4.0, 10.0, 7.0], strict=True))


def make_scorer(name: str, value: float = 7.0, fail: bool = False, hang: bool = False):
    class FakeScorer(CriterionScorer):
        criterion = name
        label = name.replace("_", " ").title()

        async def evaluate(self, context, config):
            if hang:
                await asyncio.Event().wait()
            if fail:
                raise RuntimeError(f"{name} broke")
            return CriterionResult(
                criterion=name,
                score=value,
                evidence=Evidence(f"{name} measured", reasoning=f"{name} reasoning"),
            )

    return FakeScorer()


class FakeAcquirer:
    """Returns a canned page; per-URL failures and side effects for edge cases."""

    def __init__(self, html: str, fail_urls=(), degraded: bool = False, on_acquire=None):
        self.html = html
        self.fail_urls = set(fail_urls)
        self.degraded = degraded
        self.on_acquire = on_acquire
        self.urls: list[str] = []

    async def acquire(self, url, config):
        self.urls.append(url)
        if self.on_acquire:
            await self.on_acquire(url)
        if url in self.fail_urls:
            raise RuntimeError("browser crashed")
        if self.degraded:
            return ScoringContext(
                website_url=url,
                initial_html=self.html,
                html=self.html,
                acquisition_method="static_fetch",
                screenshot_error="browser_unavailable: chromium missing",
                full_page_screenshot_error="browser_unavailable: chromium missing",
            )
        return ScoringContext(
            website_url=url,
            html=self.html,
            acquisition_method="networkidle",
            screenshot="/tmp/shot.png",
            screenshot_url="/screenshots/ab/shot.png",
            web_vitals=WebVitals(lcp=1.4, cls=0.02, fid=40, ttfb_ms=180),
        )


@pytest.fixture
def acquirer(sample_html):
    return FakeAcquirer(sample_html)


@pytest.fixture
def pipeline_factory(session_factory, classification_engine):
    def _factory(acquirer, scorers=None, settings=None):
        return EffectivenessPipeline(
            session_factory=session_factory,
            acquirer=acquirer,
            scorers=scorers or [make_scorer(name, value) for name, value in SCORES.items()],
            insights=InsightsGenerator(classification_engine),
            settings=settings or get_settings(),
        )

    return _factory


async def load_run(session_factory, run_id):
    async with session_factory() as db:
        return await db.get(EffectivenessRun, run_id)


async def load_scores(session_factory, run_id):
    async with session_factory() as db:
        rows = await db.execute(select(CriterionScore).where(CriterionScore.run_id == run_id))
        return {row.criterion: row for row in rows.scalars().all()}


class TestRunGroup:
    """Tests for scoring a client run end to end."""

    @pytest.mark.asyncio
    async def test_completes_client_run(
        self, session_factory, sample_client, make_run, acquirer, pipeline_factory, mock_provider
    ):
        run = await make_run(sample_client.id, status="pending")

        outcome = await pipeline_factory(acquirer).run_group(run.id)

        assert outcome["status"] == "completed"
        assert outcome["overall_score"] == 7.0
        assert outcome["competitor_runs"] == []

        stored = await load_run(session_factory, run.id)
        assert stored.status == "completed"
        assert stored.progress == PROGRESS_COMPLETED
        assert stored.overall_score == 7.0
        assert stored.started_at is not None
        assert stored.completed_at is not None
        assert stored.screenshot_url == "/screenshots/ab/shot.png"
        assert stored.screenshot_method == "networkidle"
        assert stored.web_vitals["lcp"] == 1.4
        assert stored.score_summary["missing"] == []
        assert stored.progress_detail["total"] == 10
        assert stored.ai_insights["primary_issue"] == "mock primary issue"
        assert stored.insights_generated_at is not None

        scores = await load_scores(session_factory, run.id)
        assert set(scores) == set(ALL_CRITERIA)
        assert scores["positioning"].evidence["reasoning"] == "positioning reasoning"

        async with session_factory() as db:
            client = await db.get(Client, sample_client.id)
        assert client.last_effectiveness_run is not None
        assert acquirer.urls == ["https://acme.example"]
        assert len(mock_provider.calls) == 1

    @pytest.mark.asyncio
    async def test_scores_competitors(
        self, session_factory, sample_client, sample_competitors, make_run, acquirer, pipeline_factory
    ):
        run = await make_run(sample_client.id, status="pending")

        outcome = await pipeline_factory(acquirer).run_group(run.id)

        assert outcome["status"] == "completed"
        assert len(outcome["competitor_runs"]) == 2
        assert sorted(acquirer.urls) == [
            "https://acme.example",
            "https://rival-one.example",
            "https://rival-two.example",
        ]

        async with session_factory() as db:
            children = (
                await db.execute(
                    select(EffectivenessRun).where(EffectivenessRun.parent_run_id == run.id)
                )
            ).scalars().all()
        assert {c.competitor_id for c in children} == {c.id for c in sample_competitors}
        for child in children:
            assert child.status == "completed"
            assert child.overall_score == 7.0
            assert child.ai_insights is None
            assert len(await load_scores(session_factory, child.id)) == len(ALL_CRITERIA)

        stored = await load_run(session_factory, run.id)
        assert stored.progress_detail["total"] == 30

    @pytest.mark.asyncio
    async def test_scorer_failure_is_isolated(
        self, session_factory, sample_client, make_run, acquirer, pipeline_factory
    ):
        scorers = [make_scorer(name, 8.0) for name in ALL_CRITERIA if name != "trust"]
        scorers.append(make_scorer("trust", fail=True))
        run = await make_run(sample_client.id, status="pending")

        outcome = await pipeline_factory(acquirer, scorers).run_group(run.id)

        assert outcome["status"] == "completed"
        # Seven criteria at 8.0 and one analysis failure at 0.0
        assert outcome["overall_score"] == 7.0
        trust = (await load_scores(session_factory, run.id))["trust"]
        assert trust.score == 0.0
        assert trust.passes["failed"] == ["analysis_failed"]
        assert trust.evidence["details"]["error"] == "RuntimeError: trust broke"

    @pytest.mark.asyncio
    async def test_hanging_scorer_gets_timeout_default(
        self, session_factory, sample_client, make_run, acquirer, pipeline_factory
    ):
        async with session_factory() as db:
            await upsert_override(db, "timeouts", {"html": 0.05})
            await db.commit()
        scorers = [make_scorer(name, 6.0) for name in ALL_CRITERIA if name != "ux"]
        scorers.append(make_scorer("ux", hang=True))
        run = await make_run(sample_client.id, status="pending")

        outcome = await pipeline_factory(acquirer, scorers).run_group(run.id)

        assert outcome["status"] == "completed"
        ux = (await load_scores(session_factory, run.id))["ux"]
        assert ux.score == 5.0
        assert ux.evidence["details"]["fallbackReason"] == "timeout"
        stored = await load_run(session_factory, run.id)
        assert stored.score_summary["fallbackCriteria"] == ["ux"]

    @pytest.mark.asyncio
    async def test_degraded_acquisition_still_completes(
        self, session_factory, sample_client, make_run, sample_html, pipeline_factory
    ):
        run = await make_run(sample_client.id, status="pending")

        outcome = await pipeline_factory(FakeAcquirer(sample_html, degraded=True)).run_group(run.id)

        assert outcome["status"] == "completed"
        stored = await load_run(session_factory, run.id)
        assert stored.screenshot_url is None
        assert stored.screenshot_method == "static_fetch"
        assert stored.screenshot_error == "browser_unavailable: chromium missing"

    @pytest.mark.asyncio
    async def test_client_failure_fails_run(
        self, session_factory, sample_client, make_run, sample_html, pipeline_factory
    ):
        run = await make_run(sample_client.id, status="pending")
        acquirer = FakeAcquirer(sample_html, fail_urls={"https://acme.example"})

        outcome = await pipeline_factory(acquirer).run_group(run.id)

        assert outcome["status"] == "failed"
        stored = await load_run(session_factory, run.id)
        assert stored.status == "failed"
        assert stored.error_message == "browser crashed"
        assert stored.progress == "Analysis failed: browser crashed"
        assert stored.completed_at is not None

    @pytest.mark.asyncio
    async def test_competitor_failure_does_not_fail_client(
        self, session_factory, sample_client, sample_competitors, make_run, sample_html, pipeline_factory
    ):
        run = await make_run(sample_client.id, status="pending")
        acquirer = FakeAcquirer(sample_html, fail_urls={"https://rival-two.example"})

        outcome = await pipeline_factory(acquirer).run_group(run.id)

        assert outcome["status"] == "completed"
        async with session_factory() as db:
            children = (
                await db.execute(
                    select(EffectivenessRun).where(EffectivenessRun.parent_run_id == run.id)
                )
            ).scalars().all()
        statuses = {c.competitor_id: c.status for c in children}
        assert statuses == {
            sample_competitors[0].id: "completed",
            sample_competitors[1].id: "failed",
        }

    @pytest.mark.asyncio
    async def test_insights_failure_keeps_scores(
        self, session_factory, sample_client, make_run, acquirer, pipeline_factory, mock_provider
    ):
        mock_provider.set_response("Sorry, I can't help with that")
        run = await make_run(sample_client.id, status="pending")

        outcome = await pipeline_factory(acquirer).run_group(run.id)

        assert outcome["status"] == "completed"
        stored = await load_run(session_factory, run.id)
        assert stored.ai_insights is None
        assert stored.insights_generated_at is None
        assert stored.overall_score == 7.0

    @pytest.mark.asyncio
    async def test_missing_run(self, acquirer, pipeline_factory):
        run_id = uuid.uuid4()

        outcome = await pipeline_factory(acquirer).run_group(run_id)

        assert outcome == {"run_id": str(run_id), "status": "missing"}
        assert acquirer.urls == []

    @pytest.mark.asyncio
    async def test_terminal_run_is_skipped(self, sample_client, make_run, acquirer, pipeline_factory):
        run = await make_run(sample_client.id, status="failed")

        outcome = await pipeline_factory(acquirer).run_group(run.id)

        assert outcome["status"] == "failed"
        assert acquirer.urls == []

    @pytest.mark.asyncio
    async def test_reset_mid_flight_abandons_run(
        self, session_factory, sample_client, make_run, sample_html, pipeline_factory
    ):
        run = await make_run(sample_client.id, status="pending")

        async def reset_run(url):
            async with session_factory() as db:
                await db.execute(delete(EffectivenessRun).where(EffectivenessRun.id == run.id))
                await db.commit()

        acquirer = FakeAcquirer(sample_html, on_acquire=reset_run)

        outcome = await pipeline_factory(acquirer).run_group(run.id)

        assert outcome == {"run_id": str(run.id), "status": "abandoned"}
        assert await load_run(session_factory, run.id) is None
        assert await load_scores(session_factory, run.id) == {}


class TestPipelineHelpers:
    @pytest.mark.asyncio
    async def test_update_run_missing_row(self, acquirer, pipeline_factory):
        with pytest.raises(RunAbandoned):
            await pipeline_factory(acquirer).update_run(uuid.uuid4(), lambda run: None)

    @pytest.mark.asyncio
    async def test_acquisition_timeout(self, sample_html, pipeline_factory):
        async def stall(url):
            await asyncio.sleep(10)

        settings = get_settings().model_copy(update={"acquisition_timeout_seconds": 0.05})
        pipeline = pipeline_factory(FakeAcquirer(sample_html, on_acquire=stall), settings=settings)

        context = await pipeline.acquire("https://acme.example", pipeline.base_config())

        assert context.html == ""
        assert context.html_error == "acquisition_timeout after 0.05s"
        assert context.screenshot_error == context.html_error

    @pytest.mark.asyncio
    async def test_transition_rejects_backwards_move(
        self, session_factory, sample_client, make_run, acquirer, pipeline_factory
    ):
        run = await make_run(sample_client.id, status="analyzing")

        with pytest.raises(InvalidStateTransitionError):
            await pipeline_factory(acquirer).transition(run.id, RunStatus.SCRAPING)

        assert (await load_run(session_factory, run.id)).status == "analyzing"

    @pytest.mark.asyncio
    async def test_progress_writes_leave_version_alone(
        self, session_factory, sample_client, make_run, acquirer, pipeline_factory
    ):
        run = await make_run(sample_client.id, status="analyzing")
        pipeline = pipeline_factory(acquirer)
        tracker = ProgressTracker(["Rival One", "Rival Two"])
        tracker.mark_step_complete("competitor_1_seo")
        tracker.mark_step_complete("competitor_0_scraping")

        for _ in range(3):
            await pipeline.persist_progress(run.id, tracker)

        stored = await load_run(session_factory, run.id)
        assert stored.version == run.version
        assert stored.progress == "Analyzing competitor 1 of 2 (Rival One): positioning analysis…"
        assert stored.progress_detail["completed"] == 2

        # A status transition after progress writes does not conflict
        await pipeline.transition(run.id, RunStatus.GENERATING_INSIGHTS)
        assert (await load_run(session_factory, run.id)).version == run.version + 1

    @pytest.mark.asyncio
    async def test_progress_skips_terminal_run(
        self, session_factory, sample_client, make_run, acquirer, pipeline_factory
    ):
        run = await make_run(sample_client.id, progress=PROGRESS_COMPLETED)
        tracker = ProgressTracker(steps=("seo",))
        tracker.mark(CLIENT, "seo")

        await pipeline_factory(acquirer).persist_progress(run.id, tracker)

        assert (await load_run(session_factory, run.id)).progress == PROGRESS_COMPLETED

    @pytest.mark.asyncio
    async def test_progress_for_deleted_run_abandons(self, acquirer, pipeline_factory):
        with pytest.raises(RunAbandoned):
            await pipeline_factory(acquirer).persist_progress(uuid.uuid4(), ProgressTracker())
