"""Tests for the effectiveness service: refresh policy, reset and insights."""

from datetime import UTC, datetime, timedelta

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy import select

from api.auth import Principal
from api.exceptions import ConflictError, CooldownActiveError, ExternalServiceError
from api.models import CriterionScore, EffectivenessRun
from api.services.effectiveness_service import (
    SUPERSEDED_MESSAGE,
    as_utc,
    cooldown_remaining_hours,
)

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=UTC)


def client_principal(client) -> Principal:
    return Principal(user_id="user-1", role="Client", client_id=client.id)


ADMIN = Principal(user_id="admin-1", role="Admin")


class TestCooldownRemainingHours:
    def test_no_previous_run(self):
        assert cooldown_remaining_hours(None, 24, NOW) is None

    def test_rounds_up_partial_hours(self):
        assert cooldown_remaining_hours(NOW - timedelta(hours=1, minutes=30), 24, NOW) == 23
        assert cooldown_remaining_hours(NOW - timedelta(hours=23, minutes=59), 24, NOW) == 1

    def test_elapsed(self):
        assert cooldown_remaining_hours(NOW - timedelta(hours=24), 24, NOW) is None
        assert cooldown_remaining_hours(NOW - timedelta(days=3), 24, NOW) is None

    def test_naive_datetimes_are_utc(self):
        naive = (NOW - timedelta(hours=2)).replace(tzinfo=None)
        assert cooldown_remaining_hours(naive, 24, NOW) == 22
        assert as_utc(naive).tzinfo is UTC

    def test_disabled(self):
        assert cooldown_remaining_hours(NOW, 0, NOW) is None


class TestRequestRefresh:
    """Tests for starting, joining and superseding runs."""

    @pytest.mark.asyncio
    async def test_creates_and_enqueues(self, db_session, sample_client, effectiveness_service, job_queue):
        client = await effectiveness_service.get_client(db_session, sample_client.id)

        run, created = await effectiveness_service.request_refresh(
            db_session, client, client_principal(client)
        )

        assert created
        assert run.status == "pending"
        assert run.progress == "Queued"
        assert run.job_id == f"effectiveness-{run.id}"
        job_queue.enqueue.assert_called_once()
        assert job_queue.enqueue.call_args.args[1] == str(run.id)

    @pytest.mark.asyncio
    async def test_cooldown_rejects_client(self, db_session, sample_client, make_run, effectiveness_service, job_queue):
        await make_run(sample_client.id, scores={"seo": 7.0}, overall_score=7.0)
        client = await effectiveness_service.get_client(db_session, sample_client.id)

        with pytest.raises(CooldownActiveError) as exc_info:
            await effectiveness_service.request_refresh(db_session, client, client_principal(client))

        assert exc_info.value.remaining_hours == 24
        assert exc_info.value.to_body()["remainingHours"] == 24
        job_queue.enqueue.assert_not_called()

    @pytest.mark.asyncio
    async def test_admin_bypasses_cooldown(self, db_session, sample_client, make_run, effectiveness_service):
        await make_run(sample_client.id)
        client = await effectiveness_service.get_client(db_session, sample_client.id)

        _, created = await effectiveness_service.request_refresh(db_session, client, ADMIN)

        assert created

    @pytest.mark.asyncio
    async def test_joins_active_run(self, db_session, sample_client, make_run, effectiveness_service, job_queue):
        active = await make_run(sample_client.id, status="scraping")
        client = await effectiveness_service.get_client(db_session, sample_client.id)

        run, created = await effectiveness_service.request_refresh(
            db_session, client, client_principal(client)
        )

        assert not created
        assert run.id == active.id
        job_queue.enqueue.assert_not_called()

    @pytest.mark.asyncio
    async def test_force_supersedes_active_run(
        self, db_session, session_factory, sample_client, make_run, effectiveness_service
    ):
        active = await make_run(sample_client.id, status="analyzing")
        client = await effectiveness_service.get_client(db_session, sample_client.id)

        run, created = await effectiveness_service.request_refresh(
            db_session, client, client_principal(client), force=True
        )

        assert created
        assert run.id != active.id
        async with session_factory() as fresh:
            old = await fresh.get(EffectivenessRun, active.id)
            assert old.status == "failed"
            assert old.error_message == SUPERSEDED_MESSAGE
            assert old.version == active.version + 1
            assert old.completed_at is not None

    @pytest.mark.asyncio
    async def test_enqueue_failure_fails_run(
        self, db_session, session_factory, sample_client, effectiveness_service, job_queue
    ):
        job_queue.enqueue.side_effect = RedisConnectionError("refused")
        client = await effectiveness_service.get_client(db_session, sample_client.id)

        with pytest.raises(ExternalServiceError, match="Job queue: Failed to enqueue scoring job"):
            await effectiveness_service.request_refresh(db_session, client, ADMIN)

        async with session_factory() as fresh:
            runs = (await fresh.execute(select(EffectivenessRun))).scalars().all()
        assert [r.status for r in runs] == ["failed"]
        assert runs[0].error_message == "refused"


class TestLastCompletedAt:
    @pytest.mark.asyncio
    async def test_prefers_client_column(self, db_session, sample_client, make_run, effectiveness_service):
        await make_run(sample_client.id, completed_at=NOW - timedelta(days=10))
        client = await effectiveness_service.get_client(db_session, sample_client.id)
        client.last_effectiveness_run = NOW

        assert await effectiveness_service.get_last_completed_at(db_session, client) == NOW

    @pytest.mark.asyncio
    async def test_falls_back_to_newest_completed_run(
        self, db_session, sample_client, make_run, effectiveness_service
    ):
        await make_run(sample_client.id, completed_at=NOW - timedelta(days=10))
        await make_run(sample_client.id, completed_at=NOW - timedelta(days=2))
        await make_run(sample_client.id, status="failed", completed_at=NOW)
        client = await effectiveness_service.get_client(db_session, sample_client.id)

        assert await effectiveness_service.get_last_completed_at(db_session, client) == NOW - timedelta(days=2)


class TestReset:
    @pytest.mark.asyncio
    async def test_clears_only_active_runs(
        self, db_session, session_factory, sample_client, make_run, effectiveness_service
    ):
        completed = await make_run(sample_client.id, scores={"seo": 8.0})
        await make_run(sample_client.id, status="pending")
        await make_run(sample_client.id, status="analyzing", scores={"ux": 5.0})

        cleared = await effectiveness_service.reset(db_session, sample_client.id)
        await db_session.commit()

        assert cleared == 2
        async with session_factory() as fresh:
            runs = (await fresh.execute(select(EffectivenessRun))).scalars().all()
            scores = (await fresh.execute(select(CriterionScore))).scalars().all()
        assert [r.id for r in runs] == [completed.id]
        assert [s.criterion for s in scores] == ["seo"]

    @pytest.mark.asyncio
    async def test_nothing_to_clear(self, db_session, sample_client, effectiveness_service):
        assert await effectiveness_service.reset(db_session, sample_client.id) == 0


class TestInsights:
    @pytest.mark.asyncio
    async def test_fresh_insights_are_cached(
        self, db_session, sample_client, make_run, effectiveness_service, mock_provider
    ):
        stored = {"primary_issue": "cached issue"}
        made = await make_run(
            sample_client.id,
            ai_insights=stored,
            insights_generated_at=datetime.now(UTC) - timedelta(minutes=5),
        )
        client = await effectiveness_service.get_client(db_session, sample_client.id)
        run = await effectiveness_service.get_run(db_session, client.id, made.id)

        insights, cached = await effectiveness_service.get_insights(db_session, client, run)

        assert cached
        assert insights == stored
        assert mock_provider.calls == []

    @pytest.mark.asyncio
    async def test_stale_insights_regenerate(
        self, db_session, sample_client, make_run, effectiveness_service, mock_provider
    ):
        made = await make_run(
            sample_client.id,
            scores={"positioning": 4.0, "seo": 8.0},
            overall_score=6.0,
            ai_insights={"primary_issue": "old"},
            insights_generated_at=datetime.now(UTC) - timedelta(hours=2),
        )
        client = await effectiveness_service.get_client(db_session, sample_client.id)
        run = await effectiveness_service.get_run(db_session, client.id, made.id)

        insights, cached = await effectiveness_service.get_insights(db_session, client, run)

        assert not cached
        assert insights["primary_issue"] == "mock primary issue"
        assert insights["confidence"] == 0.9
        assert run.ai_insights == insights
        assert "positioning: 4.0/10" in mock_provider.calls[0].prompt

    @pytest.mark.asyncio
    async def test_force_regenerates(self, db_session, sample_client, make_run, effectiveness_service):
        made = await make_run(
            sample_client.id,
            ai_insights={"primary_issue": "cached"},
            insights_generated_at=datetime.now(UTC),
        )
        client = await effectiveness_service.get_client(db_session, sample_client.id)
        run = await effectiveness_service.get_run(db_session, client.id, made.id)

        _, cached = await effectiveness_service.get_insights(db_session, client, run, force=True)

        assert not cached

    @pytest.mark.asyncio
    async def test_incomplete_run_conflicts(self, db_session, sample_client, make_run, effectiveness_service):
        made = await make_run(sample_client.id, status="analyzing")
        client = await effectiveness_service.get_client(db_session, sample_client.id)
        run = await effectiveness_service.get_run(db_session, client.id, made.id)

        with pytest.raises(ConflictError) as exc_info:
            await effectiveness_service.get_insights(db_session, client, run)

        assert exc_info.value.code == "RUN_CONFLICT"

    @pytest.mark.asyncio
    async def test_generation_failure(
        self, db_session, sample_client, make_run, effectiveness_service, mock_provider
    ):
        mock_provider.set_response("I cannot answer that")
        made = await make_run(sample_client.id)
        client = await effectiveness_service.get_client(db_session, sample_client.id)
        run = await effectiveness_service.get_run(db_session, client.id, made.id)

        with pytest.raises(ExternalServiceError) as exc_info:
            await effectiveness_service.get_insights(db_session, client, run)

        assert exc_info.value.code == "INSIGHTS_FAILED"
        assert exc_info.value.status_code == 502
