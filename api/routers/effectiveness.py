"""Effectiveness scoring endpoints."""

import uuid
from typing import Annotated

import structlog
from fastapi import APIRouter, Body, status

from api.auth import AdminPrincipal, CurrentPrincipal, require_client_access
from api.config import get_settings
from api.deps import DbSession, EffectivenessServiceDep
from api.exceptions import BadRequestError
from api.models import CriterionScore, EffectivenessRun
from api.schemas.effectiveness import (
    ClientRead,
    ConfigResponse,
    ConfigUpdate,
    ConfigUpdateResponse,
    CriterionScoreRead,
    EvidenceResponse,
    EvidenceSummary,
    InsightsRequest,
    InsightsResponse,
    LatestResponse,
    ProgressResponse,
    RefreshRequest,
    RefreshResponse,
    ResetResponse,
    RunRead,
    RunWithScores,
)
from api.schemas.responses import ERROR_RESPONSES
from api.services.config_service import (
    default_scoring_config,
    get_scoring_config,
    load_overrides,
    upsert_override,
)
from api.services.effectiveness_service import build_evidence_summary

router = APIRouter(prefix="/effectiveness", tags=["effectiveness"], responses=ERROR_RESPONSES)
logger = structlog.get_logger(__name__)


def _run_with_scores(run: EffectivenessRun, scores: list[CriterionScore]) -> RunWithScores:
    return RunWithScores(
        **RunRead.model_validate(run).model_dump(),
        criterion_scores=[CriterionScoreRead.model_validate(s) for s in scores],
    )


@router.get(
    "/latest/{client_id}",
    response_model=LatestResponse,
    summary="Latest effectiveness run for a client",
)
async def get_latest(
    client_id: uuid.UUID,
    db: DbSession,
    principal: CurrentPrincipal,
    service: EffectivenessServiceDep,
) -> LatestResponse:
    """
    Get the client's most recent run with its criterion scores.

    Competitor runs spawned by that run are returned alongside it.
    """
    client = await service.get_client(db, client_id)
    require_client_access(principal, client_id)

    run = await service.get_latest_run(db, client_id)
    if run is None:
        return LatestResponse(client=ClientRead.model_validate(client), run=None, has_data=False)

    scores = await service.get_criterion_scores(db, run.id)
    competitor_runs = [
        _run_with_scores(child, await service.get_criterion_scores(db, child.id))
        for child in await service.get_competitor_runs(db, run)
    ]
    return LatestResponse(
        client=ClientRead.model_validate(client),
        run=_run_with_scores(run, scores),
        has_data=True,
        competitor_runs=competitor_runs,
    )


@router.post(
    "/refresh/{client_id}",
    response_model=RefreshResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start effectiveness scoring",
)
async def refresh(
    client_id: uuid.UUID,
    db: DbSession,
    principal: CurrentPrincipal,
    service: EffectivenessServiceDep,
    body: Annotated[RefreshRequest | None, Body()] = None,
) -> RefreshResponse:
    """
    Queue a scoring run for the client and its competitors.

    Non-admin callers are held to the cooldown unless ``force`` is set.
    A refresh while a run is in flight joins that run.
    """
    client = await service.get_client(db, client_id)
    require_client_access(principal, client_id)

    force = body.force if body else False
    run, created = await service.request_refresh(db, client, principal, force=force)
    message = "Effectiveness scoring started" if created else "Effectiveness scoring in progress"
    return RefreshResponse(message=message, run_id=run.id, status=run.status)


@router.get(
    "/evidence/{client_id}/{run_id}",
    response_model=EvidenceResponse,
    summary="Evidence for one run",
)
async def get_evidence(
    client_id: uuid.UUID,
    run_id: uuid.UUID,
    db: DbSession,
    principal: CurrentPrincipal,
    service: EffectivenessServiceDep,
) -> EvidenceResponse:
    require_client_access(principal, client_id)
    run = await service.get_run(db, client_id, run_id)
    scores = await service.get_criterion_scores(db, run.id)

    return EvidenceResponse(
        run=RunRead.model_validate(run),
        criterion_scores=[CriterionScoreRead.model_validate(s) for s in scores],
        summary=EvidenceSummary.model_validate(build_evidence_summary(run, scores)),
    )


@router.get(
    "/progress/{client_id}/{run_id}",
    response_model=ProgressResponse,
    summary="Run progress",
)
async def get_progress(
    client_id: uuid.UUID,
    run_id: uuid.UUID,
    db: DbSession,
    principal: CurrentPrincipal,
    service: EffectivenessServiceDep,
) -> ProgressResponse:
    require_client_access(principal, client_id)
    run = await service.get_run(db, client_id, run_id)
    return ProgressResponse(
        run_id=run.id,
        status=run.status,
        progress=run.progress,
        progress_detail=run.progress_detail,
    )


@router.post(
    "/insights/{client_id}/{run_id}",
    response_model=InsightsResponse,
    summary="Generate or fetch run insights",
)
async def generate_insights(
    client_id: uuid.UUID,
    run_id: uuid.UUID,
    db: DbSession,
    principal: CurrentPrincipal,
    service: EffectivenessServiceDep,
    body: Annotated[InsightsRequest | None, Body()] = None,
) -> InsightsResponse:
    """
    Return insights for a completed run.

    Insights younger than the cache window are served as-is unless
    ``force`` is set.
    """
    require_client_access(principal, client_id)
    client = await service.get_client(db, client_id)
    run = await service.get_run(db, client_id, run_id)

    insights, cached = await service.get_insights(
        db, client, run, force=body.force if body else False
    )
    return InsightsResponse(
        success=True,
        insights=insights,
        client_name=client.name,
        overall_score=run.overall_score,
        run_id=run.id,
        cached=cached,
    )


@router.delete(
    "/reset/{client_id}",
    response_model=ResetResponse,
    summary="Clear stuck runs",
)
async def reset(
    client_id: uuid.UUID,
    db: DbSession,
    principal: CurrentPrincipal,
    service: EffectivenessServiceDep,
) -> ResetResponse:
    await service.get_client(db, client_id)
    require_client_access(principal, client_id)

    cleared = await service.reset(db, client_id)
    return ResetResponse(
        success=True,
        message="Effectiveness data reset successfully",
        client_id=client_id,
        cleared_runs=cleared,
    )


@router.get(
    "/admin/config",
    response_model=ConfigResponse,
    summary="Effective scoring configuration",
)
async def get_config(db: DbSession, _admin: AdminPrincipal) -> ConfigResponse:
    base = default_scoring_config(get_settings())
    config = await get_scoring_config(db, base=base)
    overrides = await load_overrides(db)
    return ConfigResponse(config=config.to_dict(), overrides=overrides)


@router.put(
    "/admin/config",
    response_model=ConfigUpdateResponse,
    summary="Override a scoring config key",
)
async def update_config(
    update: ConfigUpdate,
    db: DbSession,
    admin: AdminPrincipal,
) -> ConfigUpdateResponse:
    if not update.key or update.value is None:
        raise BadRequestError("Key and value are required")

    entry = await upsert_override(db, update.key, update.value, update.description)
    logger.info("scoring_config_override_saved", key=entry.key, user_id=admin.user_id)
    return ConfigUpdateResponse(
        message="Configuration updated successfully",
        key=entry.key,
        description=entry.description,
    )
