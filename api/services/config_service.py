"""Scoring configuration overrides stored in the database."""

from __future__ import annotations

from typing import Any

import structlog
from pydantic import ValidationError as ConfigValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.exceptions import ValidationError
from api.models import EffectivenessConfigEntry
from worker.scoring.config import CONFIG_KEYS, ClassifierParams, ScoringConfig

logger = structlog.get_logger(__name__)


def default_scoring_config(settings: Any) -> ScoringConfig:
    """Built-in defaults with the classifier parameters taken from settings."""
    return ScoringConfig(
        classifier=ClassifierParams(
            model=settings.classifier_model,
            temperature=settings.classifier_temperature,
            max_tokens=settings.classifier_max_tokens,
        )
    )


async def load_overrides(db: AsyncSession) -> dict[str, Any]:
    """All override rows as ``{key: value}``."""
    result = await db.execute(select(EffectivenessConfigEntry))
    return {entry.key: entry.value for entry in result.scalars().all()}


async def get_scoring_config(
    db: AsyncSession, base: ScoringConfig | None = None
) -> ScoringConfig:
    """
    Defaults (or ``base``) merged with the stored overrides.

    A stored row that no longer validates is skipped with a warning so one bad
    key cannot fail every run.
    """
    config = base or ScoringConfig()
    for key, value in (await load_overrides(db)).items():
        try:
            config = ScoringConfig.with_overrides({key: value}, config)
        except ConfigValidationError as e:
            logger.warning("scoring_config_override_skipped", key=key, error=describe_errors(e))
    return config


def describe_errors(error: ConfigValidationError) -> str:
    """``"html: Input should be a valid number, ..."``, one clause per problem."""
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"][1:])
        parts.append(f"{location}: {item['msg']}" if location else item["msg"])
    return "; ".join(parts)


async def upsert_override(
    db: AsyncSession,
    key: str,
    value: Any,
    description: str | None = None,
) -> EffectivenessConfigEntry:
    if key not in CONFIG_KEYS:
        raise ValidationError(
            f"Unknown config key '{key}'. Expected one of: {', '.join(CONFIG_KEYS)}",
            field="key",
        )

    try:
        ScoringConfig.with_overrides({key: value})
    except ConfigValidationError as e:
        raise ValidationError(
            f"Invalid value for '{key}': {describe_errors(e)}", field="value"
        ) from e

    entry = await db.get(EffectivenessConfigEntry, key)
    if entry is None:
        entry = EffectivenessConfigEntry(key=key, value=value, description=description)
        db.add(entry)
    else:
        entry.value = value
        if description is not None:
            entry.description = description

    await db.flush()
    logger.info("scoring_config_updated", key=key)
    return entry
