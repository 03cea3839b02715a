"""SQLAlchemy models package."""

from api.models.client import Client, Competitor
from api.models.effectiveness import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    CriterionScore,
    EffectivenessConfigEntry,
    EffectivenessRun,
    RunStatus,
    can_transition,
)

__all__ = [
    # Client
    "Client",
    "Competitor",
    # Effectiveness
    "EffectivenessRun",
    "CriterionScore",
    "EffectivenessConfigEntry",
    "RunStatus",
    "ACTIVE_STATUSES",
    "TERMINAL_STATUSES",
    "can_transition",
]
