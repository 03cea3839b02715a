"""Criterion scoring: per-run config, scorers, timeout wrapper and aggregation."""

from worker.scoring.aggregator import AggregateResult, aggregate
from worker.scoring.config import ScoringConfig
from worker.scoring.timeout import with_timeout
from worker.scoring.types import ALL_CRITERIA, Criterion, CriterionResult, ScoringContext

__all__ = [
    "ALL_CRITERIA",
    "AggregateResult",
    "Criterion",
    "CriterionResult",
    "ScoringConfig",
    "ScoringContext",
    "aggregate",
    "with_timeout",
]
