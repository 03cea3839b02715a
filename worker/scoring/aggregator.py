"""Combine criterion results into an overall score and evidence bundle."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from worker.scoring.types import ALL_CRITERIA, CriterionResult, clamp_score


@dataclass
class AggregateResult:
    overall_score: float | None
    evidence_bundle: list[CriterionResult] = field(default_factory=list)
    included: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    duplicates: list[str] = field(default_factory=list)
    fallback_criteria: list[str] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return not self.missing

    def to_summary(self) -> dict[str, Any]:
        """Compact form stored on the run as ``score_summary``."""
        return {
            "overallScore": self.overall_score,
            "scores": {r.criterion: r.score for r in self.evidence_bundle},
            "included": list(self.included),
            "missing": list(self.missing),
            "duplicates": list(self.duplicates),
            "fallbackCriteria": list(self.fallback_criteria),
        }


def aggregate(
    results: Iterable[CriterionResult],
    expected: Sequence[str] = ALL_CRITERIA,
) -> AggregateResult:
    """
    Average the criterion scores of one entity.

    The overall score is the unweighted mean of clamped scores rounded to one
    decimal, or None when nothing was scored. When a criterion appears more
    than once the first result is kept. The evidence bundle follows
    ``expected`` order, with unexpected criteria appended in arrival order.
    """
    by_criterion: dict[str, CriterionResult] = {}
    duplicates: list[str] = []
    for result in results:
        if result.criterion in by_criterion:
            duplicates.append(result.criterion)
            continue
        by_criterion[result.criterion] = result

    ordered = [by_criterion[c] for c in expected if c in by_criterion]
    ordered += [r for c, r in by_criterion.items() if c not in expected]

    overall: float | None = None
    if ordered:
        overall = round(sum(clamp_score(r.score) for r in ordered) / len(ordered), 1)

    return AggregateResult(
        overall_score=overall,
        evidence_bundle=ordered,
        included=[r.criterion for r in ordered],
        missing=[c for c in expected if c not in by_criterion],
        duplicates=duplicates,
        fallback_criteria=[r.criterion for r in ordered if r.is_fallback],
    )
