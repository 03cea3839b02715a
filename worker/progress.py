"""Progress tracking across a client run and its competitor runs."""

from __future__ import annotations

import math
import re
import time
from collections.abc import Callable, Sequence
from typing import Any

from worker.scoring.types import ALL_CRITERIA

CLIENT = "client"

STEP_LABELS: dict[str, str] = {
    "scraping": "Loading website and capturing screenshots",
    "positioning": "positioning analysis",
    "ux": "user experience",
    "brand_story": "brand story",
    "trust": "trust signals",
    "ctas": "calls-to-action",
    "speed": "speed and web vitals",
    "accessibility": "accessibility",
    "seo": "SEO signals",
    "aggregating": "aggregating scores",
}

DEFAULT_STEPS: tuple[str, ...] = ("scraping", *ALL_CRITERIA, "aggregating")

_KEY_PATTERN = re.compile(r"^(client|competitor_(\d+))_(.+)$")


def step_key(entity: str, step: str) -> str:
    """``step_key("client", "seo")`` -> ``"client_seo"``."""
    return f"{entity}_{step}"


def competitor_entity(index: int) -> str:
    """Entity name for the 0-based competitor index (shown to users as index + 1)."""
    return f"competitor_{index}"


class ProgressTracker:
    """
    Completed-step bookkeeping for one run group.

    Every entity (the client plus each competitor) walks the same ordered
    list of steps. Completion is recorded per (entity, step) slot so steps
    may finish in any order and repeats are harmless. Only the event loop
    mutates a tracker, so no locking is needed.
    """

    def __init__(
        self,
        competitor_labels: Sequence[str] = (),
        steps: Sequence[str] = DEFAULT_STEPS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.competitor_labels = list(competitor_labels)
        self._clock = clock
        self.started = clock()
        self.steps = tuple(steps)
        self.entities = [CLIENT] + [
            competitor_entity(i) for i in range(len(self.competitor_labels))
        ]
        self._done: dict[str, set[str]] = {entity: set() for entity in self.entities}
        self.message = "Preparing website analysis..."

    @property
    def total(self) -> int:
        return len(self.entities) * len(self.steps)

    @property
    def completed(self) -> int:
        return sum(len(done) for done in self._done.values())

    @property
    def percent(self) -> int:
        if not self.total:
            return 100
        return int(self.completed * 100 / self.total)

    def is_complete(self, entity: str | None = None) -> bool:
        if entity is None:
            return self.completed == self.total
        return len(self._done[entity]) == len(self.steps)

    def parse_key(self, key: str) -> tuple[str, str]:
        match = _KEY_PATTERN.match(key)
        if not match:
            raise ValueError(f"Unknown progress key: {key}")
        entity, step = match.group(1), match.group(3)
        if entity not in self._done or step not in self.steps:
            raise ValueError(f"Unknown progress key: {key}")
        return entity, step

    def mark_step_complete(self, key: str) -> str:
        """Record ``key`` as done and return the refreshed message."""
        entity, step = self.parse_key(key)
        self._done[entity].add(step)
        self.message = self._message_for(entity)
        return self.message

    def mark(self, entity: str, step: str) -> str:
        return self.mark_step_complete(step_key(entity, step))

    def next_pending(self, entity: str) -> str | None:
        done = self._done[entity]
        for step in self.steps:
            if step not in done:
                return step
        return None

    def _message_for(self, entity: str) -> str:
        if self.is_complete():
            return "All websites analyzed"

        pending = self.next_pending(entity)
        if entity == CLIENT:
            if pending is None:
                return "Your website analyzed"
            return f"Analyzing your website: {STEP_LABELS.get(pending, pending)}…"

        index = int(entity.rsplit("_", 1)[1])
        count = len(self.competitor_labels)
        if pending is None:
            return f"Competitor {index + 1} of {count} analyzed"
        label = self.competitor_labels[index]
        return (
            f"Analyzing competitor {index + 1} of {count} ({label}): "
            f"{STEP_LABELS.get(pending, pending)}…"
        )

    @property
    def elapsed_seconds(self) -> float:
        return max(0.0, self._clock() - self.started)

    def estimated_seconds_remaining(self) -> int | None:
        """Remaining time at the average pace so far; None before the first step lands."""
        if self.is_complete():
            return 0
        if not self.completed:
            return None
        per_step = self.elapsed_seconds / self.completed
        return math.ceil(per_step * (self.total - self.completed))

    def snapshot(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "percent": self.percent,
            "completed": self.completed,
            "total": self.total,
            "elapsed_seconds": round(self.elapsed_seconds, 1),
            "eta_seconds": self.estimated_seconds_remaining(),
        }
