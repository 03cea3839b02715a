"""Tests for run lifecycle rules and model helpers."""

import pytest

from api.models import Competitor
from api.models.effectiveness import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    RunStatus,
    can_transition,
)


class TestCanTransition:
    @pytest.mark.parametrize(
        "current,target",
        [
            ("pending", "initializing"),
            ("initializing", "scraping"),
            ("scraping", "analyzing"),
            ("analyzing", "generating_insights"),
            ("generating_insights", "completed"),
            ("analyzing", "completed"),
            ("pending", "failed"),
            ("generating_insights", "failed"),
        ],
    )
    def test_allowed(self, current, target):
        assert can_transition(current, target)

    @pytest.mark.parametrize(
        "current,target",
        [
            ("scraping", "initializing"),
            ("analyzing", "analyzing"),
            ("completed", "failed"),
            ("failed", "pending"),
            ("completed", "analyzing"),
        ],
    )
    def test_rejected(self, current, target):
        assert not can_transition(current, target)

    def test_unknown_status_raises(self):
        with pytest.raises(ValueError):
            can_transition("pending", "archived")

    def test_status_sets_partition(self):
        assert TERMINAL_STATUSES == {RunStatus.COMPLETED, RunStatus.FAILED}
        assert ACTIVE_STATUSES | TERMINAL_STATUSES == set(RunStatus)
        assert not ACTIVE_STATUSES & TERMINAL_STATUSES


class TestCompetitor:
    def test_website_url_adds_scheme(self):
        assert Competitor(domain="rival.example").website_url == "https://rival.example"
        assert Competitor(domain="http://rival.example").website_url == "http://rival.example"

    def test_display_name_prefers_label(self):
        assert Competitor(domain="rival.example", label="Rival").display_name == "Rival"
        assert Competitor(domain="rival.example").display_name == "rival.example"
