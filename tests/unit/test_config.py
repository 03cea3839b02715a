"""Tests for application settings and the per-run scoring config."""

import pytest
from pydantic import ValidationError

from api.config import Settings
from worker.scoring.config import (
    DEFAULT_BUZZWORDS,
    ScorerTimeouts,
    ScoringConfig,
    Thresholds,
    merge_config,
)


class TestSettings:
    """Tests for environment-driven settings."""

    def test_postgres_url_gets_async_driver(self):
        settings = Settings(database_url="postgres://u:p@db/app", jwt_secret="s")
        assert settings.database_url == "postgresql+asyncpg://u:p@db/app"

    def test_postgresql_url_gets_async_driver(self):
        settings = Settings(database_url="postgresql://u:p@db/app", jwt_secret="s")
        assert settings.database_url == "postgresql+asyncpg://u:p@db/app"

    def test_sqlite_url_untouched(self):
        settings = Settings(database_url="sqlite+aiosqlite:///x.db", jwt_secret="s")
        assert settings.database_url == "sqlite+aiosqlite:///x.db"
        assert settings.is_sqlite

    def test_provider_falls_back_to_configured_key(self):
        settings = Settings(
            database_url="sqlite+aiosqlite://",
            jwt_secret="s",
            classifier_provider=None,
            openrouter_api_key="key",
        )
        assert settings.resolved_classifier_provider == "openrouter"

    def test_explicit_provider_wins(self):
        settings = Settings(
            database_url="sqlite+aiosqlite://",
            jwt_secret="s",
            classifier_provider="mock",
            openai_api_key="key",
        )
        assert settings.resolved_classifier_provider == "mock"

    def test_env_flags(self):
        settings = Settings(database_url="sqlite+aiosqlite://", jwt_secret="s", env="production")
        assert settings.is_production
        assert not settings.is_test


class TestScoringConfig:
    """Tests for defaults and admin overrides."""

    def test_defaults(self):
        config = ScoringConfig()
        assert config.buzzwords == DEFAULT_BUZZWORDS
        assert config.thresholds.recent_months == 24
        assert config.thresholds.hero_words == 22
        assert config.thresholds.cta_dominance == 1.15
        assert config.viewport.width == 1440

    def test_round_trip_through_dict(self):
        config = ScoringConfig()
        assert ScoringConfig.from_dict(config.to_dict()) == config

    def test_override_replaces_list(self):
        config = ScoringConfig.with_overrides({"buzzwords": ["synergy"]})
        assert config.buzzwords == ("synergy",)

    def test_override_merges_nested_keys(self):
        config = ScoringConfig.with_overrides({"thresholds": {"lcp_limit": 2.0}})
        assert config.thresholds.lcp_limit == 2.0
        # Untouched siblings keep their defaults
        assert config.thresholds.cls_limit == Thresholds().cls_limit

    def test_unknown_nested_keys_rejected(self):
        with pytest.raises(ValidationError, match="depth"):
            ScoringConfig.with_overrides({"viewport": {"width": 1280, "depth": 3}})

    @pytest.mark.parametrize(
        "overrides",
        [
            {"timeouts": {"html": "fast"}},
            {"timeouts": {"external": -1}},
            {"thresholds": {"hero_words": 0}},
            {"buzzwords": "synergy"},
            {"buzzwords": 5},
            {"viewport": 1280},
            {"classifier": {"temperature": 3}},
            {"weights": {"seo": 2}},
        ],
    )
    def test_invalid_overrides_rejected(self, overrides):
        with pytest.raises(ValidationError):
            ScoringConfig.with_overrides(overrides)

    def test_numeric_strings_are_coerced(self):
        config = ScoringConfig.with_overrides({"timeouts": {"html": "2.5"}})
        assert config.timeouts.html == 2.5

    def test_override_over_custom_base(self):
        base = ScoringConfig(timeouts=ScorerTimeouts(html=5.0))
        config = ScoringConfig.with_overrides({"timeouts": {"classifier": 10.0}}, base)
        assert config.timeouts.html == 5.0
        assert config.timeouts.classifier == 10.0

    def test_config_is_frozen(self):
        config = ScoringConfig()
        with pytest.raises(ValidationError):
            config.buzzwords = ()  # type: ignore[misc]


class TestScorerTimeouts:
    def test_for_tier(self):
        timeouts = ScorerTimeouts(html=1.0, classifier=2.0, external=3.0)
        assert timeouts.for_tier("html") == 1.0
        assert timeouts.for_tier("classifier") == 2.0
        assert timeouts.for_tier("external") == 3.0

    def test_unknown_tier_uses_html(self):
        assert ScorerTimeouts(html=7.0).for_tier("other") == 7.0


def test_merge_config_does_not_mutate_inputs() -> None:
    base = {"thresholds": {"a": 1, "b": 2}}
    overrides = {"thresholds": {"a": 5}}
    merged = merge_config(base, overrides)
    assert merged == {"thresholds": {"a": 5, "b": 2}}
    assert base == {"thresholds": {"a": 1, "b": 2}}
