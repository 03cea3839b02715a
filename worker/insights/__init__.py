"""AI-generated narrative insights for completed runs."""

from worker.insights.generator import InsightsGenerator, InsightsRequest, normalize_insights

__all__ = ["InsightsGenerator", "InsightsRequest", "normalize_insights"]
