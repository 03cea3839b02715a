#!/usr/bin/env python
"""Score one website without the database or the job queue.

Runs acquisition, every criterion scorer (under the same timeout ceilings
the worker uses) and aggregation, then prints the result as JSON.

Usage:
    python scripts/score_url.py https://example.com
    python scripts/score_url.py https://example.com --insights --output result.json
"""

import argparse
import asyncio
import functools
import json
import os
import sys
import time
from datetime import datetime

# Add project root to path
sys.path.insert(0, ".")


async def score_url(url: str, with_insights: bool = False) -> dict:
    from api.config import Settings
    from api.logging import setup_logging
    from api.services.config_service import default_scoring_config
    from worker.acquisition import ContentAcquirer
    from worker.classification.engine import build_engine
    from worker.insights import InsightsGenerator, InsightsRequest
    from worker.scoring import aggregate, with_timeout
    from worker.scoring.criteria import build_scorers

    # No database is touched; these only satisfy required settings
    settings = Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite+aiosqlite://"),
        jwt_secret=os.getenv("JWT_SECRET", "unused"),
    )
    setup_logging()

    config = default_scoring_config(settings)
    engine = build_engine(settings)
    scorers = build_scorers(engine, settings)

    print(f"Scoring {url}", file=sys.stderr)
    started = time.perf_counter()

    context = await ContentAcquirer.from_settings(settings).acquire(url, config)
    print(
        f"  acquisition: {context.acquisition_method or 'failed'}"
        f"{f' ({context.html_error})' if context.html_error else ''}",
        file=sys.stderr,
    )

    results = await asyncio.gather(
        *(
            with_timeout(
                functools.partial(scorer.score, context, config),
                config.timeouts.for_tier(scorer.tier),
                criterion=scorer.criterion,
                fallback_score=scorer.timeout_fallback_score,
            )
            for scorer in scorers
        )
    )
    for result in results:
        suffix = f" [{result.fallback_reason}]" if result.fallback_reason else ""
        print(f"  {result.criterion:<14} {result.score:>4}/10{suffix}", file=sys.stderr)

    summary = aggregate(results, expected=[s.criterion for s in scorers])
    output = {
        "url": url,
        "scored_at": datetime.now().isoformat(),
        "duration_seconds": round(time.perf_counter() - started, 2),
        "overall_score": summary.overall_score,
        "summary": summary.to_summary(),
        "context": context.to_dict(),
        "criteria": [r.to_dict() for r in summary.evidence_bundle],
    }

    if with_insights:
        generator = InsightsGenerator.from_settings(engine, settings)
        output["insights"] = await generator.generate(
            InsightsRequest(
                client_name=url,
                website_url=url,
                overall_score=summary.overall_score,
                results=summary.evidence_bundle,
            )
        )

    print(f"  overall: {summary.overall_score}", file=sys.stderr)
    return output


def main() -> None:
    parser = argparse.ArgumentParser(description="Score a website's marketing effectiveness")
    parser.add_argument("url", help="Website URL to score")
    parser.add_argument("--insights", action="store_true", help="Also generate insights")
    parser.add_argument("--output", "-o", help="Write JSON to this file instead of stdout")
    args = parser.parse_args()

    url = args.url
    if not url.startswith(("http://", "https://")):
        url = f"https://{url}"

    result = asyncio.run(score_url(url, with_insights=args.insights))
    payload = json.dumps(result, indent=2, default=str)

    if args.output:
        with open(args.output, "w") as f:
            f.write(payload)
        print(f"Results saved to {args.output}", file=sys.stderr)
    else:
        print(payload)


if __name__ == "__main__":
    main()
