"""Static HTML fetch with retries."""

import asyncio
from dataclasses import dataclass
from datetime import UTC, datetime

import httpx
import structlog

logger = structlog.get_logger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (compatible; EffectivenessBot/1.0; +https://example.com/bot)"
)


@dataclass
class FetchResult:
    """Result of fetching a URL."""

    url: str
    final_url: str  # After redirects
    status_code: int
    content_type: str | None
    html: str | None
    error: str | None
    fetch_time_ms: int
    fetched_at: datetime

    @property
    def success(self) -> bool:
        return self.status_code == 200 and self.html is not None


class Fetcher:
    """HTTP fetcher with retries. Elapsed time doubles as a TTFB estimate."""

    def __init__(
        self,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = 15.0,
        max_retries: int = 2,
        retry_delay: float = 1.0,
    ):
        self.user_agent = user_agent
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    def _elapsed_ms(self, start_time: datetime) -> int:
        return int((datetime.now(UTC) - start_time).total_seconds() * 1000)

    async def fetch(self, url: str) -> FetchResult:
        """
        Fetch a URL with retries.

        Client errors (4xx) are returned immediately; timeouts, server errors
        and transport errors are retried with a linear backoff.
        """
        start_time = datetime.now(UTC)
        error: str | None = None

        for attempt in range(self.max_retries + 1):
            try:
                async with httpx.AsyncClient(
                    timeout=self.timeout,
                    follow_redirects=True,
                    max_redirects=5,
                ) as client:
                    response = await client.get(
                        url,
                        headers={
                            "User-Agent": self.user_agent,
                            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
                            "Accept-Language": "en-US,en;q=0.5",
                        },
                    )
                    response.raise_for_status()

                content_type = response.headers.get("content-type", "")
                html = response.text if "html" in content_type.lower() or not content_type else None

                return FetchResult(
                    url=url,
                    final_url=str(response.url),
                    status_code=response.status_code,
                    content_type=content_type,
                    html=html,
                    error=None if html is not None else f"Unexpected content type: {content_type}",
                    fetch_time_ms=self._elapsed_ms(start_time),
                    fetched_at=start_time,
                )

            except httpx.TimeoutException:
                error = "Request timed out"
                logger.warning("fetch_timeout_retry", url=url, attempt=attempt + 1)

            except httpx.HTTPStatusError as e:
                error = f"HTTP error: {e.response.status_code}"
                if 400 <= e.response.status_code < 500:
                    return FetchResult(
                        url=url,
                        final_url=str(e.response.url),
                        status_code=e.response.status_code,
                        content_type=None,
                        html=None,
                        error=error,
                        fetch_time_ms=self._elapsed_ms(start_time),
                        fetched_at=start_time,
                    )

            except httpx.HTTPError as e:
                error = str(e) or type(e).__name__
                logger.warning("fetch_error_retry", url=url, error=error, attempt=attempt + 1)

            if attempt < self.max_retries:
                await asyncio.sleep(self.retry_delay * (attempt + 1))

        return FetchResult(
            url=url,
            final_url=url,
            status_code=0,
            content_type=None,
            html=None,
            error=error,
            fetch_time_ms=self._elapsed_ms(start_time),
            fetched_at=start_time,
        )
