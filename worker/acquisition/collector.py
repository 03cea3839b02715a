"""Builds the per-page ScoringContext from a static fetch plus a browser capture."""

from collections.abc import Callable
from typing import Any

import structlog

from worker.acquisition.capture import CaptureResult, PageCapture
from worker.acquisition.fetcher import Fetcher, FetchResult
from worker.acquisition.storage import ScreenshotStorage
from worker.scoring.config import ScoringConfig, Viewport
from worker.scoring.types import ScoringContext, WebVitals

logger = structlog.get_logger(__name__)

CaptureFactory = Callable[[Viewport], Any]


class ContentAcquirer:
    """
    Acquires everything the scorers need for one URL.

    ``acquire`` never raises: whatever could not be obtained is recorded on
    the returned context (``html_error``, ``screenshot_error``,
    ``full_page_screenshot_error``) and scorers degrade on their own.
    """

    def __init__(
        self,
        fetcher: Fetcher | None = None,
        capture_factory: CaptureFactory | None = None,
        storage: ScreenshotStorage | None = None,
    ):
        self.fetcher = fetcher or Fetcher()
        self.capture_factory = capture_factory or (
            lambda viewport: PageCapture(viewport.width, viewport.height)
        )
        self.storage = storage

    @classmethod
    def from_settings(cls, settings: Any) -> "ContentAcquirer":
        return cls(
            fetcher=Fetcher(
                user_agent=settings.fetch_user_agent,
                timeout=settings.fetch_timeout_seconds,
            ),
            capture_factory=lambda viewport: PageCapture(
                viewport.width,
                viewport.height,
                timeout_ms=settings.capture_timeout_ms,
                settle_ms=settings.capture_settle_ms,
            ),
            storage=ScreenshotStorage(settings.screenshot_dir, settings.screenshot_base_url),
        )

    async def acquire(self, url: str, config: ScoringConfig) -> ScoringContext:
        log = logger.bind(url=url)
        fetched = await self._fetch(url)
        captured = await self._capture(url, config.viewport)

        context = ScoringContext(
            website_url=url,
            initial_html=fetched.html if fetched else None,
        )

        if captured.html:
            context.html = captured.html
            context.acquisition_method = captured.method
        elif context.initial_html:
            context.html = context.initial_html
            context.acquisition_method = "static_fetch"
        else:
            context.html_error = (fetched.error if fetched else None) or "No HTML could be retrieved"

        context.screenshot_error = captured.screenshot_error
        context.full_page_screenshot_error = captured.full_page_screenshot_error
        self._store_screenshots(context, captured)
        context.web_vitals = self._vitals(captured.web_vitals, fetched)

        log.info(
            "content_acquired",
            method=context.acquisition_method,
            html_length=len(context.html),
            has_screenshot=context.screenshot is not None,
            has_full_page_screenshot=context.full_page_screenshot is not None,
            screenshot_error=context.screenshot_error,
        )
        return context

    async def _fetch(self, url: str) -> FetchResult | None:
        try:
            return await self.fetcher.fetch(url)
        except Exception as e:
            logger.warning("static_fetch_failed", url=url, error=str(e), exc_info=True)
            return None

    async def _capture(self, url: str, viewport: Viewport) -> CaptureResult:
        try:
            async with self.capture_factory(viewport) as capture:
                return await capture.capture(url)
        except Exception as e:
            # Browser could not start at all
            logger.warning("browser_capture_failed", url=url, error=str(e), exc_info=True)
            error = f"browser_unavailable: {e}"
            return CaptureResult(screenshot_error=error, full_page_screenshot_error=error)

    def _store_screenshots(self, context: ScoringContext, captured: CaptureResult) -> None:
        if self.storage is None:
            return
        for attr, error_attr, content in (
            ("screenshot", "screenshot_error", captured.screenshot),
            ("full_page_screenshot", "full_page_screenshot_error", captured.full_page_screenshot),
        ):
            if content is None:
                continue
            try:
                stored = self.storage.store(content)
            except OSError as e:
                logger.warning("screenshot_store_failed", error=str(e))
                setattr(context, error_attr, f"storage_error: {e}")
                continue
            setattr(context, attr, stored.path)
            setattr(context, f"{attr}_url", stored.url)

    def _vitals(self, vitals: WebVitals | None, fetched: FetchResult | None) -> WebVitals | None:
        ttfb = float(fetched.fetch_time_ms) if fetched and fetched.html is not None else None
        if vitals is None:
            return WebVitals(ttfb_ms=ttfb) if ttfb is not None else None
        if vitals.ttfb_ms is None:
            vitals.ttfb_ms = ttfb
        return vitals
