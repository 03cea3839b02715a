"""Headless browser capture: rendered HTML, screenshots and web vitals."""

import asyncio
from dataclasses import dataclass, field
from typing import Literal

import structlog
from playwright.async_api import Browser, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeout

from worker.scoring.types import WebVitals

logger = structlog.get_logger(__name__)

WaitUntil = Literal["networkidle", "domcontentloaded"]

# Tried in order until one produces HTML and a viewport screenshot
STRATEGIES: tuple[tuple[str, WaitUntil], ...] = (
    ("playwright_networkidle", "networkidle"),
    ("playwright_domcontentloaded", "domcontentloaded"),
)

# Buffered PerformanceObserver entries, resolved after 3s at the latest
WEB_VITALS_SCRIPT = """
() => new Promise((resolve) => {
  const vitals = { lcp: null, cls: 0, fid: null };
  try {
    new PerformanceObserver((list) => {
      const entries = list.getEntries();
      const last = entries[entries.length - 1];
      if (last) vitals.lcp = last.startTime / 1000;
    }).observe({ type: 'largest-contentful-paint', buffered: true });
    new PerformanceObserver((list) => {
      for (const entry of list.getEntries()) {
        if (!entry.hadRecentInput) vitals.cls += entry.value;
      }
    }).observe({ type: 'layout-shift', buffered: true });
    new PerformanceObserver((list) => {
      const first = list.getEntries()[0];
      if (first) vitals.fid = first.processingStart - first.startTime;
    }).observe({ type: 'first-input', buffered: true });
  } catch (e) {}
  const nav = performance.getEntriesByType('navigation')[0];
  if (nav) vitals.ttfb = nav.responseStart - nav.requestStart;
  setTimeout(() => resolve(vitals), 3000);
})
"""


@dataclass
class CaptureResult:
    html: str | None = None
    screenshot: bytes | None = None
    full_page_screenshot: bytes | None = None
    web_vitals: WebVitals | None = None
    method: str | None = None
    screenshot_error: str | None = None
    full_page_screenshot_error: str | None = None
    attempts: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.html is not None and self.screenshot is not None


class CaptureError(Exception):
    """One capture strategy failed."""


class PageCapture:
    """Renders pages using a Playwright headless browser."""

    def __init__(
        self,
        viewport_width: int = 1440,
        viewport_height: int = 900,
        timeout_ms: int = 30000,
        settle_ms: int = 2000,
    ):
        self.viewport_width = viewport_width
        self.viewport_height = viewport_height
        self.timeout_ms = timeout_ms
        self.settle_ms = settle_ms
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._lock = asyncio.Lock()

    async def __aenter__(self) -> "PageCapture":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    async def start(self) -> None:
        async with self._lock:
            if self._browser is None:
                self._playwright = await async_playwright().start()
                self._browser = await self._playwright.chromium.launch(
                    headless=True,
                    args=["--no-sandbox", "--disable-dev-shm-usage"],
                )

    async def stop(self) -> None:
        async with self._lock:
            if self._browser:
                await self._browser.close()
                self._browser = None
            if self._playwright:
                await self._playwright.stop()
                self._playwright = None

    async def capture(self, url: str) -> CaptureResult:
        """Try each strategy in turn; never raises for page-level failures."""
        if not self._browser:
            await self.start()

        result = CaptureResult()
        for method, wait_until in STRATEGIES:
            result.attempts.append(method)
            try:
                attempt = await self._capture_with(url, method, wait_until)
            except (PlaywrightTimeout, PlaywrightError, CaptureError) as e:
                result.screenshot_error = f"{method}: {e}"
                result.full_page_screenshot_error = result.screenshot_error
                logger.warning("capture_strategy_failed", url=url, method=method, error=str(e))
                continue

            attempt.attempts = result.attempts
            return attempt

        return result

    async def _capture_with(self, url: str, method: str, wait_until: WaitUntil) -> CaptureResult:
        page: Page | None = None
        try:
            page = await self._browser.new_page(  # type: ignore[union-attr]
                viewport={"width": self.viewport_width, "height": self.viewport_height}
            )
            await page.goto(url, timeout=self.timeout_ms, wait_until=wait_until)
            await page.wait_for_timeout(self.settle_ms)

            html = await page.content()
            if not html:
                raise CaptureError("empty document")

            vitals = await self._collect_vitals(page)
            screenshot = await page.screenshot(type="png", full_page=False)

            full_page: bytes | None = None
            full_page_error: str | None = None
            try:
                full_page = await page.screenshot(type="png", full_page=True)
            except (PlaywrightTimeout, PlaywrightError) as e:
                full_page_error = f"{method}: {e}"
                logger.info("full_page_screenshot_failed", url=url, error=str(e))

            return CaptureResult(
                html=html,
                screenshot=screenshot,
                full_page_screenshot=full_page,
                web_vitals=vitals,
                method=method,
                full_page_screenshot_error=full_page_error,
            )
        finally:
            if page:
                await page.close()

    async def _collect_vitals(self, page: Page) -> WebVitals | None:
        try:
            raw = await page.evaluate(WEB_VITALS_SCRIPT)
        except PlaywrightError as e:
            logger.info("web_vitals_unavailable", error=str(e))
            return None
        if not isinstance(raw, dict):
            return None
        return WebVitals(
            lcp=raw.get("lcp"),
            cls=raw.get("cls"),
            fid=raw.get("fid"),
            ttfb_ms=raw.get("ttfb"),
        )
