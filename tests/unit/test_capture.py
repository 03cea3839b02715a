"""Tests for the Playwright capture strategy loop."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeout

from worker.acquisition.capture import STRATEGIES, CaptureResult, PageCapture

URL = "https://acme.example"
HTML = "<html><body><h1>Rendered</h1></body></html>"


def started_capture() -> PageCapture:
    """A capture whose browser counts as running, so ``start`` is skipped."""
    capture = PageCapture(settle_ms=0)
    capture._browser = MagicMock()
    return capture


def fake_page(contents=(HTML,), screenshots=(b"viewport-png", b"full-png")) -> AsyncMock:
    page = AsyncMock()
    page.content.side_effect = list(contents)
    page.screenshot.side_effect = list(screenshots)
    page.evaluate.return_value = {"lcp": 1.2, "cls": 0.02, "fid": None, "ttfb": 180}
    return page


class TestStrategyFallback:
    @pytest.mark.asyncio
    async def test_networkidle_timeout_falls_back_to_domcontentloaded(self):
        capture = started_capture()
        rendered = CaptureResult(
            html=HTML, screenshot=b"png", method="playwright_domcontentloaded"
        )
        attempts = AsyncMock(
            side_effect=[PlaywrightTimeout("Timeout 30000ms exceeded"), rendered]
        )

        with patch.object(PageCapture, "_capture_with", attempts):
            result = await capture.capture(URL)

        assert result.success
        assert result.method == "playwright_domcontentloaded"
        assert result.screenshot_error is None
        assert result.attempts == ["playwright_networkidle", "playwright_domcontentloaded"]
        assert [call.args for call in attempts.await_args_list] == [
            (URL, method, wait_until) for method, wait_until in STRATEGIES
        ]

    @pytest.mark.asyncio
    async def test_both_strategies_fail(self):
        capture = started_capture()
        attempts = AsyncMock(
            side_effect=[
                PlaywrightTimeout("Timeout 30000ms exceeded"),
                PlaywrightError("net::ERR_CONNECTION_RESET"),
            ]
        )

        with patch.object(PageCapture, "_capture_with", attempts):
            result = await capture.capture(URL)

        assert not result.success
        assert result.html is None
        assert result.screenshot is None
        assert result.screenshot_error == (
            "playwright_domcontentloaded: net::ERR_CONNECTION_RESET"
        )
        assert result.full_page_screenshot_error == result.screenshot_error
        assert result.attempts == ["playwright_networkidle", "playwright_domcontentloaded"]

    @pytest.mark.asyncio
    async def test_empty_document_tries_next_strategy(self):
        capture = started_capture()
        page = fake_page(
            contents=("", HTML), screenshots=(b"viewport-png", b"full-png")
        )
        capture._browser.new_page = AsyncMock(return_value=page)

        result = await capture.capture(URL)

        assert result.success
        assert result.method == "playwright_domcontentloaded"
        assert page.goto.await_args_list[0].kwargs["wait_until"] == "networkidle"
        assert page.goto.await_args_list[1].kwargs["wait_until"] == "domcontentloaded"
        assert page.close.await_count == 2


class TestCaptureWith:
    @pytest.mark.asyncio
    async def test_full_page_failure_recorded_separately(self):
        capture = started_capture()
        page = fake_page(screenshots=(b"viewport-png", PlaywrightError("Page is too large")))
        capture._browser.new_page = AsyncMock(return_value=page)

        result = await capture.capture(URL)

        assert result.success
        assert result.method == "playwright_networkidle"
        assert result.screenshot == b"viewport-png"
        assert result.screenshot_error is None
        assert result.full_page_screenshot is None
        assert result.full_page_screenshot_error == "playwright_networkidle: Page is too large"
        assert result.web_vitals.lcp == 1.2
        assert result.web_vitals.ttfb_ms == 180
        page.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_viewport_and_screenshots(self):
        capture = started_capture()
        capture.viewport_width, capture.viewport_height = 1280, 800
        page = fake_page()
        capture._browser.new_page = AsyncMock(return_value=page)

        result = await capture.capture(URL)

        capture._browser.new_page.assert_awaited_once_with(
            viewport={"width": 1280, "height": 800}
        )
        assert result.full_page_screenshot == b"full-png"
        assert result.full_page_screenshot_error is None
        assert [call.kwargs["full_page"] for call in page.screenshot.await_args_list] == [
            False,
            True,
        ]

    @pytest.mark.asyncio
    async def test_vitals_failure_does_not_fail_capture(self):
        capture = started_capture()
        page = fake_page()
        page.evaluate.side_effect = PlaywrightError("Execution context was destroyed")
        capture._browser.new_page = AsyncMock(return_value=page)

        result = await capture.capture(URL)

        assert result.success
        assert result.web_vitals is None
