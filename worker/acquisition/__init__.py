"""Content acquisition: static fetch, browser capture and screenshot storage."""

from worker.acquisition.capture import CaptureResult, PageCapture
from worker.acquisition.collector import ContentAcquirer
from worker.acquisition.fetcher import Fetcher, FetchResult
from worker.acquisition.storage import ScreenshotStorage, StoredScreenshot

__all__ = [
    "CaptureResult",
    "ContentAcquirer",
    "FetchResult",
    "Fetcher",
    "PageCapture",
    "ScreenshotStorage",
    "StoredScreenshot",
]
