"""Content-addressed screenshot storage."""

import hashlib
from dataclasses import dataclass
from pathlib import Path

import structlog

logger = structlog.get_logger(__name__)


@dataclass
class StoredScreenshot:
    path: str
    url: str
    sha256: str
    size: int


class ScreenshotStorage:
    """Writes PNG bytes under ``{base_path}/{sha[:2]}/{sha}.png``.

    Identical screenshots map to the same file, so repeated runs of an
    unchanged page do not grow the directory.
    """

    def __init__(self, base_path: Path | str, base_url: str = "/screenshots"):
        self.base_path = Path(base_path)
        self.base_url = base_url.rstrip("/")

    def _hash_content(self, content: bytes) -> str:
        return hashlib.sha256(content).hexdigest()

    def path_for(self, digest: str) -> Path:
        return self.base_path / digest[:2] / f"{digest}.png"

    def url_for(self, digest: str) -> str:
        return f"{self.base_url}/{digest[:2]}/{digest}.png"

    def store(self, content: bytes) -> StoredScreenshot:
        digest = self._hash_content(content)
        path = self.path_for(digest)
        if not path.exists():
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)
            logger.debug("screenshot_stored", path=str(path), size=len(content))
        return StoredScreenshot(
            path=str(path),
            url=self.url_for(digest),
            sha256=digest,
            size=len(content),
        )
