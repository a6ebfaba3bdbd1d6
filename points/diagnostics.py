"""Full-page diagnostic captures at the claim flow's decision points."""

import logging
from pathlib import Path
from typing import List, Optional

from playwright.async_api import Page

logger = logging.getLogger(__name__)


class DiagnosticCapture:
    """Write ``xiaomi-<label>.png`` screenshots.

    Args:
        page: Page to capture.
        directory: Output directory, or ``None`` to disable capture.
    """

    PREFIX = "xiaomi"

    def __init__(self, page: Page, directory: Optional[Path]) -> None:
        self.page = page
        self.directory = directory
        self.captured: List[Path] = []

    @property
    def enabled(self) -> bool:
        return self.directory is not None

    async def capture(self, label: str) -> Optional[Path]:
        """Capture the page; failures are logged, never raised.

        Returns:
            The written file, or ``None``.
        """
        if self.directory is None:
            return None
        path = self.directory / f"{self.PREFIX}-{label}.png"
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            await self.page.screenshot(path=str(path), full_page=True)
        except Exception as e:
            logger.warning("Screenshot '%s' failed: %s", label, e)
            return None
        logger.info("📸 Screenshot saved: %s", path.name)
        self.captured.append(path)
        return path
