"""Humanized Interaction Engine.

Sites flag automation by teleporting pointers and uniform keystroke
timing. :class:`HumanInteraction` replaces both with a scroll, curved
move, press/release choreography and per-character typing jitter.
"""

import asyncio
import logging
import math
import random
from typing import Dict, List, Optional, Tuple

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Locator, Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from core.errors import ElementNotInteractable

logger = logging.getLogger(__name__)

# (min, max) ranges; delays in seconds
SCROLL_STEPS: Tuple[int, int] = (5, 9)
SCROLL_STEP_DELAY: Tuple[float, float] = (0.05, 0.15)
SCROLL_SETTLE: Tuple[float, float] = (0.5, 1.0)
TARGET_OFFSET: Tuple[float, float] = (0.3, 0.7)
PRE_PRESS_DWELL: Tuple[float, float] = (0.3, 0.6)
PRESS_DWELL: Tuple[float, float] = (0.1, 0.25)
POST_CLICK_SETTLE: Tuple[float, float] = (1.5, 3.0)
KEY_DELAY: Tuple[float, float] = (0.08, 0.2)
MOVE_STEP_DELAY: Tuple[float, float] = (0.004, 0.012)

Point = Tuple[float, float]


def pointer_path(start: Point, end: Point, rng: random.Random) -> List[Point]:
    """Points of a bowed cubic curve from *start* to *end*.

    The curve bows sideways by up to a fifth of the distance. Steps are
    eased (smoothstep) so the pointer speeds up and then slows into the
    target. Tremor shrinks along the way and the last point is exact.
    """
    (x0, y0), (x3, y3) = start, end
    dx, dy = x3 - x0, y3 - y0
    length = math.hypot(dx, dy)
    # Unit normal to the straight line
    nx, ny = (-dy / length, dx / length) if length else (0.0, 0.0)

    bow = rng.uniform(-0.2, 0.2) * min(length, 600)
    x1 = x0 + dx / 3 + nx * bow
    y1 = y0 + dy / 3 + ny * bow
    x2 = x0 + dx * 2 / 3 + nx * bow * rng.uniform(0.3, 0.8)
    y2 = y0 + dy * 2 / 3 + ny * bow * rng.uniform(0.3, 0.8)

    count = min(36, 8 + int(length / 25) + rng.randint(0, 4))
    points: List[Point] = []
    for i in range(1, count + 1):
        s = i / count
        t = s * s * (3 - 2 * s)
        u = 1 - t
        px = u**3 * x0 + 3 * u * u * t * x1 + 3 * u * t * t * x2 + t**3 * x3
        py = u**3 * y0 + 3 * u * u * t * y1 + 3 * u * t * t * y2 + t**3 * y3
        if i < count:
            tremor = 0.6 * (1 - s)
            px += rng.gauss(0, tremor)
            py += rng.gauss(0, tremor)
        points.append((px, py))
    return points


class HumanInteraction:
    """Click and type like a person.

    Args:
        page: Page the pointer and keyboard act on.
        timeout_ms: How long an element may take to become visible.
        rng: Random source (injectable for tests).
    """

    def __init__(
        self,
        page: Page,
        timeout_ms: int = 5000,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.page = page
        self.timeout_ms = timeout_ms
        self.rng = rng or random.Random()
        self._cursor: Optional[Tuple[float, float]] = None

    async def _pause(self, bounds: Tuple[float, float]) -> None:
        await asyncio.sleep(self.rng.uniform(*bounds))

    async def _box(self, locator: Locator) -> Dict[str, float]:
        try:
            await locator.wait_for(state="visible", timeout=self.timeout_ms)
            box = await locator.bounding_box()
        except PlaywrightTimeoutError as e:
            raise ElementNotInteractable(
                f"Element not visible within {self.timeout_ms} ms"
            ) from e
        except PlaywrightError as e:
            raise ElementNotInteractable(str(e)) from e
        if not box:
            raise ElementNotInteractable("Element has no bounding box")
        return box

    def _viewport(self) -> Dict[str, int]:
        return self.page.viewport_size or {"width": 1920, "height": 1080}

    def _in_viewport(self, box: Dict[str, float]) -> bool:
        vp = self._viewport()
        return (
            box["y"] >= 0
            and box["x"] >= 0
            and box["y"] + box["height"] <= vp["height"]
            and box["x"] + box["width"] <= vp["width"]
        )

    async def scroll_into_view(self, box: Dict[str, float]) -> None:
        """Wheel-scroll in small steps until *box* sits mid-viewport."""
        vp = self._viewport()
        delta_y = box["y"] + box["height"] / 2 - vp["height"] / 2
        delta_x = box["x"] + box["width"] / 2 - vp["width"] / 2
        steps = self.rng.randint(*SCROLL_STEPS)
        logger.debug("Scrolling %.0fpx in %d steps", delta_y, steps)
        for _ in range(steps):
            await self.page.mouse.wheel(delta_x / steps, delta_y / steps)
            await self._pause(SCROLL_STEP_DELAY)
        await self._pause(SCROLL_SETTLE)

    async def move_to(self, end_x: float, end_y: float) -> None:
        """Glide the pointer to (*end_x*, *end_y*) along :func:`pointer_path`.

        The path starts where the previous move ended, or at a random
        viewport point on first use.
        """
        if self._cursor is None:
            vp = self._viewport()
            self._cursor = (
                self.rng.uniform(0, vp["width"]),
                self.rng.uniform(0, vp["height"]),
            )
        for x, y in pointer_path(self._cursor, (end_x, end_y), self.rng):
            await self.page.mouse.move(x, y)
            await self._pause(MOVE_STEP_DELAY)
        self._cursor = (end_x, end_y)

    async def click(self, locator: Locator) -> None:
        """Scroll, move, press and release on *locator*, then click it.

        Raises:
            ElementNotInteractable: If the element is not visible and
                attached within ``timeout_ms``.
        """
        box = await self._box(locator)
        if not self._in_viewport(box):
            await self.scroll_into_view(box)
            box = await self._box(locator)

        target_x = box["x"] + box["width"] * self.rng.uniform(*TARGET_OFFSET)
        target_y = box["y"] + box["height"] * self.rng.uniform(*TARGET_OFFSET)
        await self.move_to(target_x, target_y)

        await self._pause(PRE_PRESS_DWELL)
        await self.page.mouse.down()
        await self._pause(PRESS_DWELL)
        await self.page.mouse.up()

        # Strict actionability checks reject some overlaid site buttons
        try:
            await locator.click(force=True, timeout=self.timeout_ms)
        except PlaywrightError as e:
            raise ElementNotInteractable(str(e)) from e
        await self._pause(POST_CLICK_SETTLE)

    async def type(self, locator: Locator, text: str) -> None:
        """Focus *locator*, clear it and type *text* key by key."""
        await self.click(locator)
        await locator.fill("")
        for char in text:
            await self.page.keyboard.type(char, delay=0)
            await self._pause(KEY_DELAY)
