import random

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from playwright.async_api import Error as PlaywrightError

from core.errors import ElementNotInteractable
from points.interaction import HumanInteraction, pointer_path
from fakes import make_locator, make_page


@pytest.fixture
def sleeps():
    with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
        yield mock_sleep


def _sleep_values(mock_sleep):
    return [c.args[0] for c in mock_sleep.await_args_list]


class TestClick:
    """Test suite for HumanInteraction.click."""

    @pytest.mark.asyncio
    async def test_choreography_order(self, sleeps):
        page = make_page()
        events = []
        page.mouse.move.side_effect = lambda x, y: events.append("move")
        page.mouse.down.side_effect = lambda: events.append("down")
        page.mouse.up.side_effect = lambda: events.append("up")
        locator = make_locator("#btn")
        locator.click.side_effect = lambda **kw: events.append("click")

        await HumanInteraction(page, 1000, random.Random(1)).click(locator)

        assert events.count("move") >= 8
        assert events[-3:] == ["down", "up", "click"]
        locator.click.assert_awaited_once_with(force=True, timeout=1000)
        page.mouse.wheel.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_pointer_lands_inside_element_interior(self, sleeps):
        page = make_page()
        box = {"x": 100, "y": 200, "width": 200, "height": 50}
        locator = make_locator("#btn", box=box)
        for seed in range(5):
            page.mouse.move.reset_mock()
            await HumanInteraction(page, 1000, random.Random(seed)).click(locator)
            x, y = page.mouse.move.await_args_list[-1].args
            assert 100 + 200 * 0.3 <= x <= 100 + 200 * 0.7
            assert 200 + 50 * 0.3 <= y <= 200 + 50 * 0.7

    @pytest.mark.asyncio
    async def test_dwell_and_settle_delays(self, sleeps):
        page = make_page()
        locator = make_locator("#btn")
        await HumanInteraction(page, 1000, random.Random(3)).click(locator)
        values = _sleep_values(sleeps)
        # ... pre-press dwell, press dwell, post-click settle
        assert 0.3 <= values[-3] <= 0.6
        assert 0.1 <= values[-2] <= 0.25
        assert 1.5 <= values[-1] <= 3.0

    @pytest.mark.asyncio
    async def test_scrolls_when_outside_viewport(self, sleeps):
        page = make_page()
        locator = make_locator("#btn")
        locator.bounding_box = AsyncMock(side_effect=[
            {"x": 100, "y": 2500, "width": 120, "height": 40},
            {"x": 100, "y": 500, "width": 120, "height": 40},
        ])

        await HumanInteraction(page, 1000, random.Random(7)).click(locator)

        steps = page.mouse.wheel.await_count
        assert 5 <= steps <= 9
        total_dy = sum(c.args[1] for c in page.mouse.wheel.await_args_list)
        assert total_dy == pytest.approx(2500 + 20 - 540)
        assert locator.bounding_box.await_count == 2
        step_delays = _sleep_values(sleeps)[:steps]
        assert all(0.05 <= d <= 0.15 for d in step_delays)
        assert 0.5 <= _sleep_values(sleeps)[steps] <= 1.0

    @pytest.mark.asyncio
    async def test_invisible_element_not_interactable(self, sleeps):
        page = make_page()
        locator = make_locator("#btn", visible=False)
        with pytest.raises(ElementNotInteractable):
            await HumanInteraction(page, 100).click(locator)
        page.mouse.down.assert_not_awaited()
        locator.click.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_bounding_box_not_interactable(self, sleeps):
        page = make_page()
        locator = make_locator("#btn")
        locator.bounding_box = AsyncMock(return_value=None)
        with pytest.raises(ElementNotInteractable):
            await HumanInteraction(page, 100).click(locator)

    @pytest.mark.asyncio
    async def test_forced_click_failure_not_interactable(self, sleeps):
        page = make_page()
        locator = make_locator("#btn")
        locator.click.side_effect = PlaywrightError("Element is detached")
        with pytest.raises(ElementNotInteractable):
            await HumanInteraction(page, 100).click(locator)

    @pytest.mark.asyncio
    async def test_cursor_continues_from_previous_target(self, sleeps):
        page = make_page()
        engine = HumanInteraction(page, 100, random.Random(2))
        await engine.click(make_locator("#a"))
        end = engine._cursor
        page.mouse.move.reset_mock()
        await engine.move_to(end[0] + 1, end[1] + 1)
        assert page.mouse.move.await_count >= 8


class TestPointerPath:
    """Test suite for the pointer path geometry."""

    def test_ends_exactly_on_target(self):
        for seed in range(5):
            path = pointer_path(
                (10.0, 900.0), (640.5, 120.25), random.Random(seed),
            )
            assert path[-1] == (640.5, 120.25)

    def test_step_count_bounds(self):
        rng = random.Random(1)
        assert len(pointer_path((0, 0), (0, 0), rng)) >= 8
        assert len(pointer_path((0, 0), (5000, 5000), rng)) <= 36

    def test_path_is_curved_not_straight(self):
        class UpperRandom(random.Random):
            def uniform(self, a, b):
                return b

            def gauss(self, mu, sigma):
                return mu

        path = pointer_path((0.0, 0.0), (1000.0, 0.0), UpperRandom(0))
        assert max(abs(y) for _, y in path) > 50


class TestType:
    """Test suite for HumanInteraction.type."""

    @pytest.mark.asyncio
    async def test_types_each_character_with_jitter(self, sleeps):
        page = make_page()
        locator = make_locator("#email")
        engine = HumanInteraction(page, 100, random.Random(5))
        engine.click = AsyncMock()

        await engine.type(locator, "a@b.de")

        engine.click.assert_awaited_once_with(locator)
        locator.fill.assert_awaited_once_with("")
        typed = [c.args[0] for c in page.keyboard.type.await_args_list]
        assert typed == list("a@b.de")
        delays = _sleep_values(sleeps)
        assert len(delays) == 6
        assert all(0.08 <= d <= 0.2 for d in delays)
        assert len(set(delays)) > 1
