import asyncio
import random

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from core.config import BotSettings, Credentials
from core.errors import ElementNotInteractable, LoginTimeout, NotFound
from points.claimer import (
    MAX_CLAIM_CLICKS,
    ButtonState,
    ClaimState,
    PointsClaimer,
    RunOutcome,
)
from points.diagnostics import DiagnosticCapture
from fakes import make_locator, make_page

TARGET = "https://www.mi.com/de/points-center"
AUTH_URL = "https://account.xiaomi.com/fe/service/login"
ACTIVE = {"class": "mi-btn mi-btn--primary"}
DISABLED = {"class": "mi-btn mi-btn--primary mi-btn--disabled"}


def active_button():
    return make_locator(".mi-btn--primary", attributes=ACTIVE)


def disabled_button():
    return make_locator(".mi-btn--primary", attributes=DISABLED)


class Harness:
    """Wires a PointsClaimer to mocked collaborators."""

    def __init__(self, tmp_path, clean_env, buttons=(None,), **overrides):
        self.settings = BotSettings(
            email="user@example.com",
            password="pw",
            screenshots_dir=str(tmp_path / "shots"),
            **overrides,
        )
        self.page = make_page(url=TARGET)
        self.page.goto = AsyncMock(return_value=MagicMock(status=200))
        # No redirect to the account pages unless a test says otherwise
        self.page.wait_for_url = AsyncMock(
            side_effect=PlaywrightTimeoutError("Timeout"),
        )
        self.context = MagicMock()
        self.store = MagicMock()
        self.store.save = AsyncMock(return_value=True)

        self.visible = {}
        self.resolver = MagicMock()
        self.resolver.resolve = AsyncMock(
            side_effect=NotFound("consent banner"),
        )
        self.resolver.find = AsyncMock(side_effect=list(buttons))
        self.resolver.visible_now = AsyncMock(
            side_effect=lambda candidates, role="element": self.visible.get(role),
        )
        self.resolver.wait_any = AsyncMock(return_value=None)

        self.interaction = MagicMock()
        self.interaction.click = AsyncMock()

        self.authenticator = MagicMock()
        self.authenticator.login = AsyncMock()
        self.authenticator.on_auth_domain = (
            lambda url: "account.xiaomi.com" in url
        )
        self.confirm = AsyncMock(return_value=True)
        self.diagnostics = DiagnosticCapture(self.page, tmp_path / "shots")

    def claimer(self):
        return PointsClaimer(
            self.settings,
            self.page,
            self.context,
            self.store,
            Credentials(email="user@example.com", password="pw"),
            self.diagnostics,
            confirm=self.confirm,
            resolver=self.resolver,
            interaction=self.interaction,
            authenticator=self.authenticator,
            rng=random.Random(0),
        )


@pytest.fixture(autouse=True)
def no_sleep():
    with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
        yield mock_sleep


@pytest.fixture
def harness(tmp_path, clean_env):
    def factory(**kwargs):
        return Harness(tmp_path, clean_env, **kwargs)
    return factory


class TestScenarios:
    """End-to-end paths through the state machine."""

    @pytest.mark.asyncio
    async def test_active_button_is_claimed(self, harness):
        h = harness(buttons=[active_button()])
        claimer = h.claimer()

        result = await claimer.run()

        assert result.outcome is RunOutcome.CLAIMED
        assert result.success
        assert result.attempts == 1
        assert result.relogged is False
        assert result.screenshots == ["xiaomi-pre-claim.png", "xiaomi-post-claim.png"]
        h.interaction.click.assert_awaited_once()
        h.store.save.assert_awaited_once_with(h.context)
        assert claimer.state is ClaimState.DONE

    @pytest.mark.asyncio
    async def test_stale_session_relogin_then_disabled(self, harness):
        h = harness(buttons=[active_button(), disabled_button()])
        h.page.wait_for_url = AsyncMock(return_value=None)

        result = await h.claimer().run()

        assert result.outcome is RunOutcome.ALREADY_CLAIMED
        assert "after re-login" in result.status
        assert result.relogged is True
        assert result.attempts == 1
        h.authenticator.login.assert_awaited_once()
        assert h.page.goto.await_count == 2
        h.store.save.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_done_marker_without_button(self, harness):
        h = harness(buttons=[None])
        h.visible["checked-in marker"] = make_locator("Eingecheckt")

        result = await h.claimer().run()

        assert result.outcome is RunOutcome.ALREADY_CLAIMED
        assert result.screenshots == []
        h.interaction.click.assert_not_awaited()
        h.store.save.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_denial_status_blocks_immediately(self, harness):
        h = harness(buttons=[active_button()])
        h.page.goto = AsyncMock(return_value=MagicMock(status=403))

        result = await h.claimer().run()

        assert result.outcome is RunOutcome.BLOCKED
        assert not result.success
        assert result.error == "AccessDenied"
        assert "403" in result.status
        assert result.screenshots == ["xiaomi-blocked.png"]
        h.page.goto.assert_awaited_once()
        h.page.title.assert_not_awaited()
        h.resolver.find.assert_not_awaited()
        h.interaction.click.assert_not_awaited()
        h.store.save.assert_not_awaited()


class TestBlockDetection:
    """Title-based denial detection."""

    @pytest.mark.asyncio
    async def test_access_denied_title(self, harness):
        h = harness(buttons=[active_button()])
        h.page.title = AsyncMock(return_value="Access Denied")

        result = await h.claimer().run()

        assert result.outcome is RunOutcome.BLOCKED
        h.interaction.click.assert_not_awaited()
        h.store.save.assert_not_awaited()


class TestButtonState:
    """Claim button tri-state handling."""

    @pytest.mark.asyncio
    async def test_disabled_button_never_clicked(self, harness):
        h = harness(buttons=[disabled_button()])

        result = await h.claimer().run()

        assert result.outcome is RunOutcome.ALREADY_CLAIMED
        assert result.attempts == 0
        h.interaction.click.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("attributes", [
        {"class": "mi-btn mi-btn--disabled"},
        {"class": "mi-btn", "aria-disabled": "true"},
        {"class": "mi-btn", "disabled": ""},
    ])
    async def test_disabled_markers(self, harness, attributes):
        h = harness(
            buttons=[make_locator(".mi-btn--primary", attributes=attributes)],
        )
        state, _ = await h.claimer().check_button()
        assert state is ButtonState.DISABLED

    @pytest.mark.asyncio
    async def test_absent_button(self, harness):
        h = harness(buttons=[None])
        state, button = await h.claimer().check_button()
        assert state is ButtonState.ABSENT
        assert button is None

    @pytest.mark.asyncio
    async def test_unexpected_page_shape(self, harness):
        h = harness(buttons=[None])

        result = await h.claimer().run()

        assert result.outcome is RunOutcome.ERROR
        assert result.error == "UnexpectedPageShape"
        assert result.screenshots == ["xiaomi-unexpected.png"]
        h.store.save.assert_not_awaited()


class TestClaimGates:
    """Dry run and interactive confirmation."""

    @pytest.mark.asyncio
    async def test_dryrun_never_clicks(self, harness):
        h = harness(buttons=[active_button()], dryrun=True)

        result = await h.claimer().run()

        assert result.outcome is RunOutcome.SKIPPED
        assert result.simulated is True
        assert result.attempts == 0
        h.interaction.click.assert_not_awaited()
        h.resolver.find.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_operator_declines(self, harness):
        h = harness(buttons=[active_button()], interactive=True)
        h.confirm.return_value = False

        result = await h.claimer().run()

        assert result.outcome is RunOutcome.SKIPPED
        assert result.simulated is False
        h.confirm.assert_awaited_once()
        h.interaction.click.assert_not_awaited()
        h.store.save.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_operator_accepts(self, harness):
        h = harness(buttons=[active_button()], interactive=True)

        result = await h.claimer().run()

        assert result.outcome is RunOutcome.CLAIMED
        h.interaction.click.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_confirm_not_asked_without_interactive(self, harness):
        h = harness(buttons=[active_button()])
        await h.claimer().run()
        h.confirm.assert_not_awaited()


class TestReLogin:
    """Post-click interstitial login handling."""

    @pytest.mark.asyncio
    async def test_retry_at_most_once(self, harness):
        h = harness(buttons=[active_button(), active_button()])
        h.page.wait_for_url = AsyncMock(return_value=None)

        result = await h.claimer().run()

        assert result.outcome is RunOutcome.CLAIMED
        assert result.attempts == MAX_CLAIM_CLICKS == 2
        assert h.interaction.click.await_count == 2
        h.authenticator.login.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_login_form_detector_fires(self, harness):
        h = harness(buttons=[active_button(), disabled_button()])
        cancelled = asyncio.Event()

        async def never(*args, **kwargs):
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                cancelled.set()
                raise

        h.page.wait_for_url = AsyncMock(side_effect=never)
        h.resolver.wait_any = AsyncMock(return_value=make_locator("input#pwd"))

        result = await h.claimer().run()

        assert result.relogged is True
        assert cancelled.is_set()
        assert result.outcome is RunOutcome.ALREADY_CLAIMED

    @pytest.mark.asyncio
    async def test_no_detector_fires_click_is_conclusive(self, harness):
        h = harness(buttons=[active_button()])
        claimer = h.claimer()
        assert await claimer._detect_interstitial_login() is False
        h.resolver.wait_any.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_login_timeout_is_error_without_save(self, harness):
        h = harness(buttons=[active_button()])
        h.page.wait_for_url = AsyncMock(return_value=None)
        h.authenticator.login.side_effect = LoginTimeout("still on login")

        result = await h.claimer().run()

        assert result.outcome is RunOutcome.ERROR
        assert result.error == "LoginTimeout"
        assert "xiaomi-error.png" in result.screenshots
        h.store.save.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_detector_failure_propagates_as_error(self, harness):
        h = harness(buttons=[active_button()])
        h.resolver.wait_any = AsyncMock(side_effect=RuntimeError("page closed"))

        result = await h.claimer().run()

        assert result.outcome is RunOutcome.ERROR
        assert "page closed" in result.status


    @pytest.mark.asyncio
    async def test_click_lands_on_auth_domain(self, harness):
        h = harness(buttons=[active_button(), disabled_button()])

        async def click(locator):
            h.page.url = AUTH_URL

        async def goto(url, **kwargs):
            h.page.url = TARGET
            return MagicMock(status=200)

        h.interaction.click = AsyncMock(side_effect=click)
        h.page.goto = AsyncMock(side_effect=goto)

        result = await h.claimer().run()

        assert result.relogged is True
        assert result.outcome is RunOutcome.ALREADY_CLAIMED
        h.authenticator.login.assert_awaited_once()
        assert h.page.goto.await_count == 2
        h.resolver.wait_any.assert_not_awaited()
        h.page.wait_for_url.assert_not_awaited()


class TestLoginAtLoad:
    """Sign-in wall on the first load."""

    @pytest.mark.asyncio
    async def test_sign_in_link_triggers_login(self, harness):
        h = harness(buttons=[active_button()])
        sign_in = make_locator("Anmelden")
        h.visible["sign-in link"] = sign_in
        h.page.wait_for_url = AsyncMock(
            side_effect=[None, PlaywrightTimeoutError("Timeout")],
        )

        result = await h.claimer().run()

        assert result.outcome is RunOutcome.CLAIMED
        assert h.interaction.click.await_args_list[0].args[0] is sign_in
        h.authenticator.login.assert_awaited_once()
        assert h.page.goto.await_count == 2

    @pytest.mark.asyncio
    async def test_sign_in_redirect_timeout(self, harness):
        h = harness(buttons=[active_button()])
        h.visible["sign-in link"] = make_locator("Anmelden")

        result = await h.claimer().run()

        assert result.outcome is RunOutcome.ERROR
        assert result.error == "LoginTimeout"
        h.authenticator.login.assert_not_awaited()


    @pytest.mark.asyncio
    async def test_load_redirected_to_auth_domain(self, harness):
        h = harness(buttons=[active_button()])
        urls = iter([AUTH_URL, TARGET])

        async def goto(url, **kwargs):
            h.page.url = next(urls)
            return MagicMock(status=200)

        h.page.goto = AsyncMock(side_effect=goto)

        result = await h.claimer().run()

        assert result.outcome is RunOutcome.CLAIMED
        h.authenticator.login.assert_awaited_once()
        assert h.page.goto.await_count == 2
        h.resolver.visible_now.assert_not_awaited()
        # Only the post-click redirect detector waits on the URL
        assert h.page.wait_for_url.await_count == 1
        assert h.page.wait_for_url.await_args.kwargs["wait_until"] == "commit"


class TestFailurePolicy:
    """Errors end in an error outcome and never save the session."""

    @pytest.mark.asyncio
    async def test_click_failure(self, harness):
        h = harness(buttons=[active_button()])
        h.interaction.click.side_effect = ElementNotInteractable("covered")

        result = await h.claimer().run()

        assert result.outcome is RunOutcome.ERROR
        assert result.screenshots == ["xiaomi-pre-claim.png", "xiaomi-error.png"]
        h.store.save.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_url_changed_before_click(self, harness):
        h = harness(buttons=[active_button()])
        h.page.url = "https://www.mi.com/de/"

        result = await h.claimer().run()

        assert result.outcome is RunOutcome.ERROR
        assert result.error == "UnexpectedPageShape"
        h.interaction.click.assert_not_awaited()
        h.store.save.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_trailing_slash_still_target(self, harness):
        h = harness(buttons=[active_button()])
        h.page.url = TARGET + "/"

        result = await h.claimer().run()

        assert result.outcome is RunOutcome.CLAIMED

    @pytest.mark.asyncio
    async def test_consent_banner_dismissed(self, harness):
        h = harness(buttons=[active_button()])
        banner = make_locator("#truste-consent-button")
        h.resolver.resolve = AsyncMock(return_value=banner)

        result = await h.claimer().run()

        assert result.outcome is RunOutcome.CLAIMED
        assert h.interaction.click.await_args_list[0].args[0] is banner

    @pytest.mark.asyncio
    async def test_debug_captures_loaded_page(self, harness):
        h = harness(buttons=[disabled_button()], debug=True)
        result = await h.claimer().run()
        assert result.screenshots == ["xiaomi-loaded.png"]
