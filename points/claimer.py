"""Claim Orchestrator: the daily points state machine.

States::

    Start -> Loaded -> (Blocked | ConsentPending)
    ConsentPending -> (NeedsLogin ->) ButtonCheck
    ButtonCheck -> Done                          disabled / done marker
    ButtonCheck -> Claiming -> (ReLogin -> ButtonCheck -> Claiming)? -> Done

Every run produces exactly one :class:`ClaimResult`. Exceptions escaping
the flow are converted into a ``blocked`` or ``error`` result here; the
caller only maps the outcome to an exit code.
"""

import asyncio
import logging
import random
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Tuple
from urllib.parse import urlparse

from playwright.async_api import BrowserContext, Locator, Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from browser.session_store import SessionStore
from core.config import BotSettings, Credentials
from core.errors import AccessDenied, LoginTimeout, UnexpectedPageShape
from .auth import Authenticator
from .diagnostics import DiagnosticCapture
from .interaction import HumanInteraction
from .selectors import (
    CHECKED_IN_MARKER,
    CLAIM_BUTTON,
    CONSENT_BUTTON,
    LOGIN_FORM,
    SIGN_IN_LINK,
    SelectorResolver,
)
from .steps import optional_step

logger = logging.getLogger(__name__)

# Initial click plus one retry after an interstitial login
MAX_CLAIM_CLICKS = 2

DENIAL_STATUSES = frozenset({403})
DENIAL_TITLE_MARKER = "access denied"
DISABLED_CLASS = "mi-btn--disabled"

# Settle delays in seconds
LOAD_SETTLE: Tuple[float, float] = (2.5, 3.5)
CONSENT_SETTLE: Tuple[float, float] = (0.8, 1.2)
POST_CLAIM_SETTLE: Tuple[float, float] = (4.5, 5.5)

ConfirmCallback = Callable[[str], Awaitable[bool]]


class ButtonState(Enum):
    ABSENT = "absent"
    ACTIVE = "active"
    DISABLED = "disabled"


class RunOutcome(str, Enum):
    CLAIMED = "claimed"
    ALREADY_CLAIMED = "already-claimed"
    SKIPPED = "skipped"
    BLOCKED = "blocked"
    ERROR = "error"


class ClaimState(Enum):
    START = "start"
    LOADED = "loaded"
    BLOCKED = "blocked"
    CONSENT_PENDING = "consent-pending"
    NEEDS_LOGIN = "needs-login"
    BUTTON_CHECK = "button-check"
    CLAIMING = "claiming"
    RELOGIN = "relogin"
    DONE = "done"


@dataclass
class ClaimResult:
    """Outcome of one run.

    Attributes:
        outcome: Final :class:`RunOutcome`.
        status: Human-readable status / error description.
        attempts: Claim clicks actually issued.
        relogged: Whether an interstitial login happened after a click.
        simulated: Dry run; detection ran but nothing was clicked.
        screenshots: File names of the diagnostics captured.
        error: Exception type name for ``blocked`` / ``error``.
        elapsed: Run duration in seconds.
    """

    outcome: RunOutcome
    status: str
    attempts: int = 0
    relogged: bool = False
    simulated: bool = False
    screenshots: List[str] = field(default_factory=list)
    error: Optional[str] = None
    elapsed: float = 0.0

    @property
    def success(self) -> bool:
        return self.outcome in (
            RunOutcome.CLAIMED,
            RunOutcome.ALREADY_CLAIMED,
            RunOutcome.SKIPPED,
        )


class PointsClaimer:
    """Drive one claim run on an open page.

    Args:
        settings: Run configuration.
        page: The run's only page.
        context: Its browser context (for Session State saves).
        session_store: Session State persistence.
        credentials: Account credentials for any login.
        diagnostics: Screenshot sink.
        confirm: Operator prompt for the interactive gate; returns
            ``True`` to proceed.
        resolver / interaction / authenticator: Collaborators, built
            from *page* when omitted.
        rng: Random source for settle delays.
    """

    def __init__(
        self,
        settings: BotSettings,
        page: Page,
        context: BrowserContext,
        session_store: SessionStore,
        credentials: Credentials,
        diagnostics: DiagnosticCapture,
        confirm: Optional[ConfirmCallback] = None,
        resolver: Optional[SelectorResolver] = None,
        interaction: Optional[HumanInteraction] = None,
        authenticator: Optional[Authenticator] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.settings = settings
        self.page = page
        self.context = context
        self.session_store = session_store
        self.credentials = credentials
        self.diagnostics = diagnostics
        self.confirm = confirm
        self.rng = rng or random.Random()
        self.resolver = resolver or SelectorResolver(
            page, settings.selector_timeout,
        )
        self.interaction = interaction or HumanInteraction(
            page, settings.selector_timeout, self.rng,
        )
        self.authenticator = authenticator or Authenticator(
            page,
            context,
            self.resolver,
            self.interaction,
            session_store,
            settings.auth_domain,
            login_timeout_ms=settings.login_timeout,
        )
        self.state = ClaimState.START
        self.attempts = 0
        self.relogged = False

    def _transition(self, state: ClaimState) -> None:
        logger.debug("State %s -> %s", self.state.value, state.value)
        self.state = state

    async def _pause(self, bounds: Tuple[float, float]) -> None:
        await asyncio.sleep(self.rng.uniform(*bounds))

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def run(self) -> ClaimResult:
        """Run the state machine to completion. Never raises.

        ``KeyboardInterrupt`` and task cancellation still propagate.
        """
        started = time.monotonic()
        try:
            result = await self._run_flow()
        except AccessDenied as e:
            self._transition(ClaimState.BLOCKED)
            logger.error("⛔ %s", e)
            await self.diagnostics.capture("blocked")
            result = ClaimResult(
                RunOutcome.BLOCKED, str(e), error=type(e).__name__,
            )
        except UnexpectedPageShape as e:
            logger.error("❓ %s", e)
            await self.diagnostics.capture("unexpected")
            result = ClaimResult(
                RunOutcome.ERROR, str(e), error=type(e).__name__,
            )
        except Exception as e:
            logger.error(
                "❌ Claim flow failed in state %s: %s",
                self.state.value, e,
                exc_info=self.settings.debug,
            )
            await self.diagnostics.capture("error")
            result = ClaimResult(
                RunOutcome.ERROR,
                str(e) or type(e).__name__,
                error=type(e).__name__,
            )

        result.attempts = self.attempts
        result.relogged = self.relogged
        result.screenshots = [p.name for p in self.diagnostics.captured]
        result.elapsed = time.monotonic() - started
        return result

    async def _run_flow(self) -> ClaimResult:
        await self._navigate()
        self._transition(ClaimState.LOADED)
        if self.settings.debug:
            await self.diagnostics.capture("loaded")

        self._transition(ClaimState.CONSENT_PENDING)
        await optional_step("consent banner", self._dismiss_consent)

        needs_login, sign_in = await self._login_wall()
        if needs_login:
            self._transition(ClaimState.NEEDS_LOGIN)
            await self._login_at_load(sign_in)

        done, button = await self._button_check()
        if done is not None:
            return await self._done(done)

        self._transition(ClaimState.CLAIMING)
        if self.settings.interactive and not await self._operator_confirms():
            logger.info("⏭️ Claim skipped by operator")
            return await self._done(ClaimResult(
                RunOutcome.SKIPPED, "Claim skipped by operator",
            ))
        if self.settings.dryrun:
            logger.info("🧪 Dry run: claim button is active, not clicking")
            return await self._done(ClaimResult(
                RunOutcome.SKIPPED,
                "Dry run: claim available, not clicked",
                simulated=True,
            ))

        await self.diagnostics.capture("pre-claim")
        await self._click_claim(button)

        if await self._detect_interstitial_login():
            self._transition(ClaimState.RELOGIN)
            self.relogged = True
            logger.info("🔒 Click triggered login")
            await self.authenticator.login(self.credentials)
            await self._navigate()

            done, button = await self._button_check()
            if done is not None:
                done.status += " (after re-login)"
                return await self._done(done)

            self._transition(ClaimState.CLAIMING)
            await self._click_claim(button)
            logger.info("✅ Clicked after login")

        await self._pause(POST_CLAIM_SETTLE)
        await self.diagnostics.capture("post-claim")
        logger.info("🎉 Daily points claimed")
        return await self._done(ClaimResult(
            RunOutcome.CLAIMED, "Daily points claimed",
        ))

    async def _done(self, result: ClaimResult) -> ClaimResult:
        self._transition(ClaimState.DONE)
        await self.session_store.save(self.context)
        return result

    # ------------------------------------------------------------------
    # Navigation and block detection
    # ------------------------------------------------------------------

    async def _navigate(self) -> None:
        """Load the points center and check for an access-denial page.

        Raises:
            AccessDenied: On a denial status or an "Access Denied" title.
        """
        url = self.settings.target_url
        logger.info("🌐 Opening %s", url)
        response = await self.page.goto(
            url,
            wait_until="domcontentloaded",
            timeout=self.settings.timeout,
        )
        if response is not None and response.status in DENIAL_STATUSES:
            raise AccessDenied("response status", response.status)

        await self._pause(LOAD_SETTLE)

        # Status codes are unreliable behind the CDN
        title = await self.page.title()
        if DENIAL_TITLE_MARKER in (title or "").lower():
            raise AccessDenied(f"page title '{title}'")

    def _on_target_page(self) -> bool:
        current = urlparse(self.page.url)
        target = urlparse(self.settings.target_url)
        return (
            current.netloc == target.netloc
            and current.path.rstrip("/") == target.path.rstrip("/")
        )

    # ------------------------------------------------------------------
    # Consent and login at load
    # ------------------------------------------------------------------

    async def _dismiss_consent(self) -> None:
        button = await self.resolver.resolve(
            CONSENT_BUTTON, self.settings.selector_timeout,
            role="consent banner",
        )
        logger.info("🍪 Accepting cookie banner")
        await self.interaction.click(button)
        await self._pause(CONSENT_SETTLE)

    async def _login_wall(self) -> Tuple[bool, Optional[Locator]]:
        """Tell whether the loaded page demands a login.

        Returns:
            ``(needs_login, sign_in)`` where *sign_in* is the visible
            sign-in control to click, if the page shows one.
        """
        url = self.page.url
        if self.authenticator.on_auth_domain(url) or "login" in url:
            return True, None
        sign_in = await self.resolver.visible_now(
            SIGN_IN_LINK, role="sign-in link",
        )
        return sign_in is not None, sign_in

    async def _login_at_load(self, sign_in: Optional[Locator]) -> None:
        if sign_in is not None:
            logger.info("🔒 Not logged in, opening sign-in")
            await self.interaction.click(sign_in)
        if not self.authenticator.on_auth_domain(self.page.url):
            try:
                await self.page.wait_for_url(
                    lambda url: self.authenticator.on_auth_domain(url),
                    timeout=self.settings.login_timeout,
                )
            except PlaywrightTimeoutError as e:
                raise LoginTimeout(
                    f"Sign-in never reached {self.settings.auth_domain}"
                ) from e
        await self.authenticator.login(self.credentials)
        await self._navigate()

    # ------------------------------------------------------------------
    # Button check and claim
    # ------------------------------------------------------------------

    async def check_button(self) -> Tuple[ButtonState, Optional[Locator]]:
        """Derive the claim button tri-state from the live page."""
        button = await self.resolver.find(
            CLAIM_BUTTON, self.settings.button_timeout, role="claim button",
        )
        if button is None:
            return ButtonState.ABSENT, None
        if await self._is_disabled(button):
            return ButtonState.DISABLED, button
        return ButtonState.ACTIVE, button

    @staticmethod
    async def _is_disabled(button: Locator) -> bool:
        classes = (await button.get_attribute("class") or "").split()
        if DISABLED_CLASS in classes:
            return True
        if await button.get_attribute("aria-disabled") == "true":
            return True
        return await button.get_attribute("disabled") is not None

    async def _button_check(
        self,
    ) -> Tuple[Optional[ClaimResult], Optional[Locator]]:
        """Evaluate the button.

        Returns:
            ``(result, None)`` when the run is finished, or
            ``(None, button)`` when the button is active.

        Raises:
            UnexpectedPageShape: No button and no checked-in marker.
        """
        self._transition(ClaimState.BUTTON_CHECK)
        state, button = await self.check_button()
        logger.info("🔎 Claim button: %s", state.value)

        if state is ButtonState.DISABLED:
            logger.info("✅ Points already claimed today")
            return ClaimResult(
                RunOutcome.ALREADY_CLAIMED, "Points already claimed today",
            ), None
        if state is ButtonState.ABSENT:
            marker = await self.resolver.visible_now(
                CHECKED_IN_MARKER, role="checked-in marker",
            )
            if marker is not None:
                logger.info("✅ Already checked in today")
                return ClaimResult(
                    RunOutcome.ALREADY_CLAIMED, "Already checked in today",
                ), None
            raise UnexpectedPageShape(
                "Neither a claim button nor a checked-in marker found"
            )
        return None, button

    async def _operator_confirms(self) -> bool:
        if self.confirm is None:
            return True
        return await self.confirm("Claim daily points now?")

    async def _click_claim(self, button: Locator) -> None:
        """Click the claim button after re-verifying the page.

        Raises:
            UnexpectedPageShape: The page moved off the target URL, or
                the click limit was reached.
        """
        if self.attempts >= MAX_CLAIM_CLICKS:
            raise UnexpectedPageShape(
                f"Claim click limit ({MAX_CLAIM_CLICKS}) reached"
            )
        if not self._on_target_page():
            raise UnexpectedPageShape(
                f"Expected {self.settings.target_url}, "
                f"but the page is at {self.page.url}"
            )
        self.attempts += 1
        logger.info(
            "🖱️ Clicking claim button (attempt %d/%d)",
            self.attempts, MAX_CLAIM_CLICKS,
        )
        await self.interaction.click(button)

    # ------------------------------------------------------------------
    # Post-click login detection
    # ------------------------------------------------------------------

    async def _detect_interstitial_login(self) -> bool:
        """Race a redirect to the auth domain against a login form.

        The first detector to fire wins; the other one is cancelled.
        Neither firing within ``relogin_window`` means the click was
        conclusive.
        """
        if self.authenticator.on_auth_domain(self.page.url):
            return True

        window = self.settings.relogin_window
        pending = {
            asyncio.create_task(self._wait_for_auth_redirect(window)),
            asyncio.create_task(self._wait_for_login_form(window)),
        }
        fired = False
        try:
            while pending and not fired:
                done, pending = await asyncio.wait(
                    pending, return_when=asyncio.FIRST_COMPLETED,
                )
                fired = any([task.result() for task in done])
        finally:
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
        return fired

    async def _wait_for_auth_redirect(self, window_ms: int) -> bool:
        try:
            await self.page.wait_for_url(
                lambda url: self.authenticator.on_auth_domain(url),
                timeout=window_ms,
                wait_until="commit",
            )
        except PlaywrightTimeoutError:
            return False
        return True

    async def _wait_for_login_form(self, window_ms: int) -> bool:
        return await self.resolver.wait_any(LOGIN_FORM, window_ms) is not None
