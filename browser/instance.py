"""Browser instance management for the points claimer.

Provides :class:`BrowserManager` which wraps ``Camoufox`` (a hardened
Firefox fork) via Playwright:

* Always-visible window at the configured size.
* One context per run with locale, timezone and (optional) UA override,
  seeded from a stored Session State.
* Hardened Firefox preferences in place of automation-revealing
  launch flags.
* Stealth init script injected before any page is created.
"""

from typing import Any, Dict, Optional

from browserforge.fingerprints import Screen
from camoufox.async_api import AsyncCamoufox
from playwright.async_api import Browser, BrowserContext, Page

from .stealth_hub import StealthHub
import logging

logger = logging.getLogger(__name__)

# Hardened Firefox preferences for stealth
FIREFOX_PREFS: Dict[str, Any] = {
    # Disable telemetry and crash reporting
    "toolkit.telemetry.enabled": False,
    "datareporting.policy.dataSubmissionEnabled": False,
    "datareporting.healthreport.uploadEnabled": False,
    "browser.crashReports.unsubmittedCheck.autoSubmit2": False,
    # First-run and default-browser prompts
    "browser.shell.checkDefaultBrowser": False,
    "browser.startup.homepage_override.mstone": "ignore",
    # Remote-control / automation indicators
    "marionette.enabled": False,
    "devtools.debugger.remote-enabled": False,
    "dom.webdriver.enabled": False,
    # Password manager / translation popups cover the claim button
    "signon.rememberSignons": False,
    "browser.translations.automaticallyPopup": False,
    # WebRTC leak prevention
    "media.peerconnection.ice.default_address_only": True,
    "media.peerconnection.ice.no_host": True,
    # Avoid DNS prefetch and speculative connections
    "network.dns.disablePrefetch": True,
    "network.prefetch-next": False,
    "network.http.speculative-parallel-limit": 0,
    # Let the init script report concurrency
    "dom.maxHardwareConcurrency": 0,
}


class BrowserManager:
    """Manages the lifecycle of one Camoufox browser for a run.

    Typical usage::

        manager = BrowserManager(width=1920, height=1080)
        try:
            await manager.launch()
            context = await manager.create_context(storage_state=state)
            page = await manager.new_page(context)
            ...
        finally:
            await manager.close()
    """

    def __init__(
        self,
        width: int = 1920,
        height: int = 1080,
        timeout: int = 60000,
        locale: str = "de-DE",
        timezone_id: str = "Europe/Berlin",
        user_agent: Optional[str] = None,
    ) -> None:
        """Initialise the BrowserManager.

        Args:
            width: Window / viewport width in pixels.
            height: Window / viewport height in pixels.
            timeout: Default timeout in milliseconds for context
                operations.
            locale: BCP-47 locale of the context.
            timezone_id: IANA timezone of the context.
            user_agent: Optional UA override (``None`` keeps the
                browser's own).
        """
        self.width = width
        self.height = height
        self.timeout = timeout
        self.locale = locale
        self.timezone_id = timezone_id
        self.user_agent = user_agent
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None
        self.camoufox: Optional[AsyncCamoufox] = None

    async def launch(self) -> "BrowserManager":
        """Launch a visible, hardened Camoufox instance.

        Returns:
            ``self`` for fluent chaining.
        """
        logger.info(
            "Launching Camoufox (%sx%s, %s)...",
            self.width, self.height, self.locale,
        )
        kwargs: Dict[str, Any] = {
            # Headless mode is never used
            "headless": False,
            # Pointer movement is humanized by our own engine
            "humanize": False,
            "window": (self.width, self.height),
            "screen": Screen(
                max_width=self.width, max_height=self.height,
            ),
            "firefox_user_prefs": dict(FIREFOX_PREFS),
        }
        self.camoufox = AsyncCamoufox(**kwargs)
        self.browser = await self.camoufox.__aenter__()
        return self

    async def create_context(
        self,
        storage_state: Optional[Dict[str, Any]] = None,
    ) -> BrowserContext:
        """Create the run's browser context.

        Args:
            storage_state: Session State to seed cookies and storage
                from, or ``None`` for a fresh context.

        Returns:
            The new ``BrowserContext``.
        """
        if not self.browser:
            await self.launch()

        StealthHub.is_consistent_locale_timezone(
            self.locale, self.timezone_id,
        )
        context_args: Dict[str, Any] = {
            "viewport": {"width": self.width, "height": self.height},
            "locale": self.locale,
            "timezone_id": self.timezone_id,
        }
        if self.user_agent:
            context_args["user_agent"] = self.user_agent
        if storage_state:
            context_args["storage_state"] = storage_state

        logger.info(
            "Creating browser context (Session: %s, TZ: %s)",
            "restored" if storage_state else "fresh",
            self.timezone_id,
        )
        context = await self.browser.new_context(**context_args)
        context.set_default_timeout(self.timeout)

        await context.add_init_script(
            StealthHub.get_stealth_script(
                locale=self.locale,
                user_agent=self.user_agent,
            )
        )
        self.context = context
        return context

    async def new_page(
        self, context: Optional[BrowserContext] = None,
    ) -> Page:
        """Open a page in *context* (defaults to the run context).

        Raises:
            RuntimeError: If no context has been created.
        """
        context = context or self.context
        if context is None:
            raise RuntimeError(
                "Cannot create page: no browser context"
            )
        return await context.new_page()

    async def close(self) -> None:
        """Shut down the context and browser. Never raises."""
        if self.context:
            try:
                await self.context.close()
            except Exception as e:
                logger.debug("Error closing context: %s", e)
            self.context = None
        if self.browser and self.camoufox:
            try:
                await self.camoufox.__aexit__(None, None, None)
            except Exception as e:
                logger.debug("Error during browser exit: %s", e)
            self.browser = None
            logger.info("Browser closed.")
