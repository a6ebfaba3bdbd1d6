"""Authentication Sub-flow for ``account.xiaomi.com``.

Drives the login form with the Selector Resolver and the Humanized
Interaction Engine. Success means the URL left the authentication domain
and, for a form shown in place on the target site, that the form went
away. A failed login is never retried.
"""

import logging

from playwright.async_api import BrowserContext, Page
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from browser.session_store import SessionStore
from core.config import Credentials
from core.errors import LoginTimeout, NoEmailField, NoPasswordField, NotFound
from .interaction import HumanInteraction
from .selectors import (
    AGREEMENT_CHECKBOX,
    EMAIL_FIELD,
    LOGIN_FORM,
    PASSWORD_FIELD,
    SUBMIT_BUTTON,
    SelectorResolver,
)
from .steps import optional_step

logger = logging.getLogger(__name__)


class Authenticator:
    """Log in on the account pages and persist the resulting session.

    Args:
        page: The run's page (already on the authentication domain).
        context: Context whose storage state is saved after login.
        resolver: Selector Resolver bound to *page*.
        interaction: Interaction engine bound to *page*.
        session_store: Where the post-login Session State goes.
        auth_domain: Host of the login pages.
        login_timeout_ms: Bound for the URL leaving *auth_domain*.
        field_timeout_ms: How long the login form may take to render.
    """

    def __init__(
        self,
        page: Page,
        context: BrowserContext,
        resolver: SelectorResolver,
        interaction: HumanInteraction,
        session_store: SessionStore,
        auth_domain: str,
        login_timeout_ms: int = 60000,
        field_timeout_ms: int = 30000,
    ) -> None:
        self.page = page
        self.context = context
        self.resolver = resolver
        self.interaction = interaction
        self.session_store = session_store
        self.auth_domain = auth_domain
        self.login_timeout_ms = login_timeout_ms
        self.field_timeout_ms = field_timeout_ms

    def on_auth_domain(self, url: str) -> bool:
        return self.auth_domain in url

    async def login(self, credentials: Credentials) -> None:
        """Fill and submit the login form.

        Raises:
            NoEmailField: No email field candidate became visible.
            NoPasswordField: No password field candidate became visible.
            LoginTimeout: The URL stayed on the authentication domain, or a
                login form shown on the target site never went away.
            ElementNotInteractable: A field could not be typed into.
        """
        logger.info("🔐 Logging in as %s", credentials.masked_email)
        in_place = not self.on_auth_domain(self.page.url)

        # The form renders late; wait for any variant before ranking them
        if await self.resolver.wait_any(
            EMAIL_FIELD, self.field_timeout_ms,
        ) is None:
            raise NoEmailField(EMAIL_FIELD)
        try:
            email_field = await self.resolver.resolve(
                EMAIL_FIELD, role="email field",
            )
        except NotFound as e:
            raise NoEmailField(e.candidates) from e
        await self.interaction.type(email_field, credentials.email)

        try:
            password_field = await self.resolver.resolve(
                PASSWORD_FIELD, role="password field",
            )
        except NotFound as e:
            raise NoPasswordField(e.candidates) from e
        await self.interaction.type(password_field, credentials.password)

        await optional_step("agreement checkbox", self._accept_agreement)

        submit = await self.resolver.find(SUBMIT_BUTTON, role="submit button")
        if submit is not None:
            await self.interaction.click(submit)
        else:
            logger.debug("No submit control, confirming with Enter")
            await password_field.press("Enter")

        logger.info("⏳ Waiting for login to complete...")
        try:
            await self.page.wait_for_url(
                lambda url: not self.on_auth_domain(url),
                timeout=self.login_timeout_ms,
            )
        except PlaywrightTimeoutError as e:
            raise LoginTimeout(
                f"Still on {self.auth_domain} after "
                f"{self.login_timeout_ms // 1000}s"
            ) from e
        # A form shown on the target site leaves the URL untouched
        if in_place and not await self.resolver.wait_gone(
            LOGIN_FORM, self.login_timeout_ms,
        ):
            raise LoginTimeout(
                "Login form still shown after "
                f"{self.login_timeout_ms // 1000}s"
            )

        logger.info("✅ Login successful")
        await self.session_store.save(self.context)

    async def _accept_agreement(self) -> None:
        checkbox = await self.resolver.visible_now(
            AGREEMENT_CHECKBOX, role="agreement checkbox",
        )
        if checkbox is None:
            raise NotFound("agreement checkbox", AGREEMENT_CHECKBOX)
        try:
            await checkbox.check(
                force=True, timeout=self.interaction.timeout_ms,
            )
            return
        except PlaywrightError as e:
            # Styled wrapper, not a native checkbox
            logger.debug("check() refused the agreement control: %s", e)
        try:
            if await checkbox.is_checked():
                return
        except PlaywrightError:
            pass
        await self.interaction.click(checkbox)
