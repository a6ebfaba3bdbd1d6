"""Locator descriptors and the Selector Resolver.

The points center and the Xiaomi account pages are localized and their
markup changes without notice, so every semantic element ("email field",
"claim button") maps to an ordered tuple of :class:`LocatorSpec`
candidates. :class:`SelectorResolver` tries them in priority order and
returns the first one that becomes visible.
"""

import logging
import re
import time
from dataclasses import dataclass
from functools import reduce
from typing import Optional, Sequence, Tuple

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Locator, Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from core.errors import NotFound

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LocatorSpec:
    """One concrete way of locating an element.

    Attributes:
        kind: ``css``, ``text``, ``role`` or ``placeholder``.
        value: CSS selector, text pattern, ARIA role or placeholder
            pattern, depending on *kind*.
        name: Accessible-name pattern (``role`` only).
    """

    kind: str
    value: str
    name: Optional[str] = None

    def build(self, page: Page) -> Locator:
        """Return the Playwright locator for this descriptor."""
        if self.kind == "css":
            return page.locator(self.value)
        if self.kind == "text":
            return page.get_by_text(re.compile(self.value, re.IGNORECASE))
        if self.kind == "role":
            if self.name:
                return page.get_by_role(
                    self.value, name=re.compile(self.name, re.IGNORECASE),
                )
            return page.get_by_role(self.value)
        if self.kind == "placeholder":
            return page.get_by_placeholder(
                re.compile(self.value, re.IGNORECASE),
            )
        raise ValueError(f"Unknown locator kind: {self.kind}")

    def __str__(self) -> str:
        if self.kind == "css":
            return self.value
        if self.name:
            return f"{self.kind}={self.value}[{self.name}]"
        return f"{self.kind}={self.value}"


def css(selector: str) -> LocatorSpec:
    return LocatorSpec("css", selector)


def text(pattern: str) -> LocatorSpec:
    return LocatorSpec("text", pattern)


def role(aria_role: str, name: Optional[str] = None) -> LocatorSpec:
    return LocatorSpec("role", aria_role, name)


def placeholder(pattern: str) -> LocatorSpec:
    return LocatorSpec("placeholder", pattern)


Candidates = Tuple[LocatorSpec, ...]

# ---------------------------------------------------------------------------
# Account pages (account.xiaomi.com)
# ---------------------------------------------------------------------------
EMAIL_FIELD: Candidates = (
    css('input[name="account"]'),
    css("input#username"),
    css('input[type="email"]'),
    css('input[autocomplete="username"]'),
    placeholder(r"E-Mail|Email|Telefon|Phone|Xiaomi.?Konto|Mi Account"),
)

PASSWORD_FIELD: Candidates = (
    css('input[name="password"]'),
    css("input#pwd"),
    css('input[type="password"]'),
)

SUBMIT_BUTTON: Candidates = (
    css('button[type="submit"]'),
    role("button", r"^\s*(Anmelden|Sign in|Log in|Einloggen)\s*$"),
    css('input[type="submit"]'),
)

AGREEMENT_CHECKBOX: Candidates = (
    css(".agreement-checkbox"),
    css('input[type="checkbox"][name*="agree"]'),
    role("checkbox", r"Zustimm|Agree|Akzeptier|Accept"),
)

# Either field appearing after a click means the session was rejected
LOGIN_FORM: Candidates = (
    css('input[name="account"]'),
    css("input#username"),
    css('input[name="password"]'),
    css("input#pwd"),
)

# ---------------------------------------------------------------------------
# Points center (www.mi.com/de/points-center)
# ---------------------------------------------------------------------------
CONSENT_BUTTON: Candidates = (
    css("#truste-consent-button"),
    role("button", r"Alle akzeptieren|Accept all|Akzeptieren"),
)

SIGN_IN_LINK: Candidates = (
    text(r"^\s*(Anmelden|Sign in)\s*$"),
    role("link", r"Anmelden|Sign in"),
)

CLAIM_BUTTON: Candidates = (
    css(".points-task__info .mi-btn--primary"),
)

CHECKED_IN_MARKER: Candidates = (
    text(r"Eingecheckt|Checked in"),
)


class SelectorResolver:
    """Resolve a semantic element from its ordered candidate list.

    Args:
        page: The page to search.
        default_timeout_ms: Per-candidate visibility timeout.
    """

    def __init__(self, page: Page, default_timeout_ms: int = 5000) -> None:
        self.page = page
        self.default_timeout_ms = default_timeout_ms

    async def resolve(
        self,
        candidates: Sequence[LocatorSpec],
        timeout_ms: Optional[int] = None,
        role: str = "element",
    ) -> Locator:
        """Return the first candidate that becomes visible.

        Candidates are tried strictly in order, each with its own
        timeout; later candidates are never consulted once one matches.

        Args:
            candidates: Ordered locator descriptors.
            timeout_ms: Per-candidate timeout (defaults to
                ``default_timeout_ms``).
            role: Human-readable element name for errors and logs.

        Returns:
            A locator pinned to the first matching element.

        Raises:
            NotFound: If no candidate became visible.
        """
        timeout = self.default_timeout_ms if timeout_ms is None else timeout_ms
        for spec in candidates:
            locator = spec.build(self.page).first
            try:
                await locator.wait_for(state="visible", timeout=timeout)
            except PlaywrightTimeoutError:
                logger.debug("[%s] %s not visible", role, spec)
                continue
            except PlaywrightError as e:
                logger.debug("[%s] %s unusable: %s", role, spec, e)
                continue
            logger.debug("[%s] resolved via %s", role, spec)
            return locator
        raise NotFound(role, candidates)

    async def find(
        self,
        candidates: Sequence[LocatorSpec],
        timeout_ms: Optional[int] = None,
        role: str = "element",
    ) -> Optional[Locator]:
        """Like :meth:`resolve` but returns ``None`` instead of raising."""
        try:
            return await self.resolve(candidates, timeout_ms, role)
        except NotFound:
            return None

    async def visible_now(
        self,
        candidates: Sequence[LocatorSpec],
        role: str = "element",
    ) -> Optional[Locator]:
        """Return the first candidate visible right now, without waiting."""
        for spec in candidates:
            locator = spec.build(self.page).first
            try:
                if await locator.is_visible():
                    logger.debug("[%s] visible via %s", role, spec)
                    return locator
            except PlaywrightError as e:
                logger.debug("[%s] %s unusable: %s", role, spec, e)
        return None

    async def wait_any(
        self,
        candidates: Sequence[LocatorSpec],
        timeout_ms: int,
    ) -> Optional[Locator]:
        """Wait for *any* candidate to become visible.

        Unlike :meth:`resolve` all candidates are watched at once for the
        whole window, which suits detecting an element that may appear
        at any time (e.g. a login form after a click).

        Returns:
            The first visible match, or ``None`` when the window elapsed.
        """
        if not candidates:
            return None
        combined = reduce(
            lambda acc, loc: acc.or_(loc),
            [spec.build(self.page) for spec in candidates],
        ).first
        try:
            await combined.wait_for(state="visible", timeout=timeout_ms)
        except PlaywrightTimeoutError:
            return None
        return combined

    async def wait_gone(
        self,
        candidates: Sequence[LocatorSpec],
        timeout_ms: int,
    ) -> bool:
        """Wait until no candidate is visible any more.

        All candidates share one deadline of *timeout_ms*.

        Returns:
            ``True`` once every candidate is hidden or detached,
            ``False`` if one was still visible when the deadline passed.
        """
        deadline = time.monotonic() + timeout_ms / 1000
        for spec in candidates:
            # Playwright reads a timeout of 0 as "no timeout"
            remaining = max(1, int((deadline - time.monotonic()) * 1000))
            try:
                await spec.build(self.page).first.wait_for(
                    state="hidden", timeout=remaining,
                )
            except PlaywrightTimeoutError:
                logger.debug("%s still visible", spec)
                return False
        return True
