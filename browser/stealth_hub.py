"""Stealth helpers for the points-center browser context.

:class:`StealthHub` builds the init script injected into every context and
keeps the fingerprint surface geographically consistent: the
``navigator.languages`` list is derived from the configured locale and the
``navigator.platform`` value from the User-Agent, so the page never sees a
German locale with an American timezone or a Windows UA on ``Linux x86_64``.
"""

import logging
import sys
from typing import Dict, List, Optional

from .stealth_scripts import get_stealth_script

logger = logging.getLogger(__name__)


class StealthHub:
    """Stateless stealth artefact factory.

    All methods are ``@staticmethod``.
    """

    # Locales with the timezones a real user of that locale would have
    TIMEZONE_LOCALE_MAP: Dict[str, List[str]] = {
        "de-DE": ["Europe/Berlin"],
        "de-AT": ["Europe/Vienna"],
        "de-CH": ["Europe/Zurich"],
        "en-GB": ["Europe/London"],
        "en-US": [
            "America/New_York",
            "America/Chicago",
            "America/Denver",
            "America/Los_Angeles",
        ],
        "fr-FR": ["Europe/Paris"],
        "es-ES": ["Europe/Madrid"],
        "it-IT": ["Europe/Rome"],
        "nl-NL": ["Europe/Amsterdam"],
        "pl-PL": ["Europe/Warsaw"],
    }

    @staticmethod
    def get_stealth_script(
        locale: str = "de-DE",
        user_agent: Optional[str] = None,
        hardware_concurrency: int = 8,
    ) -> str:
        """Return the init script for a context with *locale*.

        Args:
            locale: BCP-47 context locale.
            user_agent: UA override, if any. ``None`` derives the platform
                from the host OS, matching the browser's own UA.
            hardware_concurrency: CPU core count to report.

        Returns:
            JavaScript source for ``BrowserContext.add_init_script``.
        """
        if user_agent:
            platform = StealthHub.get_consistent_platform_for_ua(user_agent)
        else:
            platform = StealthHub.get_host_platform()
        return get_stealth_script(
            languages=StealthHub.get_languages_for_locale(locale),
            platform=platform,
            hardware_concurrency=hardware_concurrency,
        )

    @staticmethod
    def get_languages_for_locale(locale: str) -> List[str]:
        """``de-DE`` -> ``['de-DE', 'de']``; a bare ``de`` stays single."""
        primary = locale.split("-")[0]
        if primary == locale:
            return [locale]
        return [locale, primary]

    @staticmethod
    def get_consistent_platform_for_ua(ua: str) -> str:
        """Return the ``navigator.platform`` matching a User-Agent.

        Args:
            ua: User-Agent string.

        Returns:
            Platform string (e.g. ``Win32``).
        """
        if "Windows" in ua:
            return "Win32"
        if "Macintosh" in ua or "Mac OS X" in ua:
            return "MacIntel"
        if "Linux" in ua or "X11" in ua:
            return "Linux x86_64"
        return "Win32"

    @staticmethod
    def get_host_platform() -> str:
        """Return the ``navigator.platform`` of the machine running us."""
        if sys.platform.startswith("win"):
            return "Win32"
        if sys.platform == "darwin":
            return "MacIntel"
        return "Linux x86_64"

    @staticmethod
    def is_consistent_locale_timezone(locale: str, timezone_id: str) -> bool:
        """Return ``False`` when *timezone_id* is implausible for *locale*.

        Unknown locales are accepted as-is.
        """
        timezones = StealthHub.TIMEZONE_LOCALE_MAP.get(locale)
        if timezones is None:
            return True
        consistent = timezone_id in timezones
        if not consistent:
            logger.warning(
                "⚠️ Timezone %s does not match locale %s (expected one of %s)",
                timezone_id, locale, ", ".join(timezones),
            )
        return consistent
