"""Application configuration for the Xiaomi points claimer.

Settings are powered by Pydantic v2 and loaded from environment variables
(with ``.env`` file support) and an optional ``config/points_config.json``
file.

Key exports:
    BotSettings: Root settings model (instantiate once, pass explicitly).
    Credentials: In-memory account identifier + secret.
    TARGET_URL / AUTH_DOMAIN: The page being automated and its login host.
    BASE_DIR / CONFIG_DIR / DATA_DIR / LOGS_DIR: Canonical project paths.
"""

# pylint: disable=no-member

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import AliasChoices, BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.errors import ConfigurationError

# ---------------------------------------------------------------------------
# Base Paths
# ---------------------------------------------------------------------------
BASE_DIR: Path = Path(__file__).parent.parent
"""Project root directory (parent of ``core/``)."""

CONFIG_DIR: Path = BASE_DIR / "config"
"""Directory containing optional JSON overrides."""

DATA_DIR: Path = BASE_DIR / "data"
"""Directory for session state and diagnostic captures."""

LOGS_DIR: Path = BASE_DIR / "logs"
"""Directory for log output files."""

TARGET_URL: str = "https://www.mi.com/de/points-center"
AUTH_DOMAIN: str = "account.xiaomi.com"

# Value of ``dir.screenshots`` that turns diagnostic capture off
SCREENSHOTS_DISABLED: str = "0"

logger: logging.Logger = logging.getLogger(__name__)


class Credentials(BaseModel):
    """Account identifier and secret, held only for the duration of a run.

    Attributes:
        email: Login e-mail or phone number.
        password: Login password (excluded from ``repr``).
    """

    email: str
    password: str = Field(repr=False)

    @property
    def masked_email(self) -> str:
        """Return the account identifier with the local part obscured."""
        local, sep, domain = self.email.partition("@")
        if len(local) <= 2:
            return f"{local[:1]}*{sep}{domain}"
        return f"{local[0]}{'*' * (len(local) - 2)}{local[-1]}{sep}{domain}"


class BotSettings(BaseSettings):
    """Root configuration model for the points claimer.

    All fields can be set via environment variables or a ``.env`` file.
    Values found in ``config/points_config.json`` are applied during
    post-init for fields that were not given explicitly.

    Section overview:
        * **Account** -- email / password (required).
        * **Browser** -- window size, locale, timezone, user agent.
        * **Timeouts** -- general, login, selector, button, re-login race.
        * **Modes** -- interactive gate, dry run, debug, nowait.
        * **Reporting** -- notification webhook, elapsed time.
        * **Storage** -- screenshot directory, session file.
    """

    # Account
    email: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("MI_EMAIL", "email"),
    )
    password: Optional[str] = Field(
        default=None,
        repr=False,
        validation_alias=AliasChoices("MI_PASSWORD", "password"),
    )

    # Core
    log_level: str = "INFO"
    debug: bool = False

    # Browser
    width: int = 1920
    height: int = 1080
    locale: str = "de-DE"
    timezone_id: str = "Europe/Berlin"
    # None keeps the browser's own (consistent) UA string
    user_agent: Optional[str] = None
    target_url: str = TARGET_URL
    auth_domain: str = AUTH_DOMAIN

    # Timeouts (ms)
    timeout: int = 60000
    login_timeout: int = 60000
    selector_timeout: int = 5000
    button_timeout: int = 10000
    relogin_window: int = 5000

    # Modes
    interactive: bool = False
    dryrun: bool = False
    nowait: bool = False
    # Seconds the browser stays open after a runtime error
    inspect_seconds: int = 300

    # Reporting
    notify: bool = False
    notify_url: Optional[str] = None
    notify_title: str = "mi-points"
    time: bool = False

    # Storage
    screenshots_dir: str = Field(
        default=str(DATA_DIR / "screenshots"),
        validation_alias=AliasChoices(
            "DIR_SCREENSHOTS", "dir.screenshots", "screenshots_dir",
        ),
    )
    session_file: Optional[str] = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    def model_post_init(self, __context: Any) -> None:
        """Apply ``config/points_config.json`` overrides, if present."""
        self._load_json_overrides(CONFIG_DIR / "points_config.json")

    def _load_json_overrides(self, config_path: Path) -> None:
        """Merge values from a JSON file into unset fields.

        Fields set explicitly (constructor or environment) win over the
        file. Unknown keys are ignored with a debug message. Nested
        ``{"dir": {"screenshots": ...}}`` is accepted for the screenshot
        directory.

        Args:
            config_path: Location of the JSON override file.
        """
        if not config_path.exists():
            return

        try:
            data: Dict[str, Any] = json.loads(
                config_path.read_text(encoding="utf-8")
            )
        except (OSError, ValueError) as exc:
            logger.warning(
                "Failed to load %s: %s", config_path.name, exc
            )
            return

        if not isinstance(data, dict):
            logger.warning(
                "Ignoring %s: top level must be an object",
                config_path.name,
            )
            return

        nested_dir = data.pop("dir", None)
        if isinstance(nested_dir, dict) and "screenshots" in nested_dir:
            data.setdefault("screenshots_dir", nested_dir["screenshots"])

        explicit = self.model_fields_set
        for key, value in data.items():
            if key not in type(self).model_fields:
                logger.debug("Unknown config key ignored: %s", key)
                continue
            if key in explicit:
                continue
            setattr(self, key, value)

    def credentials(self) -> Credentials:
        """Return the configured credentials.

        Raises:
            ConfigurationError: If email or password is missing.
        """
        missing = [
            name for name in ("email", "password")
            if not getattr(self, name)
        ]
        if missing:
            raise ConfigurationError(
                "Please set MI_EMAIL and MI_PASSWORD "
                f"(missing: {', '.join(missing)})"
            )
        return Credentials(email=self.email, password=self.password)

    @property
    def effective_log_level(self) -> str:
        """``DEBUG`` when debug mode is on, otherwise ``log_level``."""
        return "DEBUG" if self.debug else self.log_level

    def screenshots_path(self) -> Optional[Path]:
        """Return the diagnostic directory, or ``None`` if capture is off."""
        value = (self.screenshots_dir or "").strip()
        if not value or value == SCREENSHOTS_DISABLED:
            return None
        return Path(value)

    def session_path(self) -> Path:
        """Return the Session State file for the configured account.

        An explicit ``session_file`` wins; otherwise the file name is
        derived from the account identifier so that several accounts
        never share one session.
        """
        if self.session_file:
            return Path(self.session_file)
        account = self.email or "default"
        slug = re.sub(r"[^a-z0-9]+", "-", account.lower()).strip("-")
        return DATA_DIR / f"mi-session-{slug or 'default'}.json"
