"""Session State persistence.

The Session State is the Playwright storage state of the browser context
(cookies plus local/session storage per origin) for one account on the
target site. It is read once before the context is created and rewritten
after a successful login and at the end of a successful run.

The file is only ever replaced as a whole: the new state goes to a
temporary file, is validated by re-reading it, and then atomically moves
over the previous one.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

from playwright.async_api import BrowserContext

logger = logging.getLogger(__name__)


def _is_empty_state(state: Dict[str, Any]) -> bool:
    return not state.get("cookies") and not state.get("origins")


class SessionStore:
    """Load / save the storage state of one account.

    Attributes:
        path: Location of the JSON storage-state file.
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> Optional[Dict[str, Any]]:
        """Return the stored state, or ``None`` when there is none.

        A missing file is the normal first-run case and is not logged as a
        problem. A corrupt file is reported and treated as absent so the
        run falls back to a fresh login.
        """
        if not self.path.exists():
            logger.debug("No session file at %s", self.path)
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                state = json.load(fh)
        except (OSError, ValueError) as e:
            logger.warning(
                "Ignoring unreadable session file %s: %s", self.path, e,
            )
            return None
        if not isinstance(state, dict):
            logger.warning("Ignoring malformed session file %s", self.path)
            return None
        logger.info(
            "🍪 Loaded session (%d cookies)", len(state.get("cookies", [])),
        )
        return state

    def write(self, state: Dict[str, Any]) -> bool:
        """Atomically replace the session file with *state*.

        An empty state never overwrites an existing file.

        Returns:
            ``True`` if the file was written.
        """
        if _is_empty_state(state) and self.path.exists():
            logger.warning(
                "Refusing to overwrite %s with an empty session", self.path,
            )
            return False

        temp_file = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_file, "w", encoding="utf-8") as fh:
                json.dump(state, fh, indent=2)
            # Validate before committing
            with open(temp_file, "r", encoding="utf-8") as fh:
                json.load(fh)
            os.replace(temp_file, self.path)
        except (OSError, ValueError) as e:
            logger.error("Failed to write session file %s: %s", self.path, e)
            try:
                temp_file.unlink()
            except OSError:
                pass
            return False
        return True

    async def save(self, context: BrowserContext) -> bool:
        """Serialise *context* storage and persist it.

        Args:
            context: The live browser context.

        Returns:
            ``True`` if the session file was written.
        """
        state = await context.storage_state()
        written = self.write(state)
        if written:
            logger.info("💾 Session saved (%s)", self.path.name)
        return written
