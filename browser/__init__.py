"""
Browser module for the points claimer.

Anti-detection browser automation built on top of Camoufox (a hardened
Firefox fork) and Playwright.

Submodules:
    instance: ``BrowserManager`` lifecycle (launch, context, close).
    session_store: ``SessionStore`` Session State persistence.
    stealth_hub: ``StealthHub`` locale/platform consistent init script.
    stealth_scripts: Raw JS payloads assembled by ``StealthHub``.
"""

from .instance import BrowserManager
from .session_store import SessionStore

__all__ = ["BrowserManager", "SessionStore"]
