"""Error taxonomy for the points claimer.

Every failure the claim flow can raise derives from :class:`ClaimerError`
so the top-level handler in ``main.py`` can tell expected, classified
failures apart from genuine bugs.

Hierarchy::

    ClaimerError
    ├── ConfigurationError      missing credentials (fatal before browser work)
    ├── AccessDenied            403 / "Access Denied" page (fatal, diagnosed)
    ├── NotFound                no selector candidate became visible
    │   ├── NoEmailField
    │   └── NoPasswordField
    ├── ElementNotInteractable  element not visible/attached in time
    ├── LoginTimeout            URL never left the authentication domain
    └── UnexpectedPageShape     neither an active button nor a done marker
"""

from typing import Optional, Sequence


class ClaimerError(Exception):
    """Base class for all classified claim-flow failures."""


class ConfigurationError(ClaimerError):
    """Required configuration (credentials) is missing or invalid."""


class AccessDenied(ClaimerError):
    """The target answered with an access-denial status or page.

    Attributes:
        reason: Short description of the detection layer that fired.
        status: HTTP status code when the denial came from the response.
    """

    def __init__(self, reason: str, status: Optional[int] = None) -> None:
        self.reason = reason
        self.status = status
        super().__init__(
            f"Access denied ({reason})" if status is None
            else f"Access denied ({reason}, HTTP {status})"
        )


class NotFound(ClaimerError):
    """No candidate locator for a semantic element became visible.

    Recoverable: callers decide whether the element was optional.
    """

    def __init__(self, role: str, candidates: Sequence = ()) -> None:
        self.role = role
        self.candidates = tuple(candidates)
        tried = ", ".join(str(c) for c in self.candidates) or "-"
        super().__init__(f"No visible {role} (tried: {tried})")


class NoEmailField(NotFound):
    def __init__(self, candidates: Sequence = ()) -> None:
        super().__init__("email field", candidates)


class NoPasswordField(NotFound):
    def __init__(self, candidates: Sequence = ()) -> None:
        super().__init__("password field", candidates)


class ElementNotInteractable(ClaimerError):
    """An element could not be acted on within its timeout."""


class LoginTimeout(ClaimerError):
    """Authentication did not complete within ``login_timeout``."""


class UnexpectedPageShape(ClaimerError):
    """The page matched none of the known layouts."""
