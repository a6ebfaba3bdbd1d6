"""
Points module: the Xiaomi points-center claim flow.

Submodules:
    selectors: ``LocatorSpec`` descriptors, candidate lists per semantic
        role, and the ``SelectorResolver``.
    steps: ``optional_step`` combinator for best-effort UI steps.
    interaction: ``HumanInteraction`` humanized click / type engine.
    diagnostics: ``DiagnosticCapture`` full-page screenshots.
    auth: ``Authenticator`` login sub-flow.
    claimer: ``PointsClaimer`` state machine, ``ClaimResult``.
"""

from .claimer import ClaimResult, PointsClaimer, RunOutcome

__all__ = ["ClaimResult", "PointsClaimer", "RunOutcome"]
