"""
Core module for the points claimer.

Submodules:
    config: Application settings (``BotSettings``, ``Credentials``) via Pydantic.
    errors: ``ClaimerError`` exception hierarchy.
    logging_setup: Compressed rotating file + safe console logging.
    notifier: Fire-and-forget webhook notifications (aiohttp).
"""
