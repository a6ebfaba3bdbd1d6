"""
Xiaomi Points Claimer - Main Entry Point

Opens the Mi points center in a stealth browser, restores the stored
session, claims the daily points (logging in when the session expired)
and reports the outcome.

Usage:
    python main.py                 # Claim with settings from .env
    python main.py --dryrun        # Detect everything, do not click
    python main.py --interactive   # Ask before clicking
    python main.py --debug --nowait
"""
from dotenv import load_dotenv

# Load environment variables from .env file into os.environ
load_dotenv()

import asyncio
import argparse
import logging
import sys
from typing import List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm
from rich.table import Table

from browser.instance import BrowserManager
from browser.session_store import SessionStore
from core.config import BotSettings, Credentials
from core.errors import ConfigurationError
from core.logging_setup import setup_logging
from core.notifier import Notifier
from points.claimer import ClaimResult, PointsClaimer, RunOutcome
from points.diagnostics import DiagnosticCapture

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG = 2

OUTCOME_STYLES = {
    RunOutcome.CLAIMED: "green",
    RunOutcome.ALREADY_CLAIMED: "cyan",
    RunOutcome.SKIPPED: "yellow",
    RunOutcome.BLOCKED: "red",
    RunOutcome.ERROR: "red",
}

# CLI switches that override the boolean setting of the same name
FLAG_OVERRIDES = ("dryrun", "interactive", "debug", "nowait", "time", "notify")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Claim the daily Xiaomi points-center check-in",
    )
    parser.add_argument("--dryrun", action="store_true", help="Simulate, never click")
    parser.add_argument("--interactive", action="store_true", help="Confirm before clicking")
    parser.add_argument("--debug", action="store_true", help="Verbose logs and extra screenshots")
    parser.add_argument("--nowait", action="store_true", help="Exit immediately on error")
    parser.add_argument("--time", action="store_true", help="Report elapsed time")
    parser.add_argument("--notify", action="store_true", help="Send a webhook notification")
    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace) -> BotSettings:
    settings = BotSettings()
    for name in FLAG_OVERRIDES:
        if getattr(args, name, False):
            setattr(settings, name, True)
    return settings


def exit_code_for(result: ClaimResult, settings: BotSettings) -> int:
    """Map a run outcome to the process exit code."""
    if result.success:
        return EXIT_OK
    if result.outcome is RunOutcome.BLOCKED:
        return EXIT_FAILURE
    # Without nowait the operator already had the inspection window
    return EXIT_FAILURE if settings.nowait else EXIT_OK


async def ask_operator(question: str) -> bool:
    """Interactive gate: blocks until the operator answers."""
    return await asyncio.to_thread(Confirm.ask, question, default=True)


def render_report(
    result: ClaimResult,
    settings: BotSettings,
    console: Console,
) -> None:
    """Print the run summary panel."""
    table = Table.grid(padding=(0, 2))
    table.add_column(style="bold")
    table.add_column()
    style = OUTCOME_STYLES.get(result.outcome, "white")
    table.add_row("Outcome", f"[{style}]{result.outcome.value}[/{style}]")
    table.add_row("Status", result.status)
    table.add_row("Clicks", str(result.attempts))
    table.add_row("Re-login", "yes" if result.relogged else "no")
    if result.simulated:
        table.add_row("Mode", "dry run")
    if result.screenshots:
        table.add_row("Screenshots", ", ".join(result.screenshots))
    if settings.time:
        table.add_row("Elapsed", f"{result.elapsed:.1f}s")
    console.print(Panel(table, title="Mi Points", border_style=style))


def notification_message(result: ClaimResult, settings: BotSettings) -> str:
    message = f"{result.outcome.value}: {result.status}"
    if settings.time:
        message += f" ({result.elapsed:.1f}s)"
    return message


async def run(
    settings: BotSettings,
    credentials: Credentials,
    session_store: SessionStore,
) -> ClaimResult:
    """Bracket one claim with browser launch and guaranteed teardown."""
    storage_state = session_store.load()
    browser_manager = BrowserManager(
        width=settings.width,
        height=settings.height,
        timeout=settings.timeout,
        locale=settings.locale,
        timezone_id=settings.timezone_id,
        user_agent=settings.user_agent,
    )
    try:
        try:
            await browser_manager.launch()
            context = await browser_manager.create_context(
                storage_state=storage_state,
            )
            page = await browser_manager.new_page(context)
        except Exception as e:
            logger.error("❌ Browser startup failed: %s", e)
            return ClaimResult(
                RunOutcome.ERROR, f"Browser startup failed: {e}",
                error=type(e).__name__,
            )

        claimer = PointsClaimer(
            settings,
            page,
            context,
            session_store,
            credentials,
            DiagnosticCapture(page, settings.screenshots_path()),
            confirm=ask_operator if settings.interactive else None,
        )
        result = await claimer.run()

        if result.outcome is RunOutcome.ERROR and not settings.nowait:
            logger.info(
                "🔍 Keeping the browser open %ss for inspection"
                " (use --nowait to skip)",
                settings.inspect_seconds,
            )
            await asyncio.sleep(settings.inspect_seconds)
        return result
    finally:
        await browser_manager.close()


async def main(argv: Optional[List[str]] = None) -> int:
    """
    Main execution.

    1. Parses command line arguments and builds settings.
    2. Sets up logging.
    3. Validates credentials (exit 2 before any browser work).
    4. Runs the claim inside a guaranteed browser teardown.
    5. Reports, notifies and returns the exit code.
    """
    args = parse_args(argv)
    console = Console()
    try:
        settings = build_settings(args)
    except ValueError as e:
        # pydantic ValidationError is a ValueError
        setup_logging()
        logger.error("❌ Invalid configuration: %s", e)
        return EXIT_CONFIG

    setup_logging(settings.effective_log_level)

    try:
        credentials = settings.credentials()
    except ConfigurationError as e:
        logger.error("❌ %s", e)
        return EXIT_CONFIG

    logger.info("🚀 Mi points claimer starting for %s", credentials.masked_email)
    if settings.dryrun:
        logger.info("🧪 Dry run enabled: the claim button will not be clicked")

    session_store = SessionStore(settings.session_path())
    result = await run(settings, credentials, session_store)

    render_report(result, settings, console)
    await Notifier(
        settings.notify, settings.notify_url, settings.notify_title,
    ).notify(notification_message(result, settings))

    return exit_code_for(result, settings)


def cli() -> None:
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(130)


if __name__ == "__main__":
    cli()
