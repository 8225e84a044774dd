# src/outreach_assistant/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, then runs on one asyncio loop:
- the reminder sweeper as a background task (optional),
- the console REPL (optional).
"""

from __future__ import annotations

import asyncio
import contextlib
import logging

from ..cli.bootstrap import create_initial_state
from ..config import Settings, get_settings
from ..connectors.console_connector import run_console_loop
from ..logging_setup import setup_logging
from ..tasks.reminders import run_reminder_loop

logger = logging.getLogger(__name__)


async def _run(settings: Settings) -> None:
    state = create_initial_state(settings=settings)

    reminder_task: asyncio.Task[None] | None = None
    if settings.reminders_enabled:
        reminder_task = asyncio.create_task(run_reminder_loop(state.orchestrator, state.gateway))

    try:
        if settings.console_enabled:
            await run_console_loop(state)
        else:
            logger.info("Console disabled. Running the reminder sweeper only. Press Ctrl+C to stop.")
            await asyncio.Event().wait()
    finally:
        if reminder_task is not None:
            reminder_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reminder_task


def main() -> None:
    settings = get_settings()

    level_name = str(settings.log_level).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    setup_logging(log_dir=settings.data_dir, console_level=console_level)

    logger.info("Starting %s...", settings.app_name)

    try:
        asyncio.run(_run(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down...")
    finally:
        # TaskStore uses short-lived sqlite connections per call; no explicit close required.
        logger.info("Bye.")


if __name__ == "__main__":
    main()
