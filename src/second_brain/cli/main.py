# src/second_brain/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, then runs the enabled connectors in one
asyncio loop:
- console REPL (optional),
- Matrix connector, which also owns the digest scheduler (optional).

Without Matrix, the digest scheduler posts through the console.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal

from ..cli.bootstrap import close_state, create_initial_state, start_digest_scheduler
from ..config import get_settings
from ..connectors.console_connector import ConsoleGateway, run_console_loop
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


async def _run(settings) -> None:
    state = create_initial_state(settings=settings)
    stop_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # Not supported on every platform (e.g. Windows).
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(sig, stop_event.set)

    background: list[asyncio.Task[None]] = []

    if settings.matrix_enabled:
        from ..connectors.matrix_connector import run_matrix_connector

        background.append(asyncio.create_task(run_matrix_connector(state, stop_event)))

    console_gateway = ConsoleGateway(str(getattr(settings, "app_name", "brain")))
    if not settings.matrix_enabled:
        scheduler = start_digest_scheduler(state, console_gateway)
        if scheduler is not None:
            background.append(scheduler)

    try:
        if settings.console_enabled:
            console = asyncio.create_task(run_console_loop(state, console_gateway))
            stopper = asyncio.create_task(stop_event.wait())
            await asyncio.wait({console, stopper}, return_when=asyncio.FIRST_COMPLETED)
            stopper.cancel()
            if not console.done():
                # input() keeps its worker thread until the next line; the task itself stops here.
                console.cancel()
        elif background:
            logger.info("Console disabled. Running background connectors only. Press Ctrl+C to stop.")
            await stop_event.wait()
        else:
            logger.warning("No connectors enabled (BRAIN_CONSOLE_ENABLED / BRAIN_MATRIX_ENABLED). Nothing to do.")
    finally:
        stop_event.set()
        for task in background:
            task.cancel()
        await asyncio.gather(*background, return_exceptions=True)
        await close_state(state)


def main() -> None:
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    setup_logging(log_dir=getattr(settings, "data_dir", ".local/second_brain"), console_level=console_level)

    logger.info("Starting %s...", getattr(settings, "app_name", "second-brain"))

    try:
        asyncio.run(_run(settings))
    except KeyboardInterrupt:
        logger.info("KeyboardInterrupt, shutting down...")
    finally:
        logger.info("Bye.")


if __name__ == "__main__":
    main()
