# src/todostore/cli/main.py

"""
CLI entrypoint.

Initializes logging, opens the store (running schema detection/migration),
then runs the console loop until /exit.
"""

from __future__ import annotations

import asyncio
import logging

from ..cli.bootstrap import create_initial_state
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..core.state import AppState
from ..logging_setup import setup_logging
from ..storage.errors import TodoStoreError

logger = logging.getLogger(__name__)


async def _shutdown(state: AppState) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    try:
        await state.store.close()
    except Exception:
        logger.debug("Store close failed.", exc_info=True)


async def _run(settings) -> int:
    try:
        state = await create_initial_state(settings=settings)
    except TodoStoreError:
        logger.exception("Cannot open the todo database at %s", settings.db_path)
        return 1

    try:
        await run_console_loop(state)
    finally:
        await _shutdown(state)
    return 0


def main() -> int:
    settings = get_settings()

    console_level = logging.getLevelName(settings.log_level)
    log_file = setup_logging(log_dir=settings.data_dir, console_level=console_level)

    logger.info("Starting %s (db=%s, log=%s)", settings.app_name, settings.db_path, log_file)
    code = asyncio.run(_run(settings))
    logger.info("Bye.")
    return code


if __name__ == "__main__":
    raise SystemExit(main())
