# src/arch_bulletin/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, then runs the operator console until /exit or EOF.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from ..cli.bootstrap import create_initial_state
from ..cli.commands import registry as command_registry
from ..config import get_settings
from ..core.state import AppState
from ..logging_setup import setup_logging
from ..storage.selector import reset_document_store

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


async def run_console(state: AppState) -> None:
    logger.info("Console started (actor=%s).", state.actor.username)
    _print_ts("[CONSOLE] Use /help for commands. Use /exit to quit.\n")

    while True:
        try:
            line = (await asyncio.to_thread(input, f"{state.actor.username}> ")).strip()
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break

        if not line:
            continue
        if line.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        reply = await command_registry.handle(state, line, emit=_print_ts)
        if reply is None:
            reply = "Commands start with '/'. Use /help to list them."
        print(reply, flush=True)


async def _shutdown(state: AppState) -> None:
    """Best-effort shutdown of network clients."""
    store = reset_document_store() or state.store
    try:
        await store.aclose()
    except Exception:
        logger.debug("Store close failed.", exc_info=True)


async def _amain(state: AppState) -> None:
    try:
        await run_console(state)
    finally:
        await _shutdown(state)


def main() -> None:
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    setup_logging(log_dir=getattr(settings, "data_dir", ".local/bulletin"), console_level=console_level)

    logging.getLogger("httpx").setLevel(logging.WARNING)

    logger.info("Starting %s...", getattr(settings, "app_name", "arch-bulletin"))

    # IMPORTANT: reuse same settings object
    state = create_initial_state(settings=settings)

    try:
        asyncio.run(_amain(state))
    except KeyboardInterrupt:
        print()
        logger.info("Console KeyboardInterrupt, exiting.")
    logger.info("Bye.")


if __name__ == "__main__":
    main()
