#!/usr/bin/env python3
import asyncio
import logging
import signal
import sys

import aiohttp

import constants
from config import MonitorConfig, load_config
from exceptions import TerminalError
from monitor import MonitorLoop, SessionState
from services.alarm_player import AlarmPlayer
from services.dexscreener_client import DexScreenerClient
from ui.terminal import TerminalSession

logger = logging.getLogger(__name__)


def configure_logging(log_file: str, level: str) -> None:
    """Sends log records to a file; the dashboard owns stdout."""
    logging.basicConfig(
        level=level,
        format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
        filename=log_file,
    )


async def run_monitor(config: MonitorConfig) -> SessionState:
    """Runs the dashboard until the user quits. The terminal is restored before this returns or raises."""
    async with aiohttp.ClientSession(headers={'User-Agent': constants.HTTP_USER_AGENT}) as session:
        client = DexScreenerClient(session)
        terminal = TerminalSession(config)
        player = AlarmPlayer(config.alarm_duration, bell=terminal.bell)
        try:
            async with terminal:
                monitor = MonitorLoop(config, client, player, terminal, terminal.keys)
                loop = asyncio.get_running_loop()
                for sig in (signal.SIGINT, signal.SIGTERM):
                    loop.add_signal_handler(sig, monitor.request_shutdown)
                try:
                    return await monitor.run()
                finally:
                    for sig in (signal.SIGINT, signal.SIGTERM):
                        loop.remove_signal_handler(sig)
        finally:
            await player.aclose()


def main() -> int:
    """The main synchronous entry point for the application."""
    config = load_config()
    configure_logging(config.log_file, config.log_level)

    try:
        state = asyncio.run(run_monitor(config))
    except TerminalError as exc:
        logger.error("Terminal error: %s", exc)
        print(f"{constants.C_RED}Terminal error: {exc}{constants.C_RESET}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 0
    except Exception as exc:
        logger.exception("Application error")
        print(f"{constants.C_RED}Application error: {exc}{constants.C_RESET}", file=sys.stderr)
        return 1

    print(f"{constants.C_GREEN}MoonCap stopped after {state.fetch_count} fetches ({state.error_count} errors).{constants.C_RESET}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
