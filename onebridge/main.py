"""onebridge — Main entry point."""

import asyncio
import logging
import signal
from typing import Optional

from .config import BridgeSettings
from .service import BridgeService

_log_format = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

logger = logging.getLogger("onebridge")


def setup_logging(debug: bool = False, log_file: Optional[str] = None):
    """Configure root logging: stderr always, plus an optional log file."""
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format=_log_format,
        handlers=handlers,
    )
    # aiohttp access logs are noisy at INFO
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)


async def run(runtime, settings: BridgeSettings):
    """Run the bridge until SIGINT/SIGTERM."""
    service = BridgeService(runtime, settings)
    stop_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers
            pass

    runtime.attach(service.dispatch)

    try:
        await service.start()
        logger.info("onebridge is running. Press Ctrl+C to stop.")
        await stop_event.wait()
    except Exception as e:
        logger.critical(f"Fatal error: {type(e).__name__}: {e}", exc_info=True)
    finally:
        await service.close()
