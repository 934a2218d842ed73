from __future__ import annotations

import asyncio
import signal

from fundnotify.core.logging import configure_logging
from fundnotify.persistence.db import SessionLocal
from fundnotify.services.notifications.scheduler import BackgroundSweeps


async def _main() -> None:
    # Run retry and retention sweeps in a dedicated process, independent from API handlers.
    configure_logging()
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)
    sweeps = BackgroundSweeps(session_factory=SessionLocal)
    sweeps.start()
    await stop.wait()
    await sweeps.stop()


if __name__ == "__main__":
    asyncio.run(_main())
