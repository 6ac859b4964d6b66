import asyncio
import signal

from .db.database import dispose_db
from .logger import logger
from .service import PanelService


async def main() -> None:
    service = PanelService()

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    await service.start()
    try:
        await stop_event.wait()
        logger.info("Shutdown signal received")
    finally:
        await service.stop()
        await dispose_db()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
