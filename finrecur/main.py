import asyncio
import logging

from .config import get_settings
from .db import create_tables
from .scheduler import run_backfill_all, start_scheduler


def setup_logging() -> None:
    level = getattr(logging, get_settings().LOG_LEVEL.upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")


async def main() -> None:
    setup_logging()
    await create_tables()

    # catch up once at startup, then daily
    await run_backfill_all()
    start_scheduler()

    await asyncio.Event().wait()


if __name__ == "__main__":
    asyncio.run(main())
