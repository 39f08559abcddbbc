"""Wait for the database, then apply Alembic migrations (container entrypoint)."""

import asyncio
import logging
import subprocess
import sys
import time

from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine

from taskflow.core.config import get_settings
from taskflow.core.logging import configure_logging

logger = logging.getLogger(__name__)


async def wait_for_database(url: str, timeout: float = 60.0) -> bool:
    deadline = time.monotonic() + timeout
    last: Exception | None = None
    engine = create_async_engine(url)
    try:
        while time.monotonic() < deadline:
            try:
                async with engine.connect() as conn:
                    await conn.execute(text("SELECT 1"))
                return True
            except Exception as e:
                last = e
                await asyncio.sleep(1)
    finally:
        await engine.dispose()
    logger.error("Database not ready: %r", last)
    return False


def main() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    if not asyncio.run(wait_for_database(settings.database_url)):
        sys.exit(1)
    logger.info("Running alembic migrations")
    subprocess.run(["alembic", "upgrade", "head"], check=True)


if __name__ == "__main__":
    main()
