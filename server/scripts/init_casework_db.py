"""
Create the conflict case tables.
Run with: python scripts/init_casework_db.py
"""
import asyncio
import logging
import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.config import configure_logging, load_settings
from app.database import close_pool, init_db, init_pool

logger = logging.getLogger("init_casework_db")


async def main():
    settings = load_settings()
    configure_logging()
    if not settings.database_url:
        logger.error("DATABASE_URL is not set")
        return 1

    await init_pool(settings.database_url)
    try:
        await init_db()
        logger.info("conflict_cases schema is ready")
    finally:
        await close_pool()
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
