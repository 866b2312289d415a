#!/usr/bin/env python3
"""
Database initialization script
"""
import asyncio
import sys
from pathlib import Path

# Add parent directory to path
sys.path.append(str(Path(__file__).parent.parent))

from app.core.logging import setup_logging
from app.db.database import create_database
import structlog

logger = structlog.get_logger()


async def init_database(reset: bool = False):
    """Initialize database with all tables"""
    database = create_database()
    try:
        logger.info("Starting database initialization...", reset=reset)

        if reset:
            await database.drop_all()
        await database.create_all()

        logger.info("Database initialization completed successfully")

    except Exception as e:
        logger.error("Database initialization failed", error=str(e))
        raise
    finally:
        await database.dispose()


if __name__ == "__main__":
    setup_logging()
    asyncio.run(init_database(reset="--reset" in sys.argv))
