"""
Script to create the database tables and seed default settings
(package prices, commissions, withdrawal limits) plus a closed withdrawal portal.
Run this script after setting up your database connection.

Usage:
    python initialize_db.py
"""

import asyncio
import logging

from nulex import config
from nulex.core.logging import configure_logging
from nulex.db import AsyncSessionLocal, Base, engine
from nulex import models  # noqa: F401  registers tables on Base.metadata
from nulex.services.settings_service import seed_default_settings

logger = logging.getLogger("initialize_db")


async def init_db():
    """Initialize database tables and default data"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Tables created")

    async with AsyncSessionLocal() as session:
        created = await seed_default_settings(session)
    logger.info(f"Seeded {created} default settings")

    await engine.dispose()


if __name__ == "__main__":
    configure_logging(environment=config.ENVIRONMENT, log_level=config.LOG_LEVEL)
    asyncio.run(init_db())
