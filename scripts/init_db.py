import asyncio
import logging
import sys
import os

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.database import create_engine
from core.exceptions import ConfigurationError
from core.logging import setup_logging
from models.base import Base
# Import all models to ensure they are registered
from models.catalog import CatalogGroup, CatalogProduct, PriceHistory  # noqa: F401
from models.listings import GradedListing  # noqa: F401
from models.harvest_run import HarvestRun  # noqa: F401

logger = logging.getLogger(__name__)


async def init_database():
    logger.info("Connecting to database...")
    engine = create_engine()

    async with engine.begin() as conn:
        logger.info(f"Creating tables: {', '.join(sorted(Base.metadata.tables))}")
        await conn.run_sync(Base.metadata.create_all)
        logger.info("Tables created successfully.")

    await engine.dispose()


if __name__ == "__main__":
    setup_logging()
    try:
        asyncio.run(init_database())
    except ConfigurationError as e:
        logger.error(e.message)
        sys.exit(1)
