"""
Database initialization script

Creates indexes, seeds the global subscription price and aligns the tenant
id counter with existing tenants. Safe to run more than once:
    python scripts/init_db.py
"""

import asyncio
import sys
from pathlib import Path
from dotenv import load_dotenv

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Load environment variables
load_dotenv()

from pymongo import DESCENDING
import logging

from app.core.config import settings
from app.db.indexes import create_indexes
from app.db.mongo import (
    close_mongo_connection,
    connect_to_mongo,
    get_counters_collection,
    get_sessions_collection,
    get_system_config_collection,
    get_tenants_collection,
)
from app.services.tenant_service import DEFAULT_PRICE_KEY, TENANT_SEQUENCE

logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(message)s')
logger = logging.getLogger(__name__)


async def seed_global_price():
    """Stores the fallback price unless an operator already set one."""
    result = await get_system_config_collection().update_one(
        {"key": DEFAULT_PRICE_KEY},
        {"$setOnInsert": {"key": DEFAULT_PRICE_KEY, "value": str(settings.DEFAULT_SUBSCRIPTION_PRICE)}},
        upsert=True
    )
    if result.upserted_id:
        logger.info(f"  ✅ Global price seeded: {settings.DEFAULT_SUBSCRIPTION_PRICE}")
    else:
        logger.info("  ℹ️  Global price already set")


async def align_tenant_counter():
    """Tenants imported by hand would otherwise collide with new ids."""
    highest = await get_tenants_collection().find_one({}, {"id": 1}, sort=[("id", DESCENDING)])
    highest_id = int(highest["id"]) if highest else 0

    await get_counters_collection().update_one(
        {"_id": TENANT_SEQUENCE},
        {"$max": {"seq": highest_id}},
        upsert=True
    )
    logger.info(f"  ✅ Tenant id counter >= {highest_id}")


async def main():
    """Main initialization"""
    logger.info("=" * 60)
    logger.info("  BotFleet Database Setup")
    logger.info("=" * 60 + "\n")

    await connect_to_mongo()
    try:
        await create_indexes()
        await seed_global_price()
        await align_tenant_counter()

        stats = {
            "tenants": await get_tenants_collection().count_documents({}),
            "active": await get_tenants_collection().count_documents({"is_active": True}),
            "sessions": await get_sessions_collection().count_documents({}),
        }
        logger.info(f"\n📊 Current documents:")
        logger.info(f"  Tenants: {stats['tenants']} ({stats['active']} active)")
        logger.info(f"  Sessions: {stats['sessions']}")

        logger.info("\n✅ Database initialization complete!")
    except Exception as e:
        logger.error(f"\n❌ Error: {e}")
        raise
    finally:
        await close_mongo_connection()

    logger.info("\n" + "=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
