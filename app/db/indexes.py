"""
app/db/indexes.py

Purpose: Database index management

- Creates unique and performance indexes
- Enforces the composite (tenant_id, chat_id) session key
- Backs the payment event idempotency key
"""

from pymongo import ASCENDING

from app.db.mongo import (
    get_tenants_collection,
    get_sessions_collection,
    get_system_config_collection,
    get_payment_events_collection,
)
from app.core.logging import get_logger

logger = get_logger(__name__)


async def create_indexes():
    """
    Creates all necessary database indexes.
    This function is idempotent - safe to run multiple times.
    """
    try:
        tenants = get_tenants_collection()
        sessions = get_sessions_collection()
        system_config = get_system_config_collection()
        payment_events = get_payment_events_collection()

        logger.info("Creating database indexes...")

        # ==============================================
        # TENANTS
        # ==============================================

        await tenants.create_index("id", unique=True, name="tenant_id_unique")
        logger.debug("Created unique index on tenants.id")

        # load_all() filters on is_active
        await tenants.create_index("is_active", name="tenant_active_idx")
        logger.debug("Created index on tenants.is_active")

        # ==============================================
        # BOT SESSIONS
        # ==============================================

        await sessions.create_index(
            [("tenant_id", ASCENDING), ("chat_id", ASCENDING)],
            unique=True,
            name="session_tenant_chat_unique"
        )
        logger.debug("Created unique index on bot_sessions.tenant_id + chat_id")

        await sessions.create_index("updated_at", name="session_updated_idx")
        logger.debug("Created index on bot_sessions.updated_at")

        # ==============================================
        # SYSTEM CONFIG / PAYMENT EVENTS
        # ==============================================

        await system_config.create_index("key", unique=True, name="config_key_unique")
        logger.debug("Created unique index on system_config.key")

        await payment_events.create_index("event_id", unique=True, name="payment_event_unique")
        logger.debug("Created unique index on payment_events.event_id")

        logger.info("✅ All database indexes created successfully")

        tenant_indexes = await tenants.index_information()
        session_indexes = await sessions.index_information()

        logger.info(
            f"Index summary: Tenants={len(tenant_indexes)}, "
            f"Sessions={len(session_indexes)}"
        )

    except Exception as e:
        logger.error(f"Failed to create indexes: {str(e)}", exc_info=True)
        raise


if __name__ == "__main__":
    import asyncio
    from app.db.mongo import connect_to_mongo, close_mongo_connection

    async def main():
        await connect_to_mongo()
        await create_indexes()
        await close_mongo_connection()

    asyncio.run(main())
