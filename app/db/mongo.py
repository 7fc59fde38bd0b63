"""
app/db/mongo.py

Purpose: MongoDB connection setup

- Initializes Motor client with connection pooling
- Collections: tenants, bot_sessions, system_config, counters, payment_events
- Health checks and retry logic
- Proper connection lifecycle management
"""

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import ConnectionFailure, ServerSelectionTimeoutError
from typing import Optional
import asyncio
from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)

TENANTS = "tenants"
BOT_SESSIONS = "bot_sessions"
SYSTEM_CONFIG = "system_config"
COUNTERS = "counters"
PAYMENT_EVENTS = "payment_events"

# Global MongoDB client
_client: Optional[AsyncIOMotorClient] = None
_database: Optional[AsyncIOMotorDatabase] = None


async def connect_to_mongo():
    """
    Establishes connection to MongoDB with retry logic.
    Called during application startup.
    """
    global _client, _database

    if _client is not None:
        logger.warning("MongoDB client already initialized")
        return

    max_retries = 3
    retry_delay = 2

    for attempt in range(1, max_retries + 1):
        try:
            logger.info(
                f"Attempting to connect to MongoDB (attempt {attempt}/{max_retries})"
            )

            _client = AsyncIOMotorClient(
                settings.MONGODB_URL,
                maxPoolSize=50,
                minPoolSize=5,
                serverSelectionTimeoutMS=5000,
                connectTimeoutMS=10000,
                retryWrites=True,
                retryReads=True,
                tz_aware=True,
            )

            _database = _client[settings.MONGODB_DB_NAME]

            await _client.admin.command("ping")

            logger.info(
                f"✅ Successfully connected to MongoDB: {settings.MONGODB_DB_NAME}"
            )
            return

        except (ConnectionFailure, ServerSelectionTimeoutError) as e:
            logger.error(
                f"Failed to connect to MongoDB (attempt {attempt}/{max_retries}): {e}"
            )
            _client = None
            _database = None

            if attempt < max_retries:
                logger.info(f"Retrying in {retry_delay} seconds...")
                await asyncio.sleep(retry_delay)
                retry_delay *= 2  # Exponential backoff
            else:
                logger.critical("Failed to connect to MongoDB after all retries")
                raise ConnectionError("Could not establish MongoDB connection") from e


async def close_mongo_connection():
    """
    Closes the MongoDB connection.
    Called during application shutdown.
    """
    global _client, _database

    if _client:
        logger.info("Closing MongoDB connection")
        _client.close()
        _client = None
        _database = None
        logger.info("MongoDB connection closed")


async def check_database_health() -> bool:
    """
    Checks if the database connection is healthy.

    Returns:
        True if connection is healthy, False otherwise
    """
    try:
        if _client is None:
            logger.error("MongoDB client not initialized")
            return False

        await _client.admin.command("ping")
        return True

    except Exception as e:
        logger.error(f"Database health check failed: {str(e)}")
        return False


def get_database() -> AsyncIOMotorDatabase:
    """
    Returns the MongoDB database instance.

    Raises:
        RuntimeError: If database is not initialized
    """
    if _database is None:
        raise RuntimeError(
            "Database not initialized. Call connect_to_mongo() during startup."
        )
    return _database


def get_tenants_collection():
    """
    Returns the tenants collection.

    Fields:
    - id: int (primary key, allocated from counters)
    - name, telegram_token, owner_chat_id
    - is_active: bool, expiration_date: datetime | None
    - max_users: int, subscription_price: float | None
    - openai_api_key, openai_model, system_prompt
    - syncpay_client_id, syncpay_client_secret
    - created_at: datetime
    """
    return get_database()[TENANTS]


def get_sessions_collection():
    """
    Returns the bot_sessions collection.

    Fields:
    - tenant_id: int, chat_id: str (composite key)
    - data: dict (opaque session blob)
    - updated_at: datetime
    """
    return get_database()[BOT_SESSIONS]


def get_system_config_collection():
    """Returns the system_config collection ({key, value})."""
    return get_database()[SYSTEM_CONFIG]


def get_counters_collection():
    """Returns the counters collection used for numeric tenant ids."""
    return get_database()[COUNTERS]


def get_payment_events_collection():
    """Returns the payment_events collection (webhook idempotency keys)."""
    return get_database()[PAYMENT_EVENTS]
