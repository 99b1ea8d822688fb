"""
healthsync/db/mongo.py

Purpose: MongoDB lifecycle for the mongo session storage backend

- One Motor client per process, opened at startup and closed at shutdown
- Connect retries with exponential backoff
- Ping-based health check
- Access to the client_storage collection
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo.errors import ConnectionFailure, ServerSelectionTimeoutError

from healthsync.core.config import settings
from healthsync.core.logging import get_logger

logger = get_logger(__name__)

STORAGE_COLLECTION = "client_storage"
CONNECT_ATTEMPTS = 3
FIRST_RETRY_DELAY_SECONDS = 2.0


@dataclass
class _MongoHandle:
    client: AsyncIOMotorClient
    database: AsyncIOMotorDatabase


_handle: Optional[_MongoHandle] = None


def _open_client() -> AsyncIOMotorClient:
    return AsyncIOMotorClient(
        settings.MONGODB_URL,
        maxPoolSize=20,
        minPoolSize=1,
        serverSelectionTimeoutMS=5000,
        connectTimeoutMS=10000,
        retryWrites=True,
        retryReads=True,
    )


async def connect_to_mongo(
    attempts: int = CONNECT_ATTEMPTS,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
):
    """
    Opens the shared client and pings it.

    Raises:
        ConnectionError: every attempt failed
    """
    global _handle

    if _handle is not None:
        logger.warning("MongoDB already connected, reusing the existing client")
        return

    delay = FIRST_RETRY_DELAY_SECONDS
    for attempt in range(1, attempts + 1):
        client = _open_client()
        try:
            await client.admin.command("ping")
        except (ConnectionFailure, ServerSelectionTimeoutError) as e:
            client.close()
            logger.error(f"MongoDB ping failed (attempt {attempt}/{attempts}): {e}")
            if attempt == attempts:
                logger.critical("Giving up on MongoDB")
                raise ConnectionError("Could not establish MongoDB connection") from e
            await sleep(delay)
            delay *= 2
            continue

        _handle = _MongoHandle(client=client, database=client[settings.MONGODB_DB_NAME])
        logger.info(f"Connected to MongoDB database '{settings.MONGODB_DB_NAME}'")
        return


async def close_mongo_connection():
    global _handle

    if _handle is None:
        return
    _handle.client.close()
    _handle = None
    logger.info("MongoDB connection closed")


async def check_database_health() -> bool:
    """
    Returns:
        True if the shared client answers a ping
    """
    if _handle is None:
        logger.error("MongoDB health check requested before connect")
        return False

    try:
        await _handle.client.admin.command("ping")
    except (ConnectionFailure, ServerSelectionTimeoutError) as e:
        logger.error(f"MongoDB health check failed: {e}")
        return False
    return True


def get_storage_collection() -> AsyncIOMotorCollection:
    """
    Documents: {namespace: client id, key: user | admin | receptionist | token, value: str}
    """
    if _handle is None:
        raise RuntimeError("MongoDB is not connected; call connect_to_mongo() during startup")
    return _handle.database[STORAGE_COLLECTION]
