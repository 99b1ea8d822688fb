"""
healthsync/db/indexes.py

Purpose: Database index management

- Unique (namespace, key) index so each client slot exists once
- Idempotent, safe to run on every startup
"""

from healthsync.db.mongo import get_storage_collection
from healthsync.core.logging import get_logger

logger = get_logger(__name__)


async def create_indexes():
    """
    Creates the client_storage indexes.
    """
    storage = get_storage_collection()

    logger.info("Creating database indexes...")

    await storage.create_index(
        [("namespace", 1), ("key", 1)],
        unique=True,
        name="namespace_key_unique"
    )
    logger.debug("Created unique index on client_storage.namespace + key")

    # Lookups for a whole client (logout, diagnostics)
    await storage.create_index("namespace", name="namespace_idx")
    logger.debug("Created index on client_storage.namespace")

    logger.info("Database indexes created")
