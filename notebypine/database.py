"""
Database connection module for the PocketBase backend.

Provides connect/disconnect lifecycle and get_database() accessor.
All routers, MCP handlers and knowledge operations use get_database() to
reach the shared PocketBaseClient.

Typical usage:
    from notebypine.database import get_database
    pb = get_database()
    incident = await pb.get_record("incidents", incident_id)
"""

import logging
from typing import Optional

from notebypine.config import get_settings
from notebypine.pocketbase import PocketBaseClient
from notebypine.utils.errors import DatabaseError

logger = logging.getLogger(__name__)

# ============================================================
# Global database instance
# ============================================================
_database: Optional[PocketBaseClient] = None


async def connect_db(client: Optional[PocketBaseClient] = None) -> PocketBaseClient:
    """Initialize the PocketBase client and authenticate.

    Called once during application startup (main.py lifespan and the MCP
    server's main()). Authentication failures are logged, not raised: the
    client retries lazily on the next request so the process can start
    before PocketBase does.

    Args:
        client: Pre-built client (tests inject one backed by a mock transport).
    """
    global _database

    if client is None:
        settings = get_settings()
        logger.info(f"Connecting to PocketBase: {settings.pocketbase_url}")
        client = PocketBaseClient(
            settings.pocketbase_url,
            settings.pocketbase_admin_email,
            settings.pocketbase_admin_password,
            timeout=settings.pocketbase_timeout,
        )

    _database = client

    try:
        await client.authenticate()
        logger.info("PocketBase connection established")
    except DatabaseError as e:
        logger.error(f"PocketBase not ready: {e.message}")

    return client


async def close_db() -> None:
    """Close the PocketBase client gracefully.

    Called during application shutdown.
    """
    global _database
    if _database:
        await _database.close()
        _database = None
        logger.info("Database connection closed")


def get_database() -> PocketBaseClient:
    """Get the PocketBase client.

    Raises:
        DatabaseError: If connect_db() hasn't been called yet.
    """
    if _database is None:
        raise DatabaseError("Database not initialized. Call connect_db() first.")
    return _database
