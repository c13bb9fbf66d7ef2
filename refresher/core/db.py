"""
MongoDB connection for the account directory.

Provides the async Motor client and collection references used to list the
accounts whose sessions the worker keeps alive.
"""

from motor.motor_asyncio import AsyncIOMotorClient
from typing import Optional
import os

from refresher.core.errors import ConfigError
from refresher.utils.logger import get_logger

log = get_logger(__name__)

_client: Optional[AsyncIOMotorClient] = None
_db = None
_db_name: Optional[str] = None


def get_mongo_uri() -> str:
    """Get MongoDB URI from environment"""
    uri = os.getenv("MONGO_URI") or os.getenv("MONGODB_URI") or os.getenv("MONGODB_URL")
    if not uri:
        log.error("MongoDB environment variable (MONGO_URI, MONGODB_URI, or MONGODB_URL) not set!")
        raise ConfigError("MongoDB connection string is required in environment variables", key="MONGO_URI")
    return uri


def get_client(uri: Optional[str] = None) -> AsyncIOMotorClient:
    """Get MongoDB client (singleton)"""
    global _client
    if _client is None:
        _client = AsyncIOMotorClient(uri or get_mongo_uri())
        log.info("MongoDB client initialized")
    return _client


def get_db(name: str, uri: Optional[str] = None):
    """Get account database"""
    global _db, _db_name
    if _db is None or _db_name != name:
        _db = get_client(uri)[name]
        _db_name = name
        log.info(f"Connected to {name} database")
    return _db


def get_accounts_col(collection: str, *, database: str, uri: Optional[str] = None):
    """Managed accounts collection"""
    return get_db(database, uri)[collection]


def close_client() -> None:
    global _client, _db, _db_name
    if _client is not None:
        _client.close()
    _client = None
    _db = None
    _db_name = None
