"""
MongoDB Connection Utility

MongoDB stores:
- Administrator (teacher) accounts
- Student and parent accounts
- Batches, with their roster and embedded announcements

Uniqueness of emails and batch codes is enforced by the unique indexes
created in init_mongo_indexes(); application-level checks are only a fast path.
"""
import logging

from pymongo import ASCENDING, MongoClient
from pymongo.database import Database
from pymongo.collection import Collection
from app.core.config import get_settings

logger = logging.getLogger(__name__)

# Global client (connection pooling handled internally by pymongo)
_client: MongoClient = None
_db: Database = None


def get_mongo_client() -> MongoClient:
    """Get or create MongoDB client (singleton pattern)"""
    global _client
    if _client is None:
        _client = MongoClient(get_settings().mongodb_uri)
    return _client


def get_mongo_db() -> Database:
    """
    Get the application database.
    Also used as a FastAPI dependency, so tests can override it.
    """
    global _db
    if _db is None:
        client = get_mongo_client()
        _db = client[get_settings().mongodb_db]
    return _db


def get_collection(name: str, db: Database = None) -> Collection:
    """
    Get a specific collection.
    Collections we'll use:
    - admin_users: teacher/administrator accounts
    - users: student and parent accounts
    - batches: batches with students and announcements
    """
    db = db if db is not None else get_mongo_db()
    return db[name]


def test_mongo_connection() -> bool:
    """
    Test if MongoDB is reachable.
    Returns True if connection successful, False otherwise.
    """
    try:
        client = get_mongo_client()
        # ping command checks connection
        client.admin.command('ping')
        return True
    except Exception as e:
        logger.warning("mongo_ping_failed error=%s", e)
        return False


def close_mongo_client() -> None:
    global _client, _db
    if _client is not None:
        _client.close()
    _client = None
    _db = None


# Collection name constants (avoid typos)
COLLECTIONS = {
    "admin_users": "admin_users",
    "users": "users",
    "batches": "batches"
}


def init_mongo_indexes(db: Database = None):
    """
    Create indexes. Call this once during app startup.
    The unique ones are what actually serialize concurrent registrations
    and batch code reservations.
    """
    db = db if db is not None else get_mongo_db()

    db[COLLECTIONS["admin_users"]].create_index([("email", ASCENDING)], unique=True)

    db[COLLECTIONS["users"]].create_index([("email", ASCENDING)], unique=True)
    # Parent -> students lookups (weak relation, matched by value)
    db[COLLECTIONS["users"]].create_index("parentEmail")

    db[COLLECTIONS["batches"]].create_index([("batch_code", ASCENDING)], unique=True)
    # Multikey index for "batches containing student X"
    db[COLLECTIONS["batches"]].create_index("students")

    logger.info("mongo_indexes_ready db=%s", db.name)
