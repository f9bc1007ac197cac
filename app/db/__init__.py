"""
Database module - MongoDB connection.
"""
from app.db.mongodb import get_mongo_db, test_mongo_connection, init_mongo_indexes

__all__ = [
    "get_mongo_db",
    "test_mongo_connection",
    "init_mongo_indexes"
]
