"""Database connection and utility functions for MongoDB.

This module provides a centralized MongoDB client with connection management,
error handling, and the index setup for the kiosk registration store.
"""

from __future__ import annotations

import logging
from typing import Optional
from pymongo import ASCENDING, MongoClient
from pymongo.errors import ConnectionFailure, PyMongoError, ServerSelectionTimeoutError
from flask import current_app, g

logger = logging.getLogger(__name__)

SUBMISSION_ENTRY_TTL_SECONDS = 24 * 60 * 60


class DatabaseError(Exception):
    """Custom exception for database-related errors."""
    pass


def get_mongo_client() -> MongoClient:
    """Get or create MongoDB client instance.

    Returns:
        MongoClient: Configured MongoDB client instance

    Raises:
        DatabaseError: If connection cannot be established
    """
    if 'mongo_client' not in g:
        try:
            mongo_uri = current_app.config['MONGO_URI']
            g.mongo_client = MongoClient(
                mongo_uri,
                serverSelectionTimeoutMS=5000,  # 5 second timeout
                connectTimeoutMS=10000,         # 10 second connection timeout
                socketTimeoutMS=20000,          # 20 second socket timeout
                maxPoolSize=10,
                tz_aware=True,
                retryWrites=False               # one insert attempt per request
            )

            # Test the connection
            g.mongo_client.admin.command('ping')
            logger.info("MongoDB connection established successfully")

        except (ConnectionFailure, ServerSelectionTimeoutError) as e:
            g.pop('mongo_client', None)
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise DatabaseError(f"Database connection failed: {e}")
        except PyMongoError as e:
            g.pop('mongo_client', None)
            logger.error(f"Unexpected error connecting to MongoDB: {e}")
            raise DatabaseError(f"Unexpected database error: {e}")

    return g.mongo_client


def get_db():
    """Get database instance for the current application.

    Returns:
        Database: MongoDB database instance

    Raises:
        DatabaseError: If database connection fails
    """
    client = get_mongo_client()
    db_name = current_app.config['MONGO_DB']
    return client[db_name]


def close_db(error: Optional[BaseException] = None) -> None:
    """Close database connection if it exists.

    Args:
        error: Optional exception that caused the close (for logging)
    """
    mongo_client = g.pop('mongo_client', None)

    if mongo_client is not None:
        mongo_client.close()
        if error:
            logger.warning(f"Database connection closed due to error: {error}")
        else:
            logger.debug("Database connection closed successfully")


def init_app(app) -> None:
    """Initialize database connection with Flask app.

    Args:
        app: Flask application instance
    """
    app.teardown_appcontext(close_db)

    if not app.config.get('ENSURE_INDEXES_ON_STARTUP', True):
        return

    # Don't raise here - the kiosk screens must come up even if the
    # database is temporarily unavailable
    with app.app_context():
        try:
            ensure_indexes()
        except DatabaseError as e:
            logger.error(f"Database initialization failed: {e}")


def health_check() -> dict:
    """Perform database health check.

    Returns:
        dict: Health check results with status and details
    """
    try:
        client = get_mongo_client()
        client.admin.command('ping')
        server_info = client.server_info()
        collection = current_app.config['REGISTRATIONS_COLLECTION']

        return {
            'status': 'healthy',
            'database': current_app.config['MONGO_DB'],
            'server_version': server_info.get('version', 'unknown'),
            'registrations': get_db()[collection].estimated_document_count(),
            'message': 'Database connection is operational'
        }

    except DatabaseError as e:
        return {
            'status': 'unhealthy',
            'error': str(e),
            'message': 'Database connection failed'
        }
    except PyMongoError as e:
        logger.error(f"Health check failed with unexpected error: {e}")
        return {
            'status': 'unhealthy',
            'error': f"Unexpected error: {str(e)}",
            'message': 'Database health check failed'
        }


def ensure_indexes() -> bool:
    """Ensure the registrations and kiosk submissions indexes exist.

    The idempotency key index is unique over documents that carry a key, so
    one draft maps to at most one registration. Kiosk submission entries
    expire a day after their last update.

    Returns:
        bool: True if all indexes were created/verified successfully
    """
    try:
        db = get_db()
        registrations = db[current_app.config['REGISTRATIONS_COLLECTION']]
        registrations.create_index([('created_at', ASCENDING)], name='idx_created_at')
        registrations.create_index([('rut', ASCENDING)], name='idx_rut')
        registrations.create_index(
            [('idempotency_key', ASCENDING)],
            name='uniq_idempotency_key',
            unique=True,
            partialFilterExpression={'idempotency_key': {'$type': 'string'}},
        )

        submissions = db[current_app.config['KIOSK_SUBMISSIONS_COLLECTION']]
        submissions.create_index(
            [('updated_at', ASCENDING)],
            name='ttl_updated_at',
            expireAfterSeconds=SUBMISSION_ENTRY_TTL_SECONDS,
        )
        logger.info("Database indexes created/verified successfully")
        return True
    except PyMongoError as e:
        logger.error(f"Failed to create indexes: {e}")
        return False
