"""Repository pattern for database operations.

This module provides repository classes for each collection, abstracting
database operations and providing a clean interface for the service layer.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from flask import current_app
from pymongo import ASCENDING
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError, PyMongoError

from . import db

logger = logging.getLogger(__name__)


class BaseRepository:
    """Base repository class with common database operations."""

    def __init__(self, collection_name: Optional[str] = None, config_key: Optional[str] = None):
        """Initialize repository with collection name.

        Args:
            collection_name: Name of the MongoDB collection
            config_key: App config key holding the collection name, used
                instead of `collection_name` when set
        """
        self._collection_name = collection_name
        self._config_key = config_key

    @property
    def collection_name(self) -> str:
        if self._config_key:
            return current_app.config.get(self._config_key) or self._collection_name
        return self._collection_name

    @property
    def collection(self) -> Collection:
        database = db.get_db()
        return database[self.collection_name]

    def find_one(self, filter_dict: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        try:
            return self.collection.find_one(filter_dict)
        except PyMongoError as e:
            logger.error(f"Error finding document in {self.collection_name}: {e}")
            raise

    def find_many(self, filter_dict: Dict[str, Any], limit: Optional[int] = None, sort: Optional[List[tuple]] = None) -> List[Dict[str, Any]]:
        try:
            cursor = self.collection.find(filter_dict)
            if sort:
                cursor = cursor.sort(sort)
            if limit:
                cursor = cursor.limit(limit)
            return list(cursor)
        except PyMongoError as e:
            logger.error(f"Error finding documents in {self.collection_name}: {e}")
            raise

    def insert_one(self, document: Dict[str, Any]) -> Any:
        try:
            result = self.collection.insert_one(document)
            return result.inserted_id
        except PyMongoError as e:
            logger.error(f"Error inserting document in {self.collection_name}: {e}")
            raise

    def update_one(self, filter_dict: Dict[str, Any], update_dict: Dict[str, Any]) -> bool:
        try:
            result = self.collection.update_one(filter_dict, update_dict)
            return result.modified_count > 0
        except PyMongoError as e:
            logger.error(f"Error updating document in {self.collection_name}: {e}")
            raise

    def count_documents(self, filter_dict: Dict[str, Any]) -> int:
        try:
            return self.collection.count_documents(filter_dict)
        except PyMongoError as e:
            logger.error(f"Error counting documents in {self.collection_name}: {e}")
            raise


class RegistrationsRepository(BaseRepository):
    """Kiosk registrations; documents are insert-only."""

    def __init__(self):
        super().__init__('registrations', config_key='REGISTRATIONS_COLLECTION')

    def insert_registration(self, document: Dict[str, Any]) -> Any:
        """Insert one registration.

        Raises:
            DuplicateKeyError: the document's idempotency key is already stored
        """
        try:
            return self.collection.insert_one(document).inserted_id
        except DuplicateKeyError:
            raise
        except PyMongoError as e:
            logger.error(f"Error inserting document in {self.collection_name}: {e}")
            raise

    def find_by_id(self, registration_id: str) -> Optional[Dict[str, Any]]:
        return self.find_one({'_id': registration_id})

    def find_by_idempotency_key(self, key: str) -> Optional[Dict[str, Any]]:
        return self.find_one({'idempotency_key': key})

    def find_all(self) -> List[Dict[str, Any]]:
        return self.find_many({}, sort=[('created_at', ASCENDING)])


class KioskSubmissionsRepository(BaseRepository):
    """One document per kiosk draft token, tracking its submission.

    The `_id` is the draft token, so claiming a token is a plain insert that
    only one request can win.
    """

    def __init__(self):
        super().__init__('kiosk_submissions', config_key='KIOSK_SUBMISSIONS_COLLECTION')

    def claim(self, token: str, now: datetime) -> bool:
        """Insert a `submitting` entry; False when the token is already claimed."""
        try:
            self.collection.insert_one({
                '_id': token,
                'state': 'submitting',
                'claimed_at': now,
                'updated_at': now,
            })
            return True
        except DuplicateKeyError:
            return False
        except PyMongoError as e:
            logger.error(f"Error claiming submission {token}: {e}")
            raise

    def find_by_token(self, token: str) -> Optional[Dict[str, Any]]:
        return self.find_one({'_id': token})

    def take_over_stale(self, token: str, stale_before: datetime, now: datetime) -> bool:
        """Re-claim a `submitting` entry whose owner stopped before finishing."""
        return self.update_one(
            {'_id': token, 'state': 'submitting', 'claimed_at': {'$lt': stale_before}},
            {'$set': {'claimed_at': now, 'updated_at': now}},
        )

    def record_outcome(self, token: str, state: str, now: datetime,
                       record: Optional[Dict[str, Any]] = None, error: Optional[str] = None) -> bool:
        return self.update_one(
            {'_id': token},
            {'$set': {'state': state, 'record': record, 'error': error, 'updated_at': now}},
        )


registrations_repo = RegistrationsRepository()
kiosk_submissions_repo = KioskSubmissionsRepository()
