# scripts/create_indexes.py
"""
Create MongoDB indexes for the kiosk registrations and submissions collections.

- created_at: listing registrations in insertion order
- rut: staff lookups of a visitor's registrations
- idempotency_key: unique, so one kiosk draft stores at most one registration
- kiosk submissions updated_at: TTL, entries expire after a day

The script is idempotent - safe to run multiple times.

Usage:
    python scripts/create_indexes.py

Requires:
    MONGO_URI, MONGO_DB environment variables (loaded from .env file)
    REGISTRATIONS_COLLECTION (optional, defaults to "registrations")
    KIOSK_SUBMISSIONS_COLLECTION (optional, defaults to "kiosk_submissions")
"""

import os
from pymongo import MongoClient, ASCENDING
from pymongo.database import Database
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

def get_db() -> Database:
    mongo_uri = os.environ.get('MONGO_URI')
    mongo_db = os.environ.get('MONGO_DB')
    if not mongo_uri or not mongo_db:
        raise ValueError("MONGO_URI and MONGO_DB environment variables must be set")
    client = MongoClient(mongo_uri)
    return client[mongo_db]

def create_indexes():
    """Create the registrations and kiosk submissions indexes."""
    db = get_db()
    collection_name = os.environ.get('REGISTRATIONS_COLLECTION') or 'registrations'
    registrations = db[collection_name]

    print(f"[INDEXES] {collection_name} collection")
    registrations.create_index([("created_at", ASCENDING)], name="idx_created_at")
    print("  ✓ Created index on created_at")

    registrations.create_index([("rut", ASCENDING)], name="idx_rut")
    print("  ✓ Created index on rut")

    registrations.create_index(
        [("idempotency_key", ASCENDING)],
        name="uniq_idempotency_key",
        unique=True,
        partialFilterExpression={"idempotency_key": {"$type": "string"}},
    )
    print("  ✓ Created unique index on idempotency_key")

    submissions_name = os.environ.get('KIOSK_SUBMISSIONS_COLLECTION') or 'kiosk_submissions'
    print(f"[INDEXES] {submissions_name} collection")
    db[submissions_name].create_index(
        [("updated_at", ASCENDING)], name="ttl_updated_at", expireAfterSeconds=24 * 60 * 60
    )
    print("  ✓ Created TTL index on updated_at")

    print("[SUCCESS] All indexes created successfully!")

if __name__ == "__main__":
    create_indexes()
