"""Service layer for kiosk registrations.

Stores already-validated payloads (see `schema.validate_create`), assigning
the identifier and creation timestamp exactly once. Registrations are never
updated or deleted. A caller-supplied idempotency key (the kiosk draft token,
or the `Idempotency-Key` header on the API) is stored under a unique index so
repeated submissions of one draft resolve to the same record.
"""
from __future__ import annotations

import logging
import re
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pymongo.errors import DuplicateKeyError, PyMongoError

from backend.app.db import DatabaseError
from backend.app.repositories import registrations_repo

logger = logging.getLogger(__name__)

# wire name -> stored name
FIELD_MAP = {
    'nombre': 'nombre',
    'rut': 'rut',
    'rutEmpresa': 'rut_empresa',
    'telefono': 'telefono',
    'email': 'email',
    'nivelVentas': 'nivel_ventas',
    'servicioMentorias': 'servicio_mentorias',
    'servicioJugarActivacion': 'servicio_jugar_activacion',
    'categoriaMentoria': 'categoria_mentoria',
}

# Kiosk draft tokens are uuid4 hex strings; API callers may send any key of this shape
IDEMPOTENCY_KEY_RE = re.compile(r'[A-Za-z0-9_-]{8,128}')


class RegistrationServiceError(Exception):
    def __init__(self, code: str, message: str, status: int = 400):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status = status


class RegistrationNotFoundError(RegistrationServiceError):
    def __init__(self, registration_id: str):
        super().__init__('not_found', f'Registration with id {registration_id} not found', 404)


class PersistenceError(RegistrationServiceError):
    def __init__(self, message: str):
        super().__init__('internal_server_error', message, 500)


class InvalidIdempotencyKeyError(RegistrationServiceError):
    def __init__(self):
        super().__init__(
            'invalid_idempotency_key',
            'Idempotency-Key must be 8 to 128 letters, digits, "-" or "_"',
            400,
        )


def normalize_idempotency_key(raw: Optional[str]) -> Optional[str]:
    """Return the stripped key, None when absent or blank.

    Raises:
        InvalidIdempotencyKeyError: the key has the wrong length or characters
    """
    if raw is None or not raw.strip():
        return None
    key = raw.strip()
    if not IDEMPOTENCY_KEY_RE.fullmatch(key):
        raise InvalidIdempotencyKeyError()
    return key


def _isoformat(value: Any) -> Optional[str]:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()
    return value


def serialize_registration(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Map a stored document to its camelCase wire form."""
    out: Dict[str, Any] = {'id': str(doc.get('_id'))}
    for wire_name, stored_name in FIELD_MAP.items():
        out[wire_name] = doc.get(stored_name)
    out['createdAt'] = _isoformat(doc.get('created_at'))
    return out


def create_registration(validated: Dict[str, Any], idempotency_key: Optional[str] = None) -> Dict[str, Any]:
    """Persist a validated registration and return the stored record.

    A single insert is attempted; storage failures are not retried. When an
    idempotency key is given and a registration with that key already
    exists, the existing record is returned instead of a second one.

    Raises:
        PersistenceError: when the database is unavailable or rejects the insert
    """
    document: Dict[str, Any] = {'_id': str(uuid.uuid4())}
    for wire_name, stored_name in FIELD_MAP.items():
        document[stored_name] = validated.get(wire_name)
    document['created_at'] = datetime.now(timezone.utc)
    if idempotency_key:
        document['idempotency_key'] = idempotency_key

    try:
        registrations_repo.insert_registration(document)
    except DuplicateKeyError as e:
        if not idempotency_key:
            logger.error(f"Failed to store registration: {e}")
            raise PersistenceError(f'Failed to store registration: {e}')
        return _existing_for_key(idempotency_key)
    except (PyMongoError, DatabaseError) as e:
        logger.error(f"Failed to store registration: {e}")
        raise PersistenceError(f'Failed to store registration: {e}')

    logger.info("Stored registration %s (nivel_ventas=%s, categoria=%s)",
                document['_id'], document['nivel_ventas'], document['categoria_mentoria'])
    return serialize_registration(document)


def _existing_for_key(idempotency_key: str) -> Dict[str, Any]:
    try:
        doc = registrations_repo.find_by_idempotency_key(idempotency_key)
    except (PyMongoError, DatabaseError) as e:
        raise PersistenceError(f'Failed to fetch registration: {e}')
    if not doc:
        raise PersistenceError(f'Registration for key {idempotency_key} collided but was not found')
    logger.info("Registration %s already stored for key %s", doc.get('_id'), idempotency_key)
    return serialize_registration(doc)


def get_registration(registration_id: str) -> Dict[str, Any]:
    try:
        doc = registrations_repo.find_by_id(registration_id)
    except (PyMongoError, DatabaseError) as e:
        raise PersistenceError(f'Failed to fetch registration: {e}')
    if not doc:
        raise RegistrationNotFoundError(registration_id)
    return serialize_registration(doc)


def list_registrations() -> List[Dict[str, Any]]:
    """Every stored registration, oldest first. No pagination."""
    try:
        docs = registrations_repo.find_all()
    except (PyMongoError, DatabaseError) as e:
        raise PersistenceError(f'Failed to list registrations: {e}')
    return [serialize_registration(doc) for doc in docs]
