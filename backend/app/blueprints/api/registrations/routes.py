"""API endpoints for kiosk registrations.

Routes:
- POST /api/registrations (optional `Idempotency-Key` header; a repeated key
  answers with the record first stored for it)
- GET /api/registrations
- GET /api/registrations/<id>
"""
from __future__ import annotations

import logging
from flask import Blueprint, current_app, jsonify, request

from backend.app.extensions import limiter
from backend.app.services.registration import registration_service as svc
from backend.app.services.registration.schema import SchemaValidationError, validate_create

logger = logging.getLogger(__name__)
registrations_bp = Blueprint('registrations', __name__)


def _registration_rate_limit() -> str:
    return current_app.config.get('REGISTRATION_RATE_LIMIT', '30 per minute')


@registrations_bp.route('', methods=['POST'], strict_slashes=False)
@limiter.limit(_registration_rate_limit)
def create_registration():
    payload = request.get_json(silent=True)
    try:
        validated = validate_create(payload)
    except SchemaValidationError as e:
        logger.info("Rejected registration with %d issue(s)", len(e.issues))
        return jsonify({
            'error': 'validation_failed',
            'message': e.message,
            'details': e.to_details(),
        }), 400

    try:
        idempotency_key = svc.normalize_idempotency_key(request.headers.get('Idempotency-Key'))
    except svc.InvalidIdempotencyKeyError as e:
        return jsonify({'error': e.code, 'message': e.message}), e.status

    try:
        registration = svc.create_registration(validated, idempotency_key=idempotency_key)
        return jsonify(registration), 201
    except svc.RegistrationServiceError as e:
        logger.exception('Error creating registration')
        return jsonify({'error': e.code, 'message': e.message}), e.status


@registrations_bp.route('', methods=['GET'], strict_slashes=False)
def list_registrations():
    try:
        return jsonify(svc.list_registrations()), 200
    except svc.RegistrationServiceError as e:
        logger.exception('Error fetching registrations')
        return jsonify({'error': e.code, 'message': e.message}), e.status


@registrations_bp.route('/<registration_id>', methods=['GET'])
def get_registration(registration_id: str):
    try:
        return jsonify(svc.get_registration(registration_id)), 200
    except svc.RegistrationNotFoundError as e:
        return jsonify({'error': e.code, 'message': e.message}), 404
    except svc.RegistrationServiceError as e:
        logger.exception('Error fetching registration %s', registration_id)
        return jsonify({'error': e.code, 'message': e.message}), e.status


@registrations_bp.errorhandler(429)
def ratelimit_handler(e):
    return jsonify({
        'error': 'rate_limited',
        'message': 'Demasiadas solicitudes, por favor espera un momento',
    }), 429
