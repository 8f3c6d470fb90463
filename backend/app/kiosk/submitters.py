"""Ways the confirmation screen can create a registration.

A submitter exposes `create_registration(payload, idempotency_key=None) -> dict`
and raises `SubmissionError` on any failure. The wizard passes the draft token
as the idempotency key, so a draft submitted twice yields one record.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from backend.app.services.registration import registration_service
from backend.app.services.registration.schema import SchemaValidationError, validate_create

logger = logging.getLogger(__name__)


class SubmissionError(Exception):
    """The registration could not be created."""

    def __init__(self, message: str, details: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or []


class RegistrationRejectedError(SubmissionError):
    """The server refused the payload (schema validation failure)."""


class ServiceSubmitter:
    """Creates registrations in-process through the service layer.

    Needs an application context, which the kiosk screens always have.
    """

    def create_registration(self, payload: Dict[str, Any],
                            idempotency_key: Optional[str] = None) -> Dict[str, Any]:
        try:
            validated = validate_create(payload)
        except SchemaValidationError as e:
            raise RegistrationRejectedError(e.message, e.to_details())
        try:
            return registration_service.create_registration(validated, idempotency_key=idempotency_key)
        except registration_service.RegistrationServiceError as e:
            raise SubmissionError(e.message)


def build_submitter(config: Dict[str, Any]):
    """HTTP client when KIOSK_API_BASE_URL is configured, else in-process."""
    base_url = config.get('KIOSK_API_BASE_URL')
    if base_url:
        from backend.app.kiosk.api_client import RegistrationApiClient

        logger.debug("Kiosk submitting registrations to %s", base_url)
        return RegistrationApiClient(
            base_url,
            timeout=config.get('KIOSK_API_TIMEOUT_SECONDS', 10.0),
            max_retries=config.get('KIOSK_API_MAX_RETRIES', 2),
        )
    return ServiceSubmitter()
