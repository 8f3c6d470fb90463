"""
HTTP client for the registrations API, used when the kiosk screens run on a
different host than the API.

Creation is a single POST that is never retried; lookups are idempotent and
go through a retrying adapter.
"""

import logging
from typing import Any, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from backend.app.kiosk.submitters import RegistrationRejectedError, SubmissionError


class RegistrationApiClient:
    """
    Client for the kiosk registrations API.

    Raises `SubmissionError` (or `RegistrationRejectedError` for a 400) so it
    can stand in for the in-process submitter.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        max_retries: int = 2,
        backoff_factor: float = 0.5,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the client.

        Args:
            base_url: Base URL of the service, e.g. http://10.0.0.5:8000
            timeout: Request timeout in seconds
            max_retries: Retry attempts for GET requests
            backoff_factor: Backoff factor for retries
            session: Optional preconfigured session (tests)
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout

        self.session = session or requests.Session()
        retry_strategy = Retry(
            total=max_retries,
            status_forcelist=[502, 503, 504],
            allowed_methods=["HEAD", "GET", "OPTIONS"],
            backoff_factor=backoff_factor
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

        self.logger = logging.getLogger(__name__)

    def _url(self, path: str) -> str:
        return f"{self.base_url}/api/registrations{path}"

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return f"HTTP {response.status_code}"
        if isinstance(body, dict):
            return body.get('message') or body.get('error') or f"HTTP {response.status_code}"
        return f"HTTP {response.status_code}"

    def create_registration(self, payload: Dict[str, Any],
                            idempotency_key: Optional[str] = None) -> Dict[str, Any]:
        """
        POST a registration once.

        The idempotency key travels in the `Idempotency-Key` header, so a
        second POST for the same draft returns the first record.

        Returns:
            The stored record (with id and createdAt)

        Raises:
            RegistrationRejectedError: the API answered 400
            SubmissionError: network failure or any other non-201 answer
        """
        try:
            headers = {'Idempotency-Key': idempotency_key} if idempotency_key else {}
            response = self.session.post(self._url(''), json=payload, headers=headers, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            self.logger.error(f"Registration request failed: {e}")
            raise SubmissionError(f"Registration request failed: {e}")

        if response.status_code == 400:
            try:
                body = response.json()
            except ValueError:
                body = {}
            raise RegistrationRejectedError(
                body.get('message', 'Validation failed'),
                body.get('details') or [],
            )
        if response.status_code != 201:
            message = self._error_message(response)
            self.logger.error(f"Registration API returned {response.status_code}: {message}")
            raise SubmissionError(message)
        return response.json()

    def get_registration(self, registration_id: str) -> Optional[Dict[str, Any]]:
        """Fetch one registration; None when the API answers 404."""
        try:
            response = self.session.get(self._url(f'/{registration_id}'), timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise SubmissionError(f"Registration lookup failed: {e}")
        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise SubmissionError(self._error_message(response))
        return response.json()

    def list_registrations(self) -> List[Dict[str, Any]]:
        try:
            response = self.session.get(self._url(''), timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise SubmissionError(f"Registration listing failed: {e}")
        if response.status_code != 200:
            raise SubmissionError(self._error_message(response))
        return response.json()
