"""Shared record of kiosk submissions, keyed by draft token.

The signed session cookie only reaches the browser once a response
completes, so two requests replaying the same cookie cannot see each
other's progress through it. The ledger keeps that progress in MongoDB:

- `claim(token)` lets exactly one request submit a given draft
- any other request reads the entry and shows it (`pending` until settled)
- a `submitting` entry older than the stale window is taken over, for when
  the request that claimed it died before settling

When the ledger itself cannot be reached the wizard carries on with its
session state alone; the registration's idempotency key still keeps the
draft to one stored record.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Mapping, Optional

from pymongo.errors import PyMongoError

from backend.app.db import DatabaseError
from backend.app.repositories import kiosk_submissions_repo

logger = logging.getLogger(__name__)


@dataclass
class SubmissionEntry:
    state: str
    record: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


class SubmissionLedger:
    def __init__(self, repo, stale_after: timedelta):
        self.repo = repo
        self.stale_after = stale_after

    def claim(self, token: str) -> Optional[SubmissionEntry]:
        """Try to become the request that submits this draft.

        Returns:
            None when the caller owns the submission and must perform it,
            otherwise the entry recorded by the request that owns it
        """
        now = _now()
        try:
            if self.repo.claim(token, now):
                return None
            doc = self.repo.find_by_token(token)
            if doc is None:
                # expired between the insert and the read
                return None
            if doc.get('state') == 'submitting' and self._is_stale(doc, now):
                if self.repo.take_over_stale(token, now - self.stale_after, now):
                    logger.warning("Taking over stale kiosk submission %s", token)
                    return None
            return SubmissionEntry(doc.get('state') or 'submitting', doc.get('record'), doc.get('error'))
        except (PyMongoError, DatabaseError) as e:
            logger.warning("Submission ledger unavailable for %s, relying on idempotency key: %s", token, e)
            return None

    def settle(self, token: str, state: str,
               record: Optional[Mapping[str, Any]] = None, error: Optional[str] = None) -> None:
        """Record the final state so concurrent renders can show it."""
        try:
            self.repo.record_outcome(token, state, _now(),
                                     record=dict(record) if record else None, error=error)
        except (PyMongoError, DatabaseError) as e:
            logger.warning("Could not record outcome of kiosk submission %s: %s", token, e)

    def _is_stale(self, doc: Mapping[str, Any], now: datetime) -> bool:
        claimed_at = doc.get('claimed_at')
        if not isinstance(claimed_at, datetime):
            return True
        return _as_utc(claimed_at) < now - self.stale_after


def build_ledger(config: Mapping[str, Any]) -> SubmissionLedger:
    stale_seconds = config.get('KIOSK_SUBMISSION_STALE_SECONDS', 60)
    return SubmissionLedger(kiosk_submissions_repo, timedelta(seconds=stale_seconds))
