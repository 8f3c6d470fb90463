"""Session-scoped storage for the kiosk wizard.

A `KioskSession` wraps whatever mutable mapping survives between screens of
one browsing session: the signed Flask `session` for the web screens, a
plain dict in tests. It holds two entries:

- the registration draft, as one JSON blob under `DRAFT_STORAGE_KEY`
- the wizard flow state (current screen, submission state and outcome, and
  the draft token that identifies this visitor's registration)

Both are dropped by `clear()`, which the wizard calls on return-to-start.
"""
from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Dict, MutableMapping, Optional

logger = logging.getLogger(__name__)

DRAFT_STORAGE_KEY = 'registrationData'
FLOW_STORAGE_KEY = 'kioskFlow'
DRAFT_TOKEN_KEY = 'draftToken'


class KioskSession:
    def __init__(self, storage: MutableMapping[str, Any]):
        self.storage = storage

    # Draft

    def load_draft(self) -> Dict[str, Any]:
        """Return the stored draft, or {} when absent or unreadable."""
        raw = self.storage.get(DRAFT_STORAGE_KEY)
        if not raw:
            return {}
        try:
            draft = json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.error("Error parsing registration draft: %s", e)
            return {}
        if not isinstance(draft, dict):
            logger.error("Registration draft is not an object: %r", type(draft).__name__)
            return {}
        return draft

    def update_draft(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        draft = self.load_draft()
        draft.update(fields)
        self.storage[DRAFT_STORAGE_KEY] = json.dumps(draft, ensure_ascii=False)
        return draft

    # Flow state

    def load_flow(self) -> Dict[str, Any]:
        flow = self.storage.get(FLOW_STORAGE_KEY)
        return dict(flow) if isinstance(flow, dict) else {}

    def save_flow(self, flow: Dict[str, Any]) -> None:
        # Reassign a fresh dict so cookie-backed sessions see the change
        self.storage[FLOW_STORAGE_KEY] = dict(flow)

    def get_flow_value(self, key: str, default: Optional[Any] = None) -> Any:
        return self.load_flow().get(key, default)

    def set_flow_values(self, **values: Any) -> None:
        flow = self.load_flow()
        flow.update(values)
        self.save_flow(flow)

    def draft_token(self) -> str:
        """Token for the current draft, minted on first use.

        It must be in the session before the confirmation screen submits, so
        that a replay of the earlier cookie carries the same token.
        """
        token = self.get_flow_value(DRAFT_TOKEN_KEY)
        if not token:
            token = uuid.uuid4().hex
            self.set_flow_values(**{DRAFT_TOKEN_KEY: token})
        return token

    def clear(self) -> None:
        self.storage.pop(DRAFT_STORAGE_KEY, None)
        self.storage.pop(FLOW_STORAGE_KEY, None)
