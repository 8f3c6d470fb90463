"""Kiosk registration wizard.

Screens advance strictly forward:

    START -> WELCOME -> REGISTRATION_FORM -> SERVICE_SELECTION
          -> CATEGORY_SELECTION -> CONFIRMATION

Each screen merges its fields into the draft held by the `KioskSession`.
The draft is read in full once, on entering CONFIRMATION, where it passes a
presence gate and is submitted at most once:

    IDLE -> SUBMITTING -> SUCCEEDED | FAILED

Re-entering the confirmation screen (a refresh, a duplicate render) returns
the current outcome without issuing another request. The draft token minted
on the first screen is sent as the idempotency key, so even requests that
replay an older session cookie store one record. Failures keep the draft
so staff can recover the data by hand; only `return_to_start` clears it.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from backend.app.kiosk.forms import FormValidationError, validate_registration_form
from backend.app.kiosk.qr_codes import MentorshipCategory, qr_asset_for
from backend.app.kiosk.storage import KioskSession
from backend.app.kiosk.submitters import SubmissionError
from backend.app.services.registration.schema import SALES_TIERS, YES_NO

logger = logging.getLogger(__name__)


class Screen(str, Enum):
    START = 'inicio'
    WELCOME = 'bienvenida'
    REGISTRATION_FORM = 'registro'
    SERVICE_SELECTION = 'seleccion-servicio'
    CATEGORY_SELECTION = 'seleccion-categoria'
    CONFIRMATION = 'confirmacion'


class SubmissionState(str, Enum):
    IDLE = 'idle'
    SUBMITTING = 'submitting'
    SUCCEEDED = 'succeeded'
    FAILED = 'failed'


class ConfirmationOutcome(str, Enum):
    DATA_INCOMPLETE = 'data_incomplete'
    PENDING = 'pending'
    SUCCESS = 'success'
    ERROR = 'error'


_SUBMISSION_OUTCOMES = {
    SubmissionState.SUBMITTING: ConfirmationOutcome.PENDING,
    SubmissionState.SUCCEEDED: ConfirmationOutcome.SUCCESS,
    SubmissionState.FAILED: ConfirmationOutcome.ERROR,
}

# Draft fields that must be non-empty before submission
REQUIRED_DRAFT_FIELDS = (
    'nombre',
    'email',
    'rut',
    'telefono',
    'nivelVentas',
    'servicioMentorias',
    'servicioJugarActivacion',
)


class WizardError(Exception):
    """An action was attempted on a screen that does not offer it."""


class DraftIncompleteError(WizardError):
    def __init__(self, missing: List[str]):
        self.missing = missing
        super().__init__(f"Registration draft is incomplete: {', '.join(missing)}")


@dataclass
class ConfirmationView:
    outcome: ConfirmationOutcome
    qr_asset: str
    categoria: Optional[str] = None
    record: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    missing: List[str] = field(default_factory=list)


def check_draft(draft: Mapping[str, Any]) -> Dict[str, Any]:
    """Presence gate run on entering the confirmation screen.

    Only checks that the required fields are present (and the sales tier is
    one of the known buckets); RUT and phone formats were enforced by the
    registration screen and are enforced again by the API.

    Returns:
        the creation payload built from the draft

    Raises:
        DraftIncompleteError: listing the missing or unusable fields
    """
    missing = [name for name in REQUIRED_DRAFT_FIELDS if not draft.get(name)]
    if 'nivelVentas' not in missing and draft.get('nivelVentas') not in SALES_TIERS:
        missing.append('nivelVentas')
    if missing:
        raise DraftIncompleteError(missing)

    return {
        'nombre': draft['nombre'],
        'rut': draft['rut'],
        'rutEmpresa': draft.get('rutEmpresa') or None,
        'telefono': draft['telefono'],
        'email': draft['email'],
        'nivelVentas': draft['nivelVentas'],
        'servicioMentorias': draft['servicioMentorias'],
        'servicioJugarActivacion': draft['servicioJugarActivacion'],
        'categoriaMentoria': draft.get('categoriaMentoria') or None,
    }


class KioskWizard:
    """Drives one visitor through the registration screens.

    All state lives in the `KioskSession`, so a wizard can be rebuilt on
    every request around the same session. The optional `SubmissionLedger`
    shares submission progress between requests that carry the same draft
    token.
    """

    def __init__(self, session: KioskSession, submitter, ledger=None):
        self.session = session
        self.submitter = submitter
        self.ledger = ledger

    # State accessors

    @property
    def screen(self) -> Screen:
        value = self.session.get_flow_value('screen')
        try:
            return Screen(value) if value else Screen.START
        except ValueError:
            logger.warning("Unknown kiosk screen %r in session, restarting", value)
            return Screen.START

    @property
    def submission_state(self) -> SubmissionState:
        value = self.session.get_flow_value('submission')
        try:
            return SubmissionState(value) if value else SubmissionState.IDLE
        except ValueError:
            return SubmissionState.IDLE

    def _require(self, *screens: Screen) -> None:
        if self.screen not in screens:
            raise WizardError(
                f"Action not available on screen {self.screen.value!r}"
            )

    def _go(self, screen: Screen) -> Screen:
        self.session.set_flow_values(screen=screen.value)
        logger.debug("Kiosk moved to %s", screen.value)
        return screen

    # Screen actions

    def tap_start(self) -> Screen:
        self._require(Screen.START)
        self.session.draft_token()
        return self._go(Screen.WELCOME)

    def tap_welcome(self) -> Screen:
        self._require(Screen.WELCOME)
        return self._go(Screen.REGISTRATION_FORM)

    def submit_registration(self, form: Mapping[str, Any], no_company_rut: bool = False) -> Screen:
        """Validate the registration screen and store it in the draft.

        Raises:
            FormValidationError: the screen stays on REGISTRATION_FORM
        """
        self._require(Screen.REGISTRATION_FORM)
        fields = validate_registration_form(form, no_company_rut=no_company_rut)
        self.session.draft_token()
        self.session.update_draft(fields)
        return self._go(Screen.SERVICE_SELECTION)

    def select_services(self, mentorias: str, activacion: str) -> Screen:
        """Store the two service answers.

        Visitors who decline mentorship skip the category screen.
        """
        self._require(Screen.SERVICE_SELECTION)
        errors = {}
        if mentorias not in YES_NO:
            errors['servicioMentorias'] = 'Selecciona si te interesan las mentorías'
        if activacion not in YES_NO:
            errors['servicioJugarActivacion'] = 'Selecciona si quieres jugar la activación'
        if errors:
            raise FormValidationError(errors)

        fields = {'servicioMentorias': mentorias, 'servicioJugarActivacion': activacion}
        if mentorias == 'no':
            fields['categoriaMentoria'] = ''
            self.session.update_draft(fields)
            return self._go(Screen.CONFIRMATION)
        self.session.update_draft(fields)
        return self._go(Screen.CATEGORY_SELECTION)

    def select_category(self, categoria: str) -> Screen:
        self._require(Screen.CATEGORY_SELECTION)
        category = MentorshipCategory.parse(categoria)
        if category is None:
            raise FormValidationError({'categoriaMentoria': 'Selecciona una categoría de mentoría'})
        self.session.update_draft({'categoriaMentoria': category.value})
        return self._go(Screen.CONFIRMATION)

    # Confirmation

    def confirmation_view(self) -> ConfirmationView:
        """Current confirmation outcome, without side effects."""
        flow = self.session.load_flow()
        categoria = flow.get('categoria') or None
        if flow.get('missing'):
            return ConfirmationView(
                outcome=ConfirmationOutcome.DATA_INCOMPLETE,
                qr_asset=qr_asset_for(None),
                missing=list(flow['missing']),
            )
        state = self.submission_state
        if state is SubmissionState.IDLE:
            raise WizardError('Registration has not been submitted yet')
        outcome = _SUBMISSION_OUTCOMES[state]
        return ConfirmationView(
            outcome=outcome,
            # error screens show the default QR dimmed
            qr_asset=qr_asset_for(None if outcome is ConfirmationOutcome.ERROR else categoria),
            categoria=categoria,
            record=flow.get('record'),
            error=flow.get('error'),
        )

    def enter_confirmation(self) -> ConfirmationView:
        """Gate the draft and submit it once.

        Safe to call repeatedly: once the draft left IDLE (or failed the
        gate) the stored outcome is returned and nothing is resubmitted.
        With a ledger, requests replaying an older session cookie share the
        outcome of whichever request claimed the draft token, and a pending
        outcome is re-read from the ledger until it settles.
        """
        self._require(Screen.CONFIRMATION)
        if self.session.get_flow_value('missing'):
            return self.confirmation_view()
        state = self.submission_state
        if state in (SubmissionState.SUCCEEDED, SubmissionState.FAILED):
            return self.confirmation_view()
        if state is SubmissionState.SUBMITTING and self.ledger is None:
            return self.confirmation_view()

        draft = self.session.load_draft()
        try:
            payload = check_draft(draft)
        except DraftIncompleteError as e:
            logger.warning("Kiosk draft failed confirmation gate: %s", ', '.join(e.missing))
            self.session.set_flow_values(missing=e.missing)
            return self.confirmation_view()

        token = self.session.draft_token()
        self.session.set_flow_values(categoria=payload['categoriaMentoria'] or '')
        if self.ledger is not None:
            entry = self.ledger.claim(token)
            if entry is not None:
                return self._adopt(token, entry)

        self.session.set_flow_values(submission=SubmissionState.SUBMITTING.value)
        try:
            record = self.submitter.create_registration(payload, idempotency_key=token)
        except SubmissionError as e:
            logger.error("Registration submission failed: %s", e.message)
            self._settle(token, SubmissionState.FAILED, error=e.message)
            return self.confirmation_view()
        except Exception as e:
            logger.exception("Unexpected error submitting registration")
            self._settle(token, SubmissionState.FAILED, error=str(e))
            return self.confirmation_view()

        self._settle(token, SubmissionState.SUCCEEDED, record=record)
        logger.info("Kiosk registration %s created", record.get('id'))
        return self.confirmation_view()

    def _settle(self, token: str, state: SubmissionState,
                record: Optional[Dict[str, Any]] = None, error: Optional[str] = None) -> None:
        self.session.set_flow_values(submission=state.value, record=record, error=error)
        if self.ledger is not None:
            self.ledger.settle(token, state.value, record=record, error=error)

    def _adopt(self, token: str, entry) -> ConfirmationView:
        """Show the outcome of a submission owned by another request."""
        try:
            state = SubmissionState(entry.state)
        except ValueError:
            state = SubmissionState.SUBMITTING
        if state is SubmissionState.IDLE:
            state = SubmissionState.SUBMITTING
        logger.info("Kiosk draft %s already claimed, showing %s", token, state.value)
        self.session.set_flow_values(submission=state.value, record=entry.record, error=entry.error)
        return self.confirmation_view()

    def contact_staff(self) -> Dict[str, Any]:
        """Hand the preserved draft to staff after a failed submission."""
        self._require(Screen.CONFIRMATION)
        if self.submission_state is not SubmissionState.FAILED:
            raise WizardError('Staff contact is only offered after a failed submission')
        draft = self.session.load_draft()
        logger.warning("Registration data for staff assistance: %s", draft)
        return draft

    def return_to_start(self) -> Screen:
        """Clear the draft and flow state and go back to the first screen."""
        self._require(Screen.CONFIRMATION)
        if self.submission_state is SubmissionState.SUBMITTING:
            raise WizardError('Cannot leave while the registration is being saved')
        self.session.clear()
        return self._go(Screen.START)
