import copy
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List

import pytest
from pymongo.errors import ServerSelectionTimeoutError

from backend.app.kiosk.qr_codes import QR_ASSETS, MentorshipCategory
from backend.app.kiosk.storage import DRAFT_STORAGE_KEY, KioskSession
from backend.app.kiosk.submitters import RegistrationRejectedError, SubmissionError
from backend.app.kiosk.forms import FormValidationError
from backend.app.kiosk.ledger import SubmissionLedger
from backend.app.kiosk.wizard import (
    ConfirmationOutcome,
    DraftIncompleteError,
    KioskWizard,
    Screen,
    SubmissionState,
    WizardError,
    check_draft,
)

FORM = {
    'nombre': 'Ana Pérez',
    'rut': '123456785',
    'rutEmpresa': '',
    'telefono': '+56912345678',
    'email': 'ana@empresa.cl',
    'nivelVentas': '25.000 - 100.000 UF',
}


class FakeSubmitter:
    def __init__(self, error: Exception = None):
        self.error = error
        self.calls: List[Dict[str, Any]] = []
        self.keys: List[str] = []

    def create_registration(self, payload, idempotency_key=None):
        self.calls.append(payload)
        self.keys.append(idempotency_key)
        if self.error:
            raise self.error
        return dict(payload, id='reg-1', createdAt='2025-11-20T12:00:00+00:00')


class InMemorySubmissionsRepo:
    def __init__(self):
        self.entries: Dict[str, Dict[str, Any]] = {}

    def claim(self, token, now):
        if token in self.entries:
            return False
        self.entries[token] = {'_id': token, 'state': 'submitting', 'claimed_at': now, 'updated_at': now}
        return True

    def find_by_token(self, token):
        return self.entries.get(token)

    def take_over_stale(self, token, stale_before, now):
        entry = self.entries.get(token)
        if entry and entry['state'] == 'submitting' and entry['claimed_at'] < stale_before:
            entry.update(claimed_at=now, updated_at=now)
            return True
        return False

    def record_outcome(self, token, state, now, record=None, error=None):
        if token not in self.entries:
            return False
        self.entries[token].update(state=state, record=record, error=error, updated_at=now)
        return True


@pytest.fixture
def storage():
    return {}


@pytest.fixture
def submissions():
    return InMemorySubmissionsRepo()


@pytest.fixture
def ledger(submissions):
    return SubmissionLedger(submissions, timedelta(seconds=60))


def _wizard_at_confirmation(storage, submitter, categoria='Marketing y Ventas', ledger=None):
    wizard = KioskWizard(KioskSession(storage), submitter, ledger=ledger)
    wizard.tap_start()
    wizard.tap_welcome()
    wizard.submit_registration(FORM)
    wizard.select_services('si', 'no')
    wizard.select_category(categoria)
    return wizard


def test_full_flow_submits_once_and_shows_category_qr(storage):
    submitter = FakeSubmitter()
    wizard = _wizard_at_confirmation(storage, submitter)
    assert wizard.screen is Screen.CONFIRMATION

    view = wizard.enter_confirmation()

    assert view.outcome is ConfirmationOutcome.SUCCESS
    assert view.categoria == 'Marketing y Ventas'
    assert view.qr_asset == QR_ASSETS[MentorshipCategory.MARKETING_Y_VENTAS]
    assert view.record['id'] == 'reg-1'
    assert submitter.calls == [{
        'nombre': 'Ana Pérez',
        'rut': '12.345.678-5',
        'rutEmpresa': None,
        'telefono': '+56912345678',
        'email': 'ana@empresa.cl',
        'nivelVentas': '25.000 - 100.000 UF',
        'servicioMentorias': 'si',
        'servicioJugarActivacion': 'no',
        'categoriaMentoria': 'Marketing y Ventas',
    }]


def test_duplicate_render_does_not_resubmit(storage):
    submitter = FakeSubmitter()
    wizard = _wizard_at_confirmation(storage, submitter)

    first = wizard.enter_confirmation()
    # a fresh wizard over the same session behaves like a re-rendered screen
    second = KioskWizard(KioskSession(storage), submitter).enter_confirmation()

    assert len(submitter.calls) == 1
    assert first == second


def test_pending_state_is_reported_without_resubmitting(storage):
    submitter = FakeSubmitter()
    wizard = _wizard_at_confirmation(storage, submitter)
    KioskSession(storage).set_flow_values(submission=SubmissionState.SUBMITTING.value)

    view = wizard.enter_confirmation()

    assert view.outcome is ConfirmationOutcome.PENDING
    assert submitter.calls == []
    with pytest.raises(WizardError):
        wizard.return_to_start()


def test_submission_failure_keeps_draft_for_staff(storage):
    submitter = FakeSubmitter(error=SubmissionError('Failed to store registration'))
    wizard = _wizard_at_confirmation(storage, submitter)

    view = wizard.enter_confirmation()
    assert view.outcome is ConfirmationOutcome.ERROR
    assert view.error == 'Failed to store registration'
    assert view.qr_asset == QR_ASSETS[MentorshipCategory.SERVICIOS_FINANCIEROS]
    assert wizard.submission_state is SubmissionState.FAILED

    # no automatic retry
    assert wizard.enter_confirmation().outcome is ConfirmationOutcome.ERROR
    assert len(submitter.calls) == 1

    draft = wizard.contact_staff()
    assert draft['rut'] == '12.345.678-5'
    assert DRAFT_STORAGE_KEY in storage


def test_unexpected_submitter_error_is_a_failed_submission(storage):
    wizard = _wizard_at_confirmation(storage, FakeSubmitter(error=RuntimeError('boom')))
    view = wizard.enter_confirmation()
    assert view.outcome is ConfirmationOutcome.ERROR
    assert view.error == 'boom'


def test_server_rejection_is_an_error_outcome(storage):
    error = RegistrationRejectedError('Validation error', [{'path': ['rut'], 'message': 'El RUT no es válido'}])
    wizard = _wizard_at_confirmation(storage, FakeSubmitter(error=error))
    assert wizard.enter_confirmation().outcome is ConfirmationOutcome.ERROR


def test_return_to_start_clears_session(storage):
    wizard = _wizard_at_confirmation(storage, FakeSubmitter())
    wizard.enter_confirmation()

    assert wizard.return_to_start() is Screen.START
    assert DRAFT_STORAGE_KEY not in storage
    assert wizard.submission_state is SubmissionState.IDLE
    assert KioskSession(storage).load_draft() == {}


def test_declining_mentorship_skips_category(storage):
    submitter = FakeSubmitter()
    wizard = KioskWizard(KioskSession(storage), submitter)
    wizard.tap_start()
    wizard.tap_welcome()
    wizard.submit_registration(FORM)

    assert wizard.select_services('no', 'si') is Screen.CONFIRMATION

    view = wizard.enter_confirmation()
    assert view.outcome is ConfirmationOutcome.SUCCESS
    assert view.categoria is None
    assert view.qr_asset == QR_ASSETS[MentorshipCategory.SERVICIOS_FINANCIEROS]
    assert submitter.calls[0]['categoriaMentoria'] is None


def test_incomplete_draft_is_terminal(storage):
    session = KioskSession(storage)
    session.update_draft({'nombre': 'Ana', 'rut': '12.345.678-5', 'telefono': '+56912345678',
                          'nivelVentas': '0 - 2.400 UF', 'servicioMentorias': 'no',
                          'servicioJugarActivacion': 'no'})
    session.set_flow_values(screen=Screen.CONFIRMATION.value)
    submitter = FakeSubmitter()
    wizard = KioskWizard(session, submitter)

    view = wizard.enter_confirmation()

    assert view.outcome is ConfirmationOutcome.DATA_INCOMPLETE
    assert view.missing == ['email']
    assert submitter.calls == []
    with pytest.raises(WizardError):
        wizard.contact_staff()

    wizard.return_to_start()
    assert storage == {'kioskFlow': {'screen': 'inicio'}}


def test_corrupt_draft_reads_as_incomplete(storage):
    storage[DRAFT_STORAGE_KEY] = '{not json'
    session = KioskSession(storage)
    session.set_flow_values(screen=Screen.CONFIRMATION.value)

    view = KioskWizard(session, FakeSubmitter()).enter_confirmation()

    assert view.outcome is ConfirmationOutcome.DATA_INCOMPLETE
    assert 'nombre' in view.missing


def test_check_draft_rejects_unknown_sales_tier():
    draft = {
        'nombre': 'Ana', 'rut': '12.345.678-5', 'telefono': '+56912345678',
        'email': 'ana@empresa.cl', 'nivelVentas': '1 UF',
        'servicioMentorias': 'si', 'servicioJugarActivacion': 'si',
    }
    with pytest.raises(DraftIncompleteError) as excinfo:
        check_draft(draft)
    assert excinfo.value.missing == ['nivelVentas']


def test_check_draft_does_not_recheck_rut_format():
    draft = {
        'nombre': 'Ana', 'rut': '12.345.678-9', 'telefono': '+56912345678',
        'email': 'ana@empresa.cl', 'nivelVentas': '0 - 2.400 UF',
        'servicioMentorias': 'si', 'servicioJugarActivacion': 'si',
        'rutEmpresa': '', 'categoriaMentoria': '',
    }
    payload = check_draft(draft)
    assert payload['rut'] == '12.345.678-9'
    assert payload['rutEmpresa'] is None
    assert payload['categoriaMentoria'] is None


def test_actions_are_bound_to_their_screen(storage):
    wizard = KioskWizard(KioskSession(storage), FakeSubmitter())
    with pytest.raises(WizardError):
        wizard.tap_welcome()
    with pytest.raises(WizardError):
        wizard.enter_confirmation()
    wizard.tap_start()
    with pytest.raises(WizardError):
        wizard.tap_start()
    assert wizard.screen is Screen.WELCOME


def test_invalid_form_keeps_registration_screen(storage):
    wizard = KioskWizard(KioskSession(storage), FakeSubmitter())
    wizard.tap_start()
    wizard.tap_welcome()

    with pytest.raises(FormValidationError) as excinfo:
        wizard.submit_registration(dict(FORM, rut='12345678-9', email='ana'))

    assert set(excinfo.value.errors) == {'rut', 'email'}
    assert wizard.screen is Screen.REGISTRATION_FORM
    assert DRAFT_STORAGE_KEY not in storage


def test_service_and_category_choices_are_validated(storage):
    wizard = KioskWizard(KioskSession(storage), FakeSubmitter())
    wizard.tap_start()
    wizard.tap_welcome()
    wizard.submit_registration(FORM)

    with pytest.raises(FormValidationError) as excinfo:
        wizard.select_services('tal vez', 'si')
    assert list(excinfo.value.errors) == ['servicioMentorias']

    wizard.select_services('si', 'si')
    with pytest.raises(FormValidationError):
        wizard.select_category('Astrología')
    assert wizard.select_category(' innovación y talento ') is Screen.CONFIRMATION
    assert KioskSession(storage).load_draft()['categoriaMentoria'] == 'Innovación y Talento'


def test_draft_token_is_minted_on_start_and_sent_as_idempotency_key(storage):
    submitter = FakeSubmitter()
    wizard = KioskWizard(KioskSession(storage), submitter)
    wizard.tap_start()
    token = KioskSession(storage).get_flow_value('draftToken')
    assert token

    wizard.tap_welcome()
    wizard.submit_registration(FORM)
    wizard.select_services('no', 'no')
    wizard.enter_confirmation()

    assert submitter.keys == [token]


def test_replayed_session_shares_the_first_submission(storage, ledger, submissions):
    submitter = FakeSubmitter()
    _wizard_at_confirmation(storage, submitter, ledger=ledger)
    # the cookie as it was before the confirmation screen was first served
    earlier = copy.deepcopy(storage)

    first = KioskWizard(KioskSession(storage), submitter, ledger=ledger).enter_confirmation()
    replayed = KioskWizard(KioskSession(earlier), submitter, ledger=ledger).enter_confirmation()

    assert len(submitter.calls) == 1
    assert first.outcome is replayed.outcome is ConfirmationOutcome.SUCCESS
    assert replayed.record == first.record
    assert replayed.categoria == 'Marketing y Ventas'
    token = KioskSession(storage).get_flow_value('draftToken')
    assert submissions.entries[token]['state'] == 'succeeded'


def test_replayed_session_shares_a_failed_submission(storage, ledger):
    submitter = FakeSubmitter(error=SubmissionError('Failed to store registration'))
    _wizard_at_confirmation(storage, submitter, ledger=ledger)
    earlier = copy.deepcopy(storage)

    KioskWizard(KioskSession(storage), submitter, ledger=ledger).enter_confirmation()
    replayed = KioskWizard(KioskSession(earlier), submitter, ledger=ledger).enter_confirmation()

    assert len(submitter.calls) == 1
    assert replayed.outcome is ConfirmationOutcome.ERROR
    assert replayed.error == 'Failed to store registration'


def test_render_during_another_submission_is_pending_until_settled(storage, ledger, submissions):
    submitter = FakeSubmitter()
    wizard = _wizard_at_confirmation(storage, submitter, ledger=ledger)
    token = KioskSession(storage).draft_token()
    submissions.claim(token, datetime.now(timezone.utc))

    view = wizard.enter_confirmation()

    assert view.outcome is ConfirmationOutcome.PENDING
    assert submitter.calls == []
    with pytest.raises(WizardError):
        wizard.return_to_start()

    record = {'id': 'reg-9', 'createdAt': '2025-11-20T12:00:00+00:00'}
    ledger.settle(token, SubmissionState.SUCCEEDED.value, record=record)

    view = wizard.enter_confirmation()
    assert view.outcome is ConfirmationOutcome.SUCCESS
    assert view.record == record
    assert submitter.calls == []


def test_stale_claim_is_taken_over_with_the_same_token(storage, ledger, submissions):
    submitter = FakeSubmitter()
    wizard = _wizard_at_confirmation(storage, submitter, ledger=ledger)
    token = KioskSession(storage).draft_token()
    submissions.claim(token, datetime.now(timezone.utc) - timedelta(minutes=5))

    view = wizard.enter_confirmation()

    assert view.outcome is ConfirmationOutcome.SUCCESS
    assert submitter.keys == [token]
    assert submissions.entries[token]['state'] == 'succeeded'


def test_ledger_outage_still_submits_once(storage):
    class DownSubmissionsRepo:
        def claim(self, token, now):
            raise ServerSelectionTimeoutError('no servers')

        def record_outcome(self, token, state, now, record=None, error=None):
            raise ServerSelectionTimeoutError('no servers')

    submitter = FakeSubmitter()
    ledger = SubmissionLedger(DownSubmissionsRepo(), timedelta(seconds=60))
    wizard = _wizard_at_confirmation(storage, submitter, ledger=ledger)

    assert wizard.enter_confirmation().outcome is ConfirmationOutcome.SUCCESS
    assert wizard.enter_confirmation().outcome is ConfirmationOutcome.SUCCESS
    assert len(submitter.calls) == 1
