"""Kiosk screens.

One route per wizard screen. The signed Flask session is the storage that
carries the registration draft between screens; a request for any screen
other than the current one is redirected to the current one. Submission
progress is shared through the kiosk submissions ledger, so a confirmation
request replaying an older cookie shows the same outcome as the one that
submitted.
"""
import logging

from flask import Blueprint, current_app, redirect, render_template, request, session, url_for

from backend.app.kiosk.forms import FormValidationError, mask_rut_input
from backend.app.kiosk.ledger import build_ledger
from backend.app.kiosk.qr_codes import MentorshipCategory
from backend.app.kiosk.storage import KioskSession
from backend.app.kiosk.submitters import build_submitter
from backend.app.kiosk.wizard import ConfirmationOutcome, KioskWizard, Screen, WizardError
from backend.app.services.registration.schema import SALES_TIERS

logger = logging.getLogger(__name__)

web_bp = Blueprint('web', __name__)

_ENDPOINTS = {
    Screen.START: 'web.inicio',
    Screen.WELCOME: 'web.bienvenida',
    Screen.REGISTRATION_FORM: 'web.registro',
    Screen.SERVICE_SELECTION: 'web.seleccion_servicio',
    Screen.CATEGORY_SELECTION: 'web.seleccion_categoria',
    Screen.CONFIRMATION: 'web.confirmacion',
}

_CONFIRMATION_TEMPLATES = {
    ConfirmationOutcome.DATA_INCOMPLETE: 'kiosk/datos_incompletos.html',
    ConfirmationOutcome.ERROR: 'kiosk/error.html',
    ConfirmationOutcome.PENDING: 'kiosk/confirmacion.html',
    ConfirmationOutcome.SUCCESS: 'kiosk/confirmacion.html',
}


def _wizard() -> KioskWizard:
    return KioskWizard(
        KioskSession(session),
        build_submitter(current_app.config),
        ledger=build_ledger(current_app.config),
    )


def _to_current(wizard: KioskWizard):
    return redirect(url_for(_ENDPOINTS[wizard.screen]))


@web_bp.route('/', methods=['GET', 'POST'])
def inicio():
    wizard = _wizard()
    if wizard.screen is not Screen.START:
        return _to_current(wizard)
    if request.method == 'POST':
        wizard.tap_start()
        return _to_current(wizard)
    return render_template('kiosk/inicio.html')


@web_bp.route('/bienvenida', methods=['GET', 'POST'])
def bienvenida():
    wizard = _wizard()
    if wizard.screen is not Screen.WELCOME:
        return _to_current(wizard)
    if request.method == 'POST':
        wizard.tap_welcome()
        return _to_current(wizard)
    return render_template('kiosk/bienvenida.html')


@web_bp.route('/registro', methods=['GET', 'POST'])
def registro():
    wizard = _wizard()
    if wizard.screen is not Screen.REGISTRATION_FORM:
        return _to_current(wizard)

    form = {}
    errors = {}
    no_company_rut = False
    if request.method == 'POST':
        form = request.form.to_dict()
        # RUT inputs come straight from the virtual keyboard or a paste
        for name in ('rut', 'rutEmpresa'):
            form[name] = mask_rut_input(form.get(name, ''))
        no_company_rut = request.form.get('sinRutEmpresa') == 'on'
        try:
            wizard.submit_registration(form, no_company_rut=no_company_rut)
            return _to_current(wizard)
        except FormValidationError as e:
            errors = e.errors

    status = 400 if errors else 200
    return render_template(
        'kiosk/registro.html',
        form=form,
        errors=errors,
        no_company_rut=no_company_rut,
        sales_tiers=SALES_TIERS,
    ), status


@web_bp.route('/seleccion-servicio', methods=['GET', 'POST'])
def seleccion_servicio():
    wizard = _wizard()
    if wizard.screen is not Screen.SERVICE_SELECTION:
        return _to_current(wizard)

    errors = {}
    if request.method == 'POST':
        try:
            wizard.select_services(
                request.form.get('servicioMentorias', ''),
                request.form.get('servicioJugarActivacion', ''),
            )
            return _to_current(wizard)
        except FormValidationError as e:
            errors = e.errors
    return render_template('kiosk/seleccion_servicio.html', errors=errors), 400 if errors else 200


@web_bp.route('/seleccion-categoria', methods=['GET', 'POST'])
def seleccion_categoria():
    wizard = _wizard()
    if wizard.screen is not Screen.CATEGORY_SELECTION:
        return _to_current(wizard)

    errors = {}
    if request.method == 'POST':
        try:
            wizard.select_category(request.form.get('categoriaMentoria', ''))
            return _to_current(wizard)
        except FormValidationError as e:
            errors = e.errors
    return render_template(
        'kiosk/seleccion_categoria.html',
        categories=[c.value for c in MentorshipCategory],
        errors=errors,
    ), 400 if errors else 200


@web_bp.route('/confirmacion')
def confirmacion():
    wizard = _wizard()
    if wizard.screen is not Screen.CONFIRMATION:
        return _to_current(wizard)
    view = wizard.enter_confirmation()
    return render_template(_CONFIRMATION_TEMPLATES[view.outcome], view=view)


@web_bp.route('/contactar-personal', methods=['POST'])
def contactar_personal():
    wizard = _wizard()
    try:
        draft = wizard.contact_staff()
    except WizardError as e:
        logger.debug("Ignoring staff contact request: %s", e)
        return _to_current(wizard)
    return render_template('kiosk/error.html', view=wizard.confirmation_view(), staff_data=draft)


@web_bp.route('/volver-al-inicio', methods=['POST'])
def volver_al_inicio():
    wizard = _wizard()
    try:
        wizard.return_to_start()
    except WizardError as e:
        logger.debug("Ignoring return-to-start request: %s", e)
    return _to_current(wizard)
