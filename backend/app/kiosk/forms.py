"""Registration screen rules applied on the kiosk before a step is stored.

These mirror the API schema for the fields collected on the registration
screen so the visitor sees errors next to the offending input instead of a
failed submission at the end of the flow.
"""
from __future__ import annotations

import re
from typing import Any, Dict, Mapping

from backend.app.services.registration.schema import SALES_TIERS
from backend.app.services.registration.validators import (
    format_rut,
    validate_email,
    validate_phone,
    validate_rut,
)

FORM_FIELDS = ('nombre', 'rut', 'rutEmpresa', 'telefono', 'email', 'nivelVentas')


class FormValidationError(Exception):
    """Field-level errors for one screen; `errors` maps field -> message."""

    def __init__(self, errors: Dict[str, str]):
        self.errors = errors
        super().__init__(', '.join(f'{k}: {v}' for k, v in errors.items()))


def mask_rut_input(raw: str) -> str:
    """Keep digits and K, formatting as soon as there are two characters.

    Used for typed and pasted RUT input, e.g. "12.345.678 5" -> "12.345.678-5".
    """
    cleaned = re.sub(r'[^0-9kK]', '', raw or '')
    if len(cleaned) >= 2:
        return format_rut(cleaned)
    return cleaned


def _text(data: Mapping[str, Any], name: str) -> str:
    value = data.get(name)
    return value.strip() if isinstance(value, str) else ''


def validate_registration_form(data: Mapping[str, Any], no_company_rut: bool = False) -> Dict[str, str]:
    """Validate the registration screen and return the fields for the draft.

    Args:
        data: submitted form values keyed by wire field name
        no_company_rut: the visitor tapped "No tengo"; the company RUT is
            then stored empty regardless of what the input held

    Raises:
        FormValidationError: with one message per failing field
    """
    values = {name: _text(data, name) for name in FORM_FIELDS}
    if no_company_rut:
        values['rutEmpresa'] = ''

    errors: Dict[str, str] = {}
    if len(values['nombre']) < 2:
        errors['nombre'] = 'El nombre debe tener al menos 2 caracteres'
    if not validate_rut(values['rut']):
        errors['rut'] = 'El RUT no es válido. Formato: 12345678-9'
    if values['rutEmpresa'] and not validate_rut(values['rutEmpresa']):
        errors['rutEmpresa'] = 'El RUT de empresa no es válido'
    if not validate_phone(values['telefono']):
        errors['telefono'] = 'Teléfono inválido. Debe ser +569XXXXXXXX'
    if not validate_email(values['email']):
        errors['email'] = 'El email debe ser válido'
    if values['nivelVentas'] not in SALES_TIERS:
        errors['nivelVentas'] = 'Debes seleccionar un nivel de ventas'
    if errors:
        raise FormValidationError(errors)

    values['rut'] = format_rut(values['rut'])
    if values['rutEmpresa']:
        values['rutEmpresa'] = format_rut(values['rutEmpresa'])
    return values
