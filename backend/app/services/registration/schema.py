"""Canonical shape of a registration and server-side payload validation.

`validate_create` is the authoritative gate in front of persistence: every
rule is evaluated so the caller gets one issue per failing field, and a
payload is either accepted whole or rejected whole.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from .validators import validate_email, validate_phone, validate_rut

SALES_TIERS = (
    '0 - 2.400 UF',
    '2.400 - 5.000 UF',
    '5.000 - 25.000 UF',
    '25.000 - 100.000 UF',
)

YES_NO = ('si', 'no')

MENTORSHIP_CATEGORIES = (
    'Servicios Financieros',
    'Marketing y Ventas',
    'Gestión y Productividad',
    'Innovación y Talento',
)

# Wire field order; issues are reported in this order.
REGISTRATION_FIELDS = (
    'nombre',
    'rut',
    'rutEmpresa',
    'telefono',
    'email',
    'nivelVentas',
    'servicioMentorias',
    'servicioJugarActivacion',
    'categoriaMentoria',
)

OPTIONAL_FIELDS = frozenset({'rutEmpresa', 'categoriaMentoria'})

REQUIRED_MESSAGE = 'Campo requerido'
NOT_A_STRING_MESSAGE = 'Debe ser texto'


@dataclass
class ValidationIssue:
    path: List[str]
    message: str
    code: str = 'invalid'

    def to_dict(self) -> Dict[str, Any]:
        return {'path': list(self.path), 'message': self.message, 'code': self.code}


class SchemaValidationError(Exception):
    """Raised when a creation payload breaks one or more field rules."""

    def __init__(self, issues: List[ValidationIssue]):
        self.issues = issues
        super().__init__(self.message)

    @property
    def message(self) -> str:
        parts = []
        for issue in self.issues:
            if issue.path:
                parts.append(f'{issue.message} at "{".".join(issue.path)}"')
            else:
                parts.append(issue.message)
        return 'Validation error: ' + '; '.join(parts)

    def to_details(self) -> List[Dict[str, Any]]:
        return [issue.to_dict() for issue in self.issues]


@dataclass
class _Rule:
    check: Callable[[str], bool]
    message: str
    code: str = 'invalid'
    allow_empty: bool = False


def _one_of(choices) -> Callable[[str], bool]:
    return lambda value: value in choices


_RULES: Dict[str, _Rule] = {
    'nombre': _Rule(lambda v: len(v) >= 2, 'El nombre debe tener al menos 2 caracteres', 'too_small'),
    'rut': _Rule(validate_rut, 'El RUT no es válido', 'invalid_rut'),
    'rutEmpresa': _Rule(validate_rut, 'El RUT de empresa no es válido', 'invalid_rut', allow_empty=True),
    'telefono': _Rule(
        validate_phone,
        'El teléfono debe ser un número chileno válido (+569XXXXXXXX)',
        'invalid_phone',
    ),
    'email': _Rule(validate_email, 'El email debe ser válido', 'invalid_email'),
    'nivelVentas': _Rule(_one_of(SALES_TIERS), 'Debes seleccionar un nivel de ventas', 'invalid_enum_value'),
    'servicioMentorias': _Rule(_one_of(YES_NO), "Debe ser 'si' o 'no'", 'invalid_enum_value'),
    'servicioJugarActivacion': _Rule(_one_of(YES_NO), "Debe ser 'si' o 'no'", 'invalid_enum_value'),
    'categoriaMentoria': _Rule(
        _one_of(MENTORSHIP_CATEGORIES),
        'Categoría de mentoría no válida',
        'invalid_enum_value',
        allow_empty=True,
    ),
}


def _check_field(name: str, value: Any) -> Optional[ValidationIssue]:
    rule = _RULES[name]
    optional = name in OPTIONAL_FIELDS

    if value is None:
        if optional:
            return None
        return ValidationIssue([name], REQUIRED_MESSAGE, 'required')
    if not isinstance(value, str):
        return ValidationIssue([name], NOT_A_STRING_MESSAGE, 'invalid_type')
    if value == '' and rule.allow_empty:
        return None
    if not rule.check(value):
        return ValidationIssue([name], rule.message, rule.code)
    return None


def collect_issues(payload: Any) -> List[ValidationIssue]:
    """Evaluate every field rule and return all violations."""
    if not isinstance(payload, dict):
        return [ValidationIssue([], 'Se esperaba un objeto JSON', 'invalid_type')]

    issues: List[ValidationIssue] = []
    for name in REGISTRATION_FIELDS:
        issue = _check_field(name, payload.get(name))
        if issue is not None:
            issues.append(issue)
    return issues


def validate_create(payload: Any) -> Dict[str, Optional[str]]:
    """Validate a creation request and return its normalized form.

    Unknown keys (including client-supplied `id`/`createdAt`) are dropped,
    RUT fields are kept exactly as submitted and empty optional fields are
    normalized to None.

    Raises:
        SchemaValidationError: listing every failing field rule
    """
    issues = collect_issues(payload)
    if issues:
        raise SchemaValidationError(issues)

    validated: Dict[str, Optional[str]] = {}
    for name in REGISTRATION_FIELDS:
        value = payload.get(name)
        if name in OPTIONAL_FIELDS and not value:
            value = None
        validated[name] = value
    return validated
