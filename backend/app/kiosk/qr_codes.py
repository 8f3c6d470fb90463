"""Mentorship category -> QR code asset shown on the confirmation screen."""
from __future__ import annotations

import os
from enum import Enum
from typing import Dict, List, Optional

from backend.app.services.registration.schema import MENTORSHIP_CATEGORIES


class MentorshipCategory(str, Enum):
    SERVICIOS_FINANCIEROS = 'Servicios Financieros'
    MARKETING_Y_VENTAS = 'Marketing y Ventas'
    GESTION_Y_PRODUCTIVIDAD = 'Gestión y Productividad'
    INNOVACION_Y_TALENTO = 'Innovación y Talento'

    @classmethod
    def parse(cls, label: Optional[str]) -> Optional['MentorshipCategory']:
        """Case and surrounding-whitespace insensitive lookup; None if unknown."""
        if not label:
            return None
        key = label.strip().lower()
        for member in cls:
            if member.value.lower() == key:
                return member
        return None


# Paths are relative to the Flask static folder
QR_ASSETS: Dict[MentorshipCategory, str] = {
    MentorshipCategory.SERVICIOS_FINANCIEROS: 'qr/mentoria-servicios-financieros.png',
    MentorshipCategory.MARKETING_Y_VENTAS: 'qr/mentoria-marketing-y-ventas.png',
    MentorshipCategory.GESTION_Y_PRODUCTIVIDAD: 'qr/mentoria-gestion-y-productividad.png',
    MentorshipCategory.INNOVACION_Y_TALENTO: 'qr/mentoria-innovacion-y-talento.png',
}

DEFAULT_CATEGORY = MentorshipCategory.SERVICIOS_FINANCIEROS

_missing = [member for member in MentorshipCategory if member not in QR_ASSETS]
if _missing:
    raise RuntimeError(f"QR_ASSETS has no asset for {', '.join(m.value for m in _missing)}")
if {member.value for member in MentorshipCategory} != set(MENTORSHIP_CATEGORIES):
    raise RuntimeError('MentorshipCategory is out of sync with the registration schema')


def qr_asset_for(categoria: Optional[str]) -> str:
    """QR asset for a category label; empty or unknown labels get the default."""
    category = MentorshipCategory.parse(categoria) or DEFAULT_CATEGORY
    return QR_ASSETS[category]


def missing_qr_assets(static_folder: Optional[str]) -> List[str]:
    """QR asset paths that are not present under the static folder."""
    if not static_folder:
        return sorted(QR_ASSETS.values())
    return sorted(
        path for path in QR_ASSETS.values()
        if not os.path.isfile(os.path.join(static_folder, path))
    )
