"""
directorio/utils/validators.py — Listing input validation and text sanitising
Field errors are Spanish, keyed by field name, ready for the form to show.
"""
from __future__ import annotations

import html
import re
from typing import Any, Optional

from directorio.utils.locations import BUSINESS_CATEGORY_NAMES, find_province

TAG_RE = re.compile(r"</?[A-Za-z!][^>]*>")
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
# Ecuador: +593 XX XXX XXXX or 0XX XXX XXXX
WHATSAPP_RE = re.compile(r"^(?:\+593|0)([2-7]|9[2-9])\d{7}$")
INSTAGRAM_RE = re.compile(r"^@?[\w](?!.*?\.{2})[\w.]{1,28}[\w]$")

MIN_NAME_LENGTH = 3
MIN_DESCRIPTION_LENGTH = 10


def sanitize_text(text: str) -> str:
    """
    Plain text for storage: entities decoded, markup removed, trimmed.
    Stable under repeated application, so a value read back and saved
    again is stored unchanged. Escaping happens where text is rendered.
    """
    cleaned = text
    while True:
        stripped = TAG_RE.sub("", html.unescape(cleaned))
        if stripped == cleaned:
            return cleaned.strip()
        cleaned = stripped


def validate_email(email: Optional[str]) -> bool:
    if not email:
        return True  # optional
    return bool(EMAIL_RE.match(email))


def validate_whatsapp(number: str) -> bool:
    return bool(WHATSAPP_RE.match(re.sub(r"\s+", "", number or "")))


def validate_instagram(handle: str) -> bool:
    return bool(INSTAGRAM_RE.match(handle or ""))


def clean_tags(tags: Any) -> list[str]:
    """Keep string tags, sanitised, dropping empties."""
    if not isinstance(tags, (list, tuple)):
        return []
    cleaned = (sanitize_text(t) for t in tags if isinstance(t, str))
    return [t for t in cleaned if t]


def validate_business_data(
    data: dict[str, Any],
    require_images: bool = True,
    check_reference_data: bool = True,
) -> dict[str, str]:
    """
    Validate a listing payload (snake_case keys, nested dicts).
    Returns {} when valid, otherwise {field: message}.
    """
    errors: dict[str, str] = {}

    name = data.get("name") or ""
    if len(name.strip()) < MIN_NAME_LENGTH:
        errors["name"] = "El nombre debe tener al menos 3 caracteres"

    description = data.get("description") or ""
    if len(description.strip()) < MIN_DESCRIPTION_LENGTH:
        errors["description"] = "La descripción debe tener al menos 10 caracteres"

    category = data.get("category")
    if check_reference_data and category and category not in BUSINESS_CATEGORY_NAMES:
        errors["category"] = "La categoría no es válida"

    location = data.get("location")
    if not location:
        errors["location"] = "La ubicación es requerida"
    elif not location.get("is_national"):
        province = location.get("province")
        city = location.get("city")
        if not province:
            errors["province"] = "La provincia es requerida"
        if not city:
            errors["city"] = "La ciudad es requerida"
        if check_reference_data and province and city:
            known = find_province(province)
            if known is None:
                errors["province"] = "La provincia no es válida"
            elif city not in known.city_names:
                errors["city"] = "La ciudad no pertenece a la provincia"

    contact = data.get("contact_info")
    if not contact:
        errors["contact_info"] = "La información de contacto es requerida"
    else:
        if contact.get("email") and not validate_email(contact["email"]):
            errors["email"] = "El email no es válido"
        whatsapp = contact.get("whatsapp")
        if not whatsapp:
            errors["whatsapp"] = "El número de WhatsApp es requerido"
        elif not validate_whatsapp(whatsapp):
            errors["whatsapp"] = (
                "El número de WhatsApp no es válido. "
                "Debe ser un número de Ecuador (+593 o empezar con 0)"
            )
        if contact.get("instagram") and not validate_instagram(contact["instagram"]):
            errors["instagram"] = "El usuario de Instagram no es válido"

    if require_images and not data.get("images"):
        errors["images"] = "Se requiere al menos una imagen"

    return errors
