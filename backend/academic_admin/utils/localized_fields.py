"""Helpers for records carrying Spanish/English variants of the same field.

A record's ``language`` (``es``, ``en`` or ``both``) decides which variant is
authoritative. Records may be mappings or model instances; nothing here
mutates them.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional


LANGUAGE_TAGS = {"es": "ES", "en": "EN"}


def _get(record: Any, key: str) -> Any:
    if isinstance(record, dict):
        return record.get(key)
    return getattr(record, key, None)


def _string_value(record: Any, key: str) -> str:
    value = _get(record, key)
    return value.strip() if isinstance(value, str) else ""


def _language(record: Any) -> Optional[str]:
    value = _get(record, "language")
    # LanguageEnum es str, pero normalizamos por si llega el valor crudo
    return getattr(value, "value", value)


def _pick_preferred(primary: str, fallback: str) -> Optional[str]:
    if primary:
        return primary
    if fallback:
        return fallback
    return None


def _ordered_pairs(value_es: str, value_en: str, locale: str) -> List[tuple]:
    pairs = [("en", value_en), ("es", value_es)] if locale == "en" else [("es", value_es), ("en", value_en)]
    return [(lang, value) for lang, value in pairs if value]


def resolve_localized(record: Any, es_key: str, en_key: str, locale: str, empty_value: str = "") -> str:
    value_es = _string_value(record, es_key)
    value_en = _string_value(record, en_key)
    language = _language(record)

    if language == "both":
        items = _ordered_pairs(value_es, value_en, locale)
        if not items:
            return empty_value
        return "\n".join(f"{LANGUAGE_TAGS[lang]}: {value}" for lang, value in items)

    if language == "en":
        return _pick_preferred(value_en, value_es) or empty_value
    return _pick_preferred(value_es, value_en) or empty_value


def build_search_key(record: Any, es_key: str, en_key: str, locale: str) -> str:
    value_es = _string_value(record, es_key)
    value_en = _string_value(record, en_key)
    language = _language(record)

    if language == "both":
        return " ".join(value.lower() for value in (value_es, value_en) if value)
    if language == "en":
        return (_pick_preferred(value_en, value_es) or "").lower()
    return (_pick_preferred(value_es, value_en) or "").lower()


def localized_field_visibility(language: Optional[str]) -> Dict[str, bool]:
    language = getattr(language, "value", language)
    return {
        "show_spanish_fields": language in ("es", "both"),
        "show_english_fields": language in ("en", "both"),
    }


def missing_localized_fields(language: Optional[str], data: Any, fields: Iterable[str]) -> List[str]:
    """Return the ``<field>_es``/``<field>_en`` names required by ``language`` but blank in ``data``."""

    visibility = localized_field_visibility(language)
    missing: List[str] = []
    for field in fields:
        if visibility["show_spanish_fields"] and not _string_value(data, f"{field}_es"):
            missing.append(f"{field}_es")
        if visibility["show_english_fields"] and not _string_value(data, f"{field}_en"):
            missing.append(f"{field}_en")
    return missing


def normalize_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    trimmed = value.strip()
    return trimmed or None
