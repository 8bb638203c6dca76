"""Partial updates for SQLModel rows.

Request bodies arrive as JSON-native values; dates come in as ISO strings and
enums as plain strings. Values are cast to the annotation declared on the
table model before being assigned so SQLite date columns never receive text.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Type, TypeVar

from pydantic import TypeAdapter, ValidationError
from sqlmodel import SQLModel


TModel = TypeVar("TModel", bound=SQLModel)

PROTECTED_FIELDS = ("id", "created_at")


def _coerce(model: Type[TModel], name: str, value: Any) -> Any:
    field = model.model_fields.get(name)
    if value is None or field is None:
        return value
    try:
        return TypeAdapter(field.annotation).validate_python(value)
    except ValidationError:
        # el router ya validó el cuerpo; se conserva el valor recibido
        return value


def apply_partial_update(instance: TModel, data: Dict[str, Any], protected: Iterable[str] = PROTECTED_FIELDS) -> TModel:
    """Assign ``data`` onto ``instance`` skipping keys in ``protected``."""

    model = type(instance)
    skip = set(protected)
    for key, value in data.items():
        if key in skip:
            continue
        setattr(instance, key, _coerce(model, key, value))
    return instance
