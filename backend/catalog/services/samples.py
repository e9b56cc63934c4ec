"""Check and coerce sample attribute values against their sample type."""

from __future__ import annotations

from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from .. import models


class SampleDataError(Exception):
    pass


_TRUE = {"true", "1", "yes"}
_FALSE = {"false", "0", "no"}


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _coerce(db: Session, attribute: models.SampleAttribute, value: Any) -> Any:
    kind = attribute.attribute_type
    try:
        if kind == "Integer":
            if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
                raise ValueError
            return int(value)
        if kind == "Float":
            if isinstance(value, bool):
                raise ValueError
            return float(value)
        if kind == "Boolean":
            if isinstance(value, bool):
                return value
            text = str(value).strip().lower()
            if text in _TRUE:
                return True
            if text in _FALSE:
                return False
            raise ValueError
        if kind == "Date":
            return date.fromisoformat(str(value)).isoformat()
        if kind == "SEEK Sample":
            linked = db.get(models.Sample, UUID(str(value)))
            if linked is None or linked.sample_type_id != attribute.linked_sample_type_id:
                raise ValueError
            return str(linked.id)
    except (TypeError, ValueError):
        raise SampleDataError(f"{attribute.title} is not a valid {kind}")
    return str(value)


def check_data(db: Session, sample_type: models.SampleType, data: dict[str, Any]) -> dict[str, Any]:
    """Return attribute values keyed by title; absent values are stored as ``None``."""

    known = {a.title for a in sample_type.sample_attributes}
    unknown = sorted(set(data) - known)
    if unknown:
        raise SampleDataError(f"Unknown attribute {unknown[0]}")
    checked: dict[str, Any] = {}
    for attribute in sample_type.sample_attributes:
        value = data.get(attribute.title)
        if _blank(value):
            if attribute.required or attribute.is_title:
                raise SampleDataError(f"{attribute.title} can't be blank")
            checked[attribute.title] = None
            continue
        checked[attribute.title] = _coerce(db, attribute, value)
    return checked


def title_from_data(sample_type: models.SampleType, data: dict[str, Any]) -> str | None:
    attribute = next((a for a in sample_type.sample_attributes if a.is_title), None)
    if attribute is None or data.get(attribute.title) is None:
        return None
    return str(data[attribute.title])
