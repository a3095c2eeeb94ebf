"""Typed extraction of ClickUp custom fields.

ClickUp returns custom fields as a heterogeneous list of descriptors. Each
descriptor is parsed into one of the value types below and then rendered to a
scalar suitable for a dynamic attribute column.
"""

from __future__ import annotations

import json
import re
import unicodedata
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Iterable, Mapping, Union


@dataclass(frozen=True, slots=True)
class LocationValue:
    key: str
    value: Mapping[str, Any] | None


@dataclass(frozen=True, slots=True)
class AttachmentValue:
    key: str
    files: tuple[Any, ...]


@dataclass(frozen=True, slots=True)
class DropdownValue:
    key: str
    label: str | None


@dataclass(frozen=True, slots=True)
class CurrencyValue:
    key: str
    amount: Decimal | None


@dataclass(frozen=True, slots=True)
class CheckboxValue:
    key: str
    checked: bool


@dataclass(frozen=True, slots=True)
class TextValue:
    key: str
    text: str | None


CustomFieldValue = Union[
    LocationValue,
    AttachmentValue,
    DropdownValue,
    CurrencyValue,
    CheckboxValue,
    TextValue,
]

_TRANSLITERATIONS = str.maketrans({"å": "a", "ä": "a", "ö": "o", "ø": "o", "æ": "ae"})
_NON_ALPHANUMERIC = re.compile(r"[^a-z0-9]+")
_TRUE_STRINGS = {"1", "true", "yes", "y", "t", "on", "ja"}


def normalise_field_name(name: Any) -> str:
    """Return a stable attribute key for a ClickUp field name."""

    if name is None:
        return ""
    text = str(name).strip().lower().translate(_TRANSLITERATIONS)
    text = unicodedata.normalize("NFKD", text)
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    text = _NON_ALPHANUMERIC.sub("_", text)
    return text.strip("_")


def parse_decimal(value: Any) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        result = value
    else:
        text = str(value).strip().replace("\xa0", "").replace(" ", "")
        if not text:
            return None
        if "," in text and "." not in text:
            text = text.replace(",", ".")
        try:
            result = Decimal(text)
        except (InvalidOperation, ValueError):
            return None
    if not result.is_finite():
        return None
    return result


def coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, (int, float, Decimal)):
        return value != 0
    return str(value).strip().lower() in _TRUE_STRINGS


def _stringify(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, sort_keys=True, ensure_ascii=False, default=str)
    return str(value)


def _resolve_dropdown(value: Any, options: Any) -> str | None:
    if value is None or value == "":
        return None
    if isinstance(options, list):
        wanted = str(value)
        for option in options:
            if not isinstance(option, dict):
                continue
            if str(option.get("orderindex")) == wanted or str(option.get("id")) == wanted:
                label = option.get("name") or option.get("label")
                if label is not None:
                    return str(label)
    return str(value)


def parse_custom_field(descriptor: Mapping[str, Any]) -> CustomFieldValue | None:
    """Parse one ClickUp descriptor; returns ``None`` for unnamed fields."""

    if not isinstance(descriptor, Mapping):
        return None
    key = normalise_field_name(descriptor.get("name"))
    if not key:
        return None
    field_type = str(descriptor.get("type") or "").strip().lower()
    value = descriptor.get("value")

    if field_type == "location":
        return LocationValue(key, dict(value) if isinstance(value, Mapping) else None)
    if field_type == "attachment":
        files = tuple(value) if isinstance(value, (list, tuple)) else ()
        return AttachmentValue(key, files)
    if field_type == "drop_down":
        type_config = descriptor.get("type_config")
        options = type_config.get("options") if isinstance(type_config, Mapping) else None
        return DropdownValue(key, _resolve_dropdown(value, options))
    if field_type in {"currency", "number"}:
        return CurrencyValue(key, parse_decimal(value))
    if field_type == "checkbox":
        return CheckboxValue(key, coerce_bool(value))
    return TextValue(key, _stringify(value))


def _render_location(value: LocationValue) -> str | None:
    if not value.value:
        return None
    return json.dumps(value.value, sort_keys=True, ensure_ascii=False, default=str)


def _render_attachment(value: AttachmentValue) -> str | None:
    if not value.files:
        return None
    return json.dumps(list(value.files), sort_keys=True, ensure_ascii=False, default=str)


_RENDERERS: dict[type, Callable[[Any], Any]] = {
    LocationValue: _render_location,
    AttachmentValue: _render_attachment,
    DropdownValue: lambda value: value.label,
    CurrencyValue: lambda value: value.amount,
    CheckboxValue: lambda value: value.checked,
    TextValue: lambda value: value.text,
}

# Null currency values are kept so a cleared price overwrites the stored one.
_KEEP_NULL = (CurrencyValue,)


def render_value(value: CustomFieldValue) -> Any:
    return _RENDERERS[type(value)](value)


def parse_custom_fields(fields: Iterable[Any] | None) -> list[CustomFieldValue]:
    """Parse descriptors in a deterministic order independent of input order."""

    if not fields:
        return []
    keyed: list[tuple[str, str, CustomFieldValue]] = []
    for descriptor in fields:
        parsed = parse_custom_field(descriptor)
        if parsed is None:
            continue
        keyed.append((parsed.key, str(descriptor.get("id") or ""), parsed))
    keyed.sort(key=lambda item: (item[0], item[1]))
    return [item[2] for item in keyed]


def extract_custom_fields(fields: Iterable[Any] | None) -> dict[str, Any]:
    """Render ClickUp custom fields into a normalised key/value record.

    When two descriptors normalise to the same key the one with the lowest
    field id wins.
    """

    return render_custom_fields(parse_custom_fields(fields))


def render_custom_fields(values: Iterable[CustomFieldValue]) -> dict[str, Any]:
    """Render already parsed values, keeping the first value per key."""

    record: dict[str, Any] = {}
    for value in values:
        if value.key in record:
            continue
        rendered = render_value(value)
        if rendered is None and not isinstance(value, _KEEP_NULL):
            continue
        record[value.key] = rendered
    return record
