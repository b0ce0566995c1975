"""Serialization of records into InfluxDB line protocol.

One record becomes one line:

    measurement[,tag=val...] field=val[,field=val...] timestamp

Tags are sorted by key and any tag or field whose value is empty is left out
entirely. A CR or LF anywhere in the line makes the record invalid.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any

from loguru import logger

from .models import Record


class InvalidRecordError(ValueError):
    """A record that must never reach the buffer (no fields, bad timestamp, ...)."""


_MEASUREMENT_ESCAPES = str.maketrans({",": r"\,", " ": r"\ "})
_TAG_ESCAPES = str.maketrans({",": r"\,", " ": r"\ ", "=": r"\="})
_FIELD_STRING_ESCAPES = str.maketrans({'"': r"\"", "\\": "\\\\"})
_LINE_BREAKS = ("\n", "\r")


def _reject_line_breaks(value: str, what: str) -> str:
    """Return `value`, or raise `InvalidRecordError` if it holds a CR or LF."""
    if any(ch in value for ch in _LINE_BREAKS):
        raise InvalidRecordError(f"{what} contains a line break: {value!r}")
    return value


def _is_empty(value: Any) -> bool:
    """True for values that must not be emitted."""
    if value is None:
        return True
    if isinstance(value, float) and not math.isfinite(value):
        return True
    return str(value) == ""


def merge_tags(*sources: Mapping[str, Any] | None) -> dict[str, Any]:
    """Merge tag maps; later sources overwrite same-named keys from earlier ones."""
    merged: dict[str, Any] = {}
    for source in sources:
        if source:
            merged.update({str(k): v for k, v in source.items()})
    return merged


def format_tags(tags: Mapping[str, Any]) -> str:
    """Render `,k=v` pairs sorted by key, skipping empty values.

    Returns an empty string when no tag survives.
    """
    parts = []
    for key in sorted(tags):
        value = tags[key]
        if _is_empty(value):
            continue
        key = _reject_line_breaks(str(key), "Tag key")
        text = _reject_line_breaks(str(value), f"Tag {key}")
        parts.append(f",{key.translate(_TAG_ESCAPES)}={text.translate(_TAG_ESCAPES)}")
    return "".join(parts)


def format_field_value(value: Any) -> str:
    """Render a field value with its line-protocol type marker."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return f"{value}i"
    if isinstance(value, float):
        return repr(value)
    text = _reject_line_breaks(str(value), "String field")
    return f'"{text.translate(_FIELD_STRING_ESCAPES)}"'


def format_fields(fields: Mapping[str, Any]) -> str:
    """Render `k=v,k=v` sorted by key, skipping empty values."""
    parts = [
        f"{_reject_line_breaks(str(key), 'Field key').translate(_TAG_ESCAPES)}={format_field_value(fields[key])}"
        for key in sorted(fields)
        if not _is_empty(fields[key])
    ]
    return ",".join(parts)


def parse_timestamp(value: Any) -> int:
    """Coerce a timestamp into non-negative integer epoch units.

    Accepts ints, integral floats and digit strings; anything else raises
    `InvalidRecordError`.
    """
    if isinstance(value, bool) or value is None:
        raise InvalidRecordError(f"Timestamp is invalid: {value!r}")
    if isinstance(value, int):
        ts = value
    elif isinstance(value, float):
        if not value.is_integer():
            raise InvalidRecordError(f"Timestamp is invalid: {value!r}")
        ts = int(value)
    else:
        try:
            ts = int(str(value).strip())
        except ValueError as exc:
            raise InvalidRecordError(f"Timestamp is invalid: {value!r}") from exc
    if ts < 0:
        raise InvalidRecordError(f"Timestamp is invalid: {value!r}")
    return ts


class LineFormatter:
    """Pure record -> line conversion with the configured global tags.

    Tag precedence, lowest to highest: global config tags, client tags,
    record tags, engine-injected tags.
    """

    def __init__(self, global_tags: Mapping[str, Any] | None = None) -> None:
        self._global_tags = dict(global_tags or {})

    def format(self, record: Record) -> str:
        """Serialize one record, raising `InvalidRecordError` when it cannot be shipped."""
        measurement = record.measurement.strip() if record.measurement else ""
        if not measurement:
            raise InvalidRecordError("Measurement is empty")
        _reject_line_breaks(measurement, "Measurement")

        fields = format_fields(record.fields)
        if not fields:
            raise InvalidRecordError(f"Record {measurement} has no non-empty fields")

        ts = parse_timestamp(record.timestamp)

        tags = format_tags(
            merge_tags(self._global_tags, record.client_tags, record.tags, record.engine_tags)
        )
        logger.debug(f"Created tags: {tags}")
        return f"{measurement.translate(_MEASUREMENT_ESCAPES)}{tags} {fields} {ts}"
