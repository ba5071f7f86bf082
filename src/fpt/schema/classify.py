"""Classification of document values into a closed set of type tags."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from enum import StrEnum
from typing import Any


class TypeTag(StrEnum):
    NULL = "null"
    BOOLEAN = "boolean"
    NUMBER = "number"
    STRING = "string"
    TIMESTAMP = "timestamp"
    BYTES = "bytes"
    REFERENCE = "reference"
    GEO_POINT = "geoPoint"
    ARRAY = "array"
    MAP = "map"
    UNKNOWN = "unknown"


def _has(value: Any, *names: str) -> bool:
    """True if ``value`` exposes any of ``names`` as an attribute or mapping key."""
    if isinstance(value, Mapping):
        return any(name in value for name in names)
    return any(hasattr(value, name) for name in names)


def classify(value: Any) -> TypeTag:
    """Return the type tag for a decoded document value.

    Checks run in a fixed order because several tagged shapes overlap: a value
    exposing both a base64 capability and latitude/longitude is ``bytes``.
    Never raises; unrecognised values are ``unknown``.
    """
    if value is None:
        return TypeTag.NULL
    if isinstance(value, bool):
        return TypeTag.BOOLEAN
    if isinstance(value, (int, float)):
        return TypeTag.NUMBER
    if isinstance(value, str):
        return TypeTag.STRING

    try:
        if isinstance(value, datetime) or _has(value, "to_date", "toDate"):
            return TypeTag.TIMESTAMP
        if isinstance(value, (bytes, bytearray, memoryview)) or _has(value, "to_base64", "toBase64"):
            return TypeTag.BYTES
        if _has(value, "path") and _has(value, "id"):
            return TypeTag.REFERENCE
        if _has(value, "latitude") and _has(value, "longitude"):
            return TypeTag.GEO_POINT
        if isinstance(value, (list, tuple)):
            return TypeTag.ARRAY
        if isinstance(value, Mapping):
            return TypeTag.MAP
    except Exception:  # noqa: BLE001
        return TypeTag.UNKNOWN
    return TypeTag.UNKNOWN
