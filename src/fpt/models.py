"""Core data models for documents, schemas and query results."""

from __future__ import annotations

import base64
import math
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional


@dataclass(frozen=True, slots=True)
class DocumentRef:
    """Reference to another document."""

    path: str
    id: str


@dataclass(frozen=True, slots=True)
class GeoPoint:
    latitude: float
    longitude: float


@dataclass(slots=True)
class Document:
    """Snapshot of one document as read from the store.

    ``handle`` is whatever native object the store wants back when the
    document is used as a pagination cursor. It never takes part in equality.
    """

    id: str
    data: Dict[str, Any]
    handle: Any = field(default=None, compare=False, repr=False)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "data": to_jsonable(self.data)}


@dataclass(slots=True)
class FieldStats:
    present: int = 0
    types: Dict[str, int] = field(default_factory=dict)

    def bump(self, tag: str) -> None:
        self.present += 1
        self.types[tag] = self.types.get(tag, 0) + 1


@dataclass(slots=True)
class ObservedSchema:
    collection: str
    sample_size: int
    fields: Dict[str, FieldStats]

    def to_dict(self) -> dict[str, Any]:
        return {
            "collection": self.collection,
            "sampleSize": self.sample_size,
            "fields": {
                path: {"present": stats.present, "types": dict(stats.types)}
                for path, stats in self.fields.items()
            },
        }


@dataclass(slots=True)
class QueryResponse:
    collection: str
    docs: List[Document]
    next_page_token: Optional[str]

    def to_dict(self) -> dict[str, Any]:
        return {
            "collection": self.collection,
            "docs": [doc.to_dict() for doc in self.docs],
            "nextPageToken": self.next_page_token,
        }


@dataclass(slots=True)
class WriteCredential:
    enabled: bool = False
    token: Optional[str] = None


def to_jsonable(value: Any) -> Any:
    """Convert a document value into plain JSON-compatible data.

    NaN and infinities have no JSON form and become the strings ``"NaN"``,
    ``"Infinity"`` and ``"-Infinity"``.
    """
    if isinstance(value, float) and not math.isfinite(value):
        if math.isnan(value):
            return "NaN"
        return "Infinity" if value > 0 else "-Infinity"
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(value)).decode("ascii")
    if isinstance(value, DocumentRef):
        return value.path
    if isinstance(value, GeoPoint):
        return {"latitude": value.latitude, "longitude": value.longitude}
    if isinstance(value, dict):
        return {str(key): to_jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(item) for item in value]
    return str(value)
