"""Streaming NDJSON and CSV export of query results."""

from __future__ import annotations

import json
import logging
import math
from datetime import date
from typing import Any, AsyncIterator, Iterable, Iterator, List, Literal, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from fpt.models import Document, to_jsonable
from fpt.query.builder import MAX_EXPORT_LIMIT, build_store_query
from fpt.store.base import DocumentStore

LOGGER = logging.getLogger(__name__)

EXPORT_PAGE_SIZE = 500
DEFAULT_EXPORT_LIMIT = 1000

CONTENT_TYPES = {
    "jsonl": "application/x-ndjson",
    "csv": "text/csv; charset=utf-8",
}

ExportFormat = Literal["jsonl", "csv"]


class ExportRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    collection: str = Field(min_length=1)
    format: ExportFormat = "jsonl"
    limit: int = Field(default=DEFAULT_EXPORT_LIMIT, ge=1, le=MAX_EXPORT_LIMIT)
    start_after: Optional[str] = Field(default=None, alias="startAfter", min_length=1)
    columns: Optional[List[str]] = None


def parse_columns(raw: Optional[str]) -> Optional[List[str]]:
    """Split a comma-separated column list, dropping blanks. None if empty."""
    if raw is None:
        return None
    columns = [part.strip() for part in raw.split(",")]
    columns = [column for column in columns if column]
    return columns or None


def export_filename(collection: str, fmt: str, today: Optional[date] = None) -> str:
    today = today or date.today()
    return f"firestore-{collection}-{today.isoformat()}.{fmt}"


def csv_escape(value: Any) -> str:
    """Render one CSV field.

    Line endings are normalised to ``\\n``; fields containing a comma, quote
    or newline are quoted with embedded quotes doubled.
    """
    if value is None:
        return ""
    if isinstance(value, str):
        text = value
    elif isinstance(value, float) and not math.isfinite(value):
        text = to_jsonable(value)
    else:
        text = json.dumps(to_jsonable(value), ensure_ascii=False, separators=(",", ":"), allow_nan=False)
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    if any(char in text for char in ',"\n'):
        text = '"' + text.replace('"', '""') + '"'
    return text


def infer_columns(rows: Iterable[Document]) -> List[str]:
    keys: set[str] = set()
    for row in rows:
        keys.update(row.data or {})
    return sorted(keys)


def ndjson_line(row: Document) -> bytes:
    record = {"id": row.id, **to_jsonable(row.data or {})}
    return (json.dumps(record, ensure_ascii=False, allow_nan=False) + "\n").encode("utf-8")


def csv_header(columns: Sequence[str]) -> bytes:
    return (",".join(["id", *(csv_escape(column) for column in columns)]) + "\n").encode("utf-8")


def csv_line(row: Document, columns: Sequence[str]) -> bytes:
    data = row.data or {}
    fields = [csv_escape(row.id), *(csv_escape(data.get(column)) for column in columns)]
    return (",".join(fields) + "\n").encode("utf-8")


def write_ndjson(rows: Iterable[Document]) -> Iterator[bytes]:
    for row in rows:
        yield ndjson_line(row)


def write_csv(rows: Iterable[Document], columns: Optional[Sequence[str]] = None) -> Iterator[bytes]:
    """Yield a CSV export one line at a time.

    Without ``columns`` the header needs every row's keys first, so ``rows``
    is read twice.
    """
    if not columns:
        rows = list(rows)
        columns = infer_columns(rows)
    yield csv_header(columns)
    for row in rows:
        yield csv_line(row, columns)


async def iter_export_pages(store: DocumentStore, request: ExportRequest) -> AsyncIterator[List[Document]]:
    """Yield pages in document-id order until ``request.limit`` rows are read.

    Only ``request.start_after`` is resolved by id. Later pages resume from the
    previous page's last document, so deleting it mid-export does not restart.
    """
    remaining = request.limit
    cursor: Optional[Document] = None
    if request.start_after:
        cursor = await store.get_document(request.collection, request.start_after)
        if cursor is None:
            LOGGER.debug(
                "Export cursor %s/%s not found, starting from the beginning",
                request.collection,
                request.start_after,
            )
    while remaining > 0:
        page_size = min(EXPORT_PAGE_SIZE, remaining)
        docs = list(await store.fetch(build_store_query(request.collection, (), None, page_size, cursor)))
        if not docs:
            return
        yield docs
        remaining -= len(docs)
        if len(docs) < page_size:
            return
        cursor = docs[-1]


async def collect_columns(store: DocumentStore, request: ExportRequest) -> List[str]:
    keys: set[str] = set()
    async for page in iter_export_pages(store, request):
        for row in page:
            keys.update(row.data or {})
    return sorted(keys)


async def stream_export(store: DocumentStore, request: ExportRequest) -> AsyncIterator[bytes]:
    """Stream an export body, holding at most one page in memory."""
    LOGGER.info("Exporting %s as %s (limit %d)", request.collection, request.format, request.limit)
    if request.format == "jsonl":
        async for page in iter_export_pages(store, request):
            for line in write_ndjson(page):
                yield line
        return

    columns = request.columns or await collect_columns(store, request)
    yield csv_header(columns)
    async for page in iter_export_pages(store, request):
        for row in page:
            yield csv_line(row, columns)
