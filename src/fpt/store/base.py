"""Document store capability interface."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Protocol, Sequence, runtime_checkable

from fpt.models import Document

Operator = Literal["==", ">", ">=", "<", "<=", "array-contains"]
Direction = Literal["asc", "desc"]

# Sentinel field path for ordering by document id.
DOCUMENT_ID = "__name__"


@dataclass(frozen=True, slots=True)
class Filter:
    field: str
    op: Operator
    value: Any


@dataclass(frozen=True, slots=True)
class Ordering:
    field: str
    direction: Direction = "asc"


@dataclass(slots=True)
class StoreQuery:
    """A single native query against one collection.

    ``ordering`` of None means the store may return documents in any order.
    """

    collection: str
    filters: List[Filter] = field(default_factory=list)
    ordering: Optional[Ordering] = None
    start_after: Optional[Document] = None
    limit: Optional[int] = None


@runtime_checkable
class DocumentStore(Protocol):
    """Async operations the core needs from a document database."""

    async def list_collections(self) -> List[str]:
        ...

    async def get_document(self, collection: str, doc_id: str) -> Optional[Document]:
        """Return the document, or None if it does not exist."""
        ...

    async def fetch(self, query: StoreQuery) -> Sequence[Document]:
        ...

    async def merge_document(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        """Create the document or merge ``data`` into it."""
        ...

    async def delete_document(self, collection: str, doc_id: str) -> None:
        ...
