"""In-process document store following Firestore query semantics."""

from __future__ import annotations

import copy
import functools
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from fpt.models import Document, DocumentRef, GeoPoint
from fpt.store.base import DOCUMENT_ID, Filter, Ordering, StoreQuery

_MISSING = object()


def _type_rank(value: Any) -> int:
    # Firestore's cross-type ordering.
    if value is None:
        return 0
    if isinstance(value, bool):
        return 1
    if isinstance(value, (int, float)):
        return 2
    if isinstance(value, datetime):
        return 3
    if isinstance(value, str):
        return 4
    if isinstance(value, (bytes, bytearray)):
        return 5
    if isinstance(value, DocumentRef):
        return 6
    if isinstance(value, GeoPoint):
        return 7
    if isinstance(value, (list, tuple)):
        return 8
    return 9


def _compare(left: Any, right: Any) -> int:
    left_rank, right_rank = _type_rank(left), _type_rank(right)
    if left_rank != right_rank:
        return -1 if left_rank < right_rank else 1
    if left_rank == 0:
        return 0
    if isinstance(left, DocumentRef):
        left, right = left.path, right.path
    elif isinstance(left, GeoPoint):
        left, right = (left.latitude, left.longitude), (right.latitude, right.longitude)
    elif isinstance(left, (list, tuple)):
        for a, b in zip(left, right):
            result = _compare(a, b)
            if result:
                return result
        left, right = len(left), len(right)
    elif isinstance(left, dict):
        left, right = sorted(left), sorted(right)
    if left == right:
        return 0
    return -1 if left < right else 1


def _lookup(data: Dict[str, Any], path: str) -> Any:
    current: Any = data
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current


def _matches(data: Dict[str, Any], flt: Filter) -> bool:
    value = _lookup(data, flt.field)
    if value is _MISSING:
        return False
    if flt.op == "array-contains":
        return isinstance(value, list) and any(_compare(item, flt.value) == 0 for item in value)
    if flt.op == "==":
        return _compare(value, flt.value) == 0
    # Range filters only match values of the same type.
    if _type_rank(value) != _type_rank(flt.value):
        return False
    result = _compare(value, flt.value)
    return {
        ">": result > 0,
        ">=": result >= 0,
        "<": result < 0,
        "<=": result <= 0,
    }[flt.op]


def _merge(target: Dict[str, Any], patch: Dict[str, Any]) -> None:
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _merge(target[key], value)
        else:
            target[key] = copy.deepcopy(value)


class InMemoryStore:
    """Dictionary-backed store, used for tests and offline demos."""

    def __init__(self, collections: Optional[Dict[str, Dict[str, Dict[str, Any]]]] = None) -> None:
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = copy.deepcopy(collections or {})

    async def list_collections(self) -> List[str]:
        return [name for name, docs in self._collections.items() if docs]

    async def get_document(self, collection: str, doc_id: str) -> Optional[Document]:
        data = self._collections.get(collection, {}).get(doc_id)
        if data is None:
            return None
        return Document(id=doc_id, data=copy.deepcopy(data))

    async def fetch(self, query: StoreQuery) -> List[Document]:
        docs = self._collections.get(query.collection, {})
        rows = [
            (doc_id, data)
            for doc_id, data in docs.items()
            if all(_matches(data, flt) for flt in query.filters)
        ]

        ordering = query.ordering
        if ordering is None and query.start_after is not None:
            ordering = Ordering(DOCUMENT_ID)
        if ordering is not None:
            rows = self._order(rows, ordering)
            if query.start_after is not None:
                rows = self._after(rows, ordering, query.start_after)

        if query.limit is not None:
            rows = rows[: query.limit]
        return [Document(id=doc_id, data=copy.deepcopy(data)) for doc_id, data in rows]

    async def merge_document(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        target = self._collections.setdefault(collection, {}).setdefault(doc_id, {})
        _merge(target, data)

    async def delete_document(self, collection: str, doc_id: str) -> None:
        self._collections.get(collection, {}).pop(doc_id, None)

    @staticmethod
    def _sort_key(ordering: Ordering, doc_id: str, data: Dict[str, Any]) -> Tuple[Any, str]:
        if ordering.field == DOCUMENT_ID:
            return (doc_id, doc_id)
        return (_lookup(data, ordering.field), doc_id)

    def _cmp_keys(self, ordering: Ordering, left: Tuple[Any, str], right: Tuple[Any, str]) -> int:
        result = _compare(left[0], right[0]) or _compare(left[1], right[1])
        return -result if ordering.direction == "desc" else result

    def _order(
        self, rows: Iterable[Tuple[str, Dict[str, Any]]], ordering: Ordering
    ) -> List[Tuple[str, Dict[str, Any]]]:
        keyed = [
            (self._sort_key(ordering, doc_id, data), doc_id, data)
            for doc_id, data in rows
        ]
        # Documents without the ordering field are excluded, as in Firestore.
        keyed = [item for item in keyed if item[0][0] is not _MISSING]
        keyed.sort(key=functools.cmp_to_key(lambda a, b: self._cmp_keys(ordering, a[0], b[0])))
        return [(doc_id, data) for _, doc_id, data in keyed]

    def _after(
        self,
        rows: List[Tuple[str, Dict[str, Any]]],
        ordering: Ordering,
        cursor: Document,
    ) -> List[Tuple[str, Dict[str, Any]]]:
        cursor_key = self._sort_key(ordering, cursor.id, cursor.data)
        if cursor_key[0] is _MISSING:
            return rows
        return [
            (doc_id, data)
            for doc_id, data in rows
            if self._cmp_keys(ordering, self._sort_key(ordering, doc_id, data), cursor_key) > 0
        ]
