"""Firestore-backed document store using the async Google client."""

from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from google.api_core import exceptions as google_exceptions
from google.auth.exceptions import GoogleAuthError
from google.cloud import firestore
from google.cloud.firestore_v1.base_document import BaseDocumentReference, DocumentSnapshot
from google.cloud.firestore_v1.base_query import FieldFilter
from google.cloud.firestore_v1.field_path import FieldPath

from fpt.errors import StoreUnavailable, ValidationError
from fpt.models import Document, DocumentRef, GeoPoint
from fpt.store.base import DOCUMENT_ID, StoreQuery

LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0

# Operator spellings that differ in the Python client.
NATIVE_OPERATORS = {"array-contains": "array_contains"}


def decode_value(value: Any) -> Any:
    """Map native client values onto the closed document value vocabulary."""
    if isinstance(value, BaseDocumentReference):
        return DocumentRef(path=value.path, id=value.id)
    if isinstance(value, firestore.GeoPoint):
        return GeoPoint(latitude=value.latitude, longitude=value.longitude)
    if isinstance(value, dict):
        return {key: decode_value(item) for key, item in value.items()}
    if isinstance(value, list):
        return [decode_value(item) for item in value]
    # None, bool, numbers, str, bytes and datetimes pass through unchanged.
    return value


def _to_document(snapshot: DocumentSnapshot) -> Document:
    return Document(
        id=snapshot.id,
        data=decode_value(snapshot.to_dict() or {}),
        handle=snapshot,
    )


@contextmanager
def _guard(action: str) -> Iterator[None]:
    try:
        yield
    except (google_exceptions.InvalidArgument, google_exceptions.FailedPrecondition) as exc:
        raise ValidationError("query", exc.message) from exc
    except google_exceptions.GoogleAPIError as exc:
        LOGGER.warning("Firestore %s failed: %s", action, exc)
        raise StoreUnavailable(f"Firestore {action} failed: {exc}") from exc
    except asyncio.TimeoutError as exc:
        raise StoreUnavailable(f"Firestore {action} timed out") from exc
    except ValueError as exc:
        # The client rejects malformed queries before sending them.
        raise ValidationError("query", str(exc)) from exc


class FirestoreStore:
    """DocumentStore over ``google.cloud.firestore.AsyncClient``.

    Credentials come from Application Default Credentials.
    """

    def __init__(self, client: firestore.AsyncClient, *, timeout: float = DEFAULT_TIMEOUT) -> None:
        self._client = client
        self.timeout = timeout

    @classmethod
    def connect(cls, project_id: str, *, timeout: float = DEFAULT_TIMEOUT) -> "FirestoreStore":
        try:
            client = firestore.AsyncClient(project=project_id)
        except GoogleAuthError as exc:
            raise StoreUnavailable(f"No usable Google credentials: {exc}") from exc
        return cls(client, timeout=timeout)

    async def list_collections(self) -> List[str]:
        with _guard("listCollections"):
            return [collection.id async for collection in self._client.collections()]

    async def get_document(self, collection: str, doc_id: str) -> Optional[Document]:
        with _guard("get"):
            snapshot = await self._client.collection(collection).document(doc_id).get(
                timeout=self.timeout
            )
        if not snapshot.exists:
            return None
        return _to_document(snapshot)

    async def fetch(self, query: StoreQuery) -> List[Document]:
        cursor: Any = None
        if query.start_after is not None:
            cursor = query.start_after.handle
            if not isinstance(cursor, DocumentSnapshot):
                with _guard("get"):
                    cursor = await self._client.collection(query.collection).document(
                        query.start_after.id
                    ).get(timeout=self.timeout)

        with _guard("query"):
            native: Any = self._client.collection(query.collection)
            for flt in query.filters:
                native = native.where(
                    filter=FieldFilter(flt.field, NATIVE_OPERATORS.get(flt.op, flt.op), flt.value)
                )

            if query.ordering is not None:
                field = query.ordering.field
                native = native.order_by(
                    FieldPath.document_id() if field == DOCUMENT_ID else field,
                    direction=(
                        firestore.Query.DESCENDING
                        if query.ordering.direction == "desc"
                        else firestore.Query.ASCENDING
                    ),
                )

            if cursor is not None:
                native = native.start_after(cursor)
            if query.limit is not None:
                native = native.limit(query.limit)

            snapshots = await native.get(timeout=self.timeout)
        return [_to_document(snapshot) for snapshot in snapshots]

    async def merge_document(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        with _guard("set"):
            await self._client.collection(collection).document(doc_id).set(
                data, merge=True, timeout=self.timeout
            )

    async def delete_document(self, collection: str, doc_id: str) -> None:
        with _guard("delete"):
            await self._client.collection(collection).document(doc_id).delete(
                timeout=self.timeout
            )
