"""Translation of declarative query requests into store queries."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, List, Literal, Mapping, Optional, Sequence, Type, TypeVar, Union

import pydantic
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, StrictBool, StrictFloat, StrictInt, StrictStr

from fpt.errors import ValidationError
from fpt.models import Document, QueryResponse
from fpt.store.base import DOCUMENT_ID, DocumentStore, Filter, Operator, Ordering, StoreQuery

LOGGER = logging.getLogger(__name__)

DEFAULT_LIMIT = 25
MAX_QUERY_LIMIT = 200
MAX_EXPORT_LIMIT = 5000

# Filter values are scalars or null; arrays and maps are rejected.
FilterValue = Union[StrictBool, StrictInt, StrictFloat, StrictStr, None]

ModelT = TypeVar("ModelT", bound=BaseModel)

_INTEGER = re.compile(r"-?[0-9]+")


class WhereClause(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    field: str = Field(min_length=1)
    op: Operator = Field(validation_alias=AliasChoices("op", "operator"))
    value: FilterValue


class OrderBy(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    field: str = Field(min_length=1)
    direction: Literal["asc", "desc"] = "asc"


class QueryRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    collection: str = Field(min_length=1)
    where: List[WhereClause] = Field(default_factory=list)
    order_by: Optional[OrderBy] = Field(default=None, alias="orderBy")
    limit: int = Field(default=DEFAULT_LIMIT, ge=1, le=MAX_QUERY_LIMIT)
    start_after_id: Optional[str] = Field(default=None, alias="startAfterId", min_length=1)


def validate_model(model: Type[ModelT], raw: Mapping[str, Any]) -> ModelT:
    """Validate ``raw`` into ``model``, reporting the first offending field."""
    try:
        return model.model_validate(raw)
    except pydantic.ValidationError as exc:
        error = exc.errors()[0]
        field = ".".join(str(part) for part in error["loc"]) or "request"
        raise ValidationError(field, error["msg"]) from exc


def parse_int_param(field: str, raw: Any) -> Any:
    """Convert a decimal integer string; other values pass through for validation.

    Only an optional minus sign and ASCII digits are accepted, so ``" 5 "``,
    ``"1_000"`` and ``"+5"`` fail closed.
    """
    if not isinstance(raw, str):
        return raw
    if not _INTEGER.fullmatch(raw):
        raise ValidationError(field, "must be an integer")
    return int(raw)


def parse_where_param(raw: Optional[str]) -> List[Any]:
    """Decode the ``where`` query-string parameter (a JSON array)."""
    if raw is None or not raw.strip():
        return []
    try:
        clauses = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValidationError("where", f"invalid JSON: {exc.msg}") from exc
    if not isinstance(clauses, list):
        raise ValidationError("where", "must be a JSON array")
    return clauses


def parse_query_request(raw: Mapping[str, Any]) -> QueryRequest:
    """Build a QueryRequest from loosely typed input such as query parameters.

    ``where`` may be a JSON string; numeric strings are coerced, anything else
    that is not a valid integer in range is rejected.
    """
    data = {key: value for key, value in raw.items() if value is not None and value != ""}
    if isinstance(data.get("where"), str):
        data["where"] = parse_where_param(data["where"])
    if "limit" in data:
        data["limit"] = parse_int_param("limit", data["limit"])
    return validate_model(QueryRequest, data)


def build_store_query(
    collection: str,
    where: Sequence[WhereClause],
    order_by: Optional[OrderBy],
    limit: int,
    cursor: Optional[Document] = None,
) -> StoreQuery:
    """Lower a request onto one native query.

    Filters keep their given order. Without an explicit ordering the query is
    ordered by document id so pages are stable.
    """
    ordering = (
        Ordering(order_by.field, order_by.direction)
        if order_by is not None
        else Ordering(DOCUMENT_ID, "asc")
    )
    return StoreQuery(
        collection=collection,
        filters=[Filter(clause.field, clause.op, clause.value) for clause in where],
        ordering=ordering,
        start_after=cursor,
        limit=limit,
    )


async def fetch_page(
    store: DocumentStore,
    collection: str,
    *,
    where: Sequence[WhereClause] = (),
    order_by: Optional[OrderBy] = None,
    limit: int = DEFAULT_LIMIT,
    start_after_id: Optional[str] = None,
) -> QueryResponse:
    """Fetch one page, resuming after ``start_after_id`` when it still exists."""
    cursor: Optional[Document] = None
    if start_after_id:
        cursor = await store.get_document(collection, start_after_id)
        if cursor is None:
            LOGGER.debug("Cursor %s/%s not found, starting from the beginning", collection, start_after_id)

    query = build_store_query(collection, where, order_by, limit, cursor)
    docs = list(await store.fetch(query))
    next_page_token = docs[-1].id if docs else None
    return QueryResponse(collection=collection, docs=docs, next_page_token=next_page_token)


async def run_query(store: DocumentStore, request: Union[QueryRequest, Mapping[str, Any]]) -> QueryResponse:
    """Validate ``request`` and run it as a single page query."""
    if not isinstance(request, QueryRequest):
        request = parse_query_request(request)
    return await fetch_page(
        store,
        request.collection,
        where=request.where,
        order_by=request.order_by,
        limit=request.limit,
        start_after_id=request.start_after_id,
    )
