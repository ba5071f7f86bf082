"""Observed-schema inference over sampled documents."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Dict

from fpt.errors import ValidationError
from fpt.models import FieldStats, ObservedSchema
from fpt.schema.classify import TypeTag, classify
from fpt.store.base import DocumentStore, StoreQuery

LOGGER = logging.getLogger(__name__)

DEFAULT_SAMPLE_LIMIT = 200
MAX_SAMPLE_LIMIT = 5000


def walk_document(data: Mapping[str, Any], fields: Dict[str, FieldStats], prefix: str = "") -> None:
    """Record every field of ``data`` into ``fields`` under its dotted path.

    Only maps are descended into; arrays count as leaf values.
    """
    for key, value in data.items():
        path = f"{prefix}.{key}" if prefix else str(key)
        tag = classify(value)
        fields.setdefault(path, FieldStats()).bump(tag.value)
        if tag is TypeTag.MAP:
            walk_document(value, fields, path)


def validate_sample_limit(sample_limit: Any) -> int:
    if isinstance(sample_limit, bool) or not isinstance(sample_limit, int):
        raise ValidationError("limit", "must be an integer")
    if not 1 <= sample_limit <= MAX_SAMPLE_LIMIT:
        raise ValidationError("limit", f"must be between 1 and {MAX_SAMPLE_LIMIT}")
    return sample_limit


async def infer_schema(
    store: DocumentStore,
    collection: str,
    sample_limit: int = DEFAULT_SAMPLE_LIMIT,
) -> ObservedSchema:
    """Sample up to ``sample_limit`` documents and summarise their field types.

    The sample is whatever the store returns first; no ordering is requested.
    """
    if not isinstance(collection, str) or not collection:
        raise ValidationError("collection", "must be a non-empty string")
    limit = validate_sample_limit(sample_limit)

    docs = await store.fetch(StoreQuery(collection=collection, limit=limit))

    fields: Dict[str, FieldStats] = {}
    for doc in docs:
        walk_document(doc.data, fields)

    LOGGER.debug("Inferred %d field paths from %d documents in %s", len(fields), len(docs), collection)
    return ObservedSchema(collection=collection, sample_size=len(docs), fields=fields)
