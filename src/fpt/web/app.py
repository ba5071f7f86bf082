"""FastAPI application exposing the Firestore inspection API."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import Body, FastAPI, Header, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from fpt.config import AppConfig
from fpt.errors import FptError, NotFound, ValidationError
from fpt.query.builder import fetch_page, parse_int_param, parse_query_request, run_query, validate_model
from fpt.query.export import CONTENT_TYPES, ExportRequest, export_filename, parse_columns, stream_export
from fpt.schema.infer import DEFAULT_SAMPLE_LIMIT, infer_schema, validate_sample_limit
from fpt.store.base import DocumentStore
from fpt.write import WRITE_TOKEN_HEADER, assert_write_allowed

LOGGER = logging.getLogger(__name__)


class DocWritePayload(BaseModel):
    data: Dict[str, Any]


class DocParams(BaseModel):
    collection: str
    id: str


def _coerce_limit(raw: Optional[str], default: int) -> int:
    if raw is None or raw == "":
        return default
    return parse_int_param("limit", raw)


def _doc_params(collection: Optional[str], doc_id: Optional[str]) -> DocParams:
    params = validate_model(DocParams, {"collection": collection, "id": doc_id})
    if not params.collection:
        raise ValidationError("collection", "must not be empty")
    if not params.id:
        raise ValidationError("id", "must not be empty")
    return params


def create_app(config: AppConfig, store: DocumentStore | None = None) -> FastAPI:
    """Build the API bound to ``store`` (Firestore for ``config.project_id`` by default)."""
    if store is None:
        if not config.project_id:
            raise ValueError("Missing project id. Run `fpt setup` or pass --project <id>.")
        from fpt.store.firestore import FirestoreStore

        store = FirestoreStore.connect(config.project_id, timeout=config.timeout)

    credential = config.write_credential

    # /docs is a data route here, so the interactive API docs are disabled.
    app = FastAPI(title="Firestore Power Tools", version="0.1.0", docs_url=None, redoc_url=None)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.config = config
    app.state.store = store

    @app.on_event("startup")
    async def startup_event() -> None:
        logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")

    @app.exception_handler(FptError)
    async def fpt_error_handler(_request: Request, exc: FptError) -> JSONResponse:
        if exc.status_code >= 500:
            LOGGER.error("%s", exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.code, "detail": exc.message},
        )

    @app.get("/health")
    async def health() -> dict[str, bool]:
        return {"ok": True}

    @app.get("/collections")
    async def list_collections() -> dict[str, Any]:
        names = await store.list_collections()
        return {"collections": sorted(names)}

    @app.get("/docs")
    async def list_docs(
        collection: Optional[str] = None,
        limit: Optional[str] = None,
        start_after: Optional[str] = Query(None, alias="startAfter"),
    ) -> dict[str, Any]:
        request = parse_query_request(
            {"collection": collection, "limit": limit, "startAfterId": start_after}
        )
        page = await fetch_page(
            store,
            request.collection,
            limit=request.limit,
            start_after_id=request.start_after_id,
        )
        return page.to_dict()

    @app.get("/doc")
    async def get_doc(collection: Optional[str] = None, id: Optional[str] = None) -> dict[str, Any]:
        params = _doc_params(collection, id)
        doc = await store.get_document(params.collection, params.id)
        if doc is None:
            raise NotFound(f"Document {params.collection}/{params.id} not found")
        return doc.to_dict()

    @app.get("/schema/infer")
    async def schema_infer(collection: Optional[str] = None, limit: Optional[str] = None) -> dict[str, Any]:
        sample_limit = validate_sample_limit(_coerce_limit(limit, DEFAULT_SAMPLE_LIMIT))
        schema = await infer_schema(store, collection or "", sample_limit)
        return schema.to_dict()

    @app.get("/query")
    async def query(
        collection: Optional[str] = None,
        where: Optional[str] = None,
        order_by_field: Optional[str] = Query(None, alias="orderByField"),
        order_by_dir: Optional[str] = Query(None, alias="orderByDir"),
        limit: Optional[str] = None,
        start_after_id: Optional[str] = Query(None, alias="startAfterId"),
    ) -> dict[str, Any]:
        raw: Dict[str, Any] = {
            "collection": collection,
            "where": where,
            "limit": limit,
            "startAfterId": start_after_id,
        }
        if order_by_field:
            raw["orderBy"] = {"field": order_by_field, "direction": order_by_dir or "asc"}
        elif order_by_dir:
            raise ValidationError("orderByField", "required when orderByDir is given")
        response = await run_query(store, parse_query_request(raw))
        return response.to_dict()

    @app.get("/export")
    async def export(
        collection: Optional[str] = None,
        export_format: Optional[str] = Query(None, alias="format"),
        limit: Optional[str] = None,
        start_after: Optional[str] = Query(None, alias="startAfter"),
        columns: Optional[str] = None,
    ) -> StreamingResponse:
        raw = {
            "collection": collection,
            "format": export_format,
            "limit": limit,
            "startAfter": start_after,
            "columns": parse_columns(columns),
        }
        raw = {key: value for key, value in raw.items() if value not in (None, "")}
        if "limit" in raw:
            raw["limit"] = parse_int_param("limit", raw["limit"])
        request = validate_model(ExportRequest, raw)
        filename = export_filename(request.collection, request.format).replace('"', "")
        return StreamingResponse(
            stream_export(store, request),
            media_type=CONTENT_TYPES[request.format],
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    @app.patch("/doc")
    async def patch_doc(
        collection: Optional[str] = None,
        id: Optional[str] = None,
        payload: Any = Body(None),
        write_token: Optional[str] = Header(None, alias=WRITE_TOKEN_HEADER),
    ) -> dict[str, Any]:
        assert_write_allowed(credential, write_token)
        params = _doc_params(collection, id)
        body = validate_model(DocWritePayload, payload if isinstance(payload, dict) else {})
        await store.merge_document(params.collection, params.id, body.data)
        LOGGER.info("Merged document %s/%s", params.collection, params.id)
        return {"ok": True}

    @app.delete("/doc")
    async def delete_doc(
        collection: Optional[str] = None,
        id: Optional[str] = None,
        write_token: Optional[str] = Header(None, alias=WRITE_TOKEN_HEADER),
    ) -> dict[str, Any]:
        assert_write_allowed(credential, write_token)
        params = _doc_params(collection, id)
        await store.delete_document(params.collection, params.id)
        LOGGER.info("Deleted document %s/%s", params.collection, params.id)
        return {"ok": True}

    return app
