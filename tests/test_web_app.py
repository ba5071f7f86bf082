"""Tests for the FastAPI application."""

from __future__ import annotations

import csv
import io
import json
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from fpt.config import AppConfig
from fpt.errors import StoreUnavailable
from fpt.store.memory import InMemoryStore
from fpt.web.app import create_app

TOKEN = "s3cret-token"


@pytest.fixture
def client(store: InMemoryStore) -> TestClient:
    config = AppConfig(project_id="demo", write_enabled=True, write_token=TOKEN)
    return TestClient(create_app(config, store))


@pytest.fixture
def readonly_client(store: InMemoryStore) -> TestClient:
    return TestClient(create_app(AppConfig(project_id="demo"), store))


class TestCreateApp:
    """Tests for application construction."""

    def test_requires_project_without_store(self) -> None:
        with pytest.raises(ValueError, match="Missing project id"):
            create_app(AppConfig())

    @patch("fpt.store.firestore.FirestoreStore.connect")
    def test_connects_firestore_by_default(self, mock_connect) -> None:
        create_app(AppConfig(project_id="demo", timeout=7))
        mock_connect.assert_called_once_with("demo", timeout=7)


class TestBrowseEndpoints:
    """Tests for /health, /collections, /docs and /doc."""

    def test_health(self, client: TestClient) -> None:
        assert client.get("/health").json() == {"ok": True}

    def test_collections(self, client: TestClient) -> None:
        assert client.get("/collections").json() == {"collections": ["orders", "users"]}

    def test_docs_page(self, client: TestClient) -> None:
        response = client.get("/docs", params={"collection": "users", "limit": "2", "startAfter": "alice"})

        assert response.status_code == 200
        data = response.json()
        assert [doc["id"] for doc in data["docs"]] == ["bob", "carol"]
        assert data["nextPageToken"] == "carol"
        assert data["docs"][0]["data"]["manager"] == "users/alice"

    def test_get_doc(self, client: TestClient) -> None:
        response = client.get("/doc", params={"collection": "users", "id": "carol"})

        assert response.status_code == 200
        assert response.json()["data"]["office"] == {"latitude": 45.46, "longitude": 9.19}

    def test_get_missing_doc(self, client: TestClient) -> None:
        response = client.get("/doc", params={"collection": "users", "id": "zed"})

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_get_doc_requires_id(self, client: TestClient) -> None:
        response = client.get("/doc", params={"collection": "users"})

        assert response.status_code == 400
        assert "id" in response.json()["detail"]


class TestSchemaEndpoint:
    """Tests for GET /schema/infer."""

    def test_infer(self, client: TestClient) -> None:
        response = client.get("/schema/infer", params={"collection": "users", "limit": "3"})

        assert response.status_code == 200
        data = response.json()
        assert data["collection"] == "users"
        assert data["sampleSize"] == 3
        assert data["fields"]["name"] == {"present": 3, "types": {"string": 3}}

    def test_default_limit(self, client: TestClient) -> None:
        assert client.get("/schema/infer", params={"collection": "users"}).json()["sampleSize"] == 5

    @pytest.mark.parametrize("limit", ["0", "5001", "ten", "1.5"])
    def test_bad_limit_rejected(self, client: TestClient, limit: str) -> None:
        response = client.get("/schema/infer", params={"collection": "users", "limit": limit})

        assert response.status_code == 400
        assert response.json()["detail"].startswith("limit")

    def test_missing_collection(self, client: TestClient) -> None:
        response = client.get("/schema/infer")

        assert response.status_code == 400
        assert response.json()["detail"].startswith("collection")


class TestQueryEndpoint:
    """Tests for GET /query."""

    def test_filtered_ordered_query(self, client: TestClient) -> None:
        response = client.get(
            "/query",
            params={
                "collection": "users",
                "where": json.dumps([{"field": "age", "op": ">=", "value": 27}]),
                "orderByField": "age",
                "orderByDir": "desc",
                "limit": "3",
            },
        )

        assert response.status_code == 200
        data = response.json()
        assert [doc["id"] for doc in data["docs"]] == ["carol", "alice", "erin"]
        assert data["nextPageToken"] == "erin"

    def test_resume_with_token(self, client: TestClient) -> None:
        first = client.get("/query", params={"collection": "users", "limit": "3"}).json()
        second = client.get(
            "/query",
            params={"collection": "users", "limit": "3", "startAfterId": first["nextPageToken"]},
        ).json()

        assert [doc["id"] for doc in second["docs"]] == ["dave", "erin"]

    def test_bad_where_json(self, client: TestClient) -> None:
        response = client.get("/query", params={"collection": "users", "where": "[oops"})

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_argument"

    def test_limit_over_ceiling(self, client: TestClient) -> None:
        response = client.get("/query", params={"collection": "users", "limit": "201"})
        assert response.status_code == 400

    def test_direction_without_field(self, client: TestClient) -> None:
        response = client.get("/query", params={"collection": "users", "orderByDir": "desc"})

        assert response.status_code == 400
        assert response.json()["detail"].startswith("orderByField")

    def test_store_failure_is_503(self, store: InMemoryStore) -> None:
        store.fetch = AsyncMock(side_effect=StoreUnavailable("Firestore query failed"))
        client = TestClient(create_app(AppConfig(project_id="demo"), store))

        response = client.get("/query", params={"collection": "users"})

        assert response.status_code == 503
        assert response.json()["error"] == "store_unavailable"


class TestExportEndpoint:
    """Tests for GET /export."""

    def test_jsonl_export(self, client: TestClient) -> None:
        response = client.get("/export", params={"collection": "users", "format": "jsonl"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/x-ndjson")
        disposition = response.headers["content-disposition"]
        assert disposition.startswith('attachment; filename="firestore-users-')
        assert disposition.endswith('.jsonl"')
        lines = [json.loads(line) for line in response.text.splitlines()]
        assert [line["id"] for line in lines] == ["alice", "bob", "carol", "dave", "erin"]

    def test_csv_export_with_columns(self, client: TestClient) -> None:
        response = client.get(
            "/export",
            params={"collection": "users", "format": "csv", "columns": "name, age,", "limit": "2"},
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        rows = list(csv.reader(io.StringIO(response.text)))
        assert rows == [["id", "name", "age"], ["alice", "Alice", "34"], ["bob", "Bob", "27"]]

    def test_unsupported_format(self, client: TestClient) -> None:
        response = client.get("/export", params={"collection": "users", "format": "xml"})

        assert response.status_code == 400
        assert response.json()["detail"].startswith("format")

    def test_export_limit_ceiling(self, client: TestClient) -> None:
        response = client.get("/export", params={"collection": "users", "limit": "5001"})
        assert response.status_code == 400


class TestWriteEndpoints:
    """Tests for PATCH and DELETE /doc."""

    def test_patch_merges(self, client: TestClient, store: InMemoryStore) -> None:
        response = client.patch(
            "/doc",
            params={"collection": "users", "id": "bob"},
            json={"data": {"age": 28, "address": {"zip": "20100"}}},
            headers={"X-FPT-Write-Token": TOKEN},
        )

        assert response.status_code == 200
        doc = client.get("/doc", params={"collection": "users", "id": "bob"}).json()
        assert doc["data"]["age"] == 28
        assert doc["data"]["address"] == {"city": "Milan", "zip": "20100"}

    def test_patch_requires_data_mapping(self, client: TestClient) -> None:
        response = client.patch(
            "/doc",
            params={"collection": "users", "id": "bob"},
            json={"data": [1, 2]},
            headers={"X-FPT-Write-Token": TOKEN},
        )
        assert response.status_code == 400

    def test_delete(self, client: TestClient) -> None:
        response = client.delete(
            "/doc",
            params={"collection": "users", "id": "dave"},
            headers={"X-FPT-Write-Token": TOKEN},
        )

        assert response.status_code == 200
        assert client.get("/doc", params={"collection": "users", "id": "dave"}).status_code == 404

    def test_wrong_token(self, client: TestClient) -> None:
        response = client.delete(
            "/doc",
            params={"collection": "users", "id": "dave"},
            headers={"X-FPT-Write-Token": "nope"},
        )

        assert response.status_code == 401
        assert response.json()["error"] == "invalid_write_token"
        assert client.get("/doc", params={"collection": "users", "id": "dave"}).status_code == 200

    def test_missing_token(self, client: TestClient) -> None:
        response = client.patch("/doc", params={"collection": "users", "id": "x"}, json={"data": {}})
        assert response.status_code == 401

    def test_write_disabled(self, readonly_client: TestClient) -> None:
        response = readonly_client.delete(
            "/doc",
            params={"collection": "users", "id": "dave"},
            headers={"X-FPT-Write-Token": TOKEN},
        )

        assert response.status_code == 403
        assert response.json()["error"] == "write_disabled"


class TestParameterStrictness:
    """Numeric query parameters accept plain decimal integers only."""

    @pytest.mark.parametrize("limit", [" 5 ", "1_000", "+5", "0x10"])
    def test_schema_limit(self, client: TestClient, limit: str) -> None:
        response = client.get("/schema/infer", params={"collection": "users", "limit": limit})

        assert response.status_code == 400
        assert response.json()["detail"] == "limit: must be an integer"

    @pytest.mark.parametrize("path", ["/query", "/docs", "/export"])
    def test_other_routes_limit(self, client: TestClient, path: str) -> None:
        response = client.get(path, params={"collection": "users", "limit": "1_0"})

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_argument"


class TestNonFiniteValues:
    """Documents holding NaN or infinities still serialize."""

    @pytest.fixture
    def odd_client(self) -> TestClient:
        store = InMemoryStore({"m": {"a": {"x": float("nan"), "y": float("inf")}}})
        return TestClient(create_app(AppConfig(project_id="demo"), store))

    def test_query(self, odd_client: TestClient) -> None:
        response = odd_client.get("/query", params={"collection": "m"})

        assert response.status_code == 200
        assert response.json()["docs"][0]["data"] == {"x": "NaN", "y": "Infinity"}

    def test_get_doc(self, odd_client: TestClient) -> None:
        response = odd_client.get("/doc", params={"collection": "m", "id": "a"})

        assert response.status_code == 200
        assert response.json()["data"]["x"] == "NaN"

    def test_jsonl_export(self, odd_client: TestClient) -> None:
        response = odd_client.get("/export", params={"collection": "m", "format": "jsonl"})

        assert json.loads(response.text) == {"id": "a", "x": "NaN", "y": "Infinity"}
