"""Shared fixtures."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from fpt.models import DocumentRef, GeoPoint
from fpt.store.memory import InMemoryStore


@pytest.fixture
def users_data() -> dict:
    return {
        "users": {
            "alice": {
                "name": "Alice",
                "age": 34,
                "tags": ["admin", "ops"],
                "address": {"city": "Turin", "geo": {"lat": 45.07}},
                "created": datetime(2024, 1, 5, tzinfo=timezone.utc),
            },
            "bob": {
                "name": "Bob",
                "age": 27,
                "tags": ["ops"],
                "address": {"city": "Milan"},
                "manager": DocumentRef(path="users/alice", id="alice"),
            },
            "carol": {
                "name": "Carol",
                "age": 41,
                "tags": [],
                "office": GeoPoint(latitude=45.46, longitude=9.19),
            },
            "dave": {"name": "Dave", "age": None},
            "erin": {"name": "Erin", "age": 27, "active": True},
        },
        "orders": {
            "o1": {"total": 10.5, "user": "alice"},
        },
    }


@pytest.fixture
def store(users_data: dict) -> InMemoryStore:
    return InMemoryStore(users_data)
