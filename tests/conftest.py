"""
Shared test configuration and fixtures.

Remote tests run against ``FakeContainer``, an in-memory stand-in for an
async Cosmos ``ContainerProxy`` that implements the calls the project
client makes. It can be switched into failure modes:

- ``unavailable``: every call raises ``ServiceRequestError`` (network down)
- ``delay``: every call sleeps first (timeouts)
- ``validator``: called with each written record, may raise a
  ``CosmosHttpResponseError`` (remote schema/constraint rejection)
"""

from __future__ import annotations

import asyncio
import copy
import tempfile
import time
import uuid
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
from azure.core.exceptions import ServiceRequestError
from azure.cosmos.exceptions import (
    CosmosHttpResponseError,
    CosmosResourceExistsError,
    CosmosResourceNotFoundError,
)

from projectforge_sync.storage.base import SyncConfig
from projectforge_sync.storage.cosmos import CosmosProjectClient
from projectforge_sync.storage.hybrid import ProjectSyncCoordinator
from projectforge_sync.storage.local import LocalProjectStore

BAD_CREATOR_ID = "bad-uuid"


class FakeContainer:
    """In-memory async Cosmos container partitioned on ``/id``."""

    def __init__(
        self,
        container_id: str = "projects",
        partition_key_path: str = "/id",
        validator: Callable[[dict[str, Any]], None] | None = None,
    ):
        self.id = container_id
        self.partition_key_path = partition_key_path
        self.validator = validator
        self.items: dict[str, dict[str, Any]] = {}
        self.calls: list[tuple[str, Any]] = []
        self.unavailable = False
        self.delay = 0.0

    async def _enter(self, operation: str, payload: Any) -> None:
        self.calls.append((operation, copy.deepcopy(payload)))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.unavailable:
            raise ServiceRequestError("Connection refused")

    def _store(self, body: dict[str, Any]) -> dict[str, Any]:
        if self.validator:
            self.validator(body)
        stored = copy.deepcopy(body)
        stored.update({"_rid": uuid.uuid4().hex[:8], "_etag": uuid.uuid4().hex, "_ts": int(time.time())})
        self.items[body["id"]] = stored
        return copy.deepcopy(stored)

    def calls_of(self, operation: str) -> list[Any]:
        return [payload for name, payload in self.calls if name == operation]

    async def create_item(self, body: dict[str, Any], **kwargs: Any) -> dict[str, Any]:
        await self._enter("create_item", body)
        if body["id"] in self.items:
            raise CosmosResourceExistsError(
                status_code=409,
                message="Entity with the specified id already exists in the system.",
            )
        return self._store(body)

    async def upsert_item(self, body: dict[str, Any], **kwargs: Any) -> dict[str, Any]:
        await self._enter("upsert_item", body)
        return self._store(body)

    async def read_item(self, item: str, partition_key: Any, **kwargs: Any) -> dict[str, Any]:
        await self._enter("read_item", item)
        if item not in self.items:
            raise CosmosResourceNotFoundError(status_code=404, message="Entity with the specified id does not exist in the system.")
        return copy.deepcopy(self.items[item])

    async def patch_item(
        self,
        item: str,
        partition_key: Any,
        patch_operations: list[dict[str, Any]],
        **kwargs: Any,
    ) -> dict[str, Any]:
        await self._enter("patch_item", {"item": item, "operations": patch_operations})
        if item not in self.items:
            raise CosmosResourceNotFoundError(status_code=404, message="Entity with the specified id does not exist in the system.")
        patched = copy.deepcopy(self.items[item])
        for operation in patch_operations:
            assert operation["op"] == "set"
            patched[operation["path"].lstrip("/")] = copy.deepcopy(operation["value"])
        return self._store(patched)

    def query_items(self, query: str, **kwargs: Any):
        async def _iterate():
            await self._enter("query_items", query)
            records = sorted(
                self.items.values(), key=lambda doc: doc.get("created_at") or "", reverse=True
            )
            for record in records:
                yield copy.deepcopy(record)

        return _iterate()

    async def read(self, **kwargs: Any) -> dict[str, Any]:
        await self._enter("read", None)
        return {
            "id": self.id,
            "partitionKey": {"paths": [self.partition_key_path], "kind": "Hash"},
        }


def reject_creator(creator_id: str = BAD_CREATOR_ID) -> Callable[[dict[str, Any]], None]:
    """Validator that rejects records referencing ``creator_id``."""

    def _validate(record: dict[str, Any]) -> None:
        if record.get("creator_id") == creator_id:
            raise CosmosHttpResponseError(
                status_code=400,
                message=f'invalid input syntax for type uuid: "{creator_id}"',
            )

    return _validate


def make_fields(**overrides: Any) -> dict[str, Any]:
    """Valid camelCase create fields."""
    fields: dict[str, Any] = {
        "title": "Solar Kiosk",
        "description": "Off-grid charging for market stalls",
        "category": "Energy",
        "creatorId": "5b0c7c3e-2f51-4a8e-9a57-0d7f5a1c2e11",
        "fundingGoal": 1000,
        "deadline": "2026-12-31",
        "tags": ["solar", "community"],
    }
    fields.update(overrides)
    return fields


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sync_config():
    """Key-auth config pointing at a test endpoint, with a short timeout."""
    return SyncConfig(
        cosmos_endpoint="https://test.documents.azure.com:443/",
        cosmos_auth_method="key",
        cosmos_key="test-key",
        cosmos_database="test-db",
        remote_timeout=0.5,
    )


@pytest.fixture
def projects_container():
    return FakeContainer("projects", validator=reject_creator())


@pytest.fixture
def hashes_container():
    return FakeContainer("content_hashes")


@pytest.fixture
def remote(sync_config, projects_container, hashes_container):
    return CosmosProjectClient(
        sync_config, projects=projects_container, content_hashes=hashes_container
    )


@pytest.fixture
def local_store():
    return LocalProjectStore()


@pytest.fixture
def coordinator(local_store, remote):
    return ProjectSyncCoordinator(local_store, remote)


@pytest.fixture
def project_fields():
    """Factory for valid create fields; keyword arguments override."""
    return make_fields


@pytest.fixture
def fake_container():
    """The ``FakeContainer`` class, for tests that need their own containers."""
    return FakeContainer
