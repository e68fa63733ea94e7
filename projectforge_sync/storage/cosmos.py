"""
Cosmos DB project store.

The remote system-of-record for projects. Every call is bounded by the
configured timeout and every failure is classified into a
``RemoteSyncError`` so the coordinator can decide what it means.

Containers:
    projects: one document per project, ``id`` is the local project id,
        partition key ``/id`` so every lookup is a point read
    content_hashes: one document per content hash, ``id`` is the hash,
        referencing the project it belongs to

Project document schema:
{
    "id": "{project_id}",
    "title": "...", "description": "...", "long_description": null,
    "category": "...", "tags": [...], "technologies": [...], "features": [...],
    "roadmap": [{...}], "milestones": [{...}], "funding_tiers": [{...}],
    "funding_goal": 1000, "current_funding": 0, "deadline": "...",
    "team_size": 1, "status": "draft", "creator_id": "...",
    "image_hashes": [...], "image_url": "https://gateway/ipfs/{hash}",
    "ipfs_hash": null, "blockchain_tx_hash": null,
    "views": 0, "likes": 0, "comments_count": 0,
    "created_at": "{iso}", "updated_at": "{iso}",
    ...
}
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

import aiohttp
from azure.core.exceptions import ServiceRequestError, ServiceResponseError
from azure.cosmos import PartitionKey
from azure.cosmos.aio import ContainerProxy, CosmosClient
from azure.cosmos.exceptions import (
    CosmosHttpResponseError,
    CosmosResourceExistsError,
    CosmosResourceNotFoundError,
)

from ..exceptions import (
    AuthenticationError,
    ProjectStorageError,
    RemoteErrorKind,
    RemoteSyncError,
)
from ..logging_utils import SyncLoggerAdapter
from ..models.types import Project, ProjectUpdate
from ..schema import from_remote_record, to_remote_partial, to_remote_record
from .base import SyncConfig, get_credential
from .best_effort import SubOperationResult, run_best_effort
from .local import utc_now

logger = logging.getLogger(__name__)

T = TypeVar("T")

PARTITION_KEY_PATH = "/id"

# Cosmos DB accepts at most 10 operations per patch request
PATCH_OPERATION_LIMIT = 10

_TRANSIENT_STATUS_CODES = frozenset({408, 429})


def classify_error(
    error: BaseException,
    operation: str,
    project_id: str | None = None,
    timeout: float | None = None,
) -> RemoteSyncError:
    """Map an exception from the remote store to a ``RemoteSyncError``.

    NETWORK: timeouts, transport failures, 408/429 and 5xx responses
    SCHEMA_REJECTED: any other 4xx (validation, permission, conflict, missing record)
    UNKNOWN: everything else
    """
    if isinstance(error, RemoteSyncError):
        return error

    if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
        reason = "Remote call timed out"
        if timeout is not None:
            reason += f" after {timeout:g}s"
        return RemoteSyncError(RemoteErrorKind.NETWORK, operation, reason, project_id, error)

    if isinstance(error, CosmosHttpResponseError):
        status = error.status_code or 0
        message = getattr(error, "http_error_message", None) or error.message or str(error)
        reason = f"{status}: {message}" if status else message
        if status in _TRANSIENT_STATUS_CODES or status >= 500:
            kind = RemoteErrorKind.NETWORK
        elif 400 <= status < 500:
            kind = RemoteErrorKind.SCHEMA_REJECTED
        else:
            kind = RemoteErrorKind.UNKNOWN
        return RemoteSyncError(kind, operation, reason, project_id, error)

    if isinstance(
        error, (ServiceRequestError, ServiceResponseError, aiohttp.ClientError, ConnectionError)
    ):
        return RemoteSyncError(RemoteErrorKind.NETWORK, operation, str(error), project_id, error)

    if isinstance(error, AuthenticationError):
        return RemoteSyncError(
            RemoteErrorKind.SCHEMA_REJECTED, operation, error.message, project_id, error
        )

    reason = str(error) or type(error).__name__
    return RemoteSyncError(RemoteErrorKind.UNKNOWN, operation, reason, project_id, error)


@dataclass
class RemoteWriteResult:
    """Result of a primary remote write plus its best-effort side writes."""

    remote_id: str
    sub_operations: list[SubOperationResult] = field(default_factory=list)


@dataclass
class ConnectionReport:
    """Outcome of ``verify_connection``."""

    connected: bool
    schema_valid: bool
    errors: list[str] = field(default_factory=list)


class CosmosProjectClient:
    """Remote persistence client for projects.

    Holds no mutable state beyond the Cosmos client handle and container
    proxies, which are safe to share between concurrent calls.

    Containers can be injected (tests, or callers that manage their own
    Cosmos client); otherwise they are created on first use from ``config``.
    """

    def __init__(
        self,
        config: SyncConfig,
        projects: ContainerProxy | None = None,
        content_hashes: ContainerProxy | None = None,
    ) -> None:
        self.config = config
        self._credential: Any = None
        self._client: CosmosClient | None = None
        self._projects = projects
        self._content_hashes = content_hashes
        self._initialized = projects is not None and content_hashes is not None
        self._init_lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Connect and make sure the database and containers exist."""
        if self._initialized:
            return

        async with self._init_lock:
            if self._initialized:
                return
            if not self.config.cosmos_endpoint:
                raise ProjectStorageError("Cosmos endpoint is required")

            self._credential = get_credential(self.config)
            client = CosmosClient(self.config.cosmos_endpoint, credential=self._credential)
            self._client = client

            database = await client.create_database_if_not_exists(id=self.config.cosmos_database)
            self._projects = await database.create_container_if_not_exists(
                id=self.config.projects_container,
                partition_key=PartitionKey(path=PARTITION_KEY_PATH),
            )
            self._content_hashes = await database.create_container_if_not_exists(
                id=self.config.content_hashes_container,
                partition_key=PartitionKey(path=PARTITION_KEY_PATH),
            )
            self._initialized = True
            logger.info(
                f"Connected to Cosmos DB: {self.config.cosmos_endpoint} "
                f"(database={self.config.cosmos_database}, "
                f"auth={self.config.cosmos_auth_method.value})"
            )

    async def close(self) -> None:
        """Close the Cosmos client and credential."""
        if self._client:
            await self._client.close()
            self._client = None
            self._projects = None
            self._content_hashes = None
            self._initialized = False

        if self._credential and hasattr(self._credential, "close"):
            await self._credential.close()
        self._credential = None

    async def __aenter__(self) -> CosmosProjectClient:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    @property
    def projects(self) -> ContainerProxy:
        if self._projects is None:
            raise ProjectStorageError("Cosmos client not initialized")
        return self._projects

    @property
    def content_hashes(self) -> ContainerProxy:
        if self._content_hashes is None:
            raise ProjectStorageError("Cosmos client not initialized")
        return self._content_hashes

    # Operations

    async def insert(self, project: Project) -> RemoteWriteResult:
        """Create the remote record for a new project.

        The remote id is the local project id. When the project carries a
        content hash, a reference is recorded as a best-effort sub-operation.

        Raises:
            RemoteSyncError: If the primary insert fails
        """
        project_id = self._require_id(project)
        record = to_remote_record(project, self.config.gateway_url)

        created = await self._call(
            "insert", project_id, lambda: self.projects.create_item(body=record)
        )
        remote_id = (created or {}).get("id", project_id)

        result = RemoteWriteResult(remote_id=remote_id)
        if project.ipfs_hash:
            result.sub_operations.append(
                await self._record_content_hash(project.ipfs_hash, remote_id, project.creator_id)
            )
        return result

    async def upsert(self, project: Project) -> RemoteWriteResult:
        """Write the full project record, creating or replacing it.

        Used to re-push a local copy that never reached the remote.

        Raises:
            RemoteSyncError: If the write fails
        """
        project_id = self._require_id(project)
        record = to_remote_record(project, self.config.gateway_url)
        record["updated_at"] = utc_now()

        written = await self._call(
            "upsert", project_id, lambda: self.projects.upsert_item(body=record)
        )
        result = RemoteWriteResult(remote_id=(written or {}).get("id", project_id))
        if project.ipfs_hash:
            result.sub_operations.append(
                await self._record_content_hash(project.ipfs_hash, project_id, project.creator_id)
            )
        return result

    async def update(self, project_id: str, update: ProjectUpdate) -> None:
        """Apply a partial update to the remote record.

        Only the supplied columns are set, plus ``updated_at``. Updates with
        more than ``PATCH_OPERATION_LIMIT`` columns are sent as consecutive
        patches, ``updated_at`` going out with the last one.

        Raises:
            RemoteSyncError: If a patch fails (a missing record is
                SCHEMA_REJECTED)
        """
        partial = to_remote_partial(update, utc_now(), self.config.gateway_url)
        operations = [
            {"op": "set", "path": f"/{column}", "value": value} for column, value in partial.items()
        ]

        for start in range(0, len(operations), PATCH_OPERATION_LIMIT):
            batch = operations[start : start + PATCH_OPERATION_LIMIT]
            await self._call(
                "update",
                project_id,
                lambda batch=batch: self.projects.patch_item(
                    item=project_id, partition_key=project_id, patch_operations=batch
                ),
            )

    async def get_by_id(self, project_id: str) -> Project | None:
        """Point-read a project.

        Returns:
            The project, or None if there is no remote record

        Raises:
            RemoteSyncError: On any other failure
        """
        record = await self._call("get_by_id", project_id, lambda: self._read_record(project_id))
        if record is None:
            return None
        return self._to_project(record, "get_by_id")

    async def get_all(self) -> list[Project]:
        """All remote projects, newest ``created_at`` first.

        Records that cannot be translated are skipped with a warning.

        Raises:
            RemoteSyncError: If the query fails
        """

        async def _query() -> list[dict[str, Any]]:
            return [
                doc
                async for doc in self.projects.query_items(
                    query="SELECT * FROM c ORDER BY c.created_at DESC"
                )
            ]

        records = await self._call("get_all", None, _query)

        projects: list[Project] = []
        for record in records:
            project = self._to_project(record, "get_all")
            if project is not None:
                projects.append(project)
        return projects

    async def propagate_content_hash(self, project_id: str, content_hash: str) -> bool:
        """Record a content hash computed after the initial insert.

        Idempotent: when the remote record already carries ``content_hash``
        nothing is rewritten, and the hash reference document is only
        created once.

        Returns:
            True if the remote record carries the hash afterwards.
            Failures are logged and reported as False.
        """
        try:
            record = await self._call(
                "propagate_content_hash", project_id, lambda: self._read_record(project_id)
            )
            if record is None:
                self._adapter(project_id, "propagate_content_hash").warning(
                    f"Cannot propagate content hash, no remote record for {project_id}"
                )
                return False

            if record.get("ipfs_hash") != content_hash:
                operations = [
                    {"op": "set", "path": "/ipfs_hash", "value": content_hash},
                    {"op": "set", "path": "/updated_at", "value": utc_now()},
                ]
                await self._call(
                    "propagate_content_hash",
                    project_id,
                    lambda: self.projects.patch_item(
                        item=project_id, partition_key=project_id, patch_operations=operations
                    ),
                )

            await self._record_content_hash(content_hash, project_id, record.get("creator_id"))
            return True

        except RemoteSyncError:
            return False

    async def verify_connection(self) -> ConnectionReport:
        """Check connectivity and container layout.

        ``schema_valid`` requires both containers to be partitioned on
        ``/id``, which point reads by project id rely on.
        """
        errors: list[str] = []
        try:
            properties = await self._call("verify_connection", None, lambda: self.projects.read())
            hash_properties = await self._call(
                "verify_connection", None, lambda: self.content_hashes.read()
            )
        except RemoteSyncError as e:
            errors.append(f"Connection failed: {e.reason}")
            return ConnectionReport(connected=False, schema_valid=False, errors=errors)

        for name, props in (
            (self.config.projects_container, properties),
            (self.config.content_hashes_container, hash_properties),
        ):
            paths = (props or {}).get("partitionKey", {}).get("paths", [])
            if paths != [PARTITION_KEY_PATH]:
                errors.append(
                    f"Container {name} is partitioned on {paths}, expected [{PARTITION_KEY_PATH!r}]"
                )

        return ConnectionReport(connected=True, schema_valid=not errors, errors=errors)

    # Internals

    async def _call(
        self,
        operation: str,
        project_id: str | None,
        factory: Callable[[], Awaitable[T]],
    ) -> T:
        """Run one remote call under the timeout, classifying failures."""
        timeout = self.config.remote_timeout

        async def _run() -> T:
            await self.initialize()
            return await factory()

        try:
            return await asyncio.wait_for(_run(), timeout=timeout)
        except Exception as e:
            error = classify_error(e, operation, project_id, timeout)
            self._adapter(project_id, operation, error.kind).error(
                f"Remote {operation} failed ({error.kind.value}): {error.reason}"
            )
            raise error from e

    async def _read_record(self, project_id: str) -> dict[str, Any] | None:
        try:
            return await self.projects.read_item(item=project_id, partition_key=project_id)
        except CosmosResourceNotFoundError:
            return None

    async def _record_content_hash(
        self, content_hash: str, project_id: str, uploaded_by: str | None
    ) -> SubOperationResult:
        document = {
            "id": content_hash,
            "content_hash": content_hash,
            "project_id": project_id,
            "uploaded_by": uploaded_by,
            "file_category": "other",
            "is_public": True,
            "created_at": utc_now(),
        }

        async def _create() -> None:
            try:
                await self.content_hashes.create_item(body=document)
            except CosmosResourceExistsError:
                pass  # Already recorded

        return await run_best_effort(
            "record_content_hash",
            lambda: self._call("record_content_hash", project_id, _create),
            context={"project_id": project_id, "content_hash": content_hash},
        )

    def _to_project(self, record: dict[str, Any], operation: str) -> Project | None:
        try:
            return from_remote_record(record)
        except ProjectStorageError as e:
            self._adapter(record.get("id"), operation).warning(
                f"Skipping malformed remote record {record.get('id')}: {e}"
            )
            return None

    @staticmethod
    def _require_id(project: Project) -> str:
        if not project.id:
            raise ProjectStorageError("Project must have an id before it is written remotely")
        return project.id

    @staticmethod
    def _adapter(
        project_id: str | None,
        operation: str,
        kind: RemoteErrorKind | None = None,
    ) -> SyncLoggerAdapter:
        extra: dict[str, Any] = {"operation": operation, "project_id": project_id}
        if kind is not None:
            extra["error_kind"] = kind.value
        return SyncLoggerAdapter(logger, extra)
