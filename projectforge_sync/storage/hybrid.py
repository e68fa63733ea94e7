"""
Local-first project sync.

Writes go to the local cache first and are then propagated to the remote
store on a best-effort basis. Reads prefer the local cache and fall back to
the remote, filling the cache on the way. There is no transaction across
the two stores: local success is what makes an operation succeed, and a
remote failure only attaches a diagnostic.

Result taxonomy:
    success=False: the local store rejected the operation (or the input
        was invalid); nothing was recorded
    success=True, error=None: recorded locally and remotely
    success=True, error="Database sync failed: ...": recorded locally, the
        remote copy lags behind (degraded success)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..exceptions import (
    ProjectStorageError,
    ProjectValidationError,
    RemoteErrorKind,
    RemoteSyncError,
)
from ..logging_utils import failure_context
from ..models.types import COUNTER_FIELDS, Project, ProjectUpdate, validate_new_project
from .base import SyncConfig
from .best_effort import SubOperationResult
from .cosmos import CosmosProjectClient
from .local import LocalProjectStore

logger = logging.getLogger(__name__)

SYNC_FAILED_PREFIX = "Database sync failed"


class SyncState(Enum):
    """Sync state of a project, tracked in memory only."""

    UNCOMMITTED = "uncommitted"  # Not written anywhere
    LOCAL_ONLY = "local_only"  # Written locally, remote not attempted or disabled
    SYNCED = "synced"  # Remote copy written
    SYNC_FAILED = "sync_failed"  # Remote write failed, local copy is ahead


@dataclass
class CreateResult:
    """Result of ``ProjectSyncCoordinator.create``."""

    success: bool
    project: Project | None = None
    remote_id: str | None = None
    error: str | None = None
    error_kind: RemoteErrorKind | None = None
    sub_operations: list[SubOperationResult] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        """Saved locally but not synced."""
        return self.success and self.error is not None


@dataclass
class UpdateResult:
    """Result of ``ProjectSyncCoordinator.update`` and ``resync``."""

    success: bool
    project: Project | None = None
    error: str | None = None
    error_kind: RemoteErrorKind | None = None

    @property
    def degraded(self) -> bool:
        return self.success and self.error is not None


@dataclass
class HashReport:
    """Content-hash coverage over all known projects."""

    total: int
    with_hash: int
    missing: list[str] = field(default_factory=list)


def sync_failure_message(error: ProjectStorageError) -> str:
    reason = error.reason if isinstance(error, RemoteSyncError) else error.message
    return f"{SYNC_FAILED_PREFIX}: {reason}"


class ProjectSyncCoordinator:
    """Coordinates the local cache and the remote project store.

    Operations for different project ids can run concurrently. Local writes
    always complete before the matching remote call starts, and remote calls
    are bounded by the remote client's timeout, so a hanging remote never
    holds up a local commit.

    Args:
        local: The local cache, the durability floor
        remote: Remote client; None runs in local-only mode
        on_sync_error: Called with every remote failure, for an external
            reconciliation job
    """

    def __init__(
        self,
        local: LocalProjectStore,
        remote: CosmosProjectClient | None = None,
        on_sync_error: Callable[[RemoteSyncError], None] | None = None,
    ) -> None:
        self._local = local
        self._remote = remote
        self.on_sync_error = on_sync_error
        self._sync_states: dict[str, SyncState] = {}

    @classmethod
    def from_config(
        cls,
        config: SyncConfig,
        on_sync_error: Callable[[RemoteSyncError], None] | None = None,
    ) -> ProjectSyncCoordinator:
        """Build the local store and, when configured, the remote client."""
        local = LocalProjectStore(config.local_path)
        remote = CosmosProjectClient(config) if config.remote_configured else None
        if remote is None:
            logger.info("Remote sync not configured, running in local-only mode")
        return cls(local, remote, on_sync_error=on_sync_error)

    @property
    def local(self) -> LocalProjectStore:
        return self._local

    @property
    def remote(self) -> CosmosProjectClient | None:
        return self._remote

    async def close(self) -> None:
        if self._remote is not None:
            await self._remote.close()

    # Write path

    async def create(self, fields: Project | dict[str, Any]) -> CreateResult:
        """Create a project locally, then insert it remotely.

        A fresh ``id`` and timestamps are always assigned, supporters start
        empty, and counters and ``current_funding`` start at 0. Only a
        local failure (or invalid input) makes the result unsuccessful.
        """
        try:
            project = validate_new_project(fields)
        except ProjectValidationError as e:
            logger.warning(f"Rejected project: {e.message}")
            return CreateResult(success=False, error=e.message)

        project.id = None
        project.created_at = None
        project.updated_at = None
        project.supporters = []
        project.current_funding = 0
        for name in COUNTER_FIELDS:
            setattr(project, name, 0)

        try:
            saved = self._local.put(project)
        except ProjectStorageError as e:
            logger.error(f"Failed to save project locally: {e.message}", extra=failure_context(e))
            return CreateResult(success=False, error=e.message)

        assert saved.id is not None
        self._sync_states[saved.id] = SyncState.LOCAL_ONLY
        logger.info(f"Project saved locally: {saved.id}")

        if self._remote is None:
            return CreateResult(success=True, project=saved)

        try:
            written = await self._remote.insert(saved)
        except ProjectStorageError as e:
            self._sync_failed(saved.id, e)
            return CreateResult(
                success=True,
                project=saved,
                error=sync_failure_message(e),
                error_kind=getattr(e, "kind", None),
            )

        self._sync_states[saved.id] = SyncState.SYNCED
        logger.info(f"Project synced remotely: {saved.id}")
        return CreateResult(
            success=True,
            project=saved,
            remote_id=written.remote_id,
            sub_operations=written.sub_operations,
        )

    async def update(
        self, project_id: str, update: ProjectUpdate | dict[str, Any]
    ) -> UpdateResult:
        """Apply a partial update locally, then remotely.

        A project known only to the remote store is pulled into the cache
        first. A remote failure never rolls back the local change.
        """
        try:
            if not isinstance(update, ProjectUpdate):
                update = ProjectUpdate.from_dict(update)
        except ProjectValidationError as e:
            return UpdateResult(success=False, error=e.message)

        try:
            updated = self._local.update(project_id, update)
            if updated is None and await self.get_by_id(project_id) is not None:
                updated = self._local.update(project_id, update)
        except ProjectStorageError as e:
            logger.error(f"Failed to update project {project_id} locally: {e.message}")
            return UpdateResult(success=False, error=e.message)

        if updated is None:
            return UpdateResult(success=False, error=f"Project not found: {project_id}")

        if self._remote is None:
            return UpdateResult(success=True, project=updated)

        try:
            await self._remote.update(project_id, update)
        except ProjectStorageError as e:
            self._sync_failed(project_id, e)
            return UpdateResult(
                success=True,
                project=updated,
                error=sync_failure_message(e),
                error_kind=getattr(e, "kind", None),
            )

        # An earlier failed write is not repaired by a partial update
        if self._sync_states.get(project_id) != SyncState.SYNC_FAILED:
            self._sync_states[project_id] = SyncState.SYNCED
        return UpdateResult(success=True, project=updated)

    async def propagate_hash(self, project_id: str, content_hash: str) -> bool:
        """Attach a late-arriving content hash to a local project and its remote copy.

        Safe to repeat with the same arguments.

        Returns:
            False if the project is not in the local cache or the remote
            propagation failed. In local-only mode, True once stored locally.
        """
        project = self._local.get(project_id)
        if project is None:
            logger.warning(f"Cannot propagate content hash, unknown project {project_id}")
            return False

        if project.ipfs_hash != content_hash:
            try:
                self._local.update(project_id, ProjectUpdate(ipfs_hash=content_hash))
            except ProjectStorageError as e:
                logger.error(f"Failed to store content hash for {project_id}: {e.message}")
                return False

        if self._remote is None:
            return True
        return await self._remote.propagate_content_hash(project_id, content_hash)

    async def resync(self, project_id: str) -> UpdateResult:
        """Push the full local copy of a project to the remote store.

        Meant for a reconciliation job working through ``SYNC_FAILED``
        projects; this class never schedules it on its own.
        """
        project = self._local.get(project_id)
        if project is None:
            return UpdateResult(success=False, error=f"Project not found: {project_id}")
        if self._remote is None:
            return UpdateResult(success=False, project=project, error="Remote sync is not configured")

        try:
            await self._remote.upsert(project)
        except ProjectStorageError as e:
            self._sync_failed(project_id, e)
            return UpdateResult(
                success=True,
                project=project,
                error=sync_failure_message(e),
                error_kind=getattr(e, "kind", None),
            )

        self._sync_states[project_id] = SyncState.SYNCED
        return UpdateResult(success=True, project=project)

    async def delete(self, project_id: str) -> bool:
        """Delete the local copy only; remote records are never deleted here."""
        try:
            deleted = self._local.delete(project_id)
        except ProjectStorageError as e:
            logger.error(f"Failed to delete project {project_id} locally: {e.message}")
            return False
        if deleted:
            self._sync_states.pop(project_id, None)
        return deleted

    # Read path

    async def get_by_id(self, project_id: str) -> Project | None:
        """Local cache first, then the remote store with write-through fill."""
        project = self._local.get(project_id)
        if project is not None:
            return project

        if self._remote is None:
            return None

        try:
            remote_project = await self._remote.get_by_id(project_id)
        except ProjectStorageError as e:
            logger.warning(f"Remote lookup for {project_id} failed: {e.message}")
            return None

        if remote_project is None:
            return None

        try:
            cached = self._local.cache(remote_project)
        except ProjectStorageError as e:
            logger.warning(f"Could not cache remote project {project_id}: {e.message}")
            return remote_project

        self._sync_states.setdefault(project_id, SyncState.SYNCED)
        return cached

    async def get_all(self, owner_id: str | None = None) -> list[Project]:
        """Merge local and remote projects by id.

        Local copies come first and win on id collision, whole-record (no
        field-level merge). Remote-only projects are appended unchanged. If
        the remote is unavailable the local projects are returned alone.
        """
        if owner_id is None:
            local_fetch = asyncio.to_thread(self._local.get_all)
        else:
            local_fetch = asyncio.to_thread(self._local.get_all_by_owner, owner_id)

        if self._remote is None:
            return await local_fetch

        local_projects, remote_projects = await asyncio.gather(
            local_fetch, self._remote.get_all(), return_exceptions=True
        )
        if isinstance(local_projects, BaseException):
            raise local_projects
        if isinstance(remote_projects, ProjectStorageError):
            logger.warning(
                f"Remote listing failed, returning local projects only: {remote_projects.message}"
            )
            return local_projects
        if isinstance(remote_projects, BaseException):
            raise remote_projects

        merged = list(local_projects)
        seen = {p.id for p in local_projects}
        for project in remote_projects:
            if project.id in seen:
                continue
            if owner_id is not None and project.creator_id != owner_id:
                continue
            seen.add(project.id)
            merged.append(project)
        return merged

    async def verify_content_hashes(self) -> HashReport:
        """Report which known projects still lack a content hash."""
        projects = await self.get_all()
        missing = [p.id for p in projects if not p.ipfs_hash and p.id]
        return HashReport(
            total=len(projects),
            with_hash=len(projects) - len(missing),
            missing=missing,
        )

    # Sync state

    def get_sync_state(self, project_id: str) -> SyncState:
        return self._sync_states.get(project_id, SyncState.UNCOMMITTED)

    def get_failed_projects(self) -> set[str]:
        """Projects whose remote copy is known to lag behind."""
        return {pid for pid, state in self._sync_states.items() if state == SyncState.SYNC_FAILED}

    def _sync_failed(self, project_id: str, error: ProjectStorageError) -> None:
        self._sync_states[project_id] = SyncState.SYNC_FAILED
        logger.warning(
            f"Project {project_id} saved locally but remote sync failed: {error.message}",
            extra=failure_context(error, project_id=project_id),
        )
        if self.on_sync_error and isinstance(error, RemoteSyncError):
            try:
                self.on_sync_error(error)
            except Exception as e:
                logger.error(f"on_sync_error callback raised: {e}")
