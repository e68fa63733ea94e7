"""
Local project cache.

The durability floor of the sync layer: once ``put`` returns, ``get``
finds the project no matter what happens on the remote side.

Projects live in memory, keyed by id, and are optionally mirrored to a
single JSON file. File writes are atomic (temp file + rename), so a crash
mid-write leaves the previous snapshot intact.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
import threading
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from ..exceptions import ProjectValidationError, StorageIOError
from ..models.types import Project, ProjectUpdate

logger = logging.getLogger(__name__)


def utc_now() -> str:
    """Current UTC time as an ISO 8601 string."""
    return datetime.now(UTC).isoformat()


class LocalProjectStore:
    """Synchronous keyed store of projects.

    All reads and writes go through one store-wide lock, so concurrent
    partial updates to the same project are applied one after another and
    none is lost. Callers get deep copies; mutating a returned project does
    not change the stored one.

    File format (when ``path`` is set):
    {
        "version": 1,
        "projects": [{...camelCase project...}, ...]
    }
    """

    FILE_VERSION = 1

    def __init__(self, path: str | Path | None = None) -> None:
        """Initialize the store.

        Args:
            path: JSON file to persist to; in-memory only when None

        Raises:
            StorageIOError: If an existing file cannot be read
        """
        self.path = Path(path).expanduser() if path else None
        self._lock = threading.Lock()
        self._projects: dict[str, Project] = {}

        if self.path is not None:
            self._load()

    def put(self, project: Project) -> Project:
        """Store a project, assigning ``id`` and timestamps.

        ``id`` is generated only when absent. ``created_at`` is set once
        and ``updated_at`` is refreshed.

        Raises:
            StorageIOError: If the project cannot be serialized or persisted
        """
        stored = copy.deepcopy(project)
        now = utc_now()
        if not stored.id:
            stored.id = str(uuid.uuid4())
        if not stored.created_at:
            stored.created_at = now
        stored.updated_at = now
        self._check_serializable(stored)

        with self._lock:
            previous = self._projects.get(stored.id)
            self._projects[stored.id] = stored
            try:
                self._persist()
            except StorageIOError:
                self._restore(stored.id, previous)
                raise

        return copy.deepcopy(stored)

    def cache(self, project: Project) -> Project:
        """Store a project fetched from elsewhere, timestamps untouched.

        If the id is already present the local copy is kept and returned.

        Raises:
            StorageIOError: If the project has no id or cannot be persisted
        """
        if not project.id:
            raise StorageIOError("cache_project", cause=ValueError("project has no id"))
        stored = copy.deepcopy(project)
        self._check_serializable(stored)

        with self._lock:
            existing = self._projects.get(stored.id)
            if existing is not None:
                return copy.deepcopy(existing)
            self._projects[stored.id] = stored
            try:
                self._persist()
            except StorageIOError:
                self._restore(stored.id, None)
                raise
        return copy.deepcopy(stored)

    def get(self, project_id: str) -> Project | None:
        with self._lock:
            project = self._projects.get(project_id)
            return copy.deepcopy(project) if project else None

    def get_all(self) -> list[Project]:
        """All projects in insertion order."""
        with self._lock:
            return [copy.deepcopy(p) for p in self._projects.values()]

    def get_all_by_owner(self, owner_id: str) -> list[Project]:
        with self._lock:
            return [copy.deepcopy(p) for p in self._projects.values() if p.creator_id == owner_id]

    def update(self, project_id: str, update: ProjectUpdate) -> Project | None:
        """Shallow-merge ``update`` into a stored project.

        The read-modify-write happens under the store lock.

        Returns:
            The updated project, or None if ``project_id`` is unknown
        """
        with self._lock:
            current = self._projects.get(project_id)
            if current is None:
                return None

            merged = copy.deepcopy(current)
            copy.deepcopy(update).apply_to(merged)
            merged.updated_at = utc_now()
            self._check_serializable(merged)

            self._projects[project_id] = merged
            try:
                self._persist()
            except StorageIOError:
                self._projects[project_id] = current
                raise
            return copy.deepcopy(merged)

    def delete(self, project_id: str) -> bool:
        with self._lock:
            removed = self._projects.pop(project_id, None)
            if removed is None:
                return False
            try:
                self._persist()
            except StorageIOError:
                self._projects[project_id] = removed
                raise
            return True

    def replace_all(self, projects: list[Project]) -> int:
        """Replace the whole cache with ``projects`` (import).

        Projects without an id get one. Returns the number stored.
        """
        replacement: dict[str, Project] = {}
        now = utc_now()
        for project in projects:
            stored = copy.deepcopy(project)
            if not stored.id:
                stored.id = str(uuid.uuid4())
            stored.created_at = stored.created_at or now
            stored.updated_at = stored.updated_at or now
            self._check_serializable(stored)
            replacement[stored.id] = stored

        with self._lock:
            previous = self._projects
            self._projects = replacement
            try:
                self._persist()
            except StorageIOError:
                self._projects = previous
                raise
        return len(replacement)

    def stats(self) -> dict[str, Any]:
        """Aggregate numbers over the cached projects."""
        with self._lock:
            projects = list(self._projects.values())
        return {
            "total_projects": len(projects),
            "total_funding_goals": sum(p.funding_goal for p in projects),
            "total_views": sum(p.views for p in projects),
        }

    def __len__(self) -> int:
        with self._lock:
            return len(self._projects)

    def __contains__(self, project_id: object) -> bool:
        with self._lock:
            return project_id in self._projects

    # Persistence (callers hold the lock)

    def _restore(self, project_id: str, previous: Project | None) -> None:
        if previous is None:
            self._projects.pop(project_id, None)
        else:
            self._projects[project_id] = previous

    def _load(self) -> None:
        assert self.path is not None
        if not self.path.exists():
            return
        try:
            with open(self.path, encoding="utf-8") as f:
                content = f.read()
            data = json.loads(content) if content.strip() else {}
        except json.JSONDecodeError as e:
            raise StorageIOError("parse_json", str(self.path), e) from e
        except OSError as e:
            raise StorageIOError("read_json", str(self.path), e) from e

        if not isinstance(data, dict) or not isinstance(data.get("projects", []), list):
            raise StorageIOError("parse_json", str(self.path), ValueError("not a project cache file"))

        loaded: dict[str, Project] = {}
        for entry in data.get("projects", []):
            if not isinstance(entry, dict):
                raise StorageIOError("parse_json", str(self.path), ValueError("malformed project entry"))
            try:
                project = Project.from_dict(entry)
            except (ProjectValidationError, TypeError) as e:
                raise StorageIOError("parse_json", str(self.path), e) from e
            if project.id:
                loaded[project.id] = project
        self._projects = loaded
        logger.debug(f"Loaded {len(self._projects)} projects from {self.path}")

    @staticmethod
    def _check_serializable(project: Project) -> None:
        try:
            json.dumps(project.to_dict())
        except (TypeError, ValueError) as e:
            raise StorageIOError("serialize_project", cause=e) from e

    def _persist(self) -> None:
        if self.path is None:
            return

        payload = json.dumps(
            {
                "version": self.FILE_VERSION,
                "projects": [p.to_dict() for p in self._projects.values()],
            },
            indent=2,
        )
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, temp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".tmp_", suffix=".json")
        except OSError as e:
            raise StorageIOError("write_json", str(self.path), e) from e

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, self.path)
        except OSError as e:
            try:
                os.remove(temp_path)
            except OSError:
                pass
            raise StorageIOError("write_json", str(self.path), e) from e
