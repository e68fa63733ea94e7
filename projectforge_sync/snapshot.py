"""
Snapshot export and import for the local project cache.

A snapshot is a JSON document holding every cached project, in the same
camelCase form the local store persists:

{
    "version": 1,
    "exported_at": "{iso}",
    "stats": {"total_projects": 2, "total_funding_goals": 1500, "total_views": 0},
    "projects": [{...}, ...]
}

Import replaces the whole cache and is all-or-nothing: one malformed
project aborts it before anything is written. Nothing here talks to the
remote store; re-push imported projects with ``ProjectSyncCoordinator.resync``.
"""

from __future__ import annotations

import json
import logging
import uuid
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os

from .exceptions import ProjectValidationError, StorageIOError
from .models.types import Project
from .storage.local import LocalProjectStore, utc_now

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1


def snapshot_data(store: LocalProjectStore) -> dict[str, Any]:
    """Build the snapshot document for ``store``."""
    return {
        "version": SNAPSHOT_VERSION,
        "exported_at": utc_now(),
        "stats": store.stats(),
        "projects": [project.to_dict() for project in store.get_all()],
    }


async def export_snapshot(store: LocalProjectStore, path: str | Path) -> int:
    """Write every cached project to ``path``.

    The file is written to a temporary sibling and renamed into place.

    Returns:
        Number of projects exported

    Raises:
        StorageIOError: If the file cannot be written
    """
    target = Path(path).expanduser()
    data = snapshot_data(store)
    temp = target.with_name(f".{target.name}.{uuid.uuid4().hex}.tmp")

    try:
        await aiofiles.os.makedirs(target.parent, exist_ok=True)
        async with aiofiles.open(temp, "w", encoding="utf-8") as f:
            await f.write(json.dumps(data, indent=2))
        await aiofiles.os.replace(temp, target)
    except OSError as e:
        try:
            await aiofiles.os.remove(temp)
        except OSError:
            pass
        raise StorageIOError("export_snapshot", str(target), e) from e

    count = len(data["projects"])
    logger.info(f"Exported {count} projects to {target}")
    return count


async def load_snapshot(path: str | Path) -> list[Project]:
    """Read and validate the projects in a snapshot file.

    Raises:
        StorageIOError: If the file cannot be read or is not a snapshot
        ProjectValidationError: If a project entry is malformed
    """
    source = Path(path).expanduser()
    try:
        async with aiofiles.open(source, encoding="utf-8") as f:
            content = await f.read()
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise StorageIOError("parse_snapshot", str(source), e) from e
    except OSError as e:
        raise StorageIOError("read_snapshot", str(source), e) from e

    if not isinstance(data, dict) or not isinstance(data.get("projects"), list):
        raise StorageIOError("parse_snapshot", str(source), ValueError("missing projects list"))

    version = data.get("version", SNAPSHOT_VERSION)
    if version != SNAPSHOT_VERSION:
        raise StorageIOError(
            "parse_snapshot", str(source), ValueError(f"unsupported version {version}")
        )

    projects: list[Project] = []
    for index, entry in enumerate(data["projects"]):
        if not isinstance(entry, dict):
            raise ProjectValidationError(f"Snapshot entry {index} is not an object")
        project = Project.from_dict(entry)
        project.validate()
        projects.append(project)
    return projects


async def import_snapshot(store: LocalProjectStore, path: str | Path) -> int:
    """Replace the cache contents with the projects in a snapshot file.

    Returns:
        Number of projects imported
    """
    projects = await load_snapshot(path)
    count = store.replace_all(projects)
    logger.info(f"Imported {count} projects from {path}")
    return count
