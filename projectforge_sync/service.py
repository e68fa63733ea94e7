"""
Caller-facing project operations.

``ProjectService`` is what UI handlers and scripts talk to. It delegates to
the sync coordinator and turns each outcome into a ``Notification`` for an
optional sink (a toast, a log line, a message queue). Degraded success is
reported as a warning so the caller can tell the user the project was saved
but has not reached the remote store yet.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .models.types import Project, ProjectUpdate
from .storage.hybrid import CreateResult, ProjectSyncCoordinator, UpdateResult

logger = logging.getLogger(__name__)


class NotificationLevel(Enum):
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Notification:
    """A user-facing outcome of a service call."""

    level: NotificationLevel
    message: str
    operation: str
    project_id: str | None = None
    detail: str | None = None


Notifier = Callable[[Notification], None]

NOT_YET_SYNCED = "saved locally but not yet synced"


class ProjectService:
    """Project operations with user notifications.

    Args:
        coordinator: The sync coordinator doing the actual work
        notifier: Receives one notification per write; exceptions it
            raises are logged and ignored
    """

    def __init__(self, coordinator: ProjectSyncCoordinator, notifier: Notifier | None = None):
        self.coordinator = coordinator
        self.notifier = notifier

    async def create_project(self, fields: Project | dict[str, Any]) -> CreateResult:
        result = await self.coordinator.create(fields)
        project_id = result.project.id if result.project else None

        if not result.success:
            self._notify(
                NotificationLevel.ERROR,
                "Failed to create project",
                "create_project",
                project_id,
                result.error,
            )
        elif result.degraded:
            self._notify(
                NotificationLevel.WARNING,
                f"Project {NOT_YET_SYNCED}",
                "create_project",
                project_id,
                result.error,
            )
        else:
            self._notify(
                NotificationLevel.SUCCESS, "Project created successfully", "create_project", project_id
            )
        return result

    async def get_project(self, project_id: str) -> Project | None:
        return await self.coordinator.get_by_id(project_id)

    async def update_project(
        self, project_id: str, update: ProjectUpdate | dict[str, Any]
    ) -> UpdateResult:
        result = await self.coordinator.update(project_id, update)

        if not result.success:
            self._notify(
                NotificationLevel.ERROR,
                "Failed to update project",
                "update_project",
                project_id,
                result.error,
            )
        elif result.degraded:
            self._notify(
                NotificationLevel.WARNING,
                f"Project changes {NOT_YET_SYNCED}",
                "update_project",
                project_id,
                result.error,
            )
        else:
            self._notify(
                NotificationLevel.SUCCESS, "Project updated successfully", "update_project", project_id
            )
        return result

    async def list_projects(self, owner_id: str | None = None) -> list[Project]:
        return await self.coordinator.get_all(owner_id)

    async def propagate_content_hash(self, project_id: str, content_hash: str) -> bool:
        """Attach a content hash that became available after creation.

        No success notification is sent; this usually runs in the background
        after the user has already been told the project was created.
        """
        propagated = await self.coordinator.propagate_hash(project_id, content_hash)
        if not propagated:
            self._notify(
                NotificationLevel.WARNING,
                f"Content hash {NOT_YET_SYNCED}",
                "propagate_content_hash",
                project_id,
            )
        return propagated

    def _notify(
        self,
        level: NotificationLevel,
        message: str,
        operation: str,
        project_id: str | None,
        detail: str | None = None,
    ) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier(Notification(level, message, operation, project_id, detail))
        except Exception as e:
            logger.error(f"Notifier failed for {operation}: {e}")
