"""
ProjectForge Sync

Local-first persistence for crowdfunding projects with best-effort sync to
Azure Cosmos DB.

Provides:
- A local project cache that is always available (in memory or a JSON file)
- A Cosmos DB project store with classified, time-bounded remote calls
- A coordinator that writes locally first and reports remote lag as
  degraded success instead of failure
- Snapshot export/import of the local cache

Usage:

    >>> from projectforge_sync import ProjectService, ProjectSyncCoordinator, SyncConfig
    >>> coordinator = ProjectSyncCoordinator.from_config(SyncConfig.from_environment())
    >>> service = ProjectService(coordinator, notifier=print)
    >>> result = await service.create_project({
    ...     "title": "Solar Kiosk",
    ...     "description": "Off-grid charging for markets",
    ...     "category": "energy",
    ...     "creatorId": "5b0c7c3e-2f51-4a8e-9a57-0d7f5a1c2e11",
    ...     "fundingGoal": 5000,
    ... })
    >>> result.success, result.error
    (True, None)

    # Later, once the project document has been pinned
    >>> await service.propagate_content_hash(result.project.id, "Qm...")
    True

Local-only mode:

    # No endpoint (or enable_sync=False): everything stays in the local cache
    coordinator = ProjectSyncCoordinator(LocalProjectStore("~/.projectforge/projects.json"))
"""

# Exceptions
from .exceptions import (
    AuthenticationError,
    ProjectNotFoundError,
    ProjectStorageError,
    ProjectValidationError,
    RemoteErrorKind,
    RemoteSyncError,
    StorageIOError,
)

# Logging
from .logging_utils import SyncLoggerAdapter, StructuredJsonFormatter, configure_structured_logging

# Domain types
from .models import (
    FundingTier,
    Milestone,
    Project,
    ProjectStatus,
    ProjectUpdate,
    RoadmapItem,
    UNSET,
    validate_new_project,
)

# Translation
from .schema import from_remote_record, to_remote_partial, to_remote_record

# Service
from .service import Notification, NotificationLevel, ProjectService

# Snapshots
from .snapshot import export_snapshot, import_snapshot

# Storage
from .storage import (
    CosmosAuthMethod,
    CosmosProjectClient,
    CreateResult,
    HashReport,
    LocalProjectStore,
    ProjectSyncCoordinator,
    SyncConfig,
    SyncState,
    UpdateResult,
)

__all__ = [
    # Domain types
    "Project",
    "ProjectStatus",
    "ProjectUpdate",
    "RoadmapItem",
    "Milestone",
    "FundingTier",
    "UNSET",
    "validate_new_project",
    # Translation
    "to_remote_record",
    "to_remote_partial",
    "from_remote_record",
    # Storage
    "SyncConfig",
    "CosmosAuthMethod",
    "LocalProjectStore",
    "CosmosProjectClient",
    "ProjectSyncCoordinator",
    "SyncState",
    "CreateResult",
    "UpdateResult",
    "HashReport",
    # Service
    "ProjectService",
    "Notification",
    "NotificationLevel",
    # Snapshots
    "export_snapshot",
    "import_snapshot",
    # Logging
    "StructuredJsonFormatter",
    "SyncLoggerAdapter",
    "configure_structured_logging",
    # Exceptions
    "ProjectStorageError",
    "ProjectNotFoundError",
    "ProjectValidationError",
    "StorageIOError",
    "RemoteErrorKind",
    "RemoteSyncError",
    "AuthenticationError",
]

__version__ = "0.1.0"
