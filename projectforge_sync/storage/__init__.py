"""
Project storage backends.

Provides the local project cache, the Cosmos DB project store, and the
coordinator that keeps the two in sync.

Authentication Methods:
    For Cosmos DB, multiple authentication methods are supported:
    - KEY: Account key (not recommended for production)
    - DEFAULT_CREDENTIAL: Azure DefaultAzureCredential (recommended)
    - MANAGED_IDENTITY: Azure Managed Identity
    - SERVICE_PRINCIPAL: Service Principal with client secret

Example:
    >>> from projectforge_sync.storage import (
    ...     SyncConfig, CosmosAuthMethod, ProjectSyncCoordinator
    ... )
    >>> config = SyncConfig(
    ...     cosmos_endpoint="https://example.documents.azure.com:443/",
    ...     cosmos_auth_method=CosmosAuthMethod.DEFAULT_CREDENTIAL,
    ...     local_path="~/.projectforge/projects.json",
    ... )
    >>> coordinator = ProjectSyncCoordinator.from_config(config)
"""

from .base import CosmosAuthMethod, SyncConfig, get_credential
from .best_effort import SubOperationResult, run_best_effort
from .cosmos import (
    ConnectionReport,
    CosmosProjectClient,
    RemoteWriteResult,
    classify_error,
)
from .hybrid import (
    CreateResult,
    HashReport,
    ProjectSyncCoordinator,
    SyncState,
    UpdateResult,
)
from .local import LocalProjectStore

__all__ = [
    # Configuration
    "SyncConfig",
    "CosmosAuthMethod",
    "get_credential",
    # Local
    "LocalProjectStore",
    # Remote
    "CosmosProjectClient",
    "RemoteWriteResult",
    "ConnectionReport",
    "classify_error",
    # Best-effort
    "SubOperationResult",
    "run_best_effort",
    # Coordinator
    "ProjectSyncCoordinator",
    "SyncState",
    "CreateResult",
    "UpdateResult",
    "HashReport",
]
