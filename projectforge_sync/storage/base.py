"""
Sync configuration and remote credentials.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from ..exceptions import AuthenticationError, ProjectValidationError
from ..schema import DEFAULT_GATEWAY_URL


class CosmosAuthMethod(Enum):
    """Authentication method for Cosmos DB.

    KEY: Use account key (development and tests)
    DEFAULT_CREDENTIAL: Use Azure DefaultAzureCredential (recommended)
    MANAGED_IDENTITY: Use Azure Managed Identity explicitly
    SERVICE_PRINCIPAL: Use Service Principal with client_id/client_secret
    """

    KEY = "key"
    DEFAULT_CREDENTIAL = "default_credential"
    MANAGED_IDENTITY = "managed_identity"
    SERVICE_PRINCIPAL = "service_principal"


@dataclass
class SyncConfig:
    """Configuration for the local cache and the remote project store.

    Configuration can be provided directly, via environment variables or
    via the ``sync:`` section of a YAML settings file.

    Environment Variables:
        PROJECTFORGE_COSMOS_ENDPOINT: Cosmos DB endpoint URL
        PROJECTFORGE_COSMOS_KEY: Cosmos DB key (if using key auth)
        PROJECTFORGE_COSMOS_AUTH_METHOD: Auth method (default: default_credential)
        PROJECTFORGE_COSMOS_DATABASE: Database name (default: projectforge)
        PROJECTFORGE_PROJECTS_CONTAINER: Projects container (default: projects)
        PROJECTFORGE_CONTENT_HASHES_CONTAINER: Hash reference container
            (default: content_hashes)
        PROJECTFORGE_LOCAL_PATH: JSON file backing the local cache
        PROJECTFORGE_GATEWAY_URL: Prefix for derived image URLs
        PROJECTFORGE_REMOTE_TIMEOUT: Seconds allowed per remote call
        PROJECTFORGE_ENABLE_SYNC: "true" to propagate writes to the remote
        AZURE_TENANT_ID / AZURE_CLIENT_ID / AZURE_CLIENT_SECRET: Service
            principal settings

    Attributes:
        enable_sync: Whether remote propagation is attempted at all
        cosmos_endpoint: Cosmos DB endpoint URL
        cosmos_auth_method: Authentication method
        cosmos_key: Cosmos DB key (only for KEY auth method)
        cosmos_database: Database name
        projects_container: Container holding project records
        content_hashes_container: Container holding content-hash references
        local_path: JSON file for the local cache, in-memory when None
        gateway_url: Gateway prefix for ``image_url``
        remote_timeout: Upper bound in seconds for each remote call
    """

    enable_sync: bool = True

    cosmos_endpoint: str | None = None
    cosmos_auth_method: CosmosAuthMethod = CosmosAuthMethod.DEFAULT_CREDENTIAL
    cosmos_key: str | None = None
    cosmos_database: str = "projectforge"
    projects_container: str = "projects"
    content_hashes_container: str = "content_hashes"

    azure_tenant_id: str | None = None
    azure_client_id: str | None = None
    azure_client_secret: str | None = None

    local_path: str | None = None
    gateway_url: str = DEFAULT_GATEWAY_URL
    remote_timeout: float = 10.0

    options: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if isinstance(self.cosmos_auth_method, str):
            self.cosmos_auth_method = _parse_auth_method(self.cosmos_auth_method)
        if self.remote_timeout <= 0:
            raise ProjectValidationError("remote_timeout must be positive", field="remote_timeout")

    @classmethod
    def from_environment(cls) -> SyncConfig:
        """Create configuration from environment variables."""
        timeout = os.environ.get("PROJECTFORGE_REMOTE_TIMEOUT")
        return cls(
            enable_sync=os.environ.get("PROJECTFORGE_ENABLE_SYNC", "true").lower() == "true",
            cosmos_endpoint=os.environ.get("PROJECTFORGE_COSMOS_ENDPOINT"),
            cosmos_auth_method=_parse_auth_method(
                os.environ.get("PROJECTFORGE_COSMOS_AUTH_METHOD", "default_credential")
            ),
            cosmos_key=os.environ.get("PROJECTFORGE_COSMOS_KEY"),
            cosmos_database=os.environ.get("PROJECTFORGE_COSMOS_DATABASE", "projectforge"),
            projects_container=os.environ.get("PROJECTFORGE_PROJECTS_CONTAINER", "projects"),
            content_hashes_container=os.environ.get(
                "PROJECTFORGE_CONTENT_HASHES_CONTAINER", "content_hashes"
            ),
            azure_tenant_id=os.environ.get("AZURE_TENANT_ID"),
            azure_client_id=os.environ.get("AZURE_CLIENT_ID"),
            azure_client_secret=os.environ.get("AZURE_CLIENT_SECRET"),
            local_path=os.environ.get("PROJECTFORGE_LOCAL_PATH"),
            gateway_url=os.environ.get("PROJECTFORGE_GATEWAY_URL", DEFAULT_GATEWAY_URL),
            remote_timeout=float(timeout) if timeout else 10.0,
        )

    @classmethod
    def from_file(cls, path: str | Path) -> SyncConfig:
        """Create configuration from the ``sync:`` section of a YAML file.

        ```yaml
        sync:
          cosmos_endpoint: "https://example.documents.azure.com:443/"
          cosmos_auth_method: default_credential
          local_path: ~/.projectforge/projects.json
          remote_timeout: 5
        ```

        Unknown keys are rejected so typos don't silently fall back to
        defaults.
        """
        with open(Path(path).expanduser(), encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        section = data.get("sync", {}) or {}
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(section) - known)
        if unknown:
            raise ProjectValidationError(f"Unknown sync settings: {', '.join(unknown)}")

        if section.get("local_path"):
            section["local_path"] = str(Path(section["local_path"]).expanduser())
        return cls(**section)

    @property
    def remote_configured(self) -> bool:
        return self.enable_sync and bool(self.cosmos_endpoint)


def _parse_auth_method(value: str) -> CosmosAuthMethod:
    try:
        return CosmosAuthMethod(value.lower())
    except ValueError:
        return CosmosAuthMethod.DEFAULT_CREDENTIAL


def get_credential(config: SyncConfig) -> Any:
    """Get the credential for the configured auth method.

    Raises:
        AuthenticationError: If the credential cannot be created
    """
    endpoint = config.cosmos_endpoint or "cosmos"
    auth_method = config.cosmos_auth_method

    if auth_method == CosmosAuthMethod.KEY:
        if not config.cosmos_key:
            raise AuthenticationError(endpoint, "cosmos_key required for KEY authentication")
        return config.cosmos_key

    if auth_method == CosmosAuthMethod.DEFAULT_CREDENTIAL:
        from azure.identity.aio import DefaultAzureCredential

        return DefaultAzureCredential()

    if auth_method == CosmosAuthMethod.MANAGED_IDENTITY:
        from azure.identity.aio import ManagedIdentityCredential

        # User-assigned identity when a client id is configured
        if config.azure_client_id:
            return ManagedIdentityCredential(client_id=config.azure_client_id)
        return ManagedIdentityCredential()

    if auth_method == CosmosAuthMethod.SERVICE_PRINCIPAL:
        if not all([config.azure_tenant_id, config.azure_client_id, config.azure_client_secret]):
            raise AuthenticationError(
                endpoint,
                "azure_tenant_id, azure_client_id, and azure_client_secret "
                "required for SERVICE_PRINCIPAL authentication",
            )
        from azure.identity.aio import ClientSecretCredential

        return ClientSecretCredential(
            tenant_id=config.azure_tenant_id,
            client_id=config.azure_client_id,
            client_secret=config.azure_client_secret,
        )

    raise AuthenticationError(endpoint, f"Unsupported auth method: {auth_method}")
