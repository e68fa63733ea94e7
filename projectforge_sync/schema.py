"""
Mapping between the domain ``Project`` and remote project records.

Remote records are flat documents with snake_case columns. Every column is
written explicitly (``None`` or ``[]`` when unset) because the remote schema
expects a fixed column set. Sub-records (roadmap, milestones, funding tiers)
are stored as lists of snake_case objects.

Derived columns:
    image_url: gateway prefix + ``image_hashes[0]``; never read back, the
        hash list itself is the source of truth

All functions here are pure.
"""

from __future__ import annotations

from dataclasses import fields
from typing import Any

from .models.types import (
    FundingTier,
    Milestone,
    Project,
    ProjectStatus,
    ProjectUpdate,
    RoadmapItem,
    snake_case,
)

DEFAULT_GATEWAY_URL = "https://gateway.pinata.cloud/ipfs/"

# Domain attribute -> remote column, where the names differ
_RENAMED_COLUMNS = {
    "comments": "comments_count",
}
_ATTRIBUTE_FOR_COLUMN = {column: name for name, column in _RENAMED_COLUMNS.items()}

# Columns computed on write and dropped on read
DERIVED_COLUMNS = frozenset({"image_url"})

_SUB_RECORD_COLUMNS: dict[str, type] = {
    "roadmap": RoadmapItem,
    "milestones": Milestone,
    "funding_tiers": FundingTier,
}

_LIST_COLUMNS = ("tags", "technologies", "features", "image_hashes", "supporters")
_NUMERIC_COLUMNS = ("funding_goal", "current_funding", "views", "likes", "comments_count")


def gateway_url(content_hash: str, gateway: str = DEFAULT_GATEWAY_URL) -> str:
    """Build a display URL for a content hash."""
    if not gateway.endswith("/"):
        gateway += "/"
    return f"{gateway}{content_hash}"


def column_for(attribute: str) -> str:
    """Remote column name for a ``Project`` attribute."""
    return _RENAMED_COLUMNS.get(attribute, attribute)


def _sub_record_to_column(value: Any) -> dict[str, Any]:
    return {snake_case(key): item for key, item in value.to_dict().items()}


def _column_value(attribute: str, value: Any) -> Any:
    if attribute in _SUB_RECORD_COLUMNS:
        return [_sub_record_to_column(item) for item in value or []]
    if attribute in _LIST_COLUMNS:
        return list(value or [])
    if isinstance(value, ProjectStatus):
        return value.value
    return value


def _image_url(image_hashes: list[str] | None, gateway: str) -> str | None:
    if image_hashes:
        return gateway_url(image_hashes[0], gateway)
    return None


def to_remote_record(project: Project, gateway: str = DEFAULT_GATEWAY_URL) -> dict[str, Any]:
    """Translate a project into a full remote record.

    Args:
        project: Project with an assigned id
        gateway: Gateway prefix for the derived ``image_url``

    Returns:
        Remote record with every column present
    """
    record: dict[str, Any] = {}
    for f in fields(project):
        record[column_for(f.name)] = _column_value(f.name, getattr(project, f.name))
    record["image_url"] = _image_url(project.image_hashes, gateway)
    return record


def to_remote_partial(
    update: ProjectUpdate,
    updated_at: str,
    gateway: str = DEFAULT_GATEWAY_URL,
) -> dict[str, Any]:
    """Translate only the fields set on ``update``.

    ``updated_at`` is always included. Setting ``image_hashes`` also
    refreshes the derived ``image_url``.
    """
    partial: dict[str, Any] = {}
    for attribute, value in update.items():
        partial[column_for(attribute)] = _column_value(attribute, value)
        if attribute == "image_hashes":
            partial["image_url"] = _image_url(value, gateway)
    partial["updated_at"] = updated_at
    return partial


def from_remote_record(record: dict[str, Any]) -> Project:
    """Translate a remote record back into a project.

    Absent list columns become empty lists and absent counters become 0,
    so projects look the same whichever store they came from. System
    properties (``_rid``, ``_etag``, ...) and derived columns are dropped.
    """
    data: dict[str, Any] = {}
    for column, value in record.items():
        if column.startswith("_") or column in DERIVED_COLUMNS:
            continue
        data[_ATTRIBUTE_FOR_COLUMN.get(column, column)] = value

    for column in _LIST_COLUMNS + tuple(_SUB_RECORD_COLUMNS):
        if data.get(column) is None:
            data[column] = []
    for column in _NUMERIC_COLUMNS:
        attribute = _ATTRIBUTE_FOR_COLUMN.get(column, column)
        if data.get(attribute) is None:
            data[attribute] = 0
    if data.get("team_size") is None:
        data["team_size"] = 1
    if data.get("deadline") is None:
        data["deadline"] = ""

    return Project.from_dict(data)
