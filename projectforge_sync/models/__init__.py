"""
Project domain types.

``Project`` is the synchronized entity; ``ProjectUpdate`` is the typed
partial update applied to both stores.
"""

from .types import (
    COUNTER_FIELDS,
    REQUIRED_FIELDS,
    UNSET,
    FundingTier,
    Milestone,
    Project,
    ProjectStatus,
    ProjectUpdate,
    RoadmapItem,
    camel_case,
    snake_case,
    validate_new_project,
)

__all__ = [
    "Project",
    "ProjectStatus",
    "ProjectUpdate",
    "RoadmapItem",
    "Milestone",
    "FundingTier",
    "UNSET",
    "REQUIRED_FIELDS",
    "COUNTER_FIELDS",
    "camel_case",
    "snake_case",
    "validate_new_project",
]
