"""
Project types shared by the local and remote stores.

The domain representation uses camelCase keys when serialized
(``to_dict`` / ``from_dict``), matching what UI callers send and what
the local store persists. Python attributes are snake_case.

Partial updates go through ``ProjectUpdate``, a closed set of optional
fields. Identity fields, timestamps and engagement counters are not part
of it, so an unrelated update can never clobber them.
"""

from __future__ import annotations

import copy
import re
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any

from ..exceptions import ProjectValidationError

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def camel_case(name: str) -> str:
    """Convert ``snake_case`` to ``camelCase``."""
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def snake_case(name: str) -> str:
    """Convert ``camelCase`` to ``snake_case``."""
    return _CAMEL_BOUNDARY.sub("_", name).lower()


class ProjectStatus(Enum):
    """Lifecycle status of a project."""

    DRAFT = "draft"
    ACTIVE = "active"
    FUNDED = "funded"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @classmethod
    def parse(cls, value: ProjectStatus | str | None) -> ProjectStatus:
        if value is None:
            return cls.DRAFT
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise ProjectValidationError(f"Unknown project status: {value!r}", field="status") from None


# Sub-records


class _SubRecord:
    """camelCase (de)serialization for the dataclass sub-records."""

    def to_dict(self) -> dict[str, Any]:
        return {camel_case(f.name): _copy_value(getattr(self, f.name)) for f in fields(self)}  # type: ignore[arg-type]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Any:
        if isinstance(data, cls):
            return data
        if not isinstance(data, dict):
            raise ProjectValidationError(
                f"{cls.__name__} entries must be objects, got {type(data).__name__}"
            )
        known = {f.name for f in fields(cls)}  # type: ignore[arg-type]
        kwargs = {}
        for key, value in data.items():
            name = snake_case(key)
            if name in known:
                kwargs[name] = value
        return cls(**kwargs)


@dataclass
class RoadmapItem(_SubRecord):
    """One phase of a project roadmap."""

    id: str = ""
    title: str = ""
    description: str = ""
    timeline: str = ""
    completed: bool = False


@dataclass
class Milestone(_SubRecord):
    """A deliverable with a target date."""

    id: str = ""
    title: str = ""
    description: str = ""
    target_date: str = ""
    completed: bool = False
    completed_date: str | None = None
    reward: float | None = None
    requirements: list[str] = field(default_factory=list)


@dataclass
class FundingTier(_SubRecord):
    """A backer reward tier."""

    id: str = ""
    title: str = ""
    amount: float = 0
    description: str = ""
    perks: list[str] = field(default_factory=list)
    estimated_delivery: str = ""


_SUB_RECORD_TYPES: dict[str, type[_SubRecord]] = {
    "roadmap": RoadmapItem,
    "milestones": Milestone,
    "funding_tiers": FundingTier,
}

_STRING_LIST_FIELDS = ("tags", "technologies", "features", "image_hashes", "supporters")
_NON_NEGATIVE_FIELDS = ("funding_goal", "current_funding", "views", "likes", "comments")
REQUIRED_FIELDS = ("title", "description", "category", "creator_id")
COUNTER_FIELDS = ("views", "likes", "comments")


def _copy_value(value: Any) -> Any:
    if isinstance(value, list):
        return [_copy_value(v) for v in value]
    if isinstance(value, _SubRecord):
        return value.to_dict()
    if isinstance(value, Enum):
        return value.value
    return value


def _coerce_string_list(name: str, value: Any) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        raise ProjectValidationError(f"{camel_case(name)} must be a list of strings", field=name)
    return [str(v) for v in value]


def _coerce_sub_records(name: str, value: Any) -> list[Any]:
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        raise ProjectValidationError(f"{camel_case(name)} must be a list", field=name)
    record_type = _SUB_RECORD_TYPES[name]
    return [record_type.from_dict(item) for item in value]


def _coerce_number(name: str, value: Any) -> float | int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ProjectValidationError(f"{camel_case(name)} must be a number", field=name)
    if value < 0:
        raise ProjectValidationError(f"{camel_case(name)} must be non-negative", field=name)
    return value


def _check_team_size(value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ProjectValidationError("teamSize must be a positive integer", field="team_size")


@dataclass
class Project:
    """A crowdfunded project, the entity kept in sync across both stores.

    Attributes:
        title: Display title (required)
        description: Short description (required)
        category: Free-form category (required)
        creator_id: Owning user's id, a foreign reference (required)
        id: Stable id assigned by the local store on first write
        status: Lifecycle status, DRAFT unless the caller supplies another
        image_hashes: Content hashes of uploaded images; the first one
            backs the derived display URL on the remote side
        ipfs_hash: Content hash of the project document, may arrive late
        views, likes, comments: Engagement counters, never touched by updates
        created_at: Set once by the local store
        updated_at: Refreshed on every mutation
    """

    title: str
    description: str
    category: str
    creator_id: str

    id: str | None = None
    long_description: str | None = None

    tags: list[str] = field(default_factory=list)
    technologies: list[str] = field(default_factory=list)
    features: list[str] = field(default_factory=list)

    roadmap: list[RoadmapItem] = field(default_factory=list)
    milestones: list[Milestone] = field(default_factory=list)
    funding_tiers: list[FundingTier] = field(default_factory=list)

    funding_goal: float = 0
    current_funding: float = 0
    deadline: str = ""
    team_size: int = 1
    status: ProjectStatus = ProjectStatus.DRAFT

    creator_name: str | None = None
    creator_address: str | None = None
    demo_url: str | None = None
    video_url: str | None = None

    image_hashes: list[str] = field(default_factory=list)
    ipfs_hash: str | None = None
    blockchain_tx_hash: str | None = None

    supporters: list[str] = field(default_factory=list)
    views: int = 0
    likes: int = 0
    comments: int = 0

    created_at: str | None = None
    updated_at: str | None = None

    def __post_init__(self) -> None:
        self.status = ProjectStatus.parse(self.status)
        for name in _STRING_LIST_FIELDS:
            setattr(self, name, _coerce_string_list(name, getattr(self, name)))
        for name in _SUB_RECORD_TYPES:
            setattr(self, name, _coerce_sub_records(name, getattr(self, name)))

    def validate(self) -> None:
        """Reject malformed data before any store is touched.

        Raises:
            ProjectValidationError: On a missing required field or a
                negative numeric value
        """
        for name in REQUIRED_FIELDS:
            value = getattr(self, name)
            if not isinstance(value, str) or not value.strip():
                raise ProjectValidationError(f"{camel_case(name)} is required", field=name)
        for name in _NON_NEGATIVE_FIELDS:
            _coerce_number(name, getattr(self, name))
        _check_team_size(self.team_size)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the camelCase domain representation."""
        return {camel_case(f.name): _copy_value(getattr(self, f.name)) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Project:
        """Build a project from camelCase (or snake_case) keys.

        Keys that are not project fields are ignored. Missing sequences
        default to empty lists and missing counters to 0.

        Raises:
            ProjectValidationError: If a required field is missing
        """
        known = {f.name for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            name = snake_case(key)
            if name in known:
                kwargs[name] = value

        missing = [camel_case(name) for name in REQUIRED_FIELDS if kwargs.get(name) is None]
        if missing:
            raise ProjectValidationError(
                f"Missing required field(s): {', '.join(missing)}", field=snake_case(missing[0])
            )

        for name in COUNTER_FIELDS:
            if kwargs.get(name) is None:
                kwargs[name] = 0
        return cls(**kwargs)


class _Unset:
    """Marker for fields left out of a partial update."""

    _instance: _Unset | None = None

    def __new__(cls) -> _Unset:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


@dataclass
class ProjectUpdate:
    """Typed partial update.

    Only fields that are explicitly set are applied; everything else keeps
    its stored value. ``None`` is a real value for the optional text fields
    (it clears them), which is why ``UNSET`` is used as the default.
    """

    title: Any = UNSET
    description: Any = UNSET
    long_description: Any = UNSET
    category: Any = UNSET
    tags: Any = UNSET
    technologies: Any = UNSET
    features: Any = UNSET
    roadmap: Any = UNSET
    milestones: Any = UNSET
    funding_tiers: Any = UNSET
    funding_goal: Any = UNSET
    current_funding: Any = UNSET
    deadline: Any = UNSET
    team_size: Any = UNSET
    status: Any = UNSET
    creator_name: Any = UNSET
    creator_address: Any = UNSET
    demo_url: Any = UNSET
    video_url: Any = UNSET
    image_hashes: Any = UNSET
    ipfs_hash: Any = UNSET
    blockchain_tx_hash: Any = UNSET
    supporters: Any = UNSET

    def __post_init__(self) -> None:
        for name, value in self.items():
            if name in ("title", "description", "category") and (
                not isinstance(value, str) or not value.strip()
            ):
                raise ProjectValidationError(f"{camel_case(name)} cannot be blank", field=name)
            if name in _STRING_LIST_FIELDS:
                setattr(self, name, _coerce_string_list(name, value))
            elif name in _SUB_RECORD_TYPES:
                setattr(self, name, _coerce_sub_records(name, value))
            elif name in ("funding_goal", "current_funding"):
                _coerce_number(name, value)
            elif name == "team_size":
                _check_team_size(value)
            elif name == "status":
                self.status = ProjectStatus.parse(value)

    def items(self) -> list[tuple[str, Any]]:
        """The explicitly set ``(field, value)`` pairs, in declaration order."""
        return [
            (f.name, getattr(self, f.name))
            for f in fields(self)
            if getattr(self, f.name) is not UNSET
        ]

    def is_empty(self) -> bool:
        return not self.items()

    def apply_to(self, project: Project) -> None:
        """Shallow-merge the set fields into ``project`` in place."""
        for name, value in self.items():
            setattr(project, name, value)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProjectUpdate:
        """Build an update from camelCase (or snake_case) keys.

        Raises:
            ProjectValidationError: On keys outside the updatable set
        """
        known = {f.name for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            name = snake_case(key)
            if name not in known:
                raise ProjectValidationError(f"Field cannot be updated: {key}", field=name)
            kwargs[name] = value
        return cls(**kwargs)


def validate_new_project(data: Project | dict[str, Any]) -> Project:
    """Build and validate a project about to be created.

    Accepts a ``Project`` (copied) or a dict with camelCase or snake_case
    keys. Nothing is stored.

    Raises:
        ProjectValidationError: On missing or blank required fields,
            negative numbers, or an unknown status
    """
    project = copy.deepcopy(data) if isinstance(data, Project) else Project.from_dict(data)
    project.validate()
    return project
