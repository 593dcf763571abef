"""Domain models: projects, features, sessions, tasks and feature history.

Permanent entities are projects, features and their history. Sessions and
tasks are ephemeral and exist only while work on a leaf feature is active.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Optional
from uuid import UUID


def _iso(value: datetime) -> str:
    """Render a timestamp as an RFC 3339 string in UTC with a ``Z`` suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    return value.isoformat().replace("+00:00", "Z")


def _opt_uuid(value: Optional[UUID]) -> Optional[str]:
    return str(value) if value is not None else None


def _opt_iso(value: Optional[datetime]) -> Optional[str]:
    return _iso(value) if value is not None else None


class FeatureState(str, Enum):
    """Lifecycle state of a feature."""

    PROPOSED = "proposed"
    SPECIFIED = "specified"
    IMPLEMENTED = "implemented"
    DEPRECATED = "deprecated"

    def __str__(self) -> str:
        return self.value


class SessionStatus(str, Enum):
    """Status of a work session."""

    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value


class TaskStatus(str, Enum):
    """Execution status of a task."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value


class AgentType(str, Enum):
    """The kind of AI agent a task is assigned to."""

    CLAUDE = "claude"
    GEMINI = "gemini"
    CODEX = "codex"

    def __str__(self) -> str:
        return self.value


# ------------------------------------------------------------------
# Features
# ------------------------------------------------------------------


@dataclass
class Feature:
    """A living description of a system capability, part of a feature tree."""

    id: UUID
    project_id: UUID
    parent_id: Optional[UUID]
    title: str
    details: Optional[str]
    desired_details: Optional[str]
    state: FeatureState
    priority: int
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "project_id": str(self.project_id),
            "parent_id": _opt_uuid(self.parent_id),
            "title": self.title,
            "details": self.details,
            "desired_details": self.desired_details,
            "state": self.state.value,
            "priority": self.priority,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


@dataclass
class CreateFeatureInput:
    """Input for creating a feature; unset fields take their defaults."""

    title: str
    id: Optional[UUID] = None
    parent_id: Optional[UUID] = None
    details: Optional[str] = None
    state: Optional[FeatureState] = None
    priority: Optional[int] = None


@dataclass
class UpdateFeatureInput:
    """Partial update of a feature; ``None`` leaves a field unchanged."""

    parent_id: Optional[UUID] = None
    title: Optional[str] = None
    details: Optional[str] = None
    desired_details: Optional[str] = None
    state: Optional[FeatureState] = None
    priority: Optional[int] = None


@dataclass
class FeatureTreeNode:
    """A feature with its nested children."""

    feature: Feature
    children: list[FeatureTreeNode] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data = self.feature.to_dict()
        data["children"] = [child.to_dict() for child in self.children]
        return data


@dataclass
class FeatureDiff:
    """Current and desired details of a feature."""

    has_changes: bool
    current: Optional[str]
    desired: Optional[str]

    def to_dict(self) -> dict[str, Any]:
        return {
            "has_changes": self.has_changes,
            "current": self.current,
            "desired": self.desired,
        }


@dataclass
class FeatureSummary:
    """A feature without its details, used in listings."""

    id: UUID
    project_id: UUID
    parent_id: Optional[UUID]
    title: str
    state: FeatureState
    priority: int

    @classmethod
    def from_feature(cls, feature: Feature) -> FeatureSummary:
        return cls(
            id=feature.id,
            project_id=feature.project_id,
            parent_id=feature.parent_id,
            title=feature.title,
            state=feature.state,
            priority=feature.priority,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "project_id": str(self.project_id),
            "parent_id": _opt_uuid(self.parent_id),
            "title": self.title,
            "state": self.state.value,
            "priority": self.priority,
        }


@dataclass
class ListFeaturesQuery:
    """Pagination parameters for feature listings."""

    limit: Optional[int] = None
    offset: Optional[int] = None


# ------------------------------------------------------------------
# History
# ------------------------------------------------------------------


@dataclass
class CommitRef:
    """A reference to a git commit."""

    sha: str
    message: str
    author: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CommitRef:
        for key in ("sha", "message"):
            if key not in data:
                raise ValueError(f"missing field '{key}'")
        return cls(sha=data["sha"], message=data["message"], author=data.get("author"))

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"sha": self.sha, "message": self.message}
        if self.author is not None:
            data["author"] = self.author
        return data


@dataclass
class HistoryDetails:
    """Structured description of the work recorded in a history entry."""

    summary: str = ""
    commits: list[CommitRef] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> HistoryDetails:
        if "summary" not in data:
            raise ValueError("missing field 'summary'")
        commits = [CommitRef.from_dict(c) for c in data.get("commits") or []]
        return cls(summary=data["summary"], commits=commits)

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": self.summary,
            "commits": [commit.to_dict() for commit in self.commits],
        }


@dataclass
class FeatureHistory:
    """An append-only record of work done on a feature."""

    id: UUID
    feature_id: UUID
    session_id: Optional[UUID]
    details: HistoryDetails
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "feature_id": str(self.feature_id),
            "session_id": _opt_uuid(self.session_id),
            "details": self.details.to_dict(),
            "created_at": _iso(self.created_at),
        }


@dataclass
class CreateHistoryInput:
    """Input for recording a history entry by hand."""

    feature_id: UUID
    details: HistoryDetails
    session_id: Optional[UUID] = None


# ------------------------------------------------------------------
# Projects
# ------------------------------------------------------------------


@dataclass
class Project:
    """A top-level container of features and directories."""

    id: UUID
    name: str
    description: Optional[str]
    instructions: Optional[str]
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "name": self.name,
            "description": self.description,
            "instructions": self.instructions,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


@dataclass
class ProjectDirectory:
    """A file system directory belonging to a project."""

    id: UUID
    project_id: UUID
    path: str
    git_remote: Optional[str]
    is_primary: bool
    instructions: Optional[str]
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "project_id": str(self.project_id),
            "path": self.path,
            "git_remote": self.git_remote,
            "is_primary": self.is_primary,
            "instructions": self.instructions,
            "created_at": _iso(self.created_at),
        }


@dataclass
class CreateProjectInput:
    """Input for creating a project."""

    name: str
    description: Optional[str] = None
    instructions: Optional[str] = None


@dataclass
class UpdateProjectInput:
    """Partial update of a project; ``None`` leaves a field unchanged."""

    name: Optional[str] = None
    description: Optional[str] = None
    instructions: Optional[str] = None


@dataclass
class AddDirectoryInput:
    """Input for adding a directory to a project."""

    path: str
    git_remote: Optional[str] = None
    is_primary: bool = False
    instructions: Optional[str] = None


@dataclass
class UpdateDirectoryInput:
    """Partial update of a project directory."""

    path: Optional[str] = None
    git_remote: Optional[str] = None
    is_primary: Optional[bool] = None
    instructions: Optional[str] = None


@dataclass
class ProjectWithDirectories:
    """A project together with its directories."""

    project: Project
    directories: list[ProjectDirectory] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data = self.project.to_dict()
        data["directories"] = [d.to_dict() for d in self.directories]
        return data


# ------------------------------------------------------------------
# Tasks
# ------------------------------------------------------------------


@dataclass
class Task:
    """A unit of work within a session, assigned to an agent."""

    id: UUID
    session_id: UUID
    parent_id: Optional[UUID]
    title: str
    scope: str
    status: TaskStatus
    agent_type: AgentType
    worktree_path: Optional[str]
    branch: Optional[str]
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "session_id": str(self.session_id),
            "parent_id": _opt_uuid(self.parent_id),
            "title": self.title,
            "scope": self.scope,
            "status": self.status.value,
            "agent_type": self.agent_type.value,
            "worktree_path": self.worktree_path,
            "branch": self.branch,
            "created_at": _iso(self.created_at),
        }


@dataclass
class CreateTaskInput:
    """Input for creating a task within a session."""

    title: str
    scope: str
    agent_type: AgentType
    parent_id: Optional[UUID] = None


@dataclass
class UpdateTaskInput:
    """Progress report for a task; ``None`` leaves a field unchanged."""

    status: Optional[TaskStatus] = None
    worktree_path: Optional[str] = None
    branch: Optional[str] = None


# ------------------------------------------------------------------
# Sessions
# ------------------------------------------------------------------


@dataclass
class Session:
    """An active or finished work session on a leaf feature."""

    id: UUID
    feature_id: UUID
    goal: str
    status: SessionStatus
    created_at: datetime
    completed_at: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "feature_id": str(self.feature_id),
            "goal": self.goal,
            "status": self.status.value,
            "created_at": _iso(self.created_at),
            "completed_at": _opt_iso(self.completed_at),
        }


@dataclass
class CreateSessionInput:
    """Input for creating a session with its initial tasks."""

    feature_id: UUID
    goal: str
    tasks: list[CreateTaskInput] = field(default_factory=list)


@dataclass
class CreateFeatureSessionInput:
    """Input for creating a session where the feature is given separately."""

    goal: str
    tasks: list[CreateTaskInput] = field(default_factory=list)


@dataclass
class SessionResponse:
    """A newly created session and its tasks."""

    session: Session
    tasks: list[Task] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "session": self.session.to_dict(),
            "tasks": [t.to_dict() for t in self.tasks],
        }


@dataclass
class SessionFeatureSummary:
    """Minimal feature information shown with a session."""

    id: UUID
    title: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": str(self.id), "title": self.title}


@dataclass
class SessionStatusResponse:
    """A session with its feature and tasks."""

    session: Session
    feature: SessionFeatureSummary
    tasks: list[Task] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "session": self.session.to_dict(),
            "feature": self.feature.to_dict(),
            "tasks": [t.to_dict() for t in self.tasks],
        }


@dataclass
class CompleteSessionInput:
    """Input for completing a session."""

    summary: str
    commits: list[CommitRef] = field(default_factory=list)
    feature_state: Optional[FeatureState] = None


@dataclass
class SessionCompletionResult:
    """The completed session and the history entry it produced."""

    session: Session
    history_entry: FeatureHistory

    def to_dict(self) -> dict[str, Any]:
        return {
            "session": self.session.to_dict(),
            "history_entry": self.history_entry.to_dict(),
        }