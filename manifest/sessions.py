"""Storage of work sessions, their tasks and feature history."""

from __future__ import annotations

import json
from collections.abc import Sequence
from typing import Any, Optional
from uuid import UUID, uuid4

from manifest.convert import format_datetime, parse_datetime, parse_uuid, utc_now
from manifest.errors import InvalidStateError, ValidationError, not_found
from manifest.features import FeatureStore
from manifest.models import (
    AgentType,
    CompleteSessionInput,
    CreateHistoryInput,
    CreateSessionInput,
    CreateTaskInput,
    FeatureHistory,
    FeatureState,
    HistoryDetails,
    Session,
    SessionCompletionResult,
    SessionFeatureSummary,
    SessionResponse,
    SessionStatus,
    SessionStatusResponse,
    Task,
    TaskStatus,
    UpdateTaskInput,
)

_SESSION_COLUMNS = "id, feature_id, goal, status, created_at, completed_at"
_TASK_COLUMNS = (
    "id, session_id, parent_id, title, scope, status, agent_type, worktree_path,"
    " branch, created_at"
)
_INSERT_TASK = (
    "INSERT INTO tasks (id, session_id, parent_id, title, scope, status, agent_type, created_at)"
    " VALUES (?, ?, ?, ?, ?, 'pending', ?, ?)"
)
_INSERT_HISTORY = (
    "INSERT INTO feature_history"
    " (id, feature_id, session_id, summary, files_changed, author, details, created_at)"
    " VALUES (?, ?, ?, ?, '[]', '', ?, ?)"
)


def _opt_uuid(value: Optional[str]) -> Optional[UUID]:
    return parse_uuid(value) if value is not None else None


def _enum_or(cls: Any, value: str, default: Any) -> Any:
    try:
        return cls(value)
    except ValueError:
        return default


def _session_from_row(row: Sequence[Any]) -> Session:
    return Session(
        id=parse_uuid(row[0]),
        feature_id=parse_uuid(row[1]),
        goal=row[2],
        status=_enum_or(SessionStatus, row[3], SessionStatus.ACTIVE),
        created_at=parse_datetime(row[4]),
        completed_at=parse_datetime(row[5]) if row[5] is not None else None,
    )


def _task_from_row(row: Sequence[Any]) -> Task:
    return Task(
        id=parse_uuid(row[0]),
        session_id=parse_uuid(row[1]),
        parent_id=_opt_uuid(row[2]),
        title=row[3],
        scope=row[4],
        status=_enum_or(TaskStatus, row[5], TaskStatus.PENDING),
        agent_type=_enum_or(AgentType, row[6], AgentType.CLAUDE),
        worktree_path=row[7],
        branch=row[8],
        created_at=parse_datetime(row[9]),
    )


def _history_details(raw: Optional[str]) -> HistoryDetails:
    try:
        return HistoryDetails.from_dict(json.loads(raw))
    except (TypeError, ValueError, AttributeError):
        return HistoryDetails()


class SessionStore(FeatureStore):
    """Projects, features, sessions, tasks and history in one store."""

    # -- sessions ------------------------------------------------------

    def get_session(self, session_id: UUID) -> Optional[Session]:
        row = self._fetch_one(
            f"SELECT {_SESSION_COLUMNS} FROM sessions WHERE id = ?", (str(session_id),)
        )
        return _session_from_row(row) if row is not None else None

    def get_sessions_by_feature(self, feature_id: UUID) -> list[Session]:
        rows = self._fetch_all(
            f"SELECT {_SESSION_COLUMNS} FROM sessions WHERE feature_id = ?"
            " ORDER BY created_at DESC",
            (str(feature_id),),
        )
        return [_session_from_row(row) for row in rows]

    def create_session(self, data: CreateSessionInput) -> SessionResponse:
        """Open a session with its tasks on a leaf feature.

        A proposed feature moves to specified. Raises NotFoundError for an
        unknown feature and ValidationError for a feature with children.
        """
        with self._lock:
            feature = self.get_feature(data.feature_id)
            if feature is None:
                raise not_found("Feature")
            if not self.is_leaf(data.feature_id):
                raise ValidationError("Sessions can only be created on leaf features")

            session_id = uuid4()
            now = utc_now()
            stamp = format_datetime(now)
            tasks: list[Task] = []
            with self._write() as conn:
                conn.execute(
                    "INSERT INTO sessions (id, feature_id, goal, status, created_at)"
                    " VALUES (?, ?, ?, 'active', ?)",
                    (str(session_id), str(data.feature_id), data.goal, stamp),
                )
                if feature.state is FeatureState.PROPOSED:
                    conn.execute(
                        "UPDATE features SET state = 'specified', updated_at = ? WHERE id = ?",
                        (stamp, str(data.feature_id)),
                    )
                for task_input in data.tasks:
                    tasks.append(self._insert_task(conn, session_id, task_input, now))

        session = Session(
            id=session_id,
            feature_id=data.feature_id,
            goal=data.goal,
            status=SessionStatus.ACTIVE,
            created_at=now,
            completed_at=None,
        )
        return SessionResponse(session=session, tasks=tasks)

    def get_session_status(self, session_id: UUID) -> Optional[SessionStatusResponse]:
        with self._lock:
            session = self.get_session(session_id)
            if session is None:
                return None
            feature = self.get_feature(session.feature_id)
            if feature is None:
                raise not_found("Feature")
            return SessionStatusResponse(
                session=session,
                feature=SessionFeatureSummary(id=feature.id, title=feature.title),
                tasks=self.get_tasks_by_session(session_id),
            )

    def complete_session(
        self, session_id: UUID, data: CompleteSessionInput
    ) -> Optional[SessionCompletionResult]:
        """Close an active session, recording history and dropping its tasks.

        Marking the feature implemented promotes its desired details.
        """
        with self._lock:
            session = self.get_session(session_id)
            if session is None:
                return None
            if session.status is not SessionStatus.ACTIVE:
                raise InvalidStateError("Session is not active")

            now = utc_now()
            stamp = format_datetime(now)
            history_id = uuid4()
            details = HistoryDetails(summary=data.summary, commits=list(data.commits))
            feature_key = str(session.feature_id)

            with self._write() as conn:
                conn.execute(
                    _INSERT_HISTORY,
                    (
                        str(history_id),
                        feature_key,
                        str(session_id),
                        data.summary,
                        json.dumps(details.to_dict()),
                        stamp,
                    ),
                )
                conn.execute("DELETE FROM tasks WHERE session_id = ?", (str(session_id),))
                conn.execute(
                    "UPDATE sessions SET status = 'completed', completed_at = ? WHERE id = ?",
                    (stamp, str(session_id)),
                )
                state = data.feature_state
                if state is FeatureState.IMPLEMENTED:
                    conn.execute(
                        "UPDATE features SET state = ?,"
                        " details = COALESCE(desired_details, details),"
                        " desired_details = NULL, updated_at = ? WHERE id = ?",
                        (state.value, stamp, feature_key),
                    )
                elif state is not None:
                    conn.execute(
                        "UPDATE features SET state = ?, updated_at = ? WHERE id = ?",
                        (state.value, stamp, feature_key),
                    )

        completed = Session(
            id=session.id,
            feature_id=session.feature_id,
            goal=session.goal,
            status=SessionStatus.COMPLETED,
            created_at=session.created_at,
            completed_at=now,
        )
        history = FeatureHistory(
            id=history_id,
            feature_id=session.feature_id,
            session_id=session_id,
            details=details,
            created_at=now,
        )
        return SessionCompletionResult(session=completed, history_entry=history)

    # -- tasks ---------------------------------------------------------

    def _insert_task(
        self, conn: Any, session_id: UUID, data: CreateTaskInput, now: Any
    ) -> Task:
        task_id = uuid4()
        conn.execute(
            _INSERT_TASK,
            (
                str(task_id),
                str(session_id),
                str(data.parent_id) if data.parent_id is not None else None,
                data.title,
                data.scope,
                AgentType(data.agent_type).value,
                format_datetime(now),
            ),
        )
        return Task(
            id=task_id,
            session_id=session_id,
            parent_id=data.parent_id,
            title=data.title,
            scope=data.scope,
            status=TaskStatus.PENDING,
            agent_type=AgentType(data.agent_type),
            worktree_path=None,
            branch=None,
            created_at=now,
        )

    def get_task(self, task_id: UUID) -> Optional[Task]:
        row = self._fetch_one(
            f"SELECT {_TASK_COLUMNS} FROM tasks WHERE id = ?", (str(task_id),)
        )
        return _task_from_row(row) if row is not None else None

    def get_tasks_by_session(self, session_id: UUID) -> list[Task]:
        rows = self._fetch_all(
            f"SELECT {_TASK_COLUMNS} FROM tasks WHERE session_id = ? ORDER BY created_at",
            (str(session_id),),
        )
        return [_task_from_row(row) for row in rows]

    def get_task_children(self, parent_id: UUID) -> list[Task]:
        rows = self._fetch_all(
            f"SELECT {_TASK_COLUMNS} FROM tasks WHERE parent_id = ? ORDER BY created_at",
            (str(parent_id),),
        )
        return [_task_from_row(row) for row in rows]

    def create_task(self, session_id: UUID, data: CreateTaskInput) -> Task:
        """Add a task to an active session."""
        with self._lock:
            session = self.get_session(session_id)
            if session is None:
                raise not_found("Session")
            if session.status is not SessionStatus.ACTIVE:
                raise InvalidStateError("Cannot add tasks to a completed session")
            with self._write() as conn:
                return self._insert_task(conn, session_id, data, utc_now())

    def update_task(self, task_id: UUID, data: UpdateTaskInput) -> bool:
        """Apply the given fields; False if nothing was given or no task matched."""
        changes: dict[str, Any] = {}
        if data.status is not None:
            changes["status"] = TaskStatus(data.status).value
        if data.worktree_path is not None:
            changes["worktree_path"] = data.worktree_path
        if data.branch is not None:
            changes["branch"] = data.branch
        if not changes:
            return False
        assignments = ", ".join(f"{column} = ?" for column in changes)
        with self._write() as conn:
            cursor = conn.execute(
                f"UPDATE tasks SET {assignments} WHERE id = ?",
                (*changes.values(), str(task_id)),
            )
        return cursor.rowcount > 0

    # -- history -------------------------------------------------------

    def create_history_entry(self, data: CreateHistoryInput) -> FeatureHistory:
        history_id = uuid4()
        now = utc_now()
        with self._write() as conn:
            conn.execute(
                _INSERT_HISTORY,
                (
                    str(history_id),
                    str(data.feature_id),
                    str(data.session_id) if data.session_id is not None else None,
                    data.details.summary,
                    json.dumps(data.details.to_dict()),
                    format_datetime(now),
                ),
            )
        return FeatureHistory(
            id=history_id,
            feature_id=data.feature_id,
            session_id=data.session_id,
            details=data.details,
            created_at=now,
        )

    def get_feature_history(self, feature_id: UUID) -> list[FeatureHistory]:
        rows = self._fetch_all(
            "SELECT id, feature_id, session_id, details, created_at"
            " FROM feature_history WHERE feature_id = ? ORDER BY created_at DESC",
            (str(feature_id),),
        )
        return [
            FeatureHistory(
                id=parse_uuid(row[0]),
                feature_id=parse_uuid(row[1]),
                session_id=_opt_uuid(row[2]),
                details=_history_details(row[3]),
                created_at=parse_datetime(row[4]),
            )
            for row in rows
        ]