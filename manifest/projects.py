"""Storage of projects and their directories."""

from __future__ import annotations

import sqlite3
import threading
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any, Optional
from uuid import UUID, uuid4

from manifest.convert import format_datetime, parse_datetime, parse_uuid, utc_now
from manifest.errors import not_found
from manifest.models import (
    AddDirectoryInput,
    CreateProjectInput,
    Project,
    ProjectDirectory,
    ProjectWithDirectories,
    UpdateProjectInput,
)
from manifest.schema import run_migrations

_PROJECT_COLUMNS = "id, name, description, instructions, created_at, updated_at"
_DIRECTORY_COLUMNS = (
    "id, project_id, path, git_remote, is_primary, instructions, created_at"
)


def _project_from_row(row: Sequence[Any]) -> Project:
    return Project(
        id=parse_uuid(row[0]),
        name=row[1],
        description=row[2],
        instructions=row[3],
        created_at=parse_datetime(row[4]),
        updated_at=parse_datetime(row[5]),
    )


def _directory_from_row(row: Sequence[Any]) -> ProjectDirectory:
    return ProjectDirectory(
        id=parse_uuid(row[0]),
        project_id=parse_uuid(row[1]),
        path=row[2],
        git_remote=row[3],
        is_primary=bool(row[4]),
        instructions=row[5],
        created_at=parse_datetime(row[6]),
    )


class ProjectStore:
    """Projects and their directories, kept in one SQLite connection."""

    def __init__(self, connection: sqlite3.Connection) -> None:
        self._conn = connection
        self._lock = threading.RLock()
        self._conn.execute("PRAGMA foreign_keys = ON")

    # -- plumbing ------------------------------------------------------

    @contextmanager
    def _write(self) -> Iterator[sqlite3.Connection]:
        """Hold the lock and run the block as one committed transaction."""
        with self._lock, self._conn:
            yield self._conn

    def _fetch_all(self, sql: str, params: Sequence[Any] = ()) -> list[Any]:
        with self._lock:
            return self._conn.execute(sql, tuple(params)).fetchall()

    def _fetch_one(self, sql: str, params: Sequence[Any] = ()) -> Optional[Any]:
        with self._lock:
            return self._conn.execute(sql, tuple(params)).fetchone()

    def migrate(self) -> None:
        """Apply pending schema migrations."""
        with self._lock:
            run_migrations(self._conn)

    def close(self) -> None:
        """Close the underlying connection."""
        with self._lock:
            self._conn.close()

    # -- projects ------------------------------------------------------

    def get_all_projects(self) -> list[Project]:
        rows = self._fetch_all(f"SELECT {_PROJECT_COLUMNS} FROM projects ORDER BY name")
        return [_project_from_row(row) for row in rows]

    def get_project(self, project_id: UUID) -> Optional[Project]:
        row = self._fetch_one(
            f"SELECT {_PROJECT_COLUMNS} FROM projects WHERE id = ?", (str(project_id),)
        )
        return _project_from_row(row) if row is not None else None

    def create_project(self, data: CreateProjectInput) -> Project:
        project_id = uuid4()
        now = utc_now()
        stamp = format_datetime(now)
        with self._write() as conn:
            conn.execute(
                "INSERT INTO projects (id, name, description, instructions, created_at, updated_at)"
                " VALUES (?, ?, ?, ?, ?, ?)",
                (str(project_id), data.name, data.description, data.instructions, stamp, stamp),
            )
        return Project(
            id=project_id,
            name=data.name,
            description=data.description,
            instructions=data.instructions,
            created_at=now,
            updated_at=now,
        )

    def update_project(
        self, project_id: UUID, data: UpdateProjectInput
    ) -> Optional[Project]:
        with self._lock:
            existing = self.get_project(project_id)
            if existing is None:
                return None
            now = utc_now()
            name = data.name if data.name is not None else existing.name
            description = (
                data.description if data.description is not None else existing.description
            )
            instructions = (
                data.instructions if data.instructions is not None else existing.instructions
            )
            with self._write() as conn:
                conn.execute(
                    "UPDATE projects SET name = ?, description = ?, instructions = ?,"
                    " updated_at = ? WHERE id = ?",
                    (name, description, instructions, format_datetime(now), str(project_id)),
                )
        return Project(
            id=project_id,
            name=name,
            description=description,
            instructions=instructions,
            created_at=existing.created_at,
            updated_at=now,
        )

    def delete_project(self, project_id: UUID) -> bool:
        with self._write() as conn:
            cursor = conn.execute("DELETE FROM projects WHERE id = ?", (str(project_id),))
        return cursor.rowcount > 0

    # -- directories ---------------------------------------------------

    def get_project_directories(self, project_id: UUID) -> list[ProjectDirectory]:
        rows = self._fetch_all(
            f"SELECT {_DIRECTORY_COLUMNS} FROM project_directories"
            " WHERE project_id = ? ORDER BY is_primary DESC, path",
            (str(project_id),),
        )
        return [_directory_from_row(row) for row in rows]

    def add_project_directory(
        self, project_id: UUID, data: AddDirectoryInput
    ) -> ProjectDirectory:
        """Attach a directory to a project; raises NotFoundError if it is missing."""
        with self._lock:
            if self.get_project(project_id) is None:
                raise not_found("Project")
            directory_id = uuid4()
            now = utc_now()
            with self._write() as conn:
                conn.execute(
                    "INSERT INTO project_directories"
                    " (id, project_id, path, git_remote, is_primary, instructions, created_at)"
                    " VALUES (?, ?, ?, ?, ?, ?, ?)",
                    (
                        str(directory_id),
                        str(project_id),
                        data.path,
                        data.git_remote,
                        1 if data.is_primary else 0,
                        data.instructions,
                        format_datetime(now),
                    ),
                )
        return ProjectDirectory(
            id=directory_id,
            project_id=project_id,
            path=data.path,
            git_remote=data.git_remote,
            is_primary=data.is_primary,
            instructions=data.instructions,
            created_at=now,
        )

    def remove_project_directory(self, directory_id: UUID) -> bool:
        with self._write() as conn:
            cursor = conn.execute(
                "DELETE FROM project_directories WHERE id = ?", (str(directory_id),)
            )
        return cursor.rowcount > 0

    def get_project_with_directories(
        self, project_id: UUID
    ) -> Optional[ProjectWithDirectories]:
        with self._lock:
            project = self.get_project(project_id)
            if project is None:
                return None
            return ProjectWithDirectories(
                project=project, directories=self.get_project_directories(project_id)
            )

    def get_project_by_directory(self, path: str) -> Optional[ProjectWithDirectories]:
        """Find the project whose directory is ``path`` or an ancestor of it.

        The longest registered directory wins.
        """
        with self._lock:
            rows = self._fetch_all(
                "SELECT project_id, path FROM project_directories ORDER BY length(path) DESC"
            )
            found = next(
                (
                    project_id
                    for project_id, dir_path in rows
                    if path == dir_path or path.startswith(f"{dir_path}/")
                ),
                None,
            )
            if found is None:
                return None
            return self.get_project_with_directories(parse_uuid(found))