"""Versioned schema migrations for the SQLite store."""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass

from manifest.convert import format_datetime, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Migration:
    """One schema change, applied once and recorded by version."""

    version: str
    name: str
    sql: str


_INITIAL = """
CREATE TABLE projects (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE project_directories (
    id TEXT PRIMARY KEY,
    project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
    path TEXT NOT NULL,
    git_remote TEXT,
    is_primary INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
);

CREATE TABLE features (
    id TEXT PRIMARY KEY,
    project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
    parent_id TEXT REFERENCES features(id) ON DELETE CASCADE,
    title TEXT NOT NULL,
    story TEXT,
    details TEXT,
    state TEXT NOT NULL DEFAULT 'proposed',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE sessions (
    id TEXT PRIMARY KEY,
    feature_id TEXT NOT NULL REFERENCES features(id) ON DELETE CASCADE,
    goal TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'active',
    created_at TEXT NOT NULL,
    completed_at TEXT
);

CREATE TABLE tasks (
    id TEXT PRIMARY KEY,
    session_id TEXT NOT NULL REFERENCES sessions(id) ON DELETE CASCADE,
    parent_id TEXT REFERENCES tasks(id) ON DELETE CASCADE,
    title TEXT NOT NULL,
    scope TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending',
    agent_type TEXT NOT NULL,
    worktree_path TEXT,
    branch TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE task_notes (
    id TEXT PRIMARY KEY,
    task_id TEXT NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
    content TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE feature_history (
    id TEXT PRIMARY KEY,
    feature_id TEXT NOT NULL REFERENCES features(id) ON DELETE CASCADE,
    session_id TEXT,
    summary TEXT NOT NULL,
    files_changed JSON NOT NULL DEFAULT '[]',
    author TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL
);

CREATE INDEX idx_features_project ON features(project_id);
CREATE INDEX idx_features_parent ON features(parent_id);
CREATE INDEX idx_directories_project ON project_directories(project_id);
CREATE INDEX idx_sessions_feature ON sessions(feature_id);
CREATE INDEX idx_tasks_session ON tasks(session_id);
CREATE INDEX idx_history_feature ON feature_history(feature_id);
"""

_ADD_INSTRUCTIONS = """
ALTER TABLE projects ADD COLUMN instructions TEXT;
ALTER TABLE project_directories ADD COLUMN instructions TEXT;
"""

_REMOVE_NOTES = """
DROP TABLE IF EXISTS task_notes;
"""

_HISTORY_DETAILS = """
ALTER TABLE feature_history ADD COLUMN details TEXT;
UPDATE feature_history
   SET details = json_object('summary', COALESCE(summary, ''), 'commits', json('[]'));
"""

_FEATURE_PRIORITY = """
ALTER TABLE features ADD COLUMN priority INTEGER NOT NULL DEFAULT 0;
"""

_REMOVE_STORY = """
UPDATE features
   SET details = CASE
       WHEN details IS NULL OR details = '' THEN story
       ELSE story || char(10) || char(10) || details
   END
 WHERE story IS NOT NULL AND story <> '';
ALTER TABLE features DROP COLUMN story;
"""

_DESIRED_DETAILS = """
ALTER TABLE features ADD COLUMN desired_details TEXT;
"""

_REMOVE_HISTORY_LEGACY = """
UPDATE feature_history
   SET details = json_object('summary', COALESCE(summary, ''), 'commits', json('[]'))
 WHERE details IS NULL;
UPDATE feature_history SET files_changed = '[]', author = '';
"""

MIGRATIONS: tuple[Migration, ...] = (
    Migration("001", "initial", _INITIAL),
    Migration("002", "add_instructions", _ADD_INSTRUCTIONS),
    Migration("003", "remove_notes", _REMOVE_NOTES),
    Migration("004", "history_details", _HISTORY_DETAILS),
    Migration("005", "feature_priority", _FEATURE_PRIORITY),
    Migration("006", "remove_story", _REMOVE_STORY),
    Migration("007", "desired_details", _DESIRED_DETAILS),
    Migration("008", "remove_history_legacy_columns", _REMOVE_HISTORY_LEGACY),
)


def run_migrations(connection: sqlite3.Connection) -> None:
    """Bring the schema up to date, applying every pending migration in order."""
    try:
        connection.executescript(
            """CREATE TABLE IF NOT EXISTS schema_migrations (
                version TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                applied_at TEXT NOT NULL
            );"""
        )
    except sqlite3.Error as exc:
        raise RuntimeError("Failed to create schema_migrations table") from exc

    if _needs_baseline(connection):
        _mark_applied(connection, "001", "initial")
        logger.info("Detected existing database, marked migration 001 as applied")

    applied = set(get_applied_migrations(connection))
    for migration in MIGRATIONS:
        if migration.version not in applied:
            _apply(connection, migration)


def get_applied_migrations(connection: sqlite3.Connection) -> list[str]:
    """Return the versions recorded as applied, in ascending order."""
    rows = connection.execute(
        "SELECT version FROM schema_migrations ORDER BY version"
    ).fetchall()
    return [row[0] for row in rows]


def _needs_baseline(connection: sqlite3.Connection) -> bool:
    """True for a database that has tables but no migration records."""
    (recorded,) = connection.execute(
        "SELECT COUNT(*) FROM schema_migrations"
    ).fetchone()
    if recorded > 0:
        return False
    (tables,) = connection.execute(
        "SELECT COUNT(*) FROM sqlite_master WHERE type='table' AND name='features'"
    ).fetchone()
    return tables > 0


def _mark_applied(connection: sqlite3.Connection, version: str, name: str) -> None:
    with connection:
        connection.execute(
            "INSERT INTO schema_migrations (version, name, applied_at) VALUES (?, ?, ?)",
            (version, name, format_datetime(utc_now())),
        )


def _apply(connection: sqlite3.Connection, migration: Migration) -> None:
    logger.info("Applying migration %s: %s", migration.version, migration.name)
    try:
        connection.executescript(f"BEGIN TRANSACTION; {migration.sql} COMMIT;")
    except sqlite3.Error as exc:
        if connection.in_transaction:
            connection.rollback()
        raise RuntimeError(
            f"Failed to apply migration {migration.version}: {migration.name}"
        ) from exc
    _mark_applied(connection, migration.version, migration.name)
    logger.info("Migration %s applied successfully", migration.version)