# manifest

A store for living feature documentation. Features describe what a system
can do; they form a tree per project, evolve over time, and record the work
done on them. Everything is kept in a single SQLite database.

## Concepts

- **Project**: top-level container, with one or more directories on disk
  and optional instructions for agents.
- **Feature**: a node in the project's feature tree, in one of the states
  `proposed`, `specified`, `implemented` or `deprecated`. A feature can
  carry `desired_details` for pending edits; these replace `details` when a
  session completes with the `implemented` state.
- **Session**: work on a leaf feature (one with no children). Starting a
  session moves a `proposed` feature to `specified`.
- **Task**: a unit of work inside a session, assigned to an agent type
  (`claude`, `gemini` or `codex`). A session's tasks are deleted when the
  session completes.
- **FeatureHistory**: an append-only entry written when a session
  completes, holding a summary and any commits (`CommitRef`).

All of these are dataclasses in `manifest.models`, and the states and
agent types are string enums there (`FeatureState`, `SessionStatus`,
`TaskStatus`, `AgentType`).

## Installation

```
pip install manifest
```

## Opening a database

```python
from manifest.database import Database

with Database.open_memory() as db:
    db.migrate()
    ...
```

- `Database.open(path)` opens a database file in WAL mode, creating its
  parent directory if needed.
- `Database.open_default()` opens `$MANIFEST_DATA_DIR/manifest.db` when that
  environment variable is set, and otherwise `manifest.db` in the user data
  directory for `manifest`.
- `Database.open_memory()` opens a private in-memory database.

`migrate()` applies the schema migrations (versions `001` to `008`) that
have not yet been applied, recording each in a `schema_migrations` table; it
is safe to call on every start. A database that already has a `features`
table but no migration records is treated as having migration `001`. The
same logic is available directly as `manifest.schema.run_migrations(connection)`
and `manifest.schema.get_applied_migrations(connection)`.

Foreign keys are enforced: deleting a project removes its directories and
features, and deleting a feature removes its children, sessions and history.

## Example

```python
from manifest.database import Database
from manifest.models import (
    AgentType,
    CompleteSessionInput,
    CreateFeatureInput,
    CreateProjectInput,
    CreateSessionInput,
    CreateTaskInput,
    FeatureState,
)

with Database.open_memory() as db:
    db.migrate()

    project = db.create_project(CreateProjectInput(name="Shop"))
    auth = db.create_feature(project.id, CreateFeatureInput(title="Authentication"))
    login = db.create_feature(
        project.id, CreateFeatureInput(title="Login", parent_id=auth.id)
    )

    started = db.create_session(
        CreateSessionInput(
            feature_id=login.id,
            goal="Implement login",
            tasks=[CreateTaskInput(title="Form", scope="Login form", agent_type=AgentType.CLAUDE)],
        )
    )

    result = db.complete_session(
        started.session.id,
        CompleteSessionInput(summary="Login done", feature_state=FeatureState.IMPLEMENTED),
    )
    print(result.history_entry.details.summary)

    for node in db.get_feature_tree(project.id):
        print(node.feature.title, [child.feature.title for child in node.children])
```

## Operations

`Database` offers:

- Projects: `get_all_projects`, `get_project`, `create_project`,
  `update_project`, `delete_project`.
- Directories: `get_project_directories`, `add_project_directory`,
  `remove_project_directory`, `get_project_with_directories`, and
  `get_project_by_directory(path)`, which finds the project whose directory
  is `path` or the longest registered directory containing it.
- Features: `get_all_features`, `get_all_features_paginated(limit, offset)`,
  `get_features_by_project`, `get_features_by_project_paginated`,
  `get_feature`, `get_feature_diff`, `create_feature`,
  `create_features_bulk` (all or nothing), `update_feature`,
  `delete_feature`, `get_root_features`, `get_children`, `is_leaf`,
  `get_feature_tree`, `search_features`.
- Sessions: `get_session`, `get_sessions_by_feature`, `create_session`,
  `get_session_status`, `complete_session`.
- Tasks: `get_task`, `get_tasks_by_session`, `get_task_children`,
  `create_task`, `update_task`.
- History: `create_history_entry`, `get_feature_history`.

Lists are ordered by priority and then title for features, by name for
projects, and newest first for sessions and history. `get_*` and `update_*`
methods return `None` when the record does not exist; `delete_*`,
`remove_project_directory` and `update_task` return whether a row changed.
In the update inputs, a field left as `None` keeps its current value.

## Errors

Creating a session on a feature that has children raises
`manifest.errors.ValidationError`; completing a session that is not active,
or adding a task to one, raises `InvalidStateError`; referring to a missing
project, feature or session when creating something raises `NotFoundError`.
All three derive from `ManifestError`. SQLite failures propagate as
`sqlite3` exceptions.

## Searching

```python
db.search_features("login", project_id=project.id, limit=5)
```

Matches are case-insensitive substring matches on title or details. Title
matches rank ahead of details-only matches, then priority and title. The
default limit is 10. The search returns `FeatureSummary` records.

## Serialising

Every model that is returned has a `to_dict()` method giving a JSON-ready
dictionary with UUIDs and timestamps as strings. `HistoryDetails.from_dict`
and `CommitRef.from_dict` read them back.

## What this package does not do

This is a library only. It has no command-line program, no HTTP API and no
tool server for agents; those have to be built on top of `Database`.