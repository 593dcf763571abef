"""Storage of the feature tree of each project."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Sequence
from typing import Any, Optional
from uuid import UUID, uuid4

from manifest.convert import format_datetime, parse_datetime, parse_uuid, utc_now
from manifest.errors import not_found
from manifest.models import (
    CreateFeatureInput,
    Feature,
    FeatureDiff,
    FeatureState,
    FeatureSummary,
    FeatureTreeNode,
    UpdateFeatureInput,
)
from manifest.projects import ProjectStore

_FEATURE_COLUMNS = (
    "id, project_id, parent_id, title, details, desired_details, state, priority,"
    " created_at, updated_at"
)
_ORDER = "ORDER BY priority, title"

_INSERT_FEATURE = (
    "INSERT INTO features"
    " (id, project_id, parent_id, title, details, state, priority, created_at, updated_at)"
    " VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)"
)


def _state(value: str) -> FeatureState:
    try:
        return FeatureState(value)
    except ValueError:
        return FeatureState.PROPOSED


def _opt_uuid(value: Optional[str]) -> Optional[UUID]:
    return parse_uuid(value) if value is not None else None


def _feature_from_row(row: Sequence[Any]) -> Feature:
    return Feature(
        id=parse_uuid(row[0]),
        project_id=parse_uuid(row[1]),
        parent_id=_opt_uuid(row[2]),
        title=row[3],
        details=row[4],
        desired_details=row[5],
        state=_state(row[6]),
        priority=row[7],
        created_at=parse_datetime(row[8]),
        updated_at=parse_datetime(row[9]),
    )


def _pagination(limit: Optional[int], offset: Optional[int]) -> tuple[str, list[Any]]:
    """SQL tail and parameters for optional LIMIT/OFFSET."""
    if limit is not None and offset is not None:
        return " LIMIT ? OFFSET ?", [limit, offset]
    if limit is not None:
        return " LIMIT ?", [limit]
    if offset is not None:
        return " LIMIT -1 OFFSET ?", [offset]
    return "", []


class FeatureStore(ProjectStore):
    """Projects plus their hierarchical features."""

    def _features(self, where: str, params: Iterable[Any] = ()) -> list[Feature]:
        rows = self._fetch_all(
            f"SELECT {_FEATURE_COLUMNS} FROM features{where}", tuple(params)
        )
        return [_feature_from_row(row) for row in rows]

    def get_all_features_paginated(
        self, limit: Optional[int], offset: Optional[int]
    ) -> list[Feature]:
        tail, params = _pagination(limit, offset)
        return self._features(f" {_ORDER}{tail}", params)

    def get_all_features(self) -> list[Feature]:
        return self.get_all_features_paginated(None, None)

    def get_features_by_project_paginated(
        self, project_id: UUID, limit: Optional[int], offset: Optional[int]
    ) -> list[Feature]:
        tail, params = _pagination(limit, offset)
        return self._features(
            f" WHERE project_id = ? {_ORDER}{tail}", [str(project_id), *params]
        )

    def get_features_by_project(self, project_id: UUID) -> list[Feature]:
        return self.get_features_by_project_paginated(project_id, None, None)

    def get_feature(self, feature_id: UUID) -> Optional[Feature]:
        row = self._fetch_one(
            f"SELECT {_FEATURE_COLUMNS} FROM features WHERE id = ?", (str(feature_id),)
        )
        return _feature_from_row(row) if row is not None else None

    def get_feature_diff(self, feature_id: UUID) -> Optional[FeatureDiff]:
        """Compare a feature's current details with its desired details."""
        feature = self.get_feature(feature_id)
        if feature is None:
            return None
        has_changes = (
            feature.desired_details is not None
            and feature.desired_details != feature.details
        )
        return FeatureDiff(
            has_changes=has_changes,
            current=feature.details,
            desired=feature.desired_details,
        )

    def _insert_feature(
        self, conn: Any, project_id: UUID, data: CreateFeatureInput, now: Any
    ) -> Feature:
        feature_id = data.id if data.id is not None else uuid4()
        state = data.state if data.state is not None else FeatureState.PROPOSED
        priority = data.priority if data.priority is not None else 0
        stamp = format_datetime(now)
        conn.execute(
            _INSERT_FEATURE,
            (
                str(feature_id),
                str(project_id),
                str(data.parent_id) if data.parent_id is not None else None,
                data.title,
                data.details,
                state.value,
                priority,
                stamp,
                stamp,
            ),
        )
        return Feature(
            id=feature_id,
            project_id=project_id,
            parent_id=data.parent_id,
            title=data.title,
            details=data.details,
            desired_details=None,
            state=state,
            priority=priority,
            created_at=now,
            updated_at=now,
        )

    def create_feature(self, project_id: UUID, data: CreateFeatureInput) -> Feature:
        """Create a feature; raises NotFoundError if the project is missing."""
        with self._lock:
            if self.get_project(project_id) is None:
                raise not_found("Project")
            with self._write() as conn:
                return self._insert_feature(conn, project_id, data, utc_now())

    def create_features_bulk(
        self, project_id: UUID, inputs: Iterable[CreateFeatureInput]
    ) -> list[Feature]:
        """Create several features atomically: all of them or none."""
        with self._lock:
            if self.get_project(project_id) is None:
                raise not_found("Project")
            now = utc_now()
            with self._write() as conn:
                return [
                    self._insert_feature(conn, project_id, data, now) for data in inputs
                ]

    def update_feature(
        self, feature_id: UUID, data: UpdateFeatureInput
    ) -> Optional[Feature]:
        with self._lock:
            existing = self.get_feature(feature_id)
            if existing is None:
                return None
            now = utc_now()

            def pick(new: Any, old: Any) -> Any:
                return new if new is not None else old

            title = pick(data.title, existing.title)
            details = pick(data.details, existing.details)
            desired_details = pick(data.desired_details, existing.desired_details)
            state = pick(data.state, existing.state)
            parent_id = pick(data.parent_id, existing.parent_id)
            priority = pick(data.priority, existing.priority)

            with self._write() as conn:
                conn.execute(
                    "UPDATE features SET parent_id = ?, title = ?, details = ?,"
                    " desired_details = ?, state = ?, priority = ?, updated_at = ?"
                    " WHERE id = ?",
                    (
                        str(parent_id) if parent_id is not None else None,
                        title,
                        details,
                        desired_details,
                        state.value,
                        priority,
                        format_datetime(now),
                        str(feature_id),
                    ),
                )
        return Feature(
            id=feature_id,
            project_id=existing.project_id,
            parent_id=parent_id,
            title=title,
            details=details,
            desired_details=desired_details,
            state=state,
            priority=priority,
            created_at=existing.created_at,
            updated_at=now,
        )

    def delete_feature(self, feature_id: UUID) -> bool:
        with self._write() as conn:
            cursor = conn.execute("DELETE FROM features WHERE id = ?", (str(feature_id),))
        return cursor.rowcount > 0

    def get_root_features(self, project_id: UUID) -> list[Feature]:
        return self._features(
            f" WHERE project_id = ? AND parent_id IS NULL {_ORDER}", (str(project_id),)
        )

    def get_children(self, parent_id: UUID) -> list[Feature]:
        return self._features(f" WHERE parent_id = ? {_ORDER}", (str(parent_id),))

    def is_leaf(self, feature_id: UUID) -> bool:
        (count,) = self._fetch_one(
            "SELECT COUNT(*) FROM features WHERE parent_id = ?", (str(feature_id),)
        )
        return count == 0

    def search_features(
        self, query: str, project_id: Optional[UUID] = None, limit: Optional[int] = None
    ) -> list[FeatureSummary]:
        """Find features whose title or details contain ``query``.

        Title matches rank before details matches; at most ``limit``
        (default 10) summaries are returned.
        """
        params: dict[str, Any] = {
            "pattern": f"%{query}%",
            "limit": limit if limit is not None else 10,
        }
        scope = ""
        if project_id is not None:
            scope = "project_id = :pid AND "
            params["pid"] = str(project_id)
        rows = self._fetch_all(
            "SELECT id, project_id, parent_id, title, state, priority FROM features"
            f" WHERE {scope}(title LIKE :pattern OR details LIKE :pattern)"
            " ORDER BY CASE WHEN title LIKE :pattern THEN 0 ELSE 1 END, priority, title"
            " LIMIT :limit",
            params,
        )
        return [
            FeatureSummary(
                id=parse_uuid(row[0]),
                project_id=parse_uuid(row[1]),
                parent_id=_opt_uuid(row[2]),
                title=row[3],
                state=_state(row[4]),
                priority=row[5],
            )
            for row in rows
        ]

    def _fetch_all(self, sql: str, params: Any = ()) -> list[Any]:
        with self._lock:
            if isinstance(params, dict):
                return self._conn.execute(sql, params).fetchall()
            return self._conn.execute(sql, tuple(params)).fetchall()

    def get_feature_tree(self, project_id: UUID) -> list[FeatureTreeNode]:
        """Return the project's features nested under their parents."""
        by_parent: dict[Optional[UUID], list[Feature]] = defaultdict(list)
        for feature in self.get_features_by_project(project_id):
            by_parent[feature.parent_id].append(feature)

        def build(parent_id: Optional[UUID]) -> list[FeatureTreeNode]:
            return [
                FeatureTreeNode(feature=f, children=build(f.id))
                for f in by_parent.get(parent_id, [])
            ]

        return build(None)