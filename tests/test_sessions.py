import sqlite3
import uuid

import pytest

from manifest.errors import InvalidStateError, NotFoundError, ValidationError
from manifest.models import (
    AgentType,
    CommitRef,
    CompleteSessionInput,
    CreateFeatureInput,
    CreateHistoryInput,
    CreateProjectInput,
    CreateSessionInput,
    CreateTaskInput,
    FeatureState,
    HistoryDetails,
    SessionStatus,
    TaskStatus,
    UpdateFeatureInput,
    UpdateTaskInput,
)
from manifest.sessions import SessionStore


@pytest.fixture
def store():
    s = SessionStore(sqlite3.connect(":memory:"))
    s.migrate()
    yield s
    s.close()


@pytest.fixture
def feature(store):
    project = store.create_project(CreateProjectInput(name="Test Project"))
    return store.create_feature(project.id, CreateFeatureInput(title="Feature"))


def task(title="Task", agent=AgentType.CLAUDE, scope="Scope"):
    return CreateTaskInput(title=title, scope=scope, agent_type=agent)


def test_session_on_leaf_feature(store, feature):
    response = store.create_session(
        CreateSessionInput(feature_id=feature.id, goal="Implement feature")
    )
    assert response.session.status is SessionStatus.ACTIVE
    assert response.session.feature_id == feature.id
    assert response.tasks == []


def test_session_promotes_proposed_to_specified(store, feature):
    store.create_session(CreateSessionInput(feature_id=feature.id, goal="Goal"))
    assert store.get_feature(feature.id).state is FeatureState.SPECIFIED


def test_session_rejected_on_non_leaf(store, feature):
    store.create_feature(
        feature.project_id, CreateFeatureInput(title="Child", parent_id=feature.id)
    )
    with pytest.raises(ValidationError, match="leaf"):
        store.create_session(CreateSessionInput(feature_id=feature.id, goal="Goal"))


def test_session_on_missing_feature(store):
    with pytest.raises(NotFoundError, match="Feature not found"):
        store.create_session(CreateSessionInput(feature_id=uuid.uuid4(), goal="Goal"))


def test_complete_session_returns_result(store, feature):
    created = store.create_session(
        CreateSessionInput(feature_id=feature.id, goal="Implement feature", tasks=[task()])
    )
    result = store.complete_session(
        created.session.id, CompleteSessionInput(summary="Feature implemented")
    )
    assert result.session.status is SessionStatus.COMPLETED
    assert result.session.completed_at is not None
    assert result.history_entry.details.summary == "Feature implemented"
    assert store.get_tasks_by_session(created.session.id) == []
    assert store.get_session(created.session.id).status is SessionStatus.COMPLETED


def test_completion_creates_history(store, feature):
    created = store.create_session(CreateSessionInput(feature_id=feature.id, goal="Goal"))
    store.complete_session(
        created.session.id,
        CompleteSessionInput(
            summary="Work completed", commits=[CommitRef(sha="abc123", message="Add")]
        ),
    )
    history = store.get_feature_history(feature.id)
    assert len(history) == 1
    assert history[0].details.summary == "Work completed"
    assert history[0].details.commits == [CommitRef(sha="abc123", message="Add")]
    assert history[0].session_id == created.session.id


def test_complete_missing_session(store):
    assert store.complete_session(uuid.uuid4(), CompleteSessionInput(summary="Done")) is None


def test_complete_twice_is_invalid(store, feature):
    created = store.create_session(CreateSessionInput(feature_id=feature.id, goal="Goal"))
    store.complete_session(created.session.id, CompleteSessionInput(summary="Done"))
    with pytest.raises(InvalidStateError, match="Session is not active"):
        store.complete_session(created.session.id, CompleteSessionInput(summary="Again"))


def test_implemented_promotes_desired_details(store, feature):
    store.update_feature(feature.id, UpdateFeatureInput(desired_details="New spec"))
    created = store.create_session(CreateSessionInput(feature_id=feature.id, goal="Goal"))
    store.complete_session(
        created.session.id,
        CompleteSessionInput(summary="Done", feature_state=FeatureState.IMPLEMENTED),
    )
    updated = store.get_feature(feature.id)
    assert updated.state is FeatureState.IMPLEMENTED
    assert updated.details == "New spec"
    assert updated.desired_details is None


def test_other_state_leaves_details(store, feature):
    store.update_feature(feature.id, UpdateFeatureInput(desired_details="New spec"))
    created = store.create_session(CreateSessionInput(feature_id=feature.id, goal="Goal"))
    store.complete_session(
        created.session.id,
        CompleteSessionInput(summary="Done", feature_state=FeatureState.DEPRECATED),
    )
    updated = store.get_feature(feature.id)
    assert updated.state is FeatureState.DEPRECATED
    assert updated.desired_details == "New spec"


def test_get_session(store, feature):
    created = store.create_session(
        CreateSessionInput(feature_id=feature.id, goal="Implement the feature")
    )
    session = store.get_session(created.session.id)
    assert session.id == created.session.id
    assert session.goal == "Implement the feature"
    assert session.status is SessionStatus.ACTIVE


def test_get_missing_session(store):
    assert store.get_session(uuid.uuid4()) is None


def test_session_status(store):
    project = store.create_project(CreateProjectInput(name="P"))
    feature = store.create_feature(project.id, CreateFeatureInput(title="Feature Title"))
    created = store.create_session(
        CreateSessionInput(feature_id=feature.id, goal="Goal", tasks=[task("Task 1")])
    )
    status = store.get_session_status(created.session.id)
    assert status.session.id == created.session.id
    assert status.feature.title == "Feature Title"
    assert [t.title for t in status.tasks] == ["Task 1"]


def test_session_status_missing(store):
    assert store.get_session_status(uuid.uuid4()) is None


def test_get_task(store, feature):
    created = store.create_session(
        CreateSessionInput(
            feature_id=feature.id,
            goal="Goal",
            tasks=[task("My Task", AgentType.GEMINI, "Task scope")],
        )
    )
    task_id = created.tasks[0].id
    fetched = store.get_task(task_id)
    assert fetched.id == task_id
    assert fetched.title == "My Task"
    assert fetched.scope == "Task scope"
    assert fetched.agent_type is AgentType.GEMINI
    assert fetched.status is TaskStatus.PENDING


def test_get_missing_task(store):
    assert store.get_task(uuid.uuid4()) is None


def test_update_task(store, feature):
    created = store.create_session(
        CreateSessionInput(feature_id=feature.id, goal="Goal", tasks=[task()])
    )
    task_id = created.tasks[0].id
    assert store.update_task(
        task_id,
        UpdateTaskInput(
            status=TaskStatus.RUNNING, worktree_path="/tmp/worktree", branch="feature-branch"
        ),
    )
    fetched = store.get_task(task_id)
    assert fetched.status is TaskStatus.RUNNING
    assert fetched.worktree_path == "/tmp/worktree"
    assert fetched.branch == "feature-branch"


def test_update_missing_task(store):
    assert store.update_task(uuid.uuid4(), UpdateTaskInput(status=TaskStatus.RUNNING)) is False


def test_update_task_without_changes(store, feature):
    created = store.create_session(
        CreateSessionInput(feature_id=feature.id, goal="Goal", tasks=[task()])
    )
    assert store.update_task(created.tasks[0].id, UpdateTaskInput()) is False


def test_create_task_in_session(store, feature):
    created = store.create_session(CreateSessionInput(feature_id=feature.id, goal="Goal"))
    new = store.create_task(created.session.id, task("New Task", scope="Task scope"))
    assert new.title == "New Task"
    assert new.scope == "Task scope"
    assert new.agent_type is AgentType.CLAUDE
    assert new.status is TaskStatus.PENDING
    assert [t.id for t in store.get_tasks_by_session(created.session.id)] == [new.id]


def test_create_task_missing_session(store):
    with pytest.raises(NotFoundError, match="Session not found"):
        store.create_task(uuid.uuid4(), task())


def test_create_task_in_completed_session(store, feature):
    created = store.create_session(CreateSessionInput(feature_id=feature.id, goal="Goal"))
    store.complete_session(created.session.id, CompleteSessionInput(summary="Done"))
    with pytest.raises(InvalidStateError):
        store.create_task(created.session.id, task())


def test_list_tasks_in_session(store, feature):
    created = store.create_session(
        CreateSessionInput(
            feature_id=feature.id,
            goal="Goal",
            tasks=[task("Task 1"), task("Task 2", AgentType.GEMINI)],
        )
    )
    tasks = store.get_tasks_by_session(created.session.id)
    assert sorted(t.title for t in tasks) == ["Task 1", "Task 2"]


def test_list_tasks_unknown_session(store):
    assert store.get_tasks_by_session(uuid.uuid4()) == []


def test_task_children(store, feature):
    created = store.create_session(
        CreateSessionInput(feature_id=feature.id, goal="Goal", tasks=[task("Parent")])
    )
    parent_id = created.tasks[0].id
    child = store.create_task(
        created.session.id,
        CreateTaskInput(
            title="Sub", scope="S", agent_type=AgentType.CODEX, parent_id=parent_id
        ),
    )
    assert [t.id for t in store.get_task_children(parent_id)] == [child.id]


def test_sessions_by_feature_empty(store, feature):
    assert store.get_sessions_by_feature(feature.id) == []


def test_sessions_by_feature(store, feature):
    created = store.create_session(
        CreateSessionInput(feature_id=feature.id, goal="First session")
    )
    sessions = store.get_sessions_by_feature(feature.id)
    assert [s.id for s in sessions] == [created.session.id]
    assert sessions[0].goal == "First session"


def test_history_empty(store, feature):
    assert store.get_feature_history(feature.id) == []


def test_manual_history_entry(store, feature):
    entry = store.create_history_entry(
        CreateHistoryInput(feature_id=feature.id, details=HistoryDetails(summary="Imported"))
    )
    history = store.get_feature_history(feature.id)
    assert [h.id for h in history] == [entry.id]
    assert history[0].details.summary == "Imported"
    assert history[0].session_id is None