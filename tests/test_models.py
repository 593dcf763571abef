import json
from datetime import datetime, timedelta, timezone
from uuid import UUID, uuid4

import pytest

from manifest.models import (
    AddDirectoryInput,
    AgentType,
    CommitRef,
    CompleteSessionInput,
    CreateFeatureInput,
    CreateFeatureSessionInput,
    Feature,
    FeatureDiff,
    FeatureHistory,
    FeatureState,
    FeatureSummary,
    FeatureTreeNode,
    HistoryDetails,
    Project,
    ProjectDirectory,
    ProjectWithDirectories,
    Session,
    SessionCompletionResult,
    SessionFeatureSummary,
    SessionResponse,
    SessionStatus,
    SessionStatusResponse,
    Task,
    TaskStatus,
)

WHEN = datetime(2024, 1, 15, 10, 30, 0, tzinfo=timezone.utc)
FEATURE_ID = UUID("550e8400-e29b-41d4-a716-446655440000")


def make_feature(title="Feature", parent_id=None, feature_id=None):
    return Feature(
        id=feature_id or uuid4(),
        project_id=uuid4(),
        parent_id=parent_id,
        title=title,
        details="Current",
        desired_details=None,
        state=FeatureState.SPECIFIED,
        priority=2,
        created_at=WHEN,
        updated_at=WHEN,
    )


def make_session(status=SessionStatus.ACTIVE, completed_at=None):
    return Session(
        id=uuid4(),
        feature_id=FEATURE_ID,
        goal="Implement the feature",
        status=status,
        created_at=WHEN,
        completed_at=completed_at,
    )


def make_task():
    return Task(
        id=uuid4(),
        session_id=uuid4(),
        parent_id=None,
        title="My Task",
        scope="Task scope",
        status=TaskStatus.PENDING,
        agent_type=AgentType.GEMINI,
        worktree_path=None,
        branch=None,
        created_at=WHEN,
    )


@pytest.mark.parametrize(
    "enum_cls, values",
    [
        (FeatureState, ["proposed", "specified", "implemented", "deprecated"]),
        (SessionStatus, ["active", "completed", "failed"]),
        (TaskStatus, ["pending", "running", "completed", "failed"]),
        (AgentType, ["claude", "gemini", "codex"]),
    ],
)
def test_enum_values_round_trip(enum_cls, values):
    assert [member.value for member in enum_cls] == values
    for value in values:
        assert enum_cls(value).value == value
        assert str(enum_cls(value)) == value


@pytest.mark.parametrize("enum_cls", [FeatureState, SessionStatus, TaskStatus, AgentType])
def test_enum_rejects_unknown(enum_cls):
    with pytest.raises(ValueError):
        enum_cls("bogus")


def test_feature_to_dict_serialises_fields():
    parent = uuid4()
    feature = make_feature(title="Login", parent_id=parent, feature_id=FEATURE_ID)
    data = feature.to_dict()
    assert data["id"] == "550e8400-e29b-41d4-a716-446655440000"
    assert data["parent_id"] == str(parent)
    assert data["state"] == "specified"
    assert data["title"] == "Login"
    assert data["desired_details"] is None
    assert data["created_at"] == "2024-01-15T10:30:00Z"
    assert json.loads(json.dumps(data)) == data


def test_datetime_converted_to_utc():
    offset = timezone(timedelta(hours=2))
    feature = make_feature()
    feature.created_at = datetime(2024, 1, 15, 12, 30, 0, tzinfo=offset)
    assert feature.to_dict()["created_at"] == "2024-01-15T10:30:00Z"


def test_create_feature_input_defaults():
    data = CreateFeatureInput(title="Root")
    assert data.id is None
    assert data.parent_id is None
    assert data.state is None
    assert data.priority is None


def test_feature_summary_from_feature():
    feature = make_feature(title="Summary me", parent_id=uuid4())
    summary = FeatureSummary.from_feature(feature)
    assert summary.id == feature.id
    assert summary.parent_id == feature.parent_id
    assert summary.title == "Summary me"
    assert summary.state is FeatureState.SPECIFIED
    assert summary.priority == feature.priority
    assert "details" not in summary.to_dict()
    assert summary.to_dict()["id"] == str(feature.id)


def test_feature_tree_node_flattens_feature():
    root = make_feature(title="Authentication")
    login = make_feature(title="Login", parent_id=root.id)
    logout = make_feature(title="Logout", parent_id=root.id)
    tree = FeatureTreeNode(
        feature=root,
        children=[FeatureTreeNode(login), FeatureTreeNode(logout)],
    )
    data = tree.to_dict()
    assert data["title"] == "Authentication"
    assert [c["title"] for c in data["children"]] == ["Login", "Logout"]
    assert data["children"][0]["parent_id"] == str(root.id)
    assert data["children"][0]["children"] == []


def test_feature_diff_to_dict():
    diff = FeatureDiff(has_changes=True, current="Current", desired="Desired")
    assert diff.to_dict() == {"has_changes": True, "current": "Current", "desired": "Desired"}


def test_commit_ref_omits_missing_author():
    commit = CommitRef(sha="abc123", message="Fix bug")
    assert commit.to_dict() == {"sha": "abc123", "message": "Fix bug"}
    with_author = CommitRef(sha="abc123", message="Fix bug", author="Dev")
    assert with_author.to_dict()["author"] == "Dev"


def test_commit_ref_round_trip_and_missing_field():
    commit = CommitRef(sha="abc123", message="Fix bug", author="Dev")
    assert CommitRef.from_dict(commit.to_dict()) == commit
    with pytest.raises(ValueError):
        CommitRef.from_dict({"sha": "abc123"})


def test_history_details_round_trip():
    details = HistoryDetails(
        summary="Work completed",
        commits=[CommitRef(sha="abc", message="one"), CommitRef(sha="def", message="two")],
    )
    restored = HistoryDetails.from_dict(json.loads(json.dumps(details.to_dict())))
    assert restored == details


def test_history_details_commits_default_empty():
    restored = HistoryDetails.from_dict({"summary": "Done"})
    assert restored.commits == []
    assert restored.summary == "Done"


def test_history_details_requires_summary():
    with pytest.raises(ValueError):
        HistoryDetails.from_dict({"commits": []})


def test_feature_history_to_dict():
    entry = FeatureHistory(
        id=uuid4(),
        feature_id=FEATURE_ID,
        session_id=None,
        details=HistoryDetails(summary="Feature implemented"),
        created_at=WHEN,
    )
    data = entry.to_dict()
    assert data["session_id"] is None
    assert data["details"]["summary"] == "Feature implemented"
    assert data["feature_id"] == str(FEATURE_ID)


def test_project_with_directories_flattens_project():
    project = Project(
        id=uuid4(),
        name="Directory Test",
        description=None,
        instructions="Use TDD",
        created_at=WHEN,
        updated_at=WHEN,
    )
    directory = ProjectDirectory(
        id=uuid4(),
        project_id=project.id,
        path="/Users/test/my-project",
        git_remote=None,
        is_primary=True,
        instructions="cargo test",
        created_at=WHEN,
    )
    data = ProjectWithDirectories(project=project, directories=[directory]).to_dict()
    assert data["name"] == "Directory Test"
    assert data["instructions"] == "Use TDD"
    assert data["directories"][0]["path"] == "/Users/test/my-project"
    assert data["directories"][0]["is_primary"] is True
    assert data["directories"][0]["project_id"] == str(project.id)


def test_add_directory_input_defaults_not_primary():
    data = AddDirectoryInput(path="/home/user/project")
    assert data.is_primary is False
    assert data.git_remote is None


def test_session_to_dict_active_and_completed():
    active = make_session()
    assert active.to_dict()["status"] == "active"
    assert active.to_dict()["completed_at"] is None
    done = make_session(SessionStatus.COMPLETED, completed_at=WHEN)
    assert done.to_dict()["completed_at"] == "2024-01-15T10:30:00Z"


def test_task_to_dict():
    task = make_task()
    data = task.to_dict()
    assert data["agent_type"] == "gemini"
    assert data["status"] == "pending"
    assert data["title"] == "My Task"
    assert data["scope"] == "Task scope"


def test_session_response_and_status_response():
    session = make_session()
    task = make_task()
    response = SessionResponse(session=session, tasks=[task]).to_dict()
    assert response["session"]["id"] == str(session.id)
    assert [t["title"] for t in response["tasks"]] == ["My Task"]

    status = SessionStatusResponse(
        session=session,
        feature=SessionFeatureSummary(id=FEATURE_ID, title="Feature Title"),
        tasks=[task],
    ).to_dict()
    assert status["feature"] == {"id": str(FEATURE_ID), "title": "Feature Title"}
    assert len(status["tasks"]) == 1


def test_session_completion_result_to_dict():
    session = make_session(SessionStatus.COMPLETED, completed_at=WHEN)
    entry = FeatureHistory(
        id=uuid4(),
        feature_id=session.feature_id,
        session_id=session.id,
        details=HistoryDetails(summary="Feature implemented"),
        created_at=WHEN,
    )
    data = SessionCompletionResult(session=session, history_entry=entry).to_dict()
    assert data["session"]["status"] == "completed"
    assert data["history_entry"]["session_id"] == str(session.id)
    assert data["history_entry"]["details"]["summary"] == "Feature implemented"


def test_session_inputs_default_empty_lists():
    complete = CompleteSessionInput(summary="Done")
    assert complete.commits == []
    assert complete.feature_state is None
    restful = CreateFeatureSessionInput(goal="Goal")
    other = CreateFeatureSessionInput(goal="Goal")
    restful.tasks.append("x")
    assert other.tasks == []