"""Tests for tasks: creation, kanban moves, status changes, comments and subtasks."""
import pytest

from app.taskboard.db import session_scope
from app.taskboard.models import User
from app.taskboard.modules.projects.models import Project
from app.taskboard.modules.projects.service import create_project
from app.taskboard.modules.tasks.models import Task, TaskHistory
from app.taskboard.modules.tasks.service import create_task, parse_task_payload


@pytest.fixture()
def board(app):
    """Bob's project with two Pending tasks; returns ids."""
    with session_scope(app) as s:
        bob = s.query(User).filter(User.email == "bob@example.com").one()
        project = create_project(s, {"name": "Website"}, bob)
        pending, in_progress, completed = project.lists
        t1 = create_task(s, pending, {"title": "First"}, bob)
        t2 = create_task(s, pending, {"title": "Second"}, bob)
        return {
            "project": project.id,
            "pending": pending.id,
            "in_progress": in_progress.id,
            "completed": completed.id,
            "t1": t1.id,
            "t2": t2.id,
        }


def _history(s, task_id):
    return [
        (h.change_type, h.old_value, h.new_value)
        for h in s.query(TaskHistory).filter(TaskHistory.task_id == task_id).order_by(TaskHistory.id).all()
    ]


def test_parse_task_payload_defaults_and_errors():
    fields, errors = parse_task_payload({"title": "Ship it", "estimation_value": "3", "estimation_unit": "days"})
    assert errors == []
    assert fields["priority"] == "Medium"
    assert fields["status"] == "Pending"
    assert fields["estimation"] == "3 days"
    assert fields["due_date"] is None

    fields, errors = parse_task_payload({"title": "", "priority": "Urgent", "status": "Done", "due_date": "tomorrow"})
    assert "Title is required." in errors
    assert any(e.startswith("Invalid priority") for e in errors)
    assert any(e.startswith("Invalid status") for e in errors)
    assert any(e.startswith("Due date must be") for e in errors)


def test_create_task_via_form(app, client, login, board):
    login("bob@example.com")
    r = client.post(
        "/tasks/new",
        data={
            "project_id": board["project"],
            "list_id": board["in_progress"],
            "title": "Third",
            "priority": "High",
            "due_date": "2030-01-02",
            "due_time": "09:30",
            "return_to": "board",
        },
    )
    assert r.status_code == 302
    assert r.headers["Location"].endswith(f"/projects/{board['project']}/board")

    with session_scope(app) as s:
        task = s.query(Task).filter(Task.title == "Third").one()
        assert task.list_id == board["in_progress"]
        assert task.status == "In Progress"
        assert task.position == 0
        assert task.assignee.username == "bob"
        assert task.due_date.hour == 9 and task.due_date.minute == 30
        assert _history(s, task.id) == [("created", None, "Third")]


def test_create_task_requires_title(app, client, login, board):
    login("bob@example.com")
    r = client.post("/tasks/new", data={"project_id": board["project"], "title": ""}, follow_redirects=True)
    assert b"Title is required." in r.data
    with session_scope(app) as s:
        assert s.query(Task).count() == 2


def test_new_task_positions_are_appended(app, board):
    with session_scope(app) as s:
        assert s.get(Task, board["t1"]).position == 0
        assert s.get(Task, board["t2"]).position == 1


def test_move_task_between_lists(app, client, login, board):
    login("bob@example.com")
    r = client.post(f"/api/tasks/{board['t1']}/move", json={"list_id": board["in_progress"], "position": 0})
    assert r.status_code == 200
    assert r.json["task"]["status"] == "In Progress"

    with session_scope(app) as s:
        t1 = s.get(Task, board["t1"])
        t2 = s.get(Task, board["t2"])
        assert t1.list_id == board["in_progress"]
        assert t1.status == "In Progress"
        assert t1.position == 0
        # remaining task in the source list is repacked
        assert t2.position == 0
        assert _history(s, t1.id)[-1] == ("moved", "Pending", "In Progress")


def test_reorder_within_list_keeps_history(app, client, login, board):
    login("bob@example.com")
    r = client.post(f"/api/tasks/{board['t2']}/move", json={"list_id": board["pending"], "position": 0})
    assert r.status_code == 200

    with session_scope(app) as s:
        assert s.get(Task, board["t2"]).position == 0
        assert s.get(Task, board["t1"]).position == 1
        assert [h[0] for h in _history(s, board["t2"])] == ["created"]


def test_move_position_is_clamped(app, client, login, board):
    login("bob@example.com")
    r = client.post(f"/api/tasks/{board['t1']}/move", json={"list_id": board["completed"], "position": 99})
    assert r.status_code == 200
    assert r.json["task"]["position"] == 0


def test_move_rejects_bad_input(app, client, login, board):
    with session_scope(app) as s:
        bob = s.query(User).filter(User.email == "bob@example.com").one()
        other = create_project(s, {"name": "Other"}, bob).lists[0].id

    login("bob@example.com")
    r = client.post(f"/api/tasks/{board['t1']}/move", json={"list_id": "x", "position": 0})
    assert r.status_code == 400
    r = client.post(f"/api/tasks/{board['t1']}/move", json={"list_id": other, "position": 0})
    assert r.status_code == 404
    r = client.post("/api/tasks/9999/move", json={"list_id": board["pending"], "position": 0})
    assert r.status_code == 404


def test_move_via_form(app, client, login, board):
    login("bob@example.com")
    r = client.post(f"/tasks/{board['t1']}/move", data={"list_id": board["completed"]})
    assert r.status_code == 302
    with session_scope(app) as s:
        assert s.get(Task, board["t1"]).status == "Completed"


def test_status_change_moves_task_to_matching_list(app, client, login, board):
    login("bob@example.com")
    r = client.post(f"/api/tasks/{board['t2']}/status", json={"status": "Completed"})
    assert r.status_code == 200
    assert r.json["task"]["list_id"] == board["completed"]

    with session_scope(app) as s:
        assert _history(s, board["t2"])[1:] == [
            ("status_changed", "Pending", "Completed"),
            ("moved", "Pending", "Completed"),
        ]

    # no "Blocked" column: status changes, list stays
    r = client.post(f"/api/tasks/{board['t1']}/status", json={"status": "Blocked"})
    assert r.status_code == 200
    assert r.json["task"]["list_id"] == board["pending"]

    r = client.post(f"/api/tasks/{board['t1']}/status", json={"status": "Done"})
    assert r.status_code == 400


def test_edit_task_records_assignment(app, client, login, board, user_id):
    carol_id = user_id("carol@example.com")
    bob_id = user_id("bob@example.com")
    login("bob@example.com")
    r = client.post(
        f"/tasks/{board['t1']}/edit",
        data={"title": "First (edited)", "priority": "Low", "status": "Pending", "assigned_to_id": str(carol_id)},
    )
    assert r.status_code == 302

    with session_scope(app) as s:
        task = s.get(Task, board["t1"])
        assert task.title == "First (edited)"
        assert task.assigned_to_user_id == carol_id
        assert _history(s, task.id)[-1] == ("assigned", str(bob_id), str(carol_id))


def test_task_detail_access(client, login, board):
    login("bob@example.com")
    assert client.get(f"/tasks/{board['t1']}").status_code == 200
    client.post("/auth/logout")

    login("carol@example.com")
    assert client.get(f"/tasks/{board['t1']}").status_code == 404


def test_comments(app, client, login, board):
    login("bob@example.com")
    r = client.post(f"/tasks/{board['t1']}/comments", data={"comment_text": "   "}, follow_redirects=True)
    assert b"Comment cannot be empty." in r.data

    r = client.post(f"/tasks/{board['t1']}/comments", data={"comment_text": "Looks good"}, follow_redirects=True)
    assert b"Looks good" in r.data
    with session_scope(app) as s:
        comments = s.get(Task, board["t1"]).comments
        assert [c.comment_text for c in comments] == ["Looks good"]


def test_subtasks(app, client, login, board):
    login("bob@example.com")
    client.post(f"/tasks/{board['t1']}/subtasks", data={"title": "Draft"})
    with session_scope(app) as s:
        subtask = s.get(Task, board["t1"]).subtasks[0]
        assert subtask.title == "Draft"
        assert subtask.is_completed is False
        subtask_id = subtask.id

    client.post(f"/tasks/{board['t1']}/subtasks/{subtask_id}/toggle")
    with session_scope(app) as s:
        assert s.get(Task, board["t1"]).subtasks[0].is_completed is True

    client.post(f"/tasks/{board['t1']}/subtasks/{subtask_id}/delete")
    with session_scope(app) as s:
        assert s.get(Task, board["t1"]).subtasks == []

    r = client.post(f"/tasks/{board['t1']}/subtasks/{subtask_id}/toggle")
    assert r.status_code == 404


def test_delete_task_repacks_list(app, client, login, board):
    login("bob@example.com")
    r = client.post(f"/tasks/{board['t1']}/delete")
    assert r.status_code == 302
    with session_scope(app) as s:
        assert s.get(Task, board["t1"]) is None
        assert s.get(Task, board["t2"]).position == 0
        assert s.query(TaskHistory).filter(TaskHistory.task_id == board["t1"]).count() == 0


def test_my_tasks(client, login, board):
    login("bob@example.com")
    r = client.get("/my-tasks")
    assert r.status_code == 200
    assert b"First" in r.data and b"Second" in r.data

    client.post("/auth/logout")
    login("carol@example.com")
    r = client.get("/my-tasks")
    assert b"First" not in r.data


def test_project_task_count(app, board):
    with session_scope(app) as s:
        assert s.get(Project, board["project"]).task_count == 2
