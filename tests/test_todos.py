"""Tests for personal todos."""
from app.taskboard.db import session_scope
from app.taskboard.models import User
from app.taskboard.modules.projects.service import create_project
from app.taskboard.modules.todos.models import Todo
from app.taskboard.modules.todos.service import create_todo


def _todo_for(app, email, content="Call vendor"):
    with session_scope(app) as s:
        user = s.query(User).filter(User.email == email).one()
        return create_todo(s, user, content).id


def test_create_and_list_todos(app, client, login):
    login("bob@example.com")
    r = client.post("/todos", data={"content": "Call vendor", "duration": "30m"}, follow_redirects=True)
    assert r.status_code == 200
    assert b"Call vendor" in r.data

    with session_scope(app) as s:
        todo = s.query(Todo).one()
        assert todo.duration == "30m"
        assert todo.is_completed is False


def test_create_todo_requires_content(app, client, login):
    login("bob@example.com")
    r = client.post("/todos", data={"content": "  "}, follow_redirects=True)
    assert b"Content is required" in r.data
    with session_scope(app) as s:
        assert s.query(Todo).count() == 0


def test_todo_project_must_be_visible(app, client, login):
    with session_scope(app) as s:
        carol = s.query(User).filter(User.email == "carol@example.com").one()
        project_id = create_project(s, {"name": "Private"}, carol).id

    login("bob@example.com")
    r = client.post("/todos", data={"content": "Peek", "project_id": project_id}, follow_redirects=True)
    assert b"Project not found" in r.data


def test_owner_can_toggle_and_delete(app, client, login):
    todo_id = _todo_for(app, "bob@example.com")
    login("bob@example.com")

    client.post(f"/todos/{todo_id}/toggle")
    with session_scope(app) as s:
        assert s.get(Todo, todo_id).is_completed is True

    client.post(f"/todos/{todo_id}/toggle")
    with session_scope(app) as s:
        assert s.get(Todo, todo_id).is_completed is False

    client.post(f"/todos/{todo_id}/delete")
    with session_scope(app) as s:
        assert s.get(Todo, todo_id) is None


def test_other_users_cannot_touch_todo(app, client, login):
    todo_id = _todo_for(app, "bob@example.com")
    login("carol@example.com")

    assert client.post(f"/todos/{todo_id}/toggle").status_code == 403
    assert client.post(f"/todos/{todo_id}/delete").status_code == 403
    assert client.post("/todos/9999/toggle").status_code == 404

    with session_scope(app) as s:
        todo = s.get(Todo, todo_id)
        assert todo is not None
        assert todo.is_completed is False

    r = client.get("/todos")
    assert b"Call vendor" not in r.data
