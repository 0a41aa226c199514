"""Tests for projects, membership and the board."""
from app.taskboard.db import session_scope
from app.taskboard.models import User
from app.taskboard.modules.projects.models import Project, TaskList
from app.taskboard.modules.projects.service import add_member, create_project
from app.taskboard.modules.tasks.models import Task
from app.taskboard.modules.tasks.service import create_task


def _make_project(app, owner_email="bob@example.com", name="Website"):
    with session_scope(app) as s:
        owner = s.query(User).filter(User.email == owner_email).one()
        project = create_project(s, {"name": name, "description": "Relaunch"}, owner)
        return project.id


def test_projects_list_requires_auth(client):
    r = client.get("/projects")
    assert r.status_code in (302, 403)


def test_create_project_has_default_lists(app, client, login):
    login("bob@example.com")
    r = client.post("/projects/new", data={"name": "Website", "description": "Relaunch"})
    assert r.status_code == 302

    with session_scope(app) as s:
        project = s.query(Project).filter(Project.name == "Website").one()
        assert project.status == "Active"
        assert [(lst.name, lst.position) for lst in project.lists] == [
            ("Pending", 0),
            ("In Progress", 1),
            ("Completed", 2),
        ]
        project_id = project.id

    r = client.get(f"/projects/{project_id}")
    assert r.status_code == 200
    assert b"Website" in r.data

    r = client.get("/projects")
    assert r.status_code == 200
    assert b"Website" in r.data


def test_create_project_requires_name(app, client, login):
    login("bob@example.com")
    r = client.post("/projects/new", data={"name": "  "}, follow_redirects=True)
    assert b"Project name is required." in r.data
    with session_scope(app) as s:
        assert s.query(Project).count() == 0


def test_project_visibility(app, client, login):
    project_id = _make_project(app)

    login("carol@example.com")
    assert client.get(f"/projects/{project_id}").status_code == 404
    assert client.get(f"/api/projects/{project_id}/data").status_code == 404
    client.post("/auth/logout")

    # managers and admins see every project
    login("maria@example.com")
    assert client.get(f"/projects/{project_id}").status_code == 200


def test_members_can_be_added_and_removed(app, client, login, user_id):
    project_id = _make_project(app)
    carol_id = user_id("carol@example.com")

    login("bob@example.com")
    r = client.post(f"/projects/{project_id}/members", data={"email": "CAROL@example.com"}, follow_redirects=True)
    assert b"carol added to the project." in r.data

    r = client.post(f"/projects/{project_id}/members", data={"email": "carol@example.com"}, follow_redirects=True)
    assert b"User is already a member" in r.data

    r = client.post(f"/projects/{project_id}/members", data={"email": "nobody@example.com"}, follow_redirects=True)
    assert b"User not found with this email" in r.data
    client.post("/auth/logout")

    login("carol@example.com")
    assert client.get(f"/projects/{project_id}").status_code == 200
    client.post("/auth/logout")

    login("bob@example.com")
    client.post(f"/projects/{project_id}/members/{carol_id}/remove")
    client.post("/auth/logout")

    login("carol@example.com")
    assert client.get(f"/projects/{project_id}").status_code == 404


def test_edit_project(app, client, login):
    project_id = _make_project(app)
    login("bob@example.com")
    r = client.post(f"/projects/{project_id}/edit", data={"name": "Website v2", "description": ""})
    assert r.status_code == 302
    with session_scope(app) as s:
        project = s.get(Project, project_id)
        assert project.name == "Website v2"
        assert project.description is None


def test_only_owner_or_admin_completes_and_deletes(app, client, login):
    project_id = _make_project(app)
    with session_scope(app) as s:
        project = s.get(Project, project_id)
        carol = s.query(User).filter(User.email == "carol@example.com").one()
        add_member(s, project, carol.email, project.owner)

    login("carol@example.com")
    r = client.post(f"/projects/{project_id}/delete", follow_redirects=True)
    assert b"Only the project owner or an admin can delete this project." in r.data
    r = client.post(f"/projects/{project_id}/complete", follow_redirects=True)
    assert b"Only the project owner or an admin can complete this project." in r.data
    client.post("/auth/logout")

    login("admin@example.com")
    client.post(f"/projects/{project_id}/complete")
    with session_scope(app) as s:
        assert s.get(Project, project_id).status == "Completed"


def test_delete_project_cascades(app, client, login):
    project_id = _make_project(app)
    with session_scope(app) as s:
        project = s.get(Project, project_id)
        create_task(s, project.lists[0], {"title": "Write copy"}, project.owner)

    login("bob@example.com")
    r = client.post(f"/projects/{project_id}/delete")
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/projects")

    with session_scope(app) as s:
        assert s.get(Project, project_id) is None
        assert s.query(TaskList).count() == 0
        assert s.query(Task).count() == 0


def test_board_page_and_data(app, client, login):
    project_id = _make_project(app)
    with session_scope(app) as s:
        project = s.get(Project, project_id)
        create_task(s, project.lists[0], {"title": "Write copy", "priority": "High"}, project.owner)

    login("bob@example.com")
    r = client.get(f"/projects/{project_id}/board")
    assert r.status_code == 200
    assert b"Write copy" in r.data

    r = client.get(f"/api/projects/{project_id}/data")
    assert r.status_code == 200
    data = r.json
    assert data["project"]["name"] == "Website"
    assert [lst["list_name"] for lst in data["task_lists"]] == ["Pending", "In Progress", "Completed"]
    task = data["task_lists"][0]["tasks"][0]
    assert task["title"] == "Write copy"
    assert task["priority"] == "High"
    assert task["assigned_to"] == {"username": "bob"}
    assert {m["user"]["username"] for m in data["members"]} >= {"bob", "carol", "maria", "admin"}
