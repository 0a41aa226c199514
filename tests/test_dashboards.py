"""Tests for role dashboards and reports."""
from datetime import datetime, timedelta

from app.taskboard.db import session_scope
from app.taskboard.models import User
from app.taskboard.modules.dashboards.service import admin_counts, report_stats, team_members
from app.taskboard.modules.projects.service import create_project
from app.taskboard.modules.tasks.service import create_task, set_task_status


def _seed_tasks(app):
    with session_scope(app) as s:
        bob = s.query(User).filter(User.email == "bob@example.com").one()
        project = create_project(s, {"name": "Website"}, bob)
        pending = project.lists[0]
        create_task(s, pending, {"title": "Copy", "priority": "High", "due_date": "2030-01-01"}, bob)
        done = create_task(s, pending, {"title": "Logo"}, bob)
        set_task_status(s, done, "Completed", bob)


def test_admin_dashboard_is_admin_only(client, login):
    login("bob@example.com")
    assert client.get("/dashboard/admin").status_code == 403
    client.post("/auth/logout")

    login("maria@example.com")
    assert client.get("/dashboard/admin").status_code == 403
    client.post("/auth/logout")

    login("admin@example.com")
    r = client.get("/dashboard/admin")
    assert r.status_code == 200


def test_admin_counts(app, client):
    _seed_tasks(app)
    client.post("/api/auth/register", json={"username": "dave", "email": "dave@example.com", "password": "secret123"})
    with session_scope(app) as s:
        counts = admin_counts(s)
    assert counts["users"] == 4
    assert counts["projects"] == 1
    assert counts["active_projects"] == 1
    assert counts["tasks"] == 2
    assert counts["completed_tasks"] == 1
    assert counts["pending_registrations"] == 1


def test_manager_dashboard_and_team(app, client, login):
    _seed_tasks(app)
    login("maria@example.com")

    r = client.get("/dashboard/manager")
    assert r.status_code == 200
    assert b"Copy" in r.data

    r = client.get("/dashboard/manager/team")
    assert r.status_code == 200
    assert b"bob" in r.data

    with session_scope(app) as s:
        maria = s.query(User).filter(User.email == "maria@example.com").one()
        rows = team_members(s, maria)
    assert [(row["user"].username, row["total_tasks"], row["completed_tasks"]) for row in rows] == [("bob", 2, 1)]


def test_manager_dashboard_requires_team_permission(client, login):
    login("bob@example.com")
    assert client.get("/dashboard/manager").status_code == 403


def test_manager_sees_only_direct_reports(client, login, user_id):
    bob_id = user_id("bob@example.com")
    carol_id = user_id("carol@example.com")
    login("maria@example.com")

    assert client.get(f"/dashboard/manager/users/{bob_id}").status_code == 200
    assert client.get(f"/dashboard/manager/users/{carol_id}").status_code == 403
    assert client.get("/dashboard/manager/users/9999").status_code == 404


def test_user_dashboard(app, client, login):
    _seed_tasks(app)
    login("bob@example.com")
    r = client.get("/dashboard/me")
    assert r.status_code == 200
    assert b"Copy" in r.data


def test_reports_page_and_stats(app, client, login):
    _seed_tasks(app)
    login("carol@example.com")
    assert client.get("/reports").status_code == 200

    r = client.get("/api/reports/stats")
    assert r.status_code == 200
    data = r.json
    assert set(data) == {"statusDistribution", "priorityDistribution", "projectStats", "userWorkload", "activityData"}
    assert {d["name"]: d["value"] for d in data["statusDistribution"]} == {"Pending": 1, "Completed": 1}
    assert {d["name"]: d["value"] for d in data["priorityDistribution"]} == {"High": 1, "Medium": 1}
    assert data["projectStats"] == [{"name": "Website", "tasks": 2}]
    assert data["userWorkload"] == [{"name": "bob", "tasks": 2}]

    activity = data["activityData"]
    assert len(activity) == 7
    assert activity[-1]["name"] == datetime.utcnow().strftime("%a")
    assert activity[-1]["added"] == 2
    assert sum(day["completed"] for day in activity) == 1


def test_report_activity_window(app):
    _seed_tasks(app)
    with session_scope(app) as s:
        stats = report_stats(s, now=datetime.utcnow() + timedelta(days=10))
    assert all(day["added"] == 0 and day["completed"] == 0 for day in stats["activityData"])
