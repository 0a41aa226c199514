"""Tests for the registration queue (signup, queue status, admin review)."""
from datetime import datetime, timedelta

from app.taskboard.db import session_scope
from app.taskboard.models import User
from app.taskboard.modules.registration.models import AdminApprovalLog, UserRegistrationQueue
from app.taskboard.modules.registration.service import approval_stats, queue_status, submit_registration


def _register(client, username="dave", email="dave@example.com", role="USER"):
    r = client.post(
        "/api/auth/register",
        json={"username": username, "email": email, "password": "secret123", "full_name": "Dave D", "role": role},
    )
    assert r.status_code == 201, r.json
    return r.json["queue_id"]


def test_register_form_redirects_to_queue_page(client):
    r = client.post(
        "/register",
        data={
            "full_name": "Dave D",
            "username": "dave",
            "email": "dave@example.com",
            "password": "secret123",
            "confirm_password": "secret123",
            "role": "USER",
        },
    )
    assert r.status_code == 302
    assert "/auth/queue?queue_id=" in r.headers["Location"]

    r = client.get(r.headers["Location"])
    assert r.status_code == 200
    assert b"waiting for review" in r.data


def test_register_form_password_mismatch(client):
    r = client.post(
        "/register",
        data={
            "username": "dave",
            "email": "dave@example.com",
            "password": "secret123",
            "confirm_password": "other",
        },
    )
    assert r.status_code == 400
    assert b"Passwords do not match." in r.data


def test_register_api_validation_and_duplicates(client):
    r = client.post("/api/auth/register", json={"username": "da", "email": "bad", "password": "123"})
    assert r.status_code == 400
    assert "Username must be between 3 and 50 characters." in r.json["error"]
    assert "Password must be at least 6 characters." in r.json["error"]

    r = client.post("/api/auth/register", json={"username": "x", "email": "x@example.com", "password": "secret123", "role": "ADMIN"})
    assert r.status_code == 400

    # existing account
    r = client.post("/api/auth/register", json={"username": "bobby", "email": "BOB@example.com", "password": "secret123"})
    assert r.status_code == 400
    assert "already exists" in r.json["error"]

    # pending request with the same username
    _register(client)
    r = client.post("/api/auth/register", json={"username": "dave", "email": "other@example.com", "password": "secret123"})
    assert r.status_code == 400


def test_queue_status_endpoint(client):
    r = client.get("/api/auth/queue-status")
    assert r.status_code == 400

    r = client.get("/api/auth/queue-status?queue_id=doesnotexist")
    assert r.status_code == 404

    r = client.get("/auth/queue")
    assert r.status_code == 400
    r = client.get("/auth/queue?queue_id=doesnotexist")
    assert r.status_code == 404

    queue_id = _register(client)
    r = client.get(f"/api/auth/queue-status?queue_id={queue_id}")
    assert r.status_code == 200
    body = r.json
    assert body["status"] == "PENDING"
    assert body["position"] == 1
    assert body["total_queue"] == 1
    assert body["users_ahead"] == 0
    assert body["approval_percentage"] == 95
    assert body["estimated_approval_time"] == "24-48 Hours"


def test_queue_position_and_progress(app):
    base = datetime(2026, 1, 5, 9, 0)
    with session_scope(app) as s:
        ids = []
        for i, name in enumerate(("anna", "bert", "cleo")):
            entry = submit_registration(s, {"username": name, "email": f"{name}@example.com", "password": "secret123"})
            entry.submitted_at = base + timedelta(minutes=i)
            ids.append(entry.queue_id)
        s.flush()

        statuses = [queue_status(s, s.get(UserRegistrationQueue, qid)) for qid in ids]

    assert [st["position"] for st in statuses] == [1, 2, 3]
    assert all(st["total_queue"] == 3 for st in statuses)
    assert [st["users_ahead"] for st in statuses] == [0, 1, 2]
    # round((3 - p + 1) / 3 * 100) clamped to 5..95
    assert [st["approval_percentage"] for st in statuses] == [95, 67, 33]


def test_pending_applicant_cannot_log_in(client):
    _register(client)
    r = client.post("/api/auth/login", json={"email": "dave@example.com", "password": "secret123"})
    assert r.status_code == 401
    assert r.json["error"] == "Your account is pending approval."

    r = client.post("/auth/login", data={"email": "dave@example.com", "password": "secret123"}, follow_redirects=True)
    assert b"Your account is pending approval." in r.data

    # wrong password does not reveal the queue state
    r = client.post("/api/auth/login", json={"email": "dave@example.com", "password": "wrong-pass"})
    assert r.json["error"] == "Invalid credentials."


def test_approvals_page_requires_permission(client, login):
    login("maria@example.com")
    r = client.get("/admin/approvals")
    assert r.status_code == 403


def test_admin_rejects_request(app, client, login):
    queue_id = _register(client)
    login("admin@example.com")

    r = client.get("/admin/approvals")
    assert r.status_code == 200
    assert b"dave@example.com" in r.data

    r = client.post(f"/admin/approvals/{queue_id}/reject", data={"reason": "Unknown applicant"}, follow_redirects=True)
    assert r.status_code == 200
    assert b"Rejected dave." in r.data

    with session_scope(app) as s:
        entry = s.get(UserRegistrationQueue, queue_id)
        assert entry.status == "REJECTED"
        assert entry.rejection_reason == "Unknown applicant"
        assert entry.reviewed_at is not None
        logs = s.query(AdminApprovalLog).filter(AdminApprovalLog.queue_id == queue_id).all()
        assert [(log.action, log.notes) for log in logs] == [("REJECTED", "Unknown applicant")]
        assert s.query(User).filter(User.email == "dave@example.com").count() == 0

    r = client.get(f"/api/auth/queue-status?queue_id={queue_id}")
    assert r.json["status"] == "REJECTED"
    assert r.json["rejection_reason"] == "Unknown applicant"

    r = client.post("/api/auth/login", json={"email": "dave@example.com", "password": "secret123"})
    assert r.json["error"] == "Your registration request was rejected."


def test_admin_approves_request(app, client, login):
    queue_id = _register(client, role="MANAGER")
    login("admin@example.com")

    r = client.post(
        f"/admin/approvals/{queue_id}/approve",
        data={"role": "user", "department": "Design"},
        follow_redirects=True,
    )
    assert b"Approved dave." in r.data

    with session_scope(app) as s:
        user = s.query(User).filter(User.email == "dave@example.com").one()
        assert user.role_key == "user"
        assert user.is_active is True
        assert user.approved_at is not None
        assert user.profile.department == "Design"
        entry = s.get(UserRegistrationQueue, queue_id)
        assert entry.status == "APPROVED"
        assert [log.action for log in entry.logs] == ["APPROVED"]

    # second decision on the same request fails and creates nothing
    r = client.post(f"/admin/approvals/{queue_id}/approve", data={}, follow_redirects=True)
    assert b"Request already approved" in r.data
    with session_scope(app) as s:
        assert s.query(User).filter(User.email == "dave@example.com").count() == 1
        assert s.query(AdminApprovalLog).filter(AdminApprovalLog.queue_id == queue_id).count() == 1

    client.post("/auth/logout")
    r = client.post("/api/auth/login", json={"email": "dave@example.com", "password": "secret123"})
    assert r.status_code == 200
    assert r.json["user"]["role"] == "USER"


def test_batch_approve_json(app, client, login):
    q1 = _register(client, "erin", "erin@example.com")
    q2 = _register(client, "finn", "finn@example.com")
    login("admin@example.com")

    r = client.post("/admin/approvals/batch", json={"action": "approve", "queue_ids": [q1, q2, "missing"]})
    assert r.status_code == 200
    assert r.json == {"success": True, "success_count": 2, "fail_count": 1}

    with session_scope(app) as s:
        assert s.query(User).filter(User.email.in_(("erin@example.com", "finn@example.com"))).count() == 2


def test_batch_reject_form(app, client, login):
    q1 = _register(client, "erin", "erin@example.com")
    login("admin@example.com")

    r = client.post("/admin/approvals/batch", data={"action": "reject", "queue_ids": [q1]}, follow_redirects=True)
    assert b"1 processed, 0 failed." in r.data
    with session_scope(app) as s:
        entry = s.get(UserRegistrationQueue, q1)
        assert entry.status == "REJECTED"
        assert entry.rejection_reason == "Batch Rejection"


def test_batch_requires_action_and_ids(client, login):
    login("admin@example.com")
    r = client.post("/admin/approvals/batch", json={"action": "approve", "queue_ids": []})
    assert r.status_code == 400
    assert r.json["success"] is False

    r = client.post("/admin/approvals/batch", json={"action": "archive", "queue_ids": ["x"]})
    assert r.status_code == 400


def test_approval_stats_count_every_processed_entry(app):
    now = datetime(2030, 1, 10, 12, 0)
    with session_scope(app) as s:
        for i in range(105):
            s.add(
                UserRegistrationQueue(
                    username=f"old{i}",
                    email=f"old{i}@example.com",
                    password_hash="x",
                    status="REJECTED",
                    submitted_at=now - timedelta(hours=4),
                    reviewed_at=now - timedelta(hours=2),
                )
            )
        s.add(UserRegistrationQueue(username="waiting", email="waiting@example.com", password_hash="x", submitted_at=now))

    with session_scope(app) as s:
        stats = approval_stats(s, now=now)
    assert stats["total_processed"] == 105
    assert stats["total_pending"] == 1
    assert stats["avg_wait_time"] == "2.0 Hours"
