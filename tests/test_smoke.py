def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True

    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.data == b"ok"


def test_index_anonymous_and_logged_in(client, login):
    r = client.get("/")
    assert r.status_code == 200

    login("bob@example.com")
    r = client.get("/")
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/dashboard")


def test_login_page_renders(client):
    r = client.get("/auth/login")
    assert r.status_code == 200
    assert b"csrf-token" in r.data


def test_login_bad_password(client):
    r = client.post("/auth/login", data={"email": "bob@example.com", "password": "nope"}, follow_redirects=True)
    assert r.status_code == 200
    assert b"Invalid credentials." in r.data

    r = client.get("/dashboard")
    assert r.status_code == 302
    assert "/auth/login" in r.headers["Location"]


def test_login_rate_limited(client):
    for _ in range(5):
        client.post("/auth/login", data={"email": "bob@example.com", "password": "nope"})
    r = client.post("/auth/login", data={"email": "bob@example.com", "password": "secret123"}, follow_redirects=True)
    assert b"Too many login attempts" in r.data

    r = client.post("/api/auth/login", json={"email": "bob@example.com", "password": "secret123"})
    assert r.status_code == 429


def test_dashboard_redirects_by_role(client, login):
    login("admin@example.com")
    r = client.get("/dashboard")
    assert r.headers["Location"].endswith("/dashboard/admin")
    client.post("/auth/logout")

    login("maria@example.com")
    r = client.get("/dashboard")
    assert r.headers["Location"].endswith("/dashboard/manager")
    client.post("/auth/logout")

    login("bob@example.com")
    r = client.get("/dashboard")
    assert r.headers["Location"].endswith("/dashboard/me")


def test_anonymous_redirected_to_login(client):
    r = client.get("/dashboard/admin")
    assert r.status_code == 302
    assert "/auth/login" in r.headers["Location"]


def test_api_anonymous_gets_json_401(client):
    r = client.get("/api/profile")
    assert r.status_code == 401
    assert r.json["error"] == "Unauthorized"


def test_post_without_csrf_token_rejected(app):
    c = app.test_client()
    r = c.post("/auth/login", data={"email": "bob@example.com", "password": "secret123"})
    assert r.status_code == 302

    r = c.post("/todos", data={"content": "no token"})
    assert r.status_code == 400

    r = c.post("/api/tasks/1/status", json={"status": "Completed"})
    assert r.status_code == 400
    assert "CSRF" in r.json["error"]


def test_logout(client, login):
    login("bob@example.com")
    r = client.post("/auth/logout")
    assert r.status_code == 302
    r = client.get("/dashboard")
    assert "/auth/login" in r.headers["Location"]


def test_unknown_api_route_is_json_404(client):
    r = client.get("/api/does-not-exist")
    assert r.status_code == 404
    assert r.json["error"] == "Not found"


def test_audit_trail_records_logins(client, login):
    login("admin@example.com")
    r = client.get("/admin/audit?action=auth.login")
    assert r.status_code == 200
    assert b"admin@example.com" in r.data

    r = client.get("/admin/audit?date_from=yesterday", follow_redirects=True)
    assert b"date_from must be YYYY-MM-DD" in r.data


def test_json_client_uses_token_from_login(app):
    c = app.test_client()
    r = c.post("/api/auth/login", json={"email": "bob@example.com", "password": "secret123"})
    assert r.status_code == 200
    token = r.json["csrf_token"]
    assert token

    r = c.put("/api/profile", json={"username": "bobby", "email": "bob@example.com"})
    assert r.status_code == 400
    assert r.json["error"] == "CSRF token missing or invalid."

    r = c.put("/api/profile", json={"username": "bobby", "email": "bob@example.com"}, headers={"X-CSRF-Token": token})
    assert r.status_code == 200
    assert r.json["user"]["username"] == "bobby"

    r = c.get("/api/profile")
    assert r.json["csrf_token"] == token


def test_logout_keeps_csrf_token(app):
    c = app.test_client()
    token = c.post("/api/auth/login", json={"email": "bob@example.com", "password": "secret123"}).json["csrf_token"]
    assert c.post("/api/auth/logout").status_code == 200

    r = c.post("/api/auth/login", json={"email": "maria@example.com", "password": "secret123"})
    assert r.json["csrf_token"] == token
    r = c.post("/auth/logout", headers={"X-CSRF-Token": token})
    assert r.status_code == 302
    with c.session_transaction() as sess:
        assert "user_id" not in sess
        assert sess["csrf_token"] == token
