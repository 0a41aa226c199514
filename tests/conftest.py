import pytest
from werkzeug.security import generate_password_hash

from app.taskboard import auth as auth_module
from app.taskboard import create_app
from app.taskboard.db import session_scope
from app.taskboard.models import Base, User
from app.taskboard.seed import ensure_roles

CSRF_TOKEN = "test-csrf"
PASSWORD = "secret123"


@pytest.fixture(autouse=True)
def _reset_login_attempts():
    auth_module._login_attempts.clear()
    yield
    auth_module._login_attempts.clear()


def _add_user(s, roles, username, email, role_key, manager=None):
    u = User(
        username=username,
        email=email,
        password_hash=generate_password_hash(PASSWORD),
        is_active=True,
        manager=manager,
    )
    u.roles.append(roles[role_key])
    s.add(u)
    s.flush()
    return u


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")

    app = create_app()
    app.config["TESTING"] = True

    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        roles = ensure_roles(s)
        _add_user(s, roles, "admin", "admin@example.com", "admin")
        manager = _add_user(s, roles, "maria", "maria@example.com", "manager")
        _add_user(s, roles, "bob", "bob@example.com", "user", manager=manager)
        _add_user(s, roles, "carol", "carol@example.com", "user")

    return app


@pytest.fixture()
def client(app):
    c = app.test_client()
    with c.session_transaction() as sess:
        sess["csrf_token"] = CSRF_TOKEN
    c.environ_base["HTTP_X_CSRF_TOKEN"] = CSRF_TOKEN
    return c


@pytest.fixture()
def login(client):
    def _login(email, password=PASSWORD):
        r = client.post("/auth/login", data={"email": email, "password": password}, follow_redirects=False)
        assert r.status_code == 302
        return r

    return _login


@pytest.fixture()
def user_id(app):
    def _user_id(email):
        with session_scope(app) as s:
            return s.query(User.id).filter(User.email == email).scalar()

    return _user_id
