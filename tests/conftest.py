from datetime import datetime

import pytest
from flask.testing import FlaskClient

from config import TestConfig
from request_system import create_app
from request_system.constants import Role, Status
from request_system.extensions import db
from request_system.models import User
from request_system.services.lifecycle_service import LifecycleEngine
from request_system.services.record_store import SqlRecordStore
from request_system.services.user_service import UserService

FIXED_NOW = datetime(2024, 3, 5, 9, 30)
PASSWORD = 'secret-pass'


class IsolatedClient(FlaskClient):
    """Runs each request in its own app context so ``g`` (and Flask-Login's
    cached user) is not shared with the test's long-lived context."""

    def open(self, *args, **kwargs):
        with self.application.app_context():
            return super().open(*args, **kwargs)


@pytest.fixture
def app():
    app = create_app(TestConfig)
    app.test_client_class = IsolatedClient
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    def _make(role, username=None, access=(), **extra):
        username = username or f"{role.value if isinstance(role, Role) else role}-user"
        user = User(
            username=username,
            name=extra.pop('name', username.replace('-', ' ').title()),
            email=f"{username}@example.com",
            role=role.value if isinstance(role, Role) else role,
            employee_id=extra.pop('employee_id', f"EMP-{username.upper()}"),
            branch=extra.pop('branch', 'Head Office'),
            department=extra.pop('department', 'Operations'),
            signature=extra.pop('signature', f"sig_{username}.png"),
            **extra
        )
        user.set_password(PASSWORD)
        db.session.add(user)
        db.session.commit()
        if access:
            UserService.set_access(user.id, list(access))
        return user
    return _make


@pytest.fixture
def actors(make_user):
    """One actor per role, keyed by Role."""
    return {role: UserService.build_actor(make_user(role)) for role in Role}


@pytest.fixture
def engine(app):
    return LifecycleEngine(store=SqlRecordStore(), clock=lambda: FIXED_NOW)


@pytest.fixture
def submit(engine, actors):
    def _submit(request_type, payload=None, actor=None):
        record, error = engine.submit(request_type, payload or {'purpose': 'test'}, actor or actors[Role.STAFF])
        assert error is None, error
        return record
    return _submit


@pytest.fixture
def drive(engine, actors):
    """Walks a record through (to_status, role, fields) steps, failing on any rejection."""
    def _drive(record, *steps):
        for to_status, role, fields in steps:
            record, error = engine.apply_transition(record, to_status, actors[role], fields)
            assert error is None, error
        return record
    return _drive


@pytest.fixture
def force_status():
    """Puts a record straight into ``status`` without going through the engine."""
    def _force(record, status):
        record.status = Status(status).value
        db.session.commit()
        return record
    return _force


def login(client, username):
    return client.post('/auth/login', json={'username': username, 'password': PASSWORD})
