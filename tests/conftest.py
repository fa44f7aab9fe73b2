"""
Shared pytest fixtures for the Timeflow test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test app context + table recreate (autouse)
    - client: Flask test client (function-scoped)
    - threaded_app: app on a file-backed SQLite database for multi-thread tests
    - run_concurrently: callable running jobs in parallel threads, one app context each
    - area / other_area, superadmin / admin / other_admin / user / other_user
    - project, requirement, incident, activity: anchor fixtures in ``area``
    - process: requirement-anchored process with no assignments
    - auth_headers: callable building a Bearer header for a User
    - make_step: callable inserting a ProcessActivity without validation
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import date

import pytest

from timeflow import create_app
from timeflow.config import TestingConfig, config
from timeflow.models import db as _db
from timeflow.models.activity import Activity
from timeflow.models.incident import Incident
from timeflow.models.process import Process, ProcessActivity
from timeflow.models.project import Project
from timeflow.models.requirement import Requirement
from timeflow.models.user import Area, Role, User
from timeflow.services.jwt_service import generate_access_token


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, discard the session, recreate tables."""
    with app.app_context():
        yield _db.session
        _db.session.rollback()
        _db.session.remove()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Identity fixtures ────────────────────────────────────────────────────


def _add(obj):
    _db.session.add(obj)
    _db.session.commit()
    return obj


@pytest.fixture()
def area():
    return _add(Area(name="Finance"))


@pytest.fixture()
def other_area():
    return _add(Area(name="Logistics"))


@pytest.fixture()
def superadmin():
    return _add(User(email="root@example.com", full_name="Root", role=Role.SUPERADMIN.value))


@pytest.fixture()
def admin(area):
    return _add(User(email="admin@example.com", full_name="Area Admin",
                     role=Role.ADMIN.value, area_id=area.id))


@pytest.fixture()
def other_admin(other_area):
    return _add(User(email="admin2@example.com", full_name="Other Admin",
                     role=Role.ADMIN.value, area_id=other_area.id))


@pytest.fixture()
def user(area):
    return _add(User(email="ana@example.com", full_name="Ana", role=Role.USER.value, area_id=area.id))


@pytest.fixture()
def other_user(area):
    return _add(User(email="ben@example.com", full_name="Ben", role=Role.USER.value, area_id=area.id))


# ── Anchor fixtures ──────────────────────────────────────────────────────


@pytest.fixture()
def project(area, admin):
    return _add(Project(name="Ledger Migration", area_id=area.id, created_by=admin.id))


@pytest.fixture()
def requirement(project, admin):
    return _add(Requirement(project_id=project.id, name="Close books faster", created_by=admin.id))


@pytest.fixture()
def incident(project, other_user):
    return _add(Incident(project_id=project.id, name="Posting job failed", reported_by=other_user.id))


@pytest.fixture()
def activity(project, user, area):
    return _add(Activity(user_id=user.id, area_id=area.id, project_id=project.id,
                         activity_name="Reconciliation", date=date(2026, 1, 15)))


@pytest.fixture()
def process(requirement, admin):
    return _add(Process(name="Fix reconciliation", requirement_id=requirement.id, created_by=admin.id))


# ── Helpers ──────────────────────────────────────────────────────────────


@pytest.fixture()
def auth_headers():
    """Return a function building the Authorization header for a user."""
    def _headers(u: User) -> dict:
        token = generate_access_token(u.id, u.role, u.area_id)
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture()
def make_step(user):
    """Insert a ProcessActivity directly; dependency edges are not validated."""
    def _make(proc, name, depends_on=None, status="pending", order=0,
              assignee=None, estimated_hours=0, used_hours=0):
        step = ProcessActivity(
            process_id=proc.id,
            name=name,
            status=status,
            order_number=order,
            depends_on_id=depends_on.id if depends_on is not None else None,
            assigned_user_id=(assignee or user).id,
            estimated_hours=estimated_hours,
            used_hours=used_hours,
        )
        return _add(step)
    return _make


# ── Concurrency ──────────────────────────────────────────────────────────


@pytest.fixture()
def threaded_app(tmp_path, monkeypatch):
    """App on a file-backed SQLite database, so every thread gets its own
    connection and its own transaction."""

    class _FileBackedConfig(TestingConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'timeflow.db'}"
        SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"timeout": 15}}

    monkeypatch.setitem(config, "threaded", _FileBackedConfig)
    threaded = create_app("threaded")
    with threaded.app_context():
        _db.create_all()
    yield threaded
    with threaded.app_context():
        _db.session.remove()
        _db.engine.dispose()


@pytest.fixture()
def run_concurrently():
    """Return a function running each job in its own thread and app context.

    Jobs are released together by a barrier. The result list holds each
    job's return value, or the exception it raised, in job order.
    """
    def _run(app, *jobs, timeout=30):
        barrier = threading.Barrier(len(jobs))

        def _worker(job):
            with app.app_context():
                barrier.wait()
                try:
                    return job()
                except Exception as exc:
                    return exc

        with ThreadPoolExecutor(max_workers=len(jobs)) as executor:
            futures = [executor.submit(_worker, job) for job in jobs]
            return [f.result(timeout=timeout) for f in futures]
    return _run
