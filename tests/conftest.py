"""
Shared pytest fixtures for the IT Desk infrastructure workflow test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - approver_headers / admin_headers / user_headers: role headers
    - infra_project / web_project: pre-created projects
    - project_factory / stage_factory: build projects and stages in any state
"""

import pytest

from itdesk import create_app
from itdesk.models import db as _db
from itdesk.models.infra import Disbursement, Proposal, RkbSubmission
from itdesk.models.project import PHASE_ORDER, Project


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


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
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Role headers ─────────────────────────────────────────────────────────


@pytest.fixture()
def approver_headers():
    return {"X-User": "Staff Approver", "X-User-Role": "STAFF"}


@pytest.fixture()
def admin_headers():
    return {"X-User": "Admin", "X-User-Role": "ADMIN"}


@pytest.fixture()
def user_headers():
    return {"X-User": "Requester", "X-User-Role": "USER"}


# ── ORM helper factories ─────────────────────────────────────────────────

_STAGE_FOR_PHASE = {
    "PROPOSAL": Proposal,
    "RKB": RkbSubmission,
    "DISBURSEMENT": Disbursement,
}


def make_project(name="Core Switch Upgrade", *, phase="PROPOSAL", project_type="INFRASTRUCTURE"):
    """Create a project directly in ``phase``, with every earlier stage APPROVED."""
    project = Project(
        name=name,
        type=project_type,
        status="PLANNING" if phase in (None, "PROPOSAL") else "IN_PROGRESS",
        current_phase=phase if project_type == "INFRASTRUCTURE" else None,
    )
    if phase == "COMPLETED":
        project.status = "COMPLETED"
    _db.session.add(project)
    _db.session.flush()

    if phase is not None and project_type == "INFRASTRUCTURE":
        for earlier in PHASE_ORDER[:PHASE_ORDER.index(phase)]:
            model = _STAGE_FOR_PHASE.get(earlier)
            if model is not None:
                _db.session.add(model(
                    project_id=project.id,
                    approval_status="APPROVED",
                    approved_by="Seed",
                ))
    _db.session.commit()
    return project


def make_stage(project, phase, status="DRAFT", **fields):
    """Create the stage row belonging to ``phase`` with an arbitrary status."""
    row = _STAGE_FOR_PHASE[phase](project_id=project.id, approval_status=status, **fields)
    _db.session.add(row)
    _db.session.commit()
    return row


@pytest.fixture()
def infra_project():
    """Infrastructure project in phase PROPOSAL."""
    return make_project()


@pytest.fixture()
def web_project():
    """WEB_DEV project (no phase)."""
    return make_project("Company Website", phase=None, project_type="WEB_DEV")


@pytest.fixture()
def project_factory():
    """Return :func:`make_project` for tests that need several projects or phases."""
    return make_project


@pytest.fixture()
def stage_factory():
    """Return :func:`make_stage`."""
    return make_stage
