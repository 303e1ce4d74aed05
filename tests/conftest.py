"""
Shared pytest fixtures for the Smart Clearance test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - certificate_storage: local storage rooted in tmp_path (autouse)
    - client: Flask test client
    - stages / make_profile / make_doc_type / actors: seeded reference data
"""

import pytest

from clearance import create_app
from clearance.models import db as _db
from clearance.models.profile import Profile
from clearance.services import stage_registry
from clearance.services.storage import LocalCertificateStorage


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


@pytest.fixture(autouse=True)
def certificate_storage(app, tmp_path):
    """Route certificate uploads into a per-test directory."""
    storage = LocalCertificateStorage(str(tmp_path / "certificates"),
                                      "http://testserver/certificates")
    app.extensions["certificate_storage"] = storage
    yield storage
    app.extensions.pop("certificate_storage", None)


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Reference data ───────────────────────────────────────────────────────


@pytest.fixture()
def stages():
    """Seed library / cashier / registrar → <stage>_admin."""
    stage_registry.seed_default_stages()
    return [s.stage for s in stage_registry.list_stages()]


@pytest.fixture()
def make_profile():
    counter = {"n": 0}

    def _make(role="student", **kwargs):
        counter["n"] += 1
        n = counter["n"]
        profile = Profile(
            email=kwargs.pop("email", f"{role}{n}@university.edu"),
            full_name=kwargs.pop("full_name", f"{role.replace('_', ' ').title()} {n}"),
            role=role,
            **kwargs,
        )
        if role == "student":
            profile.student_number = profile.student_number or f"2024-{n:05d}"
            profile.course_year = profile.course_year or "BSCS 4"
        _db.session.add(profile)
        _db.session.commit()
        return profile

    return _make


@pytest.fixture()
def make_doc_type(stages):
    def _make(name="Clearance Form", required_stages=("library", "registrar"), **kwargs):
        return stage_registry.create_document_type(name, list(required_stages), **kwargs)

    return _make


@pytest.fixture()
def actors(stages, make_profile):
    """One profile per role used by the lifecycle."""
    return {
        "student": make_profile("student"),
        "other_student": make_profile("student"),
        "library_admin": make_profile("library_admin"),
        "cashier_admin": make_profile("cashier_admin"),
        "registrar_admin": make_profile("registrar_admin"),
        "super_admin": make_profile("super_admin"),
        "professor": make_profile("professor"),
    }
