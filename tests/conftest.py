"""
Shared pytest fixtures for the Licitaflow test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - org: two departments, a 5-step modality, a source and three users
    - auth_header(user): Authorization header for API calls
"""

from types import SimpleNamespace

import pytest

from licitaflow import create_app
from licitaflow.models import db as _db
from licitaflow.models.auth import User
from licitaflow.models.reference import (
    BiddingModality,
    Department,
    ModalityStepTemplate,
    ResourceSource,
)
from licitaflow.services.jwt_service import generate_access_token
from licitaflow.utils.crypto import hash_password

# bcrypt's minimum cost keeps the suite fast
_TEST_PASSWORD_HASH = None


def _password_hash():
    global _TEST_PASSWORD_HASH
    if _TEST_PASSWORD_HASH is None:
        _TEST_PASSWORD_HASH = hash_password("secret123", rounds=4)
    return _TEST_PASSWORD_HASH


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


# ── Factories ────────────────────────────────────────────────────────────


def make_department(name: str) -> Department:
    dept = Department(name=name, description=f"{name} department")
    _db.session.add(dept)
    _db.session.flush()
    return dept


def make_user(username: str, department: Department | None = None, role: str = "common") -> User:
    user = User(
        username=username,
        full_name=username.title(),
        email=f"{username}@example.gov.br",
        password_hash=_password_hash(),
        department_id=department.id if department else None,
        role=role,
        is_active=True,
    )
    _db.session.add(user)
    _db.session.flush()
    return user


def make_modality(name: str, steps: list, deadline_days: int = 0) -> BiddingModality:
    """``steps``: list of (step_name, department, time_limit_days)."""
    modality = BiddingModality(name=name, description=name, deadline_days=deadline_days)
    _db.session.add(modality)
    _db.session.flush()
    for sequence, (step_name, dept, days) in enumerate(steps, start=1):
        _db.session.add(ModalityStepTemplate(
            modality_id=modality.id,
            sequence=sequence,
            step_name=step_name,
            phase="Execução",
            department_id=dept.id,
            time_limit_days=days,
        ))
    _db.session.flush()
    return modality


def make_source(code: str = "500") -> ResourceSource:
    source = ResourceSource(code=code, description=f"Fonte {code}")
    _db.session.add(source)
    _db.session.flush()
    return source


@pytest.fixture()
def org():
    """
    Licitação (dept_a) and Contratos (dept_b); a 5-step modality that
    alternates A, A, B, A, B; users: admin, alice (A), bruno (B).
    """
    dept_a = make_department("Licitação")
    dept_b = make_department("Contratos")
    modality = make_modality(
        "Pregão Eletrônico",
        [
            ("1. Termo de Referência", dept_a, 2),
            ("2. Pesquisa de Preços", dept_a, 2),
            ("3. Parecer Jurídico", dept_b, None),
            ("4. Publicar Edital", dept_a, 5),
            ("5. Assinatura do Contrato", dept_b, None),
        ],
        deadline_days=3,
    )
    empty_modality = make_modality("Dispensa", [], deadline_days=0)
    source = make_source("500")
    admin = make_user("admin", dept_b, role="admin")
    alice = make_user("alice", dept_a)
    bruno = make_user("bruno", dept_b)
    _db.session.commit()
    return SimpleNamespace(
        dept_a=dept_a, dept_b=dept_b, modality=modality, empty_modality=empty_modality,
        source=source, admin=admin, alice=alice, bruno=bruno,
    )


@pytest.fixture()
def new_process(org):
    """Create a process as alice (dept A) through the service layer."""
    from licitaflow.services.process_service import create_process

    def _create(pbdoc="PBDOC-2026-0001", acting_user=None, **overrides):
        data = {
            "pbdoc_number": pbdoc,
            "description": "Aquisição de material de expediente",
            "modality_id": org.modality.id,
            "source_id": org.source.id,
            "responsible_id": org.alice.id,
        }
        data.update(overrides)
        return create_process(data, acting_user or org.alice)

    return _create


@pytest.fixture()
def auth_header():
    def _header(user: User) -> dict:
        token = generate_access_token(user)["access_token"]
        return {"Authorization": f"Bearer {token}"}

    return _header
