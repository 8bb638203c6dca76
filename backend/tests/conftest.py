import itertools
import os
import uuid
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

# Configurar SQLite de pruebas antes de importar la app
TEST_DB_PATH = os.path.abspath("test.db")
os.environ["DATABASE_URL"] = f"sqlite:///{TEST_DB_PATH}"
os.environ["APP_ENV"] = "dev"
os.environ["DEFAULT_LOCALE"] = "es"
os.environ.pop("GRADE_SCALE", None)

try:
    os.remove(TEST_DB_PATH)
except FileNotFoundError:
    pass

from sqlmodel import Session  # noqa: E402

from academic_admin import db  # noqa: E402
from academic_admin.main import app  # noqa: E402
from academic_admin.models import RoleEnum, User  # noqa: E402
from academic_admin.security import get_password_hash  # noqa: E402


DEFAULT_PASSWORD = "secret123"
FORM_HEADERS = {"Content-Type": "application/x-www-form-urlencoded"}

# Cada bimestre de prueba ocupa su propia ventana para no chocar con la validación de solapamiento
_period_counter = itertools.count()
PERIOD_BASE = datetime(2001, 1, 1)


@pytest.fixture(scope="session")
def client():
    db.init_db()
    client = TestClient(app)
    yield client
    client.close()
    app.dependency_overrides.clear()


def unique(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}".upper()


def auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def login(client: TestClient, email: str, password: str = DEFAULT_PASSWORD) -> str:
    res = client.post("/auth/token", data={"username": email, "password": password}, headers=FORM_HEADERS)
    assert res.status_code == 200, res.text
    return res.json()["access_token"]


def create_user(role: RoleEnum, *, student_code=None, program_id=None, email=None) -> User:
    email = email or f"{role.value}-{uuid.uuid4().hex[:8]}@test.com"
    with Session(db.engine) as session:
        user = User(
            email=email,
            first_name=role.value.capitalize(),
            last_name=uuid.uuid4().hex[:6],
            hashed_password=get_password_hash(DEFAULT_PASSWORD),
            role=role,
            student_code=student_code,
            program_id=program_id,
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        return user


def next_period(days_active: int = 60, grace_days: int = 7):
    start = PERIOD_BASE + timedelta(days=100 * next(_period_counter))
    end = start + timedelta(days=days_active)
    return start, end, end + timedelta(days=grace_days)


@pytest.fixture()
def admin_token(client: TestClient):
    email = "admin@test.com"
    client.post("/auth/signup", json={
        "email": email,
        "first_name": "Admin",
        "last_name": "Test",
        "password": "admin123",
        "role": "admin",
    })
    return login(client, email, "admin123")


@pytest.fixture()
def professor(client: TestClient):
    user = create_user(RoleEnum.professor)
    return user, login(client, user.email)


@pytest.fixture()
def make_program(client: TestClient, admin_token):
    def _make(**overrides):
        payload = {
            "code_es": unique("PRG"),
            "name_es": "Programa de prueba",
            "description_es": "Descripción",
            "type": "bachelor",
            "language": "es",
            "duration_bimesters": 12,
        }
        payload.update(overrides)
        res = client.post("/programs/", json=payload, headers=auth(admin_token))
        assert res.status_code == 200, res.text
        return res.json()

    return _make


@pytest.fixture()
def make_course(client: TestClient, admin_token):
    def _make(**overrides):
        payload = {
            "code_es": unique("CUR"),
            "name_es": "Curso de prueba",
            "description_es": "Descripción",
            "credits": 3,
            "language": "es",
        }
        payload.update(overrides)
        res = client.post("/courses/", json=payload, headers=auth(admin_token))
        assert res.status_code == 200, res.text
        return res.json()

    return _make


@pytest.fixture()
def make_bimester(client: TestClient, admin_token):
    def _make(days_active: int = 60, grace_days: int = 7):
        start, end, deadline = next_period(days_active, grace_days)
        res = client.post("/bimesters/", json={
            "name": unique("BIM"),
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
            "grade_deadline": deadline.isoformat(),
        }, headers=auth(admin_token))
        assert res.status_code == 200, res.text
        return res.json()

    return _make
