import itertools
import os
import tempfile
from datetime import date, timedelta

import pytest

# Configure the application for tests before it is imported
_test_db_dir = tempfile.mkdtemp(prefix="clinic-tests-")
os.environ["TESTING"] = "1"
os.environ["TEST_DATABASE_URL"] = f"sqlite:///{os.path.join(_test_db_dir, 'test.db')}"

import fakeredis  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from app.main import app  # noqa: E402
from app.core.database import Base, SessionLocal, engine, get_redis, init_db  # noqa: E402
from app.core.security import UserRole, create_token_pair, get_password_hash  # noqa: E402
from app.models.user import User  # noqa: E402

TEST_PASSWORD = "Password123"
# bcrypt is slow; hash once for every fixture user
TEST_PASSWORD_HASH = get_password_hash(TEST_PASSWORD)


@pytest.fixture
def test_db():
    init_db()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db(test_db):
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def fake_redis():
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture
def client(test_db, fake_redis):
    app.dependency_overrides[get_redis] = lambda: fake_redis
    with TestClient(app, base_url="http://testserver") as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    counter = itertools.count(1)

    def _make_user(role=UserRole.PATIENT, full_name=None, specialization=None, is_active=True):
        n = next(counter)
        user = User(
            email=f"{role.value}{n}@example.com",
            password_hash=TEST_PASSWORD_HASH,
            role=role,
            full_name=full_name or f"{role.value.title()} {n}",
            specialization=specialization,
            is_active=is_active,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def doctor(make_user):
    return make_user(UserRole.DOCTOR, full_name="Gregory House", specialization="Diagnostics")


@pytest.fixture
def patient(make_user):
    return make_user(UserRole.PATIENT, full_name="Jane Roe")


@pytest.fixture
def other_patient(make_user):
    return make_user(UserRole.PATIENT, full_name="John Doe")


@pytest.fixture
def admin(make_user):
    return make_user(UserRole.ADMIN, full_name="Clinic Admin")


@pytest.fixture
def future_day():
    return date.today() + timedelta(days=7)


def auth_headers(user: User) -> dict:
    tokens = create_token_pair(user.id, user.email, user.role)
    return {"Authorization": f"Bearer {tokens.access_token}"}
