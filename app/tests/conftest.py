import pytest
import os
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy_utils import database_exists, create_database, drop_database
from fastapi.testclient import TestClient
from dotenv import load_dotenv

# Load environment variables from .env.test
load_dotenv(".env.test")

from app.database import build_engine, get_db
from app.main import app
from app.models import Base, Department, User, UserRole
from app.services.notifications import get_notifier

# In-memory SQLite unless a real database is configured
TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "sqlite://")


@pytest.fixture(scope="session")
def test_engine():
    """Create a test database and return the engine."""
    if TEST_DATABASE_URL.startswith("sqlite"):
        engine = build_engine(TEST_DATABASE_URL, poolclass=StaticPool)
        yield engine
        engine.dispose()
        return

    if not database_exists(TEST_DATABASE_URL):
        create_database(TEST_DATABASE_URL)
    engine = build_engine(TEST_DATABASE_URL)
    yield engine
    engine.dispose()
    drop_database(TEST_DATABASE_URL)


@pytest.fixture(scope="function")
def test_db(test_engine):
    """Create a fresh schema and session for each test."""
    Base.metadata.create_all(bind=test_engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)
    db = TestingSessionLocal()

    try:
        yield db
    finally:
        db.rollback()
        db.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def department(test_db):
    dept = Department(name="Innovation", description="Hackathons and pitch sessions")
    test_db.add(dept)
    test_db.commit()
    return dept


def make_user(db, email, role=UserRole.STAFF, department=None):
    user = User(
        email=email,
        first_name="Test",
        last_name=role.value.title(),
        role=role,
        department_id=department.id if department else None,
        password_hash="not-used"
    )
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def super_admin(test_db):
    return make_user(test_db, "root@example.com", UserRole.SUPER_ADMIN)


@pytest.fixture
def staff_user(test_db, department):
    return make_user(test_db, "staff@example.com", UserRole.STAFF, department)


@pytest.fixture
def dept_admin(test_db, department):
    return make_user(test_db, "head@example.com", UserRole.ADMIN, department)


class RecordingNotifier:
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    def notify(self, recipient, template_kind, data):
        if self.fail:
            raise RuntimeError("SMTP server unreachable")
        self.sent.append((recipient, template_kind, data))


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def failing_notifier():
    return RecordingNotifier(fail=True)


@pytest.fixture
def client(test_db, notifier):
    def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
