import os
import tempfile

# Point the app at a throwaway SQLite file before db.py builds its engine
os.environ["DATABASE_PATH"] = os.path.join(tempfile.mkdtemp(prefix="healthlog-tests-"), "test.db")

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, delete, select

import config
from app import app
from db import create_db_and_tables, engine, get_session
from models import Category, FieldDefinition, Record, RecordFieldValue, UserProfile
from seed import seed_default_categories


@pytest.fixture(scope="function")
def test_session():
    """Create a test database session with the default categories seeded."""
    create_db_and_tables()
    with Session(engine) as session:
        seed_default_categories(session)
        yield session
        # Clean up all test data after test
        session.rollback()
        for model in (RecordFieldValue, Record, FieldDefinition, Category, UserProfile):
            session.exec(delete(model))
        session.commit()


@pytest.fixture(scope="function")
def client(test_session):
    """Create a test client with dependency override."""

    def get_test_session():
        yield test_session

    app.dependency_overrides[get_session] = get_test_session
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def make_user(session: Session, user_id: str, username: str) -> UserProfile:
    user = UserProfile(id=user_id, username=username, display_name=username.title())
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture
def user(test_session):
    return make_user(test_session, "user-alice", "alice")


@pytest.fixture
def other_user(test_session):
    return make_user(test_session, "user-bob", "bob")


@pytest.fixture
def auth_headers(client):
    """Log in through the API and return the bearer header."""
    response = client.post("/users/login", json={"username": "Alice", "password": config.LOGIN_PASSWORD})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['token']}"}


def default_category(session: Session, name: str) -> Category:
    return session.exec(
        select(Category).where(Category.is_default == True).where(Category.name == name)  # noqa: E712
    ).one()
