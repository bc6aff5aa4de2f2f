"""
Pytest configuration and shared fixtures.
"""

import pytest
from bson import ObjectId
from mongomock_motor import AsyncMongoMockClient

from api.database import APIDatabaseService
from catalog.database import create_indexes
from catalog.models import Identity, UserRole
from tests.factories import insert_books, run_sync
from utilities.config import AppConfig


@pytest.fixture
def database():
    """Fresh in-memory database with the production indexes."""
    client = AsyncMongoMockClient()
    db = client["test_book_reviews"]
    run_sync(create_indexes(db))
    return db


@pytest.fixture
def settings():
    return AppConfig(environment="test", secret_key="test-secret")


@pytest.fixture
def service(database, settings):
    return APIDatabaseService(database, settings)


@pytest.fixture
def admin_identity():
    return Identity(id=str(ObjectId()), role=UserRole.ADMIN)


@pytest.fixture
def user_identity():
    return Identity(id=str(ObjectId()), role=UserRole.USER)


@pytest.fixture
def other_identity():
    return Identity(id=str(ObjectId()), role=UserRole.USER)


@pytest.fixture
def seeded_books(database, admin_identity):
    """Six books published in 1813, 1925, 1937, 1949, 1960 and 1997, created in that order."""
    return run_sync(insert_books(database, admin_identity.id))
