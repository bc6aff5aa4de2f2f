"""
Tests for the FastAPI application.
"""

from unittest.mock import AsyncMock, patch

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from api.auth import TokenManager
from api.main import app
from catalog.models import UserRole
from tests.factories import insert_user, run_sync


@pytest.fixture
def client():
    """Create test client."""
    return TestClient(app)


@pytest.fixture
def api_service(service):
    """Serve requests from the in-memory database service."""
    with patch('api.main.db_service', service):
        yield service


@pytest.fixture
def mock_db_service():
    """Mock database service."""
    mock = AsyncMock()
    with patch('api.main.db_service', mock):
        yield mock


def auth_headers(user_id):
    return {"Authorization": f"Bearer {TokenManager.create_token(user_id)}"}


@pytest.fixture
def admin_headers(database):
    return auth_headers(run_sync(insert_user(database, "admin", role=UserRole.ADMIN)))


@pytest.fixture
def reader_headers(database):
    return auth_headers(run_sync(insert_user(database, "reader")))


@pytest.fixture
def stranger_headers(database):
    return auth_headers(run_sync(insert_user(database, "stranger")))


def test_health_check(client, mock_db_service):
    """Test health check endpoint."""
    mock_db_service.health_check.return_value = {"status": "healthy"}

    response = client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["databaseStatus"] == "healthy"
    assert "timestamp" in data
    assert "version" in data


def test_health_check_without_database(client):
    with patch('api.main.db_service', None):
        response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "degraded"


def test_unknown_route(client):
    response = client.get("/api/authors")

    assert response.status_code == 404
    assert response.json()["status"] == "fail"
    assert response.json()["message"] == "Can't find /api/authors on this server!"


class TestAuthEndpoints:

    def test_register_returns_token(self, client, api_service):
        response = client.post("/api/auth/register", json={
            "username": "newbie", "email": "newbie@example.com", "password": "password123"
        })

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "success"
        assert body["token"]
        assert body["data"]["user"]["email"] == "newbie@example.com"
        assert "passwordHash" not in body["data"]["user"]

    def test_register_normalizes_email(self, client, api_service):
        response = client.post("/api/auth/register", json={
            "username": "newbie", "email": " Newbie@Example.COM ", "password": "password123"
        })

        assert response.status_code == 201
        assert response.json()["data"]["user"]["email"] == "newbie@example.com"

    def test_register_short_password(self, client, api_service):
        response = client.post("/api/auth/register", json={
            "username": "newbie", "email": "newbie@example.com", "password": "short"
        })

        assert response.status_code == 400
        assert response.json()["message"].startswith("Invalid input data.")

    def test_login_and_me(self, client, api_service, reader_headers):
        response = client.post("/api/auth/login", json={"email": "reader@example.com", "password": "password123"})
        assert response.status_code == 200

        token = response.json()["token"]
        me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})

        assert me.status_code == 200
        assert me.json()["data"]["user"]["username"] == "reader"

    def test_login_missing_password(self, client, api_service):
        response = client.post("/api/auth/login", json={"email": "reader@example.com"})

        assert response.status_code == 400
        assert response.json()["message"] == "Please provide email and password"

    def test_login_wrong_password(self, client, api_service, reader_headers):
        response = client.post("/api/auth/login", json={"email": "reader@example.com", "password": "nope-nope"})

        assert response.status_code == 401
        assert response.json()["status"] == "fail"

    def test_me_requires_token(self, client, api_service):
        response = client.get("/api/auth/me")

        assert response.status_code == 401
        assert response.json()["message"] == "You are not logged in. Please log in to get access"


class TestBookEndpoints:

    def test_list_is_public(self, client, api_service, seeded_books):
        response = client.get("/api/books")

        assert response.status_code == 200
        body = response.json()
        assert body["results"] == 6
        assert body["total"] == 6
        assert body["page"] == 1
        assert body["limit"] == 10
        assert body["data"]["books"][0]["publishedYear"] == 1997

    def test_list_with_query(self, client, api_service, seeded_books):
        response = client.get("/api/books?publishedYear[gte]=1950&sort=-publishedYear&limit=2&page=1")

        assert response.status_code == 200
        body = response.json()
        assert [book["publishedYear"] for book in body["data"]["books"]] == [1997, 1960]
        assert body["total"] == 2

    def test_list_with_field_selection(self, client, api_service, seeded_books):
        response = client.get("/api/books?fields=title&limit=1")

        book = response.json()["data"]["books"][0]
        assert set(book) == {"id", "title"}

    def test_list_rejects_unknown_filter(self, client, api_service, seeded_books):
        response = client.get("/api/books?passwordHash=x")

        assert response.status_code == 400
        assert response.json()["status"] == "fail"

    def test_featured(self, client, api_service, seeded_books):
        response = client.get("/api/books/featured")

        assert response.status_code == 200
        assert all(book["featured"] for book in response.json()["data"]["books"])
        assert response.json()["results"] == 4

    def test_missing_book_envelope(self, client, api_service):
        response = client.get(f"/api/books/{ObjectId()}")

        assert response.status_code == 404
        body = response.json()
        assert body["status"] == "fail"
        assert body["message"] == "No book found with that ID"
        assert "stack" in body

    def test_stack_hidden_in_production(self, client, api_service):
        with patch('api.main.config.environment', "production"), patch('api.main.config.debug', False):
            response = client.get(f"/api/books/{ObjectId()}")

        assert response.status_code == 404
        assert "stack" not in response.json()

    def test_create_requires_admin(self, client, api_service, reader_headers):
        payload = {"title": "Dune", "author": "Frank Herbert", "description": "Spice", "genre": ["Science Fiction"]}

        response = client.post("/api/books", json=payload, headers=reader_headers)

        assert response.status_code == 403

    def test_admin_book_lifecycle(self, client, api_service, admin_headers):
        payload = {
            "title": "Dune", "author": "Frank Herbert", "description": "Spice",
            "genre": ["Science Fiction"], "publishedYear": 1965
        }

        created = client.post("/api/books", json=payload, headers=admin_headers)
        assert created.status_code == 201
        book_id = created.json()["data"]["book"]["id"]
        assert created.json()["data"]["book"]["averageRating"] == 0

        updated = client.put(f"/api/books/{book_id}", json={"featured": True}, headers=admin_headers)
        assert updated.status_code == 200
        assert updated.json()["data"]["book"]["featured"] is True

        deleted = client.delete(f"/api/books/{book_id}", headers=admin_headers)
        assert deleted.status_code == 204
        assert client.get(f"/api/books/{book_id}").status_code == 404


class TestReviewEndpoints:

    def test_create_requires_login(self, client, api_service, seeded_books):
        response = client.post("/api/reviews", json={"book": seeded_books[0], "rating": 5, "review": "Great"})

        assert response.status_code == 401

    def test_rating_out_of_range(self, client, api_service, reader_headers, seeded_books):
        response = client.post(
            "/api/reviews", json={"book": seeded_books[0], "rating": 9, "review": "Great"}, headers=reader_headers
        )

        assert response.status_code == 400
        assert "rating" in response.json()["message"]

    def test_review_updates_book_rating(self, client, api_service, reader_headers, admin_headers, seeded_books):
        book_id = seeded_books[0]

        created = client.post("/api/reviews", json={"book": book_id, "rating": 5, "review": "Great"}, headers=reader_headers)
        assert created.status_code == 201
        assert created.json()["data"]["review"]["finalReview"] == "Great"
        client.post("/api/reviews", json={"book": book_id, "rating": 2, "review": "Meh"}, headers=admin_headers)

        book = client.get(f"/api/books/{book_id}").json()["data"]["book"]
        assert book["ratingCount"] == 2
        assert book["averageRating"] == 3.5
        assert {review["user"]["username"] for review in book["reviews"]} == {"reader", "admin"}

    def test_second_review_rejected(self, client, api_service, reader_headers, seeded_books):
        payload = {"book": seeded_books[0], "rating": 5, "review": "Great"}
        client.post("/api/reviews", json=payload, headers=reader_headers)

        response = client.post("/api/reviews", json=payload, headers=reader_headers)

        assert response.status_code == 400
        assert response.json()["message"] == "You have already reviewed this book"

    def test_update_and_delete_review(self, client, api_service, reader_headers, admin_headers, seeded_books):
        book_id = seeded_books[0]
        created = client.post("/api/reviews", json={"book": book_id, "rating": 5, "review": "Great"}, headers=reader_headers)
        review_id = created.json()["data"]["review"]["id"]

        forbidden = client.put(f"/api/reviews/{review_id}", json={"rating": 1}, headers=admin_headers)
        assert forbidden.status_code == 403

        updated = client.put(f"/api/reviews/{review_id}", json={"rating": 3}, headers=reader_headers)
        assert updated.status_code == 200
        assert client.get(f"/api/books/{book_id}").json()["data"]["book"]["averageRating"] == 3

        deleted = client.delete(f"/api/reviews/{review_id}", headers=admin_headers)
        assert deleted.status_code == 204
        assert client.get(f"/api/books/{book_id}").json()["data"]["book"]["ratingCount"] == 0

    def test_list_reviews_by_book(self, client, api_service, reader_headers, seeded_books):
        client.post("/api/reviews", json={"book": seeded_books[1], "rating": 4, "review": "Good"}, headers=reader_headers)

        response = client.get(f"/api/reviews?bookId={seeded_books[1]}")
        assert response.status_code == 200
        assert response.json()["results"] == 1

        assert client.get(f"/api/reviews?bookId={seeded_books[2]}").json()["results"] == 0

    def test_other_user_cannot_update_review(self, client, api_service, reader_headers, stranger_headers, seeded_books):
        book_id = seeded_books[0]
        created = client.post(
            "/api/reviews", json={"book": book_id, "rating": 5, "review": "Loved it"}, headers=reader_headers
        )
        review_id = created.json()["data"]["review"]["id"]

        response = client.put(
            f"/api/reviews/{review_id}", json={"rating": 1, "review": "Hated it"}, headers=stranger_headers
        )

        assert response.status_code == 403
        assert response.json()["status"] == "fail"
        assert response.json()["message"] == "You do not have permission to update this review"

        review = client.get(f"/api/reviews/{review_id}").json()["data"]["review"]
        assert (review["rating"], review["review"]) == (5, "Loved it")
        assert client.get(f"/api/books/{book_id}").json()["data"]["book"]["averageRating"] == 5
