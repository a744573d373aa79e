from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from coollibrary import database
from coollibrary.api import app, get_clock
from coollibrary.models import Book, Customer, MembershipStatus
from coollibrary.repositories import BooksRepository, CustomersRepository

FIXED_NOW = datetime(2025, 1, 15, 10, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def db_file(tmp_path, request, monkeypatch):
    # Each test gets its own database file
    path = str(tmp_path / f"test_{request.node.name}.db")
    monkeypatch.setattr(database, "DATABASE_FILE", path)
    database.initialize_database()
    return path


@pytest.fixture
def conn(db_file):
    connection = database.get_db_connection()
    yield connection
    connection.close()


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def make_book(conn):
    counter = {"n": 0}

    def _make(title="Test Book", copies=1, available=None, isbn=None):
        counter["n"] += 1
        return BooksRepository(conn).insert(Book(
            isbn=isbn or f"978000000{counter['n']:04d}",
            title=title,
            total_copies=copies,
            available_copies=copies if available is None else available,
        ))
    return _make


@pytest.fixture
def make_customer(conn):
    counter = {"n": 0}

    def _make(status=MembershipStatus.ACTIVE, max_books=5, email=None):
        counter["n"] += 1
        return CustomersRepository(conn).insert(Customer(
            first_name="Test",
            last_name=f"Customer{counter['n']}",
            email=email or f"customer{counter['n']}@example.com",
            membership_status=status,
            max_books_allowed=max_books,
        ))
    return _make


@pytest.fixture
def client(db_file, clock):
    app.dependency_overrides[get_clock] = lambda: clock
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(client):
    credentials = {"email": "librarian@example.com", "password": "s3cret-pass"}
    client.post("/api/v1/auth/register", json={**credentials, "confirmPassword": credentials["password"]})
    response = client.post("/api/v1/auth/login", json=credentials)
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['token']}"}
