import pytest

from coollibrary.database import transaction
from coollibrary.models import Book
from coollibrary.repositories import BooksRepository


def _book_count(conn):
    return conn.execute("SELECT COUNT(*) FROM books").fetchone()[0]


def test_transaction_commits(conn):
    with transaction(conn):
        BooksRepository(conn).insert(Book(isbn="9780000000001", title="Kept", total_copies=1, available_copies=1))
    assert not conn.in_transaction
    assert _book_count(conn) == 1


def test_transaction_rolls_back_on_error(conn):
    with pytest.raises(RuntimeError):
        with transaction(conn):
            BooksRepository(conn).insert(Book(isbn="9780000000001", title="Dropped", total_copies=1, available_copies=1))
            raise RuntimeError("boom")
    assert not conn.in_transaction
    assert _book_count(conn) == 0


def test_original_error_kept_when_sqlite_already_rolled_back(conn):
    with pytest.raises(RuntimeError, match="boom"):
        with transaction(conn):
            conn.execute("ROLLBACK")
            raise RuntimeError("boom")
    assert not conn.in_transaction
