import logging
import sqlite3
from contextlib import contextmanager
from typing import Iterator, Optional

from coollibrary.config import settings

logger = logging.getLogger(__name__)

# Tests and the CLI may repoint this before opening connections.
DATABASE_FILE = settings.database_file


def get_db_connection(db_file: Optional[str] = None) -> sqlite3.Connection:
    """Open a connection to the SQLite database.

    Connections run in autocommit mode; statements that must apply together
    are grouped with :func:`transaction`.
    """
    conn = sqlite3.connect(
        db_file or DATABASE_FILE,
        timeout=settings.database_timeout,
        isolation_level=None,
        check_same_thread=False,
    )
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys=ON;")
    # WAL lets readers proceed while a loan transaction holds the write lock
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    return conn


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Run a block inside ``BEGIN IMMEDIATE``.

    The write lock is taken before the first read so concurrent requests
    serialize on the whole read-check-write sequence.
    """
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException:
        # some errors make SQLite roll back on its own
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        raise
    else:
        conn.execute("COMMIT")


def create_tables(conn: sqlite3.Connection) -> None:
    """Create the catalog tables and indexes if they do not exist."""
    conn.executescript("""
        CREATE TABLE IF NOT EXISTS authors (
            author_id INTEGER PRIMARY KEY AUTOINCREMENT,
            first_name TEXT NOT NULL CHECK(length(first_name) <= 100),
            last_name TEXT NOT NULL CHECK(length(last_name) <= 100),
            biography TEXT CHECK(biography IS NULL OR length(biography) <= 2000),
            birth_date TEXT,
            nationality TEXT CHECK(nationality IS NULL OR length(nationality) <= 100),
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS books (
            book_id INTEGER PRIMARY KEY AUTOINCREMENT,
            isbn TEXT NOT NULL UNIQUE CHECK(length(isbn) <= 20),
            title TEXT NOT NULL CHECK(length(title) <= 300),
            description TEXT CHECK(description IS NULL OR length(description) <= 2000),
            publication_date TEXT,
            publisher TEXT CHECK(publisher IS NULL OR length(publisher) <= 200),
            page_count INTEGER,
            language TEXT NOT NULL DEFAULT 'English',
            total_copies INTEGER NOT NULL DEFAULT 0,
            available_copies INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            CHECK(available_copies <= total_copies),
            CHECK(available_copies >= 0 AND total_copies >= 0)
        );

        CREATE TABLE IF NOT EXISTS book_authors (
            book_id INTEGER NOT NULL,
            author_id INTEGER NOT NULL,
            author_order INTEGER NOT NULL DEFAULT 1 CHECK(author_order > 0),
            PRIMARY KEY (book_id, author_id),
            FOREIGN KEY (book_id) REFERENCES books(book_id) ON DELETE CASCADE,
            FOREIGN KEY (author_id) REFERENCES authors(author_id) ON DELETE CASCADE
        );

        CREATE TABLE IF NOT EXISTS customers (
            customer_id INTEGER PRIMARY KEY AUTOINCREMENT,
            first_name TEXT NOT NULL CHECK(length(first_name) <= 100),
            last_name TEXT NOT NULL CHECK(length(last_name) <= 100),
            email TEXT NOT NULL UNIQUE CHECK(length(email) <= 200),
            phone TEXT,
            address TEXT,
            city TEXT,
            postal_code TEXT,
            membership_date TEXT NOT NULL,
            membership_status INTEGER NOT NULL DEFAULT 1,
            max_books_allowed INTEGER NOT NULL DEFAULT 5 CHECK(max_books_allowed > 0),
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS loans (
            loan_id INTEGER PRIMARY KEY AUTOINCREMENT,
            customer_id INTEGER NOT NULL,
            book_id INTEGER NOT NULL,
            loan_date TEXT NOT NULL,
            due_date TEXT NOT NULL,
            return_date TEXT,
            status INTEGER NOT NULL DEFAULT 1,
            renewal_count INTEGER NOT NULL DEFAULT 0 CHECK(renewal_count >= 0),
            late_fee REAL NOT NULL DEFAULT 0 CHECK(late_fee >= 0),
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            CHECK(return_date IS NULL OR return_date >= loan_date),
            FOREIGN KEY (customer_id) REFERENCES customers(customer_id) ON DELETE RESTRICT,
            FOREIGN KEY (book_id) REFERENCES books(book_id) ON DELETE RESTRICT
        );

        CREATE TABLE IF NOT EXISTS users (
            user_id INTEGER PRIMARY KEY AUTOINCREMENT,
            email TEXT NOT NULL UNIQUE,
            password_hash TEXT NOT NULL,
            roles TEXT NOT NULL DEFAULT '',
            created_at TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_books_title ON books(title);
        CREATE INDEX IF NOT EXISTS idx_books_available_copies ON books(available_copies);
        CREATE INDEX IF NOT EXISTS idx_authors_name ON authors(last_name, first_name);
        CREATE INDEX IF NOT EXISTS idx_book_authors_author_id ON book_authors(author_id);
        CREATE INDEX IF NOT EXISTS idx_customers_name ON customers(last_name, first_name);
        CREATE INDEX IF NOT EXISTS idx_customers_membership_status ON customers(membership_status);
        CREATE INDEX IF NOT EXISTS idx_loans_customer_id ON loans(customer_id);
        CREATE INDEX IF NOT EXISTS idx_loans_book_id ON loans(book_id);
        CREATE INDEX IF NOT EXISTS idx_loans_status_due_date ON loans(status, due_date);
    """)


def initialize_database(db_file: Optional[str] = None) -> None:
    """Create the schema in the configured database file."""
    conn = get_db_connection(db_file)
    try:
        create_tables(conn)
    finally:
        conn.close()
    logger.info("Database ready at %s", db_file or DATABASE_FILE)
