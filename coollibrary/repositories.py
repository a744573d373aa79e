"""SQLite repositories for the catalog store.

Each repository wraps a single request-scoped connection. Methods are one
round trip each; callers that need several writes to land together wrap
them in :func:`coollibrary.database.transaction`.
"""
from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Callable, Dict, List, Optional

from coollibrary.models import (
    Author,
    Book,
    Customer,
    Loan,
    LoanStatus,
    User,
    to_iso,
    utc_now,
)

Clock = Callable[[], datetime]

# SQLite INTEGER range; larger ids cannot name a row
MAX_ID = 2**63 - 1

_BOOK_COLUMNS = """
    book_id, isbn, title, description, publication_date, publisher, page_count,
    language, total_copies, available_copies, created_at, updated_at
"""


class _Repository:
    def __init__(self, conn: sqlite3.Connection, clock: Clock = utc_now) -> None:
        self.conn = conn
        self.clock = clock

    def _now(self) -> str:
        return to_iso(self.clock())

    @staticmethod
    def _storable(row_id: int) -> bool:
        return -MAX_ID - 1 <= row_id <= MAX_ID


class BooksRepository(_Repository):
    def get_all(self) -> List[Book]:
        rows = self.conn.execute(f"SELECT {_BOOK_COLUMNS} FROM books ORDER BY title").fetchall()
        return [Book.from_row(row) for row in rows]

    def get_by_id(self, book_id: int) -> Optional[Book]:
        if not self._storable(book_id):
            return None
        row = self.conn.execute(
            f"SELECT {_BOOK_COLUMNS} FROM books WHERE book_id = ?", (book_id,)
        ).fetchone()
        return Book.from_row(row) if row else None

    def get_by_isbn(self, isbn: str) -> Optional[Book]:
        row = self.conn.execute(
            f"SELECT {_BOOK_COLUMNS} FROM books WHERE isbn = ?", (isbn,)
        ).fetchone()
        return Book.from_row(row) if row else None

    def insert(self, book: Book) -> Book:
        now = self._now()
        try:
            cursor = self.conn.execute(
                """
                INSERT INTO books (
                    isbn, title, description, publication_date, publisher, page_count,
                    language, total_copies, available_copies, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    book.isbn, book.title, book.description, to_iso(book.publication_date),
                    book.publisher, book.page_count, book.language,
                    book.total_copies, book.available_copies, now, now,
                ),
            )
        except sqlite3.IntegrityError as e:
            raise ValueError(f"Book with ISBN {book.isbn} already exists or has invalid copy counts.") from e
        book.book_id = cursor.lastrowid
        return self.get_by_id(book.book_id)

    def add_author(self, book_id: int, author_id: int, author_order: int = 1) -> None:
        self.conn.execute(
            "INSERT OR IGNORE INTO book_authors (book_id, author_id, author_order) VALUES (?, ?, ?)",
            (book_id, author_id, author_order),
        )

    def update_available_copies(self, book_id: int, available_copies: int) -> bool:
        cursor = self.conn.execute(
            "UPDATE books SET available_copies = ?, updated_at = ? WHERE book_id = ?",
            (available_copies, self._now(), book_id),
        )
        return cursor.rowcount > 0

    def decrement_available_copies(self, book_id: int) -> bool:
        """Take one copy off the shelf; False when none was left."""
        cursor = self.conn.execute(
            """
            UPDATE books SET available_copies = available_copies - 1, updated_at = ?
            WHERE book_id = ? AND available_copies > 0
            """,
            (self._now(), book_id),
        )
        return cursor.rowcount > 0

    def increment_available_copies(self, book_id: int) -> bool:
        """Put one copy back; never exceeds the total copy count."""
        cursor = self.conn.execute(
            """
            UPDATE books SET available_copies = available_copies + 1, updated_at = ?
            WHERE book_id = ? AND available_copies < total_copies
            """,
            (self._now(), book_id),
        )
        return cursor.rowcount > 0


class AuthorsRepository(_Repository):
    def get_all(self) -> List[Author]:
        """All authors with their books, ordered by author name then author order."""
        authors: Dict[int, Author] = {}
        for row in self.conn.execute("SELECT * FROM authors ORDER BY last_name, first_name"):
            author = Author.from_row(row)
            authors[author.author_id] = author

        rows = self.conn.execute(
            f"""
            SELECT ba.author_id AS link_author_id, {", ".join("b." + c.strip() for c in _BOOK_COLUMNS.split(","))}
            FROM book_authors ba JOIN books b ON b.book_id = ba.book_id
            ORDER BY ba.author_id, ba.author_order, b.title
            """
        ).fetchall()
        for row in rows:
            author = authors.get(row["link_author_id"])
            if author is not None:
                author.books.append(Book.from_row(row))
        return list(authors.values())

    def insert(self, author: Author) -> Author:
        now = self._now()
        cursor = self.conn.execute(
            """
            INSERT INTO authors (first_name, last_name, biography, birth_date, nationality, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                author.first_name, author.last_name, author.biography,
                to_iso(author.birth_date), author.nationality, now, now,
            ),
        )
        author.author_id = cursor.lastrowid
        return author


class CustomersRepository(_Repository):
    def get_all(self) -> List[Customer]:
        rows = self.conn.execute("SELECT * FROM customers ORDER BY last_name, first_name").fetchall()
        return [Customer.from_row(row) for row in rows]

    def get_by_id(self, customer_id: int) -> Optional[Customer]:
        if not self._storable(customer_id):
            return None
        row = self.conn.execute("SELECT * FROM customers WHERE customer_id = ?", (customer_id,)).fetchone()
        return Customer.from_row(row) if row else None

    def get_by_email(self, email: str) -> Optional[Customer]:
        row = self.conn.execute("SELECT * FROM customers WHERE email = ?", (email,)).fetchone()
        return Customer.from_row(row) if row else None

    def email_exists(self, email: str) -> bool:
        row = self.conn.execute("SELECT 1 FROM customers WHERE email = ?", (email,)).fetchone()
        return row is not None

    def insert(self, customer: Customer) -> Customer:
        now = self._now()
        membership_date = to_iso(customer.membership_date) or now
        try:
            cursor = self.conn.execute(
                """
                INSERT INTO customers (
                    first_name, last_name, email, phone, address, city, postal_code,
                    membership_date, membership_status, max_books_allowed, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    customer.first_name, customer.last_name, customer.email, customer.phone,
                    customer.address, customer.city, customer.postal_code, membership_date,
                    int(customer.membership_status), customer.max_books_allowed, now, now,
                ),
            )
        except sqlite3.IntegrityError as e:
            raise ValueError(f"A customer with email '{customer.email}' already exists.") from e
        return self.get_by_id(cursor.lastrowid)

    def delete(self, customer_id: int) -> bool:
        if not self._storable(customer_id):
            return False
        try:
            cursor = self.conn.execute("DELETE FROM customers WHERE customer_id = ?", (customer_id,))
        except sqlite3.IntegrityError as e:
            raise ValueError(f"Customer with ID {customer_id} has loans and cannot be deleted.") from e
        return cursor.rowcount > 0


class LoansRepository(_Repository):
    def create(self, loan: Loan) -> Loan:
        now = self._now()
        cursor = self.conn.execute(
            """
            INSERT INTO loans (
                customer_id, book_id, loan_date, due_date, return_date, status,
                renewal_count, late_fee, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                loan.customer_id, loan.book_id, to_iso(loan.loan_date), to_iso(loan.due_date),
                to_iso(loan.return_date), int(loan.status), loan.renewal_count, loan.late_fee,
                now, now,
            ),
        )
        loan.loan_id = cursor.lastrowid
        return loan

    def get_by_id(self, loan_id: int) -> Optional[Loan]:
        if not self._storable(loan_id):
            return None
        row = self.conn.execute("SELECT * FROM loans WHERE loan_id = ?", (loan_id,)).fetchone()
        return Loan.from_row(row) if row else None

    def get_active_by_id(self, loan_id: int) -> Optional[Loan]:
        if not self._storable(loan_id):
            return None
        row = self.conn.execute(
            "SELECT * FROM loans WHERE loan_id = ? AND status = ?",
            (loan_id, int(LoanStatus.ACTIVE)),
        ).fetchone()
        return Loan.from_row(row) if row else None

    def list_for_customer(self, customer_id: int) -> List[Loan]:
        rows = self.conn.execute(
            "SELECT * FROM loans WHERE customer_id = ? ORDER BY loan_date DESC, loan_id DESC",
            (customer_id,),
        ).fetchall()
        return [Loan.from_row(row) for row in rows]

    def count_active_for_customer(self, customer_id: int) -> int:
        row = self.conn.execute(
            "SELECT COUNT(*) FROM loans WHERE customer_id = ? AND status = ?",
            (customer_id, int(LoanStatus.ACTIVE)),
        ).fetchone()
        return row[0]

    def has_active_loan_for_book(self, customer_id: int, book_id: int) -> bool:
        row = self.conn.execute(
            "SELECT 1 FROM loans WHERE customer_id = ? AND book_id = ? AND status = ? LIMIT 1",
            (customer_id, book_id, int(LoanStatus.ACTIVE)),
        ).fetchone()
        return row is not None

    def return_loan(self, loan_id: int, return_date: datetime) -> bool:
        """Mark an Active loan as Returned. False if missing or not Active."""
        cursor = self.conn.execute(
            """
            UPDATE loans SET status = ?, return_date = ?, updated_at = ?
            WHERE loan_id = ? AND status = ?
            """,
            (int(LoanStatus.RETURNED), to_iso(return_date), self._now(), loan_id, int(LoanStatus.ACTIVE)),
        )
        return cursor.rowcount > 0


class UsersRepository(_Repository):
    def get_by_email(self, email: str) -> Optional[User]:
        row = self.conn.execute("SELECT * FROM users WHERE email = ?", (email.lower(),)).fetchone()
        return User.from_row(row) if row else None

    def insert(self, user: User) -> User:
        try:
            cursor = self.conn.execute(
                "INSERT INTO users (email, password_hash, roles, created_at) VALUES (?, ?, ?, ?)",
                (user.email.lower(), user.password_hash, ",".join(user.roles), self._now()),
            )
        except sqlite3.IntegrityError as e:
            raise ValueError("User with this email already exists") from e
        user.user_id = cursor.lastrowid
        return user
