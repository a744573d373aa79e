"""Demo catalog used by ``coollibrary seed``."""
import logging
import sqlite3
from datetime import date
from typing import Dict

from coollibrary.database import transaction
from coollibrary.models import Author, Book, Customer, MembershipStatus
from coollibrary.repositories import AuthorsRepository, BooksRepository, CustomersRepository

logger = logging.getLogger(__name__)

DEMO_AUTHORS = [
    Author(first_name="Ursula K.", last_name="Le Guin", nationality="American"),
    Author(first_name="Stanisław", last_name="Lem", nationality="Polish"),
    Author(first_name="Terry", last_name="Pratchett", nationality="British"),
    Author(first_name="Neil", last_name="Gaiman", nationality="British"),
]

# (isbn, title, publisher, published, total copies, author last names)
DEMO_BOOKS = [
    ("9780441478125", "The Left Hand of Darkness", "Ace Books", date(1969, 3, 1), 3, ["Le Guin"]),
    ("9780156027601", "Solaris", "Harcourt", date(1961, 1, 1), 2, ["Lem"]),
    ("9780060853983", "Good Omens", "William Morrow", date(1990, 5, 1), 1, ["Pratchett", "Gaiman"]),
    ("9780062225672", "The Colour of Magic", "Harper", date(1983, 11, 24), 4, ["Pratchett"]),
]

DEMO_CUSTOMERS = [
    Customer(first_name="Ada", last_name="Lovelace", email="ada@example.com", city="London"),
    Customer(first_name="Alan", last_name="Turing", email="alan@example.com", city="Manchester", max_books_allowed=2),
    Customer(
        first_name="Grace", last_name="Hopper", email="grace@example.com", city="Arlington",
        membership_status=MembershipStatus.SUSPENDED,
    ),
]


def seed_demo_data(conn: sqlite3.Connection) -> Dict[str, int]:
    """Insert the demo catalog; rows that already exist are skipped.

    Returns how many rows of each kind were added.
    """
    authors_repo = AuthorsRepository(conn)
    books_repo = BooksRepository(conn)
    customers_repo = CustomersRepository(conn)
    added = {"authors": 0, "books": 0, "customers": 0}

    with transaction(conn):
        author_ids: Dict[str, int] = {a.last_name: a.author_id for a in authors_repo.get_all()}
        for author in DEMO_AUTHORS:
            if author.last_name in author_ids:
                continue
            # insert() sets author_id, so work on a copy of the module-level record
            created = authors_repo.insert(Author(
                first_name=author.first_name, last_name=author.last_name, nationality=author.nationality,
            ))
            author_ids[created.last_name] = created.author_id
            added["authors"] += 1

        for isbn, title, publisher, published, copies, last_names in DEMO_BOOKS:
            if books_repo.get_by_isbn(isbn) is not None:
                continue
            book = books_repo.insert(Book(
                isbn=isbn, title=title, publisher=publisher, publication_date=published,
                total_copies=copies, available_copies=copies,
            ))
            for order, last_name in enumerate(last_names, start=1):
                books_repo.add_author(book.book_id, author_ids[last_name], order)
            added["books"] += 1

        for customer in DEMO_CUSTOMERS:
            if customers_repo.email_exists(customer.email):
                continue
            customers_repo.insert(customer)
            added["customers"] += 1

    logger.info("Seeded demo data: %s", added)
    return added
