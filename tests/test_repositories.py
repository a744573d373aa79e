from datetime import timedelta

import pytest

from coollibrary.models import Author, Book, Customer, Loan, LoanStatus, MembershipStatus, utc_now
from coollibrary.repositories import (
    AuthorsRepository,
    BooksRepository,
    CustomersRepository,
    LoansRepository,
)


def test_insert_and_get_book(conn):
    books = BooksRepository(conn)
    book = books.insert(Book(isbn="9780000000001", title="Kindred", total_copies=2, available_copies=2))

    assert books.get_by_id(book.book_id).title == "Kindred"
    assert books.get_by_isbn("9780000000001").book_id == book.book_id
    assert books.get_by_id(999) is None


def test_duplicate_isbn_rejected(conn, make_book):
    make_book(isbn="9780000000001")
    with pytest.raises(ValueError):
        make_book(isbn="9780000000001")


def test_available_copies_cannot_exceed_total(conn):
    with pytest.raises(ValueError):
        BooksRepository(conn).insert(Book(isbn="9780000000002", title="Too Many", total_copies=1, available_copies=2))


def test_decrement_stops_at_zero(conn, make_book):
    books = BooksRepository(conn)
    book = make_book(copies=1)

    assert books.decrement_available_copies(book.book_id)
    assert not books.decrement_available_copies(book.book_id)
    assert books.get_by_id(book.book_id).available_copies == 0


def test_increment_stops_at_total(conn, make_book):
    books = BooksRepository(conn)
    book = make_book(copies=2, available=1)

    assert books.increment_available_copies(book.book_id)
    assert not books.increment_available_copies(book.book_id)
    assert books.get_by_id(book.book_id).available_copies == 2


def test_update_available_copies(conn, make_book):
    books = BooksRepository(conn)
    book = make_book(copies=5)
    assert books.update_available_copies(book.book_id, 3)
    assert books.get_by_id(book.book_id).available_copies == 3
    assert not books.update_available_copies(999, 1)


def test_authors_with_books_in_author_order(conn, make_book):
    authors = AuthorsRepository(conn)
    books = BooksRepository(conn)
    pratchett = authors.insert(Author(first_name="Terry", last_name="Pratchett"))
    gaiman = authors.insert(Author(first_name="Neil", last_name="Gaiman"))
    omens = make_book(title="Good Omens")
    mort = make_book(title="Mort")
    books.add_author(omens.book_id, pratchett.author_id, 1)
    books.add_author(omens.book_id, gaiman.author_id, 2)
    books.add_author(mort.book_id, pratchett.author_id, 1)

    result = {a.last_name: a for a in authors.get_all()}

    assert [a for a in result] == ["Gaiman", "Pratchett"]
    assert [b.title for b in result["Gaiman"].books] == ["Good Omens"]
    assert sorted(b.title for b in result["Pratchett"].books) == ["Good Omens", "Mort"]


def test_customer_defaults(conn):
    customer = CustomersRepository(conn).insert(Customer(first_name="Ada", last_name="Lovelace", email="ada@example.com"))
    assert customer.membership_status == MembershipStatus.ACTIVE
    assert customer.max_books_allowed == 5
    assert customer.membership_date is not None
    assert customer.is_active


def test_customer_duplicate_email(conn, make_customer):
    make_customer(email="ada@example.com")
    with pytest.raises(ValueError, match="A customer with email 'ada@example.com' already exists."):
        make_customer(email="ada@example.com")


def test_delete_customer(conn, make_customer):
    customers = CustomersRepository(conn)
    customer = make_customer()
    assert customers.delete(customer.customer_id)
    assert customers.get_by_id(customer.customer_id) is None
    assert not customers.delete(customer.customer_id)


def test_delete_customer_with_loans_rejected(conn, make_book, make_customer):
    book = make_book()
    customer = make_customer()
    now = utc_now()
    LoansRepository(conn).create(Loan(
        customer_id=customer.customer_id, book_id=book.book_id,
        loan_date=now, due_date=now + timedelta(days=14),
    ))
    with pytest.raises(ValueError, match="has loans"):
        CustomersRepository(conn).delete(customer.customer_id)


def test_active_loan_queries(conn, make_book, make_customer):
    loans = LoansRepository(conn)
    book, other = make_book(), make_book()
    customer = make_customer()
    now = utc_now()
    active = loans.create(Loan(customer_id=customer.customer_id, book_id=book.book_id, loan_date=now, due_date=now))
    loans.create(Loan(
        customer_id=customer.customer_id, book_id=other.book_id,
        loan_date=now, due_date=now, return_date=now, status=LoanStatus.RETURNED,
    ))

    assert loans.count_active_for_customer(customer.customer_id) == 1
    assert loans.has_active_loan_for_book(customer.customer_id, book.book_id)
    assert not loans.has_active_loan_for_book(customer.customer_id, other.book_id)
    assert len(loans.list_for_customer(customer.customer_id)) == 2
    assert loans.get_active_by_id(active.loan_id).loan_id == active.loan_id

    assert loans.return_loan(active.loan_id, now + timedelta(days=1))
    assert not loans.return_loan(active.loan_id, now + timedelta(days=2))
    assert loans.count_active_for_customer(customer.customer_id) == 0



def test_ids_beyond_integer_range_are_not_found(conn):
    too_big = 2**70
    assert BooksRepository(conn).get_by_id(too_big) is None
    assert CustomersRepository(conn).get_by_id(too_big) is None
    assert not CustomersRepository(conn).delete(too_big)
    assert LoansRepository(conn).get_by_id(-too_big) is None
    assert LoansRepository(conn).get_active_by_id(too_big) is None


def test_loans_for_customer_newest_first(conn, make_book, make_customer):
    loans = LoansRepository(conn)
    first_book, second_book = make_book(), make_book()
    customer = make_customer()
    now = utc_now()
    older = loans.create(Loan(
        customer_id=customer.customer_id, book_id=first_book.book_id,
        loan_date=now - timedelta(days=3), due_date=now + timedelta(days=11),
    ))
    newer = loans.create(Loan(
        customer_id=customer.customer_id, book_id=second_book.book_id,
        loan_date=now, due_date=now + timedelta(days=14),
    ))

    assert [loan.loan_id for loan in loans.list_for_customer(customer.customer_id)] == [newer.loan_id, older.loan_id]
    assert loans.list_for_customer(customer.customer_id + 1) == []
