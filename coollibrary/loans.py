"""Loan request workflow.

A request runs an ordered list of rules against the book and customer; the
first rule that fails decides the rejection. When every rule passes, the
loan is inserted and the book's available copies decremented inside the
same ``BEGIN IMMEDIATE`` transaction that performed the checks.
"""
from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, List, Optional, Union

from coollibrary.config import settings
from coollibrary.database import transaction
from coollibrary.models import Book, Customer, Loan, LoanStatus, to_iso, utc_now
from coollibrary.repositories import BooksRepository, CustomersRepository, LoansRepository

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class LoanRejection(Enum):
    """Reasons a loan request is refused; the value is the client-facing text."""
    BOOK_NOT_FOUND = "Book not found"
    CUSTOMER_NOT_FOUND = "Customer not found"
    BOOK_NOT_AVAILABLE = "Book is not available"
    CUSTOMER_NOT_ACTIVE = "Customer is not active"
    LOAN_LIMIT_REACHED = "Customer reached the maximum number of active loans"
    DUPLICATE_ACTIVE_LOAN = "Customer already has an active loan for this book"

    @property
    def message(self) -> str:
        return self.value


@dataclass
class LoanGranted:
    loan: Loan


@dataclass
class LoanRejected:
    reason: LoanRejection

    @property
    def message(self) -> str:
        return self.reason.message


LoanResult = Union[LoanGranted, LoanRejected]


@dataclass
class Availability:
    book_id: int
    available_copies: int

    @property
    def is_available(self) -> bool:
        return self.available_copies > 0


@dataclass
class _LoanContext:
    book: Book
    customer: Customer
    loans: LoansRepository


class _NoCopyLeft(Exception):
    """The guarded decrement found no copy left to lend."""


LoanRule = Callable[[_LoanContext], Optional[LoanRejection]]


def book_has_copies(ctx: _LoanContext) -> Optional[LoanRejection]:
    if ctx.book.available_copies <= 0:
        return LoanRejection.BOOK_NOT_AVAILABLE
    return None


def customer_is_active(ctx: _LoanContext) -> Optional[LoanRejection]:
    if not ctx.customer.is_active:
        return LoanRejection.CUSTOMER_NOT_ACTIVE
    return None


def customer_under_loan_limit(ctx: _LoanContext) -> Optional[LoanRejection]:
    active = ctx.loans.count_active_for_customer(ctx.customer.customer_id)
    if active >= ctx.customer.max_books_allowed:
        return LoanRejection.LOAN_LIMIT_REACHED
    return None


def no_active_loan_for_book(ctx: _LoanContext) -> Optional[LoanRejection]:
    if ctx.loans.has_active_loan_for_book(ctx.customer.customer_id, ctx.book.book_id):
        return LoanRejection.DUPLICATE_ACTIVE_LOAN
    return None


# Evaluated in order after both records are found; the first failure wins.
LOAN_RULES: List[LoanRule] = [
    book_has_copies,
    customer_is_active,
    customer_under_loan_limit,
    no_active_loan_for_book,
]


class LoanRequestService:
    """Validates loan requests and records granted loans.

    Holds no state between calls besides the connection it was built with,
    so one instance per request is the expected lifetime.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        clock: Clock = utc_now,
        loan_period_days: Optional[int] = None,
    ) -> None:
        self.conn = conn
        self.clock = clock
        if loan_period_days is None:
            loan_period_days = settings.loan_period_days
        self.loan_period = timedelta(days=loan_period_days)
        self.books = BooksRepository(conn, clock)
        self.customers = CustomersRepository(conn, clock)
        self.loans = LoansRepository(conn, clock)

    def get_availability(self, book_id: int) -> Optional[Availability]:
        book = self.books.get_by_id(book_id)
        if book is None:
            return None
        return Availability(book_id=book.book_id, available_copies=book.available_copies)

    def request_loan(self, customer_id: int, book_id: int) -> LoanResult:
        """Check every loan rule and, if all pass, create the loan.

        Returns :class:`LoanGranted` carrying the stored loan or
        :class:`LoanRejected` carrying the first failing rule's reason.
        Database errors propagate to the caller.
        """
        try:
            with transaction(self.conn):
                result = self._request_loan(customer_id, book_id)
        except _NoCopyLeft:
            result = LoanRejected(LoanRejection.BOOK_NOT_AVAILABLE)

        if isinstance(result, LoanGranted):
            logger.info(
                "Loan %s granted: customer=%s book=%s due=%s",
                result.loan.loan_id, customer_id, book_id, to_iso(result.loan.due_date),
            )
        else:
            logger.info(
                "Loan rejected: customer=%s book=%s reason=%s",
                customer_id, book_id, result.reason.name,
            )
        return result

    def _request_loan(self, customer_id: int, book_id: int) -> LoanResult:
        book = self.books.get_by_id(book_id)
        if book is None:
            return LoanRejected(LoanRejection.BOOK_NOT_FOUND)

        customer = self.customers.get_by_id(customer_id)
        if customer is None:
            return LoanRejected(LoanRejection.CUSTOMER_NOT_FOUND)

        ctx = _LoanContext(book=book, customer=customer, loans=self.loans)
        for rule in LOAN_RULES:
            reason = rule(ctx)
            if reason is not None:
                return LoanRejected(reason)

        now = self.clock()
        loan = self.loans.create(Loan(
            customer_id=customer.customer_id,
            book_id=book.book_id,
            loan_date=now,
            due_date=now + self.loan_period,
            status=LoanStatus.ACTIVE,
            renewal_count=0,
            late_fee=0.0,
        ))

        if not self.books.decrement_available_copies(book.book_id):
            # raising rolls the loan insert back with the transaction
            raise _NoCopyLeft(book.book_id)
        return LoanGranted(loan)

    def return_loan(self, loan_id: int) -> Optional[Loan]:
        """Close an Active loan and put its copy back on the shelf.

        Returns the updated loan, or None if the loan does not exist or is
        no longer Active.
        """
        now = self.clock()
        with transaction(self.conn):
            loan = self.loans.get_active_by_id(loan_id)
            if loan is None:
                returned = None
            else:
                self.loans.return_loan(loan_id, now)
                if not self.books.increment_available_copies(loan.book_id):
                    logger.warning("Book %s already had all copies on the shelf", loan.book_id)
                returned = self.loans.get_by_id(loan_id)

        if returned is not None:
            logger.info("Loan %s returned: book=%s", loan_id, returned.book_id)
        return returned
