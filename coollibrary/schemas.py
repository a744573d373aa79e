"""Request and response models for the HTTP API.

Field names are snake_case in Python and camelCase on the wire; requests
accept either spelling.
"""
from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from coollibrary.loans import Availability, LoanGranted
from coollibrary.models import Author, Book, Customer, Loan
from coollibrary.repositories import MAX_ID

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Loans ---
class LoanRequest(CamelModel):
    customer_id: int = Field(..., gt=0, le=MAX_ID)
    book_id: int = Field(..., gt=0, le=MAX_ID)


class LoanResponse(CamelModel):
    loan_id: int
    customer_id: int
    book_id: int
    loan_date: datetime
    due_date: datetime
    status: str

    @classmethod
    def from_result(cls, result: LoanGranted) -> "LoanResponse":
        return cls.from_loan(result.loan)

    @classmethod
    def from_loan(cls, loan: Loan) -> "LoanResponse":
        return cls(
            loan_id=loan.loan_id,
            customer_id=loan.customer_id,
            book_id=loan.book_id,
            loan_date=loan.loan_date,
            due_date=loan.due_date,
            status=loan.status.label,
        )


class ReturnedLoanResponse(LoanResponse):
    return_date: Optional[datetime] = None

    @classmethod
    def from_loan(cls, loan: Loan) -> "ReturnedLoanResponse":
        base = LoanResponse.from_loan(loan)
        return cls(**base.model_dump(), return_date=loan.return_date)


class AvailabilityResponse(CamelModel):
    book_id: int
    available_copies: int
    is_available: bool

    @classmethod
    def from_availability(cls, availability: Availability) -> "AvailabilityResponse":
        return cls(
            book_id=availability.book_id,
            available_copies=availability.available_copies,
            is_available=availability.is_available,
        )


# --- Catalog ---
class BookResponse(CamelModel):
    book_id: int
    title: str
    isbn: str
    publisher: Optional[str] = None
    publication_date: Optional[date] = None
    is_available: bool

    @classmethod
    def from_book(cls, book: Book) -> "BookResponse":
        return cls(
            book_id=book.book_id,
            title=book.title,
            isbn=book.isbn,
            publisher=book.publisher,
            publication_date=book.publication_date,
            is_available=book.is_available,
        )


class AuthorBookResponse(CamelModel):
    book_id: int
    title: str
    isbn: str


class AuthorResponse(CamelModel):
    author_id: int
    full_name: str
    biography: Optional[str] = None
    nationality: Optional[str] = None
    books: List[AuthorBookResponse] = Field(default_factory=list)

    @classmethod
    def from_author(cls, author: Author) -> "AuthorResponse":
        return cls(
            author_id=author.author_id,
            full_name=author.full_name,
            biography=author.biography,
            nationality=author.nationality,
            books=[AuthorBookResponse(book_id=b.book_id, title=b.title, isbn=b.isbn) for b in author.books],
        )


# --- Customers ---
class CustomerResponse(CamelModel):
    customer_id: int
    full_name: str
    email: str
    membership_status: str
    membership_date: datetime

    @classmethod
    def from_customer(cls, customer: Customer) -> "CustomerResponse":
        return cls(
            customer_id=customer.customer_id,
            full_name=customer.full_name,
            email=customer.email,
            membership_status=customer.membership_status.label,
            membership_date=customer.membership_date,
        )


class CreateCustomerRequest(CamelModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., max_length=200, pattern=EMAIL_PATTERN)
    phone: Optional[str] = Field(None, max_length=20)
    address: Optional[str] = Field(None, max_length=300)
    city: Optional[str] = Field(None, max_length=100)
    postal_code: Optional[str] = Field(None, max_length=20)
    max_books_allowed: Optional[int] = Field(None, ge=1, le=100)


# --- Auth ---
class RegisterRequest(CamelModel):
    email: str = Field(..., pattern=EMAIL_PATTERN)
    password: str = Field(..., min_length=6)
    confirm_password: str


class RegisterResponse(CamelModel):
    message: str
    email: str


class LoginRequest(CamelModel):
    email: str = Field(..., pattern=EMAIL_PATTERN)
    password: str = Field(..., min_length=1)


class AuthResponse(CamelModel):
    token: str
    expires_at: datetime
    email: str
    roles: List[str] = Field(default_factory=list)


class HealthResponse(CamelModel):
    status: str
    database: bool
    timestamp: str
