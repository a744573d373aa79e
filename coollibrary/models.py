from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import IntEnum
from typing import Any, List, Optional


class MembershipStatus(IntEnum):
    """Customer membership states; only Active customers may borrow."""
    ACTIVE = 1
    SUSPENDED = 2
    EXPIRED = 3

    @property
    def label(self) -> str:
        return self.name.capitalize()


class LoanStatus(IntEnum):
    ACTIVE = 1
    RETURNED = 2
    OVERDUE = 3
    LOST = 4

    @property
    def label(self) -> str:
        return self.name.capitalize()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: Optional[datetime | date]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored ISO timestamp; naive values are taken as UTC."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    return date.fromisoformat(value[:10])


@dataclass
class Book:
    """A catalog title and its copy accounting."""
    isbn: str
    title: str
    total_copies: int = 0
    available_copies: int = 0
    book_id: Optional[int] = None
    description: Optional[str] = None
    publication_date: Optional[date] = None
    publisher: Optional[str] = None
    page_count: Optional[int] = None
    language: str = "English"
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_available(self) -> bool:
        return self.available_copies > 0

    @staticmethod
    def from_row(row: Any) -> "Book":
        data = dict(row)
        return Book(
            book_id=data["book_id"],
            isbn=data["isbn"],
            title=data["title"],
            description=data.get("description"),
            publication_date=parse_date(data.get("publication_date")),
            publisher=data.get("publisher"),
            page_count=data.get("page_count"),
            language=data.get("language") or "English",
            total_copies=data["total_copies"],
            available_copies=data["available_copies"],
            created_at=parse_datetime(data.get("created_at")),
            updated_at=parse_datetime(data.get("updated_at")),
        )


@dataclass
class Author:
    first_name: str
    last_name: str
    author_id: Optional[int] = None
    biography: Optional[str] = None
    birth_date: Optional[date] = None
    nationality: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    books: List[Book] = field(default_factory=list)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @staticmethod
    def from_row(row: Any) -> "Author":
        data = dict(row)
        return Author(
            author_id=data["author_id"],
            first_name=data["first_name"],
            last_name=data["last_name"],
            biography=data.get("biography"),
            birth_date=parse_date(data.get("birth_date")),
            nationality=data.get("nationality"),
            created_at=parse_datetime(data.get("created_at")),
            updated_at=parse_datetime(data.get("updated_at")),
        )


@dataclass
class Customer:
    first_name: str
    last_name: str
    email: str
    customer_id: Optional[int] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    membership_date: Optional[datetime] = None
    membership_status: MembershipStatus = MembershipStatus.ACTIVE
    max_books_allowed: int = 5
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_active(self) -> bool:
        return self.membership_status == MembershipStatus.ACTIVE

    @staticmethod
    def from_row(row: Any) -> "Customer":
        data = dict(row)
        return Customer(
            customer_id=data["customer_id"],
            first_name=data["first_name"],
            last_name=data["last_name"],
            email=data["email"],
            phone=data.get("phone"),
            address=data.get("address"),
            city=data.get("city"),
            postal_code=data.get("postal_code"),
            membership_date=parse_datetime(data.get("membership_date")),
            membership_status=MembershipStatus(data["membership_status"]),
            max_books_allowed=data["max_books_allowed"],
            created_at=parse_datetime(data.get("created_at")),
            updated_at=parse_datetime(data.get("updated_at")),
        )


@dataclass
class Loan:
    customer_id: int
    book_id: int
    loan_date: datetime
    due_date: datetime
    loan_id: Optional[int] = None
    return_date: Optional[datetime] = None
    status: LoanStatus = LoanStatus.ACTIVE
    renewal_count: int = 0
    late_fee: float = 0.0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @staticmethod
    def from_row(row: Any) -> "Loan":
        data = dict(row)
        return Loan(
            loan_id=data["loan_id"],
            customer_id=data["customer_id"],
            book_id=data["book_id"],
            loan_date=parse_datetime(data["loan_date"]),
            due_date=parse_datetime(data["due_date"]),
            return_date=parse_datetime(data.get("return_date")),
            status=LoanStatus(data["status"]),
            renewal_count=data["renewal_count"],
            late_fee=data["late_fee"],
            created_at=parse_datetime(data.get("created_at")),
            updated_at=parse_datetime(data.get("updated_at")),
        )


@dataclass
class User:
    """API account used for authentication; not a library customer."""
    email: str
    password_hash: str
    user_id: Optional[int] = None
    roles: List[str] = field(default_factory=list)
    created_at: Optional[datetime] = None

    @staticmethod
    def from_row(row: Any) -> "User":
        data = dict(row)
        roles = [r for r in (data.get("roles") or "").split(",") if r]
        return User(
            user_id=data["user_id"],
            email=data["email"],
            password_hash=data["password_hash"],
            roles=roles,
            created_at=parse_datetime(data.get("created_at")),
        )
