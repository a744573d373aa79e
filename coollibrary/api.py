import logging
import sqlite3
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Path, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from coollibrary import database
from coollibrary.auth import (
    AuthError,
    RegistrationError,
    authenticate,
    create_access_token,
    decode_access_token,
    register_user,
)
from coollibrary.config import settings
from coollibrary.loans import LoanRejected, LoanRequestService
from coollibrary.models import Customer, utc_now
from coollibrary.repositories import MAX_ID, AuthorsRepository, BooksRepository, CustomersRepository, LoansRepository
from coollibrary.schemas import (
    AuthResponse,
    AuthorResponse,
    AvailabilityResponse,
    BookResponse,
    CreateCustomerRequest,
    CustomerResponse,
    HealthResponse,
    LoanRequest,
    LoanResponse,
    LoginRequest,
    RegisterRequest,
    RegisterResponse,
    ReturnedLoanResponse,
)

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting %s %s (%s)", settings.app_name, settings.app_version, settings.environment)
    database.initialize_database()
    yield


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    debug=settings.debug,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Error handling ---
@app.exception_handler(sqlite3.Error)
async def database_error_handler(request: Request, exc: sqlite3.Error) -> JSONResponse:
    if isinstance(exc, sqlite3.OperationalError) and "locked" in str(exc).lower():
        logger.warning("Database busy on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=503, content={"detail": "Database is busy, try again"})
    logger.exception("Database error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "An error occurred while accessing the database"})


# --- Dependencies ---
def get_db() -> Iterator[sqlite3.Connection]:
    """One connection per request."""
    conn = database.get_db_connection()
    try:
        yield conn
    finally:
        conn.close()


def get_clock() -> Callable[[], datetime]:
    return utc_now


def get_loan_service(
    conn: sqlite3.Connection = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> LoanRequestService:
    return LoanRequestService(conn, clock=clock)


bearer_scheme = HTTPBearer(auto_error=False)


def get_current_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> Dict[str, Any]:
    """Claims of the bearer token; 401 when missing or invalid."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return decode_access_token(credentials.credentials)
    except AuthError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )


# --- Health ---
@app.get("/healthz", response_model=HealthResponse)
def health():
    db_ok = True
    try:
        conn = database.get_db_connection()
        try:
            conn.execute("SELECT 1")
        finally:
            conn.close()
    except sqlite3.Error:
        logger.warning("Health check could not reach the database")
        db_ok = False
    return HealthResponse(
        status="healthy" if db_ok else "degraded",
        database=db_ok,
        timestamp=utc_now().isoformat(),
    )


# --- Authentication ---
auth_router = APIRouter(prefix=f"{API_PREFIX}/auth", tags=["Authentication"])


@auth_router.post("/register", response_model=RegisterResponse)
def register(payload: RegisterRequest, conn: sqlite3.Connection = Depends(get_db)):
    if payload.password != payload.confirm_password:
        raise HTTPException(status_code=400, detail="Passwords do not match")
    try:
        user = register_user(conn, payload.email, payload.password)
    except RegistrationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return RegisterResponse(message="User registered successfully", email=user.email)


@auth_router.post("/login", response_model=AuthResponse)
def login(payload: LoginRequest, conn: sqlite3.Connection = Depends(get_db)):
    try:
        user = authenticate(conn, payload.email, payload.password)
    except AuthError as e:
        raise HTTPException(status_code=401, detail=str(e))
    token, expires_at = create_access_token(user)
    return AuthResponse(token=token, expires_at=expires_at, email=user.email, roles=user.roles)


# --- Catalog ---
books_router = APIRouter(prefix=f"{API_PREFIX}/books", tags=["Books"])


@books_router.get("", response_model=List[BookResponse])
def list_books(conn: sqlite3.Connection = Depends(get_db)):
    return [BookResponse.from_book(b) for b in BooksRepository(conn).get_all()]


authors_router = APIRouter(prefix=f"{API_PREFIX}/authors", tags=["Authors"])


@authors_router.get("/with-books", response_model=List[AuthorResponse])
def list_authors_with_books(conn: sqlite3.Connection = Depends(get_db)):
    return [AuthorResponse.from_author(a) for a in AuthorsRepository(conn).get_all()]


# --- Customers ---
customers_router = APIRouter(
    prefix=f"{API_PREFIX}/customers",
    tags=["Customers"],
    dependencies=[Depends(get_current_user)],
)


@customers_router.get("", response_model=List[CustomerResponse])
def list_customers(conn: sqlite3.Connection = Depends(get_db)):
    return [CustomerResponse.from_customer(c) for c in CustomersRepository(conn).get_all()]


@customers_router.post("", response_model=CustomerResponse, status_code=201)
def create_customer(payload: CreateCustomerRequest, conn: sqlite3.Connection = Depends(get_db)):
    customers = CustomersRepository(conn)
    if customers.email_exists(payload.email):
        raise HTTPException(status_code=400, detail=f"A customer with email '{payload.email}' already exists.")
    customer = Customer(
        first_name=payload.first_name,
        last_name=payload.last_name,
        email=payload.email,
        phone=payload.phone,
        address=payload.address,
        city=payload.city,
        postal_code=payload.postal_code,
        max_books_allowed=payload.max_books_allowed or settings.default_max_books_allowed,
    )
    try:
        created = customers.insert(customer)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return CustomerResponse.from_customer(created)


@customers_router.delete("/{customer_id}", status_code=204)
def delete_customer(customer_id: int = Path(..., le=MAX_ID), conn: sqlite3.Connection = Depends(get_db)):
    try:
        deleted = CustomersRepository(conn).delete(customer_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Customer with ID {customer_id} not found")
    logger.info("Customer with ID %s deleted", customer_id)
    return Response(status_code=204)


@customers_router.get("/{customer_id}/loans", response_model=List[ReturnedLoanResponse])
def list_customer_loans(customer_id: int = Path(..., le=MAX_ID), conn: sqlite3.Connection = Depends(get_db)):
    """Loan history of one customer, newest first."""
    if CustomersRepository(conn).get_by_id(customer_id) is None:
        raise HTTPException(status_code=404, detail=f"Customer with ID {customer_id} not found")
    return [ReturnedLoanResponse.from_loan(loan) for loan in LoansRepository(conn).list_for_customer(customer_id)]


# --- Loans ---
loans_router = APIRouter(prefix=f"{API_PREFIX}/loans", tags=["Loans"])


@loans_router.post(
    "",
    response_model=LoanResponse,
    responses={400: {"description": "Loan rejected", "content": {"text/plain": {}}}},
    dependencies=[Depends(get_current_user)],
)
def request_loan(payload: LoanRequest, service: LoanRequestService = Depends(get_loan_service)):
    result = service.request_loan(payload.customer_id, payload.book_id)
    if isinstance(result, LoanRejected):
        return PlainTextResponse(
            result.message,
            status_code=400,
            headers={"X-Rejection-Code": result.reason.name},
        )
    return LoanResponse.from_result(result)


@loans_router.get("/availability/{book_id}", response_model=AvailabilityResponse)
def get_availability(book_id: int = Path(..., le=MAX_ID), service: LoanRequestService = Depends(get_loan_service)):
    availability = service.get_availability(book_id)
    if availability is None:
        raise HTTPException(status_code=404, detail="Book not found")
    return AvailabilityResponse.from_availability(availability)


@loans_router.post(
    "/{loan_id}/return",
    response_model=ReturnedLoanResponse,
    dependencies=[Depends(get_current_user)],
)
def return_loan(loan_id: int = Path(..., le=MAX_ID), service: LoanRequestService = Depends(get_loan_service)):
    loan = service.return_loan(loan_id)
    if loan is None:
        raise HTTPException(status_code=404, detail=f"Active loan with ID {loan_id} not found")
    return ReturnedLoanResponse.from_loan(loan)


app.include_router(auth_router)
app.include_router(books_router)
app.include_router(authors_router)
app.include_router(customers_router)
app.include_router(loans_router)
