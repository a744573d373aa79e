import logging
import subprocess
import sys
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from coollibrary import database
from coollibrary.config import settings
from coollibrary.loans import LoanRequestService
from coollibrary.repositories import BooksRepository
from coollibrary.seed import seed_demo_data

app = typer.Typer(help="CoolLibrary management CLI")
console = Console()


@app.callback()
def _global_options(
    db_file: Optional[str] = typer.Option(None, "--db", help="SQLite database file (default: LIBRARY_DB_FILE)"),
):
    """Options shared by every command."""
    logging.basicConfig(level=settings.log_level)
    if db_file:
        database.DATABASE_FILE = db_file


@app.command("init-db")
def init_db():
    """Create the database schema."""
    database.initialize_database()
    print(f"Database initialized at {database.DATABASE_FILE}")


@app.command("seed")
def seed():
    """Load demo authors, books and customers."""
    database.initialize_database()
    conn = database.get_db_connection()
    try:
        added = seed_demo_data(conn)
    finally:
        conn.close()
    print(f"Added {added['authors']} authors, {added['books']} books, {added['customers']} customers")


@app.command("books")
def list_books():
    """Show the catalog with copy counts."""
    conn = database.get_db_connection()
    try:
        books = BooksRepository(conn).get_all()
    finally:
        conn.close()
    if not books:
        print("No books in library.")
        return

    table = Table(title="Catalog", show_lines=True, header_style="bold cyan")
    table.add_column("ID", justify="right")
    table.add_column("ISBN", style="magenta", no_wrap=True)
    table.add_column("Title")
    table.add_column("Available", justify="right")
    table.add_column("Total", justify="right")
    for b in books:
        style = "green" if b.is_available else "red"
        table.add_row(str(b.book_id), b.isbn, b.title, f"[{style}]{b.available_copies}[/]", str(b.total_copies))
    console.print(table)


@app.command("availability")
def availability(book_id: int):
    """Show how many copies of a book can be lent right now."""
    conn = database.get_db_connection()
    try:
        result = LoanRequestService(conn).get_availability(book_id)
    finally:
        conn.close()
    if result is None:
        print(f"Book with ID {book_id} not found.")
        raise typer.Exit(code=1)
    state = "available" if result.is_available else "not available"
    print(f"Book {book_id}: {result.available_copies} copies, {state}")


@app.command("serve")
def serve(
    host: Optional[str] = typer.Option(None, help="Bind address (default: API_HOST)"),
    port: Optional[int] = typer.Option(None, help="Port (default: API_PORT)"),
    reload: bool = typer.Option(False, "--reload", help="Restart on code changes"),
):
    """Run the HTTP API with uvicorn."""
    host = host or settings.api_host
    port = port or settings.api_port
    print(f"Starting CoolLibrary API on http://{host}:{port}/")
    args = [
        sys.executable,
        "-m", "uvicorn",
        "coollibrary.api:app",
        "--host", host,
        "--port", str(port),
    ]
    if reload:
        args.append("--reload")
    try:
        subprocess.run(args, check=True)
    except FileNotFoundError:
        console.print("[bold red]Error:[/] could not launch uvicorn. Make sure it is installed.")
        raise typer.Exit(code=1)
    except subprocess.CalledProcessError as e:
        raise typer.Exit(code=e.returncode)


if __name__ == "__main__":
    app()
