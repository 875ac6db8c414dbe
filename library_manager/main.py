import logging
import os
import subprocess
import sys
import webbrowser
from datetime import date
from typing import Optional

import typer
from rich.console import Console

from library_manager.config import settings
from library_manager.database import load_seed_file
from library_manager.library import Library, StoreError
from library_manager.queries import LibraryQueries
from library_manager.utils.ui_helpers import print_loans_result, print_seed_result, set_output_mode
from library_manager.utils.validators import strict_date

logging.basicConfig(level=settings.log_level)

APP_NAME = "Library Manager CLI"

console = Console()

app = typer.Typer(help=APP_NAME)


def _open_library(ctx: typer.Context) -> Library:
    db_file = (ctx.obj or {}).get("db_file") or settings.database_file
    try:
        return Library(db_file)
    except StoreError as e:
        print(f"Error: {e}")
        raise typer.Exit(code=1)


@app.callback()
def _global_options(
    ctx: typer.Context,
    db: Optional[str] = typer.Option(None, "--db", help="SQLite database file (default: LIBRARY_DB_FILE)"),
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    ),
):
    """Global CLI options (database file, output mode)."""
    ctx.obj = {"db_file": db}
    if output:
        set_output_mode(output)


@app.command("init-db")
def cli_init_db(ctx: typer.Context):
    """Create the database tables."""
    library = _open_library(ctx)
    print(f"Database initialized at {library.db_file}")


@app.command("seed")
def cli_seed(ctx: typer.Context, file_path: str = typer.Argument(..., help="JSON file with books, patrons and loans")):
    """Load books, patrons and loans from a JSON file; invalid rows are skipped."""
    try:
        data = load_seed_file(file_path)
    except ValueError as e:
        print(f"Error: {e}")
        raise typer.Exit(code=1)
    library = _open_library(ctx)
    try:
        summary = library.seed(data)
    except StoreError as e:
        print(f"Error: {e}")
        raise typer.Exit(code=1)
    print_seed_result(summary)


@app.command("overdue")
def cli_overdue(
    ctx: typer.Context,
    as_of: Optional[str] = typer.Option(None, "--as-of", help="Report date in YYYY-MM-DD (default: today)"),
):
    """List loans that are not returned and past their return-by date."""
    if as_of is not None and strict_date(as_of) is not None:
        print(f"Error: invalid date '{as_of}'. Accepted format: YYYY-MM-DD (e.g., 2016-03-15)")
        raise typer.Exit(code=1)
    report_date = date.fromisoformat(as_of) if as_of else date.today()
    queries = LibraryQueries(_open_library(ctx), settings.listing_options(), today=lambda: report_date)
    try:
        loans = queries.overdue_loans()
    except StoreError as e:
        print(f"Error: {e}")
        raise typer.Exit(code=1)
    print_loans_result(loans, report_date)


@app.command("serve")
def cli_serve(ctx: typer.Context, open_browser: bool = typer.Option(True, "--browser/--no-browser",
                                                                    help="Open the web UI in a browser")):
    """Start the web UI with uvicorn."""
    host = settings.api_host
    port = int(settings.api_port)
    url = f"http://{host}:{port}/"
    print(f"Starting web UI on {url}")
    env = dict(os.environ)
    db_file = (ctx.obj or {}).get("db_file")
    if db_file:
        env["LIBRARY_DB_FILE"] = db_file
    if open_browser:
        try:
            webbrowser.open(url)
        except webbrowser.Error as e:
            console.print(f"[yellow]Could not open a browser: {e}[/]")
    args = [
        sys.executable,
        "-m", "uvicorn",
        "library_manager.api:app",
        "--host", host,
        "--port", str(port),
    ]
    subprocess.run(args, env=env)


if __name__ == "__main__":
    app()
