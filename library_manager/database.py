import json
import logging
import os
import sqlite3
from typing import Any, Dict, List, Optional

from library_manager.config import settings

logger = logging.getLogger(__name__)

# Default database file; LIBRARY_DB_FILE (via settings) overrides it.
DATABASE_FILE = settings.database_file

SEED_SECTIONS = ("books", "patrons", "loans")


def get_db_connection(db_file: Optional[str] = None) -> sqlite3.Connection:
    """Open a connection to the SQLite database with foreign keys enforced."""
    conn = sqlite3.connect(db_file or DATABASE_FILE)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys=ON;")
    return conn


def create_tables(db_file: Optional[str] = None) -> None:
    """Create the tables if they do not exist yet."""
    conn = get_db_connection(db_file)
    try:
        cursor = conn.cursor()
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS books (
                id INTEGER PRIMARY KEY,
                title TEXT NOT NULL,
                author TEXT NOT NULL,
                genre TEXT NOT NULL,
                first_published INTEGER
            )
        """)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS patrons (
                id INTEGER PRIMARY KEY,
                first_name TEXT NOT NULL,
                last_name TEXT NOT NULL,
                address TEXT NOT NULL,
                email TEXT NOT NULL,
                library_id TEXT NOT NULL,
                zip_code INTEGER NOT NULL
            )
        """)
        # Dates are stored as YYYY-MM-DD text so they compare chronologically.
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS loans (
                id INTEGER PRIMARY KEY,
                book_id INTEGER NOT NULL,
                patron_id INTEGER NOT NULL,
                loaned_on TEXT NOT NULL,
                return_by TEXT NOT NULL,
                returned_on TEXT,
                FOREIGN KEY (book_id) REFERENCES books(id),
                FOREIGN KEY (patron_id) REFERENCES patrons(id)
            )
        """)

        cursor.execute("CREATE INDEX IF NOT EXISTS idx_books_title ON books(title)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_books_author ON books(author)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_patrons_last_name ON patrons(last_name)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_loans_book_id ON loans(book_id)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_loans_patron_id ON loans(patron_id)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_loans_open ON loans(returned_on, return_by)")

        conn.commit()
    finally:
        conn.close()


def load_seed_file(path: str) -> Dict[str, List[Dict[str, Any]]]:
    """Read a JSON seed document of the form {"books": [...], "patrons": [...], "loans": [...]}.

    Missing sections are returned as empty lists.
    """
    if not os.path.exists(path):
        raise ValueError(f"Seed file {path} does not exist.")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (json.JSONDecodeError, IOError) as e:
        raise ValueError(f"Could not read seed file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ValueError(f"Seed file {path} must contain a JSON object.")

    seed: Dict[str, List[Dict[str, Any]]] = {}
    for section in SEED_SECTIONS:
        rows = data.get(section) or []
        if not isinstance(rows, list) or not all(isinstance(r, dict) for r in rows):
            raise ValueError(f"Section '{section}' in {path} must be a list of objects.")
        seed[section] = rows
    return seed


def initialize_database(db_file: Optional[str] = None) -> None:
    """Initialize the database, creating the tables when needed."""
    create_tables(db_file)
    logger.info(f"Database ready at {db_file or DATABASE_FILE}")
