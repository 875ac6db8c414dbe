import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Type

import library_manager.database as database
from library_manager.book import Book
from library_manager.database import get_db_connection, initialize_database
from library_manager.loan import Loan
from library_manager.patron import Patron
from library_manager.utils.validators import (INTEGER_MAX, INTEGER_MIN, FailureKind, FieldError, ValidationFailure,
                                               validate)

logger = logging.getLogger(__name__)

Entity = Type[Any]  # Book | Patron | Loan

ALIASES: Dict[Entity, str] = {Book: "b", Patron: "p", Loan: "l"}
RELATIONS: Dict[str, Entity] = {"book": Book, "patron": Patron}
_SOURCES: Dict[Entity, str] = {
    Book: "books b",
    Patron: "patrons p",
    # Loans are always joined so criteria may reach book.* and patron.* columns.
    Loan: "loans l JOIN books b ON b.id = l.book_id JOIN patrons p ON p.id = l.patron_id",
}


class NotFoundError(LookupError):
    def __init__(self, entity: Entity, record_id: Any) -> None:
        self.entity = entity
        self.record_id = record_id
        super().__init__(f"{entity.__name__} {record_id} not found.")


class StoreError(Exception):
    """Any persistence failure other than validation or a missing record."""


# ------------------------- Criteria ------------------------- #
@dataclass(frozen=True)
class Contains:
    """Case-insensitive substring match on any of ``fields``; an empty term matches all."""

    fields: Tuple[str, ...]
    term: Optional[str]

    def to_sql(self, entity: Entity) -> Optional[Tuple[str, List[Any]]]:
        if not self.term:
            return None
        escaped = self.term.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        pattern = f"%{escaped}%"
        clauses = [f"lower({_column(entity, f)}) LIKE ? ESCAPE '\\'" for f in self.fields]
        return "(" + " OR ".join(clauses) + ")", [pattern] * len(self.fields)


@dataclass(frozen=True)
class IsNull:
    field: str

    def to_sql(self, entity: Entity) -> Optional[Tuple[str, List[Any]]]:
        return f"{_column(entity, self.field)} IS NULL", []


@dataclass(frozen=True)
class Before:
    """Strictly earlier than ``value``."""

    field: str
    value: Any

    def to_sql(self, entity: Entity) -> Optional[Tuple[str, List[Any]]]:
        value = self.value.isoformat() if isinstance(self.value, date) else self.value
        return f"{_column(entity, self.field)} < ?", [value]


@dataclass(frozen=True)
class Equals:
    field: str
    value: Any

    def to_sql(self, entity: Entity) -> Optional[Tuple[str, List[Any]]]:
        return f"{_column(entity, self.field)} = ?", [self.value]


def _column(entity: Entity, field: str) -> str:
    """Resolve a criteria field to a qualified, whitelisted column."""
    if "." in field:
        relation, column = field.split(".", 1)
        related = RELATIONS.get(relation)
        if entity is not Loan or related is None or column not in related.columns:
            raise ValueError(f"Unknown field '{field}' for {entity.__name__}")
        return f"{ALIASES[related]}.{column}"
    if field not in entity.columns:
        raise ValueError(f"Unknown field '{field}' for {entity.__name__}")
    return f"{ALIASES[entity]}.{field}"


def _where(entity: Entity, criteria: Sequence[Any]) -> Tuple[str, List[Any]]:
    clauses: List[str] = []
    params: List[Any] = []
    for criterion in criteria:
        compiled = criterion.to_sql(entity)
        if compiled is None:
            continue
        clause, clause_params = compiled
        clauses.append(clause)
        params.extend(clause_params)
    if not clauses:
        return "", []
    return " WHERE " + " AND ".join(clauses), params


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _coerce(entity: Entity, values: Mapping[str, Any]) -> Dict[str, Any]:
    """Convert validated form values into column values."""
    row: Dict[str, Any] = {}
    for key, value in values.items():
        if key in entity.integer_fields:
            row[key] = None if _is_blank(value) else int(str(value).strip())
        elif key in entity.date_fields:
            if _is_blank(value):
                row[key] = None
            else:
                row[key] = value.isoformat() if isinstance(value, date) else value
        else:
            row[key] = value
    return row


class Library:
    """Persists books, patrons and loans in SQLite and guards every write."""

    def __init__(self, db_file: Optional[str] = None) -> None:
        self.db_file = db_file or database.DATABASE_FILE
        try:
            initialize_database(self.db_file)
        except sqlite3.Error as e:
            raise StoreError(f"Could not initialize database {self.db_file}: {e}") from e

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = get_db_connection(self.db_file)
        except sqlite3.Error as e:
            raise StoreError(f"Could not open database {self.db_file}: {e}") from e
        try:
            yield conn
        except sqlite3.Error as e:
            conn.rollback()
            logger.error(f"Database operation failed: {e}")
            raise StoreError(str(e)) from e
        finally:
            conn.close()

    # ------------------------- Reads ------------------------- #
    def find_by_id(self, entity: Entity, record_id: Any) -> Optional[Any]:
        try:
            record_id = int(record_id)
        except (TypeError, ValueError):
            return None
        if not INTEGER_MIN <= record_id <= INTEGER_MAX:
            return None
        with self._connection() as conn:
            return self._fetch_one(conn, entity, record_id)

    def find_all(self, entity: Entity, criteria: Sequence[Any] = ()) -> List[Any]:
        records, _ = self.find_and_count(entity, criteria)
        return records

    def find_and_count(self, entity: Entity, criteria: Sequence[Any] = (),
                       limit: Optional[int] = None, offset: int = 0) -> Tuple[List[Any], int]:
        """Return one slice of matching records, ordered by id, plus the unsliced total."""
        alias = ALIASES[entity]
        where, params = _where(entity, criteria)
        with self._connection() as conn:
            total = conn.execute(f"SELECT COUNT(*) FROM {_SOURCES[entity]}{where}", params).fetchone()[0]
            rows = conn.execute(
                f"SELECT {alias}.* FROM {_SOURCES[entity]}{where} ORDER BY {alias}.id LIMIT ? OFFSET ?",
                params + [-1 if limit is None else limit, min(max(offset, 0), INTEGER_MAX)],
            ).fetchall()
            records = [entity.from_dict(dict(row)) for row in rows]
            if entity is Loan:
                self._attach_relations(conn, records)
            return records, total

    def count(self, entity: Entity, criteria: Sequence[Any] = ()) -> int:
        where, params = _where(entity, criteria)
        with self._connection() as conn:
            return conn.execute(f"SELECT COUNT(*) FROM {_SOURCES[entity]}{where}", params).fetchone()[0]

    def _fetch_one(self, conn: sqlite3.Connection, entity: Entity, record_id: int) -> Optional[Any]:
        row = conn.execute(f"SELECT * FROM {entity.table} WHERE id = ?", (record_id,)).fetchone()
        if row is None:
            return None
        record = entity.from_dict(dict(row))
        if entity is Loan:
            self._attach_relations(conn, [record])
        return record

    def _attach_relations(self, conn: sqlite3.Connection, loans: List[Loan]) -> None:
        if not loans:
            return
        books = self._fetch_many(conn, Book, {loan.book_id for loan in loans})
        patrons = self._fetch_many(conn, Patron, {loan.patron_id for loan in loans})
        for loan in loans:
            loan.book = books.get(loan.book_id)
            loan.patron = patrons.get(loan.patron_id)

    @staticmethod
    def _fetch_many(conn: sqlite3.Connection, entity: Entity, ids: set) -> Dict[int, Any]:
        ordered = sorted(ids)
        placeholders = ", ".join("?" for _ in ordered)
        rows = conn.execute(f"SELECT * FROM {entity.table} WHERE id IN ({placeholders})", ordered).fetchall()
        return {row["id"]: entity.from_dict(dict(row)) for row in rows}

    # ------------------------- Writes ------------------------- #
    def create(self, entity: Entity, fields: Mapping[str, Any]) -> Any:
        """Validate ``fields`` and insert a new record.

        Raises ValidationFailure with every failing field; nothing is written
        in that case. An omitted id is allocated by the database.
        """
        values = self._clean(entity, fields)
        with self._connection() as conn:
            self._check(conn, entity, values, creating=True)
            row = {k: v for k, v in _coerce(entity, values).items() if not (k == "id" and v is None)}
            columns = ", ".join(row)
            placeholders = ", ".join("?" for _ in row)
            cursor = conn.execute(
                f"INSERT INTO {entity.table} ({columns}) VALUES ({placeholders})", list(row.values())
            )
            conn.commit()
            record = self._fetch_one(conn, entity, cursor.lastrowid)
        logger.info(f"Created {entity.__name__} {record.id}")
        return record

    def update(self, record: Any, fields: Mapping[str, Any]) -> Any:
        """Merge ``fields`` over ``record``, validate the result and save it.

        The id never changes. Raises ValidationFailure without writing
        anything, or NotFoundError if the record no longer exists.
        """
        entity = type(record)
        patch = {k: v for k, v in self._clean(entity, fields).items() if k != "id"}
        values = {**record.to_dict(), **patch}
        with self._connection() as conn:
            self._check(conn, entity, values, creating=False)
            row = _coerce(entity, {k: v for k, v in values.items() if k != "id"})
            assignments = ", ".join(f"{column} = ?" for column in row)
            cursor = conn.execute(
                f"UPDATE {entity.table} SET {assignments} WHERE id = ?", list(row.values()) + [record.id]
            )
            if cursor.rowcount == 0:
                raise NotFoundError(entity, record.id)
            conn.commit()
            updated = self._fetch_one(conn, entity, record.id)
        logger.info(f"Updated {entity.__name__} {record.id}")
        return updated

    def apply_update(self, entity: Entity, record_id: Any, fields: Mapping[str, Any]) -> Any:
        """Load the record, report NotFoundError if absent, else apply the validated patch."""
        record = self.find_by_id(entity, record_id)
        if record is None:
            logger.warning(f"Update rejected: {entity.__name__} {record_id} not found")
            raise NotFoundError(entity, record_id)
        return self.update(record, fields)

    def seed(self, data: Mapping[str, Sequence[Mapping[str, Any]]]) -> Dict[str, Dict[str, int]]:
        """Create books, then patrons, then loans; invalid rows are skipped and counted."""
        summary: Dict[str, Dict[str, int]] = {}
        for section, entity in (("books", Book), ("patrons", Patron), ("loans", Loan)):
            created = skipped = 0
            for fields in data.get(section) or []:
                try:
                    self.create(entity, fields)
                    created += 1
                except ValidationFailure as e:
                    skipped += 1
                    logger.warning(f"Skipping {section} row {dict(fields)}: {e}")
            summary[section] = {"created": created, "skipped": skipped}
        return summary

    # ------------------------- Write helpers ------------------------- #
    @staticmethod
    def _clean(entity: Entity, fields: Mapping[str, Any]) -> Dict[str, Any]:
        return {
            key: value.strip() if isinstance(value, str) else value
            for key, value in fields.items()
            if key in entity.columns
        }

    def _check(self, conn: sqlite3.Connection, entity: Entity, values: Mapping[str, Any], creating: bool) -> None:
        errors = validate(values, entity.rules)
        failed = {e.field for e in errors}

        record_id = values.get("id")
        if creating and "id" not in failed and not _is_blank(record_id):
            if self._exists(conn, entity, int(str(record_id).strip())):
                errors.append(FieldError("id", FailureKind.DUPLICATE_ID,
                                         f"{entity.__name__} {record_id} already exists"))

        for field_name, target in getattr(entity, "references", {}).items():
            value = values.get(field_name)
            if field_name in failed or _is_blank(value):
                continue
            if not self._exists(conn, target, int(str(value).strip())):
                errors.append(FieldError(field_name, FailureKind.UNKNOWN_REFERENCE,
                                         f"{target.__name__} {value} does not exist"))

        if errors:
            logger.warning(f"{entity.__name__} rejected: {', '.join(e.field for e in errors)}")
            raise ValidationFailure(errors)

    @staticmethod
    def _exists(conn: sqlite3.Connection, entity: Entity, record_id: int) -> bool:
        return conn.execute(f"SELECT 1 FROM {entity.table} WHERE id = ?", (record_id,)).fetchone() is not None
