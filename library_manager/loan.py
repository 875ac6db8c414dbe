from __future__ import annotations

from datetime import date

from library_manager.book import Book
from library_manager.patron import Patron
from library_manager.utils.validators import Numeric, Required, StrictDate

_DATE_HINT = "Accepted format: YYYY-MM-DD (e.g., 2016-03-15)"


def _as_date(value: date | str | None) -> date | None:
    if value is None or isinstance(value, date):
        return value
    return date.fromisoformat(value)


class Loan:
    """A checkout of one book by one patron.

    ``returned_on`` stays ``None`` until the book comes back; such a loan is
    checked out, and overdue once ``return_by`` is strictly in the past.
    """

    table = "loans"
    columns = ("id", "book_id", "patron_id", "loaned_on", "return_by", "returned_on")
    integer_fields = ("id", "book_id", "patron_id")
    date_fields = ("loaned_on", "return_by", "returned_on")
    references = {"book_id": Book, "patron_id": Patron}
    rules = {
        "id": (Numeric("Loan id must be a number"),),
        "book_id": (Required("A book is required"), Numeric("A book is required")),
        "patron_id": (Required("A patron is required"), Numeric("A patron is required")),
        "loaned_on": (
            Required("Loaned On date is required"),
            StrictDate(f"Loaned On date invalid format. {_DATE_HINT}"),
        ),
        "return_by": (
            Required("Return by date is required"),
            StrictDate(f"Return by date invalid format. {_DATE_HINT}"),
        ),
        "returned_on": (
            Required("Returned on date is required", allow_null=True),
            StrictDate(f"Returned On date invalid format. {_DATE_HINT}"),
        ),
    }

    def __init__(self, id: int | None, book_id: int, patron_id: int, loaned_on: date | str,
                 return_by: date | str, returned_on: date | str | None = None,
                 book: Book | None = None, patron: Patron | None = None) -> None:
        self.id = id
        self.book_id = book_id
        self.patron_id = patron_id
        self.loaned_on = _as_date(loaned_on)
        self.return_by = _as_date(return_by)
        self.returned_on = _as_date(returned_on)
        self.book = book
        self.patron = patron

    def is_checked_out(self) -> bool:
        return self.returned_on is None

    def is_overdue(self, today: date) -> bool:
        return self.returned_on is None and self.return_by < today

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"Loan {self.id}: book {self.book_id} to patron {self.patron_id}, due {self.return_by}"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Loan) and self.to_dict() == other.to_dict()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "book_id": self.book_id,
            "patron_id": self.patron_id,
            "loaned_on": self.loaned_on.isoformat() if self.loaned_on else None,
            "return_by": self.return_by.isoformat() if self.return_by else None,
            "returned_on": self.returned_on.isoformat() if self.returned_on else None,
        }

    @staticmethod
    def from_dict(data: dict) -> "Loan":
        return Loan(
            id=data.get("id"),
            book_id=data["book_id"],
            patron_id=data["patron_id"],
            loaned_on=data["loaned_on"],
            return_by=data["return_by"],
            returned_on=data.get("returned_on"),
        )
