"""Filtered, searchable and paginated listings over the library store.

Filters follow circulation state: a loan with no ``returned_on`` is checked
out, and a checked-out loan whose ``return_by`` is strictly before today is
overdue. A loan due today is not overdue yet.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Callable, List, Optional, Sequence

from library_manager.book import Book
from library_manager.config import ListingOptions
from library_manager.library import Before, Contains, Equals, IsNull, Library
from library_manager.loan import Loan
from library_manager.patron import Patron
from library_manager.utils.pagination import PaginationLink, compute_links, normalize_page, offset_for, total_pages

BOOK_SEARCH_FIELDS = ("title", "author")
LOAN_BOOK_SEARCH_FIELDS = ("book.title", "book.author")
LOAN_SEARCH_FIELDS = ("book.title", "patron.first_name", "patron.last_name")
PATRON_SEARCH_FIELDS = ("first_name", "last_name", "library_id", "email")


class FilterMode(str, Enum):
    NONE = ""
    OVERDUE = "overdue"
    CHECKED = "checked"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "FilterMode":
        """Unknown or missing filters list everything."""
        try:
            return cls((raw or "").strip().lower())
        except ValueError:
            return cls.NONE


@dataclass
class ListingPage:
    items: List[Any]
    total_count: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        return total_pages(self.total_count, self.page_size)

    def links(self, filter: Optional[str] = None, search: Optional[str] = None) -> List[PaginationLink]:
        return compute_links(self.total_count, self.page_size, filter, search)


class LibraryQueries:
    def __init__(self, library: Library, options: Optional[ListingOptions] = None,
                 today: Callable[[], date] = date.today) -> None:
        self.library = library
        self.options = options or ListingOptions()
        self.today = today

    # ------------------------- Criteria ------------------------- #
    def loan_criteria(self, mode: FilterMode) -> List[Any]:
        if mode is FilterMode.OVERDUE:
            return [IsNull("returned_on"), Before("return_by", self.today())]
        if mode is FilterMode.CHECKED:
            return [IsNull("returned_on")]
        return []

    def _page(self, entity: type, criteria: Sequence[Any], page: Any) -> ListingPage:
        page = normalize_page(page)
        size = self.options.page_size
        items, total = self.library.find_and_count(entity, criteria, limit=size, offset=offset_for(page, size))
        return ListingPage(items=items, total_count=total, page=page, page_size=size)

    # ------------------------- Listings ------------------------- #
    def list_books(self, filter: FilterMode = FilterMode.NONE, search: Optional[str] = None,
                   page: Any = 1) -> ListingPage:
        """Books matching ``search``; with a filter, the books of the matching loans.

        Filtered listings count loans, so a book lent twice appears twice.
        """
        if filter is FilterMode.NONE:
            return self._page(Book, [Contains(BOOK_SEARCH_FIELDS, search)], page)
        criteria = self.loan_criteria(filter) + [Contains(LOAN_BOOK_SEARCH_FIELDS, search)]
        listing = self._page(Loan, criteria, page)
        listing.items = [loan.book for loan in listing.items]
        return listing

    def list_loans(self, filter: FilterMode = FilterMode.NONE, search: Optional[str] = None,
                   page: Any = 1) -> ListingPage:
        criteria = self.loan_criteria(filter) + [Contains(LOAN_SEARCH_FIELDS, search)]
        return self._page(Loan, criteria, page)

    def list_patrons(self, search: Optional[str] = None, page: Any = 1) -> ListingPage:
        return self._page(Patron, [Contains(PATRON_SEARCH_FIELDS, search)], page)

    def loans_for_book(self, book_id: int) -> List[Loan]:
        return self.library.find_all(Loan, [Equals("book_id", book_id)])

    def loans_for_patron(self, patron_id: int) -> List[Loan]:
        return self.library.find_all(Loan, [Equals("patron_id", patron_id)])

    def overdue_loans(self) -> List[Loan]:
        return self.library.find_all(Loan, self.loan_criteria(FilterMode.OVERDUE))
