"""Pagination links for the listing pages.

Links keep a fixed query order: ``filter``, then ``search``, then ``page``.
Values are percent-encoded, so plain words stay readable while spaces and
``&`` cannot break the query string.
"""
import math
from dataclasses import dataclass
from typing import Any, List, Optional
from urllib.parse import quote

from library_manager.utils.validators import INTEGER_MAX


@dataclass(frozen=True)
class PaginationLink:
    page_number: int
    href: str


def total_pages(result_count: int, page_size: int) -> int:
    if result_count < 0:
        raise ValueError("result_count cannot be negative")
    if page_size < 1:
        raise ValueError("page_size must be at least 1")
    return math.ceil(result_count / page_size)


def build_link(filter: Optional[str], search: Optional[str], page: Optional[int]) -> str:
    link = "?"
    if filter:
        link += "filter=" + quote(str(filter), safe="")
    if search:
        link += "&search=" + quote(str(search), safe="")
    if page:
        link += "&page=" + str(page)
    return link


def compute_links(
    result_count: int,
    page_size: int,
    filter: Optional[str] = None,
    search: Optional[str] = None,
) -> List[PaginationLink]:
    """One link per page; an empty result gets no links at all."""
    pages = total_pages(result_count, page_size)
    return [PaginationLink(page_number=n, href=build_link(filter, search, n)) for n in range(1, pages + 1)]


def normalize_page(raw: Any) -> int:
    """Missing, non-numeric and non-positive pages all mean page 1."""
    if raw is None:
        return 1
    try:
        page = int(str(raw).strip())
    except ValueError:
        return 1
    return page if page >= 1 else 1


def offset_for(page: int, page_size: int) -> int:
    """Row offset of ``page``, capped at the largest value SQLite accepts."""
    return min((normalize_page(page) - 1) * page_size, INTEGER_MAX)
