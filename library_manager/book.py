from __future__ import annotations

from library_manager.utils.validators import Numeric, Required


class Book:
    """A single title held by the library."""

    table = "books"
    columns = ("id", "title", "author", "genre", "first_published")
    integer_fields = ("id", "first_published")
    date_fields: tuple = ()
    rules = {
        "id": (Numeric("Book id must be a number"),),
        "title": (Required("Title is required"),),
        "author": (Required("Author is required"),),
        "genre": (Required("Genre is required"),),
        "first_published": (Numeric("First published must be a year"),),
    }

    def __init__(self, id: int | None, title: str, author: str, genre: str,
                 first_published: int | None = None) -> None:
        self.id = id
        self.title = title.strip()
        self.author = author.strip()
        self.genre = genre.strip()
        self.first_published = first_published

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.title} by {self.author}"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Book) and self.to_dict() == other.to_dict()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "genre": self.genre,
            "first_published": self.first_published,
        }

    @staticmethod
    def from_dict(data: dict) -> "Book":
        return Book(
            id=data.get("id"),
            title=data["title"],
            author=data["author"],
            genre=data["genre"],
            first_published=data.get("first_published"),
        )
