from __future__ import annotations

from library_manager.utils.validators import Numeric, Required


class Patron:
    """A library member who can borrow books."""

    table = "patrons"
    columns = ("id", "first_name", "last_name", "address", "email", "library_id", "zip_code")
    integer_fields = ("id", "zip_code")
    date_fields: tuple = ()
    rules = {
        "id": (Numeric("Patron id must be a number"),),
        "first_name": (Required("First name is required"),),
        "last_name": (Required("Last name is required"),),
        "address": (Required("Address is required"),),
        "email": (Required("Email is required"),),
        "library_id": (Required("Library ID is required"),),
        "zip_code": (Required("Zip code is required"), Numeric("Zip code must be numeric")),
    }

    def __init__(self, id: int | None, first_name: str, last_name: str, address: str,
                 email: str, library_id: str, zip_code: int) -> None:
        self.id = id
        self.first_name = first_name.strip()
        self.last_name = last_name.strip()
        self.address = address.strip()
        self.email = email.strip()
        self.library_id = library_id.strip()
        self.zip_code = zip_code

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.full_name} ({self.library_id})"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Patron) and self.to_dict() == other.to_dict()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "address": self.address,
            "email": self.email,
            "library_id": self.library_id,
            "zip_code": self.zip_code,
        }

    @staticmethod
    def from_dict(data: dict) -> "Patron":
        return Patron(
            id=data.get("id"),
            first_name=data["first_name"],
            last_name=data["last_name"],
            address=data["address"],
            email=data["email"],
            library_id=data["library_id"],
            zip_code=data["zip_code"],
        )
