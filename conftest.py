import re

import pytest

from library_manager.library import Library


@pytest.fixture
def db_file(tmp_path, request):
    # Unique database file per test
    name = re.sub(r"[^\w.-]", "_", request.node.name)
    return str(tmp_path / f"test_{name}.db")


@pytest.fixture
def lib(db_file):
    return Library(db_file=db_file)


@pytest.fixture
def book_fields():
    return {"title": "The Hobbit", "author": "J.R.R. Tolkien", "genre": "Fantasy", "first_published": "1937"}


@pytest.fixture
def patron_fields():
    return {
        "first_name": "Andrew",
        "last_name": "Chalkley",
        "address": "1234 Avenue Street",
        "email": "andrew@chalkley.org",
        "library_id": "MCL1001",
        "zip_code": "90210",
    }
