from datetime import date

import pytest
from fastapi.testclient import TestClient

from library_manager.api import create_app
from library_manager.book import Book
from library_manager.config import Settings
from library_manager.library import StoreError
from library_manager.loan import Loan
from library_manager.patron import Patron

TODAY = date(2020, 1, 2)


@pytest.fixture
def client(lib):
    app = create_app(config=Settings(), library=lib, today=lambda: TODAY)
    return TestClient(app)


@pytest.fixture
def loan(lib, book_fields, patron_fields):
    book = lib.create(Book, book_fields)
    patron = lib.create(Patron, patron_fields)
    return lib.create(Loan, {"book_id": book.id, "patron_id": patron.id,
                             "loaned_on": "2019-12-20", "return_by": "2020-01-01"})


def test_home_page(client):
    response = client.get("/")
    assert response.status_code == 200
    assert "/books?filter=overdue" in response.text


def test_health(client, loan):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["db"] is True
    assert (body["books"], body["patrons"], body["loans"], body["checked_out"]) == (1, 1, 1, 1)


def test_list_books_empty(client):
    response = client.get("/books")
    assert response.status_code == 200
    assert "No books found." in response.text
    assert 'class="pagination"' not in response.text


def test_create_book_redirects_to_list(client, lib, book_fields):
    response = client.post("/books/add", data=book_fields, follow_redirects=False)

    assert response.status_code == 303
    assert response.headers["location"] == "/books"
    assert [b.title for b in lib.find_all(Book)] == ["The Hobbit"]


def test_create_book_with_errors_rerenders_form(client, lib, book_fields):
    response = client.post("/books/add", data={**book_fields, "title": ""})

    assert response.status_code == 200
    assert "Title is required" in response.text
    assert "Author is required" not in response.text
    assert 'value="J.R.R. Tolkien"' in response.text
    assert lib.count(Book) == 0


def test_list_books_search_and_pagination_links(client, lib, book_fields):
    for i in range(6):
        lib.create(Book, {**book_fields, "title": f"Tolkien Reader {i}"})

    response = client.get("/books", params={"search": "reader", "page": "2"})

    assert response.status_code == 200
    assert "Tolkien Reader 5" in response.text
    assert "Tolkien Reader 0" not in response.text
    assert 'href="?&amp;search=reader&amp;page=2"' in response.text


def test_list_overdue_books(client, loan):
    response = client.get("/books", params={"filter": "overdue"})
    assert response.status_code == 200
    assert "Overdue Books" in response.text
    assert "The Hobbit" in response.text
    assert 'href="?filter=overdue&amp;page=1"' in response.text


def test_book_detail_shows_loans(client, loan):
    response = client.get(f"/books/{loan.book_id}")
    assert response.status_code == 200
    assert "Loan History" in response.text
    assert "Andrew Chalkley" in response.text


def test_book_detail_unknown_id(client):
    assert client.get("/books/999").status_code == 404


def test_update_book(client, lib, loan):
    response = client.post(f"/books/{loan.book_id}",
                           data={"title": "The Hobbit", "author": "Tolkien", "genre": "Fantasy"},
                           follow_redirects=False)
    assert response.status_code == 303
    assert lib.find_by_id(Book, loan.book_id).author == "Tolkien"


def test_update_book_with_errors(client, lib, loan):
    response = client.post(f"/books/{loan.book_id}", data={"title": "", "author": "Tolkien", "genre": "Fantasy"})
    assert response.status_code == 200
    assert "Title is required" in response.text
    assert lib.find_by_id(Book, loan.book_id).title == "The Hobbit"


def test_update_unknown_book(client, lib):
    response = client.post("/books/999", data={"title": "x", "author": "y", "genre": "z"})
    assert response.status_code == 404
    assert lib.count(Book) == 0


def test_new_loan_form_prefills_dates(client, loan):
    response = client.get("/loans/add")
    assert response.status_code == 200
    assert 'value="2020-01-02"' in response.text
    assert 'value="2020-01-09"' in response.text
    assert "The Hobbit" in response.text


def test_create_loan(client, lib, loan):
    data = {"book_id": str(loan.book_id), "patron_id": str(loan.patron_id),
            "loaned_on": "2020-01-02", "return_by": "2020-01-09"}
    response = client.post("/loans/add", data=data, follow_redirects=False)
    assert response.status_code == 303
    assert response.headers["location"] == "/loans"
    assert lib.count(Loan) == 2


def test_create_loan_bad_date(client, lib, loan):
    data = {"book_id": str(loan.book_id), "patron_id": str(loan.patron_id),
            "loaned_on": "2020-1-2", "return_by": "2020-01-09"}
    response = client.post("/loans/add", data=data)
    assert response.status_code == 200
    assert "Loaned On date invalid format" in response.text
    assert lib.count(Loan) == 1


def test_list_loans_filters(client, loan):
    overdue = client.get("/loans", params={"filter": "overdue"})
    checked = client.get("/loans", params={"filter": "checked"})
    assert "Overdue Loans" in overdue.text and "The Hobbit" in overdue.text
    assert "Checked Out Loans" in checked.text and "Return Book" in checked.text


def test_return_form_prefills_today(client, loan):
    response = client.get(f"/loans/{loan.id}")
    assert response.status_code == 200
    assert "Patron: Return Book" in response.text
    assert 'value="2020-01-02"' in response.text


def test_return_book(client, lib, loan):
    response = client.post(f"/loans/{loan.id}", data={"returned_on": "2020-01-02"}, follow_redirects=False)
    assert response.status_code == 303
    assert lib.find_by_id(Loan, loan.id).returned_on == TODAY

    listing = client.get("/loans", params={"filter": "checked"})
    assert "No loans found." in listing.text


def test_return_book_invalid_date(client, lib, loan):
    response = client.post(f"/loans/{loan.id}", data={"returned_on": "2020-02-30"})
    assert response.status_code == 200
    assert "Returned On date invalid format" in response.text
    assert lib.find_by_id(Loan, loan.id).returned_on is None


def test_return_unknown_loan(client):
    assert client.get("/loans/77").status_code == 404
    assert client.post("/loans/77", data={"returned_on": "2020-01-02"}).status_code == 404


def test_patrons_crud(client, lib, patron_fields):
    created = client.post("/patrons/add", data=patron_fields, follow_redirects=False)
    assert created.status_code == 303
    patron = lib.find_all(Patron)[0]

    listing = client.get("/patrons", params={"search": "mcl1001"})
    assert "Andrew Chalkley" in listing.text

    detail = client.get(f"/patrons/{patron.id}")
    assert detail.status_code == 200
    assert 'value="90210"' in detail.text

    invalid = client.post(f"/patrons/{patron.id}", data={**patron_fields, "zip_code": "abc"})
    assert invalid.status_code == 200
    assert "Zip code must be numeric" in invalid.text

    updated = client.post(f"/patrons/{patron.id}", data={**patron_fields, "zip_code": "10001"},
                          follow_redirects=False)
    assert updated.status_code == 303
    assert lib.find_by_id(Patron, patron.id).zip_code == 10001


def test_create_patron_errors(client, lib):
    response = client.post("/patrons/add", data={"first_name": "Ann"})
    assert response.status_code == 200
    for message in ("Last name is required", "Address is required", "Email is required",
                    "Library ID is required", "Zip code is required"):
        assert message in response.text
    assert lib.count(Patron) == 0


def test_unknown_patron(client):
    assert client.get("/patrons/5").status_code == 404


def test_store_failure_returns_500(client, lib, monkeypatch):
    def broken(*args, **kwargs):
        raise StoreError("database is locked")

    monkeypatch.setattr(lib, "find_and_count", broken)
    response = client.get("/books")
    assert response.status_code == 500


@pytest.mark.parametrize("path", ["/books/abc", "/loans/abc", "/patrons/abc",
                                  "/books/99999999999999999999", "/patrons/-99999999999999999999"])
def test_non_numeric_or_out_of_range_id_is_not_found(client, path):
    assert client.get(path).status_code == 404
    assert client.post(path, data={"title": "x"}).status_code == 404


def test_huge_page_number_renders_empty_page(client, lib, book_fields):
    lib.create(Book, book_fields)
    response = client.get("/books", params={"page": "99999999999999999999"})
    assert response.status_code == 200
    assert "The Hobbit" not in response.text


def test_huge_zip_code_is_a_field_error(client, lib, patron_fields):
    response = client.post("/patrons/add", data={**patron_fields, "zip_code": "99999999999999999999"})
    assert response.status_code == 200
    assert "Zip code must be numeric" in response.text
    assert lib.count(Patron) == 0


def test_health_timestamp_is_utc(client):
    assert client.get("/health").json()["timestamp"].endswith("+00:00")


def test_library_is_opened_once_on_first_request(db_file):
    app = create_app(config=Settings(database_file=db_file), today=lambda: TODAY)
    assert app.state.library is None

    client = TestClient(app)
    client.get("/books")
    library = app.state.library
    client.get("/patrons")

    assert library is not None
    assert library.db_file == db_file
    assert app.state.library is library
