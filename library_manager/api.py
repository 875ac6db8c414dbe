import logging
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, Optional

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.responses import HTMLResponse, PlainTextResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel

from library_manager.book import Book
from library_manager.config import Settings, settings
from library_manager.library import IsNull, Library, NotFoundError, StoreError
from library_manager.loan import Loan
from library_manager.patron import Patron
from library_manager.queries import FilterMode, LibraryQueries
from library_manager.utils.validators import ValidationFailure

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))

router = APIRouter()

_library_lock = Lock()

BOOK_LIST_TITLES = {
    FilterMode.NONE: "Books",
    FilterMode.OVERDUE: "Overdue Books",
    FilterMode.CHECKED: "Checked Out Books",
}
LOAN_LIST_TITLES = {
    FilterMode.NONE: "Loans",
    FilterMode.OVERDUE: "Overdue Loans",
    FilterMode.CHECKED: "Checked Out Loans",
}


class HealthModel(BaseModel):
    status: str
    timestamp: str
    db: bool
    books: int = 0
    patrons: int = 0
    loans: int = 0
    checked_out: int = 0


# --- Dependencies ---
def get_library(request: Request) -> Library:
    """The store is opened on first use so importing the app touches no database."""
    state = request.app.state
    if state.library is None:
        with _library_lock:
            if state.library is None:
                state.library = Library(state.settings.database_file)
    return state.library


def get_today(request: Request) -> date:
    return request.app.state.today()


def get_queries(request: Request, library: Library = Depends(get_library)) -> LibraryQueries:
    state = request.app.state
    return LibraryQueries(library, state.settings.listing_options(), today=state.today)


async def read_form(request: Request) -> Dict[str, Any]:
    form = await request.form()
    return {key: value for key, value in form.items() if isinstance(value, str)}


def render(request: Request, template: str, **context: Any) -> HTMLResponse:
    """Render a page; validation failures are re-rendered with a normal 200 status."""
    context.setdefault("errors", [])
    return templates.TemplateResponse(request, template, context)


def redirect(path: str) -> RedirectResponse:
    return RedirectResponse(path, status_code=303)


# --- Home & health ---
@router.get("/", response_class=HTMLResponse)
def index(request: Request):
    return render(request, "index.html", title=request.app.state.settings.app_name)


@router.get("/health", response_model=HealthModel)
def health(request: Request):
    now_iso = datetime.now(timezone.utc).isoformat()
    try:
        library = get_library(request)
        return HealthModel(
            status="healthy",
            timestamp=now_iso,
            db=True,
            books=library.count(Book),
            patrons=library.count(Patron),
            loans=library.count(Loan),
            checked_out=library.count(Loan, [IsNull("returned_on")]),
        )
    except StoreError as e:
        logger.error(f"Health check failed: {e}")
        return HealthModel(status="degraded", timestamp=now_iso, db=False)


# --- Books ---
@router.get("/books", response_class=HTMLResponse)
def list_books(request: Request, filter: Optional[str] = None, page: Optional[str] = None,
               search: Optional[str] = None, queries: LibraryQueries = Depends(get_queries)):
    mode = FilterMode.parse(filter)
    listing = queries.list_books(mode, search, page)
    return render(
        request, "books/list.html",
        title=BOOK_LIST_TITLES[mode],
        books=listing.items,
        links=listing.links(mode.value, search),
        filter=mode.value,
        search=search or "",
        page=listing.page,
    )


@router.get("/books/add", response_class=HTMLResponse)
def new_book_form(request: Request):
    return render(request, "books/new.html", title="New Book", book={})


@router.post("/books/add", response_class=HTMLResponse)
async def create_book(request: Request, library: Library = Depends(get_library)):
    fields = await read_form(request)
    try:
        library.create(Book, fields)
    except ValidationFailure as e:
        return render(request, "books/new.html", title="New Book", book=fields, errors=e.errors)
    return redirect("/books")


@router.get("/books/{book_id}", response_class=HTMLResponse)
def book_detail(request: Request, book_id: str, library: Library = Depends(get_library),
                queries: LibraryQueries = Depends(get_queries)):
    book = library.find_by_id(Book, book_id)
    if book is None:
        raise NotFoundError(Book, book_id)
    return render(request, "books/detail.html", title=book.title, book=book.to_dict(),
                  loans=queries.loans_for_book(book.id))


@router.post("/books/{book_id}", response_class=HTMLResponse)
async def update_book(request: Request, book_id: str, library: Library = Depends(get_library),
                      queries: LibraryQueries = Depends(get_queries)):
    fields = await read_form(request)
    try:
        library.apply_update(Book, book_id, fields)
    except ValidationFailure as e:
        current = library.find_by_id(Book, book_id)
        return render(request, "books/detail.html", title=current.title,
                      book={**current.to_dict(), **fields, "id": current.id},
                      loans=queries.loans_for_book(current.id), errors=e.errors)
    return redirect("/books")


# --- Loans ---
@router.get("/loans", response_class=HTMLResponse)
def list_loans(request: Request, filter: Optional[str] = None, page: Optional[str] = None,
               search: Optional[str] = None, queries: LibraryQueries = Depends(get_queries),
               today: date = Depends(get_today)):
    mode = FilterMode.parse(filter)
    listing = queries.list_loans(mode, search, page)
    return render(
        request, "loans/list.html",
        title=LOAN_LIST_TITLES[mode],
        loans=listing.items,
        links=listing.links(mode.value, search),
        filter=mode.value,
        search=search or "",
        page=listing.page,
        today=today,
    )


def _render_new_loan(request: Request, library: Library, loan: Dict[str, Any], errors=None) -> HTMLResponse:
    return render(request, "loans/new.html", title="New Loan", loan=loan,
                  books=library.find_all(Book), patrons=library.find_all(Patron), errors=errors or [])


@router.get("/loans/add", response_class=HTMLResponse)
def new_loan_form(request: Request, library: Library = Depends(get_library), today: date = Depends(get_today)):
    period = request.app.state.settings.loan_period_days
    loan = {"loaned_on": today.isoformat(), "return_by": (today + timedelta(days=period)).isoformat()}
    return _render_new_loan(request, library, loan)


@router.post("/loans/add", response_class=HTMLResponse)
async def create_loan(request: Request, library: Library = Depends(get_library)):
    fields = await read_form(request)
    try:
        library.create(Loan, fields)
    except ValidationFailure as e:
        return _render_new_loan(request, library, fields, e.errors)
    return redirect("/loans")


@router.get("/loans/{loan_id}", response_class=HTMLResponse)
def return_loan_form(request: Request, loan_id: str, library: Library = Depends(get_library),
                     today: date = Depends(get_today)):
    loan = library.find_by_id(Loan, loan_id)
    if loan is None:
        raise NotFoundError(Loan, loan_id)
    return render(request, "loans/return.html", title="Patron: Return Book", loan=loan,
                  returned_on=today.isoformat())


@router.post("/loans/{loan_id}", response_class=HTMLResponse)
async def update_loan(request: Request, loan_id: str, library: Library = Depends(get_library)):
    fields = await read_form(request)
    try:
        library.apply_update(Loan, loan_id, fields)
    except ValidationFailure as e:
        return render(request, "loans/return.html", title="Patron: Return Book",
                      loan=library.find_by_id(Loan, loan_id), returned_on=fields.get("returned_on", ""),
                      errors=e.errors)
    return redirect("/loans")


# --- Patrons ---
@router.get("/patrons", response_class=HTMLResponse)
def list_patrons(request: Request, page: Optional[str] = None, search: Optional[str] = None,
                 queries: LibraryQueries = Depends(get_queries)):
    listing = queries.list_patrons(search, page)
    return render(
        request, "patrons/list.html",
        title="Patrons",
        patrons=listing.items,
        links=listing.links(None, search),
        search=search or "",
        page=listing.page,
    )


@router.get("/patrons/add", response_class=HTMLResponse)
def new_patron_form(request: Request):
    return render(request, "patrons/new.html", title="New Patron", patron={})


@router.post("/patrons/add", response_class=HTMLResponse)
async def create_patron(request: Request, library: Library = Depends(get_library)):
    fields = await read_form(request)
    try:
        library.create(Patron, fields)
    except ValidationFailure as e:
        return render(request, "patrons/new.html", title="New Patron", patron=fields, errors=e.errors)
    return redirect("/patrons")


@router.get("/patrons/{patron_id}", response_class=HTMLResponse)
def patron_detail(request: Request, patron_id: str, library: Library = Depends(get_library),
                  queries: LibraryQueries = Depends(get_queries)):
    patron = library.find_by_id(Patron, patron_id)
    if patron is None:
        raise NotFoundError(Patron, patron_id)
    return render(request, "patrons/detail.html", title=patron.full_name, patron=patron.to_dict(),
                  loans=queries.loans_for_patron(patron.id))


@router.post("/patrons/{patron_id}", response_class=HTMLResponse)
async def update_patron(request: Request, patron_id: str, library: Library = Depends(get_library),
                        queries: LibraryQueries = Depends(get_queries)):
    fields = await read_form(request)
    try:
        library.apply_update(Patron, patron_id, fields)
    except ValidationFailure as e:
        current = library.find_by_id(Patron, patron_id)
        return render(request, "patrons/detail.html", title=current.full_name,
                      patron={**current.to_dict(), **fields, "id": current.id},
                      loans=queries.loans_for_patron(current.id), errors=e.errors)
    return redirect("/patrons")


# --- Application ---
def create_app(config: Optional[Settings] = None, library: Optional[Library] = None,
               today: Optional[Callable[[], date]] = None) -> FastAPI:
    config = config or settings
    app = FastAPI(title=config.app_name, version=config.app_version, debug=config.debug)
    app.state.settings = config
    app.state.library = library
    app.state.today = today or date.today

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return PlainTextResponse(str(exc), status_code=404)

    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError):
        logger.error(f"Store failure on {request.method} {request.url.path}: {exc}")
        return PlainTextResponse("Internal Server Error", status_code=500)

    app.include_router(router)
    return app


app = create_app()
