import json
import os
from datetime import date
from typing import Any, Dict, List

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

# Environment variable controlling CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "LIB_CLI_OUTPUT"

_console = Console()


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def _loan_row(loan: Any, today: date) -> Dict[str, Any]:
    return {
        "id": loan.id,
        "book": loan.book.title if loan.book else str(loan.book_id),
        "patron": loan.patron.full_name if loan.patron else str(loan.patron_id),
        "loaned_on": loan.loaned_on.isoformat(),
        "return_by": loan.return_by.isoformat(),
        "days_overdue": max((today - loan.return_by).days, 0),
    }


def print_loans_result(loans: List[Any], today: date, title: str = "Overdue Loans") -> None:
    """Print a loan report in the current output mode.
    - plain: 'ID - Book - Patron (due YYYY-MM-DD)' lines, or 'No loans found.'
    - json: JSON array
    - rich: Rich table
    """
    mode = get_output_mode()

    if not loans:
        print("No loans found.")
        return

    rows = [_loan_row(loan, today) for loan in loans]
    if mode == "json":
        print(json.dumps(rows, ensure_ascii=False))
    elif mode == "rich":
        table = Table(title=title, show_lines=True, header_style="bold cyan")
        table.add_column("ID", style="magenta", no_wrap=True)
        table.add_column("Book", style="white")
        table.add_column("Patron", style="white")
        table.add_column("Return by", style="yellow")
        table.add_column("Days overdue", style="red", justify="right")
        for row in rows:
            table.add_row(str(row["id"]), row["book"], row["patron"], row["return_by"], str(row["days_overdue"]))
        _console.print(table)
    else:
        for row in rows:
            print(f"{row['id']} - {row['book']} - {row['patron']} (due {row['return_by']})")


def print_seed_result(summary: Dict[str, Dict[str, int]]) -> None:
    mode = get_output_mode()

    if mode == "json":
        print(json.dumps(summary, ensure_ascii=False))
    elif mode == "rich":
        content = "\n".join(
            f"[bold]{section.title()}:[/] {counts['created']} created, {counts['skipped']} skipped"
            for section, counts in summary.items()
        )
        _console.print(Panel.fit(content, title="Seed", border_style="blue"))
    else:
        for section, counts in summary.items():
            print(f"{section.title()}: {counts['created']} created, {counts['skipped']} skipped")
