"""Library Manager - core application package

This package contains the application modules, including:
- HTML request handlers (api.py)
- Entity store and criteria (library.py)
- Filtered, paginated listings (queries.py)
- CLI interface (main.py)
- Data models (book.py, patron.py, loan.py)
- Database layer (database.py)
"""
