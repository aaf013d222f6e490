"""Record repositories for a school information system, stored in SQLite."""

__version__ = "0.1.0"

__all__ = [
    "store",
    "catalog",
    "access",
    "content",
    "staff",
    "students",
    "academics",
    "attendance",
    "classnotes",
]