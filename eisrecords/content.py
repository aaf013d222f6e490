"""Repositories for blogs, applicants, guardians and documents."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from eisrecords.store import Row, Store, like_pattern, page_offset


def _browse(
    store: Store, table: str, column: str, page: int, limit: int, search: str
) -> tuple[list[Row], int]:
    pattern = like_pattern(search)
    where = f"LOWER({column}) LIKE ? AND {store.scope(table)}"
    rows = store.fetch_all(
        f"SELECT * FROM {table} WHERE {where} ORDER BY id LIMIT ? OFFSET ?",
        (pattern, limit, page_offset(page, limit)),
    )
    total = store.count(f"SELECT COUNT(*) FROM {table} WHERE {where}", (pattern,))
    return rows, total


def _first(store: Store, table: str, column: str, value: Any) -> Row:
    return store.fetch_one(
        f"SELECT * FROM {table} WHERE {column} = ? AND {store.scope(table)} "
        f"ORDER BY id LIMIT 1",
        (value,),
    )


def _preload_authors(store: Store, rows: list[Row]) -> None:
    store.preload_one(rows, "created_by_name", "users", "created_by")
    store.preload_one(rows, "updated_by_name", "users", "updated_by")


class BlogsRepository:
    """Blog posts with their authors."""

    table = "blogs"

    def __init__(self, store: Store):
        self._store = store

    def browse(self, page: int, limit: int, search: str) -> tuple[list[Row], int]:
        rows, total = _browse(self._store, self.table, "title", page, limit, search)
        _preload_authors(self._store, rows)
        return rows, total

    def create(self, blog: Mapping[str, Any]) -> int:
        return self._store.insert(self.table, blog)

    def find(self, blog_id: int) -> Row:
        row = _first(self._store, self.table, "id", blog_id)
        _preload_authors(self._store, [row])
        return row

    def update(self, blog_id: int, blog: Mapping[str, Any]) -> None:
        self._store.update(self.table, blog_id, blog)

    def delete(self, blog_id: int) -> None:
        self._store.delete(self.table, blog_id)


class ApplicantsRepository:
    """Admission applicants with their guardians, documents and level."""

    table = "applicants"
    _children = (("guardians", "guardians"), ("documents", "documents"))

    def __init__(self, store: Store):
        self._store = store

    def _load(self, rows: list[Row]) -> list[Row]:
        for field, table in self._children:
            self._store.preload_many(rows, field, table, "applicant_id")
        self._store.preload_one(rows, "level", "levels", "level_id")
        _preload_authors(self._store, rows)
        return rows

    def browse(self, page: int, limit: int, search: str) -> tuple[list[Row], int]:
        rows, total = _browse(self._store, self.table, "full_name", page, limit, search)
        return self._load(rows), total

    def create(self, applicant: Mapping[str, Any]) -> int:
        """Insert the applicant and any nested guardians and documents."""
        with self._store.transaction():
            applicant_id = self._store.insert(self.table, applicant)
            for field, table in self._children:
                for child in applicant.get(field) or ():
                    self._store.insert(table, {**child, "applicant_id": applicant_id})
        return applicant_id

    def find(self, applicant_id: int) -> Row:
        return self._load([_first(self._store, self.table, "id", applicant_id)])[0]

    def get_by_token(self, user_id: int) -> Row:
        """Return the application created by the given user."""
        return self._load([_first(self._store, self.table, "created_by", user_id)])[0]

    def update(self, applicant_id: int, applicant: Mapping[str, Any]) -> None:
        self._store.update(self.table, applicant_id, applicant)

    def delete(self, applicant_id: int) -> None:
        self._store.delete(self.table, applicant_id)


class GuardiansRepository:
    """Guardians of applicants and students."""

    table = "guardians"

    def __init__(self, store: Store):
        self._store = store

    def _load(self, rows: list[Row]) -> list[Row]:
        self._store.preload_one(rows, "applicant", "applicants", "applicant_id")
        self._store.preload_one(rows, "student", "students", "student_id")
        return rows

    def browse(self, page: int, limit: int, search: str) -> tuple[list[Row], int]:
        rows, total = _browse(self._store, self.table, "name", page, limit, search)
        return self._load(rows), total

    def create(self, guardian: Mapping[str, Any]) -> int:
        return self._store.insert(self.table, guardian)

    def find(self, guardian_id: int) -> Row:
        return self._load([_first(self._store, self.table, "id", guardian_id)])[0]

    def find_by_applicant_id(self, applicant_id: int) -> list[Row]:
        rows = self._store.fetch_all(
            f"SELECT * FROM {self.table} WHERE applicant_id = ? "
            f"AND {self._store.scope(self.table)} ORDER BY id",
            (applicant_id,),
        )
        return self._load(rows)

    def update(self, guardian_id: int, guardian: Mapping[str, Any]) -> None:
        self._store.update(self.table, guardian_id, guardian)

    def delete(self, guardian_id: int) -> None:
        self._store.delete(self.table, guardian_id)


class DocumentsRepository:
    """Documents submitted by applicants and students."""

    table = "documents"

    def __init__(self, store: Store):
        self._store = store

    def _load(self, rows: list[Row]) -> list[Row]:
        self._store.preload_one(rows, "type", "doc_types", "type_id")
        self._store.preload_one(rows, "applicant", "applicants", "applicant_id")
        self._store.preload_one(rows, "student", "students", "student_id")
        return rows

    def browse(self, page: int, limit: int, search: str) -> tuple[list[Row], int]:
        rows, total = _browse(self._store, self.table, "name", page, limit, search)
        return self._load(rows), total

    def create(self, document: Mapping[str, Any]) -> int:
        return self._store.insert(self.table, document)

    def find(self, document_id: int) -> Row:
        return self._load([_first(self._store, self.table, "id", document_id)])[0]

    def find_by_applicant_id(self, applicant_id: int) -> list[Row]:
        rows = self._store.fetch_all(
            f"SELECT * FROM {self.table} WHERE applicant_id = ? "
            f"AND {self._store.scope(self.table)} ORDER BY id",
            (applicant_id,),
        )
        return self._load(rows)

    def update(self, document_id: int, document: Mapping[str, Any]) -> None:
        self._store.update(self.table, document_id, document)

    def delete(self, document_id: int) -> None:
        self._store.delete(self.table, document_id)