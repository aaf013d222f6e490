"""Repositories for reference data: levels, histories, document types,
subjects, classrooms and terms."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from eisrecords.store import Row, Store, like_pattern, page_offset

_SUBJECT_SORT_COLUMNS = frozenset({"id", "name", "created_at"})
_SORT_DIRECTIONS = frozenset({"ASC", "DESC"})


class _Repository:
    """Shared plumbing for a repository backed by one table."""

    table = ""
    search_column = "name"

    def __init__(self, store: Store):
        self._store = store

    @property
    def _live(self) -> str:
        return self._store.scope(self.table)

    def _page(
        self, page: int, limit: int, search: str, *, scoped: bool = True
    ) -> tuple[list[Row], int]:
        """One page of rows whose search column contains ``search``, and the total."""
        pattern = like_pattern(search)
        where = f"LOWER({self.search_column}) LIKE ?"
        if scoped:
            where = f"{where} AND {self._live}"
        rows = self._store.fetch_all(
            f"SELECT * FROM {self.table} WHERE {where} ORDER BY id LIMIT ? OFFSET ?",
            (pattern, limit, page_offset(page, limit)),
        )
        total = self._store.count(f"SELECT COUNT(*) FROM {self.table} WHERE {where}", (pattern,))
        return rows, total

    def _first_where(self, condition: str, *params: Any) -> Row:
        return self._store.fetch_one(
            f"SELECT * FROM {self.table} WHERE {condition} AND {self._live} ORDER BY id LIMIT 1",
            params,
        )

    def _get(self, row_id: int) -> Row:
        return self._first_where("id = ?", row_id)

    def _all(self) -> list[Row]:
        return self._store.fetch_all(f"SELECT * FROM {self.table} WHERE {self._live} ORDER BY id")

    def _insert(self, values: Mapping[str, Any]) -> int:
        return self._store.insert(self.table, values)

    def _change(self, row_id: int, values: Mapping[str, Any]) -> None:
        self._store.update(self.table, row_id, values)

    def _remove(self, row_id: int, *, hard: bool = False) -> None:
        self._store.delete(self.table, row_id, hard=hard)


class LevelsRepository(_Repository):
    """School levels, browsed with their histories and principals."""

    table = "levels"

    def __init__(self, store: Store):
        super().__init__(store)

    def browse(self, page: int, limit: int, search: str) -> tuple[list[Row], int]:
        levels, total = self._page(page, limit, search)
        histories = self._store.preload_many(levels, "histories", "level_histories", "level_id")
        self._store.preload_one(histories, "principle", "teachers", "principle_id")
        return levels, total

    def create(self, level: Mapping[str, Any]) -> int:
        return self._insert(level)

    def find(self, level_id: int) -> Row:
        return self._get(level_id)

    def update(self, level_id: int, level: Mapping[str, Any]) -> None:
        self._change(level_id, level)

    def delete(self, level_id: int) -> None:
        self._remove(level_id)


class LevelHistoriesRepository(_Repository):
    """Operating-certificate history of each level."""

    table = "level_histories"
    search_column = "op_cert_num"

    def __init__(self, store: Store):
        super().__init__(store)

    def browse(self, page: int, limit: int, search: str) -> tuple[list[Row], int]:
        return self._page(page, limit, search)

    def create(self, history: Mapping[str, Any]) -> int:
        return self._insert(history)

    def find(self, history_id: int) -> Row:
        return self._get(history_id)

    def update(self, history_id: int, history: Mapping[str, Any]) -> None:
        self._change(history_id, history)

    def delete(self, history_id: int) -> None:
        self._remove(history_id)


class DocTypesRepository(_Repository):
    """Kinds of documents an applicant or student may submit."""

    table = "doc_types"

    def __init__(self, store: Store):
        super().__init__(store)

    def browse(self, page: int, limit: int, search: str) -> tuple[list[Row], int]:
        return self._page(page, limit, search)

    def create(self, doc_type: Mapping[str, Any]) -> int:
        return self._insert(doc_type)

    def find(self, doc_type_id: int) -> Row:
        return self._get(doc_type_id)

    def update(self, doc_type_id: int, doc_type: Mapping[str, Any]) -> None:
        self._change(doc_type_id, doc_type)

    def delete(self, doc_type_id: int) -> None:
        self._remove(doc_type_id)


class SubjectsRepository(_Repository):
    """Taught subjects, browsable with a chosen sort order."""

    table = "subjects"

    def __init__(self, store: Store):
        super().__init__(store)

    def browse(
        self, page: int, limit: int, search: str, sort_column: str, sort_order: str
    ) -> tuple[list[Row], int]:
        """Page through subjects whose name contains ``search``.

        Unknown sort columns fall back to ``created_at``; a sort order other
        than asc/desc is ignored.
        """
        column = sort_column if sort_column in _SUBJECT_SORT_COLUMNS else "created_at"
        direction = sort_order.upper() if sort_order.upper() in _SORT_DIRECTIONS else ""
        order = f"{column} {direction}".strip()

        conditions = [self._live]
        params: list[Any] = []
        if search:
            conditions.append("name LIKE ?")
            params.append(f"%{search}%")
        where = " AND ".join(conditions)

        total = self._store.count(f"SELECT COUNT(*) FROM {self.table} WHERE {where}", params)
        rows = self._store.fetch_all(
            f"SELECT * FROM {self.table} WHERE {where} ORDER BY {order}, id LIMIT ? OFFSET ?",
            (*params, limit, page_offset(page, limit)),
        )
        return rows, total

    def create(self, subject: Mapping[str, Any]) -> int:
        return self._insert(subject)

    def find(self, subject_id: int) -> Row:
        return self._get(subject_id)

    def update(self, subject_id: int, subject: Mapping[str, Any]) -> None:
        self._change(subject_id, subject)

    def delete(self, subject_id: int) -> None:
        self._remove(subject_id)


class ClassroomsRepository(_Repository):
    """Classrooms, each belonging to a level."""

    table = "classrooms"
    search_column = "display_name"

    def __init__(self, store: Store):
        super().__init__(store)

    def get_all(self) -> list[Row]:
        return self._all()

    def browse(self, page: int, limit: int, search: str) -> tuple[list[Row], int]:
        rows, total = self._page(page, limit, search)
        self._store.preload_one(rows, "level", "levels", "level_id")
        return rows, total

    def create(self, classroom: Mapping[str, Any]) -> int:
        return self._insert(classroom)

    def create_batch(self, classrooms: Iterable[Mapping[str, Any]]) -> list[int]:
        """Insert all classrooms atomically and return their ids."""
        batch = list(classrooms)
        if not batch:
            return []
        with self._store.transaction():
            return [self._insert(classroom) for classroom in batch]

    def find(self, classroom_id: int) -> Row:
        row = self._get(classroom_id)
        self._store.preload_one([row], "level", "levels", "level_id")
        return row

    def update(self, classroom_id: int, classroom: Mapping[str, Any]) -> None:
        self._change(classroom_id, classroom)

    def delete(self, classroom_id: int) -> None:
        self._remove(classroom_id)


class TermsRepository(_Repository):
    """Terms of an academic year."""

    table = "terms"

    def __init__(self, store: Store):
        super().__init__(store)

    def find(self, term_id: int) -> Row:
        row = self._get(term_id)
        self._store.preload_one([row], "academic", "academics", "academic_id")
        return row