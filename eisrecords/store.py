"""Row storage on top of a DB-API connection (sqlite3 dialect)."""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from datetime import datetime
from typing import Any

Row = dict[str, Any]

_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_]*\Z")
_TIMESTAMPS = ("created_at", "updated_at")


class RecordNotFoundError(LookupError):
    """Raised when a lookup that expects a row finds none."""


def like_pattern(search: str) -> str:
    """Return a case-folded LIKE pattern matching ``search`` anywhere."""
    return f"%{search.lower()}%"


def page_offset(page: int, limit: int) -> int:
    """Return the row offset of a 1-based page; never negative."""
    return max((page - 1) * limit, 0)


def _now() -> str:
    return datetime.now().isoformat(sep=" ", timespec="microseconds")


def _ident(name: str) -> str:
    if not _IDENTIFIER.match(name):
        raise ValueError(f"invalid SQL identifier: {name!r}")
    return name


def _placeholders(count: int) -> str:
    return ", ".join(["?"] * count)


def _id_list(ids: int | Iterable[int]) -> list[int]:
    if isinstance(ids, int):
        return [ids]
    return list(ids)


class Store:
    """Executes queries and writes rows, with nested transactions and soft deletes.

    A table with a ``deleted_at`` column is soft-deleted: deletes stamp the
    column and :meth:`scope` yields a clause that hides such rows.
    """

    def __init__(self, connection):
        self.connection = connection
        self._depth = 0
        self._columns: dict[str, frozenset[str]] = {}

    # -- schema -----------------------------------------------------------

    def columns(self, table: str) -> frozenset[str]:
        """Return the column names of ``table``."""
        table = _ident(table)
        if table not in self._columns:
            cursor = self.connection.execute(f"PRAGMA table_info({table})")
            names = frozenset(row[1] for row in cursor.fetchall())
            if not names:
                raise ValueError(f"unknown table: {table}")
            self._columns[table] = names
        return self._columns[table]

    def has_column(self, table: str, column: str) -> bool:
        return column in self.columns(table)

    def scope(self, table: str) -> str:
        """SQL condition that excludes soft-deleted rows of ``table``."""
        if self.has_column(table, "deleted_at"):
            return f"{_ident(table)}.deleted_at IS NULL"
        return "1 = 1"

    # -- transactions -----------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[Store]:
        """Run the block atomically; nested blocks roll back on their own."""
        name = f"eisrecords_sp_{self._depth}"
        self.connection.execute(f"SAVEPOINT {name}")
        self._depth += 1
        try:
            yield self
        except BaseException:
            self.connection.execute(f"ROLLBACK TO SAVEPOINT {name}")
            self.connection.execute(f"RELEASE SAVEPOINT {name}")
            raise
        else:
            self.connection.execute(f"RELEASE SAVEPOINT {name}")
        finally:
            self._depth -= 1

    def execute(self, sql: str, params: Sequence[Any] = ()):
        """Run a writing statement, committing when outside a transaction."""
        cursor = self.connection.execute(sql, tuple(params))
        if self._depth == 0:
            self.connection.commit()
        return cursor

    # -- writes -----------------------------------------------------------

    def _clean(self, table: str, values: Mapping[str, Any]) -> Row:
        columns = self.columns(table)
        row: Row = {}
        for key, value in values.items():
            if isinstance(value, (dict, list, tuple)):
                continue  # preloaded associations are not columns
            if key not in columns:
                raise ValueError(f"unknown column {key!r} for table {table!r}")
            row[_ident(key)] = value
        return row

    def insert(self, table: str, values: Mapping[str, Any]) -> int:
        """Insert a row and return its id; timestamps are filled in."""
        row = self._clean(table, values)
        columns = self.columns(table)
        now = _now()
        for stamp in _TIMESTAMPS:
            if stamp in columns and row.get(stamp) is None:
                row[stamp] = now
        if not row:
            cursor = self.execute(f"INSERT INTO {table} DEFAULT VALUES")
            return cursor.lastrowid
        names = list(row)
        sql = (
            f"INSERT INTO {table} ({', '.join(names)}) "
            f"VALUES ({_placeholders(len(names))})"
        )
        cursor = self.execute(sql, [row[name] for name in names])
        return cursor.lastrowid

    def update(self, table: str, row_id: int, values: Mapping[str, Any]) -> int:
        """Set the non-None ``values`` on a live row; return rows changed."""
        row = {
            key: value
            for key, value in self._clean(table, values).items()
            if value is not None and key != "id"
        }
        if not row:
            return 0
        if self.has_column(table, "updated_at"):
            row["updated_at"] = _now()
        assignments = ", ".join(f"{name} = ?" for name in row)
        sql = f"UPDATE {table} SET {assignments} WHERE id = ? AND {self.scope(table)}"
        return self.execute(sql, [*row.values(), row_id]).rowcount

    def save(self, table: str, values: Mapping[str, Any]) -> int:
        """Write every field of a row: insert without an id, else overwrite."""
        row = self._clean(table, values)
        row_id = row.pop("id", None)
        if not row_id:
            return self.insert(table, row)
        if self.has_column(table, "updated_at"):
            row["updated_at"] = _now()
        if row:
            assignments = ", ".join(f"{name} = ?" for name in row)
            sql = f"UPDATE {table} SET {assignments} WHERE id = ?"
            changed = self.execute(sql, [*row.values(), row_id]).rowcount
        else:
            changed = self.count(f"SELECT COUNT(*) FROM {table} WHERE id = ?", (row_id,))
        if changed == 0:
            self.insert(table, {**row, "id": row_id})
        return row_id

    def delete(self, table: str, ids: int | Iterable[int], *, hard: bool = False) -> int:
        """Delete rows by id; soft-deletes unless ``hard`` or no ``deleted_at``."""
        id_list = _id_list(ids)
        table = _ident(table)
        if not id_list:
            return 0
        marks = _placeholders(len(id_list))
        if not hard and self.has_column(table, "deleted_at"):
            sql = (
                f"UPDATE {table} SET deleted_at = ? "
                f"WHERE id IN ({marks}) AND deleted_at IS NULL"
            )
            return self.execute(sql, [_now(), *id_list]).rowcount
        return self.execute(f"DELETE FROM {table} WHERE id IN ({marks})", id_list).rowcount

    # -- reads ------------------------------------------------------------

    def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> list[Row]:
        cursor = self.connection.execute(sql, tuple(params))
        names = [column[0] for column in cursor.description]
        return [dict(zip(names, record)) for record in cursor.fetchall()]

    def fetch_one(self, sql: str, params: Sequence[Any] = ()) -> Row:
        """Return the first row of the query or raise RecordNotFoundError."""
        cursor = self.connection.execute(sql, tuple(params))
        record = cursor.fetchone()
        if record is None:
            raise RecordNotFoundError("record not found")
        names = [column[0] for column in cursor.description]
        return dict(zip(names, record))

    def count(self, sql: str, params: Sequence[Any] = ()) -> int:
        record = self.connection.execute(sql, tuple(params)).fetchone()
        return int(record[0]) if record and record[0] is not None else 0

    # -- associations -----------------------------------------------------

    def preload_one(self, rows: list[Row], field: str, table: str, foreign_key: str) -> None:
        """Attach the row of ``table`` that each row's ``foreign_key`` points to."""
        ids = sorted({row[foreign_key] for row in rows if row.get(foreign_key) is not None})
        related: dict[Any, Row] = {}
        if ids:
            table = _ident(table)
            sql = (
                f"SELECT * FROM {table} WHERE id IN ({_placeholders(len(ids))}) "
                f"AND {self.scope(table)}"
            )
            related = {item["id"]: item for item in self.fetch_all(sql, ids)}
        for row in rows:
            row[field] = related.get(row.get(foreign_key))

    def preload_many(self, rows: list[Row], field: str, table: str, foreign_key: str) -> list[Row]:
        """Attach the rows of ``table`` whose ``foreign_key`` is each row's id.

        Returns every attached child, in id order.
        """
        ids = [row["id"] for row in rows]
        children: list[Row] = []
        if ids:
            table = _ident(table)
            sql = (
                f"SELECT * FROM {table} WHERE {_ident(foreign_key)} IN "
                f"({_placeholders(len(ids))}) AND {self.scope(table)} ORDER BY id"
            )
            children = self.fetch_all(sql, ids)
        grouped: dict[Any, list[Row]] = {}
        for child in children:
            grouped.setdefault(child[foreign_key], []).append(child)
        for row in rows:
            row[field] = grouped.get(row["id"], [])
        return children