"""Repositories for teachers, working schedules and teacher attendance."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from eisrecords.store import Row, Store, like_pattern, page_offset


def _marks(count: int) -> str:
    return ", ".join(["?"] * count)


def _require_batch(items: Iterable[Mapping[str, Any]]) -> list[Mapping[str, Any]]:
    batch = list(items)
    if not batch:
        raise ValueError("empty batch: nothing to create")
    return batch


class TeachersRepository:
    """Teachers with their level, working schedule and user account.

    Lookups also see soft-deleted teachers; browse totals count live ones only.
    """

    table = "teachers"

    def __init__(self, store: Store):
        self._store = store

    def _load(self, rows: list[Row]) -> list[Row]:
        self._store.preload_one(rows, "level", "levels", "level_id")
        self._store.preload_one(rows, "work_sched", "work_scheds", "work_sched_id")
        self._store.preload_one(rows, "user", "users", "user_id")
        return rows

    def _first(self, column: str, value: Any) -> Row:
        return self._store.fetch_one(
            f"SELECT * FROM {self.table} WHERE {column} = ? ORDER BY id LIMIT 1",
            (value,),
        )

    def browse(self, page: int, limit: int, search: str) -> tuple[list[Row], int]:
        pattern = like_pattern(search)
        rows = self._store.fetch_all(
            f"SELECT * FROM {self.table} WHERE LOWER(name) LIKE ? "
            f"ORDER BY id LIMIT ? OFFSET ?",
            (pattern, limit, page_offset(page, limit)),
        )
        total = self._store.count(
            f"SELECT COUNT(*) FROM {self.table} WHERE LOWER(name) LIKE ? "
            f"AND {self._store.scope(self.table)}",
            (pattern,),
        )
        return self._load(rows), total

    def find(self, teacher_id: int) -> Row:
        return self._load([self._first("id", teacher_id)])[0]

    def get_by_machine_id(self, machine_id: int) -> Row:
        """Return the teacher registered on the attendance machine id."""
        return self._first("machine_id", machine_id)

    def get_by_token(self, user_id: int) -> Row:
        """Return the teacher owned by the given user account."""
        return self._load([self._first("user_id", user_id)])[0]

    def create(self, teacher: Mapping[str, Any]) -> int:
        return self._store.insert(self.table, teacher)

    def update(self, teacher_id: int, teacher: Mapping[str, Any]) -> None:
        self._store.update(self.table, teacher_id, teacher)

    def undelete(self, teacher_id: int) -> None:
        self._store.execute(
            f"UPDATE {self.table} SET deleted_at = NULL WHERE id = ?", (teacher_id,)
        )

    def delete(self, teacher_id: int) -> None:
        self._store.delete(self.table, teacher_id)


class WorkSchedsRepository:
    """Working schedules and their per-day details."""

    table = "work_scheds"
    details_table = "work_sched_details"

    def __init__(self, store: Store):
        self._store = store

    def _load(self, rows: list[Row]) -> list[Row]:
        self._store.preload_many(rows, "details", self.details_table, "work_sched_id")
        return rows

    def browse(self, page: int, limit: int, search: str) -> tuple[list[Row], int]:
        """Page through schedules, deleted ones included, with live details."""
        pattern = like_pattern(search)
        rows = self._store.fetch_all(
            f"SELECT * FROM {self.table} WHERE LOWER(name) LIKE ? "
            f"ORDER BY id LIMIT ? OFFSET ?",
            (pattern, limit, page_offset(page, limit)),
        )
        total = self._store.count(
            f"SELECT COUNT(*) FROM {self.table} WHERE LOWER(name) LIKE ? "
            f"AND {self._store.scope(self.table)}",
            (pattern,),
        )
        return self._load(rows), total

    def create(self, work_sched: Mapping[str, Any]) -> int:
        """Insert the schedule and its nested ``details``; return its id."""
        with self._store.transaction():
            sched_id = self._store.insert(self.table, work_sched)
            for detail in work_sched.get("details") or ():
                self._store.insert(self.details_table, {**detail, "work_sched_id": sched_id})
        return sched_id

    def find(self, work_sched_id: int) -> Row:
        row = self._store.fetch_one(
            f"SELECT * FROM {self.table} WHERE id = ? ORDER BY id LIMIT 1",
            (work_sched_id,),
        )
        return self._load([row])[0]

    def update(self, work_sched_id: int, work_sched: Mapping[str, Any]) -> None:
        self._store.update(self.table, work_sched_id, work_sched)

    def undelete(self, work_sched_id: int) -> None:
        """Restore the schedule together with all of its details."""
        with self._store.transaction():
            self._store.execute(
                f"UPDATE {self.details_table} SET deleted_at = NULL WHERE work_sched_id = ?",
                (work_sched_id,),
            )
            self._store.execute(
                f"UPDATE {self.table} SET deleted_at = NULL WHERE id = ?", (work_sched_id,)
            )

    def delete(self, work_sched_id: int) -> None:
        """Soft-delete the schedule together with its details."""
        with self._store.transaction():
            detail_ids = [
                row["id"]
                for row in self._store.fetch_all(
                    f"SELECT id FROM {self.details_table} WHERE work_sched_id = ? "
                    f"AND {self._store.scope(self.details_table)}",
                    (work_sched_id,),
                )
            ]
            self._store.delete(self.details_table, detail_ids)
            self._store.delete(self.table, work_sched_id)


class WorkSchedDetailsRepository:
    """Per-day entries of working schedules."""

    table = "work_sched_details"

    def __init__(self, store: Store):
        self._store = store

    def create(self, details: Iterable[Mapping[str, Any]]) -> list[int]:
        """Insert all details atomically; an empty batch is an error."""
        batch = _require_batch(details)
        with self._store.transaction():
            return [self._store.insert(self.table, detail) for detail in batch]

    def find(self, ids: Iterable[int]) -> list[Row]:
        """Return the details with these ids, deleted ones included."""
        id_list = list(ids)
        if not id_list:
            return []
        return self._store.fetch_all(
            f"SELECT * FROM {self.table} WHERE id IN ({_marks(len(id_list))}) ORDER BY id",
            id_list,
        )

    def update(self, details: Iterable[Mapping[str, Any]]) -> list[int]:
        """Write every field of each detail; return their ids."""
        with self._store.transaction():
            return [self._store.save(self.table, detail) for detail in details]

    def delete(self, ids: Iterable[int]) -> None:
        """Remove the details for good."""
        self._store.delete(self.table, list(ids), hard=True)

    def undelete(self, work_sched_id: int) -> None:
        self._store.execute(
            f"UPDATE {self.table} SET deleted_at = NULL WHERE work_sched_id = ?",
            (work_sched_id,),
        )


class TeacherAttsRepository:
    """Teacher attendance records."""

    table = "teacher_attendances"

    def __init__(self, store: Store):
        self._store = store

    def _load(self, rows: list[Row], *, with_details: bool) -> list[Row]:
        self._store.preload_one(rows, "teacher", "teachers", "teacher_id")
        self._store.preload_one(rows, "working_schedule", "work_scheds", "working_schedule_id")
        if with_details:
            schedules = {
                schedule["id"]: schedule
                for row in rows
                if (schedule := row["working_schedule"]) is not None
            }
            self._store.preload_many(
                list(schedules.values()), "details", "work_sched_details", "work_sched_id"
            )
        return rows

    def browse(
        self, page: int, limit: int, search: str, date: str
    ) -> tuple[list[Row], int]:
        """Page through attendances; ``date`` narrows the page, not the total."""
        pattern = like_pattern(search)
        base = f"LOWER(display_name) LIKE ? AND {self._store.scope(self.table)}"
        conditions = [base]
        params: list[Any] = [pattern]
        if date:
            conditions.append("DATE(date) = ?")
            params.append(date)
        rows = self._store.fetch_all(
            f"SELECT * FROM {self.table} WHERE {' AND '.join(conditions)} "
            f"ORDER BY id LIMIT ? OFFSET ?",
            (*params, limit, page_offset(page, limit)),
        )
        total = self._store.count(f"SELECT COUNT(*) FROM {self.table} WHERE {base}", (pattern,))
        return self._load(rows, with_details=True), total

    def browse_report(self, search: str, start_date: str, end_date: str) -> list[Row]:
        """All matching attendances, between the dates when both are given."""
        conditions = [f"LOWER(display_name) LIKE ? AND {self._store.scope(self.table)}"]
        params: list[Any] = [like_pattern(search)]
        if start_date and end_date:
            conditions.append("DATE(date) BETWEEN ? AND ?")
            params.extend((start_date, end_date))
        rows = self._store.fetch_all(
            f"SELECT * FROM {self.table} WHERE {' AND '.join(conditions)} ORDER BY id",
            params,
        )
        return self._load(rows, with_details=True)

    def create(self, attendance: Mapping[str, Any]) -> int:
        return self._store.insert(self.table, attendance)

    def create_batch(self, attendances: Iterable[Mapping[str, Any]]) -> list[int]:
        """Insert all attendances atomically; an empty batch is an error."""
        batch = _require_batch(attendances)
        with self._store.transaction():
            return [self._store.insert(self.table, attendance) for attendance in batch]

    def find(self, attendance_id: int) -> Row:
        row = self._store.fetch_one(
            f"SELECT * FROM {self.table} WHERE id = ? AND {self._store.scope(self.table)} "
            f"ORDER BY id LIMIT 1",
            (attendance_id,),
        )
        return self._load([row], with_details=False)[0]

    def update(self, attendance_id: int, attendance: Mapping[str, Any]) -> None:
        self._store.update(self.table, attendance_id, attendance)

    def delete(self, attendance_id: int) -> None:
        self._store.delete(self.table, attendance_id)