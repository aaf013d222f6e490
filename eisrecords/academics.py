"""Repositories for academic years (class cohorts) and subject schedules."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from eisrecords.store import Row, Store, like_pattern, page_offset

ACADEMIC_STUDENTS = "academic_students"


def _marks(count: int) -> str:
    return ", ".join(["?"] * count)


def _related(rows: Iterable[Row], field: str) -> list[Row]:
    """Return the distinct non-empty ``field`` objects attached to ``rows``."""
    seen: dict[int, Row] = {}
    for row in rows:
        item = row.get(field)
        if item is not None:
            seen.setdefault(id(item), item)
    return list(seen.values())


def _require_batch(items: Iterable[Mapping[str, Any]]) -> list[Mapping[str, Any]]:
    batch = list(items)
    if not batch:
        raise ValueError("empty batch: nothing to create")
    return batch


def _attach_students(store: Store, academics: list[Row]) -> None:
    """Set ``students`` on each academic from the enrolment join table."""
    for academic in academics:
        academic["students"] = []
    ids = [academic["id"] for academic in academics]
    if not ids:
        return
    sql = (
        f"SELECT {ACADEMIC_STUDENTS}.academics_id AS owner_academic_id, students.* "
        f"FROM students JOIN {ACADEMIC_STUDENTS} "
        f"ON {ACADEMIC_STUDENTS}.students_id = students.id "
        f"WHERE {ACADEMIC_STUDENTS}.academics_id IN ({_marks(len(ids))}) "
        f"AND {store.scope('students')} ORDER BY students.id"
    )
    by_id = {academic["id"]: academic for academic in academics}
    for student in store.fetch_all(sql, ids):
        owner = student.pop("owner_academic_id")
        by_id[owner]["students"].append(student)


def _load_schedule_links(store: Store, schedules: list[Row]) -> None:
    store.preload_one(schedules, "teacher", "teachers", "teacher_id")
    store.preload_one(schedules, "subject", "subjects", "subject_id")


class AcademicsRepository:
    """Academic years of a classroom, with terms, students and schedules."""

    table = "academics"

    def __init__(self, store: Store):
        self._store = store

    def _link_students(self, academic_id: int, students: Iterable[Any]) -> None:
        linked: set[int] = set()
        for entry in students:
            if isinstance(entry, Mapping):
                student_id = entry.get("id")
                if not student_id:
                    student_id = self._store.insert("students", entry)
            else:
                student_id = entry
            student_id = int(student_id)
            if student_id in linked:
                continue
            self._store.insert(
                ACADEMIC_STUDENTS, {"academics_id": academic_id, "students_id": student_id}
            )
            linked.add(student_id)

    def _load_classroom(self, rows: list[Row]) -> None:
        self._store.preload_one(rows, "classroom", "classrooms", "classroom_id")
        self._store.preload_one(_related(rows, "classroom"), "level", "levels", "level_id")

    def _load_summary(self, rows: list[Row]) -> list[Row]:
        self._load_classroom(rows)
        self._store.preload_one(rows, "homeroom_teacher", "teachers", "homeroom_teacher_id")
        _attach_students(self._store, rows)
        self._store.preload_many(rows, "terms", "terms", "academic_id")
        return rows

    def browse(
        self, page: int, limit: int, search: str, start_year: str, end_year: str
    ) -> tuple[list[Row], int]:
        """Page through academics; the years filter only when both are given."""
        conditions = ["LOWER(display_name) LIKE ?", self._store.scope(self.table)]
        params: list[Any] = [like_pattern(search)]
        if start_year and end_year:
            conditions.append("start_year = ? AND end_year = ?")
            params.extend((start_year, end_year))
        where = " AND ".join(conditions)
        rows = self._store.fetch_all(
            f"SELECT * FROM {self.table} WHERE {where} ORDER BY id LIMIT ? OFFSET ?",
            (*params, limit, page_offset(page, limit)),
        )
        total = self._store.count(f"SELECT COUNT(*) FROM {self.table} WHERE {where}", params)
        return self._load_summary(rows), total

    def get_all(self) -> list[Row]:
        rows = self._store.fetch_all(
            f"SELECT * FROM {self.table} WHERE {self._store.scope(self.table)} ORDER BY id"
        )
        self._store.preload_many(rows, "subj_scheds", "subject_schedules", "academic_id")
        _attach_students(self._store, rows)
        return rows

    def create(self, academic: Mapping[str, Any]) -> int:
        """Insert the academic with nested ``terms`` and ``students``; return its id."""
        with self._store.transaction():
            academic_id = self._store.insert(self.table, academic)
            for term in academic.get("terms") or ():
                self._store.insert("terms", {**term, "academic_id": academic_id})
            self._link_students(academic_id, academic.get("students") or ())
        return academic_id

    def create_batch(self, academics: Iterable[Mapping[str, Any]]) -> list[int]:
        """Insert all academics atomically; an empty batch does nothing."""
        batch = list(academics)
        if not batch:
            return []
        with self._store.transaction():
            return [self.create(academic) for academic in batch]

    def find(self, academic_id: int) -> Row:
        """Return one academic with everything hanging off it."""
        store = self._store
        row = store.fetch_one(
            f"SELECT * FROM {self.table} WHERE id = ? AND {store.scope(self.table)} "
            f"ORDER BY id LIMIT 1",
            (academic_id,),
        )
        rows = self._load_summary([row])
        schedules = store.preload_many(rows, "subj_scheds", "subject_schedules", "academic_id")
        _load_schedule_links(store, schedules)
        notes = store.preload_many(rows, "class_notes", "class_notes", "academic_id")
        details = store.preload_many(notes, "details", "class_notes_details", "note_id")
        store.preload_one(details, "teacher", "teachers", "teacher_id")
        store.preload_one(details, "subj_sched", "subject_schedules", "subj_sched_id")
        _load_schedule_links(store, _related(details, "subj_sched"))
        return row

    def update(self, academic_id: int, academic: Mapping[str, Any]) -> None:
        """Update the columns and replace the enrolled students."""
        with self._store.transaction():
            self._store.execute(
                f"DELETE FROM {ACADEMIC_STUDENTS} WHERE academics_id = ?", (academic_id,)
            )
            self._store.update(self.table, academic_id, academic)
            self._link_students(academic_id, academic.get("students") or ())

    def delete(self, academic_id: int) -> None:
        self._store.delete(self.table, academic_id)

    def get_by_student(self, student_id: int) -> list[Row]:
        """Return the academics the student is enrolled in, with their terms."""
        store = self._store
        rows = store.fetch_all(
            f"SELECT {self.table}.* FROM {self.table} JOIN {ACADEMIC_STUDENTS} "
            f"ON {ACADEMIC_STUDENTS}.academics_id = {self.table}.id "
            f"WHERE {ACADEMIC_STUDENTS}.students_id = ? AND {store.scope(self.table)} "
            f"ORDER BY {self.table}.id",
            (student_id,),
        )
        store.preload_many(rows, "terms", "terms", "academic_id")
        return rows


class SubjSchedsRepository:
    """Weekly subject schedules of an academic year."""

    table = "subject_schedules"

    def __init__(self, store: Store):
        self._store = store

    def _load(self, rows: list[Row], *, with_classroom: bool = False) -> list[Row]:
        self._store.preload_one(rows, "academic", "academics", "academic_id")
        if with_classroom:
            self._store.preload_one(
                _related(rows, "academic"), "classroom", "classrooms", "classroom_id"
            )
        self._store.preload_one(rows, "subject", "subjects", "subject_id")
        self._store.preload_one(rows, "teacher", "teachers", "teacher_id")
        return rows

    def _where(self, column: str, value: Any) -> list[Row]:
        return self._store.fetch_all(
            f"SELECT * FROM {self.table} WHERE {column} = ? "
            f"AND {self._store.scope(self.table)} ORDER BY id",
            (value,),
        )

    def browse(self, page: int, limit: int, search: str) -> tuple[list[Row], int]:
        pattern = like_pattern(search)
        where = f"LOWER(display_name) LIKE ? AND {self._store.scope(self.table)}"
        rows = self._store.fetch_all(
            f"SELECT * FROM {self.table} WHERE {where} ORDER BY id LIMIT ? OFFSET ?",
            (pattern, limit, page_offset(page, limit)),
        )
        total = self._store.count(f"SELECT COUNT(*) FROM {self.table} WHERE {where}", (pattern,))
        return self._load(rows), total

    def create(self, schedules: Iterable[Mapping[str, Any]]) -> list[int]:
        """Insert all schedules atomically; an empty batch is an error."""
        batch = _require_batch(schedules)
        with self._store.transaction():
            return [self._store.insert(self.table, schedule) for schedule in batch]

    def find(self, schedule_id: int) -> Row:
        row = self._store.fetch_one(
            f"SELECT * FROM {self.table} WHERE id = ? AND {self._store.scope(self.table)} "
            f"ORDER BY id LIMIT 1",
            (schedule_id,),
        )
        return self._load([row])[0]

    def update(self, schedule_id: int, schedule: Mapping[str, Any]) -> None:
        self._store.update(self.table, schedule_id, schedule)

    def update_batch(
        self,
        added: Iterable[Mapping[str, Any]],
        updated: Iterable[Mapping[str, Any]],
        remove_ids: Iterable[int],
    ) -> list[int]:
        """Add, overwrite and permanently remove schedules in one transaction.

        Returns the ids of the added schedules.
        """
        new_rows = list(added)
        changed_rows = list(updated)
        removed = list(remove_ids)
        with self._store.transaction():
            new_ids = [self._store.insert(self.table, row) for row in new_rows]
            for row in changed_rows:
                self._store.save(self.table, row)
            if removed:
                self._store.delete(self.table, removed, hard=True)
        return new_ids

    def delete(self, schedule_id: int) -> None:
        self._store.delete(self.table, schedule_id)

    def get_all_by_teacher(self, teacher_id: int) -> list[Row]:
        return self._load(self._where("teacher_id", teacher_id), with_classroom=True)

    def get_by_academic(self, academic_id: int) -> list[Row]:
        """Return the schedules of an academic year, as a student sees them."""
        return self._load(self._where("academic_id", academic_id), with_classroom=True)