"""Repositories for student attendance and student grades."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from eisrecords.store import RecordNotFoundError, Row, Store, like_pattern, page_offset


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


class StudentAttsRepository:
    """Daily attendance of students within an academic term."""

    table = "student_attendances"

    def __init__(self, store: Store):
        self._store = store

    def _load(self, rows: list[Row], *, with_level: bool = False) -> list[Row]:
        self._store.preload_one(rows, "academic", "academics", "academic_id")
        if with_level:
            academics = _related(rows, "academic")
            self._store.preload_one(academics, "classroom", "classrooms", "classroom_id")
            self._store.preload_one(
                _related(academics, "classroom"), "level", "levels", "level_id"
            )
        self._store.preload_one(rows, "student", "students", "student_id")
        return rows

    def browse_by_term(
        self, term_id: int, page: int, limit: int, search: str, date: str
    ) -> tuple[list[Row], int]:
        """Page through a term's attendances; ``date`` narrows the page, not the total."""
        pattern = like_pattern(search)
        base = f"term_id = ? AND LOWER(display_name) LIKE ? AND {self._store.scope(self.table)}"
        conditions = [base]
        params: list[Any] = [term_id, pattern]
        if date:
            conditions.append("DATE(date) = ?")
            params.append(date)
        rows = self._store.fetch_all(
            f"SELECT * FROM {self.table} WHERE {' AND '.join(conditions)} "
            f"ORDER BY id LIMIT ? OFFSET ?",
            (*params, limit, page_offset(page, limit)),
        )
        total = self._store.count(
            f"SELECT COUNT(*) FROM {self.table} WHERE {base}", (term_id, pattern)
        )
        return self._load(rows), total

    def create_batch(self, attendances: Iterable[Mapping[str, Any]]) -> list[int]:
        """Insert all attendances atomically; an empty batch is an error."""
        batch = _require_batch(attendances)
        with self._store.transaction():
            return [self._store.insert(self.table, attendance) for attendance in batch]

    def find_by_academic_date(self, academic_id: int, date: str) -> list[Row]:
        """Return the attendances of the day; raises RecordNotFoundError if none."""
        rows = self._store.fetch_all(
            f"SELECT * FROM {self.table} WHERE academic_id = ? AND DATE(date) = ? "
            f"AND {self._store.scope(self.table)} ORDER BY id",
            (academic_id, date),
        )
        if not rows:
            raise RecordNotFoundError("no attendance recorded on that date")
        return self._load(rows)

    def update_batch(self, attendances: Iterable[Mapping[str, Any]]) -> list[int]:
        """Write every field of each attendance; return their ids."""
        with self._store.transaction():
            return [self._store.save(self.table, attendance) for attendance in attendances]

    def browse(
        self,
        academic_id: int,
        level_id: int,
        class_id: int,
        term_id: int,
        search: str,
        start_date: str,
        end_date: str,
    ) -> list[Row]:
        """Attendance report; zero ids and empty dates leave a filter off."""
        table = self.table
        joins = ""
        conditions = [self._store.scope(table)]
        params: list[Any] = []
        if academic_id > 0:
            conditions.append(f"{table}.academic_id = ?")
            params.append(academic_id)
        if level_id > 0:
            joins = (
                f" JOIN academics ON academics.id = {table}.academic_id"
                " JOIN classrooms ON classrooms.id = academics.classroom_id"
            )
            conditions.append("classrooms.level_id = ?")
            params.append(level_id)
        if class_id > 0:
            conditions.append(f"{table}.class_id = ?")
            params.append(class_id)
        if term_id > 0:
            conditions.append(f"{table}.term_id = ?")
            params.append(term_id)
        conditions.append(f"LOWER({table}.display_name) LIKE ?")
        params.append(like_pattern(search))
        if start_date and end_date:
            conditions.append(f"DATE({table}.date) BETWEEN ? AND ?")
            params.extend((start_date, end_date))
        rows = self._store.fetch_all(
            f"SELECT {table}.* FROM {table}{joins} WHERE {' AND '.join(conditions)} "
            f"ORDER BY {table}.id",
            params,
        )
        return self._load(rows, with_level=True)

    def get_by_student(self, student_id: int, start: str, end: str) -> list[Row]:
        """Return the student's attendances in the current academic year, by date.

        Raises RecordNotFoundError when there are none.
        """
        table = self.table
        rows = self._store.fetch_all(
            f"SELECT {table}.* FROM {table} "
            f"JOIN students ON students.id = {table}.student_id "
            f"WHERE {table}.student_id = ? "
            f"AND {table}.academic_id = students.current_academic_id "
            f"AND {table}.date BETWEEN ? AND ? AND {self._store.scope(table)} "
            f"ORDER BY {table}.date ASC, {table}.id",
            (student_id, start, end),
        )
        if not rows:
            raise RecordNotFoundError("no attendance for the student in that period")
        self._store.preload_one(rows, "academic", "academics", "academic_id")
        return rows


class StudentGradesRepository:
    """Per-subject grades of students in a term."""

    table = "student_grades"

    def __init__(self, store: Store):
        self._store = store

    def get_all(self, term_id: int) -> list[Row]:
        rows = self._store.fetch_all(
            f"SELECT * FROM {self.table} WHERE term_id = ? "
            f"AND {self._store.scope(self.table)} ORDER BY id",
            (term_id,),
        )
        self._store.preload_one(rows, "academic", "academics", "academic_id")
        self._store.preload_one(rows, "term", "terms", "term_id")
        self._store.preload_one(rows, "student", "students", "student_id")
        self._store.preload_one(rows, "subject", "subjects", "subject_id")
        return rows

    def create(self, grades: Iterable[Mapping[str, Any]]) -> list[int]:
        """Insert all grades atomically; an empty batch is an error."""
        batch = _require_batch(grades)
        with self._store.transaction():
            return [self._store.insert(self.table, grade) for grade in batch]

    def update_by_term(
        self, grades: Iterable[Mapping[str, Any]], new_grades: Iterable[Mapping[str, Any]]
    ) -> None:
        """Insert ``new_grades`` and overwrite ``grades`` in one transaction."""
        existing = list(grades)
        fresh = list(new_grades)
        with self._store.transaction():
            for grade in fresh:
                self._store.insert(self.table, grade)
            for grade in existing:
                self._store.save(self.table, grade)

    def get_report(
        self, start_year: str, end_year: str, level_id: int, academic_id: int, term_id: int
    ) -> list[Row]:
        """Average final grade per student and term, best first within a term."""
        conditions = ["academics.start_year = ? AND academics.end_year = ?"]
        params: list[Any] = [start_year, end_year]
        if level_id > 0:
            conditions.append("classrooms.level_id = ?")
            params.append(level_id)
        if academic_id > 0:
            conditions.append("student_grades.academic_id = ?")
            params.append(academic_id)
        if term_id > 0:
            conditions.append("student_grades.term_id = ?")
            params.append(term_id)
        sql = (
            "SELECT students.id AS student_id, students.full_name AS student, students.nis, "
            "classrooms.id AS class_id, "
            "classrooms.display_name || ' : ' || terms.name AS class, "
            "ROUND(AVG(student_grades.final_grade), 2) AS finals "
            "FROM student_grades "
            "JOIN terms ON terms.id = student_grades.term_id "
            "JOIN academics ON terms.academic_id = academics.id "
            "JOIN students ON students.id = student_grades.student_id "
            "JOIN classrooms ON classrooms.id = academics.classroom_id "
            f"WHERE {' AND '.join(conditions)} "
            "GROUP BY students.id, terms.id "
            "ORDER BY terms.id, finals DESC, students.id"
        )
        return self._store.fetch_all(sql, params)

    def get_by_student(self, student_id: int, term_id: int) -> list[Row]:
        """Return one student's grades in a term, ordered by subject."""
        rows = self._store.fetch_all(
            f"SELECT * FROM {self.table} WHERE student_id = ? AND term_id = ? "
            f"AND {self._store.scope(self.table)} ORDER BY subject_id, id",
            (student_id, term_id),
        )
        self._store.preload_one(rows, "subject", "subjects", "subject_id")
        return rows