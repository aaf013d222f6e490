"""Repository for enrolled students."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from eisrecords.store import Row, Store, like_pattern, page_offset

ACADEMIC_STUDENTS = "academic_students"


def _marks(count: int) -> str:
    return ", ".join(["?"] * count)


class StudentsRepository:
    """Students with their applicant record, account, guardians and documents."""

    table = "students"

    def __init__(self, store: Store):
        self._store = store

    def _load(self, rows: list[Row]) -> list[Row]:
        self._store.preload_one(rows, "applicant", "applicants", "applicant_id")
        self._store.preload_one(rows, "user", "users", "user_id")
        self._store.preload_many(rows, "guardians", "guardians", "student_id")
        self._store.preload_many(rows, "documents", "documents", "student_id")
        return rows

    def _academics_of(self, student_id: int) -> list[Row]:
        store = self._store
        academics = store.fetch_all(
            f"SELECT academics.* FROM academics JOIN {ACADEMIC_STUDENTS} "
            f"ON {ACADEMIC_STUDENTS}.academics_id = academics.id "
            f"WHERE {ACADEMIC_STUDENTS}.students_id = ? AND {store.scope('academics')} "
            f"ORDER BY academics.id",
            (student_id,),
        )
        store.preload_many(academics, "terms", "terms", "academic_id")
        store.preload_one(academics, "classroom", "classrooms", "classroom_id")
        store.preload_one(academics, "homeroom_teacher", "teachers", "homeroom_teacher_id")
        return academics

    def browse(self, page: int, limit: int, search: str) -> tuple[list[Row], int]:
        """Page through students, deleted ones included; the total counts live ones."""
        pattern = like_pattern(search)
        rows = self._store.fetch_all(
            f"SELECT * FROM {self.table} WHERE LOWER(full_name) LIKE ? "
            f"ORDER BY id LIMIT ? OFFSET ?",
            (pattern, limit, page_offset(page, limit)),
        )
        total = self._store.count(
            f"SELECT COUNT(*) FROM {self.table} WHERE LOWER(full_name) LIKE ? "
            f"AND {self._store.scope(self.table)}",
            (pattern,),
        )
        return self._load(rows), total

    def create(self, student: Mapping[str, Any]) -> int:
        return self._store.insert(self.table, student)

    def get_by_ids(self, ids: Iterable[int]) -> list[Row]:
        id_list = list(ids)
        if not id_list:
            return []
        return self._store.fetch_all(
            f"SELECT * FROM {self.table} WHERE id IN ({_marks(len(id_list))}) "
            f"AND {self._store.scope(self.table)} ORDER BY id",
            id_list,
        )

    def get_by_token(self, user_id: int) -> Row:
        """Return the student owned by the user, with guardians and academics."""
        student = self._store.fetch_one(
            f"SELECT * FROM {self.table} WHERE user_id = ? ORDER BY id LIMIT 1",
            (user_id,),
        )
        self._store.preload_many([student], "guardians", "guardians", "student_id")
        self._store.preload_one([student], "user", "users", "user_id")
        student["academics"] = self._academics_of(student["id"])
        return student

    def find(self, student_id: int) -> Row:
        student = self._store.fetch_one(
            f"SELECT * FROM {self.table} WHERE id = ? AND {self._store.scope(self.table)} "
            f"ORDER BY id LIMIT 1",
            (student_id,),
        )
        return self._load([student])[0]

    def update(self, student_id: int, student: Mapping[str, Any]) -> None:
        self._store.update(self.table, student_id, student)

    def update_current_academic(self, academic_id: int, student_ids: Iterable[int]) -> None:
        """Move the students into the academic year and enrol them in it.

        Raises RecordNotFoundError when the academic year does not exist.
        """
        id_list = list(student_ids)
        store = self._store
        with store.transaction():
            store.fetch_one(
                f"SELECT id FROM academics WHERE id = ? AND {store.scope('academics')}",
                (academic_id,),
            )
            students = self.get_by_ids(id_list)
            enrolled = {
                row["students_id"]
                for row in store.fetch_all(
                    f"SELECT students_id FROM {ACADEMIC_STUDENTS} WHERE academics_id = ?",
                    (academic_id,),
                )
            }
            for student in students:
                store.update(self.table, student["id"], {"current_academic_id": academic_id})
                if student["id"] not in enrolled:
                    store.insert(
                        ACADEMIC_STUDENTS,
                        {"academics_id": academic_id, "students_id": student["id"]},
                    )
                    enrolled.add(student["id"])

    def undelete(self, student_id: int) -> None:
        self._store.execute(
            f"UPDATE {self.table} SET deleted_at = NULL WHERE id = ?", (student_id,)
        )

    def delete(self, student_id: int) -> None:
        self._store.delete(self.table, student_id)