"""Repositories for class notes (daily teaching journals) and their details."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any

from eisrecords.store import Row, Store, like_pattern, page_offset

DETAILS_TABLE = "class_notes_details"

_WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


def _related(rows: Iterable[Row], field: str) -> list[Row]:
    """Return the distinct non-empty ``field`` objects attached to ``rows``."""
    seen: dict[int, Row] = {}
    for row in rows:
        item = row.get(field)
        if item is not None:
            seen.setdefault(id(item), item)
    return list(seen.values())


def weekday_name(date: str) -> str:
    """Return the English weekday name of a ``YYYY-MM-DD`` date."""
    try:
        parsed = datetime.strptime(date, "%Y-%m-%d")
    except ValueError as exc:
        raise ValueError(f"invalid date {date!r}: expected YYYY-MM-DD") from exc
    return _WEEKDAYS[parsed.weekday()]


class ClassNotesRepository:
    """Class notes of an academic year, each with per-lesson details."""

    table = "class_notes"

    def __init__(self, store: Store):
        self._store = store

    def _load(self, rows: list[Row], *, with_details: bool) -> list[Row]:
        store = self._store
        store.preload_one(rows, "academic", "academics", "academic_id")
        if with_details:
            details = store.preload_many(rows, "details", DETAILS_TABLE, "note_id")
            store.preload_one(details, "subj_sched", "subject_schedules", "subj_sched_id")
            schedules = _related(details, "subj_sched")
            store.preload_one(schedules, "teacher", "teachers", "teacher_id")
            store.preload_one(schedules, "subject", "subjects", "subject_id")
            store.preload_one(details, "teacher", "teachers", "teacher_id")
        return rows

    def _page(
        self, conditions: list[str], params: list[Any], page: int, limit: int
    ) -> tuple[list[Row], int]:
        where = " AND ".join([*conditions, self._store.scope(self.table)])
        rows = self._store.fetch_all(
            f"SELECT * FROM {self.table} WHERE {where} ORDER BY id LIMIT ? OFFSET ?",
            (*params, limit, page_offset(page, limit)),
        )
        total = self._store.count(f"SELECT COUNT(*) FROM {self.table} WHERE {where}", params)
        return rows, total

    def _insert_note(self, note: Mapping[str, Any]) -> int:
        note_id = self._store.insert(self.table, note)
        for detail in note.get("details") or ():
            self._store.insert(DETAILS_TABLE, {**detail, "note_id": note_id})
        return note_id

    def browse(self, page: int, limit: int, search: str) -> tuple[list[Row], int]:
        rows, total = self._page(["LOWER(display_name) LIKE ?"], [like_pattern(search)], page, limit)
        return self._load(rows, with_details=False), total

    def browse_by_academic(
        self, academic_id: int, page: int, limit: int, search: str
    ) -> tuple[list[Row], int]:
        """Page through one academic year's notes, with their details."""
        rows, total = self._page(
            ["academic_id = ?", "LOWER(display_name) LIKE ?"],
            [academic_id, like_pattern(search)],
            page,
            limit,
        )
        return self._load(rows, with_details=True), total

    def create(self, note: Mapping[str, Any]) -> int:
        """Insert a note with its nested ``details``; return its id."""
        with self._store.transaction():
            return self._insert_note(note)

    def create_batch(self, notes: Iterable[Mapping[str, Any]]) -> list[int]:
        """Insert all notes atomically; an empty batch is an error."""
        batch = list(notes)
        if not batch:
            raise ValueError("empty batch: nothing to create")
        with self._store.transaction():
            return [self._insert_note(note) for note in batch]

    def find(self, note_id: int) -> Row:
        row = self._store.fetch_one(
            f"SELECT * FROM {self.table} WHERE id = ? AND {self._store.scope(self.table)} "
            f"ORDER BY id LIMIT 1",
            (note_id,),
        )
        return self._load([row], with_details=True)[0]

    def find_detail(self, detail_id: int) -> Row | None:
        """Return one detail row, or None when there is no such detail."""
        rows = self._store.fetch_all(
            f"SELECT * FROM {DETAILS_TABLE} WHERE id = ? "
            f"AND {self._store.scope(DETAILS_TABLE)} ORDER BY id LIMIT 1",
            (detail_id,),
        )
        return rows[0] if rows else None

    def update(
        self,
        note_id: int,
        added: Iterable[Mapping[str, Any]],
        updated: Iterable[Mapping[str, Any]],
        remove_ids: Iterable[int],
    ) -> list[int]:
        """Add, overwrite and permanently remove details in one transaction.

        Added details without a ``note_id`` are attached to ``note_id``.
        Returns the ids of the added details.
        """
        new_rows = list(added)
        changed_rows = list(updated)
        removed = list(remove_ids)
        with self._store.transaction():
            new_ids = [
                self._store.insert(DETAILS_TABLE, {"note_id": note_id, **row}) for row in new_rows
            ]
            for row in changed_rows:
                self._store.save(DETAILS_TABLE, row)
            if removed:
                self._store.delete(DETAILS_TABLE, removed, hard=True)
        return new_ids

    def create_detail(self, detail: Mapping[str, Any]) -> int:
        with self._store.transaction():
            return self._store.insert(DETAILS_TABLE, detail)

    def update_detail(self, detail: Mapping[str, Any]) -> int:
        """Write every field of the detail; return its id."""
        with self._store.transaction():
            return self._store.save(DETAILS_TABLE, detail)

    def delete(self, note_id: int) -> None:
        """Delete the note together with its details."""
        store = self._store
        with store.transaction():
            detail_ids = [
                row["id"]
                for row in store.fetch_all(
                    f"SELECT id FROM {DETAILS_TABLE} WHERE note_id = ? "
                    f"AND {store.scope(DETAILS_TABLE)}",
                    (note_id,),
                )
            ]
            store.delete(DETAILS_TABLE, detail_ids)
            store.delete(self.table, note_id)

    def find_by_teacher(self, teacher_id: int, sched_id: int, date: str) -> list[Row]:
        """Notes of the day in which the teacher taught the given schedule."""
        table = self.table
        rows = self._store.fetch_all(
            f"SELECT DISTINCT {table}.* FROM {table} "
            f"JOIN {DETAILS_TABLE} ON {table}.id = {DETAILS_TABLE}.note_id "
            f"JOIN subject_schedules ON {DETAILS_TABLE}.subj_sched_id = subject_schedules.id "
            f"WHERE {DETAILS_TABLE}.teacher_id = ? AND subject_schedules.id = ? "
            f"AND DATE({table}.date) = ? AND {self._store.scope(table)} "
            f"ORDER BY {table}.id",
            (teacher_id, sched_id, date),
        )
        return self._load(rows, with_details=True)


_AGENDA_SQL = f"""
SELECT
    {DETAILS_TABLE}.id,
    CASE WHEN DATE(class_notes.date) = ? THEN {DETAILS_TABLE}.note_id ELSE NULL END AS note_id,
    subject_schedules.day,
    class_notes.date,
    classrooms.display_name AS class,
    subjects.name AS subject,
    subject_schedules.id AS subj_sched_id,
    subject_schedules.academic_id,
    teachers.name AS teacher,
    COALESCE(subject_schedules.teacher_id, {DETAILS_TABLE}.teacher_id) AS teacher_act_id,
    teachers.id AS teacher_id,
    subject_schedules.start_hour,
    subject_schedules.end_hour,
    CASE WHEN DATE(class_notes.date) = ? THEN {DETAILS_TABLE}.materials ELSE NULL END AS materials,
    {DETAILS_TABLE}.notes
FROM subject_schedules
LEFT JOIN {DETAILS_TABLE}
    ON subject_schedules.id = {DETAILS_TABLE}.subj_sched_id
    AND {DETAILS_TABLE}.note_id IN (
        SELECT id FROM class_notes WHERE DATE(class_notes.date) = ?
    )
LEFT JOIN class_notes
    ON {DETAILS_TABLE}.note_id = class_notes.id
    AND DATE(class_notes.date) = ?
JOIN subjects ON subject_schedules.subject_id = subjects.id
JOIN academics ON subject_schedules.academic_id = academics.id
JOIN classrooms ON academics.classroom_id = classrooms.id
LEFT JOIN teachers
    ON teachers.id = COALESCE({DETAILS_TABLE}.teacher_id, subject_schedules.teacher_id)
WHERE subject_schedules.day = ?
    AND (teachers.id = ? OR {DETAILS_TABLE}.teacher_id = ?)
ORDER BY subject_schedules.id, {DETAILS_TABLE}.id
"""


class ClassNotesDetailsRepository:
    """A teacher's lessons of a day, joined with any notes already written."""

    def __init__(self, store: Store):
        self._store = store

    def get_all_by_teacher(self, teacher_id: int, date: str) -> list[Row]:
        """Return the teacher's agenda for ``date`` (``YYYY-MM-DD``).

        Lessons scheduled on that weekday appear with ``note_id`` and
        ``materials`` filled in only when a note exists for that date; a
        lesson taken over by another teacher appears under the substitute.
        """
        weekday = weekday_name(date)
        return self._store.fetch_all(
            _AGENDA_SQL, (date, date, date, date, weekday, teacher_id, teacher_id)
        )