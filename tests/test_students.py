import sqlite3

import pytest

from eisrecords.store import RecordNotFoundError, Store
from eisrecords.students import StudentsRepository

SCHEMA = """
CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT, email TEXT,
    created_at TEXT, updated_at TEXT, deleted_at TEXT);
CREATE TABLE applicants (id INTEGER PRIMARY KEY, full_name TEXT,
    created_at TEXT, updated_at TEXT, deleted_at TEXT);
CREATE TABLE students (id INTEGER PRIMARY KEY, full_name TEXT, nis TEXT,
    applicant_id INTEGER, user_id INTEGER, current_academic_id INTEGER,
    created_at TEXT, updated_at TEXT, deleted_at TEXT);
CREATE TABLE guardians (id INTEGER PRIMARY KEY, name TEXT, applicant_id INTEGER,
    student_id INTEGER, created_at TEXT, updated_at TEXT, deleted_at TEXT);
CREATE TABLE documents (id INTEGER PRIMARY KEY, name TEXT, applicant_id INTEGER,
    student_id INTEGER, type_id INTEGER, created_at TEXT, updated_at TEXT, deleted_at TEXT);
CREATE TABLE teachers (id INTEGER PRIMARY KEY, name TEXT,
    created_at TEXT, updated_at TEXT, deleted_at TEXT);
CREATE TABLE classrooms (id INTEGER PRIMARY KEY, display_name TEXT, level_id INTEGER,
    created_at TEXT, updated_at TEXT, deleted_at TEXT);
CREATE TABLE academics (id INTEGER PRIMARY KEY, display_name TEXT, classroom_id INTEGER,
    homeroom_teacher_id INTEGER, start_year TEXT, end_year TEXT,
    created_at TEXT, updated_at TEXT, deleted_at TEXT);
CREATE TABLE academic_students (academics_id INTEGER, students_id INTEGER);
CREATE TABLE terms (id INTEGER PRIMARY KEY, name TEXT, academic_id INTEGER,
    created_at TEXT, updated_at TEXT, deleted_at TEXT);
"""


@pytest.fixture
def store():
    connection = sqlite3.connect(":memory:", isolation_level=None)
    connection.executescript(SCHEMA)
    yield Store(connection)
    connection.close()


@pytest.fixture
def students(store):
    return StudentsRepository(store)


@pytest.fixture
def academic_id(store):
    classroom_id = store.insert("classrooms", {"display_name": "1A"})
    teacher_id = store.insert("teachers", {"name": "Ann Smith"})
    academic = store.insert(
        "academics",
        {
            "display_name": "1A 2024/2025",
            "classroom_id": classroom_id,
            "homeroom_teacher_id": teacher_id,
            "start_year": "2024",
            "end_year": "2025",
        },
    )
    store.insert("terms", {"name": "Term 1", "academic_id": academic})
    store.insert("terms", {"name": "Term 2", "academic_id": academic})
    return academic


def _enrolled(store, academic):
    rows = store.fetch_all(
        "SELECT students_id FROM academic_students WHERE academics_id = ? ORDER BY students_id",
        (academic,),
    )
    return [row["students_id"] for row in rows]


def test_find_preloads_associations(store, students):
    user_id = store.insert("users", {"name": "Kid", "email": "kid@example.com"})
    applicant_id = store.insert("applicants", {"full_name": "Kid Doe"})
    student_id = students.create(
        {"full_name": "Kid Doe", "applicant_id": applicant_id, "user_id": user_id}
    )
    store.insert("guardians", {"name": "Mum Doe", "student_id": student_id})
    store.insert("documents", {"name": "Birth certificate", "student_id": student_id})
    student = students.find(student_id)
    assert student["full_name"] == "Kid Doe"
    assert student["applicant"]["id"] == applicant_id
    assert student["user"]["email"] == "kid@example.com"
    assert [g["name"] for g in student["guardians"]] == ["Mum Doe"]
    assert [d["name"] for d in student["documents"]] == ["Birth certificate"]


def test_find_missing_or_deleted_raises(students):
    with pytest.raises(RecordNotFoundError):
        students.find(1)
    student_id = students.create({"full_name": "Kid Doe"})
    students.delete(student_id)
    with pytest.raises(RecordNotFoundError):
        students.find(student_id)


def test_browse_lists_deleted_but_counts_live(students):
    first = students.create({"full_name": "Kid Doe"})
    second = students.create({"full_name": "Other Doe"})
    students.create({"full_name": "Someone Else"})
    students.delete(second)
    rows, total = students.browse(1, 10, "DOE")
    assert [row["id"] for row in rows] == [first, second]
    assert total == 1


def test_browse_paging(students):
    ids = [students.create({"full_name": name}) for name in ("Kid A", "Kid B", "Kid C")]
    rows, total = students.browse(2, 2, "kid")
    assert [row["id"] for row in rows] == ids[2:]
    assert total == len(ids)


def test_get_by_ids_skips_deleted(students):
    ids = [students.create({"full_name": name}) for name in ("Kid A", "Kid B", "Kid C")]
    students.delete(ids[1])
    assert [row["id"] for row in students.get_by_ids(ids)] == [ids[0], ids[2]]
    assert students.get_by_ids([]) == []


def test_update_and_undelete(students):
    student_id = students.create({"full_name": "Kid Doe"})
    students.update(student_id, {"nis": "A-1"})
    assert students.find(student_id)["nis"] == "A-1"
    students.delete(student_id)
    students.undelete(student_id)
    assert students.find(student_id)["deleted_at"] is None


def test_update_current_academic_enrols_once(store, students, academic_id):
    ids = [students.create({"full_name": name}) for name in ("Kid A", "Kid B")]
    students.update_current_academic(academic_id, ids)
    students.update_current_academic(academic_id, ids)
    assert [row["current_academic_id"] for row in students.get_by_ids(ids)] == [
        academic_id,
        academic_id,
    ]
    assert _enrolled(store, academic_id) == ids


def test_update_current_academic_missing_academic(store, students):
    student_id = students.create({"full_name": "Kid Doe"})
    with pytest.raises(RecordNotFoundError):
        students.update_current_academic(99, [student_id])
    assert students.find(student_id)["current_academic_id"] is None
    assert _enrolled(store, 99) == []


def test_get_by_token_loads_academics(store, students, academic_id):
    user_id = store.insert("users", {"name": "Kid", "email": "kid@example.com"})
    student_id = students.create({"full_name": "Kid Doe", "user_id": user_id})
    store.insert("guardians", {"name": "Dad Doe", "student_id": student_id})
    students.update_current_academic(academic_id, [student_id])
    student = students.get_by_token(user_id)
    assert student["id"] == student_id
    assert student["user"]["id"] == user_id
    assert [g["name"] for g in student["guardians"]] == ["Dad Doe"]
    (academic,) = student["academics"]
    assert academic["id"] == academic_id
    assert [term["name"] for term in academic["terms"]] == ["Term 1", "Term 2"]
    assert academic["classroom"]["display_name"] == "1A"
    assert academic["homeroom_teacher"]["name"] == "Ann Smith"


def test_get_by_token_sees_deleted_student(store, students):
    user_id = store.insert("users", {"name": "Kid", "email": "kid@example.com"})
    student_id = students.create({"full_name": "Kid Doe", "user_id": user_id})
    students.delete(student_id)
    student = students.get_by_token(user_id)
    assert student["id"] == student_id
    assert student["academics"] == []
    with pytest.raises(RecordNotFoundError):
        students.get_by_token(user_id + 1)