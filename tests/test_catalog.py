import sqlite3

import pytest

from eisrecords.catalog import (
    ClassroomsRepository,
    DocTypesRepository,
    LevelHistoriesRepository,
    LevelsRepository,
    SubjectsRepository,
    TermsRepository,
)
from eisrecords.store import RecordNotFoundError, Store

SCHEMA = """
CREATE TABLE levels (
    id INTEGER PRIMARY KEY AUTOINCREMENT, name TEXT,
    created_at TEXT, updated_at TEXT, deleted_at TEXT
);
CREATE TABLE teachers (
    id INTEGER PRIMARY KEY AUTOINCREMENT, name TEXT, deleted_at TEXT
);
CREATE TABLE level_histories (
    id INTEGER PRIMARY KEY AUTOINCREMENT, level_id INTEGER, principle_id INTEGER,
    op_cert_num TEXT, created_at TEXT, updated_at TEXT, deleted_at TEXT
);
CREATE TABLE doc_types (
    id INTEGER PRIMARY KEY AUTOINCREMENT, name TEXT,
    created_at TEXT, updated_at TEXT, deleted_at TEXT
);
CREATE TABLE subjects (
    id INTEGER PRIMARY KEY AUTOINCREMENT, name TEXT,
    created_at TEXT, updated_at TEXT, deleted_at TEXT
);
CREATE TABLE classrooms (
    id INTEGER PRIMARY KEY AUTOINCREMENT, display_name TEXT, level_id INTEGER,
    created_at TEXT, updated_at TEXT, deleted_at TEXT
);
CREATE TABLE academics (
    id INTEGER PRIMARY KEY AUTOINCREMENT, display_name TEXT, deleted_at TEXT
);
CREATE TABLE terms (
    id INTEGER PRIMARY KEY AUTOINCREMENT, name TEXT, academic_id INTEGER, deleted_at TEXT
);
"""


@pytest.fixture
def store():
    connection = sqlite3.connect(":memory:")
    connection.executescript(SCHEMA)
    try:
        yield Store(connection)
    finally:
        connection.close()


@pytest.mark.parametrize(
    "repo_class, field, old, new",
    [
        (LevelsRepository, "name", "Old", "New"),
        (LevelHistoriesRepository, "op_cert_num", "N-1", "N-2"),
        (DocTypesRepository, "name", "Birth certificate", "Birth record"),
        (SubjectsRepository, "name", "Music", "Music Theory"),
        (ClassroomsRepository, "display_name", "1A", "1B"),
    ],
)
def test_round_trip(store, repo_class, field, old, new):
    repo = repo_class(store)
    row_id = repo.create({field: old})
    assert repo.find(row_id)[field] == old
    repo.update(row_id, {field: new})
    assert repo.find(row_id)[field] == new
    repo.update(row_id, {field: None})
    assert repo.find(row_id)[field] == new
    repo.delete(row_id)
    with pytest.raises(RecordNotFoundError):
        repo.find(row_id)


@pytest.mark.parametrize(
    "repo_class",
    [
        LevelsRepository,
        LevelHistoriesRepository,
        DocTypesRepository,
        SubjectsRepository,
        ClassroomsRepository,
        TermsRepository,
    ],
)
def test_find_missing_raises(store, repo_class):
    with pytest.raises(RecordNotFoundError):
        repo_class(store).find(99)


@pytest.mark.parametrize(
    "repo_class, field, values, search, expected",
    [
        (LevelsRepository, "name", ["Primary", "Junior High", "Senior High"], "HIGH",
         ["Junior High", "Senior High"]),
        (LevelHistoriesRepository, "op_cert_num", ["ABC-100", "XYZ-200"], "abc", ["ABC-100"]),
        (DocTypesRepository, "name", ["Birth certificate", "Report card"], "birth",
         ["Birth certificate"]),
        (ClassroomsRepository, "display_name", ["1A", "2B"], "a", ["1A"]),
    ],
)
def test_browse_search_and_delete(store, repo_class, field, values, search, expected):
    repo = repo_class(store)
    for value in values:
        repo.create({field: value})
    rows, total = repo.browse(1, 10, search)
    assert [row[field] for row in rows] == expected
    assert total == len(expected)
    repo.delete(rows[0]["id"])
    assert repo.browse(1, 10, search)[1] == len(expected) - 1


def test_levels_browse_pages_are_disjoint_and_total_is_full(store):
    repo = LevelsRepository(store)
    for name in "abcde":
        repo.create({"name": name})
    first, total_first = repo.browse(1, 2, "")
    second, total_second = repo.browse(2, 2, "")
    assert total_first == total_second == 5
    assert len(first) == len(second) == 2
    assert not {row["id"] for row in first} & {row["id"] for row in second}


def test_levels_browse_preloads_histories_and_principle(store):
    repo = LevelsRepository(store)
    level_id = repo.create({"name": "Primary"})
    teacher_id = store.insert("teachers", {"name": "Ms Head"})
    LevelHistoriesRepository(store).create(
        {"level_id": level_id, "principle_id": teacher_id, "op_cert_num": "CERT-1"}
    )
    rows, _ = repo.browse(1, 10, "")
    histories = rows[0]["histories"]
    assert [history["op_cert_num"] for history in histories] == ["CERT-1"]
    assert histories[0]["principle"]["name"] == "Ms Head"


@pytest.fixture
def subjects(store):
    return SubjectsRepository(store)


def test_subjects_sort_by_name_desc(subjects):
    for name in ("Biology", "Art", "Chemistry"):
        subjects.create({"name": name})
    rows, total = subjects.browse(1, 10, "", "name", "desc")
    assert total == 3
    assert [row["name"] for row in rows] == ["Chemistry", "Biology", "Art"]


def test_subjects_unknown_column_falls_back_to_created_at(subjects):
    subjects.create({"name": "Late", "created_at": "2024-02-01 00:00:00"})
    subjects.create({"name": "Early", "created_at": "2024-01-01 00:00:00"})
    rows, _ = subjects.browse(1, 10, "", "display_name", "asc")
    assert [row["name"] for row in rows] == ["Early", "Late"]


def test_subjects_bad_sort_order_is_ignored(subjects):
    subjects.create({"name": "Math"})
    rows, total = subjects.browse(1, 10, "", "name", "; DROP TABLE subjects")
    assert total == 1
    assert subjects.find(rows[0]["id"])["name"] == "Math"


def test_subjects_search_and_paging(subjects):
    for name in ("Physics", "Physical Education", "History"):
        subjects.create({"name": name})
    rows, total = subjects.browse(1, 1, "Phys", "id", "asc")
    assert total == 2
    assert [row["name"] for row in rows] == ["Physics"]


def test_classrooms_find_and_browse_preload_level(store):
    level_id = LevelsRepository(store).create({"name": "Primary"})
    repo = ClassroomsRepository(store)
    classroom_id = repo.create({"display_name": "1A", "level_id": level_id})
    repo.create({"display_name": "2B", "level_id": None})
    assert repo.find(classroom_id)["level"]["name"] == "Primary"
    rows, _ = repo.browse(1, 10, "")
    assert [row["level"]["id"] if row["level"] else None for row in rows] == [level_id, None]


def test_classrooms_create_batch_and_get_all(store):
    repo = ClassroomsRepository(store)
    assert repo.create_batch([]) == []
    ids = repo.create_batch([{"display_name": "1A"}, {"display_name": "1B"}])
    everything = repo.get_all()
    assert [row["id"] for row in everything] == ids
    assert [row["display_name"] for row in everything] == ["1A", "1B"]
    repo.delete(ids[1])
    assert [row["id"] for row in repo.get_all()] == ids[:1]


def test_classrooms_create_batch_is_atomic(store):
    repo = ClassroomsRepository(store)
    with pytest.raises(ValueError):
        repo.create_batch([{"display_name": "1A"}, {"no_such_column": "x"}])
    assert repo.get_all() == []


@pytest.mark.parametrize("with_academic", [True, False])
def test_terms_find_preloads_academic(store, with_academic):
    academic_id = store.insert("academics", {"display_name": "2024/2025"}) if with_academic else 77
    term_id = store.insert("terms", {"name": "Odd", "academic_id": academic_id})
    term = TermsRepository(store).find(term_id)
    assert term["name"] == "Odd"
    academic = term["academic"]
    assert (academic["display_name"] if academic else None) == (
        "2024/2025" if with_academic else None
    )