# eisrecords

Repositories for the records of a school information system: levels and
their certificate histories, document types, subjects, classrooms, terms,
permissions, roles and users, blogs, applicants with their guardians and
documents, teachers with their work schedules and attendance, students,
academic years and subject schedules, student attendance and grades, and
class notes.

Every repository works on a `Store`, a thin layer over an `sqlite3`
connection. Rows go in and come out as plain dictionaries; related records
are attached to a row as nested dictionaries or lists (for example a
classroom row gets a `level` entry, an applicant row gets `guardians` and
`documents`).

## Installing

```
pip install .
```

With the test dependencies:

```
pip install ".[test]"
```

## Using it

```python
import sqlite3

from eisrecords.store import Store, RecordNotFoundError
from eisrecords.catalog import SubjectsRepository

connection = sqlite3.connect(":memory:")
connection.execute(
    "CREATE TABLE subjects (id INTEGER PRIMARY KEY, name TEXT, "
    "created_at TEXT, updated_at TEXT, deleted_at TEXT)"
)
store = Store(connection)

subjects = SubjectsRepository(store)
maths_id = subjects.create({"name": "Mathematics"})
subjects.create({"name": "Physics"})

rows, total = subjects.browse(1, 20, "math", "name", "ASC")

subjects.delete(maths_id)  # soft delete: deleted_at is stamped
try:
    subjects.find(maths_id)
except RecordNotFoundError:
    print("no such subject")
```

## How the store behaves

- `Store.insert` fills `created_at` and `updated_at` when the table has
  them and returns the new id. Values that are dicts, lists or tuples
  (nested associations) are skipped; any other key that is not a column
  raises `ValueError`.
- `Store.update` writes only the values that are not `None`, and only to a
  row that is not soft-deleted. `Store.save` writes every field, inserting
  the row when it has no id or the id does not exist yet.
- Tables with a `deleted_at` column are soft-deleted: `Store.delete` stamps
  the column and queries leave such rows out, unless `hard=True` is given.
- `Store.transaction()` is a context manager built on savepoints; blocks
  may nest, and a block that raises rolls back its own changes. Writes
  made outside a transaction are committed at once.
- `like_pattern(search)` builds the case-insensitive substring pattern used
  by searches; `page_offset(page, limit)` turns a 1-based page into a row
  offset.

## Repositories

Browse methods return one page of matching rows and the total number of
matches. Single-record look-ups raise `RecordNotFoundError` when nothing
matches (`PermissionsRepository` raises its subclass
`PermissionsNotFoundError` when it finds no permissions);
`ClassNotesRepository.find_detail` returns `None` instead.

- `eisrecords.store`: `Store`, `RecordNotFoundError`, `like_pattern`, `page_offset`
- `eisrecords.catalog`: `LevelsRepository`, `LevelHistoriesRepository`,
  `DocTypesRepository`, `SubjectsRepository`, `ClassroomsRepository`,
  `TermsRepository`
- `eisrecords.access`: `PermissionsRepository`, `RolesRepository`,
  `UsersRepository`, `PermissionsNotFoundError`
- `eisrecords.content`: `BlogsRepository`, `ApplicantsRepository`,
  `GuardiansRepository`, `DocumentsRepository`
- `eisrecords.staff`: `TeachersRepository`, `WorkSchedsRepository`,
  `WorkSchedDetailsRepository`, `TeacherAttsRepository`
- `eisrecords.students`: `StudentsRepository`
- `eisrecords.academics`: `AcademicsRepository`, `SubjSchedsRepository`
- `eisrecords.attendance`: `StudentAttsRepository`, `StudentGradesRepository`
- `eisrecords.classnotes`: `ClassNotesRepository`,
  `ClassNotesDetailsRepository` and `weekday_name`

Batch writes (for example `SubjSchedsRepository.update_batch`,
`ClassNotesRepository.update` or `StudentGradesRepository.update_by_term`)
run in a single transaction. Most batch-creating methods raise `ValueError`
on an empty batch; `ClassroomsRepository.create_batch` and
`AcademicsRepository.create_batch` return an empty list instead.

`UsersRepository.login(email, password)` looks the user up by the e-mail
and password exactly as stored and attaches the role and its permissions.

## What it does not do

- It does not create or migrate tables. The schema must already exist in
  the database; the store reads column names from it with SQLite's
  `PRAGMA table_info`, so it works with SQLite connections only.
- It has no HTTP interface, routes, request validation or command-line
  tool: it is a library of repositories to call from your own code.
- It does not hash passwords or issue tokens.

## Running the tests

```
pytest
```