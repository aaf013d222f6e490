"""Repositories for permissions, roles and user accounts."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from eisrecords.catalog import _Repository
from eisrecords.store import RecordNotFoundError, Row, Store

ROLE_PERMISSIONS = "role_permissions"


class PermissionsNotFoundError(RecordNotFoundError):
    """Raised when a permissions lookup yields no rows."""

    def __init__(self, message: str = "permissions not found"):
        super().__init__(message)


def _permission_ids(entries: Iterable[Any]) -> list[int]:
    """Accept permission ids or permission rows and return their ids."""
    return [int(entry["id"]) if isinstance(entry, Mapping) else int(entry) for entry in entries]


def _placeholders(values: list[Any]) -> str:
    return ", ".join("?" for _ in values)


def _attach_permissions(store: Store, roles: list[Row]) -> None:
    """Set ``permissions`` on each role from the role/permission join table."""
    for role in roles:
        role["permissions"] = []
    ids = [role["id"] for role in roles]
    if not ids:
        return
    sql = (
        f"SELECT {ROLE_PERMISSIONS}.roles_id AS owner_role_id, permissions.* "
        f"FROM permissions JOIN {ROLE_PERMISSIONS} "
        f"ON {ROLE_PERMISSIONS}.permissions_id = permissions.id "
        f"WHERE {ROLE_PERMISSIONS}.roles_id IN ({_placeholders(ids)}) "
        f"AND {store.scope('permissions')} ORDER BY permissions.id"
    )
    by_role = {role["id"]: role for role in roles}
    for permission in store.fetch_all(sql, ids):
        owner = permission.pop("owner_role_id")
        by_role[owner]["permissions"].append(permission)


class PermissionsRepository(_Repository):
    """Read access to the fixed set of permissions."""

    table = "permissions"

    def __init__(self, store: Store):
        super().__init__(store)

    @staticmethod
    def _require(rows: list[Row]) -> list[Row]:
        if not rows:
            raise PermissionsNotFoundError()
        return rows

    def get_all(self) -> list[Row]:
        return self._require(self._all())

    def get_by_ids(self, ids: Iterable[int]) -> list[Row]:
        id_list = self._require(list(ids))
        return self._require(
            self._store.fetch_all(
                f"SELECT * FROM {self.table} WHERE id IN ({_placeholders(id_list)}) "
                f"AND {self._live} ORDER BY id",
                id_list,
            )
        )


class RolesRepository(_Repository):
    """Roles and the permissions granted to them."""

    table = "roles"

    def __init__(self, store: Store):
        super().__init__(store)

    def _link(self, role_id: int, role: Mapping[str, Any]) -> None:
        for permission_id in _permission_ids(role.get("permissions") or ()):
            self._store.insert(
                ROLE_PERMISSIONS, {"roles_id": role_id, "permissions_id": permission_id}
            )

    def _unlink(self, role_id: int) -> None:
        self._store.execute(f"DELETE FROM {ROLE_PERMISSIONS} WHERE roles_id = ?", (role_id,))

    def browse(self, page: int, limit: int, search: str) -> tuple[list[Row], int]:
        return self._page(page, limit, search)

    def create(self, role: Mapping[str, Any]) -> int:
        """Insert a role with its ``permissions`` (ids or rows); return its id."""
        with self._store.transaction():
            role_id = self._insert(role)
            self._link(role_id, role)
        return role_id

    def find(self, role_id: int) -> Row:
        role = self._get(role_id)
        _attach_permissions(self._store, [role])
        return role

    def update(self, role_id: int, role: Mapping[str, Any]) -> None:
        """Update the role's columns and replace its permissions."""
        with self._store.transaction():
            self._unlink(role_id)
            self._change(role_id, role)
            self._link(role_id, role)

    def delete(self, role_id: int) -> None:
        """Remove the role for good, with its permission links."""
        with self._store.transaction():
            self._unlink(role_id)
            self._remove(role_id, hard=True)

    def find_by_name(self, name: str) -> Row:
        return self._first_where("name = ?", name)


class UsersRepository(_Repository):
    """User accounts, including soft-deleted ones when browsing."""

    table = "users"

    def __init__(self, store: Store):
        super().__init__(store)

    def create(self, user: Mapping[str, Any]) -> int:
        return self._insert(user)

    def find(self, user_id: int) -> Row:
        return self._get(user_id)

    def login(self, email: str, password: str) -> Row:
        """Return the user with these credentials, with role and permissions."""
        user = self._first_where("email = ? AND password = ?", email, password)
        self._store.preload_one([user], "role", "roles", "role_id")
        if user["role"] is not None:
            _attach_permissions(self._store, [user["role"]])
        return user

    def browse(self, page: int, limit: int, search: str) -> tuple[list[Row], int]:
        rows, total = self._page(page, limit, search, scoped=False)
        self._store.preload_one(rows, "role", "roles", "role_id")
        return rows, total

    def update(self, user: Mapping[str, Any]) -> int:
        """Write every field of the user; returns its id."""
        return self._store.save(self.table, user)

    def undelete(self, user_id: int) -> None:
        with self._store.transaction():
            self._store.execute(
                f"UPDATE {self.table} SET deleted_at = NULL WHERE id = ?", (user_id,)
            )

    def delete(self, user_id: int) -> None:
        with self._store.transaction():
            self._remove(user_id)