"""
Loads a role's full permission set from the store.
"""
from typing import Dict, Iterable

from app.features.permissions.schemas import (
    FieldAccess,
    FieldPermissionRow,
    MenuPermissionRow,
    PermissionSet,
)
from app.features.permissions.store import PermissionStore


def build_permission_set(
    menu_rows: Iterable[MenuPermissionRow],
    field_rows: Iterable[FieldPermissionRow],
) -> PermissionSet:
    """Flatten stored rows into menu_id -> access and screen_id -> field_id -> FieldAccess."""
    menus: Dict[str, bool] = {row.menu_id: row.access for row in menu_rows}

    fields: Dict[str, Dict[str, FieldAccess]] = {}
    for row in field_rows:
        fields.setdefault(row.screen_id, {})[row.field_id] = FieldAccess(view=row.view, edit=row.edit)

    return PermissionSet(menus=menus, fields=fields)


async def fetch_permission_set(store: PermissionStore, role_id: int) -> PermissionSet:
    """
    Read every menu and field row of a role.

    Raises:
        PermissionStoreError: if either read fails. Callers resolving access
        must degrade to an empty set, never to elevated access.
    """
    menu_rows = await store.fetch_menu_rows(role_id)
    field_rows = await store.fetch_field_rows(role_id)
    return build_permission_set(menu_rows, field_rows)
