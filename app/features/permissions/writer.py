"""
Writes role permissions: single toggles and whole-matrix saves.

The writer goes straight to the store and never touches PermissionCache.
"""
from collections.abc import Awaitable, Callable, Sequence
from typing import Dict, List

from app.features.permissions.exceptions import PermissionSaveError, PermissionStoreError
from app.features.permissions.schemas import (
    FieldAccess,
    FieldPermissionKind,
    FieldPermissionRow,
    MenuPermissionRow,
    PermissionSet,
    SaveReport,
)
from app.features.permissions.store import PermissionStore
from app.utils import get_logger


log = get_logger(__name__)


def flatten_menu_rows(role_id: int, permissions: PermissionSet) -> List[MenuPermissionRow]:
    return [
        MenuPermissionRow(role_id=role_id, menu_id=menu_id, access=access)
        for menu_id, access in permissions.menus.items()
    ]


def flatten_field_rows(role_id: int, permissions: PermissionSet) -> List[FieldPermissionRow]:
    """Flatten screen -> field -> access into rows; edit=True always carries view=True."""
    rows: List[FieldPermissionRow] = []
    for screen_id, fields in permissions.fields.items():
        for field_id, access in fields.items():
            rows.append(
                FieldPermissionRow(
                    role_id=role_id,
                    screen_id=screen_id,
                    field_id=field_id,
                    view=access.view or access.edit,
                    edit=access.edit,
                )
            )
    return rows


class PermissionWriter:
    """Persists permission changes made in the administration screens."""

    def __init__(self, store: PermissionStore):
        self.store = store

    async def set_menu(self, role_id: int, menu_id: str, value: bool) -> bool:
        """Set one menu access flag, inserting the row if it does not exist."""
        existing = await self.store.get_menu_row(role_id, menu_id)
        if existing is not None:
            await self.store.update_menu_row(role_id, menu_id, value)
        else:
            await self.store.insert_menu_rows(
                [MenuPermissionRow(role_id=role_id, menu_id=menu_id, access=value)]
            )
        log.info(f"Role {role_id} menu {menu_id} access={value}")
        return value

    async def set_field(
        self,
        role_id: int,
        screen_id: str,
        field_id: str,
        kind: FieldPermissionKind,
        value: bool,
    ) -> FieldAccess:
        """
        Set the view or edit flag of one field.

        Read-modify-write on the row for (role_id, screen_id, field_id):
        - the flag that is not targeted keeps its stored value (False for a new row)
        - setting edit=True also sets view=True
        - setting view=False also clears edit

        Returns the stored pair.
        """
        if kind not in ("view", "edit"):
            raise ValueError(f"Unknown field permission kind: {kind!r}")

        existing = await self.store.get_field_row(role_id, screen_id, field_id)
        view = existing.view if existing is not None else False
        edit = existing.edit if existing is not None else False

        if kind == "edit":
            edit = value
            if value:
                view = True
        else:
            view = value
            if not value:
                edit = False

        if existing is not None:
            await self.store.update_field_row(role_id, screen_id, field_id, view=view, edit=edit)
        else:
            await self.store.insert_field_rows([
                FieldPermissionRow(
                    role_id=role_id,
                    screen_id=screen_id,
                    field_id=field_id,
                    view=view,
                    edit=edit,
                )
            ])

        log.info(f"Role {role_id} field {screen_id}.{field_id} view={view} edit={edit}")
        return FieldAccess(view=view, edit=edit)

    async def save_all(self, role_id: int, permissions: PermissionSet) -> SaveReport:
        """
        Write a role's whole permission matrix.

        Menus and fields are saved independently: each kind is upserted on its
        composite key and, if the upsert is rejected, replaced by deleting all
        of the role's rows of that kind and inserting the flattened list. The
        delete and insert share one store transaction where the store has one.

        Raises:
            PermissionSaveError: after both kinds were attempted, if either
            kind could not be saved.
        """
        menu_rows = flatten_menu_rows(role_id, permissions)
        field_rows = flatten_field_rows(role_id, permissions)
        report = SaveReport(menu_rows=len(menu_rows), field_rows=len(field_rows))
        failures: Dict[str, Exception] = {}

        try:
            report.menus_fallback = await self._save_rows(
                "menus",
                role_id,
                menu_rows,
                upsert=self.store.upsert_menu_rows,
                delete=self.store.delete_menu_rows,
                insert=self.store.insert_menu_rows,
            )
        except PermissionStoreError as exc:
            failures["menus"] = exc

        try:
            report.fields_fallback = await self._save_rows(
                "fields",
                role_id,
                field_rows,
                upsert=self.store.upsert_field_rows,
                delete=self.store.delete_field_rows,
                insert=self.store.insert_field_rows,
            )
        except PermissionStoreError as exc:
            failures["fields"] = exc

        if failures:
            raise PermissionSaveError(role_id, failures)

        log.info(
            f"Saved permissions for role {role_id}: {report.menu_rows} menus, {report.field_rows} fields"
        )
        return report

    async def _save_rows(
        self,
        kind: str,
        role_id: int,
        rows: Sequence,
        upsert: Callable[[Sequence], Awaitable[None]],
        delete: Callable[[int], Awaitable[None]],
        insert: Callable[[Sequence], Awaitable[None]],
    ) -> bool:
        """Upsert rows of one kind; returns True if the delete+insert fallback was used."""
        if not rows:
            return False

        try:
            async with self.store.transaction():
                await upsert(rows)
            return False
        except PermissionStoreError as exc:
            log.warning(f"Upsert of {kind} permissions for role {role_id} failed ({exc}), replacing all rows")

        try:
            async with self.store.transaction():
                await delete(role_id)
                await insert(rows)
        except PermissionStoreError as exc:
            log.error(f"Fallback save of {kind} permissions for role {role_id} failed: {exc}")
            raise

        return True
