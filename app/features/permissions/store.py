"""
Raw read/write access to the two permission tables.

PermissionStore is the contract the fetcher and writer depend on;
SQLAlchemyPermissionStore implements it on an AsyncSession. Every failure
surfaces as PermissionStoreError.
"""
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from typing import Any, List, Optional
from pydantic import BaseModel, ValidationError
from sqlalchemy import select, update, delete, insert, func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.permissions.exceptions import PermissionStoreError
from app.features.permissions.models import MenuPermission, FieldPermission
from app.features.permissions.schemas import MenuPermissionRow, FieldPermissionRow
from app.utils import get_logger


log = get_logger(__name__)

MENU_CONFLICT_KEY = ("role_id", "menu_id")
FIELD_CONFLICT_KEY = ("role_id", "screen_id", "field_id")


class PermissionStore(ABC):
    """Store client contract for menu and field permission rows."""

    @abstractmethod
    async def fetch_menu_rows(self, role_id: int) -> List[MenuPermissionRow]: ...

    @abstractmethod
    async def fetch_field_rows(self, role_id: int) -> List[FieldPermissionRow]: ...

    @abstractmethod
    async def get_menu_row(self, role_id: int, menu_id: str) -> Optional[MenuPermissionRow]: ...

    @abstractmethod
    async def get_field_row(self, role_id: int, screen_id: str, field_id: str) -> Optional[FieldPermissionRow]: ...

    @abstractmethod
    async def update_menu_row(self, role_id: int, menu_id: str, access: bool) -> None: ...

    @abstractmethod
    async def update_field_row(self, role_id: int, screen_id: str, field_id: str, view: bool, edit: bool) -> None: ...

    @abstractmethod
    async def upsert_menu_rows(self, rows: Sequence[MenuPermissionRow]) -> None: ...

    @abstractmethod
    async def upsert_field_rows(self, rows: Sequence[FieldPermissionRow]) -> None: ...

    @abstractmethod
    async def delete_menu_rows(self, role_id: int) -> None: ...

    @abstractmethod
    async def delete_field_rows(self, role_id: int) -> None: ...

    @abstractmethod
    async def insert_menu_rows(self, rows: Sequence[MenuPermissionRow]) -> None: ...

    @abstractmethod
    async def insert_field_rows(self, rows: Sequence[FieldPermissionRow]) -> None: ...

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """Scope a group of writes. Stores without transactions just run them."""
        yield


class SQLAlchemyPermissionStore(PermissionStore):
    """
    Permission store backed by an AsyncSession.

    Reads select plain columns so results never come from a stale identity map.
    Writes are Core statements executed immediately; committing is left to the
    session owner (get_db commits at the end of the request).
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _execute(self, stmt, action: str) -> Any:
        try:
            return await self.db.execute(stmt)
        except SQLAlchemyError as exc:
            log.debug(f"Permission store {action} failed: {exc}")
            raise PermissionStoreError(f"Failed to {action}") from exc

    @staticmethod
    def _to_record(model: type[BaseModel], row) -> Any:
        """Convert a selected row; rows with ids that are not slugs count as store failures."""
        try:
            return model.model_validate(dict(row._mapping))
        except ValidationError as exc:
            log.warning(f"Malformed {model.__name__} in permission tables: {dict(row._mapping)}")
            raise PermissionStoreError(f"Malformed {model.__name__} row") from exc

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """Run the enclosed writes inside a SAVEPOINT; any error rolls all of them back."""
        try:
            async with self.db.begin_nested():
                yield
        except SQLAlchemyError as exc:
            raise PermissionStoreError("Permission transaction failed") from exc

    def _dialect_insert(self, model):
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            return pg_insert(model)
        if dialect == "sqlite":
            return sqlite_insert(model)
        raise PermissionStoreError(f"Upsert is not supported on dialect {dialect!r}")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def fetch_menu_rows(self, role_id: int) -> List[MenuPermissionRow]:
        stmt = (
            select(MenuPermission.role_id, MenuPermission.menu_id, MenuPermission.access)
            .where(MenuPermission.role_id == role_id)
            .order_by(MenuPermission.menu_id)
        )
        result = await self._execute(stmt, f"fetch menu permissions of role {role_id}")
        return [self._to_record(MenuPermissionRow, row) for row in result.all()]

    async def fetch_field_rows(self, role_id: int) -> List[FieldPermissionRow]:
        stmt = (
            select(
                FieldPermission.role_id,
                FieldPermission.screen_id,
                FieldPermission.field_id,
                FieldPermission.view,
                FieldPermission.edit,
            )
            .where(FieldPermission.role_id == role_id)
            .order_by(FieldPermission.screen_id, FieldPermission.field_id)
        )
        result = await self._execute(stmt, f"fetch field permissions of role {role_id}")
        return [self._to_record(FieldPermissionRow, row) for row in result.all()]

    async def get_menu_row(self, role_id: int, menu_id: str) -> Optional[MenuPermissionRow]:
        stmt = select(MenuPermission.role_id, MenuPermission.menu_id, MenuPermission.access).where(
            MenuPermission.role_id == role_id,
            MenuPermission.menu_id == menu_id,
        )
        result = await self._execute(stmt, f"read menu permission {menu_id} of role {role_id}")
        row = result.first()
        return self._to_record(MenuPermissionRow, row) if row else None

    async def get_field_row(self, role_id: int, screen_id: str, field_id: str) -> Optional[FieldPermissionRow]:
        stmt = select(
            FieldPermission.role_id,
            FieldPermission.screen_id,
            FieldPermission.field_id,
            FieldPermission.view,
            FieldPermission.edit,
        ).where(
            FieldPermission.role_id == role_id,
            FieldPermission.screen_id == screen_id,
            FieldPermission.field_id == field_id,
        )
        result = await self._execute(stmt, f"read field permission {screen_id}.{field_id} of role {role_id}")
        row = result.first()
        return self._to_record(FieldPermissionRow, row) if row else None

    # ------------------------------------------------------------------
    # Point writes
    # ------------------------------------------------------------------

    async def update_menu_row(self, role_id: int, menu_id: str, access: bool) -> None:
        stmt = (
            update(MenuPermission)
            .where(MenuPermission.role_id == role_id, MenuPermission.menu_id == menu_id)
            .values(access=access)
            .execution_options(synchronize_session=False)
        )
        await self._execute(stmt, f"update menu permission {menu_id} of role {role_id}")

    async def update_field_row(self, role_id: int, screen_id: str, field_id: str, view: bool, edit: bool) -> None:
        stmt = (
            update(FieldPermission)
            .where(
                FieldPermission.role_id == role_id,
                FieldPermission.screen_id == screen_id,
                FieldPermission.field_id == field_id,
            )
            .values(view=view, edit=edit)
            .execution_options(synchronize_session=False)
        )
        await self._execute(stmt, f"update field permission {screen_id}.{field_id} of role {role_id}")

    # ------------------------------------------------------------------
    # Bulk writes
    # ------------------------------------------------------------------

    async def upsert_menu_rows(self, rows: Sequence[MenuPermissionRow]) -> None:
        if not rows:
            return
        stmt = self._dialect_insert(MenuPermission).values([row.model_dump() for row in rows])
        stmt = stmt.on_conflict_do_update(
            index_elements=list(MENU_CONFLICT_KEY),
            set_={"access": stmt.excluded.access, "updated_at": func.now()},
        )
        await self._execute(stmt, f"upsert {len(rows)} menu permissions")

    async def upsert_field_rows(self, rows: Sequence[FieldPermissionRow]) -> None:
        if not rows:
            return
        stmt = self._dialect_insert(FieldPermission).values([row.model_dump() for row in rows])
        stmt = stmt.on_conflict_do_update(
            index_elements=list(FIELD_CONFLICT_KEY),
            set_={"view": stmt.excluded.view, "edit": stmt.excluded.edit, "updated_at": func.now()},
        )
        await self._execute(stmt, f"upsert {len(rows)} field permissions")

    async def delete_menu_rows(self, role_id: int) -> None:
        stmt = (
            delete(MenuPermission)
            .where(MenuPermission.role_id == role_id)
            .execution_options(synchronize_session=False)
        )
        await self._execute(stmt, f"delete menu permissions of role {role_id}")

    async def delete_field_rows(self, role_id: int) -> None:
        stmt = (
            delete(FieldPermission)
            .where(FieldPermission.role_id == role_id)
            .execution_options(synchronize_session=False)
        )
        await self._execute(stmt, f"delete field permissions of role {role_id}")

    async def insert_menu_rows(self, rows: Sequence[MenuPermissionRow]) -> None:
        if not rows:
            return
        stmt = insert(MenuPermission).values([row.model_dump() for row in rows])
        await self._execute(stmt, f"insert {len(rows)} menu permissions")

    async def insert_field_rows(self, rows: Sequence[FieldPermissionRow]) -> None:
        if not rows:
            return
        stmt = insert(FieldPermission).values([row.model_dump() for row in rows])
        await self._execute(stmt, f"insert {len(rows)} field permissions")
