"""Shared fixtures: in-memory SQLite database, fake clock and in-memory store."""

from contextlib import asynccontextmanager
from typing import Dict, List, Optional, Set, Tuple

import pytest
import pytest_asyncio

from app.core.database.engine import build_engine, build_session_factory, init_db
from app.features.permissions.exceptions import PermissionStoreError
from app.features.permissions.models import Role
from app.features.permissions.schemas import FieldPermissionRow, MenuPermissionRow
from app.features.permissions.store import PermissionStore, SQLAlchemyPermissionStore


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class InMemoryPermissionStore(PermissionStore):
    """
    Dict-backed store with failure injection.

    Operations named in fail_on raise PermissionStoreError; calls records
    every operation name in order.
    """

    def __init__(self):
        self.menus: Dict[Tuple[int, str], bool] = {}
        self.fields: Dict[Tuple[int, str, str], Tuple[bool, bool]] = {}
        self.fail_on: Set[str] = set()
        self.calls: List[str] = []

    def _call(self, name: str) -> None:
        self.calls.append(name)
        if name in self.fail_on:
            raise PermissionStoreError(f"{name} failed")

    async def fetch_menu_rows(self, role_id: int) -> List[MenuPermissionRow]:
        self._call("fetch_menu_rows")
        return [
            MenuPermissionRow(role_id=rid, menu_id=menu_id, access=access)
            for (rid, menu_id), access in sorted(self.menus.items())
            if rid == role_id
        ]

    async def fetch_field_rows(self, role_id: int) -> List[FieldPermissionRow]:
        self._call("fetch_field_rows")
        return [
            FieldPermissionRow(role_id=rid, screen_id=screen_id, field_id=field_id, view=view, edit=edit)
            for (rid, screen_id, field_id), (view, edit) in sorted(self.fields.items())
            if rid == role_id
        ]

    async def get_menu_row(self, role_id: int, menu_id: str) -> Optional[MenuPermissionRow]:
        self._call("get_menu_row")
        if (role_id, menu_id) not in self.menus:
            return None
        return MenuPermissionRow(role_id=role_id, menu_id=menu_id, access=self.menus[(role_id, menu_id)])

    async def get_field_row(self, role_id: int, screen_id: str, field_id: str) -> Optional[FieldPermissionRow]:
        self._call("get_field_row")
        key = (role_id, screen_id, field_id)
        if key not in self.fields:
            return None
        view, edit = self.fields[key]
        return FieldPermissionRow(role_id=role_id, screen_id=screen_id, field_id=field_id, view=view, edit=edit)

    async def update_menu_row(self, role_id: int, menu_id: str, access: bool) -> None:
        self._call("update_menu_row")
        self.menus[(role_id, menu_id)] = access

    async def update_field_row(self, role_id: int, screen_id: str, field_id: str, view: bool, edit: bool) -> None:
        self._call("update_field_row")
        self.fields[(role_id, screen_id, field_id)] = (view, edit)

    async def upsert_menu_rows(self, rows) -> None:
        self._call("upsert_menu_rows")
        for row in rows:
            self.menus[(row.role_id, row.menu_id)] = row.access

    async def upsert_field_rows(self, rows) -> None:
        self._call("upsert_field_rows")
        for row in rows:
            self.fields[(row.role_id, row.screen_id, row.field_id)] = (row.view, row.edit)

    async def delete_menu_rows(self, role_id: int) -> None:
        self._call("delete_menu_rows")
        self.menus = {key: value for key, value in self.menus.items() if key[0] != role_id}

    async def delete_field_rows(self, role_id: int) -> None:
        self._call("delete_field_rows")
        self.fields = {key: value for key, value in self.fields.items() if key[0] != role_id}

    async def insert_menu_rows(self, rows) -> None:
        self._call("insert_menu_rows")
        for row in rows:
            key = (row.role_id, row.menu_id)
            if key in self.menus:
                raise PermissionStoreError(f"duplicate menu permission {key}")
            self.menus[key] = row.access

    async def insert_field_rows(self, rows) -> None:
        self._call("insert_field_rows")
        for row in rows:
            key = (row.role_id, row.screen_id, row.field_id)
            if key in self.fields:
                raise PermissionStoreError(f"duplicate field permission {key}")
            self.fields[key] = (row.view, row.edit)

    @asynccontextmanager
    async def transaction(self):
        self.calls.append("transaction")
        yield


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_store():
    return InMemoryPermissionStore()


@pytest_asyncio.fixture
async def engine():
    engine = build_engine("sqlite+aiosqlite://")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def role(db):
    role = Role(name="ATENDIMENTO", description="Front desk operator")
    db.add(role)
    await db.commit()
    await db.refresh(role)
    return role


@pytest.fixture
def store(db):
    return SQLAlchemyPermissionStore(db)
