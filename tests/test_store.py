"""Tests for the SQLAlchemy permission store and the writer on a real SQLite database."""

import pytest
from sqlalchemy import select, func

from app.features.permissions.cache import PermissionCache
from app.features.permissions.exceptions import PermissionSaveError, PermissionStoreError
from app.features.permissions.fetcher import fetch_permission_set
from app.features.permissions.models import FieldPermission, MenuPermission, Role
from app.features.permissions.resolver import resolve_permissions
from app.features.permissions.schemas import (
    FieldAccess,
    FieldPermissionRow,
    MenuPermissionRow,
    PermissionSet,
    RoleDescriptor,
)
from app.features.permissions.store import SQLAlchemyPermissionStore
from app.features.permissions.writer import PermissionWriter


class RejectingUpsertStore(SQLAlchemyPermissionStore):
    """Store whose upserts are rejected, as when the conflict target is missing."""

    async def upsert_menu_rows(self, rows):
        raise PermissionStoreError("ON CONFLICT target has no matching unique constraint")

    async def upsert_field_rows(self, rows):
        raise PermissionStoreError("ON CONFLICT target has no matching unique constraint")


class FailingInsertStore(RejectingUpsertStore):
    """Fallback insert fails after its delete already ran."""

    async def insert_menu_rows(self, rows):
        raise PermissionStoreError("insert failed")


def sample_set() -> PermissionSet:
    return PermissionSet(
        menus={"socios": True, "contas-pagar": False},
        fields={
            "socios": {
                "cpf": FieldAccess(view=True, edit=True),
                "dataAdmissao": FieldAccess(view=True, edit=False),
            },
            "financeiro": {"data_vencimento": FieldAccess(view=False, edit=False)},
        },
    )


async def count_rows(db, model, role_id):
    result = await db.execute(select(func.count()).select_from(model).where(model.role_id == role_id))
    return result.scalar_one()


class TestStoreReadsAndWrites:
    """Tests for the raw store operations."""

    @pytest.mark.asyncio
    async def test_empty_role_has_no_rows(self, store, role):
        assert await store.fetch_menu_rows(role.id) == []
        assert await store.fetch_field_rows(role.id) == []
        assert await store.get_menu_row(role.id, "socios") is None
        assert await store.get_field_row(role.id, "socios", "cpf") is None

    @pytest.mark.asyncio
    async def test_insert_then_fetch(self, store, role):
        await store.insert_menu_rows([MenuPermissionRow(role_id=role.id, menu_id="socios", access=True)])
        await store.insert_field_rows([
            FieldPermissionRow(role_id=role.id, screen_id="socios", field_id="cpf", view=True, edit=False)
        ])

        [menu] = await store.fetch_menu_rows(role.id)
        [field] = await store.fetch_field_rows(role.id)

        assert (menu.menu_id, menu.access) == ("socios", True)
        assert (field.screen_id, field.field_id, field.view, field.edit) == ("socios", "cpf", True, False)

    @pytest.mark.asyncio
    async def test_update_rows(self, store, role):
        await store.insert_menu_rows([MenuPermissionRow(role_id=role.id, menu_id="socios", access=True)])
        await store.insert_field_rows([
            FieldPermissionRow(role_id=role.id, screen_id="socios", field_id="cpf", view=False, edit=False)
        ])

        await store.update_menu_row(role.id, "socios", False)
        await store.update_field_row(role.id, "socios", "cpf", view=True, edit=True)

        assert (await store.get_menu_row(role.id, "socios")).access is False
        field = await store.get_field_row(role.id, "socios", "cpf")
        assert (field.view, field.edit) == (True, True)

    @pytest.mark.asyncio
    async def test_upsert_overwrites_on_composite_key(self, store, role):
        await store.upsert_menu_rows([MenuPermissionRow(role_id=role.id, menu_id="socios", access=False)])
        await store.upsert_menu_rows([
            MenuPermissionRow(role_id=role.id, menu_id="socios", access=True),
            MenuPermissionRow(role_id=role.id, menu_id="empresas", access=False),
        ])

        rows = await store.fetch_menu_rows(role.id)

        assert {(r.menu_id, r.access) for r in rows} == {("socios", True), ("empresas", False)}

    @pytest.mark.asyncio
    async def test_duplicate_insert_raises_store_error(self, store, role):
        row = MenuPermissionRow(role_id=role.id, menu_id="socios", access=True)
        await store.insert_menu_rows([row])

        with pytest.raises(PermissionStoreError):
            async with store.transaction():
                await store.insert_menu_rows([row])

        # The savepoint rolled back; the session is still usable
        assert len(await store.fetch_menu_rows(role.id)) == 1

    @pytest.mark.asyncio
    async def test_delete_is_scoped_to_role(self, db, store, role):
        other = Role(name="FINANCEIRO")
        db.add(other)
        await db.flush()
        await store.insert_menu_rows([
            MenuPermissionRow(role_id=role.id, menu_id="socios", access=True),
            MenuPermissionRow(role_id=other.id, menu_id="socios", access=True),
        ])

        await store.delete_menu_rows(role.id)

        assert await store.fetch_menu_rows(role.id) == []
        assert len(await store.fetch_menu_rows(other.id)) == 1


class TestWriterOnDatabase:
    """Writer behaviour against the real tables."""

    @pytest.mark.asyncio
    async def test_edit_toggle_implies_view(self, store, role):
        writer = PermissionWriter(store)

        await writer.set_field(role.id, "socios", "cpf", "edit", True)
        row = await store.get_field_row(role.id, "socios", "cpf")

        assert (row.view, row.edit) == (True, True)

    @pytest.mark.asyncio
    async def test_save_all_enforces_edit_implies_view(self, store, role):
        writer = PermissionWriter(store)
        permissions = PermissionSet.model_validate({
            "menus": {"socios": True},
            "fields": {"socios": {"cpf": {"view": False, "edit": True}}},
        })

        await writer.save_all(role.id, permissions)
        resolved = await fetch_permission_set(store, role.id)

        assert resolved.fields["socios"]["cpf"] == FieldAccess(view=True, edit=True)
        row = await store.get_field_row(role.id, "socios", "cpf")
        assert (row.view, row.edit) == (True, True)

    @pytest.mark.asyncio
    async def test_save_all_round_trips_through_fetch(self, store, role):
        writer = PermissionWriter(store)

        report = await writer.save_all(role.id, sample_set())

        assert report.menus_fallback is False
        assert report.fields_fallback is False
        assert await fetch_permission_set(store, role.id) == sample_set()

    @pytest.mark.asyncio
    async def test_save_all_twice_is_idempotent(self, db, store, role):
        writer = PermissionWriter(store)

        await writer.save_all(role.id, sample_set())
        once_menus = await store.fetch_menu_rows(role.id)
        once_fields = await store.fetch_field_rows(role.id)
        await writer.save_all(role.id, sample_set())

        assert await store.fetch_menu_rows(role.id) == once_menus
        assert await store.fetch_field_rows(role.id) == once_fields
        assert await count_rows(db, MenuPermission, role.id) == 2
        assert await count_rows(db, FieldPermission, role.id) == 3

    @pytest.mark.asyncio
    async def test_fallback_leaves_exactly_the_input(self, db, role):
        store = RejectingUpsertStore(db)
        await store.insert_menu_rows([MenuPermissionRow(role_id=role.id, menu_id="relatorios", access=True)])
        await store.insert_field_rows([
            FieldPermissionRow(role_id=role.id, screen_id="empresas", field_id="cnpj", view=True, edit=True)
        ])
        writer = PermissionWriter(store)

        report = await writer.save_all(role.id, sample_set())

        assert report.menus_fallback is True
        assert report.fields_fallback is True
        assert await fetch_permission_set(store, role.id) == sample_set()

    @pytest.mark.asyncio
    async def test_failed_fallback_rolls_back_its_delete(self, db, role):
        """Delete and insert share a savepoint, so a failed insert keeps the old rows."""
        store = FailingInsertStore(db)
        await SQLAlchemyPermissionStore(db).insert_menu_rows([MenuPermissionRow(role_id=role.id, menu_id="relatorios", access=True)])
        writer = PermissionWriter(store)

        with pytest.raises(PermissionSaveError) as exc_info:
            await writer.save_all(role.id, sample_set())

        assert set(exc_info.value.failures) == {"menus"}
        [menu] = await store.fetch_menu_rows(role.id)
        assert (menu.menu_id, menu.access) == ("relatorios", True)
        # Fields were still saved
        assert (await fetch_permission_set(store, role.id)).fields == sample_set().fields


class TestCacheStaleness:
    """Resolution through the cache after writes."""

    @pytest.mark.asyncio
    async def test_warm_cache_serves_pre_change_value(self, store, role, clock):
        descriptor = RoleDescriptor.from_role(role.id, role.name, ("ADMINISTRADOR", "TI"))
        cache = PermissionCache(ttl_seconds=300, clock=clock)
        writer = PermissionWriter(store)

        await writer.set_field(role.id, "socios", "cpf", "view", True)
        warm = await resolve_permissions(descriptor, store, cache)
        assert warm.can_edit_field("socios", "cpf") is False

        await writer.set_field(role.id, "socios", "cpf", "edit", True)

        clock.advance(120)
        stale = await resolve_permissions(descriptor, store, cache)
        assert stale.can_edit_field("socios", "cpf") is False

        clock.advance(180)
        fresh = await resolve_permissions(descriptor, store, cache)
        assert fresh.can_edit_field("socios", "cpf") is True

    @pytest.mark.asyncio
    async def test_cold_cache_sees_post_change_value(self, store, role, clock):
        descriptor = RoleDescriptor.from_role(role.id, role.name, ("ADMINISTRADOR", "TI"))
        writer = PermissionWriter(store)

        await writer.set_menu(role.id, "socios", True)
        resolver = await resolve_permissions(descriptor, store, PermissionCache(ttl_seconds=300, clock=clock))

        assert resolver.can_access_menu("socios") is True


class TestMalformedRows:
    """Rows whose ids are not slugs, as left by legacy data."""

    @pytest.mark.asyncio
    async def test_fetch_raises_store_error(self, db, store, role):
        db.add(MenuPermission(role_id=role.id, menu_id="contas pagar", access=True))
        await db.flush()

        with pytest.raises(PermissionStoreError):
            await store.fetch_menu_rows(role.id)

    @pytest.mark.asyncio
    async def test_resolution_denies_by_default(self, db, store, role, clock):
        db.add(MenuPermission(role_id=role.id, menu_id="contas pagar", access=True))
        db.add(FieldPermission(role_id=role.id, screen_id="socios", field_id="cpf", view=True, edit=True))
        await db.flush()
        descriptor = RoleDescriptor.from_role(role.id, role.name, ("ADMINISTRADOR", "TI"))
        cache = PermissionCache(ttl_seconds=300, clock=clock)

        resolver = await resolve_permissions(descriptor, store, cache)

        assert resolver.permissions.is_empty()
        assert resolver.can_access_menu("contas pagar") is False
        assert resolver.can_view_field("socios", "cpf") is False
        assert role.id not in cache.entries

    @pytest.mark.asyncio
    async def test_malformed_field_row_raises_store_error(self, db, store, role):
        db.add(FieldPermission(role_id=role.id, screen_id="socios", field_id="data admissao", view=True, edit=False))
        await db.flush()

        with pytest.raises(PermissionStoreError):
            await store.get_field_row(role.id, "socios", "data admissao")
