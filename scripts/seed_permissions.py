"""
Seed script to populate default roles and their permission matrices.

Run this script after database initialization to create:
- The superuser roles (bypass every check, no rows needed)
- Default operator roles
- Initial menu/field permissions for the operator roles

Usage:
    uv run python -m scripts.seed_permissions
"""
import asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import config
from app.core.database.engine import get_db, init_db
from app.features.permissions.catalog import full_access_set, toggle_menu
from app.features.permissions.models import Role
from app.features.permissions.schemas import FieldAccess, PermissionSet
from app.features.permissions.store import SQLAlchemyPermissionStore
from app.features.permissions.writer import PermissionWriter
from app.utils import get_logger


log = get_logger(__name__)


def _attendance_permissions() -> PermissionSet:
    """Front desk: member and dependent registration, no finance, CPF read-only."""
    permissions = PermissionSet(menus={"dashboard": True})
    for menu_id in ("socios", "dependentes"):
        permissions = toggle_menu(permissions, menu_id, True)
    permissions.fields["socios"]["cpf"] = FieldAccess(view=True, edit=False)
    return permissions


def _finance_permissions() -> PermissionSet:
    """Finance: payables/receivables and reports, members read-only."""
    permissions = PermissionSet(menus={"dashboard": True, "relatorios": True})
    for menu_id in ("contas-pagar", "contas-receber", "socios"):
        permissions = toggle_menu(permissions, menu_id, True)
    permissions.fields["socios"] = {
        field_id: FieldAccess(view=True, edit=False)
        for field_id in permissions.fields["socios"]
    }
    return permissions


def _manager_permissions() -> PermissionSet:
    """Manager: everything except user and permission administration."""
    permissions = full_access_set()
    permissions = toggle_menu(permissions, "usuarios", False)
    permissions.menus["permissoes"] = False
    return permissions


DEFAULT_ROLES = {
    "ATENDIMENTO": {
        "description": "Front desk operator",
        "permissions": _attendance_permissions,
    },
    "FINANCEIRO": {
        "description": "Finance operator",
        "permissions": _finance_permissions,
    },
    "GERENCIA": {
        "description": "Manager",
        "permissions": _manager_permissions,
    },
}


async def seed_superuser_roles(db: AsyncSession):
    """Create the superuser roles; they need no permission rows."""
    for role_name in config.SUPERUSER_ROLE_NAMES:
        stmt = select(Role).where(Role.name == role_name)
        result = await db.execute(stmt)
        if result.scalars().first():
            log.debug(f"Role '{role_name}' already exists, skipping")
            continue

        db.add(Role(name=role_name, description="Superuser (bypasses permission checks)"))
        log.info(f"Created superuser role '{role_name}'")

    await db.commit()


async def seed_roles(db: AsyncSession):
    """
    Create default roles and save their permission matrices.

    Existing roles keep their current permissions.
    """
    log.info("Creating default roles...")
    writer = PermissionWriter(SQLAlchemyPermissionStore(db))

    for role_name, role_config in DEFAULT_ROLES.items():
        stmt = select(Role).where(Role.name == role_name)
        result = await db.execute(stmt)
        existing = result.scalars().first()

        if existing:
            log.debug(f"Role '{role_name}' already exists, skipping")
            continue

        role = Role(name=role_name, description=role_config["description"])
        db.add(role)
        await db.flush()

        report = await writer.save_all(role.id, role_config["permissions"]())
        log.info(
            f"Created role '{role_name}' with {report.menu_rows} menu and {report.field_rows} field permissions"
        )

    await db.commit()
    log.info("Default roles created successfully")


async def main():
    """Main function to seed roles and permissions."""
    log.info("Starting permission seeding...")

    # Initialize database tables first
    log.info("Initializing database tables...")
    await init_db()

    # Get database session
    async for db in get_db():
        try:
            await seed_superuser_roles(db)
            await seed_roles(db)

            log.info("Permission seeding completed successfully!")
            log.info("")
            log.info("Default roles created:")
            for role_name, role_config in DEFAULT_ROLES.items():
                log.info(f"  - {role_name}: {role_config['description']}")

        except Exception as e:
            log.error(f"Error seeding permissions: {e}", exc_info=True)
            await db.rollback()
            raise

        break  # Only use first session


if __name__ == "__main__":
    asyncio.run(main())
