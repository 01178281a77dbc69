"""
FastAPI dependencies for permission resolution and route protection.

The session mechanism is external: the caller's role arrives in the
X-Role-Id header and is looked up in the roles table.
"""
from typing import Annotated, Optional
from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import config
from app.core.database.engine import get_db
from app.features.permissions.cache import PermissionCache
from app.features.permissions.models import Role
from app.features.permissions.resolver import PermissionResolver, resolve_permissions
from app.features.permissions.schemas import RoleDescriptor
from app.features.permissions.store import SQLAlchemyPermissionStore
from app.features.permissions.writer import PermissionWriter
from app.utils import get_logger


log = get_logger(__name__)


def get_permission_cache(request: Request) -> PermissionCache:
    """The process-wide cache created with the application."""
    return request.app.state.permission_cache


async def get_permission_store(
    db: Annotated[AsyncSession, Depends(get_db)]
) -> SQLAlchemyPermissionStore:
    return SQLAlchemyPermissionStore(db)


async def get_permission_writer(
    store: Annotated[SQLAlchemyPermissionStore, Depends(get_permission_store)]
) -> PermissionWriter:
    return PermissionWriter(store)


def describe_role(role: Role) -> RoleDescriptor:
    return RoleDescriptor.from_role(role.id, role.name, config.SUPERUSER_ROLE_NAMES)


async def get_current_role(
    db: Annotated[AsyncSession, Depends(get_db)],
    x_role_id: Annotated[Optional[int], Header()] = None,
) -> Role:
    """
    Resolve the caller's role from the X-Role-Id header.

    Raises:
        HTTPException: 401 if the header is missing or names no role
    """
    if x_role_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing role",
        )

    result = await db.execute(select(Role).where(Role.id == x_role_id))
    role = result.scalar_one_or_none()
    if role is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unknown role",
        )
    return role


async def get_current_resolver(
    role: Annotated[Role, Depends(get_current_role)],
    store: Annotated[SQLAlchemyPermissionStore, Depends(get_permission_store)],
    cache: Annotated[PermissionCache, Depends(get_permission_cache)],
) -> PermissionResolver:
    """Resolver for the caller's role, loaded through the permission cache."""
    return await resolve_permissions(describe_role(role), store, cache)


async def require_superuser(
    role: Annotated[Role, Depends(get_current_role)]
) -> Role:
    """
    Require a superuser role.

    Usage:
        @router.put("/roles/{role_id}/matrix")
        async def save_matrix(
            role_id: int,
            admin: Role = Depends(require_superuser)
        ):
            # Only ADMINISTRADOR / TI reach this point
            ...
    """
    if not describe_role(role).is_superuser:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administrator role required",
        )
    return role


def require_menu_access(menu_id: str):
    """
    FastAPI dependency to require access to a menu.

    Usage:
        @router.get("/socios")
        async def list_socios(
            resolver: PermissionResolver = Depends(require_menu_access("socios"))
        ):
            # Role may open the socios screen
            pass

    Returns:
        Dependency function that returns the caller's resolver if access is granted

    Raises:
        HTTPException: 403 if the role may not access the menu
    """
    async def menu_dependency(
        resolver: Annotated[PermissionResolver, Depends(get_current_resolver)]
    ) -> PermissionResolver:
        if not resolver.can_access_menu(menu_id):
            log.debug(f"Role {resolver.role.id} denied menu {menu_id}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission denied: menu {menu_id}"
            )
        return resolver

    return menu_dependency


def get_rate_limit_key(request: Request) -> str:
    """
    Key requests by role for rate limiting.
    Used with slowapi Limiter.
    """
    return request.headers.get("X-Role-Id") or (request.client.host if request.client else "anonymous")
