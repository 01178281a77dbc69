"""
Answers menu and field access questions for a role.

Default deny: an id with no stored row resolves to "not permitted".
Superuser roles are permitted everything regardless of stored rows.
"""
from app.features.permissions.cache import PermissionCache
from app.features.permissions.exceptions import PermissionStoreError
from app.features.permissions.fetcher import fetch_permission_set
from app.features.permissions.schemas import PermissionSet, RoleDescriptor
from app.features.permissions.store import PermissionStore
from app.utils import get_logger


log = get_logger(__name__)


class PermissionResolver:
    """Pure point queries over an already loaded permission set."""

    def __init__(self, role: RoleDescriptor, permissions: PermissionSet):
        self.role = role
        self.permissions = permissions

    @property
    def is_superuser(self) -> bool:
        return self.role.is_superuser

    def can_access_menu(self, menu_id: str) -> bool:
        if self.role.is_superuser:
            return True
        return self.permissions.menus.get(menu_id, False)

    def can_view_field(self, screen_id: str, field_id: str) -> bool:
        if self.role.is_superuser:
            return True
        access = self.permissions.fields.get(screen_id, {}).get(field_id)
        return access.view if access is not None else False

    def can_edit_field(self, screen_id: str, field_id: str) -> bool:
        if self.role.is_superuser:
            return True
        access = self.permissions.fields.get(screen_id, {}).get(field_id)
        return access.edit if access is not None else False


async def resolve_permissions(
    role: RoleDescriptor,
    store: PermissionStore,
    cache: PermissionCache,
) -> PermissionResolver:
    """
    Build a resolver for a role, loading its permission set through the cache.

    Waits for the load to finish before answering anything. A failed load
    resolves against an empty set (deny everything) for this call only and is
    not cached.
    """
    if role.is_superuser:
        return PermissionResolver(role, PermissionSet())

    async def fetch(role_id: int) -> PermissionSet:
        return await fetch_permission_set(store, role_id)

    try:
        permissions = await cache.get(role.id, fetch)
    except PermissionStoreError:
        log.exception(f"Failed to load permissions for role {role.id}, denying by default")
        permissions = PermissionSet()

    return PermissionResolver(role, permissions)
