"""
Permission management API routes.

Provides endpoints for the permission editor (roles, catalog, matrix saves and
single toggles) and for resolving the caller's own permissions.
"""
from typing import Annotated, List
from fastapi import APIRouter, Depends, HTTPException, Path, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError

from app.core.database.engine import get_db
from app.features.permissions.catalog import full_access_set, list_menus, list_screens
from app.features.permissions.dependencies import (
    describe_role,
    get_current_resolver,
    get_current_role,
    get_permission_store,
    get_permission_writer,
    require_superuser,
)
from app.features.permissions.exceptions import PermissionSaveError, PermissionStoreError
from app.features.permissions.fetcher import fetch_permission_set
from app.features.permissions.models import Role
from app.features.permissions.resolver import PermissionResolver
from app.features.permissions.schemas import (
    CatalogResponse,
    FieldAccess,
    FieldToggle,
    MenuToggle,
    MyPermissionsResponse,
    PermissionCheckRequest,
    PermissionCheckResponse,
    PermissionSet,
    RoleCreate,
    RoleResponse,
    SaveReport,
    SLUG_PATTERN,
)
from app.features.permissions.store import SQLAlchemyPermissionStore
from app.features.permissions.writer import PermissionWriter
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter()

SlugPath = Annotated[str, Path(min_length=1, max_length=100, pattern=SLUG_PATTERN)]


async def get_role_or_404(db: AsyncSession, role_id: int) -> Role:
    result = await db.execute(select(Role).where(Role.id == role_id))
    role = result.scalar_one_or_none()
    if not role:
        raise HTTPException(status_code=404, detail="Role not found")
    return role


# ============================================================================
# Catalog Routes
# ============================================================================

@router.get("/catalog", response_model=CatalogResponse)
async def get_catalog(
    current_role: Role = Depends(get_current_role)
):
    """Menus, screens and fields available for permission editing."""
    return CatalogResponse(menus=list_menus(), screens=list_screens())


# ============================================================================
# Role Routes
# ============================================================================

@router.get("/roles", response_model=List[RoleResponse])
async def list_roles(
    skip: int = 0,
    limit: int = 100,
    db: AsyncSession = Depends(get_db),
    current_role: Role = Depends(get_current_role)
):
    """List roles."""
    stmt = select(Role).order_by(Role.name).offset(skip).limit(limit)
    result = await db.execute(stmt)
    return result.scalars().all()


@router.post("/roles", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
async def create_role(
    role: RoleCreate,
    db: AsyncSession = Depends(get_db),
    current_role: Role = Depends(require_superuser)
):
    """Create a new role (administrators only)."""
    try:
        db_role = Role(**role.model_dump())
        db.add(db_role)
        await db.commit()
        await db.refresh(db_role)
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Role with this name already exists"
        )

    log.info(f"Role {db_role.id} ({db_role.name}) created by role {current_role.id}")
    return db_role


@router.get("/roles/{role_id}", response_model=RoleResponse)
async def get_role(
    role_id: int,
    db: AsyncSession = Depends(get_db),
    current_role: Role = Depends(get_current_role)
):
    """Get a specific role by ID."""
    return await get_role_or_404(db, role_id)


# ============================================================================
# Permission Matrix Routes
# ============================================================================

@router.get("/roles/{role_id}/matrix", response_model=PermissionSet)
async def get_role_matrix(
    role_id: int,
    prefill: bool = False,
    db: AsyncSession = Depends(get_db),
    store: SQLAlchemyPermissionStore = Depends(get_permission_store),
    current_role: Role = Depends(require_superuser)
):
    """
    Stored permissions of a role, read fresh from the database.

    With prefill=true a role without any stored rows gets the full-access
    matrix, which the editor shows pre-selected.
    """
    await get_role_or_404(db, role_id)
    try:
        permissions = await fetch_permission_set(store, role_id)
    except PermissionStoreError:
        log.exception(f"Failed to load permission matrix for role {role_id}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load permissions"
        )

    if prefill and permissions.is_empty():
        return full_access_set()
    return permissions


@router.put("/roles/{role_id}/matrix", response_model=SaveReport)
async def save_role_matrix(
    role_id: int,
    permissions: PermissionSet,
    db: AsyncSession = Depends(get_db),
    writer: PermissionWriter = Depends(get_permission_writer),
    current_role: Role = Depends(require_superuser)
):
    """Replace a role's whole permission matrix (administrators only)."""
    await get_role_or_404(db, role_id)
    try:
        report = await writer.save_all(role_id, permissions)
    except PermissionSaveError as exc:
        # Keep whatever was saved for the kind that succeeded
        await db.commit()
        log.error(f"{exc}: {exc.failures}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": "Permissions not fully saved, retry", "failed": sorted(exc.failures)}
        )

    log.info(f"Permission matrix of role {role_id} saved by role {current_role.id}")
    return report


@router.put("/roles/{role_id}/menus/{menu_id}", response_model=MenuToggle)
async def set_menu_permission(
    role_id: int,
    menu_id: SlugPath,
    toggle: MenuToggle,
    db: AsyncSession = Depends(get_db),
    writer: PermissionWriter = Depends(get_permission_writer),
    current_role: Role = Depends(require_superuser)
):
    """Set one menu access flag of a role."""
    await get_role_or_404(db, role_id)
    try:
        value = await writer.set_menu(role_id, menu_id, toggle.value)
    except PermissionStoreError:
        log.exception(f"Failed to set menu {menu_id} for role {role_id}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to save permission"
        )
    return MenuToggle(value=value)


@router.put("/roles/{role_id}/fields/{screen_id}/{field_id}", response_model=FieldAccess)
async def set_field_permission(
    role_id: int,
    screen_id: SlugPath,
    field_id: SlugPath,
    toggle: FieldToggle,
    db: AsyncSession = Depends(get_db),
    writer: PermissionWriter = Depends(get_permission_writer),
    current_role: Role = Depends(require_superuser)
):
    """Set the view or edit flag of one field for a role."""
    await get_role_or_404(db, role_id)
    try:
        return await writer.set_field(role_id, screen_id, field_id, toggle.kind, toggle.value)
    except PermissionStoreError:
        log.exception(f"Failed to set field {screen_id}.{field_id} for role {role_id}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to save permission"
        )


# ============================================================================
# Resolution Routes
# ============================================================================

@router.get("/me", response_model=MyPermissionsResponse)
async def get_my_permissions(
    current_role: Role = Depends(get_current_role),
    resolver: PermissionResolver = Depends(get_current_resolver)
):
    """The caller's role and its resolved permissions."""
    descriptor = describe_role(current_role)
    return MyPermissionsResponse(
        role_id=descriptor.id,
        role_name=descriptor.display_name,
        is_superuser=descriptor.is_superuser,
        permissions=resolver.permissions,
    )


@router.post("/check", response_model=PermissionCheckResponse)
async def check_permission(
    check: PermissionCheckRequest,
    resolver: PermissionResolver = Depends(get_current_resolver)
):
    """Answer one menu / view / edit question for the caller's role."""
    if check.kind == "menu":
        allowed = resolver.can_access_menu(check.menu_id)
    elif check.kind == "view":
        allowed = resolver.can_view_field(check.screen_id, check.field_id)
    else:
        allowed = resolver.can_edit_field(check.screen_id, check.field_id)
    return PermissionCheckResponse(allowed=allowed)
