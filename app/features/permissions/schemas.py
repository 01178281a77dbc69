"""
Pydantic schemas for permission management.

Typed identifiers, permission rows, the in-memory permission set and the
request/response models of the administration routes.
"""
from datetime import datetime
from typing import Annotated, Dict, List, Literal, Optional
from pydantic import BaseModel, Field, ConfigDict, StringConstraints, field_validator, model_validator


SLUG_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9_-]*$"

# Stable identifier of a menu, screen or field (e.g. "socios", "contas-pagar", "data_vencimento")
Slug = Annotated[str, StringConstraints(min_length=1, max_length=100, pattern=SLUG_PATTERN)]

FieldPermissionKind = Literal["view", "edit"]


# ============================================================================
# Permission Records
# ============================================================================

class FieldAccess(BaseModel):
    """
    View/edit pair for one field.

    Edit implies view: a pair built with edit=True always reports view=True.
    """
    view: bool = False
    edit: bool = False

    @model_validator(mode="after")
    def edit_implies_view(self) -> "FieldAccess":
        if self.edit and not self.view:
            self.view = True
        return self


class MenuPermissionRow(BaseModel):
    """One row of the menu permission table."""
    role_id: int
    menu_id: Slug
    access: bool

    model_config = ConfigDict(from_attributes=True)


class FieldPermissionRow(BaseModel):
    """One row of the field permission table."""
    role_id: int
    screen_id: Slug
    field_id: Slug
    view: bool
    edit: bool

    model_config = ConfigDict(from_attributes=True)


class PermissionSet(BaseModel):
    """
    Fully materialized menu and field permissions of one role.

    menus: menu_id -> access
    fields: screen_id -> field_id -> FieldAccess
    """
    menus: Dict[Slug, bool] = Field(default_factory=dict)
    fields: Dict[Slug, Dict[Slug, FieldAccess]] = Field(default_factory=dict)

    def is_empty(self) -> bool:
        return not self.menus and not self.fields


class RoleDescriptor(BaseModel):
    """Role identity as seen by the resolver."""
    id: int
    display_name: str
    is_superuser: bool = False

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_role(cls, role_id: int, display_name: str, superuser_names: tuple[str, ...]) -> "RoleDescriptor":
        reserved = {name.upper() for name in superuser_names}
        return cls(
            id=role_id,
            display_name=display_name,
            is_superuser=display_name.strip().upper() in reserved,
        )


class SaveReport(BaseModel):
    """Outcome of a bulk save: rows written per kind and whether the fallback ran."""
    menu_rows: int = 0
    field_rows: int = 0
    menus_fallback: bool = False
    fields_fallback: bool = False


# ============================================================================
# Role Schemas
# ============================================================================

class RoleBase(BaseModel):
    """Base role schema."""
    name: str = Field(..., min_length=1, max_length=50, description="Unique role name")
    description: Optional[str] = Field(None, max_length=255, description="Role description")


class RoleCreate(RoleBase):
    """Schema for creating a new role."""

    @field_validator('name')
    @classmethod
    def name_upper(cls, v: str) -> str:
        """Role names are stored upper case."""
        v = v.strip()
        if not v:
            raise ValueError('Role name must not be blank')
        return v.upper()


class RoleResponse(RoleBase):
    """Schema for role response."""
    id: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Catalog Schemas
# ============================================================================

class CatalogField(BaseModel):
    id: str
    label: str


class CatalogScreen(BaseModel):
    id: str
    label: str
    fields: List[CatalogField] = []


class CatalogMenu(BaseModel):
    id: str
    label: str
    screens: List[str] = []


class CatalogResponse(BaseModel):
    menus: List[CatalogMenu]
    screens: List[CatalogScreen]


# ============================================================================
# Write / Check Schemas
# ============================================================================

class MenuToggle(BaseModel):
    """Schema for setting one menu access flag."""
    value: bool


class FieldToggle(BaseModel):
    """Schema for setting one field flag."""
    kind: FieldPermissionKind
    value: bool


class PermissionCheckRequest(BaseModel):
    """Point query against the caller's permissions."""
    kind: Literal["menu", "view", "edit"]
    menu_id: Optional[Slug] = None
    screen_id: Optional[Slug] = None
    field_id: Optional[Slug] = None

    @model_validator(mode="after")
    def ids_for_kind(self) -> "PermissionCheckRequest":
        if self.kind == "menu" and not self.menu_id:
            raise ValueError("menu_id is required for menu checks")
        if self.kind != "menu" and not (self.screen_id and self.field_id):
            raise ValueError("screen_id and field_id are required for field checks")
        return self


class PermissionCheckResponse(BaseModel):
    allowed: bool


class MyPermissionsResponse(BaseModel):
    """The caller's role and its resolved permission set."""
    role_id: int
    role_name: str
    is_superuser: bool
    permissions: PermissionSet
