"""
Role, menu permission and field permission models.

A role (perfil) is an operator category. Permission rows are always scoped
to a role:
- MenuPermission: whether the role may navigate to a menu destination
- FieldPermission: whether the role may view / edit one field of one screen

Absence of a row means "not permitted".
"""
from sqlalchemy import String, Boolean, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database.base import Base, TimestampMixin


class Role(Base, TimestampMixin):
    """
    Role model for grouping operators.

    Examples: ADMINISTRADOR, TI, ATENDIMENTO, FINANCEIRO
    """
    __tablename__ = "roles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Relationships
    menu_permissions: Mapped[list["MenuPermission"]] = relationship(
        "MenuPermission",
        back_populates="role",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    field_permissions: Mapped[list["FieldPermission"]] = relationship(
        "FieldPermission",
        back_populates="role",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Role(id={self.id}, name={self.name!r})>"


class MenuPermission(Base, TimestampMixin):
    """Access flag for one menu destination, unique per (role_id, menu_id)."""
    __tablename__ = "menu_permissions"
    __table_args__ = (
        UniqueConstraint("role_id", "menu_id", name="uq_menu_permissions_role_menu"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    role_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("roles.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    menu_id: Mapped[str] = mapped_column(String(100), nullable=False)
    access: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    role: Mapped["Role"] = relationship("Role", back_populates="menu_permissions")

    def __repr__(self) -> str:
        return f"<MenuPermission(role_id={self.role_id}, menu_id={self.menu_id!r}, access={self.access})>"


class FieldPermission(Base, TimestampMixin):
    """View/edit flags for one field of one screen, unique per (role_id, screen_id, field_id)."""
    __tablename__ = "field_permissions"
    __table_args__ = (
        UniqueConstraint("role_id", "screen_id", "field_id", name="uq_field_permissions_role_screen_field"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    role_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("roles.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    screen_id: Mapped[str] = mapped_column(String(100), nullable=False)
    field_id: Mapped[str] = mapped_column(String(100), nullable=False)
    view: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    edit: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    role: Mapped["Role"] = relationship("Role", back_populates="field_permissions")

    def __repr__(self) -> str:
        return (
            f"<FieldPermission(role_id={self.role_id}, screen_id={self.screen_id!r}, "
            f"field_id={self.field_id!r}, view={self.view}, edit={self.edit})>"
        )
