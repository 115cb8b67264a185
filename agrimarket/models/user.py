import enum

from sqlalchemy import Column, String, Boolean, Integer, ForeignKey, Table, UniqueConstraint
from sqlalchemy.orm import relationship
from agrimarket.db.session import Base
from agrimarket.models.base import BaseModel


class RoleType(str, enum.Enum):
    FARMER = "FARMER"
    BUYER = "BUYER"
    EXPORTER = "EXPORTER"
    AGGREGATOR = "AGGREGATOR"
    PROCESSOR = "PROCESSOR"
    IMPORTER = "IMPORTER"
    SUPPLIER = "SUPPLIER"
    ADMIN = "ADMIN"
    SYSTEM_ADMIN = "SYSTEM_ADMIN"
    ZONE_SUPERVISOR = "ZONE_SUPERVISOR"
    AUTHORISED_REPRESENTATIVE = "AUTHORISED_REPRESENTATIVE"
    USER = "USER"


# `position` keeps role and permission collections in insertion order
user_roles = Table(
    "user_roles",
    Base.metadata,
    Column("position", Integer, primary_key=True, autoincrement=True),
    Column("user_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("role_id", String(36), ForeignKey("roles.id", ondelete="CASCADE"), nullable=False),
    UniqueConstraint("user_id", "role_id", name="uq_user_roles_user_role"),
)

role_permissions = Table(
    "role_permissions",
    Base.metadata,
    Column("position", Integer, primary_key=True, autoincrement=True),
    Column("role_id", String(36), ForeignKey("roles.id", ondelete="CASCADE"), nullable=False),
    Column("permission_id", String(36), ForeignKey("permissions.id", ondelete="CASCADE"), nullable=False),
    UniqueConstraint("role_id", "permission_id", name="uq_role_permissions_role_permission"),
)


class Permission(BaseModel):
    __tablename__ = "permissions"

    name = Column(String(100), unique=True, nullable=False)
    description = Column(String(255))


class Role(BaseModel):
    __tablename__ = "roles"

    name = Column(String(50), unique=True, index=True, nullable=False)
    description = Column(String(255))

    permissions = relationship(
        "Permission",
        secondary=role_permissions,
        order_by=role_permissions.c.position,
        lazy="selectin",
    )


class User(BaseModel):
    __tablename__ = "users"

    email = Column(String(100), unique=True, index=True, nullable=True)
    phone_number = Column(String(20), unique=True, index=True, nullable=True)
    hashed_password = Column(String(255), nullable=False)
    full_name = Column(String(100), nullable=False)
    is_active = Column(Boolean, default=True)

    roles = relationship(
        "Role",
        secondary=user_roles,
        order_by=user_roles.c.position,
        lazy="selectin",
    )

    farmer = relationship("Farmer", back_populates="user", uselist=False, cascade="all, delete-orphan")
    buyer = relationship("Buyer", back_populates="user", uselist=False, cascade="all, delete-orphan")
    exporter = relationship("Exporter", back_populates="user", uselist=False, cascade="all, delete-orphan")
    aggregator = relationship("Aggregator", back_populates="user", uselist=False, cascade="all, delete-orphan")
    processor = relationship("Processor", back_populates="user", uselist=False, cascade="all, delete-orphan")
    importer = relationship("Importer", back_populates="user", uselist=False, cascade="all, delete-orphan")
    admin = relationship("Admin", back_populates="user", uselist=False, cascade="all, delete-orphan")
    system_admin = relationship("SystemAdmin", back_populates="user", uselist=False, cascade="all, delete-orphan")
    zone_supervisor = relationship("ZoneSupervisor", back_populates="user", uselist=False, cascade="all, delete-orphan")

    @property
    def role_names(self):
        return [role.name for role in self.roles]

    def has_role(self, role_name: str) -> bool:
        return role_name in self.role_names
