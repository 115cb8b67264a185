from sqlalchemy import Column, String, Numeric, ForeignKey
from sqlalchemy.orm import declared_attr, relationship
from agrimarket.models.base import BaseModel


class ProfileMixin:
    """One role-specific profile row per user, with its own id."""

    @declared_attr
    def user_id(cls):
        return Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)

    @declared_attr
    def user(cls):
        return relationship("User", back_populates=cls.__user_attribute__)


class Farmer(ProfileMixin, BaseModel):
    __tablename__ = "farmers"
    __user_attribute__ = "farmer"

    farm_name = Column(String(100))
    farm_size = Column(Numeric(10, 2))


class Buyer(ProfileMixin, BaseModel):
    __tablename__ = "buyers"
    __user_attribute__ = "buyer"

    company_name = Column(String(100))
    business_type = Column(String(100))


class Exporter(ProfileMixin, BaseModel):
    __tablename__ = "exporters"
    __user_attribute__ = "exporter"

    company_name = Column(String(100))
    company_desc = Column(String)
    license_id = Column(String(100))
    verification_status = Column(String(20), default="PENDING")


class Aggregator(ProfileMixin, BaseModel):
    __tablename__ = "aggregators"
    __user_attribute__ = "aggregator"

    organization_name = Column(String(100))
    verification_status = Column(String(20), default="PENDING")
    hedera_account_id = Column(String(50))


class Processor(ProfileMixin, BaseModel):
    __tablename__ = "processors"
    __user_attribute__ = "processor"

    facility_name = Column(String(100))
    verification_status = Column(String(20), default="PENDING")
    hedera_account_id = Column(String(50))


class Importer(ProfileMixin, BaseModel):
    __tablename__ = "importers"
    __user_attribute__ = "importer"

    company_name = Column(String(100))
    verification_status = Column(String(20), default="PENDING")
    hedera_account_id = Column(String(50))


class Admin(ProfileMixin, BaseModel):
    __tablename__ = "admins"
    __user_attribute__ = "admin"

    department = Column(String(100))


class SystemAdmin(ProfileMixin, BaseModel):
    __tablename__ = "system_admins"
    __user_attribute__ = "system_admin"

    status = Column(String(20), default="ACTIVE")


class ZoneSupervisor(ProfileMixin, BaseModel):
    __tablename__ = "zone_supervisors"
    __user_attribute__ = "zone_supervisor"

    status = Column(String(20), default="ACTIVE")
