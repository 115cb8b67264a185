import logging

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from agrimarket.models.user import User, Role, Permission, RoleType
from agrimarket.models.profile import (
    Farmer, Buyer, Exporter, Aggregator, Processor, Importer, Admin, SystemAdmin, ZoneSupervisor
)
from agrimarket.models.produce import FarmProduce, PreferredProduce
from agrimarket.models.request import ProduceRequest, RequestOrder
from agrimarket.models.ledger import LedgerReference
from agrimarket.db.session import Base

logger = logging.getLogger(__name__)

# Permissions granted to each role when the database is first seeded
DEFAULT_PERMISSIONS = {
    RoleType.FARMER: ["VIEW_REQUESTS", "CREATE_ORDER", "CONFIRM_PAYMENT"],
    RoleType.BUYER: ["VIEW_REQUESTS", "CREATE_REQUEST", "MANAGE_REQUEST_ORDERS", "CONFIRM_PAYMENT"],
    RoleType.EXPORTER: ["VIEW_REQUESTS", "MANAGE_SUPPLY_CHAIN"],
    RoleType.AGGREGATOR: ["VIEW_REQUESTS", "MANAGE_SUPPLY_CHAIN"],
    RoleType.PROCESSOR: ["MANAGE_SUPPLY_CHAIN"],
    RoleType.IMPORTER: ["MANAGE_SUPPLY_CHAIN"],
    RoleType.SUPPLIER: ["VIEW_REQUESTS"],
    RoleType.ADMIN: ["VIEW_REQUESTS", "MANAGE_USERS"],
    RoleType.SYSTEM_ADMIN: ["VIEW_REQUESTS", "MANAGE_USERS", "MANAGE_ROLES"],
    RoleType.ZONE_SUPERVISOR: ["VIEW_REQUESTS", "MANAGE_ZONE"],
    RoleType.AUTHORISED_REPRESENTATIVE: ["MANAGE_SUPPLY_CHAIN"],
    RoleType.USER: [],
}


def seed_roles(db: Session) -> None:
    permissions = {p.name: p for p in db.query(Permission).all()}
    roles = {r.name: r for r in db.query(Role).all()}

    for role_type, permission_names in DEFAULT_PERMISSIONS.items():
        role = roles.get(role_type.value)
        if role is None:
            role = Role(name=role_type.value, description=role_type.value.replace("_", " ").title())
            db.add(role)
            roles[role.name] = role
            for name in permission_names:
                permission = permissions.get(name)
                if permission is None:
                    permission = Permission(name=name)
                    db.add(permission)
                    permissions[name] = permission
                role.permissions.append(permission)
            logger.info("Seeded role %s with permissions %s", role.name, permission_names)

    db.commit()


def init_db(engine: Engine, session: Session):
    # Create all tables
    Base.metadata.create_all(bind=engine)
    seed_roles(session)
