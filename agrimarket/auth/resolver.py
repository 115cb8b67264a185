"""
Login-time identity resolution.

A single account can hold several roles (a user may be both a farmer and a
buyer). Authentication always happens *as one role*: the resolver picks that
role and swaps the account id for the id of the matching role-specific
profile, which is the principal every later authorization check sees.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Type

from sqlalchemy.orm import Session

from agrimarket.auth.security import verify_password
from agrimarket.core.exceptions import (
    InvalidCredentialState,
    NoRoleAvailable,
    NotFound,
    ProfileNotFound,
    RoleMismatch,
)
from agrimarket.models.profile import (
    Admin,
    Aggregator,
    Buyer,
    Exporter,
    Farmer,
    Importer,
    Processor,
    SystemAdmin,
    ZoneSupervisor,
)
from agrimarket.models.user import RoleType, User

logger = logging.getLogger(__name__)

ProfileLookup = Callable[[Session, str], Optional[Any]]

# Attributes copied into the login response for each profile type
PROFILE_FIELDS: Dict[str, List[str]] = {
    RoleType.FARMER.value: ["farm_name", "farm_size"],
    RoleType.BUYER.value: ["company_name", "business_type"],
    RoleType.EXPORTER.value: ["company_name", "company_desc", "license_id", "verification_status"],
    RoleType.AGGREGATOR.value: ["organization_name", "verification_status", "hedera_account_id"],
    RoleType.PROCESSOR.value: ["facility_name", "verification_status", "hedera_account_id"],
    RoleType.IMPORTER.value: ["company_name", "verification_status", "hedera_account_id"],
    RoleType.ADMIN.value: ["department"],
    RoleType.SYSTEM_ADMIN.value: ["status"],
    RoleType.ZONE_SUPERVISOR.value: ["status"],
}


def profile_lookup_for(model: Type) -> ProfileLookup:
    def lookup(db: Session, user_id: str):
        return db.query(model).filter(model.user_id == user_id).first()

    return lookup


def default_profile_lookups() -> Dict[str, ProfileLookup]:
    return {
        RoleType.FARMER.value: profile_lookup_for(Farmer),
        RoleType.BUYER.value: profile_lookup_for(Buyer),
        RoleType.EXPORTER.value: profile_lookup_for(Exporter),
        RoleType.AGGREGATOR.value: profile_lookup_for(Aggregator),
        RoleType.PROCESSOR.value: profile_lookup_for(Processor),
        RoleType.IMPORTER.value: profile_lookup_for(Importer),
        RoleType.ADMIN.value: profile_lookup_for(Admin),
        RoleType.SYSTEM_ADMIN.value: profile_lookup_for(SystemAdmin),
        RoleType.ZONE_SUPERVISOR.value: profile_lookup_for(ZoneSupervisor),
    }


@dataclass
class ResolvedIdentity:
    actor_id: str
    role: str
    user_id: str
    name: str
    email: Optional[str]
    phone_number: Optional[str]
    permissions: List[str] = field(default_factory=list)
    profile: Any = None

    def profile_summary(self) -> Dict[str, Any]:
        summary = {
            "id": self.actor_id,
            "user_id": self.user_id,
            "full_name": self.name,
            "email": self.email,
            "phone_number": self.phone_number,
        }
        for attr in PROFILE_FIELDS.get(self.role, []):
            value = getattr(self.profile, attr, None)
            summary[attr] = float(value) if attr == "farm_size" and value is not None else value
        return summary


class AuthenticationResolver:
    def __init__(self, profile_lookups: Optional[Dict[str, ProfileLookup]] = None):
        self.profile_lookups = profile_lookups if profile_lookups is not None else default_profile_lookups()

    def find_user(self, db: Session, identifier: str) -> User:
        if identifier is None or not identifier.strip():
            logger.error("Login identifier is blank")
            raise NotFound("Username cannot be empty")

        identifier = identifier.strip()
        user = (
            db.query(User).filter(User.email == identifier).first()
            or db.query(User).filter(User.phone_number == identifier).first()
        )
        if user is None:
            logger.warning("User not found for identifier: %s", identifier)
            raise NotFound(f"User not found with email or phone: {identifier}")
        return user

    def resolve(self, db: Session, identifier: str, role_hint: Optional[str] = None) -> ResolvedIdentity:
        logger.debug("Resolving identity for %s with role hint %s", identifier, role_hint)
        user = self.find_user(db, identifier)

        if not user.hashed_password:
            logger.error("User password hash is null or blank for: %s", identifier)
            raise InvalidCredentialState()

        if role_hint is None or not str(role_hint).strip():
            if not user.roles:
                logger.error("No role hint and no roles for: %s", identifier)
                raise NoRoleAvailable(f"No valid role found for user: {identifier}")
            selected_role = user.roles[0].name
        else:
            selected_role = str(role_hint).strip().upper()

        role = next((r for r in user.roles if r.name == selected_role), None)
        if role is None:
            logger.error("User %s does not have role %s", identifier, selected_role)
            raise RoleMismatch(selected_role)

        lookup = self.profile_lookups.get(selected_role)
        profile = lookup(db, user.id) if lookup is not None else None
        if profile is None:
            logger.error("%s profile not found for user %s", selected_role, identifier)
            raise ProfileNotFound(selected_role)

        logger.debug("Resolved %s as %s %s", identifier, selected_role, profile.id)
        return ResolvedIdentity(
            actor_id=profile.id,
            role=selected_role,
            user_id=user.id,
            name=user.full_name,
            email=user.email,
            phone_number=user.phone_number,
            permissions=[p.name for p in role.permissions],
            profile=profile,
        )

    def authenticate(self, db: Session, identifier: str, password: str, role_hint: Optional[str] = None) -> ResolvedIdentity:
        """Check the password and account state, then resolve the role identity."""
        user = self.find_user(db, identifier)
        if not user.hashed_password:
            raise InvalidCredentialState()
        if not password or not verify_password(password, user.hashed_password):
            logger.warning("Password mismatch for: %s", identifier)
            raise InvalidCredentialState("Incorrect password")
        if not user.is_active:
            logger.warning("Inactive account attempted login: %s", identifier)
            raise InvalidCredentialState("Account is inactive")
        return self.resolve(db, identifier, role_hint)
