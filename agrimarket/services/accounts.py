import logging
from typing import Any, Dict, Tuple, Type

from sqlalchemy.orm import Session

from agrimarket.auth.security import get_password_hash
from agrimarket.core.exceptions import AlreadyRegistered, NotFound
from agrimarket.models.profile import Buyer, Exporter, Farmer
from agrimarket.models.user import Role, RoleType, User
from agrimarket.schemas.user import UserCreate

logger = logging.getLogger(__name__)

PROFILE_MODELS: Dict[str, Type] = {
    RoleType.FARMER.value: Farmer,
    RoleType.BUYER.value: Buyer,
    RoleType.EXPORTER.value: Exporter,
}


def find_existing_user(db: Session, email, phone_number):
    if email:
        user = db.query(User).filter(User.email == email).first()
        if user is not None:
            return user
    if phone_number:
        return db.query(User).filter(User.phone_number == phone_number).first()
    return None


def register_profile(db: Session, role_type: RoleType, user_data: UserCreate, profile_data: Dict[str, Any]) -> Tuple[User, Any]:
    """
    Attach ``role_type`` and its profile to an account.

    An account already known by the email or phone number is reused and gains
    the new role; otherwise a new account is created. Registering the same
    identifier twice for one role is rejected.
    """
    role_name = role_type.value
    email = user_data.email or None
    phone_number = (user_data.phone_number or "").strip() or None

    role = db.query(Role).filter(Role.name == role_name).first()
    if role is None:
        raise NotFound(f"{role_name.title()} role not found")

    user = find_existing_user(db, email, phone_number)
    if user is not None and user.has_role(role_name):
        logger.warning("Registration failed: %s already registered as %s", email or phone_number, role_name)
        raise AlreadyRegistered(f"Account already registered as {role_name.title()}")

    if user is None:
        user = User(
            email=email,
            phone_number=phone_number,
            full_name=user_data.full_name,
            hashed_password=get_password_hash(user_data.password),
            is_active=True,
        )
        db.add(user)

    user.roles.append(role)

    model = PROFILE_MODELS[role_name]
    profile = model(user=user, **profile_data)
    db.add(profile)
    db.commit()
    db.refresh(user)
    db.refresh(profile)

    logger.info("Registered %s profile %s for user %s", role_name, profile.id, user.id)
    return user, profile
