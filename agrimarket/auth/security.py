import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from fastapi import Depends, HTTPException, Request, status
from jose import JWTError, jwt
from passlib.context import CryptContext

from agrimarket.core.config import Settings, get_settings
from agrimarket.core.exceptions import TokenInvalid

logger = logging.getLogger(__name__)

ROLE_PREFIX = "ROLE_"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


@dataclass(frozen=True)
class TokenClaims:
    actor_id: str
    role: str
    roles: List[str]
    permissions: List[str]
    user: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Principal:
    """Authenticated caller for the lifetime of one request."""

    actor_id: str
    role: str
    authorities: Tuple[str, ...]

    def has_authority(self, authority: str) -> bool:
        return authority in self.authorities

    def has_role(self, role: str) -> bool:
        return role_authority(role) in self.authorities


def role_authority(role: str) -> str:
    return role if role.startswith(ROLE_PREFIX) else f"{ROLE_PREFIX}{role}"


def create_access_token(
    actor_id: str,
    role: str,
    roles: List[str],
    permissions: List[str],
    user: Optional[Dict[str, Any]] = None,
    expires_delta: Optional[timedelta] = None,
    settings: Optional[Settings] = None,
) -> str:
    settings = settings or get_settings()
    now = datetime.utcnow()
    if expires_delta is not None:
        expire = now + expires_delta
    else:
        expire = now + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode = {
        "sub": actor_id,
        "role": role,
        "roles": list(roles),
        "permissions": list(permissions),
        "user": user or {},
        "iat": now,
        "exp": expire,
    }
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str, settings: Optional[Settings] = None) -> TokenClaims:
    settings = settings or get_settings()
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError as e:
        raise TokenInvalid(str(e) or "Could not decode token")

    actor_id = payload.get("sub")
    role = payload.get("role")
    if not actor_id or not role:
        raise TokenInvalid("Missing subject or role claim")

    return TokenClaims(
        actor_id=actor_id,
        role=role,
        roles=list(payload.get("roles") or []),
        permissions=list(payload.get("permissions") or []),
        user=payload.get("user") or {},
    )


def build_principal(claims: TokenClaims) -> Principal:
    authorities: List[str] = []
    for authority in [role_authority(r) for r in claims.roles] + claims.permissions:
        if authority not in authorities:
            authorities.append(authority)
    return Principal(actor_id=claims.actor_id, role=claims.role, authorities=tuple(authorities))


def get_optional_principal(request: Request) -> Optional[Principal]:
    return getattr(request.state, "principal", None)


def get_current_principal(principal: Optional[Principal] = Depends(get_optional_principal)) -> Principal:
    if principal is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return principal


def require_roles(*roles: str):
    def checker(principal: Principal = Depends(get_current_principal)) -> Principal:
        if not any(principal.has_role(r) for r in roles):
            raise HTTPException(status_code=403, detail=f"{' or '.join(r.title() for r in roles)} access required")
        return principal

    return checker


def require_permissions(*permissions: str):
    def checker(principal: Principal = Depends(get_current_principal)) -> Principal:
        missing = [p for p in permissions if not principal.has_authority(p)]
        if missing:
            raise HTTPException(status_code=403, detail=f"Missing permissions: {', '.join(missing)}")
        return principal

    return checker


is_admin = require_roles("ADMIN", "SYSTEM_ADMIN")
is_buyer = require_roles("BUYER")
is_farmer = require_roles("FARMER")
