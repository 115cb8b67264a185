import logging
import time
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from agrimarket.db.session import get_db
from agrimarket.core.exceptions import MarketplaceException
from agrimarket.models.user import RoleType
from agrimarket.schemas.user import (
    LoginRequest,
    LoginResponse,
    Token,
    FarmerRegistration,
    BuyerRegistration,
    ExporterRegistration,
    RegistrationResponse,
    User as UserSchema,
)
from agrimarket.auth.resolver import AuthenticationResolver, ResolvedIdentity
from agrimarket.auth.security import create_access_token
from agrimarket.services.accounts import register_profile

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])

INVALID_CREDENTIALS = "Incorrect credentials"


def get_resolver(request: Request) -> AuthenticationResolver:
    return request.app.state.resolver


def _authenticate(request: Request, db: Session, identifier: str, password: str, role) -> ResolvedIdentity:
    resolver = get_resolver(request)
    role_hint = role.value if isinstance(role, RoleType) else role
    try:
        return resolver.authenticate(db, identifier, password, role_hint)
    except MarketplaceException as e:
        # the caller only learns that login failed, never which factor
        logger.warning("Login failed for %s as %s: %s (%s)", identifier, role_hint, e.message, e.error_code)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=INVALID_CREDENTIALS,
            headers={"WWW-Authenticate": "Bearer"},
        )


def _issue_token(request: Request, identity: ResolvedIdentity) -> str:
    return create_access_token(
        actor_id=identity.actor_id,
        role=identity.role,
        roles=[identity.role],
        permissions=identity.permissions,
        user={
            "name": identity.name,
            "email": identity.email or "",
            "phone_number": identity.phone_number or "",
        },
        settings=request.app.state.settings,
    )


# LOGIN: returns token + role-specific profile (frontend-friendly)
@router.post("/login", response_model=LoginResponse)
def login(
    credentials: LoginRequest,
    request: Request,
    db: Session = Depends(get_db)
):
    start = time.monotonic()
    logger.info("Login request: email_or_phone=%s, role_type=%s", credentials.email_or_phone, credentials.role_type)

    identity = _authenticate(request, db, credentials.email_or_phone, credentials.password, credentials.role_type)
    access_token = _issue_token(request, identity)

    logger.info("Login for %s as %s completed in %.1f ms", identity.actor_id, identity.role, (time.monotonic() - start) * 1000)
    return LoginResponse(
        access_token=access_token,
        token_type="bearer",
        role=identity.role,
        profile=identity.profile_summary(),
    )


# TOKEN-ONLY: OAuth2 compatibility (for Swagger); role defaults to the first one held
@router.post("/token", response_model=Token)
def login_token_only(
    request: Request,
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db)
):
    role_hint = form_data.scopes[0] if form_data.scopes else None
    identity = _authenticate(request, db, form_data.username, form_data.password, role_hint)
    return {"access_token": _issue_token(request, identity), "token_type": "bearer"}


def _registration_response(user, profile, role: RoleType) -> RegistrationResponse:
    return RegistrationResponse(
        user=UserSchema.model_validate(user),
        role=role.value,
        profile_id=profile.id,
    )


@router.post("/register/farmer", response_model=RegistrationResponse, status_code=status.HTTP_201_CREATED)
def register_farmer(registration: FarmerRegistration, db: Session = Depends(get_db)):
    user, profile = register_profile(
        db,
        RoleType.FARMER,
        registration.user,
        {"farm_name": registration.farm_name, "farm_size": registration.farm_size},
    )
    return _registration_response(user, profile, RoleType.FARMER)


@router.post("/register/buyer", response_model=RegistrationResponse, status_code=status.HTTP_201_CREATED)
def register_buyer(registration: BuyerRegistration, db: Session = Depends(get_db)):
    user, profile = register_profile(
        db,
        RoleType.BUYER,
        registration.user,
        {"company_name": registration.company_name, "business_type": registration.business_type},
    )
    return _registration_response(user, profile, RoleType.BUYER)


@router.post("/register/exporter", response_model=RegistrationResponse, status_code=status.HTTP_201_CREATED)
def register_exporter(registration: ExporterRegistration, db: Session = Depends(get_db)):
    user, profile = register_profile(
        db,
        RoleType.EXPORTER,
        registration.user,
        {
            "company_name": registration.company_name,
            "company_desc": registration.company_desc,
            "license_id": registration.license_id,
        },
    )
    return _registration_response(user, profile, RoleType.EXPORTER)
