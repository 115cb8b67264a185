from typing import Any, Dict, List, Optional
from pydantic import BaseModel, EmailStr, Field, model_validator
from agrimarket.schemas.base import BaseSchema, TimestampSchema
from agrimarket.models.user import RoleType


class UserBase(BaseModel):
    email: Optional[EmailStr] = None
    phone_number: Optional[str] = None
    full_name: str


class UserCreate(UserBase):
    password: str = Field(min_length=6)

    @model_validator(mode="after")
    def check_identifier(self):
        if not self.email and not self.phone_number:
            raise ValueError("Either email or phone number is required")
        return self


class User(TimestampSchema, UserBase):
    id: str
    is_active: bool
    roles: List[str] = []

    @model_validator(mode="before")
    @classmethod
    def flatten_roles(cls, data: Any):
        # ORM objects carry Role rows; expose just their names
        roles = getattr(data, "roles", None)
        if roles is not None and not isinstance(data, dict):
            return {
                "id": data.id,
                "email": data.email,
                "phone_number": data.phone_number,
                "full_name": data.full_name,
                "is_active": data.is_active,
                "created_at": data.created_at,
                "updated_at": data.updated_at,
                "roles": [role.name for role in roles],
            }
        return data


class FarmerRegistration(BaseModel):
    user: UserCreate
    farm_name: Optional[str] = None
    farm_size: Optional[float] = None


class BuyerRegistration(BaseModel):
    user: UserCreate
    company_name: Optional[str] = None
    business_type: Optional[str] = None


class ExporterRegistration(BaseModel):
    user: UserCreate
    company_name: Optional[str] = None
    company_desc: Optional[str] = None
    license_id: Optional[str] = None


class RegistrationResponse(BaseSchema):
    user: User
    role: str
    profile_id: str


class LoginRequest(BaseModel):
    email_or_phone: str
    password: str
    role_type: Optional[RoleType] = None


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    role: str
    profile: Dict[str, Any]


class Token(BaseModel):
    access_token: str
    token_type: str
