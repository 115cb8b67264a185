from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List

from agrimarket.db.session import get_db
from agrimarket.models.user import User as UserModel
from agrimarket.schemas.user import User as UserSchema
from agrimarket.auth.security import Principal, get_current_principal, is_admin

router = APIRouter()


# --------------------------------------------------------------------
# Get all users (admin only) -> GET /users
# --------------------------------------------------------------------
@router.get("/", response_model=List[UserSchema])
def read_users(
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    principal: Principal = Depends(is_admin)
):
    users = db.query(UserModel).offset(skip).limit(limit).all()
    return [UserSchema.model_validate(u) for u in users]


# --------------------------------------------------------------------
# Current principal (any logged in user) -> GET /users/me
# --------------------------------------------------------------------
@router.get("/me")
def read_principal_me(principal: Principal = Depends(get_current_principal)):
    return {
        "actor_id": principal.actor_id,
        "role": principal.role,
        "authorities": list(principal.authorities),
    }


# --------------------------------------------------------------------
# Deactivate user (admin only, soft) -> PUT /users/{user_id}/deactivate
# --------------------------------------------------------------------
@router.put("/{user_id}/deactivate", response_model=UserSchema)
def deactivate_user(
    user_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(is_admin)
):
    db_user = db.query(UserModel).filter(UserModel.id == user_id).first()
    if db_user is None:
        raise HTTPException(status_code=404, detail="User not found")

    db_user.is_active = False
    db.add(db_user)
    db.commit()
    db.refresh(db_user)
    return UserSchema.model_validate(db_user)
