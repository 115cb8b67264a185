from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List, Optional
from agrimarket.db.session import get_db
from agrimarket.models.produce import FarmProduce, FarmProduceStatus, PreferredProduce, BuyerProduceStatus
from agrimarket.schemas.produce import (
    FarmProduce as FarmProduceSchema,
    FarmProduceCreate,
    PreferredProduce as PreferredProduceSchema,
    PreferredProduceCreate,
)
from agrimarket.auth.security import Principal, get_current_principal, is_admin, is_buyer

router = APIRouter()


@router.post("/", response_model=FarmProduceSchema, status_code=status.HTTP_201_CREATED)
def create_farm_produce(
    produce: FarmProduceCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(is_admin)
):
    existing = db.query(FarmProduce).filter(FarmProduce.name.ilike(produce.name)).first()
    if existing:
        raise HTTPException(status_code=400, detail="Produce with this name already exists")

    db_produce = FarmProduce(**produce.model_dump(), status=FarmProduceStatus.ACTIVE)
    db.add(db_produce)
    db.commit()
    db.refresh(db_produce)
    return db_produce


@router.get("/", response_model=List[FarmProduceSchema])
def read_farm_produces(
    skip: int = 0,
    limit: int = 100,
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    query = db.query(FarmProduce).filter(FarmProduce.status != FarmProduceStatus.INACTIVE)
    if search:
        query = query.filter(FarmProduce.name.ilike(f"%{search}%"))
    return query.order_by(FarmProduce.name).offset(skip).limit(limit).all()


@router.post("/preferred", response_model=PreferredProduceSchema, status_code=status.HTTP_201_CREATED)
def add_preferred_produce(
    preferred: PreferredProduceCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(is_buyer)
):
    farm_produce = db.query(FarmProduce).filter(FarmProduce.id == preferred.farm_produce_id).first()
    if farm_produce is None:
        raise HTTPException(status_code=404, detail="Produce not found")

    existing = db.query(PreferredProduce).filter(
        PreferredProduce.buyer_id == principal.actor_id,
        PreferredProduce.farm_produce_id == farm_produce.id,
    ).first()
    if existing:
        return existing

    db_preferred = PreferredProduce(
        buyer_id=principal.actor_id,
        farm_produce=farm_produce,
        status=BuyerProduceStatus.ACTIVE,
    )
    db.add(db_preferred)
    db.commit()
    db.refresh(db_preferred)
    return db_preferred


@router.get("/preferred", response_model=List[PreferredProduceSchema])
def read_preferred_produces(
    db: Session = Depends(get_db),
    principal: Principal = Depends(is_buyer)
):
    # Buyers only ever see their own preferred produces
    return db.query(PreferredProduce).filter(PreferredProduce.buyer_id == principal.actor_id).all()
