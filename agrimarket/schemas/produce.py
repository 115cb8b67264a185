from typing import Optional
from pydantic import BaseModel
from agrimarket.schemas.base import TimestampSchema
from agrimarket.models.produce import FarmProduceStatus, BuyerProduceStatus


class FarmProduceBase(BaseModel):
    name: str
    description: Optional[str] = None
    farming_type: Optional[str] = None


class FarmProduceCreate(FarmProduceBase):
    pass


class FarmProduce(TimestampSchema, FarmProduceBase):
    id: str
    status: FarmProduceStatus


class PreferredProduceCreate(BaseModel):
    farm_produce_id: str


class PreferredProduce(TimestampSchema):
    id: str
    buyer_id: str
    farm_produce_id: str
    status: BuyerProduceStatus
    farm_produce: Optional[FarmProduce] = None
