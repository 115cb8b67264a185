from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel, Field
from agrimarket.schemas.base import BaseSchema, TimestampSchema
from agrimarket.schemas.produce import PreferredProduce
from agrimarket.models.request import ProduceRequestStatus, OrderStatus


class RequestOrder(BaseSchema):
    id: str
    produce_request_id: str
    farmer_id: str
    quantity: float
    status: OrderStatus
    date_created: datetime
    date_accepted: Optional[datetime] = None
    date_supplied: Optional[datetime] = None
    date_paid: Optional[datetime] = None
    date_cancelled: Optional[datetime] = None


class RequestOrderCreate(BaseModel):
    quantity: float


class ProduceRequestCreate(BaseModel):
    preferred_produce_id: str
    quantity: float
    price: float
    currency: str = Field("KES", min_length=3, max_length=3)
    unit: str


class ProduceRequest(TimestampSchema):
    id: str
    preferred_produce_id: str
    quantity: float
    price: float
    currency: str
    unit: str
    rating: Optional[float] = 0.0
    status: ProduceRequestStatus
    date_created: datetime
    preferred_produce: Optional[PreferredProduce] = None
    orders: List[RequestOrder] = []


class ProduceRequestSummary(BaseSchema):
    produce_request: ProduceRequest
    quantity_sold: float
    quantity_left: float
    earnings: float
    no_of_purchases: int
