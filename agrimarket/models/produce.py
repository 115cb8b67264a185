import enum

from sqlalchemy import Column, String, ForeignKey, Enum
from sqlalchemy.orm import relationship
from agrimarket.models.base import BaseModel


class FarmProduceStatus(str, enum.Enum):
    INACTIVE = "INACTIVE"
    ACTIVE = "ACTIVE"
    IS_SELLING = "IS_SELLING"


class BuyerProduceStatus(str, enum.Enum):
    INACTIVE = "INACTIVE"
    ACTIVE = "ACTIVE"
    REQUESTING = "REQUESTING"


class FarmProduce(BaseModel):
    __tablename__ = "farm_produces"

    name = Column(String(100), unique=True, nullable=False)
    description = Column(String)
    farming_type = Column(String(50))
    status = Column(Enum(FarmProduceStatus, name="farm_produce_status"), nullable=False, default=FarmProduceStatus.ACTIVE)


class PreferredProduce(BaseModel):
    __tablename__ = "preferred_produces"

    buyer_id = Column(String(36), ForeignKey("buyers.id", ondelete="CASCADE"), nullable=False, index=True)
    farm_produce_id = Column(String(36), ForeignKey("farm_produces.id"), nullable=False)
    status = Column(Enum(BuyerProduceStatus, name="buyer_produce_status"), nullable=False, default=BuyerProduceStatus.ACTIVE)

    buyer = relationship("Buyer")
    farm_produce = relationship("FarmProduce", lazy="joined")
