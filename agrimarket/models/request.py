import enum

from sqlalchemy import Column, String, Numeric, ForeignKey, Enum, Integer, DateTime, Float
from sqlalchemy.orm import relationship
from agrimarket.models.base import BaseModel


class ProduceRequestStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    CANCELLED = "CANCELLED"
    CLOSED = "CLOSED"


class OrderStatus(str, enum.Enum):
    PENDING_ACCEPTANCE = "PENDING_ACCEPTANCE"
    BOOKED_FOR_SUPPLY = "BOOKED_FOR_SUPPLY"
    SUPPLIED = "SUPPLIED"
    SUPPLIED_AND_PAID = "SUPPLIED_AND_PAID"
    CANCELLED = "CANCELLED"


class ProduceRequest(BaseModel):
    __tablename__ = "produce_requests"

    preferred_produce_id = Column(String(36), ForeignKey("preferred_produces.id"), nullable=False, index=True)
    quantity = Column(Float, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="KES")
    unit = Column(String(20), nullable=False)
    rating = Column(Float, default=0.0)
    status = Column(Enum(ProduceRequestStatus, name="produce_request_status"), nullable=False, default=ProduceRequestStatus.ACTIVE)
    date_created = Column(DateTime, nullable=False)
    version = Column(Integer, nullable=False)

    preferred_produce = relationship("PreferredProduce", lazy="joined")
    orders = relationship(
        "RequestOrder",
        back_populates="produce_request",
        cascade="all, delete-orphan",
        order_by="RequestOrder.date_created",
        lazy="selectin",
    )

    @property
    def buyer_id(self):
        return self.preferred_produce.buyer_id

    @property
    def live_orders(self):
        return [order for order in self.orders if order.status != OrderStatus.CANCELLED]

    @property
    def quantity_ordered(self) -> float:
        return sum(order.quantity for order in self.live_orders)

    # pledges racing for the remaining quantity fail with StaleDataError
    __mapper_args__ = {"version_id_col": version}


class RequestOrder(BaseModel):
    __tablename__ = "request_orders"

    produce_request_id = Column(String(36), ForeignKey("produce_requests.id", ondelete="CASCADE"), nullable=False, index=True)
    farmer_id = Column(String(36), ForeignKey("farmers.id"), nullable=False, index=True)
    quantity = Column(Float, nullable=False)
    status = Column(Enum(OrderStatus, name="order_status"), nullable=False, default=OrderStatus.PENDING_ACCEPTANCE)
    date_created = Column(DateTime, nullable=False)
    date_accepted = Column(DateTime)
    date_supplied = Column(DateTime)
    date_paid = Column(DateTime)
    date_cancelled = Column(DateTime)
    version = Column(Integer, nullable=False)

    produce_request = relationship("ProduceRequest", back_populates="orders")

    # concurrent transitions on one order fail with StaleDataError instead of both succeeding
    __mapper_args__ = {"version_id_col": version}
