"""
Produce request and request order workflow.

A buyer posts a produce request; farmers pledge request orders against it.
Orders only ever move forward::

    PENDING_ACCEPTANCE -> BOOKED_FOR_SUPPLY -> SUPPLIED -> SUPPLIED_AND_PAID

and may be cancelled from any non-terminal state. Every committed change is
announced on the request's event stream.
"""

import logging
from collections import namedtuple
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import StaleDataError

from agrimarket.core.exceptions import ConcurrentUpdate, InvalidTransition, NotFound, ValidationFailed
from agrimarket.core.executors import BoundedExecutor
from agrimarket.events.broker import EventBroker
from agrimarket.models.produce import BuyerProduceStatus, PreferredProduce
from agrimarket.models.profile import Farmer
from agrimarket.models.request import OrderStatus, ProduceRequest, ProduceRequestStatus, RequestOrder
from agrimarket.schemas.pagination import paginate
from agrimarket.services.ledger import record_ledger_reference

logger = logging.getLogger(__name__)

ORDER_ADDED = "order-added-to-request"
ORDER_ACCEPTED = "order-accepted"
SUPPLY_CONFIRMED = "supply-confirmed"
PAYMENT_CONFIRMED = "payment-confirmed"
ORDER_CANCELLED = "order-cancelled"
REQUEST_CANCELLED = "request-cancelled"
REQUEST_CLOSED = "request-closed"

Transition = namedtuple("Transition", ["sources", "target", "timestamp", "event"])

ORDER_TRANSITIONS = {
    "accept": Transition({OrderStatus.PENDING_ACCEPTANCE}, OrderStatus.BOOKED_FOR_SUPPLY, "date_accepted", ORDER_ACCEPTED),
    "confirm supply": Transition({OrderStatus.BOOKED_FOR_SUPPLY}, OrderStatus.SUPPLIED, "date_supplied", SUPPLY_CONFIRMED),
    "confirm payment": Transition({OrderStatus.SUPPLIED}, OrderStatus.SUPPLIED_AND_PAID, "date_paid", PAYMENT_CONFIRMED),
    "cancel": Transition(
        {OrderStatus.PENDING_ACCEPTANCE, OrderStatus.BOOKED_FOR_SUPPLY, OrderStatus.SUPPLIED},
        OrderStatus.CANCELLED,
        "date_cancelled",
        ORDER_CANCELLED,
    ),
}

# Stage timestamps in the order they are stamped
ORDER_TIMESTAMPS = ("date_created", "date_accepted", "date_supplied", "date_paid")

# Orders a cancelled request cancels along with itself
REQUEST_CANCEL_CASCADES = {OrderStatus.PENDING_ACCEPTANCE, OrderStatus.BOOKED_FOR_SUPPLY}


class ProduceRequestWorkflow:
    def __init__(
        self,
        broker: EventBroker,
        ledger_pool: Optional[BoundedExecutor] = None,
        session_factory: Optional[Callable[[], Session]] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.broker = broker
        self.ledger_pool = ledger_pool
        self.session_factory = session_factory
        self.clock = clock

    # ------------------------------------------------------------------
    # Produce requests
    # ------------------------------------------------------------------
    def get_request(self, db: Session, request_id: str) -> ProduceRequest:
        produce_request = db.query(ProduceRequest).filter(ProduceRequest.id == request_id).first()
        if produce_request is None:
            raise NotFound("Request not found.")
        return produce_request

    def list_requests(self, db: Session, status: Optional[ProduceRequestStatus] = None) -> List[ProduceRequest]:
        query = db.query(ProduceRequest)
        if status is not None:
            query = query.filter(ProduceRequest.status == status)
        return query.order_by(ProduceRequest.date_created.desc()).all()

    def get_buyer_requests(self, db: Session, buyer_id: str, page: int = 1, per_page: int = 20) -> dict:
        query = (
            db.query(ProduceRequest)
            .join(PreferredProduce, ProduceRequest.preferred_produce_id == PreferredProduce.id)
            .filter(PreferredProduce.buyer_id == buyer_id)
            .order_by(ProduceRequest.date_created.desc())
        )
        return paginate(query, page, per_page)

    def summarize_request(self, db: Session, request_id: str) -> dict:
        produce_request = self.get_request(db, request_id)
        orders = produce_request.live_orders
        quantity_sold = sum(order.quantity for order in orders)
        return {
            "produce_request": produce_request,
            "quantity_sold": quantity_sold,
            "quantity_left": produce_request.quantity - quantity_sold,
            "earnings": quantity_sold * float(produce_request.price),
            "no_of_purchases": len(orders),
        }

    def request_a_produce(
        self,
        db: Session,
        buyer_id: str,
        preferred_produce_id: str,
        quantity: float,
        price: float,
        unit: str,
        currency: str = "KES",
    ) -> ProduceRequest:
        preferred_produce = db.query(PreferredProduce).filter(PreferredProduce.id == preferred_produce_id).first()
        if preferred_produce is None or preferred_produce.buyer_id != buyer_id:
            raise NotFound("Buyer produce not found.")
        if quantity <= 0:
            raise ValidationFailed("Please input the correct quantity")
        if price <= 0:
            raise ValidationFailed("Please input the correct price")

        produce_request = ProduceRequest(
            preferred_produce=preferred_produce,
            quantity=quantity,
            price=price,
            currency=currency.upper(),
            unit=unit,
            status=ProduceRequestStatus.ACTIVE,
            date_created=self.clock(),
            rating=0.0,
        )
        db.add(produce_request)
        preferred_produce.status = BuyerProduceStatus.REQUESTING
        db.commit()
        db.refresh(produce_request)
        logger.info("Buyer %s requested %s %s of %s", buyer_id, quantity, unit, preferred_produce.farm_produce_id)
        return produce_request

    def cancel_request(self, db: Session, request_id: str) -> ProduceRequest:
        return self._finish_request(db, request_id, ProduceRequestStatus.CANCELLED, "cancel request", REQUEST_CANCELLED)

    def close_request(self, db: Session, request_id: str) -> ProduceRequest:
        return self._finish_request(db, request_id, ProduceRequestStatus.CLOSED, "close request", REQUEST_CLOSED)

    def _finish_request(self, db, request_id, target, action, event) -> ProduceRequest:
        produce_request = self.get_request(db, request_id)
        if produce_request.status != ProduceRequestStatus.ACTIVE:
            raise InvalidTransition(produce_request.status.value, action)

        # a cancelled request takes its unsupplied orders with it; closing keeps them
        dropped = []
        if target == ProduceRequestStatus.CANCELLED:
            for order in produce_request.live_orders:
                if order.status in REQUEST_CANCEL_CASCADES:
                    order.date_cancelled = self._stamp_after(order)
                    order.status = OrderStatus.CANCELLED
                    dropped.append(order)

        produce_request.status = target
        produce_request.preferred_produce.status = BuyerProduceStatus.ACTIVE
        self._commit(db, request_id, action)
        db.refresh(produce_request)

        logger.info("Request %s is now %s, %d orders cancelled with it", request_id, target.value, len(dropped))
        for order in dropped:
            self._announce(order, ORDER_CANCELLED)
        self.broker.publish(request_id, event, {"request_id": request_id, "status": target.value})
        return produce_request

    # ------------------------------------------------------------------
    # Request orders
    # ------------------------------------------------------------------
    def get_order(self, db: Session, order_id: str) -> RequestOrder:
        order = db.query(RequestOrder).filter(RequestOrder.id == order_id).first()
        if order is None:
            raise NotFound("Order not found")
        return order

    def find_orders_by_farmer(self, db: Session, farmer_id: str) -> List[RequestOrder]:
        return (
            db.query(RequestOrder)
            .filter(RequestOrder.farmer_id == farmer_id)
            .order_by(RequestOrder.date_created.desc())
            .all()
        )

    def add_order_to_request(self, db: Session, request_id: str, farmer_id: str, quantity: float) -> RequestOrder:
        if quantity is None or quantity <= 0:
            raise ValidationFailed("Please input the correct quantity")

        produce_request = self.get_request(db, request_id)
        if produce_request.status != ProduceRequestStatus.ACTIVE:
            raise InvalidTransition(produce_request.status.value, "add order")

        if db.query(Farmer).filter(Farmer.id == farmer_id).first() is None:
            raise NotFound("Farmer not found")

        remaining = produce_request.quantity - produce_request.quantity_ordered
        if quantity > remaining:
            raise ValidationFailed(
                "You have submitted more quantity than requested",
                details={"remaining": remaining},
            )

        order = RequestOrder(
            farmer_id=farmer_id,
            quantity=quantity,
            status=OrderStatus.PENDING_ACCEPTANCE,
            date_created=self.clock(),
        )
        produce_request.orders.append(order)
        # every pledge bumps the request version, even when no request column changes
        flag_modified(produce_request, "quantity")

        if produce_request.quantity_ordered >= produce_request.quantity:
            produce_request.status = ProduceRequestStatus.CLOSED
            produce_request.preferred_produce.status = BuyerProduceStatus.ACTIVE
            logger.info("Request %s fully ordered, closing", request_id)

        self._commit(db, request_id, "add order")
        db.refresh(order)

        logger.info("Farmer %s pledged %s against request %s", farmer_id, quantity, request_id)
        self._announce(order, ORDER_ADDED)
        return order

    def accept_order(self, db: Session, order_id: str) -> RequestOrder:
        return self._transition(db, order_id, "accept")

    def confirm_supply(self, db: Session, order_id: str) -> RequestOrder:
        return self._transition(db, order_id, "confirm supply")

    def confirm_payment(self, db: Session, order_id: str) -> RequestOrder:
        order = self._transition(db, order_id, "confirm payment")
        if self.ledger_pool is not None and self.session_factory is not None:
            self.ledger_pool.submit(record_ledger_reference, self.session_factory, "request_order", order.id, PAYMENT_CONFIRMED)
        return order

    def cancel_order(self, db: Session, order_id: str) -> RequestOrder:
        return self._transition(db, order_id, "cancel")

    def _transition(self, db: Session, order_id: str, action: str) -> RequestOrder:
        transition = ORDER_TRANSITIONS[action]
        order = self.get_order(db, order_id)

        if order.status not in transition.sources:
            logger.warning("Rejected %s on order %s in status %s", action, order_id, order.status.value)
            raise InvalidTransition(order.status.value, action)

        setattr(order, transition.timestamp, self._stamp_after(order))
        order.status = transition.target
        self._commit(db, order_id, action)
        db.refresh(order)

        logger.info("Order %s is now %s", order_id, order.status.value)
        self._announce(order, transition.event)
        return order

    def _commit(self, db: Session, target_id: str, action: str) -> None:
        try:
            db.commit()
        except StaleDataError:
            db.rollback()
            logger.warning("Concurrent update on %s during %s", target_id, action)
            raise ConcurrentUpdate()

    def _stamp_after(self, order: RequestOrder) -> datetime:
        # never stamp earlier than a stage that already happened
        now = self.clock()
        stamped = [getattr(order, name) for name in ORDER_TIMESTAMPS if getattr(order, name) is not None]
        return max([now] + stamped)

    def _announce(self, order: RequestOrder, event: str) -> None:
        self.broker.publish(
            order.produce_request_id,
            event,
            {"request_id": order.produce_request_id, "order_id": order.id, "status": order.status.value},
        )
