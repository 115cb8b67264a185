import json
from datetime import datetime, timedelta

import pytest

from agrimarket.core.exceptions import ConcurrentUpdate, InvalidTransition, NotFound, ValidationFailed
from agrimarket.core.executors import BoundedExecutor
from agrimarket.models.ledger import LedgerReference, LedgerStatus
from agrimarket.models.produce import BuyerProduceStatus
from agrimarket.models.request import OrderStatus, ProduceRequestStatus
from agrimarket.services.workflow import (
    ORDER_ADDED,
    ORDER_ACCEPTED,
    ORDER_CANCELLED,
    PAYMENT_CONFIRMED,
    REQUEST_CANCELLED,
    SUPPLY_CONFIRMED,
    ProduceRequestWorkflow,
)


async def drain(subscription):
    """Collect every event already queued on a subscription."""
    events = []
    while True:
        event = await subscription.next_event(timeout=0.01)
        if event is None:
            return events
        events.append(event)


class TestProduceRequests:

    def test_request_a_produce(self, db, workflow, buyer, preferred_maize):
        produce_request = workflow.request_a_produce(
            db, buyer.id, preferred_maize.id, quantity=40, price=25.5, unit="kg", currency="kes"
        )

        assert produce_request.status == ProduceRequestStatus.ACTIVE
        assert produce_request.currency == "KES"
        assert produce_request.buyer_id == buyer.id
        assert preferred_maize.status == BuyerProduceStatus.REQUESTING

    def test_request_for_someone_elses_produce(self, db, workflow, other_buyer, preferred_maize):
        with pytest.raises(NotFound):
            workflow.request_a_produce(db, other_buyer.id, preferred_maize.id, 10, 10, "kg")

    @pytest.mark.parametrize("quantity,price", [(0, 10), (-1, 10), (10, 0)])
    def test_rejects_non_positive_values(self, db, workflow, buyer, preferred_maize, quantity, price):
        with pytest.raises(ValidationFailed):
            workflow.request_a_produce(db, buyer.id, preferred_maize.id, quantity, price, "kg")

    @pytest.mark.asyncio
    async def test_cancel_request(self, db, workflow, broker, produce_request):
        subscription = broker.subscribe(produce_request.id)

        cancelled = workflow.cancel_request(db, produce_request.id)

        assert cancelled.status == ProduceRequestStatus.CANCELLED
        assert cancelled.preferred_produce.status == BuyerProduceStatus.ACTIVE
        assert [e.name for e in await drain(subscription)] == [REQUEST_CANCELLED]

    @pytest.mark.asyncio
    async def test_cancel_request_cancels_unsupplied_orders(self, db, workflow, broker, farmer, produce_request):
        pending = workflow.add_order_to_request(db, produce_request.id, farmer.id, 10)
        booked = workflow.add_order_to_request(db, produce_request.id, farmer.id, 10)
        supplied = workflow.add_order_to_request(db, produce_request.id, farmer.id, 10)
        workflow.accept_order(db, booked.id)
        workflow.accept_order(db, supplied.id)
        workflow.confirm_supply(db, supplied.id)
        subscription = broker.subscribe(produce_request.id)

        workflow.cancel_request(db, produce_request.id)

        for order in (pending, booked):
            db.refresh(order)
            assert order.status == OrderStatus.CANCELLED
            assert order.date_cancelled is not None
        db.refresh(supplied)
        assert supplied.status == OrderStatus.SUPPLIED
        assert [e.name for e in await drain(subscription)] == [ORDER_CANCELLED, ORDER_CANCELLED, REQUEST_CANCELLED]
        with pytest.raises(InvalidTransition):
            workflow.accept_order(db, pending.id)
        workflow.confirm_payment(db, supplied.id)

    def test_close_request_keeps_orders(self, db, workflow, farmer, produce_request):
        order = workflow.add_order_to_request(db, produce_request.id, farmer.id, 10)

        workflow.close_request(db, produce_request.id)

        db.refresh(order)
        assert order.status == OrderStatus.PENDING_ACCEPTANCE
        assert workflow.accept_order(db, order.id).status == OrderStatus.BOOKED_FOR_SUPPLY

    def test_cannot_close_cancelled_request(self, db, workflow, produce_request):
        workflow.cancel_request(db, produce_request.id)
        with pytest.raises(InvalidTransition):
            workflow.close_request(db, produce_request.id)

    def test_unknown_request(self, db, workflow):
        with pytest.raises(NotFound, match="Request not found"):
            workflow.get_request(db, "missing")

    def test_list_by_status(self, db, workflow, buyer, preferred_maize, produce_request):
        second = workflow.request_a_produce(db, buyer.id, preferred_maize.id, 5, 5, "kg")
        workflow.close_request(db, second.id)

        active = workflow.list_requests(db, ProduceRequestStatus.ACTIVE)

        assert [r.id for r in active] == [produce_request.id]
        assert len(workflow.list_requests(db)) == 2

    def test_buyer_requests_are_paginated(self, db, workflow, buyer, other_buyer, preferred_maize, produce_request):
        workflow.request_a_produce(db, buyer.id, preferred_maize.id, 5, 5, "kg")

        page = workflow.get_buyer_requests(db, buyer.id, page=1, per_page=1)

        assert page["total"] == 2
        assert page["total_pages"] == 2
        assert page["has_next"] is True
        assert len(page["items"]) == 1
        assert workflow.get_buyer_requests(db, other_buyer.id)["total"] == 0

    def test_summary_ignores_cancelled_orders(self, db, workflow, farmer, produce_request):
        kept = workflow.add_order_to_request(db, produce_request.id, farmer.id, 30)
        dropped = workflow.add_order_to_request(db, produce_request.id, farmer.id, 20)
        workflow.cancel_order(db, dropped.id)

        summary = workflow.summarize_request(db, produce_request.id)

        assert summary["quantity_sold"] == kept.quantity
        assert summary["quantity_left"] == 70
        assert summary["earnings"] == 30 * 50
        assert summary["no_of_purchases"] == 1


class TestRequestOrders:

    @pytest.mark.asyncio
    async def test_add_order(self, db, workflow, broker, farmer, produce_request):
        subscription = broker.subscribe(produce_request.id)

        order = workflow.add_order_to_request(db, produce_request.id, farmer.id, 25)

        assert order.status == OrderStatus.PENDING_ACCEPTANCE
        assert order.produce_request_id == produce_request.id
        assert order.date_created is not None
        events = await drain(subscription)
        assert [e.name for e in events] == [ORDER_ADDED]
        assert json.loads(events[0].data) == {
            "request_id": produce_request.id,
            "order_id": order.id,
            "status": "PENDING_ACCEPTANCE",
        }

    def test_order_cannot_exceed_remaining_quantity(self, db, workflow, farmer, produce_request):
        workflow.add_order_to_request(db, produce_request.id, farmer.id, 80)
        with pytest.raises(ValidationFailed) as exc_info:
            workflow.add_order_to_request(db, produce_request.id, farmer.id, 30)
        assert exc_info.value.details == {"remaining": 20}

    def test_full_quantity_closes_request(self, db, workflow, farmer, other_farmer, produce_request):
        workflow.add_order_to_request(db, produce_request.id, farmer.id, 60)
        workflow.add_order_to_request(db, produce_request.id, other_farmer.id, 40)

        db.refresh(produce_request)
        assert produce_request.status == ProduceRequestStatus.CLOSED
        assert produce_request.preferred_produce.status == BuyerProduceStatus.ACTIVE
        with pytest.raises(InvalidTransition):
            workflow.add_order_to_request(db, produce_request.id, farmer.id, 1)

    def test_unknown_farmer(self, db, workflow, produce_request):
        with pytest.raises(NotFound, match="Farmer"):
            workflow.add_order_to_request(db, produce_request.id, "nobody", 1)

    def test_non_positive_quantity(self, db, workflow, farmer, produce_request):
        with pytest.raises(ValidationFailed):
            workflow.add_order_to_request(db, produce_request.id, farmer.id, 0)

    @pytest.mark.asyncio
    async def test_full_lifecycle(self, db, workflow, broker, farmer, produce_request):
        order = workflow.add_order_to_request(db, produce_request.id, farmer.id, 10)
        subscription = broker.subscribe(produce_request.id)

        workflow.accept_order(db, order.id)
        workflow.confirm_supply(db, order.id)
        paid = workflow.confirm_payment(db, order.id)

        assert paid.status == OrderStatus.SUPPLIED_AND_PAID
        assert paid.date_created <= paid.date_accepted <= paid.date_supplied <= paid.date_paid
        assert [e.name for e in await drain(subscription)] == [ORDER_ACCEPTED, SUPPLY_CONFIRMED, PAYMENT_CONFIRMED]

    @pytest.mark.parametrize("action", ["confirm_supply", "confirm_payment"])
    def test_steps_cannot_be_skipped(self, db, workflow, farmer, produce_request, action):
        order = workflow.add_order_to_request(db, produce_request.id, farmer.id, 10)

        with pytest.raises(InvalidTransition) as exc_info:
            getattr(workflow, action)(db, order.id)

        assert exc_info.value.current == "PENDING_ACCEPTANCE"
        db.refresh(order)
        assert order.status == OrderStatus.PENDING_ACCEPTANCE

    def test_accept_twice(self, db, workflow, farmer, produce_request):
        order = workflow.add_order_to_request(db, produce_request.id, farmer.id, 10)
        workflow.accept_order(db, order.id)
        with pytest.raises(InvalidTransition):
            workflow.accept_order(db, order.id)

    def test_cancelled_order_is_terminal(self, db, workflow, farmer, produce_request):
        order = workflow.add_order_to_request(db, produce_request.id, farmer.id, 10)
        cancelled = workflow.cancel_order(db, order.id)

        assert cancelled.status == OrderStatus.CANCELLED
        assert cancelled.date_cancelled is not None
        for action in ("accept_order", "confirm_supply", "confirm_payment", "cancel_order"):
            with pytest.raises(InvalidTransition):
                getattr(workflow, action)(db, order.id)

    def test_paid_order_cannot_be_cancelled(self, db, workflow, farmer, produce_request):
        order = workflow.add_order_to_request(db, produce_request.id, farmer.id, 10)
        workflow.accept_order(db, order.id)
        workflow.confirm_supply(db, order.id)
        workflow.confirm_payment(db, order.id)
        with pytest.raises(InvalidTransition):
            workflow.cancel_order(db, order.id)

    def test_timestamps_never_go_backwards(self, db, broker, farmer, buyer, preferred_maize):
        ticks = iter([datetime(2024, 1, 2), datetime(2024, 1, 2), datetime(2024, 1, 1)])
        workflow = ProduceRequestWorkflow(broker=broker, clock=lambda: next(ticks))
        produce_request = workflow.request_a_produce(db, buyer.id, preferred_maize.id, 10, 10, "kg")
        order = workflow.add_order_to_request(db, produce_request.id, farmer.id, 5)

        accepted = workflow.accept_order(db, order.id)

        assert accepted.date_accepted == datetime(2024, 1, 2)

    def test_find_orders_by_farmer(self, db, workflow, farmer, other_farmer, produce_request):
        mine = workflow.add_order_to_request(db, produce_request.id, farmer.id, 10)
        workflow.add_order_to_request(db, produce_request.id, other_farmer.id, 10)

        assert [o.id for o in workflow.find_orders_by_farmer(db, farmer.id)] == [mine.id]

    def test_unknown_order(self, db, workflow):
        with pytest.raises(NotFound, match="Order not found"):
            workflow.accept_order(db, "missing")

    @pytest.mark.asyncio
    async def test_events_reach_only_their_request(self, db, workflow, broker, farmer, buyer, preferred_maize, produce_request):
        other_request = workflow.request_a_produce(db, buyer.id, preferred_maize.id, 20, 10, "kg")
        order = workflow.add_order_to_request(db, produce_request.id, farmer.id, 10)
        mine = broker.subscribe(produce_request.id)
        theirs = broker.subscribe(other_request.id)

        workflow.accept_order(db, order.id)

        events = await drain(mine)
        assert [e.name for e in events] == [ORDER_ACCEPTED]
        assert json.loads(events[0].data)["order_id"] == order.id
        assert await drain(theirs) == []

    def test_events_without_subscriber_are_dropped(self, db, workflow, broker, farmer, produce_request):
        order = workflow.add_order_to_request(db, produce_request.id, farmer.id, 10)
        workflow.accept_order(db, order.id)
        assert len(broker) == 0


class TestLedgerAnchoring:

    def test_payment_records_ledger_reference(self, db, broker, session_factory, farmer, produce_request):
        pool = BoundedExecutor("ledger-test", max_workers=1, queue_size=1)
        workflow = ProduceRequestWorkflow(broker=broker, ledger_pool=pool, session_factory=session_factory)
        order = workflow.add_order_to_request(db, produce_request.id, farmer.id, 10)
        workflow.accept_order(db, order.id)
        workflow.confirm_supply(db, order.id)

        workflow.confirm_payment(db, order.id)
        pool.shutdown(wait=True)

        reference = db.query(LedgerReference).filter(LedgerReference.entity_id == order.id).one()
        assert reference.entity_type == "request_order"
        assert reference.event == PAYMENT_CONFIRMED
        assert reference.status == LedgerStatus.PENDING


class TestConcurrentWrites:
    """Two sessions holding the same rows, as two request handlers would."""

    def test_racing_pledges_cannot_overbook(self, db, workflow, session_factory, farmer, other_farmer, produce_request):
        first, second = session_factory(), session_factory()
        try:
            mine = workflow.get_request(first, produce_request.id)
            theirs = workflow.get_request(second, produce_request.id)
            # both handlers have already seen the whole quantity as free
            assert mine.quantity_ordered == theirs.quantity_ordered == 0

            workflow.add_order_to_request(first, produce_request.id, farmer.id, 80)
            with pytest.raises(ConcurrentUpdate):
                workflow.add_order_to_request(second, produce_request.id, other_farmer.id, 80)
        finally:
            first.close()
            second.close()

        db.expire_all()
        stored = workflow.get_request(db, produce_request.id)
        assert stored.quantity_ordered == 80
        assert [o.farmer_id for o in stored.orders] == [farmer.id]
        assert stored.status == ProduceRequestStatus.ACTIVE

    def test_stale_order_transition_is_rejected(self, db, workflow, session_factory, farmer, produce_request):
        order = workflow.add_order_to_request(db, produce_request.id, farmer.id, 10)
        first, second = session_factory(), session_factory()
        try:
            accepting = workflow.get_order(first, order.id)
            cancelling = workflow.get_order(second, order.id)
            assert accepting.status == cancelling.status == OrderStatus.PENDING_ACCEPTANCE

            workflow.accept_order(first, order.id)
            with pytest.raises(ConcurrentUpdate):
                workflow.cancel_order(second, order.id)
        finally:
            first.close()
            second.close()

        db.expire_all()
        stored = workflow.get_order(db, order.id)
        assert stored.status == OrderStatus.BOOKED_FOR_SUPPLY
        assert stored.date_cancelled is None
