from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from agrimarket.auth.security import Principal, get_current_principal, is_buyer, is_farmer
from agrimarket.db.session import get_db
from agrimarket.models.request import ProduceRequestStatus
from agrimarket.schemas.pagination import PaginatedResponse
from agrimarket.schemas.request import (
    ProduceRequest as ProduceRequestSchema,
    ProduceRequestCreate,
    ProduceRequestSummary,
    RequestOrder as RequestOrderSchema,
    RequestOrderCreate,
)
from agrimarket.services.workflow import ProduceRequestWorkflow

router = APIRouter()


def get_workflow(request: Request) -> ProduceRequestWorkflow:
    return request.app.state.workflow


def _ensure_request_owner(principal: Principal, produce_request) -> None:
    if not principal.has_role("BUYER") or principal.actor_id != produce_request.buyer_id:
        raise HTTPException(status_code=403, detail="Only the buyer who made the request can do this")


def _ensure_order_party(principal: Principal, order) -> None:
    is_owner = principal.has_role("BUYER") and principal.actor_id == order.produce_request.buyer_id
    is_supplier = principal.has_role("FARMER") and principal.actor_id == order.farmer_id
    if not (is_owner or is_supplier):
        raise HTTPException(status_code=403, detail="Not enough permissions")


@router.get(
    "/list",
    response_model=List[ProduceRequestSchema],
    summary="Gets all of the requests",
)
def list_requests(
    request_status: Optional[ProduceRequestStatus] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    workflow: ProduceRequestWorkflow = Depends(get_workflow),
    principal: Principal = Depends(get_current_principal),
):
    return workflow.list_requests(db, request_status)


@router.get(
    "/buyer/{buyer_id}",
    response_model=PaginatedResponse[ProduceRequestSchema],
    summary="Gets out requests for a specific buyer",
)
def read_buyer_requests(
    buyer_id: str,
    page: int = Query(1, ge=1, description="Page number starting from 1"),
    per_page: int = Query(20, ge=1, le=100, description="Items per page (1-100)"),
    db: Session = Depends(get_db),
    workflow: ProduceRequestWorkflow = Depends(get_workflow),
    principal: Principal = Depends(get_current_principal),
):
    return workflow.get_buyer_requests(db, buyer_id, page, per_page)


@router.get(
    "/{request_id}",
    response_model=ProduceRequestSummary,
    summary="Gets out a specific request",
)
def read_request(
    request_id: str,
    db: Session = Depends(get_db),
    workflow: ProduceRequestWorkflow = Depends(get_workflow),
    principal: Principal = Depends(get_current_principal),
):
    return workflow.summarize_request(db, request_id)


@router.post(
    "/",
    response_model=ProduceRequestSchema,
    status_code=status.HTTP_201_CREATED,
    summary="Requests a produce on behalf of a buyer",
)
def request_a_produce(
    produce_request: ProduceRequestCreate,
    db: Session = Depends(get_db),
    workflow: ProduceRequestWorkflow = Depends(get_workflow),
    principal: Principal = Depends(is_buyer),
):
    return workflow.request_a_produce(
        db,
        buyer_id=principal.actor_id,
        preferred_produce_id=produce_request.preferred_produce_id,
        quantity=produce_request.quantity,
        price=produce_request.price,
        unit=produce_request.unit,
        currency=produce_request.currency,
    )


@router.put("/{request_id}/cancel", response_model=ProduceRequestSchema, summary="Cancels (unrequests) a request")
def cancel_request(
    request_id: str,
    db: Session = Depends(get_db),
    workflow: ProduceRequestWorkflow = Depends(get_workflow),
    principal: Principal = Depends(is_buyer),
):
    _ensure_request_owner(principal, workflow.get_request(db, request_id))
    return workflow.cancel_request(db, request_id)


@router.put("/{request_id}/close", response_model=ProduceRequestSchema, summary="Closes a request")
def close_request(
    request_id: str,
    db: Session = Depends(get_db),
    workflow: ProduceRequestWorkflow = Depends(get_workflow),
    principal: Principal = Depends(is_buyer),
):
    _ensure_request_owner(principal, workflow.get_request(db, request_id))
    return workflow.close_request(db, request_id)


@router.post(
    "/{request_id}/orders",
    response_model=RequestOrderSchema,
    status_code=status.HTTP_201_CREATED,
    summary="Adds a farmer's order to a request",
)
def add_order_to_request(
    request_id: str,
    order: RequestOrderCreate,
    db: Session = Depends(get_db),
    workflow: ProduceRequestWorkflow = Depends(get_workflow),
    principal: Principal = Depends(is_farmer),
):
    return workflow.add_order_to_request(db, request_id, principal.actor_id, order.quantity)


@router.put("/orders/{order_id}/accept", response_model=RequestOrderSchema, summary="Accepts a farmer's order")
def accept_order(
    order_id: str,
    db: Session = Depends(get_db),
    workflow: ProduceRequestWorkflow = Depends(get_workflow),
    principal: Principal = Depends(is_buyer),
):
    _ensure_request_owner(principal, workflow.get_order(db, order_id).produce_request)
    return workflow.accept_order(db, order_id)


@router.put("/orders/{order_id}/confirm-supply", response_model=RequestOrderSchema, summary="Confirms produce supplied")
def confirm_supply(
    order_id: str,
    db: Session = Depends(get_db),
    workflow: ProduceRequestWorkflow = Depends(get_workflow),
    principal: Principal = Depends(is_buyer),
):
    _ensure_request_owner(principal, workflow.get_order(db, order_id).produce_request)
    return workflow.confirm_supply(db, order_id)


@router.put("/orders/{order_id}/confirm-payment", response_model=RequestOrderSchema, summary="Confirms payment for supplied produce")
def confirm_payment(
    order_id: str,
    db: Session = Depends(get_db),
    workflow: ProduceRequestWorkflow = Depends(get_workflow),
    principal: Principal = Depends(get_current_principal),
):
    _ensure_order_party(principal, workflow.get_order(db, order_id))
    return workflow.confirm_payment(db, order_id)


@router.put("/orders/{order_id}/cancel", response_model=RequestOrderSchema, summary="Cancels an order")
def cancel_order(
    order_id: str,
    db: Session = Depends(get_db),
    workflow: ProduceRequestWorkflow = Depends(get_workflow),
    principal: Principal = Depends(get_current_principal),
):
    _ensure_order_party(principal, workflow.get_order(db, order_id))
    return workflow.cancel_order(db, order_id)


def _ensure_request_exists(request: Request, workflow: ProduceRequestWorkflow, request_id: str) -> None:
    db = request.app.state.session_factory()
    try:
        workflow.get_request(db, request_id)
    finally:
        db.close()


@router.get("/{request_id}/stream", summary="Streams order events for a request")
async def stream_request_events(
    request_id: str,
    request: Request,
    workflow: ProduceRequestWorkflow = Depends(get_workflow),
):
    # open streams hold neither a worker thread nor a database connection
    await run_in_threadpool(_ensure_request_exists, request, workflow, request_id)
    broker = request.app.state.broker
    subscription = broker.subscribe(request_id)
    return StreamingResponse(
        broker.stream(subscription),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
