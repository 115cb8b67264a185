from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from agrimarket.api.requests import get_workflow
from agrimarket.auth.security import Principal, get_current_principal
from agrimarket.db.session import get_db
from agrimarket.schemas.request import RequestOrder as RequestOrderSchema
from agrimarket.services.workflow import ProduceRequestWorkflow

router = APIRouter()


@router.get("/", response_model=List[RequestOrderSchema], summary="Gives out all orders of a specific farmer")
def read_farmer_orders(
    farmer_id: str,
    db: Session = Depends(get_db),
    workflow: ProduceRequestWorkflow = Depends(get_workflow),
    principal: Principal = Depends(get_current_principal),
):
    # Farmers can only see their own orders
    if principal.has_role("FARMER") and principal.actor_id != farmer_id:
        raise HTTPException(status_code=403, detail="Not enough permissions")
    return workflow.find_orders_by_farmer(db, farmer_id)
