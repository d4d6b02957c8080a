from typing import Optional

from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from storefront.api.deps import get_db
from storefront.api.v1.schemas import OrderCreate, OrderDetail, OrderRead, TimelineStep
from storefront.core.auth import Identity, get_current_identity
from storefront.core.config import Settings, get_settings
from storefront.services import orders as workflow

router = APIRouter()


def dump(order, detail: bool = False) -> dict:
    if detail:
        out = OrderDetail.model_validate(order)
        out = out.model_copy(update={'timeline': [TimelineStep(**s) for s in workflow.timeline(order)]})
    else:
        out = OrderRead.model_validate(order)
    return out.model_dump(mode='json')


@router.post('', status_code=201)
def create_order(
    payload: Optional[OrderCreate] = Body(default=None),
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
    cfg: Settings = Depends(get_settings),
):
    payload = payload or OrderCreate()
    order = workflow.create_order(
        db,
        identity.user_id,
        shipping_address=payload.shipping_address,
        payment_method=payload.payment_method,
        notes=payload.notes,
        cfg=cfg,
    )
    return {
        'message': 'Order created successfully! Your order is pending confirmation.',
        'code': 'ORDER_CREATED',
        'order': dump(order),
    }


@router.get('')
def my_orders(
    status: Optional[str] = None,
    sort_by: Optional[str] = None,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    rows = workflow.list_orders(db, user_id=identity.user_id, status=status, sort_by=sort_by)
    return {
        'message': 'Your orders retrieved successfully',
        'count': len(rows),
        'orders': [dump(o) for o in rows],
    }


@router.get('/{order_ref}')
def get_order(order_ref: str, identity: Identity = Depends(get_current_identity), db: Session = Depends(get_db)):
    order = workflow.view_order(db, identity, order_ref)
    return {'message': 'Order retrieved successfully', 'order': dump(order, detail=True)}


@router.patch('/{order_ref}/cancel')
def cancel_order(order_ref: str, identity: Identity = Depends(get_current_identity), db: Session = Depends(get_db)):
    order = workflow.cancel_order(db, identity, order_ref)
    return {'message': 'Order cancelled successfully', 'code': 'ORDER_CANCELLED', 'order': dump(order)}
