from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from storefront.api.deps import get_db, parse_id
from storefront.api.v1.orders import dump
from storefront.api.v1.schemas import StatusUpdate
from storefront.core.auth import Identity, require_roles
from storefront.db.models import Role
from storefront.services import orders as workflow

router = APIRouter()

admin_only = require_roles(Role.ADMIN)


@router.get('/orders')
def all_orders(
    status: Optional[str] = None,
    user_id: Optional[str] = None,
    identity: Identity = Depends(admin_only),
    db: Session = Depends(get_db),
):
    if user_id is not None:
        parse_id(user_id, 'user ID')
    rows = workflow.list_orders(db, user_id=user_id, status=status)
    out = []
    for o in rows:
        d = dump(o)
        d['customer'] = d.pop('user')
        out.append(d)
    return {
        'message': 'All orders retrieved successfully',
        'stats': workflow.order_stats(rows),
        'count': len(rows),
        'orders': out,
    }


@router.patch('/orders/{order_id}/status')
def update_order_status(
    order_id: str,
    payload: StatusUpdate,
    identity: Identity = Depends(admin_only),
    db: Session = Depends(get_db),
):
    order, previous = workflow.update_status(db, identity, order_id, payload.status, payload.notes)
    body = dump(order)
    body['previous_status'] = previous
    return {
        'message': f'Order status updated from {previous} to {order.status}',
        'code': 'STATUS_UPDATED',
        'order': body,
    }
