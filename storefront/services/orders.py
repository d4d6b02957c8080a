"""Order workflow: cart -> order snapshot -> cart clear, and status changes.

``create_order`` reads the caller's cart rows joined to their products, copies
each product's name and price into the order items and deletes the cart rows,
all inside one database transaction. Later catalog edits never reach a placed
order because nothing on the order points at live prices.
"""
import logging
import secrets
import string
from datetime import datetime
from typing import Callable, Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload, selectinload

from storefront.core.auth import Identity
from storefront.core.config import Settings, settings as default_settings
from storefront.core.errors import EmptyCart, Forbidden, InternalError, InvalidState, NotFound, ValidationError
from storefront.db.models import CartItem, Order, OrderItem, OrderStatus
from storefront.security.utils import is_valid_id, now_utc

logger = logging.getLogger(__name__)

STATUSES = [s.value for s in OrderStatus]

# forward-only; delivered and cancelled are terminal
TRANSITIONS: Dict[str, set] = {
    OrderStatus.PENDING.value: {OrderStatus.CONFIRMED.value, OrderStatus.CANCELLED.value},
    OrderStatus.CONFIRMED.value: {OrderStatus.SHIPPED.value, OrderStatus.CANCELLED.value},
    OrderStatus.SHIPPED.value: {OrderStatus.DELIVERED.value},
    OrderStatus.DELIVERED.value: set(),
    OrderStatus.CANCELLED.value: set(),
}

SORTS = {
    'newest': (Order.created_at.desc(),),
    'oldest': (Order.created_at.asc(),),
    'status': (Order.status.asc(), Order.created_at.desc()),
}

_ALPHABET = string.ascii_uppercase + string.digits


def _order_options():
    return (
        joinedload(Order.user),
        selectinload(Order.items).joinedload(OrderItem.product),
    )


def generate_order_number(now: Optional[datetime] = None) -> str:
    now = now or now_utc()
    suffix = ''.join(secrets.choice(_ALPHABET) for _ in range(6))
    return f"ORD-{now:%Y%m%d}-{suffix}"


def _number_taken(db: Session, number: str) -> bool:
    return db.execute(select(Order.id).where(Order.order_number == number)).first() is not None


def unique_order_number(db: Session, attempts: int, make: Callable[[], str] = generate_order_number) -> str:
    for _ in range(max(1, attempts)):
        candidate = make()
        if not _number_taken(db, candidate):
            return candidate
        logger.warning('Order number collision on %s, retrying', candidate)
    raise InternalError('Could not generate a unique order number', code='ORDER_NUMBER_EXHAUSTED')


def _place(db: Session, user_id: str, order_number: str, shipping_address, payment_method, notes) -> Order:
    stmt = (
        select(CartItem)
        .where(CartItem.user_id == user_id)
        .options(joinedload(CartItem.product))
        .order_by(CartItem.created_at)
        .with_for_update(of=CartItem)
    )
    cart = list(db.execute(stmt).scalars().all())
    if not cart:
        raise EmptyCart('Cart is empty - cannot create order')

    items: List[OrderItem] = []
    total = 0.0
    for pos, row in enumerate(cart):
        product = row.product
        subtotal = round(product.price * row.quantity, 2)
        total += subtotal
        items.append(OrderItem(
            position=pos,
            product_id=product.id,
            product_name=product.name,
            quantity=row.quantity,
            price=product.price,
            subtotal=subtotal,
        ))

    order = Order(
        order_number=order_number,
        user_id=user_id,
        items=items,
        total_amount=round(total, 2),
        status=OrderStatus.PENDING.value,
        shipping_address=shipping_address or None,
        payment_method=payment_method or None,
        notes=notes or None,
    )
    db.add(order)
    db.flush()
    db.execute(delete(CartItem).where(CartItem.id.in_([row.id for row in cart])))
    db.commit()
    return order


def create_order(
    db: Session,
    user_id: str,
    shipping_address: Optional[str] = None,
    payment_method: Optional[str] = None,
    notes: Optional[str] = None,
    cfg: Settings = default_settings,
) -> Order:
    attempts = max(1, cfg.ORDER_NUMBER_MAX_ATTEMPTS)
    for _ in range(attempts):
        number = unique_order_number(db, attempts)
        try:
            order = _place(db, user_id, number, shipping_address, payment_method, notes)
        except IntegrityError:
            db.rollback()
            # another order took the number between the check and the insert
            if not _number_taken(db, number):
                raise
            logger.warning('Order number %s taken at insert, retrying', number)
            continue
        except Exception:
            db.rollback()
            raise
        logger.info('Order %s created for user %s (%d items, total %.2f)',
                    order.order_number, user_id, len(order.items), order.total_amount)
        return get_order(db, order.id)
    raise InternalError('Could not generate a unique order number', code='ORDER_NUMBER_EXHAUSTED')


def get_order(db: Session, order_id: str) -> Order:
    stmt = select(Order).where(Order.id == order_id).options(*_order_options())
    order = db.execute(stmt.execution_options(populate_existing=True)).scalars().first()
    if not order:
        raise NotFound('Order not found', code='ORDER_NOT_FOUND')
    return order


def find_order(db: Session, ref: str) -> Order:
    """Look an order up by id, or by order number when ``ref`` is not an id."""
    if not ref:
        raise ValidationError('Order ID is required', code='MISSING_ID')
    cond = Order.id == ref if is_valid_id(ref) else Order.order_number == ref
    order = db.execute(select(Order).where(cond).options(*_order_options())).scalars().first()
    if not order:
        raise NotFound('Order not found', code='ORDER_NOT_FOUND')
    return order


def check_status(status: Optional[str]) -> str:
    if not status or status not in STATUSES:
        raise ValidationError(f"Status must be one of: {', '.join(STATUSES)}", code='INVALID_STATUS')
    return status


def list_orders(db: Session, user_id: Optional[str] = None, status: Optional[str] = None,
                sort_by: Optional[str] = None) -> List[Order]:
    stmt = select(Order).options(*_order_options())
    if user_id is not None:
        stmt = stmt.where(Order.user_id == user_id)
    if status:
        stmt = stmt.where(Order.status == check_status(status))
    stmt = stmt.order_by(*SORTS.get(sort_by or 'newest', SORTS['newest']))
    return list(db.execute(stmt).scalars().unique().all())


def view_order(db: Session, identity: Identity, ref: str) -> Order:
    order = find_order(db, ref)
    if order.user_id != identity.user_id and not identity.is_admin:
        raise Forbidden('You can only view your own orders')
    return order


def cancel_order(db: Session, identity: Identity, ref: str) -> Order:
    order = find_order(db, ref)
    if order.user_id != identity.user_id:
        raise Forbidden('You can only cancel your own orders')
    if order.status != OrderStatus.PENDING.value:
        raise InvalidState(
            f'Order cannot be cancelled. Current status: {order.status}. Only pending orders can be cancelled.',
            code='CANNOT_CANCEL',
        )
    order.status = OrderStatus.CANCELLED.value
    db.add(order); db.commit()
    logger.info('Order %s cancelled by owner', order.order_number)
    return get_order(db, order.id)


def update_status(db: Session, identity: Identity, order_id: str, status: Optional[str],
                  notes: Optional[str] = None) -> tuple:
    """Admin status change. Returns (order, previous_status)."""
    if not identity.is_admin:
        raise Forbidden('Only admins can update order status', code='ADMIN_ONLY')
    status = check_status(status)
    if not is_valid_id(order_id):
        raise ValidationError('Invalid order ID format', code='INVALID_ID')
    order = get_order(db, order_id)
    previous = order.status
    if status not in TRANSITIONS.get(previous, set()):
        raise InvalidState(f'Cannot move order from {previous} to {status}', code='INVALID_TRANSITION')
    order.status = status
    if notes:
        stamp = now_utc().isoformat()
        order.notes = (order.notes or '') + f'\n[Admin Update] {stamp}: {notes}'
    db.add(order); db.commit()
    logger.info('Order %s moved %s -> %s', order.order_number, previous, status)
    return get_order(db, order.id), previous


def order_stats(orders: List[Order]) -> Dict[str, int]:
    stats = {'total': len(orders)}
    for s in STATUSES:
        stats[s] = sum(1 for o in orders if o.status == s)
    return stats


def timeline(order: Order) -> List[dict]:
    steps = [{'step': 'placed', 'label': 'Order Placed', 'date': order.created_at, 'completed': True}]
    status = order.status
    if status == OrderStatus.PENDING.value:
        steps.append({'step': 'confirmed', 'label': 'Awaiting Confirmation', 'date': None, 'completed': False})
    elif status in ('confirmed', 'shipped', 'delivered'):
        steps.append({'step': 'confirmed', 'label': 'Order Confirmed', 'date': order.updated_at, 'completed': True})
    if status in ('shipped', 'delivered'):
        steps.append({'step': 'shipped', 'label': 'Order Shipped', 'date': order.updated_at, 'completed': True})
    if status == 'delivered':
        steps.append({'step': 'delivered', 'label': 'Order Delivered', 'date': order.updated_at, 'completed': True})
    if status == 'cancelled':
        steps.append({'step': 'cancelled', 'label': 'Order Cancelled', 'date': order.updated_at, 'completed': True})
    return steps
