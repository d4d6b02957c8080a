import logging
from typing import List, Optional, Tuple

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from storefront.core.errors import Conflict
from storefront.db.models import CartItem, Product
from storefront.security.utils import now_utc

logger = logging.getLogger(__name__)

def get_cart(db: Session, user_id: str) -> List[CartItem]:
    stmt = (
        select(CartItem)
        .where(CartItem.user_id == user_id)
        .options(joinedload(CartItem.product))
        .order_by(CartItem.created_at)
    )
    return list(db.execute(stmt).scalars().all())

def find_row(db: Session, user_id: str, product_id: str) -> Optional[CartItem]:
    return db.execute(
        select(CartItem).where(CartItem.user_id == user_id, CartItem.product_id == product_id)
    ).scalars().first()

def put_item(db: Session, user_id: str, product: Product, quantity: int) -> Tuple[CartItem, bool]:
    """Add ``quantity`` of ``product`` to the cart. Returns (row, created).

    One row per (user, product): a concurrent insert that wins the unique
    constraint turns this call into an increment of that row.
    """
    product_id = product.id
    for _ in range(2):
        item = find_row(db, user_id, product_id)
        if item is not None:
            db.execute(
                update(CartItem)
                .where(CartItem.id == item.id)
                .values(quantity=CartItem.quantity + quantity, updated_at=now_utc())
            )
            db.commit(); db.refresh(item)
            return item, False
        item = CartItem(user_id=user_id, product_id=product_id, quantity=quantity)
        db.add(item)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.info('Cart row for user %s product %s appeared concurrently, merging', user_id, product_id)
            continue
        db.refresh(item)
        return item, True
    raise Conflict('Cart was modified concurrently, try again', code='CART_CONFLICT')

def delete_item(db: Session, user_id: str, item_id: str) -> bool:
    # scoped by owner: someone else's row reads as missing
    res = db.execute(delete(CartItem).where(CartItem.id == item_id, CartItem.user_id == user_id))
    db.commit()
    return res.rowcount > 0

def clear_cart(db: Session, user_id: str, commit: bool = True) -> int:
    res = db.execute(delete(CartItem).where(CartItem.user_id == user_id))
    if commit:
        db.commit()
    return res.rowcount

def drop_product_rows(db: Session, product_ids) -> int:
    res = db.execute(delete(CartItem).where(CartItem.product_id.in_(product_ids)))
    return res.rowcount
