from typing import List

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from storefront.api.deps import get_db, parse_id
from storefront.api.v1.schemas import CartItemAdd, CartItemRead
from storefront.core.auth import Identity, get_current_identity
from storefront.core.errors import NotFound, ValidationError
from storefront.db.models import Product
from storefront.store.cart_store import get_cart, put_item, delete_item, clear_cart

router = APIRouter()

@router.get('', response_model=List[CartItemRead])
def get_my_cart(identity: Identity = Depends(get_current_identity), db: Session = Depends(get_db)):
    return get_cart(db, identity.user_id)

@router.post('', response_model=CartItemRead, status_code=201)
def add_item(payload: CartItemAdd, identity: Identity = Depends(get_current_identity), db: Session = Depends(get_db)):
    product_id = parse_id(payload.product_id, 'product ID')
    qty = payload.quantity or 1
    if qty < 1:
        raise ValidationError('Quantity must be at least 1')
    product = db.get(Product, product_id)
    if not product:
        raise NotFound('Product not found')
    item, created = put_item(db, identity.user_id, product, qty)
    body = CartItemRead.model_validate(item)
    if not created:
        return JSONResponse(status_code=200, content=body.model_dump(mode='json'))
    return body

# declared before /{item_id} so "clear" is not taken for an id
@router.delete('/clear')
@router.delete('/clear/all', include_in_schema=False)
def clear(identity: Identity = Depends(get_current_identity), db: Session = Depends(get_db)):
    removed = clear_cart(db, identity.user_id)
    return {'message': 'Cart cleared', 'removed': removed}

@router.delete('/{item_id}')
def remove_item(item_id: str, identity: Identity = Depends(get_current_identity), db: Session = Depends(get_db)):
    if not delete_item(db, identity.user_id, parse_id(item_id, 'cart item ID')):
        raise NotFound('Item not found in your cart')
    return {'message': 'Item removed'}
