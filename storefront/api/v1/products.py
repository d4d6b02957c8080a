import logging
from typing import Any, List

from fastapi import APIRouter, Body, Depends
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import delete, select
from sqlalchemy.orm import Session, joinedload

from storefront.api.deps import get_db, parse_id
from storefront.api.v1.schemas import ProductCreate, ProductRead, ProductUpdate
from storefront.core.auth import Identity, ensure_owner, require_roles
from storefront.core.errors import NotFound, ValidationError
from storefront.db.models import CartItem, Category, Product, Role
from storefront.store.cart_store import drop_product_rows

logger = logging.getLogger(__name__)

router = APIRouter()

def _load(db: Session, product_id: str) -> Product:
    obj = db.execute(
        select(Product)
        .where(Product.id == parse_id(product_id, 'product ID'))
        .options(joinedload(Product.category))
        .execution_options(populate_existing=True)
    ).scalars().first()
    if not obj: raise NotFound('Product not found')
    return obj

def _category(db: Session, category_id: str) -> Category:
    cat = db.get(Category, parse_id(category_id, 'category ID'))
    if not cat: raise NotFound('Category not found')
    return cat

@router.get('', response_model=List[ProductRead])
def list_products(db: Session = Depends(get_db)):
    stmt = select(Product).options(joinedload(Product.category)).order_by(Product.created_at)
    return db.execute(stmt).scalars().all()

@router.get('/{product_id}', response_model=ProductRead)
def get_product(product_id: str, db: Session = Depends(get_db)):
    return _load(db, product_id)

@router.post('', response_model=ProductRead, status_code=201)
def create_product(payload: ProductCreate, db: Session = Depends(get_db),
                   identity: Identity = Depends(require_roles(Role.ADMIN, Role.VENDOR))):
    cat = _category(db, payload.category)
    obj = Product(
        name=payload.name.strip(),
        description=payload.description or '',
        price=payload.price,
        category_id=cat.id,
        in_stock=payload.in_stock,
        vendor_id=identity.user_id,
    )
    db.add(obj); db.commit(); db.refresh(obj)
    return obj

@router.put('/{product_id}', response_model=ProductRead)
def update_product(product_id: str, payload: Any = Body(default=None), db: Session = Depends(get_db),
                   identity: Identity = Depends(require_roles(Role.ADMIN, Role.VENDOR))):
    # existence, then ownership, then the body
    obj = _load(db, product_id)
    ensure_owner(identity, obj.vendor_id)
    try:
        changes = ProductUpdate.model_validate(payload or {}).model_dump(exclude_unset=True)
    except PydanticValidationError as exc:
        raise ValidationError('; '.join(e['msg'] for e in exc.errors()))
    if 'category' in changes:
        if changes['category'] is None:
            raise ValidationError('Category cannot be removed')
        obj.category_id = _category(db, changes.pop('category')).id
    if 'description' in changes and changes['description'] is None:
        changes['description'] = ''
    for k, v in changes.items():
        if v is None and k in ('name', 'price', 'in_stock'):
            raise ValidationError(f'{k} cannot be null')
        setattr(obj, k, v)
    db.add(obj); db.commit()
    return _load(db, obj.id)

@router.delete('/{product_id}')
def delete_product(product_id: str, db: Session = Depends(get_db),
                   identity: Identity = Depends(require_roles(Role.ADMIN, Role.VENDOR))):
    obj = _load(db, product_id)
    ensure_owner(identity, obj.vendor_id, 'You can only delete your own products')
    drop_product_rows(db, [obj.id])
    db.delete(obj); db.commit()
    return {'message': 'Product deleted'}

@router.delete('')
def delete_all_products(db: Session = Depends(get_db),
                        identity: Identity = Depends(require_roles(Role.ADMIN))):
    db.execute(delete(CartItem))
    removed = db.execute(delete(Product)).rowcount
    db.commit()
    logger.info('Admin %s deleted all products (%d)', identity.user_id, removed)
    return {'message': 'All products deleted', 'deleted': removed}
