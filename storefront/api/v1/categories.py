from fastapi import APIRouter, Depends
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import List
from storefront.api.deps import get_db, parse_id
from storefront.core.auth import require_roles
from storefront.core.errors import Conflict, NotFound
from storefront.db.models import Category, Product, Role
from storefront.api.v1.schemas import CategoryCreate, CategoryRead

router = APIRouter()

@router.get('', response_model=List[CategoryRead])
def list_categories(db: Session = Depends(get_db)):
    return db.query(Category).order_by(Category.name).all()

def name_taken(db: Session, name: str) -> bool:
    return db.query(Category.id).filter(Category.name == name).first() is not None

@router.post('', response_model=CategoryRead, status_code=201, dependencies=[Depends(require_roles(Role.ADMIN))])
def create_category(payload: CategoryCreate, db: Session = Depends(get_db)):
    name = payload.name.strip()
    if name_taken(db, name):
        raise Conflict('Category already exists')
    obj = Category(name=name, description=payload.description or '')
    db.add(obj)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict('Category already exists')
    db.refresh(obj)
    return obj

@router.delete('/{category_id}', dependencies=[Depends(require_roles(Role.ADMIN))])
def delete_category(category_id: str, db: Session = Depends(get_db)):
    obj = db.get(Category, parse_id(category_id, 'category ID'))
    if not obj: raise NotFound('Category not found')
    in_use = db.execute(select(func.count()).select_from(Product).where(Product.category_id == obj.id)).scalar_one()
    if in_use:
        raise Conflict(f'Category is still used by {in_use} product(s)', code='CATEGORY_IN_USE')
    db.delete(obj); db.commit()
    return {'message': 'Category deleted'}
