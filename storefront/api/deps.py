from storefront.core.errors import ValidationError
from storefront.db.session import SessionLocal
from storefront.security.utils import is_valid_id

def get_db():
    db = SessionLocal()
    try: yield db
    finally: db.close()

def parse_id(value, what: str = 'ID') -> str:
    if not value or not is_valid_id(value):
        raise ValidationError(f'Invalid {what} format')
    return value
