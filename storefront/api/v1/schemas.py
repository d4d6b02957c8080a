from pydantic import BaseModel, EmailStr, Field, computed_field, field_validator
from typing import Optional, List
from decimal import Decimal
from datetime import datetime
from storefront.db.models import Role

STATUS_LABELS = {
    'pending': 'Pending',
    'confirmed': 'Confirmed',
    'shipped': 'Shipped',
    'delivered': 'Delivered',
    'cancelled': 'Cancelled',
}

# --- auth ---
class RegisterPayload(BaseModel):
    username: str = Field(min_length=3, max_length=80)
    email: EmailStr
    password: str = Field(min_length=8)
    role: Optional[Role] = None

class LoginPayload(BaseModel):
    email: EmailStr
    password: str

class ChangePasswordPayload(BaseModel):
    old_password: str
    new_password: str = Field(min_length=8)

class UserBrief(BaseModel):
    id: str
    username: str
    email: str
    class Config: from_attributes = True

class UserRead(UserBrief):
    role: str
    created_at: datetime
    updated_at: datetime

# --- catalog ---
class CategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    description: Optional[str] = ''

class CategoryBrief(BaseModel):
    id: str
    name: str
    class Config: from_attributes = True

class CategoryRead(CategoryBrief):
    description: Optional[str] = ''

def _whole_cents(v: Optional[float]) -> Optional[float]:
    # order subtotals are rounded to the cent, so prices must be whole cents too
    if v is not None and Decimal(str(v)).as_tuple().exponent < -2:
        raise ValueError('Price must have at most 2 decimal places')
    return v

class ProductCreate(BaseModel):
    name: str = Field(min_length=1, max_length=240)
    description: Optional[str] = ''
    price: float = Field(gt=0, allow_inf_nan=False)
    category: str
    in_stock: bool = True

    @field_validator('price')
    @classmethod
    def check_price(cls, v):
        return _whole_cents(v)

class ProductUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=240)
    description: Optional[str] = None
    price: Optional[float] = Field(default=None, gt=0, allow_inf_nan=False)
    category: Optional[str] = None
    in_stock: Optional[bool] = None

    @field_validator('price')
    @classmethod
    def check_price(cls, v):
        return _whole_cents(v)

class ProductBrief(BaseModel):
    id: str
    name: str
    price: float
    in_stock: bool
    class Config: from_attributes = True

class ProductRead(ProductBrief):
    description: Optional[str] = ''
    category_id: str
    category: Optional[CategoryBrief] = None
    vendor_id: str
    created_at: datetime
    updated_at: datetime

# --- cart ---
class CartItemAdd(BaseModel):
    product_id: Optional[str] = None
    quantity: Optional[int] = None

class CartItemRead(BaseModel):
    id: str
    product_id: str
    quantity: int
    product: Optional[ProductBrief] = None
    created_at: datetime
    class Config: from_attributes = True

# --- orders ---
class OrderCreate(BaseModel):
    shipping_address: Optional[str] = None
    payment_method: Optional[str] = None
    notes: Optional[str] = None

class StatusUpdate(BaseModel):
    status: Optional[str] = None
    notes: Optional[str] = None

class OrderItemRead(BaseModel):
    product_id: str
    product_name: str
    quantity: int
    price: float
    subtotal: float
    product: Optional[ProductBrief] = None
    class Config: from_attributes = True

class OrderRead(BaseModel):
    id: str
    order_number: str
    status: str
    total_amount: float
    shipping_address: Optional[str] = None
    payment_method: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    user: Optional[UserBrief] = None
    items: List[OrderItemRead] = []
    class Config: from_attributes = True

    @computed_field
    @property
    def status_label(self) -> str:
        return STATUS_LABELS.get(self.status, self.status)

    @computed_field
    @property
    def item_count(self) -> int:
        return len(self.items)

class TimelineStep(BaseModel):
    step: str
    label: str
    date: Optional[datetime] = None
    completed: bool

class OrderDetail(OrderRead):
    timeline: List[TimelineStep] = []
