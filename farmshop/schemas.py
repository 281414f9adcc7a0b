from datetime import datetime
from decimal import Decimal
from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Annotated, List, Optional


class CamelModel(BaseModel):
    # JSON uses camelCase (totalAmount, deliveryAddress...), python stays snake_case
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


def whole_cents(v):
    # amounts are stored as Numeric(10, 2), so check what survives the rounding
    if v is not None and Decimal(str(v)).quantize(Decimal("0.01")) <= 0:
        raise ValueError("Amount must be at least 0.01")
    return v


Money = Annotated[float, Field(gt=0), AfterValidator(whole_cents)]


class Message(BaseModel):
    message: str


# --- USER / AUTH ---
class RegisterRequest(CamelModel):
    username: str = Field(min_length=3, max_length=80)
    email: EmailStr
    password: str = Field(min_length=6)
    confirm_password: str
    phone: Optional[str] = None

    @field_validator("confirm_password")
    @classmethod
    def passwords_match(cls, v, info):
        if "password" in info.data and v != info.data["password"]:
            raise ValueError("Passwords do not match")
        return v


class LoginRequest(CamelModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class UserOut(CamelModel):
    id: int
    username: str
    email: str
    phone: Optional[str] = None
    role: str
    created_at: datetime


class UserEnvelope(CamelModel):
    user: UserOut


class AuthCheck(CamelModel):
    authenticated: bool
    user_id: Optional[int] = None


# --- CATEGORY ---
class CategoryCreate(CamelModel):
    name: str = Field(min_length=1, max_length=120)
    description: Optional[str] = None


class CategoryUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    description: Optional[str] = None


class CategoryOut(CategoryCreate):
    id: int


# --- PRODUCT ---
class ProductCreate(CamelModel):
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    price: Money
    image_url: Optional[str] = None
    stock: int = Field(default=0, ge=0)
    category_id: Optional[int] = None


class ProductUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    price: Optional[Money] = None
    image_url: Optional[str] = None
    stock: Optional[int] = Field(default=None, ge=0)
    category_id: Optional[int] = None


class ProductOut(ProductCreate):
    id: int
    version: int
    created_at: datetime
    updated_at: datetime


# --- ORDER ---
class OrderItemIn(CamelModel):
    product_id: int = Field(gt=0)
    quantity: int = Field(gt=0)
    unit_price: float = Field(gt=0)


class OrderCreate(CamelModel):
    total_amount: Money
    delivery_address: str = Field(min_length=5)
    contact_phone: str = Field(min_length=10)
    notes: Optional[str] = None
    items: List[OrderItemIn] = Field(min_length=1)

    @field_validator("items")
    @classmethod
    def one_line_per_product(cls, items):
        seen = set()
        for item in items:
            if item.product_id in seen:
                raise ValueError(f"Product {item.product_id} appears more than once")
            seen.add(item.product_id)
        return items


class OrderItemOut(CamelModel):
    id: int
    order_id: int
    product_id: int
    quantity: int
    unit_price: float


class OrderOut(CamelModel):
    id: int
    user_id: Optional[int] = None
    status: str
    total_amount: float
    delivery_address: str
    contact_phone: str
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class OrderEnvelope(CamelModel):
    order: OrderOut


class OrderDetail(CamelModel):
    order: OrderOut
    items: List[OrderItemOut]


class StatusChange(CamelModel):
    # checked against OrderStatus by the service so unknown values map to INVALID_STATUS
    status: str


# --- FARM EVENT ---
class EventCreate(CamelModel):
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    event_date: datetime
    start_time: str = Field(min_length=1, max_length=16)
    end_time: str = Field(min_length=1, max_length=16)
    location: str = Field(min_length=1, max_length=255)
    image_url: Optional[str] = None
    category: str = Field(min_length=1, max_length=64)


class EventUpdate(CamelModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    event_date: Optional[datetime] = None
    start_time: Optional[str] = Field(default=None, min_length=1, max_length=16)
    end_time: Optional[str] = Field(default=None, min_length=1, max_length=16)
    location: Optional[str] = Field(default=None, min_length=1, max_length=255)
    image_url: Optional[str] = None
    category: Optional[str] = Field(default=None, min_length=1, max_length=64)


class EventOut(EventCreate):
    id: int
    created_at: datetime
    updated_at: datetime


# --- SUBSCRIPTION ---
class SubscribeRequest(CamelModel):
    email: EmailStr
    phone: Optional[str] = None


class UnsubscribeRequest(CamelModel):
    email: EmailStr


class SubscriptionOut(CamelModel):
    id: int
    email: str
    phone: Optional[str] = None
    active: bool
    created_at: datetime


# --- ADMIN ---
class AdminSummary(CamelModel):
    products: int
    categories: int
    low_stock: int
    orders_by_status: dict
    revenue: float
