"""
Database Schemas for the shop backend

Each stored model corresponds to one MongoDB collection; the collection name is
the lowercase of the class name. Stored keys are snake_case, the JSON API
speaks camelCase through the ``ApiModel`` aliases.
"""
from datetime import datetime
from typing import List, Literal, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

ORDER_STATUSES = ("pending", "delivered", "canceled")
OrderStatus = Literal["pending", "delivered", "canceled"]


# ----------------------- Collections -----------------------
class User(BaseModel):
    phone_number: str
    password_hash: str
    full_name: str = ""
    city: str = ""
    location: str = ""


class Product(BaseModel):
    name: str
    description: str = ""
    price: float
    category: str = ""
    image: str = Field(..., description="Media host URL")


class OrderLine(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    product_id: ObjectId
    quantity: int


class Order(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    user_id: ObjectId
    items: List[OrderLine]
    location: str
    phone_number: str
    total_amount: float
    status: OrderStatus = "pending"


# ----------------------- API base -----------------------
class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ----------------------- Request bodies -----------------------
class CredentialsBody(ApiModel):
    phone_number: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class ProfileUpdateBody(ApiModel):
    full_name: Optional[str] = None
    city: Optional[str] = None
    location: Optional[str] = None


class CartAddBody(ApiModel):
    user_id: str
    product_id: str
    quantity: Optional[int] = Field(None, ge=1)


class CartUpdateBody(ApiModel):
    user_id: str
    product_id: str
    quantity: int


class CartRemoveBody(ApiModel):
    user_id: str
    product_id: str


class CheckoutBody(ApiModel):
    user_id: str
    location: str = Field(..., min_length=1)
    phone_number: str = Field(..., min_length=1)


class StatusBody(ApiModel):
    status: str


# ----------------------- Responses -----------------------
class UserOut(ApiModel):
    id: str
    phone_number: str
    full_name: Optional[str] = ""
    city: Optional[str] = ""
    location: Optional[str] = ""
    created_at: Optional[datetime] = None


class UserContact(ApiModel):
    id: str
    full_name: Optional[str] = ""
    phone_number: str
    city: Optional[str] = ""
    location: Optional[str] = ""


class ProductSummary(ApiModel):
    id: str
    name: str
    price: float
    category: str = ""
    image: str


class ProductOut(ProductSummary):
    description: str = ""
    created_at: Optional[datetime] = None


class CartItemOut(ApiModel):
    id: str
    user_id: str
    product_id: str
    quantity: int
    product: Optional[ProductOut] = None


class OrderLineRef(ApiModel):
    product_id: str
    quantity: int


class OrderLineOut(OrderLineRef):
    product: Optional[ProductOut] = None


class OrderRecordOut(ApiModel):
    """Order as stored, line items carry only product ids."""

    id: str
    user_id: str
    items: List[OrderLineRef]
    location: str
    phone_number: str
    total_amount: float
    status: OrderStatus
    created_at: Optional[datetime] = None


class OrderOut(OrderRecordOut):
    items: List[OrderLineOut]


class RiderOrderLineOut(OrderLineRef):
    product: Optional[ProductSummary] = None


class RiderOrderOut(OrderRecordOut):
    items: List[RiderOrderLineOut]
    user: Optional[UserContact] = None


class MessageOut(ApiModel):
    message: str


class AccountOut(MessageOut):
    user_id: str


class ProfileUpdateOut(MessageOut):
    user: UserOut


class ProductUploadOut(MessageOut):
    product: ProductOut


class CartItemEnvelope(MessageOut):
    item: CartItemOut


class OrderEnvelope(MessageOut):
    order: OrderRecordOut
