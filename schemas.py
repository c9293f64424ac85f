"""
Database Schemas

MongoDB collection schemas as Pydantic models, plus the JSON request bodies.
Model name is converted to lowercase for the collection name:
- User -> "user" collection
- Product -> "product" collection
- Order -> "order" collection
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class OrderStatus(str, Enum):
    pending = "pending"
    completed = "completed"
    canceled = "canceled"


class User(BaseModel):
    """
    Users collection schema
    Collection name: "user"
    """
    username: str = Field(..., description="Unique username")
    email: str = Field(..., description="Unique email address")
    password: str = Field(..., description="bcrypt hash, never the plaintext")
    profile_image: Optional[str] = Field(None, description="Filename under public/user")


class Product(BaseModel):
    """
    Products collection schema
    Collection name: "product"
    """
    name: str = Field(..., description="Product name")
    price: float = Field(..., description="Price")
    category: str = Field(..., description="Product category")
    description: str = Field(..., description="Product description")
    image: Optional[str] = Field(None, description="Filename under public/img")


class Order(BaseModel):
    """
    Orders collection schema
    Collection name: "order"
    """
    model_config = ConfigDict(use_enum_values=True)

    product_id: Any = Field(..., description="Referenced product _id")
    user_id: Any = Field(..., description="Owning user _id, taken from the session token")
    quantity: int = Field(..., description="Quantity ordered")
    status: OrderStatus = Field(OrderStatus.pending.value, description="Order status")


# Request bodies

class LoginRequest(BaseModel):
    email: str
    password: str


class OrderCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: str = Field(..., alias="productId")
    quantity: int


class OrderUpdate(BaseModel):
    quantity: Optional[int] = None
    status: Optional[str] = None
