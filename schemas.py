"""
Database Schemas for the e-Stamp store

Each Pydantic model corresponds to a MongoDB collection. Field names are
snake_case in Python and camelCase in the stored documents and JSON payloads
(stateId, party1Name, ...).

Collections:
- states
- districts
- tehsils
- stampCategories
- stampProducts
- orders
- users
- sessions (session tokens for customers and admins)
- otpRequests (pending phone verification codes)
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Optional, Literal, List, Dict

OrderStatus = Literal["pending", "processing", "completed", "failed"]
ORDER_STATUSES = ("pending", "processing", "completed", "failed")
DeliveryType = Literal["digital", "door"]
# Largest price or fee a catalog product may carry, in INR
MAX_AMOUNT = 10 ** 12


class Document(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Partial(Document):
    """Update payload: only fields that were sent are written"""

    def changes(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


# -------------------------
# Locations
# -------------------------

class State(Document):
    name: str = Field(..., min_length=2, description="State name")
    code: str = Field(..., min_length=2, max_length=3, description="Short state code, e.g. UP")

    @field_validator("code")
    @classmethod
    def upper_code(cls, v: str) -> str:
        return v.strip().upper()


class StateUpdate(Partial):
    name: Optional[str] = Field(None, min_length=2)
    code: Optional[str] = Field(None, min_length=2, max_length=3)

    @field_validator("code")
    @classmethod
    def upper_code(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().upper() if v is not None else v


class District(Document):
    state_id: str = Field(..., min_length=1, description="Id of the parent state")
    name: str = Field(..., min_length=2, description="District name")


class DistrictUpdate(Partial):
    state_id: Optional[str] = Field(None, min_length=1)
    name: Optional[str] = Field(None, min_length=2)


class Tehsil(Document):
    district_id: str = Field(..., min_length=1, description="Id of the parent district")
    name: str = Field(..., min_length=2, description="Tehsil name")


class TehsilUpdate(Partial):
    district_id: Optional[str] = Field(None, min_length=1)
    name: Optional[str] = Field(None, min_length=2)


# -------------------------
# Catalog
# -------------------------

class StampCategory(Document):
    name: str = Field(..., min_length=2, description="Category display name")
    description: str = Field(..., min_length=10, description="What the stamps in this category are for")


class StampCategoryUpdate(Partial):
    name: Optional[str] = Field(None, min_length=2)
    description: Optional[str] = Field(None, min_length=10)


class StampProduct(Document):
    category_id: str = Field(..., min_length=1, description="Id of the stamp category")
    state_id: str = Field(..., min_length=1, description="Id of the state the stamp is valid in")
    name: str = Field(..., min_length=2, description="Product name")
    amount: int = Field(..., ge=0, le=MAX_AMOUNT, description="Stamp value in INR")
    platform_fee: int = Field(0, ge=0, le=MAX_AMOUNT, description="Platform fee in INR")
    express_fee: int = Field(0, ge=0, le=MAX_AMOUNT, description="Express processing fee in INR")
    delivery_fee: int = Field(0, ge=0, le=MAX_AMOUNT, description="Door delivery fee in INR")
    delivery_time: str = Field(..., min_length=1, description="Delivery time shown to customers, e.g. instant")


class StampProductUpdate(Partial):
    category_id: Optional[str] = Field(None, min_length=1)
    state_id: Optional[str] = Field(None, min_length=1)
    name: Optional[str] = Field(None, min_length=2)
    amount: Optional[int] = Field(None, ge=0, le=MAX_AMOUNT)
    platform_fee: Optional[int] = Field(None, ge=0, le=MAX_AMOUNT)
    express_fee: Optional[int] = Field(None, ge=0, le=MAX_AMOUNT)
    delivery_fee: Optional[int] = Field(None, ge=0, le=MAX_AMOUNT)
    delivery_time: Optional[str] = Field(None, min_length=1)


# -------------------------
# Orders
# -------------------------

class Order(Document):
    user_id: str = Field(..., description="Owner uid, or 'anonymous' for guest checkout")
    product_id: str
    state_id: str
    district_id: str
    tehsil_id: str
    party1_name: str
    party2_name: str
    email: str
    phone: str
    whatsapp: Optional[str] = None
    delivery_type: DeliveryType = "digital"
    address: Optional[str] = None
    pincode: Optional[str] = None
    landmark: Optional[str] = None
    document_type: Optional[str] = None
    transaction_value: Optional[int] = None
    execution_date: Optional[str] = None
    property_description: Optional[str] = None
    stamp_amount: int = Field(..., ge=0)
    platform_fee: int = Field(0, ge=0)
    express_fee: Optional[int] = None
    delivery_fee: Optional[int] = None
    total_paid: int = Field(..., ge=0)
    status: OrderStatus = "pending"
    pdf_url: Optional[str] = None
    courier_tracking_id: Optional[str] = None


class OrderAdminUpdate(Partial):
    status: Optional[OrderStatus] = None
    pdf_url: Optional[str] = None
    courier_tracking_id: Optional[str] = None


class DashboardStats(Document):
    total_orders: int = 0
    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0
    total_revenue: int = 0
    today_orders: int = 0
    recent_orders: List[Dict] = Field(default_factory=list)


# -------------------------
# Users
# -------------------------

class UserProfile(Document):
    uid: str
    email: str = ""
    display_name: str = ""
    phone: Optional[str] = None
    role: Literal["user", "admin"] = "user"
