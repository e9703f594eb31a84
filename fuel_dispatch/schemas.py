from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ProductKind(str, Enum):
    PETROL = "petrol"
    DIESEL = "diesel"
    GAS = "gas"
    BATTERY = "battery"


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    ACCEPTED = "accepted"
    IN_TRANSIT = "in-transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class Role(str, Enum):
    CUSTOMER = "customer"
    BUNK = "bunk"
    AGENT = "agent"
    ADMIN = "admin"


class Actor(BaseModel):
    """Authenticated caller as supplied by the identity collaborator."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    role: Role


class Variant(BaseModel):
    model_config = ConfigDict(frozen=True)

    brand: Optional[str] = None
    battery_type: Optional[str] = None
    battery_capacity: Optional[str] = None


class Location(BaseModel):
    lat: float
    lng: float


class BillBreakdown(BaseModel):
    model_config = ConfigDict(frozen=True)

    base_price: Decimal
    tax: Decimal
    delivery_charge: Decimal
    discount: Decimal
    total: Decimal


# API schemas
class QuoteRequest(BaseModel):
    product_kind: ProductKind
    quantity: Optional[Decimal] = Field(None, description="Liters or kilograms; ignored for battery")
    variant: Variant = Field(default_factory=Variant)


class QuoteResponse(BaseModel):
    product_kind: ProductKind
    quantity: Optional[Decimal] = None
    variant: Variant
    bill: BillBreakdown
    currency: str


class PaymentOrderResponse(BaseModel):
    order_id: str
    amount: Decimal
    amount_minor: int
    currency: str
    gateway_key_id: str
    bill: BillBreakdown


class ConfirmPaymentRequest(BaseModel):
    order_id: str
    payment_id: str
    signature: str
    product_kind: ProductKind
    quantity: Optional[Decimal] = None
    variant: Variant = Field(default_factory=Variant)
    location: Location


class ApproveRequest(BaseModel):
    bunk_id: Optional[str] = None


class AdvanceStatusRequest(BaseModel):
    status: RequestStatus


class InventoryUpdateRequest(BaseModel):
    stock: dict[ProductKind, Decimal]


class InventoryResponse(BaseModel):
    bunk_id: str
    stock: dict[ProductKind, Decimal]


class HealthResponse(BaseModel):
    ok: bool = True


# Internal schemas for services
class PaymentOrderData(BaseModel):
    order_id: str
    customer_id: str
    product_kind: ProductKind
    quantity: Optional[Decimal] = None
    variant: Variant
    bill: BillBreakdown
    amount_minor: int
    currency: str
    status: str
    payment_id: Optional[str] = None
    created_at: datetime
    consumed_at: Optional[datetime] = None


class RequestData(BaseModel):
    id: str
    customer_id: str
    product_kind: ProductKind
    variant: Variant
    quantity: Optional[Decimal] = None
    location: Location
    bill: BillBreakdown
    currency: str
    payment_order_id: str
    payment_id: str
    status: RequestStatus
    assigned_agent_id: Optional[str] = None
    approved_by: Optional[str] = None
    charged_bunk_id: Optional[str] = None
    version: int
    created_at: datetime
    updated_at: datetime


class RequestEventData(BaseModel):
    request_id: str
    from_status: Optional[RequestStatus] = None
    to_status: RequestStatus
    actor_id: str
    actor_role: Role
    created_at: datetime


class BunkData(BaseModel):
    id: str
    name: str
    lat: float
    lng: float
    service_radius_km: float
