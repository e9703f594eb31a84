from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class DeliveryRequest(Base):
    __tablename__ = "delivery_requests"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    customer_id: Mapped[str] = mapped_column(String(64), index=True)
    product_kind: Mapped[str] = mapped_column(String(16))  # petrol / diesel / gas / battery
    brand: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    battery_type: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    battery_capacity: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    quantity_milli: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    lat: Mapped[float] = mapped_column(Float)
    lng: Mapped[float] = mapped_column(Float)

    # Frozen bill, minor currency units
    base_price_minor: Mapped[int] = mapped_column(BigInteger)
    tax_minor: Mapped[int] = mapped_column(BigInteger)
    delivery_charge_minor: Mapped[int] = mapped_column(BigInteger)
    discount_minor: Mapped[int] = mapped_column(BigInteger)
    total_minor: Mapped[int] = mapped_column(BigInteger)
    currency: Mapped[str] = mapped_column(String(8))

    payment_order_id: Mapped[str] = mapped_column(String(64))
    payment_id: Mapped[str] = mapped_column(String(64))
    payment_signature: Mapped[str] = mapped_column(String(128))

    # pending / approved / accepted / in-transit / delivered / cancelled
    status: Mapped[str] = mapped_column(String(16), index=True)
    assigned_agent_id: Mapped[Optional[str]] = mapped_column(
        String(64), nullable=True, index=True
    )
    approved_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    charged_bunk_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    charged_milli: Mapped[int] = mapped_column(BigInteger, default=0)
    inventory_charged: Mapped[bool] = mapped_column(Boolean, default=False)

    version: Mapped[int] = mapped_column(Integer, default=1)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )

    __table_args__ = (
        UniqueConstraint("payment_order_id", "payment_id", name="uq_request_payment"),
        UniqueConstraint("payment_order_id", name="uq_request_payment_order"),
    )


Index(
    "ix_delivery_requests_status_location",
    DeliveryRequest.status,
    DeliveryRequest.lat,
    DeliveryRequest.lng,
)


class InventoryItem(Base):
    __tablename__ = "inventory_items"

    bunk_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    product_kind: Mapped[str] = mapped_column(String(16), primary_key=True)
    available_milli: Mapped[int] = mapped_column(BigInteger, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )

    __table_args__ = (
        CheckConstraint("available_milli >= 0", name="ck_inventory_non_negative"),
    )


class Bunk(Base):
    __tablename__ = "bunks"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(128))
    lat: Mapped[float] = mapped_column(Float)
    lng: Mapped[float] = mapped_column(Float)
    service_radius_km: Mapped[float] = mapped_column(Float, default=10.0)


class PaymentOrder(Base):
    __tablename__ = "payment_orders"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)  # gateway order id
    receipt: Mapped[str] = mapped_column(String(64))
    customer_id: Mapped[str] = mapped_column(String(64), index=True)
    product_kind: Mapped[str] = mapped_column(String(16))
    brand: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    battery_type: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    battery_capacity: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    quantity_milli: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)

    base_price_minor: Mapped[int] = mapped_column(BigInteger)
    tax_minor: Mapped[int] = mapped_column(BigInteger)
    delivery_charge_minor: Mapped[int] = mapped_column(BigInteger)
    discount_minor: Mapped[int] = mapped_column(BigInteger)
    total_minor: Mapped[int] = mapped_column(BigInteger)
    currency: Mapped[str] = mapped_column(String(8))

    status: Mapped[str] = mapped_column(String(16), default="created")  # created / consumed
    payment_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )
    consumed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class RequestEvent(Base):
    __tablename__ = "request_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    request_id: Mapped[str] = mapped_column(String(64), index=True)
    from_status: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    to_status: Mapped[str] = mapped_column(String(16))
    actor_id: Mapped[str] = mapped_column(String(64))
    actor_role: Mapped[str] = mapped_column(String(16))
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )
