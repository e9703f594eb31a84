from .database import get_engine, get_sessionmaker, make_sessionmaker
from .models import Base, Bunk, DeliveryRequest, InventoryItem, PaymentOrder, RequestEvent

__all__ = [
    "Base",
    "DeliveryRequest",
    "InventoryItem",
    "Bunk",
    "PaymentOrder",
    "RequestEvent",
    "get_sessionmaker",
    "make_sessionmaker",
    "get_engine",
]
