from .bunk import BunkRepository
from .event import RequestEventRepository
from .inventory import InventoryRepository
from .payment_order import PaymentOrderRepository
from .request import RequestRepository

__all__ = [
    "RequestRepository",
    "InventoryRepository",
    "BunkRepository",
    "PaymentOrderRepository",
    "RequestEventRepository",
]
