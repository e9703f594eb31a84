from decimal import Decimal
from typing import Dict, List

from loguru import logger

from fuel_dispatch.core.exceptions import InsufficientInventory, InvalidInput
from fuel_dispatch.core.utils import MILLI, from_milli, to_decimal, to_milli
from fuel_dispatch.db.repositories.inventory import InventoryRepository
from fuel_dispatch.monitoring.metrics import MetricsCollector
from fuel_dispatch.schemas import ProductKind

# A battery request always takes one unit off the battery counter
BATTERY_UNIT_MILLI = 1000


class InventoryLedger:
    def __init__(self, inventory_repo: InventoryRepository):
        self.inventory_repo = inventory_repo

    def decrement(self, bunk_id: str, product_kind: ProductKind, amount_milli: int) -> None:
        if amount_milli <= 0:
            raise InvalidInput("Decrement amount must be positive")

        if not self.inventory_repo.decrement(bunk_id, product_kind.value, amount_milli):
            available = self.inventory_repo.get_available(bunk_id, product_kind.value)
            logger.warning(
                f"Insufficient {product_kind.value} at bunk {bunk_id}: "
                f"requested {from_milli(amount_milli)}, available {from_milli(available)}"
            )
            MetricsCollector.record_inventory_shortfall(product_kind.value)
            raise InsufficientInventory(
                f"Bunk {bunk_id} cannot supply {from_milli(amount_milli)} of {product_kind.value}"
            )

    def restore(self, bunk_id: str, product_kind: ProductKind, amount_milli: int) -> None:
        if amount_milli <= 0:
            raise InvalidInput("Restore amount must be positive")
        self.inventory_repo.restore(bunk_id, product_kind.value, amount_milli)

    def bunks_with_stock(self, product_kind: ProductKind, amount_milli: int) -> List[str]:
        return self.inventory_repo.bunks_with_stock(product_kind.value, amount_milli)

    def get_stock(self, bunk_id: str) -> Dict[ProductKind, Decimal]:
        stock = self.inventory_repo.get_stock(bunk_id)
        return {
            kind: from_milli(stock.get(kind.value, 0))
            for kind in ProductKind
        }

    def set_stock(self, bunk_id: str, stock: Dict[ProductKind, Decimal]) -> Dict[ProductKind, Decimal]:
        validated = []
        for kind, amount in stock.items():
            try:
                kind = ProductKind(kind)
            except ValueError:
                raise InvalidInput(f"Unknown product kind: {kind!r}")
            try:
                value = to_decimal(amount)
            except ValueError:
                raise InvalidInput(f"Stock for {kind.value} must be a number")
            if not value.is_finite() or value < 0:
                raise InvalidInput(f"Stock for {kind.value} must be non-negative")
            if value != value.quantize(MILLI):
                raise InvalidInput("Stock supports at most three decimal places")
            validated.append((kind, to_milli(value)))

        for kind, amount_milli in validated:
            self.inventory_repo.set_available(bunk_id, kind.value, amount_milli)

        logger.info(f"Inventory of bunk {bunk_id} updated for {len(stock)} product kind(s)")
        return self.get_stock(bunk_id)


def required_amount_milli(product_kind: ProductKind, quantity_milli) -> int:
    if product_kind == ProductKind.BATTERY:
        return BATTERY_UNIT_MILLI
    return int(quantity_milli)
