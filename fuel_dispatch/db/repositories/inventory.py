from typing import Dict, List, Optional

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from fuel_dispatch.core.utils import utcnow
from fuel_dispatch.db.models import InventoryItem


class InventoryRepository:
    def __init__(self, session: Session):
        self.session = session

    def get_item(self, bunk_id: str, product_kind: str) -> Optional[InventoryItem]:
        return self.session.get(
            InventoryItem, (bunk_id, product_kind), populate_existing=True
        )

    def get_available(self, bunk_id: str, product_kind: str) -> int:
        item = self.get_item(bunk_id, product_kind)
        return int(item.available_milli) if item else 0

    def get_stock(self, bunk_id: str) -> Dict[str, int]:
        rows = self.session.execute(
            select(InventoryItem.product_kind, InventoryItem.available_milli).where(
                InventoryItem.bunk_id == bunk_id
            )
        ).all()
        return {kind: int(available) for kind, available in rows}

    def decrement(self, bunk_id: str, product_kind: str, amount_milli: int) -> bool:
        """
        Atomically takes amount_milli from the counter.

        The guard lives in the WHERE clause, so concurrent decrements on the same
        row can never drive it negative: a loser simply matches zero rows.
        """
        result = self.session.execute(
            update(InventoryItem)
            .where(
                InventoryItem.bunk_id == bunk_id,
                InventoryItem.product_kind == product_kind,
                InventoryItem.available_milli >= amount_milli,
            )
            .values(
                available_milli=InventoryItem.available_milli - amount_milli,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )

        decremented = result.rowcount == 1
        logger.debug(
            "Inventory decrement bunk={} kind={} amount={} ok={}",
            bunk_id,
            product_kind,
            amount_milli,
            decremented,
        )
        return decremented

    def restore(self, bunk_id: str, product_kind: str, amount_milli: int) -> bool:
        result = self.session.execute(
            update(InventoryItem)
            .where(
                InventoryItem.bunk_id == bunk_id,
                InventoryItem.product_kind == product_kind,
            )
            .values(
                available_milli=InventoryItem.available_milli + amount_milli,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 1:
            logger.debug(
                "Inventory restore bunk={} kind={} amount={}",
                bunk_id,
                product_kind,
                amount_milli,
            )
            return True

        # The counter row was removed after the decrement; recreate it
        item = InventoryItem(
            bunk_id=bunk_id,
            product_kind=product_kind,
            available_milli=amount_milli,
            updated_at=utcnow(),
        )
        self.session.add(item)
        self.session.flush()
        logger.warning(
            "Inventory row bunk={} kind={} was missing on restore; recreated with {}",
            bunk_id,
            product_kind,
            amount_milli,
        )
        return True

    def set_available(self, bunk_id: str, product_kind: str, amount_milli: int) -> None:
        item = self.get_item(bunk_id, product_kind)
        if item:
            item.available_milli = amount_milli
            item.updated_at = utcnow()
        else:
            self.session.add(
                InventoryItem(
                    bunk_id=bunk_id,
                    product_kind=product_kind,
                    available_milli=amount_milli,
                    updated_at=utcnow(),
                )
            )
        self.session.flush()

    def bunks_with_stock(self, product_kind: str, amount_milli: int) -> List[str]:
        return list(
            self.session.execute(
                select(InventoryItem.bunk_id).where(
                    InventoryItem.product_kind == product_kind,
                    InventoryItem.available_milli >= amount_milli,
                )
            )
            .scalars()
            .all()
        )


__all__ = ["InventoryRepository"]
