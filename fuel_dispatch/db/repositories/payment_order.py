from typing import Optional

from loguru import logger
from sqlalchemy import update
from sqlalchemy.orm import Session

from fuel_dispatch.core.utils import from_milli, from_minor, utcnow
from fuel_dispatch.db.models import PaymentOrder
from fuel_dispatch.schemas import BillBreakdown, PaymentOrderData, Variant

CREATED = "created"
CONSUMED = "consumed"


class PaymentOrderRepository:
    def __init__(self, session: Session):
        self.session = session

    def create_order(self, order: PaymentOrder) -> None:
        self.session.add(order)
        self.session.flush()
        logger.info(
            f"Payment order {order.id} stored: customer={order.customer_id}, "
            f"amount={order.total_minor} {order.currency}"
        )

    def get_by_id(self, order_id: str) -> Optional[PaymentOrder]:
        return self.session.get(PaymentOrder, order_id, populate_existing=True)

    def consume(self, order_id: str, payment_id: str) -> bool:
        """Marks the order as spent. Only the first caller gets True."""
        result = self.session.execute(
            update(PaymentOrder)
            .where(PaymentOrder.id == order_id, PaymentOrder.status == CREATED)
            .values(status=CONSUMED, payment_id=payment_id, consumed_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


def to_payment_order_data(order: PaymentOrder) -> PaymentOrderData:
    return PaymentOrderData(
        order_id=order.id,
        customer_id=order.customer_id,
        product_kind=order.product_kind,
        quantity=(
            from_milli(order.quantity_milli) if order.quantity_milli is not None else None
        ),
        variant=Variant(
            brand=order.brand,
            battery_type=order.battery_type,
            battery_capacity=order.battery_capacity,
        ),
        bill=BillBreakdown(
            base_price=from_minor(order.base_price_minor),
            tax=from_minor(order.tax_minor),
            delivery_charge=from_minor(order.delivery_charge_minor),
            discount=from_minor(order.discount_minor),
            total=from_minor(order.total_minor),
        ),
        amount_minor=order.total_minor,
        currency=order.currency,
        status=order.status,
        payment_id=order.payment_id,
        created_at=order.created_at,
        consumed_at=order.consumed_at,
    )


__all__ = ["PaymentOrderRepository", "to_payment_order_data", "CREATED", "CONSUMED"]
