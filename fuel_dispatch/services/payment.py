from decimal import Decimal
from typing import Optional

from loguru import logger

from fuel_dispatch.clients.gateway import PaymentGatewayClient
from fuel_dispatch.core.exceptions import (
    InvalidInput,
    PaymentAlreadyConsumed,
    PaymentVerificationFailed,
)
from fuel_dispatch.core.utils import to_milli, to_minor, utcnow, uuid4
from fuel_dispatch.db.models import PaymentOrder
from fuel_dispatch.db.repositories.payment_order import (
    CONSUMED,
    CREATED,
    PaymentOrderRepository,
    to_payment_order_data,
)
from fuel_dispatch.monitoring.metrics import MetricsCollector
from fuel_dispatch.schemas import (
    Actor,
    BillBreakdown,
    PaymentOrderData,
    ProductKind,
    Variant,
)


def _receipt() -> str:
    # Gateway receipts are limited to 40 characters
    return "rcpt_" + uuid4().replace("-", "")[:32]


class PaymentService:
    def __init__(
        self,
        payment_order_repo: PaymentOrderRepository,
        gateway_client: PaymentGatewayClient,
        currency: str = "INR",
    ):
        self.payment_order_repo = payment_order_repo
        self.gateway_client = gateway_client
        self.currency = currency

    def initiate(
        self,
        actor: Actor,
        product_kind: ProductKind,
        quantity: Optional[Decimal],
        variant: Variant,
        bill: BillBreakdown,
    ) -> PaymentOrderData:
        amount_minor = to_minor(bill.total)
        receipt = _receipt()
        logger.info(
            f"Initiating payment for customer {actor.user_id}: "
            f"{product_kind.value} {amount_minor} {self.currency}"
        )

        # Gateway first: a failure here leaves nothing behind locally
        gateway_order = self.gateway_client.create_order(
            amount_minor,
            self.currency,
            receipt,
            notes={"customer_id": actor.user_id, "product_kind": product_kind.value},
        )

        order = PaymentOrder(
            id=gateway_order.id,
            receipt=receipt,
            customer_id=actor.user_id,
            product_kind=product_kind.value,
            brand=variant.brand,
            battery_type=variant.battery_type,
            battery_capacity=variant.battery_capacity,
            quantity_milli=to_milli(quantity) if quantity is not None else None,
            base_price_minor=to_minor(bill.base_price),
            tax_minor=to_minor(bill.tax),
            delivery_charge_minor=to_minor(bill.delivery_charge),
            discount_minor=to_minor(bill.discount),
            total_minor=amount_minor,
            currency=self.currency,
            status=CREATED,
            created_at=utcnow(),
        )
        self.payment_order_repo.create_order(order)
        return to_payment_order_data(order)

    def verify_payment(self, order_id: str, payment_id: str, signature: str) -> bool:
        return self.gateway_client.verify_signature(order_id, payment_id, signature)

    def verify_and_consume(
        self,
        actor: Actor,
        order_id: str,
        payment_id: str,
        signature: str,
        product_kind: ProductKind,
        quantity: Optional[Decimal],
        variant: Variant,
    ) -> PaymentOrderData:
        """Checks the payment and binds it; the order can be spent only once."""
        order = self.payment_order_repo.get_by_id(order_id)

        # Unknown order, someone else's order and a bad signature look the same
        if (
            order is None
            or order.customer_id != actor.user_id
            or not self.verify_payment(order_id, payment_id, signature)
        ):
            MetricsCollector.record_payment_verification("rejected")
            logger.warning(
                f"Payment verification failed for order {order_id} "
                f"(customer {actor.user_id})"
            )
            raise PaymentVerificationFailed()

        if order.status == CONSUMED:
            MetricsCollector.record_payment_verification("consumed")
            logger.warning(f"Payment order {order_id} was already used")
            raise PaymentAlreadyConsumed()

        quantity_milli = to_milli(quantity) if quantity is not None else None
        if (
            order.product_kind != product_kind.value
            or order.quantity_milli != quantity_milli
            or order.brand != variant.brand
            or order.battery_type != variant.battery_type
            or order.battery_capacity != variant.battery_capacity
        ):
            logger.warning(f"Product details differ from what order {order_id} was priced for")
            raise InvalidInput("Product details do not match the paid order")

        if not self.payment_order_repo.consume(order_id, payment_id):
            MetricsCollector.record_payment_verification("consumed")
            logger.warning(f"Payment order {order_id} was consumed concurrently")
            raise PaymentAlreadyConsumed()

        MetricsCollector.record_payment_verification("verified")
        logger.info(f"Payment {payment_id} verified against order {order_id}")
        return to_payment_order_data(self.payment_order_repo.get_by_id(order_id))
