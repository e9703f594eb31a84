from typing import Iterator, Optional, Sequence

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from fuel_dispatch.core.utils import from_milli, from_minor, utcnow
from fuel_dispatch.db.models import DeliveryRequest
from fuel_dispatch.schemas import (
    BillBreakdown,
    Location,
    RequestData,
    RequestStatus,
    Variant,
)


class RequestRepository:
    def __init__(self, session: Session, page_size: int = 100):
        self.session = session
        self.page_size = page_size

    def get_by_id(self, request_id: str) -> Optional[DeliveryRequest]:
        # Conditional updates bypass the identity map, so always reload
        return self.session.get(DeliveryRequest, request_id, populate_existing=True)

    def get_by_payment(self, order_id: str, payment_id: str) -> Optional[DeliveryRequest]:
        return self.session.execute(
            select(DeliveryRequest).where(
                DeliveryRequest.payment_order_id == order_id,
                DeliveryRequest.payment_id == payment_id,
            )
        ).scalar_one_or_none()

    def create_request(self, request: DeliveryRequest) -> None:
        self.session.add(request)
        self.session.flush()

    def compare_and_set(
        self,
        request_id: str,
        expected_status: RequestStatus,
        values: dict,
        conditions: Sequence = (),
    ) -> bool:
        """Apply values only if the row is still in expected_status.

        Returns False when another writer changed the row first.
        """
        result = self.session.execute(
            update(DeliveryRequest)
            .where(
                DeliveryRequest.id == request_id,
                DeliveryRequest.status == expected_status.value,
                *conditions,
            )
            .values(
                version=DeliveryRequest.version + 1,
                updated_at=utcnow(),
                **values,
            )
            .execution_options(synchronize_session=False)
        )

        updated = result.rowcount == 1
        if not updated:
            logger.debug(
                "Conditional update lost for request {} (expected status {})",
                request_id,
                expected_status.value,
            )
        return updated

    # --- Read-only listings ---

    def _iter(self, stmt) -> Iterator[DeliveryRequest]:
        stmt = stmt.execution_options(yield_per=self.page_size)
        for row in self.session.execute(stmt).scalars():
            yield row

    def iter_by_customer(self, customer_id: str) -> Iterator[DeliveryRequest]:
        return self._iter(
            select(DeliveryRequest)
            .where(DeliveryRequest.customer_id == customer_id)
            .order_by(DeliveryRequest.created_at.desc(), DeliveryRequest.id)
        )

    def iter_by_agent(self, agent_id: str) -> Iterator[DeliveryRequest]:
        return self._iter(
            select(DeliveryRequest)
            .where(DeliveryRequest.assigned_agent_id == agent_id)
            .order_by(DeliveryRequest.updated_at.desc(), DeliveryRequest.id)
        )

    def iter_in_box(
        self,
        status: RequestStatus,
        min_lat: float,
        max_lat: float,
        min_lng: float,
        max_lng: float,
    ) -> Iterator[DeliveryRequest]:
        return self._iter(
            select(DeliveryRequest)
            .where(
                DeliveryRequest.status == status.value,
                DeliveryRequest.lat.between(min_lat, max_lat),
                DeliveryRequest.lng.between(min_lng, max_lng),
            )
            .order_by(DeliveryRequest.created_at, DeliveryRequest.id)
        )

    def iter_claimable(self) -> Iterator[DeliveryRequest]:
        return self._iter(
            select(DeliveryRequest)
            .where(
                DeliveryRequest.status == RequestStatus.APPROVED.value,
                DeliveryRequest.assigned_agent_id.is_(None),
            )
            .order_by(DeliveryRequest.updated_at.desc(), DeliveryRequest.id)
        )

    def iter_all(self, status: Optional[RequestStatus] = None) -> Iterator[DeliveryRequest]:
        stmt = select(DeliveryRequest)
        if status is not None:
            stmt = stmt.where(DeliveryRequest.status == status.value)
        return self._iter(
            stmt.order_by(DeliveryRequest.created_at.desc(), DeliveryRequest.id)
        )


def to_request_data(request: DeliveryRequest) -> RequestData:
    return RequestData(
        id=request.id,
        customer_id=request.customer_id,
        product_kind=request.product_kind,
        variant=Variant(
            brand=request.brand,
            battery_type=request.battery_type,
            battery_capacity=request.battery_capacity,
        ),
        quantity=(
            from_milli(request.quantity_milli)
            if request.quantity_milli is not None
            else None
        ),
        location=Location(lat=request.lat, lng=request.lng),
        bill=BillBreakdown(
            base_price=from_minor(request.base_price_minor),
            tax=from_minor(request.tax_minor),
            delivery_charge=from_minor(request.delivery_charge_minor),
            discount=from_minor(request.discount_minor),
            total=from_minor(request.total_minor),
        ),
        currency=request.currency,
        payment_order_id=request.payment_order_id,
        payment_id=request.payment_id,
        status=request.status,
        assigned_agent_id=request.assigned_agent_id,
        approved_by=request.approved_by,
        charged_bunk_id=request.charged_bunk_id,
        version=request.version,
        created_at=request.created_at,
        updated_at=request.updated_at,
    )


__all__ = ["RequestRepository", "to_request_data"]
