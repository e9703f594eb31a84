"""
Request state machine.

Every transition is a conditional UPDATE on the request row (see
RequestRepository.compare_and_set), so concurrent operations on the same request
serialize in the database while unrelated requests proceed in parallel. A conditional
update that matches no row means another writer got there first; the coordinator then
re-reads the row to report why.
"""

from decimal import Decimal
from typing import Optional

from loguru import logger
from sqlalchemy.exc import IntegrityError

from fuel_dispatch.core.exceptions import (
    AlreadyClaimed,
    InsufficientInventory,
    InvalidTransition,
    PaymentAlreadyConsumed,
    RequestNotFound,
    Unauthorized,
)
from fuel_dispatch.core.geo import haversine_km
from fuel_dispatch.core.utils import to_milli, to_minor, utcnow, uuid4
from fuel_dispatch.db.models import DeliveryRequest
from fuel_dispatch.db.repositories.bunk import BunkRepository
from fuel_dispatch.db.repositories.event import RequestEventRepository
from fuel_dispatch.db.repositories.request import RequestRepository
from fuel_dispatch.monitoring.metrics import MetricsCollector
from fuel_dispatch.schemas import (
    Actor,
    BillBreakdown,
    ProductKind,
    RequestStatus,
    Role,
    Variant,
)
from fuel_dispatch.services.inventory import InventoryLedger, required_amount_milli

S = RequestStatus

TRANSITIONS = {
    S.PENDING: frozenset({S.APPROVED, S.CANCELLED}),
    S.APPROVED: frozenset({S.ACCEPTED, S.CANCELLED}),
    S.ACCEPTED: frozenset({S.IN_TRANSIT, S.CANCELLED}),
    S.IN_TRANSIT: frozenset({S.DELIVERED, S.CANCELLED}),
    S.DELIVERED: frozenset(),
    S.CANCELLED: frozenset(),
}

TERMINAL = frozenset(s for s, targets in TRANSITIONS.items() if not targets)

# Statuses from which each role may cancel. Ownership is checked separately.
CANCEL_POLICY = {
    Role.CUSTOMER: frozenset({S.PENDING, S.APPROVED}),
    Role.BUNK: frozenset({S.PENDING, S.APPROVED, S.ACCEPTED}),
    Role.AGENT: frozenset({S.ACCEPTED, S.IN_TRANSIT}),
    Role.ADMIN: frozenset({S.PENDING, S.APPROVED, S.ACCEPTED, S.IN_TRANSIT}),
}

# Transitions an assigned agent drives with advance_status
AGENT_ADVANCES = {
    S.IN_TRANSIT: S.ACCEPTED,
    S.DELIVERED: S.IN_TRANSIT,
}

CANCEL_RETRIES = 3


def can_transition(current: RequestStatus, target: RequestStatus) -> bool:
    return target in TRANSITIONS[current]


def _require_role(actor: Actor, *roles: Role) -> None:
    if actor.role not in roles:
        allowed = ", ".join(r.value for r in roles)
        raise Unauthorized(f"Role {actor.role.value} may not do this; requires {allowed}")


class DispatchCoordinator:
    def __init__(
        self,
        request_repo: RequestRepository,
        event_repo: RequestEventRepository,
        bunk_repo: BunkRepository,
        ledger: InventoryLedger,
    ):
        self.request_repo = request_repo
        self.event_repo = event_repo
        self.bunk_repo = bunk_repo
        self.ledger = ledger

    def get(self, request_id: str) -> DeliveryRequest:
        request = self.request_repo.get_by_id(request_id)
        if not request:
            logger.warning(f"Request {request_id} not found")
            raise RequestNotFound(f"Request {request_id} not found")
        return request

    def _transitioned(
        self,
        request_id: str,
        from_status: RequestStatus,
        to_status: RequestStatus,
        actor: Actor,
        note: Optional[str] = None,
    ) -> DeliveryRequest:
        self.event_repo.record(request_id, from_status, to_status, actor, note)
        MetricsCollector.record_transition(from_status.value, to_status.value)
        return self.get(request_id)

    # --- create ---

    def create(
        self,
        actor: Actor,
        product_kind: ProductKind,
        variant: Variant,
        quantity: Optional[Decimal],
        lat: float,
        lng: float,
        bill: BillBreakdown,
        currency: str,
        order_id: str,
        payment_id: str,
        signature: str,
    ) -> DeliveryRequest:
        now = utcnow()
        request = DeliveryRequest(
            id=uuid4(),
            customer_id=actor.user_id,
            product_kind=product_kind.value,
            brand=variant.brand,
            battery_type=variant.battery_type,
            battery_capacity=variant.battery_capacity,
            quantity_milli=to_milli(quantity) if quantity is not None else None,
            lat=lat,
            lng=lng,
            base_price_minor=to_minor(bill.base_price),
            tax_minor=to_minor(bill.tax),
            delivery_charge_minor=to_minor(bill.delivery_charge),
            discount_minor=to_minor(bill.discount),
            total_minor=to_minor(bill.total),
            currency=currency,
            payment_order_id=order_id,
            payment_id=payment_id,
            payment_signature=signature,
            status=S.PENDING.value,
            assigned_agent_id=None,
            charged_milli=0,
            inventory_charged=False,
            version=1,
            created_at=now,
            updated_at=now,
        )

        try:
            self.request_repo.create_request(request)
        except IntegrityError as e:
            logger.warning(f"Payment {order_id}/{payment_id} is already bound to a request")
            raise PaymentAlreadyConsumed() from e

        self.event_repo.record(request.id, None, S.PENDING, actor)
        MetricsCollector.record_request_created(product_kind.value)
        logger.info(
            f"Request {request.id} created for customer {actor.user_id}: "
            f"{product_kind.value}, total {bill.total} {currency}"
        )
        return request

    # --- approve ---

    def _select_bunk(self, request: DeliveryRequest, amount_milli: int) -> str:
        """Nearest registered bunk whose stock covers the request."""
        candidates = self.ledger.bunks_with_stock(
            ProductKind(request.product_kind), amount_milli
        )
        bunks = self.bunk_repo.get_many(candidates)
        if not bunks:
            MetricsCollector.record_inventory_shortfall(request.product_kind)
            raise InsufficientInventory(
                f"No bunk has enough {request.product_kind} for request {request.id}"
            )
        nearest = min(
            bunks,
            key=lambda b: (haversine_km(request.lat, request.lng, b.lat, b.lng), b.id),
        )
        return nearest.id

    def approve(
        self, actor: Actor, request_id: str, bunk_id: Optional[str] = None
    ) -> DeliveryRequest:
        _require_role(actor, Role.BUNK, Role.ADMIN)
        if actor.role == Role.BUNK:
            if bunk_id and bunk_id != actor.user_id:
                raise Unauthorized("A bunk may only approve against its own inventory")
            bunk_id = actor.user_id

        request = self.get(request_id)
        current = S(request.status)
        if current != S.PENDING or request.inventory_charged:
            raise InvalidTransition(
                f"Cannot approve request {request_id} in status {current.value}"
            )

        kind = ProductKind(request.product_kind)
        amount_milli = required_amount_milli(kind, request.quantity_milli)
        if not bunk_id:
            bunk_id = self._select_bunk(request, amount_milli)

        # Stock first: if it is short, the request has not been touched
        self.ledger.decrement(bunk_id, kind, amount_milli)

        approved = self.request_repo.compare_and_set(
            request_id,
            S.PENDING,
            {
                "status": S.APPROVED.value,
                "approved_by": actor.user_id,
                "charged_bunk_id": bunk_id,
                "charged_milli": amount_milli,
                "inventory_charged": True,
            },
            conditions=[DeliveryRequest.inventory_charged.is_(False)],
        )
        if not approved:
            self.ledger.restore(bunk_id, kind, amount_milli)
            latest = self.get(request_id)
            raise InvalidTransition(
                f"Request {request_id} moved to {latest.status} before approval"
            )

        logger.info(
            f"Request {request_id} approved by {actor.role.value} {actor.user_id}, "
            f"stock charged at bunk {bunk_id}"
        )
        return self._transitioned(request_id, S.PENDING, S.APPROVED, actor, note=bunk_id)

    # --- claim ---

    def claim(self, actor: Actor, request_id: str) -> DeliveryRequest:
        _require_role(actor, Role.AGENT)

        request = self.get(request_id)
        if S(request.status) in TERMINAL:
            raise InvalidTransition(
                f"Cannot claim request {request_id} in status {request.status}"
            )
        if request.assigned_agent_id and request.assigned_agent_id != actor.user_id:
            MetricsCollector.record_claim_conflict()
            raise AlreadyClaimed()
        if S(request.status) != S.APPROVED:
            raise InvalidTransition(
                f"Cannot claim request {request_id} in status {request.status}"
            )

        claimed = self.request_repo.compare_and_set(
            request_id,
            S.APPROVED,
            {"status": S.ACCEPTED.value, "assigned_agent_id": actor.user_id},
            conditions=[DeliveryRequest.assigned_agent_id.is_(None)],
        )
        if not claimed:
            latest = self.get(request_id)
            if (
                S(latest.status) not in TERMINAL
                and latest.assigned_agent_id
                and latest.assigned_agent_id != actor.user_id
            ):
                MetricsCollector.record_claim_conflict()
                logger.info(
                    f"Agent {actor.user_id} lost claim on {request_id} "
                    f"to {latest.assigned_agent_id}"
                )
                raise AlreadyClaimed()
            raise InvalidTransition(
                f"Cannot claim request {request_id} in status {latest.status}"
            )

        logger.info(f"Request {request_id} claimed by agent {actor.user_id}")
        return self._transitioned(request_id, S.APPROVED, S.ACCEPTED, actor)

    # --- advance ---

    def advance(self, actor: Actor, request_id: str, target: RequestStatus) -> DeliveryRequest:
        _require_role(actor, Role.AGENT)
        if target not in AGENT_ADVANCES:
            raise InvalidTransition(f"Agents cannot move a request to {target.value}")

        source = AGENT_ADVANCES[target]
        request = self.get(request_id)
        if S(request.status) != source:
            raise InvalidTransition(
                f"Cannot move request {request_id} from {request.status} to {target.value}"
            )
        if request.assigned_agent_id != actor.user_id:
            raise Unauthorized("Only the assigned agent may update this request")

        advanced = self.request_repo.compare_and_set(
            request_id,
            source,
            {"status": target.value},
            conditions=[DeliveryRequest.assigned_agent_id == actor.user_id],
        )
        if not advanced:
            latest = self.get(request_id)
            raise InvalidTransition(
                f"Request {request_id} moved to {latest.status} concurrently"
            )

        logger.info(f"Request {request_id} is now {target.value}")
        return self._transitioned(request_id, source, target, actor)

    # --- cancel ---

    def _check_cancel_allowed(self, actor: Actor, request: DeliveryRequest) -> None:
        current = S(request.status)
        if current in TERMINAL:
            raise InvalidTransition(f"Request {request.id} is already {current.value}")
        if current not in CANCEL_POLICY[actor.role]:
            raise Unauthorized(
                f"Role {actor.role.value} may not cancel a request that is {current.value}"
            )

        if actor.role == Role.CUSTOMER and request.customer_id != actor.user_id:
            raise Unauthorized("Only the owning customer may cancel this request")
        if actor.role == Role.AGENT and request.assigned_agent_id != actor.user_id:
            raise Unauthorized("Only the assigned agent may cancel this request")
        if (
            actor.role == Role.BUNK
            and current != S.PENDING
            and request.charged_bunk_id != actor.user_id
        ):
            raise Unauthorized("Only the supplying bunk may cancel this request")

    def cancel(self, actor: Actor, request_id: str) -> DeliveryRequest:
        for _ in range(CANCEL_RETRIES):
            request = self.get(request_id)
            self._check_cancel_allowed(actor, request)
            current = S(request.status)

            cancelled = self.request_repo.compare_and_set(
                request_id,
                current,
                {"status": S.CANCELLED.value, "inventory_charged": False},
                conditions=[DeliveryRequest.version == request.version],
            )
            if not cancelled:
                logger.debug(f"Request {request_id} changed while cancelling; re-checking")
                continue

            if request.inventory_charged:
                self.ledger.restore(
                    request.charged_bunk_id,
                    ProductKind(request.product_kind),
                    request.charged_milli,
                )
                logger.info(
                    f"Restored stock for cancelled request {request_id} "
                    f"at bunk {request.charged_bunk_id}"
                )

            logger.info(
                f"Request {request_id} cancelled by {actor.role.value} {actor.user_id} "
                f"(was {current.value})"
            )
            return self._transitioned(request_id, current, S.CANCELLED, actor)

        latest = self.get(request_id)
        raise InvalidTransition(f"Request {request_id} kept changing ({latest.status})")
