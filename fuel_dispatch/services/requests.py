"""
Public facade over pricing, payment binding, the dispatch state machine and the
inventory ledger.

Listings are returned as RequestListing objects: each iteration runs the query again,
so a listing can be iterated more than once and always reflects committed state.
"""

from decimal import Decimal
from typing import Callable, Dict, Iterator, List, Optional

from loguru import logger

from fuel_dispatch.clients.config_service import ConfigClient
from fuel_dispatch.core.exceptions import InvalidInput, InvalidTransition, Unauthorized
from fuel_dispatch.core.geo import bounding_box, haversine_km, validate_location
from fuel_dispatch.db.models import DeliveryRequest
from fuel_dispatch.db.repositories.bunk import BunkRepository
from fuel_dispatch.db.repositories.event import RequestEventRepository
from fuel_dispatch.db.repositories.request import RequestRepository, to_request_data
from fuel_dispatch.monitoring.metrics import MetricsCollector
from fuel_dispatch.schemas import (
    Actor,
    BillBreakdown,
    Location,
    PaymentOrderData,
    ProductKind,
    QuoteRequest,
    RequestData,
    RequestEventData,
    RequestStatus,
    Role,
)
from fuel_dispatch.services.dispatch import DispatchCoordinator
from fuel_dispatch.services.inventory import InventoryLedger
from fuel_dispatch.services.payment import PaymentService
from fuel_dispatch.services.pricing import (
    DEFAULT_PRICE_TABLE,
    compute_bill,
    normalize_quantity,
    normalize_variant,
    parse_kind,
)


class RequestListing:
    """Restartable, lazy view over a request query."""

    def __init__(
        self,
        query: Callable[[], Iterator[DeliveryRequest]],
        predicate: Optional[Callable[[DeliveryRequest], bool]] = None,
    ):
        self._query = query
        self._predicate = predicate

    def __iter__(self) -> Iterator[RequestData]:
        for row in self._query():
            if self._predicate is None or self._predicate(row):
                yield to_request_data(row)


def _require_role(actor: Actor, *roles: Role) -> None:
    if actor.role not in roles:
        raise Unauthorized(f"Role {actor.role.value} may not do this")


def _require_self_or_admin(actor: Actor, role: Role, subject_id: str) -> None:
    if actor.role == Role.ADMIN:
        return
    if actor.role != role or actor.user_id != subject_id:
        raise Unauthorized(f"{role.value.capitalize()} {subject_id} is not the caller")


class RequestService:
    def __init__(
        self,
        request_repo: RequestRepository,
        event_repo: RequestEventRepository,
        bunk_repo: BunkRepository,
        ledger: InventoryLedger,
        coordinator: DispatchCoordinator,
        payment_service: PaymentService,
        config_client: ConfigClient,
        default_service_radius_km: float = 10.0,
    ):
        self.request_repo = request_repo
        self.event_repo = event_repo
        self.bunk_repo = bunk_repo
        self.ledger = ledger
        self.coordinator = coordinator
        self.payment_service = payment_service
        self.config_client = config_client
        self.default_service_radius_km = default_service_radius_km

    # --- pricing & payment ---

    def price_quote(self, product_kind, quantity, variant) -> BillBreakdown:
        table = DEFAULT_PRICE_TABLE.with_delivery_charges(
            self.config_client.get_delivery_costs()
        )
        bill = compute_bill(product_kind, quantity, variant, table)
        MetricsCollector.record_quote(parse_kind(product_kind).value)
        return bill

    def initiate_payment(self, actor: Actor, quote: QuoteRequest) -> PaymentOrderData:
        _require_role(actor, Role.CUSTOMER)

        kind = parse_kind(quote.product_kind)
        variant = normalize_variant(kind, quote.variant)
        quantity = normalize_quantity(kind, quote.quantity)
        # The amount charged is always recomputed here, never taken from the client
        bill = self.price_quote(kind, quantity, variant)
        return self.payment_service.initiate(actor, kind, quantity, variant, bill)

    def confirm_payment_and_create_request(
        self,
        actor: Actor,
        order_id: str,
        payment_id: str,
        signature: str,
        product_kind,
        variant,
        quantity,
        location: Location,
    ) -> RequestData:
        _require_role(actor, Role.CUSTOMER)

        lat, lng = validate_location(location.lat, location.lng)
        kind = parse_kind(product_kind)
        variant = normalize_variant(kind, variant)
        quantity = normalize_quantity(kind, quantity)

        order = self.payment_service.verify_and_consume(
            actor, order_id, payment_id, signature, kind, quantity, variant
        )
        request = self.coordinator.create(
            actor,
            product_kind=kind,
            variant=variant,
            quantity=quantity,
            lat=lat,
            lng=lng,
            bill=order.bill,
            currency=order.currency,
            order_id=order_id,
            payment_id=payment_id,
            signature=signature,
        )
        return to_request_data(request)

    # --- lifecycle ---

    def approve(self, actor: Actor, request_id: str, bunk_id: Optional[str] = None) -> RequestData:
        return to_request_data(self.coordinator.approve(actor, request_id, bunk_id))

    def claim(self, actor: Actor, request_id: str) -> RequestData:
        return to_request_data(self.coordinator.claim(actor, request_id))

    def advance_status(self, actor: Actor, request_id: str, target_status) -> RequestData:
        try:
            target = RequestStatus(target_status)
        except ValueError:
            raise InvalidTransition(f"Unknown status: {target_status!r}")

        if target == RequestStatus.CANCELLED:
            return self.cancel(actor, request_id)
        return to_request_data(self.coordinator.advance(actor, request_id, target))

    def cancel(self, actor: Actor, request_id: str) -> RequestData:
        return to_request_data(self.coordinator.cancel(actor, request_id))

    # --- reads ---

    def _check_visible(self, actor: Actor, request: DeliveryRequest) -> None:
        if actor.role == Role.ADMIN:
            return
        if actor.role == Role.CUSTOMER and request.customer_id == actor.user_id:
            return
        if actor.role == Role.AGENT and (
            request.assigned_agent_id == actor.user_id
            or (
                request.status == RequestStatus.APPROVED.value
                and request.assigned_agent_id is None
            )
        ):
            return
        if actor.role == Role.BUNK and (
            request.status == RequestStatus.PENDING.value
            or request.charged_bunk_id == actor.user_id
        ):
            return
        raise Unauthorized("Request is not visible to the caller")

    def get_request(self, actor: Actor, request_id: str) -> RequestData:
        request = self.coordinator.get(request_id)
        self._check_visible(actor, request)
        return to_request_data(request)

    def history(self, actor: Actor, request_id: str) -> List[RequestEventData]:
        request = self.coordinator.get(request_id)
        self._check_visible(actor, request)
        return self.event_repo.list_for_request(request_id)

    def list_by_customer(self, actor: Actor, customer_id: str) -> RequestListing:
        _require_self_or_admin(actor, Role.CUSTOMER, customer_id)
        return RequestListing(lambda: self.request_repo.iter_by_customer(customer_id))

    def list_by_agent(self, actor: Actor, agent_id: str) -> RequestListing:
        _require_self_or_admin(actor, Role.AGENT, agent_id)
        return RequestListing(lambda: self.request_repo.iter_by_agent(agent_id))

    def list_pending_near_bunk(self, actor: Actor, bunk_id: str) -> RequestListing:
        _require_self_or_admin(actor, Role.BUNK, bunk_id)

        bunk = self.bunk_repo.get_bunk(bunk_id)
        if bunk is None:
            raise InvalidInput(f"Bunk {bunk_id} is not registered")

        radius = bunk.service_radius_km or self.default_service_radius_km
        min_lat, max_lat, min_lng, max_lng = bounding_box(bunk.lat, bunk.lng, radius)
        logger.debug(
            f"Pending requests near bunk {bunk_id}: radius {radius} km, "
            f"box lat {min_lat:.4f}..{max_lat:.4f} lng {min_lng:.4f}..{max_lng:.4f}"
        )

        def within_radius(row: DeliveryRequest) -> bool:
            return haversine_km(bunk.lat, bunk.lng, row.lat, row.lng) <= radius

        return RequestListing(
            lambda: self.request_repo.iter_in_box(
                RequestStatus.PENDING, min_lat, max_lat, min_lng, max_lng
            ),
            predicate=within_radius,
        )

    def list_claimable(self, actor: Actor) -> RequestListing:
        _require_role(actor, Role.AGENT, Role.ADMIN)
        return RequestListing(self.request_repo.iter_claimable)

    def list_all(self, actor: Actor, status: Optional[RequestStatus] = None) -> RequestListing:
        _require_role(actor, Role.ADMIN)
        return RequestListing(lambda: self.request_repo.iter_all(status))

    # --- bunk inventory ---

    def get_inventory(self, actor: Actor, bunk_id: str) -> Dict[ProductKind, Decimal]:
        _require_self_or_admin(actor, Role.BUNK, bunk_id)
        return self.ledger.get_stock(bunk_id)

    def set_inventory(
        self, actor: Actor, bunk_id: str, stock: Dict[ProductKind, Decimal]
    ) -> Dict[ProductKind, Decimal]:
        _require_self_or_admin(actor, Role.BUNK, bunk_id)
        return self.ledger.set_stock(bunk_id, stock)
