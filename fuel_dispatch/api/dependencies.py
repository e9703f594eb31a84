from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session, sessionmaker

from fuel_dispatch.clients.config_service import ConfigClient
from fuel_dispatch.clients.gateway import PaymentGatewayClient
from fuel_dispatch.config.settings import Settings
from fuel_dispatch.core.exceptions import Unauthorized, actor_headers_missing_exception, to_http_exception
from fuel_dispatch.db.database import get_sessionmaker
from fuel_dispatch.db.repositories.bunk import BunkRepository
from fuel_dispatch.db.repositories.event import RequestEventRepository
from fuel_dispatch.db.repositories.inventory import InventoryRepository
from fuel_dispatch.db.repositories.payment_order import PaymentOrderRepository
from fuel_dispatch.db.repositories.request import RequestRepository
from fuel_dispatch.schemas import Actor, Role
from fuel_dispatch.services.dispatch import DispatchCoordinator
from fuel_dispatch.services.inventory import InventoryLedger
from fuel_dispatch.services.payment import PaymentService
from fuel_dispatch.services.requests import RequestService


@lru_cache()
def get_settings() -> Settings:
    return Settings()


@lru_cache()
def _cached_sessionmaker(database_url: str) -> sessionmaker:
    return get_sessionmaker(database_url)


def get_session(settings: Settings = Depends(get_settings)) -> Session:
    session = _cached_sessionmaker(settings.database_url)()
    try:
        yield session
    finally:
        session.close()


def get_gateway_client(request: Request) -> PaymentGatewayClient:
    return request.app.state.gateway_client


def get_config_client(request: Request) -> ConfigClient:
    return request.app.state.config_client


def get_request_repository(
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
) -> RequestRepository:
    return RequestRepository(session, page_size=settings.list_page_size)


def get_inventory_ledger(session: Session = Depends(get_session)) -> InventoryLedger:
    return InventoryLedger(InventoryRepository(session))


def get_dispatch_coordinator(
    session: Session = Depends(get_session),
    request_repo: RequestRepository = Depends(get_request_repository),
    ledger: InventoryLedger = Depends(get_inventory_ledger),
) -> DispatchCoordinator:
    return DispatchCoordinator(
        request_repo,
        RequestEventRepository(session),
        BunkRepository(session),
        ledger,
    )


def get_payment_service(
    session: Session = Depends(get_session),
    gateway_client: PaymentGatewayClient = Depends(get_gateway_client),
    settings: Settings = Depends(get_settings),
) -> PaymentService:
    return PaymentService(PaymentOrderRepository(session), gateway_client, settings.currency)


def get_request_service(
    session: Session = Depends(get_session),
    request_repo: RequestRepository = Depends(get_request_repository),
    ledger: InventoryLedger = Depends(get_inventory_ledger),
    coordinator: DispatchCoordinator = Depends(get_dispatch_coordinator),
    payment_service: PaymentService = Depends(get_payment_service),
    config_client: ConfigClient = Depends(get_config_client),
    settings: Settings = Depends(get_settings),
) -> RequestService:
    return RequestService(
        request_repo,
        RequestEventRepository(session),
        BunkRepository(session),
        ledger,
        coordinator,
        payment_service,
        config_client,
        default_service_radius_km=settings.default_service_radius_km,
    )


def get_actor(
    user_id: Optional[str] = Header(None, alias="X-User-Id"),
    role: Optional[str] = Header(None, alias="X-User-Role"),
) -> Actor:
    if not user_id or not role:
        raise actor_headers_missing_exception()
    try:
        return Actor(user_id=user_id, role=Role(role))
    except ValueError:
        raise to_http_exception(Unauthorized(f"Unknown role: {role}"))
