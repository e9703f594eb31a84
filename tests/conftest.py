import itertools
from decimal import Decimal
from typing import Generator
from unittest.mock import Mock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from fuel_dispatch.clients.config_service import ConfigClient
from fuel_dispatch.clients.gateway import PaymentGatewayClient
from fuel_dispatch.config.settings import Settings
from fuel_dispatch.core.circuit_breaker import CircuitBreakerConfig
from fuel_dispatch.db.database import get_engine, make_sessionmaker
from fuel_dispatch.db.models import Base
from fuel_dispatch.db.repositories.bunk import BunkRepository
from fuel_dispatch.db.repositories.event import RequestEventRepository
from fuel_dispatch.db.repositories.inventory import InventoryRepository
from fuel_dispatch.db.repositories.payment_order import PaymentOrderRepository
from fuel_dispatch.db.repositories.request import RequestRepository
from fuel_dispatch.schemas import Actor, Location, QuoteRequest, Role
from fuel_dispatch.services.dispatch import DispatchCoordinator
from fuel_dispatch.services.inventory import InventoryLedger
from fuel_dispatch.services.payment import PaymentService
from fuel_dispatch.services.requests import RequestService

BANGALORE = Location(lat=12.9716, lng=77.5946)
NEAR_BANGALORE = Location(lat=12.9800, lng=77.6000)  # ~1 km from bunk-1


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        database_url="sqlite+pysqlite://",
        gateway_key_id="rzp_test_key",
        gateway_key_secret="test_secret",
        config_base="http://config.test",
    )


# ---------- database ----------


@pytest.fixture
def engine():
    # One shared connection so every thread (TestClient workers included) sees the same data
    eng = create_engine(
        "sqlite+pysqlite://",
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return make_sessionmaker(engine)


@pytest.fixture
def db_session(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def file_session_factory(tmp_path):
    """File-backed database: each session gets its own connection."""
    eng = get_engine(f"sqlite+pysqlite:///{tmp_path / 'dispatch.db'}")
    Base.metadata.create_all(eng)
    yield make_sessionmaker(eng)
    eng.dispose()


# ---------- collaborators ----------


@pytest.fixture
def gateway_client(settings) -> PaymentGatewayClient:
    client = PaymentGatewayClient(settings, CircuitBreakerConfig(settings))
    counter = itertools.count(1)

    def fake_post(path, payload):
        return {
            "id": f"order_test_{next(counter)}",
            "entity": "order",
            "amount": payload["amount"],
            "currency": payload["currency"],
            "receipt": payload["receipt"],
            "status": "created",
        }

    client._post = Mock(side_effect=fake_post)
    return client


@pytest.fixture
def config_client(settings):
    client = Mock(spec=ConfigClient)
    client.get_delivery_costs.return_value = {
        kind: Decimal(str(value)) for kind, value in settings.default_delivery_costs().items()
    }
    client.get_circuit_breaker_stats.return_value = {}
    return client


# ---------- actors ----------


@pytest.fixture
def customer() -> Actor:
    return Actor(user_id="cust-1", role=Role.CUSTOMER)


@pytest.fixture
def other_customer() -> Actor:
    return Actor(user_id="cust-2", role=Role.CUSTOMER)


@pytest.fixture
def bunk() -> Actor:
    return Actor(user_id="bunk-1", role=Role.BUNK)


@pytest.fixture
def other_bunk() -> Actor:
    return Actor(user_id="bunk-2", role=Role.BUNK)


@pytest.fixture
def agent() -> Actor:
    return Actor(user_id="agent-1", role=Role.AGENT)


@pytest.fixture
def other_agent() -> Actor:
    return Actor(user_id="agent-2", role=Role.AGENT)


@pytest.fixture
def admin() -> Actor:
    return Actor(user_id="admin-1", role=Role.ADMIN)


# ---------- services ----------


def _seed_bunks(session: Session) -> None:
    bunks = BunkRepository(session)
    bunks.upsert_bunk("bunk-1", "MG Road Fuels", BANGALORE.lat, BANGALORE.lng, 10.0)
    bunks.upsert_bunk("bunk-2", "Indiranagar Energy", 12.9784, 77.6408, 10.0)

    inventory = InventoryRepository(session)
    inventory.set_available("bunk-1", "petrol", 100_000)
    inventory.set_available("bunk-1", "diesel", 100_000)
    inventory.set_available("bunk-1", "gas", 50_000)
    inventory.set_available("bunk-1", "battery", 5_000)
    inventory.set_available("bunk-2", "petrol", 500_000)
    session.commit()


@pytest.fixture
def seed_bunks():
    return _seed_bunks


@pytest.fixture
def seeded(db_session):
    _seed_bunks(db_session)
    return db_session


@pytest.fixture
def make_service(gateway_client, config_client):
    def _make(session: Session) -> RequestService:
        request_repo = RequestRepository(session, page_size=10)
        event_repo = RequestEventRepository(session)
        bunk_repo = BunkRepository(session)
        ledger = InventoryLedger(InventoryRepository(session))
        coordinator = DispatchCoordinator(request_repo, event_repo, bunk_repo, ledger)
        payment_service = PaymentService(
            PaymentOrderRepository(session), gateway_client, "INR"
        )
        return RequestService(
            request_repo,
            event_repo,
            bunk_repo,
            ledger,
            coordinator,
            payment_service,
            config_client,
        )

    return _make


@pytest.fixture
def service(make_service, seeded) -> RequestService:
    return make_service(seeded)


@pytest.fixture
def place_request(gateway_client):
    """Runs quote -> payment order -> signed confirmation and returns the new request."""
    counter = itertools.count(1)

    def _place(
        service: RequestService,
        actor: Actor,
        product_kind: str = "petrol",
        quantity=Decimal("10"),
        variant=None,
        location: Location = NEAR_BANGALORE,
    ):
        if variant is None:
            variant = {"brand": "Indian Oil"}
        quote = QuoteRequest(product_kind=product_kind, quantity=quantity, variant=variant)
        order = service.initiate_payment(actor, quote)
        payment_id = f"pay_test_{next(counter)}"
        return service.confirm_payment_and_create_request(
            actor,
            order_id=order.order_id,
            payment_id=payment_id,
            signature=gateway_client.expected_signature(order.order_id, payment_id),
            product_kind=product_kind,
            variant=variant,
            quantity=quantity,
            location=location,
        )

    return _place


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: mark test as integration test")
    config.addinivalue_line("markers", "slow: mark test as slow running")
