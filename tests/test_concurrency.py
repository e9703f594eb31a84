import threading
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import pytest

from fuel_dispatch.core.exceptions import AlreadyClaimed, InsufficientInventory, InvalidTransition
from fuel_dispatch.db.models import DeliveryRequest, InventoryItem, RequestEvent
from fuel_dispatch.schemas import Actor, RequestStatus, Role

AGENTS = 8


def run_concurrently(factory, make_service, calls):
    """Runs every call on its own thread and session; returns the outcome of each."""
    barrier = threading.Barrier(len(calls))

    def attempt(fn):
        with factory() as session:
            service = make_service(session)
            barrier.wait()
            try:
                fn(service)
                session.commit()
                return "ok"
            except (AlreadyClaimed, InsufficientInventory, InvalidTransition) as e:
                session.rollback()
                return type(e).__name__

    with ThreadPoolExecutor(max_workers=len(calls)) as pool:
        return list(pool.map(attempt, calls))


@pytest.fixture
def factory(file_session_factory, seed_bunks):
    with file_session_factory() as session:
        seed_bunks(session)
    return file_session_factory


def new_approved_request(factory, make_service, place_request, customer, bunk, **kwargs):
    with factory() as session:
        service = make_service(session)
        request = place_request(service, customer, **kwargs)
        if bunk is not None:
            service.approve(bunk, request.id)
        session.commit()
        return request.id


@pytest.mark.slow
def test_concurrent_claims_have_exactly_one_winner(factory, make_service, place_request, customer, bunk):
    request_id = new_approved_request(factory, make_service, place_request, customer, bunk)
    agents = [Actor(user_id=f"agent-{i}", role=Role.AGENT) for i in range(AGENTS)]

    outcomes = run_concurrently(
        factory,
        make_service,
        [lambda s, a=a: s.claim(a, request_id) for a in agents],
    )

    assert outcomes.count("ok") == 1
    assert outcomes.count("AlreadyClaimed") == AGENTS - 1

    winner = agents[outcomes.index("ok")]
    with factory() as session:
        row = session.get(DeliveryRequest, request_id)
        assert row.status == RequestStatus.ACCEPTED.value
        assert row.assigned_agent_id == winner.user_id
        accepted = (
            session.query(RequestEvent)
            .filter_by(request_id=request_id, to_status=RequestStatus.ACCEPTED.value)
            .count()
        )
        assert accepted == 1


@pytest.mark.slow
def test_concurrent_approvals_never_oversell(factory, make_service, place_request, customer, bunk):
    # 100 litres in stock, five requests of 30 litres each
    request_ids = [
        new_approved_request(
            factory, make_service, place_request, customer, None, quantity=Decimal("30")
        )
        for _ in range(5)
    ]

    outcomes = run_concurrently(
        factory,
        make_service,
        [lambda s, r=r: s.approve(bunk, r) for r in request_ids],
    )

    assert outcomes.count("ok") == 3
    assert outcomes.count("InsufficientInventory") == 2
    with factory() as session:
        item = session.get(InventoryItem, ("bunk-1", "petrol"))
        assert item.available_milli == 10_000


@pytest.mark.slow
def test_concurrent_approvals_of_one_request_charge_once(
    factory, make_service, place_request, customer, bunk, admin
):
    request_id = new_approved_request(factory, make_service, place_request, customer, None)

    outcomes = run_concurrently(
        factory,
        make_service,
        [
            lambda s: s.approve(bunk, request_id),
            lambda s: s.approve(admin, request_id, bunk_id="bunk-2"),
        ],
    )

    assert sorted(outcomes) == ["InvalidTransition", "ok"]
    with factory() as session:
        row = session.get(DeliveryRequest, request_id)
        remaining = {
            bunk_id: session.get(InventoryItem, (bunk_id, "petrol")).available_milli
            for bunk_id in ("bunk-1", "bunk-2")
        }
    charged = {"bunk-1": 100_000, "bunk-2": 500_000}
    charged[row.charged_bunk_id] -= 10_000
    assert remaining == charged
