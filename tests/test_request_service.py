from decimal import Decimal

import pytest

from fuel_dispatch.core.exceptions import InvalidInput, Unauthorized
from fuel_dispatch.schemas import Location, ProductKind, RequestStatus
from fuel_dispatch.services.requests import RequestListing

FAR_AWAY = Location(lat=12.2958, lng=76.6394)  # Mysore, ~130 km from bunk-1
EDGE = Location(lat=13.0500, lng=77.5946)  # ~8.7 km north of bunk-1


def ids(listing):
    return [r.id for r in listing]


def test_price_quote_reads_delivery_costs(service, config_client):
    config_client.get_delivery_costs.return_value = {"gas": Decimal("120")}

    bill = service.price_quote("gas", Decimal("2"), {"brand": "Bharat Gas"})

    assert bill.delivery_charge == Decimal("120.00")
    config_client.get_delivery_costs.assert_called_once()


def test_customer_listing_is_restartable_and_live(service, place_request, customer, other_customer):
    first = place_request(service, customer)
    place_request(service, other_customer)

    listing = service.list_by_customer(customer, "cust-1")
    assert isinstance(listing, RequestListing)
    assert ids(listing) == [first.id]
    assert ids(listing) == [first.id]

    second = place_request(service, customer)
    assert set(ids(listing)) == {first.id, second.id}


def test_customer_listing_requires_owner(service, customer, other_customer, admin, agent):
    with pytest.raises(Unauthorized):
        service.list_by_customer(other_customer, "cust-1")
    with pytest.raises(Unauthorized):
        service.list_by_customer(agent, "cust-1")

    assert list(service.list_by_customer(admin, "cust-1")) == []


def test_pending_near_bunk_filters_by_radius_and_status(service, place_request, customer, bunk, other_bunk):
    near = place_request(service, customer)
    edge = place_request(service, customer, location=EDGE)
    place_request(service, customer, location=FAR_AWAY)
    approved = place_request(service, customer)
    service.approve(bunk, approved.id)

    assert set(ids(service.list_pending_near_bunk(bunk, "bunk-1"))) == {near.id, edge.id}

    with pytest.raises(Unauthorized):
        service.list_pending_near_bunk(other_bunk, "bunk-1")


def test_pending_near_unknown_bunk(service, admin):
    with pytest.raises(InvalidInput):
        service.list_pending_near_bunk(admin, "bunk-404")


def test_pending_listing_iterates_in_pages(service, place_request, customer, bunk):
    # The test repository pages ten rows at a time
    created = {place_request(service, customer).id for _ in range(23)}

    assert set(ids(service.list_pending_near_bunk(bunk, "bunk-1"))) == created


def test_claimable_and_agent_listings(service, place_request, customer, bunk, agent, other_agent):
    waiting = place_request(service, customer)
    claimed = place_request(service, customer)
    place_request(service, customer)
    for request in (waiting, claimed):
        service.approve(bunk, request.id)
    service.claim(agent, claimed.id)

    assert ids(service.list_claimable(other_agent)) == [waiting.id]
    assert ids(service.list_by_agent(agent, "agent-1")) == [claimed.id]
    assert ids(service.list_by_agent(other_agent, "agent-2")) == []

    with pytest.raises(Unauthorized):
        service.list_by_agent(other_agent, "agent-1")
    with pytest.raises(Unauthorized):
        service.list_claimable(customer)


def test_list_all_is_admin_only(service, place_request, customer, bunk, admin):
    pending = place_request(service, customer)
    approved = place_request(service, customer)
    service.approve(bunk, approved.id)

    assert set(ids(service.list_all(admin))) == {pending.id, approved.id}
    assert ids(service.list_all(admin, RequestStatus.APPROVED)) == [approved.id]

    with pytest.raises(Unauthorized):
        service.list_all(bunk)


def test_request_visibility(service, place_request, customer, other_customer, bunk, other_bunk, agent):
    request = place_request(service, customer)

    assert service.get_request(customer, request.id).id == request.id
    assert service.get_request(bunk, request.id).id == request.id
    with pytest.raises(Unauthorized):
        service.get_request(other_customer, request.id)
    with pytest.raises(Unauthorized):
        service.get_request(agent, request.id)

    service.approve(bunk, request.id)
    assert service.get_request(agent, request.id).status == RequestStatus.APPROVED
    with pytest.raises(Unauthorized):
        service.history(other_bunk, request.id)


def test_bunk_inventory_view_and_restock(service, bunk, other_bunk, admin):
    stock = service.get_inventory(bunk, "bunk-1")
    assert stock[ProductKind.PETROL] == Decimal("100.000")

    stock = service.set_inventory(admin, "bunk-1", {ProductKind.GAS: Decimal("75.5")})
    assert stock[ProductKind.GAS] == Decimal("75.500")
    assert stock[ProductKind.PETROL] == Decimal("100.000")

    with pytest.raises(Unauthorized):
        service.set_inventory(other_bunk, "bunk-1", {ProductKind.GAS: Decimal("1")})
    with pytest.raises(Unauthorized):
        service.get_inventory(other_bunk, "bunk-1")
