from decimal import Decimal
from unittest.mock import Mock

import pytest
import requests

from fuel_dispatch.clients.config_service import ConfigClient
from fuel_dispatch.core.circuit_breaker import CircuitBreakerConfig

DEFAULTS = {
    "petrol": Decimal("50.0"),
    "diesel": Decimal("50.0"),
    "gas": Decimal("80.0"),
    "battery": Decimal("100.0"),
}


def make_response(data):
    response = Mock()
    response.json.return_value = data
    response.raise_for_status.return_value = None
    return response


@pytest.fixture
def client(settings):
    client = ConfigClient(settings, CircuitBreakerConfig(settings))
    client._session.get = Mock()
    return client


def test_costs_are_fetched_and_cached(client):
    client._session.get.return_value = make_response(
        {"costs": {"petrol": 55, "diesel": "60.5", "gas": 80, "battery": 120}}
    )

    costs = client.get_delivery_costs()
    assert costs == {
        "petrol": Decimal("55"),
        "diesel": Decimal("60.5"),
        "gas": Decimal("80"),
        "battery": Decimal("120"),
    }

    client.get_delivery_costs()
    assert client._session.get.call_count == 1
    assert client._session.get.call_args.args[0] == "http://config.test/delivery-costs"


def test_unwrapped_payload_is_accepted(client):
    client._session.get.return_value = make_response(
        {"petrol": 1, "diesel": 2, "gas": 3, "battery": 4}
    )

    assert client.get_delivery_costs()["battery"] == Decimal("4")


def test_outage_falls_back_to_defaults_without_caching(client):
    client._session.get.side_effect = requests.ConnectionError("down")

    assert client.get_delivery_costs() == DEFAULTS
    assert client.get_delivery_costs() == DEFAULTS
    assert client._session.get.call_count == 2


@pytest.mark.parametrize(
    "payload",
    [
        {"costs": {"petrol": 50, "diesel": 50, "gas": 80}},
        {"costs": {"petrol": -1, "diesel": 50, "gas": 80, "battery": 100}},
        {"costs": {"petrol": "free", "diesel": 50, "gas": 80, "battery": 100}},
    ],
)
def test_bad_payload_falls_back_to_defaults(client, payload):
    client._session.get.return_value = make_response(payload)

    assert client.get_delivery_costs() == DEFAULTS
    assert client.get_circuit_breaker_stats()["config"]["fail_counter"] == 0
