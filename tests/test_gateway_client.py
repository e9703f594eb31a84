from unittest.mock import Mock

import pytest
import requests

from fuel_dispatch.clients.gateway import PaymentGatewayClient
from fuel_dispatch.core.circuit_breaker import CircuitBreakerConfig
from fuel_dispatch.core.exceptions import GatewayTimeout, GatewayUnavailable


def make_response(data):
    response = Mock()
    response.content = b"{}"
    response.json.return_value = data
    response.raise_for_status.return_value = None
    return response


@pytest.fixture
def client(settings):
    client = PaymentGatewayClient(settings, CircuitBreakerConfig(settings))
    client._session.post = Mock()
    return client


def test_session_is_authenticated(client):
    assert client._session.auth == ("rzp_test_key", "test_secret")
    assert client.key_id == "rzp_test_key"


def test_create_order(client):
    client._session.post.return_value = make_response(
        {"id": "order_abc", "amount": 123590, "currency": "INR", "receipt": "rcpt_1"}
    )

    order = client.create_order(123590, "INR", "rcpt_1", notes={"customer_id": "cust-1"})

    assert order.id == "order_abc"
    assert order.amount_minor == 123590
    url = client._session.post.call_args.args[0]
    payload = client._session.post.call_args.kwargs["json"]
    assert url == "https://api.razorpay.com/v1/orders"
    assert payload["amount"] == 123590
    assert payload["notes"] == {"customer_id": "cust-1"}
    assert client._session.post.call_args.kwargs["timeout"] == 5.0


def test_timeout_maps_to_gateway_timeout(client):
    client._session.post.side_effect = requests.Timeout("read timed out")

    with pytest.raises(GatewayTimeout) as exc_info:
        client.create_order(100, "INR", "rcpt_1")

    assert exc_info.value.retryable


def test_http_error_maps_to_unavailable(client):
    response = make_response({})
    response.raise_for_status.side_effect = requests.HTTPError("500 Server Error")
    client._session.post.return_value = response

    with pytest.raises(GatewayUnavailable):
        client.create_order(100, "INR", "rcpt_1")


def test_open_breaker_stops_calling_gateway(client):
    client._session.post.side_effect = requests.ConnectionError("refused")

    for _ in range(3):
        with pytest.raises(GatewayUnavailable):
            client.create_order(100, "INR", "rcpt_1")
    assert client._session.post.call_count == 3

    with pytest.raises(GatewayUnavailable):
        client.create_order(100, "INR", "rcpt_1")
    assert client._session.post.call_count == 3
    assert client.get_circuit_breaker_stats()["gateway"]["state"] == "open"


def test_malformed_order_is_unavailable_and_not_counted(client):
    client._session.post.return_value = make_response({"amount": 100})

    with pytest.raises(GatewayUnavailable):
        client.create_order(100, "INR", "rcpt_1")

    assert client.get_circuit_breaker_stats()["gateway"]["fail_counter"] == 0


def test_amount_mismatch_is_rejected(client):
    client._session.post.return_value = make_response(
        {"id": "order_abc", "amount": 99, "currency": "INR", "receipt": "rcpt_1"}
    )

    with pytest.raises(GatewayUnavailable):
        client.create_order(100, "INR", "rcpt_1")


def test_signature_verification(client):
    # HMAC-SHA256("order_abc|pay_xyz", "test_secret")
    signature = client.expected_signature("order_abc", "pay_xyz")

    assert len(signature) == 64
    assert client.verify_signature("order_abc", "pay_xyz", signature)
    assert not client.verify_signature("order_abc", "pay_other", signature)
    assert not client.verify_signature("order_abc", "pay_xyz", signature.upper())
    assert not client.verify_signature("order_abc", "pay_xyz", "")
    assert not client.verify_signature("order_abc", "pay_xyz", "подпись")


def test_signature_depends_on_secret(settings, client):
    other = PaymentGatewayClient(
        settings.model_copy(update={"gateway_key_secret": "another"}),
        CircuitBreakerConfig(settings),
    )

    assert other.expected_signature("o", "p") != client.expected_signature("o", "p")
