import pytest
from pybreaker import CircuitBreakerError

from fuel_dispatch.config.settings import Settings
from fuel_dispatch.core.circuit_breaker import CircuitBreakerConfig
from fuel_dispatch.monitoring.metrics import SERVICE, circuit_breaker_state


@pytest.fixture
def cb_config():
    settings = Settings(_env_file=None, cb_gateway_fail_max=2, cb_gateway_reset_timeout=60)
    return CircuitBreakerConfig(settings)


def failing_function():
    raise ConnectionError("Service down")


def test_breakers_are_shared_per_name(cb_config):
    assert cb_config.get_gateway_breaker() is cb_config.get_gateway_breaker()
    assert cb_config.get_config_breaker() is cb_config.get_config_breaker()
    assert cb_config.get_gateway_breaker() is not cb_config.get_config_breaker()


def test_gateway_breaker_uses_settings(cb_config):
    breaker = cb_config.get_gateway_breaker()

    assert breaker.name == "gateway_operations"
    assert breaker.fail_max == 2
    assert breaker.reset_timeout == 60
    assert breaker.current_state == "closed"


def test_gateway_breaker_opens_and_updates_gauge(cb_config):
    breaker = cb_config.get_gateway_breaker()

    with pytest.raises(ConnectionError):
        breaker(failing_function)()
    with pytest.raises(CircuitBreakerError):
        breaker(failing_function)()

    assert breaker.current_state == "open"
    gauge = circuit_breaker_state.labels(service=SERVICE, circuit_name="gateway_operations")
    assert gauge._value.get() == 1

    with pytest.raises(CircuitBreakerError):
        breaker(lambda: "never called")()


def test_malformed_data_does_not_trip_breakers(cb_config):
    breaker = cb_config.get_config_breaker()

    def bad_payload():
        raise KeyError("costs")

    for _ in range(10):
        with pytest.raises(KeyError):
            breaker(bad_payload)()

    assert breaker.fail_counter == 0
    assert breaker.current_state == "closed"


def test_breaker_stats(cb_config):
    assert cb_config.get_breaker_stats() == {}

    cb_config.get_gateway_breaker()
    cb_config.get_config_breaker()
    stats = cb_config.get_breaker_stats()

    assert set(stats) == {"gateway", "config"}
    assert stats["gateway"]["state"] == "closed"
    assert stats["gateway"]["fail_max"] == 2
    assert stats["config"]["fail_counter"] == 0
