import hashlib
import hmac
import time
from typing import Optional

import pybreaker
import requests
from loguru import logger
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from fuel_dispatch.config.settings import Settings
from fuel_dispatch.core.circuit_breaker import CircuitBreakerConfig
from fuel_dispatch.core.exceptions import GatewayTimeout, GatewayUnavailable
from fuel_dispatch.monitoring.metrics import MetricsCollector


class GatewayOrder:
    def __init__(self, id: str, amount_minor: int, currency: str, receipt: str):
        self.id = id
        self.amount_minor = amount_minor
        self.currency = currency
        self.receipt = receipt


def _translate_error(exc: BaseException, action: str) -> Exception:
    # pybreaker raises CircuitBreakerError on the call that trips it; the
    # transport error that caused it is kept as the context
    cause = exc
    if isinstance(exc, pybreaker.CircuitBreakerError) and exc.__context__ is not None:
        cause = exc.__context__

    if isinstance(cause, requests.Timeout):
        return GatewayTimeout(f"Payment gateway timed out during {action}")
    return GatewayUnavailable(f"Payment gateway unavailable during {action}")


class PaymentGatewayClient:
    """Adapter over the external payment processor (Razorpay-compatible API)."""

    def __init__(self, settings: Settings, cb_config: Optional[CircuitBreakerConfig] = None):
        self._timeout = settings.gateway_timeout_sec
        self._base = settings.gateway_base
        self._key_id = settings.gateway_key_id
        self._key_secret = settings.gateway_key_secret
        self._session = self._build_session()

        self._cb_config = cb_config or CircuitBreakerConfig(settings)
        self._breaker = self._cb_config.get_gateway_breaker()

    @property
    def key_id(self) -> str:
        return self._key_id

    def _build_session(self) -> requests.Session:
        session = requests.Session()
        # Only connection setup is retried: a read retry on POST could create
        # a second order at the gateway.
        retries = Retry(
            total=2,
            connect=2,
            read=0,
            status=0,
            backoff_factor=0.2,
            allowed_methods=frozenset({"GET"}),
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retries)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        session.auth = (self._key_id, self._key_secret)
        session.headers.update({"User-Agent": "fuel-dispatch/0.1"})
        return session

    def _url(self, path: str) -> str:
        return f"{self._base.rstrip('/')}/{path.lstrip('/')}"

    def _post(self, path: str, payload: dict) -> dict:
        started = time.monotonic()
        status = "error"
        try:
            response = self._session.post(
                self._url(path), json=payload, timeout=self._timeout
            )
            response.raise_for_status()
            status = "success"
            return response.json() if response.content else {}
        except requests.Timeout:
            status = "timeout"
            raise
        finally:
            MetricsCollector.record_external_call(
                "payment_gateway", path, status, time.monotonic() - started
            )

    def create_order(
        self, amount_minor: int, currency: str, receipt: str, notes: Optional[dict] = None
    ) -> GatewayOrder:
        @self._breaker
        def _create_order():
            data = self._post(
                "/v1/orders",
                {
                    "amount": amount_minor,
                    "currency": currency,
                    "receipt": receipt,
                    "notes": notes or {},
                },
            )
            return GatewayOrder(
                id=data["id"],
                amount_minor=int(data.get("amount", amount_minor)),
                currency=data.get("currency", currency),
                receipt=data.get("receipt", receipt),
            )

        try:
            order = _create_order()
        except (requests.RequestException, pybreaker.CircuitBreakerError) as e:
            logger.warning(f"Gateway order creation failed for receipt {receipt}: {e}")
            raise _translate_error(e, "order creation") from e
        except (KeyError, ValueError) as e:
            logger.error(f"Gateway returned a malformed order for receipt {receipt}: {e}")
            raise GatewayUnavailable("Payment gateway returned an invalid response") from e

        if order.amount_minor != amount_minor or order.currency != currency:
            logger.error(
                f"Gateway order {order.id} amount mismatch: "
                f"sent {amount_minor} {currency}, got {order.amount_minor} {order.currency}"
            )
            raise GatewayUnavailable("Payment gateway returned an invalid response")

        logger.debug(f"Gateway order {order.id} created for {amount_minor} {currency}")
        return order

    def expected_signature(self, order_id: str, payment_id: str) -> str:
        message = f"{order_id}|{payment_id}".encode()
        return hmac.new(self._key_secret.encode(), message, hashlib.sha256).hexdigest()

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        if not order_id or not payment_id or not signature:
            return False
        expected = self.expected_signature(order_id, payment_id)
        return hmac.compare_digest(expected.encode(), signature.encode())

    def get_circuit_breaker_stats(self):
        return self._cb_config.get_breaker_stats()
