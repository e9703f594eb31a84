from decimal import Decimal
from typing import Dict, Optional

import requests
from cachetools import TTLCache
from loguru import logger
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from fuel_dispatch.config.settings import Settings
from fuel_dispatch.core.circuit_breaker import CircuitBreakerConfig
from fuel_dispatch.core.utils import to_decimal
from fuel_dispatch.schemas import ProductKind

_COSTS_KEY = "delivery_costs"


class ConfigClient:
    """Read-only view of the admin-maintained delivery-cost table."""

    def __init__(self, settings: Settings, cb_config: Optional[CircuitBreakerConfig] = None):
        self._session = self._build_session()
        self._timeout = settings.config_timeout_sec
        self._base = settings.config_base
        self._defaults = {
            kind: to_decimal(value)
            for kind, value in settings.default_delivery_costs().items()
        }
        self._cache = TTLCache(maxsize=1, ttl=settings.delivery_costs_ttl_sec)

        self._cb_config = cb_config or CircuitBreakerConfig(settings)
        self._breaker = self._cb_config.get_config_breaker()

    def _build_session(self) -> requests.Session:
        session = requests.Session()
        retries = Retry(
            total=3,
            connect=3,
            read=3,
            backoff_factor=0.3,
            status_forcelist=(502, 503, 504),
            allowed_methods=frozenset({"GET"}),
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retries)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        session.headers.update({"User-Agent": "fuel-dispatch/0.1"})
        return session

    def _url(self, path: str) -> str:
        return f"{self._base.rstrip('/')}/{path.lstrip('/')}"

    def _get(self, path: str, params: Optional[dict] = None) -> dict:
        response = self._session.get(self._url(path), params=params, timeout=self._timeout)
        response.raise_for_status()
        return response.json()

    def _fetch_delivery_costs(self) -> Dict[str, Decimal]:
        @self._breaker
        def _get_costs():
            data = self._get("/delivery-costs")
            costs = data.get("costs", data)
            parsed = {}
            for kind in ProductKind:
                value = to_decimal(costs[kind.value])
                if value < 0:
                    raise ValueError(f"negative delivery cost for {kind.value}")
                parsed[kind.value] = value
            return parsed

        return _get_costs()

    def get_delivery_costs(self) -> Dict[str, Decimal]:
        cached = self._cache.get(_COSTS_KEY)
        if cached is not None:
            return dict(cached)

        try:
            costs = self._fetch_delivery_costs()
        except Exception as e:
            # Defaults are not cached; the next call retries the lookup
            logger.warning(f"Delivery-cost lookup failed, using defaults: {e}")
            return dict(self._defaults)

        self._cache[_COSTS_KEY] = costs
        return dict(costs)

    def get_circuit_breaker_stats(self):
        return self._cb_config.get_breaker_stats()
