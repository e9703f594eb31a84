from prometheus_client import Counter, Gauge, Histogram, Info
from prometheus_fastapi_instrumentator import Instrumentator

SERVICE = "dispatch-core"

# Business metrics
requests_created_total = Counter(
    "fuel_dispatch_requests_created_total",
    "Total number of delivery requests created after payment verification",
    ["service", "product_kind"],
)

status_transitions_total = Counter(
    "fuel_dispatch_status_transitions_total",
    "Total number of request status transitions",
    ["service", "from_status", "to_status"],
)

claim_conflicts_total = Counter(
    "fuel_dispatch_claim_conflicts_total",
    "Claims lost to another agent",
    ["service"],
)

inventory_shortfalls_total = Counter(
    "fuel_dispatch_inventory_shortfalls_total",
    "Approvals rejected because stock was insufficient",
    ["service", "product_kind"],
)

payment_verifications_total = Counter(
    "fuel_dispatch_payment_verifications_total",
    "Payment verification outcomes",
    ["service", "result"],  # result=verified/rejected/consumed
)

quotes_total = Counter(
    "fuel_dispatch_quotes_total",
    "Total number of price quotes computed",
    ["service", "product_kind"],
)

# Technical metrics
circuit_breaker_state = Gauge(
    "fuel_dispatch_circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=open, 2=half_open)",
    ["service", "circuit_name"],  # circuit_name=gateway/config
)

circuit_breaker_failures = Counter(
    "fuel_dispatch_circuit_breaker_failures_total",
    "Total circuit breaker failures",
    ["service", "circuit_name"],
)

external_api_requests = Counter(
    "fuel_dispatch_external_api_requests_total",
    "Total external API requests",
    ["service", "api_service", "endpoint", "status"],
)

external_api_duration = Histogram(
    "fuel_dispatch_external_api_duration_seconds",
    "External API request duration",
    ["service", "api_service", "endpoint"],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

# Application info
app_info = Info("fuel_dispatch_app_info", "Application information")


def setup_instrumentator() -> Instrumentator:
    return Instrumentator(
        should_group_status_codes=False,
        should_ignore_untemplated=True,
        should_respect_env_var=False,
        should_instrument_requests_inprogress=True,
        excluded_handlers=["/metrics", "/api/v1/health"],
        inprogress_name="http_requests_inprogress",
        inprogress_labels=True,
    )


def init_app_info(version: str = "0.1.0"):
    app_info.info({"version": version, "service": SERVICE, "component": "api"})


class MetricsCollector:
    @staticmethod
    def record_request_created(product_kind: str) -> None:
        requests_created_total.labels(service=SERVICE, product_kind=product_kind).inc()

    @staticmethod
    def record_transition(from_status: str, to_status: str) -> None:
        status_transitions_total.labels(
            service=SERVICE, from_status=from_status, to_status=to_status
        ).inc()

    @staticmethod
    def record_claim_conflict() -> None:
        claim_conflicts_total.labels(service=SERVICE).inc()

    @staticmethod
    def record_inventory_shortfall(product_kind: str) -> None:
        inventory_shortfalls_total.labels(
            service=SERVICE, product_kind=product_kind
        ).inc()

    @staticmethod
    def record_payment_verification(result: str) -> None:
        payment_verifications_total.labels(service=SERVICE, result=result).inc()

    @staticmethod
    def record_quote(product_kind: str) -> None:
        quotes_total.labels(service=SERVICE, product_kind=product_kind).inc()

    @staticmethod
    def record_external_call(
        api_service: str, endpoint: str, status: str, duration: float
    ) -> None:
        external_api_requests.labels(
            service=SERVICE, api_service=api_service, endpoint=endpoint, status=status
        ).inc()
        external_api_duration.labels(
            service=SERVICE, api_service=api_service, endpoint=endpoint
        ).observe(duration)
