from fastapi import APIRouter, Depends

from fuel_dispatch.api.dependencies import get_config_client, get_gateway_client
from fuel_dispatch.clients.config_service import ConfigClient
from fuel_dispatch.clients.gateway import PaymentGatewayClient
from fuel_dispatch.schemas import HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
def health_check():
    return HealthResponse(ok=True)


@router.get("/health/circuit-breakers")
def circuit_breaker_health(
    gateway_client: PaymentGatewayClient = Depends(get_gateway_client),
    config_client: ConfigClient = Depends(get_config_client),
):
    stats = dict(config_client.get_circuit_breaker_stats())
    stats.update(gateway_client.get_circuit_breaker_stats())
    return {
        "circuit_breakers": stats,
        "status": "ok",
    }
