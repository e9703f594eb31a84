from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


def find_env_file() -> str:
    env_file = ".env" if Path("/.dockerenv").exists() else ".env.local"

    current_path = Path.cwd()

    for path in [current_path] + list(current_path.parents):
        env_path = path / env_file
        if env_path.exists():
            return str(env_path)

    return env_file


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=find_env_file(),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database: request store, inventory ledger, payment orders
    database_url: str = "postgresql+psycopg2://app:app@db:5432/dispatch"

    # Payment gateway
    gateway_base: str = "https://api.razorpay.com"
    gateway_key_id: str = "rzp_test_key"
    gateway_key_secret: str = "rzp_test_secret"
    gateway_timeout_sec: float = 5.0
    currency: str = "INR"

    # Config collaborator (delivery-cost table)
    config_base: str = "http://admin-config:8080"
    config_timeout_sec: float = 1.5
    delivery_costs_ttl_sec: int = 300  # 5 minutes

    # Fallback delivery costs when the config collaborator is unreachable
    delivery_cost_petrol: float = 50.0
    delivery_cost_diesel: float = 50.0
    delivery_cost_gas: float = 80.0
    delivery_cost_battery: float = 100.0

    # Circuit Breaker settings
    cb_gateway_fail_max: int = 3  # Max failures for gateway operations
    cb_gateway_reset_timeout: int = 60  # Reset timeout in seconds
    cb_config_fail_max: int = 5  # Max failures for config lookups
    cb_config_reset_timeout: int = 30  # Reset timeout in seconds

    # Dispatch
    default_service_radius_km: float = 10.0
    list_page_size: int = 100

    def default_delivery_costs(self) -> dict:
        return {
            "petrol": self.delivery_cost_petrol,
            "diesel": self.delivery_cost_diesel,
            "gas": self.delivery_cost_gas,
            "battery": self.delivery_cost_battery,
        }
