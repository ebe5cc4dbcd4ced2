from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration read from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    app_name: str = Field(default="Intervia Middleware")
    environment: str = Field(default="development")
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="%(asctime)s %(levelname)s %(name)s %(message)s")

    # Ledger configuration
    ledger_rpc_url: str = Field(default="http://localhost:8545")
    issuer_private_key: str | None = Field(default=None)
    validator_private_key: str | None = Field(default=None)
    stub_address: str | None = Field(default=None)
    tonne_address: str | None = Field(default=None)
    contract_artifacts_dir: str = Field(default="artifacts")
    ledger_receipt_timeout_seconds: float = Field(default=120.0, gt=0)

    # Knowledge graph configuration
    stardog_endpoint: str = Field(default="http://localhost:5820")
    stardog_database: str = Field(default="intervia")
    stardog_user: str = Field(default="admin")
    stardog_password: str = Field(default="admin")
    graph_namespace: str = Field(default="https://intervia.space/intervia#")

    # Per network call bound for both gateways
    gateway_timeout_seconds: float = Field(default=10.0, gt=0)

    # Audit log configuration
    audit_postgres_dsn: str | None = Field(default=None)

    synchronized_service_ids: tuple[str, ...] = Field(
        default=("L1E", "L2B", "L3M", "L4T", "L5R", "L6F")
    )

    # Observability configuration
    otel_enabled: bool = Field(default=False)
    otel_service_name: str = Field(default="intervia-middleware")
    otel_exporter_otlp_endpoint: str | None = Field(default=None)
    otel_exporter_otlp_headers: str | None = Field(default=None)


@lru_cache
def get_settings() -> Settings:
    """Return a cached instance of the application settings."""

    return Settings()
