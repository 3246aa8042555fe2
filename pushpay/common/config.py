"""Environment-driven settings for the cash-in bridge.

Loaded once per process. Provider credentials live in their own settings
class so a missing secret stops startup instead of surfacing on the first
payment (see `.env.example`).
"""

import logging

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from pushpay.common.errors import ConfigurationError


class CommonSettings(BaseSettings):
    """Typed view of runtime configuration from environment variables."""

    service_name: str = "pushpay"
    log_level: str = "INFO"
    database_dsn: str = "sqlite:///./pushpay.db"
    create_schema_on_startup: bool = False
    frontend_url: str = "http://localhost:5173"
    otel_exporter_otlp_endpoint: str = ""
    paypack_base_url: str = "https://payments.paypack.rw/api"
    paypack_timeout_seconds: float = 30.0
    paypack_token_skew_seconds: float = 60.0
    paypack_refresh_timeout_seconds: float = 45.0
    paypack_min_amount: float = 100
    paypack_phone_pattern: str = r"^07[0-9]{8}$"
    paypack_webhook_mode: str = "production"
    log_signature_values: bool = False
    external_ref_write_attempts: int = 3
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


class PaypackCredentials(BaseSettings):
    """Client credentials and webhook signing secret issued by Paypack."""

    client_id: SecretStr = SecretStr("")
    client_secret: SecretStr = SecretStr("")
    webhook_secret: SecretStr = SecretStr("")
    model_config = SettingsConfigDict(env_prefix="PAYPACK_", env_file=".env", extra="ignore", frozen=True)

    def missing(self) -> list[str]:
        return [
            f"PAYPACK_{name.upper()}"
            for name in ("client_id", "client_secret", "webhook_secret")
            if not getattr(self, name).get_secret_value()
        ]


def load_credentials(**overrides) -> PaypackCredentials:
    """Read Paypack credentials, failing hard when any of them is absent."""

    credentials = PaypackCredentials(**overrides)
    missing = credentials.missing()
    if missing:
        logging.getLogger("pushpay").critical("paypack_credentials_missing variables=%s", ",".join(missing))
        raise ConfigurationError(f"Paypack service is not configured. Missing: {', '.join(missing)}")
    return credentials


settings = CommonSettings()
