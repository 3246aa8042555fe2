"""Startup-time helpers for safe config logging."""

from pydantic import SecretStr
from pydantic_settings import BaseSettings

from pushpay.common.logging import logger


def _safe_value(name: str, value) -> object:
    """Redact secrets and secret-looking setting names."""

    if isinstance(value, SecretStr):
        return "<redacted>" if value.get_secret_value() else "<unset>"
    if any(secret in name.upper() for secret in ["KEY", "SECRET", "PASSWORD", "TOKEN", "DSN"]):
        return "<redacted>" if value else "<unset>"
    return value


def log_startup_config(service_name: str, *sources: BaseSettings) -> None:
    """Log every loaded setting, with secrets redacted, for quick troubleshooting."""

    config: dict[str, object] = {"service": service_name}
    for source in sources:
        for name, value in source.model_dump().items():
            config[name] = _safe_value(name, value)
    logger.info("startup_config=%s", config)
